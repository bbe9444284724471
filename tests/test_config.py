"""Tests for configuration loading."""

import json

import pytest
from pydantic import ValidationError

from page_acquisition.config.loader import Config, load_config


def test_defaults():
    config = Config()
    assert config.batch.batch_size == 20
    assert config.retry_policy.max_attempts == 3
    assert config.extraction.max_body_chars == 10000
    assert config.discovery.enabled_connectors == ["arxiv", "openalex", "crossref", "commoncrawl"]
    assert config.schedule.overlap_policy == "skip"
    assert config.embedding_provider_config.model == "text-embedding-3-small"


def test_load_yaml_overrides_sections(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "storage_path: /data/pages.db\n"
        "batch:\n  batch_size: 5\n"
        "schedule:\n  overlap_policy: queue\n"
        "discovery:\n  relevance_patterns: ['/abs/\\d+', '/pdf/']\n",
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.storage_path == "/data/pages.db"
    assert config.batch.batch_size == 5
    assert config.batch.concurrency == 4
    assert config.schedule.overlap_policy == "queue"
    assert config.discovery.relevance_patterns == [r"/abs/\d+", "/pdf/"]


def test_load_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"retry_policy": {"max_attempts": 5}}), encoding="utf-8")
    assert load_config(path).retry_policy.max_attempts == 5


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == Config()


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    "data",
    [
        {"batch": {"batch_size": 0}},
        {"schedule": {"overlap_policy": "parallel"}},
        {"retry_policy": {"max_attempts": 0}},
    ],
)
def test_invalid_values_rejected(data):
    with pytest.raises(ValidationError):
        Config.from_dict(data)


def test_shipped_config_loads():
    from pathlib import Path

    shipped = Path(__file__).resolve().parent.parent / "config" / "config.yaml"
    config = load_config(shipped)
    assert config == Config(storage_path="./output/pages.db")
