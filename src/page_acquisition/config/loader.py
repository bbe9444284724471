"""Configuration loader for the acquisition pipeline."""

import json
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field


class DiscoveryConfig(BaseModel):
    """Connector fan-out and candidate filtering."""

    connector_concurrency: int = Field(default=2, ge=1)
    lookback_hours: int = Field(default=720, ge=1)
    max_candidates_per_cycle: int = Field(default=50, ge=1)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    enabled_connectors: list[str] = Field(
        default_factory=lambda: ["arxiv", "openalex", "crossref", "commoncrawl"]
    )
    relevance_substrings: list[str] = Field(
        default_factory=lambda: ["arxiv.org", "doi.org", ".edu", "/paper"]
    )
    relevance_keywords: list[str] = Field(
        default_factory=lambda: ["research", "journal", "study", "education"]
    )
    relevance_patterns: list[str] = Field(default_factory=lambda: [r"/abs/\d+"])
    arxiv_feed_url: str = Field(default="https://export.arxiv.org/rss/cs")
    openalex_per_page: int = Field(default=50, ge=1, le=200)
    crossref_rows: int = Field(default=50, ge=1, le=1000)
    crossref_mailto: str = Field(default="you@example.com")
    commoncrawl_index_api: str = Field(default="https://index.commoncrawl.org/")
    commoncrawl_pattern: str = Field(default=".edu")
    commoncrawl_limit: int = Field(default=200, ge=1)


class BatchConfig(BaseModel):
    """Pending item fan-out."""

    batch_size: int = Field(default=20, ge=1)
    concurrency: int = Field(default=4, ge=1)
    sequence_timeout_seconds: float = Field(default=120.0, gt=0)


class RetryPolicy(BaseModel):
    """Retry configuration for transient failures."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=2.0, ge=0)


class ExtractionConfig(BaseModel):
    """Document extraction limits."""

    max_body_chars: int = Field(default=10000, ge=100)
    timeout_seconds: float = Field(default=20.0, gt=0)
    user_agent: str = Field(default="Mozilla/5.0 (compatible; ScannerBot/1.0)")


class DecayScorerConfig(BaseModel):
    """Lookups behind the decay risk signals."""

    whois_timeout_seconds: float = Field(default=10.0, gt=0)
    cert_timeout_seconds: float = Field(default=10.0, gt=0)
    rdap_base_url: str = Field(default="https://rdap.org/domain/")
    free_host_patterns: list[str] = Field(
        default_factory=lambda: [
            "github.io",
            "wordpress.com",
            "wixsite",
            "blogspot.com",
            "netlify.app",
            "herokuapp.com",
        ]
    )


class MonitorConfig(BaseModel):
    """Liveness probe settings."""

    probe_timeout_seconds: float = Field(default=5.0, gt=0)
    user_agent: str = Field(default="Mozilla/5.0 (compatible; DecayMonitorBot/1.0)")


class EmbeddingProviderConfig(BaseModel):
    """Embedding service configuration."""

    model: str = Field(default="text-embedding-3-small")
    api_key_env: str = Field(default="OPENAI_API_KEY")
    dimension: int = Field(default=1536, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)


class SummaryProviderConfig(BaseModel):
    """Generative summary service configuration."""

    model: str = Field(default="gpt-4o-mini")
    api_key_env: str = Field(default="OPENAI_API_KEY")
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=300, ge=1)


class ScheduleConfig(BaseModel):
    """Recurring job intervals."""

    discovery_interval_seconds: float = Field(default=6 * 3600, gt=0)
    batch_interval_seconds: float = Field(default=5 * 60, gt=0)
    decay_interval_seconds: float = Field(default=6 * 3600, gt=0)
    run_on_start: bool = Field(default=True)
    overlap_policy: Literal["skip", "queue"] = Field(default="skip")


class Config(BaseModel):
    """Full system configuration."""

    storage_path: str = Field(default="./output/pages.db")
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    decay_scorer: DecayScorerConfig = Field(default_factory=DecayScorerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    embedding_provider_config: EmbeddingProviderConfig = Field(
        default_factory=EmbeddingProviderConfig
    )
    summary_provider_config: SummaryProviderConfig = Field(default_factory=SummaryProviderConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    failure_spike_window_minutes: int = Field(default=5, ge=1)
    failure_spike_threshold: int = Field(default=30, ge=1)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load config from YAML file."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Config":
        """Load config from dictionary."""
        return cls(**(data or {}))


def load_config(path: str | Path) -> Config:
    """Load configuration from file (YAML or JSON)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        content = f.read()

    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(content) or {}
    else:
        data = json.loads(content)

    return Config.from_dict(data)
