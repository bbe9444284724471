"""Shared fixtures: temporary store, fake services and fixed decay lookups."""

from datetime import datetime, timedelta, timezone

import pytest

from page_acquisition.config.loader import Config
from page_acquisition.errors import ExtractionError
from page_acquisition.models.page_record import ExtractedFields, ExtractionResult
from page_acquisition.tools.decay_score_tool import DecayScorer
from page_acquisition.tools.queue_tool import PendingQueue
from page_acquisition.tools.storage_tool import PageStore

DIMENSION = 8


class FakeEmbeddingService:
    """Deterministic vectors; one axis per text length bucket."""

    def __init__(self, dimension: int = DIMENSION, fail_times: int = 0):
        self.dimension = dimension
        self.fail_times = fail_times
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("embedding service unavailable")
        vectors = []
        for text in texts:
            v = [0.0] * self.dimension
            v[len(text) % self.dimension] = 1.0
            v[(len(text) + 1) % self.dimension] += 0.5
            vectors.append(v)
        return vectors


class FakeExtractor:
    """Returns canned fields; URLs in ``failing`` raise ExtractionError."""

    def __init__(
        self,
        failing: set[str] | None = None,
        fail_times: int = 0,
        truncated=False,
        permanent: set[str] | None = None,
    ):
        self.failing = failing or set()
        self.permanent = permanent or set()
        self.fail_times = fail_times
        self.truncated = truncated
        self.calls: list[str] = []

    async def extract(self, url: str) -> ExtractionResult:
        self.calls.append(url)
        if url in self.failing:
            raise ExtractionError(f"Failed to fetch {url}: HTTP 500")
        if url in self.permanent:
            raise ExtractionError(f"Failed to fetch {url}: HTTP 404", retryable=False)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ExtractionError(f"Failed to fetch {url}: ReadTimeout")
        return ExtractionResult(
            url=url,
            final_url=url,
            http_status=200,
            fields=ExtractedFields(
                title="Deep Learning for Tide Prediction",
                meta_description="A study of coastal tide models",
                headings=["Introduction", "Methods"],
                intro_paragraphs=["We predict tides.", "Results are promising."],
                keywords="tides, learning",
                body_text="We predict tides. Results are promising.",
            ),
            truncated=self.truncated,
        )


def make_pdf(lines: list[str], title: str | None = None) -> bytes:
    """Single-page PDF drawing each line in Helvetica, with an optional /Title."""
    ops = ["BT", "/F1 12 Tf", "72 720 Td"]
    for i, line in enumerate(lines):
        if i:
            ops.append("0 -20 Td")
        ops.append(f"({line}) Tj")
    ops.append("ET")
    stream = "\n".join(ops).encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    if title:
        objects.append(f"<< /Title ({title}) >>".encode("latin-1"))

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, 1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    trailer = b"<< /Size %d /Root 1 0 R" % (len(objects) + 1)
    if title:
        trailer += b" /Info %d 0 R" % len(objects)
    out += b"trailer\n" + trailer + b" >>\nstartxref\n%d\n%%%%EOF\n" % xref
    return bytes(out)


def fixed_lookup(value):
    async def lookup(host: str):
        return value

    return lookup


def failing_lookup(exc: Exception):
    async def lookup(host: str):
        raise exc

    return lookup


@pytest.fixture
def store(tmp_path):
    return PageStore(tmp_path / "pages.db")


@pytest.fixture
def queue(store):
    return PendingQueue(store)


@pytest.fixture
def embedding_service():
    return FakeEmbeddingService()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def scorer():
    now = datetime.now(timezone.utc)
    return DecayScorer(
        domain_created_lookup=fixed_lookup(now - timedelta(days=30)),
        cert_expiry_lookup=fixed_lookup(now + timedelta(days=3)),
    )


@pytest.fixture
def config(tmp_path):
    return Config.from_dict(
        {
            "storage_path": str(tmp_path / "pages.db"),
            "retry_policy": {"max_attempts": 2, "backoff_seconds": 0},
            "batch": {"batch_size": 10, "concurrency": 2, "sequence_timeout_seconds": 5},
        }
    )
