"""Tests for the decay risk score and its signal fallbacks."""

import asyncio
import ssl
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import failing_lookup, fixed_lookup
from page_acquisition.config.loader import DecayScorerConfig
from page_acquisition.tools.decay_score_tool import (
    DecayScorer,
    cert_expiry_factor,
    domain_age_factor,
    make_cert_lookup,
    make_rdap_lookup,
    registrable_domain,
)


def days_ago(n):
    return datetime.now(timezone.utc) - timedelta(days=n)


def days_ahead(n):
    return datetime.now(timezone.utc) + timedelta(days=n)


@pytest.mark.asyncio
async def test_reference_score(scorer):
    assessment = await scorer.assess("https://x.edu/paper.pdf")

    assert assessment.probability == pytest.approx(0.765)
    assert assessment.signals["domain_age"].value == 0.9
    assert assessment.signals["cert_expiry"].value == 0.9
    assert assessment.signals["host_reputation"].value == 0.3
    assert not any(s.fallback for s in assessment.signals.values())


@pytest.mark.asyncio
async def test_lookup_failures_use_documented_fallbacks():
    scorer = DecayScorer(
        domain_created_lookup=failing_lookup(TimeoutError("whois timed out")),
        cert_expiry_lookup=failing_lookup(ssl.SSLError("handshake failure")),
    )

    assessment = await scorer.assess("https://someone.github.io/notes")

    age = assessment.signals["domain_age"]
    cert = assessment.signals["cert_expiry"]
    assert (age.value, age.fallback) == (0.5, True)
    assert (cert.value, cert.fallback) == (0.8, True)
    assert "handshake" in cert.error
    assert assessment.signals["host_reputation"].value == 0.7
    assert assessment.probability == pytest.approx(0.45 * 0.5 + 0.35 * 0.8 + 0.15 * 0.7)


@pytest.mark.asyncio
async def test_missing_dates_fall_back():
    scorer = DecayScorer(
        domain_created_lookup=fixed_lookup(None), cert_expiry_lookup=fixed_lookup(None)
    )
    assessment = await scorer.assess("https://example.com/")

    assert assessment.signals["domain_age"].fallback
    assert assessment.signals["cert_expiry"].value == 0.8


@pytest.mark.asyncio
async def test_old_domain_and_long_lived_cert_score_low():
    scorer = DecayScorer(
        domain_created_lookup=fixed_lookup(days_ago(20 * 365)),
        cert_expiry_lookup=fixed_lookup(days_ahead(200)),
    )
    score = await scorer.score("https://www.mit.edu/")
    assert score == pytest.approx(0.45 * 0.2 + 0.35 * 0.2 + 0.15 * 0.3)


@pytest.mark.asyncio
async def test_score_is_clamped_to_one():
    scorer = DecayScorer(
        domain_created_lookup=fixed_lookup(days_ago(1)),
        cert_expiry_lookup=fixed_lookup(days_ahead(1)),
    )
    score = await scorer.score("https://fresh.netlify.app/", content_truncated=True)
    # 0.405 + 0.315 + 0.105 + 0.2 = 1.025
    assert score == 1.0


@pytest.mark.asyncio
async def test_expired_certificate_counts_as_invalid():
    scorer = DecayScorer(
        domain_created_lookup=fixed_lookup(days_ago(30)),
        cert_expiry_lookup=fixed_lookup(days_ago(10)),
    )
    signal = (await scorer.assess("https://x.edu/")).signals["cert_expiry"]
    assert (signal.value, signal.fallback, signal.error) == (0.8, True, "certificate expired")


@pytest.mark.asyncio
async def test_naive_datetimes_are_treated_as_utc():
    naive = (datetime.now(timezone.utc) - timedelta(days=400)).replace(tzinfo=None)
    scorer = DecayScorer(
        domain_created_lookup=fixed_lookup(naive),
        cert_expiry_lookup=fixed_lookup(days_ahead(60)),
    )
    assessment = await scorer.assess("https://example.org/")
    assert assessment.signals["domain_age"].value == 0.4


@pytest.mark.asyncio
async def test_url_without_host_gets_neutral_score(scorer):
    assessment = await scorer.assess("not a url")
    assert assessment.probability == 0.5
    assert assessment.error


def test_factor_boundaries():
    assert domain_age_factor(364) == 0.9
    assert domain_age_factor(365) == 0.4
    assert domain_age_factor(3650) == 0.2
    assert cert_expiry_factor(6.9) == 0.9
    assert cert_expiry_factor(7) == 0.6
    assert cert_expiry_factor(30) == 0.2


def test_registrable_domain():
    assert registrable_domain("www.cs.mit.edu") == "mit.edu"
    assert registrable_domain("news.bbc.co.uk") == "bbc.co.uk"
    assert registrable_domain("example.org") == "example.org"


@pytest.mark.asyncio
async def test_rdap_lookup_reads_registration_event(monkeypatch):
    def handler(request):
        assert request.url.path == "/domain/mit.edu"
        return httpx.Response(
            200,
            json={
                "events": [
                    {"eventAction": "last changed", "eventDate": "2023-01-01T00:00:00Z"},
                    {"eventAction": "registration", "eventDate": "1985-05-23T04:00:00Z"},
                ]
            },
        )

    real_client = httpx.AsyncClient

    def client_with_mock(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_with_mock)
    lookup = make_rdap_lookup(DecayScorerConfig(rdap_base_url="https://rdap.test/domain/"))

    created = await lookup("web.mit.edu")
    assert created == datetime(1985, 5, 23, 4, tzinfo=timezone.utc)


class FakeTLSWriter:
    def __init__(self, peercert):
        self.peercert = peercert
        self.closed = False
        self.waited = False

    def get_extra_info(self, name):
        return self.peercert if name == "peercert" else None

    def close(self):
        self.closed = True

    async def wait_closed(self):
        self.waited = True


@pytest.mark.asyncio
async def test_cert_lookup_reads_not_after_and_closes(monkeypatch):
    writer = FakeTLSWriter({"notAfter": "Jan  1 00:00:00 2030 GMT"})
    seen = {}

    async def open_connection(host, port, **kwargs):
        seen.update(host=host, port=port, server_hostname=kwargs["server_hostname"])
        return object(), writer

    monkeypatch.setattr(asyncio, "open_connection", open_connection)
    lookup = make_cert_lookup(DecayScorerConfig())

    expiry = await lookup("x.edu")

    assert expiry == datetime(2030, 1, 1, tzinfo=timezone.utc)
    assert seen == {"host": "x.edu", "port": 443, "server_hostname": "x.edu"}
    assert writer.closed and writer.waited


@pytest.mark.asyncio
async def test_cert_lookup_without_certificate_returns_none(monkeypatch):
    writer = FakeTLSWriter(None)

    async def open_connection(host, port, **kwargs):
        return object(), writer

    monkeypatch.setattr(asyncio, "open_connection", open_connection)

    assert await make_cert_lookup(DecayScorerConfig())("x.edu") is None
    assert writer.waited
