"""Decay score tool - heuristic probability that a page will disappear.

Four independent signals are combined with fixed weights:

    0.45 * domain_age + 0.35 * cert_expiry + 0.15 * host_reputation + truncation

clamped to [0, 1]. The weights are hand-picked constants, not a trained model.
Each lookup that fails falls back to a documented value instead of aborting
the score, and the returned SignalResult records which path was taken.
"""

import asyncio
import logging
import ssl
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from urllib.parse import urlsplit

import httpx

from ..config.loader import DecayScorerConfig
from ..models.reports import DecayAssessment, SignalResult

logger = logging.getLogger(__name__)

DOMAIN_AGE_WEIGHT = 0.45
CERT_EXPIRY_WEIGHT = 0.35
HOST_REPUTATION_WEIGHT = 0.15
TRUNCATION_BONUS = 0.2

DOMAIN_AGE_DEFAULT = 0.5
CERT_INVALID = 0.8
FREE_HOST_RISK = 0.7
REGULAR_HOST_RISK = 0.3
NEUTRAL_SCORE = 0.5

DateLookup = Callable[[str], Awaitable[Optional[datetime]]]


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def registrable_domain(host: str) -> str:
    """Best-effort registered domain: last two labels, three for ccTLD second levels."""
    labels = [label for label in host.lower().strip(".").split(".") if label]
    if len(labels) <= 2:
        return ".".join(labels)
    if len(labels[-1]) == 2 and labels[-2] in {"co", "ac", "com", "org", "net", "gov", "edu"}:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def domain_age_factor(age_days: float) -> float:
    if age_days < 365:
        return 0.9
    if age_days < 3650:
        return 0.4
    return 0.2


def cert_expiry_factor(days_left: float) -> float:
    if days_left < 7:
        return 0.9
    if days_left < 30:
        return 0.6
    return 0.2


def make_rdap_lookup(config: DecayScorerConfig) -> DateLookup:
    """Registration date via RDAP (the JSON successor of WHOIS)."""

    async def lookup(host: str) -> Optional[datetime]:
        url = f"{config.rdap_base_url.rstrip('/')}/{registrable_domain(host)}"
        async with httpx.AsyncClient(
            timeout=config.whois_timeout_seconds, follow_redirects=True, trust_env=False
        ) as client:
            response = await client.get(url, headers={"Accept": "application/rdap+json"})
            response.raise_for_status()
            data = response.json()
        for event in data.get("events", []):
            if event.get("eventAction") == "registration" and event.get("eventDate"):
                return datetime.fromisoformat(event["eventDate"].replace("Z", "+00:00"))
        return None

    return lookup


def make_cert_lookup(config: DecayScorerConfig) -> DateLookup:
    """Expiry of the certificate presented on port 443 (verified handshake)."""

    async def lookup(host: str) -> Optional[datetime]:
        context = ssl.create_default_context()
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, 443, ssl=context, server_hostname=host),
            timeout=config.cert_timeout_seconds,
        )
        try:
            cert = writer.get_extra_info("peercert") or {}
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, ssl.SSLError) as e:
                logger.debug("TLS close for %s: %s", host, e)
        not_after = cert.get("notAfter")
        if not not_after:
            return None
        return datetime.fromtimestamp(ssl.cert_time_to_seconds(not_after), tz=timezone.utc)

    return lookup


class DecayScorer:
    """Combines the decay risk signals into one probability. Never raises."""

    def __init__(
        self,
        config: Optional[DecayScorerConfig] = None,
        domain_created_lookup: Optional[DateLookup] = None,
        cert_expiry_lookup: Optional[DateLookup] = None,
    ):
        self.config = config or DecayScorerConfig()
        self.domain_created_lookup = domain_created_lookup or make_rdap_lookup(self.config)
        self.cert_expiry_lookup = cert_expiry_lookup or make_cert_lookup(self.config)

    async def domain_age_signal(self, host: str) -> SignalResult:
        try:
            created = await self.domain_created_lookup(host)
        except Exception as e:
            logger.warning("Domain age lookup failed for %s: %s", host, e)
            return SignalResult(
                name="domain_age", value=DOMAIN_AGE_DEFAULT, fallback=True, error=str(e)
            )
        if created is None:
            return SignalResult(
                name="domain_age",
                value=DOMAIN_AGE_DEFAULT,
                fallback=True,
                error="no registration date",
            )
        age_days = (datetime.now(timezone.utc) - _as_utc(created)).total_seconds() / 86400
        return SignalResult(name="domain_age", value=domain_age_factor(age_days))

    async def cert_expiry_signal(self, host: str) -> SignalResult:
        try:
            expires = await self.cert_expiry_lookup(host)
        except Exception as e:
            logger.debug("Certificate check failed for %s: %s", host, e)
            return SignalResult(name="cert_expiry", value=CERT_INVALID, fallback=True, error=str(e))
        if expires is None:
            return SignalResult(
                name="cert_expiry", value=CERT_INVALID, fallback=True, error="no certificate"
            )
        days_left = (_as_utc(expires) - datetime.now(timezone.utc)).total_seconds() / 86400
        if days_left <= 0:
            return SignalResult(
                name="cert_expiry", value=CERT_INVALID, fallback=True, error="certificate expired"
            )
        return SignalResult(name="cert_expiry", value=cert_expiry_factor(days_left))

    def host_reputation_signal(self, host: str) -> SignalResult:
        host = host.lower()
        risky = any(pattern in host for pattern in self.config.free_host_patterns)
        return SignalResult(
            name="host_reputation", value=FREE_HOST_RISK if risky else REGULAR_HOST_RISK
        )

    async def assess(self, url: str, content_truncated: bool = False) -> DecayAssessment:
        try:
            host = urlsplit(url).hostname
            if not host:
                raise ValueError(f"no host in {url!r}")

            domain_age, cert_expiry = await asyncio.gather(
                self.domain_age_signal(host), self.cert_expiry_signal(host)
            )
            host_rep = self.host_reputation_signal(host)
            truncation = SignalResult(
                name="truncation", value=TRUNCATION_BONUS if content_truncated else 0.0
            )
            score = (
                DOMAIN_AGE_WEIGHT * domain_age.value
                + CERT_EXPIRY_WEIGHT * cert_expiry.value
                + HOST_REPUTATION_WEIGHT * host_rep.value
                + truncation.value
            )
            signals = {s.name: s for s in (domain_age, cert_expiry, host_rep, truncation)}
            return DecayAssessment(
                url=url, probability=min(1.0, max(0.0, score)), signals=signals
            )
        except Exception as e:
            logger.error("Decay scoring failed for %s: %s", url, e)
            return DecayAssessment(url=url, probability=NEUTRAL_SCORE, error=str(e))

    async def score(self, url: str, content_truncated: bool = False) -> float:
        return (await self.assess(url, content_truncated)).probability
