"""Connector tool - candidate URLs from external scholarly sources.

Every connector answers the same question: which documents appeared after
``cutoff``? Failures never escape a connector; they come back as an empty
ConnectorResult with ``error`` set and are retried on the next cycle.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from ..config.loader import DiscoveryConfig
from ..models.candidate import Candidate, ConnectorResult
from .canonicalize_tool import canonicalize_url
from .fetch_tool import build_client

logger = logging.getLogger(__name__)

USER_AGENT = "PageAcquisitionDiscovery/1.0"


def make_candidate(url: Optional[str], title: Optional[str], source: str) -> Optional[Candidate]:
    if not url or not url.strip():
        return None
    url = url.strip()
    return Candidate(
        url=url,
        canonical_url=canonicalize_url(url),
        title=title.strip() if isinstance(title, str) else None,
        source=source,
    )


def doi_url(doi: str) -> str:
    return doi if doi.startswith("http") else f"https://doi.org/{doi}"


class SourceConnector(ABC):
    """Base class for a pluggable candidate source."""

    source: str = "unknown"

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    @abstractmethod
    async def _query(self, client: httpx.AsyncClient, cutoff: datetime) -> list[Candidate]:
        """Provider-specific request, parsing and cutoff filtering."""

    async def collect(self, cutoff: datetime) -> ConnectorResult:
        """Run the connector; any failure yields an empty result with ``error`` set."""
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=timezone.utc)
        try:
            async with build_client(self.timeout, USER_AGENT, self.transport) as client:
                candidates = await self._query(client, cutoff)
        except Exception as e:
            logger.error("%s connector failed: %s", self.source, e)
            return ConnectorResult(source=self.source, error=f"{type(e).__name__}: {e}")
        logger.info("%s connector returned %d candidates", self.source, len(candidates))
        return ConnectorResult(source=self.source, candidates=candidates)

    async def fetch(self, cutoff: datetime) -> list[Candidate]:
        return (await self.collect(cutoff)).candidates


class ArxivConnector(SourceConnector):
    """arXiv RSS listing, filtered by item pubDate."""

    source = "arxiv"

    def __init__(self, feed_url: str = "https://export.arxiv.org/rss/cs", **kwargs):
        super().__init__(**kwargs)
        self.feed_url = feed_url

    async def _query(self, client: httpx.AsyncClient, cutoff: datetime) -> list[Candidate]:
        response = await client.get(self.feed_url)
        response.raise_for_status()
        soup = BeautifulSoup(response.text, "xml")

        candidates: list[Candidate] = []
        for item in soup.find_all("item"):
            pub = item.find("pubDate")
            if not pub or not pub.get_text(strip=True):
                continue
            try:
                published = parsedate_to_datetime(pub.get_text(strip=True))
            except (TypeError, ValueError):
                continue
            if published.tzinfo is None:
                published = published.replace(tzinfo=timezone.utc)
            if published <= cutoff:
                continue
            link = item.find("link") or item.find("guid")
            title = item.find("title")
            candidate = make_candidate(
                link.get_text(strip=True) if link else None,
                title.get_text(strip=True) if title else None,
                self.source,
            )
            if candidate:
                candidates.append(candidate)
        return candidates


class OpenAlexConnector(SourceConnector):
    """OpenAlex works published after the cutoff date."""

    source = "openalex"
    base_url = "https://api.openalex.org/works"

    def __init__(self, per_page: int = 50, **kwargs):
        super().__init__(**kwargs)
        self.per_page = per_page

    async def _query(self, client: httpx.AsyncClient, cutoff: datetime) -> list[Candidate]:
        params = {
            "per-page": self.per_page,
            "filter": f"from_publication_date:{cutoff.date().isoformat()}",
        }
        response = await client.get(self.base_url, params=params)
        response.raise_for_status()

        candidates: list[Candidate] = []
        for work in response.json().get("results") or []:
            location = work.get("primary_location") or {}
            if work.get("doi"):
                url = doi_url(work["doi"])
            else:
                url = location.get("landing_page_url") or work.get("id")
            candidate = make_candidate(url, work.get("display_name"), self.source)
            if candidate:
                candidates.append(candidate)
        return candidates


class CrossRefConnector(SourceConnector):
    """CrossRef works with a publication date after the cutoff."""

    source = "crossref"
    base_url = "https://api.crossref.org/works"

    def __init__(self, rows: int = 50, mailto: str = "you@example.com", **kwargs):
        super().__init__(**kwargs)
        self.rows = rows
        self.mailto = mailto

    async def _query(self, client: httpx.AsyncClient, cutoff: datetime) -> list[Candidate]:
        params = {
            "rows": self.rows,
            "filter": f"from-pub-date:{cutoff.date().isoformat()}",
            "mailto": self.mailto,
        }
        response = await client.get(self.base_url, params=params)
        response.raise_for_status()

        candidates: list[Candidate] = []
        for item in (response.json().get("message") or {}).get("items") or []:
            url = doi_url(item["DOI"]) if item.get("DOI") else item.get("URL")
            title = item.get("title")
            if isinstance(title, list):
                title = title[0] if title else None
            candidate = make_candidate(url, title, self.source)
            if candidate:
                candidates.append(candidate)
        return candidates


class CommonCrawlConnector(SourceConnector):
    """Common Crawl CDX index, newest crawl, entries captured after the cutoff."""

    source = "commoncrawl"

    def __init__(
        self,
        index_api: str = "https://index.commoncrawl.org/",
        pattern: str = ".edu",
        limit: int = 200,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.index_api = index_api.rstrip("/") + "/"
        self.pattern = pattern
        self.limit = limit

    async def latest_index_id(self, client: httpx.AsyncClient) -> Optional[str]:
        response = await client.get(f"{self.index_api}collinfo.json")
        response.raise_for_status()
        collections = response.json()
        if not isinstance(collections, list) or not collections:
            return None
        newest = collections[0]
        return newest.get("id") or newest.get("name")

    async def _query(self, client: httpx.AsyncClient, cutoff: datetime) -> list[Candidate]:
        index_id = await self.latest_index_id(client)
        if not index_id:
            raise ValueError("no Common Crawl index available")

        response = await client.get(
            f"{self.index_api}{index_id}-index",
            params={"url": f"*{self.pattern}", "output": "json", "limit": self.limit},
        )
        response.raise_for_status()

        candidates: list[Candidate] = []
        for line in response.text.splitlines()[: self.limit]:
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            captured = entry.get("timestamp")
            if captured:
                try:
                    captured_at = datetime.strptime(captured, "%Y%m%d%H%M%S").replace(
                        tzinfo=timezone.utc
                    )
                except ValueError:
                    captured_at = None
                if captured_at and captured_at <= cutoff:
                    continue
            candidate = make_candidate(entry.get("url"), entry.get("filename"), self.source)
            if candidate:
                candidates.append(candidate)
        return candidates


def build_connectors(
    config: DiscoveryConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[SourceConnector]:
    """Instantiate enabled connectors in configured order."""
    common = {"timeout": config.request_timeout_seconds, "transport": transport}
    factories = {
        "arxiv": lambda: ArxivConnector(feed_url=config.arxiv_feed_url, **common),
        "openalex": lambda: OpenAlexConnector(per_page=config.openalex_per_page, **common),
        "crossref": lambda: CrossRefConnector(
            rows=config.crossref_rows, mailto=config.crossref_mailto, **common
        ),
        "commoncrawl": lambda: CommonCrawlConnector(
            index_api=config.commoncrawl_index_api,
            pattern=config.commoncrawl_pattern,
            limit=config.commoncrawl_limit,
            **common,
        ),
    }
    connectors: list[SourceConnector] = []
    for name in config.enabled_connectors:
        if name not in factories:
            logger.warning("Unknown connector in config: %s", name)
            continue
        connectors.append(factories[name]())
    return connectors
