"""Discovery agent - fan out over connectors and enqueue new candidates."""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlsplit

from ..config.loader import DiscoveryConfig
from ..models.candidate import Candidate
from ..models.reports import DiscoveryReport
from ..tools.connector_tool import SourceConnector
from ..tools.queue_tool import PendingQueue
from .pool import run_bounded

logger = logging.getLogger(__name__)

DOI_PRIORITY = 0.8
PDF_PRIORITY = 0.5
ARXIV_PRIORITY = 0.4


def acquisition_priority(candidate: Candidate) -> float:
    """Cheap URL heuristics: DOI links, PDF documents and arXiv provenance rank higher."""
    url = candidate.canonical_url
    priority = 0.0
    if "doi.org" in url.lower():
        priority += DOI_PRIORITY
    if urlsplit(url).path.lower().endswith(".pdf"):
        priority += PDF_PRIORITY
    if candidate.source == "arxiv":
        priority += ARXIV_PRIORITY
    return priority


def dedupe_candidates(candidates: list[Candidate]) -> list[Candidate]:
    """Keep the first candidate per canonical URL, preserving order."""
    seen: dict[str, Candidate] = {}
    for c in candidates:
        if c.canonical_url and c.canonical_url not in seen:
            seen[c.canonical_url] = c
    return list(seen.values())


class RelevanceFilter:
    """Coarse URL heuristics for 'is this likely a document of interest'."""

    def __init__(self, config: DiscoveryConfig):
        self.substrings = [s.lower() for s in config.relevance_substrings]
        self.keywords = [k.lower() for k in config.relevance_keywords]
        self.patterns = [re.compile(p) for p in config.relevance_patterns]

    def __call__(self, candidate: Candidate) -> bool:
        u = candidate.canonical_url.lower()
        return (
            any(s in u for s in self.substrings)
            or u.endswith(".pdf")
            or any(p.search(u) for p in self.patterns)
            or any(k in u for k in self.keywords)
        )


class DiscoveryAgent:
    """
    Runs every connector with bounded concurrency, merges and dedupes the
    candidates, drops noise and enqueues what the store has not seen yet.
    Safe to re-run: enqueue is a no-op for known URLs.
    """

    def __init__(
        self,
        connectors: list[SourceConnector],
        queue: PendingQueue,
        config: Optional[DiscoveryConfig] = None,
    ):
        self.connectors = connectors
        self.queue = queue
        self.config = config or DiscoveryConfig()
        self.is_relevant = RelevanceFilter(self.config)

    def cutoff(self) -> datetime:
        return datetime.now(timezone.utc) - timedelta(hours=self.config.lookback_hours)

    async def run(self, cutoff: Optional[datetime] = None) -> DiscoveryReport:
        cutoff = cutoff or self.cutoff()
        logger.info(
            "Running discovery cycle: %d connectors, cutoff %s",
            len(self.connectors),
            cutoff.isoformat(),
        )

        results = await run_bounded(
            self.connectors,
            lambda connector: connector.collect(cutoff),
            self.config.connector_concurrency,
        )
        report = DiscoveryReport(
            connector_errors={r.source: r.error for r in results if r.error}
        )

        # Connector order, not completion order, decides which duplicate wins
        merged = dedupe_candidates([c for r in results for c in r.candidates])
        relevant = [c for c in merged if self.is_relevant(c)]
        report.filtered = len(merged) - len(relevant)

        for candidate in relevant[: self.config.max_candidates_per_cycle]:
            try:
                result = await self.queue.enqueue(
                    candidate.canonical_url,
                    source=candidate.source,
                    priority=acquisition_priority(candidate),
                    metadata={"title": candidate.title} if candidate.title else {},
                )
            except Exception as e:
                logger.error("Failed to enqueue %s: %s", candidate.canonical_url, e)
                report.skipped += 1
                continue
            if result.added:
                report.added += 1
            else:
                report.skipped += 1

        logger.info(
            "Discovery complete. Added %d, skipped %d, filtered %d.",
            report.added,
            report.skipped,
            report.filtered,
        )
        return report
