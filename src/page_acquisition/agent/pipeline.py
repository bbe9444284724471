"""Acquisition pipeline - boundary operations over discovery, batch and decay jobs."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ..config.loader import Config
from ..errors import ItemNotFoundError, ReconstructionError
from ..models.pending_item import EnqueueResult
from ..models.page_record import Reconstruction
from ..models.reports import (
    BatchReport,
    DecayCheckReport,
    DiscoveryReport,
    OperationResult,
)
from ..tools.connector_tool import SourceConnector, build_connectors
from ..tools.decay_score_tool import DecayScorer
from ..tools.embed_tool import EmbeddingComposer, EmbeddingService, OpenAIEmbeddingService
from ..tools.extract_tool import Extractor
from ..tools.queue_tool import PendingQueue
from ..tools.reconstruct_tool import OpenAISummaryService, SummaryService
from ..tools.storage_tool import PageStore
from .batch_agent import BatchAgent
from .decay_monitor import DecayMonitor
from .discovery_agent import DiscoveryAgent
from .scheduler import JobScheduler

logger = logging.getLogger(__name__)

DISCOVERY_JOB = "discovery"
BATCH_JOB = "batch"
DECAY_JOB = "decay_check"


class AcquisitionPipeline:
    """
    Wires store, connectors, extractor, embedding composer, decay scorer and
    monitor together. Every collaborator can be passed in; anything left out
    is built from ``config``. The three jobs run through one JobScheduler so
    a job never overlaps with itself.
    """

    def __init__(
        self,
        config: Config,
        store: Optional[PageStore] = None,
        connectors: Optional[list[SourceConnector]] = None,
        extractor: Optional[Any] = None,
        embedding_service: Optional[EmbeddingService] = None,
        scorer: Optional[DecayScorer] = None,
        summary_service: Optional[SummaryService] = None,
        monitor: Optional[DecayMonitor] = None,
    ):
        self.config = config
        self.store = store or PageStore(config.storage_path)
        self.queue = PendingQueue(self.store)
        self.discovery = DiscoveryAgent(
            connectors if connectors is not None else build_connectors(config.discovery),
            self.queue,
            config.discovery,
        )
        self.batch = BatchAgent(
            queue=self.queue,
            store=self.store,
            extractor=extractor or Extractor(config.extraction),
            composer=EmbeddingComposer(
                embedding_service or OpenAIEmbeddingService(config.embedding_provider_config)
            ),
            scorer=scorer or DecayScorer(config.decay_scorer),
            config=config.batch,
            retry_policy=config.retry_policy,
        )
        self.monitor = monitor or DecayMonitor(self.store, config.monitor)
        self.summary_service = summary_service or OpenAISummaryService(
            config.summary_provider_config
        )

        schedule = config.schedule
        self.scheduler = JobScheduler(overlap_policy=schedule.overlap_policy)
        self.scheduler.register(
            DISCOVERY_JOB, self.discovery.run, schedule.discovery_interval_seconds
        )
        self.scheduler.register(BATCH_JOB, self._batch_job, schedule.batch_interval_seconds)
        self.scheduler.register(DECAY_JOB, self.monitor.run, schedule.decay_interval_seconds)

    async def _batch_job(self) -> BatchReport:
        report = await self.batch.run()
        if report.failed:
            await self.check_failure_spikes()
        return report

    # Boundary operations

    async def trigger_discovery_cycle(self) -> DiscoveryReport:
        """Run one discovery cycle and wait for its counts."""
        try:
            ran, report = await self.scheduler.run_now(DISCOVERY_JOB)
        except Exception as e:
            logger.exception("Discovery cycle failed")
            return DiscoveryReport(success=False, error=str(e))
        if not ran:
            return DiscoveryReport(success=False, error="discovery cycle already running")
        return report

    def trigger_batch_processing(self) -> OperationResult:
        """Start a batch run in the background; completion shows in item status."""
        if self.scheduler.start_background(BATCH_JOB):
            return OperationResult(success=True, message="Batch processing started")
        return OperationResult(success=False, message="Batch processing already running")

    def trigger_decay_check(self) -> OperationResult:
        """Start a liveness sweep in the background."""
        if self.scheduler.start_background(DECAY_JOB):
            return OperationResult(success=True, message="Decay check started")
        return OperationResult(success=False, message="Decay check already running")

    async def run_batch_processing(self) -> Optional[BatchReport]:
        """Run a batch and wait for it. None when another run is in flight."""
        _, report = await self.scheduler.run_now(BATCH_JOB)
        return report

    async def run_decay_check(self) -> Optional[DecayCheckReport]:
        """Run a liveness sweep and wait for it. None when another run is in flight."""
        _, report = await self.scheduler.run_now(DECAY_JOB)
        return report

    async def enqueue_manual_candidate(
        self, url: str, source: str = "manual", priority: float = 0.0
    ) -> EnqueueResult:
        """Enqueue one URL directly, bypassing connectors."""
        result = await self.queue.enqueue(url, source=source, priority=priority)
        outcome = "added" if result.added else f"skipped ({result.reason})"
        logger.info("Manual enqueue %s: %s", result.url, outcome)
        return result

    async def reconstruct_page(self, page_id: str) -> Reconstruction:
        """Summarize a stored page from its embedding and save the summary."""
        page = await self.store.get_page_by_id(page_id)
        if page is None:
            raise ItemNotFoundError(f"Page not found: {page_id}")
        vector = await self.store.get_page_embedding(page_id) or page.combined_embedding
        if not vector:
            raise ReconstructionError(f"No embedding found for page ID {page_id}")

        metadata = {
            "title": page.title,
            "meta_description": page.fields.meta_description,
            "headings": " | ".join(page.fields.headings),
            "intro": " ".join(page.fields.intro_paragraphs),
            "keywords": page.fields.keywords,
        }
        text = await self.summary_service.summarize(vector, metadata)
        return await self.store.save_reconstruction(page_id, text)

    async def check_failure_spikes(self) -> bool:
        """True when failures in the configured window reach the threshold."""
        window = self.config.failure_spike_window_minutes
        since = datetime.now(timezone.utc) - timedelta(minutes=window)
        count = await self.store.count_failures_since(since)
        if count >= self.config.failure_spike_threshold:
            logger.warning("High error spike detected: %d errors in last %d minutes", count, window)
            return True
        return False

    async def status(self) -> dict[str, Any]:
        return {
            "jobs": self.scheduler.status(),
            "pending": await self.store.count_pending_by_status(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # Scheduling

    async def serve(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run the recurring jobs until ``stop_event`` is set or the task is cancelled."""
        self.scheduler.start(run_on_start=self.config.schedule.run_on_start)
        stop_event = stop_event or asyncio.Event()
        try:
            await stop_event.wait()
        finally:
            await self.scheduler.stop()
