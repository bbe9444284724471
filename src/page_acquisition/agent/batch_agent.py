"""Batch agent - extract, embed, score and persist pending items."""

import asyncio
import logging
from typing import Optional, Protocol

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config.loader import BatchConfig, RetryPolicy
from ..errors import ExtractionError
from ..models.page_record import EmbeddingResult, ExtractionResult, Page
from ..models.pending_item import PendingItem
from ..models.reports import BatchReport
from ..tools.decay_score_tool import DecayScorer
from ..tools.embed_tool import EmbeddingComposer
from ..tools.hint_tool import generate_hints
from ..tools.queue_tool import PendingQueue
from ..tools.storage_tool import PageStore
from .pool import run_bounded

logger = logging.getLogger(__name__)


def is_retryable(exc: BaseException) -> bool:
    """Everything is retried except extraction failures marked permanent."""
    return not (isinstance(exc, ExtractionError) and not exc.retryable)


class Extractor(Protocol):
    async def extract(self, url: str) -> ExtractionResult: ...


class BatchAgent:
    """
    Pulls the highest-priority pending items and processes each one:
    mark processing, run extract -> embed -> score -> persist under the
    retry policy, then mark done or failed with the last error.
    """

    def __init__(
        self,
        queue: PendingQueue,
        store: PageStore,
        extractor: Extractor,
        composer: EmbeddingComposer,
        scorer: DecayScorer,
        config: Optional[BatchConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.queue = queue
        self.store = store
        self.extractor = extractor
        self.composer = composer
        self.scorer = scorer
        self.config = config or BatchConfig()
        self.retry_policy = retry_policy or RetryPolicy()

    async def run(self) -> BatchReport:
        logger.info("Starting batch processing...")
        batch = await self.queue.next_batch(self.config.batch_size)
        if not batch:
            logger.info("No pending items found.")
            return BatchReport()
        logger.info("Fetched %d pending items.", len(batch))

        outcomes = await run_bounded(batch, self.process_item, self.config.concurrency)
        report = BatchReport(
            selected=len(batch),
            done=sum(1 for ok in outcomes if ok),
            failed=sum(1 for ok in outcomes if not ok),
        )
        logger.info("Batch processing complete: %d done, %d failed.", report.done, report.failed)
        return report

    async def process_item(self, item: PendingItem) -> bool:
        """Process one pending item. Returns True when the page was persisted."""
        try:
            await self.queue.mark_processing(item.id)
        except Exception as e:
            # Still attempt processing; the item stays visible as pending
            logger.error("Failed to mark processing %s: %s", item.id, e)

        try:
            await self._run_with_retry(item)
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.error("Processing failed for %s: %s", item.url, reason)
            await self._record_failure(item, reason)
            return False

        try:
            await self.queue.mark_done(item.id)
        except Exception as e:
            logger.error("Failed to mark done %s (%s): %s", item.id, item.url, e)
        logger.info("Processed and saved: %s", item.url)
        return True

    async def _run_with_retry(self, item: PendingItem) -> Page:
        policy = self.retry_policy

        def log_attempt(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "Attempt %d failed for %s: %s", state.attempt_number, item.url, exc
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            retry=retry_if_exception(is_retryable),
            wait=wait_exponential(multiplier=policy.backoff_seconds, max=30),
            before_sleep=log_attempt,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await asyncio.wait_for(
                    self.process_sequence(item), timeout=self.config.sequence_timeout_seconds
                )
        raise RuntimeError("retry loop exited without result")  # pragma: no cover

    async def process_sequence(self, item: PendingItem) -> Page:
        """Extract -> embed -> score -> persist for one item."""
        extraction = await self.extractor.extract(item.url)
        embedding = await self.composer.compose_page(extraction.fields)
        return await self.persist(item, extraction, embedding)

    async def persist(
        self, item: PendingItem, extraction: ExtractionResult, embedding: EmbeddingResult
    ) -> Page:
        """Score decay and build hints at save time, then insert page and embedding."""
        existing = await self.store.get_page_by_url(item.url)
        if existing:
            logger.info("Page already stored for %s (id=%s); not inserting", item.url, existing.id)
            return existing

        decay_probability = await self.scorer.score(item.url, extraction.truncated)
        page = Page(
            url=item.url,
            title=extraction.fields.title,
            fields=extraction.fields,
            date=extraction.date,
            author=extraction.author,
            source=item.source or "discovery",
            decay_probability=decay_probability,
            is_decayed=False,
            combined_embedding=embedding.combined_embedding,
            field_embeddings=embedding.field_embeddings,
            hints=generate_hints(extraction.fields),
            metadata=item.metadata,
        )
        return await self.store.save_page_with_embedding(page)

    async def _record_failure(self, item: PendingItem, reason: str) -> None:
        try:
            await self.queue.mark_failed(item.id, reason)
        except Exception as e:
            logger.error("Failed to mark failed %s (%s): %s", item.id, item.url, e)
        try:
            await self.store.log_failure(item.url, reason)
        except Exception as e:
            logger.error("Failed to write failure log for %s: %s", item.url, e)
