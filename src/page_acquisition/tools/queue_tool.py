"""Queue tool - pending item state machine on top of the page store."""

import logging
from typing import Any, Optional

from ..errors import ItemNotFoundError
from ..models.pending_item import EnqueueResult, PendingItem, PendingStatus
from .canonicalize_tool import canonicalize_url
from .storage_tool import PageStore

logger = logging.getLogger(__name__)


class PendingQueue:
    """
    Persisted priority queue of URLs awaiting processing.
    States move pending -> processing -> done | failed and never back.
    Status writes are read-then-write; two concurrent runs may claim the
    same item, so runs are serialized by the job scheduler instead.
    """

    def __init__(self, store: PageStore):
        self.store = store

    async def is_known(self, canonical_url: str) -> Optional[str]:
        """Return why ``canonical_url`` must not be enqueued, or None."""
        if await self.store.get_page_by_url(canonical_url):
            return "page exists"
        if await self.store.find_active_pending(canonical_url):
            return "already queued"
        return None

    async def enqueue(
        self,
        url: str,
        source: str = "discovery",
        priority: float = 0.0,
        metadata: Optional[dict[str, Any]] = None,
    ) -> EnqueueResult:
        canonical = canonicalize_url(url)
        reason = await self.is_known(canonical)
        if reason:
            logger.debug("Skipping %s: %s", canonical, reason)
            return EnqueueResult(url=canonical, added=False, reason=reason)

        item = await self.store.add_pending(canonical, source, priority, metadata or {})
        logger.debug("Enqueued %s (source=%s, priority=%.2f)", canonical, source, priority)
        return EnqueueResult(url=canonical, added=True, item=item)

    async def next_batch(self, batch_size: int) -> list[PendingItem]:
        return await self.store.get_pending_batch(batch_size)

    async def _move(
        self, item_id: str, target: PendingStatus, reason: str | None = None
    ) -> PendingItem:
        current = await self.store.get_pending(item_id)
        if current is None:
            raise ItemNotFoundError(f"Pending item not found: {item_id}")
        updated = current.transition(target, reason)
        await self.store.update_pending(updated)
        return updated

    async def mark_processing(self, item_id: str) -> PendingItem:
        return await self._move(item_id, PendingStatus.PROCESSING)

    async def mark_done(self, item_id: str) -> PendingItem:
        return await self._move(item_id, PendingStatus.DONE)

    async def mark_failed(self, item_id: str, reason: str) -> PendingItem:
        return await self._move(item_id, PendingStatus.FAILED, reason)
