"""Pending item and queue state models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..errors import InvalidTransitionError


class PendingStatus(str, Enum):
    """Queue states for each pending item. Transitions only move forward."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"  # terminal
    FAILED = "failed"  # terminal


# Statuses that block a new enqueue of the same canonical URL
ACTIVE_STATES = {PendingStatus.PENDING, PendingStatus.PROCESSING}

ALLOWED_TRANSITIONS: dict[PendingStatus, set[PendingStatus]] = {
    PendingStatus.PENDING: {PendingStatus.PROCESSING},
    PendingStatus.PROCESSING: {PendingStatus.DONE, PendingStatus.FAILED},
    PendingStatus.DONE: set(),
    PendingStatus.FAILED: set(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PendingItem(BaseModel):
    """Queued unit of work awaiting extraction and embedding."""

    id: str
    url: str = Field(..., description="Canonical URL")
    source: str = "discovery"
    priority: float = 0.0
    status: PendingStatus = PendingStatus.PENDING
    metadata: dict[str, Any] = Field(default_factory=dict)
    added_at: datetime = Field(default_factory=utcnow)
    last_attempted_at: Optional[datetime] = None
    attempts: int = Field(default=0, ge=0)

    def transition(self, target: PendingStatus, reason: str | None = None) -> "PendingItem":
        """Return a copy moved to ``target``; raise if the state machine forbids it."""
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.id, self.status.value, target.value)

        update: dict[str, Any] = {"status": target}
        if target is PendingStatus.PROCESSING:
            update["last_attempted_at"] = utcnow()
            update["attempts"] = self.attempts + 1
        elif target is PendingStatus.FAILED:
            update["metadata"] = {**self.metadata, "failed_reason": reason}
        return self.model_copy(update=update)


class EnqueueResult(BaseModel):
    """Outcome of a single enqueue attempt."""

    url: str
    added: bool
    item: Optional[PendingItem] = None
    reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return not self.added
