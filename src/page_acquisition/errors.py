"""Exception types raised across the acquisition pipeline."""


class PipelineError(Exception):
    """Base class for pipeline failures."""


class ExtractionError(PipelineError):
    """Document could not be fetched or parsed.

    ``retryable`` is False when another attempt would get the same answer
    (client errors, unreadable documents).
    """

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class EmbeddingGenerationError(PipelineError):
    """Embedding service failed or returned an unusable response."""


class StorageError(PipelineError):
    """Persistence call failed."""


class ItemNotFoundError(StorageError):
    """Referenced pending item or page does not exist."""


class InvalidTransitionError(PipelineError):
    """Pending item status change not allowed by the state machine."""

    def __init__(self, item_id: str, current: str, target: str):
        super().__init__(f"Pending item {item_id}: cannot move from {current} to {target}")
        self.item_id = item_id
        self.current = current
        self.target = target


class ReconstructionError(PipelineError):
    """Page could not be reconstructed from its embedding."""
