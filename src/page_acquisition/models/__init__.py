"""Data models for the acquisition pipeline."""

from .candidate import Candidate, ConnectorResult
from .pending_item import (
    PendingItem,
    PendingStatus,
    EnqueueResult,
    ACTIVE_STATES,
    ALLOWED_TRANSITIONS,
)
from .page_record import (
    ExtractedFields,
    ExtractionResult,
    EmbeddingResult,
    Page,
    Reconstruction,
)
from .reports import (
    SignalResult,
    DecayAssessment,
    ProbeResult,
    DiscoveryReport,
    BatchReport,
    DecayCheckReport,
    OperationResult,
)

__all__ = [
    "Candidate",
    "ConnectorResult",
    "PendingItem",
    "PendingStatus",
    "EnqueueResult",
    "ACTIVE_STATES",
    "ALLOWED_TRANSITIONS",
    "ExtractedFields",
    "ExtractionResult",
    "EmbeddingResult",
    "Page",
    "Reconstruction",
    "SignalResult",
    "DecayAssessment",
    "ProbeResult",
    "DiscoveryReport",
    "BatchReport",
    "DecayCheckReport",
    "OperationResult",
]
