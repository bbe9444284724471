"""Result objects returned by scoring, probing and the boundary operations."""

from typing import Optional

from pydantic import BaseModel, Field


class SignalResult(BaseModel):
    """One decay risk signal. ``fallback`` marks a documented default value."""

    name: str
    value: float = Field(..., ge=0.0, le=1.0)
    fallback: bool = False
    error: Optional[str] = None


class DecayAssessment(BaseModel):
    """Decay probability with the signals that produced it."""

    url: str
    probability: float = Field(..., ge=0.0, le=1.0)
    signals: dict[str, SignalResult] = Field(default_factory=dict)
    error: Optional[str] = None


class ProbeResult(BaseModel):
    """Liveness probe outcome for one stored page."""

    url: str
    is_decayed: bool
    status: Optional[int] = None
    method: str = "HEAD"
    error: Optional[str] = None


class DiscoveryReport(BaseModel):
    """Counts for one discovery cycle."""

    added: int = 0
    skipped: int = 0
    filtered: int = 0
    connector_errors: dict[str, str] = Field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None


class BatchReport(BaseModel):
    """Counts for one batch processing run."""

    selected: int = 0
    done: int = 0
    failed: int = 0


class DecayCheckReport(BaseModel):
    """Counts for one liveness sweep."""

    checked: int = 0
    decayed: int = 0
    update_failures: int = 0


class OperationResult(BaseModel):
    """Success indicator for fire-and-return boundary operations."""

    success: bool
    message: str = ""
