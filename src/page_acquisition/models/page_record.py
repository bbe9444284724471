"""Stored page and the fields extracted from it."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .pending_item import utcnow


class ExtractedFields(BaseModel):
    """Structured fields pulled out of a raw document."""

    title: str = ""
    meta_description: str = ""
    headings: list[str] = Field(default_factory=list)
    intro_paragraphs: list[str] = Field(default_factory=list)
    keywords: str = ""
    body_text: str = ""


class ExtractionResult(BaseModel):
    """Output of the extractor for a single URL."""

    url: str
    final_url: str = ""
    http_status: Optional[int] = None
    fields: ExtractedFields = Field(default_factory=ExtractedFields)
    date: Optional[str] = None
    author: Optional[str] = None
    truncated: bool = False


class EmbeddingResult(BaseModel):
    """Combined page vector plus the per-field vectors it was built from."""

    combined_embedding: list[float]
    field_embeddings: dict[str, list[float]] = Field(default_factory=dict)


class Page(BaseModel):
    """Persisted page. ``is_decayed`` only ever moves from False to True."""

    id: Optional[str] = None
    url: str = Field(..., description="Canonical URL")
    title: str = ""
    fields: ExtractedFields = Field(default_factory=ExtractedFields)
    date: Optional[str] = None
    author: Optional[str] = None
    source: str = "discovery"
    decay_probability: float = Field(default=0.5, ge=0.0, le=1.0)
    is_decayed: bool = False
    combined_embedding: list[float] = Field(default_factory=list)
    field_embeddings: dict[str, list[float]] = Field(default_factory=dict)
    hints: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class Reconstruction(BaseModel):
    """Human-readable summary generated from a page embedding."""

    id: Optional[str] = None
    page_id: Optional[str] = None
    text: str
    created_at: datetime = Field(default_factory=utcnow)
