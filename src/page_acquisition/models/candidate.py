"""Candidate URLs produced by source connectors."""

from typing import Optional

from pydantic import BaseModel, Field


class Candidate(BaseModel):
    """A URL discovered by a connector, not yet checked against the store."""

    url: str = Field(..., description="URL as returned by the provider")
    canonical_url: str
    title: Optional[str] = None
    source: str


class ConnectorResult(BaseModel):
    """Everything one connector returned in a discovery cycle.

    ``error`` is set when the connector fell back to an empty candidate list.
    """

    source: str
    candidates: list[Candidate] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None
