"""Tools for the page acquisition pipeline."""

from .canonicalize_tool import canonicalize_url
from .connector_tool import SourceConnector, build_connectors
from .decay_score_tool import DecayScorer
from .embed_tool import EmbeddingComposer, OpenAIEmbeddingService
from .extract_tool import Extractor, parse_document
from .fetch_tool import fetch_tool
from .hint_tool import generate_hints
from .queue_tool import PendingQueue
from .reconstruct_tool import OpenAISummaryService
from .storage_tool import PageStore

__all__ = [
    "canonicalize_url",
    "SourceConnector",
    "build_connectors",
    "DecayScorer",
    "EmbeddingComposer",
    "OpenAIEmbeddingService",
    "Extractor",
    "parse_document",
    "fetch_tool",
    "generate_hints",
    "PendingQueue",
    "OpenAISummaryService",
    "PageStore",
]
