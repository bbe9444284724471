"""Embed tool - per-field embeddings combined into one page vector."""

import logging
import os
from typing import Optional, Protocol

import httpx
import numpy as np
from openai import AsyncOpenAI

from ..config.loader import EmbeddingProviderConfig
from ..errors import EmbeddingGenerationError
from ..models.page_record import EmbeddingResult, ExtractedFields

logger = logging.getLogger(__name__)

# Importance per field; renormalized over the fields that are present
FIELD_WEIGHTS: dict[str, float] = {
    "title": 0.3,
    "meta_description": 0.2,
    "headings": 0.2,
    "intro_text": 0.2,
    "keywords": 0.1,
    "body_summary": 0.1,
}


class EmbeddingService(Protocol):
    """Turns texts into fixed-dimension vectors, one per input, in order."""

    dimension: int

    async def embed(self, texts: list[str]) -> list[list[float]]: ...


class OpenAIEmbeddingService:
    """Embedding service backed by the OpenAI embeddings endpoint."""

    def __init__(
        self,
        config: Optional[EmbeddingProviderConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or EmbeddingProviderConfig()
        self.dimension = self.config.dimension
        self.transport = transport

    async def embed(self, texts: list[str]) -> list[list[float]]:
        api_key = os.environ.get(self.config.api_key_env, "")
        if not api_key:
            raise EmbeddingGenerationError(
                f"No embedding API key configured ({self.config.api_key_env})"
            )

        # Disable proxy usage for OpenAI client (trust_env=False)
        client = AsyncOpenAI(
            api_key=api_key,
            http_client=httpx.AsyncClient(
                trust_env=False, timeout=self.config.timeout_seconds, transport=self.transport
            ),
        )
        try:
            response = await client.embeddings.create(
                model=self.config.model,
                input=texts,
                dimensions=self.dimension,
            )
        finally:
            await client.close()

        ordered = sorted(response.data, key=lambda d: d.index)
        return [list(d.embedding) for d in ordered]


def page_field_texts(fields: ExtractedFields) -> dict[str, str]:
    """Map extracted fields onto the weighted embedding fields."""
    return {
        "title": fields.title,
        "meta_description": fields.meta_description,
        "headings": " | ".join(fields.headings),
        "intro_text": " ".join(fields.intro_paragraphs),
        "keywords": fields.keywords,
        "body_summary": fields.body_text,
    }


def combine_vectors(vectors: list[list[float]], weights: list[float]) -> np.ndarray:
    """Weighted sum with weights renormalized to 1, scaled to unit length."""
    matrix = np.asarray(vectors, dtype=float)
    w = np.asarray(weights, dtype=float)
    total = w.sum()
    if total > 0:
        w = w / total
    combined = w @ matrix
    norm = np.linalg.norm(combined)
    return combined / norm if norm > 0 else combined


class EmbeddingComposer:
    """
    Builds the combined page embedding.

    Empty fields are dropped, the rest are embedded in one batched call and
    averaged with their importance weights. With no surviving field the
    result is the zero vector of the service dimension.
    """

    def __init__(
        self,
        service: EmbeddingService,
        weights: Optional[dict[str, float]] = None,
    ):
        self.service = service
        self.weights = weights or FIELD_WEIGHTS

    async def compose(self, texts: dict[str, str]) -> EmbeddingResult:
        surviving = [
            (name, text)
            for name, text in texts.items()
            if name in self.weights and text and text.strip()
        ]
        if not surviving:
            return EmbeddingResult(combined_embedding=[0.0] * self.service.dimension)

        names = [name for name, _ in surviving]
        try:
            vectors = await self.service.embed([text for _, text in surviving])
        except EmbeddingGenerationError:
            raise
        except Exception as e:
            raise EmbeddingGenerationError(f"Failed to generate embedding: {e}") from e

        if vectors is None or len(vectors) != len(names):
            got = 0 if vectors is None else len(vectors)
            raise EmbeddingGenerationError(
                f"Embedding count mismatch: sent {len(names)} texts, got {got} vectors"
            )

        combined = combine_vectors(vectors, [self.weights[n] for n in names])
        logger.debug("Combined %d field embeddings (%s)", len(names), ", ".join(names))
        return EmbeddingResult(
            combined_embedding=combined.tolist(),
            field_embeddings={n: list(map(float, v)) for n, v in zip(names, vectors)},
        )

    async def compose_page(self, fields: ExtractedFields) -> EmbeddingResult:
        return await self.compose(page_field_texts(fields))
