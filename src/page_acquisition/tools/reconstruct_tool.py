"""Reconstruct tool - human-readable page summary from its embedding."""

import logging
import os
import time
from typing import Any, Optional, Protocol

import httpx
from openai import AsyncOpenAI

from ..config.loader import SummaryProviderConfig
from ..errors import ReconstructionError

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """Generate a concise, human-readable summary (100-200 words) of the content represented by this embedding vector.
The embedding represents a webpage's main content. Focus on capturing the semantic essence in clear, natural language.
Do not include specific details that cannot be inferred from the embedding or provided metadata.
Embedding dimension: {dimension}. Leading components: {head}
"""

METADATA_TEMPLATE = """
Additional context from page metadata:
- Title: {title}
- Meta Description: {meta_description}
- Headings: {headings}
- Intro Paragraphs: {intro}
- Keywords: {keywords}
"""


class SummaryService(Protocol):
    async def summarize(
        self, vector: list[float], metadata: Optional[dict[str, Any]] = None
    ) -> str: ...


def build_prompt(vector: list[float], metadata: Optional[dict[str, Any]] = None) -> str:
    head = ", ".join(f"{v:.4f}" for v in vector[:8])
    prompt = PROMPT_TEMPLATE.format(dimension=len(vector), head=head)
    if metadata:
        prompt += METADATA_TEMPLATE.format(
            title=metadata.get("title") or "N/A",
            meta_description=metadata.get("meta_description") or "N/A",
            headings=metadata.get("headings") or "N/A",
            intro=metadata.get("intro") or "N/A",
            keywords=metadata.get("keywords") or "N/A",
        )
    return prompt


def fallback_summary(metadata: Optional[dict[str, Any]]) -> str:
    """Summary assembled from stored metadata when no model is available."""
    if not metadata:
        return "No summary generated"
    parts = [metadata.get("title"), metadata.get("meta_description"), metadata.get("intro")]
    text = " ".join(p for p in parts if p)
    return text[:400].strip() or "No summary generated"


class OpenAISummaryService:
    """Summary service backed by OpenAI chat completions."""

    def __init__(self, config: Optional[SummaryProviderConfig] = None):
        self.config = config or SummaryProviderConfig()

    async def summarize(
        self, vector: list[float], metadata: Optional[dict[str, Any]] = None
    ) -> str:
        api_key = os.environ.get(self.config.api_key_env, "")
        if not api_key:
            logger.warning("No summary API key configured; using stored metadata")
            return fallback_summary(metadata)

        client = AsyncOpenAI(
            api_key=api_key,
            http_client=httpx.AsyncClient(trust_env=False, timeout=60.0),
        )
        try:
            start_time = time.time()
            response = await client.chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": build_prompt(vector, metadata)}],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
            logger.info("Summary generated in %.2fs", time.time() - start_time)
        except Exception as e:
            raise ReconstructionError(f"Summary request failed: {e}") from e
        finally:
            await client.close()

        content = response.choices[0].message.content
        return (content or "").strip() or "No summary generated"
