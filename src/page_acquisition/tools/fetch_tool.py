"""Fetch tool - retrieve documents and probe liveness over HTTP."""

from dataclasses import dataclass
from typing import Optional

import httpx


@dataclass
class FetchResult:
    """Outcome of one document GET; ``error`` is set instead of raising."""

    final_url: str
    http_status: int
    content_type: str
    html: str
    error: str | None = None
    content: bytes = b""


def build_client(
    timeout: float | httpx.Timeout,
    user_agent: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    limits: Optional[httpx.Limits] = None,
) -> httpx.AsyncClient:
    """Shared client settings: no proxies from env, redirects followed."""
    options = {"limits": limits} if limits is not None else {}
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        trust_env=False,
        headers={"User-Agent": user_agent},
        transport=transport,
        **options,
    )


async def fetch_tool(url: str, client: httpx.AsyncClient) -> FetchResult:
    """
    Fetch a document with GET.
    Returns final_url, http_status, content_type, html, error and the raw bytes.
    """
    try:
        response = await client.get(url)
        return FetchResult(
            final_url=str(response.url),
            http_status=response.status_code,
            content_type=response.headers.get("content-type", "application/octet-stream"),
            html=response.text,
            error=None,
            content=response.content,
        )
    except httpx.HTTPError as e:
        return FetchResult(
            final_url=url,
            http_status=0,
            content_type="",
            html="",
            error=f"{type(e).__name__}: {e}",
        )
