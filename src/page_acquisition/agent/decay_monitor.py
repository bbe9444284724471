"""Decay monitor - re-check stored pages and flag the ones that are gone."""

import asyncio
import logging
from typing import Optional

import httpx

from ..config.loader import MonitorConfig
from ..models.page_record import Page
from ..models.reports import DecayCheckReport, ProbeResult
from ..tools.fetch_tool import build_client
from ..tools.storage_tool import PageStore

logger = logging.getLogger(__name__)

# Errors that mean the server refused the request shape, not that it is down
HEAD_REJECTED_ERRORS = (httpx.LocalProtocolError, httpx.RemoteProtocolError)

# Each probe gets its own connection; waiting for a pool slot never times out
PROBE_LIMITS = httpx.Limits(max_connections=None, max_keepalive_connections=None)


async def probe_url(url: str, client: httpx.AsyncClient) -> ProbeResult:
    """
    HEAD the URL, falling back to GET on 405 or a protocol-level rejection.
    Status >= 400 is decayed. Any error of the request itself (timeout, DNS,
    refused) is also decayed; transient and permanent failures are not told
    apart. A PoolTimeout means the request was never sent, so the page is
    left alive.
    """
    method = "HEAD"
    try:
        try:
            response = await client.head(url)
            if response.status_code == 405:
                method = "GET"
                response = await client.get(url)
        except HEAD_REJECTED_ERRORS:
            method = "GET"
            response = await client.get(url)
    except httpx.PoolTimeout as e:
        return ProbeResult(
            url=url, is_decayed=False, method=method, error=f"not sent: {type(e).__name__}: {e}"
        )
    except Exception as e:
        return ProbeResult(
            url=url, is_decayed=True, method=method, error=f"{type(e).__name__}: {e}"
        )

    return ProbeResult(
        url=url,
        is_decayed=response.status_code >= 400,
        status=response.status_code,
        method=method,
    )


class DecayMonitor:
    """Probes every non-decayed page concurrently and flips the dead ones."""

    def __init__(
        self,
        store: PageStore,
        config: Optional[MonitorConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.config = config or MonitorConfig()
        self.transport = transport

    async def run(self) -> DecayCheckReport:
        logger.info("Starting decay monitor check...")
        pages = await self.store.list_active_pages()
        logger.info("Found %d active pages to check.", len(pages))
        report = DecayCheckReport(checked=len(pages))
        if not pages:
            return report

        timeout = httpx.Timeout(self.config.probe_timeout_seconds, pool=None)
        async with build_client(
            timeout, self.config.user_agent, self.transport, limits=PROBE_LIMITS
        ) as client:
            results = await asyncio.gather(*(probe_url(p.url, client) for p in pages))

        for page, result in zip(pages, results):
            self._log_result(result)
            if not result.is_decayed:
                continue
            report.decayed += 1
            if not await self._flip(page):
                report.update_failures += 1

        logger.info(
            "Decay monitor check completed: %d checked, %d decayed, %d update failures.",
            report.checked,
            report.decayed,
            report.update_failures,
        )
        return report

    def _log_result(self, result: ProbeResult) -> None:
        logger.info(
            "Checked %s: %s%s%s",
            result.url,
            "Decayed" if result.is_decayed else "Alive",
            f" (Status: {result.status})" if result.status else "",
            f" (Error: {result.error})" if result.error else "",
        )

    async def _flip(self, page: Page) -> bool:
        try:
            await self.store.mark_page_decayed(page.id)
        except Exception as e:
            logger.error("Failed to mark %s as decayed: %s", page.url, e)
            return False
        logger.info("Marked %s as decayed.", page.url)
        return True
