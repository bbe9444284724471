"""Tests for source connectors against mocked HTTP responses."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from page_acquisition.config.loader import DiscoveryConfig
from page_acquisition.tools.connector_tool import (
    ArxivConnector,
    CommonCrawlConnector,
    CrossRefConnector,
    OpenAlexConnector,
    build_connectors,
)

CUTOFF = datetime(2024, 5, 1, tzinfo=timezone.utc)

ARXIV_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>cs updates on arXiv.org</title>
    <item>
      <title>Fresh Paper</title>
      <link>https://arxiv.org/abs/2405.00001</link>
      <pubDate>Thu, 02 May 2024 00:00:00 -0400</pubDate>
    </item>
    <item>
      <title>Old Paper</title>
      <link>https://arxiv.org/abs/2401.00001</link>
      <pubDate>Mon, 01 Jan 2024 00:00:00 -0500</pubDate>
    </item>
    <item>
      <title>No Date</title>
      <link>https://arxiv.org/abs/2405.00002</link>
    </item>
  </channel>
</rss>
"""


def transport_for(handler):
    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_arxiv_keeps_items_after_cutoff():
    def handler(request):
        return httpx.Response(200, text=ARXIV_RSS)

    connector = ArxivConnector(transport=transport_for(handler))
    result = await connector.collect(CUTOFF)

    assert not result.failed
    assert [(c.canonical_url, c.title, c.source) for c in result.candidates] == [
        ("https://arxiv.org/abs/2405.00001", "Fresh Paper", "arxiv")
    ]


@pytest.mark.asyncio
async def test_openalex_prefers_doi_then_landing_page():
    seen = {}

    def handler(request):
        seen["filter"] = request.url.params["filter"]
        return httpx.Response(
            200,
            json={
                "results": [
                    {"doi": "https://doi.org/10.1/a", "display_name": "A"},
                    {
                        "doi": None,
                        "display_name": "B",
                        "primary_location": {"landing_page_url": "https://x.edu/b?utm_source=oa"},
                    },
                    {"id": "https://openalex.org/W3", "display_name": "C"},
                ]
            },
        )

    result = await OpenAlexConnector(transport=transport_for(handler)).collect(CUTOFF)

    assert seen["filter"] == "from_publication_date:2024-05-01"
    assert [c.canonical_url for c in result.candidates] == [
        "https://doi.org/10.1/a",
        "https://x.edu/b",
        "https://openalex.org/W3",
    ]


@pytest.mark.asyncio
async def test_crossref_builds_doi_urls():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "message": {
                    "items": [
                        {"DOI": "10.5555/xyz", "title": ["Tide Models"]},
                        {"URL": "https://journal.example.org/article/9", "title": []},
                        {"title": ["No link"]},
                    ]
                }
            },
        )

    connector = CrossRefConnector(rows=10, mailto="ops@x.edu", transport=transport_for(handler))
    result = await connector.collect(CUTOFF)

    assert seen["params"]["filter"] == "from-pub-date:2024-05-01"
    assert seen["params"]["mailto"] == "ops@x.edu"
    assert [(c.canonical_url, c.title) for c in result.candidates] == [
        ("https://doi.org/10.5555/xyz", "Tide Models"),
        ("https://journal.example.org/article/9", None),
    ]


@pytest.mark.asyncio
async def test_commoncrawl_uses_latest_index_and_filters_by_capture_time():
    lines = [
        {"url": "https://x.edu/new.pdf", "timestamp": "20240510120000"},
        {"url": "https://x.edu/old.pdf", "timestamp": "20230101000000"},
        {"url": "https://y.edu/undated"},
    ]

    def handler(request):
        if request.url.path.endswith("collinfo.json"):
            return httpx.Response(200, json=[{"id": "CC-MAIN-2024-22"}, {"id": "CC-MAIN-2024-18"}])
        assert request.url.path == "/CC-MAIN-2024-22-index"
        assert request.url.params["url"] == "*.edu"
        return httpx.Response(200, text="\n".join(json.dumps(x) for x in lines) + "\nnot json\n")

    result = await CommonCrawlConnector(transport=transport_for(handler)).collect(CUTOFF)

    assert [c.canonical_url for c in result.candidates] == [
        "https://x.edu/new.pdf",
        "https://y.edu/undated",
    ]


@pytest.mark.asyncio
async def test_commoncrawl_without_index_reports_error():
    def handler(request):
        return httpx.Response(200, json=[])

    result = await CommonCrawlConnector(transport=transport_for(handler)).collect(CUTOFF)
    assert result.failed
    assert result.candidates == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(503, text="unavailable"),
        lambda request: httpx.Response(200, text="{not json"),
    ],
)
async def test_http_and_parse_errors_become_empty_results(handler):
    connector = OpenAlexConnector(transport=transport_for(handler))
    result = await connector.collect(CUTOFF)

    assert result.failed
    assert result.source == "openalex"
    assert result.candidates == []
    assert await connector.fetch(CUTOFF) == []


@pytest.mark.asyncio
async def test_transport_error_is_swallowed():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    result = await CrossRefConnector(transport=transport_for(handler)).collect(CUTOFF)
    assert result.failed
    assert "ConnectTimeout" in result.error


def test_build_connectors_follows_config_order():
    config = DiscoveryConfig(enabled_connectors=["crossref", "unknown", "arxiv"])
    assert [c.source for c in build_connectors(config)] == ["crossref", "arxiv"]
