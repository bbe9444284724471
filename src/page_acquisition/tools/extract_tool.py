"""Extract tool - build structured page fields from HTML."""

import io
import logging
import re
from collections import Counter
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlsplit

import httpx
from bs4 import BeautifulSoup
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ..config.loader import ExtractionConfig
from ..errors import ExtractionError
from ..models.page_record import ExtractedFields, ExtractionResult
from .fetch_tool import build_client, fetch_tool

logger = logging.getLogger(__name__)

STRIP_TAGS = ["script", "style", "noscript", "iframe", "footer", "nav", "header"]
DATE_META = [
    ("name", "date"),
    ("property", "article:published_time"),
    ("name", "publication_date"),
]
AUTHOR_META = [("name", "author"), ("property", "article:author"), ("name", "byline")]
STOP_WORDS = frozenset(
    {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}
)
MAX_PDF_PAGES = 60

# Client errors worth another attempt
RETRYABLE_CLIENT_STATUSES = {408, 425, 429}


def extract_keywords(text: str, limit: int = 10) -> str:
    """Most frequent words longer than 3 characters, comma-separated."""
    words = re.findall(r"\b\w+\b", text.lower())
    freq = Counter(w for w in words if w not in STOP_WORDS and len(w) > 3)
    return ", ".join(w for w, _ in freq.most_common(limit))


def _meta_content(soup: BeautifulSoup, candidates: list[tuple[str, str]]) -> Optional[str]:
    for attr, value in candidates:
        tag = soup.find("meta", attrs={attr: value})
        if tag and tag.get("content"):
            return tag["content"].strip()
    return None


def parse_document(url: str, html: str, max_body_chars: int = 10000) -> ExtractionResult:
    """
    Parse HTML into title, meta description, headings, intro paragraphs,
    keywords and body text. Body text longer than ``max_body_chars`` is cut
    and flagged as truncated.
    """
    soup = BeautifulSoup(html, "lxml")

    # Meta tags first; the strip below removes <header> which may hold them
    date = _meta_content(soup, DATE_META)
    author = _meta_content(soup, AUTHOR_META)
    meta_description = _meta_content(soup, [("name", "description")]) or ""
    meta_keywords = _meta_content(soup, [("name", "keywords")]) or ""

    for tag in soup.find_all(STRIP_TAGS):
        tag.decompose()

    title = soup.title.get_text(strip=True) if soup.title else ""
    if not title:
        h1 = soup.find("h1")
        title = h1.get_text(strip=True) if h1 else ""
    title = title or "Untitled"

    headings = [h.get_text(" ", strip=True) for h in soup.find_all(["h1", "h2", "h3"])]
    headings = [h for h in headings if h]
    intro = [p.get_text(" ", strip=True) for p in soup.find_all("p")[:2]]
    intro = [p for p in intro if p]

    keywords = meta_keywords or extract_keywords(
        " ".join([title, meta_description, " ".join(headings), " ".join(intro)])
    )

    containers = [
        c for c in soup.find_all(["article", "main"]) if not c.find_parent(["article", "main"])
    ] or [soup.body or soup]
    body = " ".join(c.get_text(" ", strip=True) for c in containers)
    body = re.sub(r"\s+", " ", body).strip()
    truncated = len(body) > max_body_chars
    if truncated:
        body = body[:max_body_chars]

    return ExtractionResult(
        url=url,
        fields=ExtractedFields(
            title=title,
            meta_description=meta_description,
            headings=headings,
            intro_paragraphs=intro,
            keywords=keywords,
            body_text=body,
        ),
        date=date,
        author=author,
        truncated=truncated,
    )


def _pdf_info(reader: PdfReader) -> tuple[str, str, Optional[str], Optional[str]]:
    """Title, subject, author and creation date from the document info dict."""
    info = reader.metadata
    if info is None:
        return "", "", None, None
    try:
        created = info.creation_date
    except (ValueError, TypeError):
        created = None
    return (
        (info.title or "").strip(),
        (info.subject or "").strip(),
        (info.author or "").strip() or None,
        created.isoformat() if created else None,
    )


def parse_pdf(url: str, data: bytes, max_body_chars: int = 10000) -> ExtractionResult:
    """
    Text of the first pages of a PDF mapped onto the same fields as HTML.
    Title comes from the info dict, else the first text line, else the file
    name. Intro is the next two lines. An unreadable PDF is not retryable.
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        texts = [page.extract_text() or "" for page in reader.pages[:MAX_PDF_PAGES]]
        title, subject, author, date = _pdf_info(reader)
    except (PyPdfError, ValueError, KeyError) as e:
        raise ExtractionError(f"Unreadable PDF at {url}: {e}", retryable=False) from e

    lines = [line.strip() for text in texts for line in text.splitlines() if line.strip()]
    if not title and lines:
        title = lines[0]
    title = title or PurePosixPath(urlsplit(url).path).name or "Untitled"
    intro = [line for line in lines if line != title][:2]

    body = re.sub(r"\s+", " ", " ".join(texts)).strip()
    truncated = len(body) > max_body_chars
    if truncated:
        body = body[:max_body_chars]

    return ExtractionResult(
        url=url,
        fields=ExtractedFields(
            title=title,
            meta_description=subject,
            intro_paragraphs=intro,
            keywords=extract_keywords(" ".join([title, subject, body])),
            body_text=body,
        ),
        date=date,
        author=author,
        truncated=truncated,
    )


def is_pdf(content_type: str, data: bytes) -> bool:
    return "pdf" in content_type.lower() or data.startswith(b"%PDF")


class Extractor:
    """
    Fetches a URL and parses it. PDFs go through the PDF reader; any other
    body is parsed as markup. Raises ExtractionError on any failure.
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or ExtractionConfig()
        self.transport = transport

    async def extract(self, url: str) -> ExtractionResult:
        async with build_client(
            self.config.timeout_seconds, self.config.user_agent, self.transport
        ) as client:
            fetched = await fetch_tool(url, client)

        if fetched.error:
            raise ExtractionError(f"Failed to fetch {url}: {fetched.error}")
        status = fetched.http_status
        if not 200 <= status < 300:
            retryable = status >= 500 or status in RETRYABLE_CLIENT_STATUSES
            raise ExtractionError(f"Failed to fetch {url}: HTTP {status}", retryable=retryable)

        if is_pdf(fetched.content_type, fetched.content):
            result = parse_pdf(url, fetched.content, self.config.max_body_chars)
        else:
            result = parse_document(url, fetched.html, self.config.max_body_chars)
        logger.debug(
            "Extracted %s: %d body chars%s",
            url,
            len(result.fields.body_text),
            " (truncated)" if result.truncated else "",
        )
        return result.model_copy(
            update={"final_url": fetched.final_url, "http_status": fetched.http_status}
        )
