"""Storage tool - persist pages, embeddings and pending items in SQLite."""

import asyncio
import json
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from ..errors import ItemNotFoundError, StorageError
from ..models.page_record import Page, Reconstruction
from ..models.pending_item import ACTIVE_STATES, PendingItem, PendingStatus, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS pages (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    title TEXT,
    fields TEXT,
    date TEXT,
    author TEXT,
    source TEXT,
    decay_probability REAL,
    is_decayed INTEGER NOT NULL DEFAULT 0,
    combined_embedding TEXT,
    field_embeddings TEXT,
    hints TEXT,
    metadata TEXT,
    created_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_pages_url ON pages (url);
CREATE TABLE IF NOT EXISTS embeddings (
    id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL,
    embedding TEXT,
    created_at TEXT
);
CREATE TABLE IF NOT EXISTS pending_items (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    source TEXT,
    priority REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'pending',
    metadata TEXT,
    added_at TEXT,
    last_attempted_at TEXT,
    attempts INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_pending_url ON pending_items (url);
CREATE INDEX IF NOT EXISTS idx_pending_status ON pending_items (status, priority);
CREATE TABLE IF NOT EXISTS reconstructions (
    id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL,
    reconstruction TEXT,
    created_at TEXT
);
CREATE TABLE IF NOT EXISTS system_logs (
    id TEXT PRIMARY KEY,
    level TEXT NOT NULL,
    message TEXT,
    metadata TEXT,
    created_at TEXT
);
"""


def _new_id() -> str:
    return uuid.uuid4().hex


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _row_to_pending(row: sqlite3.Row) -> PendingItem:
    return PendingItem(
        id=row["id"],
        url=row["url"],
        source=row["source"] or "discovery",
        priority=row["priority"],
        status=PendingStatus(row["status"]),
        metadata=json.loads(row["metadata"] or "{}"),
        added_at=row["added_at"],
        last_attempted_at=row["last_attempted_at"],
        attempts=row["attempts"],
    )


def _row_to_page(row: sqlite3.Row) -> Page:
    return Page(
        id=row["id"],
        url=row["url"],
        title=row["title"] or "",
        fields=json.loads(row["fields"] or "{}"),
        date=row["date"],
        author=row["author"],
        source=row["source"] or "discovery",
        decay_probability=row["decay_probability"],
        is_decayed=bool(row["is_decayed"]),
        combined_embedding=json.loads(row["combined_embedding"] or "[]"),
        field_embeddings=json.loads(row["field_embeddings"] or "{}"),
        hints=json.loads(row["hints"] or "[]"),
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=row["created_at"],
    )


class PageStore:
    """
    SQLite-backed store for pages, embeddings and the pending queue.
    Each call opens its own connection and runs in a worker thread, so
    callers await every query. No call spans more than one transaction.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.init_schema()

    def init_schema(self) -> None:
        """Create tables if missing. Runs synchronously at construction."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()
        logger.debug("Storage ready at %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise StorageError(f"{fn.__name__} failed: {e}") from e

    def _execute(self, sql: str, params: tuple = ()) -> int:
        conn = self._connect()
        try:
            cur = conn.execute(sql, params)
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(sql, params).fetchone()
        finally:
            conn.close()

    # Pending items

    async def add_pending(
        self,
        url: str,
        source: str = "discovery",
        priority: float = 0.0,
        metadata: Optional[dict[str, Any]] = None,
    ) -> PendingItem:
        item = PendingItem(
            id=_new_id(),
            url=url,
            source=source,
            priority=priority,
            metadata=metadata or {},
        )
        await self._run(
            self._execute,
            """
            INSERT INTO pending_items
            (id, url, source, priority, status, metadata, added_at, last_attempted_at, attempts)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.url,
                item.source,
                item.priority,
                item.status.value,
                json.dumps(item.metadata, ensure_ascii=False),
                _iso(item.added_at),
                None,
                0,
            ),
        )
        return item

    async def get_pending(self, item_id: str) -> Optional[PendingItem]:
        row = await self._run(
            self._fetchone, "SELECT * FROM pending_items WHERE id = ?", (item_id,)
        )
        return _row_to_pending(row) if row else None

    async def find_active_pending(self, url: str) -> Optional[PendingItem]:
        """Pending or processing item for ``url``, if any."""
        statuses = tuple(s.value for s in ACTIVE_STATES)
        row = await self._run(
            self._fetchone,
            "SELECT * FROM pending_items WHERE url = ? AND status IN (?, ?) LIMIT 1",
            (url, *statuses),
        )
        return _row_to_pending(row) if row else None

    async def get_pending_batch(self, batch_size: int = 20) -> list[PendingItem]:
        """Items still pending, highest priority first, oldest first within a priority."""
        rows = await self._run(
            self._fetchall,
            """
            SELECT * FROM pending_items WHERE status = ?
            ORDER BY priority DESC, added_at ASC LIMIT ?
            """,
            (PendingStatus.PENDING.value, batch_size),
        )
        return [_row_to_pending(r) for r in rows]

    async def update_pending(self, item: PendingItem) -> None:
        """Write status, metadata and attempt bookkeeping for ``item``."""
        updated = await self._run(
            self._execute,
            """
            UPDATE pending_items
            SET status = ?, metadata = ?, last_attempted_at = ?, attempts = ?
            WHERE id = ?
            """,
            (
                item.status.value,
                json.dumps(item.metadata, ensure_ascii=False),
                _iso(item.last_attempted_at),
                item.attempts,
                item.id,
            ),
        )
        if not updated:
            raise ItemNotFoundError(f"Pending item not found: {item.id}")

    async def count_pending_by_status(self) -> dict[str, int]:
        rows = await self._run(
            self._fetchall,
            "SELECT status, COUNT(*) AS n FROM pending_items GROUP BY status",
        )
        return {r["status"]: r["n"] for r in rows}

    # Pages and embeddings

    async def insert_page(self, page: Page) -> Page:
        page = page.model_copy(update={"id": page.id or _new_id()})
        await self._run(
            self._execute,
            """
            INSERT INTO pages
            (id, url, title, fields, date, author, source, decay_probability, is_decayed,
             combined_embedding, field_embeddings, hints, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                page.id,
                page.url,
                page.title,
                page.fields.model_dump_json(),
                page.date,
                page.author,
                page.source,
                page.decay_probability,
                1 if page.is_decayed else 0,
                json.dumps(page.combined_embedding),
                json.dumps(page.field_embeddings),
                json.dumps(page.hints, ensure_ascii=False),
                json.dumps(page.metadata, ensure_ascii=False),
                _iso(page.created_at),
            ),
        )
        return page

    async def insert_embedding(self, page_id: str, embedding: list[float]) -> str:
        embedding_id = _new_id()
        await self._run(
            self._execute,
            "INSERT INTO embeddings (id, page_id, embedding, created_at) VALUES (?, ?, ?, ?)",
            (embedding_id, page_id, json.dumps(embedding), _iso(utcnow())),
        )
        return embedding_id

    async def save_page_with_embedding(self, page: Page) -> Page:
        """
        Insert the page, then its embedding row.
        The page insert is not rolled back if the embedding insert fails.
        """
        saved = await self.insert_page(page)
        try:
            await self.insert_embedding(saved.id, saved.combined_embedding)
        except StorageError as e:
            logger.error("Page %s saved without embedding row: %s", saved.url, e)
            raise StorageError(f"Failed to save embedding for {saved.url}: {e}") from e
        return saved

    async def get_page_by_url(self, url: str) -> Optional[Page]:
        """Non-decayed page stored under canonical ``url``."""
        row = await self._run(
            self._fetchone,
            "SELECT * FROM pages WHERE url = ? AND is_decayed = 0 LIMIT 1",
            (url,),
        )
        return _row_to_page(row) if row else None

    async def get_page_by_id(self, page_id: str) -> Optional[Page]:
        row = await self._run(self._fetchone, "SELECT * FROM pages WHERE id = ?", (page_id,))
        return _row_to_page(row) if row else None

    async def list_active_pages(self) -> list[Page]:
        rows = await self._run(self._fetchall, "SELECT * FROM pages WHERE is_decayed = 0")
        return [_row_to_page(r) for r in rows]

    async def mark_page_decayed(self, page_id: str) -> None:
        updated = await self._run(
            self._execute, "UPDATE pages SET is_decayed = 1 WHERE id = ?", (page_id,)
        )
        if not updated:
            raise ItemNotFoundError(f"Page not found: {page_id}")

    async def get_page_embedding(self, page_id: str) -> Optional[list[float]]:
        row = await self._run(
            self._fetchone,
            "SELECT embedding FROM embeddings WHERE page_id = ? ORDER BY created_at DESC LIMIT 1",
            (page_id,),
        )
        return json.loads(row["embedding"]) if row else None

    # Reconstructions and failure log

    async def save_reconstruction(self, page_id: str, text: str) -> Reconstruction:
        record = Reconstruction(id=_new_id(), page_id=page_id, text=text)
        await self._run(
            self._execute,
            "INSERT INTO reconstructions (id, page_id, reconstruction, created_at) VALUES (?, ?, ?, ?)",
            (record.id, page_id, text, _iso(record.created_at)),
        )
        return record

    async def log_failure(self, url: str, reason: str) -> None:
        await self._run(
            self._execute,
            "INSERT INTO system_logs (id, level, message, metadata, created_at) VALUES (?, ?, ?, ?, ?)",
            (
                _new_id(),
                "error",
                f"Failed scan {url}: {reason}",
                json.dumps({"url": url, "reason": reason}, ensure_ascii=False),
                _iso(utcnow()),
            ),
        )

    async def count_failures_since(self, since: datetime) -> int:
        row = await self._run(
            self._fetchone,
            "SELECT COUNT(*) AS n FROM system_logs WHERE level = 'error' AND created_at >= ?",
            (_iso(since),),
        )
        return row["n"] if row else 0
