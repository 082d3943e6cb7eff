"""
Popular Highlights Service Module

Read path for the popular_highlights table, a derived view written only by
the highlight aggregator and read by everyone else.

Schema:
    popular_highlights (
        book_type TEXT NOT NULL,
        book_id INTEGER NOT NULL,
        text_hash TEXT NOT NULL,
        text TEXT NOT NULL,                  -- representative (first-seen) text
        chapter_index INTEGER,               -- anchor of the earliest occurrence
        paragraph_index INTEGER,
        highlighter_count INTEGER NOT NULL,  -- distinct users at last aggregation
        last_highlighter_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (book_type, book_id, text_hash)
    )
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any

from ..models.annotations import BookType, PopularHighlight
from .base_database_service import BaseDatabaseService
from .catalog_service import resolve_book_type
from .errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


def ensure_popular_highlights_table(conn: sqlite3.Connection) -> None:
    """Create the popular_highlights table and its ranking index if missing."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS popular_highlights (
            book_type TEXT NOT NULL CHECK (book_type IN ('ebook', 'magazine')),
            book_id INTEGER NOT NULL,
            text_hash TEXT NOT NULL,
            text TEXT NOT NULL,
            chapter_index INTEGER,
            paragraph_index INTEGER,
            highlighter_count INTEGER NOT NULL CHECK (highlighter_count >= 1),
            last_highlighter_id TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (book_type, book_id, text_hash)
        )
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_popular_highlights_rank
        ON popular_highlights(book_type, book_id, highlighter_count DESC, updated_at DESC)
        """
    )


class PopularHighlightsService(BaseDatabaseService):
    """Ranked, deduplicated popular highlights per book."""

    def __init__(self, db_path: str = "data/readmark.db", limit_max: int = 100, **kwargs):
        super().__init__(db_path, **kwargs)
        self.limit_max = limit_max
        with self.get_connection() as conn:
            ensure_popular_highlights_table(conn)

    def _row_to_highlight(self, row: sqlite3.Row) -> PopularHighlight:
        data = dict(row)
        data["created_at"] = self.format_timestamp_iso(data["created_at"])
        data["updated_at"] = self.format_timestamp_iso(data["updated_at"])
        return PopularHighlight(**data)

    def list(
        self,
        book_type: BookType,
        book_id: int,
        limit: int = DEFAULT_LIMIT,
        chapter_index: int | None = None,
    ) -> list[PopularHighlight]:
        """
        Popular highlights of a book, most shared first.

        Ties are broken by most recent reinforcement, then by hash, so the
        order is fully deterministic.

        Raises:
            ValidationError: if limit is outside 1..limit_max
        """
        if limit < 1 or limit > self.limit_max:
            raise ValidationError(f"limit must be between 1 and {self.limit_max}")
        book_type = resolve_book_type(book_type)

        query = "SELECT * FROM popular_highlights WHERE book_type = ? AND book_id = ?"
        params: list[Any] = [book_type.value, book_id]
        if chapter_index is not None:
            query += " AND chapter_index = ?"
            params.append(chapter_index)
        query += (
            " ORDER BY highlighter_count DESC, updated_at DESC, text_hash ASC LIMIT ?"
        )
        params.append(limit)

        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_highlight(row) for row in rows]

    def books_with_highlights(self) -> list[tuple[BookType, int]]:
        """Books that currently have materialized popular highlights."""
        with self.get_connection() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT book_type, book_id FROM popular_highlights
                ORDER BY book_type, book_id
                """
            ).fetchall()
        return [(BookType(row["book_type"]), row["book_id"]) for row in rows]
