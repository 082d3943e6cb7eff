"""
Underline Service Module

This module provides database operations for user underlines: durable
paragraph-relative text ranges with an optional free-text "idea" note.

Schema:
    underlines (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        book_type TEXT NOT NULL,             -- 'ebook' | 'magazine'
        book_id INTEGER NOT NULL,
        chapter_index INTEGER,               -- copied from the catalog when known
        paragraph_index INTEGER NOT NULL,
        start_offset INTEGER NOT NULL,       -- half-open [start_offset, end_offset)
        end_offset INTEGER NOT NULL,
        text TEXT NOT NULL,                  -- exact selected substring
        text_hash TEXT NOT NULL,             -- hash of the normalized text
        idea TEXT,
        idea_updated_at TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (user_id, book_type, book_id, paragraph_index, start_offset, end_offset)
    )

Every public method runs in its own transaction. Underlines are readable by
everyone (social visibility) but only their owner may change or delete them.
"""

import logging
import sqlite3
from typing import Any

from ..models.annotations import (
    IDEA_MAX_LENGTH,
    BookType,
    Underline,
    UserAnnotationStats,
)
from .base_database_service import BaseDatabaseService
from .catalog_service import BookCatalogService, resolve_book_type, storage_key
from .errors import ForbiddenError, NotFoundError, ValidationError
from .text_normalizer import hash_selection

# Configure logger for this module
logger = logging.getLogger(__name__)


class UnderlineService(BaseDatabaseService):
    """
    Service class for managing underlines using SQLite.

    When a catalog is supplied and knows the book, offsets and text are checked
    against the stored paragraph; otherwise only structural checks apply.
    """

    def __init__(
        self,
        db_path: str = "data/readmark.db",
        catalog: BookCatalogService | None = None,
        **kwargs,
    ):
        """
        Initialize the underline service.

        Args:
            db_path (str): Path to the SQLite database file
            catalog: Optional paragraph catalog used for content validation
        """
        super().__init__(db_path, **kwargs)
        self.catalog = catalog
        self._init_table()

    def _init_table(self) -> None:
        """Ensure the underlines table & indexes exist."""
        with self.get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS underlines (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    book_type TEXT NOT NULL CHECK (book_type IN ('ebook', 'magazine')),
                    book_id INTEGER NOT NULL,
                    chapter_index INTEGER,
                    paragraph_index INTEGER NOT NULL CHECK (paragraph_index >= 0),
                    start_offset INTEGER NOT NULL CHECK (start_offset >= 0),
                    end_offset INTEGER NOT NULL,
                    text TEXT NOT NULL,
                    text_hash TEXT NOT NULL,
                    idea TEXT,
                    idea_updated_at TEXT,
                    created_at TEXT NOT NULL,
                    CHECK (start_offset < end_offset),
                    UNIQUE (user_id, book_type, book_id, paragraph_index, start_offset, end_offset)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_underlines_paragraph
                ON underlines(book_type, book_id, paragraph_index, start_offset)
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_underlines_book_hash
                ON underlines(book_type, book_id, text_hash)
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_underlines_user
                ON underlines(user_id)
                """
            )

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------

    def _row_to_underline(self, row: sqlite3.Row) -> Underline:
        data = dict(row)
        data["created_at"] = self.format_timestamp_iso(data["created_at"])
        data["idea_updated_at"] = self.format_timestamp_iso(data["idea_updated_at"])
        return Underline(**data)

    def _validate_range(
        self,
        book_type: BookType,
        book_id: int,
        paragraph_index: int,
        start_offset: int,
        end_offset: int,
        text: str,
    ) -> int | None:
        """
        Check a proposed range and return the paragraph's chapter index if known.

        Raises:
            ValidationError: if any offset/text invariant is violated
        """
        if paragraph_index < 0:
            raise ValidationError("paragraph_index must be >= 0")
        if start_offset < 0:
            raise ValidationError("start_offset must be >= 0")
        if start_offset >= end_offset:
            raise ValidationError(
                f"start_offset ({start_offset}) must be less than end_offset ({end_offset})"
            )
        if not text or not text.strip():
            raise ValidationError("text must not be empty")
        if len(text) != end_offset - start_offset:
            raise ValidationError(
                f"text length {len(text)} does not match range length {end_offset - start_offset}"
            )

        if self.catalog is None or not self.catalog.has_book(book_type, book_id):
            return None

        row = self.catalog.get_paragraph_row(book_type, book_id, paragraph_index)
        if row is None:
            raise ValidationError(
                f"paragraph_index {paragraph_index} is out of range for "
                f"{storage_key(book_type, book_id)}"
            )
        paragraph = row["text"]
        if end_offset > len(paragraph):
            raise ValidationError(
                f"end_offset ({end_offset}) exceeds paragraph length ({len(paragraph)})"
            )
        if paragraph[start_offset:end_offset] != text:
            raise ValidationError("text does not match the paragraph at the given offsets")
        return row["chapter_index"]

    # ---------------------------------------------------------------------
    # CRUD
    # ---------------------------------------------------------------------

    def create_or_get(
        self,
        user_id: str,
        book_type: BookType,
        book_id: int,
        paragraph_index: int,
        start_offset: int,
        end_offset: int,
        text: str,
    ) -> tuple[Underline, bool]:
        """
        Persist a new underline, or return the caller's existing one for the same range.

        Returns:
            (underline, created): created is False when the range already existed
        """
        book_type = resolve_book_type(book_type)
        chapter_index = self._validate_range(
            book_type, book_id, paragraph_index, start_offset, end_offset, text
        )
        text_hash = hash_selection(text)

        with self.get_connection() as conn:
            inserted_rows = conn.execute(
                """
                INSERT INTO underlines (
                    user_id, book_type, book_id, chapter_index, paragraph_index,
                    start_offset, end_offset, text, text_hash, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, book_type, book_id, paragraph_index, start_offset, end_offset)
                DO NOTHING
                RETURNING *
                """,
                (
                    user_id,
                    book_type.value,
                    book_id,
                    chapter_index,
                    paragraph_index,
                    start_offset,
                    end_offset,
                    text,
                    text_hash,
                    self.get_current_timestamp(),
                ),
            ).fetchall()
            inserted = inserted_rows[0] if inserted_rows else None

            if inserted is not None:
                logger.info(
                    "Saved underline %s for user %s on %s paragraph=%s [%s-%s]",
                    inserted["id"],
                    user_id,
                    storage_key(book_type, book_id),
                    paragraph_index,
                    start_offset,
                    end_offset,
                )
                return self._row_to_underline(inserted), True

            existing = conn.execute(
                """
                SELECT * FROM underlines
                WHERE user_id = ? AND book_type = ? AND book_id = ?
                  AND paragraph_index = ? AND start_offset = ? AND end_offset = ?
                """,
                (
                    user_id,
                    book_type.value,
                    book_id,
                    paragraph_index,
                    start_offset,
                    end_offset,
                ),
            ).fetchone()

        logger.info(
            "Duplicate underline submit for user %s resolved to existing id %s",
            user_id,
            existing["id"],
        )
        return self._row_to_underline(existing), False

    def create(
        self,
        user_id: str,
        book_type: BookType,
        book_id: int,
        paragraph_index: int,
        start_offset: int,
        end_offset: int,
        text: str,
    ) -> Underline:
        """Create an underline; a duplicate range for the same user returns the existing row."""
        underline, _ = self.create_or_get(
            user_id, book_type, book_id, paragraph_index, start_offset, end_offset, text
        )
        return underline

    def get(self, underline_id: int) -> Underline:
        """
        Retrieve a single underline by primary key.

        Raises:
            NotFoundError: if no such underline exists
        """
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM underlines WHERE id = ?", (underline_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Underline {underline_id} not found")
        return self._row_to_underline(row)

    def attach_idea(self, underline_id: int, user_id: str, idea: str | None) -> Underline:
        """
        Attach, replace or clear the idea note of the caller's underline.

        A blank idea clears the note. There is no history: last write wins.

        Raises:
            NotFoundError: if the caller owns no underline with this id
            ValidationError: if the idea exceeds the maximum length
        """
        if idea is not None and len(idea) > IDEA_MAX_LENGTH:
            raise ValidationError(f"idea must be at most {IDEA_MAX_LENGTH} characters")
        cleaned = idea.strip() if idea else None
        if not cleaned:
            cleaned = None

        with self.get_connection() as conn:
            rows = conn.execute(
                """
                UPDATE underlines
                SET idea = ?, idea_updated_at = ?
                WHERE id = ? AND user_id = ?
                RETURNING *
                """,
                (
                    cleaned,
                    self.get_current_timestamp() if cleaned else None,
                    underline_id,
                    user_id,
                ),
            ).fetchall()

        if not rows:
            raise NotFoundError(f"Underline {underline_id} not found")
        logger.info(
            "%s idea on underline %s", "Updated" if cleaned else "Cleared", underline_id
        )
        return self._row_to_underline(rows[0])

    def delete(self, underline_id: int, user_id: str) -> bool:
        """
        Delete the caller's underline.

        Deleting an id that does not exist is not an error.

        Returns:
            bool: True if a row was removed

        Raises:
            ForbiddenError: if the underline belongs to another user
        """
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT user_id FROM underlines WHERE id = ?", (underline_id,)
            ).fetchone()
            if row is None:
                logger.debug(f"Delete of missing underline {underline_id} ignored")
                return False
            if row["user_id"] != user_id:
                raise ForbiddenError(
                    f"Underline {underline_id} belongs to another user"
                )
            conn.execute(
                "DELETE FROM underlines WHERE id = ? AND user_id = ?",
                (underline_id, user_id),
            )
        logger.info(f"Deleted underline {underline_id} for user {user_id}")
        return True

    # ---------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------

    def list_for_paragraph(
        self, book_type: BookType, book_id: int, paragraph_index: int
    ) -> list[Underline]:
        """All users' underlines in one paragraph, by start offset then creation time."""
        book_type = resolve_book_type(book_type)
        with self.get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM underlines
                WHERE book_type = ? AND book_id = ? AND paragraph_index = ?
                ORDER BY start_offset ASC, created_at ASC, id ASC
                """,
                (book_type.value, book_id, paragraph_index),
            ).fetchall()
        return [self._row_to_underline(row) for row in rows]

    def list_for_book(
        self,
        book_type: BookType,
        book_id: int,
        chapter_index: int | None = None,
    ) -> list[Underline]:
        """All users' underlines in a book, optionally limited to one chapter."""
        book_type = resolve_book_type(book_type)
        query = "SELECT * FROM underlines WHERE book_type = ? AND book_id = ?"
        params: list[Any] = [book_type.value, book_id]
        if chapter_index is not None:
            query += " AND chapter_index = ?"
            params.append(chapter_index)
        query += " ORDER BY paragraph_index ASC, start_offset ASC, created_at ASC, id ASC"

        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_underline(row) for row in rows]

    def list_for_user(
        self,
        user_id: str,
        book_type: BookType | None = None,
        book_id: int | None = None,
    ) -> list[Underline]:
        """A user's own underlines, newest first."""
        query = "SELECT * FROM underlines WHERE user_id = ?"
        params: list[Any] = [user_id]
        if book_type is not None:
            query += " AND book_type = ?"
            params.append(resolve_book_type(book_type).value)
        if book_id is not None:
            query += " AND book_id = ?"
            params.append(book_id)
        query += " ORDER BY created_at DESC, id DESC"

        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_underline(row) for row in rows]

    def user_stats(self, user_id: str) -> UserAnnotationStats:
        """Count a user's underlines and how many of them carry an idea."""
        with self.get_connection() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS underlines,
                    COUNT(idea) AS ideas
                FROM underlines
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        return UserAnnotationStats(
            user_id=user_id, underlines=row["underlines"], ideas=row["ideas"]
        )

    def books_with_underlines(self) -> list[tuple[BookType, int]]:
        """Distinct books that currently have at least one underline."""
        with self.get_connection() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT book_type, book_id FROM underlines
                ORDER BY book_type, book_id
                """
            ).fetchall()
        return [(BookType(row["book_type"]), row["book_id"]) for row in rows]
