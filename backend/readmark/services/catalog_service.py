"""
Book Catalog Service Module

Read-side adapter over the catalog's paragraph-indexed plain text. Import
scripts (outside this service) populate the book_paragraphs table; the
annotation services only read it to validate offsets and resolve chapter
anchors.

Schema:
    book_paragraphs (
        book_type TEXT NOT NULL,          -- 'ebook' | 'magazine'
        book_id INTEGER NOT NULL,
        paragraph_index INTEGER NOT NULL, -- position in the flattened paragraph sequence
        chapter_index INTEGER,            -- chapter (ebook) or page number (magazine)
        text TEXT NOT NULL,
        PRIMARY KEY (book_type, book_id, paragraph_index)
    )
"""

import logging
from collections.abc import Iterable
from typing import Any

from ..models.annotations import BookType
from .base_database_service import BaseDatabaseService
from .errors import ValidationError

logger = logging.getLogger(__name__)


def resolve_book_type(value: Any) -> BookType:
    """Coerce a raw value into a BookType, rejecting anything outside the closed set."""
    if isinstance(value, BookType):
        return value
    try:
        return BookType(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown book type: {value!r}") from None


def storage_key(book_type: BookType, book_id: int) -> str:
    """Stable key identifying one book across tables and logs."""
    match book_type:
        case BookType.EBOOK:
            prefix = "ebook"
        case BookType.MAGAZINE:
            prefix = "magazine"
        case _:
            raise ValidationError(f"Unknown book type: {book_type!r}")
    return f"{prefix}:{book_id}"


class BookCatalogService(BaseDatabaseService):
    """SQLite-backed paragraph registry for published books."""

    def __init__(self, db_path: str = "data/readmark.db", **kwargs):
        super().__init__(db_path, **kwargs)
        self._init_table()

    def _init_table(self) -> None:
        """Ensure the book_paragraphs table exists."""
        with self.get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS book_paragraphs (
                    book_type TEXT NOT NULL CHECK (book_type IN ('ebook', 'magazine')),
                    book_id INTEGER NOT NULL,
                    paragraph_index INTEGER NOT NULL CHECK (paragraph_index >= 0),
                    chapter_index INTEGER,
                    text TEXT NOT NULL,
                    PRIMARY KEY (book_type, book_id, paragraph_index)
                )
                """
            )

    def register_book(
        self,
        book_type: BookType,
        book_id: int,
        paragraphs: Iterable[str | tuple[int | None, str]],
    ) -> int:
        """
        Replace the stored paragraphs of a book.

        Args:
            book_type: Content kind
            book_id: Catalog identifier
            paragraphs: Either plain strings, or (chapter_index, text) pairs,
                        in reading order

        Returns:
            int: Number of paragraphs stored
        """
        book_type = resolve_book_type(book_type)
        rows = []
        for index, item in enumerate(paragraphs):
            if isinstance(item, tuple):
                chapter_index, text = item
            else:
                chapter_index, text = None, item
            rows.append((book_type.value, book_id, index, chapter_index, text))

        with self.get_connection() as conn:
            conn.execute(
                "DELETE FROM book_paragraphs WHERE book_type = ? AND book_id = ?",
                (book_type.value, book_id),
            )
            conn.executemany(
                """
                INSERT INTO book_paragraphs (
                    book_type, book_id, paragraph_index, chapter_index, text
                ) VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
        logger.info(
            f"Registered {len(rows)} paragraphs for {storage_key(book_type, book_id)}"
        )
        return len(rows)

    def has_book(self, book_type: BookType, book_id: int) -> bool:
        return self.paragraph_count(book_type, book_id) > 0

    def paragraph_count(self, book_type: BookType, book_id: int) -> int:
        book_type = resolve_book_type(book_type)
        with self.get_connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total FROM book_paragraphs
                WHERE book_type = ? AND book_id = ?
                """,
                (book_type.value, book_id),
            ).fetchone()
        return row["total"]

    def get_paragraph_row(
        self, book_type: BookType, book_id: int, paragraph_index: int
    ) -> dict[str, Any] | None:
        book_type = resolve_book_type(book_type)
        with self.get_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM book_paragraphs
                WHERE book_type = ? AND book_id = ? AND paragraph_index = ?
                """,
                (book_type.value, book_id, paragraph_index),
            ).fetchone()
        return dict(row) if row else None

    def get_paragraph(
        self, book_type: BookType, book_id: int, paragraph_index: int
    ) -> str | None:
        """Plain text of one paragraph, or None when the catalog does not know it."""
        row = self.get_paragraph_row(book_type, book_id, paragraph_index)
        return row["text"] if row else None

    def get_chapter_index(
        self, book_type: BookType, book_id: int, paragraph_index: int
    ) -> int | None:
        row = self.get_paragraph_row(book_type, book_id, paragraph_index)
        return row["chapter_index"] if row else None

    def delete_book(self, book_type: BookType, book_id: int) -> int:
        book_type = resolve_book_type(book_type)
        with self.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM book_paragraphs WHERE book_type = ? AND book_id = ?",
                (book_type.value, book_id),
            )
            return cursor.rowcount
