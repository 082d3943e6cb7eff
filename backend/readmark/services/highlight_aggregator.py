"""
Highlight Aggregator Module

Background job that recomputes a book's popular highlights from the full,
current set of underlines:

1. Read every underline of the book (all users).
2. Group by text_hash; count distinct users per group, take the representative
   text and anchor from the earliest underline.
3. Upsert one popular_highlights row per group shared by at least
   ``MIN_HIGHLIGHTERS`` users.
4. Delete the book's rows whose group disappeared or fell below the threshold.

Nothing is carried over between runs, so a pass can be repeated at any time
and an interrupted pass is simply recomputed by the next one. Rows are only
rewritten when a stored value changes, which makes back-to-back runs leave
the table byte-identical.
"""

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass

from ..models.annotations import AggregationResult, BatchAggregationResult, BookType
from .aggregation_state import AggregationRegistry
from .base_database_service import BaseDatabaseService
from .catalog_service import resolve_book_type, storage_key
from .errors import AggregationError
from .popular_highlights_service import PopularHighlightsService
from .text_normalizer import text_hash
from .underline_service import UnderlineService

logger = logging.getLogger(__name__)

MIN_HIGHLIGHTERS = 2

# Hash of selections that normalize to nothing (pure punctuation/symbols)
EMPTY_TEXT_HASH = text_hash("")


@dataclass
class _HighlightGroup:
    text_hash: str
    text: str
    chapter_index: int | None
    paragraph_index: int
    highlighter_count: int
    last_highlighter_id: str

    def stored_values(self) -> tuple:
        return (
            self.text,
            self.chapter_index,
            self.paragraph_index,
            self.highlighter_count,
            self.last_highlighter_id,
        )


def group_underlines(rows: Iterable[sqlite3.Row | dict]) -> dict[str, _HighlightGroup]:
    """
    Group underline rows by text hash.

    Rows must be ordered by (created_at, id) ascending; the first row of a
    group provides its representative text and anchor, the last one its
    last highlighter.
    """
    users: dict[str, set[str]] = {}
    groups: dict[str, _HighlightGroup] = {}
    for row in rows:
        key = row["text_hash"]
        if key == EMPTY_TEXT_HASH:
            continue
        users.setdefault(key, set()).add(row["user_id"])
        group = groups.get(key)
        if group is None:
            groups[key] = _HighlightGroup(
                text_hash=key,
                text=row["text"],
                chapter_index=row["chapter_index"],
                paragraph_index=row["paragraph_index"],
                highlighter_count=0,
                last_highlighter_id=row["user_id"],
            )
        else:
            group.last_highlighter_id = row["user_id"]

    for key, group in groups.items():
        group.highlighter_count = len(users[key])
    return groups


class HighlightAggregator(BaseDatabaseService):
    """
    Recomputes popular_highlights per book.

    Only one pass per book runs at a time in this process (see
    AggregationRegistry); inside SQLite the whole pass holds a write
    transaction, so the snapshot it reads is the one it writes from.
    """

    def __init__(
        self,
        underline_service: UnderlineService,
        registry: AggregationRegistry | None = None,
        popular_highlights: PopularHighlightsService | None = None,
        min_highlighters: int = MIN_HIGHLIGHTERS,
        **kwargs,
    ):
        kwargs.setdefault("clock", underline_service._clock)
        super().__init__(underline_service.db_path, **kwargs)
        self.underlines = underline_service
        self.registry = registry or AggregationRegistry()
        self.min_highlighters = min_highlighters
        self.popular_highlights = popular_highlights or PopularHighlightsService(
            self.db_path, clock=self._clock
        )

    def run(self, book_type: BookType, book_id: int) -> AggregationResult:
        """
        Recompute the popular highlights of one book.

        A book without underlines is not an error: its result is empty and any
        stale rows are removed. If another pass for the same book is already
        running, this call returns immediately with ``skipped=True``.

        Raises:
            AggregationError: if the database pass fails
        """
        book_type = resolve_book_type(book_type)
        key = storage_key(book_type, book_id)

        if not self.registry.try_start(book_type, book_id):
            logger.warning(f"Aggregation for {key} is already running, skipping")
            return AggregationResult(book_type=book_type, book_id=book_id, skipped=True)

        try:
            result = self._aggregate(book_type, book_id)
        except sqlite3.Error as exc:
            self.registry.mark_failed(book_type, book_id, str(exc))
            raise AggregationError(
                f"Aggregation failed for {key}: {exc}", book_type.value, book_id
            ) from exc
        except Exception as exc:
            self.registry.mark_failed(book_type, book_id, str(exc))
            raise

        self.registry.mark_completed(book_type, book_id)
        logger.info(
            f"Aggregated {key}: scanned={result.underlines_scanned} "
            f"groups={result.groups_found} inserted={result.inserted} "
            f"updated={result.updated} unchanged={result.unchanged} deleted={result.deleted}"
        )
        return result

    def _aggregate(self, book_type: BookType, book_id: int) -> AggregationResult:
        result = AggregationResult(book_type=book_type, book_id=book_id)
        now = self.get_current_timestamp()

        with self.get_connection() as conn:
            # Take the write lock up front so the scan and the writes share one snapshot
            conn.execute("BEGIN IMMEDIATE")

            rows = conn.execute(
                """
                SELECT id, user_id, chapter_index, paragraph_index, text, text_hash, created_at
                FROM underlines
                WHERE book_type = ? AND book_id = ?
                ORDER BY created_at ASC, id ASC
                """,
                (book_type.value, book_id),
            ).fetchall()
            result.underlines_scanned = len(rows)

            groups = group_underlines(rows)
            result.groups_found = len(groups)

            existing = {
                row["text_hash"]: row
                for row in conn.execute(
                    """
                    SELECT * FROM popular_highlights
                    WHERE book_type = ? AND book_id = ?
                    """,
                    (book_type.value, book_id),
                ).fetchall()
            }

            keep: set[str] = set()
            for group in groups.values():
                if group.highlighter_count < self.min_highlighters:
                    continue
                keep.add(group.text_hash)

                current = existing.get(group.text_hash)
                if current is not None and (
                    current["text"],
                    current["chapter_index"],
                    current["paragraph_index"],
                    current["highlighter_count"],
                    current["last_highlighter_id"],
                ) == group.stored_values():
                    result.unchanged += 1
                    continue

                conn.execute(
                    """
                    INSERT INTO popular_highlights (
                        book_type, book_id, text_hash, text, chapter_index,
                        paragraph_index, highlighter_count, last_highlighter_id,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (book_type, book_id, text_hash) DO UPDATE SET
                        text = excluded.text,
                        chapter_index = excluded.chapter_index,
                        paragraph_index = excluded.paragraph_index,
                        highlighter_count = excluded.highlighter_count,
                        last_highlighter_id = excluded.last_highlighter_id,
                        updated_at = excluded.updated_at
                    """,
                    (
                        book_type.value,
                        book_id,
                        group.text_hash,
                        group.text,
                        group.chapter_index,
                        group.paragraph_index,
                        group.highlighter_count,
                        group.last_highlighter_id,
                        now,
                        now,
                    ),
                )
                if current is None:
                    result.inserted += 1
                else:
                    result.updated += 1

            stale = [(book_type.value, book_id, h) for h in existing if h not in keep]
            if stale:
                conn.executemany(
                    """
                    DELETE FROM popular_highlights
                    WHERE book_type = ? AND book_id = ? AND text_hash = ?
                    """,
                    stale,
                )
            result.deleted = len(stale)

        return result

    def run_many(self, books: Iterable[tuple[BookType, int]]) -> BatchAggregationResult:
        """
        Aggregate several books; a failing book is logged and never stops the batch.
        """
        batch = BatchAggregationResult()
        for book_type, book_id in books:
            label = f"{getattr(book_type, 'value', book_type)}:{book_id}"
            try:
                result = self.run(book_type, book_id)
            except Exception as exc:
                logger.error(
                    f"Aggregation failed for {label}: {exc}", exc_info=True
                )
                batch.books_failed += 1
                batch.errors.append(f"{label}: {exc}")
                continue

            batch.results.append(result)
            if result.skipped:
                batch.books_skipped += 1
            else:
                batch.books_processed += 1
        return batch

    def run_all(self) -> BatchAggregationResult:
        """
        Aggregate every book that has underlines or materialized highlights.

        Books whose underlines were all deleted are included so their stale
        rows get cleared.
        """
        books = sorted(
            set(self.underlines.books_with_underlines())
            | set(self.popular_highlights.books_with_highlights()),
            key=lambda book: (book[0].value, book[1]),
        )
        logger.info(f"Refreshing popular highlights for {len(books)} books")
        return self.run_many(books)
