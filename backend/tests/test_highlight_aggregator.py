"""
Unit tests for the popular highlights aggregation job.

Tests cover:
- Grouping by normalized text and counting distinct users
- Threshold handling
- Representative text / anchor selection
- Idempotence of repeated runs
- Updates and deletions as underlines change
- Per-book mutual exclusion and batch failure isolation
"""

import sqlite3

import pytest

from readmark.models.annotations import BookType
from readmark.services.aggregation_state import AggregationStatus
from readmark.services.errors import AggregationError, ValidationError
from readmark.services.highlight_aggregator import group_underlines
from readmark.services.text_normalizer import hash_selection


def popular_rows(db, book_type=BookType.EBOOK, book_id=1):
    with sqlite3.connect(db.db_path) as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(
            """
            SELECT * FROM popular_highlights
            WHERE book_type = ? AND book_id = ?
            ORDER BY text_hash
            """,
            (book_type.value, book_id),
        ).fetchall()
    return [dict(row) for row in rows]


class TestGrouping:
    """Test the in-memory grouping step"""

    def test_group_counts_distinct_users(self):
        rows = [
            {"user_id": "a", "text": "Great book", "text_hash": "h1",
             "chapter_index": 0, "paragraph_index": 0},
            {"user_id": "a", "text": "great book", "text_hash": "h1",
             "chapter_index": 0, "paragraph_index": 4},
            {"user_id": "b", "text": "great book!", "text_hash": "h1",
             "chapter_index": 1, "paragraph_index": 9},
        ]
        groups = group_underlines(rows)
        group = groups["h1"]
        assert group.highlighter_count == 2
        assert group.text == "Great book"
        assert group.paragraph_index == 0
        assert group.last_highlighter_id == "b"

    def test_empty_normalized_text_skipped(self):
        rows = [
            {"user_id": "a", "text": "!!!", "text_hash": hash_selection("!!!"),
             "chapter_index": 0, "paragraph_index": 0},
        ]
        assert group_underlines(rows) == {}


class TestAggregation:
    """Test full aggregation passes"""

    def test_shared_highlight_scenario(self, db, make_underline):
        make_underline("user1", 0, "Great book")
        make_underline("user2", 1, "great book!")
        make_underline("user3", 2, "unrelated")

        result = db.aggregator.run(BookType.EBOOK, 1)

        assert result.underlines_scanned == 3
        assert result.groups_found == 2
        assert result.inserted == 1

        highlights = db.popular_highlights.list(BookType.EBOOK, 1)
        assert len(highlights) == 1
        top = highlights[0]
        assert top.text == "Great book"
        assert top.highlighter_count == 2
        assert top.paragraph_index == 0
        assert top.chapter_index == 0
        assert top.last_highlighter_id == "user2"
        assert top.text_hash == hash_selection("great book")

    def test_same_user_counts_once(self, db, make_underline):
        make_underline("user1", 0, "Great book")
        make_underline("user1", 1, "great book")

        result = db.aggregator.run(BookType.EBOOK, 1)

        assert result.groups_found == 1
        assert result.inserted == 0
        assert db.popular_highlights.list(BookType.EBOOK, 1) == []

    def test_threshold_of_two_users(self, db, make_underline):
        make_underline("user1", 2, "unrelated")
        db.aggregator.run(BookType.EBOOK, 1)
        assert db.popular_highlights.list(BookType.EBOOK, 1) == []

        make_underline("user2", 2, "unrelated")
        db.aggregator.run(BookType.EBOOK, 1)
        assert [h.highlighter_count for h in db.popular_highlights.list(BookType.EBOOK, 1)] == [2]

    def test_rerun_leaves_rows_identical(self, db, make_underline):
        make_underline("user1", 0, "Great book")
        make_underline("user2", 1, "great book")
        db.aggregator.run(BookType.EBOOK, 1)
        before = popular_rows(db)

        result = db.aggregator.run(BookType.EBOOK, 1)

        assert popular_rows(db) == before
        assert (result.inserted, result.updated, result.unchanged, result.deleted) == (0, 0, 1, 0)

    def test_new_highlighter_updates_row(self, db, make_underline):
        make_underline("user1", 0, "Great book")
        make_underline("user2", 1, "great book")
        db.aggregator.run(BookType.EBOOK, 1)
        [before] = popular_rows(db)

        make_underline("user3", 0, "Great book")
        result = db.aggregator.run(BookType.EBOOK, 1)
        [after] = popular_rows(db)

        assert result.updated == 1
        assert after["highlighter_count"] == 3
        assert after["last_highlighter_id"] == "user3"
        assert after["created_at"] == before["created_at"]
        assert after["updated_at"] > before["updated_at"]
        # Representative text stays with the earliest underline
        assert after["text"] == "Great book"

    def test_falling_below_threshold_deletes_row(self, db, make_underline):
        make_underline("user1", 0, "Great book")
        second = make_underline("user2", 1, "great book")
        db.aggregator.run(BookType.EBOOK, 1)
        assert len(popular_rows(db)) == 1

        db.underlines.delete(second.id, "user2")
        result = db.aggregator.run(BookType.EBOOK, 1)

        assert result.deleted == 1
        assert popular_rows(db) == []

    def test_book_without_underlines_is_not_an_error(self, db):
        result = db.aggregator.run(BookType.MAGAZINE, 7)
        assert result.underlines_scanned == 0
        assert result.groups_found == 0
        assert result.skipped is False

    def test_punctuation_only_selections_ignored(self, db, make_underline):
        make_underline("user1", 3, "!!!")
        make_underline("user2", 3, "!!!")
        result = db.aggregator.run(BookType.EBOOK, 1)
        assert result.groups_found == 0
        assert popular_rows(db) == []

    def test_books_are_isolated(self, db, make_underline):
        make_underline("user1", 0, "Cover story", book_type=BookType.MAGAZINE, book_id=7)
        make_underline("user2", 0, "Cover story", book_type=BookType.MAGAZINE, book_id=7)
        make_underline("user1", 0, "Great book")
        db.aggregator.run(BookType.MAGAZINE, 7)
        assert len(popular_rows(db, BookType.MAGAZINE, 7)) == 1
        assert popular_rows(db, BookType.EBOOK, 1) == []

    def test_concurrent_run_for_same_book_is_skipped(self, db):
        assert db.registry.try_start(BookType.EBOOK, 1)
        result = db.aggregator.run(BookType.EBOOK, 1)
        assert result.skipped is True

        db.registry.mark_completed(BookType.EBOOK, 1)
        assert db.aggregator.run(BookType.EBOOK, 1).skipped is False
        assert db.registry.get_state(BookType.EBOOK, 1).status == AggregationStatus.COMPLETED

    def test_database_failure_raises_aggregation_error(self, db, monkeypatch):
        def broken(book_type, book_id):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(db.aggregator, "_aggregate", broken)
        with pytest.raises(AggregationError) as exc_info:
            db.aggregator.run(BookType.EBOOK, 1)

        assert exc_info.value.book_id == 1
        state = db.registry.get_state(BookType.EBOOK, 1)
        assert state.status == AggregationStatus.FAILED
        assert not db.registry.is_running(BookType.EBOOK, 1)

    def test_unknown_book_type_rejected(self, db):
        with pytest.raises(ValidationError):
            db.aggregator.run("comic", 1)

    def test_oversized_book_id_rejected(self, db):
        with pytest.raises(ValidationError):
            db.aggregator.run(BookType.EBOOK, 2**70)
        assert db.registry.get_state(BookType.EBOOK, 2**70).status == AggregationStatus.FAILED


class TestBatchRuns:
    """Test multi-book runs"""

    def test_failing_book_does_not_stop_batch(self, db, make_underline):
        make_underline("user1", 0, "Great book")
        make_underline("user2", 0, "Great book")

        batch = db.aggregator.run_many(
            [(BookType.MAGAZINE, 7), ("comic", 2), (BookType.EBOOK, 1)]
        )

        assert batch.books_processed == 2
        assert batch.books_failed == 1
        assert batch.errors[0].startswith("comic:2")
        assert len(popular_rows(db)) == 1

    def test_run_all_covers_every_book(self, db, make_underline):
        make_underline("user1", 0, "Great book")
        make_underline("user2", 0, "Great book")
        make_underline("user1", 0, "Cover", book_type=BookType.MAGAZINE, book_id=7)

        batch = db.aggregator.run_all()

        assert batch.books_processed == 2
        assert {(r.book_type, r.book_id) for r in batch.results} == {
            (BookType.EBOOK, 1),
            (BookType.MAGAZINE, 7),
        }

    def test_run_all_clears_books_whose_underlines_were_removed(self, db, make_underline):
        first = make_underline("user1", 0, "Great book")
        second = make_underline("user2", 0, "Great book")
        db.aggregator.run_all()
        assert len(popular_rows(db)) == 1

        db.underlines.delete(first.id, "user1")
        db.underlines.delete(second.id, "user2")
        batch = db.aggregator.run_all()

        assert batch.books_processed == 1
        assert popular_rows(db) == []
