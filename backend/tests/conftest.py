"""
Shared fixtures: a throwaway SQLite database per test, a deterministic clock
and a small registered catalog.
"""

from datetime import datetime, timedelta, timezone

import pytest

from readmark.models.annotations import BookType
from readmark.services.database_service import DatabaseService


class TickingClock:
    """Returns a strictly increasing time on every call"""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.current = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        value = self.current
        self.current += self.step
        return value


# (chapter_index, text) in reading order
EBOOK_PARAGRAPHS = [
    (0, "Great book indeed."),
    (0, "What a great book! Said nobody."),
    (1, "An unrelated sentence lives here."),
    (1, "Wow!!! Indeed."),
]

MAGAZINE_PARAGRAPHS = [
    (3, "Cover story about the great outdoors."),
]


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "data" / "readmark.db")


@pytest.fixture
def db(db_path, clock):
    """DatabaseService with one ebook (id 1) and one magazine (id 7) registered"""
    service = DatabaseService(db_path=db_path, clock=clock)
    service.catalog.register_book(BookType.EBOOK, 1, EBOOK_PARAGRAPHS)
    service.catalog.register_book(BookType.MAGAZINE, 7, MAGAZINE_PARAGRAPHS)
    return service


@pytest.fixture
def make_underline(db):
    """Create an underline over the first occurrence of text in a catalog paragraph"""

    def _make(user_id, paragraph_index, text, book_type=BookType.EBOOK, book_id=1):
        paragraph = db.catalog.get_paragraph(book_type, book_id, paragraph_index)
        start = paragraph.index(text)
        return db.underlines.create(
            user_id=user_id,
            book_type=book_type,
            book_id=book_id,
            paragraph_index=paragraph_index,
            start_offset=start,
            end_offset=start + len(text),
            text=text,
        )

    return _make
