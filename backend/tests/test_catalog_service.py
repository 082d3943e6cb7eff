"""
Unit tests for the paragraph catalog adapter.
"""

import pytest

from readmark.models.annotations import BookType
from readmark.services.catalog_service import (
    BookCatalogService,
    resolve_book_type,
    storage_key,
)
from readmark.services.errors import ValidationError


@pytest.fixture
def catalog(tmp_path):
    return BookCatalogService(db_path=str(tmp_path / "catalog.db"))


class TestBookTypes:
    """Test the closed book type set"""

    def test_resolve_accepts_enum_and_strings(self):
        assert resolve_book_type(BookType.EBOOK) is BookType.EBOOK
        assert resolve_book_type("magazine") is BookType.MAGAZINE
        assert resolve_book_type(" EBOOK ") is BookType.EBOOK

    def test_resolve_rejects_unknown(self):
        with pytest.raises(ValidationError):
            resolve_book_type("comic")

    def test_storage_key(self):
        assert storage_key(BookType.EBOOK, 3) == "ebook:3"
        assert storage_key(BookType.MAGAZINE, 3) == "magazine:3"


class TestCatalog:
    """Test paragraph registration and lookups"""

    def test_register_and_read(self, catalog):
        stored = catalog.register_book(
            BookType.EBOOK, 1, [(0, "First."), (0, "Second."), (2, "Third.")]
        )
        assert stored == 3
        assert catalog.has_book(BookType.EBOOK, 1)
        assert catalog.paragraph_count(BookType.EBOOK, 1) == 3
        assert catalog.get_paragraph(BookType.EBOOK, 1, 1) == "Second."
        assert catalog.get_chapter_index(BookType.EBOOK, 1, 2) == 2

    def test_plain_strings_have_no_chapter(self, catalog):
        catalog.register_book("magazine", 5, ["Only paragraph"])
        assert catalog.get_chapter_index(BookType.MAGAZINE, 5, 0) is None

    def test_unknown_paragraph_returns_none(self, catalog):
        catalog.register_book(BookType.EBOOK, 1, ["Only paragraph"])
        assert catalog.get_paragraph(BookType.EBOOK, 1, 1) is None
        assert catalog.get_paragraph(BookType.EBOOK, 2, 0) is None

    def test_books_are_scoped_by_type(self, catalog):
        catalog.register_book(BookType.EBOOK, 1, ["Ebook text"])
        assert not catalog.has_book(BookType.MAGAZINE, 1)

    def test_register_replaces_previous_paragraphs(self, catalog):
        catalog.register_book(BookType.EBOOK, 1, ["a", "b", "c"])
        catalog.register_book(BookType.EBOOK, 1, ["x"])
        assert catalog.paragraph_count(BookType.EBOOK, 1) == 1
        assert catalog.get_paragraph(BookType.EBOOK, 1, 0) == "x"

    def test_delete_book(self, catalog):
        catalog.register_book(BookType.EBOOK, 1, ["a", "b"])
        assert catalog.delete_book(BookType.EBOOK, 1) == 2
        assert not catalog.has_book(BookType.EBOOK, 1)
