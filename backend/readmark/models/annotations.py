"""
Annotation Type Models

Pydantic models for underlines, ideas, rendered spans and popular highlights.
Offsets are character positions into a paragraph's plain text, half-open.
"""

from enum import Enum

from pydantic import BaseModel, Field

IDEA_MAX_LENGTH = 2000

# Range of a SQLite INTEGER (signed 64-bit)
SQLITE_INTEGER_MIN = -(2**63)
SQLITE_INTEGER_MAX = 2**63 - 1


class BookType(str, Enum):
    """Closed set of annotatable content kinds"""

    EBOOK = "ebook"
    MAGAZINE = "magazine"


# ========================================
# UNDERLINE MODELS
# ========================================


class UnderlineCreate(BaseModel):
    """Request model for creating an underline"""

    book_type: BookType
    book_id: int = Field(..., ge=SQLITE_INTEGER_MIN, le=SQLITE_INTEGER_MAX)
    paragraph_index: int = Field(..., ge=0, le=SQLITE_INTEGER_MAX)
    start_offset: int = Field(..., ge=0, le=SQLITE_INTEGER_MAX)
    end_offset: int = Field(..., ge=0, le=SQLITE_INTEGER_MAX)
    text: str = Field(..., min_length=1)


class Underline(BaseModel):
    """A persisted underline with all fields"""

    id: int
    user_id: str
    book_type: BookType
    book_id: int
    chapter_index: int | None = None
    paragraph_index: int
    start_offset: int
    end_offset: int
    text: str
    text_hash: str
    idea: str | None = None
    idea_updated_at: str | None = None
    created_at: str


class IdeaUpdate(BaseModel):
    """Request model for attaching (or clearing) an idea"""

    idea: str | None = Field(default=None, max_length=IDEA_MAX_LENGTH)


class UserAnnotationStats(BaseModel):
    user_id: str
    underlines: int
    ideas: int


# ========================================
# RENDERING MODELS
# ========================================


class Span(BaseModel):
    """A display segment of a paragraph; empty underline_ids means plain text"""

    start: int
    end: int
    underline_ids: list[int] = Field(default_factory=list)
    has_idea: bool = False


class ParagraphSpans(BaseModel):
    book_type: BookType
    book_id: int
    paragraph_index: int
    text: str
    spans: list[Span]


# ========================================
# POPULAR HIGHLIGHT MODELS
# ========================================


class PopularHighlight(BaseModel):
    """Cross-user aggregate for one normalized text within a book"""

    book_type: BookType
    book_id: int
    text_hash: str
    text: str
    chapter_index: int | None = None
    paragraph_index: int | None = None
    highlighter_count: int
    last_highlighter_id: str | None = None
    created_at: str
    updated_at: str


class AggregationResult(BaseModel):
    """Outcome of one aggregation pass over a single book"""

    book_type: BookType
    book_id: int
    underlines_scanned: int = 0
    groups_found: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    skipped: bool = False


class BatchAggregationResult(BaseModel):
    """Outcome of a multi-book aggregation run"""

    books_processed: int = 0
    books_failed: int = 0
    books_skipped: int = 0
    results: list[AggregationResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
