import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status

from ..models.annotations import (
    IdeaUpdate,
    ParagraphSpans,
    Underline,
    UnderlineCreate,
    UserAnnotationStats,
)
from ..services.catalog_service import resolve_book_type
from ..services.errors import NotFoundError
from ..services.overlap_renderer import merge
from .deps import (
    DatabaseService,
    IndexPath,
    IntPath,
    OptionalIntQuery,
    get_current_user_id,
    get_db_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/underlines", tags=["underlines"])


@router.post("", response_model=Underline, status_code=status.HTTP_201_CREATED)
def create_underline(
    payload: UnderlineCreate,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    """
    Save a new underline for the current user.

    Re-submitting the same range returns the existing underline with 200
    instead of creating a duplicate.
    """
    underline, created = db.underlines.create_or_get(
        user_id=user_id,
        book_type=payload.book_type,
        book_id=payload.book_id,
        paragraph_index=payload.paragraph_index,
        start_offset=payload.start_offset,
        end_offset=payload.end_offset,
        text=payload.text,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return underline


@router.patch("/{underline_id}/idea", response_model=Underline)
def attach_idea(
    underline_id: IntPath,
    payload: IdeaUpdate,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    """Attach, replace or clear (blank idea) the note of one of the caller's underlines."""
    return db.underlines.attach_idea(underline_id, user_id, payload.idea)


@router.delete("/{underline_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_underline(
    underline_id: IntPath,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    """Delete one of the caller's underlines. Unknown ids are ignored."""
    db.underlines.delete(underline_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# /me routes are declared before /{book_type}/{book_id} so "me" is never read as a book type


@router.get("/me", response_model=List[Underline])
def list_my_underlines(
    book_type: Optional[str] = None,
    book_id: OptionalIntQuery = None,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    """The caller's own underlines, newest first."""
    return db.underlines.list_for_user(user_id, book_type=book_type, book_id=book_id)


@router.get("/me/stats", response_model=UserAnnotationStats)
def my_stats(
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    return db.underlines.user_stats(user_id)


@router.get("/{underline_id}", response_model=Underline)
def get_underline(
    underline_id: IntPath,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    """Fetch one underline by id; underlines are visible to every reader."""
    return db.underlines.get(underline_id)


@router.get("/{book_type}/{book_id}", response_model=List[Underline])
def list_book_underlines(
    book_type: str,
    book_id: IntPath,
    chapter_index: OptionalIntQuery = None,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    """Every user's underlines in a book, optionally restricted to one chapter."""
    return db.underlines.list_for_book(book_type, book_id, chapter_index=chapter_index)


@router.get(
    "/{book_type}/{book_id}/paragraphs/{paragraph_index}",
    response_model=List[Underline],
)
def list_paragraph_underlines(
    book_type: str,
    book_id: IntPath,
    paragraph_index: IndexPath,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    """Every user's underlines in one paragraph, ordered by start offset."""
    return db.underlines.list_for_paragraph(book_type, book_id, paragraph_index)


@router.get(
    "/{book_type}/{book_id}/paragraphs/{paragraph_index}/spans",
    response_model=ParagraphSpans,
)
def paragraph_spans(
    book_type: str,
    book_id: IntPath,
    paragraph_index: IndexPath,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    """
    Merged, non-overlapping display spans for one paragraph.

    Raises:
        NotFoundError: if the catalog has no such paragraph
    """
    resolved = resolve_book_type(book_type)
    text = db.catalog.get_paragraph(resolved, book_id, paragraph_index)
    if text is None:
        raise NotFoundError(
            f"Paragraph {paragraph_index} of {resolved.value}:{book_id} not found"
        )
    underlines = db.underlines.list_for_paragraph(resolved, book_id, paragraph_index)
    return ParagraphSpans(
        book_type=resolved,
        book_id=book_id,
        paragraph_index=paragraph_index,
        text=text,
        spans=merge(text, underlines),
    )
