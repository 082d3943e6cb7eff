import logging
from typing import List, Optional

from fastapi import APIRouter, Depends

from ..models.annotations import AggregationResult, PopularHighlight
from ..services.catalog_service import resolve_book_type
from ..services.popular_highlights_service import DEFAULT_LIMIT
from .deps import (
    DatabaseService,
    IntPath,
    OptionalIntQuery,
    get_current_user_id,
    get_db_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/popular-highlights", tags=["popular-highlights"])


@router.get("/aggregation-status")
def get_aggregation_status(
    book_type: Optional[str] = None,
    book_id: OptionalIntQuery = None,
    db: DatabaseService = Depends(get_db_service),
) -> dict:
    """
    Get the status of highlight aggregations in this process.

    With book_type and book_id, returns the latest pass for that book.
    Otherwise returns every aggregation currently running.
    """
    if book_type is not None and book_id is not None:
        state = db.registry.get_state(resolve_book_type(book_type), book_id)
        if state:
            return {"found": True, "aggregation": state.to_dict()}
        return {"found": False, "message": "No aggregation recorded for this book"}

    aggregations = db.registry.running()
    return {
        "count": len(aggregations),
        "aggregations": [state.to_dict() for state in aggregations],
    }


@router.get("/{book_type}/{book_id}", response_model=List[PopularHighlight])
def list_popular_highlights(
    book_type: str,
    book_id: IntPath,
    limit: int = DEFAULT_LIMIT,
    chapter_index: OptionalIntQuery = None,
    db: DatabaseService = Depends(get_db_service),
):
    """
    Ranked popular highlights of a book.

    Args:
        book_type: "ebook" or "magazine"
        book_id: Book identifier
        limit: Number of entries, 1 to the configured maximum
        chapter_index: Optional chapter filter

    Returns:
        List[PopularHighlight]: Most highlighted first
    """
    return db.popular_highlights.list(
        book_type, book_id, limit=limit, chapter_index=chapter_index
    )


@router.post("/{book_type}/{book_id}/refresh", response_model=AggregationResult)
def refresh_popular_highlights(
    book_type: str,
    book_id: IntPath,
    user_id: str = Depends(get_current_user_id),
    db: DatabaseService = Depends(get_db_service),
):
    """Recompute a book's popular highlights now."""
    logger.info(f"On-demand refresh of {book_type}:{book_id} requested by {user_id}")
    return db.aggregator.run(book_type, book_id)
