"""
Database Service Module

Facade that builds every annotation service against one SQLite database:

1. Book catalog - paragraph text used to validate ranges and resolve chapters
2. Underlines - per-user ranges with optional ideas
3. Popular highlights - ranked read path of the aggregated view
4. Highlight aggregator - recomputes the aggregated view per book
"""

import logging
from collections.abc import Callable
from datetime import datetime
from functools import lru_cache

from ..config import get_settings
from .aggregation_state import AggregationRegistry
from .catalog_service import BookCatalogService
from .highlight_aggregator import HighlightAggregator
from .popular_highlights_service import PopularHighlightsService
from .underline_service import UnderlineService

# Configure logger for this module
logger = logging.getLogger(__name__)


class DatabaseService:
    """
    A facade wiring the annotation services to one database file.

    Tables are created on first use and WAL journaling is enabled.
    """

    def __init__(
        self,
        db_path: str = "data/readmark.db",
        clock: Callable[[], datetime] | None = None,
        popular_limit_max: int = 100,
    ):
        """
        Initialize the database service and its specialized services.

        Args:
            db_path (str): Path to the SQLite database file
            clock: Optional time source shared by all services
            popular_limit_max: Upper bound for popular highlight list sizes
        """
        self.db_path = db_path
        self.catalog = BookCatalogService(db_path, clock=clock)
        self.catalog.enable_wal()
        self.underlines = UnderlineService(db_path, catalog=self.catalog, clock=clock)
        self.popular_highlights = PopularHighlightsService(
            db_path, limit_max=popular_limit_max, clock=clock
        )
        self.registry = AggregationRegistry()
        self.aggregator = HighlightAggregator(
            self.underlines,
            registry=self.registry,
            popular_highlights=self.popular_highlights,
        )
        logger.info(f"Database services initialized at {db_path}")


@lru_cache(maxsize=1)
def get_db_service() -> DatabaseService:
    """Process-wide DatabaseService built from settings."""
    settings = get_settings()
    return DatabaseService(
        settings.db_path, popular_limit_max=settings.popular_limit_max
    )
