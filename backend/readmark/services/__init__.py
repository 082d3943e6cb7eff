"""
Services Package

This package contains the annotation services: the paragraph catalog adapter,
the underline store, the overlap renderer, the popular highlight aggregator
and its read path, plus a facade that wires them to one database.
"""

from .base_database_service import BaseDatabaseService
from .catalog_service import BookCatalogService
from .database_service import DatabaseService, get_db_service
from .highlight_aggregator import HighlightAggregator
from .popular_highlights_service import PopularHighlightsService
from .underline_service import UnderlineService

__all__ = [
    "DatabaseService",
    "get_db_service",
    "BookCatalogService",
    "UnderlineService",
    "PopularHighlightsService",
    "HighlightAggregator",
    "BaseDatabaseService",
]
