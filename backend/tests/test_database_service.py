"""
Tests for the DatabaseService facade.
"""

import sqlite3

from readmark.services.database_service import DatabaseService


class TestDatabaseService:
    """Test table creation and wiring"""

    def test_tables_created_on_init(self, tmp_path):
        service = DatabaseService(db_path=str(tmp_path / "nested" / "readmark.db"))
        with sqlite3.connect(service.db_path) as conn:
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        assert {"book_paragraphs", "underlines", "popular_highlights"} <= tables

    def test_wal_journaling_enabled(self, tmp_path):
        service = DatabaseService(db_path=str(tmp_path / "readmark.db"))
        with sqlite3.connect(service.db_path) as conn:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    def test_services_share_database_and_clock(self, tmp_path, clock):
        service = DatabaseService(db_path=str(tmp_path / "readmark.db"), clock=clock)
        assert service.underlines.catalog is service.catalog
        assert service.aggregator.underlines is service.underlines
        assert service.aggregator.registry is service.registry
        assert service.aggregator.db_path == service.popular_highlights.db_path

    def test_init_is_repeatable(self, tmp_path):
        path = str(tmp_path / "readmark.db")
        DatabaseService(db_path=path)
        DatabaseService(db_path=path)

    def test_popular_limit_max_passed_through(self, tmp_path):
        service = DatabaseService(db_path=str(tmp_path / "readmark.db"), popular_limit_max=7)
        assert service.popular_highlights.limit_max == 7
