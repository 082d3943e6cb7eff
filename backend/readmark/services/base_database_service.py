"""
Base Database Service Module

This module provides shared database utilities and connection management
for all specialized database services in the application.
"""

import logging
import os
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from .errors import ValidationError

# Configure logger for this module
logger = logging.getLogger(__name__)

# Microsecond precision; equal timestamps are ordered by id
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseDatabaseService:
    """
    Base class providing shared database utilities and connection management.

    This class handles common database operations like connection management,
    directory creation, and provides utility methods that can be used by
    specialized service classes.
    """

    def __init__(
        self,
        db_path: str = "data/readmark.db",
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the base database service.

        Args:
            db_path (str): Path to the SQLite database file. Defaults to "data/readmark.db"
                          The directory will be created if it doesn't exist.
            clock: Callable returning the current time; defaults to UTC wall clock
        """
        self.db_path = db_path
        self._clock = clock or utc_now
        self._ensure_data_dir()

    def _ensure_data_dir(self):
        """
        Ensure the data directory exists for the database file.

        Creates the directory structure if it doesn't exist. This prevents
        database connection errors when the data directory is missing.
        """
        data_dir = os.path.dirname(self.db_path)
        if data_dir:
            os.makedirs(data_dir, exist_ok=True)

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for a transactional database connection.

        Commits when the block exits cleanly, rolls back on any exception and
        always closes the connection. Integers outside the SQLite INTEGER range
        surface as ValidationError.
        """
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except OverflowError as e:
            conn.rollback()
            raise ValidationError(f"Integer value out of range: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def enable_wal(self) -> None:
        """Switch the database to WAL journaling so readers never block the writer."""
        with self.get_connection() as conn:
            mode = conn.execute("PRAGMA journal_mode=WAL").fetchone()[0]
            logger.debug(f"SQLite journal mode for {self.db_path}: {mode}")

    def get_current_timestamp(self) -> str:
        """
        Get current timestamp for database operations.

        Returns:
            str: Current UTC timestamp, e.g. "2025-12-11 11:08:40.123456"
        """
        return self._clock().strftime(TIMESTAMP_FORMAT)

    def format_timestamp_iso(self, timestamp_str: str | None) -> str | None:
        """
        Convert a stored timestamp string to ISO 8601 format with UTC indicator.

        Args:
            timestamp_str (str): Stored timestamp (e.g., "2025-12-11 11:08:40.123456")

        Returns:
            str: ISO 8601 timestamp with UTC indicator (e.g., "2025-12-11T11:08:40.123456Z")
        """
        if not timestamp_str:
            return timestamp_str

        # "2025-12-11 11:08:40.123456" -> "2025-12-11T11:08:40.123456Z"
        return timestamp_str.replace(" ", "T") + "Z"
