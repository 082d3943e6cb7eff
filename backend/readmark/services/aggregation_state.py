"""
Aggregation State Management Module

Thread-safe tracking of running highlight aggregations. Guarantees that at
most one aggregation pass runs per book inside this process, and keeps the
outcome of the last pass per book for status reporting.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum, auto

from ..models.annotations import BookType
from .catalog_service import storage_key

logger = logging.getLogger(__name__)


class AggregationStatus(Enum):
    """Status of an aggregation pass."""

    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass
class AggregationState:
    """State of the latest aggregation pass for one book."""

    book_type: BookType
    book_id: int
    status: AggregationStatus = AggregationStatus.RUNNING
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    error_message: str | None = None

    def to_dict(self) -> dict:
        """Convert state to dictionary for API response."""
        end = self.finished_at if self.finished_at is not None else time.time()
        return {
            "book_type": self.book_type.value,
            "book_id": self.book_id,
            "status": self.status.name.lower(),
            "started_at": self.started_at,
            "elapsed_seconds": end - self.started_at,
            "error_message": self.error_message,
        }


class AggregationRegistry:
    """
    Thread-safe registry of aggregation passes.

    ``try_start`` is the per-book mutual exclusion point: it refuses to start a
    pass for a book that already has one running.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # Key: "{book_type}:{book_id}"
        self._states: dict[str, AggregationState] = {}

    def try_start(self, book_type: BookType, book_id: int) -> bool:
        """Mark a book as being aggregated; False if a pass is already running."""
        key = storage_key(book_type, book_id)
        with self._lock:
            current = self._states.get(key)
            if current is not None and current.status == AggregationStatus.RUNNING:
                return False
            self._states[key] = AggregationState(book_type=book_type, book_id=book_id)
        logger.debug(f"Registered aggregation: {key}")
        return True

    def mark_completed(self, book_type: BookType, book_id: int) -> None:
        key = storage_key(book_type, book_id)
        with self._lock:
            state = self._states.get(key)
            if state is not None:
                state.status = AggregationStatus.COMPLETED
                state.finished_at = time.time()

    def mark_failed(self, book_type: BookType, book_id: int, error: str) -> None:
        key = storage_key(book_type, book_id)
        with self._lock:
            state = self._states.get(key)
            if state is not None:
                state.status = AggregationStatus.FAILED
                state.finished_at = time.time()
                state.error_message = error
        logger.warning(f"Aggregation failed: {key}: {error}")

    def is_running(self, book_type: BookType, book_id: int) -> bool:
        key = storage_key(book_type, book_id)
        with self._lock:
            state = self._states.get(key)
            return state is not None and state.status == AggregationStatus.RUNNING

    def get_state(self, book_type: BookType, book_id: int) -> AggregationState | None:
        key = storage_key(book_type, book_id)
        with self._lock:
            return self._states.get(key)

    def running(self) -> list[AggregationState]:
        with self._lock:
            return [
                state
                for state in self._states.values()
                if state.status == AggregationStatus.RUNNING
            ]
