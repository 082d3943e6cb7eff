from typing import Annotated, Optional

from fastapi import Header, HTTPException, Path, Query

from ..models.annotations import SQLITE_INTEGER_MAX, SQLITE_INTEGER_MIN
from ..services.database_service import DatabaseService, get_db_service

__all__ = [
    "get_current_user_id",
    "get_db_service",
    "DatabaseService",
    "IntPath",
    "IndexPath",
    "OptionalIntQuery",
]

# Integer parameters bounded to what SQLite can store
IntPath = Annotated[int, Path(ge=SQLITE_INTEGER_MIN, le=SQLITE_INTEGER_MAX)]
IndexPath = Annotated[int, Path(ge=0, le=SQLITE_INTEGER_MAX)]
OptionalIntQuery = Annotated[
    Optional[int], Query(ge=SQLITE_INTEGER_MIN, le=SQLITE_INTEGER_MAX)
]


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Authenticated user id, supplied by the upstream auth layer.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()
