"""
Annotation error taxonomy.

Services raise these; the HTTP layer maps each class to a status code.
"""


class AnnotationError(Exception):
    """Base class for all annotation service errors"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AnnotationError):
    """Malformed offsets, empty text or an unknown paragraph"""

    status_code = 400


class NotFoundError(AnnotationError):
    """The referenced underline does not exist (for this user)"""

    status_code = 404


class ForbiddenError(AnnotationError):
    """Attempt to modify another user's underline"""

    status_code = 403


class AggregationError(AnnotationError):
    """A single book's aggregation pass failed"""

    status_code = 503

    def __init__(self, message: str, book_type: str | None = None, book_id: int | None = None):
        super().__init__(message)
        self.book_type = book_type
        self.book_id = book_id
