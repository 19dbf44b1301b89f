# btu_api/errors.py
"""
Application error taxonomy.

Every error carries an HTTP status and a stable machine-readable tag. The
exception handlers in main.py render them as {"message": ..., "error": ...};
backend exception text never reaches the client.
"""


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    error: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Client input is malformed or incomplete."""

    status_code = 400
    error = "validation_error"
    default_message = "Invalid request"


class NotFoundError(AppError):
    """Referenced record does not exist."""

    status_code = 404
    error = "not_found"
    default_message = "Not found"


class StoreError(AppError):
    """Relational database failure."""

    status_code = 500
    error = "store_error"
    default_message = "Database error"
