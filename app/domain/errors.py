"""Domain exceptions raised by the trip handlers.

Each class carries the HTTP status it maps to; ``app.main`` installs a single
exception handler that renders them as ``{"detail": message}``.
"""

from __future__ import annotations


class TripServiceError(Exception):
    """Base exception for all trip service errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(TripServiceError):
    status_code = 404


class PermissionDeniedError(TripServiceError):
    status_code = 403


class InvalidOperationError(TripServiceError):
    status_code = 400
