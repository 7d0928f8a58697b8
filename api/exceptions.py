"""Custom exception classes for structured API error handling."""

from __future__ import annotations


class AppError(Exception):
    """Base application error with an associated HTTP status code."""

    status_code: int = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404


class ValidationError(AppError):
    status_code = 400


class ConflictError(AppError):
    status_code = 409


# ---------------------------------------------------------------------------
# SKU engine errors
# ---------------------------------------------------------------------------


class InvalidComponentError(ValidationError):
    """A SKU field is empty or contains characters outside [A-Z0-9]."""


class ReferenceNotFoundError(NotFoundError):
    """A brand or category reference could not be resolved."""


class MissingCodeError(AppError):
    """The brand or category exists but has no short code configured."""

    status_code = 422


class SKUExhaustedError(AppError):
    """No unique SKU was found within the retry budget.

    Fatal for the current request. Retrying the whole operation later is safe.
    """

    status_code = 503


class ReservationConflictError(ConflictError):
    """The SKU is already reserved, or reserved by a different holder."""
