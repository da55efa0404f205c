"""SEOPULSE — Error Taxonomy.

Fetch errors carry an ErrorKind so the collector can turn them into a tagged
failure result instead of letting them escape to the reconciler.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Why an upstream call failed."""

    TRANSIENT = "transient"  # Network, timeout, 429, 5xx — retry later
    AUTHORIZATION = "authorization"  # Credentials rejected for this property
    NOT_FOUND = "not_found"  # Property not registered upstream
    VALIDATION = "validation"  # Malformed response or invalid request


class SeoPulseError(Exception):
    """Base class for all SEOPULSE errors."""


class FetchError(SeoPulseError):
    """Raised when the analytics source cannot return data."""

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class TransientFetchError(FetchError):
    kind = ErrorKind.TRANSIENT


class AuthorizationError(FetchError):
    kind = ErrorKind.AUTHORIZATION


class NotFoundError(FetchError):
    kind = ErrorKind.NOT_FOUND


class ValidationError(FetchError):
    kind = ErrorKind.VALIDATION


class EnrichmentError(SeoPulseError):
    """Raised when an AI provider fails or returns unusable output."""


class JobAlreadyRunningError(SeoPulseError):
    """Raised when a scheduled job is triggered while a run is in progress."""


class SiteRegistryError(SeoPulseError):
    """Raised for duplicate domains, bad analytics references or unknown sites."""


class DeliveryError(SeoPulseError):
    """Raised when a report cannot be handed to the delivery collaborator."""


def error_for_status(status_code: int, message: str) -> FetchError:
    """Map an upstream HTTP status to the error taxonomy."""
    if status_code in (401, 403):
        return AuthorizationError(message, status_code)
    if status_code == 404:
        return NotFoundError(message, status_code)
    if status_code == 429 or status_code >= 500:
        return TransientFetchError(message, status_code)
    return ValidationError(message, status_code)
