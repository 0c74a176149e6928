"""Custom exception hierarchy for rentalsync."""

from typing import Any


class RentalSyncError(Exception):
    """Base exception for all rentalsync errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ----- Configuration Errors -----


class ConfigurationError(RentalSyncError):
    """Settings are missing or malformed (e.g., key material)."""

    pass


# ----- Encryption Errors -----


class InvalidPlaintextError(RentalSyncError, TypeError):
    """encrypt() was called with something other than a string.

    This is a caller bug, never bad data.
    """

    def __init__(self, value: object) -> None:
        super().__init__(
            message=(
                f"encrypt() received invalid input: {type(value).__name__} ({value!r}). "
                "Expected str."
            ),
            details={"received_type": type(value).__name__},
        )


# ----- Authorization Errors -----


class UnauthorizedError(RentalSyncError):
    """Caller is not allowed to trigger this operation."""

    pass


# ----- Search Backend Errors -----


class SearchBackendError(RentalSyncError):
    """Error from the external search backend."""

    def __init__(
        self,
        message: str,
        *,
        backend: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.backend = backend
        self.status_code = status_code
        super().__init__(
            message,
            details={"backend": backend, "status_code": status_code, **(details or {})},
        )


class SearchBackendUnavailableError(SearchBackendError):
    """Transient failure: unreachable, timed out, throttled or 5xx. Safe to retry."""

    pass


class SearchRequestError(SearchBackendError):
    """The backend rejected the request (4xx). Retrying will not help."""

    pass
