"""Custom exception hierarchy for pyjourney."""

from __future__ import annotations


class JourneyError(Exception):
    """Base exception for all pyjourney errors."""


class JourneyConfigError(JourneyError):
    """Invalid or missing configuration."""


class PreconditionError(JourneyError):
    """An operation was attempted in a state that does not allow it.

    Raised by the trip controller when a trip is started without a selected
    destination, a known current location or a user, and when an operation
    is issued against the wrong lifecycle state.
    """


class LocationSdkError(JourneyError):
    """Location SDK call failed.

    ``status`` carries the raw status string reported by the SDK (e.g.
    ``ERROR_PERMISSIONS``) so callers can log the unclassified value.
    """

    def __init__(
        self,
        message: str,
        *,
        status: str = "",
        operation: str = "",
    ) -> None:
        self.status = status
        self.operation = operation
        super().__init__(message)


class NotInitializedError(LocationSdkError):
    """An adapter call was made before ``initialize`` succeeded."""


class PermissionDeniedError(LocationSdkError):
    """Location permission withheld by the platform."""


class LocationUnavailableError(LocationSdkError):
    """The SDK could not resolve a location fix."""


class LocationTimeoutError(LocationSdkError):
    """A fix or trip call exceeded the configured timeout."""


class ServiceUnavailableError(LocationSdkError):
    """The SDK backend temporarily rejects calls (network, quota, billing)."""


class SdkConfigurationError(LocationSdkError, JourneyConfigError):
    """Invalid or missing SDK publishable key."""


class WakeLockUnsupportedError(JourneyError):
    """The platform offers no screen wake-lock."""


class BackendSyncError(JourneyError):
    """Backend REST failure (network, non-2xx, invalid JSON, ``success: false``)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


def describe_error(exc: BaseException) -> str:
    """Return the user-facing message for an engine failure."""
    if isinstance(exc, NotInitializedError):
        return "Location services are not ready yet. Please try again."
    if isinstance(exc, PermissionDeniedError):
        return "Location permission denied. Please enable location access."
    if isinstance(exc, LocationUnavailableError):
        return "Unable to get location. Please enable GPS."
    if isinstance(exc, LocationTimeoutError):
        return "Location request timed out. Still trying..."
    if isinstance(exc, ServiceUnavailableError):
        return "Location service is temporarily unavailable."
    if isinstance(exc, JourneyConfigError):
        return "Location service is not configured correctly. Please contact support."
    if isinstance(exc, LocationSdkError):
        return f"Location error: {exc}"
    if isinstance(exc, BackendSyncError):
        return f"Server sync failed: {exc}"
    if isinstance(exc, PreconditionError):
        return str(exc)
    return "Something went wrong. Please try again."
