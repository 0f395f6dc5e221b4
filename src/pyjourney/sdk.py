"""Async facade over the callback-style location SDK.

The SDK reports every result through ``callback(status, result)``, possibly
from its own worker thread. :class:`LocationSdkAdapter` marshals those
callbacks back onto the running event loop, applies the configured read
timeout and classifies non-success statuses into the pyjourney error
taxonomy, so the rest of the engine only ever awaits one coroutine per
operation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from pydantic import ValidationError

from pyjourney._constants import SDK_STATUS_SUCCESS
from pyjourney._redact import redact_for_log
from pyjourney.config import SdkOptions
from pyjourney.exceptions import (
    LocationSdkError,
    LocationTimeoutError,
    LocationUnavailableError,
    NotInitializedError,
    PermissionDeniedError,
    SdkConfigurationError,
    ServiceUnavailableError,
)
from pyjourney.models.location import LocationSample, TrackResult
from pyjourney.models.trip import SdkTrip

_logger = logging.getLogger(__name__)

SdkCallback = Callable[[str, Mapping[str, Any] | None], None]

STATUS_UNSUPPORTED = "ERROR_UNSUPPORTED"

_STATUS_ERRORS: dict[str, type[LocationSdkError]] = {
    "ERROR_PERMISSIONS": PermissionDeniedError,
    "ERROR_LOCATION": LocationUnavailableError,
    "ERROR_TIMEOUT": LocationTimeoutError,
    "ERROR_NETWORK": ServiceUnavailableError,
    "ERROR_SERVER": ServiceUnavailableError,
    "ERROR_RATE_LIMIT": ServiceUnavailableError,
    "ERROR_PAYMENT_REQUIRED": ServiceUnavailableError,
    "ERROR_FORBIDDEN": ServiceUnavailableError,
    "ERROR_PUBLISHABLE_KEY": SdkConfigurationError,
    "ERROR_UNAUTHORIZED": SdkConfigurationError,
}


class LocationSdk(Protocol):
    """Structural interface of the external callback-based location SDK.

    Production code wraps the vendor SDK binding; tests pass a fake.
    """

    def initialize(self, key: str, options: Mapping[str, Any]) -> None: ...

    def set_user_id(self, user_id: str) -> None: ...

    def get_location(self, callback: SdkCallback) -> None: ...

    def track_once(self, options: Mapping[str, Any], callback: SdkCallback) -> None: ...

    def start_trip(self, options: Mapping[str, Any], callback: SdkCallback) -> None: ...

    def update_trip(self, options: Mapping[str, Any], callback: SdkCallback) -> None: ...

    def complete_trip(self, callback: SdkCallback) -> None: ...

    def request_permissions(self, background: bool, callback: SdkCallback) -> None: ...


def classify_sdk_status(status: str, message: str = "", *, operation: str = "") -> LocationSdkError:
    """Map an SDK status code to the matching :class:`LocationSdkError` subclass."""
    normalized = (status or "").strip().upper()
    error_cls = _STATUS_ERRORS.get(normalized, LocationSdkError)
    detail = f": {message}" if message else ""
    prefix = f"{operation} failed" if operation else "Location SDK call failed"
    return error_cls(f"{prefix} ({normalized or 'unknown status'}){detail}", status=normalized, operation=operation)


def _result_message(result: Mapping[str, Any] | None) -> str:
    if not isinstance(result, Mapping):
        return ""
    message = result.get("message") or result.get("error")
    return str(message) if message else ""


class LocationSdkAdapter:
    """Coroutine facade over a :class:`LocationSdk`.

    Usage::

        adapter = LocationSdkAdapter(sdk)
        adapter.initialize(config.sdk_key, config.sdk)
        sample = await adapter.get_current_location()
    """

    def __init__(self, sdk: LocationSdk) -> None:
        self._sdk = sdk
        self._options = SdkOptions()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        """Whether :meth:`initialize` has succeeded."""
        return self._initialized

    @property
    def options(self) -> SdkOptions:
        return self._options

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, key: str, options: SdkOptions | None = None) -> None:
        """Initialise the SDK once; repeated calls are logged and ignored."""
        if self._initialized:
            _logger.warning("Location SDK already initialized; ignoring repeated initialize()")
            return
        if not key or not key.strip():
            raise SdkConfigurationError(
                "Location SDK publishable key missing",
                status="ERROR_PUBLISHABLE_KEY",
                operation="initialize",
            )
        resolved = options or SdkOptions()
        sdk_options = resolved.to_sdk_options()
        _logger.debug("Initializing location SDK options=%s", redact_for_log(sdk_options))
        try:
            self._sdk.initialize(key.strip(), sdk_options)
        except Exception as exc:
            raise SdkConfigurationError(
                f"Location SDK initialization failed: {exc}",
                operation="initialize",
            ) from exc
        self._options = resolved
        self._initialized = True

    def set_user_id(self, user_id: str) -> None:
        """Associate subsequent samples with *user_id* for the SDK's analytics."""
        self._require_initialized("set_user_id")
        self._sdk.set_user_id(str(user_id))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_initialized(self, operation: str) -> None:
        if not self._initialized:
            raise NotInitializedError(
                f"{operation} called before the location SDK was initialized",
                status="ERROR_NOT_INITIALIZED",
                operation=operation,
            )

    async def _call(self, operation: str, invoke: Callable[[SdkCallback], None]) -> dict[str, Any]:
        """Run one callback-style SDK call and await its result."""
        self._require_initialized(operation)
        loop = asyncio.get_running_loop()
        future: asyncio.Future[dict[str, Any]] = loop.create_future()

        def _settle(status: str, result: Mapping[str, Any] | None) -> None:
            if future.done():
                # Late callback after a timeout; nothing is waiting any more.
                _logger.debug("Dropping late SDK callback for %s status=%s", operation, status)
                return
            if status == SDK_STATUS_SUCCESS:
                future.set_result(dict(result or {}))
            else:
                future.set_exception(classify_sdk_status(status, _result_message(result), operation=operation))

        def _callback(status: str, result: Mapping[str, Any] | None = None) -> None:
            try:
                loop.call_soon_threadsafe(_settle, status, result)
            except RuntimeError:
                _logger.debug("SDK callback for %s arrived after the event loop closed", operation)

        try:
            invoke(_callback)
        except (AttributeError, NotImplementedError) as exc:
            raise LocationSdkError(
                f"{operation} is not supported by this SDK build",
                status=STATUS_UNSUPPORTED,
                operation=operation,
            ) from exc
        except Exception as exc:
            raise LocationSdkError(f"{operation} failed: {exc}", status="ERROR_UNKNOWN", operation=operation) from exc

        timeout = self._options.timeout
        try:
            result = await asyncio.wait_for(future, timeout)
        except TimeoutError as exc:
            raise LocationTimeoutError(
                f"{operation} timed out after {timeout:g}s",
                status="ERROR_TIMEOUT",
                operation=operation,
            ) from exc
        _logger.debug("SDK %s result=%s", operation, redact_for_log(result))
        return result

    @staticmethod
    def _parse_location(operation: str, raw: Any) -> LocationSample:
        try:
            return LocationSample.model_validate(raw)
        except ValidationError as exc:
            raise LocationUnavailableError(
                f"{operation} returned no usable location",
                status="ERROR_LOCATION",
                operation=operation,
            ) from exc

    # ------------------------------------------------------------------
    # Location reads
    # ------------------------------------------------------------------

    async def get_current_location(self) -> LocationSample:
        """Resolve a single location fix."""
        result = await self._call("get_location", lambda cb: self._sdk.get_location(cb))
        return self._parse_location("get_location", result.get("location", result))

    async def track_once(self, options: Mapping[str, Any] | None = None) -> TrackResult:
        """Take one tracked sample; ``events`` may be empty."""
        track_options = dict(options or {})
        result = await self._call("track_once", lambda cb: self._sdk.track_once(track_options, cb))
        raw_events = result.get("events") or []
        raw_location = result.get("location")
        if isinstance(raw_location, dict):
            raw_location = {**raw_location, "events": raw_events}
        location = self._parse_location("track_once", raw_location)
        user = result.get("user")
        return TrackResult(
            location=location,
            user=user if isinstance(user, dict) else {},
            events=location.events,
        )

    # ------------------------------------------------------------------
    # Trip management (callers treat failures as non-fatal)
    # ------------------------------------------------------------------

    async def start_trip(self, options: Mapping[str, Any]) -> SdkTrip:
        trip_options = dict(options)
        result = await self._call("start_trip", lambda cb: self._sdk.start_trip(trip_options, cb))
        return SdkTrip.model_validate(result.get("trip") or {})

    async def update_trip(self, options: Mapping[str, Any]) -> SdkTrip:
        trip_options = dict(options)
        result = await self._call("update_trip", lambda cb: self._sdk.update_trip(trip_options, cb))
        return SdkTrip.model_validate(result.get("trip") or {})

    async def complete_trip(self) -> SdkTrip:
        result = await self._call("complete_trip", lambda cb: self._sdk.complete_trip(cb))
        return SdkTrip.model_validate(result.get("trip") or {})

    async def request_permissions(self, background: bool = False) -> bool:
        """Ask the platform for location permission.

        Returns ``False`` when the SDK build has no permission capability;
        a refusal raises :class:`PermissionDeniedError`.
        """
        try:
            await self._call("request_permissions", lambda cb: self._sdk.request_permissions(background, cb))
        except LocationSdkError as exc:
            if exc.status == STATUS_UNSUPPORTED:
                _logger.debug("Permission requests not supported by this SDK build")
                return False
            raise
        return True
