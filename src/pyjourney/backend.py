"""REST client for the backend trip record.

Every backend response is a JSON envelope ``{"success": bool, "data": ..., "error": ...}``.
Transport failures (timeouts included), non-2xx statuses, undecodable or invalid JSON,
``success: false`` and payloads that do not match the expected shape all surface as
:class:`~pyjourney.exceptions.BackendSyncError`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from pyjourney._redact import redact_for_log
from pyjourney.config import JourneyConfig
from pyjourney.exceptions import BackendSyncError, JourneyError
from pyjourney.models.backend import RouteEstimate, StartTripResult, TripSnapshot

_logger = logging.getLogger(__name__)


class BackendSync(Protocol):
    """Structural interface of the backend trip API.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`BackendSyncClient`) concrete.
    """

    async def start_trip(
        self,
        *,
        user_id: str,
        dealer_id: str,
        latitude: float,
        longitude: float,
        sdk_trip_id: str | None,
        external_id: str,
    ) -> StartTripResult: ...

    async def patch_trip(self, journey_id: str, *, destination_geofence_external_id: str, status: str) -> None: ...

    async def finish_trip(self, journey_id: str) -> None: ...

    async def get_trip(self, journey_id: str) -> TripSnapshot: ...

    async def get_trip_route(self, journey_id: str) -> RouteEstimate: ...


def _trip_path(journey_id: str, suffix: str = "") -> str:
    return f"/trips/{quote(str(journey_id), safe='')}{suffix}"


class BackendSyncClient:
    """aiohttp implementation of :class:`BackendSync`.

    Usage::

        async with BackendSyncClient(config) as backend:
            started = await backend.start_trip(...)
    """

    def __init__(
        self,
        config: JourneyConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BackendSyncClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
        self._http_session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise JourneyError("Backend client not initialized. Use 'async with BackendSyncClient(...) as backend:'")
        return self._http_session

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request and return the envelope's ``data`` member."""
        http = self._require_session()
        url = f"{self._config.base_url.rstrip('/')}{endpoint}"
        headers: dict[str, str] = {"accept": "application/json"}
        if self._config.api_token:
            headers["authorization"] = f"Bearer {self._config.api_token}"

        _logger.debug("%s %s body=%s", method, url, redact_for_log(payload))

        try:
            async with http.request(method, url, json=payload, headers=headers) as resp:
                raw = await resp.read()
                status = resp.status
                charset = resp.charset or "utf-8"
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise BackendSyncError(f"Request to {endpoint} failed: {exc!r}", endpoint=endpoint) from exc

        try:
            text = raw.decode(charset)
        except (UnicodeDecodeError, LookupError) as exc:
            raise BackendSyncError(
                f"Undecodable {charset} body from {endpoint}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        try:
            body = json.loads(text) if text.strip() else None
        except json.JSONDecodeError as exc:
            if not 200 <= status < 300:
                raise BackendSyncError(
                    f"HTTP {status} from {endpoint}: {text[:200]}",
                    status_code=status,
                    endpoint=endpoint,
                ) from exc
            raise BackendSyncError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        error_text = body.get("error") if isinstance(body, dict) else None
        if not 200 <= status < 300:
            detail = error_text or text[:200]
            raise BackendSyncError(f"HTTP {status} from {endpoint}: {detail}", status_code=status, endpoint=endpoint)

        if not isinstance(body, dict):
            raise BackendSyncError(f"Response from {endpoint} is not a JSON object", status_code=status, endpoint=endpoint)
        if body.get("success") is not True:
            raise BackendSyncError(
                f"{endpoint} failed: {error_text or 'request was not successful'}",
                status_code=status,
                endpoint=endpoint,
            )

        _logger.debug("%s %s -> %s", method, endpoint, redact_for_log(body))
        return body.get("data")

    @staticmethod
    def _require_object(endpoint: str, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise BackendSyncError(f"Response from {endpoint} is missing its data object", endpoint=endpoint)
        return data

    # ------------------------------------------------------------------
    # Trip endpoints
    # ------------------------------------------------------------------

    async def start_trip(
        self,
        *,
        user_id: str,
        dealer_id: str,
        latitude: float,
        longitude: float,
        sdk_trip_id: str | None,
        external_id: str,
    ) -> StartTripResult:
        """Create the backend trip record."""
        endpoint = "/trips/start"
        data = await self._request(
            "POST",
            endpoint,
            payload={
                "userId": user_id,
                "dealerId": dealer_id,
                "lat": latitude,
                "lng": longitude,
                "sdkTripId": sdk_trip_id,
                "externalId": external_id,
            },
        )
        if data is None:
            return StartTripResult()
        try:
            return StartTripResult.model_validate(self._require_object(endpoint, data))
        except ValidationError as exc:
            raise BackendSyncError(f"Malformed response from {endpoint}: {exc}", endpoint=endpoint) from exc

    async def patch_trip(self, journey_id: str, *, destination_geofence_external_id: str, status: str) -> None:
        """Point the backend trip at a new destination."""
        await self._request(
            "PATCH",
            _trip_path(journey_id),
            payload={
                "destinationGeofenceExternalId": destination_geofence_external_id,
                "status": status,
            },
        )

    async def finish_trip(self, journey_id: str) -> None:
        """Mark the backend trip as finished."""
        await self._request("POST", f"/trips/finish/{quote(str(journey_id), safe='')}")

    async def get_trip(self, journey_id: str) -> TripSnapshot:
        """Fetch the backend's cached copy of the SDK trip."""
        endpoint = _trip_path(journey_id)
        data = await self._request("GET", endpoint)
        try:
            return TripSnapshot.model_validate(self._require_object(endpoint, data))
        except ValidationError as exc:
            raise BackendSyncError(f"Malformed response from {endpoint}: {exc}", endpoint=endpoint) from exc

    async def get_trip_route(self, journey_id: str) -> RouteEstimate:
        """Fetch the remaining route: distance, duration and geometry."""
        endpoint = _trip_path(journey_id, "/route")
        data = await self._request("GET", endpoint)
        try:
            return RouteEstimate.model_validate(self._require_object(endpoint, data))
        except ValidationError as exc:
            raise BackendSyncError(f"Malformed response from {endpoint}: {exc}", endpoint=endpoint) from exc
