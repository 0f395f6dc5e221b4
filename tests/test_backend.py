from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from pyjourney.backend import BackendSyncClient
from pyjourney.config import JourneyConfig
from pyjourney.exceptions import BackendSyncError, JourneyError
from pyjourney.models.location import RoutePoint


class _FakeBackend:
    """In-process stand-in for the CRM trip endpoints."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.start_response: Any = {"success": True, "data": {"journeyId": "J1", "dbJourneyId": "db-1"}}
        self.finish_status = 200
        self.finish_body: bytes | None = None
        self.finish_delay = 0.0

    async def _record(self, request: web.Request) -> None:
        body = await request.json() if request.can_read_body else None
        self.requests.append(
            {
                "method": request.method,
                "path": request.path,
                "raw_path": request.raw_path,
                "auth": request.headers.get("Authorization"),
                "body": body,
            }
        )

    async def start(self, request: web.Request) -> web.Response:
        await self._record(request)
        if isinstance(self.start_response, str):
            return web.Response(text=self.start_response, content_type="text/plain")
        return web.json_response(self.start_response)

    async def patch(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response({"success": True})

    async def finish(self, request: web.Request) -> web.Response:
        await self._record(request)
        if self.finish_delay:
            await asyncio.sleep(self.finish_delay)
        if self.finish_body is not None:
            return web.Response(body=self.finish_body, content_type="application/json", charset="utf-8")
        if self.finish_status != 200:
            return web.json_response({"success": False, "error": "Trip not found"}, status=self.finish_status)
        return web.json_response({"success": True, "data": {"status": "completed"}})

    async def get_trip(self, request: web.Request) -> web.Response:
        await self._record(request)
        return web.json_response(
            {
                "success": True,
                "data": {"_id": "db-1", "radarTrip": {"status": "started", "distance": {"value": 800}}},
            }
        )

    async def get_route(self, request: web.Request) -> web.Response:
        await self._record(request)
        if request.match_info["journey_id"] == "missing":
            return web.json_response({"success": False, "error": "Route unavailable"})
        return web.json_response(
            {
                "success": True,
                "data": {
                    "distance": {"value": 1500},
                    "duration": {"value": 300},
                    "geometry": {"type": "LineString", "coordinates": [[4.89, 52.37], [4.9, 52.38]]},
                },
            }
        )

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/trips/start", self.start)
        app.router.add_post("/api/trips/finish/{journey_id}", self.finish)
        app.router.add_get("/api/trips/{journey_id}/route", self.get_route)
        app.router.add_get("/api/trips/{journey_id}", self.get_trip)
        app.router.add_patch("/api/trips/{journey_id}", self.patch)
        return app


@contextlib.asynccontextmanager
async def _client(
    backend: _FakeBackend,
    api_token: str | None = "backend-token",
    session: aiohttp.ClientSession | None = None,
) -> AsyncIterator[BackendSyncClient]:
    server = TestServer(backend.app())
    await server.start_server()
    try:
        config = JourneyConfig(base_url=f"{server.make_url('/api')}/", sdk_key="pk", api_token=api_token)
        async with BackendSyncClient(config, session=session) as client:
            yield client
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_start_trip_posts_origin_and_ids() -> None:
    backend = _FakeBackend()
    async with _client(backend) as client:
        result = await client.start_trip(
            user_id="u1",
            dealer_id="D1",
            latitude=52.37,
            longitude=4.89,
            sdk_trip_id=None,
            external_id="u1-1700000000000",
        )

    assert result.journey_id == "J1"
    assert result.db_journey_id == "db-1"
    request = backend.requests[0]
    assert request["auth"] == "Bearer backend-token"
    assert request["body"] == {
        "userId": "u1",
        "dealerId": "D1",
        "lat": 52.37,
        "lng": 4.89,
        "sdkTripId": None,
        "externalId": "u1-1700000000000",
    }


@pytest.mark.asyncio
async def test_start_trip_without_data_returns_empty_result() -> None:
    backend = _FakeBackend()
    backend.start_response = {"success": True}
    async with _client(backend, api_token=None) as client:
        result = await client.start_trip(
            user_id="u1", dealer_id="D1", latitude=0.0, longitude=0.0, sdk_trip_id="s1", external_id="u1-1"
        )

    assert result.journey_id is None
    assert backend.requests[0]["auth"] is None


@pytest.mark.asyncio
async def test_success_false_carries_server_error() -> None:
    backend = _FakeBackend()
    backend.start_response = {"success": False, "error": "Dealer not found"}
    async with _client(backend) as client:
        with pytest.raises(BackendSyncError, match="Dealer not found") as exc_info:
            await client.start_trip(
                user_id="u1", dealer_id="D9", latitude=0.0, longitude=0.0, sdk_trip_id=None, external_id="u1-1"
            )

    assert exc_info.value.endpoint == "/trips/start"
    assert exc_info.value.status_code == 200


@pytest.mark.asyncio
async def test_invalid_json_is_backend_error() -> None:
    backend = _FakeBackend()
    backend.start_response = "<html>gateway</html>"
    async with _client(backend) as client:
        with pytest.raises(BackendSyncError, match="Invalid JSON"):
            await client.start_trip(
                user_id="u1", dealer_id="D1", latitude=0.0, longitude=0.0, sdk_trip_id=None, external_id="u1-1"
            )


@pytest.mark.asyncio
async def test_patch_trip_sends_destination_and_status() -> None:
    backend = _FakeBackend()
    async with _client(backend) as client:
        await client.patch_trip("J 1/x", destination_geofence_external_id="D2", status="destination_updated")

    request = backend.requests[0]
    assert request["method"] == "PATCH"
    assert request["raw_path"] == "/api/trips/J%201%2Fx"
    assert request["body"] == {"destinationGeofenceExternalId": "D2", "status": "destination_updated"}


@pytest.mark.asyncio
async def test_finish_trip_non_2xx_has_status_code() -> None:
    backend = _FakeBackend()
    backend.finish_status = 404
    async with _client(backend) as client:
        with pytest.raises(BackendSyncError, match="Trip not found") as exc_info:
            await client.finish_trip("J1")

    assert exc_info.value.status_code == 404
    assert exc_info.value.endpoint == "/trips/finish/J1"


@pytest.mark.asyncio
async def test_undecodable_body_is_backend_error() -> None:
    backend = _FakeBackend()
    backend.finish_body = b'{"success": true, "data": "\xff\xfe"}'
    async with _client(backend) as client:
        with pytest.raises(BackendSyncError, match="Undecodable") as exc_info:
            await client.finish_trip("J1")

    assert exc_info.value.status_code == 200
    assert exc_info.value.endpoint == "/trips/finish/J1"


@pytest.mark.asyncio
async def test_request_timeout_is_backend_error() -> None:
    backend = _FakeBackend()
    backend.finish_delay = 1.0
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=0.05)) as session:
        async with _client(backend, session=session) as client:
            with pytest.raises(BackendSyncError, match="failed") as exc_info:
                await client.finish_trip("J1")

    assert exc_info.value.status_code is None
    assert exc_info.value.endpoint == "/trips/finish/J1"


@pytest.mark.asyncio
async def test_get_trip_route_swaps_coordinates() -> None:
    backend = _FakeBackend()
    async with _client(backend) as client:
        route = await client.get_trip_route("J1")

    assert route.distance == 1500.0
    assert route.duration == 300.0
    assert route.geometry == (RoutePoint(52.37, 4.89), RoutePoint(52.38, 4.9))


@pytest.mark.asyncio
async def test_get_trip_route_failure_is_backend_error() -> None:
    backend = _FakeBackend()
    async with _client(backend) as client:
        with pytest.raises(BackendSyncError, match="Route unavailable"):
            await client.get_trip_route("missing")


@pytest.mark.asyncio
async def test_get_trip_reads_snapshot() -> None:
    backend = _FakeBackend()
    async with _client(backend) as client:
        snapshot = await client.get_trip("J1")

    assert snapshot.status == "started"
    assert snapshot.distance == 800.0
    assert snapshot.db_journey_id == "db-1"


@pytest.mark.asyncio
async def test_requests_outside_context_manager_fail() -> None:
    client = BackendSyncClient(JourneyConfig(base_url="http://backend.test", sdk_key="pk"))

    with pytest.raises(JourneyError, match="not initialized"):
        await client.finish_trip("J1")
