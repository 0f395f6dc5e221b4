from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from pyjourney.config import JourneyConfig, SdkOptions

SdkCallback = Callable[[str, Mapping[str, Any] | None], None]
Reply = tuple[str, dict[str, Any] | None] | None


class FakeSdk:
    """Callback-style location SDK double.

    Replies are queued per operation with :meth:`queue`; :meth:`defer` keeps
    the callback in :attr:`deferred` so a test can fire it later. Without a
    queued reply every operation succeeds with a default payload.
    """

    def __init__(self) -> None:
        self.initialized: tuple[str, dict[str, Any]] | None = None
        self.user_id: str | None = None
        self.calls: list[tuple[str, Any]] = []
        self.replies: dict[str, list[Reply]] = defaultdict(list)
        self.deferred: dict[str, list[SdkCallback]] = defaultdict(list)
        self.location: dict[str, Any] = {"latitude": 52.3702, "longitude": 4.8952, "accuracy": 12.0}
        self.supports_permissions = True

    def queue(self, operation: str, status: str = "SUCCESS", result: dict[str, Any] | None = None) -> None:
        self.replies[operation].append((status, result))

    def defer(self, operation: str) -> None:
        self.replies[operation].append(None)

    def _reply(self, operation: str, callback: SdkCallback, default: dict[str, Any]) -> None:
        queued = self.replies[operation]
        reply = queued.pop(0) if queued else ("SUCCESS", default)
        if reply is None:
            self.deferred[operation].append(callback)
            return
        callback(*reply)

    def initialize(self, key: str, options: Mapping[str, Any]) -> None:
        self.initialized = (key, dict(options))

    def set_user_id(self, user_id: str) -> None:
        self.user_id = user_id

    def get_location(self, callback: SdkCallback) -> None:
        self.calls.append(("get_location", None))
        self._reply("get_location", callback, {"location": dict(self.location)})

    def track_once(self, options: Mapping[str, Any], callback: SdkCallback) -> None:
        self.calls.append(("track_once", dict(options)))
        self._reply(
            "track_once",
            callback,
            {"location": dict(self.location), "events": [], "user": {"_id": "sdk-user"}},
        )

    def start_trip(self, options: Mapping[str, Any], callback: SdkCallback) -> None:
        self.calls.append(("start_trip", dict(options)))
        self._reply(
            "start_trip",
            callback,
            {"trip": {"_id": "sdk-trip-1", "externalId": options.get("externalId"), "status": "started"}},
        )

    def update_trip(self, options: Mapping[str, Any], callback: SdkCallback) -> None:
        self.calls.append(("update_trip", dict(options)))
        self._reply("update_trip", callback, {"trip": {"_id": "sdk-trip-1", "status": "started"}})

    def complete_trip(self, callback: SdkCallback) -> None:
        self.calls.append(("complete_trip", None))
        self._reply("complete_trip", callback, {"trip": {"_id": "sdk-trip-1", "status": "completed"}})

    def request_permissions(self, background: bool, callback: SdkCallback) -> None:
        if not self.supports_permissions:
            raise NotImplementedError("permissions")
        self.calls.append(("request_permissions", background))
        self._reply("request_permissions", callback, {"status": "GRANTED_FOREGROUND"})

    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeSentinel:
    def __init__(self) -> None:
        self.released = False
        self.release_calls = 0
        self._listeners: list[Callable[[], None]] = []

    def add_release_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    async def release(self) -> None:
        self.release_calls += 1
        self._mark_released()

    def revoke(self) -> None:
        """Simulate the platform dropping the lock (e.g. app switch)."""
        self._mark_released()

    def _mark_released(self) -> None:
        if self.released:
            return
        self.released = True
        for listener in list(self._listeners):
            listener()


class FakeWakeLockProvider:
    def __init__(self) -> None:
        self.sentinels: list[FakeSentinel] = []
        self.gate: asyncio.Future[None] | None = None
        self.error: Exception | None = None

    @property
    def requests(self) -> int:
        return len(self.sentinels)

    async def request(self) -> FakeSentinel:
        sentinel = FakeSentinel()
        self.sentinels.append(sentinel)
        if self.gate is not None:
            await self.gate
        if self.error is not None:
            raise self.error
        return sentinel


@pytest.fixture
def sdk() -> FakeSdk:
    return FakeSdk()


@pytest.fixture
def wake_lock_provider() -> FakeWakeLockProvider:
    return FakeWakeLockProvider()


@pytest.fixture
def config() -> JourneyConfig:
    return JourneyConfig(
        base_url="http://backend.test/api",
        sdk_key="prj_test_pk_123",
        api_token="backend-token",
        sample_interval=3600.0,
        trip_start_ack_timeout=0.05,
        sdk=SdkOptions(timeout=1.0),
    )
