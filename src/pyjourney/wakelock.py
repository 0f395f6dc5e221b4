"""Screen wake-lock ownership tied to the trip-active state."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

from pyjourney.exceptions import WakeLockUnsupportedError

_logger = logging.getLogger(__name__)


class WakeLockSentinel(Protocol):
    """Handle for one granted wake lock."""

    @property
    def released(self) -> bool: ...

    def add_release_listener(self, listener: Callable[[], None]) -> None: ...

    async def release(self) -> None: ...


class WakeLockProvider(Protocol):
    """Platform wake-lock capability.

    ``request`` raises :class:`WakeLockUnsupportedError` on platforms
    without a screen wake lock.
    """

    async def request(self) -> WakeLockSentinel: ...


class UnsupportedWakeLockProvider:
    """Provider for platforms without a wake lock; every request reports unsupported."""

    async def request(self) -> WakeLockSentinel:
        raise WakeLockUnsupportedError("Screen wake lock is not available on this platform")


class AcquireResult(StrEnum):
    ACQUIRED = "acquired"
    ALREADY_HELD = "already_held"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WakeLockManager:
    """Owns at most one wake-lock handle.

    The handle is nulled as soon as the platform revokes it (for example
    when the user switches app), and :meth:`on_visibility_change` takes it
    back once the page is visible again while a trip is still active.
    """

    def __init__(
        self,
        provider: WakeLockProvider | None = None,
        *,
        is_trip_active: Callable[[], bool] = lambda: False,
    ) -> None:
        self._provider = provider or UnsupportedWakeLockProvider()
        self._is_trip_active = is_trip_active
        self._sentinel: WakeLockSentinel | None = None
        self._pending: asyncio.Future[AcquireResult] | None = None
        self._generation = 0

    @property
    def is_held(self) -> bool:
        sentinel = self._sentinel
        if sentinel is not None and sentinel.released:
            self._sentinel = None
        return self._sentinel is not None

    async def acquire(self) -> AcquireResult:
        """Request the wake lock; never raises.

        Concurrent callers share the in-flight request so at most one
        handle is ever granted.
        """
        if self.is_held:
            return AcquireResult.ALREADY_HELD
        if self._pending is not None:
            return await asyncio.shield(self._pending)

        loop = asyncio.get_running_loop()
        pending: asyncio.Future[AcquireResult] = loop.create_future()
        self._pending = pending
        try:
            result = await self._request()
        except BaseException:
            pending.cancel()
            raise
        finally:
            self._pending = None
        pending.set_result(result)
        return result

    async def _request(self) -> AcquireResult:
        generation = self._generation
        try:
            sentinel = await self._provider.request()
        except WakeLockUnsupportedError:
            _logger.debug("Wake lock unsupported on this platform")
            return AcquireResult.UNSUPPORTED
        except Exception:
            _logger.warning("Wake lock request failed", exc_info=True)
            return AcquireResult.FAILED

        if generation != self._generation:
            # release() ran while the request was in flight.
            _logger.debug("Wake lock granted after release was requested; dropping it")
            await self._release_sentinel(sentinel)
            return AcquireResult.CANCELLED

        def _on_release() -> None:
            if self._sentinel is sentinel:
                _logger.debug("Wake lock released by the platform")
                self._sentinel = None

        sentinel.add_release_listener(_on_release)
        self._sentinel = sentinel
        _logger.debug("Wake lock acquired")
        return AcquireResult.ACQUIRED

    async def release(self) -> None:
        """Release the wake lock if held; releasing twice is a no-op."""
        self._generation += 1
        sentinel = self._sentinel
        self._sentinel = None
        if sentinel is None:
            return
        await self._release_sentinel(sentinel)

    @staticmethod
    async def _release_sentinel(sentinel: WakeLockSentinel) -> None:
        if sentinel.released:
            return
        try:
            await sentinel.release()
            _logger.debug("Wake lock released")
        except Exception:
            _logger.warning("Wake lock release failed", exc_info=True)

    async def on_visibility_change(self, visible: bool) -> AcquireResult | None:
        """Re-acquire after the page becomes visible, only while a trip is active."""
        if not visible or not self._is_trip_active() or self.is_held:
            return None
        _logger.debug("Page visible again with an active trip; re-acquiring wake lock")
        return await self.acquire()
