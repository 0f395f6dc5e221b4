"""Fixed-interval location sampling loop and polyline accumulation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from pyjourney._constants import DEFAULT_SAMPLE_INTERVAL
from pyjourney.models.events import GeofenceEvent
from pyjourney.models.location import LocationSample, RoutePoint, TrackResult

_logger = logging.getLogger(__name__)

LocationUpdateCallback = Callable[[LocationSample, dict[str, Any], tuple[GeofenceEvent, ...]], None]
PolylineUpdateCallback = Callable[[list[RoutePoint], list[LocationSample]], None]
ErrorCallback = Callable[[Exception], None]


class SampleSource(Protocol):
    """Anything that can take one tracked sample (the SDK adapter in production)."""

    async def track_once(self, options: Mapping[str, Any] | None = None) -> TrackResult: ...


@dataclass(frozen=True)
class PolylineSnapshot:
    """Copy of the sampler's accumulated state."""

    polyline: list[RoutePoint]
    points: list[LocationSample]


class PolylineSampler:
    """Drive ``track_once`` on a fixed interval and accumulate the travelled polyline.

    Ticks are independent of sample completion: a slow sample never delays
    the next tick, so samples may overlap. Every sample is tagged with a
    monotonically increasing sequence number and a resolution older than
    the newest applied one is discarded. Once :meth:`stop` has been called,
    samples still in flight may complete but invoke no callback.
    """

    def __init__(
        self,
        source: SampleSource,
        *,
        interval: float = DEFAULT_SAMPLE_INTERVAL,
        track_options: Mapping[str, Any] | None = None,
        on_location_update: LocationUpdateCallback | None = None,
        on_polyline_update: PolylineUpdateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._source = source
        self._interval = interval
        self._track_options: dict[str, Any] = dict(track_options or {})
        self._on_location_update = on_location_update
        self._on_polyline_update = on_polyline_update
        self._on_error = on_error

        self._points: list[LocationSample] = []
        self._polyline: list[RoutePoint] = []
        self._running = False
        self._run_id = 0
        self._issued_seq = 0
        self._applied_seq = 0
        self._ticker: asyncio.Task[None] | None = None
        self._in_flight: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def sample_count(self) -> int:
        """Number of samples applied to the polyline."""
        return len(self._points)

    @property
    def track_options(self) -> dict[str, Any]:
        return dict(self._track_options)

    @track_options.setter
    def track_options(self, options: Mapping[str, Any]) -> None:
        self._track_options = dict(options)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Clear accumulated state, sample immediately and then every interval.

        A no-op while already running; accumulated points are kept.
        """
        if self._running:
            _logger.debug("Sampler already running; start() ignored")
            return
        self._points.clear()
        self._polyline.clear()
        self._launch()

    def resume(self) -> None:
        """Restart the loop without clearing accumulated points."""
        if self._running:
            return
        self._launch()

    def stop(self) -> None:
        """Cancel the schedule; callbacks of in-flight samples are suppressed."""
        if not self._running:
            return
        self._running = False
        self._run_id += 1
        ticker = self._ticker
        self._ticker = None
        if ticker is not None and not ticker.done():
            ticker.cancel()
        _logger.debug("Sampler stopped with %d sample(s) in flight", len(self._in_flight))

    async def wait_idle(self) -> None:
        """Wait until every in-flight sample has settled."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def export(self) -> PolylineSnapshot:
        """Snapshot of the polyline and the samples behind it (both copies)."""
        return PolylineSnapshot(polyline=list(self._polyline), points=list(self._points))

    # ------------------------------------------------------------------
    # Loop internals
    # ------------------------------------------------------------------

    def _launch(self) -> None:
        loop = asyncio.get_running_loop()
        self._running = True
        self._run_id += 1
        run_id = self._run_id
        _logger.debug("Sampler started interval=%ss run=%d", self._interval, run_id)
        self._issue_sample(run_id)
        self._ticker = loop.create_task(self._tick(run_id))

    async def _tick(self, run_id: int) -> None:
        with contextlib.suppress(asyncio.CancelledError):
            while self._is_current(run_id):
                await asyncio.sleep(self._interval)
                if not self._is_current(run_id):
                    return
                self._issue_sample(run_id)

    def _issue_sample(self, run_id: int) -> None:
        self._issued_seq += 1
        seq = self._issued_seq
        task = asyncio.get_running_loop().create_task(self._sample(seq, run_id))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    def _is_current(self, run_id: int) -> bool:
        return self._running and run_id == self._run_id

    async def _sample(self, seq: int, run_id: int) -> None:
        try:
            result = await self._source.track_once(self._track_options)
        except Exception as exc:
            if not self._is_current(run_id):
                _logger.debug("Discarding failure of sample #%d from a stopped run", seq)
                return
            _logger.debug("Sample #%d failed: %s", seq, exc)
            self._invoke("on_error", self._on_error, exc)
            return

        if not self._is_current(run_id):
            _logger.debug("Discarding sample #%d from a stopped run", seq)
            return
        if seq < self._applied_seq:
            _logger.debug("Discarding out-of-order sample #%d (newest applied #%d)", seq, self._applied_seq)
            return
        self._applied_seq = seq

        sample = result.location
        self._points.append(sample)
        self._polyline.append(sample.point)

        self._invoke("on_location_update", self._on_location_update, sample, dict(result.user), result.events)
        # A location callback may have stopped the sampler.
        if not self._is_current(run_id):
            return
        self._invoke("on_polyline_update", self._on_polyline_update, list(self._polyline), list(self._points))

    @staticmethod
    def _invoke(name: str, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            _logger.exception("Sampler %s callback failed", name)
