from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pytest

from pyjourney.exceptions import LocationTimeoutError
from pyjourney.models.location import LocationSample, RoutePoint, TrackResult
from pyjourney.sampler import PolylineSampler


def _result(lat: float, lng: float) -> TrackResult:
    return TrackResult(location=LocationSample(latitude=lat, longitude=lng), user={"_id": "sdk-user"})


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class _ManualSource:
    """Every ``track_once`` waits until the test resolves its future."""

    def __init__(self) -> None:
        self.pending: list[asyncio.Future[TrackResult]] = []
        self.options: list[dict[str, Any]] = []

    async def track_once(self, options: Mapping[str, Any] | None = None) -> TrackResult:
        self.options.append(dict(options or {}))
        future: asyncio.Future[TrackResult] = asyncio.get_running_loop().create_future()
        self.pending.append(future)
        return await future


class _CountingSource:
    """Answers immediately; call number ``fail_on`` raises a timeout."""

    def __init__(self, fail_on: int) -> None:
        self.calls = 0
        self.fail_on = fail_on

    async def track_once(self, options: Mapping[str, Any] | None = None) -> TrackResult:
        self.calls += 1
        if self.calls == self.fail_on:
            raise LocationTimeoutError("track_once timed out", status="ERROR_TIMEOUT", operation="track_once")
        return _result(52.0 + self.calls / 1000, 4.0)


class _Recorder:
    def __init__(self) -> None:
        self.locations: list[LocationSample] = []
        self.polylines: list[list[RoutePoint]] = []
        self.errors: list[Exception] = []

    def on_location(self, sample: LocationSample, user: dict[str, Any], events: tuple) -> None:
        self.locations.append(sample)

    def on_polyline(self, polyline: list[RoutePoint], points: list[LocationSample]) -> None:
        self.polylines.append(polyline)

    def on_error(self, exc: Exception) -> None:
        self.errors.append(exc)


def _sampler(source: Any, recorder: _Recorder, interval: float = 60.0) -> PolylineSampler:
    return PolylineSampler(
        source,
        interval=interval,
        track_options={"tripOptions": {"externalId": "u1-1"}},
        on_location_update=recorder.on_location,
        on_polyline_update=recorder.on_polyline,
        on_error=recorder.on_error,
    )


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PolylineSampler(_ManualSource(), interval=0)


@pytest.mark.asyncio
async def test_start_samples_immediately() -> None:
    source = _ManualSource()
    recorder = _Recorder()
    sampler = _sampler(source, recorder)

    sampler.start()
    await _settle()
    assert len(source.pending) == 1
    assert source.options == [{"tripOptions": {"externalId": "u1-1"}}]

    source.pending[0].set_result(_result(52.1, 4.3))
    await sampler.wait_idle()

    assert sampler.sample_count == 1
    assert recorder.polylines == [[RoutePoint(52.1, 4.3)]]
    sampler.stop()


@pytest.mark.asyncio
async def test_start_while_running_keeps_points() -> None:
    source = _ManualSource()
    recorder = _Recorder()
    sampler = _sampler(source, recorder)
    sampler.start()
    await _settle()
    source.pending[0].set_result(_result(52.1, 4.3))
    await sampler.wait_idle()

    sampler.start()
    await _settle()

    assert sampler.is_running
    assert sampler.sample_count == 1
    assert len(source.pending) == 1
    sampler.stop()


@pytest.mark.asyncio
async def test_failed_sample_reports_error_and_loop_continues() -> None:
    source = _CountingSource(fail_on=4)
    recorder = _Recorder()
    sampler = _sampler(source, recorder, interval=0.005)

    sampler.start()
    async with asyncio.timeout(2.0):
        while source.calls < 6:
            await asyncio.sleep(0.005)
    sampler.stop()
    await sampler.wait_idle()

    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], LocationTimeoutError)
    # Calls 1-3 and 5-6 resolved while running; later ones may race stop().
    assert sampler.sample_count >= 5
    assert sampler.sample_count == len(recorder.locations)
    assert len(sampler.export().polyline) == sampler.sample_count


@pytest.mark.asyncio
async def test_stop_suppresses_in_flight_callbacks() -> None:
    source = _ManualSource()
    recorder = _Recorder()
    sampler = _sampler(source, recorder)
    sampler.start()
    await _settle()

    sampler.stop()
    source.pending[0].set_result(_result(52.1, 4.3))
    await sampler.wait_idle()

    assert not sampler.is_running
    assert sampler.sample_count == 0
    assert recorder.locations == []
    assert recorder.polylines == []


@pytest.mark.asyncio
async def test_out_of_order_resolution_is_discarded() -> None:
    source = _ManualSource()
    recorder = _Recorder()
    sampler = _sampler(source, recorder)
    sampler.start()
    sampler._issue_sample(sampler._run_id)  # type: ignore[attr-defined]
    await _settle()
    first, second = source.pending

    second.set_result(_result(52.2, 4.4))
    await _settle()
    first.set_result(_result(52.1, 4.3))
    await sampler.wait_idle()

    assert sampler.export().polyline == [RoutePoint(52.2, 4.4)]
    assert len(recorder.locations) == 1
    sampler.stop()


@pytest.mark.asyncio
async def test_resume_keeps_accumulated_points() -> None:
    source = _ManualSource()
    recorder = _Recorder()
    sampler = _sampler(source, recorder)
    sampler.start()
    await _settle()
    source.pending[0].set_result(_result(52.1, 4.3))
    await sampler.wait_idle()
    sampler.stop()

    sampler.resume()
    await _settle()
    source.pending[1].set_result(_result(52.2, 4.4))
    await sampler.wait_idle()

    assert sampler.export().polyline == [RoutePoint(52.1, 4.3), RoutePoint(52.2, 4.4)]
    sampler.stop()


@pytest.mark.asyncio
async def test_callback_failure_does_not_stop_sampling() -> None:
    source = _ManualSource()
    polylines: list[list[RoutePoint]] = []

    def _explode(*_args: Any) -> None:
        raise RuntimeError("ui crashed")

    sampler = PolylineSampler(
        source,
        interval=60.0,
        on_location_update=_explode,
        on_polyline_update=lambda polyline, _points: polylines.append(polyline),
    )
    sampler.start()
    await _settle()
    source.pending[0].set_result(_result(52.1, 4.3))
    await sampler.wait_idle()

    assert sampler.is_running
    assert polylines == [[RoutePoint(52.1, 4.3)]]
    sampler.stop()


@pytest.mark.asyncio
async def test_export_returns_copies() -> None:
    source = _ManualSource()
    sampler = _sampler(source, _Recorder())
    sampler.start()
    await _settle()
    source.pending[0].set_result(_result(52.1, 4.3))
    await sampler.wait_idle()

    snapshot = sampler.export()
    snapshot.polyline.clear()
    snapshot.points.clear()

    assert sampler.sample_count == 1
    assert len(sampler.export().polyline) == 1
    sampler.stop()
