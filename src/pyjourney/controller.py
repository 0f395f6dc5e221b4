"""Trip lifecycle state machine: Idle -> Active -> Completed.

:class:`TripLifecycleController` is the only writer of the trip aggregate.
The sampler and the dispatcher talk to it exclusively through callbacks;
the UI reads the immutable :class:`JourneyState` snapshot from
:attr:`TripLifecycleController.state` or subscribes with
:meth:`TripLifecycleController.add_listener`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from pyjourney._constants import (
    DESTINATION_UPDATED_STATUS,
    MSG_DESTINATION_UPDATED,
    MSG_JOURNEY_COMPLETED,
    MSG_JOURNEY_STARTED,
    MSG_MISSING_PRECONDITIONS,
)
from pyjourney.backend import BackendSync
from pyjourney.config import JourneyConfig
from pyjourney.dispatcher import GeofenceEventDispatcher
from pyjourney.exceptions import (
    JourneyError,
    LocationSdkError,
    PreconditionError,
    describe_error,
)
from pyjourney.geo import polyline_length_m
from pyjourney.models.events import GeofenceEvent
from pyjourney.models.location import LocationSample, RoutePoint
from pyjourney.models.trip import Dealer, SdkTrip, Trip, TripStatus
from pyjourney.sampler import PolylineSampler
from pyjourney.sdk import LocationSdkAdapter
from pyjourney.wakelock import WakeLockManager, WakeLockProvider

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class JourneyState:
    """Everything the UI needs to render the journey screen."""

    status: TripStatus = TripStatus.IDLE
    user_id: str | None = None
    current_location: LocationSample | None = None
    selected_dealer: Dealer | None = None
    trip: Trip | None = None
    polyline: tuple[RoutePoint, ...] = ()
    route_geometry: tuple[RoutePoint, ...] = ()
    error: str | None = None
    success: str | None = None


StateListener = Callable[[JourneyState], None]


class TripLifecycleController:
    """Orchestrates one journey at a time.

    Usage::

        controller = TripLifecycleController(config, adapter=adapter, backend=backend, user_id="42")
        controller.initialize()
        await controller.refresh_current_location()
        controller.select_destination(dealer)
        await controller.start_trip()
        ...
        await controller.complete_trip()
    """

    def __init__(
        self,
        config: JourneyConfig,
        *,
        adapter: LocationSdkAdapter,
        backend: BackendSync,
        wake_lock_provider: WakeLockProvider | None = None,
        dispatcher: GeofenceEventDispatcher | None = None,
        user_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._adapter = adapter
        self._backend = backend
        self._clock = clock
        self._dispatcher = dispatcher or GeofenceEventDispatcher(os_notifications=config.os_notifications)
        self._wake_lock = WakeLockManager(wake_lock_provider, is_trip_active=self._is_active)
        self._sampler = PolylineSampler(
            adapter,
            interval=config.sample_interval,
            on_location_update=self._handle_location_update,
            on_polyline_update=self._handle_polyline_update,
            on_error=self._handle_sample_error,
        )
        self._state = JourneyState(user_id=str(user_id) if user_id is not None else None)
        self._listeners: list[StateListener] = []
        self._background: set[asyncio.Task[Any]] = set()
        self._transition_lock = asyncio.Lock()
        # Bumped whenever the forward route changes meaning (new trip, new
        # destination, completion); late route/snapshot fetches of an older
        # leg are dropped.
        self._leg = 0
        self._torn_down = False

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> JourneyState:
        return self._state

    @property
    def sampler(self) -> PolylineSampler:
        return self._sampler

    @property
    def wake_lock(self) -> WakeLockManager:
        return self._wake_lock

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Subscribe to state changes; returns a callable that unsubscribes."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _is_active(self) -> bool:
        return self._state.status == TripStatus.ACTIVE

    def _publish(self, **changes: Any) -> None:
        self._state = dataclasses.replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                _logger.exception("Journey state listener failed")

    def _fail(self, exc: BaseException) -> None:
        self._publish(error=describe_error(exc), success=None)

    def clear_messages(self) -> None:
        if self._state.error is not None or self._state.success is not None:
            self._publish(error=None, success=None)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """Initialise the location SDK and tag it with the current user.

        Failures are surfaced through ``state.error``; returns whether the
        SDK is ready.
        """
        try:
            self._adapter.initialize(self._config.sdk_key, self._config.sdk)
            if self._state.user_id:
                self._adapter.set_user_id(self._state.user_id)
        except JourneyError as exc:
            _logger.warning("Location SDK initialization failed: %s", exc)
            self._fail(exc)
            return False
        return True

    def set_user(self, user_id: str | None) -> None:
        """Switch the signed-in user (ignored by an already-running trip)."""
        resolved = str(user_id) if user_id is not None else None
        self._publish(user_id=resolved)
        if resolved and self._adapter.is_initialized:
            self._adapter.set_user_id(resolved)

    async def refresh_current_location(self) -> LocationSample | None:
        """One-shot SDK read of the current location."""
        try:
            sample = await self._adapter.get_current_location()
        except LocationSdkError as exc:
            _logger.debug("Current location unavailable: %s", exc)
            self._fail(exc)
            return None
        self._publish(current_location=sample)
        return sample

    def set_current_location(self, latitude: float, longitude: float, *, accuracy: float | None = None) -> LocationSample:
        """Record a fix obtained outside the SDK (e.g. the platform geolocation API)."""
        sample = LocationSample(latitude=latitude, longitude=longitude, accuracy=accuracy)
        self._publish(current_location=sample)
        return sample

    def select_destination(self, dealer: Dealer | None) -> None:
        """Pick (or clear) the destination of the next trip."""
        if self._state.status != TripStatus.IDLE:
            raise PreconditionError("Destination can only be selected before a trip starts; use change_destination()")
        self._publish(selected_dealer=dealer)

    # ------------------------------------------------------------------
    # Idle -> Active
    # ------------------------------------------------------------------

    def _new_external_id(self, user_id: str) -> str:
        return f"{user_id}-{int(self._clock() * 1000)}"

    def _sdk_trip_options(self, external_id: str, dealer: Dealer, origin: LocationSample) -> dict[str, Any]:
        return {
            "externalId": external_id,
            "destinationGeofenceTag": self._config.destination_geofence_tag,
            "destinationGeofenceExternalId": dealer.geofence_external_id,
            "mode": self._config.travel_mode,
            "metadata": {
                "originLatitude": origin.latitude,
                "originLongitude": origin.longitude,
            },
        }

    async def _soft_sdk_call(self, action: str, coro: Coroutine[Any, Any, SdkTrip]) -> SdkTrip | None:
        """Best-effort SDK call bounded by the soft acknowledgement timeout.

        A call that outlives the timeout keeps running as a tracked
        background task; its eventual result is only logged.
        """
        task = asyncio.get_running_loop().create_task(coro)
        try:
            return await asyncio.wait_for(asyncio.shield(task), self._config.trip_start_ack_timeout)
        except TimeoutError:
            _logger.warning(
                "SDK trip %s not acknowledged within %gs; continuing without it",
                action,
                self._config.trip_start_ack_timeout,
            )
            self._background.add(task)
            task.add_done_callback(functools.partial(self._on_late_sdk_ack, action))
            return None
        except Exception as exc:
            _logger.warning("SDK trip %s failed, continuing with backend-only tracking: %s", action, exc)
            return None

    def _on_late_sdk_ack(self, action: str, task: asyncio.Task[SdkTrip]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.debug("Late SDK trip %s failed: %s", action, exc)
        else:
            _logger.debug("Ignoring late SDK trip %s acknowledgement id=%s", action, task.result().id)

    async def start_trip(self) -> Trip:
        """Start a trip to the selected destination.

        Raises :class:`PreconditionError` when not Idle or when the destination,
        current location or user is missing, and re-raises whatever the
        backend call raised (normally :class:`BackendSyncError`); the
        controller stays Idle in both cases.
        """
        async with self._transition_lock:
            state = self._state
            if state.status != TripStatus.IDLE:
                raise PreconditionError(f"Cannot start a trip while {state.status.value}")
            dealer = state.selected_dealer
            origin = state.current_location
            user_id = state.user_id
            if dealer is None or origin is None or not user_id:
                self._publish(error=MSG_MISSING_PRECONDITIONS, success=None)
                raise PreconditionError(MSG_MISSING_PRECONDITIONS)

            external_id = self._new_external_id(user_id)
            await self._wake_lock.acquire()

            sdk_trip = await self._soft_sdk_call(
                "start", self._adapter.start_trip(self._sdk_trip_options(external_id, dealer, origin))
            )
            sdk_trip_id = sdk_trip.id if sdk_trip is not None else None

            try:
                started = await self._backend.start_trip(
                    user_id=user_id,
                    dealer_id=dealer.id,
                    latitude=origin.latitude,
                    longitude=origin.longitude,
                    sdk_trip_id=sdk_trip_id,
                    external_id=external_id,
                )
            except Exception as exc:
                _logger.warning("Backend trip start failed: %s", exc)
                await self._wake_lock.release()
                self._fail(exc)
                raise

            journey_id = sdk_trip_id or started.journey_id or external_id
            trip = Trip(
                journey_id=journey_id,
                external_id=external_id,
                dealer=dealer,
                status=TripStatus.ACTIVE,
                sdk_trip_handle=sdk_trip_id,
                backend_trip_id=started.db_journey_id or started.journey_id,
            )
            self._leg += 1
            self._publish(
                status=TripStatus.ACTIVE,
                trip=trip,
                polyline=(),
                route_geometry=(),
                error=None,
                success=MSG_JOURNEY_STARTED,
            )
            _logger.debug("Trip started journey_id=%s external_id=%s sdk_trip=%s", journey_id, external_id, sdk_trip_id)

            if self._torn_down:
                _logger.debug("Controller torn down during trip start; not sampling")
                await self._wake_lock.release()
                return trip

            self._sampler.track_options = {"tripOptions": {"externalId": external_id}}
            self._sampler.start()
            return trip

    # ------------------------------------------------------------------
    # Active
    # ------------------------------------------------------------------

    def _require_active(self) -> Trip:
        trip = self._state.trip
        if self._state.status != TripStatus.ACTIVE or trip is None:
            raise PreconditionError("No active trip")
        return trip

    async def change_destination(self, dealer: Dealer) -> Trip:
        """Point the active trip at *dealer*.

        The travelled polyline is kept; only the forward route geometry is
        cleared so the next route refresh describes the new leg.
        """
        async with self._transition_lock:
            trip = self._require_active()
            await self._soft_sdk_call(
                "update",
                self._adapter.update_trip(
                    {
                        "destinationGeofenceTag": self._config.destination_geofence_tag,
                        "destinationGeofenceExternalId": dealer.geofence_external_id,
                        "mode": self._config.travel_mode,
                    }
                ),
            )

            try:
                await self._backend.patch_trip(
                    trip.journey_id,
                    destination_geofence_external_id=dealer.id,
                    status=DESTINATION_UPDATED_STATUS,
                )
            except Exception as exc:
                _logger.warning("Backend destination change failed: %s", exc)
                self._fail(exc)
                raise

            updated = trip.model_copy(update={"dealer": dealer})
            self._leg += 1
            self._publish(
                trip=updated,
                selected_dealer=dealer,
                route_geometry=(),
                error=None,
                success=MSG_DESTINATION_UPDATED,
            )
            _logger.debug("Destination changed journey_id=%s dealer=%s", trip.journey_id, dealer.id)
            return updated

    # ------------------------------------------------------------------
    # Active -> Completed
    # ------------------------------------------------------------------

    async def complete_trip(self) -> Trip:
        """Finish the active trip.

        The wake lock goes first so the screen may sleep during a slow
        backend call. If the backend refuses, the trip stays Active and
        sampling resumes with its accumulated points.
        """
        async with self._transition_lock:
            trip = self._require_active()
            await self._wake_lock.release()
            self._sampler.stop()

            try:
                await self._backend.finish_trip(trip.journey_id)
            except Exception as exc:
                _logger.warning("Backend trip completion failed: %s", exc)
                self._fail(exc)
                if not self._torn_down:
                    self._sampler.resume()
                    await self._wake_lock.acquire()
                raise

            completed = trip.model_copy(update={"status": TripStatus.COMPLETED})
            self._leg += 1
            self._publish(
                status=TripStatus.COMPLETED,
                trip=completed,
                polyline=tuple(self._sampler.export().polyline),
                error=None,
                success=MSG_JOURNEY_COMPLETED,
            )
            _logger.debug("Trip completed journey_id=%s", trip.journey_id)

            try:
                await self._adapter.complete_trip()
            except Exception as exc:
                _logger.warning("SDK trip completion failed (non-fatal): %s", exc)
            return completed

    # ------------------------------------------------------------------
    # Back to Idle
    # ------------------------------------------------------------------

    def start_new_journey(self) -> None:
        """Clear a completed trip and return to Idle for a new destination."""
        if self._state.status == TripStatus.ACTIVE:
            raise PreconditionError("Complete the active trip before starting a new journey")
        self._clear_trip()

    async def reset(self) -> None:
        """Abandon whatever trip exists (without a backend call) and return to Idle."""
        async with self._transition_lock:
            await self._wake_lock.release()
            self._sampler.stop()
            self._clear_trip()

    def _clear_trip(self) -> None:
        self._leg += 1
        self._publish(
            status=TripStatus.IDLE,
            trip=None,
            selected_dealer=None,
            polyline=(),
            route_geometry=(),
            error=None,
            success=None,
        )

    # ------------------------------------------------------------------
    # Host lifecycle
    # ------------------------------------------------------------------

    async def on_visibility_change(self, visible: bool) -> None:
        if self._torn_down:
            return
        await self._wake_lock.on_visibility_change(visible)

    async def teardown(self) -> None:
        """Best-effort cleanup on page unload; safe to call repeatedly."""
        self._torn_down = True
        await self._wake_lock.release()
        self._sampler.stop()
        for task in list(self._background):
            task.cancel()

    async def drain(self) -> None:
        """Wait for in-flight samples and background refreshes to settle."""
        await self._sampler.wait_idle()
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Sampler callbacks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _is_current_leg(self, journey_id: str, leg: int) -> bool:
        trip = self._state.trip
        return (
            leg == self._leg
            and self._state.status == TripStatus.ACTIVE
            and trip is not None
            and trip.journey_id == journey_id
        )

    def _handle_location_update(
        self,
        sample: LocationSample,
        _user: dict[str, Any],
        events: tuple[GeofenceEvent, ...],
    ) -> None:
        self._publish(current_location=sample)
        self._dispatcher.dispatch(events)
        trip = self._state.trip
        if trip is None or not self._is_active():
            return
        self._spawn(self._refresh_route(trip.journey_id, self._leg))
        self._spawn(self._refresh_trip_snapshot(trip.journey_id, self._leg))

    def _handle_polyline_update(self, polyline: list[RoutePoint], _points: list[LocationSample]) -> None:
        changes: dict[str, Any] = {"polyline": tuple(polyline)}
        trip = self._state.trip
        if trip is not None:
            changes["trip"] = trip.model_copy(update={"travelled_distance": polyline_length_m(polyline)})
        self._publish(**changes)

    def _handle_sample_error(self, exc: Exception) -> None:
        _logger.debug("Location sample failed: %s", exc)
        self._fail(exc)

    async def _refresh_route(self, journey_id: str, leg: int) -> None:
        try:
            route = await self._backend.get_trip_route(journey_id)
        except Exception as exc:
            _logger.debug("Route refresh failed for %s: %s", journey_id, exc)
            return
        if not self._is_current_leg(journey_id, leg):
            _logger.debug("Dropping route refresh for a previous leg of %s", journey_id)
            return
        trip = self._state.trip
        assert trip is not None  # noqa: S101
        changes: dict[str, Any] = {"trip": trip.with_estimate(distance=route.distance, duration=route.duration)}
        if route.geometry:
            changes["route_geometry"] = route.geometry
        self._publish(**changes)

    async def _refresh_trip_snapshot(self, journey_id: str, leg: int) -> None:
        try:
            snapshot = await self._backend.get_trip(journey_id)
        except Exception as exc:
            _logger.debug("Trip snapshot refresh failed for %s: %s", journey_id, exc)
            return
        if not self._is_current_leg(journey_id, leg):
            return
        trip = self._state.trip
        assert trip is not None  # noqa: S101
        updated = trip.with_estimate(distance=snapshot.distance, duration=snapshot.duration)
        self._publish(trip=updated.with_backend_trip_id(snapshot.db_journey_id))
