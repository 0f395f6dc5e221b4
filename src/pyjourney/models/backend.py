"""Backend REST response models.

The backend wraps every payload as ``{"success": bool, "data": ..., "error": ...}``;
these models describe the ``data`` part once the envelope has been checked.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from pyjourney._normalize import measured_value, safe_str
from pyjourney.models._base import JourneyBaseModel
from pyjourney.models.location import RoutePoint


class StartTripResult(JourneyBaseModel):
    """``data`` of ``POST /trips/start``."""

    journey_id: str | None = None
    db_journey_id: str | None = None

    @field_validator("journey_id", "db_journey_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str | None:
        return safe_str(value)


class RouteEstimate(JourneyBaseModel):
    """``data`` of ``GET /trips/{journeyId}/route``.

    ``geometry`` arrives as GeoJSON ``[[lng, lat], ...]`` and is converted to
    ``(lat, lng)`` route points; malformed coordinates are dropped.
    """

    distance: float | None = None
    duration: float | None = None
    geometry: tuple[RoutePoint, ...] = ()

    @field_validator("distance", "duration", mode="before")
    @classmethod
    def _coerce_measured(cls, value: Any) -> float | None:
        return measured_value(value)

    @field_validator("geometry", mode="before")
    @classmethod
    def _coerce_geometry(cls, value: Any) -> tuple[RoutePoint, ...]:
        if isinstance(value, dict):
            value = value.get("coordinates")
        if not isinstance(value, (list, tuple)):
            return ()
        points: list[RoutePoint] = []
        for coordinate in value:
            if isinstance(coordinate, RoutePoint):
                points.append(coordinate)
                continue
            point = RoutePoint.from_lng_lat(coordinate)
            if point is not None:
                points.append(point)
        return tuple(points)


class TripSnapshot(JourneyBaseModel):
    """``data`` of ``GET /trips/{journeyId}``: the backend's cached SDK trip."""

    distance: float | None = None
    duration: float | None = None
    status: str | None = None
    db_journey_id: str | None = Field(default=None, validation_alias=AliasChoices("dbJourneyId", "db_journey_id", "_id"))
    raw: dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("raw", "radarTrip"))

    @model_validator(mode="before")
    @classmethod
    def _unwrap_sdk_trip(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        trip = values.get("radarTrip") or values.get("trip")
        if not isinstance(trip, dict):
            return values
        merged = dict(values)
        for key in ("distance", "duration", "status"):
            if key in trip:
                merged.setdefault(key, trip[key])
        merged["raw"] = trip
        return merged

    @field_validator("distance", "duration", mode="before")
    @classmethod
    def _coerce_measured(cls, value: Any) -> float | None:
        return measured_value(value)

    @field_validator("status", "db_journey_id", mode="before")
    @classmethod
    def _coerce_strings(cls, value: Any) -> str | None:
        return safe_str(value)
