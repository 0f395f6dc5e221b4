"""Location samples and route points."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, NamedTuple

from pydantic import AliasChoices, Field, field_validator, model_validator

from pyjourney._normalize import normalize_timestamp, safe_float
from pyjourney.models._base import JourneyBaseModel
from pyjourney.models.events import GeofenceEvent, parse_sdk_events


class RoutePoint(NamedTuple):
    """A ``(latitude, longitude)`` pair on the travelled polyline."""

    latitude: float
    longitude: float

    @classmethod
    def from_lng_lat(cls, coordinate: Any) -> RoutePoint | None:
        """Build a point from a GeoJSON ``[lng, lat]`` pair (note the swap)."""
        if not isinstance(coordinate, (list, tuple)) or len(coordinate) < 2:
            return None
        lng = safe_float(coordinate[0])
        lat = safe_float(coordinate[1])
        if lat is None or lng is None:
            return None
        return cls(lat, lng)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LocationSample(JourneyBaseModel):
    """One location fix produced by the SDK adapter.

    Parameters
    ----------
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    accuracy : float or None
        Horizontal accuracy in metres, when reported.
    timestamp : datetime
        UTC capture time. Epoch seconds or milliseconds are accepted.
    events : tuple of GeofenceEvent
        Enter/exit events the SDK generated for this fix.
    """

    latitude: float = Field(ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(ge=-180.0, le=180.0, validation_alias=AliasChoices("longitude", "lng", "lon"))
    accuracy: float | None = Field(default=None, ge=0.0)
    timestamp: datetime = Field(
        default_factory=_utcnow,
        validation_alias=AliasChoices("timestamp", "time", "updatedAt", "createdAt"),
    )
    events: tuple[GeofenceEvent, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _unwrap_coordinates(cls, values: Any) -> Any:
        # Some SDK builds report a GeoJSON point instead of flat lat/lng.
        if not isinstance(values, dict) or "latitude" in values or "lat" in values:
            return values
        point = values.get("coordinates")
        if isinstance(point, dict):
            point = point.get("coordinates")
        coordinate = RoutePoint.from_lng_lat(point)
        if coordinate is None:
            return values
        merged = dict(values)
        merged["latitude"] = coordinate.latitude
        merged["longitude"] = coordinate.longitude
        return merged

    @field_validator("latitude", "longitude", "accuracy", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> Any:
        parsed = safe_float(value)
        return value if parsed is None else parsed

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime:
        return normalize_timestamp(value) or _utcnow()

    @field_validator("events", mode="before")
    @classmethod
    def _coerce_events(cls, value: Any) -> tuple[GeofenceEvent, ...]:
        return parse_sdk_events(value)

    @property
    def point(self) -> RoutePoint:
        """The route point derived from this sample."""
        return RoutePoint(self.latitude, self.longitude)


class TrackResult(JourneyBaseModel):
    """Result of a single ``track_once`` call."""

    location: LocationSample
    user: dict[str, Any] = Field(default_factory=dict)
    events: tuple[GeofenceEvent, ...] = ()

    @field_validator("events", mode="before")
    @classmethod
    def _coerce_events(cls, value: Any) -> tuple[GeofenceEvent, ...]:
        return parse_sdk_events(value)
