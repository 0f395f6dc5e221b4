"""Trip aggregate, destination dealers and SDK trip handles."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pyjourney._constants import DEALER_GEOFENCE_PREFIX
from pyjourney._normalize import safe_float, safe_str
from pyjourney.models._base import JourneyBaseModel


class TripStatus(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"


class Dealer(JourneyBaseModel):
    """A trip destination.

    Parameters
    ----------
    id : str
        Backend dealer id.
    name : str
        Display name.
    address : str
        Postal address, may be empty.
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    """

    id: str
    name: str
    address: str = ""
    latitude: float = Field(ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat", "dealerLatitude"))
    longitude: float = Field(
        ge=-180.0,
        le=180.0,
        validation_alias=AliasChoices("longitude", "lng", "dealerLongitude"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return safe_str(value) or value

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> Any:
        parsed = safe_float(value)
        return value if parsed is None else parsed

    @property
    def geofence_external_id(self) -> str:
        """SDK geofence key for this dealer (``dealer:<id>``)."""
        if self.id.startswith(DEALER_GEOFENCE_PREFIX):
            return self.id
        return f"{DEALER_GEOFENCE_PREFIX}{self.id}"


class SdkTrip(JourneyBaseModel):
    """Trip handle returned by the SDK's start/update calls."""

    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    external_id: str | None = None
    status: str | None = None

    @field_validator("id", "external_id", "status", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)


class Trip(JourneyBaseModel):
    """The central aggregate: one journey from the current location to a dealer.

    ``journey_id`` is chosen once at trip start and carried forward unchanged
    by every later copy. ``backend_trip_id`` may be absent while the backend
    lags but never regresses once resolved (see :meth:`with_backend_trip_id`).
    """

    journey_id: str
    external_id: str
    dealer: Dealer
    status: TripStatus = TripStatus.ACTIVE
    distance: float = 0.0
    duration: float = 0.0
    travelled_distance: float = 0.0
    sdk_trip_handle: str | None = None
    backend_trip_id: str | None = None

    @field_validator("sdk_trip_handle", "backend_trip_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str | None:
        return safe_str(value)

    def with_backend_trip_id(self, backend_trip_id: Any) -> Trip:
        """Return a copy with *backend_trip_id* resolved; ``None`` keeps the existing value."""
        resolved = safe_str(backend_trip_id)
        if resolved is None or resolved == self.backend_trip_id:
            return self
        return self.model_copy(update={"backend_trip_id": resolved})

    def with_estimate(self, *, distance: float | None, duration: float | None) -> Trip:
        """Return a copy carrying the latest backend distance/duration estimate."""
        update: dict[str, float] = {}
        if distance is not None:
            update["distance"] = distance
        if duration is not None:
            update["duration"] = duration
        return self.model_copy(update=update) if update else self
