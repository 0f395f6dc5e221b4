"""Data models for the journey tracking engine."""

from pyjourney.models._base import JourneyBaseModel
from pyjourney.models.backend import RouteEstimate, StartTripResult, TripSnapshot
from pyjourney.models.events import EventConfidence, GeofenceEvent, GeofenceEventKind, parse_sdk_events
from pyjourney.models.location import LocationSample, RoutePoint, TrackResult
from pyjourney.models.trip import Dealer, SdkTrip, Trip, TripStatus

__all__ = [
    "Dealer",
    "EventConfidence",
    "GeofenceEvent",
    "GeofenceEventKind",
    "JourneyBaseModel",
    "LocationSample",
    "RouteEstimate",
    "RoutePoint",
    "SdkTrip",
    "StartTripResult",
    "TrackResult",
    "Trip",
    "TripSnapshot",
    "TripStatus",
    "parse_sdk_events",
]
