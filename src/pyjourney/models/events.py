"""Geofence / place events reported by the location SDK."""

from __future__ import annotations

import logging
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import field_validator

from pyjourney._normalize import safe_str
from pyjourney.models._base import JourneyBaseModel

_logger = logging.getLogger(__name__)


class GeofenceEventKind(StrEnum):
    ENTERED_GEOFENCE = "entered_geofence"
    EXITED_GEOFENCE = "exited_geofence"
    ENTERED_PLACE = "entered_place"
    EXITED_PLACE = "exited_place"

    @property
    def is_place(self) -> bool:
        return self in (GeofenceEventKind.ENTERED_PLACE, GeofenceEventKind.EXITED_PLACE)

    @property
    def is_entry(self) -> bool:
        return self in (GeofenceEventKind.ENTERED_GEOFENCE, GeofenceEventKind.ENTERED_PLACE)


class EventConfidence(IntEnum):
    """SDK confidence level; anything unmapped resolves to ``UNKNOWN``."""

    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @classmethod
    def _missing_(cls, value: object) -> EventConfidence:
        return cls.UNKNOWN


class GeofenceEvent(JourneyBaseModel):
    """One enter/exit event.

    Parameters
    ----------
    kind : GeofenceEventKind
        What happened.
    target_name : str or None
        Geofence description or place name, if the SDK supplied one.
    confidence : EventConfidence
        SDK confidence in the event.
    """

    kind: GeofenceEventKind
    target_name: str | None = None
    confidence: EventConfidence = EventConfidence.UNKNOWN

    @field_validator("target_name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> EventConfidence:
        if isinstance(value, str):
            try:
                return EventConfidence[value.strip().upper()]
            except KeyError:
                return EventConfidence.UNKNOWN
        if isinstance(value, int):
            return EventConfidence(value)
        return EventConfidence.UNKNOWN

    @classmethod
    def from_sdk(cls, raw: Any) -> GeofenceEvent | None:
        """Parse an SDK event dict; returns ``None`` for unrelated event types.

        The SDK reports ``type`` as ``user.entered_geofence`` and friends;
        the bare kind (``entered_geofence``) is accepted as well.
        """
        if isinstance(raw, GeofenceEvent):
            return raw
        if not isinstance(raw, dict):
            return None
        event_type = safe_str(raw.get("type") or raw.get("kind")) or ""
        kind_value = event_type.removeprefix("user.")
        try:
            kind = GeofenceEventKind(kind_value)
        except ValueError:
            _logger.debug("Skipping SDK event of type %r", event_type)
            return None

        target = raw.get("place") if kind.is_place else raw.get("geofence")
        if isinstance(target, dict):
            name = target.get("name") if kind.is_place else target.get("description")
        else:
            name = raw.get("targetName") or raw.get("target_name")
        return cls(kind=kind, target_name=name, confidence=raw.get("confidence"))


def parse_sdk_events(raw_events: Any) -> tuple[GeofenceEvent, ...]:
    """Parse an SDK ``events`` list, dropping entries that are not enter/exit events."""
    if not isinstance(raw_events, (list, tuple)):
        return ()
    parsed = (GeofenceEvent.from_sdk(item) for item in raw_events)
    return tuple(event for event in parsed if event is not None)
