"""Turn SDK geofence/place events into user-facing notifications."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from pyjourney._constants import UNKNOWN_GEOFENCE_NAME, UNKNOWN_PLACE_NAME
from pyjourney.models.events import EventConfidence, GeofenceEvent, GeofenceEventKind

_logger = logging.getLogger(__name__)


class NotificationStyle(StrEnum):
    GEOFENCE = "geofence"
    PLACE = "place"


@dataclass(frozen=True)
class Notification:
    """One alert derived from a geofence/place event."""

    style: NotificationStyle
    kind: GeofenceEventKind
    title: str
    message: str
    confidence: EventConfidence = EventConfidence.UNKNOWN


class Notifier(Protocol):
    """Presentation surface for notifications (toast and OS notification)."""

    def toast(self, notification: Notification) -> None: ...

    def os_notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Default notifier: writes every notification to the log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger

    def toast(self, notification: Notification) -> None:
        self._logger.info("%s: %s", notification.title, notification.message)

    def os_notify(self, notification: Notification) -> None:
        self._logger.info("[os] %s: %s", notification.title, notification.message)


_TITLES: dict[GeofenceEventKind, str] = {
    GeofenceEventKind.ENTERED_GEOFENCE: "Entered geofence",
    GeofenceEventKind.EXITED_GEOFENCE: "Exited geofence",
    GeofenceEventKind.ENTERED_PLACE: "Arrived at place",
    GeofenceEventKind.EXITED_PLACE: "Left place",
}


def build_notification(event: GeofenceEvent) -> Notification:
    if event.kind.is_place:
        style = NotificationStyle.PLACE
        name = event.target_name or UNKNOWN_PLACE_NAME
    else:
        style = NotificationStyle.GEOFENCE
        name = event.target_name or UNKNOWN_GEOFENCE_NAME
    verb = "Entered" if event.kind.is_entry else "Left"
    return Notification(
        style=style,
        kind=event.kind,
        title=_TITLES[event.kind],
        message=f"{verb} {name}",
        confidence=event.confidence,
    )


def build_notifications(events: Iterable[GeofenceEvent] | None) -> list[Notification]:
    """Pure mapping of an event list to notifications; ``None`` yields nothing."""
    if not events:
        return []
    return [build_notification(event) for event in events]


class GeofenceEventDispatcher:
    """Raise a notification for every event in a sample's event delta.

    The SDK already filters repeats, so no deduplication happens across calls.
    """

    def __init__(self, notifier: Notifier | None = None, *, os_notifications: bool = False) -> None:
        self._notifier = notifier or LoggingNotifier()
        self._os_notifications = os_notifications

    def dispatch(self, events: Iterable[GeofenceEvent] | None) -> list[Notification]:
        """Notify for *events*; a ``None`` or empty list is a no-op."""
        notifications = build_notifications(events)
        for notification in notifications:
            _logger.debug("Dispatching %s notification kind=%s", notification.style, notification.kind)
            try:
                self._notifier.toast(notification)
            except Exception:
                _logger.warning("Toast notification failed", exc_info=True)
            if not self._os_notifications:
                continue
            try:
                self._notifier.os_notify(notification)
            except Exception:
                _logger.warning("OS notification failed", exc_info=True)
        return notifications
