"""Great-circle helpers for travelled-distance bookkeeping."""

from __future__ import annotations

import math
from collections.abc import Iterable

from pyjourney._constants import EARTH_RADIUS_M
from pyjourney.models.location import RoutePoint


def haversine_m(a: RoutePoint, b: RoutePoint) -> float:
    """Great-circle distance between two points in metres."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def polyline_length_m(points: Iterable[RoutePoint]) -> float:
    """Sum of the segment lengths of *points*, in order."""
    total = 0.0
    previous: RoutePoint | None = None
    for point in points:
        if previous is not None:
            total += haversine_m(previous, point)
        previous = point
    return total
