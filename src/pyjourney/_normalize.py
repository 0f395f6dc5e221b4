"""Normalization helpers.

Centralizes defensive parsing of loosely typed SDK and backend payloads.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def measured_value(value: Any) -> float | None:
    """Read a distance/duration that may be ``{"value": n}`` or a bare number."""
    if isinstance(value, dict):
        return safe_float(value.get("value"))
    return safe_float(value)


def normalize_timestamp(value: Any) -> datetime | None:
    """Normalize an epoch (seconds or milliseconds), ISO string or datetime to UTC.

    - Empty/missing -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts > 1e11:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)
