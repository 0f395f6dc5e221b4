"""Helpers for safe debug logging.

Trip payloads carry the SDK publishable key, backend bearer tokens and
precise user coordinates. Everything logged at DEBUG goes through
:func:`redact_for_log` first.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "key",
        "publishablekey",
        "sdkkey",
        "apitoken",
        "token",
        "authorization",
        "cookie",
    }
)

_COORDINATE_KEYS: frozenset[str] = frozenset({"lat", "lng", "latitude", "longitude"})


def redact_for_log(
    value: Any,
    *,
    max_string: int = 256,
    coordinate_digits: int = 3,
    _depth: int = 0,
) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    Secrets are replaced by ``<redacted>`` and coordinates are rounded to
    *coordinate_digits* decimals (about 100 m at 3 digits).
    """
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _COORDINATE_KEYS and isinstance(v, float):
                redacted[key] = round(v, coordinate_digits)
            else:
                redacted[key] = redact_for_log(
                    v,
                    max_string=max_string,
                    coordinate_digits=coordinate_digits,
                    _depth=_depth + 1,
                )
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [
            redact_for_log(v, max_string=max_string, coordinate_digits=coordinate_digits, _depth=_depth + 1)
            for v in value
        ]

    return repr(value)
