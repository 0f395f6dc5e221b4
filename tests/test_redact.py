from __future__ import annotations

from pyjourney._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "publishableKey": "prj_live_pk_abc",
        "Authorization": "Bearer secret",
        "nested": {"token": "t", "sdkKey": "k"},
        "userId": "42",
    }

    redacted = redact_for_log(payload)
    assert redacted["publishableKey"] == "<redacted>"
    assert redacted["Authorization"] == "<redacted>"
    assert redacted["nested"] == {"token": "<redacted>", "sdkKey": "<redacted>"}
    assert redacted["userId"] == "42"


def test_redact_for_log_rounds_coordinates() -> None:
    redacted = redact_for_log({"lat": 52.370216, "lng": 4.895168, "points": [{"latitude": 52.1234567}]})

    assert redacted["lat"] == 52.37
    assert redacted["lng"] == 4.895
    assert redacted["points"][0]["latitude"] == 52.123


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]
