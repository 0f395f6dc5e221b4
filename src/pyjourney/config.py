"""Engine configuration for pyjourney."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyjourney._constants import (
    DEFAULT_SAMPLE_INTERVAL,
    DEFAULT_SDK_TIMEOUT,
    DEFAULT_TRIP_START_ACK_TIMEOUT,
    SDK_ACCURACY_TIERS,
    SDK_LOG_LEVELS,
    TRAVEL_MODES,
)
from pyjourney.exceptions import JourneyConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_float(value: str, name: str) -> float:
    try:
        return float(value)
    except ValueError as exc:
        raise JourneyConfigError(f"{name} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class SdkOptions:
    """Options handed to the location SDK on initialisation.

    Parameters
    ----------
    log_level : str
        SDK log verbosity. Defaults to ``"error"`` (errors only).
    cache_ttl : float or None
        Seconds a cached fix may be reused. ``None`` disables cache reuse.
    max_age : float or None
        Maximum age in seconds of a cached fix. ``None`` means no cap.
    timeout : float
        Read timeout in seconds for every SDK call.
    desired_accuracy : str
        Accuracy tier: ``"high"``, ``"medium"`` or ``"low"``.
    """

    log_level: str = "error"
    cache_ttl: float | None = None
    max_age: float | None = None
    timeout: float = DEFAULT_SDK_TIMEOUT
    desired_accuracy: str = "high"

    def __post_init__(self) -> None:
        if self.log_level not in SDK_LOG_LEVELS:
            raise JourneyConfigError(f"log_level must be one of {sorted(SDK_LOG_LEVELS)}, got {self.log_level!r}")
        if self.desired_accuracy not in SDK_ACCURACY_TIERS:
            raise JourneyConfigError(
                f"desired_accuracy must be one of {sorted(SDK_ACCURACY_TIERS)}, got {self.desired_accuracy!r}"
            )
        if self.timeout <= 0:
            raise JourneyConfigError(f"timeout must be positive, got {self.timeout}")
        for name in ("cache_ttl", "max_age"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise JourneyConfigError(f"{name} must be non-negative, got {value}")

    def to_sdk_options(self) -> dict[str, Any]:
        """Render the options in the SDK's own key convention."""
        options: dict[str, Any] = {
            "logLevel": self.log_level,
            "timeout": int(self.timeout * 1000),
            "desiredAccuracy": self.desired_accuracy,
        }
        if self.cache_ttl is not None:
            options["cacheLocationMinutes"] = self.cache_ttl / 60.0
        if self.max_age is not None:
            options["locationMaxAge"] = int(self.max_age * 1000)
        return options


@dataclasses.dataclass(frozen=True)
class JourneyConfig:
    """Engine configuration.

    Parameters
    ----------
    base_url : str
        Backend REST base URL; trip endpoints are resolved relative to it.
    sdk_key : str
        Publishable key for the location SDK.
    api_token : str or None
        Optional bearer token sent to the backend.
    sample_interval : float
        Seconds between location samples while a trip is active.
    trip_start_ack_timeout : float
        Soft wait for the SDK trip-start acknowledgement. The controller
        proceeds after this delay; a late acknowledgement is ignored.
    travel_mode : str
        SDK travel mode (``"car"``, ``"bike"`` or ``"foot"``).
    destination_geofence_tag : str
        Geofence tag the destinations are registered under.
    os_notifications : bool
        Also raise OS-level notifications for geofence events.
    sdk : SdkOptions
        Options forwarded to the location SDK.
    """

    base_url: str
    sdk_key: str
    api_token: str | None = None
    sample_interval: float = DEFAULT_SAMPLE_INTERVAL
    trip_start_ack_timeout: float = DEFAULT_TRIP_START_ACK_TIMEOUT
    travel_mode: str = "car"
    destination_geofence_tag: str = "dealer"
    os_notifications: bool = False
    sdk: SdkOptions = dataclasses.field(default_factory=SdkOptions)

    def __post_init__(self) -> None:
        if not self.base_url.strip():
            raise JourneyConfigError("base_url must be non-empty")
        if self.sample_interval <= 0:
            raise JourneyConfigError(f"sample_interval must be positive, got {self.sample_interval}")
        if self.trip_start_ack_timeout < 0:
            raise JourneyConfigError(f"trip_start_ack_timeout must be non-negative, got {self.trip_start_ack_timeout}")
        if self.travel_mode not in TRAVEL_MODES:
            raise JourneyConfigError(f"travel_mode must be one of {sorted(TRAVEL_MODES)}, got {self.travel_mode!r}")

    @classmethod
    def from_env(cls, **overrides: Any) -> JourneyConfig:
        """Create configuration from ``PYJOURNEY_*`` environment variables.

        Explicit keyword arguments override environment values. ``sdk`` may
        be passed as an :class:`SdkOptions` or as a dict of field overrides.
        """
        env = os.environ

        sdk_kwargs: dict[str, Any] = {}
        _ENV_SDK_MAP = {
            "PYJOURNEY_SDK_LOG_LEVEL": "log_level",
            "PYJOURNEY_SDK_ACCURACY": "desired_accuracy",
        }
        for env_key, field_name in _ENV_SDK_MAP.items():
            val = env.get(env_key)
            if val is not None:
                sdk_kwargs[field_name] = val
        _ENV_SDK_NUMERIC_MAP = {
            "PYJOURNEY_SDK_TIMEOUT": "timeout",
            "PYJOURNEY_SDK_CACHE_TTL": "cache_ttl",
            "PYJOURNEY_SDK_MAX_AGE": "max_age",
        }
        for env_key, field_name in _ENV_SDK_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None:
                sdk_kwargs[field_name] = _env_float(val, env_key)

        sdk_overrides = overrides.pop("sdk", None)
        if isinstance(sdk_overrides, dict):
            sdk_kwargs.update(sdk_overrides)
        elif isinstance(sdk_overrides, SdkOptions):
            sdk_kwargs = dataclasses.asdict(sdk_overrides)

        config_kwargs: dict[str, Any] = {"sdk": SdkOptions(**sdk_kwargs)}

        _ENV_CONFIG_MAP = {
            "PYJOURNEY_BASE_URL": "base_url",
            "PYJOURNEY_SDK_KEY": "sdk_key",
            "PYJOURNEY_API_TOKEN": "api_token",
            "PYJOURNEY_TRAVEL_MODE": "travel_mode",
            "PYJOURNEY_GEOFENCE_TAG": "destination_geofence_tag",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        interval_env = env.get("PYJOURNEY_SAMPLE_INTERVAL")
        if interval_env is not None and "sample_interval" not in overrides:
            config_kwargs["sample_interval"] = _env_float(interval_env, "PYJOURNEY_SAMPLE_INTERVAL")

        ack_env = env.get("PYJOURNEY_TRIP_START_ACK_TIMEOUT")
        if ack_env is not None and "trip_start_ack_timeout" not in overrides:
            config_kwargs["trip_start_ack_timeout"] = _env_float(ack_env, "PYJOURNEY_TRIP_START_ACK_TIMEOUT")

        if "os_notifications" not in overrides:
            config_kwargs["os_notifications"] = _env_bool(env.get("PYJOURNEY_OS_NOTIFICATIONS"), False)

        config_kwargs.update(overrides)

        missing = [name for name in ("base_url", "sdk_key") if name not in config_kwargs]
        if missing:
            raise JourneyConfigError(f"Missing required configuration: {', '.join(missing)}")

        return cls(**config_kwargs)
