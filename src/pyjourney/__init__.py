"""pyjourney - Async journey (trip) tracking engine for field sales apps."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyjourney")
except PackageNotFoundError:
    __version__ = "0+local"
from pyjourney.backend import BackendSync, BackendSyncClient
from pyjourney.config import JourneyConfig, SdkOptions
from pyjourney.controller import JourneyState, TripLifecycleController
from pyjourney.dispatcher import (
    GeofenceEventDispatcher,
    LoggingNotifier,
    Notification,
    NotificationStyle,
    Notifier,
)
from pyjourney.exceptions import (
    BackendSyncError,
    JourneyConfigError,
    JourneyError,
    LocationSdkError,
    LocationTimeoutError,
    LocationUnavailableError,
    NotInitializedError,
    PermissionDeniedError,
    PreconditionError,
    SdkConfigurationError,
    ServiceUnavailableError,
    WakeLockUnsupportedError,
    describe_error,
)
from pyjourney.models import (
    Dealer,
    EventConfidence,
    GeofenceEvent,
    GeofenceEventKind,
    LocationSample,
    RouteEstimate,
    RoutePoint,
    SdkTrip,
    StartTripResult,
    TrackResult,
    Trip,
    TripSnapshot,
    TripStatus,
)
from pyjourney.sampler import PolylineSampler, PolylineSnapshot
from pyjourney.sdk import LocationSdk, LocationSdkAdapter
from pyjourney.wakelock import AcquireResult, UnsupportedWakeLockProvider, WakeLockManager, WakeLockProvider

__all__ = [
    "__version__",
    "AcquireResult",
    "BackendSync",
    "BackendSyncClient",
    "BackendSyncError",
    "Dealer",
    "EventConfidence",
    "GeofenceEvent",
    "GeofenceEventDispatcher",
    "GeofenceEventKind",
    "JourneyConfig",
    "JourneyConfigError",
    "JourneyError",
    "JourneyState",
    "LocationSample",
    "LocationSdk",
    "LocationSdkAdapter",
    "LocationSdkError",
    "LocationTimeoutError",
    "LocationUnavailableError",
    "LoggingNotifier",
    "NotInitializedError",
    "Notification",
    "NotificationStyle",
    "Notifier",
    "PermissionDeniedError",
    "PolylineSampler",
    "PolylineSnapshot",
    "PreconditionError",
    "RouteEstimate",
    "RoutePoint",
    "SdkConfigurationError",
    "SdkOptions",
    "SdkTrip",
    "ServiceUnavailableError",
    "StartTripResult",
    "TrackResult",
    "Trip",
    "TripLifecycleController",
    "TripSnapshot",
    "TripStatus",
    "UnsupportedWakeLockProvider",
    "WakeLockManager",
    "WakeLockProvider",
    "WakeLockUnsupportedError",
    "describe_error",
]
