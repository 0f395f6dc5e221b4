"""Internal constants shared across the library."""

#: Seconds between two location samples while a trip is active.
DEFAULT_SAMPLE_INTERVAL: float = 8.0

#: Soft wait for the SDK trip-start acknowledgement before carrying on.
DEFAULT_TRIP_START_ACK_TIMEOUT: float = 8.0

#: Default SDK read timeout in seconds.
DEFAULT_SDK_TIMEOUT: float = 30.0

SDK_STATUS_SUCCESS = "SUCCESS"

TRAVEL_MODES: frozenset[str] = frozenset({"foot", "bike", "car"})
SDK_LOG_LEVELS: frozenset[str] = frozenset({"none", "error", "warning", "info", "debug"})
SDK_ACCURACY_TIERS: frozenset[str] = frozenset({"high", "medium", "low"})

#: Prefix used by the geofence external ids registered for dealers.
DEALER_GEOFENCE_PREFIX = "dealer:"

#: PATCH status sent to the backend when the destination changes mid-trip.
DESTINATION_UPDATED_STATUS = "destination_updated"

UNKNOWN_GEOFENCE_NAME = "Unknown location"
UNKNOWN_PLACE_NAME = "Unknown place"

#: Mean Earth radius in metres used by the haversine helpers.
EARTH_RADIUS_M = 6_371_000.0

# ------------------------------------------------------------------
# User-facing messages
# ------------------------------------------------------------------

MSG_JOURNEY_STARTED = "Journey started!"
MSG_DESTINATION_UPDATED = "Destination updated!"
MSG_JOURNEY_COMPLETED = "Journey completed!"
MSG_MISSING_PRECONDITIONS = "Please select location and destination"
