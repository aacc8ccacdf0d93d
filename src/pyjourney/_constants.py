"""Constants for the journey tracking engine."""

from __future__ import annotations

#: Mean Earth radius in kilometres (spherical model).
EARTH_RADIUS_KM: float = 6371.0

# Poll cadence, seconds.
POLL_INTERVAL_S: float = 10.0
FALLBACK_POLL_INTERVAL_S: float = 30.0
HEALTH_CHECK_INTERVAL_S: float = 30.0
HEALTH_CHECK_TIMEOUT_S: float = 5.0

# Point admission thresholds. A resolved position becomes a route point when
# ANY of these is exceeded relative to the last admitted point.
MIN_DISTANCE_KM: float = 0.01
MIN_SPEED_CHANGE_KMH: float = 5.0
MAX_POINT_INTERVAL_S: float = 300.0

#: Speed carried forward by each dead-reckoned point is multiplied by this.
DEAD_RECKONING_DECAY: float = 0.95

#: Last resolved position per vehicle is reusable for this long.
POSITION_CACHE_TTL_S: float = 300.0

# Fixed fallback coordinate (Gurugram).
DEFAULT_LATITUDE: float = 28.4595
DEFAULT_LONGITUDE: float = 77.0266

# Driving alert thresholds.
SPEED_LIMIT_KMH: float = 60.0
SPEEDING_HIGH_FACTOR: float = 1.2
HARSH_ACCELERATION_KMH_PER_S: float = 8.0
HARSH_BRAKING_KMH_PER_S: float = -10.0

# Stop detection.
STOP_SPEED_THRESHOLD_KMH: float = 2.0
MIN_STOP_DURATION_S: float = 300.0

# Location continuity (gap analysis between consecutive points).
CONTINUITY_MAX_GAP_S: float = 60.0
CONTINUITY_MAX_JUMP_KM: float = 2.0

# Upstream list endpoints.
LIST_RETRIES: int = 3
RETRY_BASE_DELAY_S: float = 1.0
REQUEST_TIMEOUT_S: float = 10.0

DEVICES_ENDPOINT = "/device/v1/all"
VEHICLES_ENDPOINT = "/vehicle/v1/all"
HEALTH_ENDPOINT = "/health"

#: Candidate telemetry endpoint shapes, tried in order.
TELEMETRY_ENDPOINTS: tuple[tuple[str, dict[str, str]], ...] = (
    ("/device/v1/data/{device_id}", {"direction": "desc", "size": "1"}),
    ("/device/v1/data/{device_id}", {}),
    ("/deviceTelemetry/v1/device/{device_id}", {"page": "0", "size": "1"}),
    ("/telemetry/v1/device/{device_id}", {"direction": "desc"}),
)

NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
USER_AGENT = "pyjourney/0.1 (+journey-tracking-engine)"

ESTIMATED_ADDRESS = "Estimated location"
EXPORT_VERSION = "2.0_enhanced"
GPX_CREATOR = "Enhanced Vehicle Route Tracker"
GPX_NAMESPACE = "http://www.topografix.com/GPX/1/1"
