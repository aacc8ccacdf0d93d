"""Engine configuration for pyjourney."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable
from typing import Any

from pyjourney import _constants as c
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


def _env_optional_float(value: str) -> float | None:
    if value.strip().lower() in {"", "none", "null"}:
        return None
    return float(value)


@dataclasses.dataclass(frozen=True)
class JourneyConfig:
    """Engine configuration.

    Parameters
    ----------
    base_url : str
        Upstream fleet API base URL.
    manager_id : str or None
        Fleet manager id sent as ``managerId`` on list endpoints.
    poll_interval : float
        Seconds between ticks of an active journey.
    fallback_poll_interval : float
        Seconds between ticks while fallback mode is active.
    health_check_interval : float
        Seconds between upstream health probes.
    health_check_timeout : float
        Timeout for a single health probe.
    health_endpoint : str
        Path of the upstream health surface.
    request_timeout : float
        Timeout for regular upstream reads.
    list_retries : int
        Attempts for vehicle/device list fetches.
    retry_base_delay : float
        Backoff before the second attempt; doubled for every further attempt.
    speed_limit : float
        Speeding threshold in km/h.
    min_distance_km, min_speed_change, max_point_interval : float
        Point admission thresholds (km, km/h, seconds).
    dead_reckoning_decay : float
        Speed decay applied to every estimated point.
    cache_ttl : float
        Validity of the cached last position, seconds.
    default_latitude, default_longitude : float or None
        Fixed last-resort coordinate. ``None`` disables the default source.
    stop_speed_threshold : float
        Speed (km/h) at or below which a point counts towards a stop.
    min_stop_duration : float
        Minimum stop length, seconds.
    geocoding_enabled : bool
        Reverse-geocode addresses of admitted points.
    geocoder_url : str
        Nominatim-compatible reverse geocoding endpoint.
    storage_path : str or None
        JSON file backing the persistence store. ``None`` keeps state in memory.
    """

    base_url: str = "http://localhost:9090"
    manager_id: str | None = None
    poll_interval: float = c.POLL_INTERVAL_S
    fallback_poll_interval: float = c.FALLBACK_POLL_INTERVAL_S
    health_check_interval: float = c.HEALTH_CHECK_INTERVAL_S
    health_check_timeout: float = c.HEALTH_CHECK_TIMEOUT_S
    health_endpoint: str = c.HEALTH_ENDPOINT
    request_timeout: float = c.REQUEST_TIMEOUT_S
    list_retries: int = c.LIST_RETRIES
    retry_base_delay: float = c.RETRY_BASE_DELAY_S
    speed_limit: float = c.SPEED_LIMIT_KMH
    min_distance_km: float = c.MIN_DISTANCE_KM
    min_speed_change: float = c.MIN_SPEED_CHANGE_KMH
    max_point_interval: float = c.MAX_POINT_INTERVAL_S
    dead_reckoning_decay: float = c.DEAD_RECKONING_DECAY
    cache_ttl: float = c.POSITION_CACHE_TTL_S
    default_latitude: float | None = c.DEFAULT_LATITUDE
    default_longitude: float | None = c.DEFAULT_LONGITUDE
    stop_speed_threshold: float = c.STOP_SPEED_THRESHOLD_KMH
    min_stop_duration: float = c.MIN_STOP_DURATION_S
    geocoding_enabled: bool = True
    geocoder_url: str = c.NOMINATIM_REVERSE_URL
    storage_path: str | None = None

    def __post_init__(self) -> None:
        if self.poll_interval <= 0 or self.fallback_poll_interval <= 0:
            raise JourneyConfigError("poll intervals must be positive")
        if self.list_retries < 1:
            raise JourneyConfigError("list_retries must be at least 1")
        if not 0 < self.dead_reckoning_decay <= 1:
            raise JourneyConfigError("dead_reckoning_decay must be in (0, 1]")
        if (self.default_latitude is None) != (self.default_longitude is None):
            raise JourneyConfigError("default_latitude and default_longitude must be set together")

    @classmethod
    def from_env(cls, **overrides: Any) -> JourneyConfig:
        """Create configuration from ``JOURNEY_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP: dict[str, tuple[str, Callable[[str], Any]]] = {
            "JOURNEY_BASE_URL": ("base_url", str),
            "JOURNEY_MANAGER_ID": ("manager_id", str),
            "JOURNEY_POLL_INTERVAL": ("poll_interval", float),
            "JOURNEY_FALLBACK_POLL_INTERVAL": ("fallback_poll_interval", float),
            "JOURNEY_HEALTH_CHECK_INTERVAL": ("health_check_interval", float),
            "JOURNEY_HEALTH_CHECK_TIMEOUT": ("health_check_timeout", float),
            "JOURNEY_HEALTH_ENDPOINT": ("health_endpoint", str),
            "JOURNEY_REQUEST_TIMEOUT": ("request_timeout", float),
            "JOURNEY_LIST_RETRIES": ("list_retries", int),
            "JOURNEY_RETRY_BASE_DELAY": ("retry_base_delay", float),
            "JOURNEY_SPEED_LIMIT": ("speed_limit", float),
            "JOURNEY_MIN_DISTANCE_KM": ("min_distance_km", float),
            "JOURNEY_MIN_SPEED_CHANGE": ("min_speed_change", float),
            "JOURNEY_MAX_POINT_INTERVAL": ("max_point_interval", float),
            "JOURNEY_DEAD_RECKONING_DECAY": ("dead_reckoning_decay", float),
            "JOURNEY_CACHE_TTL": ("cache_ttl", float),
            "JOURNEY_DEFAULT_LATITUDE": ("default_latitude", _env_optional_float),
            "JOURNEY_DEFAULT_LONGITUDE": ("default_longitude", _env_optional_float),
            "JOURNEY_STOP_SPEED_THRESHOLD": ("stop_speed_threshold", float),
            "JOURNEY_MIN_STOP_DURATION": ("min_stop_duration", float),
            "JOURNEY_GEOCODER_URL": ("geocoder_url", str),
            "JOURNEY_STORAGE_PATH": ("storage_path", str),
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, (field_name, convert) in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = convert(val)
            except ValueError as exc:
                raise JourneyConfigError(f"Invalid value for {env_key}: {val!r}") from exc

        if "geocoding_enabled" not in overrides:
            config_kwargs["geocoding_enabled"] = _env_bool(env.get("JOURNEY_GEOCODING_ENABLED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
