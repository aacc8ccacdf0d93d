"""Journey record models.

A :class:`Journey` is mutable while active and only through its own
append methods; route points and alerts are append-only tuples so an
already-admitted element can never be reordered or replaced.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from pyjourney.exceptions import JourneySealedError
from pyjourney.models.position import PositionSource


class JourneyStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class AlertType(StrEnum):
    SPEEDING = "speeding"
    HARSH_ACCELERATION = "harsh_acceleration"
    HARSH_BRAKING = "harsh_braking"
    DATA_QUALITY = "data_quality"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Location(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    latitude: float
    longitude: float


class RoutePoint(BaseModel):
    """One admitted position sample within a journey."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    latitude: float
    longitude: float
    timestamp: datetime
    speed: float = 0.0
    heading: float = 0.0
    accuracy: float | None = None
    source: PositionSource
    distance_from_previous: float = 0.0
    """Haversine distance to the previous route point, km."""
    address: str | None = None

    @property
    def location(self) -> Location:
        return Location(latitude=self.latitude, longitude=self.longitude)


class Waypoint(BaseModel):
    """Start or end marker of a journey."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    latitude: float
    longitude: float
    timestamp: datetime
    source: PositionSource
    address: str | None = None


class Alert(BaseModel):
    """A driving-safety or data-quality event.

    Type-specific fields are ``None`` when they do not apply.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: AlertType
    timestamp: datetime
    location: Location
    severity: Severity
    address: str | None = None
    speed: float | None = None
    speed_limit: float | None = None
    acceleration: float | None = None
    deceleration: float | None = None
    message: str | None = None


class VehicleInfo(BaseModel):
    """Snapshot of vehicle attributes taken when the journey starts."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    vehicle_number: str
    make: str | None = "Unknown"
    model: str | None = "Unknown"
    year: int | None = None
    color: str | None = None
    fuel_type: str | None = None
    engine_capacity: str | None = None

    @classmethod
    def unknown(cls, vehicle_id: str) -> VehicleInfo:
        return cls(vehicle_number=f"VEH_{vehicle_id}")


class Stop(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    start_time: datetime
    end_time: datetime
    duration_seconds: float
    location: Location
    address: str | None = None


class JourneySummary(BaseModel):
    """Aggregates computed once when a journey completes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    total_points: int
    total_distance_km: float
    duration_seconds: float
    duration_hours: float
    avg_speed_kmh: float
    max_speed_kmh: float
    data_sources_used: list[PositionSource]
    fallback_mode_used: bool
    estimated_points: int
    estimated_fraction: float
    api_success_rate: float
    stops_detected: list[Stop] = Field(default_factory=list)
    harsh_events: int = 0
    speeding_events: int = 0
    data_quality_alerts: int = 0


class Journey(BaseModel):
    """One continuous tracked trip for a vehicle."""

    model_config = ConfigDict(extra="forbid")

    journey_id: str
    vehicle_id: str
    manager_id: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    status: JourneyStatus = JourneyStatus.ACTIVE
    start_location: Waypoint
    end_location: Waypoint | None = None
    route_points: tuple[RoutePoint, ...] = ()
    total_distance: float = 0.0
    max_speed: float = 0.0
    avg_speed: float = 0.0
    total_duration: float = 0.0
    """Seconds since ``start_time`` at the last mutation."""
    alerts: tuple[Alert, ...] = ()
    data_sources_used: list[PositionSource] = Field(default_factory=list)
    fallback_mode_used: bool = False
    vehicle_info: VehicleInfo
    summary: JourneySummary | None = None
    last_updated: datetime | None = None
    revision: int = 0
    """Incremented on every mutation; used to discard stale tick results."""

    @property
    def is_active(self) -> bool:
        return self.status == JourneyStatus.ACTIVE

    @property
    def last_point(self) -> RoutePoint | None:
        return self.route_points[-1] if self.route_points else None

    def _ensure_active(self) -> None:
        if not self.is_active:
            raise JourneySealedError(f"Journey {self.journey_id} is {self.status}")

    def _touch(self, now: datetime) -> None:
        self.revision += 1
        self.last_updated = now
        self.total_duration = max((now - self.start_time).total_seconds(), 0.0)

    def append_point(self, point: RoutePoint, *, now: datetime) -> None:
        """Append an admitted point and fold it into the running aggregates."""
        self._ensure_active()
        self.route_points = (*self.route_points, point)
        self.total_distance += point.distance_from_previous
        self.max_speed = max(self.max_speed, point.speed)
        self.avg_speed = sum(p.speed for p in self.route_points) / len(self.route_points)
        if point.source not in self.data_sources_used:
            self.data_sources_used.append(point.source)
        self._touch(now)

    def extend_alerts(self, alerts: list[Alert], *, now: datetime) -> None:
        self._ensure_active()
        if not alerts:
            return
        self.alerts = (*self.alerts, *alerts)
        self._touch(now)

    def mark_fallback_used(self) -> None:
        self._ensure_active()
        self.fallback_mode_used = True

    def complete(self, *, end_time: datetime, end_location: Waypoint, summary: JourneySummary) -> None:
        """Seal the journey. Route points and alerts are frozen from here on."""
        self._ensure_active()
        self.end_time = end_time
        self.end_location = end_location
        self.summary = summary
        self._touch(end_time)
        self.status = JourneyStatus.COMPLETED
