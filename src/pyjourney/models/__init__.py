"""Journey and upstream payload models."""

from pyjourney.models.fleet import Device, TelemetryReading, VehicleRecord
from pyjourney.models.journey import (
    Alert,
    AlertType,
    Journey,
    JourneyStatus,
    JourneySummary,
    Location,
    RoutePoint,
    Severity,
    Stop,
    VehicleInfo,
    Waypoint,
)
from pyjourney.models.position import Position, PositionSource

__all__ = [
    "Alert",
    "AlertType",
    "Device",
    "Journey",
    "JourneyStatus",
    "JourneySummary",
    "Location",
    "Position",
    "PositionSource",
    "RoutePoint",
    "Severity",
    "Stop",
    "TelemetryReading",
    "VehicleInfo",
    "VehicleRecord",
    "Waypoint",
]
