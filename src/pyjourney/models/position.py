"""Resolved position model."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class PositionSource(StrEnum):
    """Provenance tag carried by every resolved position and route point."""

    TELEMETRY = "telemetry"
    DEVICE = "device"
    VEHICLE = "vehicle"
    GEOLOCATION = "geolocation"
    CACHE = "cache"
    DEFAULT = "default"
    ESTIMATED = "estimated"

    @property
    def is_live(self) -> bool:
        """Whether the position came from a fresh upstream or local fix."""
        return self in _LIVE_SOURCES

    @property
    def is_api(self) -> bool:
        return self in _API_SOURCES


_API_SOURCES = frozenset({PositionSource.TELEMETRY, PositionSource.DEVICE, PositionSource.VEHICLE})
_LIVE_SOURCES = _API_SOURCES | {PositionSource.GEOLOCATION}


class Position(BaseModel):
    """A single position fix.

    Parameters
    ----------
    latitude, longitude : float
        Coordinates in degrees.
    speed : float
        Speed in km/h.
    heading : float
        Heading in degrees clockwise from north.
    accuracy : float or None
        Horizontal accuracy in metres, when the source reports one.
    source : PositionSource
        Which resolver source produced the fix.
    timestamp : datetime or None
        Time the source reports for the fix, if any.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    latitude: float
    longitude: float
    speed: float = Field(default=0.0, ge=0)
    heading: float = 0.0
    accuracy: float | None = None
    source: PositionSource
    timestamp: datetime | None = None
