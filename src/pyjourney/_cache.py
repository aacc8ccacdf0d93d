"""Internal last-known-position cache."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from pyjourney.models.position import Position


@dataclass(frozen=True)
class PositionCacheEntry:
    position: Position
    cached_at: datetime


class PositionCache:
    """Last resolved position per vehicle, valid for ``ttl_seconds``."""

    def __init__(self, clock: Callable[[], datetime], ttl_seconds: float) -> None:
        self._clock = clock
        self._ttl_seconds = ttl_seconds
        self._vehicles: dict[str, PositionCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._vehicles)

    def remember(self, vehicle_id: str, position: Position) -> None:
        self._vehicles[vehicle_id] = PositionCacheEntry(position=position, cached_at=self._clock())

    def get_fresh(self, vehicle_id: str) -> Position | None:
        """Return the cached position if it is at most ``ttl_seconds`` old."""
        entry = self._vehicles.get(vehicle_id)
        if entry is None:
            return None
        age = (self._clock() - entry.cached_at).total_seconds()
        if age > self._ttl_seconds:
            return None
        return entry.position
