"""Dead-reckoning position estimates for upstream outages."""

from __future__ import annotations

import logging
from datetime import datetime

from pyjourney._constants import DEAD_RECKONING_DECAY
from pyjourney.geo import destination_point
from pyjourney.models.journey import RoutePoint
from pyjourney.models.position import Position, PositionSource

_logger = logging.getLogger(__name__)


class DeadReckoningEstimator:
    """Project the next position from the last admitted point.

    The vehicle is assumed to keep its last heading at its last speed for
    the time elapsed since that point; the carried-forward speed decays by
    ``decay`` on every estimate so an outage slowly brings it to rest.
    """

    def __init__(self, decay: float = DEAD_RECKONING_DECAY) -> None:
        self._decay = decay

    @property
    def decay(self) -> float:
        return self._decay

    def estimate(self, last_point: RoutePoint, now: datetime) -> Position | None:
        """Return an ``estimated`` position, or ``None`` when the vehicle was at rest."""
        elapsed = (now - last_point.timestamp).total_seconds()
        if last_point.speed <= 0 or elapsed <= 0:
            _logger.debug("No dead-reckoning estimate (speed=%.1f elapsed=%.1f)", last_point.speed, elapsed)
            return None

        distance_km = last_point.speed * elapsed / 3600.0
        latitude, longitude = destination_point(
            last_point.latitude,
            last_point.longitude,
            distance_km,
            last_point.heading,
        )
        return Position(
            latitude=latitude,
            longitude=longitude,
            speed=last_point.speed * self._decay,
            heading=last_point.heading,
            accuracy=None,
            source=PositionSource.ESTIMATED,
            timestamp=now,
        )
