"""Driving-safety and data-quality alert detection."""

from __future__ import annotations

import logging

from pyjourney._constants import (
    HARSH_ACCELERATION_KMH_PER_S,
    HARSH_BRAKING_KMH_PER_S,
    SPEED_LIMIT_KMH,
    SPEEDING_HIGH_FACTOR,
)
from pyjourney.models.journey import Alert, AlertType, RoutePoint, Severity
from pyjourney.models.position import PositionSource

_logger = logging.getLogger(__name__)


class AlertDetector:
    """Evaluate a pair of consecutive route points.

    Acceleration is expressed in km/h per second.
    """

    def __init__(
        self,
        *,
        speed_limit: float = SPEED_LIMIT_KMH,
        harsh_acceleration: float = HARSH_ACCELERATION_KMH_PER_S,
        harsh_braking: float = HARSH_BRAKING_KMH_PER_S,
    ) -> None:
        self.speed_limit = speed_limit
        self.harsh_acceleration = harsh_acceleration
        self.harsh_braking = harsh_braking

    def detect(self, previous: RoutePoint, current: RoutePoint) -> list[Alert]:
        elapsed = (current.timestamp - previous.timestamp).total_seconds()
        if elapsed <= 0:
            return []

        common = {
            "timestamp": current.timestamp,
            "location": current.location,
            "address": current.address,
        }
        alerts: list[Alert] = []

        if current.speed > self.speed_limit:
            alerts.append(
                Alert(
                    type=AlertType.SPEEDING,
                    severity=Severity.HIGH if current.speed > self.speed_limit * SPEEDING_HIGH_FACTOR else Severity.MEDIUM,
                    speed=current.speed,
                    speed_limit=self.speed_limit,
                    **common,
                )
            )

        acceleration = (current.speed - previous.speed) / elapsed
        if acceleration > self.harsh_acceleration:
            alerts.append(
                Alert(
                    type=AlertType.HARSH_ACCELERATION,
                    severity=Severity.MEDIUM,
                    acceleration=acceleration,
                    **common,
                )
            )
        if acceleration < self.harsh_braking:
            alerts.append(
                Alert(
                    type=AlertType.HARSH_BRAKING,
                    severity=Severity.HIGH,
                    deceleration=abs(acceleration),
                    **common,
                )
            )

        if current.source == PositionSource.ESTIMATED:
            alerts.append(
                Alert(
                    type=AlertType.DATA_QUALITY,
                    severity=Severity.LOW,
                    message="Using estimated position due to API unavailability",
                    **common,
                )
            )

        if alerts:
            _logger.debug("Alerts detected: %s", [str(a.type) for a in alerts])
        return alerts
