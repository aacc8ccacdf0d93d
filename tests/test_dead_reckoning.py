from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from pyjourney.dead_reckoning import DeadReckoningEstimator
from pyjourney.geo import destination_point, haversine_km
from pyjourney.models import PositionSource, RoutePoint

_T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _last(speed: float, heading: float = 90.0) -> RoutePoint:
    return RoutePoint(
        latitude=28.4595,
        longitude=77.0266,
        timestamp=_T0,
        speed=speed,
        heading=heading,
        source=PositionSource.TELEMETRY,
    )


def test_estimate_projects_along_last_heading() -> None:
    estimate = DeadReckoningEstimator().estimate(_last(36.0), _T0 + timedelta(seconds=30))

    assert estimate is not None
    expected = destination_point(28.4595, 77.0266, 0.3, 90.0)
    assert (estimate.latitude, estimate.longitude) == pytest.approx(expected)
    assert haversine_km(28.4595, 77.0266, estimate.latitude, estimate.longitude) == pytest.approx(0.3, rel=1e-6)
    assert estimate.source == PositionSource.ESTIMATED
    assert estimate.heading == 90.0
    assert estimate.timestamp == _T0 + timedelta(seconds=30)


def test_estimate_decays_speed() -> None:
    estimate = DeadReckoningEstimator(decay=0.95).estimate(_last(40.0), _T0 + timedelta(seconds=10))

    assert estimate is not None
    assert estimate.speed == pytest.approx(38.0)


def test_no_estimate_when_vehicle_was_at_rest() -> None:
    assert DeadReckoningEstimator().estimate(_last(0.0), _T0 + timedelta(seconds=30)) is None


def test_no_estimate_without_elapsed_time() -> None:
    assert DeadReckoningEstimator().estimate(_last(50.0), _T0) is None
