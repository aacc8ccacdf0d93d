from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pyjourney.alerts import AlertDetector
from pyjourney.models import AlertType, PositionSource, RoutePoint, Severity

_T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _point(speed: float, seconds: float = 0.0, source: PositionSource = PositionSource.TELEMETRY) -> RoutePoint:
    return RoutePoint(
        latitude=28.4595,
        longitude=77.0266,
        timestamp=_T0 + timedelta(seconds=seconds),
        speed=speed,
        source=source,
        address="Sector 29",
    )


def test_harsh_acceleration_from_10_to_90_in_5_seconds() -> None:
    alerts = AlertDetector().detect(_point(10.0), _point(90.0, 5.0))

    harsh = [a for a in alerts if a.type == AlertType.HARSH_ACCELERATION]
    assert len(harsh) == 1
    assert harsh[0].severity == Severity.MEDIUM
    assert harsh[0].acceleration == 16.0
    assert harsh[0].address == "Sector 29"


def test_speeding_severity_depends_on_margin_over_limit() -> None:
    detector = AlertDetector()

    medium = detector.detect(_point(60.0), _point(70.0, 10.0))
    high = detector.detect(_point(70.0), _point(75.0, 10.0))

    assert [(a.type, a.severity) for a in medium] == [(AlertType.SPEEDING, Severity.MEDIUM)]
    assert [(a.type, a.severity) for a in high] == [(AlertType.SPEEDING, Severity.HIGH)]
    assert high[0].speed_limit == 60.0


def test_harsh_braking_is_high_severity() -> None:
    alerts = AlertDetector().detect(_point(55.0), _point(0.0, 5.0))

    assert [(a.type, a.severity) for a in alerts] == [(AlertType.HARSH_BRAKING, Severity.HIGH)]
    assert alerts[0].deceleration == 11.0


def test_estimated_point_raises_data_quality_alert() -> None:
    alerts = AlertDetector().detect(_point(30.0), _point(28.5, 30.0, PositionSource.ESTIMATED))

    assert [(a.type, a.severity) for a in alerts] == [(AlertType.DATA_QUALITY, Severity.LOW)]
    assert alerts[0].message


def test_no_alerts_for_non_positive_elapsed_time() -> None:
    detector = AlertDetector()

    assert detector.detect(_point(10.0, 5.0), _point(120.0, 5.0)) == []
    assert detector.detect(_point(10.0, 5.0), _point(120.0, 0.0)) == []


def test_calm_driving_has_no_alerts() -> None:
    assert AlertDetector().detect(_point(40.0), _point(45.0, 10.0)) == []
