from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from pyjourney.exceptions import JourneySealedError
from pyjourney.models import (
    Journey,
    JourneyStatus,
    JourneySummary,
    Position,
    PositionSource,
    RoutePoint,
    TelemetryReading,
    VehicleInfo,
    VehicleRecord,
    Waypoint,
)
from pyjourney.state.events import JourneyEvents, JourneyUpdate, JourneyUpdateKind

_T0 = datetime(2026, 1, 1, tzinfo=UTC)


def _journey() -> Journey:
    return Journey(
        journey_id="J_1_V1",
        vehicle_id="V1",
        start_time=_T0,
        start_location=Waypoint(latitude=28.4595, longitude=77.0266, timestamp=_T0, source=PositionSource.DEVICE),
        vehicle_info=VehicleInfo.unknown("V1"),
    )


def _point(seconds: float, speed: float, distance: float = 0.0) -> RoutePoint:
    return RoutePoint(
        latitude=28.4595,
        longitude=77.0266,
        timestamp=_T0 + timedelta(seconds=seconds),
        speed=speed,
        source=PositionSource.TELEMETRY,
        distance_from_previous=distance,
    )


def _summary() -> JourneySummary:
    return JourneySummary(
        total_points=1,
        total_distance_km=0.0,
        duration_seconds=0.0,
        duration_hours=0.0,
        avg_speed_kmh=0.0,
        max_speed_kmh=0.0,
        data_sources_used=[],
        fallback_mode_used=False,
        estimated_points=0,
        estimated_fraction=0.0,
        api_success_rate=1.0,
    )


def test_append_point_updates_aggregates_and_revision() -> None:
    journey = _journey()

    journey.append_point(_point(0, 20), now=_T0)
    journey.append_point(_point(10, 40, distance=0.2), now=_T0 + timedelta(seconds=10))

    assert journey.total_distance == pytest.approx(0.2)
    assert journey.max_speed == 40.0
    assert journey.avg_speed == 30.0
    assert journey.total_duration == 10.0
    assert journey.revision == 2
    assert journey.last_updated == _T0 + timedelta(seconds=10)
    assert journey.data_sources_used == [PositionSource.TELEMETRY]
    assert journey.last_point == journey.route_points[-1]


def test_completed_journey_is_sealed() -> None:
    journey = _journey()
    journey.append_point(_point(0, 20), now=_T0)
    end = Waypoint(latitude=28.4595, longitude=77.0266, timestamp=_T0, source=PositionSource.CACHE)

    journey.complete(end_time=_T0 + timedelta(minutes=1), end_location=end, summary=_summary())

    assert journey.status == JourneyStatus.COMPLETED
    assert not journey.is_active
    with pytest.raises(JourneySealedError):
        journey.append_point(_point(70, 20), now=_T0)
    with pytest.raises(JourneySealedError):
        journey.extend_alerts([], now=_T0)
    with pytest.raises(JourneySealedError):
        journey.complete(end_time=_T0, end_location=end, summary=_summary())


def test_route_points_are_immutable() -> None:
    point = _point(0, 20)

    with pytest.raises(ValidationError):
        point.speed = 10.0  # type: ignore[misc]


def test_position_rejects_negative_speed() -> None:
    with pytest.raises(ValidationError):
        Position(latitude=1.0, longitude=2.0, speed=-1.0, source=PositionSource.DEFAULT)


def test_telemetry_reading_parses_aliases_and_sentinels() -> None:
    reading = TelemetryReading.model_validate(
        {"gpsLatitude": "28.5", "gpsLongitude": "77.1", "gpsSpeed": "--", "recordedAt": 1_767_225_600_000}
    )

    assert (reading.latitude, reading.longitude) == (28.5, 77.1)
    assert reading.speed is None
    assert reading.timestamp == _T0
    assert reading.raw["gpsSpeed"] == "--"


def test_vehicle_record_year_and_fix() -> None:
    record = VehicleRecord.model_validate({"id": 9, "year": "2021", "currentLatitude": 0, "currentLongitude": 77.0})

    assert record.vehicle_id == "9"
    assert record.year == 2021
    assert not record.has_fix


def test_events_deliver_snapshots_and_unsubscribe() -> None:
    events = JourneyEvents()
    received: list[JourneyUpdate] = []
    unsubscribe = events.subscribe(received.append)
    journey = _journey()

    events.emit("V1", JourneyUpdateKind.STARTED, journey)
    journey.append_point(_point(0, 20), now=_T0)
    unsubscribe()
    events.emit("V1", JourneyUpdateKind.POINT_ADDED, journey)

    assert len(received) == 1
    assert received[0].journey.route_points == ()
    assert len(events) == 0


def test_failing_listener_does_not_block_others() -> None:
    events = JourneyEvents()
    received: list[JourneyUpdateKind] = []

    def _broken(update: JourneyUpdate) -> None:
        raise RuntimeError("listener bug")

    events.subscribe(_broken)
    events.subscribe(lambda update: received.append(update.kind))

    events.emit("V1", JourneyUpdateKind.STOPPED, _journey())

    assert received == [JourneyUpdateKind.STOPPED]


def test_update_requires_vehicle_id() -> None:
    with pytest.raises(ValidationError):
        JourneyUpdate(vehicle_id="  ", kind=JourneyUpdateKind.STARTED, journey=_journey())
