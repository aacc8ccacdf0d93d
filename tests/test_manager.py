from __future__ import annotations

import asyncio
import threading
from collections.abc import Mapping
from typing import Any

import pytest

from pyjourney.config import JourneyConfig
from pyjourney.exceptions import (
    DuplicateTrackingRequest,
    JourneyNotFound,
    JourneyTransportError,
    NoActiveJourney,
    PersistenceWriteFailure,
)
from pyjourney.geo import destination_point, haversine_km
from pyjourney.health import HealthMonitor
from pyjourney.manager import JourneyManager
from pyjourney.models import AlertType, JourneyStatus, PositionSource
from pyjourney.scheduler import ManualClock, ManualScheduler
from pyjourney.state.events import JourneyUpdate, JourneyUpdateKind
from pyjourney.state.store import ACTIVE_JOURNEYS_KEY, MemoryKeyValueStore, PersistenceStore

_START = (28.4595, 77.0266)


class _FleetTransport:
    """Serves one device and one vehicle; telemetry endpoints always fail."""

    def __init__(self) -> None:
        self.device: dict[str, Any] = {
            "deviceId": "D1",
            "vehicleId": "V1",
            "latitude": _START[0],
            "longitude": _START[1],
            "speed": 36,
        }
        self.vehicle: dict[str, Any] = {"vehicleId": "V1", "vehicleNumber": "HR26AB1234", "make": "Tata"}
        self.down = False
        self.gate: asyncio.Event | None = None

    def move(self, latitude: float, longitude: float, speed: float | None = None) -> None:
        self.device = {**self.device, "latitude": latitude, "longitude": longitude}
        if speed is not None:
            self.device["speed"] = speed

    async def get_json(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        if self.gate is not None:
            await self.gate.wait()
        if self.down:
            raise JourneyTransportError(f"Request to {endpoint} failed", endpoint=endpoint)
        if endpoint == "/device/v1/all":
            return {"data": [self.device]}
        if endpoint == "/vehicle/v1/all":
            return {"data": [self.vehicle]}
        raise JourneyTransportError(f"HTTP 404 from {endpoint}", status_code=404, endpoint=endpoint)

    async def probe(self, endpoint: str, *, timeout: float | None = None) -> int:
        if self.down:
            raise JourneyTransportError(f"Probe of {endpoint} failed", endpoint=endpoint)
        return 200


class _BrokenBackend:
    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str) -> None:
        raise PersistenceWriteFailure("disk full")

    def delete(self, key: str) -> None:
        raise PersistenceWriteFailure("disk full")


class _SlowBackend(MemoryKeyValueStore):
    """Holds every write until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()

    def set(self, key: str, value: str) -> None:
        self.release.wait(5)
        super().set(key, value)


def _config(**overrides: Any) -> JourneyConfig:
    defaults: dict[str, Any] = {
        "list_retries": 1,
        "retry_base_delay": 0.0,
        "geocoding_enabled": False,
        "default_latitude": None,
        "default_longitude": None,
    }
    defaults.update(overrides)
    return JourneyConfig(**defaults)


class _Harness:
    def __init__(self, *, store: PersistenceStore | None = None, **config_overrides: Any) -> None:
        self.config = _config(**config_overrides)
        self.transport = _FleetTransport()
        self.clock = ManualClock()
        self.scheduler = ManualScheduler(self.clock)
        self.health = HealthMonitor(self.config, self.transport, scheduler=self.scheduler, clock=self.clock)
        self.store = store or PersistenceStore(MemoryKeyValueStore())
        self.updates: list[JourneyUpdate] = []
        self.manager = JourneyManager(
            self.config,
            transport=self.transport,
            health=self.health,
            store=self.store,
            scheduler=self.scheduler,
            clock=self.clock,
            on_journey_update=self.updates.append,
        )

    @property
    def kinds(self) -> list[JourneyUpdateKind]:
        return [u.kind for u in self.updates]


@pytest.mark.asyncio
async def test_start_creates_journey_with_seed_point() -> None:
    h = _Harness()

    journey = await h.manager.start("V1")

    assert journey.journey_id == "J_1767225600000_V1"
    assert journey.status == JourneyStatus.ACTIVE
    assert len(journey.route_points) == 1
    seed = journey.route_points[0]
    assert (seed.latitude, seed.longitude) == _START
    assert seed.source == PositionSource.DEVICE
    assert seed.distance_from_previous == 0.0
    assert journey.start_location.source == PositionSource.DEVICE
    assert journey.start_location.address == "28.459500, 77.026600"
    assert journey.vehicle_info.vehicle_number == "HR26AB1234"
    assert journey.vehicle_info.make == "Tata"
    assert journey.max_speed == 36.0
    assert h.manager.get_active_journey("V1") is journey
    assert h.manager.is_tracking("V1")
    assert len(h.scheduler.active_timers) == 1
    assert h.kinds == [JourneyUpdateKind.STARTED]


@pytest.mark.asyncio
async def test_unknown_vehicle_gets_placeholder_info() -> None:
    h = _Harness()
    h.transport.vehicle = {"vehicleId": "OTHER"}

    journey = await h.manager.start("V1")

    assert journey.vehicle_info.vehicle_number == "VEH_V1"
    assert journey.vehicle_info.make == "Unknown"


@pytest.mark.asyncio
async def test_duplicate_start_is_rejected() -> None:
    h = _Harness()
    await h.manager.start("V1")

    with pytest.raises(DuplicateTrackingRequest):
        await h.manager.start("V1")

    assert len(h.manager.active_journeys()) == 1
    assert len(h.scheduler.active_timers) == 1


@pytest.mark.asyncio
async def test_stop_without_active_journey() -> None:
    h = _Harness()

    with pytest.raises(NoActiveJourney):
        await h.manager.stop("V1")


@pytest.mark.asyncio
async def test_tick_admits_moved_position() -> None:
    h = _Harness()
    await h.manager.start("V1")
    h.transport.move(*destination_point(*_START, 1.0, 90.0))

    fired = await h.scheduler.advance(10)

    journey = h.manager.get_active_journey("V1")
    assert journey is not None
    assert fired == 1
    assert len(journey.route_points) == 2
    assert journey.route_points[1].distance_from_previous == pytest.approx(1.0, rel=1e-6)
    assert journey.total_distance == pytest.approx(1.0, rel=1e-6)
    assert h.kinds == [JourneyUpdateKind.STARTED, JourneyUpdateKind.POINT_ADDED]


@pytest.mark.asyncio
async def test_tick_ignores_jitter() -> None:
    h = _Harness()
    await h.manager.start("V1")
    h.transport.move(*destination_point(*_START, 0.003, 90.0))

    await h.scheduler.advance(10)

    journey = h.manager.get_active_journey("V1")
    assert journey is not None
    assert len(journey.route_points) == 1
    assert h.kinds == [JourneyUpdateKind.STARTED]


@pytest.mark.asyncio
async def test_route_invariants_hold_over_many_ticks() -> None:
    h = _Harness()
    await h.manager.start("V1")

    lat, lon = _START
    for step in range(6):
        lat, lon = destination_point(lat, lon, 0.2 * (step + 1), 45.0)
        h.transport.move(lat, lon, speed=30 + 5 * step)
        await h.scheduler.advance(10)

    journey = h.manager.get_active_journey("V1")
    assert journey is not None
    points = journey.route_points
    assert len(points) == 7
    assert journey.total_distance == pytest.approx(sum(p.distance_from_previous for p in points))
    assert all(a.timestamp <= b.timestamp for a, b in zip(points, points[1:], strict=False))
    for previous, current in zip(points, points[1:], strict=False):
        expected = haversine_km(previous.latitude, previous.longitude, current.latitude, current.longitude)
        assert current.distance_from_previous == pytest.approx(expected)
    assert journey.max_speed == 55.0
    assert journey.avg_speed == pytest.approx(sum(p.speed for p in points) / len(points))


@pytest.mark.asyncio
async def test_dead_reckoning_in_fallback_mode() -> None:
    h = _Harness(cache_ttl=5.0)
    await h.manager.start("V1")
    h.transport.down = True
    await h.health.probe()
    assert h.manager.fallback_mode

    await h.scheduler.advance(10)

    journey = h.manager.get_active_journey("V1")
    assert journey is not None
    assert len(journey.route_points) == 2
    estimated = journey.route_points[1]
    expected = destination_point(*_START, 36.0 * 10 / 3600.0, 0.0)
    assert (estimated.latitude, estimated.longitude) == pytest.approx(expected)
    assert estimated.source == PositionSource.ESTIMATED
    assert estimated.speed == pytest.approx(36.0 * 0.95)
    assert estimated.address == "Estimated location"
    assert journey.fallback_mode_used
    assert PositionSource.ESTIMATED in journey.data_sources_used
    assert any(a.type == AlertType.DATA_QUALITY for a in journey.alerts)
    # fallback mode stretches the poll interval
    assert h.scheduler.active_timers[0].due == pytest.approx(40.0)


@pytest.mark.asyncio
async def test_exhausted_sources_outside_fallback_skip_tick() -> None:
    h = _Harness(cache_ttl=5.0)
    await h.manager.start("V1")
    h.transport.down = True

    await h.scheduler.advance(10)

    journey = h.manager.get_active_journey("V1")
    assert journey is not None
    assert len(journey.route_points) == 1
    assert not journey.fallback_mode_used


@pytest.mark.asyncio
async def test_stop_seals_journey_and_moves_it_to_history() -> None:
    h = _Harness()
    await h.manager.start("V1")
    h.transport.move(*destination_point(*_START, 0.5, 180.0))
    await h.scheduler.advance(10)
    h.transport.move(*destination_point(*_START, 1.0, 180.0), speed=0)
    h.clock.advance(5)

    journey = await h.manager.stop("V1")

    assert journey.status == JourneyStatus.COMPLETED
    assert journey.end_time == h.clock()
    assert len(journey.route_points) == 3
    assert journey.end_location is not None
    assert journey.end_location.latitude == pytest.approx(journey.route_points[-1].latitude)
    assert journey.summary is not None
    assert journey.summary.total_points == 3
    assert journey.summary.duration_seconds == 15.0
    assert journey.summary.total_distance_km == pytest.approx(1.0, rel=1e-6)
    assert h.manager.get_active_journey("V1") is None
    assert h.manager.history()[0] is journey
    assert h.scheduler.active_timers == []
    assert await h.scheduler.advance(60) == 0
    assert h.kinds[-1] == JourneyUpdateKind.STOPPED
    assert h.store.load_active() == []
    assert [j.journey_id for j in h.store.load_history()] == [journey.journey_id]


@pytest.mark.asyncio
async def test_stop_without_final_position_ends_at_last_point() -> None:
    h = _Harness(cache_ttl=5.0)
    await h.manager.start("V1")
    h.transport.down = True
    h.clock.advance(30)

    journey = await h.manager.stop("V1")

    assert journey.end_location is not None
    assert (journey.end_location.latitude, journey.end_location.longitude) == _START
    assert len(journey.route_points) == 1


@pytest.mark.asyncio
async def test_tick_result_after_stop_is_discarded() -> None:
    h = _Harness()
    await h.manager.start("V1")
    h.transport.move(*destination_point(*_START, 1.0, 90.0))
    h.transport.gate = asyncio.Event()

    tick = asyncio.create_task(h.scheduler.advance(10))
    for _ in range(5):
        await asyncio.sleep(0)
    stop = asyncio.create_task(h.manager.stop("V1"))
    for _ in range(5):
        await asyncio.sleep(0)
    h.transport.gate.set()

    assert await tick == 1
    journey = await stop

    assert journey.status == JourneyStatus.COMPLETED
    assert len(journey.route_points) == 2
    assert JourneyUpdateKind.POINT_ADDED not in h.kinds
    assert h.kinds == [JourneyUpdateKind.STARTED, JourneyUpdateKind.STOPPED]


@pytest.mark.asyncio
async def test_restore_resumes_persisted_journeys() -> None:
    backend = MemoryKeyValueStore()
    first = _Harness(store=PersistenceStore(backend), default_latitude=28.4, default_longitude=77.0)
    started = await first.manager.start("V1")
    await first.manager.start("V2")
    await first.manager.stop("V2")
    await first.store.flush()

    second = _Harness(store=PersistenceStore(backend))
    restored = second.manager.restore()

    assert [j.journey_id for j in restored] == [started.journey_id]
    assert second.manager.get_active_journey("V1") is not None
    assert [j.vehicle_id for j in second.manager.history()] == ["V2"]
    assert len(second.scheduler.active_timers) == 1
    assert second.kinds == [JourneyUpdateKind.RESTORED]


@pytest.mark.asyncio
async def test_persistence_failure_does_not_stop_tracking(caplog: pytest.LogCaptureFixture) -> None:
    h = _Harness(store=PersistenceStore(_BrokenBackend()))
    await h.manager.start("V1")
    h.transport.move(*destination_point(*_START, 1.0, 90.0))

    await h.scheduler.advance(10)
    journey = await h.manager.stop("V1")
    await h.store.flush()

    assert len(journey.route_points) == 2
    assert journey.status == JourneyStatus.COMPLETED
    assert "Error saving" in caplog.text


@pytest.mark.asyncio
async def test_update_snapshots_are_isolated() -> None:
    h = _Harness()
    await h.manager.start("V1")
    h.transport.move(*destination_point(*_START, 1.0, 90.0))

    await h.scheduler.advance(10)

    assert len(h.updates[0].journey.route_points) == 1
    assert len(h.updates[1].journey.route_points) == 2
    assert h.updates[0].vehicle_id == "V1"


@pytest.mark.asyncio
async def test_export_and_lookup() -> None:
    h = _Harness()
    journey = await h.manager.start("V1")
    await h.manager.stop("V1")

    blob = h.manager.export_journey(journey.journey_id, "csv")

    assert blob.filename == "journey_HR26AB1234_2026-01-01T00-00-00.csv"
    assert h.manager.find_journey(journey.journey_id) is journey
    with pytest.raises(JourneyNotFound):
        h.manager.export_journey("J_missing", "json")


@pytest.mark.asyncio
async def test_system_status() -> None:
    h = _Harness()
    await h.manager.start("V1")
    await h.health.probe()

    status = h.manager.system_status()

    assert status.api_status == "normal"
    assert status.active_journeys == 1
    assert status.tracking_timers == 1
    assert status.history_count == 0
    assert status.cache_size == 1
    assert status.last_health_check == h.clock()


@pytest.mark.asyncio
async def test_close_cancels_ticks_and_keeps_active_state() -> None:
    h = _Harness()
    await h.manager.start("V1")

    await h.manager.close()

    assert h.scheduler.active_timers == []
    assert [j.vehicle_id for j in h.store.load_active()] == ["V1"]
    assert [j.vehicle_id for j in PersistenceStore(h.store.backend).load_active()] == ["V1"]


@pytest.mark.asyncio
async def test_slow_store_does_not_block_ticks() -> None:
    backend = _SlowBackend()
    h = _Harness(store=PersistenceStore(backend))
    try:
        await h.manager.start("V1")
        h.transport.move(*destination_point(*_START, 1.0, 90.0))

        await h.scheduler.advance(10)

        assert len(h.manager.get_active_journey("V1").route_points) == 2
        assert backend.get(ACTIVE_JOURNEYS_KEY) is None
    finally:
        backend.release.set()
    await h.store.flush()

    persisted = PersistenceStore(backend).load_active()
    assert len(persisted[0].route_points) == 2
