"""Journey manager: per-vehicle tracking state machine and poll loop."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import aiohttp
from pydantic import BaseModel, ConfigDict

from pyjourney._api.fleet import find_vehicle
from pyjourney._api.geocode import Geocoder, NominatimGeocoder
from pyjourney._cache import PositionCache
from pyjourney._constants import ESTIMATED_ADDRESS
from pyjourney._transport import HttpTransport, Transport
from pyjourney.alerts import AlertDetector
from pyjourney.config import JourneyConfig
from pyjourney.dead_reckoning import DeadReckoningEstimator
from pyjourney.exceptions import (
    AllSourcesExhausted,
    DuplicateTrackingRequest,
    JourneyError,
    JourneyNotFound,
    JourneyTransportError,
    NoActiveJourney,
)
from pyjourney.export import ExportBlob, Exporter, ExportFormat
from pyjourney.geo import format_coordinates, haversine_km
from pyjourney.health import HealthMonitor
from pyjourney.models.journey import Journey, RoutePoint, VehicleInfo, Waypoint
from pyjourney.models.position import Position, PositionSource
from pyjourney.resolver import GeolocationProvider, PositionResolver
from pyjourney.scheduler import AsyncioScheduler, Scheduler, TimerHandle
from pyjourney.state.events import JourneyEvents, JourneyListener, JourneyUpdateKind
from pyjourney.state.policy import AdmissionThresholds, should_admit_point
from pyjourney.state.store import JsonFileKeyValueStore, MemoryKeyValueStore, PersistenceStore
from pyjourney.stats import build_summary

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SystemStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_status: str
    active_journeys: int
    tracking_timers: int
    history_count: int
    cache_size: int
    last_health_check: datetime | None = None


class JourneyManager:
    """Tracks vehicle journeys from start to stop.

    Each vehicle is either idle, active (one journey, one tick timer) or
    completed (journey sealed and moved to history). A journey is only
    mutated by its own vehicle's tick; a tick whose position arrives after
    ``stop()`` or after another tick already changed the journey is
    discarded.

    Usage::

        async with JourneyManager(JourneyConfig.from_env()) as manager:
            manager.subscribe(print)
            await manager.start("42")
            ...
            journey = await manager.stop("42")
    """

    def __init__(
        self,
        config: JourneyConfig | None = None,
        *,
        http_session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        resolver: PositionResolver | None = None,
        health: HealthMonitor | None = None,
        store: PersistenceStore | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] = _utcnow,
        geolocation: GeolocationProvider | None = None,
        geocoder: Geocoder | None = None,
        alert_detector: AlertDetector | None = None,
        estimator: DeadReckoningEstimator | None = None,
        exporter: Exporter | None = None,
        on_journey_update: JourneyListener | None = None,
    ) -> None:
        self._config = config or JourneyConfig()
        self._external_session = http_session is not None
        self._http_session = http_session
        self._transport = transport
        self._clock = clock
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._cache = PositionCache(clock, self._config.cache_ttl)
        self._geolocation = geolocation
        self._resolver = resolver
        self._health = health
        self._geocoder = geocoder
        if store is None:
            backend = (
                JsonFileKeyValueStore(self._config.storage_path)
                if self._config.storage_path
                else MemoryKeyValueStore()
            )
            store = PersistenceStore(backend)
        self._store = store
        self._detector = alert_detector or AlertDetector(speed_limit=self._config.speed_limit)
        self._estimator = estimator or DeadReckoningEstimator(self._config.dead_reckoning_decay)
        self._exporter = exporter or Exporter(clock=clock)
        self._thresholds = AdmissionThresholds(
            min_distance_km=self._config.min_distance_km,
            min_speed_change=self._config.min_speed_change,
            max_point_interval=self._config.max_point_interval,
        )
        self.events = JourneyEvents()
        if on_journey_update is not None:
            self.events.subscribe(on_journey_update)

        self._active: dict[str, Journey] = {}
        self._timers: dict[str, TimerHandle] = {}
        self._busy: set[str] = set()
        self._history: list[Journey] = []

        if transport is not None:
            self._wire(transport)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> JourneyManager:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._wire(HttpTransport(self._config, self._http_session))
        if self._health is not None:
            self._health.start()
        self.restore()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def _wire(self, transport: Transport) -> None:
        """Build any collaborator that was not injected."""
        self._transport = transport
        if self._health is None:
            self._health = HealthMonitor(self._config, transport, scheduler=self._scheduler, clock=self._clock)
        if self._resolver is None:
            self._resolver = PositionResolver.default_chain(
                self._config,
                transport,
                cache=self._cache,
                fallback_mode=lambda: self.fallback_mode,
                geolocation=self._geolocation,
            )
        if self._geocoder is None and self._config.geocoding_enabled:
            self._geocoder = NominatimGeocoder(self._config, transport)

    async def close(self) -> None:
        """Cancel every tick, persist active journeys and release the HTTP session."""
        for vehicle_id in list(self._timers):
            self._cancel_timer(vehicle_id)
        for journey in self._active.values():
            self._store.save_active(journey)
        await self._store.flush()
        if self._health is not None:
            self._health.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_resolver(self) -> PositionResolver:
        if self._resolver is None:
            raise JourneyError("Manager not initialized. Use 'async with JourneyManager(...) as manager:'")
        return self._resolver

    @property
    def fallback_mode(self) -> bool:
        return self._health is not None and self._health.fallback_mode

    def _poll_interval(self) -> float:
        if self._health is not None:
            return self._health.poll_interval()
        return self._config.poll_interval

    def _schedule(self, vehicle_id: str) -> None:
        self._cancel_timer(vehicle_id)

        async def _tick() -> None:
            await self._tick(vehicle_id)

        self._timers[vehicle_id] = self._scheduler.call_every(self._poll_interval, _tick)

    def _cancel_timer(self, vehicle_id: str) -> None:
        timer = self._timers.pop(vehicle_id, None)
        if timer is not None:
            timer.cancel()

    def _is_current(self, vehicle_id: str, journey: Journey, revision: int) -> bool:
        """Whether a tick that read ``revision`` may still apply its result."""
        return self._active.get(vehicle_id) is journey and journey.is_active and journey.revision == revision

    async def _address(self, latitude: float, longitude: float) -> str:
        if self._geocoder is None:
            return format_coordinates(latitude, longitude)
        return await self._geocoder.reverse(latitude, longitude)

    async def _vehicle_info(self, vehicle_id: str, manager_id: str | None) -> VehicleInfo:
        if self._transport is None:
            return VehicleInfo.unknown(vehicle_id)
        try:
            record = await find_vehicle(self._config, self._transport, vehicle_id, manager_id)
        except JourneyTransportError:
            _logger.debug("Failed to get vehicle info for vehicle=%s", vehicle_id, exc_info=True)
            return VehicleInfo.unknown(vehicle_id)
        if record is None:
            return VehicleInfo.unknown(vehicle_id)
        return VehicleInfo(
            vehicle_number=record.vehicle_number or f"VEH_{vehicle_id}",
            make=record.make,
            model=record.model,
            year=record.year,
            color=record.color,
            fuel_type=record.fuel_type,
            engine_capacity=record.engine_capacity,
        )

    def _dead_reckon(self, journey: Journey, exc: AllSourcesExhausted, now: datetime) -> Position | None:
        if not self.fallback_mode:
            _logger.warning("Skipping tick for vehicle=%s: %s", journey.vehicle_id, exc)
            return None
        last = journey.last_point
        if last is None:
            return None
        estimate = self._estimator.estimate(last, now)
        if estimate is None:
            _logger.info("All sources failed for vehicle=%s and it was at rest; nothing to estimate", journey.vehicle_id)
            return None
        _logger.info("Using estimated position for vehicle=%s due to API failure", journey.vehicle_id)
        return estimate

    async def _admit(
        self,
        journey: Journey,
        position: Position,
        now: datetime,
        *,
        revision: int | None = None,
    ) -> RoutePoint | None:
        """Append ``position`` if it passes the admission thresholds.

        With a ``revision`` the append is abandoned when the journey changed
        (or was stopped) while the address lookup was in flight.
        """
        last = journey.last_point
        assert last is not None  # noqa: S101
        distance = haversine_km(last.latitude, last.longitude, position.latitude, position.longitude)
        elapsed = (now - last.timestamp).total_seconds()
        if not should_admit_point(
            distance_km=distance,
            speed_change=position.speed - last.speed,
            elapsed_seconds=elapsed,
            thresholds=self._thresholds,
        ):
            _logger.debug(
                "Position for vehicle=%s below admission thresholds (%.4f km, %.1fs)",
                journey.vehicle_id,
                distance,
                elapsed,
            )
            return None

        if position.source == PositionSource.ESTIMATED:
            address = ESTIMATED_ADDRESS
        else:
            address = await self._address(position.latitude, position.longitude)
            if revision is not None and not self._is_current(journey.vehicle_id, journey, revision):
                _logger.debug("Discarding stale position for vehicle=%s", journey.vehicle_id)
                return None

        point = RoutePoint(
            latitude=position.latitude,
            longitude=position.longitude,
            timestamp=now,
            speed=position.speed,
            heading=position.heading,
            accuracy=position.accuracy,
            source=position.source,
            distance_from_previous=distance,
            address=address,
        )
        journey.append_point(point, now=now)
        if self.fallback_mode:
            journey.mark_fallback_used()
        journey.extend_alerts(self._detector.detect(last, point), now=now)
        return point

    async def _tick(self, vehicle_id: str) -> None:
        journey = self._active.get(vehicle_id)
        if journey is None or not journey.is_active:
            return
        revision = journey.revision

        try:
            position: Position | None = await self._require_resolver().resolve(
                vehicle_id, manager_id=journey.manager_id
            )
            exhausted: AllSourcesExhausted | None = None
        except AllSourcesExhausted as exc:
            position, exhausted = None, exc

        if not self._is_current(vehicle_id, journey, revision):
            _logger.debug("Discarding stale tick result for vehicle=%s", vehicle_id)
            return

        now = self._clock()
        if exhausted is not None:
            position = self._dead_reckon(journey, exhausted, now)
        if position is None:
            return

        point = await self._admit(journey, position, now, revision=revision)
        if point is None:
            return

        self._store.save_active(journey)
        self.events.emit(vehicle_id, JourneyUpdateKind.POINT_ADDED, journey)
        _logger.debug(
            "Position updated for vehicle=%s: %s %.6f, %.6f",
            vehicle_id,
            point.source,
            point.latitude,
            point.longitude,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, vehicle_id: str, *, manager_id: str | None = None) -> Journey:
        """Start tracking ``vehicle_id``.

        Raises
        ------
        DuplicateTrackingRequest
            If the vehicle already has an active (or starting/stopping) journey.
        AllSourcesExhausted
            If no initial position could be resolved.
        """
        if vehicle_id in self._active or vehicle_id in self._busy:
            raise DuplicateTrackingRequest(vehicle_id)
        resolver = self._require_resolver()
        manager_id = manager_id if manager_id is not None else self._config.manager_id

        self._busy.add(vehicle_id)
        try:
            position = await resolver.resolve(vehicle_id, manager_id=manager_id)
            address = await self._address(position.latitude, position.longitude)
            vehicle_info = await self._vehicle_info(vehicle_id, manager_id)
        finally:
            self._busy.discard(vehicle_id)

        now = self._clock()
        journey = Journey(
            journey_id=f"J_{int(now.timestamp() * 1000)}_{vehicle_id}",
            vehicle_id=vehicle_id,
            manager_id=manager_id,
            start_time=now,
            start_location=Waypoint(
                latitude=position.latitude,
                longitude=position.longitude,
                timestamp=now,
                source=position.source,
                address=address,
            ),
            vehicle_info=vehicle_info,
            fallback_mode_used=self.fallback_mode,
        )
        journey.append_point(
            RoutePoint(
                latitude=position.latitude,
                longitude=position.longitude,
                timestamp=now,
                speed=position.speed,
                heading=position.heading,
                accuracy=position.accuracy,
                source=position.source,
                address=address,
            ),
            now=now,
        )

        self._active[vehicle_id] = journey
        self._schedule(vehicle_id)
        self._store.save_active(journey)
        self.events.emit(vehicle_id, JourneyUpdateKind.STARTED, journey)
        _logger.info(
            "Journey tracking started: %s (source=%s, fallback=%s)",
            journey.journey_id,
            position.source,
            self.fallback_mode,
        )
        return journey

    async def stop(self, vehicle_id: str) -> Journey:
        """Stop tracking ``vehicle_id`` and return the sealed journey.

        Raises
        ------
        NoActiveJourney
            If the vehicle is not being tracked.
        """
        if vehicle_id in self._busy:
            raise NoActiveJourney(vehicle_id)
        journey = self._active.pop(vehicle_id, None)
        if journey is None:
            raise NoActiveJourney(vehicle_id)
        self._cancel_timer(vehicle_id)

        self._busy.add(vehicle_id)
        try:
            try:
                final: Position | None = await self._require_resolver().resolve(
                    vehicle_id, manager_id=journey.manager_id
                )
            except AllSourcesExhausted as exc:
                _logger.warning("No final position for vehicle=%s: %s", vehicle_id, exc)
                final = None

            now = self._clock()
            end_point = await self._admit(journey, final, now) if final is not None else None
            if end_point is not None:
                end_location = Waypoint(
                    latitude=end_point.latitude,
                    longitude=end_point.longitude,
                    timestamp=now,
                    source=end_point.source,
                    address=end_point.address,
                )
            elif final is not None:
                end_location = Waypoint(
                    latitude=final.latitude,
                    longitude=final.longitude,
                    timestamp=now,
                    source=final.source,
                    address=await self._address(final.latitude, final.longitude),
                )
            else:
                last = journey.last_point
                assert last is not None  # noqa: S101
                end_location = Waypoint(
                    latitude=last.latitude,
                    longitude=last.longitude,
                    timestamp=now,
                    source=last.source,
                    address=last.address,
                )

            summary = build_summary(
                journey,
                end_time=now,
                speed_threshold=self._config.stop_speed_threshold,
                min_stop_duration=self._config.min_stop_duration,
            )
            journey.complete(end_time=now, end_location=end_location, summary=summary)

            self._history.insert(0, journey)
            self._store.append_history(journey)
            self._store.remove_active(vehicle_id)
        finally:
            self._busy.discard(vehicle_id)

        self.events.emit(vehicle_id, JourneyUpdateKind.STOPPED, journey)
        _logger.info("Journey tracking stopped: %s", journey.journey_id)
        return journey

    def restore(self) -> list[Journey]:
        """Reload history and active journeys from the store and resume their ticks."""
        self._history = self._store.load_history()
        restored: list[Journey] = []
        for journey in self._store.load_active():
            if not journey.is_active or not journey.route_points or journey.vehicle_id in self._active:
                continue
            self._active[journey.vehicle_id] = journey
            self._schedule(journey.vehicle_id)
            restored.append(journey)
            self.events.emit(journey.vehicle_id, JourneyUpdateKind.RESTORED, journey)
        if restored:
            _logger.info("Resumed %d persisted journey(s)", len(restored))
        return restored

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def subscribe(self, listener: JourneyListener) -> Callable[[], None]:
        return self.events.subscribe(listener)

    def get_active_journey(self, vehicle_id: str) -> Journey | None:
        return self._active.get(vehicle_id)

    def active_journeys(self) -> list[Journey]:
        return list(self._active.values())

    def history(self) -> list[Journey]:
        """Completed journeys, newest first."""
        return list(self._history)

    def is_tracking(self, vehicle_id: str) -> bool:
        return vehicle_id in self._active

    def find_journey(self, journey_id: str) -> Journey:
        for journey in (*self._history, *self._active.values()):
            if journey.journey_id == journey_id:
                return journey
        raise JourneyNotFound(journey_id)

    def export_journey(self, journey_id: str, fmt: str | ExportFormat = ExportFormat.JSON) -> ExportBlob:
        return self._exporter.export(self.find_journey(journey_id), fmt)

    def system_status(self) -> SystemStatus:
        return SystemStatus(
            api_status="fallback" if self.fallback_mode else "normal",
            active_journeys=len(self._active),
            tracking_timers=len(self._timers),
            history_count=len(self._history),
            cache_size=len(self._cache),
            last_health_check=self._health.last_checked_at if self._health is not None else None,
        )
