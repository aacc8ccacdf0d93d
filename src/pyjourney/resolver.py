"""Ordered fallback chain of position sources.

Each source is a small strategy object with a uniform
``try_resolve(attempt)`` coroutine that either returns a
:class:`Position` or raises :class:`SourceUnavailable` with the reason.
:class:`PositionResolver` walks the chain strictly in order (never racing
sources) and only raises :class:`AllSourcesExhausted` when every one failed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Protocol

from pyjourney._api.fleet import find_device_for_vehicle, find_vehicle
from pyjourney._api.telemetry import fetch_latest_telemetry
from pyjourney._cache import PositionCache
from pyjourney._transport import Transport
from pyjourney.config import JourneyConfig
from pyjourney.exceptions import AllSourcesExhausted, JourneyError, JourneyTransportError, SourceUnavailable
from pyjourney.geo import has_valid_coordinates
from pyjourney.models.fleet import Device, TelemetryReading
from pyjourney.models.position import Position, PositionSource

_logger = logging.getLogger(__name__)


class ResolveAttempt:
    """State shared by the sources during one :meth:`PositionResolver.resolve` call.

    The device list is fetched at most once per attempt; the telemetry and
    device sources both read the assigned device from here.
    """

    def __init__(self, vehicle_id: str, manager_id: str | None = None) -> None:
        self.vehicle_id = vehicle_id
        self.manager_id = manager_id
        self._device: Device | None = None
        self._device_error: JourneyTransportError | None = None
        self._device_fetched = False

    async def device(self, config: JourneyConfig, transport: Transport) -> Device | None:
        """The device assigned to the vehicle, or ``None`` if there is none.

        Raises the same :class:`JourneyTransportError` on every call when the
        single fetch failed.
        """
        if not self._device_fetched:
            self._device_fetched = True
            try:
                self._device = await find_device_for_vehicle(config, transport, self.vehicle_id, self.manager_id)
            except JourneyTransportError as exc:
                self._device_error = exc
        if self._device_error is not None:
            raise self._device_error
        return self._device


class PositionStrategy(Protocol):
    source: PositionSource

    async def try_resolve(self, attempt: ResolveAttempt) -> Position:
        ...


class GeolocationProvider(Protocol):
    """Local positioning capability of the host running the engine."""

    async def current_fix(self) -> TelemetryReading:
        ...


def _position_from_reading(reading: TelemetryReading, source: PositionSource) -> Position:
    assert reading.latitude is not None and reading.longitude is not None  # noqa: S101
    return Position(
        latitude=reading.latitude,
        longitude=reading.longitude,
        speed=max(reading.speed or 0.0, 0.0),
        heading=reading.heading or 0.0,
        accuracy=reading.accuracy,
        source=source,
        timestamp=reading.timestamp,
    )


class TelemetrySource:
    """Latest telemetry reading of the device assigned to the vehicle.

    Skipped entirely while fallback mode is active.
    """

    source = PositionSource.TELEMETRY

    def __init__(
        self,
        config: JourneyConfig,
        transport: Transport,
        *,
        fallback_mode: Callable[[], bool] = lambda: False,
    ) -> None:
        self._config = config
        self._transport = transport
        self._fallback_mode = fallback_mode

    async def try_resolve(self, attempt: ResolveAttempt) -> Position:
        if self._fallback_mode():
            raise SourceUnavailable(self.source, "fallback mode active")
        try:
            device = await attempt.device(self._config, self._transport)
            if device is None:
                raise SourceUnavailable(self.source, "no device assigned to vehicle")
            reading = await fetch_latest_telemetry(self._transport, device.device_id)
        except JourneyTransportError as exc:
            raise SourceUnavailable(self.source, str(exc)) from exc
        if reading is None:
            raise SourceUnavailable(self.source, "all telemetry endpoints failed")
        return _position_from_reading(reading, self.source)


class DeviceSource:
    """The assigned device's own last-known coordinates."""

    source = PositionSource.DEVICE

    def __init__(self, config: JourneyConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport

    async def try_resolve(self, attempt: ResolveAttempt) -> Position:
        try:
            device = await attempt.device(self._config, self._transport)
        except JourneyTransportError as exc:
            raise SourceUnavailable(self.source, str(exc)) from exc
        if device is None:
            raise SourceUnavailable(self.source, "no device assigned to vehicle")
        if not device.has_fix:
            raise SourceUnavailable(self.source, "device has no last-known position")
        assert device.latitude is not None and device.longitude is not None  # noqa: S101
        return Position(
            latitude=device.latitude,
            longitude=device.longitude,
            speed=max(device.speed or 0.0, 0.0),
            source=self.source,
        )


class VehicleSource:
    """The vehicle record's own last-known coordinates."""

    source = PositionSource.VEHICLE

    def __init__(self, config: JourneyConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport

    async def try_resolve(self, attempt: ResolveAttempt) -> Position:
        try:
            vehicle = await find_vehicle(self._config, self._transport, attempt.vehicle_id, attempt.manager_id)
        except JourneyTransportError as exc:
            raise SourceUnavailable(self.source, str(exc)) from exc
        if vehicle is None:
            raise SourceUnavailable(self.source, "vehicle not found")
        if not vehicle.has_fix:
            raise SourceUnavailable(self.source, "vehicle has no last-known position")
        assert vehicle.current_latitude is not None and vehicle.current_longitude is not None  # noqa: S101
        return Position(latitude=vehicle.current_latitude, longitude=vehicle.current_longitude, source=self.source)


class GeolocationSource:
    """Local geolocation of the running host, when a provider is available."""

    source = PositionSource.GEOLOCATION

    def __init__(self, provider: GeolocationProvider | None) -> None:
        self._provider = provider

    async def try_resolve(self, attempt: ResolveAttempt) -> Position:
        if self._provider is None:
            raise SourceUnavailable(self.source, "geolocation not supported")
        try:
            reading = await self._provider.current_fix()
        except (JourneyError, OSError, TimeoutError) as exc:
            raise SourceUnavailable(self.source, f"geolocation error: {exc}") from exc
        if not reading.has_fix:
            raise SourceUnavailable(self.source, "geolocation returned no fix")
        return _position_from_reading(reading, self.source)


class CacheSource:
    """The last live position resolved for the vehicle, if still fresh."""

    source = PositionSource.CACHE

    def __init__(self, cache: PositionCache) -> None:
        self._cache = cache

    async def try_resolve(self, attempt: ResolveAttempt) -> Position:
        cached = self._cache.get_fresh(attempt.vehicle_id)
        if cached is None:
            raise SourceUnavailable(self.source, "no fresh cached position")
        return cached.model_copy(update={"source": self.source})


class DefaultSource:
    """A fixed configured coordinate."""

    source = PositionSource.DEFAULT

    def __init__(self, latitude: float | None, longitude: float | None) -> None:
        self._latitude = latitude
        self._longitude = longitude

    async def try_resolve(self, attempt: ResolveAttempt) -> Position:
        if self._latitude is None or self._longitude is None:
            raise SourceUnavailable(self.source, "no default position configured")
        return Position(latitude=self._latitude, longitude=self._longitude, source=self.source)


class PositionResolver:
    """Try each source in priority order until one yields a complete fix."""

    def __init__(self, sources: Sequence[PositionStrategy], *, cache: PositionCache | None = None) -> None:
        self._sources = list(sources)
        self._cache = cache

    @classmethod
    def default_chain(
        cls,
        config: JourneyConfig,
        transport: Transport,
        *,
        cache: PositionCache,
        fallback_mode: Callable[[], bool] = lambda: False,
        geolocation: GeolocationProvider | None = None,
    ) -> PositionResolver:
        """telemetry -> device -> vehicle -> geolocation -> cache -> default."""
        return cls(
            [
                TelemetrySource(config, transport, fallback_mode=fallback_mode),
                DeviceSource(config, transport),
                VehicleSource(config, transport),
                GeolocationSource(geolocation),
                CacheSource(cache),
                DefaultSource(config.default_latitude, config.default_longitude),
            ],
            cache=cache,
        )

    @property
    def sources(self) -> list[PositionSource]:
        return [s.source for s in self._sources]

    async def resolve(self, vehicle_id: str, *, manager_id: str | None = None) -> Position:
        """Resolve the vehicle's current position.

        Raises
        ------
        AllSourcesExhausted
            When no source produced a position with valid coordinates.
        """
        attempt = ResolveAttempt(vehicle_id, manager_id)
        failures: dict[str, str] = {}
        for strategy in self._sources:
            name = str(strategy.source)
            try:
                position = await strategy.try_resolve(attempt)
            except SourceUnavailable as exc:
                failures[name] = exc.reason
                _logger.debug("Position source %s failed for vehicle=%s: %s", name, vehicle_id, exc.reason)
                continue
            except JourneyError as exc:
                failures[name] = str(exc)
                _logger.debug("Position source %s failed for vehicle=%s", name, vehicle_id, exc_info=True)
                continue

            if not has_valid_coordinates(position.latitude, position.longitude):
                failures[name] = "incomplete coordinates"
                _logger.debug("Position source %s returned incomplete coordinates", name)
                continue

            if self._cache is not None and position.source.is_live:
                self._cache.remember(vehicle_id, position)
            _logger.debug(
                "Position for vehicle=%s from %s: %.6f, %.6f",
                vehicle_id,
                name,
                position.latitude,
                position.longitude,
            )
            return position

        raise AllSourcesExhausted(vehicle_id, failures)
