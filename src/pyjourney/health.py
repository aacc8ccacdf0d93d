"""Upstream health monitor and global fallback mode."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from pyjourney._api.health import probe_health
from pyjourney._transport import Transport
from pyjourney.config import JourneyConfig
from pyjourney.exceptions import JourneyTransportError
from pyjourney.scheduler import Scheduler, TimerHandle

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class HealthMonitor:
    """Periodically probes the upstream API and toggles fallback mode.

    Fallback mode lengthens the journey poll interval and authorizes dead
    reckoning when every position source fails. The monitor starts in
    normal mode; the first failed probe switches it.
    """

    def __init__(
        self,
        config: JourneyConfig,
        transport: Transport,
        *,
        scheduler: Scheduler,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._transport = transport
        self._scheduler = scheduler
        self._clock = clock
        self._fallback_mode = False
        self._timer: TimerHandle | None = None
        self.last_checked_at: datetime | None = None

    @property
    def fallback_mode(self) -> bool:
        return self._fallback_mode

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.cancelled

    def poll_interval(self) -> float:
        """Journey tick interval for the current mode."""
        if self._fallback_mode:
            return self._config.fallback_poll_interval
        return self._config.poll_interval

    def set_fallback_mode(self, enabled: bool) -> None:
        if enabled == self._fallback_mode:
            return
        self._fallback_mode = enabled
        if enabled:
            _logger.warning("Upstream API unhealthy, fallback mode enabled")
        else:
            _logger.info("Upstream API healthy again, fallback mode cleared")

    async def probe(self) -> bool:
        """Run one health check and update fallback mode. Returns health."""
        try:
            healthy = await probe_health(self._config, self._transport)
        except JourneyTransportError as exc:
            _logger.debug("Health probe failed: %s", exc)
            healthy = False
        self.last_checked_at = self._clock()
        self.set_fallback_mode(not healthy)
        return healthy

    def start(self) -> None:
        if self.is_running:
            return
        self._timer = self._scheduler.call_every(self._config.health_check_interval, self._probe_tick)

    async def _probe_tick(self) -> None:
        await self.probe()

    def stop(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()
