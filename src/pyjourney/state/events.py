"""Journey update events and the observer registry that delivers them."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyjourney.models.journey import Journey

_logger = logging.getLogger(__name__)


class JourneyUpdateKind(StrEnum):
    STARTED = "started"
    POINT_ADDED = "point_added"
    STOPPED = "stopped"
    RESTORED = "restored"


class JourneyUpdate(BaseModel):
    """Emitted on every admitted point or journey status change.

    ``journey`` is a deep snapshot taken at emission time, so observers
    never see later mutations.
    """

    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    kind: JourneyUpdateKind
    journey: Journey
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("vehicle_id")
    @classmethod
    def _normalize_vehicle_id(cls, value: str) -> str:
        vehicle_id = value.strip()
        if not vehicle_id:
            raise ValueError("vehicle_id must be non-empty")
        return vehicle_id


JourneyListener = Callable[[JourneyUpdate], None]


class JourneyEvents:
    """Synchronous observer registry for :class:`JourneyUpdate` events."""

    def __init__(self) -> None:
        self._listeners: list[JourneyListener] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: JourneyListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, vehicle_id: str, kind: JourneyUpdateKind, journey: Journey) -> JourneyUpdate:
        update = JourneyUpdate(vehicle_id=vehicle_id, kind=kind, journey=journey.model_copy(deep=True))
        for listener in list(self._listeners):
            try:
                listener(update)
            except Exception:
                _logger.debug("journeyUpdate listener failed", exc_info=True)
        return update
