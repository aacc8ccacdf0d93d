"""Custom exception hierarchy for pyjourney."""

from __future__ import annotations

from collections.abc import Mapping


class JourneyError(Exception):
    """Base exception for all pyjourney errors."""


class JourneyConfigError(JourneyError):
    """Invalid or missing configuration."""


class JourneyTransportError(JourneyError):
    """HTTP-level failure (network, non-2xx, invalid JSON, timeout)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class SourceUnavailable(JourneyError):
    """A single position source could not produce a usable fix.

    Always caught by the resolver, which moves on to the next source.
    """

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class AllSourcesExhausted(JourneyError):
    """Every position source in the chain failed for a vehicle."""

    def __init__(self, vehicle_id: str, failures: Mapping[str, str] | None = None) -> None:
        self.vehicle_id = vehicle_id
        self.failures = dict(failures or {})
        detail = "; ".join(f"{name}={reason}" for name, reason in self.failures.items())
        super().__init__(f"All position sources failed for vehicle {vehicle_id}" + (f" ({detail})" if detail else ""))


class DuplicateTrackingRequest(JourneyError):
    """A journey is already active (or starting) for this vehicle."""

    def __init__(self, vehicle_id: str) -> None:
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle {vehicle_id} is already being tracked")


class NoActiveJourney(JourneyError):
    """No active journey exists for this vehicle."""

    def __init__(self, vehicle_id: str) -> None:
        self.vehicle_id = vehicle_id
        super().__init__(f"No active journey found for vehicle {vehicle_id}")


class JourneySealedError(JourneyError):
    """Attempted to mutate a completed journey."""


class JourneyNotFound(JourneyError):
    """No active or historical journey carries the requested id."""

    def __init__(self, journey_id: str) -> None:
        self.journey_id = journey_id
        super().__init__(f"Journey {journey_id} not found")


class PersistenceWriteFailure(JourneyError):
    """The key/value backend rejected a write.

    Logged by the persistence layer; never interrupts tracking.
    """


class EmptyJourney(JourneyError):
    """Export requested for a journey without route points."""


class UnsupportedFormat(JourneyError):
    """Export requested in a format the exporter does not know."""

    def __init__(self, fmt: str) -> None:
        self.format = fmt
        super().__init__(f"Unsupported export format: {fmt}")
