"""pyjourney - Async vehicle journey tracking engine for fleet telemetry APIs."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyjourney")
except PackageNotFoundError:
    __version__ = "0+local"
from pyjourney.alerts import AlertDetector
from pyjourney.config import JourneyConfig
from pyjourney.dead_reckoning import DeadReckoningEstimator
from pyjourney.exceptions import (
    AllSourcesExhausted,
    DuplicateTrackingRequest,
    EmptyJourney,
    JourneyConfigError,
    JourneyError,
    JourneyNotFound,
    JourneySealedError,
    JourneyTransportError,
    NoActiveJourney,
    PersistenceWriteFailure,
    SourceUnavailable,
    UnsupportedFormat,
)
from pyjourney.export import ExportBlob, Exporter, ExportFormat
from pyjourney.health import HealthMonitor
from pyjourney.manager import JourneyManager, SystemStatus
from pyjourney.models import (
    Alert,
    AlertType,
    Journey,
    JourneyStatus,
    JourneySummary,
    Position,
    PositionSource,
    RoutePoint,
    Severity,
    Stop,
    VehicleInfo,
    Waypoint,
)
from pyjourney.resolver import PositionResolver
from pyjourney.scheduler import AsyncioScheduler, ManualClock, ManualScheduler
from pyjourney.state.events import JourneyUpdate, JourneyUpdateKind
from pyjourney.state.store import JsonFileKeyValueStore, MemoryKeyValueStore, PersistenceStore

__all__ = [
    "__version__",
    "Alert",
    "AlertDetector",
    "AlertType",
    "AllSourcesExhausted",
    "AsyncioScheduler",
    "DeadReckoningEstimator",
    "DuplicateTrackingRequest",
    "EmptyJourney",
    "ExportBlob",
    "ExportFormat",
    "Exporter",
    "HealthMonitor",
    "Journey",
    "JourneyConfig",
    "JourneyConfigError",
    "JourneyError",
    "JourneyManager",
    "JourneyNotFound",
    "JourneySealedError",
    "JourneyStatus",
    "JourneySummary",
    "JourneyTransportError",
    "JourneyUpdate",
    "JourneyUpdateKind",
    "JsonFileKeyValueStore",
    "ManualClock",
    "ManualScheduler",
    "MemoryKeyValueStore",
    "NoActiveJourney",
    "PersistenceStore",
    "PersistenceWriteFailure",
    "Position",
    "PositionResolver",
    "PositionSource",
    "RoutePoint",
    "Severity",
    "SourceUnavailable",
    "Stop",
    "SystemStatus",
    "UnsupportedFormat",
    "VehicleInfo",
    "Waypoint",
]
