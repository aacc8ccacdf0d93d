"""Journey statistics: stops, continuity, reliability and the final summary."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from datetime import datetime

from pyjourney._constants import (
    CONTINUITY_MAX_GAP_S,
    CONTINUITY_MAX_JUMP_KM,
    MIN_STOP_DURATION_S,
    STOP_SPEED_THRESHOLD_KMH,
)
from pyjourney.geo import haversine_km
from pyjourney.models.journey import AlertType, Journey, JourneySummary, RoutePoint, Stop
from pyjourney.models.position import PositionSource


def detect_stops(
    points: Sequence[RoutePoint],
    *,
    speed_threshold: float = STOP_SPEED_THRESHOLD_KMH,
    min_duration: float = MIN_STOP_DURATION_S,
) -> list[Stop]:
    """Runs of points at or below ``speed_threshold`` lasting ``min_duration`` seconds or more.

    A run still open at the last point counts as a stop too.
    """
    stops: list[Stop] = []
    run_start: int | None = None

    def _close(start: int, end: int) -> None:
        first, last = points[start], points[end]
        duration = (last.timestamp - first.timestamp).total_seconds()
        if duration >= min_duration:
            stops.append(
                Stop(
                    start_time=first.timestamp,
                    end_time=last.timestamp,
                    duration_seconds=duration,
                    location=first.location,
                    address=first.address,
                )
            )

    for index, point in enumerate(points):
        if point.speed <= speed_threshold:
            if run_start is None:
                run_start = index
        elif run_start is not None:
            _close(run_start, index - 1)
            run_start = None

    if run_start is not None:
        _close(run_start, len(points) - 1)
    return stops


def rate_ratio(ratio: float) -> str:
    if ratio > 0.8:
        return "excellent"
    if ratio > 0.6:
        return "good"
    if ratio > 0.4:
        return "fair"
    return "poor"


def location_continuity(points: Sequence[RoutePoint]) -> str:
    """Qualitative continuity rating from gap analysis of consecutive points.

    A pair is continuous when it is less than a minute and less than 2 km
    apart; anything else is a gap (lost signal or a teleporting fix).
    """
    if len(points) < 2:
        return "insufficient_data"

    continuous = 0
    for previous, current in zip(points, points[1:], strict=False):
        gap = (current.timestamp - previous.timestamp).total_seconds()
        jump = haversine_km(previous.latitude, previous.longitude, current.latitude, current.longitude)
        if gap < CONTINUITY_MAX_GAP_S and jump < CONTINUITY_MAX_JUMP_KM:
            continuous += 1
    return rate_ratio(continuous / (len(points) - 1))


def point_reliability(source: PositionSource) -> str:
    """Per-point reliability tag used by the exporters."""
    if source.is_live:
        return "high"
    if source == PositionSource.CACHE:
        return "medium"
    return "low"


def points_by_source(points: Sequence[RoutePoint]) -> dict[str, int]:
    counts = Counter(str(p.source) for p in points)
    return dict(sorted(counts.items()))


def api_success_rate(points: Sequence[RoutePoint]) -> float:
    """Fraction of points that were not dead-reckoned."""
    if not points:
        return 0.0
    estimated = sum(1 for p in points if p.source == PositionSource.ESTIMATED)
    return (len(points) - estimated) / len(points)


def build_summary(
    journey: Journey,
    *,
    end_time: datetime,
    speed_threshold: float = STOP_SPEED_THRESHOLD_KMH,
    min_stop_duration: float = MIN_STOP_DURATION_S,
) -> JourneySummary:
    points = journey.route_points
    estimated = sum(1 for p in points if p.source == PositionSource.ESTIMATED)
    duration = max((end_time - journey.start_time).total_seconds(), 0.0)
    alert_types = Counter(a.type for a in journey.alerts)

    return JourneySummary(
        total_points=len(points),
        total_distance_km=journey.total_distance,
        duration_seconds=duration,
        duration_hours=duration / 3600.0,
        avg_speed_kmh=journey.avg_speed,
        max_speed_kmh=journey.max_speed,
        data_sources_used=list(journey.data_sources_used),
        fallback_mode_used=journey.fallback_mode_used,
        estimated_points=estimated,
        estimated_fraction=estimated / len(points) if points else 0.0,
        api_success_rate=api_success_rate(points),
        stops_detected=detect_stops(points, speed_threshold=speed_threshold, min_duration=min_stop_duration),
        harsh_events=alert_types[AlertType.HARSH_ACCELERATION] + alert_types[AlertType.HARSH_BRAKING],
        speeding_events=alert_types[AlertType.SPEEDING],
        data_quality_alerts=alert_types[AlertType.DATA_QUALITY],
    )
