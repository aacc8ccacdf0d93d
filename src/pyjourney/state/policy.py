"""Deterministic point admission policy.

A freshly resolved position only becomes a route point when it moved far
enough, changed speed enough, or enough time has passed since the last
admitted point. This bounds GPS jitter and storage growth.
"""

from __future__ import annotations

from dataclasses import dataclass

from pyjourney._constants import MAX_POINT_INTERVAL_S, MIN_DISTANCE_KM, MIN_SPEED_CHANGE_KMH


@dataclass(frozen=True)
class AdmissionThresholds:
    min_distance_km: float = MIN_DISTANCE_KM
    min_speed_change: float = MIN_SPEED_CHANGE_KMH
    max_point_interval: float = MAX_POINT_INTERVAL_S


def should_admit_point(
    *,
    distance_km: float,
    speed_change: float,
    elapsed_seconds: float,
    thresholds: AdmissionThresholds = AdmissionThresholds(),
) -> bool:
    """Decide whether a resolved position is stored as a route point.

    Policy:
    - Points timestamped before the last admitted point are never admitted.
    - Otherwise admit when distance, |speed change| or elapsed time exceeds
      its threshold.
    """
    if elapsed_seconds < 0:
        return False
    return (
        distance_km > thresholds.min_distance_km
        or abs(speed_change) > thresholds.min_speed_change
        or elapsed_seconds > thresholds.max_point_interval
    )
