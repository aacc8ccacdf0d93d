"""Serialize journeys to JSON, CSV and GPX."""

from __future__ import annotations

import csv
import io
import json
import logging
import os
import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

from pyjourney._constants import EXPORT_VERSION, GPX_CREATOR, GPX_NAMESPACE
from pyjourney.exceptions import EmptyJourney, UnsupportedFormat
from pyjourney.models.journey import Journey
from pyjourney.models.position import PositionSource
from pyjourney.stats import api_success_rate, location_continuity, point_reliability, points_by_source, rate_ratio

_logger = logging.getLogger(__name__)

CSV_HEADER = (
    "Timestamp",
    "Latitude",
    "Longitude",
    "Speed_KMH",
    "Heading_Deg",
    "Accuracy_M",
    "Address",
    "Distance_From_Previous_KM",
    "Data_Source",
    "Reliability",
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ExportFormat(StrEnum):
    JSON = "json"
    CSV = "csv"
    GPX = "gpx"

    @property
    def media_type(self) -> str:
        return {
            ExportFormat.JSON: "application/json",
            ExportFormat.CSV: "text/csv",
            ExportFormat.GPX: "application/gpx+xml",
        }[self]

    @classmethod
    def parse(cls, value: str | ExportFormat) -> ExportFormat:
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise UnsupportedFormat(str(value)) from exc


class ExportBlob(BaseModel):
    """Serialized journey plus its deterministic download name."""

    model_config = ConfigDict(frozen=True)

    filename: str
    media_type: str
    content: str

    @property
    def data(self) -> bytes:
        return self.content.encode("utf-8")


def vehicle_label(journey: Journey) -> str:
    return journey.vehicle_info.vehicle_number or journey.vehicle_id


def export_filename(journey: Journey, fmt: ExportFormat) -> str:
    """``journey_<vehicleLabel>_<isoStart>.<ext>`` with ``:`` replaced by ``-``."""
    start = journey.start_time.astimezone(UTC).replace(tzinfo=None, microsecond=0).isoformat()
    label = vehicle_label(journey).replace(os.sep, "_").replace(" ", "_")
    return f"journey_{label}_{start.replace(':', '-')}.{fmt.value}"


class Exporter:
    """Turn a journey into a downloadable JSON, CSV or GPX blob."""

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock

    def export(self, journey: Journey, fmt: str | ExportFormat) -> ExportBlob:
        """Serialize ``journey`` in ``fmt``.

        Raises
        ------
        UnsupportedFormat
            If ``fmt`` is not one of json/csv/gpx.
        EmptyJourney
            If the journey has no route points.
        """
        export_format = ExportFormat.parse(fmt)
        if not journey.route_points:
            raise EmptyJourney(f"Journey {journey.journey_id} has no route points")

        if export_format == ExportFormat.JSON:
            content = self._to_json(journey)
        elif export_format == ExportFormat.CSV:
            content = self._to_csv(journey)
        else:
            content = self._to_gpx(journey)

        _logger.debug("Exported journey %s as %s", journey.journey_id, export_format)
        return ExportBlob(
            filename=export_filename(journey, export_format),
            media_type=export_format.media_type,
            content=content,
        )

    def export_metadata(self, journey: Journey) -> dict[str, Any]:
        points = journey.route_points
        api_points = sum(1 for p in points if p.source.is_api)
        estimated = sum(1 for p in points if p.source == PositionSource.ESTIMATED)
        return {
            "exported_at": self._clock().isoformat(),
            "export_version": EXPORT_VERSION,
            "data_reliability": {
                "total_points": len(points),
                "points_by_source": points_by_source(points),
                "api_sourced_points": api_points,
                "estimated_points": estimated,
                "fallback_mode_used": journey.fallback_mode_used,
                "data_sources_used": [str(s) for s in journey.data_sources_used],
                "api_success_rate": api_success_rate(points),
                "rating": rate_ratio(api_points / len(points)) if points else "insufficient_data",
            },
            "quality_metrics": {
                "distance_accuracy": "good" if journey.total_distance > 0 else "poor",
                "speed_data_available": any(p.speed > 0 for p in points),
                "location_continuity": location_continuity(points),
                "alerts_detected": len(journey.alerts),
            },
        }

    def _to_json(self, journey: Journey) -> str:
        payload = journey.model_dump(mode="json")
        payload["export_metadata"] = self.export_metadata(journey)
        return json.dumps(payload, indent=2)

    def _to_csv(self, journey: Journey) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for point in journey.route_points:
            writer.writerow(
                [
                    point.timestamp.isoformat(),
                    point.latitude,
                    point.longitude,
                    point.speed,
                    point.heading,
                    "" if point.accuracy is None else point.accuracy,
                    point.address or "",
                    point.distance_from_previous,
                    str(point.source),
                    point_reliability(point.source),
                ]
            )
        return buffer.getvalue()

    def _to_gpx(self, journey: Journey) -> str:
        label = vehicle_label(journey)
        sources = [str(s) for s in journey.data_sources_used]
        end = journey.end_time.isoformat() if journey.end_time else "ongoing"

        gpx = ET.Element("gpx", {"version": "1.1", "creator": GPX_CREATOR, "xmlns": GPX_NAMESPACE})
        metadata = ET.SubElement(gpx, "metadata")
        ET.SubElement(metadata, "name").text = f"Vehicle Route - {label}"
        ET.SubElement(metadata, "desc").text = f"Journey from {journey.start_time.isoformat()} to {end}"
        ET.SubElement(metadata, "time").text = journey.start_time.isoformat()
        ET.SubElement(metadata, "keywords").text = ",".join(["vehicle", "tracking", *sources])

        trk = ET.SubElement(gpx, "trk")
        ET.SubElement(trk, "name").text = "Vehicle Route"
        ET.SubElement(trk, "desc").text = (
            f"Total Distance: {journey.total_distance:.2f} km, "
            f"Max Speed: {journey.max_speed:.0f} km/h, "
            f"Data Sources: {', '.join(sources) or 'unknown'}"
        )
        segment = ET.SubElement(trk, "trkseg")
        for point in journey.route_points:
            trkpt = ET.SubElement(segment, "trkpt", {"lat": f"{point.latitude}", "lon": f"{point.longitude}"})
            ET.SubElement(trkpt, "time").text = point.timestamp.isoformat()
            ET.SubElement(trkpt, "speed").text = f"{point.speed / 3.6:.2f}"
            extensions = ET.SubElement(trkpt, "extensions")
            ET.SubElement(extensions, "source").text = str(point.source)
            ET.SubElement(extensions, "reliability").text = point_reliability(point.source)

        ET.indent(gpx, space="  ")
        return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(gpx, encoding="unicode") + "\n"


def save_export(blob: ExportBlob, directory: str | os.PathLike[str]) -> Path:
    """Write ``blob`` under its deterministic filename inside ``directory``."""
    target = Path(directory) / blob.filename
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(blob.content, encoding="utf-8")
    return target
