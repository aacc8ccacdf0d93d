"""Upstream fleet API payload models (devices, vehicles, telemetry)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pyjourney._normalize import parse_timestamp, safe_float, safe_int, safe_str
from pyjourney.geo import has_valid_coordinates
from pyjourney.models._base import ApiModel


class TelemetryReading(ApiModel):
    """A single telemetry sample reported by a tracking device.

    Numeric fields are ``None`` when absent or unparseable.
    """

    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat", "gpsLatitude"))
    longitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("longitude", "lng", "lon", "gpsLongitude"),
    )
    speed: float | None = Field(default=None, validation_alias=AliasChoices("speed", "gpsSpeed"))
    heading: float | None = Field(default=None, validation_alias=AliasChoices("heading", "direction", "course"))
    accuracy: float | None = None
    timestamp: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("timestamp", "time", "recordedAt", "recorded_at", "createdAt"),
    )

    @field_validator("latitude", "longitude", "speed", "heading", "accuracy", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @property
    def has_fix(self) -> bool:
        return has_valid_coordinates(self.latitude, self.longitude)


class Device(ApiModel):
    """A tracking device and its last reported state."""

    device_id: str = Field(validation_alias=AliasChoices("device_id", "deviceId", "id"))
    vehicle_id: str | None = Field(default=None, validation_alias=AliasChoices("vehicle_id", "vehicleId"))
    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lng", "lon"))
    speed: float | None = None
    status: str | None = None

    @field_validator("device_id", "vehicle_id", "status", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("latitude", "longitude", "speed", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def has_fix(self) -> bool:
        return has_valid_coordinates(self.latitude, self.longitude)


class VehicleRecord(ApiModel):
    """A fleet vehicle as listed by the upstream API."""

    vehicle_id: str = Field(validation_alias=AliasChoices("vehicle_id", "vehicleId", "id"))
    vehicle_number: str | None = Field(
        default=None,
        validation_alias=AliasChoices("vehicle_number", "vehicleNumber", "registration"),
    )
    make: str | None = None
    model: str | None = None
    year: int | None = None
    color: str | None = None
    fuel_type: str | None = Field(default=None, validation_alias=AliasChoices("fuel_type", "fuelType"))
    engine_capacity: str | None = Field(
        default=None,
        validation_alias=AliasChoices("engine_capacity", "engineCapacity"),
    )
    current_latitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("current_latitude", "currentLatitude", "latitude"),
    )
    current_longitude: float | None = Field(
        default=None,
        validation_alias=AliasChoices("current_longitude", "currentLongitude", "longitude"),
    )

    @field_validator(
        "vehicle_id", "vehicle_number", "make", "model", "color", "fuel_type", "engine_capacity", mode="before"
    )
    @classmethod
    def _coerce_strings(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value: Any) -> int | None:
        return safe_int(value)

    @field_validator("current_latitude", "current_longitude", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def has_fix(self) -> bool:
        return has_valid_coordinates(self.current_latitude, self.current_longitude)
