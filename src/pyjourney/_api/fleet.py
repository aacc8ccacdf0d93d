"""Device and vehicle list endpoints.

Endpoints:
  - /device/v1/all?managerId=
  - /vehicle/v1/all?managerId=
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from pyjourney._api._common import get_list_with_retry, manager_params
from pyjourney._constants import DEVICES_ENDPOINT, VEHICLES_ENDPOINT
from pyjourney._transport import Transport
from pyjourney.config import JourneyConfig
from pyjourney.models.fleet import Device, VehicleRecord

_logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _parse_items(model: type[M], items: list[Any], endpoint: str) -> list[M]:
    parsed: list[M] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            parsed.append(model.model_validate(item))
        except ValidationError:
            _logger.debug("Skipping malformed item from %s: %s", endpoint, item, exc_info=True)
    return parsed


async def fetch_devices(config: JourneyConfig, transport: Transport, manager_id: str | None) -> list[Device]:
    """Fetch all devices visible to the fleet manager."""
    items = await get_list_with_retry(config, transport, DEVICES_ENDPOINT, params=manager_params(manager_id))
    return _parse_items(Device, items, DEVICES_ENDPOINT)


async def fetch_vehicles(config: JourneyConfig, transport: Transport, manager_id: str | None) -> list[VehicleRecord]:
    """Fetch all vehicles visible to the fleet manager."""
    items = await get_list_with_retry(config, transport, VEHICLES_ENDPOINT, params=manager_params(manager_id))
    return _parse_items(VehicleRecord, items, VEHICLES_ENDPOINT)


async def find_device_for_vehicle(
    config: JourneyConfig,
    transport: Transport,
    vehicle_id: str,
    manager_id: str | None,
) -> Device | None:
    devices = await fetch_devices(config, transport, manager_id)
    return next((d for d in devices if d.vehicle_id == vehicle_id), None)


async def find_vehicle(
    config: JourneyConfig,
    transport: Transport,
    vehicle_id: str,
    manager_id: str | None,
) -> VehicleRecord | None:
    vehicles = await fetch_vehicles(config, transport, manager_id)
    return next((v for v in vehicles if v.vehicle_id == vehicle_id), None)
