"""Latest telemetry reading for a device.

The telemetry surface has shipped under several endpoint shapes; each
candidate in ``TELEMETRY_ENDPOINTS`` is tried in order and the first one
returning a non-empty list whose newest reading has valid coordinates wins.
These calls are not retried: a failed candidate is simply skipped.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from pyjourney._api._common import unwrap_items
from pyjourney._constants import TELEMETRY_ENDPOINTS
from pyjourney._transport import Transport
from pyjourney.exceptions import JourneyTransportError
from pyjourney.models.fleet import TelemetryReading

_logger = logging.getLogger(__name__)


async def fetch_latest_telemetry(transport: Transport, device_id: str) -> TelemetryReading | None:
    """Return the newest reading with a usable fix, or ``None``."""
    for template, params in TELEMETRY_ENDPOINTS:
        endpoint = template.format(device_id=device_id)
        try:
            payload = await transport.get_json(endpoint, params=params or None)
        except JourneyTransportError:
            _logger.debug("Telemetry endpoint failed: %s", endpoint, exc_info=True)
            continue

        items = unwrap_items(payload)
        if not items or not isinstance(items[0], dict):
            _logger.debug("Telemetry endpoint %s returned no readings", endpoint)
            continue

        try:
            reading = TelemetryReading.model_validate(items[0])
        except ValidationError:
            _logger.debug("Unparseable telemetry from %s", endpoint, exc_info=True)
            continue

        if reading.has_fix:
            _logger.debug("Telemetry for device=%s from %s", device_id, endpoint)
            return reading

    return None
