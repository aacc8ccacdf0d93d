"""Best-effort reverse geocoding (Nominatim)."""

from __future__ import annotations

import logging
from typing import Protocol

from pyjourney._transport import Transport
from pyjourney.config import JourneyConfig
from pyjourney.exceptions import JourneyTransportError
from pyjourney.geo import format_coordinates

_logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    async def reverse(self, latitude: float, longitude: float) -> str:
        ...


class NominatimGeocoder:
    """Reverse geocoder that never fails.

    Any lookup error degrades to the raw coordinates formatted as
    ``"lat, lng"``.
    """

    def __init__(self, config: JourneyConfig, transport: Transport) -> None:
        self._config = config
        self._transport = transport

    async def reverse(self, latitude: float, longitude: float) -> str:
        fallback = format_coordinates(latitude, longitude)
        params = {
            "format": "json",
            "lat": f"{latitude}",
            "lon": f"{longitude}",
            "zoom": "18",
            "addressdetails": "1",
        }
        try:
            payload = await self._transport.get_json(self._config.geocoder_url, params=params)
        except JourneyTransportError:
            _logger.debug("Reverse geocoding failed for %s", fallback, exc_info=True)
            return fallback
        if isinstance(payload, dict):
            name = payload.get("display_name")
            if isinstance(name, str) and name.strip():
                return name.strip()
        return fallback
