"""Upstream health probe."""

from __future__ import annotations

from pyjourney._transport import Transport
from pyjourney.config import JourneyConfig


async def probe_health(config: JourneyConfig, transport: Transport) -> bool:
    """Return ``True`` when the health endpoint answers 2xx.

    Raises
    ------
    JourneyTransportError
        When the endpoint is unreachable or times out.
    """
    status = await transport.probe(config.health_endpoint, timeout=config.health_check_timeout)
    return 200 <= status < 300
