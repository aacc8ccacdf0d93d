"""Shared helpers for fleet API endpoint modules.

This module centralizes the most repeated patterns:
- unwrapping the ``data`` / ``content`` envelope of list responses
- fetching list endpoints with bounded retry and exponential backoff

It is internal to pyjourney and may change at any time.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pyjourney._transport import Transport
from pyjourney.config import JourneyConfig
from pyjourney.exceptions import JourneyTransportError

_logger = logging.getLogger(__name__)


def unwrap_items(payload: Any) -> list[Any]:
    """Return the item list carried by a response, or ``[]``.

    The API wraps lists as ``{"data": [...]}`` or ``{"content": [...]}``
    depending on the endpoint; some endpoints return a bare list.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("data", "content"):
            nested = payload.get(key)
            if isinstance(nested, list):
                return nested
            if isinstance(nested, dict):
                return unwrap_items(nested)
    return []


def manager_params(manager_id: str | None) -> dict[str, str]:
    return {"managerId": str(manager_id)} if manager_id else {}


async def get_list_with_retry(
    config: JourneyConfig,
    transport: Transport,
    endpoint: str,
    *,
    params: dict[str, str] | None = None,
) -> list[Any]:
    """GET a list endpoint, retrying with exponential backoff.

    Raises
    ------
    JourneyTransportError
        When every attempt failed; the last failure is re-raised.
    """
    last_exc: JourneyTransportError | None = None
    for attempt in range(1, config.list_retries + 1):
        try:
            payload = await transport.get_json(endpoint, params=params)
            return unwrap_items(payload)
        except JourneyTransportError as exc:
            last_exc = exc
            if attempt < config.list_retries:
                delay = config.retry_base_delay * (2 ** (attempt - 1))
                _logger.debug(
                    "%s failed (attempt %d/%d), retrying in %.1fs",
                    endpoint,
                    attempt,
                    config.list_retries,
                    delay,
                )
                if delay > 0:
                    await asyncio.sleep(delay)

    # All retries exhausted – re-raise the last failure
    assert last_exc is not None  # noqa: S101
    raise last_exc
