"""HTTP transport for the upstream fleet API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pyjourney._constants import USER_AGENT
from pyjourney.config import JourneyConfig
from pyjourney.exceptions import JourneyTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        ...

    async def probe(self, endpoint: str, *, timeout: float | None = None) -> int:
        ...


class HttpTransport:
    """aiohttp-backed transport.

    ``endpoint`` is resolved against ``config.base_url`` unless it is
    already an absolute URL (used for third-party services such as the
    reverse geocoder).
    """

    def __init__(self, config: JourneyConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self._config.base_url.rstrip('/')}{endpoint}"

    def _timeout(self, timeout: float | None) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=timeout if timeout is not None else self._config.request_timeout)

    async def get_json(
        self,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """GET ``endpoint`` and return the decoded JSON body.

        Raises
        ------
        JourneyTransportError
            On network errors, timeouts, non-2xx responses or invalid JSON.
        """
        url = self._url(endpoint)
        headers = {"accept": "application/json", "user-agent": USER_AGENT}

        _logger.debug("GET %s params=%s", url, dict(params or {}))

        try:
            async with self._http.get(
                url,
                params=dict(params) if params else None,
                headers=headers,
                timeout=self._timeout(timeout),
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise JourneyTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except JourneyTransportError:
            raise
        except TimeoutError as exc:
            raise JourneyTransportError(f"Request to {endpoint} timed out", endpoint=endpoint) from exc
        except aiohttp.ClientError as exc:
            raise JourneyTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise JourneyTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc

    async def probe(self, endpoint: str, *, timeout: float | None = None) -> int:
        """GET ``endpoint`` and return only the HTTP status code."""
        url = self._url(endpoint)
        try:
            async with self._http.get(url, headers={"user-agent": USER_AGENT}, timeout=self._timeout(timeout)) as resp:
                return resp.status
        except TimeoutError as exc:
            raise JourneyTransportError(f"Probe of {endpoint} timed out", endpoint=endpoint) from exc
        except aiohttp.ClientError as exc:
            raise JourneyTransportError(f"Probe of {endpoint} failed: {exc}", endpoint=endpoint) from exc
