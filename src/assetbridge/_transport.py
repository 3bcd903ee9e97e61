"""HTTP transport for the asset tracking API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from assetbridge._constants import USER_AGENT
from assetbridge._redact import redact_params, scrub_secrets
from assetbridge.exceptions import FetchError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Lets tests hand a fake to the endpoint functions while the production
    implementation (`HttpTransport`) stays concrete.
    """

    async def get_json(self, endpoint: str, params: Mapping[str, str]) -> Any:
        ...


class HttpTransport:
    """Plain JSON-over-HTTP GET transport."""

    def __init__(self, base_url: str, http_session: aiohttp.ClientSession) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session

    async def get_json(self, endpoint: str, params: Mapping[str, str]) -> Any:
        """GET ``endpoint`` and return the decoded JSON body.

        Raises
        ------
        FetchError
            On connection errors, timeouts, non-200 responses or a body that
            cannot be decoded as JSON.
        """
        url = f"{self._base_url}{endpoint}"
        query = dict(params)
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }

        _logger.debug("GET %s params=%s", url, redact_params(query))

        try:
            async with self._http.get(url, params=query, headers=headers) as resp:
                status = resp.status
                raw = await resp.read()
                charset = resp.charset or "utf-8"
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise FetchError(
                f"Request to {endpoint} failed: {scrub_secrets(repr(exc), query)}",
                endpoint=endpoint,
            ) from exc

        if status != 200:
            snippet = raw[:200].decode("utf-8", errors="replace")
            raise FetchError(
                f"HTTP {status} from {endpoint}: {snippet}",
                status_code=status,
                endpoint=endpoint,
            )

        try:
            text = raw.decode(charset)
        except (UnicodeDecodeError, LookupError) as exc:
            raise FetchError(
                f"Body from {endpoint} is not valid {charset}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        try:
            body: Any = json.loads(text)
        except json.JSONDecodeError as exc:
            raise FetchError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc

        _logger.debug("GET %s -> %s", endpoint, _describe_body(body))
        return body


def _describe_body(body: Any) -> str:
    if isinstance(body, list):
        return f"list of {len(body)} record(s)"
    if isinstance(body, dict):
        return f"object with keys {sorted(body)[:10]}"
    return type(body).__name__
