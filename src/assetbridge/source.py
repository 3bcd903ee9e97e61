"""Asset sources.

An asset source is anything that can produce the current snapshot of
tracked assets.  The bridge only relies on the :class:`AssetSource`
protocol; :class:`HttpAssetSource` is the production implementation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Protocol

import aiohttp

from assetbridge._api.tracking import fetch_assets
from assetbridge._constants import DEFAULT_API_BASE_URL
from assetbridge._transport import HttpTransport
from assetbridge.exceptions import BridgeError
from assetbridge.models.asset import AssetRecord

_logger = logging.getLogger(__name__)


class AssetSource(Protocol):
    async def fetch(self, credential: uuid.UUID, location_id: int) -> list[AssetRecord]:
        """Return the current snapshot or raise :class:`FetchError`."""
        ...


class HttpAssetSource:
    """Asset source backed by the tracking REST API.

    Usage::

        async with HttpAssetSource(base_url) as source:
            assets = await source.fetch(api_key, location_id)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        *,
        session: aiohttp.ClientSession | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url
        self._external_session = session is not None
        self._http_session = session
        self._timeout = timeout
        self._transport: HttpTransport | None = None

    async def __aenter__(self) -> HttpAssetSource:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        self._transport = HttpTransport(self._base_url, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    def _require_transport(self) -> HttpTransport:
        if self._transport is None:
            raise BridgeError("Source not initialized. Use 'async with HttpAssetSource(...) as source:'")
        return self._transport

    async def fetch(self, credential: uuid.UUID, location_id: int) -> list[AssetRecord]:
        assets = await fetch_assets(self._require_transport(), credential, location_id)
        _logger.debug("Fetched %d asset(s) for location %d", len(assets), location_id)
        return assets
