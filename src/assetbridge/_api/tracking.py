"""Tracking endpoint.

Endpoint:
  - /v1/tracking/assets (current position of every asset at a location)
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from pydantic import ValidationError

from assetbridge._constants import TRACKING_ASSETS_ENDPOINT
from assetbridge._transport import Transport
from assetbridge.exceptions import FetchError
from assetbridge.models.asset import AssetRecord

_logger = logging.getLogger(__name__)

_ENVELOPE_KEYS: tuple[str, ...] = ("data", "assets", "items")


def build_tracking_params(credential: uuid.UUID, location_id: int) -> dict[str, str]:
    return {
        "api_key": str(credential),
        "location_id": str(location_id),
    }


def _unwrap_records(body: Any) -> list[Any]:
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key in _ENVELOPE_KEYS:
            nested = body.get(key)
            if isinstance(nested, list):
                return nested
    raise FetchError(
        f"Unexpected response shape from {TRACKING_ASSETS_ENDPOINT}: {type(body).__name__}",
        status_code=200,
        endpoint=TRACKING_ASSETS_ENDPOINT,
    )


def parse_assets(body: Any) -> list[AssetRecord]:
    """Turn a tracking response into asset records.

    A record that cannot be parsed is dropped with a warning; it does not
    spoil the rest of the snapshot.
    """
    records: list[AssetRecord] = []
    for index, item in enumerate(_unwrap_records(body)):
        try:
            records.append(AssetRecord.model_validate(item))
        except ValidationError as exc:
            _logger.warning(
                "Skipping malformed asset record #%d: %s",
                index,
                exc.errors(include_url=False, include_input=False),
            )
    return records


async def fetch_assets(
    transport: Transport,
    credential: uuid.UUID,
    location_id: int,
) -> list[AssetRecord]:
    """Fetch the current snapshot of tracked assets for one location."""
    body = await transport.get_json(
        TRACKING_ASSETS_ENDPOINT,
        build_tracking_params(credential, location_id),
    )
    return parse_assets(body)
