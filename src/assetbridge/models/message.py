"""Outbound bus message."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from assetbridge._constants import (
    CONTENT_ENCODING_UTF8,
    CONTENT_TYPE_JSON,
    ROUTING_PROPERTY_ASSET_ID,
    ROUTING_PROPERTY_ASSET_NAME,
)
from assetbridge.models.asset import AssetRecord


@dataclass(frozen=True)
class OutboundMessage:
    """One serialized asset plus the metadata consumers route on.

    Built fresh for each record and dropped once ``publish`` returns.
    """

    body: bytes
    properties: Mapping[str, str] = field(default_factory=dict)
    content_type: str = CONTENT_TYPE_JSON
    content_encoding: str = CONTENT_ENCODING_UTF8

    @classmethod
    def from_asset(cls, record: AssetRecord) -> OutboundMessage:
        return cls(
            body=record.to_json_bytes(),
            properties=MappingProxyType(
                {
                    ROUTING_PROPERTY_ASSET_ID: record.asset_uid,
                    ROUTING_PROPERTY_ASSET_NAME: record.asset_name,
                }
            ),
        )

    @property
    def asset_uid(self) -> str:
        return self.properties.get(ROUTING_PROPERTY_ASSET_ID, "")
