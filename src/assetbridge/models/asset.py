"""Tracked asset model.

The tracking API returns one flat object per asset.  Only the identifier and
the display name mean anything to the bridge; every other field (position,
zone, battery, timestamps, ...) is kept verbatim in ``payload`` and forwarded
untouched.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

_UID_KEYS: tuple[str, ...] = ("AssetUid", "assetUid", "asset_uid", "uid")
_NAME_KEYS: tuple[str, ...] = ("AssetName", "assetName", "asset_name", "name")


class AssetRecord(BaseModel):
    """One tracked physical item as reported by a single fetch.

    Parameters
    ----------
    asset_uid : str
        Stable unique identifier.  GUIDs and numeric ids are coerced to
        their string form.
    asset_name : str
        Human-readable name.  Empty when the API omits it.
    payload : dict
        All remaining fields of the API record.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    asset_uid: str = Field(validation_alias=AliasChoices(*_UID_KEYS))
    asset_name: str = Field(default="", validation_alias=AliasChoices(*_NAME_KEYS))
    payload: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_payload(cls, values: Any) -> Any:
        """Move every non-identity key into ``payload``."""
        if not isinstance(values, dict):
            return values
        if "payload" in values and isinstance(values["payload"], dict):
            return values
        identity = set(_UID_KEYS) | set(_NAME_KEYS)
        collected = {k: v for k, v in values.items() if k not in identity}
        merged = {k: v for k, v in values.items() if k in identity}
        merged["payload"] = collected
        return merged

    @field_validator("asset_uid", mode="before")
    @classmethod
    def _coerce_uid(cls, value: Any) -> str:
        if isinstance(value, (int, uuid.UUID)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
        raise ValueError("asset uid must be a non-empty string, integer or GUID")

    @field_validator("asset_name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    def to_wire(self) -> dict[str, Any]:
        """Flat JSON object sent downstream; identity keys win over payload keys."""
        wire = dict(self.payload)
        wire["AssetUid"] = self.asset_uid
        wire["AssetName"] = self.asset_name
        return wire

    def to_json_bytes(self) -> bytes:
        return json.dumps(self.to_wire(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
