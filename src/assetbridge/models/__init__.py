"""Data models for assets, outbound messages and bus status."""

from assetbridge.models.asset import AssetRecord
from assetbridge.models.message import OutboundMessage
from assetbridge.models.status import (
    TERMINAL_REASONS,
    ConnectionStatus,
    ConnectionStatusReason,
    StatusChange,
)

__all__ = [
    "AssetRecord",
    "ConnectionStatus",
    "ConnectionStatusReason",
    "OutboundMessage",
    "StatusChange",
    "TERMINAL_REASONS",
]
