"""assetbridge - forward tracked-asset positions from a location API to an MQTT bus."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("assetbridge")
except PackageNotFoundError:
    __version__ = "0+local"
from assetbridge._mqtt import BusConnection
from assetbridge.config import BridgeConfig, BusConfig, RunConfig
from assetbridge.cycle import CycleState, PollPublishCycle, TickReport
from assetbridge.exceptions import (
    BridgeConfigError,
    BridgeError,
    ConnectError,
    FetchError,
    PublishError,
)
from assetbridge.models import (
    TERMINAL_REASONS,
    AssetRecord,
    ConnectionStatus,
    ConnectionStatusReason,
    OutboundMessage,
    StatusChange,
)
from assetbridge.source import AssetSource, HttpAssetSource
from assetbridge.supervisor import Supervisor

__all__ = [
    "__version__",
    "AssetRecord",
    "AssetSource",
    "BridgeConfig",
    "BridgeConfigError",
    "BridgeError",
    "BusConfig",
    "BusConnection",
    "ConnectError",
    "ConnectionStatus",
    "ConnectionStatusReason",
    "CycleState",
    "FetchError",
    "HttpAssetSource",
    "OutboundMessage",
    "PollPublishCycle",
    "PublishError",
    "RunConfig",
    "StatusChange",
    "Supervisor",
    "TERMINAL_REASONS",
    "TickReport",
]
