"""Custom exception hierarchy for assetbridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all assetbridge errors."""


class BridgeConfigError(BridgeError):
    """Invalid or missing configuration."""


class ConnectError(BridgeError):
    """The message bus connection could not be established.

    Fatal at startup: the process cannot do anything useful without a bus,
    so the supervisor lets it propagate and the host agent restarts us.
    """

    def __init__(self, message: str, *, reason_code: int | None = None) -> None:
        self.reason_code = reason_code
        super().__init__(message)


class FetchError(BridgeError):
    """Asset API failure (network, non-200, invalid JSON, unexpected shape)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class PublishError(BridgeError):
    """A single message could not be handed to the bus or was not acknowledged."""

    def __init__(self, message: str, *, asset_uid: str = "", rc: int | None = None) -> None:
        self.asset_uid = asset_uid
        self.rc = rc
        super().__init__(message)
