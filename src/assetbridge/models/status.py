"""Bus connection status vocabulary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ConnectionStatus(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    DISABLED = "disabled"
    NO_NETWORK = "no_network"
    RETRYING = "retrying"
    EXPIRED = "expired"


class ConnectionStatusReason(StrEnum):
    CONNECTION_OK = "connection_ok"
    EXPIRED_SAS_TOKEN = "expired_sas_token"
    DEVICE_DISABLED = "device_disabled"
    RETRY_EXPIRED = "retry_expired"
    CLIENT_CLOSE = "client_close"
    COMMUNICATION_ERROR = "communication_error"
    NO_NETWORK = "no_network"
    BAD_CREDENTIAL = "bad_credential"


#: Reasons after which the transport can no longer exchange messages
#: without a fresh process.
TERMINAL_REASONS: frozenset[ConnectionStatusReason] = frozenset(
    {
        ConnectionStatusReason.RETRY_EXPIRED,
        ConnectionStatusReason.CLIENT_CLOSE,
    }
)


@dataclass(frozen=True)
class StatusChange:
    """A single status transition reported by the bus transport."""

    status: ConnectionStatus
    reason: ConnectionStatusReason

    @property
    def is_terminal(self) -> bool:
        return self.reason in TERMINAL_REASONS
