from __future__ import annotations

import asyncio
import signal
import uuid
from dataclasses import dataclass, field
from typing import Any

import pytest

from assetbridge.config import BridgeConfig, RunConfig
from assetbridge.exceptions import ConnectError
from assetbridge.models import AssetRecord, ConnectionStatus, ConnectionStatusReason, OutboundMessage
from assetbridge.supervisor import Supervisor


@dataclass
class FakeSource:
    assets: list[AssetRecord] = field(
        default_factory=lambda: [AssetRecord(asset_uid="A1", asset_name="Forklift", payload={"x": 1, "y": 2})]
    )
    calls: int = 0
    entered: bool = False
    exited: bool = False

    async def __aenter__(self) -> FakeSource:
        self.entered = True
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.exited = True

    async def fetch(self, credential: uuid.UUID, location_id: int) -> list[AssetRecord]:
        self.calls += 1
        return self.assets


@dataclass
class FakeBus:
    open_error: Exception | None = None
    # Status to report after the n-th publish (1-based), simulating the
    # transport callback arriving while the cycle runs.
    status_after_publish: dict[int, tuple[ConnectionStatus, ConnectionStatusReason]] = field(default_factory=dict)
    callback: Any = None
    opened: bool = False
    close_calls: int = 0
    published: list[OutboundMessage] = field(default_factory=list)
    events: list[str] = field(default_factory=list)

    def on_status_change(self, callback: Any) -> None:
        self.events.append("register")
        self.callback = callback

    async def open(self) -> None:
        self.events.append("open")
        if self.open_error is not None:
            raise self.open_error
        self.opened = True
        self.callback(ConnectionStatus.CONNECTED, ConnectionStatusReason.CONNECTION_OK)

    async def publish(self, message: OutboundMessage) -> None:
        self.published.append(message)
        status = self.status_after_publish.get(len(self.published))
        if status is not None:
            asyncio.get_running_loop().call_soon(self.callback, *status)

    async def close(self) -> None:
        self.events.append("close")
        self.close_calls += 1


def _config(interval: int = 60) -> BridgeConfig:
    return BridgeConfig(run=RunConfig(location_id=1, poll_interval_seconds=interval))


def test_request_shutdown_is_idempotent() -> None:
    supervisor = Supervisor(_config())

    assert supervisor.request_shutdown("first") is True
    assert supervisor.request_shutdown("second") is False
    assert supervisor.stop_event.is_set()
    assert supervisor.shutdown_reason == "first"


@pytest.mark.parametrize(
    "reason",
    [ConnectionStatusReason.RETRY_EXPIRED, ConnectionStatusReason.CLIENT_CLOSE],
)
def test_terminal_status_signals_cancellation_exactly_once(
    monkeypatch: pytest.MonkeyPatch,
    reason: ConnectionStatusReason,
) -> None:
    supervisor = Supervisor(_config())
    outcomes: list[bool] = []
    original = supervisor.request_shutdown

    def spy(why: str) -> bool:
        result = original(why)
        outcomes.append(result)
        return result

    monkeypatch.setattr(supervisor, "request_shutdown", spy)

    supervisor.handle_status(ConnectionStatus.DISCONNECTED, reason)
    supervisor.handle_status(ConnectionStatus.DISCONNECTED, reason)
    supervisor.handle_status(ConnectionStatus.DISABLED, ConnectionStatusReason.CLIENT_CLOSE)

    assert outcomes.count(True) == 1
    assert supervisor.stop_event.is_set()
    assert str(reason) in (supervisor.shutdown_reason or "")


@pytest.mark.parametrize(
    ("status", "reason"),
    [
        (ConnectionStatus.CONNECTED, ConnectionStatusReason.CONNECTION_OK),
        (ConnectionStatus.RETRYING, ConnectionStatusReason.COMMUNICATION_ERROR),
        (ConnectionStatus.NO_NETWORK, ConnectionStatusReason.NO_NETWORK),
        (ConnectionStatus.DISCONNECTED, ConnectionStatusReason.BAD_CREDENTIAL),
        (ConnectionStatus.EXPIRED, ConnectionStatusReason.EXPIRED_SAS_TOKEN),
        (ConnectionStatus.DISABLED, ConnectionStatusReason.DEVICE_DISABLED),
    ],
)
def test_recoverable_status_keeps_running(status: ConnectionStatus, reason: ConnectionStatusReason) -> None:
    supervisor = Supervisor(_config())
    supervisor.handle_status(status, reason)
    assert not supervisor.stop_event.is_set()


@pytest.mark.asyncio
async def test_run_registers_handler_before_opening_and_closes_last() -> None:
    bus = FakeBus()
    source = FakeSource()
    supervisor = Supervisor(_config(), source=source, bus=bus)

    task = asyncio.create_task(supervisor.run())
    while source.calls == 0:
        await asyncio.sleep(0.01)
    supervisor.request_shutdown("test")
    await asyncio.wait_for(task, timeout=1.0)

    assert bus.events == ["register", "open", "close"]
    assert source.entered and source.exited
    assert len(bus.published) == 1


@pytest.mark.asyncio
async def test_terminal_status_during_run_shuts_down_orderly() -> None:
    bus = FakeBus(
        status_after_publish={1: (ConnectionStatus.DISABLED, ConnectionStatusReason.CLIENT_CLOSE)},
    )
    source = FakeSource()
    supervisor = Supervisor(_config(interval=60), source=source, bus=bus)

    await asyncio.wait_for(supervisor.run(), timeout=1.0)

    assert source.calls == 1
    assert bus.close_calls == 1
    assert "client_close" in (supervisor.shutdown_reason or "")


@pytest.mark.asyncio
async def test_connect_error_is_fatal_and_nothing_is_polled() -> None:
    bus = FakeBus(open_error=ConnectError("broker unreachable"))
    source = FakeSource()
    supervisor = Supervisor(_config(), source=source, bus=bus)

    with pytest.raises(ConnectError):
        await supervisor.run()

    assert source.calls == 0
    assert source.entered is False
    assert supervisor.cycle is None


@pytest.mark.asyncio
async def test_signal_handlers_request_shutdown() -> None:
    supervisor = Supervisor(_config())
    supervisor.install_signal_handlers()
    try:
        signal.raise_signal(signal.SIGTERM)
        await asyncio.wait_for(supervisor.stop_event.wait(), timeout=1.0)
        assert supervisor.shutdown_reason == "signal SIGTERM"
    finally:
        supervisor.remove_signal_handlers()
