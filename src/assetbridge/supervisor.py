"""Process supervisor.

Owns the single stop signal, wires the shutdown triggers to it and orders
startup and shutdown of the bus connection and the poll cycle.

No reconnect logic lives here.  When the bus reports a terminal status the
process shuts down and the host agent starts a new one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any, Protocol

from assetbridge._mqtt import BusConnection, StatusCallback
from assetbridge.config import BridgeConfig
from assetbridge.cycle import PollPublishCycle
from assetbridge.models.message import OutboundMessage
from assetbridge.models.status import TERMINAL_REASONS, ConnectionStatus, ConnectionStatusReason
from assetbridge.source import AssetSource, HttpAssetSource

_logger = logging.getLogger(__name__)


class Bus(Protocol):
    def on_status_change(self, callback: StatusCallback) -> None:
        ...

    async def open(self) -> None:
        ...

    async def publish(self, message: OutboundMessage) -> None:
        ...

    async def close(self) -> None:
        ...


class Supervisor:
    """Run the bridge until a shutdown trigger fires.

    Parameters
    ----------
    config : BridgeConfig
        Frozen startup configuration.
    source : AssetSource, optional
        Asset source; defaults to :class:`HttpAssetSource`.  When it is an
        async context manager it is entered for the lifetime of the run.
    bus : Bus, optional
        Bus connection; defaults to :class:`BusConnection`.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        source: AssetSource | None = None,
        bus: Bus | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._bus = bus
        self._stop_event = asyncio.Event()
        self._shutdown_reason: str | None = None
        self._cycle: PollPublishCycle | None = None

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stop_event

    @property
    def shutdown_reason(self) -> str | None:
        return self._shutdown_reason

    @property
    def cycle(self) -> PollPublishCycle | None:
        return self._cycle

    def request_shutdown(self, reason: str) -> bool:
        """Signal shutdown.  Returns ``True`` only for the first request."""
        if self._stop_event.is_set():
            _logger.debug("Shutdown already requested, ignoring: %s", reason)
            return False
        self._shutdown_reason = reason
        _logger.info("Shutdown requested: %s", reason)
        self._stop_event.set()
        return True

    def handle_status(self, status: ConnectionStatus, reason: ConnectionStatusReason) -> None:
        _logger.info("Bus connection changed. New status=%s reason=%s", status, reason)
        # Retry budget spent or client closed: the transport will not recover
        # in this process.
        if reason in TERMINAL_REASONS:
            _logger.warning("Bus connection cannot be re-established, exiting")
            self.request_shutdown(f"bus status {status} ({reason})")

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            # add_signal_handler is not available on every platform (Windows).
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self.request_shutdown, f"signal {sig.name}")

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)

    async def run(self) -> None:
        """Open the bus, run the cycle until stopped, then close everything.

        Raises
        ------
        ConnectError
            When the bus cannot be opened at startup.
        """
        loop = asyncio.get_running_loop()
        bus = self._bus or BusConnection(self._config.bus, loop=loop)
        source = self._source or HttpAssetSource(
            self._config.api_base_url,
            timeout=self._config.api_timeout,
        )

        bus.on_status_change(self.handle_status)
        await bus.open()

        try:
            async with contextlib.AsyncExitStack() as stack:
                if hasattr(source, "__aenter__"):
                    await stack.enter_async_context(source)  # type: ignore[arg-type]
                await self._run_cycle(source, bus)
        finally:
            await bus.close()
            _logger.info("Bridge stopped (%s)", self._shutdown_reason or "cycle exited")

    async def _run_cycle(self, source: AssetSource, bus: Bus) -> None:
        self._cycle = PollPublishCycle(source, bus, self._config.run, self._stop_event)
        cycle_task = asyncio.create_task(self._cycle.run(), name="poll-publish-cycle")
        stop_task = asyncio.create_task(self._stop_event.wait(), name="stop-signal")

        try:
            await asyncio.wait({cycle_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not stop_task.done():
                stop_task.cancel()
            if cycle_task.done() and not self._stop_event.is_set():
                self.request_shutdown(_describe_exit(cycle_task))
            else:
                self.request_shutdown("cycle interrupted")
            await cycle_task


def _describe_exit(task: asyncio.Task[Any]) -> str:
    if task.cancelled():
        return "poll cycle cancelled"
    exc = task.exception()
    if exc is not None:
        return f"poll cycle failed: {exc!r}"
    return "poll cycle exited"
