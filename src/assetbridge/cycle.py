"""The poll/publish cycle.

Each tick fetches a fresh snapshot and publishes every asset in it as its own
message.  Failures are contained at the smallest unit: a failed fetch costs
one tick, a failed publish costs one message.  Nothing is carried from one
tick to the next, so resuming after any failure is always a clean fetch.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from assetbridge.config import RunConfig
from assetbridge.exceptions import FetchError, PublishError
from assetbridge.models.message import OutboundMessage
from assetbridge.source import AssetSource

_logger = logging.getLogger(__name__)


class Publisher(Protocol):
    async def publish(self, message: OutboundMessage) -> None:
        ...


class CycleState(StrEnum):
    RUNNING = "running"
    WAITING = "waiting"
    STOPPED = "stopped"


@dataclass(frozen=True)
class TickReport:
    """Outcome of a single tick."""

    tick: int
    fetched: int = 0
    published: int = 0
    failed: int = 0
    fetch_failed: bool = False


class PollPublishCycle:
    """Repeatedly fetch the asset snapshot and forward it to the bus.

    The cycle never stops on its own; it runs until ``stop_event`` is set.
    The event is checked at the top of every iteration and also cuts the
    inter-tick wait short.  A batch that is already publishing is always
    finished first.
    """

    def __init__(
        self,
        source: AssetSource,
        bus: Publisher,
        run_config: RunConfig,
        stop_event: asyncio.Event,
    ) -> None:
        self._source = source
        self._bus = bus
        self._run_config = run_config
        self._stop_event = stop_event
        self._state = CycleState.RUNNING
        self._ticks = 0

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def ticks(self) -> int:
        return self._ticks

    async def run(self) -> None:
        _logger.info(
            "Polling location %d every %ds",
            self._run_config.location_id,
            self._run_config.poll_interval_seconds,
        )
        try:
            while not self._stop_event.is_set():
                self._state = CycleState.RUNNING
                await self.run_once()
                self._state = CycleState.WAITING
                await self._wait()
        finally:
            self._state = CycleState.STOPPED
            _logger.info("Poll cycle stopped after %d tick(s)", self._ticks)

    async def run_once(self) -> TickReport:
        """Fetch one snapshot and publish every record in it."""
        self._ticks += 1
        tick = self._ticks

        try:
            assets = await self._source.fetch(
                self._run_config.credential,
                self._run_config.location_id,
            )
        except FetchError as exc:
            _logger.error(
                "Tick %d: asset fetch failed (status=%s endpoint=%s): %s",
                tick,
                exc.status_code,
                exc.endpoint,
                exc,
            )
            return TickReport(tick=tick, fetch_failed=True)
        except Exception:
            _logger.exception("Tick %d: asset fetch failed unexpectedly", tick)
            return TickReport(tick=tick, fetch_failed=True)

        published = 0
        failed = 0
        for asset in assets:
            try:
                message = OutboundMessage.from_asset(asset)
                await self._bus.publish(message)
            except PublishError as exc:
                failed += 1
                _logger.error(
                    "Tick %d: error sending asset %s to the bus (rc=%s): %s",
                    tick,
                    asset.asset_uid,
                    exc.rc,
                    exc,
                )
            except Exception:
                failed += 1
                _logger.exception("Tick %d: error sending asset %s to the bus", tick, asset.asset_uid)
            else:
                published += 1

        report = TickReport(tick=tick, fetched=len(assets), published=published, failed=failed)
        _logger.debug(
            "Tick %d: fetched=%d published=%d failed=%d",
            tick,
            report.fetched,
            report.published,
            report.failed,
        )
        return report

    async def _wait(self) -> None:
        interval = self._run_config.poll_interval_seconds
        if interval <= 0:
            await asyncio.sleep(0)
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), interval)
