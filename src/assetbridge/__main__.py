"""Process entry point: ``python -m assetbridge`` or the ``assetbridge`` script."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from assetbridge import __version__
from assetbridge.config import BridgeConfig, parse_log_level
from assetbridge.exceptions import BridgeConfigError, ConnectError
from assetbridge.supervisor import Supervisor

_logger = logging.getLogger("assetbridge")


def _log_level(value: str) -> str:
    try:
        return parse_log_level(value, "--log-level")
    except BridgeConfigError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="assetbridge",
        description="Poll tracked assets and forward them to an MQTT bus.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        type=_log_level,
        help="Logging level (default: ASSETBRIDGE_LOG_LEVEL or INFO).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


async def _run(config: BridgeConfig) -> int:
    supervisor = Supervisor(config)
    supervisor.install_signal_handlers()
    try:
        await supervisor.run()
    except ConnectError as exc:
        _logger.error("Cannot connect to the message bus: %s", exc)
        return 1
    finally:
        supervisor.remove_signal_handlers()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        config = BridgeConfig.from_env()
    except BridgeConfigError as exc:
        logging.basicConfig(level=logging.ERROR)
        _logger.error("Invalid configuration: %s", exc)
        return 1

    logging.basicConfig(
        level=args.log_level or config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _logger.info(
        "assetbridge %s starting (location=%d interval=%ds broker=%s:%d)",
        __version__,
        config.run.location_id,
        config.run.poll_interval_seconds,
        config.bus.host,
        config.bus.port,
    )

    try:
        return asyncio.run(_run(config))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
