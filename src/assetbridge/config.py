"""Bridge configuration.

Everything is read once from the process environment at startup and frozen
afterwards.  The three legacy variables (``apikey``, ``locationid``,
``sleepdurationoinsec``) keep their historical lowercase names because the
deployment manifests set them that way.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import uuid
from collections.abc import Mapping
from typing import Any

from assetbridge._constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_CLIENT_ID,
    DEFAULT_OUTPUT_TOPIC,
)
from assetbridge.exceptions import BridgeConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise BridgeConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise BridgeConfigError(f"{key} must be a number, got {raw!r}") from exc


def _env_uuid(env: Mapping[str, str], key: str) -> uuid.UUID:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return uuid.UUID(int=0)
    try:
        return uuid.UUID(raw.strip())
    except ValueError as exc:
        raise BridgeConfigError(f"{key} must be a GUID, got {raw!r}") from exc


def parse_log_level(value: str, source: str = "log_level") -> str:
    """Normalize a logging level name, naming *source* when it is unknown."""
    level = value.strip().upper()
    if level not in logging.getLevelNamesMapping():
        raise BridgeConfigError(
            f"{source} must be a logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL), got {value!r}",
        )
    return level


@dataclasses.dataclass(frozen=True)
class RunConfig:
    """What to poll and how often.

    Parameters
    ----------
    credential : uuid.UUID
        Asset API key.  The nil UUID when not configured.
    location_id : int
        Location scope for the tracking endpoint.
    poll_interval_seconds : int
        Seconds to wait between ticks.  ``0`` polls back to back.
    """

    credential: uuid.UUID = dataclasses.field(default_factory=lambda: uuid.UUID(int=0))
    location_id: int = 0
    poll_interval_seconds: int = 0

    def __post_init__(self) -> None:
        if self.poll_interval_seconds < 0:
            raise BridgeConfigError(
                f"poll_interval_seconds must be >= 0, got {self.poll_interval_seconds}",
            )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> RunConfig:
        env = os.environ if env is None else env
        return cls(
            credential=_env_uuid(env, "apikey"),
            location_id=_env_int(env, "locationid", 0),
            poll_interval_seconds=_env_int(env, "sleepdurationoinsec", 0),
        )


@dataclasses.dataclass(frozen=True)
class BusConfig:
    """Downstream MQTT broker settings.

    Parameters
    ----------
    host, port : str, int
        Broker address.
    client_id : str
        MQTT client identifier.  Two bridges with the same id evict each
        other, which surfaces as a ``client_close`` status.
    username, password : str or None
        Broker credentials.
    tls : bool
        Wrap the connection in TLS using the system CA bundle.
    keepalive : int
        MQTT keepalive in seconds.
    output_topic : str
        Fixed topic every asset message is published to.
    connect_timeout : float
        Seconds ``open()`` waits for the broker's CONNACK.
    publish_timeout : float
        Seconds ``publish()`` waits for the PUBACK.
    reconnect_min_delay, reconnect_max_delay : int
        Backoff bounds paho uses between automatic reconnect attempts.
    max_reconnect_attempts : int
        Failed reconnect attempts tolerated before the connection is
        reported as ``retry_expired``.
    max_queued_messages : int
        Upper bound on messages paho holds in flight.  Publishes beyond it
        are refused instead of being buffered for a later replay.
    """

    host: str = "localhost"
    port: int = 1883
    client_id: str = DEFAULT_CLIENT_ID
    username: str | None = None
    password: str | None = None
    tls: bool = False
    keepalive: int = 60
    output_topic: str = DEFAULT_OUTPUT_TOPIC
    connect_timeout: float = 30.0
    publish_timeout: float = 30.0
    reconnect_min_delay: int = 1
    reconnect_max_delay: int = 120
    max_reconnect_attempts: int = 10
    max_queued_messages: int = 100

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> BusConfig:
        env = os.environ if env is None else env
        kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "ASSETBRIDGE_MQTT_HOST": "host",
            "ASSETBRIDGE_MQTT_CLIENT_ID": "client_id",
            "ASSETBRIDGE_MQTT_USERNAME": "username",
            "ASSETBRIDGE_MQTT_PASSWORD": "password",
            "ASSETBRIDGE_OUTPUT_TOPIC": "output_topic",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val:
                kwargs[field_name] = val

        _ENV_INT_MAP = {
            "ASSETBRIDGE_MQTT_PORT": "port",
            "ASSETBRIDGE_MQTT_KEEPALIVE": "keepalive",
            "ASSETBRIDGE_MAX_RECONNECT_ATTEMPTS": "max_reconnect_attempts",
            "ASSETBRIDGE_MQTT_MAX_QUEUED": "max_queued_messages",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            if env.get(env_key):
                kwargs[field_name] = _env_int(env, env_key, 0)

        if env.get("ASSETBRIDGE_MQTT_CONNECT_TIMEOUT"):
            kwargs["connect_timeout"] = _env_float(env, "ASSETBRIDGE_MQTT_CONNECT_TIMEOUT", 30.0)
        if env.get("ASSETBRIDGE_MQTT_PUBLISH_TIMEOUT"):
            kwargs["publish_timeout"] = _env_float(env, "ASSETBRIDGE_MQTT_PUBLISH_TIMEOUT", 30.0)

        kwargs["tls"] = _env_bool(env.get("ASSETBRIDGE_MQTT_TLS"), False)
        return cls(**kwargs)


@dataclasses.dataclass(frozen=True)
class BridgeConfig:
    """Top-level configuration handed to the supervisor."""

    run: RunConfig = dataclasses.field(default_factory=RunConfig)
    bus: BusConfig = dataclasses.field(default_factory=BusConfig)
    api_base_url: str = DEFAULT_API_BASE_URL
    api_timeout: float = 30.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        object.__setattr__(self, "log_level", parse_log_level(self.log_level))

    @classmethod
    def from_env(cls, **overrides: Any) -> BridgeConfig:
        """Create configuration from environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        BridgeConfigError
            When a variable is present but cannot be parsed.
        """
        env = os.environ

        config_kwargs: dict[str, Any] = {}
        if "run" not in overrides:
            config_kwargs["run"] = RunConfig.from_env(env)
        if "bus" not in overrides:
            config_kwargs["bus"] = BusConfig.from_env(env)

        base_url = env.get("ASSETBRIDGE_API_BASE_URL")
        if base_url:
            config_kwargs["api_base_url"] = base_url.rstrip("/")
        if env.get("ASSETBRIDGE_API_TIMEOUT"):
            config_kwargs["api_timeout"] = _env_float(env, "ASSETBRIDGE_API_TIMEOUT", 30.0)
        log_level = env.get("ASSETBRIDGE_LOG_LEVEL")
        if log_level:
            config_kwargs["log_level"] = parse_log_level(log_level, "ASSETBRIDGE_LOG_LEVEL")

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
