from __future__ import annotations

import uuid

import pytest

from assetbridge.config import BridgeConfig, BusConfig, RunConfig
from assetbridge.exceptions import BridgeConfigError

_LEGACY_VARS = ("apikey", "locationid", "sleepdurationoinsec")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _LEGACY_VARS:
        monkeypatch.delenv(key, raising=False)
    for key in (
        "ASSETBRIDGE_MQTT_HOST",
        "ASSETBRIDGE_MQTT_PORT",
        "ASSETBRIDGE_MQTT_TLS",
        "ASSETBRIDGE_OUTPUT_TOPIC",
        "ASSETBRIDGE_API_BASE_URL",
        "ASSETBRIDGE_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)


def test_run_config_defaults_when_env_is_empty() -> None:
    run = RunConfig.from_env({})
    assert run.credential == uuid.UUID(int=0)
    assert run.location_id == 0
    assert run.poll_interval_seconds == 0


def test_run_config_reads_legacy_variables() -> None:
    key = "3f2504e0-4f89-11d3-9a0c-0305e82c3301"
    run = RunConfig.from_env({"apikey": key, "locationid": "42", "sleepdurationoinsec": "15"})
    assert run.credential == uuid.UUID(key)
    assert run.location_id == 42
    assert run.poll_interval_seconds == 15


def test_run_config_treats_blank_values_as_absent() -> None:
    run = RunConfig.from_env({"apikey": "  ", "locationid": ""})
    assert run.credential == uuid.UUID(int=0)
    assert run.location_id == 0


@pytest.mark.parametrize(
    ("env", "needle"),
    [
        ({"apikey": "not-a-guid"}, "apikey"),
        ({"locationid": "abc"}, "locationid"),
        ({"sleepdurationoinsec": "1.5"}, "sleepdurationoinsec"),
    ],
)
def test_run_config_rejects_malformed_values(env: dict[str, str], needle: str) -> None:
    with pytest.raises(BridgeConfigError, match=needle):
        RunConfig.from_env(env)


def test_run_config_rejects_negative_interval() -> None:
    with pytest.raises(BridgeConfigError):
        RunConfig(poll_interval_seconds=-1)


def test_bus_config_from_env() -> None:
    bus = BusConfig.from_env(
        {
            "ASSETBRIDGE_MQTT_HOST": "broker.local",
            "ASSETBRIDGE_MQTT_PORT": "8883",
            "ASSETBRIDGE_MQTT_TLS": "yes",
            "ASSETBRIDGE_OUTPUT_TOPIC": "site/assets",
            "ASSETBRIDGE_MAX_RECONNECT_ATTEMPTS": "3",
            "ASSETBRIDGE_MQTT_MAX_QUEUED": "25",
        }
    )
    assert bus.host == "broker.local"
    assert bus.port == 8883
    assert bus.tls is True
    assert bus.output_topic == "site/assets"
    assert bus.max_reconnect_attempts == 3
    assert bus.max_queued_messages == 25


def test_bus_config_defaults() -> None:
    bus = BusConfig.from_env({})
    assert bus.host == "localhost"
    assert bus.port == 1883
    assert bus.output_topic == "assetoutput"
    assert bus.tls is False
    assert bus.max_queued_messages == 100


def test_bridge_config_from_env_with_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("locationid", "7")
    monkeypatch.setenv("ASSETBRIDGE_API_BASE_URL", "https://tracking.example.com/")
    monkeypatch.setenv("ASSETBRIDGE_LOG_LEVEL", "debug")

    config = BridgeConfig.from_env(api_timeout=5.0)

    assert config.run.location_id == 7
    assert config.api_base_url == "https://tracking.example.com"
    assert config.log_level == "DEBUG"
    assert config.api_timeout == 5.0


def test_bridge_config_explicit_run_wins_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("locationid", "not-even-a-number")
    config = BridgeConfig.from_env(run=RunConfig(location_id=3))
    assert config.run.location_id == 3


def test_bridge_config_rejects_unknown_log_level_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ASSETBRIDGE_LOG_LEVEL", "verbose")
    with pytest.raises(BridgeConfigError, match="ASSETBRIDGE_LOG_LEVEL.*'verbose'"):
        BridgeConfig.from_env()


def test_bridge_config_normalizes_and_checks_explicit_log_level() -> None:
    assert BridgeConfig(log_level=" warning ").log_level == "WARNING"
    with pytest.raises(BridgeConfigError, match="log_level"):
        BridgeConfig(log_level="chatty")
