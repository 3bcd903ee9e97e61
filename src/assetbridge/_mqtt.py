"""Downstream bus connection on top of a threaded paho-mqtt client.

paho runs its network loop on its own thread.  Everything that crosses back
into the bridge (CONNACK results, status transitions) is handed to the
asyncio loop with ``call_soon_threadsafe``; the status handler therefore
always runs on the loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties

from assetbridge.config import BusConfig
from assetbridge.exceptions import ConnectError, PublishError
from assetbridge.models.message import OutboundMessage
from assetbridge.models.status import ConnectionStatus, ConnectionStatusReason

StatusCallback = Callable[[ConnectionStatus, ConnectionStatusReason], None]

# MQTT v5 reason codes the bridge distinguishes.
_RC_BAD_CREDENTIALS: frozenset[int] = frozenset({4, 5, 134, 135})
_RC_BANNED = 138
_RC_SESSION_TAKEN_OVER = 142
_RC_ADMINISTRATIVE_ACTION = 152
_RC_MAXIMUM_CONNECT_TIME = 160


def _rc_value(reason_code: Any) -> int:
    value = getattr(reason_code, "value", reason_code)
    return int(value)


def _is_failure(reason_code: Any) -> bool:
    return _rc_value(reason_code) >= 0x80 or _rc_value(reason_code) in _RC_BAD_CREDENTIALS


def classify_connack(reason_code: Any) -> tuple[ConnectionStatus, ConnectionStatusReason]:
    """Map a CONNACK reason code to a status transition."""
    value = _rc_value(reason_code)
    if not _is_failure(reason_code):
        return ConnectionStatus.CONNECTED, ConnectionStatusReason.CONNECTION_OK
    if value in _RC_BAD_CREDENTIALS:
        return ConnectionStatus.DISCONNECTED, ConnectionStatusReason.BAD_CREDENTIAL
    if value == _RC_BANNED:
        return ConnectionStatus.DISABLED, ConnectionStatusReason.DEVICE_DISABLED
    return ConnectionStatus.RETRYING, ConnectionStatusReason.COMMUNICATION_ERROR


def classify_disconnect(reason_code: Any) -> tuple[ConnectionStatus, ConnectionStatusReason]:
    """Map a broker-side (or network) DISCONNECT to a status transition."""
    value = _rc_value(reason_code)
    if value == _RC_SESSION_TAKEN_OVER:
        return ConnectionStatus.DISABLED, ConnectionStatusReason.CLIENT_CLOSE
    if value == _RC_ADMINISTRATIVE_ACTION:
        return ConnectionStatus.DISABLED, ConnectionStatusReason.DEVICE_DISABLED
    if value == _RC_MAXIMUM_CONNECT_TIME:
        return ConnectionStatus.EXPIRED, ConnectionStatusReason.EXPIRED_SAS_TOKEN
    return ConnectionStatus.RETRYING, ConnectionStatusReason.COMMUNICATION_ERROR


def build_publish_properties(message: OutboundMessage) -> Properties:
    """MQTT v5 PUBLISH properties carrying content metadata and routing keys."""
    props = Properties(PacketTypes.PUBLISH)
    props.ContentType = message.content_type
    props.PayloadFormatIndicator = 1
    user_properties = [(key, value) for key, value in message.properties.items()]
    user_properties.append(("content-encoding", message.content_encoding))
    props.UserProperty = user_properties
    return props


class BusConnection:
    """Lifecycle of the single connection to the downstream broker.

    Usage::

        bus = BusConnection(config.bus, loop=asyncio.get_running_loop())
        bus.on_status_change(handler)
        await bus.open()
        await bus.publish(message)
        await bus.close()
    """

    def __init__(
        self,
        config: BusConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._status_callback: StatusCallback | None = None
        self._connack: asyncio.Future[int] | None = None
        self._lock = threading.Lock()
        self._last_status: tuple[ConnectionStatus, ConnectionStatusReason] | None = None
        self._failed_attempts = 0
        self._retry_expired = False
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._closing

    @property
    def last_status(self) -> tuple[ConnectionStatus, ConnectionStatusReason] | None:
        with self._lock:
            return self._last_status

    def on_status_change(self, callback: StatusCallback) -> None:
        """Register the handler for status transitions (replaces any previous one)."""
        self._status_callback = callback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._config.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if self._config.username:
            client.username_pw_set(self._config.username, self._config.password)
        if self._config.tls:
            client.tls_set()
        client.reconnect_delay_set(
            min_delay=self._config.reconnect_min_delay,
            max_delay=self._config.reconnect_max_delay,
        )
        # paho keeps unacknowledged QoS 1 messages and replays them after a
        # reconnect; 0 would make that buffer unbounded.
        client.max_queued_messages_set(max(self._config.max_queued_messages, 1))
        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        return client

    def _connect_blocking(self, client: mqtt.Client) -> None:
        client.connect(self._config.host, self._config.port, keepalive=self._config.keepalive)
        client.loop_start()

    @staticmethod
    def _disconnect_blocking(client: mqtt.Client) -> None:
        try:
            client.disconnect()
        finally:
            client.loop_stop()

    async def open(self) -> None:
        """Connect to the broker and wait for its CONNACK.

        Raises
        ------
        ConnectError
            When the broker is unreachable, refuses the connection or does
            not answer within ``connect_timeout``.
        """
        if self._client is not None:
            raise ConnectError("Bus connection is already open")

        self._logger.info(
            "Connecting to broker %s:%s as %s",
            self._config.host,
            self._config.port,
            self._config.client_id,
        )
        client = self._build_client()
        self._connack = self._loop.create_future()
        self._closing = False
        self._retry_expired = False
        self._failed_attempts = 0

        try:
            await self._loop.run_in_executor(None, self._connect_blocking, client)
        except (OSError, ValueError) as exc:
            raise ConnectError(
                f"Cannot reach broker {self._config.host}:{self._config.port}: {exc}",
            ) from exc
        self._client = client

        try:
            rc = await asyncio.wait_for(self._connack, self._config.connect_timeout)
        except TimeoutError as exc:
            await self._abort()
            raise ConnectError(
                f"No CONNACK from {self._config.host}:{self._config.port} "
                f"within {self._config.connect_timeout}s",
            ) from exc

        if _is_failure(rc):
            await self._abort()
            raise ConnectError(f"Broker refused connection (reason code {rc})", reason_code=rc)

        self._logger.info("Bus connection open, publishing to %s", self._config.output_topic)

    async def _abort(self) -> None:
        client = self._client
        self._client = None
        self._closing = True
        if client is not None:
            await self._loop.run_in_executor(None, self._disconnect_blocking, client)

    async def close(self) -> None:
        """Disconnect and stop the network loop.  Safe to call repeatedly."""
        client = self._client
        self._client = None
        if client is None:
            return
        self._closing = True
        self._logger.debug("Bus disconnect requested")
        try:
            await self._loop.run_in_executor(None, self._disconnect_blocking, client)
        finally:
            self._report(ConnectionStatus.DISABLED, ConnectionStatusReason.CLIENT_CLOSE)
            self._logger.info("Bus connection closed")

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(self, message: OutboundMessage) -> None:
        """Publish one message at QoS 1 and wait for the broker's PUBACK.

        Raises
        ------
        PublishError
            When the connection is not open or currently down, paho refuses
            the message, or the acknowledgement does not arrive within
            ``publish_timeout``.
        """
        client = self._client
        asset_uid = message.asset_uid
        if client is None or self._closing:
            raise PublishError("Bus connection is not open", asset_uid=asset_uid)
        # A QoS 1 publish on a dropped link is still queued by paho and sent
        # after the reconnect.  Refuse it here so a failed message stays failed.
        if not client.is_connected():
            raise PublishError(
                "Bus connection is not connected",
                asset_uid=asset_uid,
                rc=mqtt.MQTT_ERR_NO_CONN,
            )

        try:
            info = client.publish(
                self._config.output_topic,
                message.body,
                qos=1,
                properties=build_publish_properties(message),
            )
        except ValueError as exc:
            raise PublishError(f"Message rejected: {exc}", asset_uid=asset_uid) from exc

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(
                f"Publish failed: {mqtt.error_string(info.rc)}",
                asset_uid=asset_uid,
                rc=info.rc,
            )

        try:
            await self._loop.run_in_executor(None, info.wait_for_publish, self._config.publish_timeout)
        except (RuntimeError, ValueError) as exc:
            raise PublishError(f"Publish failed: {exc}", asset_uid=asset_uid, rc=info.rc) from exc

        if not info.is_published():
            raise PublishError(
                f"No acknowledgement within {self._config.publish_timeout}s",
                asset_uid=asset_uid,
                rc=info.rc,
            )

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _on_connect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        rc = _rc_value(reason_code)
        self._resolve_connack(rc)

        status, reason = classify_connack(reason_code)
        if status is ConnectionStatus.CONNECTED:
            self._logger.debug("MQTT connected reason=%s", reason_code)
            with self._lock:
                self._failed_attempts = 0
            self._report(status, reason)
            return

        self._logger.warning("MQTT connect refused: %s", reason_code)
        self._report(status, reason)
        self._count_failed_attempt()

    def _on_connect_fail(self, _client: mqtt.Client, _userdata: Any) -> None:
        self._logger.debug("MQTT reconnect attempt failed")
        self._report(ConnectionStatus.NO_NETWORK, ConnectionStatusReason.NO_NETWORK)
        self._count_failed_attempt()

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._closing:
            self._report(ConnectionStatus.DISABLED, ConnectionStatusReason.CLIENT_CLOSE)
            return
        self._logger.warning("MQTT disconnected: %s", reason_code)
        status, reason = classify_disconnect(reason_code)
        self._report(status, reason)

    def _count_failed_attempt(self) -> None:
        limit = self._config.max_reconnect_attempts
        with self._lock:
            if self._retry_expired:
                return
            self._failed_attempts += 1
            attempts = self._failed_attempts
        if limit > 0 and attempts >= limit:
            self._logger.error("Giving up after %d failed connection attempt(s)", attempts)
            self._report(ConnectionStatus.DISCONNECTED, ConnectionStatusReason.RETRY_EXPIRED)
            with self._lock:
                self._retry_expired = True

    def _resolve_connack(self, rc: int) -> None:
        future = self._connack
        if future is None:
            return

        def _set() -> None:
            if not future.done():
                future.set_result(rc)

        self._call_on_loop(_set)

    def _report(self, status: ConnectionStatus, reason: ConnectionStatusReason) -> None:
        """Deliver a transition once; consecutive duplicates are dropped."""
        with self._lock:
            if self._retry_expired or self._last_status == (status, reason):
                return
            self._last_status = (status, reason)

        callback = self._status_callback
        if callback is None:
            return
        self._call_on_loop(callback, status, reason)

    def _call_on_loop(self, fn: Callable[..., None], *args: Any) -> None:
        if self._loop.is_closed():
            self._logger.debug("Event loop closed, dropping %s", fn)
            return
        try:
            self._loop.call_soon_threadsafe(fn, *args)
        except RuntimeError:
            self._logger.debug("Event loop closed, dropping %s", fn, exc_info=True)
