"""Internal MQTT transport built on paho-mqtt.

The transport only knows how to connect, subscribe and disconnect one
client at a time and to forward inbound messages/disconnects. Reconnect
policy lives in :class:`pydustify.ingestion.channel.IngestionChannel`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt

from pydustify.exceptions import BrokerConnectionError, BrokerSubscriptionError

MessageHandler = Callable[[str, bytes], None]
DisconnectHandler = Callable[[str], None]


class BrokerTransport(Protocol):
    """What an ingestion channel needs from a broker client.

    Handlers passed to :meth:`bind` may be invoked from any thread.
    """

    def bind(self, *, on_message: MessageHandler, on_disconnect: DisconnectHandler) -> None: ...

    async def connect(self, host: str, port: int, *, client_id: str) -> None: ...

    async def subscribe(self, topic: str, *, qos: int) -> None: ...

    async def disconnect(self) -> None: ...


def _settle(future: asyncio.Future[Any], result: Any = None, error: BaseException | None = None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


class PahoTransport:
    """Threaded paho-mqtt client that reports back onto an asyncio loop."""

    def __init__(
        self,
        *,
        keepalive: int = 60,
        connect_timeout: float = 10.0,
        username: str | None = None,
        password: str | None = None,
        tls: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._keepalive = keepalive
        self._connect_timeout = connect_timeout
        self._username = username
        self._password = password
        self._tls = tls
        self._logger = logger or logging.getLogger(__name__)
        self._on_message: MessageHandler | None = None
        self._on_disconnect: DisconnectHandler | None = None
        self._client: mqtt.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._host = ""
        self._port: int | None = None
        self._connack: asyncio.Future[Any] | None = None
        self._pending_subacks: dict[int, asyncio.Future[Any]] = {}

    @property
    def is_connected(self) -> bool:
        client = self._client
        return client is not None and client.is_connected()

    def bind(self, *, on_message: MessageHandler, on_disconnect: DisconnectHandler) -> None:
        self._on_message = on_message
        self._on_disconnect = on_disconnect

    async def connect(self, host: str, port: int, *, client_id: str) -> None:
        """Open a fresh client and wait for a successful CONNACK."""
        await self.disconnect()
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._host = host
        self._port = port
        self._logger.debug("MQTT connect requested host=%s port=%s client_id=%s", host, port, client_id)

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=True,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        if self._username:
            client.username_pw_set(self._username, self._password)
        if self._tls:
            client.tls_set()

        connack: asyncio.Future[Any] = loop.create_future()
        self._connack = connack

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            loop.call_soon_threadsafe(_settle, connack, reason_code)

        def on_subscribe(
            c: mqtt.Client,
            _userdata: Any,
            mid: int,
            reason_code_list: list[Any],
            _properties: Any,
        ) -> None:
            loop.call_soon_threadsafe(self._resolve_suback, c, mid, list(reason_code_list))

        def on_message(c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            if c is not self._client or self._on_message is None:
                return
            self._on_message(msg.topic, bytes(msg.payload))

        def on_disconnect(
            c: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            loop.call_soon_threadsafe(self._handle_disconnect, c, str(reason_code))

        client.on_connect = on_connect
        client.on_subscribe = on_subscribe
        client.on_message = on_message
        client.on_disconnect = on_disconnect
        self._client = client

        try:
            await loop.run_in_executor(None, client.connect, host, port, self._keepalive)
        except OSError as exc:
            raise BrokerConnectionError(f"Connect to {host}:{port} failed: {exc}", host=host, port=port) from exc
        client.loop_start()

        try:
            reason_code = await asyncio.wait_for(connack, self._connect_timeout)
        except TimeoutError as exc:
            raise BrokerConnectionError(
                f"No CONNACK from {host}:{port} within {self._connect_timeout}s", host=host, port=port
            ) from exc
        if reason_code.is_failure:
            raise BrokerConnectionError(f"Broker refused connection: {reason_code}", host=host, port=port)
        self._logger.debug("MQTT connected host=%s port=%s reason=%s", host, port, reason_code)

    async def subscribe(self, topic: str, *, qos: int) -> None:
        """Subscribe and wait for a SUBACK granting the topic."""
        client = self._client
        loop = self._loop
        if client is None or loop is None:
            raise BrokerSubscriptionError("Cannot subscribe: MQTT client not connected", topic=topic)

        result, mid = client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS or mid is None:
            raise BrokerSubscriptionError(
                f"Subscribe request for {topic} failed: {mqtt.error_string(result)}",
                topic=topic,
                host=self._host,
                port=self._port,
            )
        suback: asyncio.Future[Any] = loop.create_future()
        self._pending_subacks[mid] = suback
        try:
            reason_codes = await asyncio.wait_for(suback, self._connect_timeout)
        except TimeoutError as exc:
            raise BrokerSubscriptionError(
                f"No SUBACK for {topic} within {self._connect_timeout}s", topic=topic, host=self._host, port=self._port
            ) from exc
        finally:
            self._pending_subacks.pop(mid, None)

        rejected = [code for code in reason_codes if code.is_failure]
        if rejected:
            raise BrokerSubscriptionError(
                f"Broker rejected subscription to {topic}: {rejected[0]}", topic=topic, host=self._host, port=self._port
            )
        self._logger.debug("MQTT subscribed topic=%s qos=%s", topic, qos)

    async def disconnect(self) -> None:
        """Disconnect and stop the network loop of the current client, if any."""
        client = self._client
        self._client = None
        self._fail_pending(BrokerConnectionError("Client disconnected", host=self._host, port=self._port))
        if client is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._shutdown_client, client)

    def _shutdown_client(self, client: mqtt.Client) -> None:
        try:
            self._logger.debug("MQTT disconnect requested")
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def _resolve_suback(self, client: mqtt.Client, mid: int, reason_codes: list[Any]) -> None:
        if client is not self._client:
            return
        future = self._pending_subacks.get(mid)
        if future is not None:
            _settle(future, reason_codes)

    def _handle_disconnect(self, client: mqtt.Client, reason: str) -> None:
        # Disconnects of a client we already tore down are expected.
        if client is not self._client:
            return
        self._fail_pending(BrokerConnectionError(f"Disconnected: {reason}", host=self._host, port=self._port))
        if self._on_disconnect is not None:
            self._on_disconnect(reason)

    def _fail_pending(self, error: BrokerConnectionError) -> None:
        connack = self._connack
        self._connack = None
        if connack is not None:
            _settle(connack, error=error)
        for future in list(self._pending_subacks.values()):
            _settle(future, error=error)
