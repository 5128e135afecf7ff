"""Generic MQTT ingestion channel.

One channel runs per (broker, topic, schema) triple. It owns:

- the connection state machine (connect, subscribe, wait, reconnect)
- a worker task that decodes inbound payloads and inserts records
- per-channel counters for received/stored/failed messages

The control task and the worker task are independent: a disconnect can
be handled while a payload is being decoded, and a slow decode never
delays the next delivery from the transport.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic

from pydustify._mqtt import BrokerTransport, PahoTransport
from pydustify.codec import decode_payload
from pydustify.config import BrokerConfig, validate_topic
from pydustify.exceptions import DecodeError
from pydustify.schemas import RecordSchema, RecordT
from pydustify.state.store import MessageStore

_logger = logging.getLogger(__name__)


class ChannelState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"
    RECONNECT_PENDING = "reconnect_pending"


@dataclass
class ChannelStats:
    """Counters maintained by a channel over its lifetime."""

    connect_attempts: int = 0
    disconnects: int = 0
    received: int = 0
    stored: int = 0
    decode_failures: int = 0
    last_error: str | None = None


class IngestionChannel(Generic[RecordT]):
    """Connect/subscribe/receive/reconnect loop for one entity kind.

    Usage::

        channel = IngestionChannel(broker=BrokerConfig(), topic="suburb/model/igention/bins", schema=BIN_SCHEMA)
        await channel.start()
        ...
        await channel.stop()

    Broker errors never escape: a failed connect or an unexpected
    disconnect moves the channel to ``RECONNECT_PENDING`` and it tries
    again after ``broker.reconnect_delay`` seconds, forever. A failed
    subscribe leaves the channel ``CONNECTED`` until the next reconnect
    cycle.
    """

    def __init__(
        self,
        *,
        broker: BrokerConfig,
        topic: str,
        schema: RecordSchema[RecordT],
        store: MessageStore[RecordT] | None = None,
        transport: BrokerTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._broker = broker
        self._topic = validate_topic(topic)
        self._schema = schema
        self._store = store if store is not None else MessageStore(schema)
        if self._store.schema is not schema:
            raise ValueError(f"Store holds {self._store.schema.kind} records, channel decodes {schema.kind}")
        self._logger = logger or _logger
        self._transport: BrokerTransport = transport or PahoTransport(
            keepalive=broker.keepalive,
            connect_timeout=broker.connect_timeout,
            username=broker.username,
            password=broker.password,
            tls=broker.tls,
            logger=self._logger,
        )
        self._transport.bind(on_message=self._on_transport_message, on_disconnect=self._on_transport_disconnect)
        self._client_id = f"{broker.client_id_prefix}_{schema.kind.value.title()}_{uuid.uuid4().hex}"

        self._state = ChannelState.DISCONNECTED
        self._stats = ChannelStats()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._control_task: asyncio.Task[None] | None = None
        self._worker_task: asyncio.Task[None] | None = None
        self._queue: asyncio.Queue[tuple[str, bytes] | None] | None = None
        self._disconnected = asyncio.Event()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def stats(self) -> ChannelStats:
        return self._stats

    @property
    def store(self) -> MessageStore[RecordT]:
        return self._store

    @property
    def schema(self) -> RecordSchema[RecordT]:
        return self._schema

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def is_running(self) -> bool:
        """Whether ``start()`` has been called without a matching ``stop()``."""
        return self._control_task is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Begin connecting in the background. No-op if already started."""
        if self._control_task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._disconnected = asyncio.Event()
        self._logger.info(
            "Starting %s channel host=%s port=%s topic=%s client_id=%s",
            self._schema.kind,
            self._broker.host,
            self._broker.port,
            self._topic,
            self._client_id,
        )
        self._worker_task = asyncio.create_task(self._consume(self._queue), name=f"{self._client_id}-worker")
        self._control_task = asyncio.create_task(self._run(), name=f"{self._client_id}-control")

    async def stop(self) -> None:
        """Disconnect and stop reconnecting. No-op if already stopped.

        A pending reconnect wait is cancelled. Messages already received
        are still decoded and stored before this returns.
        """
        control = self._control_task
        if control is None:
            return
        self._control_task = None
        self._logger.info("Stopping %s channel topic=%s", self._schema.kind, self._topic)

        control.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await control
        await self._teardown_transport()

        worker = self._worker_task
        queue = self._queue
        self._worker_task = None
        self._queue = None
        if worker is not None and queue is not None:
            queue.put_nowait(None)
            await worker

        self._set_state(ChannelState.DISCONNECTED)
        self._logger.info("%s channel stopped", self._schema.kind)

    # ------------------------------------------------------------------
    # Control plane
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            self._disconnected.clear()
            if await self._connect():
                await self._subscribe()
                await self._disconnected.wait()
                self._stats.disconnects += 1
                self._logger.warning(
                    "%s channel disconnected from %s:%s reason=%s",
                    self._schema.kind,
                    self._broker.host,
                    self._broker.port,
                    self._stats.last_error,
                )
                await self._teardown_transport()

            self._set_state(ChannelState.RECONNECT_PENDING)
            self._logger.info(
                "%s channel reconnecting in %.1f seconds", self._schema.kind, self._broker.reconnect_delay
            )
            await asyncio.sleep(self._broker.reconnect_delay)

    async def _connect(self) -> bool:
        self._set_state(ChannelState.CONNECTING)
        self._stats.connect_attempts += 1
        try:
            await self._transport.connect(self._broker.host, self._broker.port, client_id=self._client_id)
        except Exception as exc:
            self._stats.last_error = str(exc)
            self._logger.warning(
                "%s channel connection to %s:%s failed: %s",
                self._schema.kind,
                self._broker.host,
                self._broker.port,
                exc,
            )
            self._logger.debug("Connect failure detail", exc_info=True)
            await self._teardown_transport()
            return False
        self._set_state(ChannelState.CONNECTED)
        self._logger.info("%s channel connected to %s:%s", self._schema.kind, self._broker.host, self._broker.port)
        return True

    async def _subscribe(self) -> None:
        self._set_state(ChannelState.SUBSCRIBING)
        try:
            await self._transport.subscribe(self._topic, qos=self._broker.qos)
        except Exception as exc:
            self._stats.last_error = str(exc)
            self._logger.warning("%s channel subscription to %s failed: %s", self._schema.kind, self._topic, exc)
            self._logger.debug("Subscribe failure detail", exc_info=True)
            self._set_state(ChannelState.CONNECTED)
            return
        self._set_state(ChannelState.SUBSCRIBED)
        self._logger.info("%s channel subscribed to %s", self._schema.kind, self._topic)

    async def _teardown_transport(self) -> None:
        try:
            await self._transport.disconnect()
        except Exception:
            self._logger.debug("MQTT transport disconnect failed", exc_info=True)

    def _set_state(self, state: ChannelState) -> None:
        if state == self._state:
            return
        self._logger.debug("%s channel state %s -> %s", self._schema.kind, self._state, state)
        self._state = state

    # ------------------------------------------------------------------
    # Transport callbacks (any thread)
    # ------------------------------------------------------------------

    def _on_transport_message(self, topic: str, payload: bytes) -> None:
        loop = self._loop
        queue = self._queue
        if loop is None or queue is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(queue.put_nowait, (topic, payload))

    def _on_transport_disconnect(self, reason: str) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._mark_disconnected, reason)

    def _mark_disconnected(self, reason: str) -> None:
        if self._control_task is None:
            return
        self._stats.last_error = reason
        self._disconnected.set()

    # ------------------------------------------------------------------
    # Data plane
    # ------------------------------------------------------------------

    async def _consume(self, queue: asyncio.Queue[tuple[str, bytes] | None]) -> None:
        while True:
            item = await queue.get()
            if item is None:
                return
            topic, payload = item
            self._process(topic, payload)

    def _process(self, topic: str, payload: bytes) -> None:
        self._stats.received += 1
        try:
            record = decode_payload(payload, self._schema)
        except DecodeError as exc:
            self._stats.decode_failures += 1
            self._logger.warning(
                "Dropping %s message on %s: %s. Payload: %r", self._schema.kind, topic, exc, payload
            )
            return
        except Exception as exc:
            self._stats.decode_failures += 1
            self._logger.warning(
                "Unexpected error decoding %s message on %s: %s. Payload: %r",
                self._schema.kind,
                topic,
                exc,
                payload,
                exc_info=True,
            )
            return
        self._store.insert(record)
        self._stats.stored += 1
        self._logger.debug(
            "Stored %s record %s=%s", self._schema.kind, self._schema.key_field, self._schema.key_of(record)
        )
