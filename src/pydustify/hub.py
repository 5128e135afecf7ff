"""High-level wiring of stores, channels and queries for every entity kind."""

from __future__ import annotations

import logging
from collections.abc import Callable
from types import TracebackType
from typing import Any

from pydustify._mqtt import BrokerTransport
from pydustify.config import DustifyConfig
from pydustify.ingestion.channel import IngestionChannel
from pydustify.models import BinRecord, DrivewayRecord, HouseRecord, StreetRecord, SuburbRecord
from pydustify.query import RecordQuery
from pydustify.schemas import SCHEMAS, EntityKind, RecordSchema
from pydustify.state.store import MessageStore
from pydustify.supervisor import ChannelSupervisor

_logger = logging.getLogger(__name__)

TransportFactory = Callable[[RecordSchema[Any]], BrokerTransport]


class TelemetryHub:
    """One store, channel and query facade per enabled entity kind.

    Usage::

        async with TelemetryHub(DustifyConfig.from_env()) as hub:
            ...
            latest = hub.bins.get_latest("bin-42")

    Parameters
    ----------
    config : DustifyConfig
        Broker and topic configuration.
    transport_factory : callable, optional
        Builds the broker transport for a schema. Defaults to a
        paho-mqtt transport per channel.
    logger : logging.Logger, optional
        Logger handed to every channel and the supervisor.
    """

    def __init__(
        self,
        config: DustifyConfig,
        *,
        transport_factory: TransportFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._logger = logger or _logger
        self._channels: dict[EntityKind, IngestionChannel[Any]] = {}
        self._queries: dict[EntityKind, RecordQuery[Any]] = {}

        for kind in config.enabled_kinds:
            schema = SCHEMAS[kind]
            store: MessageStore[Any] = MessageStore(schema, max_records=config.max_records)
            self._channels[kind] = IngestionChannel(
                broker=config.broker,
                topic=config.topic_for(kind),
                schema=schema,
                store=store,
                transport=transport_factory(schema) if transport_factory is not None else None,
                logger=self._logger,
            )
            self._queries[kind] = RecordQuery(store)

        self._supervisor = ChannelSupervisor(self._channels.values(), logger=self._logger)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TelemetryHub:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def start(self) -> None:
        await self._supervisor.start()

    async def stop(self) -> None:
        await self._supervisor.stop()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> DustifyConfig:
        return self._config

    @property
    def supervisor(self) -> ChannelSupervisor:
        return self._supervisor

    def channel(self, kind: EntityKind) -> IngestionChannel[Any]:
        try:
            return self._channels[kind]
        except KeyError:
            raise KeyError(f"{kind} ingestion is not enabled") from None

    def query(self, kind: EntityKind) -> RecordQuery[Any]:
        try:
            return self._queries[kind]
        except KeyError:
            raise KeyError(f"{kind} ingestion is not enabled") from None

    @property
    def bins(self) -> RecordQuery[BinRecord]:
        return self.query(EntityKind.BIN)

    @property
    def houses(self) -> RecordQuery[HouseRecord]:
        return self.query(EntityKind.HOUSE)

    @property
    def streets(self) -> RecordQuery[StreetRecord]:
        return self.query(EntityKind.STREET)

    @property
    def suburbs(self) -> RecordQuery[SuburbRecord]:
        return self.query(EntityKind.SUBURB)

    @property
    def driveways(self) -> RecordQuery[DrivewayRecord]:
        return self.query(EntityKind.DRIVEWAY)
