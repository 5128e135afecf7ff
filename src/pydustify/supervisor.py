"""Lifecycle wrapper that starts and stops channels with the host process."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from types import TracebackType
from typing import Any

from pydustify.ingestion.channel import IngestionChannel

_logger = logging.getLogger(__name__)


class ChannelSupervisor:
    """Start/stop a set of ingestion channels in lockstep.

    Usage::

        async with ChannelSupervisor([bin_channel, house_channel]):
            await shutdown_event.wait()
    """

    def __init__(self, channels: Iterable[IngestionChannel[Any]], *, logger: logging.Logger | None = None) -> None:
        self._channels = tuple(channels)
        self._logger = logger or _logger
        self._started = False

    @property
    def channels(self) -> tuple[IngestionChannel[Any], ...]:
        return self._channels

    @property
    def is_started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start every channel. Idempotent."""
        if self._started:
            return
        self._started = True
        self._logger.info("Starting %d ingestion channel(s)", len(self._channels))
        await asyncio.gather(*(channel.start() for channel in self._channels))

    async def stop(self) -> None:
        """Stop every channel. Idempotent; one failing channel does not block the rest."""
        if not self._started:
            return
        self._started = False
        self._logger.info("Stopping %d ingestion channel(s)", len(self._channels))
        results = await asyncio.gather(*(channel.stop() for channel in self._channels), return_exceptions=True)
        for channel, result in zip(self._channels, results, strict=True):
            if isinstance(result, BaseException):
                self._logger.warning(
                    "Stopping %s channel failed", channel.schema.kind, exc_info=(type(result), result, result.__traceback__)
                )

    async def __aenter__(self) -> ChannelSupervisor:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()
