from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from pydustify.exceptions import BrokerConnectionError, BrokerSubscriptionError


class FakeTransport:
    """In-memory stand-in for the paho transport.

    ``deliver``/``drop`` play the broker side and may be called from any
    thread, like paho's network loop would.
    """

    def __init__(self, *, fail_connects: int = 0, fail_subscribe: bool = False) -> None:
        self.fail_connects = fail_connects
        self.fail_subscribe = fail_subscribe
        self.connect_calls: list[tuple[str, int, str, float]] = []
        self.subscribe_calls: list[tuple[str, int]] = []
        self.disconnect_calls = 0
        self.connected = False
        self._on_message: Callable[[str, bytes], None] | None = None
        self._on_disconnect: Callable[[str], None] | None = None

    def bind(self, *, on_message: Callable[[str, bytes], None], on_disconnect: Callable[[str], None]) -> None:
        self._on_message = on_message
        self._on_disconnect = on_disconnect

    async def connect(self, host: str, port: int, *, client_id: str) -> None:
        self.connect_calls.append((host, port, client_id, time.monotonic()))
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise BrokerConnectionError("Connection refused", host=host, port=port)
        self.connected = True

    async def subscribe(self, topic: str, *, qos: int) -> None:
        self.subscribe_calls.append((topic, qos))
        if self.fail_subscribe:
            raise BrokerSubscriptionError("Subscription rejected", topic=topic)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False

    def deliver(self, payload: bytes | str | dict[str, Any], topic: str = "suburb/model/igention/test") -> None:
        assert self._on_message is not None
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        self._on_message(topic, payload)

    def drop(self, reason: str = "Connection lost") -> None:
        assert self._on_disconnect is not None
        self.connected = False
        self._on_disconnect(reason)


WaitUntil = Callable[..., Awaitable[None]]


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError(f"condition not met within {timeout}s")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until() -> WaitUntil:
    return _wait_until


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def house_payload() -> dict[str, Any]:
    return {
        "property_id": "P-100",
        "address": "1 Main St",
        "location": {"latitude": -37.81, "longitude": 144.96},
        "driveway_ids": ["D-1", "D-2"],
    }


@pytest.fixture
def bin_payload() -> dict[str, Any]:
    return {
        "bin_id": "BIN-7",
        "timestamp": "2025-05-01T08:00:00Z",
        "fill_level_percentage": 42.5,
        "temperature_celsius": 18.25,
        "status": "ok",
        "location": {"latitude": -37.8101, "longitude": 144.9601},
        "house": {
            "property_id": "P-100",
            "address": "1 Main St",
            "location": {"latitude": -37.81, "longitude": 144.96},
        },
    }
