from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any

import pytest

from pydustify.config import BrokerConfig
from pydustify.exceptions import DustifyConfigError
from pydustify.ingestion import ChannelState, IngestionChannel
from pydustify.schemas import BIN_SCHEMA, HOUSE_SCHEMA, LatestPolicy
from pydustify.state.store import MessageStore

from conftest import FakeTransport, WaitUntil

HOUSE_TOPIC = "suburb/model/igention/houses"


def _channel(transport: FakeTransport, *, reconnect_delay: float = 0.05, **kwargs: Any) -> IngestionChannel[Any]:
    return IngestionChannel(
        broker=BrokerConfig(host="broker.test", port=1884, reconnect_delay=reconnect_delay),
        topic=kwargs.pop("topic", HOUSE_TOPIC),
        schema=kwargs.pop("schema", HOUSE_SCHEMA),
        transport=transport,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_start_connects_and_subscribes(fake_transport: FakeTransport, wait_until: WaitUntil) -> None:
    channel = _channel(fake_transport)
    assert channel.state is ChannelState.DISCONNECTED

    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        host, port, client_id, _ = fake_transport.connect_calls[0]
        assert (host, port) == ("broker.test", 1884)
        assert client_id == channel.client_id
        assert client_id.startswith("NeuroDustify_House_")
        assert fake_transport.subscribe_calls == [(HOUSE_TOPIC, 1)]
        assert channel.is_running
    finally:
        await channel.stop()

    assert channel.state is ChannelState.DISCONNECTED
    assert not channel.is_running


@pytest.mark.asyncio
async def test_client_ids_are_unique_per_channel() -> None:
    first = _channel(FakeTransport())
    second = _channel(FakeTransport())
    assert first.client_id != second.client_id


@pytest.mark.asyncio
async def test_received_payloads_are_stored(
    fake_transport: FakeTransport, wait_until: WaitUntil, house_payload: dict[str, Any]
) -> None:
    channel = _channel(fake_transport)
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        fake_transport.deliver(house_payload, topic=HOUSE_TOPIC)
        await wait_until(lambda: channel.stats.stored == 1)
    finally:
        await channel.stop()

    latest = channel.store.latest_by_key("P-100", LatestPolicy.BY_INSERTION_ORDER_LAST)
    assert latest is not None
    assert latest.address == "1 Main St"


@pytest.mark.asyncio
async def test_bad_payload_does_not_affect_the_next_one(
    fake_transport: FakeTransport,
    wait_until: WaitUntil,
    house_payload: dict[str, Any],
    caplog: pytest.LogCaptureFixture,
) -> None:
    channel = _channel(fake_transport)
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        with caplog.at_level(logging.WARNING, logger="pydustify"):
            fake_transport.deliver(house_payload)
            fake_transport.deliver(b"{not json")
            fake_transport.deliver({**house_payload, "property_id": "P-200"})
            await wait_until(lambda: channel.stats.received == 3)
    finally:
        await channel.stop()

    assert channel.stats.stored == 2
    assert channel.stats.decode_failures == 1
    assert [r.property_id for r in channel.store.snapshot_all()] == ["P-100", "P-200"]
    assert any("{not json" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_missing_field_is_counted_not_stored(
    fake_transport: FakeTransport, wait_until: WaitUntil, house_payload: dict[str, Any]
) -> None:
    channel = _channel(fake_transport)
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        del house_payload["property_id"]
        fake_transport.deliver(house_payload)
        await wait_until(lambda: channel.stats.decode_failures == 1)
        assert channel.state is ChannelState.SUBSCRIBED
    finally:
        await channel.stop()

    assert len(channel.store) == 0


@pytest.mark.asyncio
async def test_out_of_range_values_do_not_stop_the_worker(
    fake_transport: FakeTransport, wait_until: WaitUntil, bin_payload: dict[str, Any]
) -> None:
    channel = _channel(fake_transport, topic="suburb/model/igention/bins", schema=BIN_SCHEMA)
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        fake_transport.deliver({**bin_payload, "timestamp": "inf"})
        fake_transport.deliver({**bin_payload, "timestamp": 1e300})
        fake_transport.deliver(b"[" * 200_000)
        fake_transport.deliver(bin_payload)
        await wait_until(lambda: channel.stats.received == 4)
    finally:
        await channel.stop()

    assert channel.stats.decode_failures == 3
    assert channel.stats.stored == 1
    assert [r.bin_id for r in channel.store.snapshot_all()] == ["BIN-7"]


@pytest.mark.asyncio
async def test_unexpected_decode_error_is_counted_and_logged(
    fake_transport: FakeTransport,
    wait_until: WaitUntil,
    house_payload: dict[str, Any],
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    from pydustify.ingestion import channel as channel_module

    real_decode = channel_module.decode_payload
    calls = 0

    def flaky_decode(raw_payload: bytes, schema: Any) -> Any:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("decoder blew up")
        return real_decode(raw_payload, schema)

    monkeypatch.setattr(channel_module, "decode_payload", flaky_decode)
    channel = _channel(fake_transport)
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        with caplog.at_level(logging.WARNING, logger="pydustify"):
            fake_transport.deliver(house_payload)
            fake_transport.deliver(house_payload)
            await wait_until(lambda: channel.stats.received == 2)
    finally:
        await channel.stop()

    assert channel.stats.decode_failures == 1
    assert channel.stats.stored == 1
    assert any(r.exc_info and "decoder blew up" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_messages_from_another_thread(
    fake_transport: FakeTransport, wait_until: WaitUntil, bin_payload: dict[str, Any]
) -> None:
    channel = _channel(fake_transport, topic="suburb/model/igention/bins", schema=BIN_SCHEMA)
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        threads = [
            threading.Thread(target=fake_transport.deliver, args=({**bin_payload, "bin_id": f"BIN-{i}"},))
            for i in range(20)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        await wait_until(lambda: channel.stats.stored == 20)
    finally:
        await channel.stop()

    assert {r.bin_id for r in channel.store.snapshot_all()} == {f"BIN-{i}" for i in range(20)}


@pytest.mark.asyncio
async def test_failed_connect_retries_after_delay(wait_until: WaitUntil) -> None:
    transport = FakeTransport(fail_connects=2)
    channel = _channel(transport, reconnect_delay=0.05)
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
    finally:
        await channel.stop()

    assert len(transport.connect_calls) == 3
    assert channel.stats.connect_attempts == 3
    assert channel.stats.last_error is not None
    gaps = [b[3] - a[3] for a, b in zip(transport.connect_calls, transport.connect_calls[1:])]
    assert all(gap >= 0.04 for gap in gaps)


@pytest.mark.asyncio
async def test_failed_connect_enters_reconnect_pending(wait_until: WaitUntil) -> None:
    transport = FakeTransport(fail_connects=1)
    channel = _channel(transport, reconnect_delay=60.0)
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.RECONNECT_PENDING)
        assert len(transport.connect_calls) == 1
    finally:
        await asyncio.wait_for(channel.stop(), timeout=1.0)

    assert channel.state is ChannelState.DISCONNECTED
    assert len(transport.connect_calls) == 1


@pytest.mark.asyncio
async def test_failed_subscribe_stays_connected(wait_until: WaitUntil) -> None:
    transport = FakeTransport(fail_subscribe=True)
    channel = _channel(transport)
    await channel.start()
    try:
        await wait_until(lambda: len(transport.subscribe_calls) == 1)
        await asyncio.sleep(0.2)
        assert channel.state is ChannelState.CONNECTED
        assert len(transport.connect_calls) == 1
        assert len(transport.subscribe_calls) == 1
    finally:
        await channel.stop()


@pytest.mark.asyncio
async def test_disconnect_triggers_reconnect(fake_transport: FakeTransport, wait_until: WaitUntil) -> None:
    channel = _channel(fake_transport)
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        fake_transport.drop("Keepalive timeout")
        await wait_until(lambda: len(fake_transport.connect_calls) == 2)
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
    finally:
        await channel.stop()

    assert channel.stats.disconnects == 1
    assert channel.stats.last_error == "Keepalive timeout"
    assert len(fake_transport.subscribe_calls) == 2


@pytest.mark.asyncio
async def test_default_reconnect_delay_is_five_seconds(fake_transport: FakeTransport, wait_until: WaitUntil) -> None:
    channel = IngestionChannel(
        broker=BrokerConfig(host="broker.test"),
        topic=HOUSE_TOPIC,
        schema=HOUSE_SCHEMA,
        transport=fake_transport,
    )
    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        dropped_at = time.monotonic()
        fake_transport.drop()
        await wait_until(lambda: channel.state is ChannelState.RECONNECT_PENDING)
        await wait_until(lambda: len(fake_transport.connect_calls) == 2, timeout=7.0)
        delay = fake_transport.connect_calls[1][3] - dropped_at
        assert 4.9 <= delay < 6.0
    finally:
        await channel.stop()


@pytest.mark.asyncio
async def test_stop_processes_already_received_messages(
    fake_transport: FakeTransport, wait_until: WaitUntil, house_payload: dict[str, Any]
) -> None:
    channel = _channel(fake_transport)
    await channel.start()
    await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
    for i in range(5):
        fake_transport.deliver({**house_payload, "property_id": f"P-{i}"})
    await channel.stop()

    assert channel.stats.stored == 5
    assert fake_transport.connected is False


@pytest.mark.asyncio
async def test_messages_after_stop_are_ignored(
    fake_transport: FakeTransport, wait_until: WaitUntil, house_payload: dict[str, Any]
) -> None:
    channel = _channel(fake_transport)
    await channel.start()
    await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
    await channel.stop()

    fake_transport.deliver(house_payload)
    fake_transport.drop()
    await asyncio.sleep(0.05)

    assert channel.stats.received == 0
    assert channel.stats.disconnects == 0


@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent(fake_transport: FakeTransport, wait_until: WaitUntil) -> None:
    channel = _channel(fake_transport)
    await channel.stop()

    await channel.start()
    await channel.start()
    await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
    assert len(fake_transport.connect_calls) == 1

    await channel.stop()
    await channel.stop()
    assert channel.state is ChannelState.DISCONNECTED


@pytest.mark.asyncio
async def test_channel_can_restart(fake_transport: FakeTransport, wait_until: WaitUntil) -> None:
    channel = _channel(fake_transport)
    await channel.start()
    await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
    await channel.stop()

    await channel.start()
    try:
        await wait_until(lambda: channel.state is ChannelState.SUBSCRIBED)
        assert len(fake_transport.connect_calls) == 2
    finally:
        await channel.stop()


@pytest.mark.parametrize("topic", ["", "   ", "bins/#/bad", "bins/a+", "bins\x00"])
def test_invalid_topic_rejected(topic: str) -> None:
    with pytest.raises(DustifyConfigError):
        _channel(FakeTransport(), topic=topic)


def test_store_for_another_kind_rejected() -> None:
    with pytest.raises(ValueError):
        _channel(FakeTransport(), store=MessageStore(BIN_SCHEMA))
