#!/usr/bin/env python3
"""Run the ingestion channels against a broker and report what arrived.

Connects one channel per entity kind, keeps them running until SIGINT or
SIGTERM (or ``--duration`` elapses), then prints per-kind counters and
the latest record per key.

Use this to check topic names and payload shapes against a live broker.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pydustify import DustifyConfig, EntityKind, TelemetryHub  # noqa: E402
from pydustify.exceptions import DustifyConfigError  # noqa: E402

_LOG = logging.getLogger("mqtt_listen")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Listen to smart-bin telemetry topics and print the latest state.",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Broker host (default: DUSTIFY_BROKER_HOST or test.mosquitto.org)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Broker port (default: DUSTIFY_BROKER_PORT or 1883)",
    )
    parser.add_argument(
        "--kind",
        action="append",
        choices=[kind.value for kind in EntityKind],
        help="Entity kind to listen for; repeat for several (default: all)",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable DEBUG logging (per-message traffic)",
    )
    return parser.parse_args()


def _build_config(args: argparse.Namespace) -> DustifyConfig:
    overrides: dict[str, object] = {}
    if args.kind:
        overrides["enabled_kinds"] = tuple(EntityKind(kind) for kind in args.kind)
    config = DustifyConfig.from_env(**overrides)
    broker_overrides: dict[str, object] = {}
    if args.host:
        broker_overrides["host"] = args.host
    if args.port is not None:
        broker_overrides["port"] = args.port
    if broker_overrides:
        config = dataclasses.replace(config, broker=dataclasses.replace(config.broker, **broker_overrides))
    return config


def _print_summary(hub: TelemetryHub) -> None:
    for kind in hub.config.enabled_kinds:
        channel = hub.channel(kind)
        query = hub.query(kind)
        stats = channel.stats
        print(
            f"{kind.value:<9} topic={channel.topic} state={channel.state} "
            f"received={stats.received} stored={stats.stored} failed={stats.decode_failures}"
        )
        seen: set[str] = set()
        for record in query.list_all():
            key = channel.schema.key_of(record)
            if key.casefold() in seen:
                continue
            seen.add(key.casefold())
            latest = query.get_latest(key)
            if latest is not None:
                print(f"  {key}: {json.dumps(latest.model_dump(mode='json'))}")


async def _run(config: DustifyConfig, duration: float) -> TelemetryHub:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    hub = TelemetryHub(config)
    async with hub:
        if duration > 0:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), duration)
        else:
            await stop_event.wait()
    return hub


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = _build_config(args)
    except DustifyConfigError as exc:
        _LOG.error("Invalid configuration: %s", exc)
        return 2

    _LOG.info(
        "Listening on %s:%s for %s",
        config.broker.host,
        config.broker.port,
        ", ".join(kind.value for kind in config.enabled_kinds),
    )
    hub = asyncio.run(_run(config, args.duration))
    _print_summary(hub)
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
