"""Ingestion layer.

This package contains the broker-facing channel that receives payloads,
decodes them into records and hands them to the state/store layer.
"""

from pydustify.ingestion.channel import ChannelState, ChannelStats, IngestionChannel

__all__ = ["ChannelState", "ChannelStats", "IngestionChannel"]
