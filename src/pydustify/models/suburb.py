"""Suburb telemetry record."""

from __future__ import annotations

from pydustify.models._base import DustifyBaseModel, IdList


class SuburbRecord(DustifyBaseModel):
    """A suburb and its streets.

    Suburb publishers vary in what they send; only the identity key is
    required.
    """

    suburb_id: str
    name: str | None = None
    street_ids: IdList = ()
