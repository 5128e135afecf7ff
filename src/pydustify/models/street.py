"""Street telemetry record."""

from __future__ import annotations

from pydustify.models._base import DustifyBaseModel, IdList


class StreetRecord(DustifyBaseModel):
    """A street and the houses on it."""

    street_id: str
    name: str
    house_ids: IdList
