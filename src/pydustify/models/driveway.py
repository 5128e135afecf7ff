"""Driveway telemetry record."""

from __future__ import annotations

from pydustify.models._base import DustifyBaseModel
from pydustify.models.location import Location


class DrivewayRecord(DustifyBaseModel):
    """A driveway, where bins are put out for collection."""

    driveway_id: str
    location: Location
