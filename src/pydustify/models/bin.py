"""Smart bin telemetry record."""

from __future__ import annotations

from pydantic import AliasChoices, Field

from pydustify.models._base import DustifyBaseModel, RecordTimestamp
from pydustify.models.house import AssociatedHouse
from pydustify.models.location import Location


class BinRecord(DustifyBaseModel):
    """A single reading from a smart bin.

    This is the only record kind with a trustworthy ``timestamp``; the
    latest bin for a key is therefore chosen by timestamp, not by arrival.

    Parameters
    ----------
    bin_id : str
        Identity key of the bin.
    status : str
        Free-form status reported by the bin (e.g. ``"ok"``, ``"full"``).
    house : AssociatedHouse
        The house the bin is assigned to.
    timestamp : datetime or None
        Time of the reading in UTC.
    location : Location or None
        Position of the bin itself.
    fill_level_percentage : float or None
        Fill level, 0-100.
    temperature_celsius : float or None
        Internal temperature.
    """

    bin_id: str
    status: str
    house: AssociatedHouse = Field(..., validation_alias=AliasChoices("house", "associated_house"))
    timestamp: RecordTimestamp = None
    location: Location | None = None
    fill_level_percentage: float | None = None
    temperature_celsius: float | None = None

    @property
    def is_full(self) -> bool:
        return self.fill_level_percentage is not None and self.fill_level_percentage >= 90.0
