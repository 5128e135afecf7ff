"""House telemetry record."""

from __future__ import annotations

from pydantic import AliasChoices, Field

from pydustify.models._base import DustifyBaseModel, IdList
from pydustify.models.location import Location


class HouseRecord(DustifyBaseModel):
    """A house (property) as published on the houses topic.

    Parameters
    ----------
    property_id : str
        Identity key of the property.
    address : str
        Street address.
    location : Location
        Position of the property.
    driveway_ids : tuple of str
        Driveways attached to the property.
    """

    property_id: str
    address: str
    location: Location
    driveway_ids: IdList


class AssociatedHouse(DustifyBaseModel):
    """The house a bin belongs to, embedded by value in bin messages.

    Older publishers send the identifier as ``house_id``.
    """

    property_id: str = Field(..., validation_alias=AliasChoices("property_id", "house_id"))
    address: str
    location: Location = Field(..., validation_alias=AliasChoices("location", "house_location"))
