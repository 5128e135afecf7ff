"""Geographic location shared by several record kinds."""

from __future__ import annotations

from pydantic import Field

from pydustify.models._base import DustifyBaseModel


class Location(DustifyBaseModel):
    """A WGS84 point.

    Both coordinates are required: a location object that carries only
    one of them fails decode instead of producing a half-populated point.
    """

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
