"""Record models for decoded telemetry payloads."""

from pydustify.models._base import DustifyBaseModel, IdList, RecordTimestamp, parse_timestamp, split_ids
from pydustify.models.bin import BinRecord
from pydustify.models.driveway import DrivewayRecord
from pydustify.models.house import AssociatedHouse, HouseRecord
from pydustify.models.location import Location
from pydustify.models.street import StreetRecord
from pydustify.models.suburb import SuburbRecord

Record = BinRecord | HouseRecord | StreetRecord | SuburbRecord | DrivewayRecord

__all__ = [
    "AssociatedHouse",
    "BinRecord",
    "DrivewayRecord",
    "DustifyBaseModel",
    "HouseRecord",
    "IdList",
    "Location",
    "Record",
    "RecordTimestamp",
    "StreetRecord",
    "SuburbRecord",
    "parse_timestamp",
    "split_ids",
]
