"""Per-entity schema descriptors.

One :class:`RecordSchema` describes everything that differs between
entity kinds: the record model, its identity key, how "latest" is
judged, and the topic it is published on by default. The ingestion,
storage and query layers are generic over it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Generic, TypeVar

from pydantic import BaseModel

from pydustify.models import BinRecord, DrivewayRecord, HouseRecord, StreetRecord, SuburbRecord

RecordT = TypeVar("RecordT", bound=BaseModel)

DEFAULT_TOPIC_PREFIX = "suburb/model/igention"


class EntityKind(StrEnum):
    BIN = "bin"
    HOUSE = "house"
    STREET = "street"
    SUBURB = "suburb"
    DRIVEWAY = "driveway"


class LatestPolicy(StrEnum):
    """How the "latest" record for a key is chosen."""

    BY_FIELD_TIMESTAMP_DESCENDING = "by_field_timestamp_descending"
    BY_INSERTION_ORDER_LAST = "by_insertion_order_last"


@dataclass(frozen=True)
class RecordSchema(Generic[RecordT]):
    """Wire schema plus identity/latest configuration for one entity kind."""

    kind: EntityKind
    model: type[RecordT]
    key_field: str
    latest_policy: LatestPolicy
    timestamp_field: str | None = None
    topic_suffix: str = ""

    def __post_init__(self) -> None:
        if self.key_field not in self.model.model_fields:
            raise ValueError(f"{self.model.__name__} has no key field {self.key_field!r}")
        if self.latest_policy == LatestPolicy.BY_FIELD_TIMESTAMP_DESCENDING and self.timestamp_field is None:
            raise ValueError(f"{self.kind} uses timestamp ordering but declares no timestamp field")

    @property
    def default_topic(self) -> str:
        return f"{DEFAULT_TOPIC_PREFIX}/{self.topic_suffix or self.kind.value + 's'}"

    def key_of(self, record: RecordT) -> str:
        return str(getattr(record, self.key_field))

    def timestamp_of(self, record: RecordT) -> datetime | None:
        if self.timestamp_field is None:
            return None
        return getattr(record, self.timestamp_field, None)


BIN_SCHEMA: RecordSchema[BinRecord] = RecordSchema(
    kind=EntityKind.BIN,
    model=BinRecord,
    key_field="bin_id",
    latest_policy=LatestPolicy.BY_FIELD_TIMESTAMP_DESCENDING,
    timestamp_field="timestamp",
)
HOUSE_SCHEMA: RecordSchema[HouseRecord] = RecordSchema(
    kind=EntityKind.HOUSE,
    model=HouseRecord,
    key_field="property_id",
    latest_policy=LatestPolicy.BY_INSERTION_ORDER_LAST,
)
STREET_SCHEMA: RecordSchema[StreetRecord] = RecordSchema(
    kind=EntityKind.STREET,
    model=StreetRecord,
    key_field="street_id",
    latest_policy=LatestPolicy.BY_INSERTION_ORDER_LAST,
)
SUBURB_SCHEMA: RecordSchema[SuburbRecord] = RecordSchema(
    kind=EntityKind.SUBURB,
    model=SuburbRecord,
    key_field="suburb_id",
    latest_policy=LatestPolicy.BY_INSERTION_ORDER_LAST,
)
DRIVEWAY_SCHEMA: RecordSchema[DrivewayRecord] = RecordSchema(
    kind=EntityKind.DRIVEWAY,
    model=DrivewayRecord,
    key_field="driveway_id",
    latest_policy=LatestPolicy.BY_INSERTION_ORDER_LAST,
)

SCHEMAS: dict[EntityKind, RecordSchema] = {
    schema.kind: schema for schema in (BIN_SCHEMA, HOUSE_SCHEMA, STREET_SCHEMA, SUBURB_SCHEMA, DRIVEWAY_SCHEMA)
}
