"""Base model for telemetry records.

Every record model inherits from :class:`DustifyBaseModel` which
provides:

* Case-insensitive wire-name mapping: incoming keys are matched to
  field names (and their ``validation_alias`` choices) ignoring case
  and ``_``/``-`` separators, so ``property_id``, ``PropertyId`` and
  ``propertyId`` all land on the same field.
* A ``model_validator(mode="before")`` that drops ``None`` and blank
  strings so required fields surface as *missing* rather than as type
  errors.
* A read-only ``raw`` mapping that captures the original wire object.

Nested models (``Location``, ``AssociatedHouse``) inherit the same
rules, so the mapping applies recursively.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000

_ID_SEPARATORS = re.compile(r"[,;\s]+")


def wire_key(name: str) -> str:
    """Normalise a wire or field name for case-insensitive matching."""
    return name.replace("_", "").replace("-", "").casefold()


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an ISO-8601 string or epoch seconds/milliseconds to a UTC datetime.

    Naive datetimes are assumed to be UTC. Returns ``None`` for ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        raise ValueError("timestamp must not be a boolean")
    if isinstance(value, str):
        text = value.strip()
        try:
            value = float(text)
        except ValueError:
            parsed = datetime.fromisoformat(text)
            return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        try:
            ts = float(value)
        except OverflowError as exc:
            raise ValueError(f"timestamp {value!r} is out of range") from exc
        if not math.isfinite(ts):
            raise ValueError(f"timestamp must be a finite number, got {value!r}")
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"timestamp {value!r} is out of range") from exc
    return value


def split_ids(value: Any) -> Any:
    """Coerce a free-form id list into a tuple of non-empty strings.

    Accepts a JSON array or a string separated by commas, semicolons or
    whitespace. Other shapes are passed through for pydantic to reject.
    """
    if isinstance(value, str):
        return tuple(part for part in _ID_SEPARATORS.split(value) if part)
    if isinstance(value, (list, tuple)):
        items: list[str] = []
        for item in value:
            if item is None:
                continue
            text = str(item).strip()
            if text:
                items.append(text)
        return tuple(items)
    return value


RecordTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces ISO strings and epoch numbers to UTC datetimes."""

IdList = Annotated[tuple[str, ...], BeforeValidator(split_ids)]
"""Annotated type for free-form id lists."""


class DustifyBaseModel(BaseModel):
    """Base for decoded telemetry records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: Mapping[str, Any] = Field(default_factory=lambda: MappingProxyType({}), exclude=True, repr=False)
    """Read-only view of the top-level wire object."""

    @field_validator("raw", mode="after")
    @classmethod
    def _freeze_raw(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @classmethod
    def wire_names(cls) -> dict[str, str]:
        """Return the normalised-name → accepted-name map for this model."""
        lookup: dict[str, str] = {}
        for name, info in cls.model_fields.items():
            if name == "raw":
                continue
            candidates = [name]
            alias = info.validation_alias
            if isinstance(alias, AliasChoices):
                candidates.extend(choice for choice in alias.choices if isinstance(choice, str))
            elif isinstance(alias, str):
                candidates.append(alias)
            for candidate in candidates:
                lookup.setdefault(wire_key(candidate), candidate)
        return lookup

    @model_validator(mode="before")
    @classmethod
    def _map_wire_names(cls, values: Any) -> Any:
        """Map wire keys onto field names, drop empty values and stash the raw object."""
        if not isinstance(values, dict):
            return values

        lookup = cls.wire_names()
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            target = lookup.get(wire_key(str(key)), key) if key != "raw" else key
            # First occurrence wins when two spellings of one field collide.
            cleaned.setdefault(target, value)

        if "raw" not in values:
            cleaned["raw"] = dict(values)
        return cleaned
