"""Payload codec: raw MQTT bytes → typed record.

Pure functions only. Logging and counting failures is the caller's job
(see :mod:`pydustify.ingestion.channel`).
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from pydustify.exceptions import InvalidFieldError, MalformedPayloadError, MissingRequiredFieldError
from pydustify.schemas import RecordSchema, RecordT


def _field_path(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def parse_json_object(raw_payload: bytes) -> dict[str, Any]:
    """Decode UTF-8 bytes holding exactly one JSON object."""
    try:
        text = raw_payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedPayloadError(f"Payload is not valid UTF-8: {exc}") from exc
    try:
        parsed = json.loads(text)
    except (RecursionError, ValueError) as exc:
        raise MalformedPayloadError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedPayloadError(f"Payload is JSON {type(parsed).__name__}, expected an object")
    return parsed


def decode_payload(raw_payload: bytes, schema: RecordSchema[RecordT]) -> RecordT:
    """Decode *raw_payload* into a record of ``schema.model``.

    Raises
    ------
    MalformedPayloadError
        The payload is not UTF-8 JSON holding one object.
    MissingRequiredFieldError
        A required field (reported as a dotted wire path) has no value.
    InvalidFieldError
        A field is present but could not be coerced.
    """
    data = parse_json_object(raw_payload)
    try:
        return schema.model.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        # Missing fields take precedence so callers see the schema gap first.
        for error in errors:
            if error["type"] == "missing":
                raise MissingRequiredFieldError(_field_path(error["loc"])) from exc
        first = errors[0]
        raise InvalidFieldError(_field_path(first["loc"]), first["msg"]) from exc
