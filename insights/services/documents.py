"""Helpers for turning MongoDB documents into JSON and tabular cells."""
from __future__ import annotations

import base64
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from bson import Code, Decimal128, MaxKey, MinKey, ObjectId, Regex, Timestamp, json_util
from bson.binary import OLD_UUID_SUBTYPE, UUID_SUBTYPE, Binary, UuidRepresentation
from fastapi.encoders import jsonable_encoder

_MISSING = object()

# Floats past this lose integer precision
_MAX_EXACT_FLOAT = 2 ** 53


def _binary_text(value: bytes) -> str:
    """UUID binaries as their canonical text, everything else as base64."""
    subtype = getattr(value, "subtype", None)
    if len(value) == 16 and subtype == UUID_SUBTYPE:
        return str(value.as_uuid())
    if len(value) == 16 and subtype == OLD_UUID_SUBTYPE:
        return str(value.as_uuid(UuidRepresentation.PYTHON_LEGACY))
    return base64.b64encode(bytes(value)).decode("ascii")


def _extended_json(value: Any) -> Any:
    return json_util.default(value, json_options=json_util.RELAXED_JSON_OPTIONS)


_BSON_ENCODERS = {
    ObjectId: str,
    Decimal128: lambda d: str(d.to_decimal()),
    Binary: _binary_text,
    bytes: _binary_text,
    Timestamp: _extended_json,
    Regex: _extended_json,
    MinKey: _extended_json,
    MaxKey: _extended_json,
    Code: _extended_json,
}


def to_jsonable(docs: List[Dict[str, Any]]) -> List[Any]:
    return jsonable_encoder(docs, custom_encoder=_BSON_ENCODERS)


def get_path(doc: Any, path: str) -> Any:
    """Follow a dot path (``a.b.0.c``) into nested maps and lists."""
    current = doc
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            idx = int(part)
            current = current[idx] if idx < len(current) else _MISSING
        else:
            return None
        if current is _MISSING:
            return None
    return current


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal128):
        return str(value.to_decimal())
    if isinstance(value, bytes):
        return _binary_text(value)
    if isinstance(value, (Timestamp, Regex, MinKey, MaxKey, Code)):
        return _extended_json(value)
    return str(value)


def _number_text(value: Any) -> str:
    if isinstance(value, float):
        if value.is_integer() and abs(value) < _MAX_EXACT_FLOAT:
            return str(int(value))
        return repr(value)
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if isinstance(value, Decimal):
        return format(value.normalize(), "f") if value == value.to_integral() else str(value)
    return str(value)


def format_cell(value: Any, field_type: str = "string") -> str:
    """Render one exported value as CSV cell text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=_json_default, ensure_ascii=False)
    if isinstance(value, (int, float, Decimal, Decimal128)):
        return _number_text(value)
    if field_type == "boolean" and isinstance(value, str):
        return value.strip().lower()
    if isinstance(value, bytes):
        return _binary_text(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)
