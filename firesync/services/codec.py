"""Conversion between document values and the store's tagged wire format."""

import logging
import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Mapping

logger = logging.getLogger(__name__)

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_NON_FINITE = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}


def normalize_value(raw: Any) -> Any:
    """
    Coerce a raw collaborator value into a document value.

    Document values are None, bool, int, float, str, list and dict with
    string keys. Anything else is converted to the closest of those.
    """
    if raw is None or isinstance(raw, (bool, str)):
        return raw
    if isinstance(raw, int):
        return int(raw)
    if isinstance(raw, float):
        return raw
    if isinstance(raw, Decimal):
        return float(raw)
    if isinstance(raw, (datetime, date, time)):
        return raw.isoformat()
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    if isinstance(raw, Mapping):
        return {str(k): normalize_value(v) for k, v in raw.items()}
    if isinstance(raw, (list, tuple)):
        return [normalize_value(v) for v in raw]
    if isinstance(raw, (set, frozenset)):
        return [normalize_value(v) for v in sorted(raw, key=repr)]
    if hasattr(raw, "to_dict") and callable(raw.to_dict):
        return normalize_value(raw.to_dict())
    return str(raw)


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a document value as a wire value."""
    if value is None:
        return {"nullValue": None}

    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"booleanValue": value}

    if isinstance(value, int):
        if INT64_MIN <= value <= INT64_MAX:
            return {"integerValue": str(value)}
        return encode_value(float(value))

    if isinstance(value, float):
        if math.isnan(value):
            return {"doubleValue": "NaN"}
        if math.isinf(value):
            return {"doubleValue": "Infinity" if value > 0 else "-Infinity"}
        return {"doubleValue": value}

    if isinstance(value, str):
        return {"stringValue": value}

    if isinstance(value, Mapping):
        # Empty map stays a map: the store would otherwise read it back as an array
        if not value:
            return {"mapValue": {"fields": {}}}
        return {"mapValue": {"fields": {str(k): encode_value(v) for k, v in value.items()}}}

    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}

    return encode_value(normalize_value(value))


def decode_value(wire: Any) -> Any:
    """Decode a wire value. Shapes that are not recognised decode to None."""
    if not isinstance(wire, Mapping) or len(wire) != 1:
        return None

    tag, payload = next(iter(wire.items()))

    try:
        if tag == "nullValue":
            return None

        if tag == "booleanValue":
            return payload if isinstance(payload, bool) else None

        if tag == "integerValue":
            if isinstance(payload, bool):
                return None
            if isinstance(payload, int):
                return payload
            if isinstance(payload, str):
                return int(payload)
            return None

        if tag == "doubleValue":
            if isinstance(payload, str):
                if payload in _NON_FINITE:
                    return _NON_FINITE[payload]
                return float(payload)
            if isinstance(payload, (int, float)) and not isinstance(payload, bool):
                return float(payload)
            return None

        if tag in ("stringValue", "timestampValue", "referenceValue", "bytesValue"):
            return payload if isinstance(payload, str) else None

        if tag == "geoPointValue":
            if not isinstance(payload, Mapping):
                return None
            return {
                "latitude": float(payload.get("latitude", 0.0)),
                "longitude": float(payload.get("longitude", 0.0)),
            }

        if tag == "arrayValue":
            if not isinstance(payload, Mapping):
                return None
            values = payload.get("values") or []
            if not isinstance(values, list):
                return None
            return [decode_value(v) for v in values]

        if tag == "mapValue":
            if not isinstance(payload, Mapping):
                return None
            fields = payload.get("fields") or {}
            if not isinstance(fields, Mapping):
                return None
            return {str(k): decode_value(v) for k, v in fields.items()}

    except (TypeError, ValueError) as e:
        logger.debug(f"Could not decode {tag}: {e}")
        return None

    return None


def encode_document(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Encode a document's fields as a request body."""
    return {"fields": {str(k): encode_value(v) for k, v in fields.items()}}


def decode_document(body: Any) -> Dict[str, Any]:
    """Decode the fields of a document resource."""
    if not isinstance(body, Mapping):
        return {}
    fields = body.get("fields") or {}
    if not isinstance(fields, Mapping):
        return {}
    return {str(k): decode_value(v) for k, v in fields.items()}
