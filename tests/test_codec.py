"""Tests for the wire value codec."""

import math
from datetime import datetime
from decimal import Decimal

from firesync.services.codec import (
    INT64_MAX,
    INT64_MIN,
    decode_document,
    decode_value,
    encode_document,
    encode_value,
    normalize_value,
)


def test_scalars_encode_to_tagged_values():
    assert encode_value(None) == {"nullValue": None}
    assert encode_value(True) == {"booleanValue": True}
    assert encode_value(42) == {"integerValue": "42"}
    assert encode_value(1.5) == {"doubleValue": 1.5}
    assert encode_value("hi") == {"stringValue": "hi"}


def test_bool_is_not_encoded_as_integer():
    assert encode_value(False) == {"booleanValue": False}
    assert decode_value({"booleanValue": False}) is False


def test_empty_map_and_empty_list_stay_distinct():
    assert encode_value({}) == {"mapValue": {"fields": {}}}
    assert encode_value([]) == {"arrayValue": {"values": []}}
    assert decode_value(encode_value({})) == {}
    assert decode_value(encode_value([])) == []


def test_nested_document_round_trip():
    fields = {
        "title": "Hello",
        "price": 12.5,
        "count": 3,
        "tags": ["a", {"deep": [1, None, True]}],
        "meta": {},
        "image": None,
    }
    assert decode_document(encode_document(fields)) == fields


def test_int64_bounds():
    assert encode_value(INT64_MAX) == {"integerValue": str(INT64_MAX)}
    assert encode_value(INT64_MIN) == {"integerValue": str(INT64_MIN)}
    assert decode_value({"integerValue": str(INT64_MAX)}) == INT64_MAX


def test_int_outside_int64_becomes_double():
    encoded = encode_value(INT64_MAX + 1)
    assert "doubleValue" in encoded
    assert encoded["doubleValue"] == float(INT64_MAX + 1)


def test_non_finite_doubles():
    assert encode_value(math.inf) == {"doubleValue": "Infinity"}
    assert encode_value(-math.inf) == {"doubleValue": "-Infinity"}
    assert math.isnan(decode_value(encode_value(math.nan)))


def test_malformed_wire_values_decode_to_none():
    assert decode_value({"integerValue": "not-a-number"}) is None
    assert decode_value({"booleanValue": "yes"}) is None
    assert decode_value({"unknownValue": 1}) is None
    assert decode_value({"stringValue": "a", "integerValue": "1"}) is None
    assert decode_value("plain") is None
    assert decode_value({"arrayValue": {"values": "nope"}}) is None


def test_decode_other_wire_types():
    assert decode_value({"timestampValue": "2024-01-01T00:00:00Z"}) == "2024-01-01T00:00:00Z"
    assert decode_value({"geoPointValue": {"latitude": 1, "longitude": 2}}) == {"latitude": 1.0, "longitude": 2.0}
    assert decode_value({"arrayValue": {}}) == []
    assert decode_value({"mapValue": {}}) == {}


def test_decode_document_tolerates_missing_fields():
    assert decode_document({"name": "x"}) == {}
    assert decode_document(None) == {}


def test_normalize_value_coerces_foreign_types():
    when = datetime(2024, 5, 1, 12, 30)
    assert normalize_value(when) == "2024-05-01T12:30:00"
    assert normalize_value(Decimal("2.5")) == 2.5
    assert normalize_value((1, 2)) == [1, 2]
    assert normalize_value({1: "a"}) == {"1": "a"}
    assert normalize_value(b"abc") == "abc"


def test_encode_value_normalizes_unknown_types():
    assert encode_value(Decimal("1.25")) == {"doubleValue": 1.25}
    assert encode_value((1,)) == {"arrayValue": {"values": [{"integerValue": "1"}]}}
