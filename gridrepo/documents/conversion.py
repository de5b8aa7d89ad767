"""
gridrepo Value Conversion — schemaless BSON scalars ↔ record field values.

A metadata document can hold any BSON value. Record fields only ever receive
one of the variants of ScalarKind; ``convert`` is the single coercion table
used when reading metadata back onto a record:

    str                         → str
    int / Int64 / float         → int     (floats rounded half-to-even)
    bool                        → bool
    datetime / valid DatetimeMS → datetime
    Decimal128 / Decimal        → Decimal
    ObjectId                    → str
    anything else               → None

Floating-point metadata collapses to int. Stored documents written by other
clients of the same buckets rely on that behaviour, so it is kept as-is.
"""

from __future__ import annotations

import enum
import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from bson import Decimal128, ObjectId
from bson.datetime_ms import DatetimeMS
from bson.errors import InvalidBSON

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class ScalarKind(str, enum.Enum):
    """The scalar variants a record's extra field can hold."""
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    DECIMAL = "decimal"
    OBJECT_ID = "object_id"
    UNSUPPORTED = "unsupported"


# Python type → kind, for field annotations. bool precedes int on purpose:
# bool is a subclass of int.
_TYPE_KINDS = (
    (str, ScalarKind.STRING),
    (bool, ScalarKind.BOOLEAN),
    (int, ScalarKind.INTEGER),
    (float, ScalarKind.INTEGER),
    (datetime, ScalarKind.DATETIME),
    (DatetimeMS, ScalarKind.DATETIME),
    (Decimal, ScalarKind.DECIMAL),
    (Decimal128, ScalarKind.DECIMAL),
    (ObjectId, ScalarKind.OBJECT_ID),
)


def kind_of_type(tp: Any) -> ScalarKind:
    """Classify a Python type (e.g. a field annotation)."""
    if isinstance(tp, type):
        for candidate, kind in _TYPE_KINDS:
            if issubclass(tp, candidate):
                return kind
    return ScalarKind.UNSUPPORTED


def classify(value: Any) -> ScalarKind:
    """Classify a stored metadata value."""
    if value is None:
        return ScalarKind.UNSUPPORTED
    return kind_of_type(type(value))


def _to_int64(value: Any) -> Optional[int]:
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = round(value)
    value = int(value)
    if value < INT64_MIN or value > INT64_MAX:
        return None
    return value


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    try:
        return value.as_datetime()
    except (InvalidBSON, OverflowError, ValueError):
        return None


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return value


def convert(value: Any) -> Any:
    """
    Convert a schemaless metadata value to the native value for a record field.

    Returns None for variants outside the table, and for values that cannot be
    represented (non-finite floats, out-of-range dates).
    """
    kind = classify(value)

    if kind is ScalarKind.STRING:
        return str(value)
    if kind is ScalarKind.INTEGER:
        return _to_int64(value)
    if kind is ScalarKind.BOOLEAN:
        return bool(value)
    if kind is ScalarKind.DATETIME:
        return _to_datetime(value)
    if kind is ScalarKind.DECIMAL:
        return _to_decimal(value)
    if kind is ScalarKind.OBJECT_ID:
        return str(value)
    return None


def to_store_value(value: Any) -> Any:
    """
    Prepare a record field value for the metadata document.

    Values pass through unchanged except Decimal, which BSON cannot encode
    without wrapping it in Decimal128.
    """
    if isinstance(value, Decimal):
        return Decimal128(value)
    return value
