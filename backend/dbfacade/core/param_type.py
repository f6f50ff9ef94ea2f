"""
Parameter type inference.

Turns a JSON-decoded scalar into the most specific ``ParameterValue`` it parses
as. Strings try, in order: datetime, int32, int64, float, boolean, UUID, and
otherwise stay text. Nothing here raises; a failed candidate falls through to
the next one.
"""

from __future__ import annotations

import json
import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1

_INT_RE = re.compile(r"^\s*[+-]?\d+\s*$")
_FLOAT_RE = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*$")
# Only strings carrying a date separator are tried as dates, so "20240115" stays an int.
_DATE_HINT_RE = re.compile(r"^\s*\d{1,4}[-/]\d{1,2}[-/]\d{1,4}")
_EXTRA_DATE_FORMATS = ("%Y/%m/%d", "%Y/%m/%d %H:%M:%S", "%d/%m/%Y", "%d/%m/%Y %H:%M:%S")


class ParamKind(str, Enum):
    NULL = "null"
    BOOLEAN = "boolean"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT = "float"
    DECIMAL = "decimal"
    DATETIME = "datetime"
    DATE = "date"
    UUID = "uuid"
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class ParameterValue:
    """Tagged scalar. ``JSON`` values hold their serialized text.

    ``source`` keeps the caller's string when a JSON string was promoted to
    another kind, so ``"007"`` still reads back as ``"007"``.
    """

    kind: ParamKind
    value: Any = None
    source: str | None = field(default=None, compare=False, repr=False)

    @property
    def is_null(self) -> bool:
        return self.kind is ParamKind.NULL or self.value is None

    def as_text(self) -> str | None:
        """String form used for hashing and for text-typed parameters."""
        if self.is_null:
            return None
        if self.source is not None:
            return self.source
        if self.kind is ParamKind.BOOLEAN:
            return "True" if self.value else "False"
        if self.kind is ParamKind.DATETIME:
            return self.value.isoformat(sep=" ")
        return str(self.value)


NULL = ParameterValue(ParamKind.NULL, None)


def dump_json(value: Any) -> str:
    """Compact JSON text, non-ASCII kept as-is."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


# ---------------------------------------------------------------------------
# String candidates (return None when the candidate does not apply)
# ---------------------------------------------------------------------------


def _try_datetime(s: str) -> datetime | None:
    if not _DATE_HINT_RE.match(s):
        return None
    text = s.strip()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _EXTRA_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _try_int(s: str) -> ParameterValue | None:
    if not _INT_RE.match(s):
        return None
    n = int(s)
    if INT32_MIN <= n <= INT32_MAX:
        return ParameterValue(ParamKind.INT32, n, s)
    if INT64_MIN <= n <= INT64_MAX:
        return ParameterValue(ParamKind.INT64, n, s)
    return None


def _try_float(s: str) -> float | None:
    if not _FLOAT_RE.match(s):
        return None
    x = float(s)
    if math.isinf(x):
        return None
    return x


def _try_bool(s: str) -> bool | None:
    t = s.strip().lower()
    if t == "true":
        return True
    if t == "false":
        return False
    return None


def _try_uuid(s: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(s.strip())
    except ValueError:
        return None


def infer_string(s: str) -> ParameterValue:
    """Infer a type for a JSON string value."""
    if not s or not s.strip():
        return ParameterValue(ParamKind.TEXT, s)

    dt = _try_datetime(s)
    if dt is not None:
        return ParameterValue(ParamKind.DATETIME, dt, s)

    as_int = _try_int(s)
    if as_int is not None:
        return as_int

    as_float = _try_float(s)
    if as_float is not None:
        return ParameterValue(ParamKind.FLOAT, as_float, s)

    as_bool = _try_bool(s)
    if as_bool is not None:
        return ParameterValue(ParamKind.BOOLEAN, as_bool, s)

    as_uuid = _try_uuid(s)
    if as_uuid is not None:
        return ParameterValue(ParamKind.UUID, as_uuid, s)

    return ParameterValue(ParamKind.TEXT, s)


def infer_number(n: int | float) -> ParameterValue:
    """int32 → int64 → float → decimal, first lossless one wins."""
    if isinstance(n, float):
        return ParameterValue(ParamKind.FLOAT, n)
    if INT32_MIN <= n <= INT32_MAX:
        return ParameterValue(ParamKind.INT32, n)
    if INT64_MIN <= n <= INT64_MAX:
        return ParameterValue(ParamKind.INT64, n)
    as_float = float(n)
    if int(as_float) == n:
        return ParameterValue(ParamKind.FLOAT, as_float)
    return ParameterValue(ParamKind.DECIMAL, Decimal(n))


def infer_value(raw: Any) -> ParameterValue:
    """Infer a ``ParameterValue`` from a JSON-decoded value."""
    if raw is None:
        return NULL
    if isinstance(raw, ParameterValue):
        return raw
    if isinstance(raw, bool):
        return ParameterValue(ParamKind.BOOLEAN, raw)
    if isinstance(raw, (int, float)):
        return infer_number(raw)
    if isinstance(raw, str):
        return infer_string(raw)
    if isinstance(raw, (list, dict)):
        return ParameterValue(ParamKind.JSON, dump_json(raw))
    return wrap_typed(raw)


def wrap_typed(value: Any) -> ParameterValue:
    """Tag an already-typed Python value without re-parsing it (legacy path)."""
    if value is None:
        return NULL
    if isinstance(value, datetime):
        return ParameterValue(ParamKind.DATETIME, value)
    if isinstance(value, date):
        return ParameterValue(ParamKind.DATE, value)
    if isinstance(value, Decimal):
        return ParameterValue(ParamKind.DECIMAL, value)
    if isinstance(value, uuid.UUID):
        return ParameterValue(ParamKind.UUID, value)
    if isinstance(value, time):
        return ParameterValue(ParamKind.TEXT, value.isoformat())
    if isinstance(value, (bytes, bytearray)):
        return ParameterValue(ParamKind.TEXT, bytes(value).decode("utf-8", errors="replace"))
    return ParameterValue(ParamKind.TEXT, str(value))
