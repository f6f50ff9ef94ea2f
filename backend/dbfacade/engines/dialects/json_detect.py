"""
JSON-parameter heuristic shared by every dialect.

A routine parameter is bound as the engine's JSON type when any of these hold:

1. its declared type is one of the engine's JSON carrier types
   (``json``/``jsonb``, SQL Server ``nvarchar(max)``, MySQL ``json``/``longtext``);
2. its value is text that starts with ``{`` or ``[`` after trimming;
3. its name contains a conventional JSON-carrier word (``roles``,
   ``detalles``, ``details``, ``json``, ``data``) and its value is JSON-shaped.

(3) is implied by (2) today; it is kept as its own rule so the name list can be
tuned independently.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Any

from dbfacade.core.param_type import ParamKind, ParameterValue

JSON_NAME_HINTS: tuple[str, ...] = ("roles", "detalles", "details", "json", "data")


def looks_like_json(text: str) -> bool:
    return text.lstrip().startswith(("{", "["))


def _value_text(value: ParameterValue | Any) -> str | None:
    if isinstance(value, ParameterValue):
        if value.is_null:
            return None
        if value.kind in (ParamKind.TEXT, ParamKind.JSON):
            return str(value.value)
        return None
    return value if isinstance(value, str) else None


def is_json_parameter(
    declared_type: str | None,
    value: ParameterValue | Any,
    name: str | None,
    *,
    json_types: Collection[str] = ("json", "jsonb"),
    max_length: int | None = None,
    unbounded_types: Collection[str] = (),
) -> bool:
    """True when the parameter should be bound as JSON.

    - declared_type / max_length: catalog type; ``unbounded_types`` with
      ``max_length == -1`` (``nvarchar(max)``) counts as a JSON carrier.
    - value: ParameterValue or plain Python value.
    - name: declared parameter name (case-insensitive substring match).
    """
    dtype = (declared_type or "").strip().lower()
    if dtype in json_types:
        return True
    if dtype in unbounded_types and max_length == -1:
        return True

    if isinstance(value, ParameterValue) and value.kind is ParamKind.JSON:
        return True

    text = _value_text(value)
    if text is None or not text.strip():
        return False

    if looks_like_json(text):
        return True

    lname = (name or "").lower()
    if any(hint in lname for hint in JSON_NAME_HINTS):
        return looks_like_json(text)
    return False
