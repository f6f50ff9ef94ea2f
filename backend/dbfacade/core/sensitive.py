"""
Sensitive-field hashing.

Callers name fields (``password``, ``@clave``...) that must never reach the
database in clear text. A field is hashed where it appears as a top-level
parameter, or, failing that, inside any of the well-known payload parameters
that carry a JSON object (master record) or a JSON array of objects (detail
rows). Values already carrying the bcrypt prefix are left untouched, so
running the hasher twice is a no-op.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from dbfacade.core.errors import MalformedJsonPayload
from dbfacade.core.param_type import ParamKind, ParameterValue, dump_json
from dbfacade.core.params import ParameterSet, strip_sigil
from dbfacade.core.security import hash_secret, is_hashed

_log = logging.getLogger(__name__)

# Master/detail payload parameters across engines:
# PostgreSQL (p_maestro, p_detalles), SQL Server (maestro_json, detalles_json),
# MySQL (p_maestro_json, p_detalles_json).
PAYLOAD_PARAMETERS: tuple[str, ...] = (
    "p_maestro",
    "p_detalles",
    "maestro_json",
    "detalles_json",
    "p_maestro_json",
    "p_detalles_json",
)


def _field_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        # Nested structures are not secrets we know how to hash.
        return None
    return dump_json(value)


def _hash_in_object(obj: dict[str, Any], field: str, rounds: int | None = None) -> bool:
    """Hash ``obj[field]`` in place. True when something changed."""
    if field not in obj:
        return False
    text = _field_text(obj[field])
    if text is None or not text.strip() or is_hashed(text):
        return False
    obj[field] = hash_secret(text, rounds)
    return True


def _load_payload(name: str, text: str) -> dict[str, Any] | list[dict[str, Any]] | None:
    """Parse a payload parameter. None when it is not JSON-shaped at all."""
    stripped = text.lstrip()
    if not stripped.startswith(("{", "[")):
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise MalformedJsonPayload(name, str(e)) from e
    if isinstance(data, list) and not all(isinstance(item, dict) for item in data):
        raise MalformedJsonPayload(name, "array elements must be objects")
    if not isinstance(data, (dict, list)):
        return None
    return data


def _hash_in_payloads(params: ParameterSet, field: str, rounds: int | None = None) -> None:
    for name in PAYLOAD_PARAMETERS:
        if name not in params:
            continue
        current = params[name]
        text = current.as_text()
        if text is None or not text.strip():
            continue
        try:
            data = _load_payload(name, text)
        except MalformedJsonPayload as e:
            _log.debug("Skipping payload: %s", e)
            continue
        if data is None:
            continue

        if isinstance(data, dict):
            modified = _hash_in_object(data, field, rounds)
        else:
            # No short-circuit: every element gets its own hash.
            modified = False
            for item in data:
                modified = _hash_in_object(item, field, rounds) or modified

        if modified:
            params[name] = ParameterValue(current.kind, dump_json(data))
            _log.debug("Hashed field %s inside payload %s", field, name)


def apply_hashing(
    params: ParameterSet, fields: Iterable[str] | None, *, rounds: int | None = None
) -> ParameterSet:
    """Return a copy of *params* with every designated field hashed.

    - Top-level parameter named like the field: its string form is hashed
      (null is left alone).
    - Otherwise the field is looked up inside each payload parameter.
    - Malformed payload JSON skips that payload only.
    - rounds: bcrypt cost; the process-wide setting when omitted.
    """
    out = params.copy()
    if not fields:
        return out

    for raw_field in fields:
        if not raw_field or not raw_field.strip():
            continue
        field = strip_sigil(raw_field.strip())

        if field in out:
            text = out[field].as_text()
            if text is not None and text.strip() and not is_hashed(text):
                out[field] = ParameterValue(ParamKind.TEXT, hash_secret(text, rounds))
            continue

        _hash_in_payloads(out, field, rounds)
    return out
