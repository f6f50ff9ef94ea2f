"""
Parameter normalization.

``normalize_params`` turns a request mapping (``{"@id": "42", "Nombre": "x"}``)
into a ``ParameterSet``: keys lose the ``@`` sigil and compare
case-insensitively, values are typed by ``param_type.infer_value``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any

from dbfacade.core.errors import InvalidParameterName
from dbfacade.core.param_type import NULL, ParameterValue, infer_value

_log = logging.getLogger(__name__)

SIGIL = "@"

_NAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


def strip_sigil(name: str) -> str:
    return name[1:] if name.startswith(SIGIL) else name


def canonical_name(name: str) -> str:
    """Sigil-less, case-folded lookup key."""
    return strip_sigil(name.strip()).lower()


class ParameterSet(MutableMapping[str, ParameterValue]):
    """Case- and sigil-insensitive mapping of parameter name → ParameterValue.

    The first spelling seen for a name is kept for display/binding
    (``names()``); lookups accept any spelling.
    """

    __slots__ = ("_data",)

    def __init__(self, items: Mapping[str, ParameterValue] | None = None) -> None:
        self._data: dict[str, tuple[str, ParameterValue]] = {}
        if items:
            for k, v in items.items():
                self[k] = v

    def __getitem__(self, key: str) -> ParameterValue:
        return self._data[canonical_name(key)][1]

    def __setitem__(self, key: str, value: ParameterValue) -> None:
        ck = canonical_name(key)
        existing = self._data.get(ck)
        display = existing[0] if existing else strip_sigil(key.strip())
        self._data[ck] = (display, value)

    def __delitem__(self, key: str) -> None:
        del self._data[canonical_name(key)]

    def __iter__(self) -> Iterator[str]:
        return (display for display, _ in self._data.values())

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and canonical_name(key) in self._data

    def __repr__(self) -> str:
        return f"ParameterSet({dict(self.items())!r})"

    def get_value(self, key: str) -> ParameterValue:
        """Value for *key*, or the null value when absent."""
        found = self._data.get(canonical_name(key))
        return found[1] if found else NULL

    def copy(self) -> ParameterSet:
        out = ParameterSet()
        out._data = dict(self._data)
        return out

    def raw(self) -> dict[str, Any]:
        """Plain ``{name: python value}`` dict (null kinds → None)."""
        return {name: (None if v.is_null else v.value) for name, v in self.items()}


def normalize_params(params: Mapping[str, Any] | None) -> ParameterSet:
    """Build a ParameterSet from a JSON-derived mapping.

    Raises InvalidParameterName for keys that are not ``[A-Za-z0-9_]+`` once
    the sigil is stripped.
    """
    out = ParameterSet()
    if not params:
        return out

    for key, raw in params.items():
        if not isinstance(key, str):
            raise InvalidParameterName(str(key))
        name = strip_sigil(key.strip())
        if not _NAME_RE.match(name):
            raise InvalidParameterName(key)
        if name in out:
            _log.debug("Parameter %s given more than once; last value wins", name)
        out[name] = infer_value(raw)
    return out
