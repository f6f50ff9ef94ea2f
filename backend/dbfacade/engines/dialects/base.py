"""
Engine dialect interface.

One ``EngineDialect`` per engine bundles everything that differs between SQL
Server, PostgreSQL and MySQL/MariaDB:

- ``connect``            open a fresh driver connection from a URL;
- ``resolve_routine``    catalog lookup → RoutineDescriptor;
- ``bind_parameter``     (declared parameter, value) → native driver value;
- ``invoke``             run a resolved routine → TabularResult;
- ``bind_query`` / ``execute_query`` for ad-hoc parametrized SQL;
- ``translate_error``    driver exception → EngineExecutionError.

The catalog SQL lives on each subclass as class constants. Every statement
uses ``pyformat`` placeholders, which all three drivers accept.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

from sqlalchemy.engine import make_url

from dbfacade.core.errors import EngineExecutionError, RoutineNotFound
from dbfacade.core.param_type import ParamKind, ParameterValue
from dbfacade.core.params import ParameterSet, strip_sigil
from dbfacade.engines.dialects.json_detect import is_json_parameter
from dbfacade.engines.sql.placeholders import rewrite_placeholders
from dbfacade.models import (
    ParameterDirectionEnum,
    ProductTypeEnum,
    RoutineDescriptor,
    RoutineKindEnum,
    RoutineParameter,
    TabularResult,
)

_log = logging.getLogger(__name__)

# Column name of the synthesized function-call select.
FUNCTION_RESULT_COLUMN = "Resultado"


def split_qualified_name(name: str) -> tuple[str | None, str]:
    """``"ventas.fn"`` → ``("ventas", "fn")``; ``"fn"`` → ``(None, "fn")``."""
    text = (name or "").strip()
    if "." in text:
        schema, routine = text.split(".", 1)
        schema = schema.strip().strip('[]"`')
        routine = routine.strip().strip('[]"`')
        return (schema or None), routine
    return None, text.strip('[]"`')


def parse_connection_url(url: str) -> dict[str, Any]:
    """Split a SQLAlchemy-style URL into host/port/database/username/password."""
    u = make_url(url)
    return {
        "host": u.host,
        "port": u.port,
        "database": u.database,
        "username": u.username,
        "password": u.password if u.password is not None else "",
        "query": dict(u.query),
    }


# ---------------------------------------------------------------------------
# Value coercion helpers (raise ValueError on failure)
# ---------------------------------------------------------------------------


def _coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Expected integer, got float: {value}")
        return int(value)
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ValueError(f"Expected integer, got: {value}")
        return int(value)
    s = str(value).strip()
    try:
        return int(s)
    except ValueError:
        x = float(s)
        if not x.is_integer():
            raise ValueError(f"Expected integer, got: {s!r}") from None
        return int(x)


def _coerce_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid decimal: {value!r}") from e


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"Expected boolean, got number: {value}")
    s = str(value).strip().lower()
    if s in ("true", "1", "yes"):
        return True
    if s in ("false", "0", "no"):
        return False
    raise ValueError(f"Expected boolean (true/false, 1/0, yes/no), got: {value!r}")


def _coerce_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value).strip())


def is_midnight(value: Any) -> bool:
    return isinstance(value, datetime) and value.time() == time(0, 0) and value.tzinfo is None


class EngineDialect(ABC):
    """Per-engine resolve / bind / invoke."""

    product_type: ClassVar[ProductTypeEnum]
    default_schema: ClassVar[str | None] = None

    # Declared-type families, lower-cased catalog names.
    text_types: ClassVar[frozenset[str]] = frozenset()
    int_types: ClassVar[frozenset[str]] = frozenset()
    bigint_types: ClassVar[frozenset[str]] = frozenset()
    decimal_types: ClassVar[frozenset[str]] = frozenset()
    float_types: ClassVar[frozenset[str]] = frozenset()
    bool_types: ClassVar[frozenset[str]] = frozenset()
    date_types: ClassVar[frozenset[str]] = frozenset({"date"})
    uuid_types: ClassVar[frozenset[str]] = frozenset()
    json_types: ClassVar[frozenset[str]] = frozenset({"json"})
    unbounded_text_types: ClassVar[frozenset[str]] = frozenset()

    # Catalog queries (pyformat); rows are
    # routine:    (schema, name, routine_type, specific_name)
    # parameters: (name, mode, data_type, max_length, precision, scale, ordinal)
    ROUTINE_PINNED_SQL: ClassVar[str]
    ROUTINE_SEARCH_SQL: ClassVar[str]
    PARAMETERS_SQL: ClassVar[str]
    DIAGNOSTICS_SQL: ClassVar[str]

    # Lexical rules of ad-hoc SQL (see engines.sql.placeholders).
    backslash_escapes: ClassVar[bool] = False
    bracket_identifiers: ClassVar[bool] = False

    # Driver exception base class(es) handled by translate_error.
    driver_errors: ClassVar[tuple[type[BaseException], ...]] = ()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @abstractmethod
    def connect(
        self,
        url: str,
        *,
        connect_timeout: int | None = None,
        statement_timeout: float | None = None,
    ) -> Any:
        """Open a new autocommit connection."""

    # ------------------------------------------------------------------
    # Routine resolver
    # ------------------------------------------------------------------

    def resolve_routine(
        self, conn: Any, name: str, schema_hint: str | None = None
    ) -> RoutineDescriptor:
        """Look up kind and parameters of *name*; raise RoutineNotFound when absent.

        ``schema.routine`` pins the schema. Otherwise the search order is
        *schema_hint*, then the engine default schema, then any schema
        (lexicographic).
        """
        schema, routine = split_qualified_name(name)
        if not routine:
            raise RoutineNotFound(name)

        cur = conn.cursor()
        try:
            if schema:
                cur.execute(self.ROUTINE_PINNED_SQL, {"name": routine, "schema": schema})
            else:
                cur.execute(
                    self.ROUTINE_SEARCH_SQL,
                    {"name": routine, "hint": schema_hint, "default": self.default_schema},
                )
            row = cur.fetchone()
            if row is None or row[0] is None:
                raise RoutineNotFound(name)
            found_schema, found_name, routine_type, specific_name = row[0], row[1], row[2], row[3]

            cur.execute(
                self.PARAMETERS_SQL,
                {"schema": found_schema, "specific": specific_name or found_name},
            )
            param_rows = cur.fetchall()
        finally:
            cur.close()

        kind = (
            RoutineKindEnum.FUNCTION
            if str(routine_type or "").strip().upper() == "FUNCTION"
            else RoutineKindEnum.PROCEDURE
        )
        parameters = tuple(self._parameter_from_row(r) for r in param_rows)
        _log.debug(
            "Resolved %s as %s %s.%s with %d parameter(s)",
            name,
            kind.value,
            found_schema,
            found_name,
            len(parameters),
        )
        return RoutineDescriptor(
            schema=found_schema, name=found_name or routine, kind=kind, parameters=parameters
        )

    def _parameter_from_row(self, row: Any) -> RoutineParameter:
        name, mode, data_type, max_length, precision, scale, ordinal = row[:7]
        return RoutineParameter(
            name=strip_sigil(name or ""),
            direction=ParameterDirectionEnum.from_catalog(mode),
            data_type=(data_type or "text").strip().lower(),
            max_length=int(max_length) if max_length is not None else None,
            precision=int(precision) if precision is not None else None,
            scale=int(scale) if scale is not None else None,
            ordinal=int(ordinal or 0),
        )

    # ------------------------------------------------------------------
    # Binder
    # ------------------------------------------------------------------

    def is_json(self, param: RoutineParameter, value: ParameterValue) -> bool:
        return is_json_parameter(
            param.data_type,
            value,
            param.name,
            json_types=self.json_types,
            max_length=param.max_length,
            unbounded_types=self.unbounded_text_types,
        )

    def coerce_value(self, param: RoutineParameter, value: ParameterValue) -> Any:
        """Apply the declared-type rules shared by every engine.

        Returns a plain Python value (None for null/absent). JSON detection
        is left to ``bind_parameter``.
        """
        if value.is_null:
            return None
        dtype = param.data_type
        raw = value.value
        try:
            if dtype in self.text_types:
                return value.as_text()
            if dtype in self.date_types and is_midnight(raw):
                return raw.date()
            if dtype in self.int_types or dtype in self.bigint_types:
                return _coerce_int(raw)
            if dtype in self.decimal_types:
                return _coerce_decimal(raw)
            if dtype in self.float_types:
                return float(raw)
            if dtype in self.bool_types:
                return _coerce_bool(raw)
            if dtype in self.uuid_types:
                return _coerce_uuid(raw)
        except (TypeError, ValueError) as e:
            raise EngineExecutionError(
                f"Cannot bind parameter '{param.name}' as {dtype}: {e}"
            ) from e
        if value.kind is ParamKind.JSON:
            return str(raw)
        return raw

    @abstractmethod
    def bind_parameter(self, param: RoutineParameter, value: ParameterValue) -> Any:
        """Native driver value for one declared parameter."""

    def adhoc_value(self, value: ParameterValue) -> Any:
        """Value for an ad-hoc query parameter (no declared type available)."""
        if value.is_null:
            return None
        if is_midnight(value.value):
            return value.value.date()
        return value.value

    def bind_query(self, sql: str, params: ParameterSet) -> tuple[str, dict[str, Any] | None]:
        """Rewrite ``@name`` placeholders and build the driver params dict."""
        lookup = {name.lower(): value for name, value in params.items()}
        rewritten, used = rewrite_placeholders(
            sql,
            lookup,
            backslash_escapes=self.backslash_escapes,
            bracket_identifiers=self.bracket_identifiers,
        )
        if not used:
            return sql, None
        return rewritten, {name: self.adhoc_value(lookup[name]) for name in used}

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute_query(
        self,
        conn: Any,
        sql: str,
        params: ParameterSet,
        *,
        max_rows: int | None = None,
    ) -> TabularResult:
        text, bound = self.bind_query(sql, params)
        _log.debug("Ad-hoc SQL: %s", text)
        cur = conn.cursor()
        try:
            if bound is None:
                cur.execute(text)
            else:
                cur.execute(text, bound)
            return TabularResult.from_cursor(cur, max_rows)
        finally:
            cur.close()

    @abstractmethod
    def invoke(
        self, conn: Any, routine: RoutineDescriptor, params: ParameterSet
    ) -> TabularResult:
        """Run a resolved routine with the given parameters."""

    @abstractmethod
    def validate_syntax(
        self, conn: Any, sql: str, params: ParameterSet
    ) -> tuple[bool, str | None]:
        """Ask the engine whether *sql* compiles, without running it."""

    def diagnostics(self, conn: Any) -> dict[str, Any]:
        cur = conn.cursor()
        try:
            cur.execute(self.DIAGNOSTICS_SQL)
            rows = TabularResult.from_cursor(cur).to_dicts()
        finally:
            cur.close()
        out = rows[0] if rows else {}
        out["provider"] = self.product_type.value
        return out

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    @abstractmethod
    def translate_error(self, exc: BaseException) -> EngineExecutionError:
        """Wrap a driver error, keeping the engine's own message."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def quote_ident(name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def qualified(self, routine: RoutineDescriptor) -> str:
        if routine.schema:
            return f"{self.quote_ident(routine.schema)}.{self.quote_ident(routine.name)}"
        return self.quote_ident(routine.name)

