"""
PostgreSQL dialect (psycopg 3).

- functions: ``SELECT * FROM "schema"."fn"(%s, ...)``
- procedures: ``CALL "schema"."proc"(%s, ...)``; rows are read back only when
  the procedure declares INOUT parameters.
- IN and INOUT parameters are passed positionally in catalog order; OUT
  parameters are not passed.
- JSON parameters are sent as ``json``/``jsonb`` via psycopg's wrappers, with
  the text forwarded unchanged (the server validates it).
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg
from psycopg import errors as pg_errors
from psycopg.types.json import Json, Jsonb

from dbfacade.core.errors import EngineExecutionError
from dbfacade.core.param_type import ParameterValue
from dbfacade.core.params import ParameterSet
from dbfacade.engines.dialects.base import EngineDialect, parse_connection_url
from dbfacade.models import (
    ParameterDirectionEnum,
    ProductTypeEnum,
    RoutineDescriptor,
    RoutineKindEnum,
    RoutineParameter,
    TabularResult,
)

_log = logging.getLogger(__name__)


def _raw_json(text: str) -> str:
    return text


class PostgresDialect(EngineDialect):
    product_type = ProductTypeEnum.POSTGRES
    default_schema = "public"

    text_types = frozenset(
        {"text", "character varying", "varchar", "character", "char", "bpchar", "name", "citext"}
    )
    int_types = frozenset({"integer", "int", "int4", "smallint", "int2"})
    bigint_types = frozenset({"bigint", "int8"})
    decimal_types = frozenset({"numeric", "decimal", "money"})
    float_types = frozenset({"real", "double precision", "float4", "float8"})
    bool_types = frozenset({"boolean", "bool"})
    uuid_types = frozenset({"uuid"})
    json_types = frozenset({"json", "jsonb"})

    ROUTINE_PINNED_SQL = (
        "SELECT routine_schema, routine_name, routine_type, specific_name "
        "FROM information_schema.routines "
        "WHERE routine_name = %(name)s AND routine_schema = %(schema)s "
        "ORDER BY specific_name LIMIT 1"
    )
    ROUTINE_SEARCH_SQL = (
        "SELECT routine_schema, routine_name, routine_type, specific_name "
        "FROM information_schema.routines "
        "WHERE routine_name = %(name)s "
        "ORDER BY CASE WHEN routine_schema = %(hint)s THEN 0 "
        "WHEN routine_schema = %(default)s THEN 1 ELSE 2 END, routine_schema, specific_name "
        "LIMIT 1"
    )
    PARAMETERS_SQL = (
        "SELECT parameter_name, parameter_mode, data_type, character_maximum_length, "
        "numeric_precision, numeric_scale, ordinal_position "
        "FROM information_schema.parameters "
        "WHERE specific_schema = %(schema)s AND specific_name = %(specific)s "
        "ORDER BY ordinal_position"
    )
    DIAGNOSTICS_SQL = (
        "SELECT current_database() AS database, version() AS server_version, "
        "inet_server_addr()::text AS host, inet_server_port() AS port, "
        "pg_postmaster_start_time() AS server_start_time, "
        "current_user AS login, pg_backend_pid() AS session_id"
    )

    driver_errors = (psycopg.Error,)

    def connect(self, url, *, connect_timeout=None, statement_timeout=None):
        parts = parse_connection_url(url)
        kwargs: dict[str, Any] = {
            "host": parts["host"],
            "port": int(parts["port"] or 5432),
            "dbname": parts["database"],
            "user": parts["username"],
            "password": parts["password"],
            "autocommit": True,
        }
        if connect_timeout:
            kwargs["connect_timeout"] = int(connect_timeout)
        if statement_timeout is not None and statement_timeout > 0:
            kwargs["options"] = f"-c statement_timeout={int(statement_timeout * 1000)}"
        return psycopg.connect(**kwargs)

    def bind_parameter(self, param: RoutineParameter, value: ParameterValue) -> Any:
        if value.is_null:
            return None
        if self.is_json(param, value):
            text = value.as_text()
            if param.data_type == "json":
                return Json(text, dumps=_raw_json)
            return Jsonb(text, dumps=_raw_json)
        return self.coerce_value(param, value)

    def invoke(
        self, conn: Any, routine: RoutineDescriptor, params: ParameterSet
    ) -> TabularResult:
        inputs = routine.input_parameters
        args = [self.bind_parameter(p, params.get_value(p.name)) for p in inputs]
        placeholders = ", ".join(["%s"] * len(args))
        target = self.qualified(routine)

        cur = conn.cursor()
        try:
            if routine.kind is RoutineKindEnum.FUNCTION:
                sql = f"SELECT * FROM {target}({placeholders})"
                _log.debug("Routine SQL: %s", sql)
                cur.execute(sql, args or None)
                return TabularResult.from_cursor(cur)

            sql = f"CALL {target}({placeholders})"
            _log.debug("Routine SQL: %s", sql)
            cur.execute(sql, args or None)
            has_inout = any(p.direction is ParameterDirectionEnum.INOUT for p in inputs)
            if has_inout:
                return TabularResult.from_cursor(cur)
            return TabularResult()
        finally:
            cur.close()

    def validate_syntax(self, conn, sql, params):
        text, bound = self.bind_query(sql, params)
        cur = conn.cursor()
        try:
            cur.execute(f"EXPLAIN {text}", bound)
        except psycopg.Error as e:
            return False, self.translate_error(e).engine_message
        finally:
            cur.close()
        return True, None

    def translate_error(self, exc: BaseException) -> EngineExecutionError:
        engine_message = str(exc).strip()
        code = getattr(exc, "sqlstate", None)
        if isinstance(exc, pg_errors.QueryCanceled):
            message = f"Statement timeout or cancellation: {engine_message}"
        elif isinstance(exc, psycopg.OperationalError):
            message = f"Connection failed: {engine_message}"
        else:
            message = f"SQL execution failed: {engine_message}"
        return EngineExecutionError(message, engine_message=engine_message, code=code)
