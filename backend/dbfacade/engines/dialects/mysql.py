"""
MySQL / MariaDB dialect (pymysql).

Procedures: ``CALL `schema`.`proc`(%(a)s, @__out_b, ...)`` with named
placeholders. OUT and INOUT parameters go through session variables
(``@__out_<name>``): INOUT variables are seeded with ``SET`` before the call
and every output variable is read back with one ``SELECT`` afterwards, then
merged into row 0 of the result.

Functions cannot be CALLed on MySQL, so they are selected instead:
``SELECT `schema`.`fn`(%(a)s, ...) AS Resultado``.

JSON values are bound as plain text: MySQL converts a string argument to a
JSON parameter implicitly and MariaDB stores JSON as LONGTEXT, so the same
statement runs on both servers. The session statement timeout is the one place
they differ (``max_execution_time`` in ms vs ``max_statement_time`` in s).
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import pymysql

from dbfacade.core.errors import EngineExecutionError
from dbfacade.core.param_type import ParameterValue
from dbfacade.core.params import ParameterSet
from dbfacade.engines.dialects.base import (
    FUNCTION_RESULT_COLUMN,
    EngineDialect,
    parse_connection_url,
)
from dbfacade.models import (
    ParameterDirectionEnum,
    ProductTypeEnum,
    RoutineDescriptor,
    RoutineKindEnum,
    RoutineParameter,
    TabularResult,
)

_log = logging.getLogger(__name__)

OUT_VAR_PREFIX = "@__out_"
# ER_QUERY_TIMEOUT (MySQL max_execution_time), ER_STATEMENT_TIMEOUT (MariaDB)
_QUERY_TIMEOUT_CODES = {3024, 1969}


def is_mariadb(conn: Any) -> bool:
    """True when the server behind a pymysql connection is MariaDB."""
    return "mariadb" in str(conn.get_server_info() or "").lower()


def session_timeout_sql(mariadb: bool, seconds: float) -> tuple[str, tuple[Any, ...]]:
    if mariadb:
        return "SET SESSION max_statement_time = %s", (float(seconds),)
    return "SET SESSION max_execution_time = %s", (int(seconds * 1000),)


class MysqlDialect(EngineDialect):
    product_type = ProductTypeEnum.MYSQL
    default_schema = None  # DATABASE(), resolved in SQL

    text_types = frozenset(
        {"varchar", "char", "text", "tinytext", "mediumtext", "longtext", "enum", "set"}
    )
    int_types = frozenset({"int", "integer", "smallint", "tinyint", "mediumint"})
    bigint_types = frozenset({"bigint"})
    decimal_types = frozenset({"decimal", "numeric"})
    float_types = frozenset({"float", "double", "real"})
    bool_types = frozenset({"bit", "bool", "boolean"})
    json_types = frozenset({"json"})

    ROUTINE_PINNED_SQL = (
        "SELECT ROUTINE_SCHEMA, ROUTINE_NAME, ROUTINE_TYPE, SPECIFIC_NAME "
        "FROM information_schema.ROUTINES "
        "WHERE ROUTINE_NAME = %(name)s AND ROUTINE_SCHEMA = %(schema)s "
        "LIMIT 1"
    )
    ROUTINE_SEARCH_SQL = (
        "SELECT ROUTINE_SCHEMA, ROUTINE_NAME, ROUTINE_TYPE, SPECIFIC_NAME "
        "FROM information_schema.ROUTINES "
        "WHERE ROUTINE_NAME = %(name)s "
        "ORDER BY CASE WHEN ROUTINE_SCHEMA = %(hint)s THEN 0 "
        "WHEN ROUTINE_SCHEMA = DATABASE() THEN 1 ELSE 2 END, ROUTINE_SCHEMA "
        "LIMIT 1"
    )
    # ORDINAL_POSITION 0 is a function's return value.
    PARAMETERS_SQL = (
        "SELECT PARAMETER_NAME, PARAMETER_MODE, DATA_TYPE, CHARACTER_MAXIMUM_LENGTH, "
        "NUMERIC_PRECISION, NUMERIC_SCALE, ORDINAL_POSITION "
        "FROM information_schema.PARAMETERS "
        "WHERE SPECIFIC_SCHEMA = %(schema)s AND SPECIFIC_NAME = %(specific)s "
        "AND ORDINAL_POSITION > 0 "
        "ORDER BY ORDINAL_POSITION"
    )
    DIAGNOSTICS_SQL = (
        "SELECT DATABASE() AS `database`, VERSION() AS server_version, "
        "@@hostname AS host, @@port AS port, "
        "DATE_SUB(NOW(), INTERVAL (SELECT VARIABLE_VALUE FROM performance_schema.global_status "
        "WHERE VARIABLE_NAME = 'Uptime') SECOND) AS server_start_time, "
        "CURRENT_USER() AS login, CONNECTION_ID() AS session_id"
    )

    backslash_escapes = True

    driver_errors = (pymysql.err.Error,)

    def connect(self, url, *, connect_timeout=None, statement_timeout=None):
        parts = parse_connection_url(url)
        kwargs: dict[str, Any] = {
            "host": parts["host"],
            "port": int(parts["port"] or 3306),
            "database": parts["database"],
            "user": parts["username"],
            "password": parts["password"],
            "charset": "utf8mb4",
            "autocommit": True,
        }
        if connect_timeout:
            kwargs["connect_timeout"] = int(connect_timeout)
        conn = pymysql.connect(**kwargs)
        if statement_timeout is not None and statement_timeout > 0:
            try:
                sql, args = session_timeout_sql(is_mariadb(conn), statement_timeout)
                cur = conn.cursor()
                try:
                    cur.execute(sql, args)
                finally:
                    cur.close()
            except BaseException:
                conn.close()
                raise
        return conn

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    def bind_parameter(self, param: RoutineParameter, value: ParameterValue) -> Any:
        if value.is_null:
            return None
        if self.is_json(param, value):
            return value.as_text()
        value_out = self.coerce_value(param, value)
        if isinstance(value_out, uuid.UUID):
            return str(value_out)
        return value_out

    @staticmethod
    def placeholder(param: RoutineParameter) -> str:
        return f"%({param.name})s"

    @staticmethod
    def out_var(param: RoutineParameter) -> str:
        return f"{OUT_VAR_PREFIX}{param.name}"

    def build_call(
        self, routine: RoutineDescriptor, params: ParameterSet
    ) -> tuple[list[tuple[str, dict[str, Any]]], str, dict[str, Any]]:
        """Return ``(setup_statements, call_sql, call_params)``."""
        setup: list[tuple[str, dict[str, Any]]] = []
        args: list[str] = []
        bound: dict[str, Any] = {}
        for p in routine.parameters:
            value = params.get_value(p.name)
            if p.direction is ParameterDirectionEnum.IN:
                args.append(self.placeholder(p))
                bound[p.name] = self.bind_parameter(p, value)
            elif p.direction is ParameterDirectionEnum.INOUT:
                setup.append(
                    (
                        f"SET {self.out_var(p)} = {self.placeholder(p)}",
                        {p.name: self.bind_parameter(p, value)},
                    )
                )
                args.append(self.out_var(p))
            else:
                args.append(self.out_var(p))
        call = f"CALL {self.qualified(routine)}({', '.join(args)})"
        return setup, call, bound

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def invoke(
        self, conn: Any, routine: RoutineDescriptor, params: ParameterSet
    ) -> TabularResult:
        cur = conn.cursor()
        try:
            if routine.kind is RoutineKindEnum.FUNCTION:
                return self._invoke_function(cur, routine, params)
            return self._invoke_procedure(cur, routine, params)
        finally:
            cur.close()

    def _invoke_function(
        self, cur: Any, routine: RoutineDescriptor, params: ParameterSet
    ) -> TabularResult:
        args: list[str] = []
        bound: dict[str, Any] = {}
        for p in routine.input_parameters:
            value = params.get_value(p.name)
            args.append(self.placeholder(p))
            bound[p.name] = self.bind_parameter(p, value)
        sql = f"SELECT {self.qualified(routine)}({', '.join(args)}) AS {FUNCTION_RESULT_COLUMN}"
        _log.debug("Routine SQL: %s", sql)
        cur.execute(sql, bound or None)
        return TabularResult.from_cursor(cur)

    def _invoke_procedure(
        self, cur: Any, routine: RoutineDescriptor, params: ParameterSet
    ) -> TabularResult:
        setup, call, bound = self.build_call(routine, params)
        for stmt, stmt_params in setup:
            cur.execute(stmt, stmt_params)
        _log.debug("Routine SQL: %s", call)
        cur.execute(call, bound or None)
        result = TabularResult.from_cursor(cur)
        while cur.nextset():
            pass

        outputs = routine.output_parameters
        if outputs:
            select = ", ".join(f"{self.out_var(p)} AS {self.quote_ident(p.name)}" for p in outputs)
            cur.execute(f"SELECT {select}")
            row = cur.fetchone()
            if row is not None:
                result.merge_output_row({p.name: row[i] for i, p in enumerate(outputs)})
        return result

    def validate_syntax(self, conn, sql, params):
        text, bound = self.bind_query(sql, params)
        if not sql.lstrip().upper().startswith("SELECT"):
            # Only SELECTs can be EXPLAINed without side effects.
            return True, None
        cur = conn.cursor()
        try:
            cur.execute(f"EXPLAIN {text}", bound)
        except pymysql.err.Error as e:
            return False, self.translate_error(e).engine_message
        finally:
            cur.close()
        return True, None

    @staticmethod
    def quote_ident(name: str) -> str:
        return "`" + name.replace("`", "``") + "`"

    def translate_error(self, exc: BaseException) -> EngineExecutionError:
        args = getattr(exc, "args", ())
        code = args[0] if args and isinstance(args[0], int) else None
        engine_message = str(args[1]) if len(args) >= 2 else str(exc)
        if code in _QUERY_TIMEOUT_CODES:
            message = f"Statement timeout: {engine_message}"
        elif isinstance(exc, pymysql.err.OperationalError):
            message = f"Database operation failed: {engine_message}"
        else:
            message = f"SQL execution failed: {engine_message}"
        return EngineExecutionError(message, engine_message=engine_message, code=code)
