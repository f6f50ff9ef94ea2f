"""
SQL Server dialect (pymssql).

Functions are called through a synthesized scalar select,
``SELECT [schema].[fn](%(p0)s, ...) AS Resultado``, with input parameters
renamed ``p0..pn``. Procedures go through RPC (``callproc``) with every
parameter passed positionally in catalog order; OUT and INOUT parameters are
wrapped in ``pymssql.output`` and their values are merged into row 0 of the
result.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pymssql

from dbfacade.core.errors import EngineExecutionError
from dbfacade.core.param_type import ParameterValue
from dbfacade.core.params import ParameterSet
from dbfacade.engines.dialects.base import (
    FUNCTION_RESULT_COLUMN,
    EngineDialect,
    parse_connection_url,
)
from dbfacade.models import (
    ProductTypeEnum,
    RoutineDescriptor,
    RoutineKindEnum,
    RoutineParameter,
    TabularResult,
)

_log = logging.getLogger(__name__)

# Engine error number → readable message
ERROR_MESSAGES: dict[int, str] = {
    102: "SQL syntax error: check the structure of the query",
    207: "Invalid column name: check that the columns exist",
    208: "Invalid object name: table or view does not exist in the database",
    156: "Incorrect SQL keyword or keyword in the wrong position",
    170: "Syntax error near a reserved word",
}


def _error_number(exc: BaseException) -> int | None:
    number = getattr(exc, "number", None)
    if isinstance(number, int):
        return number
    args = getattr(exc, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def _error_text(exc: BaseException) -> str:
    args = getattr(exc, "args", ())
    if len(args) >= 2:
        msg = args[1]
        if isinstance(msg, bytes):
            msg = msg.decode("utf-8", errors="replace")
        return str(msg).strip()
    return str(exc).strip()


class SqlServerDialect(EngineDialect):
    product_type = ProductTypeEnum.SQLSERVER
    default_schema = "dbo"

    text_types = frozenset({"varchar", "nvarchar", "char", "nchar", "text", "ntext"})
    int_types = frozenset({"int", "smallint", "tinyint"})
    bigint_types = frozenset({"bigint"})
    decimal_types = frozenset({"decimal", "numeric", "money", "smallmoney"})
    float_types = frozenset({"float", "real"})
    bool_types = frozenset({"bit"})
    uuid_types = frozenset({"uniqueidentifier"})
    json_types = frozenset()
    unbounded_text_types = frozenset({"nvarchar"})
    datetime_types = frozenset({"datetime", "datetime2", "smalldatetime", "datetimeoffset"})

    ROUTINE_PINNED_SQL = (
        "SELECT TOP 1 ROUTINE_SCHEMA, ROUTINE_NAME, ROUTINE_TYPE, SPECIFIC_NAME "
        "FROM INFORMATION_SCHEMA.ROUTINES "
        "WHERE ROUTINE_NAME = %(name)s AND ROUTINE_SCHEMA = %(schema)s"
    )
    ROUTINE_SEARCH_SQL = (
        "SELECT TOP 1 ROUTINE_SCHEMA, ROUTINE_NAME, ROUTINE_TYPE, SPECIFIC_NAME "
        "FROM INFORMATION_SCHEMA.ROUTINES "
        "WHERE ROUTINE_NAME = %(name)s "
        "ORDER BY CASE WHEN ROUTINE_SCHEMA = %(hint)s THEN 0 "
        "WHEN ROUTINE_SCHEMA = %(default)s THEN 1 ELSE 2 END, ROUTINE_SCHEMA"
    )
    # ORDINAL_POSITION 0 is a function's return value.
    PARAMETERS_SQL = (
        "SELECT PARAMETER_NAME, PARAMETER_MODE, DATA_TYPE, CHARACTER_MAXIMUM_LENGTH, "
        "NUMERIC_PRECISION, NUMERIC_SCALE, ORDINAL_POSITION "
        "FROM INFORMATION_SCHEMA.PARAMETERS "
        "WHERE SPECIFIC_SCHEMA = %(schema)s AND SPECIFIC_NAME = %(specific)s "
        "AND ORDINAL_POSITION > 0 "
        "ORDER BY ORDINAL_POSITION"
    )
    DIAGNOSTICS_SQL = (
        "SELECT DB_NAME() AS [database], @@VERSION AS server_version, "
        "CAST(CONNECTIONPROPERTY('local_net_address') AS varchar(48)) AS host, "
        "CAST(CONNECTIONPROPERTY('local_tcp_port') AS int) AS port, "
        "(SELECT sqlserver_start_time FROM sys.dm_os_sys_info) AS server_start_time, "
        "SUSER_SNAME() AS login, @@SPID AS session_id"
    )

    bracket_identifiers = True

    driver_errors = (pymssql.Error,)

    def connect(self, url, *, connect_timeout=None, statement_timeout=None):
        parts = parse_connection_url(url)
        kwargs: dict[str, Any] = {
            "server": parts["host"],
            "port": str(parts["port"] or 1433),
            "user": parts["username"],
            "password": parts["password"],
            "database": parts["database"] or "",
            "autocommit": True,
        }
        if connect_timeout:
            kwargs["login_timeout"] = int(connect_timeout)
        if statement_timeout is not None and statement_timeout > 0:
            kwargs["timeout"] = int(statement_timeout)
        return pymssql.connect(**kwargs)

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    def bind_parameter(self, param: RoutineParameter, value: ParameterValue) -> Any:
        if value.is_null:
            return None
        if self.is_json(param, value):
            # JSON travels as nvarchar text.
            return value.as_text()
        return self.coerce_value(param, value)

    def output_type(self, param: RoutineParameter) -> type:
        """Python type announced to pymssql for an output parameter."""
        dtype = param.data_type
        if dtype in self.int_types or dtype in self.bigint_types:
            return int
        if dtype in self.decimal_types:
            return Decimal
        if dtype in self.float_types:
            return float
        if dtype in self.bool_types:
            return bool
        if dtype in self.datetime_types:
            return datetime
        if dtype in self.date_types:
            return date
        if dtype in self.uuid_types:
            return uuid.UUID
        return str

    def procedure_args(
        self, routine: RoutineDescriptor, params: ParameterSet
    ) -> tuple[list[Any], list[int]]:
        """Positional callproc arguments and the indexes holding outputs."""
        args: list[Any] = []
        output_indexes: list[int] = []
        for i, p in enumerate(routine.parameters):
            bound = self.bind_parameter(p, params.get_value(p.name)) if p.is_input else None
            if p.is_output:
                args.append(pymssql.output(self.output_type(p), bound))
                output_indexes.append(i)
            else:
                args.append(bound)
        return args, output_indexes

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
        bound: dict[str, Any] = {}
        for i, p in enumerate(routine.input_parameters):
            bound[f"p{i}"] = self.bind_parameter(p, params.get_value(p.name))
        placeholders = ", ".join(f"%(p{i})s" for i in range(len(bound)))
        sql = f"SELECT {self.qualified(routine)}({placeholders}) AS {FUNCTION_RESULT_COLUMN}"
        _log.debug("Routine SQL: %s", sql)
        if bound:
            cur.execute(sql, bound)
        else:
            cur.execute(sql)
        return TabularResult.from_cursor(cur)

    def _invoke_procedure(
        self, cur: Any, routine: RoutineDescriptor, params: ParameterSet
    ) -> TabularResult:
        args, output_indexes = self.procedure_args(routine, params)
        _log.debug("Routine RPC: %s (%d argument(s))", routine.qualified_name, len(args))
        returned = cur.callproc(routine.qualified_name, tuple(args))
        result = TabularResult.from_cursor(cur)
        while cur.nextset():
            pass
        if output_indexes and returned is not None:
            values = {
                routine.parameters[i].name: returned[i]
                for i in output_indexes
                if i < len(returned)
            }
            result.merge_output_row(values)
        return result

    def validate_syntax(self, conn, sql, params):
        text, bound = self.bind_query(sql, params)
        cur = conn.cursor()
        try:
            cur.execute("SET PARSEONLY ON")
            try:
                if bound is None:
                    cur.execute(text)
                else:
                    cur.execute(text, bound)
            finally:
                cur.execute("SET PARSEONLY OFF")
        except pymssql.Error as e:
            return False, str(self.translate_error(e))
        finally:
            cur.close()
        return True, None

    def qualified(self, routine: RoutineDescriptor) -> str:
        name = "[" + routine.name.replace("]", "]]") + "]"
        if routine.schema:
            return "[" + routine.schema.replace("]", "]]") + "]." + name
        return name

    def translate_error(self, exc: BaseException) -> EngineExecutionError:
        number = _error_number(exc)
        engine_message = _error_text(exc)
        if number in ERROR_MESSAGES:
            message = ERROR_MESSAGES[number]
        elif isinstance(exc, pymssql.OperationalError) and (
            "timeout" in engine_message.lower() or "timed out" in engine_message.lower()
        ):
            message = f"Statement timeout: {engine_message}"
        elif number is not None:
            message = f"SQL Server error (code {number}): {engine_message}"
        else:
            message = f"SQL execution failed: {engine_message}"
        return EngineExecutionError(message, engine_message=engine_message, code=number)
