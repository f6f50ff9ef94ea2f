"""Unit tests for ExecutionFacade (dialect and connection mocked)."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from dbfacade.core.config import Settings
from dbfacade.core.connection import StaticConnectionProvider, StaticForbiddenTablePolicy
from dbfacade.core.errors import (
    EngineExecutionError,
    ForbiddenTable,
    InvalidParameterName,
    RoutineNotFound,
    StatementNotAllowed,
)
from dbfacade.core.param_type import ParamKind
from dbfacade.core.security import is_hashed
from dbfacade.engines.dialects.postgres import PostgresDialect
from dbfacade.engines.executor import ExecutionFacade, build_facade
from dbfacade.models import ProductTypeEnum, RoutineDescriptor, RoutineKindEnum, TabularResult


class DriverError(Exception):
    pass


def _dialect() -> MagicMock:
    dialect = MagicMock()
    dialect.product_type = ProductTypeEnum.POSTGRES
    dialect.driver_errors = (DriverError,)
    dialect.translate_error.side_effect = lambda e: EngineExecutionError(
        f"SQL execution failed: {e}", engine_message=str(e)
    )
    dialect.execute_query.return_value = TabularResult(columns=["n"], rows=[[1]])
    dialect.invoke.return_value = TabularResult(columns=["ok"], rows=[[True]])
    dialect.resolve_routine.return_value = RoutineDescriptor("public", "fn", RoutineKindEnum.FUNCTION)
    return dialect


def _facade(dialect=None, forbidden=("usuarios",), **kwargs) -> ExecutionFacade:
    return ExecutionFacade(
        dialect or _dialect(),
        StaticConnectionProvider("postgresql://u:p@h/db"),
        StaticForbiddenTablePolicy(forbidden),
        **kwargs,
    )


class TestExecuteQuery:
    def test_runs_and_closes_connection(self):
        dialect = _dialect()
        facade = _facade(dialect, max_rows=50, connect_timeout=4, statement_timeout=9)
        out = facade.execute_query("SELECT * FROM t WHERE id = @id", {"@id": "7"})

        assert out.rows == [[1]]
        dialect.connect.assert_called_once_with(
            "postgresql://u:p@h/db", connect_timeout=4, statement_timeout=9
        )
        conn = dialect.connect.return_value
        _, sql, params = dialect.execute_query.call_args[0]
        assert sql == "SELECT * FROM t WHERE id = @id"
        assert params["id"].kind is ParamKind.INT32
        assert dialect.execute_query.call_args.kwargs == {"max_rows": 50}
        conn.close.assert_called_once()

    def test_explicit_row_cap_overrides_default(self):
        dialect = _dialect()
        _facade(dialect, max_rows=50).execute_query("SELECT 1", max_rows=5)
        assert dialect.execute_query.call_args.kwargs == {"max_rows": 5}

    def test_rejected_before_connecting(self):
        dialect = _dialect()
        facade = _facade(dialect)
        with pytest.raises(StatementNotAllowed):
            facade.execute_query("DELETE FROM t")
        with pytest.raises(ForbiddenTable):
            facade.execute_query("SELECT * FROM Usuarios WHERE id=@id", {"id": 1})
        dialect.connect.assert_not_called()

    def test_invalid_parameter_before_connecting(self):
        dialect = _dialect()
        with pytest.raises(InvalidParameterName):
            _facade(dialect).execute_query("SELECT 1", {"bad name": 1})
        dialect.connect.assert_not_called()

    def test_driver_error_translated_and_connection_closed(self):
        dialect = _dialect()
        dialect.execute_query.side_effect = DriverError("relation does not exist")
        with pytest.raises(EngineExecutionError) as exc:
            _facade(dialect).execute_query("SELECT * FROM nada")
        assert exc.value.engine_message == "relation does not exist"
        assert isinstance(exc.value.__cause__, DriverError)
        dialect.connect.return_value.close.assert_called_once()

    def test_connect_failure_translated(self):
        dialect = _dialect()
        dialect.connect.side_effect = DriverError("could not connect")
        with pytest.raises(EngineExecutionError, match="could not connect"):
            _facade(dialect).execute_query("SELECT 1")


class TestExecuteRoutine:
    def test_resolve_then_invoke(self):
        dialect = _dialect()
        out = _facade(dialect).execute_routine("ventas.fn", {"a": 1}, schema="ventas")
        conn = dialect.connect.return_value
        dialect.resolve_routine.assert_called_once_with(conn, "ventas.fn", "ventas")
        _, routine, params = dialect.invoke.call_args[0]
        assert routine == dialect.resolve_routine.return_value
        assert params["a"].value == 1
        assert out.rows == [[True]]
        conn.close.assert_called_once()

    def test_sensitive_fields_hashed_before_invoke(self):
        dialect = _dialect()
        _facade(dialect).execute_routine("sp_usuario", {"clave": "secreta"}, ["clave"])
        params = dialect.invoke.call_args[0][2]
        assert is_hashed(params["clave"].value)

    def test_hash_cost_follows_facade(self):
        dialect = _dialect()
        _facade(dialect, hash_rounds=5).execute_routine("sp_usuario", {"clave": "secreta"}, ["clave"])
        hashed = dialect.invoke.call_args[0][2]["clave"].value
        assert hashed.split("$")[2] == "05"

    def test_no_hashing_without_fields(self):
        dialect = _dialect()
        with patch("dbfacade.engines.executor.apply_hashing") as mock_hash:
            _facade(dialect).execute_routine("sp_usuario", {"clave": "secreta"}, ["", " "])
        mock_hash.assert_not_called()
        assert dialect.invoke.call_args[0][2]["clave"].value == "secreta"

    def test_routine_not_found_propagates(self):
        dialect = _dialect()
        dialect.resolve_routine.side_effect = RoutineNotFound("nada")
        with pytest.raises(RoutineNotFound):
            _facade(dialect).execute_routine("nada")
        dialect.invoke.assert_not_called()
        dialect.connect.return_value.close.assert_called_once()


class TestOtherOperations:
    def test_validate_query_uses_policy(self):
        facade = _facade()
        assert facade.validate_query("SELECT * FROM t") == (True, None)
        ok, msg = facade.validate_query("SELECT * FROM usuarios")
        assert ok is False and "usuarios" in msg

    def test_validate_query_override(self):
        assert _facade().validate_query("SELECT * FROM usuarios", forbidden_tables=[]) == (True, None)

    def test_validate_query_syntax(self):
        dialect = _dialect()
        dialect.validate_syntax.return_value = (False, "syntax error")
        assert _facade(dialect).validate_query_syntax("SELECT * FORM t") == (False, "syntax error")
        dialect.connect.return_value.close.assert_called_once()

    def test_validate_query_syntax_empty(self):
        dialect = _dialect()
        assert _facade(dialect).validate_query_syntax("  ") == (False, "Query must not be empty.")
        dialect.connect.assert_not_called()

    def test_diagnose_connection(self):
        dialect = _dialect()
        dialect.diagnostics.return_value = {"database": "db", "provider": "postgres"}
        assert _facade(dialect).diagnose_connection() == {"database": "db", "provider": "postgres"}

    def test_async_variants(self):
        dialect = _dialect()
        facade = _facade(dialect)
        out = asyncio.run(facade.aexecute_query("SELECT 1"))
        assert out.rows == [[1]]
        out = asyncio.run(facade.aexecute_routine("fn", {"a": 1}))
        assert out.rows == [[True]]


class TestBuildFacade:
    def test_wires_from_settings(self):
        s = Settings(
            _env_file=None,
            DATABASE_PROVIDER="postgres",
            POSTGRES_URL="postgresql://u:p@h/db",
            FORBIDDEN_TABLES="usuarios",
            QUERY_MAX_ROWS=20,
            EXTERNAL_DB_CONNECT_TIMEOUT=3,
            EXTERNAL_DB_STATEMENT_TIMEOUT=30,
        )
        facade = build_facade(s)
        assert isinstance(facade.dialect, PostgresDialect)
        assert facade.product_type is ProductTypeEnum.POSTGRES
        assert facade.connection_provider.get_connection_string() == "postgresql://u:p@h/db"
        assert facade.forbidden_tables.get_forbidden_tables() == {"usuarios"}
        assert facade.max_rows == 20
        assert facade.connect_timeout == 3
        assert facade.statement_timeout == 30

    def test_hash_rounds_from_injected_settings(self):
        s = Settings(_env_file=None, POSTGRES_URL="postgresql://u:p@h/db", HASH_ROUNDS=5)
        assert build_facade(s, ProductTypeEnum.POSTGRES).hash_rounds == 5

    @patch("dbfacade.engines.dialects.postgres.psycopg.connect")
    def test_end_to_end_with_real_dialect(self, mock_connect: MagicMock):
        cur = mock_connect.return_value.cursor.return_value
        cur.description = [("id",)]
        cur.fetchmany.return_value = [(7,)]
        s = Settings(_env_file=None, DATABASE_PROVIDER="postgres", POSTGRES_URL="postgresql://u:p@h/db")
        out = build_facade(s).execute_query("SELECT id FROM t WHERE id = @id", {"id": 7})
        assert out.to_dicts() == [{"id": 7}]
        cur.execute.assert_called_once_with("SELECT id FROM t WHERE id = %(id)s", {"id": 7})
        mock_connect.return_value.close.assert_called_once()
