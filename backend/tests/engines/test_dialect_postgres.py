"""Unit tests for engines.dialects.postgres (psycopg mocked)."""

from unittest.mock import MagicMock, patch

import psycopg
import pytest
from psycopg import errors as pg_errors
from psycopg.types.json import Json, Jsonb

from dbfacade.core.param_type import ParamKind, ParameterValue
from dbfacade.core.params import normalize_params
from dbfacade.engines.dialects.postgres import PostgresDialect
from dbfacade.models import (
    ParameterDirectionEnum,
    RoutineDescriptor,
    RoutineKindEnum,
    RoutineParameter,
)

IN = ParameterDirectionEnum.IN
OUT = ParameterDirectionEnum.OUT
INOUT = ParameterDirectionEnum.INOUT


def _cursor(description=None, rows=()):
    conn = MagicMock()
    cur = conn.cursor.return_value
    cur.description = description
    cur.fetchall.return_value = list(rows)
    return conn, cur


class TestConnect:
    @patch("dbfacade.engines.dialects.postgres.psycopg.connect")
    def test_connect_kwargs(self, mock_connect: MagicMock):
        PostgresDialect().connect(
            "postgresql://u:p@h:5433/db", connect_timeout=5, statement_timeout=2.5
        )
        mock_connect.assert_called_once_with(
            host="h",
            port=5433,
            dbname="db",
            user="u",
            password="p",
            autocommit=True,
            connect_timeout=5,
            options="-c statement_timeout=2500",
        )

    @patch("dbfacade.engines.dialects.postgres.psycopg.connect")
    def test_no_statement_timeout(self, mock_connect: MagicMock):
        PostgresDialect().connect("postgresql://u@h/db", statement_timeout=None)
        kwargs = mock_connect.call_args.kwargs
        assert "options" not in kwargs
        assert kwargs["port"] == 5432


class TestBindParameter:
    dialect = PostgresDialect()

    def test_jsonb_declared(self):
        p = RoutineParameter("p_maestro", IN, "jsonb")
        out = self.dialect.bind_parameter(p, ParameterValue(ParamKind.TEXT, '{"a":1}'))
        assert isinstance(out, Jsonb)
        assert out.obj == '{"a":1}'

    def test_json_declared(self):
        p = RoutineParameter("p", IN, "json")
        out = self.dialect.bind_parameter(p, ParameterValue(ParamKind.JSON, "[1]"))
        assert isinstance(out, Json) and not isinstance(out, Jsonb)

    def test_json_shaped_text_on_text_param(self):
        p = RoutineParameter("p_detalles", IN, "text")
        out = self.dialect.bind_parameter(p, ParameterValue(ParamKind.TEXT, "[{}]"))
        assert isinstance(out, Jsonb)

    def test_plain_text(self):
        p = RoutineParameter("nombre", IN, "text")
        assert self.dialect.bind_parameter(p, ParameterValue(ParamKind.TEXT, "Ana")) == "Ana"


class TestInvoke:
    def test_function_select(self):
        routine = RoutineDescriptor(
            "ventas",
            "actualizar_precio",
            RoutineKindEnum.FUNCTION,
            (
                RoutineParameter("id", IN, "integer"),
                RoutineParameter("precio", IN, "numeric"),
                RoutineParameter("resultado", OUT, "text"),
            ),
        )
        conn, cur = _cursor([("resultado",)], [("ok",)])
        out = PostgresDialect().invoke(
            conn, routine, normalize_params({"id": "7", "precio": "12.50"})
        )
        sql, args = cur.execute.call_args[0]
        assert sql == 'SELECT * FROM "ventas"."actualizar_precio"(%s, %s)'
        assert args[0] == 7
        assert str(args[1]) == "12.5"
        assert out.to_dicts() == [{"resultado": "ok"}]

    def test_function_without_parameters(self):
        routine = RoutineDescriptor("public", "ahora", RoutineKindEnum.FUNCTION)
        conn, cur = _cursor([("ahora",)], [(1,)])
        PostgresDialect().invoke(conn, routine, normalize_params({}))
        cur.execute.assert_called_once_with('SELECT * FROM "public"."ahora"()', None)

    def test_absent_parameter_binds_none(self):
        routine = RoutineDescriptor(
            "public", "fn", RoutineKindEnum.FUNCTION, (RoutineParameter("x", IN, "integer"),)
        )
        conn, cur = _cursor([("fn",)], [(1,)])
        PostgresDialect().invoke(conn, routine, normalize_params({}))
        assert cur.execute.call_args[0][1] == [None]

    def test_procedure_without_inout_is_not_read(self):
        routine = RoutineDescriptor(
            "public", "guardar", RoutineKindEnum.PROCEDURE, (RoutineParameter("x", IN, "integer"),)
        )
        conn, cur = _cursor()
        out = PostgresDialect().invoke(conn, routine, normalize_params({"x": 1}))
        cur.execute.assert_called_once_with('CALL "public"."guardar"(%s)', [1])
        cur.fetchall.assert_not_called()
        assert out.row_count == 0

    def test_procedure_with_inout_is_read(self):
        routine = RoutineDescriptor(
            "public",
            "calcular",
            RoutineKindEnum.PROCEDURE,
            (RoutineParameter("x", IN, "integer"), RoutineParameter("total", INOUT, "integer")),
        )
        conn, cur = _cursor([("total",)], [(42,)])
        out = PostgresDialect().invoke(conn, routine, normalize_params({"x": 1, "total": 0}))
        cur.execute.assert_called_once_with('CALL "public"."calcular"(%s, %s)', [1, 0])
        assert out.to_dicts() == [{"total": 42}]
        cur.close.assert_called_once()


class TestValidateSyntax:
    def test_valid(self):
        conn, cur = _cursor()
        ok = PostgresDialect().validate_syntax(conn, "SELECT * FROM t WHERE id = @id", normalize_params({"id": 1}))
        assert ok == (True, None)
        cur.execute.assert_called_once_with("EXPLAIN SELECT * FROM t WHERE id = %(id)s", {"id": 1})

    def test_invalid(self):
        conn, cur = _cursor()
        cur.execute.side_effect = pg_errors.SyntaxError('syntax error at or near "FORM"')
        ok, msg = PostgresDialect().validate_syntax(conn, "SELECT * FORM t", normalize_params({}))
        assert ok is False
        assert "FORM" in msg


class TestTranslateError:
    def test_timeout(self):
        err = PostgresDialect().translate_error(pg_errors.QueryCanceled("canceling statement due to statement timeout"))
        assert "timeout" in str(err).lower()
        assert err.code == "57014"

    def test_generic(self):
        err = PostgresDialect().translate_error(psycopg.Error("boom"))
        assert str(err) == "SQL execution failed: boom"
        assert err.engine_message == "boom"

    @pytest.mark.parametrize("exc_cls", [psycopg.OperationalError])
    def test_connection(self, exc_cls):
        err = PostgresDialect().translate_error(exc_cls("could not connect"))
        assert str(err).startswith("Connection failed")
