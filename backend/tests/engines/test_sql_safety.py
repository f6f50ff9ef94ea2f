"""Unit tests for engines.sql.safety — SELECT/WITH gate and forbidden tables."""

import pytest

from dbfacade.core.errors import EmptyQuery, ForbiddenTable, StatementNotAllowed
from dbfacade.engines.sql.safety import check_query, validate_query


class TestCheckQuery:
    @pytest.mark.parametrize("sql", [None, "", "   \n"])
    def test_empty(self, sql):
        with pytest.raises(EmptyQuery):
            check_query(sql)

    @pytest.mark.parametrize(
        "sql",
        [
            "INSERT INTO t VALUES (1)",
            "update t set a = 1",
            "DELETE FROM t",
            "DROP TABLE t",
            "EXEC sp_who",
            "-- comment\nSELECT 1",
        ],
    )
    def test_non_select_rejected(self, sql):
        with pytest.raises(StatementNotAllowed):
            check_query(sql)

    @pytest.mark.parametrize("sql", ["SELECT 1", "  select * from t", "WITH x AS (SELECT 1) SELECT * FROM x"])
    def test_select_and_with_allowed(self, sql):
        check_query(sql)

    def test_forbidden_table_case_insensitive(self):
        with pytest.raises(ForbiddenTable) as exc:
            check_query("SELECT * FROM Usuarios WHERE id=@id", {"usuarios"})
        assert exc.value.table == "usuarios"

    def test_forbidden_table_substring_match(self):
        with pytest.raises(ForbiddenTable):
            check_query("SELECT * FROM dbo.usuarios_log", ["usuarios"])

    def test_blank_forbidden_entries_ignored(self):
        check_query("SELECT 1", ["", "  "])


class TestValidateQuery:
    def test_ok(self):
        assert validate_query("SELECT * FROM productos", {"usuarios"}) == (True, None)

    def test_statement_not_allowed_message(self):
        ok, msg = validate_query("delete from productos")
        assert ok is False
        assert msg == str(StatementNotAllowed())

    def test_forbidden_message_names_table(self):
        ok, msg = validate_query("SELECT * FROM Usuarios", ["usuarios"])
        assert ok is False
        assert "usuarios" in msg

    def test_empty_message(self):
        assert validate_query("") == (False, "Query must not be empty.")
