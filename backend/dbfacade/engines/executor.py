"""
Execution façade.

Every call opens its own connection, runs, materializes the result and closes
the connection in ``finally``. Nothing is cached between calls.

    facade = build_facade()
    facade.execute_query("SELECT * FROM clientes WHERE id = @id", {"id": 7})
    facade.execute_routine("ventas.actualizar_precio", {"id": 7, "precio": "12.50"})
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from dbfacade.core.config import Settings, settings as default_settings
from dbfacade.core.connection import (
    ConnectionProvider,
    ForbiddenTablePolicy,
    SettingsConnectionProvider,
    SettingsForbiddenTablePolicy,
)
from dbfacade.core.errors import DbFacadeError, EngineExecutionError
from dbfacade.core.params import normalize_params
from dbfacade.core.sensitive import apply_hashing
from dbfacade.engines.dialects import EngineDialect, get_dialect
from dbfacade.engines.sql.safety import check_query, validate_query
from dbfacade.models import ProductTypeEnum, TabularResult

_log = logging.getLogger(__name__)


class ExecutionFacade:
    """
    execute_query(sql, params) / execute_routine(name, params, sensitive_fields)
    -> TabularResult, on the engine chosen at construction.
    """

    def __init__(
        self,
        dialect: EngineDialect,
        connection_provider: ConnectionProvider,
        forbidden_tables: ForbiddenTablePolicy | None = None,
        *,
        max_rows: int | None = None,
        connect_timeout: int | None = None,
        statement_timeout: float | None = None,
        hash_rounds: int | None = None,
    ) -> None:
        self.dialect = dialect
        self.connection_provider = connection_provider
        self.forbidden_tables = forbidden_tables
        self.max_rows = max_rows
        self.connect_timeout = connect_timeout
        self.statement_timeout = statement_timeout
        self.hash_rounds = hash_rounds

    @property
    def product_type(self) -> ProductTypeEnum:
        return self.dialect.product_type

    # ------------------------------------------------------------------
    # Safety gate
    # ------------------------------------------------------------------

    def _forbidden(self, override: Iterable[str] | None = None) -> set[str]:
        if override is not None:
            return {t for t in override if t}
        if self.forbidden_tables is None:
            return set()
        return self.forbidden_tables.get_forbidden_tables()

    def validate_query(
        self, sql: str | None, forbidden_tables: Iterable[str] | None = None
    ) -> tuple[bool, str | None]:
        """Run the textual safety gate only; no connection is opened."""
        return validate_query(sql, self._forbidden(forbidden_tables))

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        url = self.connection_provider.get_connection_string()
        try:
            conn = self.dialect.connect(
                url,
                connect_timeout=self.connect_timeout,
                statement_timeout=self.statement_timeout,
            )
        except self.dialect.driver_errors as e:
            raise self._engine_error(e, "connect") from e
        try:
            yield conn
        finally:
            try:
                conn.close()
            except self.dialect.driver_errors as e:
                _log.debug("Closing connection failed: %s", e)

    def _engine_error(self, exc: BaseException, action: str) -> EngineExecutionError:
        err = self.dialect.translate_error(exc)
        if "timeout" in str(err).lower():
            _log.warning("%s %s timed out: %s", self.product_type.value, action, exc)
        else:
            _log.error("%s %s failed: %s", self.product_type.value, action, exc, exc_info=True)
        return err

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def execute_query(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
        *,
        max_rows: int | None = None,
    ) -> TabularResult:
        """Gate → normalize → bind → execute an ad-hoc SELECT/WITH query."""
        try:
            check_query(sql, self._forbidden())
        except DbFacadeError as e:
            _log.warning("Query rejected: %s", e)
            raise
        normalized = normalize_params(params)
        limit = max_rows if max_rows is not None else self.max_rows

        with self._connection() as conn:
            try:
                result = self.dialect.execute_query(conn, sql, normalized, max_rows=limit)
            except self.dialect.driver_errors as e:
                raise self._engine_error(e, "query") from e
        _log.debug("Query returned %d row(s)", result.row_count)
        return result

    def execute_routine(
        self,
        name: str,
        params: Mapping[str, Any] | None = None,
        sensitive_fields: Iterable[str] | None = None,
        *,
        schema: str | None = None,
    ) -> TabularResult:
        """Normalize → hash → resolve → bind → invoke a stored function or procedure.

        - name: ``routine`` or ``schema.routine`` (pins the schema).
        - sensitive_fields: names hashed with bcrypt before binding, top-level
          or inside the JSON payload parameters.
        - schema: preferred schema when *name* is unqualified.
        """
        normalized = normalize_params(params)
        fields = [f for f in (sensitive_fields or ()) if f and f.strip()]
        if fields:
            normalized = apply_hashing(normalized, fields, rounds=self.hash_rounds)

        with self._connection() as conn:
            try:
                routine = self.dialect.resolve_routine(conn, name, schema)
                result = self.dialect.invoke(conn, routine, normalized)
            except self.dialect.driver_errors as e:
                raise self._engine_error(e, f"routine {name}") from e
        _log.debug("Routine %s returned %d row(s)", name, result.row_count)
        return result

    def validate_query_syntax(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> tuple[bool, str | None]:
        """Ask the engine to compile *sql* without running it."""
        if sql is None or not sql.strip():
            return False, "Query must not be empty."
        normalized = normalize_params(params)
        with self._connection() as conn:
            return self.dialect.validate_syntax(conn, sql, normalized)

    def diagnose_connection(self) -> dict[str, Any]:
        """Server identity of the configured connection (never credentials)."""
        with self._connection() as conn:
            try:
                return self.dialect.diagnostics(conn)
            except self.dialect.driver_errors as e:
                raise self._engine_error(e, "diagnostics") from e

    # ------------------------------------------------------------------
    # Async variants (drivers are blocking; run in a worker thread)
    # ------------------------------------------------------------------

    async def aexecute_query(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
        *,
        max_rows: int | None = None,
    ) -> TabularResult:
        return await asyncio.to_thread(self.execute_query, sql, params, max_rows=max_rows)

    async def aexecute_routine(
        self,
        name: str,
        params: Mapping[str, Any] | None = None,
        sensitive_fields: Iterable[str] | None = None,
        *,
        schema: str | None = None,
    ) -> TabularResult:
        return await asyncio.to_thread(
            self.execute_routine, name, params, sensitive_fields, schema=schema
        )


def build_facade(
    settings: Settings | None = None, provider: ProductTypeEnum | None = None
) -> ExecutionFacade:
    """Wire an ExecutionFacade from Settings (provider, URL, forbidden tables, limits)."""
    s = settings or default_settings
    pt = provider or s.DATABASE_PROVIDER
    return ExecutionFacade(
        get_dialect(pt),
        SettingsConnectionProvider(s, pt),
        SettingsForbiddenTablePolicy(s),
        max_rows=s.QUERY_MAX_ROWS,
        connect_timeout=s.EXTERNAL_DB_CONNECT_TIMEOUT,
        statement_timeout=s.EXTERNAL_DB_STATEMENT_TIMEOUT,
        hash_rounds=s.HASH_ROUNDS,
    )
