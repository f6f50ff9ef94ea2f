"""
Errors raised by the execution façade.

Everything derives from ``DbFacadeError`` (a ``ValueError``, like the rest of the
param/validation errors) so callers can map one family to a 4xx/5xx response.
"""

from __future__ import annotations


class DbFacadeError(ValueError):
    """Base class for façade errors."""

    pass


class InvalidParameterName(DbFacadeError):
    """Raised when a parameter name is not ``[A-Za-z0-9_]+`` after stripping ``@``."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Invalid parameter name: {name!r}")


class QueryRejectedError(DbFacadeError):
    """Raised by the safety gate."""

    pass


class EmptyQuery(QueryRejectedError):
    def __init__(self) -> None:
        super().__init__("Query must not be empty.")


class StatementNotAllowed(QueryRejectedError):
    def __init__(self) -> None:
        super().__init__("Only SELECT and WITH queries are allowed.")


class ForbiddenTable(QueryRejectedError):
    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Query references forbidden table '{table}'.")


class RoutineNotFound(DbFacadeError):
    def __init__(self, name: str) -> None:
        self.routine = name
        super().__init__(f"Routine '{name}' was not found in the database catalog.")


class MalformedJsonPayload(DbFacadeError):
    """A payload parameter is not valid JSON; the hasher skips that parameter."""

    def __init__(self, parameter: str, reason: str) -> None:
        self.parameter = parameter
        super().__init__(f"Parameter '{parameter}' is not a valid JSON payload: {reason}")


class EngineExecutionError(DbFacadeError):
    """Wraps a driver error. ``engine_message`` keeps the engine's own text."""

    def __init__(
        self,
        message: str,
        *,
        engine_message: str | None = None,
        code: int | str | None = None,
    ) -> None:
        self.engine_message = engine_message
        self.code = code
        super().__init__(message)
