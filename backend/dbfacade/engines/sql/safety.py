"""
SQL safety gate for ad-hoc queries.

Two textual checks run before any connection is opened:

- the trimmed query must start with ``SELECT`` or ``WITH``;
- the raw text must not contain (case-insensitive substring) any forbidden
  table name.

This is a heuristic, not a parser. It does not see through comments, quoted
identifiers, string-literal table names, dynamic SQL, or a CTE that wraps a
write; treat it as a soft guard and keep database permissions as the real
boundary.

Usage::

    ok, error = validate_query("SELECT * FROM t", {"usuarios"})
    # (True, None)
"""

from collections.abc import Iterable

from dbfacade.core.errors import (
    EmptyQuery,
    ForbiddenTable,
    QueryRejectedError,
    StatementNotAllowed,
)

_ALLOWED_PREFIXES = ("SELECT", "WITH")


def check_query(query: str | None, forbidden_tables: Iterable[str] | None = None) -> None:
    """Raise EmptyQuery / StatementNotAllowed / ForbiddenTable, or return None."""
    if query is None or not query.strip():
        raise EmptyQuery()

    normalized = query.strip().upper()
    if not normalized.startswith(_ALLOWED_PREFIXES):
        raise StatementNotAllowed()

    lowered = query.lower()
    for table in forbidden_tables or ():
        if table and table.strip() and table.strip().lower() in lowered:
            raise ForbiddenTable(table.strip())


def validate_query(
    query: str | None, forbidden_tables: Iterable[str] | None = None
) -> tuple[bool, str | None]:
    """Return ``(True, None)`` for an allowed query, else ``(False, message)``."""
    try:
        check_query(query, forbidden_tables)
    except QueryRejectedError as e:
        return False, str(e)
    return True, None
