"""
Rewrite ``@name`` placeholders in ad-hoc SQL to driver placeholders.

Callers write queries the same way for every engine (``WHERE id = @id``).
psycopg, pymysql and pymssql all accept the ``pyformat`` style, so each
``@name`` whose name is a known parameter becomes ``%(name)s`` and every
literal ``%`` is doubled.

Single-quoted (``'...'``), double-quoted (``"..."``) and dollar-quoted
(``$$...$$``) text, ``--`` and ``/* */`` comments, and ``@@`` system variables
are left alone. Two rules depend on the engine:

- ``backslash_escapes``: a backslash escapes the next character inside quotes
  (MySQL). Elsewhere only PostgreSQL ``E'...'`` strings escape with it.
- ``bracket_identifiers``: ``[...]`` is a quoted identifier (SQL Server).
  Elsewhere brackets are ordinary SQL, e.g. ``ARRAY[@a, @b]``.
"""

from __future__ import annotations

from collections.abc import Container


def _is_name_char(ch: str) -> bool:
    return ch == "_" or (ch.isascii() and ch.isalnum())


def _copy_until(sql: str, start: int, terminator: str, out: list[str], skip: int = 1) -> int:
    """Append ``sql[start:end]`` (``end`` past *terminator*) to *out*, return ``end``.

    The terminator search begins *skip* characters after *start*.
    """
    end = sql.find(terminator, start + skip)
    end = len(sql) if end == -1 else end + len(terminator)
    out.append(sql[start:end].replace("%", "%%"))
    return end


def _is_escape_string_prefix(sql: str, i: int) -> bool:
    """True when the quote at *i* opens a PostgreSQL ``E'...'`` literal."""
    if i == 0 or sql[i - 1] not in ("E", "e"):
        return False
    return i == 1 or not _is_name_char(sql[i - 2])


def _quoted_end(sql: str, i: int, backslash_escapes: bool) -> int:
    quote = sql[i]
    length = len(sql)
    j = i + 1
    while j < length:
        if sql[j] == quote:
            if j + 1 < length and sql[j + 1] == quote:
                j += 2
                continue
            return j + 1
        if backslash_escapes and sql[j] == "\\" and j + 1 < length:
            j += 2
            continue
        j += 1
    return length


def rewrite_placeholders(
    sql: str,
    names: Container[str],
    *,
    backslash_escapes: bool = False,
    bracket_identifiers: bool = False,
) -> tuple[str, list[str]]:
    """Return ``(rewritten_sql, used_names)``.

    *names* holds lower-cased parameter names; placeholders are matched
    case-insensitively and emitted lower-cased, so the bound dict must use the
    same keys. ``used_names`` lists each distinct name once, in first-use order.
    """
    out: list[str] = []
    used: list[str] = []
    i = 0
    length = len(sql)

    while i < length:
        ch = sql[i]

        if ch in ("'", '"'):
            escapes = backslash_escapes or (ch == "'" and _is_escape_string_prefix(sql, i))
            j = _quoted_end(sql, i, escapes)
            out.append(sql[i:j].replace("%", "%%"))
            i = j
            continue

        if ch == "[" and bracket_identifiers:
            i = _copy_until(sql, i, "]", out)
            continue

        if ch == "$" and i + 1 < length and sql[i + 1] == "$":
            i = _copy_until(sql, i, "$$", out, skip=2)
            continue

        if ch == "-" and i + 1 < length and sql[i + 1] == "-":
            i = _copy_until(sql, i, "\n", out, skip=2)
            continue

        if ch == "/" and i + 1 < length and sql[i + 1] == "*":
            i = _copy_until(sql, i, "*/", out, skip=2)
            continue

        if ch == "@":
            if i + 1 < length and sql[i + 1] == "@":
                j = i + 2
                while j < length and _is_name_char(sql[j]):
                    j += 1
                out.append(sql[i:j])
                i = j
                continue
            j = i + 1
            while j < length and _is_name_char(sql[j]):
                j += 1
            name = sql[i + 1 : j].lower()
            if name and name in names:
                out.append(f"%({name})s")
                if name not in used:
                    used.append(name)
            else:
                out.append(sql[i:j])
            i = max(j, i + 1)
            continue

        out.append("%%" if ch == "%" else ch)
        i += 1

    return "".join(out), used

