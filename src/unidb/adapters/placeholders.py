# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Query parameter adapter for cross-database compatibility.

Statements are always written with neutral ``?`` markers.  SQLite accepts
them as-is, PostgreSQL (asyncpg) needs ``$1, $2, …`` and MySQL (aiomysql)
uses the ``%s`` format style.  :func:`rewrite_placeholders` scans the
statement once, skipping string literals, quoted identifiers, comments
(including MySQL ``#`` line comments) and PostgreSQL dollar-quoted
bodies, so a ``?`` inside any of those is never treated as a parameter.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DIALECTS = ("postgres", "mysql", "sqlite")

_DOLLAR_TAG = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")


@dataclass(frozen=True, slots=True)
class RewrittenStatement:
    """A statement in its target dialect plus the number of markers found."""

    sql: str
    count: int


def rewrite_placeholders(
    statement: str,
    dialect: str,
    *,
    escape_percent: bool = False,
) -> RewrittenStatement:
    """Rewrite ``?`` parameter placeholders for the target *dialect*.

    Args:
        statement: SQL with ``?`` positional placeholders.
        dialect: ``"sqlite"``, ``"postgres"`` or ``"mysql"``.
        escape_percent: MySQL only.  Double every literal ``%`` so the
            driver's ``%`` formatting leaves it intact; set this when
            parameters will be bound.

    Raises:
        ValueError: If *dialect* is not recognised.
    """
    if dialect not in DIALECTS:
        msg = f"Unknown SQL dialect: {dialect!r}. Expected one of {', '.join(DIALECTS)}."
        raise ValueError(msg)

    result: list[str] = []
    counter = 0
    n = len(statement)
    i = 0

    while i < n:
        ch = statement[i]

        if ch in ("'", '"', "`"):
            end = _skip_quoted(statement, i, ch, backslash=dialect == "mysql")
            chunk = statement[i:end]
            if escape_percent and dialect == "mysql":
                chunk = chunk.replace("%", "%%")
            result.append(chunk)
            i = end
            continue

        if (ch == "-" and statement.startswith("--", i)) or (ch == "#" and dialect == "mysql"):
            end = statement.find("\n", i)
            end = n if end == -1 else end
            result.append(statement[i:end])
            i = end
            continue

        if ch == "/" and statement.startswith("/*", i):
            end = statement.find("*/", i + 2)
            end = n if end == -1 else end + 2
            result.append(statement[i:end])
            i = end
            continue

        if ch == "$" and dialect == "postgres":
            end = _skip_dollar_quoted(statement, i)
            if end is not None:
                result.append(statement[i:end])
                i = end
                continue

        if ch == "?":
            counter += 1
            if dialect == "postgres":
                result.append(f"${counter}")
            elif dialect == "mysql":
                result.append("%s")
            else:
                result.append("?")
        elif ch == "%" and escape_percent and dialect == "mysql":
            result.append("%%")
        else:
            result.append(ch)
        i += 1

    return RewrittenStatement(sql="".join(result), count=counter)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _skip_quoted(text: str, start: int, quote: str, *, backslash: bool) -> int:
    """Return the index just past the quoted run starting at *start*.

    A doubled quote is an escaped quote.  An unterminated run extends to
    the end of *text*.
    """
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if backslash and quote == "'" and ch == "\\":
            i += 2
            continue
        if ch == quote:
            if i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n


def _skip_dollar_quoted(text: str, start: int) -> int | None:
    """Return the index just past a ``$tag$ … $tag$`` body, if one starts here."""
    if start > 0 and (text[start - 1].isalnum() or text[start - 1] == "_"):
        return None
    match = _DOLLAR_TAG.match(text, start)
    if match is None:
        return None
    tag = match.group(0)
    close = text.find(tag, match.end())
    if close == -1:
        return len(text)
    return close + len(tag)
