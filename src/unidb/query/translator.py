# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Condition translator.

Turns a backend-neutral condition object into either a parameterized SQL
fragment or a native MongoDB filter document.

A condition maps field names to a literal (equality), ``None`` (``IS
NULL``) or an operator mapping using ``gt``, ``gte``, ``lt``, ``lte``,
``ne``, ``in`` and ``like`` (each optionally ``$``-prefixed)::

    >>> frag = translate_sql({"age": {"gt": 20}}, sort={"age": "desc"}, limit=3)
    >>> frag.render()
    ' WHERE "age" > ? ORDER BY "age" DESC LIMIT 3'
    >>> frag.params
    [20]

Fields and operators are visited in insertion order, so every ``?`` in the
generated SQL lines up with the parameter at the same position.
``LIMIT``/``OFFSET`` are validated integers rendered inline and never
consume a parameter slot.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from unidb.core.constants import SQL_DIALECTS, BackendKind, resolve_backend_kind

OPERATORS = ("gt", "gte", "lt", "lte", "ne", "in", "like")

_SQL_COMPARISONS = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<=", "ne": "<>"}

_MONGO_OPERATORS = {
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "ne": "$ne",
    "in": "$in",
}

# Largest row count MySQL accepts; it has no "no limit" keyword
_MYSQL_MAX_ROWS = 18446744073709551615

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


@dataclass(slots=True)
class SqlFragment:
    """WHERE/ORDER BY/LIMIT/OFFSET pieces plus the aligned parameter list.

    ``where`` and ``order_by`` hold the clause bodies without keywords;
    empty strings mean the clause is absent.
    """

    where: str = ""
    params: list[Any] = field(default_factory=list)
    order_by: str = ""
    limit: int | None = None
    offset: int | None = None
    dialect: str = "sqlite"

    def render(self) -> str:
        """Return the clauses joined in WHERE, ORDER BY, LIMIT, OFFSET order."""
        parts: list[str] = []
        if self.where:
            parts.append(f"WHERE {self.where}")
        if self.order_by:
            parts.append(f"ORDER BY {self.order_by}")
        limit = self.limit
        if limit is None and self.offset is not None and self.dialect != "postgres":
            limit = -1 if self.dialect == "sqlite" else _MYSQL_MAX_ROWS
        if limit is not None:
            parts.append(f"LIMIT {limit}")
        if self.offset is not None:
            parts.append(f"OFFSET {self.offset}")
        return "".join(f" {p}" for p in parts)


@dataclass(slots=True)
class DocumentQuery:
    """Native MongoDB find specification (or an aggregation pipeline)."""

    filter: dict[str, Any] = field(default_factory=dict)
    sort: list[tuple[str, int]] = field(default_factory=list)
    limit: int | None = None
    skip: int | None = None
    projection: dict[str, Any] | None = None
    pipeline: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.pipeline is not None:
            return {"pipeline": self.pipeline}
        out: dict[str, Any] = {"filter": self.filter}
        if self.sort:
            out["sort"] = dict(self.sort)
        if self.limit is not None:
            out["limit"] = self.limit
        if self.skip is not None:
            out["skip"] = self.skip
        if self.projection is not None:
            out["projection"] = self.projection
        return out


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _operator_name(key: str) -> str:
    name = key[1:] if key.startswith("$") else key
    if name not in OPERATORS:
        msg = f"Unsupported condition operator: {key!r}"
        raise ValueError(msg)
    return name


def _is_operator_mapping(value: Any) -> bool:
    if not isinstance(value, Mapping) or not value:
        return False
    keys = [k for k in value if isinstance(k, str)]
    if len(keys) != len(value):
        return False
    return any(k.startswith("$") for k in keys) or all(k in OPERATORS for k in keys)


def _direction(value: Any) -> int:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("asc", "ascending", "1"):
            return 1
        if lowered in ("desc", "descending", "-1"):
            return -1
    elif value in (1, -1) and not isinstance(value, bool):
        return int(value)
    msg = f"Sort direction must be asc, desc, 1 or -1, got {value!r}"
    raise ValueError(msg)


def _non_negative(name: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        msg = f"{name} must be a non-negative integer, got {value!r}"
        raise ValueError(msg)
    return value


def quote_identifier(name: str, dialect: str) -> str:
    """Quote a (possibly dotted) column name for *dialect*.

    Raises:
        ValueError: For names that are not plain identifiers.
    """
    quote = "`" if dialect == "mysql" else '"'
    parts = name.split(".")
    for part in parts:
        if not _IDENTIFIER.match(part):
            msg = f"Invalid identifier: {name!r}"
            raise ValueError(msg)
    return ".".join(f"{quote}{p}{quote}" for p in parts)


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------


def translate_sql(
    condition: Mapping[str, Any] | None = None,
    sort: Mapping[str, Any] | None = None,
    limit: int | None = None,
    skip: int | None = None,
    dialect: str = "sqlite",
) -> SqlFragment:
    """Translate a condition object into an SQL fragment with ``?`` placeholders."""
    clauses: list[str] = []
    params: list[Any] = []

    for name, value in (condition or {}).items():
        column = quote_identifier(name, dialect)
        if value is None:
            clauses.append(f"{column} IS NULL")
        elif _is_operator_mapping(value):
            for key, operand in value.items():
                clauses.append(_sql_operator(column, _operator_name(key), operand, params))
        else:
            clauses.append(f"{column} = ?")
            params.append(value)

    order = ", ".join(
        f"{quote_identifier(name, dialect)} {'ASC' if _direction(d) == 1 else 'DESC'}"
        for name, d in (sort or {}).items()
    )

    return SqlFragment(
        where=" AND ".join(clauses),
        params=params,
        order_by=order,
        limit=_non_negative("limit", limit),
        offset=_non_negative("skip", skip),
        dialect=dialect,
    )


def _sql_operator(column: str, op: str, operand: Any, params: list[Any]) -> str:
    if op == "in":
        if isinstance(operand, (str, bytes)) or not isinstance(operand, Sequence):
            msg = f"'in' expects a list of values, got {type(operand).__name__}"
            raise ValueError(msg)
        if not operand:
            return "1=0"
        params.extend(operand)
        return f"{column} IN ({', '.join('?' for _ in operand)})"
    if op == "like":
        params.append(operand)
        return f"{column} LIKE ?"
    if operand is None:
        if op == "ne":
            return f"{column} IS NOT NULL"
        msg = f"Operator {op!r} cannot compare against None"
        raise ValueError(msg)
    params.append(operand)
    return f"{column} {_SQL_COMPARISONS[op]} ?"


def build_select(
    table: str,
    columns: Sequence[str] | None = None,
    condition: Mapping[str, Any] | None = None,
    sort: Mapping[str, Any] | None = None,
    limit: int | None = None,
    skip: int | None = None,
    dialect: str = "sqlite",
) -> tuple[str, list[Any]]:
    """Build a complete ``SELECT`` statement and its parameters."""
    cols = ", ".join(quote_identifier(c, dialect) for c in columns) if columns else "*"
    frag = translate_sql(condition, sort, limit, skip, dialect)
    return f"SELECT {cols} FROM {quote_identifier(table, dialect)}{frag.render()}", frag.params


# ---------------------------------------------------------------------------
# MongoDB
# ---------------------------------------------------------------------------


def _like_to_regex(pattern: str) -> str:
    out: list[str] = []
    for ch in pattern:
        if ch == "%":
            out.append(".*")
        elif ch == "_":
            out.append(".")
        else:
            out.append(re.escape(ch))
    return f"^{''.join(out)}$"


def translate_document(
    condition: Mapping[str, Any] | None = None,
    sort: Mapping[str, Any] | None = None,
    limit: int | None = None,
    skip: int | None = None,
    projection: Mapping[str, Any] | None = None,
) -> DocumentQuery:
    """Translate a condition object into a native MongoDB find specification."""
    flt: dict[str, Any] = {}
    for name, value in (condition or {}).items():
        if _is_operator_mapping(value):
            ops: dict[str, Any] = {}
            for key, operand in value.items():
                if key.startswith("$") and key[1:] not in OPERATORS:
                    ops[key] = operand
                    continue
                op = _operator_name(key)
                if op == "like":
                    ops["$regex"] = _like_to_regex(str(operand))
                elif op == "in":
                    ops["$in"] = list(operand)
                else:
                    ops[_MONGO_OPERATORS[op]] = operand
            flt[name] = ops
        else:
            flt[name] = value

    return DocumentQuery(
        filter=flt,
        sort=[(name, _direction(d)) for name, d in (sort or {}).items()],
        limit=_non_negative("limit", limit),
        skip=_non_negative("skip", skip),
        projection=dict(projection) if projection is not None else None,
    )


def translate(
    condition: Mapping[str, Any] | None = None,
    sort: Mapping[str, Any] | None = None,
    limit: int | None = None,
    skip: int | None = None,
    kind: BackendKind | str = BackendKind.SQLITE,
) -> SqlFragment | DocumentQuery:
    """Dispatch to :func:`translate_sql` or :func:`translate_document` by backend."""
    resolved = kind if isinstance(kind, BackendKind) else resolve_backend_kind(kind)
    if resolved is None:
        msg = f"Unknown backend kind: {kind!r}"
        raise ValueError(msg)
    if resolved is BackendKind.MONGO:
        return translate_document(condition, sort, limit, skip)
    return translate_sql(condition, sort, limit, skip, SQL_DIALECTS[resolved])
