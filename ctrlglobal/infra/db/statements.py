from __future__ import annotations

import re
from typing import Any, Mapping, Sequence

from ctrlglobal.domain.error_codes import ErrorCode
from ctrlglobal.errors import StatementError

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_NAME_START = re.compile(r"[A-Za-z_]")
_NAME_CHAR = re.compile(r"[A-Za-z0-9_]")

Statement = tuple[str, list[Any]]


def requireIdentifier(name: str) -> str:
    """Имя таблицы/колонки: name или schema.name, иначе StatementError."""
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise StatementError(
            f"Invalid SQL identifier: {name!r}",
            code=ErrorCode.INVALID_IDENTIFIER,
            details={"identifier": name},
        )
    return name


def _requireFields(fields: Mapping[str, Any], what: str) -> list[str]:
    if not fields:
        raise StatementError(f"{what} must not be empty", code=ErrorCode.EMPTY_FIELDS)
    return [requireIdentifier(col) for col in fields.keys()]


def _alignRows(rows: Sequence[Mapping[str, Any]], what: str) -> tuple[list[str], list[Any]]:
    """
    Назначение:
        Колонки берутся из первой строки; каждая следующая строка обязана
        иметь тот же набор ключей. Значения связываются в порядке колонок
        первой строки, а не в порядке ключей конкретной строки.
    """
    columns = _requireFields(rows[0], what)
    expected = set(columns)
    params: list[Any] = []
    for idx, row in enumerate(rows):
        if set(row.keys()) != expected:
            raise StatementError(
                f"{what} at index {idx} has columns {sorted(row.keys())}, expected {sorted(expected)}",
                code=ErrorCode.HETEROGENEOUS_ROWS,
                details={"index": idx},
            )
        params.extend(row[col] for col in columns)
    return columns, params


def _conditions(columns: list[str]) -> str:
    return " AND ".join(f"{col} = ?" for col in columns)


def buildInsert(table: str, fields: Mapping[str, Any]) -> Statement:
    columns = _requireFields(fields, "fields")
    placeholders = ", ".join("?" for _ in columns)
    sql = f"INSERT INTO {requireIdentifier(table)} ({', '.join(columns)}) VALUES ({placeholders})"
    return sql, list(fields.values())


def buildInsertMany(table: str, rows: Sequence[Mapping[str, Any]]) -> Statement:
    columns, params = _alignRows(rows, "row")
    group = "(" + ", ".join("?" for _ in columns) + ")"
    sql = "INSERT INTO {} ({}) VALUES {}".format(
        requireIdentifier(table),
        ", ".join(columns),
        ", ".join(group for _ in rows),
    )
    return sql, params


def buildUpdate(table: str, fields: Mapping[str, Any], conditions: Mapping[str, Any]) -> Statement:
    setColumns = _requireFields(fields, "fields")
    whereColumns = _requireFields(conditions, "conditions")
    sql = "UPDATE {} SET {} WHERE {}".format(
        requireIdentifier(table),
        ", ".join(f"{col} = ?" for col in setColumns),
        _conditions(whereColumns),
    )
    return sql, list(fields.values()) + list(conditions.values())


def buildDelete(table: str, conditions: Mapping[str, Any]) -> Statement:
    whereColumns = _requireFields(conditions, "conditions")
    sql = f"DELETE FROM {requireIdentifier(table)} WHERE {_conditions(whereColumns)}"
    return sql, list(conditions.values())


def buildDeleteMany(table: str, groups: Sequence[Mapping[str, Any]]) -> Statement:
    columns, params = _alignRows(groups, "condition group")
    group = f"({_conditions(columns)})"
    sql = "DELETE FROM {} WHERE {}".format(
        requireIdentifier(table),
        " OR ".join(group for _ in groups),
    )
    return sql, params


def normalizeNamedParams(params: Mapping[str, Any]) -> dict[str, Any]:
    """Ключи вида ':role' приводятся к 'role'."""
    return {str(k).lstrip(":"): v for k, v in params.items()}


def toPyformat(sql: str) -> str:
    """
    Назначение:
        Переписывает плейсхолдеры '?' и ':name' в '%s' и '%(name)s'
        для драйверов с paramstyle=pyformat (PyMySQL, psycopg2).

    Алгоритм:
        - Содержимое строковых литералов и quoted-идентификаторов
          ('...', "...", `...`) не трогается.
        - '::' (cast в PostgreSQL) не считается плейсхолдером.
        - Внутри '...' и "..." обратный слеш экранирует следующий символ (MySQL).
        - Литеральный '%' удваивается.
    """
    out: list[str] = []
    i = 0
    n = len(sql)
    quote: str | None = None
    while i < n:
        ch = sql[i]
        if quote:
            if ch == "\\" and quote != "`" and i + 1 < n:
                nxt = sql[i + 1]
                out.append("\\" + ("%%" if nxt == "%" else nxt))
                i += 2
                continue
            out.append("%%" if ch == "%" else ch)
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch in ("'", '"', "`"):
            quote = ch
            out.append(ch)
        elif ch == "%":
            out.append("%%")
        elif ch == "?":
            out.append("%s")
        elif ch == ":" and i + 1 < n and sql[i + 1] == ":":
            out.append("::")
            i += 2
            continue
        elif ch == ":" and i + 1 < n and _NAME_START.match(sql[i + 1]):
            j = i + 1
            while j < n and _NAME_CHAR.match(sql[j]):
                j += 1
            out.append(f"%({sql[i + 1:j]})s")
            i = j
            continue
        else:
            out.append(ch)
        i += 1
    return "".join(out)
