"""Schema-drift tolerant reads and writes.

Older deployments may lack optional columns (attendance.note, students.teacher,
...) or whole tables. Reads and writes drop an optional column named in an
"Unknown column" error and retry; a missing required column is escalated as
``SchemaDriftError``.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Optional, Sequence

import mysql.connector
from mysql.connector import errorcode

from utils.errors import SchemaDriftError

logger = logging.getLogger(__name__)

_UNKNOWN_COLUMN_RE = re.compile(r"unknown column '(?:[^'.]+\.)?`?([\w]+)`?'", re.IGNORECASE)


def column_name(expr: str) -> str:
    """``r.assigned_teachers AS teachers`` -> ``assigned_teachers``."""
    head = re.split(r"\s+as\s+", expr.strip(), flags=re.IGNORECASE)[0]
    return head.split(".")[-1].strip("`")


def missing_column(exc: BaseException) -> Optional[str]:
    if not isinstance(exc, mysql.connector.Error):
        return None
    if exc.errno != errorcode.ER_BAD_FIELD_ERROR:
        return None
    match = _UNKNOWN_COLUMN_RE.search(exc.msg or str(exc))
    return match.group(1) if match else None


def is_missing_table(exc: BaseException, table: Optional[str] = None) -> bool:
    if not isinstance(exc, mysql.connector.Error):
        return False
    if exc.errno != errorcode.ER_NO_SUCH_TABLE:
        return False
    if table is None:
        return True
    text = exc.msg or str(exc)
    return f".{table}'" in text or f"'{table}'" in text


def _drop_or_raise(exc: BaseException, table: str, optional: Iterable[str], dropped: set) -> None:
    column = missing_column(exc)
    if column is None:
        raise exc
    if column in set(optional) and column not in dropped:
        logger.warning("Table %s has no '%s' column; retrying without it", table, column)
        dropped.add(column)
        return
    raise SchemaDriftError(f"Table {table} is missing required column '{column}'.") from exc


def select_rows(
    cur,
    source: str,
    required: Sequence[str],
    optional: Sequence[str] = (),
    where: str = "",
    params: Sequence[Any] = (),
    order_by: str = "",
    table: Optional[str] = None,
    suffix: str = "",
) -> list[dict]:
    """SELECT ``required`` + ``optional`` expressions, shedding missing optional ones.

    ``cur`` must be a dictionary cursor. ``source`` is the FROM clause.
    """
    table = table or source.split()[0]
    optional_names = [column_name(expr) for expr in optional]
    dropped: set = set()
    while True:
        exprs = list(required) + [e for e in optional if column_name(e) not in dropped]
        sql = f"SELECT {', '.join(exprs)} FROM {source}"
        if where:
            sql += f" WHERE {where}"
        if order_by:
            sql += f" ORDER BY {order_by}"
        if suffix:
            sql += f" {suffix}"
        try:
            cur.execute(sql, tuple(params))
            return list(cur.fetchall() or [])
        except mysql.connector.Error as exc:
            _drop_or_raise(exc, table, optional_names, dropped)


def write_row(
    cur,
    table: str,
    payload: dict,
    optional: Iterable[str] = (),
    where: str = "",
    where_params: Sequence[Any] = (),
    dropped: Optional[set] = None,
) -> Optional[int]:
    """INSERT (or UPDATE when ``where`` is given) one row; returns ``lastrowid``.

    Pass the same ``dropped`` set across calls in a batch so a missing column
    is only discovered once.
    """
    optional = tuple(optional)
    dropped = dropped if dropped is not None else set()
    while True:
        data = {k: v for k, v in payload.items() if k not in dropped}
        if where:
            assignments = ", ".join(f"{k} = %s" for k in data)
            sql = f"UPDATE {table} SET {assignments} WHERE {where}"
            params = tuple(data.values()) + tuple(where_params)
        else:
            placeholders = ", ".join(["%s"] * len(data))
            sql = f"INSERT INTO {table} ({', '.join(data)}) VALUES ({placeholders})"
            params = tuple(data.values())
        try:
            cur.execute(sql, params)
            return cur.lastrowid
        except mysql.connector.Error as exc:
            _drop_or_raise(exc, table, optional, dropped)
