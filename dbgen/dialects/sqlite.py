# File: dbgen/dialects/sqlite.py
"""
dbgen - SQLite Adapter
======================
Combines three sources, in increasing order of authority:

1. driver columns (name, order, declared type),
2. the ``CREATE TABLE`` text stored in ``sqlite_master``, split into
   per-column fragments (``AUTOINCREMENT`` only lives here),
3. ``PRAGMA table_info`` flags, which win whenever they are present.

A primary-key column is always non-null, even though SQLite itself allows
NULL in non-integer keys.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.engine import Connection

from dbgen.dialects.base import (
    DialectAdapter,
    DriverColumn,
    cleanup_default,
    parse_sql_type,
)
from dbgen.errors import MetadataQueryError
from dbgen.models import ColumnDescriptor, DatabaseFamily, TableDescriptor

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.dialects.sqlite")

MASTER_SQL: str = "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :table"

_TABLE_CONSTRAINT_RE: re.Pattern[str] = re.compile(
    r"^(?:CONSTRAINT|PRIMARY\s+KEY|FOREIGN\s+KEY|UNIQUE|CHECK)\b", re.IGNORECASE
)

_NAME_RE: re.Pattern[str] = re.compile(
    r'^\s*(?:"((?:[^"]|"")+)"|\[([^\]]+)\]|`((?:[^`]|``)+)`|([^\s(]+))\s*(.*)$',
    re.DOTALL,
)
_TYPE_TOKEN_RE: re.Pattern[str] = re.compile(r"^([a-z][a-z0-9_ ]*?(?:\([^)]*\))?)(?=\s|$)", re.IGNORECASE)
_DEFAULT_RE: re.Pattern[str] = re.compile(r"\bDEFAULT\s+('(?:[^']|'')*'|\([^)]*\)|\S+)", re.IGNORECASE)

_CLOSING_QUOTE: Dict[str, str] = {"'": "'", '"': '"', "`": "`", "[": "]"}


def strip_sql_comments(sql: str) -> str:
    """
    Remove ``-- ...`` and ``/* ... */`` comments that sit outside quotes.

    A line comment keeps its newline and a block comment becomes one space,
    so neighbouring tokens stay apart.
    """
    out: List[str] = []
    closing: Optional[str] = None
    i: int = 0
    n: int = len(sql)

    while i < n:
        ch: str = sql[i]
        if closing is not None:
            out.append(ch)
            if ch == closing:
                closing = None
            i += 1
            continue
        if sql.startswith("--", i):
            newline: int = sql.find("\n", i)
            i = n if newline == -1 else newline
            continue
        if sql.startswith("/*", i):
            end: int = sql.find("*/", i + 2)
            out.append(" ")
            i = n if end == -1 else end + 2
            continue
        if ch in _CLOSING_QUOTE:
            closing = _CLOSING_QUOTE[ch]
        out.append(ch)
        i += 1

    return "".join(out)


def _column_body(ddl: str) -> str:
    """Text between the outermost parentheses of a CREATE TABLE statement."""
    ddl = strip_sql_comments(ddl)
    start: int = ddl.find("(")
    end: int = ddl.rfind(")")
    if start == -1 or end <= start:
        return ""
    return ddl[start + 1:end]


def split_top_level(body: str) -> List[str]:
    """Split on commas that are outside parentheses and quoted names."""
    parts: List[str] = []
    buf: List[str] = []
    depth: int = 0
    closing: Optional[str] = None

    for ch in body:
        buf.append(ch)
        if closing is not None:
            if ch == closing:
                closing = None
            continue
        if ch in _CLOSING_QUOTE:
            closing = _CLOSING_QUOTE[ch]
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            buf.pop()
            parts.append("".join(buf).strip())
            buf = []

    tail: str = "".join(buf).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


def parse_sqlite_create_table(ddl: str) -> Dict[str, str]:
    """Map each column name to the rest of its definition text."""
    fragments: Dict[str, str] = {}
    for part in split_top_level(_column_body(ddl)):
        if _TABLE_CONSTRAINT_RE.match(part):
            continue
        match = _NAME_RE.match(part)
        if not match:
            continue
        quoted_dq, bracketed, backticked, bare = match.groups()[:4]
        if quoted_dq is not None:
            name = quoted_dq.replace('""', '"')
        elif backticked is not None:
            name = backticked.replace("``", "`")
        else:
            name = bracketed if bracketed is not None else bare
        fragments[name] = match.group(5).strip()
    return fragments


def _pragma_sql(table_name: str) -> str:
    # PRAGMA arguments cannot be bound parameters
    return 'PRAGMA table_info("' + table_name.replace('"', '""') + '")'


class SQLiteAdapter(DialectAdapter):
    """sqlite_master DDL + PRAGMA table_info + driver columns."""

    family = DatabaseFamily.SQLITE

    def _describe(
        self,
        connection: Connection,
        database_name: str,
        table_name: str,
    ) -> TableDescriptor:
        master = self._fetch(connection, MASTER_SQL, {"table": table_name}, query="sqlite-master")
        if not master or master[0].get("sql") is None:
            raise MetadataQueryError("table not found in sqlite_master", query="sqlite-master")
        ddl: str = str(master[0]["sql"])

        fragments: Dict[str, str] = parse_sqlite_create_table(ddl)
        pragma: Dict[str, Mapping[str, Any]] = {
            row["name"]: row
            for row in self._fetch(connection, _pragma_sql(table_name), query="table-info")
        }
        driver: List[DriverColumn] = self._driver_columns(connection, None, table_name)

        columns: List[ColumnDescriptor] = [
            self._column(idx, col, fragments.get(col.name, ""), pragma.get(col.name))
            for idx, col in enumerate(driver)
        ]
        return self._table(table_name, database_name, columns, ddl)

    @staticmethod
    def _column(
        idx: int,
        col: DriverColumn,
        fragment: str,
        info: Optional[Mapping[str, Any]],
    ) -> ColumnDescriptor:
        marker: str = fragment.upper()
        type_match = _TYPE_TOKEN_RE.match(fragment)
        fragment_type: str = type_match.group(1).strip() if type_match else ""

        if info is not None:
            declared: str = str(info.get("type") or "") or fragment_type or col.type_name
            nullable: bool = not bool(info.get("notnull"))
            is_pk: bool = int(info.get("pk") or 0) > 0
            raw_default: Optional[str] = info.get("dflt_value")
        else:
            declared = fragment_type or col.type_name
            nullable = col.nullable and "NOT NULL" not in marker
            is_pk = "PRIMARY KEY" in marker
            default_match = _DEFAULT_RE.search(fragment)
            raw_default = default_match.group(1) if default_match else None

        if raw_default is None and col.default is not None:
            raw_default = col.default

        normalized, length = parse_sql_type(declared)
        return ColumnDescriptor(
            name=col.name,
            ordinal_index=idx,
            normalized_type=normalized,
            declared_length=length,
            nullable=nullable and not is_pk,
            is_primary_key=is_pk,
            is_auto_increment="AUTOINCREMENT" in marker,
            default_value=None if raw_default is None else cleanup_default(str(raw_default)),
            raw_ddl_fragment=fragment,
            database_type=declared,
            comment=col.comment,
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "SQLiteAdapter",
    "parse_sqlite_create_table",
    "split_top_level",
    "strip_sql_comments",
]

logger.debug("dbgen.dialects.sqlite loaded.")
