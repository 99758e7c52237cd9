# File: dbgen/sqlgen.py
"""
dbgen - SQL Statement Generator
===============================
Parameterized CRUD statements derived from a ``TableDescriptor``.

All statements use ``$n`` placeholders, 1-based and strictly increasing in
column order.  Every generator raises ``NoPrimaryKeyError`` for a table
without a primary-key column and never returns partial text.

Identifiers are emitted bare when they are plain identifiers and
double-quoted otherwise; no other dialect-specific quoting is applied.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from dbgen.errors import NoPrimaryKeyError
from dbgen.models import ColumnDescriptor, TableDescriptor
from dbgen.utils import is_plain_identifier

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.sqlgen")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def quote_identifier(name: str) -> str:
    if is_plain_identifier(name):
        return name
    return '"' + name.replace('"', '""') + '"'


def primary_key_names(table: TableDescriptor) -> List[str]:
    return [c.name for c in table.primary_key_columns]


def non_primary_key_names(table: TableDescriptor) -> List[str]:
    return [c.name for c in table.non_primary_key_columns]


def _require_primary_key(table: TableDescriptor) -> List[ColumnDescriptor]:
    keys: List[ColumnDescriptor] = table.primary_key_columns
    if not keys:
        raise NoPrimaryKeyError(table.name)
    return keys


def _predicates(columns: Sequence[ColumnDescriptor], start: int) -> str:
    """``a = $start AND b = $start+1 ...``"""
    return " AND ".join(
        f"{quote_identifier(col.name)} = ${start + offset}"
        for offset, col in enumerate(columns)
    )


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


def generate_delete_sql(table: TableDescriptor) -> str:
    """``DELETE FROM t WHERE pk1 = $1 AND pk2 = $2``"""
    keys: List[ColumnDescriptor] = _require_primary_key(table)
    return f"DELETE FROM {quote_identifier(table.name)} WHERE {_predicates(keys, 1)}"


def generate_update_sql(table: TableDescriptor) -> str:
    """
    ``UPDATE t SET a = $1, b = $2 WHERE pk = $3``

    Non-key columns fill the SET clause in column order and the key columns
    continue the numbering in the WHERE clause, so the placeholder count is
    always ``len(table.columns)``.  A table made only of key columns assigns
    each key to itself so the statement stays valid.
    """
    keys: List[ColumnDescriptor] = _require_primary_key(table)
    others: List[ColumnDescriptor] = table.non_primary_key_columns

    if others:
        assignments: str = ", ".join(
            f"{quote_identifier(col.name)} = ${idx}"
            for idx, col in enumerate(others, start=1)
        )
    else:
        assignments = ", ".join(
            f"{quote_identifier(col.name)} = {quote_identifier(col.name)}" for col in keys
        )

    where: str = _predicates(keys, len(others) + 1)
    return f"UPDATE {quote_identifier(table.name)} SET {assignments} WHERE {where}"


def generate_insert_sql(table: TableDescriptor) -> str:
    """
    ``INSERT INTO t (a, b) VALUES ($1, $2)``

    Auto-increment columns are left out of both lists.
    """
    _require_primary_key(table)
    columns: List[ColumnDescriptor] = [c for c in table.columns if not c.is_auto_increment]
    if not columns:
        return f"INSERT INTO {quote_identifier(table.name)} DEFAULT VALUES"

    names: str = ", ".join(quote_identifier(c.name) for c in columns)
    placeholders: str = ", ".join(f"${idx}" for idx in range(1, len(columns) + 1))
    return f"INSERT INTO {quote_identifier(table.name)} ({names}) VALUES ({placeholders})"


def generate_select_one_sql(table: TableDescriptor) -> str:
    """``SELECT * FROM t WHERE pk1 = $1 AND pk2 = $2``"""
    keys: List[ColumnDescriptor] = _require_primary_key(table)
    return f"SELECT * FROM {quote_identifier(table.name)} WHERE {_predicates(keys, 1)}"


def generate_select_many_sql(table: TableDescriptor) -> str:
    """``SELECT * FROM t``"""
    _require_primary_key(table)
    return f"SELECT * FROM {quote_identifier(table.name)}"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "quote_identifier",
    "primary_key_names",
    "non_primary_key_names",
    "generate_delete_sql",
    "generate_update_sql",
    "generate_insert_sql",
    "generate_select_one_sql",
    "generate_select_many_sql",
]

logger.debug("dbgen.sqlgen loaded.")
