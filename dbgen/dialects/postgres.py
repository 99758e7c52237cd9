# File: dbgen/dialects/postgres.py
"""
dbgen - PostgreSQL Adapter
==========================
Driver columns merged by name with ``information_schema.columns`` and a
primary-key constraint join.

PostgreSQL does not hand back ``CREATE TABLE`` text, so the descriptor's
DDL is the readable stand-in from ``build_default_table_ddl``.  The database
name is used as the schema to inspect (``public`` when blank).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Set

from sqlalchemy.engine import Connection

from dbgen.dialects.base import (
    DialectAdapter,
    DriverColumn,
    build_default_table_ddl,
    cleanup_default,
    parse_sql_type,
)
from dbgen.models import ColumnDescriptor, DatabaseFamily, TableDescriptor

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.dialects.postgres")

DEFAULT_SCHEMA: str = "public"

COLUMN_INFO_SQL: str = """
SELECT c.column_name,
       c.is_nullable,
       c.is_identity,
       c.character_maximum_length,
       c.column_default,
       c.data_type,
       c.udt_name
FROM information_schema.columns AS c
WHERE c.table_schema = :schema
  AND c.table_name = :table
ORDER BY c.ordinal_position
"""

PRIMARY_KEY_SQL: str = """
SELECT kcu.column_name
FROM information_schema.table_constraints AS tc
JOIN information_schema.key_column_usage AS kcu
  ON tc.constraint_name = kcu.constraint_name
 AND tc.table_schema = kcu.table_schema
 AND tc.table_name = kcu.table_name
WHERE tc.constraint_type = 'PRIMARY KEY'
  AND tc.table_schema = :schema
  AND tc.table_name = :table
ORDER BY kcu.ordinal_position
"""


def _is_yes(value: Any) -> bool:
    return str(value or "").strip().upper() == "YES"


class PostgresAdapter(DialectAdapter):
    """information_schema + driver columns."""

    family = DatabaseFamily.POSTGRESQL

    def _describe(
        self,
        connection: Connection,
        database_name: str,
        table_name: str,
    ) -> TableDescriptor:
        schema: str = database_name or DEFAULT_SCHEMA
        params: Dict[str, str] = {"schema": schema, "table": table_name}

        driver: List[DriverColumn] = self._driver_columns(connection, schema, table_name)
        info: Dict[str, Mapping[str, Any]] = {
            row["column_name"]: row
            for row in self._fetch(connection, COLUMN_INFO_SQL, params, query="column-info")
        }
        primary_keys: Set[str] = {
            row["column_name"]
            for row in self._fetch(connection, PRIMARY_KEY_SQL, params, query="primary-key")
        }

        columns: List[ColumnDescriptor] = []
        for idx, col in enumerate(driver):
            columns.append(self._column(idx, col, info.get(col.name), col.name in primary_keys))

        raw_ddl: str = build_default_table_ddl(table_name, columns)
        return self._table(table_name, schema, columns, raw_ddl)

    def _column(
        self,
        idx: int,
        col: DriverColumn,
        row: Optional[Mapping[str, Any]],
        is_pk: bool,
    ) -> ColumnDescriptor:
        if row is None:
            logger.warning("Column %s missing from information_schema; using driver data.", col.name)
            normalized, length = parse_sql_type(col.type_name)
            return ColumnDescriptor(
                name=col.name,
                ordinal_index=idx,
                normalized_type=normalized,
                declared_length=length,
                nullable=col.nullable and not is_pk,
                is_primary_key=is_pk,
                database_type=col.type_name,
                comment=col.comment,
            )

        udt_name: str = str(row.get("udt_name") or col.type_name)
        is_array: bool = udt_name.startswith("_")
        normalized, length = parse_sql_type(udt_name.lstrip("_"))
        max_length: Any = row.get("character_maximum_length")
        if max_length is not None:
            length = int(max_length)

        raw_default: Optional[str] = row.get("column_default")
        if raw_default is None:
            raw_default = col.default
        default: Optional[str] = None if raw_default is None else cleanup_default(raw_default)

        auto_increment: bool = _is_yes(row.get("is_identity"))
        if is_pk and not auto_increment and raw_default is not None:
            # serial columns: nextval() sequence or other function default
            auto_increment = raw_default.startswith("nextval(") or "()" in (default or "")

        return ColumnDescriptor(
            name=col.name,
            ordinal_index=idx,
            normalized_type=normalized,
            declared_length=length,
            nullable=_is_yes(row.get("is_nullable")) and not is_pk,
            is_primary_key=is_pk,
            is_auto_increment=auto_increment,
            default_value=default,
            database_type=udt_name,
            is_array=is_array,
            comment=col.comment,
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "PostgresAdapter",
    "DEFAULT_SCHEMA",
    "COLUMN_INFO_SQL",
    "PRIMARY_KEY_SQL",
]

logger.debug("dbgen.dialects.postgres loaded.")
