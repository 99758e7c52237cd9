# File: dbgen/dialects/mysql.py
"""
dbgen - MySQL Adapter
=====================
Combines driver-level columns with the text of ``SHOW CREATE TABLE``.

The DDL is the only MySQL surface that reliably carries the
``AUTO_INCREMENT`` marker and the key definition, so each backtick-quoted
line of the statement is kept as the column's raw fragment and mined for
those markers.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

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
logger: logging.Logger = logging.getLogger("dbgen.dialects.mysql")

# ---------------------------------------------------------------------------
# DDL patterns
# ---------------------------------------------------------------------------

_COLUMN_LINE_RE: re.Pattern[str] = re.compile(r"^\s*`((?:[^`]|``)+)`\s+(.*?),?\s*$")
_PRIMARY_KEY_RE: re.Pattern[str] = re.compile(r"^\s*PRIMARY\s+KEY\s*\(([^)]*)\)", re.IGNORECASE)
_TYPE_TOKEN_RE: re.Pattern[str] = re.compile(r"^([a-z][a-z0-9_ ]*?(?:\([^)]*\))?)(?=\s|$)", re.IGNORECASE)
_DEFAULT_RE: re.Pattern[str] = re.compile(r"\bDEFAULT\s+('(?:[^']|'')*'|\S+)", re.IGNORECASE)


def quote_mysql_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def parse_mysql_create_table(ddl: str) -> Tuple[Dict[str, str], List[str]]:
    """
    Extract per-column fragments and primary-key columns from DDL text.

    Returns:
        ``(fragments, primary_keys)`` where *fragments* maps a column name to
        the remainder of its definition line.
    """
    fragments: Dict[str, str] = {}
    primary_keys: List[str] = []

    for line in ddl.splitlines():
        pk_match = _PRIMARY_KEY_RE.match(line)
        if pk_match:
            primary_keys = [
                part.strip().strip("`").replace("``", "`")
                for part in pk_match.group(1).split(",")
                if part.strip()
            ]
            continue

        col_match = _COLUMN_LINE_RE.match(line)
        if col_match:
            name: str = col_match.group(1).replace("``", "`")
            fragments[name] = col_match.group(2).strip()

    return fragments, primary_keys


def _fragment_type(fragment: str) -> Optional[str]:
    match = _TYPE_TOKEN_RE.match(fragment)
    return match.group(1).strip() if match else None


def _fragment_default(fragment: str) -> Optional[str]:
    match = _DEFAULT_RE.search(fragment)
    if not match:
        return None
    value: str = match.group(1).rstrip(",")
    if value.upper() == "NULL":
        return None
    return value


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class MySQLAdapter(DialectAdapter):
    """``SHOW CREATE TABLE`` + driver columns."""

    family = DatabaseFamily.MYSQL

    def _describe(
        self,
        connection: Connection,
        database_name: str,
        table_name: str,
    ) -> TableDescriptor:
        qualified: str = quote_mysql_identifier(table_name)
        if database_name:
            qualified = f"{quote_mysql_identifier(database_name)}.{qualified}"

        ddl: str = self._show_create_table(connection, qualified)
        fragments, primary_keys = parse_mysql_create_table(ddl)
        driver: List[DriverColumn] = self._driver_columns(
            connection, database_name or None, table_name
        )

        columns: List[ColumnDescriptor] = []
        for idx, col in enumerate(driver):
            fragment: str = fragments.get(col.name, "")
            if not fragment:
                logger.debug("No DDL fragment for %s.%s", table_name, col.name)
            marker: str = fragment.upper()

            declared: str = _fragment_type(fragment) or col.type_name
            normalized, length = parse_sql_type(declared)

            is_pk: bool = col.name in primary_keys
            nullable: bool = col.nullable and "NOT NULL" not in marker
            if is_pk:
                nullable = False

            raw_default: Optional[str] = col.default
            if raw_default is None and fragment:
                raw_default = _fragment_default(fragment)

            columns.append(ColumnDescriptor(
                name=col.name,
                ordinal_index=idx,
                normalized_type=normalized,
                declared_length=length,
                nullable=nullable,
                is_primary_key=is_pk,
                is_auto_increment="AUTO_INCREMENT" in marker,
                default_value=None if raw_default is None else cleanup_default(raw_default),
                raw_ddl_fragment=fragment,
                database_type=declared,
                comment=col.comment,
            ))

        return self._table(table_name, database_name, columns, ddl)

    def _show_create_table(self, connection: Connection, qualified: str) -> str:
        rows = self._fetch(
            connection,
            f"SHOW CREATE TABLE {qualified}",
            query="show-create-table",
        )
        if not rows:
            raise MetadataQueryError("SHOW CREATE TABLE returned no rows", query="show-create-table")
        row = rows[0]
        ddl: Optional[str] = row.get("Create Table")
        if ddl is None:
            # second column holds the DDL whatever the driver calls it
            values = list(row.values())
            ddl = values[1] if len(values) > 1 else None
        if not ddl:
            raise MetadataQueryError("SHOW CREATE TABLE returned no DDL", query="show-create-table")
        return str(ddl)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "MySQLAdapter",
    "parse_mysql_create_table",
    "quote_mysql_identifier",
]

logger.debug("dbgen.dialects.mysql loaded.")
