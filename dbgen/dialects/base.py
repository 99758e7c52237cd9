# File: dbgen/dialects/base.py
"""
dbgen - Dialect Adapter Base
============================
The capability interface every engine family implements, plus the helpers
the adapters share:

- ``load_driver_columns``: driver-level introspection through the
  SQLAlchemy inspector (name, nullability, declared type).  This is the floor
  of information every adapter starts from.
- ``parse_sql_type`` / ``cleanup_default``: normalisation of type names and
  default expressions.
- ``build_default_table_ddl``: documentation DDL for engines that do not
  hand back their own ``CREATE TABLE`` text.

DDL text is mined with targeted pattern extraction, never a general SQL
grammar.  All of that mining lives in the adapter modules so a structured
metadata source can replace it without touching the descriptor model.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import CompileError, SQLAlchemyError

from dbgen.errors import MetadataQueryError
from dbgen.models import ColumnDescriptor, DatabaseFamily, TableDescriptor

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.dialects")


# ---------------------------------------------------------------------------
# Driver-level column introspection
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DriverColumn:
    """What the driver itself reports about one column."""

    name: str
    type_name: str
    nullable: bool
    default: Optional[str] = None
    comment: str = ""


ColumnSource = Callable[[Connection, Optional[str], str], List[DriverColumn]]


def _type_name(col_type: Any, connection: Connection) -> str:
    """Render a reflected SQLAlchemy type as the engine spells it."""
    try:
        return str(col_type.compile(dialect=connection.dialect))
    except (CompileError, AttributeError):
        return type(col_type).__name__


def load_driver_columns(
    connection: Connection,
    schema: Optional[str],
    table_name: str,
) -> List[DriverColumn]:
    """
    Column name, nullability and declared type as reported by the driver.

    Raises:
        MetadataQueryError: the inspector could not reflect the table.
    """
    try:
        reflected: List[Dict[str, Any]] = inspect(connection).get_columns(
            table_name, schema=schema
        )
    except SQLAlchemyError as exc:
        raise MetadataQueryError(
            f"driver introspection failed: {exc}",
            query="driver-columns",
            table=table_name,
        ) from exc

    columns: List[DriverColumn] = []
    for col in reflected:
        default: Any = col.get("default")
        columns.append(DriverColumn(
            name=col["name"],
            type_name=_type_name(col["type"], connection),
            nullable=bool(col.get("nullable", False)),
            default=None if default is None else str(default),
            comment=col.get("comment") or "",
        ))
    return columns


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------


def parse_sql_type(db_type: str) -> Tuple[str, int]:
    """
    Split a declared type into its normalized name and declared length.

    Examples:
        >>> parse_sql_type("VARCHAR(20)")
        ('varchar', 20)
        >>> parse_sql_type("decimal(10,2)")
        ('decimal', -1)
        >>> parse_sql_type("TEXT")
        ('text', -1)
    """
    result: str = db_type.strip().lower()
    length: int = -1
    open_idx: int = result.find("(")
    close_idx: int = result.find(")")
    if open_idx > -1 and close_idx > open_idx:
        size: str = result[open_idx + 1:close_idx].strip()
        result = result[:open_idx]
        if size.isdigit():
            length = int(size)
    return " ".join(result.split()), length


def cleanup_default(value: str) -> str:
    """
    Strip engine-specific decoration from a column default.

    - one layer of enclosing parentheses at a time
    - a ``nextval('seq'::regclass)`` sequence call means "no explicit default"
    - a trailing ``::type`` cast
    - enclosing single quotes

    Examples:
        >>> cleanup_default("('active'::character varying)")
        'active'
        >>> cleanup_default("nextval('seq'::regclass)")
        ''
    """
    if len(value) < 2:
        return value

    if value.startswith("(") and value.endswith(")"):
        return cleanup_default(value[1:-1])

    if value.startswith("nextval(") and "::regclass)" in value:
        return ""

    cast_idx: int = value.rfind("::")
    if cast_idx > -1:
        return cleanup_default(value[:cast_idx])

    if value.startswith("'") and value.endswith("'"):
        return cleanup_default(value[1:-1])

    return value


def unwrap_table_name(table_name: str) -> str:
    """``[dbo.Orders]`` style bracketed names lose their brackets."""
    name: str = table_name.strip()
    if name.startswith("[") and name.endswith("]"):
        return name[1:-1]
    return name


def build_default_table_ddl(table_name: str, columns: Sequence[ColumnDescriptor]) -> str:
    """Readable stand-in DDL for engines that do not return their own."""
    lines: List[str] = [f"Table: {table_name}"]
    lines.extend(col.describe() for col in columns)
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Adapter interface
# ---------------------------------------------------------------------------


class DialectAdapter(abc.ABC):
    """
    Translate one engine family's metadata surface into a ``TableDescriptor``.

    Subclasses implement ``_describe``; ``describe_table`` wraps it so every
    failure surfaces as ``MetadataQueryError`` tagged with the table name and
    no partial descriptor ever escapes.
    """

    family: ClassVar[DatabaseFamily] = DatabaseFamily.UNKNOWN

    def __init__(self, column_source: Optional[ColumnSource] = None) -> None:
        self._column_source: ColumnSource = column_source or load_driver_columns

    def describe_table(
        self,
        connection: Connection,
        database_name: str,
        table_name: str,
    ) -> TableDescriptor:
        """Describe *table_name*; raises ``MetadataQueryError`` on failure."""
        name: str = unwrap_table_name(table_name)
        try:
            table: TableDescriptor = self._describe(connection, database_name, name)
        except MetadataQueryError as exc:
            raise exc.with_table(name)
        except ValueError as exc:
            # pydantic ValidationError: the engine reported inconsistent metadata
            raise MetadataQueryError(
                f"inconsistent column metadata: {exc}",
                query="descriptor",
                table=name,
            ) from exc

        logger.debug("Described %r via %s adapter.", table, self.family.value)
        return table

    @abc.abstractmethod
    def _describe(
        self,
        connection: Connection,
        database_name: str,
        table_name: str,
    ) -> TableDescriptor:
        """Engine-specific description."""

    # -----------------------------------------------------------------
    # Shared helpers
    # -----------------------------------------------------------------

    def _driver_columns(
        self,
        connection: Connection,
        schema: Optional[str],
        table_name: str,
    ) -> List[DriverColumn]:
        columns: List[DriverColumn] = self._column_source(connection, schema, table_name)
        if not columns:
            raise MetadataQueryError(
                "driver reported no columns",
                query="driver-columns",
                table=table_name,
            )
        return columns

    @staticmethod
    def _fetch(
        connection: Connection,
        sql: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        query: str,
    ) -> List[Mapping[str, Any]]:
        """Run one metadata query and return its rows as mappings."""
        try:
            result = connection.execute(text(sql), params or {})
            return list(result.mappings().all())
        except SQLAlchemyError as exc:
            raise MetadataQueryError(
                f"metadata query failed: {exc}",
                query=query,
            ) from exc

    def _table(
        self,
        table_name: str,
        database_name: str,
        columns: List[ColumnDescriptor],
        raw_ddl: str,
        *,
        primary_key_inferred: bool = False,
    ) -> TableDescriptor:
        return TableDescriptor(
            name=table_name,
            columns=columns,
            raw_ddl=raw_ddl,
            database_family=self.family,
            database_name=database_name,
            primary_key_inferred=primary_key_inferred,
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DriverColumn",
    "ColumnSource",
    "load_driver_columns",
    "parse_sql_type",
    "cleanup_default",
    "unwrap_table_name",
    "build_default_table_ddl",
    "DialectAdapter",
]

logger.debug("dbgen.dialects.base loaded.")
