# File: dbgen/dialects/__init__.py
"""
dbgen - Dialect Adapters
========================
One adapter per engine family, all producing ``TableDescriptor`` instances.

Usage::

    from dbgen.dialects import get_adapter

    adapter = get_adapter("postgresql")
    with engine.connect() as conn:
        table = adapter.describe_table(conn, "public", "users")
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Type, Union

from dbgen.dialects.base import (
    ColumnSource,
    DialectAdapter,
    DriverColumn,
    build_default_table_ddl,
    cleanup_default,
    load_driver_columns,
    parse_sql_type,
    unwrap_table_name,
)
from dbgen.dialects.fallback import FallbackAdapter
from dbgen.dialects.mssql import MSSQLAdapter
from dbgen.dialects.mysql import MySQLAdapter, parse_mysql_create_table
from dbgen.dialects.postgres import PostgresAdapter
from dbgen.dialects.sqlite import SQLiteAdapter, parse_sqlite_create_table
from dbgen.models import DatabaseFamily

logger: logging.Logger = logging.getLogger("dbgen.dialects")

_ADAPTERS: Dict[DatabaseFamily, Type[DialectAdapter]] = {
    DatabaseFamily.MYSQL: MySQLAdapter,
    DatabaseFamily.POSTGRESQL: PostgresAdapter,
    DatabaseFamily.SQLITE: SQLiteAdapter,
    DatabaseFamily.MSSQL: MSSQLAdapter,
    DatabaseFamily.UNKNOWN: FallbackAdapter,
}


def get_adapter(
    family: Union[DatabaseFamily, str],
    *,
    column_source: Optional[ColumnSource] = None,
) -> DialectAdapter:
    """
    Instantiate the adapter for *family*.

    Unrecognised engine names get the fallback adapter rather than an error.
    """
    resolved: DatabaseFamily = (
        DatabaseFamily(family) if isinstance(family, DatabaseFamily) else DatabaseFamily.parse(family)
    )
    adapter_cls: Type[DialectAdapter] = _ADAPTERS.get(resolved, FallbackAdapter)
    logger.debug("Using %s for family %s", adapter_cls.__name__, resolved.value)
    return adapter_cls(column_source=column_source)


def available_families() -> List[str]:
    return [f.value for f in _ADAPTERS]


__all__: List[str] = [
    "ColumnSource",
    "DialectAdapter",
    "DriverColumn",
    "FallbackAdapter",
    "MSSQLAdapter",
    "MySQLAdapter",
    "PostgresAdapter",
    "SQLiteAdapter",
    "available_families",
    "build_default_table_ddl",
    "cleanup_default",
    "get_adapter",
    "load_driver_columns",
    "parse_mysql_create_table",
    "parse_sql_type",
    "parse_sqlite_create_table",
    "unwrap_table_name",
]
