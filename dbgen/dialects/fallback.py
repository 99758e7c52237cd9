# File: dbgen/dialects/fallback.py
"""
dbgen - Fallback Adapter
========================
Driver-level introspection only, for engines without a dedicated adapter.

With no key metadata available the first column (ordinal 0) is taken as the
primary key.  That guess is flagged on the descriptor
(``primary_key_inferred``) and in the column notes so generated code can be
reviewed.  Auto-increment is never detected.
"""

from __future__ import annotations

import logging
from typing import List, Optional

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
logger: logging.Logger = logging.getLogger("dbgen.dialects.fallback")

INFERRED_KEY_NOTE: str = "primary key inferred from column position"


class FallbackAdapter(DialectAdapter):
    """Ordinal-0 primary key heuristic over driver columns."""

    family = DatabaseFamily.UNKNOWN

    def _schema(self, database_name: str) -> Optional[str]:
        return None

    def _describe(
        self,
        connection: Connection,
        database_name: str,
        table_name: str,
    ) -> TableDescriptor:
        driver: List[DriverColumn] = self._driver_columns(
            connection, self._schema(database_name), table_name
        )

        columns: List[ColumnDescriptor] = []
        for idx, col in enumerate(driver):
            is_pk: bool = idx == 0
            normalized, length = parse_sql_type(col.type_name)
            columns.append(ColumnDescriptor(
                name=col.name,
                ordinal_index=idx,
                normalized_type=normalized,
                declared_length=length,
                nullable=col.nullable and not is_pk,
                is_primary_key=is_pk,
                is_auto_increment=False,
                default_value=None if col.default is None else cleanup_default(col.default),
                database_type=col.type_name,
                comment=col.comment,
                notes=INFERRED_KEY_NOTE if is_pk else "",
            ))

        logger.warning(
            "Table %s: primary key inferred as first column %r (%s adapter).",
            table_name,
            columns[0].name,
            self.family.value,
        )
        raw_ddl: str = build_default_table_ddl(table_name, columns)
        return self._table(
            table_name, database_name, columns, raw_ddl, primary_key_inferred=True
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = ["FallbackAdapter", "INFERRED_KEY_NOTE"]

logger.debug("dbgen.dialects.fallback loaded.")
