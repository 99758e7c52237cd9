# File: dbgen/errors.py
"""
dbgen - Error Hierarchy
=======================

Every failure the pipeline can surface is a ``DBGenError`` subclass.  Errors
that are fatal for a single table carry the table name so a multi-table run
can report partial success::

    DBGenError
    ├── DatabaseConnectionError     fatal for the whole run
    ├── MetadataQueryError          fatal for one table
    ├── NoPrimaryKeyError           fatal for statement generation only
    ├── UnknownTypeError            recovered by skipping the field
    ├── ModelBuildError             fatal for one table
    ├── MappingLoadError            fatal before generation starts
    ├── ConfigError                 fatal before generation starts
    ├── TemplateLoadError           fatal for one render call
    │   └── MissingSubTemplateError
    ├── UnresolvedBindingError      fatal for one render call
    ├── SourceFormatError           reported, nothing written
    └── OutputWriteError            reported, next artifact continues

No error kind is retried.
"""

from __future__ import annotations

import logging
from typing import List, Optional

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.errors")


class DBGenError(Exception):
    """Base class for all dbgen failures."""

    def __init__(self, message: str, *, table: Optional[str] = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.table: Optional[str] = table

    def with_table(self, table: str) -> "DBGenError":
        """Attach a table name if none is set yet and return ``self``."""
        if self.table is None:
            self.table = table
        return self

    def __str__(self) -> str:
        if self.table:
            return f"[table {self.table}] {self.message}"
        return self.message


# ---------------------------------------------------------------------------
# Database side
# ---------------------------------------------------------------------------


class DatabaseConnectionError(DBGenError):
    """The database could not be opened or pinged."""


class MetadataQueryError(DBGenError):
    """A dialect adapter metadata query failed."""

    def __init__(
        self,
        message: str,
        *,
        query: str,
        table: Optional[str] = None,
    ) -> None:
        super().__init__(message, table=table)
        self.query: str = query

    def __str__(self) -> str:
        return f"{super().__str__()} (query: {self.query})"


class NoPrimaryKeyError(DBGenError):
    """Statement generation needs at least one primary-key column."""

    def __init__(self, table: str) -> None:
        super().__init__("table has no primary key column", table=table)


class UnknownTypeError(DBGenError):
    """A column's normalized type has no target type mapping."""

    def __init__(self, sql_type: str, *, column: str, table: Optional[str] = None) -> None:
        super().__init__(
            f"no type mapping for column '{column}' of type '{sql_type}'",
            table=table,
        )
        self.sql_type: str = sql_type
        self.column: str = column


class ModelBuildError(DBGenError):
    """A render-ready model could not be derived from a table descriptor."""


# ---------------------------------------------------------------------------
# Configuration side
# ---------------------------------------------------------------------------


class MappingLoadError(DBGenError):
    """A type mapping payload was malformed; no override was applied."""


class ConfigError(DBGenError):
    """A configuration or context file could not be loaded."""


# ---------------------------------------------------------------------------
# Rendering side
# ---------------------------------------------------------------------------


class TemplateLoadError(DBGenError):
    """A template could not be loaded or parsed."""

    def __init__(
        self,
        message: str,
        *,
        template: str,
        table: Optional[str] = None,
    ) -> None:
        super().__init__(message, table=table)
        self.template: str = template


class MissingSubTemplateError(TemplateLoadError):
    """A composite template is missing one of its per-operation parts."""

    def __init__(
        self,
        template: str,
        sub_template: str,
        *,
        table: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"composite template '{template}' requires missing "
            f"sub-template '{sub_template}'",
            template=template,
            table=table,
        )
        self.sub_template: str = sub_template


class UnresolvedBindingError(DBGenError):
    """A template referenced a name that is not bound in its context."""


class SourceFormatError(DBGenError):
    """Rendered output could not be reformatted as valid source."""

    def __init__(self, message: str, *, path: str, table: Optional[str] = None) -> None:
        super().__init__(message, table=table)
        self.path: str = path


class OutputWriteError(DBGenError):
    """Writing an output file failed."""

    def __init__(self, message: str, *, path: str, table: Optional[str] = None) -> None:
        super().__init__(message, table=table)
        self.path: str = path


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DBGenError",
    "DatabaseConnectionError",
    "MetadataQueryError",
    "NoPrimaryKeyError",
    "UnknownTypeError",
    "ModelBuildError",
    "MappingLoadError",
    "ConfigError",
    "TemplateLoadError",
    "MissingSubTemplateError",
    "UnresolvedBindingError",
    "SourceFormatError",
    "OutputWriteError",
]

logger.debug("dbgen.errors loaded.")
