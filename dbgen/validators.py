# File: dbgen/validators.py
"""
dbgen - Descriptor & Configuration Validators
=============================================
Checks that run over ``TableDescriptor`` objects and the
``GeneratorConfig`` before rendering starts.

Pydantic's validators already guarantee structural correctness (contiguous
ordinals, unique column names).  This module adds the **semantic** checks a
generation run cares about: missing or guessed primary keys, columns the
type table cannot map, identifiers that need quoting, and naming templates
that do not yield valid Python names.

Nothing here raises; every function returns a ``ValidationResult``.

Usage::

    from dbgen.validators import validate_full
    result = validate_full(tables, config, mapper)
    if not result.is_valid:
        print(result.format_report())
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set

from dbgen.errors import DBGenError
from dbgen.models import GeneratorConfig, TableDescriptor
from dbgen.templates import render_name
from dbgen.typemap import TypeMapper
from dbgen.utils import is_plain_identifier

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.validators")

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationIssue:
    """Lightweight issue descriptor (no Pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning" | "info"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationResult:
    """Accumulates ``ValidationIssue`` instances."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationIssue] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._items.append(ValidationIssue("error", code, message, context))

    def add_warning(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._items.append(ValidationIssue("warning", code, message, context))

    def add_info(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._items.append(ValidationIssue("info", code, message, context))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_warning]

    @property
    def all_items(self) -> List[ValidationIssue]:
        return list(self._items)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self._items if e.is_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for e in self._items if e.is_warning)

    @property
    def is_valid(self) -> bool:
        return self.error_count == 0

    def codes(self) -> Set[str]:
        return {e.code for e in self._items}

    def summary(self) -> str:
        return (
            f"Validation: {self.error_count} error(s), "
            f"{self.warning_count} warning(s), "
            f"{len(self._items)} total item(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def format_report(self, include_info: bool = False) -> str:
        """Human-readable multi-line report."""
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            if not include_info and item.level == "info":
                continue
            prefix: str = {
                "error": "❌",
                "warning": "⚠️",
                "info": "ℹ️",
            }.get(item.level, "•")
            lines.append(f"  {prefix} [{item.code}] {item.message}")
            for k, v in item.context.items():
                lines.append(f"       {k}: {v}")
        return "\n".join(lines)


# SQL words that are legal column names in some engines but read badly
_SQL_RESERVED_WORDS: FrozenSet[str] = frozenset({
    "select", "insert", "update", "delete", "from", "where", "order",
    "group", "by", "table", "column", "index", "key", "primary", "user",
    "default", "check", "values", "limit", "offset", "join", "on",
})


# ---------------------------------------------------------------------------
# Table checks
# ---------------------------------------------------------------------------


def validate_table(table: TableDescriptor, mapper: TypeMapper) -> ValidationResult:
    """Semantic checks for a single table descriptor."""
    result: ValidationResult = ValidationResult()
    ctx: Dict[str, Any] = {"table": table.name}

    if not table.columns:
        result.add_error("EMPTY_TABLE", f"Table '{table.name}' has no columns.", ctx)
        return result

    if not table.has_primary_key:
        result.add_warning(
            "NO_PRIMARY_KEY",
            f"Table '{table.name}' has no primary key; CRUD statements will not be generated.",
            ctx,
        )
    elif table.primary_key_inferred:
        result.add_warning(
            "PRIMARY_KEY_INFERRED",
            f"Table '{table.name}': primary key '{table.columns[0].name}' was guessed "
            "from column position.",
            ctx,
        )

    for col in table.columns:
        col_ctx: Dict[str, Any] = {"table": table.name, "column": col.name}
        if col.is_primary_key and col.nullable:
            result.add_error(
                "NULLABLE_PRIMARY_KEY",
                f"Primary key column '{table.name}.{col.name}' is nullable.",
                col_ctx,
            )
        if mapper.lookup(col.normalized_type) is None:
            result.add_warning(
                "UNMAPPED_TYPE",
                f"Column '{table.name}.{col.name}' has unmapped type "
                f"'{col.normalized_type}' and will be skipped.",
                {**col_ctx, "type": col.normalized_type},
            )
        if not is_plain_identifier(col.name):
            result.add_info(
                "QUOTED_IDENTIFIER",
                f"Column '{table.name}.{col.name}' will be double-quoted in SQL.",
                col_ctx,
            )
        elif col.name.lower() in _SQL_RESERVED_WORDS:
            result.add_info(
                "RESERVED_WORD",
                f"Column '{table.name}.{col.name}' is an SQL keyword.",
                col_ctx,
            )

    return result


def validate_tables(tables: Sequence[TableDescriptor], mapper: TypeMapper) -> ValidationResult:
    """Per-table checks plus cross-table duplicate detection."""
    result: ValidationResult = ValidationResult()
    seen: Set[str] = set()
    for table in tables:
        if table.name in seen:
            result.add_error(
                "DUPLICATE_TABLE",
                f"Table '{table.name}' was described more than once.",
                {"table": table.name},
            )
        seen.add(table.name)
        result.merge(validate_table(table, mapper))
    return result


# ---------------------------------------------------------------------------
# Configuration checks
# ---------------------------------------------------------------------------

_SAMPLE_NAMES: Sequence[str] = ("user_accounts", "OrderItems", "id")


def validate_config(config: GeneratorConfig) -> ValidationResult:
    """Sanity checks for naming templates, package names and output dir."""
    result: ValidationResult = ValidationResult()

    for option in ("model_naming", "field_naming", "file_naming"):
        source: str = getattr(config, option)
        for sample in _SAMPLE_NAMES:
            try:
                rendered: str = render_name(source, sample)
            except DBGenError as exc:
                result.add_error("BAD_NAMING_TEMPLATE", f"{option}: {exc}", {"template": source})
                break
            if not is_plain_identifier(rendered):
                result.add_error(
                    "BAD_NAMING_TEMPLATE",
                    f"{option} turns '{sample}' into '{rendered}', which is not an identifier.",
                    {"template": source},
                )
                break

    packages: Dict[str, str] = {
        "model_package_name": config.model_package_name,
        "dao_package_name": config.dao_package_name,
        "api_package_name": config.api_package_name,
    }
    for option, value in packages.items():
        if not is_plain_identifier(value):
            result.add_error("BAD_PACKAGE_NAME", f"{option} '{value}' is not an identifier.")
    if len(set(packages.values())) != len(packages):
        result.add_error("DUPLICATE_PACKAGE_NAME", "model, dao and api package names must differ.")

    out_dir: Path = Path(config.out_dir)
    if out_dir.exists() and not out_dir.is_dir():
        result.add_error("OUT_DIR_NOT_DIRECTORY", f"Output path '{out_dir}' is not a directory.")

    if config.generate_api and not config.generate_dao:
        result.add_warning("API_WITHOUT_DAO", "HTTP handlers import the data access layer, which is disabled.")

    return result


def validate_full(
    tables: Sequence[TableDescriptor],
    config: GeneratorConfig,
    mapper: TypeMapper,
) -> ValidationResult:
    """Run every check and merge the results."""
    result: ValidationResult = validate_config(config)
    result.merge(validate_tables(tables, mapper))
    logger.debug(result.summary())
    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ValidationIssue",
    "ValidationResult",
    "validate_table",
    "validate_tables",
    "validate_config",
    "validate_full",
]

logger.debug("dbgen.validators loaded.")
