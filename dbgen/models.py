# File: dbgen/models.py
"""
dbgen - Core Data Models
========================
Pydantic V2 models for the normalized schema description and for generator
configuration.  These models are the single source of truth for the entire
pipeline: Introspection → Type Mapping / SQL Generation → Rendering → Export.

Every dialect adapter produces ``TableDescriptor`` instances; nothing
downstream ever looks at engine-specific metadata again.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.models")

# ---------------------------------------------------------------------------
# Enums: fixed sets used across the entire project
# ---------------------------------------------------------------------------


class DatabaseFamily(str, Enum):
    """Database engine families with a dedicated dialect adapter."""

    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    MSSQL = "mssql"
    SQLITE = "sqlite"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> "DatabaseFamily":
        """
        Resolve a user or driver supplied engine name.

        Unrecognised names resolve to ``UNKNOWN`` so the fallback adapter is
        used instead of failing.
        """
        key: str = (value or "").strip().lower()
        key = key.split("+", 1)[0]  # SQLAlchemy "postgresql+psycopg" style
        return _FAMILY_ALIASES.get(key, cls.UNKNOWN)


_FAMILY_ALIASES: Dict[str, DatabaseFamily] = {
    "mysql": DatabaseFamily.MYSQL,
    "mariadb": DatabaseFamily.MYSQL,
    "postgres": DatabaseFamily.POSTGRESQL,
    "postgresql": DatabaseFamily.POSTGRESQL,
    "pg": DatabaseFamily.POSTGRESQL,
    "mssql": DatabaseFamily.MSSQL,
    "sqlserver": DatabaseFamily.MSSQL,
    "sqlite": DatabaseFamily.SQLITE,
    "sqlite3": DatabaseFamily.SQLITE,
}


class NameFormat(str, Enum):
    """Naming case applied to serialized (JSON) field names."""

    SNAKE = "snake"
    CAMEL = "camel"
    LOWER_CAMEL = "lower_camel"
    NONE = "none"


# ---------------------------------------------------------------------------
# Mixin: shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    use_enum_values=True,
    frozen=False,
    extra="forbid",
)

_FROZEN_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    use_enum_values=True,
    frozen=True,
    extra="forbid",
    arbitrary_types_allowed=True,
)


# ---------------------------------------------------------------------------
# Descriptor model
# ---------------------------------------------------------------------------


class ColumnDescriptor(BaseModel):
    """
    One physical column, normalized across every database engine.

    Adapters build each descriptor in one go from the metadata they
    collected; a descriptor is never left half-populated.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Column name.")
    ordinal_index: int = Field(
        ..., ge=0, description="Zero-based position in the source result set."
    )
    normalized_type: str = Field(
        default="",
        description="Lower-cased type name stripped of its parenthesized length.",
    )
    declared_length: int = Field(
        default=-1, ge=-1, description="Declared length; -1 when unknown."
    )
    nullable: bool = Field(default=False, description="Whether NULL is allowed.")
    is_primary_key: bool = Field(default=False, description="Part of the primary key?")
    is_auto_increment: bool = Field(
        default=False, description="Value assigned by the engine on insert."
    )
    default_value: Optional[str] = Field(
        default=None, description="Default value with engine casts removed."
    )
    raw_ddl_fragment: str = Field(
        default="", description="Literal column definition text, if recoverable."
    )
    database_type: str = Field(
        default="", description="Type exactly as the engine reported it."
    )
    is_array: bool = Field(default=False, description="PostgreSQL array column.")
    comment: str = Field(default="", description="Column comment.")
    notes: str = Field(default="", description="Adapter diagnostics.")

    @field_validator("normalized_type")
    @classmethod
    def _lower_type(cls, v: str) -> str:
        return v.strip().lower()

    def describe(self) -> str:
        """One-line summary used in generated comments and verbose output."""
        return (
            f"[{self.ordinal_index:2d}] {self.name:<24s} {self.database_type or self.normalized_type:<20s} "
            f"null: {str(self.nullable).lower():<5s} "
            f"primary: {str(self.is_primary_key).lower():<5s} "
            f"auto: {str(self.is_auto_increment).lower():<5s} "
            f"len: {self.declared_length} "
            f"default: [{self.default_value or ''}]"
        )

    def __repr__(self) -> str:
        pk_flag: str = " PK" if self.is_primary_key else ""
        null_flag: str = " NULL" if self.nullable else " NOT NULL"
        return f"<Column {self.name} {self.normalized_type}{pk_flag}{null_flag}>"


class TableDescriptor(BaseModel):
    """
    One table: ordered columns plus best-effort DDL text.

    Column order is the source order and drives positional statement
    generation, so it is never re-sorted.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Table name.")
    columns: List[ColumnDescriptor] = Field(
        default_factory=list, description="Columns in source order."
    )
    raw_ddl: str = Field(
        default="", description="Engine-supplied or reconstructed CREATE TABLE text."
    )
    database_family: DatabaseFamily = Field(
        default=DatabaseFamily.UNKNOWN, description="Engine family it came from."
    )
    database_name: str = Field(default="", description="Database or schema name.")
    primary_key_inferred: bool = Field(
        default=False,
        description="True when the primary key is the ordinal-0 guess.",
    )

    # -- Derived helpers ----------------------------------------------------

    @property
    def primary_key_columns(self) -> List[ColumnDescriptor]:
        return [c for c in self.columns if c.is_primary_key]

    @property
    def non_primary_key_columns(self) -> List[ColumnDescriptor]:
        return [c for c in self.columns if not c.is_primary_key]

    @computed_field  # type: ignore[misc]
    @property
    def has_primary_key(self) -> bool:
        return any(c.is_primary_key for c in self.columns)

    def get_column(self, name: str) -> Optional[ColumnDescriptor]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    # -- Validators ---------------------------------------------------------

    @model_validator(mode="after")
    def _validate_ordinals(self) -> "TableDescriptor":
        ordinals: List[int] = [c.ordinal_index for c in self.columns]
        if ordinals != list(range(len(self.columns))):
            raise ValueError(
                f"Table '{self.name}' column ordinals must be 0..{len(self.columns) - 1} "
                f"in column order, got {ordinals}."
            )
        return self

    @model_validator(mode="after")
    def _validate_unique_columns(self) -> "TableDescriptor":
        seen: Set[str] = set()
        dupes: List[str] = []
        for col in self.columns:
            if col.name in seen:
                dupes.append(col.name)
            seen.add(col.name)
        if dupes:
            raise ValueError(f"Table '{self.name}' has duplicate columns: {dupes}")
        return self

    def __repr__(self) -> str:
        pk: str = ",".join(c.name for c in self.primary_key_columns) or "-"
        return f"<Table {self.name} ({len(self.columns)} cols, pk={pk})>"


# ---------------------------------------------------------------------------
# Type mapping row
# ---------------------------------------------------------------------------


class SQLMapping(BaseModel):
    """One normalized SQL type and its target-language spellings."""

    model_config = _SHARED_CONFIG

    sql_type: str = Field(..., min_length=1, description="Normalized SQL type.")
    python_type: str = Field(..., min_length=1, description="Type for NOT NULL columns.")
    nullable_type: str = Field(default="", description="Type for nullable columns.")
    boxed_type: str = Field(
        default="",
        description="Boxed-null wrapper type; empty when the family has none.",
    )
    json_type: str = Field(default="string", description="JSON schema type.")
    openapi_type: str = Field(default="string", description="OpenAPI format type.")

    @field_validator("sql_type")
    @classmethod
    def _normalize_sql_type(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("sql_type must not be blank")
        return v

    @model_validator(mode="before")
    @classmethod
    def _default_nullable_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("python_type") and not data.get("nullable_type"):
            data = {**data, "nullable_type": f"Optional[{data['python_type']}]"}
        return data


# ---------------------------------------------------------------------------
# Render-ready projections
# ---------------------------------------------------------------------------


class FieldInfo(BaseModel):
    """One generated record field derived from a column."""

    model_config = _FROZEN_CONFIG

    index: int = Field(..., ge=0, description="Position among generated fields.")
    field_name: str = Field(..., min_length=1, description="Record attribute name.")
    field_type: str = Field(..., min_length=1, description="Target type expression.")
    json_name: str = Field(..., min_length=1, description="Serialized field name.")
    code: str = Field(..., description="Rendered declaration (comment + line).")
    comment: str = Field(default="", description="Column summary line.")
    primary_key_arg_name: str = Field(
        default="", description="Argument name when the column is a key."
    )
    column: ColumnDescriptor
    mapping: SQLMapping


class ModelInfo(BaseModel):
    """
    Render-ready projection of one table.

    Built once per table by ``dbgen.templates.build_model_info``; immutable
    thereafter.  Statement fields are ``None`` when the table has no primary
    key (the other artifacts for the table still render).
    """

    model_config = _FROZEN_CONFIG

    struct_name: str
    short_struct_name: str
    table_name: str
    file_name: str
    fields: List[FieldInfo] = Field(default_factory=list)
    primary_key_names: List[str] = Field(default_factory=list)
    non_primary_key_names: List[str] = Field(default_factory=list)
    delete_sql: Optional[str] = None
    update_sql: Optional[str] = None
    insert_sql: Optional[str] = None
    select_one_sql: Optional[str] = None
    select_many_sql: Optional[str] = None
    table: TableDescriptor

    @property
    def field_code(self) -> List[str]:
        return [f.code for f in self.fields]

    @property
    def primary_key_fields(self) -> List[FieldInfo]:
        return [f for f in self.fields if f.column.is_primary_key]

    @property
    def primary_key_path(self) -> str:
        """Route suffix with one path parameter per key, e.g. ``/{argId}``."""
        return "".join(f"/{{{f.primary_key_arg_name}}}" for f in self.primary_key_fields)

    def field_for(self, column_name: str) -> Optional[FieldInfo]:
        """The generated field of *column_name*, or ``None`` if it was skipped."""
        for f in self.fields:
            if f.column.name == column_name:
                return f
        return None

    def __repr__(self) -> str:
        return f"<ModelInfo {self.struct_name} ({len(self.fields)} fields)>"


# ---------------------------------------------------------------------------
# Generator configuration
# ---------------------------------------------------------------------------


class GeneratorConfig(BaseModel):
    """
    Master configuration for one generation run.

    Frozen: the same instance is threaded explicitly through every render
    call and must not change while rendering.
    """

    model_config = _FROZEN_CONFIG

    # -- Database -----------------------------------------------------------
    sql_type: DatabaseFamily = Field(
        default=DatabaseFamily.UNKNOWN, description="Engine family of the source."
    )
    database_name: str = Field(
        default="", description="Database (or PostgreSQL schema) name."
    )
    exclude_tables: List[str] = Field(
        default_factory=list, description="Tables never generated."
    )

    # -- Output -------------------------------------------------------------
    out_dir: str = Field(default=".", description="Root output directory.")
    overwrite: bool = Field(default=True, description="Replace existing files.")
    crlf_line_endings: bool = Field(
        default=False, description="Write \\r\\n line endings."
    )
    format_source: bool = Field(
        default=True, description="Reformat generated Python with black."
    )
    line_length: int = Field(
        default=99, ge=40, le=200, description="Black line length."
    )
    verbose: bool = Field(default=False, description="Verbose diagnostics.")

    # -- Annotations & naming ----------------------------------------------
    add_json_annotation: bool = Field(
        default=True, description="Emit serialized-name aliases on fields."
    )
    add_db_annotation: bool = Field(
        default=False, description="Emit source column metadata on fields."
    )
    use_boxed_nulls: bool = Field(
        default=False,
        description="Map nullable columns to boxed-null wrapper types.",
    )
    json_name_format: NameFormat = Field(
        default=NameFormat.SNAKE, description="Serialized field name case."
    )
    model_naming: str = Field(
        default="{{ name | camel }}", description="Template for record class names."
    )
    field_naming: str = Field(
        default="{{ name | snake }}", description="Template for record field names."
    )
    file_naming: str = Field(
        default="{{ name | snake }}", description="Template for per-table file names."
    )

    # -- Generated packages -------------------------------------------------
    model_package_name: str = Field(default="model", min_length=1)
    dao_package_name: str = Field(default="dao", min_length=1)
    api_package_name: str = Field(default="api", min_length=1)
    generate_dao: bool = Field(default=True, description="Render the data-access layer.")
    generate_api: bool = Field(default=True, description="Render HTTP handlers.")
    generate_docs: bool = Field(default=False, description="Render markdown docs.")
    server_host: str = Field(default="localhost")
    server_port: int = Field(default=8080, ge=1, le=65535)

    # -- Templates ----------------------------------------------------------
    context_map: Dict[str, Any] = Field(
        default_factory=dict, description="Extra bindings for every render."
    )
    template_loader: Optional[Callable[[str], Optional[str]]] = Field(
        default=None,
        exclude=True,
        description="Callback returning template text (or None) for a template name.",
    )

    @field_validator("sql_type", mode="before")
    @classmethod
    def _parse_family(cls, v: Any) -> Any:
        if isinstance(v, str) and not isinstance(v, DatabaseFamily):
            return DatabaseFamily.parse(v)
        return v

    @field_validator("exclude_tables")
    @classmethod
    def _strip_exclusions(cls, v: List[str]) -> List[str]:
        return [t.strip() for t in v if t.strip()]

    def bindings(self) -> Dict[str, Any]:
        """Global render bindings derived from this configuration."""
        return {
            "DatabaseName": self.database_name,
            "sqlType": self.sql_type,
            "modelPackageName": self.model_package_name,
            "daoPackageName": self.dao_package_name,
            "apiPackageName": self.api_package_name,
            "serverHost": self.server_host,
            "serverPort": self.server_port,
            "outDir": self.out_dir,
            "Config": self,
        }


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DatabaseFamily",
    "NameFormat",
    "ColumnDescriptor",
    "TableDescriptor",
    "SQLMapping",
    "FieldInfo",
    "ModelInfo",
    "GeneratorConfig",
]

logger.debug("dbgen.models loaded — %d public symbols.", len(__all__))
