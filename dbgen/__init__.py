# File: dbgen/__init__.py
"""
dbgen — Database-First Code Generator
=====================================

Introspects a live relational database (MySQL, PostgreSQL, SQLite, SQL
Server, or anything else SQLAlchemy can reach) and renders source code for
every table from Jinja2 templates: pydantic record models, a SQL data-access
layer with positional ``$n`` statements, FastAPI handlers and markdown docs.

Architecture overview::

    ┌──────────────┐     ┌────────────────┐     ┌──────────────────┐
    │  CLI / Entry │────▶│ CodeGenerator  │────▶│  TemplateEngine  │
    │   (cli.py)   │     │ (generator.py) │     │  (templates.py)  │
    └──────────────┘     └───────┬────────┘     └────────┬─────────┘
                                 │                       │
                    ┌────────────┼────────────┐     ┌────┴─────┐
                    ▼            ▼            ▼     ▼          ▼
             ┌──────────┐ ┌───────────┐ ┌─────────┐ ┌────────┐ ┌───────────┐
             │ dialects │ │validators │ │ typemap │ │ sqlgen │ │ exporters │
             └──────────┘ └───────────┘ └─────────┘ └────────┘ └───────────┘

Usage::

    # As a library
    from dbgen import CodeGenerator, GeneratorConfig
    report = CodeGenerator(GeneratorConfig(sql_type="sqlite", out_dir="gen")).generate_from_url(
        "sqlite:///app.db"
    )

    # From the command line
    python -m dbgen --connstr sqlite:///app.db --out ./gen -v

Public API:
    - CodeGenerator      — Master orchestrator
    - GeneratorConfig    — Generation settings model
    - TableDescriptor    — Normalized table description
    - TemplateEngine     — Template composition and rendering
    - TypeMapper         — SQL type → Python type table
    - get_adapter        — Dialect adapter lookup
"""

from __future__ import annotations

__version__: str = "0.1.0"
__license__: str = "MIT"

from dbgen.errors import (
    ConfigError,
    DatabaseConnectionError,
    DBGenError,
    MappingLoadError,
    MetadataQueryError,
    MissingSubTemplateError,
    ModelBuildError,
    NoPrimaryKeyError,
    OutputWriteError,
    SourceFormatError,
    TemplateLoadError,
    UnknownTypeError,
    UnresolvedBindingError,
)
from dbgen.models import (
    ColumnDescriptor,
    DatabaseFamily,
    FieldInfo,
    GeneratorConfig,
    ModelInfo,
    NameFormat,
    SQLMapping,
    TableDescriptor,
)
from dbgen.dialects import DialectAdapter, get_adapter
from dbgen.typemap import TypeMapper
from dbgen.sqlgen import (
    generate_delete_sql,
    generate_insert_sql,
    generate_select_many_sql,
    generate_select_one_sql,
    generate_update_sql,
)
from dbgen.exporters import OutputWriter, WriteManifest
from dbgen.templates import TemplateEngine, directory_loader, mapping_loader, package_loader
from dbgen.validators import ValidationResult, validate_full
from dbgen.generator import CodeGenerator, GenerationReport, load_config_file, load_context_file

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__license__",
    # Core orchestrator
    "CodeGenerator",
    "GenerationReport",
    "load_config_file",
    "load_context_file",
    # Models
    "ColumnDescriptor",
    "DatabaseFamily",
    "FieldInfo",
    "GeneratorConfig",
    "ModelInfo",
    "NameFormat",
    "SQLMapping",
    "TableDescriptor",
    # Introspection
    "DialectAdapter",
    "get_adapter",
    # Type mapping & statements
    "TypeMapper",
    "generate_delete_sql",
    "generate_insert_sql",
    "generate_select_many_sql",
    "generate_select_one_sql",
    "generate_update_sql",
    # Templates & output
    "TemplateEngine",
    "directory_loader",
    "mapping_loader",
    "package_loader",
    "OutputWriter",
    "WriteManifest",
    # Validation
    "validate_full",
    "ValidationResult",
    # Errors
    "DBGenError",
    "ConfigError",
    "DatabaseConnectionError",
    "MappingLoadError",
    "MetadataQueryError",
    "MissingSubTemplateError",
    "ModelBuildError",
    "NoPrimaryKeyError",
    "OutputWriteError",
    "SourceFormatError",
    "TemplateLoadError",
    "UnknownTypeError",
    "UnresolvedBindingError",
]
