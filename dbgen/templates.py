# File: dbgen/templates.py
"""
dbgen - Template Composition Engine
===================================
Jinja2-based rendering of per-table and per-project artifacts.

This module turns ``TableDescriptor`` objects into render-ready
``ModelInfo`` projections and drives templates over them:

    1. ``build_model_info``: naming templates, field declarations (through the
       ``TypeMapper``), and pre-rendered CRUD statements.
    2. ``TemplateEngine``: template loading, composite templates, the helper
       registry, strict binding lookup, black formatting and writing through
       ``OutputWriter``.

**Composite templates.**  ``api.py.tmpl``, ``dao.py.tmpl`` and their
documentation variants are assembled from five per-operation
sub-templates (``add, delete, get, getall, update``).  Each sub-template body
becomes a macro named after its operation, and all five macros are placed
ahead of the base source before the whole is parsed as one template, so the
base calls ``{{ add() }}`` and friends.

**Strict lookup.**  Any use of a name that is not bound in the render
context raises ``UnresolvedBindingError``; nothing renders as empty text.

**Contract:**
    - Every render call builds its own context; the configuration, mapper and
      helper registry are read-only while rendering.
    - Rendering the same table with the same configuration is byte-identical.
"""

from __future__ import annotations

import functools
import importlib.resources
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple, Union

import black
from jinja2 import (
    Environment,
    FunctionLoader,
    StrictUndefined,
    Template,
    TemplateNotFound,
    TemplateSyntaxError,
)
from jinja2.utils import missing

from dbgen.errors import (
    ConfigError,
    DBGenError,
    MissingSubTemplateError,
    ModelBuildError,
    NoPrimaryKeyError,
    SourceFormatError,
    TemplateLoadError,
    UnknownTypeError,
    UnresolvedBindingError,
)
from dbgen.exporters import FileRecord, OutputWriter
from dbgen.models import (
    ColumnDescriptor,
    FieldInfo,
    GeneratorConfig,
    ModelInfo,
    SQLMapping,
    TableDescriptor,
)
from dbgen.sqlgen import (
    generate_delete_sql,
    generate_insert_sql,
    generate_select_many_sql,
    generate_select_one_sql,
    generate_update_sql,
    non_primary_key_names,
    primary_key_names,
)
from dbgen.typemap import TypeMapper
from dbgen.utils import (
    escape_string,
    format_name,
    markdown_code_block,
    read_file,
    safe_identifier,
    to_camel_case,
    to_json,
    to_pascal_case,
    to_plural,
    to_singular,
    to_snake_case,
    to_title_human,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.templates")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TemplateLoader = Callable[[str], Optional[str]]

BUILTIN_TEMPLATE_PACKAGE: str = "builtin_templates"

COMPOSITE_OPERATIONS: Tuple[str, ...] = ("add", "delete", "get", "getall", "update")

# base template -> sub-template name pattern
COMPOSITE_TEMPLATES: Dict[str, str] = {
    "api.py.tmpl": "api_{op}.py.tmpl",
    "dao.py.tmpl": "dao_{op}.py.tmpl",
    "code_dao.md.tmpl": "dao_{op}.py.tmpl",
    "code_http.md.tmpl": "api_{op}.py.tmpl",
}

# Python types that a web framework can convert from a URL path segment
_PATH_CONVERTIBLE: FrozenSet[str] = frozenset({"int", "str", "UUID", "date", "datetime"})

_RESERVED_STRUCT_NAMES: Dict[str, str] = {"Result": "DBTableResult"}


# ---------------------------------------------------------------------------
# Strict lookup
# ---------------------------------------------------------------------------


class StrictBinding(StrictUndefined):
    """``StrictUndefined`` that raises ``UnresolvedBindingError``."""

    __slots__ = ()

    def __init__(
        self,
        hint: Optional[str] = None,
        obj: Any = missing,
        name: Optional[str] = None,
        exc: type = UnresolvedBindingError,
    ) -> None:
        super().__init__(hint, obj, name, exc)


# ---------------------------------------------------------------------------
# Template loaders
# ---------------------------------------------------------------------------


def _is_safe_name(name: str) -> bool:
    parts: List[str] = name.replace("\\", "/").split("/")
    return bool(name) and not name.startswith("/") and ".." not in parts


def package_loader() -> TemplateLoader:
    """Loader over the templates shipped inside the ``dbgen`` package."""
    root = importlib.resources.files("dbgen").joinpath(BUILTIN_TEMPLATE_PACKAGE)

    def load(name: str) -> Optional[str]:
        if not _is_safe_name(name):
            return None
        resource = root.joinpath(name)
        if not resource.is_file():
            return None
        return resource.read_text(encoding="utf-8")

    return load


def directory_loader(path: Union[str, Path], fallback: Optional[TemplateLoader] = None) -> TemplateLoader:
    """Loader over a user template directory, falling back to *fallback*."""
    base: Path = Path(path)

    def load(name: str) -> Optional[str]:
        if _is_safe_name(name):
            candidate: Path = base / name
            if candidate.is_file():
                return read_file(candidate)
        return fallback(name) if fallback is not None else None

    return load


def mapping_loader(templates: Mapping[str, str], fallback: Optional[TemplateLoader] = None) -> TemplateLoader:
    """Loader over an in-memory ``{name: source}`` mapping."""

    def load(name: str) -> Optional[str]:
        if name in templates:
            return templates[name]
        return fallback(name) if fallback is not None else None

    return load


def list_builtin_templates() -> List[str]:
    root = importlib.resources.files("dbgen").joinpath(BUILTIN_TEMPLATE_PACKAGE)
    return sorted(entry.name for entry in root.iterdir() if entry.name.endswith(".tmpl"))


def sub_template_names(template_name: str) -> List[str]:
    """Sub-templates a composite base requires, in composition order."""
    pattern: Optional[str] = COMPOSITE_TEMPLATES.get(Path(template_name).name)
    if pattern is None:
        return []
    parent: str = str(Path(template_name).parent)
    prefix: str = "" if parent == "." else f"{parent}/"
    return [prefix + pattern.format(op=op) for op in COMPOSITE_OPERATIONS]


# ---------------------------------------------------------------------------
# Helper registry
# ---------------------------------------------------------------------------


def _upper(value: Any) -> str:
    return str(value).upper()


def _lower(value: Any) -> str:
    return str(value).lower()


def has_field(model: ModelInfo, name: str) -> bool:
    """True if *model* generated a field for column *name*."""
    return any(f.column.name == name for f in model.fields)


def build_helper_registry() -> Dict[str, Callable[..., Any]]:
    """Helpers bound to every template, both as globals and as filters."""
    return {
        "singular": to_singular,
        "plural": to_plural,
        "upper": _upper,
        "lower": _lower,
        "title": to_title_human,
        "snake": to_snake_case,
        "lower_camel": to_camel_case,
        "camel": to_pascal_case,
        "to_json": to_json,
        "escape": escape_string,
        "markdown_code_block": markdown_code_block,
    }


def create_environment(loader: Optional[FunctionLoader] = None) -> Environment:
    """A strict Jinja2 environment with the helper registry installed."""
    env: Environment = Environment(
        loader=loader,
        undefined=StrictBinding,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=False,
    )
    helpers: Dict[str, Callable[..., Any]] = build_helper_registry()
    env.globals.update(helpers)
    env.filters.update(helpers)
    # globals only: "replace" must not shadow the builtin filter
    env.globals["replace"] = render_name
    env.globals["has_field"] = has_field
    return env


# ---------------------------------------------------------------------------
# Naming templates
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=1)
def _naming_environment() -> Environment:
    return create_environment()


@functools.lru_cache(maxsize=128)
def _compile_name_template(source: str) -> Template:
    try:
        return _naming_environment().from_string(source)
    except TemplateSyntaxError as exc:
        raise ConfigError(f"invalid naming template {source!r}: {exc}") from exc


def render_name(name_template: str, name: str) -> str:
    """
    Apply a naming template such as ``{{ name | camel }}`` to *name*.

    Examples:
        >>> render_name("{{ name | camel }}", "user_accounts")
        'UserAccounts'
        >>> render_name("{{ name | singular | camel }}Row", "orders")
        'OrderRow'
    """
    return _compile_name_template(name_template).render(name=name).strip()


# ---------------------------------------------------------------------------
# ModelInfo construction
# ---------------------------------------------------------------------------


def _field_type(mapping: SQLMapping, column: ColumnDescriptor, mapper: TypeMapper, boxed: bool) -> str:
    if column.is_array:
        element: str = f"List[{mapping.python_type}]"
        return f"Optional[{element}]" if column.nullable else element
    return mapper.select_type(mapping, column.nullable, boxed)


def _field_code(
    field_name: str,
    field_type: str,
    json_name: str,
    column: ColumnDescriptor,
    config: GeneratorConfig,
) -> str:
    args: List[str] = ["None" if column.nullable or column.is_auto_increment else "..."]
    if config.add_json_annotation:
        args.append(f"alias={escape_string(json_name)}")
    if config.add_db_annotation:
        extra: Dict[str, Any] = {
            "db_column": column.name,
            "db_type": column.database_type or column.normalized_type,
            "primary_key": column.is_primary_key,
            "auto_increment": column.is_auto_increment,
        }
        args.append(f"json_schema_extra={extra!r}")
    return f"# {column.describe()}\n{field_name}: {field_type} = Field({', '.join(args)})"


def _unique(name: str, taken: Set[str], suffix: str) -> str:
    while name in taken:
        name = f"{name}{suffix}"
    taken.add(name)
    return name


def build_fields(table: TableDescriptor, config: GeneratorConfig, mapper: TypeMapper) -> List[FieldInfo]:
    """
    Field declarations for every mappable column, in column order.

    Columns whose type has no mapping are skipped with a diagnostic.
    """
    fields: List[FieldInfo] = []
    field_names: Set[str] = set()
    json_names: Set[str] = set()
    skip_level: int = logging.INFO if config.verbose else logging.DEBUG

    for column in table.columns:
        try:
            mapping: SQLMapping = mapper.require(column.normalized_type, column=column.name, table=table.name)
        except UnknownTypeError as exc:
            logger.log(skip_level, "Skipping field: %s", exc)
            continue

        field_name: str = _unique(
            safe_identifier(render_name(config.field_naming, column.name)), field_names, "_alt"
        )
        json_name: str = _unique(format_name(config.json_name_format, column.name), json_names, "_alt")
        field_type: str = _field_type(mapping, column, mapper, config.use_boxed_nulls)

        primary_key_arg_name: str = ""
        if column.is_primary_key:
            if mapping.python_type not in _PATH_CONVERTIBLE or column.is_array:
                raise ModelBuildError(
                    f"primary key column '{column.name}' has type '{mapping.python_type}' "
                    "which cannot be parsed from a request path",
                    table=table.name,
                )
            primary_key_arg_name = "arg" + to_pascal_case(column.name)

        fields.append(FieldInfo(
            index=len(fields),
            field_name=field_name,
            field_type=field_type,
            json_name=json_name,
            code=_field_code(field_name, field_type, json_name, column, config),
            comment=column.describe(),
            primary_key_arg_name=primary_key_arg_name,
            column=column,
            mapping=mapping,
        ))

    return fields


def _mapped_projection(table: TableDescriptor, fields: List[FieldInfo]) -> TableDescriptor:
    """*table* reduced to the columns that have a field, renumbered."""
    mapped: Set[str] = {f.column.name for f in fields}
    columns: List[ColumnDescriptor] = [c for c in table.columns if c.name in mapped]
    return table.model_copy(update={
        "columns": [c.model_copy(update={"ordinal_index": idx}) for idx, c in enumerate(columns)],
    })


def build_model_info(
    table: TableDescriptor,
    config: GeneratorConfig,
    mapper: TypeMapper,
    taken_names: Optional[Set[str]] = None,
) -> ModelInfo:
    """
    Derive the render-ready ``ModelInfo`` for one table.

    Args:
        taken_names: struct names already used in this run; updated in
            place so a second table never reuses a name.

    Raises:
        ModelBuildError: a naming template produced nothing, or a primary
            key type has no mapping or cannot be used as a path parameter.
    """
    taken: Set[str] = taken_names if taken_names is not None else set()

    struct_name: str = render_name(config.model_naming, table.name)
    if not struct_name:
        raise ModelBuildError("model naming template produced an empty name", table=table.name)
    struct_name = safe_identifier(struct_name)
    struct_name = _RESERVED_STRUCT_NAMES.get(struct_name, struct_name)
    struct_name = _unique(struct_name, taken, "_")

    file_name: str = render_name(config.file_naming, table.name)
    if not file_name:
        raise ModelBuildError("file naming template produced an empty name", table=table.name)

    fields: List[FieldInfo] = build_fields(table, config, mapper)
    mapped: TableDescriptor = _mapped_projection(table, fields)

    missing_keys: List[str] = sorted(set(primary_key_names(table)) - set(primary_key_names(mapped)))
    if missing_keys:
        raise ModelBuildError(
            f"primary key column(s) {', '.join(missing_keys)} have no type mapping",
            table=table.name,
        )

    # UPDATE and INSERT bind record fields, so they only name mapped columns
    statements: Dict[str, Optional[str]] = {
        "delete_sql": None,
        "update_sql": None,
        "insert_sql": None,
        "select_one_sql": None,
        "select_many_sql": None,
    }
    try:
        statements = {
            "delete_sql": generate_delete_sql(table),
            "update_sql": generate_update_sql(mapped),
            "insert_sql": generate_insert_sql(mapped),
            "select_one_sql": generate_select_one_sql(table),
            "select_many_sql": generate_select_many_sql(table),
        }
    except NoPrimaryKeyError as exc:
        logger.warning("No statements for %s: %s", table.name, exc)

    model: ModelInfo = ModelInfo(
        struct_name=struct_name,
        short_struct_name=struct_name[0].lower(),
        table_name=table.name,
        file_name=file_name,
        fields=fields,
        primary_key_names=primary_key_names(table),
        non_primary_key_names=non_primary_key_names(mapped),
        table=table,
        **statements,
    )
    logger.debug("Built %r for table %s", model, table.name)
    return model


# ---------------------------------------------------------------------------
# Render outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RenderOutcome:
    """Result of one render-to-file call."""

    template: str
    path: str
    written: bool
    skipped: bool = False
    size_bytes: int = 0
    sha256: str = ""
    table: Optional[str] = None

    @property
    def status(self) -> str:
        if self.skipped:
            return "skipped"
        return "written" if self.written else "not written"


# ---------------------------------------------------------------------------
# Source formatting
# ---------------------------------------------------------------------------


def format_python_source(source: str, path: str, line_length: int = 99) -> str:
    """
    Reformat generated Python with black.

    Raises:
        SourceFormatError: the rendered text is not valid Python.
    """
    try:
        return black.format_str(source, mode=black.Mode(line_length=line_length))
    except black.InvalidInput as exc:
        raise SourceFormatError(f"generated source is not valid Python: {exc}", path=path) from exc


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TemplateEngine:
    """
    Renders named templates for tables and for the project as a whole.

    Usage::

        engine = TemplateEngine(config, mapper=TypeMapper())
        engine.add_table(table_descriptor)
        engine.render_table("model.py.tmpl", "users", "model/users.py")
        engine.render_project("router.py.tmpl", "api/router.py")
    """

    def __init__(
        self,
        config: GeneratorConfig,
        loader: Optional[TemplateLoader] = None,
        mapper: Optional[TypeMapper] = None,
        writer: Optional[OutputWriter] = None,
    ) -> None:
        self._config: GeneratorConfig = config
        self._loader: TemplateLoader = loader or config.template_loader or package_loader()
        self._mapper: TypeMapper = mapper or TypeMapper()
        self._writer: OutputWriter = writer or OutputWriter(
            overwrite=config.overwrite,
            crlf=config.crlf_line_endings,
            output_dir=config.out_dir,
        )
        self._models: Dict[str, ModelInfo] = {}
        self._struct_names: Set[str] = set()
        self._outcomes: List[RenderOutcome] = []

        self._env: Environment = create_environment(FunctionLoader(self.compose_source))
        self._env.globals["generate_table_file"] = self.generate_table_file
        self._env.globals["generate_file"] = self.generate_file

    # -----------------------------------------------------------------
    # Properties
    # -----------------------------------------------------------------

    @property
    def config(self) -> GeneratorConfig:
        return self._config

    @property
    def mapper(self) -> TypeMapper:
        return self._mapper

    @property
    def writer(self) -> OutputWriter:
        return self._writer

    @property
    def models(self) -> Dict[str, ModelInfo]:
        return dict(self._models)

    @property
    def outcomes(self) -> List[RenderOutcome]:
        return list(self._outcomes)

    # -----------------------------------------------------------------
    # Tables
    # -----------------------------------------------------------------

    def add_table(self, table: TableDescriptor) -> ModelInfo:
        """Build and register the ``ModelInfo`` for *table*."""
        model: ModelInfo = build_model_info(table, self._config, self._mapper, self._struct_names)
        self._models[table.name] = model
        return model

    def model_info(self, table: Union[str, TableDescriptor, ModelInfo]) -> ModelInfo:
        if isinstance(table, ModelInfo):
            return table
        if isinstance(table, TableDescriptor):
            return self._models.get(table.name) or self.add_table(table)
        model: Optional[ModelInfo] = self._models.get(table)
        if model is None:
            raise ModelBuildError("table has not been loaded", table=table)
        return model

    # -----------------------------------------------------------------
    # Template sources
    # -----------------------------------------------------------------

    def _read(self, name: str) -> Optional[str]:
        try:
            return self._loader(name)
        except (OSError, KeyError) as exc:
            logger.debug("Loader could not read %s: %s", name, exc)
            return None

    def compose_source(self, template_name: str) -> str:
        """
        Template source ready for parsing, composite parts included.

        Raises:
            TemplateLoadError: the base template is missing.
            MissingSubTemplateError: a composite part is missing.
        """
        base: Optional[str] = self._read(template_name)
        if base is None:
            raise TemplateLoadError("template not found", template=template_name)

        parts: List[str] = []
        for op, sub_name in zip(COMPOSITE_OPERATIONS, sub_template_names(template_name)):
            body: Optional[str] = self._read(sub_name)
            if body is None:
                raise MissingSubTemplateError(template_name, sub_name)
            parts.append(f"{{% macro {op}() %}}{body}{{% endmacro %}}\n")
        return "".join(parts) + base

    def get_template(self, template_name: str) -> Template:
        try:
            return self._env.get_template(template_name)
        except TemplateSyntaxError as exc:
            raise TemplateLoadError(
                f"syntax error at line {exc.lineno}: {exc.message}",
                template=template_name,
            ) from exc
        except TemplateNotFound as exc:
            raise TemplateLoadError("template not found", template=template_name) from exc

    # -----------------------------------------------------------------
    # Contexts
    # -----------------------------------------------------------------

    def project_context(self, extra: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Global bindings: configuration, loaded tables, caller extras."""
        context: Dict[str, Any] = dict(self._config.bindings())
        context["tableInfos"] = dict(self._models)
        context.update(self._config.context_map)
        if extra:
            context.update(extra)
        return context

    def table_context(self, model: ModelInfo, extra: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Global bindings plus the table-scoped keys for *model*."""
        context: Dict[str, Any] = dict(self._config.bindings())
        context["tableInfos"] = dict(self._models)
        context.update({
            "StructName": model.struct_name,
            "ShortStructName": model.short_struct_name,
            "TableName": model.table_name,
            "FileName": model.file_name,
            "TableInfo": model,
            "Table": model.table,
            "Fields": model.fields,
            "FieldCode": model.field_code,
            "PrimaryKeyNamesList": model.primary_key_names,
            "PrimaryKeysJoined": ",".join(model.primary_key_names),
            "NonPrimaryKeyNamesList": model.non_primary_key_names,
            "NonPrimaryKeysJoined": ",".join(model.non_primary_key_names),
            "delSql": model.delete_sql,
            "updateSql": model.update_sql,
            "insertSql": model.insert_sql,
            "selectOneSql": model.select_one_sql,
            "selectMultiSql": model.select_many_sql,
        })
        context.update(self._config.context_map)
        if extra:
            context.update(extra)
        return context

    # -----------------------------------------------------------------
    # Rendering
    # -----------------------------------------------------------------

    def render_string(self, template_name: str, context: Mapping[str, Any]) -> str:
        """Render *template_name* with *context*; no formatting, no write."""
        return self.get_template(template_name).render(**context)

    def render_table(
        self,
        template_name: str,
        table: Union[str, TableDescriptor, ModelInfo],
        output_path: Union[str, Path],
        format_source: bool = True,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> RenderOutcome:
        """Render a per-table artifact and write it (unless skipped)."""
        model: ModelInfo = self.model_info(table)
        try:
            return self._render_to_file(
                template_name,
                lambda: self.table_context(model, extra),
                output_path,
                format_source,
                model.table_name,
            )
        except DBGenError as exc:
            raise exc.with_table(model.table_name)

    def render_project(
        self,
        template_name: str,
        output_path: Union[str, Path],
        format_source: bool = True,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> RenderOutcome:
        """Render a project-level artifact and write it (unless skipped)."""
        return self._render_to_file(
            template_name,
            lambda: self.project_context(extra),
            output_path,
            format_source,
            None,
        )

    def _render_to_file(
        self,
        template_name: str,
        context_factory: Callable[[], Dict[str, Any]],
        output_path: Union[str, Path],
        format_source: bool,
        table_name: Optional[str],
    ) -> RenderOutcome:
        target: Path = self._writer.resolve(output_path)

        if self._writer.should_skip(target):
            self._writer.skip(target)
            outcome = RenderOutcome(template=template_name, path=str(target), written=False, skipped=True, table=table_name)
            self._outcomes.append(outcome)
            return outcome

        text: str = self.render_string(template_name, context_factory())
        if format_source and self._config.format_source and target.suffix == ".py":
            text = format_python_source(text, str(target), self._config.line_length)
        if not text.endswith("\n"):
            text += "\n"

        record: FileRecord = self._writer.write(target, text)
        outcome = RenderOutcome(
            template=template_name,
            path=record.path,
            written=True,
            size_bytes=record.size_bytes,
            sha256=record.sha256,
            table=table_name,
        )
        self._outcomes.append(outcome)
        logger.info("%s -> %s", template_name, record.path)
        return outcome

    # -----------------------------------------------------------------
    # Recursive entry points for templates
    # -----------------------------------------------------------------

    def generate_table_file(
        self,
        table_name: str,
        template_name: str,
        output_file: str,
        format_source: bool = True,
    ) -> str:
        """Template helper: render another template for a loaded table."""
        outcome: RenderOutcome = self.render_table(template_name, table_name, output_file, format_source)
        return f"{outcome.status}: {output_file}"

    def generate_file(
        self,
        template_name: str,
        output_file: str,
        format_source: bool = True,
    ) -> str:
        """Template helper: render a project-level template."""
        outcome: RenderOutcome = self.render_project(template_name, output_file, format_source)
        return f"{outcome.status}: {output_file}"

    def __repr__(self) -> str:
        return f"<TemplateEngine tables={len(self._models)} rendered={len(self._outcomes)}>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "COMPOSITE_OPERATIONS",
    "COMPOSITE_TEMPLATES",
    "StrictBinding",
    "TemplateLoader",
    "package_loader",
    "directory_loader",
    "mapping_loader",
    "list_builtin_templates",
    "sub_template_names",
    "build_helper_registry",
    "create_environment",
    "render_name",
    "has_field",
    "build_fields",
    "build_model_info",
    "format_python_source",
    "RenderOutcome",
    "TemplateEngine",
]

logger.debug("dbgen.templates loaded.")
