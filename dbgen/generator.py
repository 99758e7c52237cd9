# File: dbgen/generator.py
"""
dbgen - Generation Pipeline (Orchestrator)
==========================================

Connects every phase together:

    Connection → Describe → Validate → Build Models → Render → Write

The ``CodeGenerator`` class provides both a programmatic API and the
backend for the CLI.

Workflow::

    1. Enumerate tables (or take the caller's list), minus exclusions.
    2. Describe each table through the dialect adapter for the engine.
    3. Validate the configuration and every descriptor.
    4. Build one ``ModelInfo`` per table (names, fields, statements).
    5. Render the per-table artifacts (model, dao, api, docs).
    6. Render the project artifacts (bases, router, package inits, README).
    7. Return a ``GenerationReport`` with metrics and status.

Error handling strategy:
    - A connection failure is fatal for the run and propagates.
    - Metadata, model and render failures are isolated per table or per
      artifact; the rest of the run continues.
    - Tables without a primary key still get their record model; the
      statement-based artifacts are skipped for them.
    - The final report gives a clear pass/fail verdict.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from dbgen.dialects import DialectAdapter, get_adapter
from dbgen.dialects.postgres import DEFAULT_SCHEMA
from dbgen.errors import (
    ConfigError,
    DatabaseConnectionError,
    DBGenError,
    MetadataQueryError,
    OutputWriteError,
)
from dbgen.exporters import OutputWriter, WriteManifest
from dbgen.models import DatabaseFamily, GeneratorConfig, ModelInfo, TableDescriptor
from dbgen.templates import RenderOutcome, TemplateEngine, TemplateLoader
from dbgen.typemap import TypeMapper
from dbgen.utils import Timer, load_structured_file
from dbgen.validators import ValidationResult, validate_config, validate_table

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.generator")

ProgressCallback = Callable[[str], None]


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class GenerationReport:
    """
    Report produced by ``CodeGenerator.generate()``.

    Multi-table runs report partial success: every failed table or artifact
    is listed with its table name, and everything else is still written.
    """

    success: bool = False
    database: str = ""
    output_directory: str = ""

    # Metrics
    tables_requested: int = 0
    tables_described: int = 0
    tables_rendered: int = 0
    files_written: int = 0
    files_skipped: int = 0
    total_bytes: int = 0
    total_elapsed_seconds: float = 0.0

    # Sub-reports
    step_metrics: List[GenerationStepMetric] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    generation_errors: List[str] = field(default_factory=list)
    write_errors: List[str] = field(default_factory=list)
    skipped_tables: List[str] = field(default_factory=list)
    outcomes: List[RenderOutcome] = field(default_factory=list)

    manifest: Optional[WriteManifest] = None

    def summary(self) -> str:
        """Return a human-readable summary string."""
        lines: List[str] = []
        status: str = "✅ SUCCESS" if self.success else "❌ FAILED"
        lines.append(f"{'='*60}")
        lines.append("  dbgen — Generation Report")
        lines.append(f"{'='*60}")
        lines.append(f"  Status:           {status}")
        lines.append(f"  Database:         {self.database}")
        lines.append(f"  Output:           {self.output_directory}")
        lines.append(f"  Tables:           {self.tables_rendered}/{self.tables_requested} rendered")
        lines.append(f"  Files written:    {self.files_written}")
        lines.append(f"  Files skipped:    {self.files_skipped}")
        lines.append(f"  Total bytes:      {self.total_bytes:,}")
        lines.append(f"  Total time:       {self.total_elapsed_seconds:.3f}s")
        lines.append(f"{'─'*60}")

        if self.step_metrics:
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                icon: str = "✓" if step.success else "✗"
                lines.append(
                    f"    {icon} {step.step_name:<28s} "
                    f"{step.elapsed_seconds:>7.3f}s  "
                    f"{step.detail}"
                )

        sections: List[Tuple[str, List[str], str]] = [
            ("Validation Errors", self.validation_errors, "✗"),
            ("Validation Warnings", self.validation_warnings, "⚠"),
            ("Generation Errors", self.generation_errors, "✗"),
            ("Write Errors", self.write_errors, "✗"),
            ("Skipped Tables", self.skipped_tables, "⊘"),
        ]
        for title, items, icon in sections:
            if items:
                lines.append(f"{'─'*60}")
                lines.append(f"  {title} ({len(items)}):")
                for item in items:
                    lines.append(f"    {icon} {item}")

        lines.append(f"{'='*60}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Configuration & context loaders
# ---------------------------------------------------------------------------


def load_config_file(path: Path, overrides: Optional[Dict[str, Any]] = None) -> GeneratorConfig:
    """
    Load a ``GeneratorConfig`` from a JSON or YAML file.

    The options may sit at the top level or under a ``config`` key.
    *overrides* win over file values.

    Raises:
        ConfigError: the file is missing, unreadable, or invalid.
    """
    try:
        raw: Dict[str, Any] = load_structured_file(path)
    except (FileNotFoundError, ValueError) as exc:
        raise ConfigError(str(exc)) from exc

    data: Dict[str, Any] = dict(raw.get("config", raw))
    if overrides:
        data.update(overrides)

    try:
        return GeneratorConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Config validation failed: {exc}") from exc


def load_context_file(path: Path) -> Dict[str, Any]:
    """
    Load extra template bindings from a JSON or YAML mapping.

    Raises:
        ConfigError: the file is missing or not a mapping.
    """
    try:
        return load_structured_file(path)
    except (FileNotFoundError, ValueError) as exc:
        raise ConfigError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------


def open_engine(url: str) -> Engine:
    """
    Create an engine for *url* and ping it once.

    Raises:
        DatabaseConnectionError: the URL is invalid or the ping failed.
    """
    try:
        engine: Engine = create_engine(url)
    except (SQLAlchemyError, ValueError, ImportError) as exc:
        raise DatabaseConnectionError(f"cannot create engine: {exc}") from exc

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        engine.dispose()
        raise DatabaseConnectionError(f"cannot connect: {exc}") from exc

    logger.info("Connected to %s database.", engine.dialect.name)
    return engine


def _schema_for(family: DatabaseFamily, database_name: str) -> Optional[str]:
    if family == DatabaseFamily.POSTGRESQL:
        return database_name or DEFAULT_SCHEMA
    if family == DatabaseFamily.MYSQL:
        return database_name or None
    return None


def list_tables(connection: Connection, family: DatabaseFamily, database_name: str = "") -> List[str]:
    """
    Every table name in the database (or schema), sorted.

    Raises:
        MetadataQueryError: the listing query failed.
    """
    try:
        names: List[str] = inspect(connection).get_table_names(schema=_schema_for(family, database_name))
    except SQLAlchemyError as exc:
        raise MetadataQueryError(f"cannot list tables: {exc}", query="list-tables") from exc
    return sorted(names)


# ---------------------------------------------------------------------------
# Artifact plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Artifact:
    """One template rendered to one output path."""

    template: str
    path: str
    format_source: bool = True


def table_artifacts(model: ModelInfo, config: GeneratorConfig) -> List[Artifact]:
    """Per-table outputs; statement-based ones need a primary key."""
    artifacts: List[Artifact] = [
        Artifact("model.py.tmpl", f"{config.model_package_name}/{model.file_name}.py"),
    ]
    if model.delete_sql is None:
        return artifacts

    if config.generate_dao:
        artifacts.append(Artifact("dao.py.tmpl", f"{config.dao_package_name}/{model.file_name}.py"))
    if config.generate_api:
        artifacts.append(Artifact("api.py.tmpl", f"{config.api_package_name}/{model.file_name}.py"))
    if config.generate_docs:
        artifacts.append(Artifact("code_dao.md.tmpl", f"docs/{model.file_name}_dao.md", False))
        if config.generate_api:
            artifacts.append(Artifact("code_http.md.tmpl", f"docs/{model.file_name}_http.md", False))
    return artifacts


def project_artifacts(config: GeneratorConfig) -> List[Tuple[Artifact, Dict[str, Any]]]:
    """Project-level outputs with their extra bindings."""
    artifacts: List[Tuple[Artifact, Dict[str, Any]]] = [
        (Artifact("package_init.py.tmpl", f"{config.model_package_name}/__init__.py"),
         {"package": config.model_package_name}),
        (Artifact("model_base.py.tmpl", f"{config.model_package_name}/model_base.py"), {}),
    ]
    if config.generate_dao:
        artifacts.append((
            Artifact("package_init.py.tmpl", f"{config.dao_package_name}/__init__.py"),
            {"package": config.dao_package_name},
        ))
        artifacts.append((Artifact("dao_base.py.tmpl", f"{config.dao_package_name}/dao_base.py"), {}))
    if config.generate_api:
        artifacts.append((
            Artifact("package_init.py.tmpl", f"{config.api_package_name}/__init__.py"),
            {"package": config.api_package_name},
        ))
        artifacts.append((Artifact("router.py.tmpl", f"{config.api_package_name}/router.py"), {}))
    artifacts.append((Artifact("README.md.tmpl", "README.md", False), {}))
    return artifacts


# ---------------------------------------------------------------------------
# CodeGenerator: master orchestrator
# ---------------------------------------------------------------------------


class CodeGenerator:
    """
    Master pipeline orchestrator.

    Usage::

        config = GeneratorConfig(sql_type="sqlite", out_dir="./out")
        generator = CodeGenerator(config)

        # From a URL (connection errors raise DatabaseConnectionError)
        report = generator.generate_from_url("sqlite:///app.db")

        # From an open connection
        with engine.connect() as conn:
            report = generator.generate(conn, ["users", "orders"])

        print(report.summary())
    """

    def __init__(
        self,
        config: GeneratorConfig,
        *,
        mapper: Optional[TypeMapper] = None,
        loader: Optional[TemplateLoader] = None,
        writer: Optional[OutputWriter] = None,
        adapter: Optional[DialectAdapter] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._config: GeneratorConfig = config
        self._mapper: TypeMapper = mapper or TypeMapper()
        self._loader: Optional[TemplateLoader] = loader
        self._writer: Optional[OutputWriter] = writer
        self._adapter: DialectAdapter = adapter or get_adapter(config.sql_type)
        self._progress: Optional[ProgressCallback] = progress

        logger.debug(
            "CodeGenerator initialised: family=%s, out=%s, overwrite=%s.",
            config.sql_type,
            config.out_dir,
            config.overwrite,
        )

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def generate_from_url(self, url: str, tables: Sequence[str] = ()) -> GenerationReport:
        """Open *url*, run the pipeline, dispose of the engine."""
        engine: Engine = open_engine(url)
        try:
            with engine.connect() as conn:
                return self.generate(conn, tables)
        finally:
            engine.dispose()

    def generate(self, connection: Connection, tables: Sequence[str] = ()) -> GenerationReport:
        """
        Full pipeline over an open connection.

        Args:
            connection: open SQLAlchemy connection.
            tables: table names; empty means every table in the database.
        """
        report: GenerationReport = GenerationReport()
        report.database = self._config.database_name or str(self._config.sql_type)
        report.output_directory = str(Path(self._config.out_dir).resolve())
        pipeline_start: float = time.perf_counter()

        engine: TemplateEngine = TemplateEngine(
            self._config, loader=self._loader, mapper=self._mapper, writer=self._writer
        )

        if self._step_validate_config(report):
            names: List[str] = self._step_list_tables(connection, tables, report)
            described: List[TableDescriptor] = self._step_describe(connection, names, report)
            valid: List[TableDescriptor] = self._step_validate_tables(described, report)
            models: List[ModelInfo] = self._step_build_models(engine, valid, report)
            self._step_render_tables(engine, models, report)
            self._step_render_project(engine, report)

        return self._finalise_report(report, engine, time.perf_counter() - pipeline_start)

    # -----------------------------------------------------------------
    # Pipeline step: configuration validation
    # -----------------------------------------------------------------

    def _step_validate_config(self, report: GenerationReport) -> bool:
        with Timer("validate_config") as t:
            result: ValidationResult = validate_config(self._config)

        report.validation_errors.extend(str(e) for e in result.errors)
        report.validation_warnings.extend(str(w) for w in result.warnings)
        report.step_metrics.append(GenerationStepMetric(
            step_name="Validate Config",
            success=result.is_valid,
            elapsed_seconds=t.elapsed,
            detail=result.summary(),
        ))
        if not result.is_valid:
            for err in result.errors:
                logger.error("  ✗ %s", err)
        return result.is_valid

    # -----------------------------------------------------------------
    # Pipeline step: table listing
    # -----------------------------------------------------------------

    def _step_list_tables(
        self,
        connection: Connection,
        tables: Sequence[str],
        report: GenerationReport,
    ) -> List[str]:
        with Timer("list_tables") as t:
            success: bool = True
            if tables:
                names: List[str] = list(tables)
            else:
                try:
                    names = list_tables(connection, DatabaseFamily.parse(self._config.sql_type), self._config.database_name)
                except MetadataQueryError as exc:
                    report.generation_errors.append(str(exc))
                    logger.error("%s", exc)
                    names, success = [], False

            excluded = set(self._config.exclude_tables)
            selected: List[str] = [n for n in names if n not in excluded]

        report.tables_requested = len(selected)
        report.step_metrics.append(GenerationStepMetric(
            step_name="List Tables",
            success=success,
            elapsed_seconds=t.elapsed,
            detail=f"{len(selected)} selected, {len(names) - len(selected)} excluded",
        ))
        return selected

    # -----------------------------------------------------------------
    # Pipeline step: describe
    # -----------------------------------------------------------------

    def _step_describe(
        self,
        connection: Connection,
        names: Sequence[str],
        report: GenerationReport,
    ) -> List[TableDescriptor]:
        described: List[TableDescriptor] = []
        with Timer("describe") as t:
            for name in names:
                try:
                    table: TableDescriptor = self._adapter.describe_table(
                        connection, self._config.database_name, name
                    )
                except MetadataQueryError as exc:
                    report.generation_errors.append(str(exc))
                    report.skipped_tables.append(name)
                    logger.error("%s", exc)
                    continue
                described.append(table)
                self._emit(f"described {table.name}: {len(table.columns)} columns")
                if self._config.verbose:
                    for col in table.columns:
                        self._emit(f"    {col.describe()}")

        report.tables_described = len(described)
        report.step_metrics.append(GenerationStepMetric(
            step_name="Describe Tables",
            success=len(described) == len(names),
            elapsed_seconds=t.elapsed,
            detail=f"{len(described)}/{len(names)} tables",
        ))
        return described

    # -----------------------------------------------------------------
    # Pipeline step: table validation
    # -----------------------------------------------------------------

    def _step_validate_tables(
        self,
        tables: Sequence[TableDescriptor],
        report: GenerationReport,
    ) -> List[TableDescriptor]:
        valid: List[TableDescriptor] = []
        with Timer("validate_tables") as t:
            for table in tables:
                result: ValidationResult = validate_table(table, self._mapper)
                report.validation_warnings.extend(str(w) for w in result.warnings)
                if result.is_valid:
                    valid.append(table)
                    continue
                report.validation_errors.extend(str(e) for e in result.errors)
                report.skipped_tables.append(table.name)
                logger.error("Table %s failed validation:\n%s", table.name, result.format_report())

        report.step_metrics.append(GenerationStepMetric(
            step_name="Validate Tables",
            success=len(valid) == len(tables),
            elapsed_seconds=t.elapsed,
            detail=f"{len(valid)}/{len(tables)} valid",
        ))
        return valid

    # -----------------------------------------------------------------
    # Pipeline step: model building
    # -----------------------------------------------------------------

    def _step_build_models(
        self,
        engine: TemplateEngine,
        tables: Sequence[TableDescriptor],
        report: GenerationReport,
    ) -> List[ModelInfo]:
        models: List[ModelInfo] = []
        with Timer("build_models") as t:
            for table in tables:
                try:
                    models.append(engine.add_table(table))
                except DBGenError as exc:
                    exc.with_table(table.name)
                    report.generation_errors.append(str(exc))
                    report.skipped_tables.append(table.name)
                    logger.error("%s", exc)

        report.step_metrics.append(GenerationStepMetric(
            step_name="Build Models",
            success=len(models) == len(tables),
            elapsed_seconds=t.elapsed,
            detail=f"{len(models)} models, {sum(len(m.fields) for m in models)} fields",
        ))
        return models

    # -----------------------------------------------------------------
    # Pipeline step: rendering
    # -----------------------------------------------------------------

    def _render(
        self,
        report: GenerationReport,
        render: Callable[[], RenderOutcome],
        label: str,
    ) -> bool:
        """Run one render call, isolating its failure."""
        try:
            outcome: RenderOutcome = render()
        except OutputWriteError as exc:
            report.write_errors.append(str(exc))
            logger.error("%s", exc)
            return False
        except DBGenError as exc:
            report.generation_errors.append(f"{label}: {exc}")
            logger.error("%s: %s", label, exc)
            return False
        self._emit(f"{outcome.status:<8s} {outcome.path}")
        return True

    def _step_render_tables(
        self,
        engine: TemplateEngine,
        models: Sequence[ModelInfo],
        report: GenerationReport,
    ) -> None:
        failures: int = 0
        with Timer("render_tables") as t:
            for model in models:
                if model.delete_sql is None:
                    logger.warning(
                        "Table %s has no primary key: only the record model is generated.",
                        model.table_name,
                    )
                table_ok: bool = True
                for artifact in table_artifacts(model, self._config):
                    table_ok &= self._render(
                        report,
                        lambda a=artifact: engine.render_table(a.template, model, a.path, a.format_source),
                        artifact.template,
                    )
                if table_ok:
                    report.tables_rendered += 1
                else:
                    failures += 1

        report.step_metrics.append(GenerationStepMetric(
            step_name="Render Tables",
            success=failures == 0,
            elapsed_seconds=t.elapsed,
            detail=f"{len(models) - failures}/{len(models)} tables",
        ))

    def _step_render_project(self, engine: TemplateEngine, report: GenerationReport) -> None:
        ok: bool = True
        with Timer("render_project") as t:
            for artifact, extra in project_artifacts(self._config):
                ok &= self._render(
                    report,
                    lambda a=artifact, x=extra: engine.render_project(a.template, a.path, a.format_source, x),
                    artifact.template,
                )

        report.step_metrics.append(GenerationStepMetric(
            step_name="Render Project Files",
            success=ok,
            elapsed_seconds=t.elapsed,
            detail="bases, packages, router, README",
        ))

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _emit(self, message: str) -> None:
        if self._progress is not None:
            self._progress(message)

    def _finalise_report(
        self,
        report: GenerationReport,
        engine: TemplateEngine,
        total_elapsed: float,
    ) -> GenerationReport:
        """Set final status, totals and timing on the report."""
        manifest: WriteManifest = engine.writer.manifest()
        report.manifest = manifest
        report.outcomes = engine.outcomes
        report.files_written = manifest.total_files
        report.files_skipped = len(manifest.skipped)
        report.total_bytes = manifest.total_bytes
        report.total_elapsed_seconds = total_elapsed
        report.success = not (
            report.validation_errors or report.generation_errors or report.write_errors
        )
        return report


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "Artifact",
    "CodeGenerator",
    "GenerationReport",
    "GenerationStepMetric",
    "list_tables",
    "load_config_file",
    "load_context_file",
    "open_engine",
    "project_artifacts",
    "table_artifacts",
]

logger.debug("dbgen.generator loaded.")
