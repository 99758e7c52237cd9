# File: dbgen/cli.py
"""
dbgen - Command-Line Interface
==============================

Argument parsing is done with the standard-library ``argparse`` module.

Usage examples::

    # Generate everything for a SQLite database
    python -m dbgen --connstr sqlite:///app.db --out ./generated

    # Two PostgreSQL tables from a schema, boxed nulls, no overwrite
    python -m dbgen --connstr postgresql+psycopg://u:p@localhost/shop \\
        --database sales --table orders --table customers \\
        --boxed-nulls --no-overwrite --out ./gen

    # Check what the naming templates produce
    python -m dbgen --name-test user_accounts --model-naming "{{ name | singular | camel }}"

    # Show the built-in templates
    python -m dbgen --list-templates

Exit codes:
    0: success
    1: connection error
    2: generation error
    3: write error
    4: input/argument error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_CONNECTION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_WRITE_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root dbgen logger based on verbosity level.

    Args:
        verbosity: -1 = ERROR, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity < 0:
        level = logging.ERROR
    elif verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("dbgen")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from dbgen import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="dbgen",
        description=(
            "dbgen — database-first code generator.\n\n"
            "Reads table metadata from a live database and renders record "
            "models, data-access code, HTTP handlers and docs from templates."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s --connstr sqlite:///app.db --out ./generated\n"
            "  %(prog)s --connstr mysql+pymysql://u:p@host/shop --database shop --table orders\n"
            "  %(prog)s --name-test user_accounts\n"
            "  %(prog)s --list-templates\n"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"dbgen v{__version__}",
    )

    # --- Source database ---
    source_group = parser.add_argument_group("source database")
    source_group.add_argument(
        "--connstr",
        type=str,
        default=None,
        metavar="URL",
        help="SQLAlchemy database URL.",
    )
    source_group.add_argument(
        "--sqltype",
        type=str,
        default=None,
        metavar="FAMILY",
        help="Engine family (mysql, postgresql, sqlite, mssql). Defaults to the URL scheme.",
    )
    source_group.add_argument(
        "--database",
        type=str,
        default=None,
        metavar="NAME",
        help="Database name (schema name for PostgreSQL).",
    )
    source_group.add_argument(
        "--table",
        action="append",
        default=[],
        metavar="NAME",
        help="Table to generate; repeatable. Default: every table.",
    )
    source_group.add_argument(
        "--exclude",
        action="append",
        default=None,
        metavar="NAME",
        help="Table to skip; repeatable.",
    )

    # --- Input files ---
    input_group = parser.add_argument_group("input files")
    input_group.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="JSON or YAML file with generator options.",
    )
    input_group.add_argument(
        "--templates-dir",
        type=str,
        default=None,
        metavar="DIR",
        help="Directory whose templates take precedence over the built-in ones.",
    )
    input_group.add_argument(
        "--mapping",
        type=str,
        default=None,
        metavar="PATH",
        help="JSON or YAML file with type mapping overrides.",
    )
    input_group.add_argument(
        "--context",
        type=str,
        default=None,
        metavar="PATH",
        help="JSON or YAML mapping of extra template bindings.",
    )

    # --- Output ---
    output_group = parser.add_argument_group("output")
    output_group.add_argument(
        "--out",
        type=str,
        default=None,
        metavar="DIR",
        help="Root output directory.",
    )
    output_group.add_argument(
        "--overwrite",
        dest="overwrite",
        action="store_true",
        default=None,
        help="Replace existing files (default).",
    )
    output_group.add_argument(
        "--no-overwrite",
        dest="overwrite",
        action="store_false",
        help="Skip files that already exist.",
    )
    output_group.add_argument(
        "--no-format",
        dest="format_source",
        action="store_false",
        default=None,
        help="Do not run black over generated Python.",
    )
    output_group.add_argument(
        "--line-length",
        type=int,
        default=None,
        metavar="N",
        help="Line length for black.",
    )
    output_group.add_argument(
        "--crlf",
        dest="crlf_line_endings",
        action="store_true",
        default=None,
        help="Write \\r\\n line endings.",
    )

    # --- Generated code ---
    code_group = parser.add_argument_group("generated code")
    code_group.add_argument(
        "--json",
        dest="add_json_annotation",
        action="store_true",
        default=None,
        help="Emit serialized-name aliases on fields (default).",
    )
    code_group.add_argument(
        "--no-json",
        dest="add_json_annotation",
        action="store_false",
        help="Omit serialized-name aliases.",
    )
    code_group.add_argument(
        "--db",
        dest="add_db_annotation",
        action="store_true",
        default=None,
        help="Emit source column metadata on fields.",
    )
    code_group.add_argument(
        "--boxed-nulls",
        dest="use_boxed_nulls",
        action="store_true",
        default=None,
        help="Use NullInt/NullString/... wrappers for nullable columns.",
    )
    code_group.add_argument(
        "--json-fmt",
        dest="json_name_format",
        type=str,
        default=None,
        choices=["snake", "camel", "lower_camel", "none"],
        help="Case of serialized field names.",
    )
    code_group.add_argument("--model-package", dest="model_package_name", default=None, metavar="NAME")
    code_group.add_argument("--dao-package", dest="dao_package_name", default=None, metavar="NAME")
    code_group.add_argument("--api-package", dest="api_package_name", default=None, metavar="NAME")
    code_group.add_argument(
        "--no-dao",
        dest="generate_dao",
        action="store_false",
        default=None,
        help="Do not render the data-access layer.",
    )
    code_group.add_argument(
        "--no-api",
        dest="generate_api",
        action="store_false",
        default=None,
        help="Do not render HTTP handlers.",
    )
    code_group.add_argument(
        "--docs",
        dest="generate_docs",
        action="store_true",
        default=None,
        help="Render markdown docs per table.",
    )
    code_group.add_argument("--host", dest="server_host", default=None, metavar="HOST")
    code_group.add_argument("--port", dest="server_port", type=int, default=None, metavar="PORT")

    # --- Naming ---
    naming_group = parser.add_argument_group("naming templates")
    naming_group.add_argument(
        "--model-naming",
        dest="model_naming",
        default=None,
        metavar="TEMPLATE",
        help="Record class name template, e.g. '{{ name | camel }}'.",
    )
    naming_group.add_argument(
        "--field-naming",
        dest="field_naming",
        default=None,
        metavar="TEMPLATE",
        help="Field name template, e.g. '{{ name | snake }}'.",
    )
    naming_group.add_argument(
        "--file-naming",
        dest="file_naming",
        default=None,
        metavar="TEMPLATE",
        help="File name template, e.g. '{{ name | snake }}'.",
    )

    # --- Modes ---
    mode_group = parser.add_argument_group("operation modes")
    mode_group.add_argument(
        "--name-test",
        type=str,
        default=None,
        metavar="NAME",
        help="Print the names the naming templates derive from NAME and exit.",
    )
    mode_group.add_argument(
        "--list-templates",
        action="store_true",
        default=False,
        help="List available templates and exit.",
    )

    # --- Verbosity ---
    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    return parser


# ---------------------------------------------------------------------------
# Config override builder
# ---------------------------------------------------------------------------

_PASSTHROUGH_OPTIONS: Sequence[str] = (
    "overwrite",
    "format_source",
    "line_length",
    "crlf_line_endings",
    "add_json_annotation",
    "add_db_annotation",
    "use_boxed_nulls",
    "json_name_format",
    "model_package_name",
    "dao_package_name",
    "api_package_name",
    "generate_dao",
    "generate_api",
    "generate_docs",
    "server_host",
    "server_port",
    "model_naming",
    "field_naming",
    "file_naming",
)


def _build_config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Build a config override dictionary from CLI arguments."""
    overrides: Dict[str, Any] = {}

    if args.sqltype is not None:
        overrides["sql_type"] = args.sqltype
    elif args.connstr:
        overrides["sql_type"] = args.connstr.split(":", 1)[0]

    if args.database is not None:
        overrides["database_name"] = args.database

    if args.exclude is not None:
        overrides["exclude_tables"] = args.exclude

    if args.out is not None:
        overrides["out_dir"] = args.out

    if args.verbose:
        overrides["verbose"] = True

    for option in _PASSTHROUGH_OPTIONS:
        value: Any = getattr(args, option)
        if value is not None:
            overrides[option] = value

    return overrides


def _build_config(args: argparse.Namespace):
    """
    Assemble the ``GeneratorConfig`` from config file, context file and flags.

    Raises:
        ConfigError: a file could not be loaded or the options are invalid.
    """
    from pydantic import ValidationError

    from dbgen.errors import ConfigError
    from dbgen.generator import load_config_file, load_context_file
    from dbgen.models import GeneratorConfig

    overrides: Dict[str, Any] = _build_config_overrides(args)

    if args.config:
        config = load_config_file(Path(args.config), overrides)
    else:
        try:
            config = GeneratorConfig.model_validate(overrides)
        except ValidationError as exc:
            raise ConfigError(f"invalid options: {exc}") from exc

    if args.context:
        context_map: Dict[str, Any] = {**config.context_map, **load_context_file(Path(args.context))}
        config = config.model_copy(update={"context_map": context_map})

    return config


def _build_loader(args: argparse.Namespace):
    from dbgen.templates import directory_loader, package_loader

    if args.templates_dir:
        return directory_loader(args.templates_dir, fallback=package_loader())
    return None


# ---------------------------------------------------------------------------
# Name-test & template listing modes
# ---------------------------------------------------------------------------


def _run_name_test(name: str, config) -> int:
    """Print the names the naming templates derive from *name*."""
    from dbgen.errors import DBGenError
    from dbgen.templates import render_name
    from dbgen.utils import format_name

    try:
        model_name: str = render_name(config.model_naming, name)
        field_name: str = render_name(config.field_naming, name)
        file_name: str = render_name(config.file_naming, name)
    except DBGenError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR

    print(f"\n{'='*50}")
    print("  Naming Test")
    print(f"{'='*50}")
    print(f"  Input:      {name}")
    print(f"  Model:      {model_name}")
    print(f"  Field:      {field_name}")
    print(f"  File:       {file_name}")
    print(f"  JSON:       {format_name(config.json_name_format, name)}")
    print(f"{'='*50}\n")
    return EXIT_SUCCESS


def _run_list_templates(templates_dir: Optional[str]) -> int:
    from dbgen.templates import list_builtin_templates

    print("Built-in templates:")
    for name in list_builtin_templates():
        print(f"  {name}")

    if templates_dir:
        directory: Path = Path(templates_dir)
        if not directory.is_dir():
            logger.error("Templates directory not found: %s", directory)
            return EXIT_INPUT_ERROR
        print(f"Templates in {directory}:")
        for path in sorted(directory.rglob("*.tmpl")):
            print(f"  {path.relative_to(directory).as_posix()}")

    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Full generation mode
# ---------------------------------------------------------------------------


def _run_generation(args: argparse.Namespace, config, quiet: bool) -> int:
    """
    Run the full generation pipeline.

    Returns the appropriate exit code.
    """
    from dbgen.errors import DatabaseConnectionError, MappingLoadError
    from dbgen.generator import CodeGenerator, GenerationReport
    from dbgen.typemap import TypeMapper

    try:
        mapper: TypeMapper = TypeMapper.from_payload(Path(args.mapping)) if args.mapping else TypeMapper()
    except MappingLoadError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT_ERROR

    generator: CodeGenerator = CodeGenerator(
        config,
        mapper=mapper,
        loader=_build_loader(args),
        progress=None if quiet else print,
    )

    try:
        report: GenerationReport = generator.generate_from_url(args.connstr, args.table)
    except DatabaseConnectionError as exc:
        logger.error("%s", exc)
        return EXIT_CONNECTION_ERROR

    if not quiet:
        print(report.summary())

    if report.write_errors:
        return EXIT_WRITE_ERROR
    if not report.success:
        return EXIT_GENERATION_ERROR
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    from dbgen.errors import ConfigError

    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    # --- Verbosity ---
    if args.quiet:
        verbosity: int = -1
    else:
        verbosity = args.verbose

    _setup_logging(verbosity)

    # --- Template listing ---
    if args.list_templates:
        sys.exit(_run_list_templates(args.templates_dir))

    # --- Configuration ---
    try:
        config = _build_config(args)
    except ConfigError as exc:
        logger.error("%s", exc)
        sys.exit(EXIT_INPUT_ERROR)

    # --- Name-test mode ---
    if args.name_test is not None:
        sys.exit(_run_name_test(args.name_test, config))

    if not args.connstr:
        logger.error("A database URL is required for generation. Use --connstr.")
        parser.print_usage(sys.stderr)
        sys.exit(EXIT_INPUT_ERROR)

    logger.info("Source:  %s (%s)", config.sql_type, config.database_name or "default")
    logger.info("Output:  %s", Path(config.out_dir).resolve())
    logger.info("Overwrite: %s", config.overwrite)

    # --- Run generation ---
    exit_code: int = _run_generation(args, config, args.quiet)

    if exit_code == EXIT_SUCCESS:
        logger.info("Generation completed successfully.")
    else:
        logger.error("Generation failed with exit code %d.", exit_code)

    sys.exit(exit_code)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "cli_main",
    "EXIT_SUCCESS",
    "EXIT_CONNECTION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_WRITE_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("dbgen.cli loaded.")
