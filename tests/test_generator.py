"""
tests/test_generator.py
Integration tests for the full generation pipeline (dbgen.generator).

Tests cover:
- End-to-end generation against a real SQLite database
- Key-less tables (record model only)
- Table selection and exclusion
- Per-table failure isolation and the final report
- Overwrite policy across runs
- Configuration / context file loading
- Connection failures
"""

from __future__ import annotations

import ast
import json
import pathlib
from typing import List

import pytest
from sqlalchemy.engine import Engine

from dbgen.errors import ConfigError, DatabaseConnectionError
from dbgen.generator import (
    CodeGenerator,
    GenerationReport,
    list_tables,
    load_config_file,
    load_context_file,
    open_engine,
    project_artifacts,
    table_artifacts,
)
from dbgen.models import DatabaseFamily, GeneratorConfig
from dbgen.templates import build_model_info, mapping_loader, package_loader
from dbgen.typemap import TypeMapper

EXPECTED_FILES: List[str] = sorted([
    "README.md",
    "api/__init__.py",
    "api/customers.py",
    "api/order_items.py",
    "api/router.py",
    "api/t.py",
    "dao/__init__.py",
    "dao/customers.py",
    "dao/dao_base.py",
    "dao/order_items.py",
    "dao/t.py",
    "model/__init__.py",
    "model/audit_log.py",
    "model/customers.py",
    "model/model_base.py",
    "model/order_items.py",
    "model/t.py",
])


def _generated(out_dir: pathlib.Path) -> List[str]:
    return sorted(p.relative_to(out_dir).as_posix() for p in out_dir.rglob("*") if p.is_file())


# ===========================================================================
# End-to-end
# ===========================================================================


class TestEndToEnd:
    def test_full_run(self, sqlite_url: str, config: GeneratorConfig, out_dir: pathlib.Path) -> None:
        report: GenerationReport = CodeGenerator(config).generate_from_url(sqlite_url)

        assert report.success, report.summary()
        assert report.tables_requested == 4
        assert report.tables_described == 4
        assert report.tables_rendered == 4
        assert report.files_written == len(EXPECTED_FILES)
        assert report.files_skipped == 0
        assert report.total_bytes > 0
        assert _generated(out_dir) == EXPECTED_FILES

    def test_generated_python_parses(self, sqlite_url: str, config: GeneratorConfig, out_dir: pathlib.Path) -> None:
        CodeGenerator(config).generate_from_url(sqlite_url)
        for path in out_dir.rglob("*.py"):
            ast.parse(path.read_text(encoding="utf-8"), filename=str(path))

    def test_generated_statements(self, sqlite_url: str, config: GeneratorConfig, out_dir: pathlib.Path) -> None:
        CodeGenerator(config).generate_from_url(sqlite_url)
        dao = (out_dir / "dao" / "t.py").read_text(encoding="utf-8")
        assert "INSERT INTO t (name) VALUES ($1)" in dao
        assert "UPDATE t SET name = $1 WHERE id = $2" in dao

        items = (out_dir / "dao" / "order_items.py").read_text(encoding="utf-8")
        assert "DELETE FROM order_items WHERE order_id = $1 AND line_no = $2" in items

        model = (out_dir / "model" / "customers.py").read_text(encoding="utf-8")
        assert "class Customers(BaseModel):" in model
        assert "email: str" in model
        assert "full_name: Optional[str]" in model

    def test_keyless_table_gets_model_only(self, sqlite_url: str, config: GeneratorConfig, out_dir: pathlib.Path) -> None:
        report = CodeGenerator(config).generate_from_url(sqlite_url, ["audit_log"])

        assert report.success
        assert (out_dir / "model" / "audit_log.py").is_file()
        assert not (out_dir / "dao" / "audit_log.py").exists()
        assert not (out_dir / "api" / "audit_log.py").exists()
        assert any("NO_PRIMARY_KEY" in w for w in report.validation_warnings)

    def test_docs_and_disabled_layers(self, sqlite_url: str, out_dir: pathlib.Path) -> None:
        config = GeneratorConfig(
            sql_type="sqlite", out_dir=str(out_dir), generate_api=False, generate_docs=True
        )
        report = CodeGenerator(config).generate_from_url(sqlite_url, ["t"])

        assert report.success, report.summary()
        assert (out_dir / "docs" / "t_dao.md").is_file()
        assert not (out_dir / "docs" / "t_http.md").exists()
        assert not (out_dir / "api").exists()

    def test_progress_callback(self, sqlite_url: str, out_dir: pathlib.Path) -> None:
        messages: List[str] = []
        config = GeneratorConfig(sql_type="sqlite", out_dir=str(out_dir), verbose=True)
        CodeGenerator(config, progress=messages.append).generate_from_url(sqlite_url, ["t"])

        assert "described t: 2 columns" in messages
        assert any(m.strip().startswith("[ 0] id") for m in messages)
        assert any(m.startswith("written") and m.endswith("t.py") for m in messages)


# ===========================================================================
# Selection & failure isolation
# ===========================================================================


class TestSelection:
    def test_exclude_tables(self, sqlite_url: str, out_dir: pathlib.Path) -> None:
        config = GeneratorConfig(sql_type="sqlite", out_dir=str(out_dir), exclude_tables=["audit_log", "customers"])
        report = CodeGenerator(config).generate_from_url(sqlite_url)

        assert report.tables_requested == 2
        assert not (out_dir / "model" / "customers.py").exists()
        assert (out_dir / "model" / "order_items.py").is_file()

    def test_missing_table_is_reported(self, sqlite_url: str, config: GeneratorConfig, out_dir: pathlib.Path) -> None:
        report = CodeGenerator(config).generate_from_url(sqlite_url, ["t", "nope"])

        assert not report.success
        assert report.skipped_tables == ["nope"]
        assert len(report.generation_errors) == 1
        assert "[table nope]" in report.generation_errors[0]
        assert (out_dir / "model" / "t.py").is_file()
        assert "Skipped Tables (1)" in report.summary()

    def test_artifact_failure_is_isolated(self, sqlite_url: str, config: GeneratorConfig, out_dir: pathlib.Path) -> None:
        loader = mapping_loader({"api.py.tmpl": "{{ NoSuchBinding }}"}, fallback=package_loader())
        report = CodeGenerator(config, loader=loader).generate_from_url(sqlite_url)

        assert not report.success
        assert len(report.generation_errors) == 3
        assert all(e.startswith("api.py.tmpl: [table ") for e in report.generation_errors)
        assert report.tables_rendered == 1
        assert (out_dir / "dao" / "customers.py").is_file()
        assert not (out_dir / "api" / "customers.py").exists()
        assert "Generation Errors (3)" in report.summary()

    def test_invalid_config_aborts(self, sqlite_url: str, out_dir: pathlib.Path) -> None:
        config = GeneratorConfig(sql_type="sqlite", out_dir=str(out_dir), api_package_name="model")
        report = CodeGenerator(config).generate_from_url(sqlite_url)

        assert not report.success
        assert report.validation_errors
        assert report.files_written == 0
        assert [s.step_name for s in report.step_metrics] == ["Validate Config"]
        assert _generated(out_dir) == []


class TestOverwrite:
    def test_second_run_skips_existing(self, sqlite_url: str, out_dir: pathlib.Path) -> None:
        config = GeneratorConfig(sql_type="sqlite", out_dir=str(out_dir), overwrite=False)
        CodeGenerator(config).generate_from_url(sqlite_url, ["t"])
        (out_dir / "model" / "t.py").write_text("# mine\n", encoding="utf-8")

        report = CodeGenerator(config).generate_from_url(sqlite_url, ["t"])

        assert report.success
        assert report.files_written == 0
        # model, dao, api for t plus seven project files
        assert report.files_skipped == 10
        assert (out_dir / "model" / "t.py").read_text(encoding="utf-8") == "# mine\n"

    def test_rerun_is_byte_identical(self, sqlite_url: str, config: GeneratorConfig, out_dir: pathlib.Path) -> None:
        first = CodeGenerator(config).generate_from_url(sqlite_url)
        second = CodeGenerator(config).generate_from_url(sqlite_url)
        assert [f.sha256 for f in first.manifest.files] == [f.sha256 for f in second.manifest.files]


# ===========================================================================
# Helpers
# ===========================================================================


class TestArtifactPlan:
    def test_table_artifacts(self, config: GeneratorConfig, users_table, keyless_table) -> None:
        mapper = TypeMapper()
        users = build_model_info(users_table, config, mapper)
        keyless = build_model_info(keyless_table, config, mapper)

        assert [a.path for a in table_artifacts(users, config)] == ["model/users.py", "dao/users.py", "api/users.py"]
        assert [a.path for a in table_artifacts(keyless, config)] == ["model/audit_log.py"]

    def test_project_artifacts(self, out_dir: pathlib.Path) -> None:
        config = GeneratorConfig(out_dir=str(out_dir), generate_dao=False, generate_api=False)
        paths = [a.path for a, _ in project_artifacts(config)]
        assert paths == ["model/__init__.py", "model/model_base.py", "README.md"]


class TestDatabaseHelpers:
    def test_list_tables(self, sqlite_engine: Engine) -> None:
        with sqlite_engine.connect() as conn:
            assert list_tables(conn, DatabaseFamily.SQLITE) == ["audit_log", "customers", "order_items", "t"]

    def test_bad_url(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(DatabaseConnectionError):
            open_engine(f"sqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")

    def test_unknown_driver(self) -> None:
        with pytest.raises(DatabaseConnectionError):
            open_engine("nosuchdb://user@host/db")

    def test_generate_from_bad_url(self, config: GeneratorConfig, tmp_path: pathlib.Path) -> None:
        with pytest.raises(DatabaseConnectionError):
            CodeGenerator(config).generate_from_url(f"sqlite:///{tmp_path / 'no' / 'x.db'}")


class TestConfigFiles:
    def test_yaml_config_with_overrides(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "dbgen.yaml"
        path.write_text(
            "config:\n"
            "  sql_type: postgres\n"
            "  database_name: shop\n"
            "  overwrite: false\n"
            "  model_package_name: models\n",
            encoding="utf-8",
        )
        config = load_config_file(path, {"database_name": "public"})
        assert config.sql_type == DatabaseFamily.POSTGRESQL.value
        assert config.database_name == "public"
        assert config.overwrite is False
        assert config.model_package_name == "models"

    def test_json_config_top_level(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "dbgen.json"
        path.write_text(json.dumps({"sql_type": "sqlite", "line_length": 120}), encoding="utf-8")
        assert load_config_file(path).line_length == 120

    @pytest.mark.parametrize(
        "content",
        ['{"unknown_option": 1}', '{"line_length": 10}', "not: [valid"],
    )
    def test_invalid_config(self, tmp_path: pathlib.Path, content: str) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config_file(path)

    def test_missing_config(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(ConfigError):
            load_config_file(tmp_path / "absent.yaml")

    def test_context_file(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "ctx.json"
        path.write_text('{"author": "ops", "year": 2024}', encoding="utf-8")
        assert load_context_file(path) == {"author": "ops", "year": 2024}

    def test_context_file_must_be_mapping(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "ctx.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_context_file(path)
