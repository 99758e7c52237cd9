"""
tests/test_templates.py
Unit tests for dbgen.templates (TemplateEngine and model building).

Tests cover:
- Naming templates and the helper registry
- ModelInfo construction (names, fields, statements, skipped columns)
- Composite template resolution and missing sub-templates
- Strict binding lookup
- Overwrite / skip behaviour and byte-identical re-rendering
- black formatting of generated Python
- Built-in templates producing valid Python (checked with ast.parse)
"""

from __future__ import annotations

import ast
import pathlib
from typing import Dict

import pytest

from dbgen.errors import (
    ConfigError,
    MissingSubTemplateError,
    ModelBuildError,
    SourceFormatError,
    TemplateLoadError,
    UnresolvedBindingError,
)
from dbgen.models import GeneratorConfig, ModelInfo, TableDescriptor
from dbgen.templates import (
    COMPOSITE_OPERATIONS,
    TemplateEngine,
    build_model_info,
    directory_loader,
    list_builtin_templates,
    mapping_loader,
    package_loader,
    render_name,
    sub_template_names,
)
from dbgen.typemap import TypeMapper
from dbgen.utils import escape_string

from tests.conftest import make_table


def _composite_templates() -> Dict[str, str]:
    templates: Dict[str, str] = {
        "api.py.tmpl": "{{ getall() }}|{{ get() }}|{{ add() }}|{{ update() }}|{{ delete() }}",
    }
    for op in COMPOSITE_OPERATIONS:
        templates[f"api_{op}.py.tmpl"] = op.upper() + " {{ TableName }}"
    return templates


def _engine(config: GeneratorConfig, templates: Dict[str, str], **kwargs) -> TemplateEngine:
    return TemplateEngine(config, loader=mapping_loader(templates), **kwargs)


# ===========================================================================
# Naming & helpers
# ===========================================================================


class TestRenderName:
    @pytest.mark.parametrize(
        "template, name, expected",
        [
            ("{{ name | camel }}", "user_accounts", "UserAccounts"),
            ("{{ name | lower_camel }}", "user_accounts", "userAccounts"),
            ("{{ name | snake }}", "OrderItems", "order_items"),
            ("{{ name | singular | camel }}Row", "orders", "OrderRow"),
            ("{{ name | upper }}", "abc", "ABC"),
            ("  {{ name }}  ", "id", "id"),
        ],
    )
    def test_examples(self, template: str, name: str, expected: str) -> None:
        assert render_name(template, name) == expected

    def test_syntax_error_is_config_error(self) -> None:
        with pytest.raises(ConfigError):
            render_name("{{ name | camel", "x")

    def test_unknown_binding_is_strict(self) -> None:
        with pytest.raises(UnresolvedBindingError):
            render_name("{{ table }}", "x")


class TestHelpers:
    def test_filters_and_globals(self, config: GeneratorConfig) -> None:
        engine = _engine(config, {
            "h.tmpl": (
                "{{ 'user_profile' | title }}|{{ escape('a\"b') }}|{{ {'a': 1} | to_json(0) }}|"
                "{{ replace('{{ name | camel }}', 'x_y') }}|{{ 'a-b' | replace('-', '+') }}"
            ),
        })
        assert engine.render_string("h.tmpl", {}) == 'User Profile|"a\\"b"|{"a": 1}|XY|a+b'

    @pytest.mark.parametrize(
        "value", ["line one\nline two", "tab\there", "bell\x07", 'back\\slash "quoted"', "café"]
    )
    def test_escape_yields_a_python_literal(self, value: str) -> None:
        literal = escape_string(value)
        assert "\n" not in literal
        assert ast.literal_eval(literal) == value

    def test_escape_newline(self) -> None:
        assert escape_string("a\nb") == '"a\\nb"'

    def test_escaped_text_in_generated_source(self, config: GeneratorConfig) -> None:
        engine = _engine(config, {"c.py.tmpl": "NOTE = {{ note | escape }}\n"})
        outcome = engine.render_project("c.py.tmpl", "c.py", extra={"note": "first\nsecond\r"})
        source = pathlib.Path(outcome.path).read_text(encoding="utf-8")
        tree = ast.parse(source)
        assert ast.literal_eval(tree.body[0].value) == "first\nsecond\r"

    def test_has_field(self, config: GeneratorConfig, users_table: TableDescriptor) -> None:
        engine = _engine(config, {"f.tmpl": "{{ has_field(TableInfo, 'email') }} {{ has_field(TableInfo, 'zz') }}"})
        model = engine.add_table(users_table)
        assert engine.render_string("f.tmpl", engine.table_context(model)) == "True False"


# ===========================================================================
# ModelInfo construction
# ===========================================================================


class TestBuildModelInfo:
    def test_names_and_statements(self, config: GeneratorConfig, mapper: TypeMapper, users_table: TableDescriptor) -> None:
        model = build_model_info(users_table, config, mapper)
        assert model.struct_name == "Users"
        assert model.short_struct_name == "u"
        assert model.file_name == "users"
        assert model.primary_key_names == ["id"]
        assert model.delete_sql == "DELETE FROM users WHERE id = $1"
        assert model.select_many_sql == "SELECT * FROM users"
        assert model.primary_key_path == "/{argId}"
        assert model.field_code == [f.code for f in model.fields]
        assert model.field_code[0].splitlines()[1] == 'id: int = Field(None, alias="id")'

    def test_field_types(self, config: GeneratorConfig, mapper: TypeMapper, users_table: TableDescriptor) -> None:
        model = build_model_info(users_table, config, mapper)
        types = {f.field_name: f.field_type for f in model.fields}
        assert types == {
            "id": "int",
            "email": "str",
            "nickname": "Optional[str]",
            "balance": "Optional[Decimal]",
            "created_at": "datetime",
        }
        assert model.fields[0].primary_key_arg_name == "argId"
        assert 'alias="email"' in model.fields[1].code
        assert model.fields[1].code.startswith("# ")

    def test_boxed_nulls(self, out_dir: pathlib.Path, mapper: TypeMapper, users_table: TableDescriptor) -> None:
        config = GeneratorConfig(out_dir=str(out_dir), use_boxed_nulls=True)
        model = build_model_info(users_table, config, mapper)
        assert model.field_for("nickname").field_type == "NullString"
        assert model.field_for("balance").field_type == "Optional[Decimal]"

    def test_json_name_format_and_db_annotation(self, out_dir: pathlib.Path, mapper: TypeMapper, users_table: TableDescriptor) -> None:
        config = GeneratorConfig(out_dir=str(out_dir), json_name_format="lower_camel", add_db_annotation=True)
        field = build_model_info(users_table, config, mapper).field_for("created_at")
        assert field.json_name == "createdAt"
        assert "'db_column': 'created_at'" in field.code

    def test_unmapped_column_is_skipped(self, config: GeneratorConfig, mapper: TypeMapper) -> None:
        table = make_table("places", [
            {"name": "id", "normalized_type": "int", "is_primary_key": True},
            {"name": "shape", "normalized_type": "geometry"},
            {"name": "label", "normalized_type": "text"},
        ])
        model = build_model_info(table, config, mapper)
        assert [f.field_name for f in model.fields] == ["id", "label"]
        assert model.field_for("shape") is None
        assert [f.index for f in model.fields] == [0, 1]

    def test_statements_leave_out_unmapped_columns(self, config: GeneratorConfig, mapper: TypeMapper) -> None:
        table = make_table("users", [
            {"name": "id", "normalized_type": "int", "is_primary_key": True, "is_auto_increment": True},
            {"name": "shape", "normalized_type": "geometry"},
            {"name": "name", "normalized_type": "text"},
        ])
        model = build_model_info(table, config, mapper)
        assert model.update_sql == "UPDATE users SET name = $1 WHERE id = $2"
        assert model.insert_sql == "INSERT INTO users (name) VALUES ($1)"
        assert model.delete_sql == "DELETE FROM users WHERE id = $1"
        assert model.non_primary_key_names == ["name"]
        assert [c.name for c in model.table.columns] == ["id", "shape", "name"]

    def test_only_unmapped_non_key_columns(self, config: GeneratorConfig, mapper: TypeMapper) -> None:
        table = make_table("shapes", [
            {"name": "id", "normalized_type": "int", "is_primary_key": True},
            {"name": "shape", "normalized_type": "geometry"},
        ])
        model = build_model_info(table, config, mapper)
        assert model.update_sql == "UPDATE shapes SET id = id WHERE id = $1"
        assert model.insert_sql == "INSERT INTO shapes (id) VALUES ($1)"

    def test_unmapped_primary_key(self, config: GeneratorConfig, mapper: TypeMapper) -> None:
        table = make_table("parcels", [
            {"name": "shape", "normalized_type": "geometry", "is_primary_key": True},
            {"name": "label", "normalized_type": "text"},
        ])
        with pytest.raises(ModelBuildError) as exc_info:
            build_model_info(table, config, mapper)
        assert exc_info.value.table == "parcels"
        assert "shape" in str(exc_info.value)

    def test_keyless_table_has_no_statements(self, config: GeneratorConfig, mapper: TypeMapper, keyless_table: TableDescriptor) -> None:
        model = build_model_info(keyless_table, config, mapper)
        assert model.delete_sql is None
        assert model.update_sql is None
        assert model.insert_sql is None
        assert model.select_one_sql is None
        assert model.select_many_sql is None
        assert len(model.fields) == 2

    def test_reserved_and_duplicate_struct_names(self, config: GeneratorConfig, mapper: TypeMapper) -> None:
        taken = set()
        first = build_model_info(make_table("result", [{"name": "id", "normalized_type": "int", "is_primary_key": True}]), config, mapper, taken)
        second = build_model_info(make_table("result", [{"name": "id", "normalized_type": "int", "is_primary_key": True}]), config, mapper, taken)
        assert first.struct_name == "DBTableResult"
        assert second.struct_name == "DBTableResult_"

    def test_keyword_field_names_are_escaped(self, config: GeneratorConfig, mapper: TypeMapper) -> None:
        table = make_table("things", [
            {"name": "id", "normalized_type": "int", "is_primary_key": True},
            {"name": "class", "normalized_type": "text"},
            {"name": "Class", "normalized_type": "text"},
        ])
        names = [f.field_name for f in build_model_info(table, config, mapper).fields]
        assert names == ["id", "class_", "class__alt"]

    def test_key_type_without_path_converter(self, config: GeneratorConfig, mapper: TypeMapper) -> None:
        table = make_table("rates", [{"name": "rate", "normalized_type": "decimal", "is_primary_key": True}])
        with pytest.raises(ModelBuildError) as exc_info:
            build_model_info(table, config, mapper)
        assert exc_info.value.table == "rates"


# ===========================================================================
# Composite templates
# ===========================================================================


class TestCompositeTemplates:
    def test_sub_template_names(self) -> None:
        assert sub_template_names("dao.py.tmpl") == [f"dao_{op}.py.tmpl" for op in COMPOSITE_OPERATIONS]
        assert sub_template_names("custom/api.py.tmpl")[0] == "custom/api_add.py.tmpl"
        assert sub_template_names("model.py.tmpl") == []

    def test_parts_are_available_as_macros(self, config: GeneratorConfig, users_table: TableDescriptor) -> None:
        engine = _engine(config, _composite_templates())
        outcome = engine.render_table("api.py.tmpl", users_table, "users.txt")
        content = pathlib.Path(outcome.path).read_text(encoding="utf-8")
        assert content == "GETALL users|GET users|ADD users|UPDATE users|DELETE users\n"

    @pytest.mark.parametrize("missing_op", COMPOSITE_OPERATIONS)
    def test_missing_sub_template_fails_without_write(
        self, missing_op: str, config: GeneratorConfig, users_table: TableDescriptor, out_dir: pathlib.Path
    ) -> None:
        templates = _composite_templates()
        del templates[f"api_{missing_op}.py.tmpl"]
        engine = _engine(config, templates)

        with pytest.raises(MissingSubTemplateError) as exc_info:
            engine.render_table("api.py.tmpl", users_table, "api/users.py")

        assert exc_info.value.sub_template == f"api_{missing_op}.py.tmpl"
        assert exc_info.value.table == "users"
        assert not (out_dir / "api" / "users.py").exists()
        assert engine.writer.records == []

    def test_missing_base_template(self, config: GeneratorConfig) -> None:
        engine = _engine(config, {})
        with pytest.raises(TemplateLoadError):
            engine.render_project("nothing.tmpl", "x.txt")

    def test_template_syntax_error(self, config: GeneratorConfig) -> None:
        engine = _engine(config, {"bad.tmpl": "{% for x in %}"})
        with pytest.raises(TemplateLoadError) as exc_info:
            engine.render_project("bad.tmpl", "x.txt")
        assert exc_info.value.template == "bad.tmpl"


# ===========================================================================
# Strict binding, skip, formatting
# ===========================================================================


class TestRendering:
    def test_unresolved_binding_names_table(self, config: GeneratorConfig, users_table: TableDescriptor, out_dir: pathlib.Path) -> None:
        engine = _engine(config, {"t.tmpl": "{{ StructName }} {{ NoSuchKey }}"})
        with pytest.raises(UnresolvedBindingError) as exc_info:
            engine.render_table("t.tmpl", users_table, "t.txt")
        assert exc_info.value.table == "users"
        assert "NoSuchKey" in str(exc_info.value)
        assert not (out_dir / "t.txt").exists()

    def test_context_map_and_extra_bindings(self, out_dir: pathlib.Path) -> None:
        config = GeneratorConfig(out_dir=str(out_dir), context_map={"author": "ops"})
        engine = _engine(config, {"p.tmpl": "{{ author }}/{{ package }}/{{ modelPackageName }}"})
        outcome = engine.render_project("p.tmpl", "p.txt", extra={"package": "model"})
        assert pathlib.Path(outcome.path).read_text(encoding="utf-8") == "ops/model/model\n"

    def test_rerender_is_byte_identical(self, config: GeneratorConfig, users_table: TableDescriptor) -> None:
        engine = TemplateEngine(config)
        first = engine.render_table("model.py.tmpl", users_table, "model/users.py")
        first_bytes = pathlib.Path(first.path).read_bytes()
        second = engine.render_table("model.py.tmpl", users_table, "model/users.py")

        assert second.written
        assert second.sha256 == first.sha256
        assert pathlib.Path(second.path).read_bytes() == first_bytes

    def test_no_overwrite_skips_existing_file(self, out_dir: pathlib.Path, users_table: TableDescriptor) -> None:
        config = GeneratorConfig(out_dir=str(out_dir), overwrite=False)
        target = out_dir / "model" / "users.py"
        target.parent.mkdir()
        target.write_text("# hand edited\n", encoding="utf-8")

        engine = TemplateEngine(config)
        outcome = engine.render_table("model.py.tmpl", users_table, "model/users.py")

        assert outcome.skipped and not outcome.written
        assert outcome.status == "skipped"
        assert target.read_text(encoding="utf-8") == "# hand edited\n"
        assert engine.writer.manifest().skipped == [str(target)]

    def test_invalid_python_is_source_format_error(self, config: GeneratorConfig, users_table: TableDescriptor, out_dir: pathlib.Path) -> None:
        engine = _engine(config, {"broken.py.tmpl": "def {{ StructName }}(:\n    pass\n"})
        with pytest.raises(SourceFormatError) as exc_info:
            engine.render_table("broken.py.tmpl", users_table, "broken.py")
        assert exc_info.value.table == "users"
        assert not (out_dir / "broken.py").exists()

    def test_formatting_can_be_disabled(self, config: GeneratorConfig, users_table: TableDescriptor) -> None:
        engine = _engine(config, {"raw.py.tmpl": "x  =  {{ StructName | escape }}"})
        formatted = engine.render_table("raw.py.tmpl", users_table, "a.py")
        raw = engine.render_table("raw.py.tmpl", users_table, "b.py", format_source=False)
        assert pathlib.Path(formatted.path).read_text(encoding="utf-8") == 'x = "Users"\n'
        assert pathlib.Path(raw.path).read_text(encoding="utf-8") == 'x  =  "Users"\n'

    def test_generate_table_file_from_template(self, config: GeneratorConfig, users_table: TableDescriptor, out_dir: pathlib.Path) -> None:
        engine = _engine(config, {
            "index.tmpl": "{% for name in tableInfos %}{{ generate_table_file(name, 'rec.tmpl', 'recs/' ~ name ~ '.txt') }}{% endfor %}",
            "rec.tmpl": "{{ StructName }}",
        })
        engine.add_table(users_table)
        outcome = engine.render_project("index.tmpl", "index.txt")

        assert (out_dir / "recs" / "users.txt").read_text(encoding="utf-8") == "Users\n"
        assert pathlib.Path(outcome.path).read_text(encoding="utf-8") == "written: recs/users.txt\n"

    def test_unknown_table_name(self, config: GeneratorConfig) -> None:
        engine = _engine(config, {"rec.tmpl": "x"})
        with pytest.raises(ModelBuildError):
            engine.render_table("rec.tmpl", "ghost", "ghost.txt")


# ===========================================================================
# Loaders & built-in templates
# ===========================================================================


class TestLoaders:
    def test_directory_loader_overrides_builtin(self, tmp_path: pathlib.Path) -> None:
        (tmp_path / "model.py.tmpl").write_text("custom", encoding="utf-8")
        loader = directory_loader(tmp_path, fallback=package_loader())
        assert loader("model.py.tmpl") == "custom"
        assert "class" in loader("dao_base.py.tmpl")
        assert loader("missing.tmpl") is None

    def test_loaders_reject_parent_paths(self, tmp_path: pathlib.Path) -> None:
        assert package_loader()("../errors.py") is None
        assert directory_loader(tmp_path)("../secret.tmpl") is None

    def test_builtin_templates_listed(self) -> None:
        names = list_builtin_templates()
        for required in ("model.py.tmpl", "dao.py.tmpl", "api.py.tmpl", "router.py.tmpl", "README.md.tmpl"):
            assert required in names
        for op in COMPOSITE_OPERATIONS:
            assert f"dao_{op}.py.tmpl" in names
            assert f"api_{op}.py.tmpl" in names


class TestBuiltinTemplates:
    @pytest.mark.parametrize("template", ["model.py.tmpl", "dao.py.tmpl", "api.py.tmpl"])
    @pytest.mark.parametrize("boxed", [False, True])
    def test_table_templates_are_valid_python(
        self,
        template: str,
        boxed: bool,
        out_dir: pathlib.Path,
        users_table: TableDescriptor,
        composite_key_table: TableDescriptor,
    ) -> None:
        config = GeneratorConfig(out_dir=str(out_dir), use_boxed_nulls=boxed, add_db_annotation=True)
        engine = TemplateEngine(config)
        for table in (users_table, composite_key_table):
            outcome = engine.render_table(template, table, f"{table.name}_{template}.py")
            ast.parse(pathlib.Path(outcome.path).read_text(encoding="utf-8"))

    def test_dao_binds_only_mapped_fields(self, config: GeneratorConfig) -> None:
        table = make_table("users", [
            {"name": "id", "normalized_type": "int", "is_primary_key": True, "is_auto_increment": True},
            {"name": "name", "normalized_type": "text"},
            {"name": "shape", "normalized_type": "geometry"},
        ])
        engine = TemplateEngine(config)
        outcome = engine.render_table("dao.py.tmpl", table, "dao/users.py")
        source = pathlib.Path(outcome.path).read_text(encoding="utf-8")
        ast.parse(source)

        assert "UPDATE users SET name = $1 WHERE id = $2" in source
        assert "INSERT INTO users (name) VALUES ($1)" in source
        assert "shape =" not in source
        assert "record.shape" not in source
        assert not any(line.strip() == "None," for line in source.splitlines())
        assert "record.name" in source and "record.id" in source

    @pytest.mark.parametrize(
        "template", ["model_base.py.tmpl", "dao_base.py.tmpl", "router.py.tmpl", "package_init.py.tmpl"]
    )
    def test_project_templates_are_valid_python(self, template: str, config: GeneratorConfig, users_table: TableDescriptor) -> None:
        engine = TemplateEngine(config)
        engine.add_table(users_table)
        outcome = engine.render_project(template, f"p_{template}.py", extra={"package": "model"})
        ast.parse(pathlib.Path(outcome.path).read_text(encoding="utf-8"))

    def test_model_for_table_without_fields(self, config: GeneratorConfig) -> None:
        table = make_table("blobs", [{"name": "shape", "normalized_type": "geometry"}])
        engine = TemplateEngine(config)
        outcome = engine.render_table("model.py.tmpl", table, "model/blobs.py")
        source = pathlib.Path(outcome.path).read_text(encoding="utf-8")
        ast.parse(source)
        assert "pass" in source

    def test_docs_embed_sub_templates(self, config: GeneratorConfig, users_table: TableDescriptor) -> None:
        engine = TemplateEngine(config)
        outcome = engine.render_table("code_dao.md.tmpl", users_table, "docs/users_dao.md", format_source=False)
        content = pathlib.Path(outcome.path).read_text(encoding="utf-8")
        assert "```python\ndef get_all_users(" in content
        assert "DELETE FROM users WHERE id = $1" in content

    def test_model_info_is_reused(self, config: GeneratorConfig, users_table: TableDescriptor) -> None:
        engine = TemplateEngine(config)
        model = engine.add_table(users_table)
        assert isinstance(engine.model_info("users"), ModelInfo)
        assert engine.model_info(users_table) is model
