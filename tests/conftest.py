"""
tests/conftest.py
Shared fixtures for the dbgen test suite.

Real introspection runs against SQLite files created under pytest's
tmp_path.  Engines without a local server (MySQL, PostgreSQL, SQL Server)
are exercised through ``FakeConnection``, which answers metadata queries
from canned rows, plus an injected driver column source.
"""

from __future__ import annotations

import pathlib
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from dbgen.dialects import DriverColumn
from dbgen.models import ColumnDescriptor, DatabaseFamily, GeneratorConfig, TableDescriptor
from dbgen.typemap import TypeMapper


# ---------------------------------------------------------------------------
# SQLite database fixtures
# ---------------------------------------------------------------------------

SHOP_DDL: Tuple[str, ...] = (
    "CREATE TABLE t (id INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL, name TEXT)",
    """
    CREATE TABLE customers (
        customer_id INTEGER PRIMARY KEY AUTOINCREMENT,
        email VARCHAR(120) NOT NULL,
        full_name VARCHAR(80),
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        status TEXT DEFAULT 'active'
    )
    """,
    """
    CREATE TABLE order_items (
        order_id INTEGER NOT NULL,
        line_no INTEGER NOT NULL,
        sku VARCHAR(32) NOT NULL,
        quantity INTEGER NOT NULL DEFAULT 1,
        unit_price DECIMAL(10,2),
        PRIMARY KEY (order_id, line_no)
    )
    """,
    "CREATE TABLE audit_log (message TEXT, logged_at DATETIME)",
)


def _create_database(path: pathlib.Path, statements: Sequence[str]) -> str:
    url: str = f"sqlite:///{path}"
    engine: Engine = create_engine(url)
    with engine.begin() as conn:
        for ddl in statements:
            conn.exec_driver_sql(ddl)
    engine.dispose()
    return url


@pytest.fixture()
def sqlite_url(tmp_path: pathlib.Path) -> str:
    """URL of a file database holding the shop tables."""
    return _create_database(tmp_path / "shop.db", SHOP_DDL)


@pytest.fixture()
def sqlite_engine(sqlite_url: str) -> Iterator[Engine]:
    engine: Engine = create_engine(sqlite_url)
    yield engine
    engine.dispose()


@pytest.fixture()
def out_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "generated"
    path.mkdir()
    return path


# ---------------------------------------------------------------------------
# Fake connection for server engines
# ---------------------------------------------------------------------------


class FakeResult:
    """Just enough of ``CursorResult`` for ``.mappings().all()``."""

    def __init__(self, rows: List[Dict[str, Any]]) -> None:
        self._rows: List[Dict[str, Any]] = rows

    def mappings(self) -> "FakeResult":
        return self

    def all(self) -> List[Dict[str, Any]]:
        return list(self._rows)


class FakeConnection:
    """
    Answers ``execute`` by matching a marker substring in the SQL text.

    ``responses`` is an ordered list of ``(marker, rows)``; the first marker
    found in the statement wins.  A rows value that is an exception instance
    is raised instead.
    """

    def __init__(self, responses: List[Tuple[str, Any]]) -> None:
        self._responses: List[Tuple[str, Any]] = responses
        self.executed: List[Tuple[str, Dict[str, Any]]] = []

    def execute(self, statement: Any, params: Optional[Dict[str, Any]] = None) -> FakeResult:
        sql: str = str(statement)
        self.executed.append((sql, dict(params or {})))
        for marker, rows in self._responses:
            if marker in sql:
                if isinstance(rows, BaseException):
                    raise rows
                return FakeResult(rows)
        raise OperationalError(sql, params, Exception("unexpected query"))


def column_source(columns: List[DriverColumn]):
    """A driver column source returning *columns* for any table."""
    calls: List[Tuple[Optional[str], str]] = []

    def source(connection: Any, schema: Optional[str], table_name: str) -> List[DriverColumn]:
        calls.append((schema, table_name))
        return list(columns)

    source.calls = calls  # type: ignore[attr-defined]
    return source


# ---------------------------------------------------------------------------
# Descriptor fixtures
# ---------------------------------------------------------------------------


def make_table(
    name: str,
    columns: Sequence[Dict[str, Any]],
    family: DatabaseFamily = DatabaseFamily.SQLITE,
) -> TableDescriptor:
    """Build a descriptor from partial column dicts (ordinals filled in)."""
    return TableDescriptor(
        name=name,
        columns=[ColumnDescriptor(ordinal_index=idx, **col) for idx, col in enumerate(columns)],
        database_family=family,
    )


@pytest.fixture()
def users_table() -> TableDescriptor:
    return make_table("users", [
        {"name": "id", "normalized_type": "int", "is_primary_key": True, "is_auto_increment": True},
        {"name": "email", "normalized_type": "varchar", "declared_length": 120},
        {"name": "nickname", "normalized_type": "varchar", "nullable": True},
        {"name": "balance", "normalized_type": "decimal", "nullable": True},
        {"name": "created_at", "normalized_type": "timestamp"},
    ])


@pytest.fixture()
def composite_key_table() -> TableDescriptor:
    return make_table("order_items", [
        {"name": "order_id", "normalized_type": "int", "is_primary_key": True},
        {"name": "qty", "normalized_type": "int"},
        {"name": "line_no", "normalized_type": "int", "is_primary_key": True},
        {"name": "note", "normalized_type": "text", "nullable": True},
    ])


@pytest.fixture()
def keyless_table() -> TableDescriptor:
    return make_table("audit_log", [
        {"name": "message", "normalized_type": "text", "nullable": True},
        {"name": "logged_at", "normalized_type": "datetime", "nullable": True},
    ])


@pytest.fixture()
def mapper() -> TypeMapper:
    return TypeMapper()


@pytest.fixture()
def config(out_dir: pathlib.Path) -> GeneratorConfig:
    return GeneratorConfig(sql_type="sqlite", out_dir=str(out_dir))
