# File: dbgen/typemap.py
"""
dbgen - Type Mapping Table
==========================
Normalized SQL type + nullability → Python type expression.

Lookup order:

1. exact match on the normalized type name,
2. prefix fallback for parameterized or decorated variants
   (``timestamp with time zone``, ``int unsigned``, ``nvarchar2`` ...),
3. the ``NO_MAPPING`` sentinel.

The table is held by an explicit ``TypeMapper`` instance that is passed
through the pipeline.  Overrides come from a JSON or YAML payload::

    mappings:
      - sql_type: citext
        python_type: str
        boxed_type: NullString

A payload is validated as a whole before any entry is applied.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from dbgen.errors import MappingLoadError, UnknownTypeError
from dbgen.models import SQLMapping
from dbgen.utils import load_structured_file, parse_structured_text

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.typemap")

NO_MAPPING: str = "__no_mapping__"

# ---------------------------------------------------------------------------
# Default table
# ---------------------------------------------------------------------------

# (sql types, python type, boxed type, json type, openapi type)
_FAMILIES: List[Tuple[Sequence[str], str, str, str, str]] = [
    # integer family
    (
        ("tinyint", "smallint", "mediumint", "int", "integer", "bigint",
         "int2", "int4", "int8", "serial", "smallserial", "bigserial",
         "serial4", "serial8", "year"),
        "int", "NullInt", "integer", "int64",
    ),
    # floating point family
    (
        ("float", "float4", "float8", "real", "double", "double precision"),
        "float", "NullFloat", "number", "double",
    ),
    # exact numerics
    (
        ("decimal", "numeric", "money", "smallmoney", "dec"),
        "Decimal", "", "number", "double",
    ),
    # character family
    (
        ("char", "nchar", "varchar", "nvarchar", "varchar2", "nvarchar2",
         "character", "character varying", "bpchar", "text", "tinytext",
         "mediumtext", "longtext", "ntext", "clob", "citext", "string",
         "enum", "set", "xml", "inet", "cidr", "macaddr", "sysname"),
        "str", "NullString", "string", "string",
    ),
    # temporal family
    (
        ("datetime", "datetime2", "smalldatetime", "datetimeoffset",
         "timestamp", "timestamptz", "timestamp without time zone",
         "timestamp with time zone"),
        "datetime", "NullTime", "string", "date-time",
    ),
    (("date",), "date", "NullTime", "string", "date"),
    (
        ("time", "timetz", "time without time zone", "time with time zone"),
        "time", "NullTime", "string", "time",
    ),
    (("interval",), "timedelta", "", "string", "duration"),
    # boolean
    (("bool", "boolean", "bit"), "bool", "", "boolean", "boolean"),
    # binary family
    (
        ("binary", "varbinary", "blob", "tinyblob", "mediumblob", "longblob",
         "bytea", "image", "rowversion"),
        "bytes", "", "string", "byte",
    ),
    # structured
    (("json", "jsonb"), "Any", "", "object", "object"),
    (("uuid", "uniqueidentifier"), "UUID", "", "string", "uuid"),
]


def _build_defaults() -> List[SQLMapping]:
    mappings: List[SQLMapping] = []
    for sql_types, python_type, boxed, json_type, openapi_type in _FAMILIES:
        for sql_type in sql_types:
            mappings.append(SQLMapping(
                sql_type=sql_type,
                python_type=python_type,
                nullable_type=python_type if python_type == "Any" else f"Optional[{python_type}]",
                boxed_type=boxed,
                json_type=json_type,
                openapi_type=openapi_type,
            ))
    return mappings


DEFAULT_MAPPINGS: List[SQLMapping] = _build_defaults()

# longest prefixes first: "timestamp" must win over "time", "bigint" over "int"
PREFIX_FALLBACKS: List[Tuple[str, str]] = [
    ("timestamp", "timestamp"),
    ("datetime", "datetime"),
    ("character varying", "varchar"),
    ("double", "double"),
    ("varbinary", "varbinary"),
    ("nvarchar", "nvarchar"),
    ("varchar", "varchar"),
    ("bigint", "bigint"),
    ("smallint", "smallint"),
    ("tinyint", "tinyint"),
    ("mediumint", "mediumint"),
    ("integer", "integer"),
    ("decimal", "decimal"),
    ("numeric", "numeric"),
    ("nchar", "nchar"),
    ("char", "char"),
    ("text", "text"),
    ("float", "float"),
    ("bool", "bool"),
    ("blob", "blob"),
    ("binary", "binary"),
    ("time", "time"),
    ("date", "date"),
    ("int", "int"),
]


# ---------------------------------------------------------------------------
# Payload loading
# ---------------------------------------------------------------------------


def load_mapping_payload(source: Union[str, Path]) -> List[SQLMapping]:
    """
    Parse a mapping override payload.

    Args:
        source: a ``Path`` to a JSON/YAML file, or the payload text itself.

    Raises:
        MappingLoadError: any parse or schema problem; nothing is returned
            for a partially valid payload.
    """
    try:
        if isinstance(source, Path):
            raw: Dict[str, Any] = load_structured_file(source)
        else:
            raw = parse_structured_text(source, source="mapping payload")
    except (OSError, ValueError) as exc:
        raise MappingLoadError(f"cannot read mapping payload: {exc}") from exc

    entries: Any = raw.get("mappings")
    if not isinstance(entries, list):
        raise MappingLoadError("mapping payload needs a top-level 'mappings' list")

    mappings: List[SQLMapping] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise MappingLoadError(f"mapping #{idx} is not an object")
        try:
            mappings.append(SQLMapping.model_validate(entry))
        except ValidationError as exc:
            raise MappingLoadError(f"mapping #{idx} is invalid: {exc}") from exc

    logger.info("Loaded %d type mapping override(s).", len(mappings))
    return mappings


# ---------------------------------------------------------------------------
# Mapper
# ---------------------------------------------------------------------------


class TypeMapper:
    """
    Resolves normalized SQL types to Python type expressions.

    Usage::

        mapper = TypeMapper()
        mapper.to_target_type("varchar", nullable=True)          # Optional[str]
        mapper.to_target_type("varchar", True, True)             # NullString
        mapper.to_target_type("geometry", nullable=False)        # NO_MAPPING
    """

    def __init__(self, overrides: Optional[Iterable[SQLMapping]] = None) -> None:
        self._mappings: Dict[str, SQLMapping] = {m.sql_type: m for m in DEFAULT_MAPPINGS}
        if overrides:
            self.update(overrides)

    @classmethod
    def from_payload(cls, source: Union[str, Path]) -> "TypeMapper":
        return cls(load_mapping_payload(source))

    def update(self, overrides: Iterable[SQLMapping]) -> None:
        """Replace or add entries keyed by ``sql_type``."""
        for mapping in overrides:
            if mapping.sql_type in self._mappings:
                logger.debug("Overriding mapping for %s", mapping.sql_type)
            self._mappings[mapping.sql_type] = mapping

    # -----------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------

    def lookup(self, normalized_type: str) -> Optional[SQLMapping]:
        """Exact match, then prefix fallback; ``None`` when unmapped."""
        key: str = normalized_type.strip().lower()
        exact: Optional[SQLMapping] = self._mappings.get(key)
        if exact is not None:
            return exact
        for prefix, target in PREFIX_FALLBACKS:
            if key.startswith(prefix) and target in self._mappings:
                return self._mappings[target]
        return None

    def to_target_type(
        self,
        normalized_type: str,
        nullable: bool,
        use_alternate_nullable_wrapper: bool = False,
    ) -> str:
        """Target type expression, or ``NO_MAPPING``."""
        mapping: Optional[SQLMapping] = self.lookup(normalized_type)
        if mapping is None:
            return NO_MAPPING
        return self.select_type(mapping, nullable, use_alternate_nullable_wrapper)

    @staticmethod
    def select_type(
        mapping: SQLMapping,
        nullable: bool,
        use_alternate_nullable_wrapper: bool = False,
    ) -> str:
        if not nullable:
            return mapping.python_type
        if use_alternate_nullable_wrapper and mapping.boxed_type:
            return mapping.boxed_type
        return mapping.nullable_type

    def require(self, normalized_type: str, *, column: str, table: Optional[str] = None) -> SQLMapping:
        """Like ``lookup`` but raises ``UnknownTypeError`` when unmapped."""
        mapping: Optional[SQLMapping] = self.lookup(normalized_type)
        if mapping is None:
            raise UnknownTypeError(normalized_type, column=column, table=table)
        return mapping

    # -----------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------

    def sql_types(self) -> List[str]:
        return sorted(self._mappings)

    def __contains__(self, normalized_type: object) -> bool:
        return isinstance(normalized_type, str) and self.lookup(normalized_type) is not None

    def __iter__(self) -> Iterator[SQLMapping]:
        return iter(self._mappings.values())

    def __len__(self) -> int:
        return len(self._mappings)

    def __repr__(self) -> str:
        return f"<TypeMapper {len(self._mappings)} types>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "NO_MAPPING",
    "DEFAULT_MAPPINGS",
    "PREFIX_FALLBACKS",
    "TypeMapper",
    "load_mapping_payload",
]

logger.debug("dbgen.typemap loaded — %d default mappings.", len(DEFAULT_MAPPINGS))
