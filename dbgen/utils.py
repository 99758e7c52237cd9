# File: dbgen/utils.py
"""
dbgen - Utility Functions & Helpers
===================================
String transformation, checksum and timing helpers shared by the dialect
adapters, the template engine and the output writer.

Performance strategy:
- ALL string-conversion functions are decorated with ``@lru_cache(maxsize=None)``
  because the same column and table names are converted many times per run
  (field names, JSON names, file names, helper calls from templates).
- JSON and YAML (PyYAML) option files are parsed into plain mappings here,
  before pydantic validates them.
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import yaml

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_CAMEL_TO_SNAKE_RE1: re.Pattern[str] = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_TO_SNAKE_RE2: re.Pattern[str] = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALPHANUM_RE: re.Pattern[str] = re.compile(r"[^a-zA-Z0-9]")
_MULTI_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"_{2,}")
_LEADING_TRAILING_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"^_+|_+$")
_SPLIT_WORDS_RE: re.Pattern[str] = re.compile(
    r"[A-Z]?[a-z]+|[A-Z]+(?=[A-Z][a-z]|\d|\b)|[A-Z]|\d+"
)
_PLAIN_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Python keywords that cannot be used as identifiers
_PYTHON_KEYWORDS: FrozenSet[str] = frozenset({
    "False", "None", "True", "and", "as", "assert", "async", "await",
    "break", "class", "continue", "def", "del", "elif", "else",
    "except", "finally", "for", "from", "global", "if", "import",
    "in", "is", "lambda", "nonlocal", "not", "or", "pass", "raise",
    "return", "try", "while", "with", "yield",
})

# BaseModel attributes a generated record field must not shadow
_RECORD_RESERVED: FrozenSet[str] = frozenset({
    "copy", "dict", "json", "schema", "construct", "validate",
    "fields", "model_config", "model_fields", "model_dump",
    "model_validate", "model_copy", "parse_obj",
})


# ---------------------------------------------------------------------------
# Cached string transformation functions
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def to_snake_case(name: str) -> str:
    """
    Convert any string to snake_case.

    Examples:
        >>> to_snake_case("UserProfile")
        'user_profile'
        >>> to_snake_case("getHTTPResponse")
        'get_http_response'
        >>> to_snake_case("already_snake")
        'already_snake'
    """
    if not name:
        return ""
    s: str = _CAMEL_TO_SNAKE_RE1.sub(r"\1_\2", name)
    s = _CAMEL_TO_SNAKE_RE2.sub(r"\1_\2", s)
    s = _NON_ALPHANUM_RE.sub("_", s)
    s = _MULTI_UNDERSCORE_RE.sub("_", s)
    s = _LEADING_TRAILING_UNDERSCORE_RE.sub("", s)
    return s.lower()


@functools.lru_cache(maxsize=None)
def to_pascal_case(name: str) -> str:
    """
    Convert any string to PascalCase.

    Examples:
        >>> to_pascal_case("user_profile")
        'UserProfile'
        >>> to_pascal_case("dept_emp")
        'DeptEmp'
    """
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    return "".join(word.capitalize() for word in words)


@functools.lru_cache(maxsize=None)
def to_camel_case(name: str) -> str:
    """
    Convert any string to lowerCamelCase.

    Examples:
        >>> to_camel_case("user_profile")
        'userProfile'
        >>> to_camel_case("HTTPResponse")
        'httpResponse'
    """
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    if not words:
        return ""
    first: str = words[0].lower()
    rest: str = "".join(w.capitalize() for w in words[1:])
    return first + rest


@functools.lru_cache(maxsize=None)
def to_title_human(name: str) -> str:
    """
    Convert identifier to human-readable title.

    Examples:
        >>> to_title_human("user_profile")
        'User Profile'
    """
    if not name:
        return ""
    words: Tuple[str, ...] = _extract_words(name)
    return " ".join(w.capitalize() for w in words)


_IRREGULAR_PLURALS: Dict[str, str] = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "goose": "geese",
    "tooth": "teeth",
    "foot": "feet",
    "datum": "data",
    "index": "indices",
    "matrix": "matrices",
    "vertex": "vertices",
    "axis": "axes",
    "crisis": "crises",
    "analysis": "analyses",
    "status": "statuses",
    "address": "addresses",
}
_IRREGULAR_SINGULARS: Dict[str, str] = {v: k for k, v in _IRREGULAR_PLURALS.items()}


def _match_case(source: str, word: str) -> str:
    if source[0].isupper():
        return word[0].upper() + word[1:]
    return word


@functools.lru_cache(maxsize=None)
def to_plural(name: str) -> str:
    """
    Naive English pluralisation sufficient for table and model names.

    Handles common suffixes and a table of irregular words found in schemas.
    """
    if not name:
        return ""

    lower: str = name.lower()

    if lower in _IRREGULAR_PLURALS:
        return _match_case(name, _IRREGULAR_PLURALS[lower])
    if lower in _IRREGULAR_SINGULARS:
        return name

    # Already plural-looking (very naive)
    if lower.endswith("s") and not lower.endswith("ss"):
        return name

    # Rules ordered by specificity
    if lower.endswith(("sh", "ch", "x", "z", "ss")):
        return name + "es"
    if lower.endswith("y") and len(name) > 1 and lower[-2] not in "aeiou":
        return name[:-1] + "ies"
    if lower.endswith("fe"):
        return name[:-2] + "ves"
    if lower.endswith("f"):
        return name[:-1] + "ves"
    if lower.endswith("o") and len(name) > 1 and lower[-2] not in "aeiou":
        return name + "es"

    return name + "s"


@functools.lru_cache(maxsize=None)
def to_singular(name: str) -> str:
    """Naive English singularisation (reverse of to_plural)."""
    if not name:
        return ""

    lower: str = name.lower()

    if lower in _IRREGULAR_SINGULARS:
        return _match_case(name, _IRREGULAR_SINGULARS[lower])
    if lower in _IRREGULAR_PLURALS:
        return name

    # Rules in reverse order of pluralisation
    if lower.endswith("ies") and len(name) > 3:
        return name[:-3] + "y"
    if lower.endswith("ves"):
        return name[:-3] + "f"
    if lower.endswith("oes") and len(name) > 3:
        return name[:-2]
    if lower.endswith(("ses", "xes", "zes", "ches", "shes")):
        return name[:-2]
    if lower.endswith("s") and not lower.endswith(("ss", "us", "is")):
        return name[:-1]

    return name


@functools.lru_cache(maxsize=None)
def _extract_words(name: str) -> Tuple[str, ...]:
    """
    Extract individual words from any casing style.

    Returns a tuple (hashable for LRU cache) of lowercase word strings.
    """
    cleaned: str = _NON_ALPHANUM_RE.sub(" ", name)
    words: List[str] = _SPLIT_WORDS_RE.findall(cleaned)
    return tuple(w.lower() for w in words if w)


@functools.lru_cache(maxsize=None)
def safe_identifier(name: str) -> str:
    """
    Ensure a string is a safe Python identifier for a generated record field.

    - Replaces non-identifier characters with underscores
    - Prefixes with underscore if it starts with a digit
    - Appends underscore on a keyword or BaseModel attribute clash
    """
    result: str = _NON_ALPHANUM_RE.sub("_", name)
    result = _MULTI_UNDERSCORE_RE.sub("_", result)
    if not result.strip("_"):
        return "_unnamed"

    if result[0].isdigit():
        result = f"_{result}"

    if result in _PYTHON_KEYWORDS or result in _RECORD_RESERVED:
        result = f"{result}_"

    return result


def is_plain_identifier(name: str) -> bool:
    """True if *name* can appear unquoted in SQL and Python alike."""
    return bool(_PLAIN_IDENTIFIER_RE.match(name))


def format_name(name_format: str, name: str) -> str:
    """
    Apply a serialized-name format to a column name.

    ``snake``, ``camel`` (PascalCase), ``lower_camel`` and ``none``; any other
    value leaves the name untouched.
    """
    if name_format == "snake":
        return to_snake_case(name)
    if name_format == "camel":
        return to_pascal_case(name)
    if name_format == "lower_camel":
        return to_camel_case(name)
    return name


# ---------------------------------------------------------------------------
# Text helpers used from templates
# ---------------------------------------------------------------------------


def to_json(value: Any, indent: int = 2) -> str:
    """JSON text for *value*; pydantic models are dumped first."""
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    return json.dumps(value, indent=indent or None, default=str, ensure_ascii=False)


def escape_string(value: str) -> str:
    """Double-quoted literal of *value*, valid in Python and JSON."""
    return json.dumps(str(value), ensure_ascii=False)


def markdown_code_block(language: str, code: str) -> str:
    """Fence *code* as a markdown block tagged with *language*."""
    return f"```{language}\n{code.strip()}\n```"


def normalize_newlines(content: str, crlf: bool = False) -> str:
    """Collapse every line ending to ``\\n`` (or ``\\r\\n`` when *crlf*)."""
    content = content.replace("\r\n", "\n").replace("\r", "\n")
    if crlf:
        return content.replace("\n", "\r\n")
    return content


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def ensure_directory(path: Path) -> None:
    """Create directory (and parents) if it doesn't exist."""
    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)


def read_file(path: Path) -> str:
    """Read a file and return its content as a string."""
    return path.read_text(encoding="utf-8")


def _load_json_text(text: str, source: str) -> Dict[str, Any]:
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {source}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a JSON object at top level in {source}, got {type(data).__name__}."
        )
    return data


def _load_yaml_text(text: str, source: str) -> Dict[str, Any]:
    try:
        data: Any = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a YAML mapping at top level in {source}, got {type(data).__name__}."
        )
    return data


def parse_structured_text(text: str, *, source: str = "<string>", suffix: str = "") -> Dict[str, Any]:
    """
    Parse JSON or YAML text into a mapping.

    Dispatches on *suffix* when given; otherwise tries JSON, then YAML.

    Raises:
        ValueError: the text is not a JSON object or YAML mapping.
    """
    suffix = suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml_text(text, source)
    if suffix == ".json":
        return _load_json_text(text, source)
    try:
        return _load_json_text(text, source)
    except ValueError:
        return _load_yaml_text(text, source)


def load_structured_file(path: Path) -> Dict[str, Any]:
    """
    Load a JSON or YAML file, dispatching on its extension.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file can't be parsed.
    """
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")
    return parse_structured_text(read_file(path), source=str(path), suffix=path.suffix)


# ---------------------------------------------------------------------------
# Checksum & metrics
# ---------------------------------------------------------------------------


def sha256_hex(content: str) -> str:
    """Return SHA-256 hex digest of a string."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def count_lines(content: str) -> int:
    """Count the number of lines in a string."""
    if not content:
        return 0
    return content.count("\n") + (1 if not content.endswith("\n") else 0)


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Simple context-manager timer for profiling pipeline steps.

    Usage:
        with Timer("describe tables") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.debug("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "to_snake_case",
    "to_pascal_case",
    "to_camel_case",
    "to_title_human",
    "to_plural",
    "to_singular",
    "safe_identifier",
    "is_plain_identifier",
    "format_name",
    "to_json",
    "escape_string",
    "markdown_code_block",
    "normalize_newlines",
    "ensure_directory",
    "read_file",
    "parse_structured_text",
    "load_structured_file",
    "sha256_hex",
    "count_lines",
    "Timer",
]

logger.debug("dbgen.utils loaded — %d public symbols.", len(__all__))
