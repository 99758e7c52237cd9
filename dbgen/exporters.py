# File: dbgen/exporters.py
"""
dbgen - Output Writer
=====================

Responsible for:
    1. Creating parent directories of every generated artifact.
    2. Writing each file atomically (write-to-temp then rename), so a failed
       write leaves the previous content in place.
    3. Honouring the overwrite policy: an existing file is skipped, not an
       error, when overwriting is disabled.
    4. Keeping a manifest (checksums, sizes) of everything written or
       skipped during one run.

A failed write raises ``OutputWriteError``; the caller reports it and moves
on to the next artifact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dbgen.errors import OutputWriteError
from dbgen.utils import count_lines, ensure_directory, normalize_newlines, sha256_hex

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbgen.exporters")

PathLike = Union[str, Path]


def _default_file_mode() -> int:
    """Mode ``open()`` would give a new file under the current umask."""
    current: int = os.umask(0)
    os.umask(current)
    return 0o666 & ~current


# ---------------------------------------------------------------------------
# Data classes for write results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Immutable record of a single written file."""

    path: str
    size_bytes: int
    line_count: int
    sha256: str


@dataclass(frozen=False, slots=True)
class WriteManifest:
    """
    Everything one ``OutputWriter`` wrote or skipped.

    Serialisable to JSON so two runs can be compared.
    """

    output_directory: str = ""
    timestamp: str = ""
    files: List[FileRecord] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self.files)

    @property
    def total_lines(self) -> int:
        return sum(f.line_count for f in self.files)

    def to_dict(self) -> Dict[str, Any]:
        """Convert manifest to a JSON-serialisable dictionary."""
        return {
            "output_directory": self.output_directory,
            "timestamp": self.timestamp,
            "total_files": self.total_files,
            "total_bytes": self.total_bytes,
            "total_lines": self.total_lines,
            "files": [
                {
                    "path": f.path,
                    "size_bytes": f.size_bytes,
                    "line_count": f.line_count,
                    "sha256": f.sha256,
                }
                for f in self.files
            ],
            "skipped": list(self.skipped),
            "errors": list(self.errors),
        }

    def to_json(self, indent_size: int = 2) -> str:
        """Serialise manifest to pretty-printed JSON."""
        return json.dumps(self.to_dict(), indent=indent_size, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class OutputWriter:
    """
    Writes generated artifacts under the overwrite policy.

    Usage::

        writer = OutputWriter(overwrite=False)
        if not writer.should_skip(path):
            record = writer.write(path, content)
    """

    def __init__(
        self,
        overwrite: bool = True,
        crlf: bool = False,
        output_dir: Optional[PathLike] = None,
    ) -> None:
        self.overwrite: bool = overwrite
        self.crlf: bool = crlf
        self._output_dir: Optional[Path] = Path(output_dir) if output_dir else None
        self._records: List[FileRecord] = []
        self._skipped: List[str] = []
        self._errors: List[str] = []

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def resolve(self, path: PathLike) -> Path:
        """Relative paths land under the output directory, when one is set."""
        target: Path = Path(path)
        if self._output_dir is not None and not target.is_absolute():
            return self._output_dir / target
        return target

    def should_skip(self, path: PathLike) -> bool:
        """True when *path* exists and overwriting is disabled."""
        target: Path = self.resolve(path)
        return not self.overwrite and target.exists()

    def skip(self, path: PathLike) -> None:
        """Record (and log) a skipped artifact."""
        target: Path = self.resolve(path)
        self._skipped.append(str(target))
        logger.info("Skipping existing file %s (overwrite disabled).", target)

    def write(self, path: PathLike, content: str) -> FileRecord:
        """
        Write *content* to *path*, creating parent directories.

        Raises:
            OutputWriteError: the directory or file could not be written.
        """
        target: Path = self.resolve(path)
        text: str = normalize_newlines(content, crlf=self.crlf)
        encoded: bytes = text.encode("utf-8")

        try:
            ensure_directory(target.parent)
            self._atomic_write(target, encoded)
        except OSError as exc:
            message: str = f"cannot write {target}: {exc}"
            self._errors.append(message)
            logger.error(message)
            raise OutputWriteError(message, path=str(target)) from exc

        record: FileRecord = FileRecord(
            path=str(target),
            size_bytes=len(encoded),
            line_count=count_lines(text),
            sha256=sha256_hex(text),
        )
        self._records.append(record)
        logger.debug("Wrote file: %s (%d bytes, %d lines).", target, record.size_bytes, record.line_count)
        return record

    def manifest(self) -> WriteManifest:
        """Snapshot of what was written and skipped so far."""
        return WriteManifest(
            output_directory=str(self._output_dir or ""),
            timestamp=time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            files=list(self._records),
            skipped=list(self._skipped),
            errors=list(self._errors),
        )

    @property
    def records(self) -> List[FileRecord]:
        return list(self._records)

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    @staticmethod
    def _atomic_write(target_path: Path, data: bytes) -> None:
        """
        Write data to target_path through a temporary file in the same
        directory, then rename it over the target.
        """
        fd, tmp_path = tempfile.mkstemp(
            dir=str(target_path.parent),
            prefix=f".{target_path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, _default_file_mode())
            os.replace(tmp_path, str(target_path))
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def __repr__(self) -> str:
        return (
            f"<OutputWriter overwrite={self.overwrite} "
            f"written={len(self._records)} skipped={len(self._skipped)}>"
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "OutputWriter",
    "WriteManifest",
    "FileRecord",
]

logger.debug("dbgen.exporters loaded.")
