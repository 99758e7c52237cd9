# File: dbgen/dialects/mssql.py
"""
dbgen - SQL Server Adapter
==========================
SQL Server gets the same treatment as the fallback: driver columns, first
column as primary key, no auto-increment detection.  Default expressions
such as ``((0))`` and ``(N'x')`` are unwrapped by ``cleanup_default``.
"""

from __future__ import annotations

import logging
from typing import List

from dbgen.dialects.fallback import FallbackAdapter
from dbgen.models import DatabaseFamily

logger: logging.Logger = logging.getLogger("dbgen.dialects.mssql")


class MSSQLAdapter(FallbackAdapter):
    family = DatabaseFamily.MSSQL


__all__: List[str] = ["MSSQLAdapter"]
