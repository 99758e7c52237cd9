# File: dbgen/__main__.py
"""
dbgen — Module entry point.

Allows running the generator directly via::

    python -m dbgen --connstr sqlite:///app.db --out ./generated

This module simply delegates to the CLI entry point defined in ``dbgen.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from dbgen.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
