"""CLI package for BookReport.

`ui` declares the click commands, `runner` owns logging setup and the store
session, and `commands` holds the work each command does.
"""

from __future__ import annotations

from typing import Sequence

from BookReport.cli.runner import CommandRunner
from BookReport.cli.ui import cli

__all__ = ["CommandRunner", "cli", "main"]


def main(argv: Sequence[str] | None = None) -> None:
    """Console script entry point (`book-report`)."""
    cli(args=argv, prog_name="book-report")
