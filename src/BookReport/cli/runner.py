"""Command runner for coordinating CLI execution.

Manages logging configuration, store lifecycle, and error handling for
command execution.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import click

from BookReport.cli.commands import ReportCommand, SeedCommand
from BookReport.config import AppConfig
from BookReport.core.catalog import DEFAULT_CATALOG, get_entries
from BookReport.renderers import create_output_writer
from BookReport.services import ReportRunner, load_books
from BookReport.storage import StoreSession, create_store
from BookReport.utils.log import configure_logging, log


class CommandRunner:
    """Orchestrates command execution with proper resource management.

    Every command that touches the store opens it inside a `StoreSession`, so
    the store is closed on success and on failure alike.
    """

    def __init__(self, config: AppConfig) -> None:
        """Initialize command runner.

        Args:
            config: Application configuration.
        """
        self.config = config

    def _configure_logging(self, action: str) -> None:
        configure_logging(
            level=self.config.runtime.level,
            action=action,
            log_to_file=self.config.runtime.to_file,
            log_dir=self.config.runtime.dir,
        )

    def run_report(self, action: str, only: Sequence[str] = ()) -> None:
        """Run the report against the configured store.

        Args:
            action: The CLI command name (e.g., 'run').
            only: Entry names to run; falls back to `report.entries`, then to
                the whole catalog.

        Raises:
            click.Abort: When any entry fails or the store cannot be reached.
        """
        self._configure_logging(action)
        try:
            entries = get_entries(only or self.config.runtime.entries)
            output_writer = create_output_writer(self.config)
            with StoreSession(create_store(self.config.store)) as store:
                log.info("Connected to %s", store.name)
                command = ReportCommand(
                    runner=ReportRunner.for_store(store),
                    entries=entries,
                    output_writer=output_writer,
                )
                command.execute()
            output_writer.finalize(action)
        except Exception as e:  # noqa: BLE001 - cli boundary
            log.error("Report failed: %s", e)
            raise click.Abort from e

    def run_seed(self, action: str, data_path: Path | None = None, drop: bool = False) -> None:
        """Load sample books into the configured store.

        Args:
            action: The CLI command name (e.g., 'seed').
            data_path: YAML file with books; defaults to `seed.path`.
            drop: Whether to drop the collection before inserting.

        Raises:
            click.Abort: When loading or inserting fails.
        """
        self._configure_logging(action)
        try:
            path = data_path or Path(self.config.store.seed_path)
            books = load_books(path)
            log.info("Loaded %d books from %s", len(books), path)
            with StoreSession(create_store(self.config.store)) as store:
                SeedCommand(store=store, books=books, drop=drop).execute()
        except Exception as e:  # noqa: BLE001 - cli boundary
            log.error("Seed failed: %s", e)
            raise click.Abort from e

    def run_catalog(self, action: str) -> None:
        """List catalog entries without opening the store."""
        self._configure_logging(action)
        default = set(self.config.runtime.entries)
        for entry in DEFAULT_CATALOG:
            marker = "*" if entry.name in default else "-"
            log.info("%s %s: %s", marker, entry.name, entry.heading)
