"""Click CLI interface definitions.

Defines the command-line interface structure and routes commands
to their respective runners.
"""

from __future__ import annotations

from pathlib import Path

import click
from dotenv import load_dotenv

from BookReport.cli.runner import CommandRunner
from BookReport.config import DEFAULT_CONFIG_PATH, load_config


@click.group(help="BookReport: query, aggregate and explain the bookstore catalog.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Path to YAML config file, layered over config/default.yml when that file exists.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path) -> None:
    """CLI entry group.

    Loads environment variables from .env file before processing config.

    Args:
        ctx: Click context.
        config_path: Path to YAML config file.
    """
    # MONGODB_URI may come from .env
    load_dotenv()

    defaults = DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.is_file() else None
    ctx.obj = load_config(config_path, defaults=defaults)


@cli.command("run")
@click.option(
    "--only",
    "only",
    multiple=True,
    metavar="NAME",
    help="Run only this catalog entry (repeatable).",
)
@click.pass_context
def run_cmd(ctx: click.Context, only: tuple[str, ...]) -> None:
    """Run the report and print each result via logging.

    Raises:
        click.Abort: When an entry fails.
    """
    runner = CommandRunner(ctx.obj)
    runner.run_report(action=ctx.command.name, only=only)


@cli.command("seed")
@click.option(
    "--data",
    "data_path",
    type=click.Path(path_type=Path, dir_okay=False, exists=True),
    default=None,
    help="YAML file with sample books (defaults to seed.path).",
)
@click.option("--drop", is_flag=True, help="Drop the collection before inserting.")
@click.pass_context
def seed_cmd(ctx: click.Context, data_path: Path | None, drop: bool) -> None:
    """Insert sample books into the configured store."""
    runner = CommandRunner(ctx.obj)
    runner.run_seed(action=ctx.command.name, data_path=data_path, drop=drop)


@cli.command("catalog")
@click.pass_context
def catalog_cmd(ctx: click.Context) -> None:
    """List the report entries in run order."""
    CommandRunner(ctx.obj).run_catalog(action=ctx.command.name)
