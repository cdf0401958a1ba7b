"""Click CLI entry point for the treasury command.

Handles argument parsing, config loading, and error display. All business
logic is delegated to ``pipeline``, ``config``, and ``export`` modules.

Exit codes: 0 when the batch completed (individual years may have been
skipped with warnings), 1 on a configuration or file-system error.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from pathlib import Path

import click

from treasury_tracker import __version__

logger = logging.getLogger("treasury_tracker.cli")


def _configure_logging(verbose: bool, debug: bool) -> None:
    """Set up logging based on verbosity flags."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        force=True,
    )


def _processing_options(fn: Callable) -> Callable:
    """Options shared by every processing command."""
    fn = click.option(
        "--debug", is_flag=True, default=False, help="Developer-level diagnostics."
    )(fn)
    fn = click.option(
        "--verbose", is_flag=True, default=False, help="Detailed progress output."
    )(fn)
    fn = click.option(
        "--jobs",
        default=1,
        show_default=True,
        type=click.IntRange(min=1),
        help="Fiscal years to process in parallel.",
    )(fn)
    fn = click.option(
        "--root",
        default=".",
        type=click.Path(file_okay=False),
        help="Project directory containing config.toml.",
    )(fn)
    return fn


def _run(root: str, jobs: int, verbose: bool, debug: bool, drivers: Callable) -> None:
    """Load config, run *drivers*, and print one summary per driver run.

    *drivers* takes ``(config, root, jobs)`` and returns a list of
    :class:`~treasury_tracker.models.RunResult`.
    """
    _configure_logging(verbose, debug)
    root_path = Path(root).resolve()

    from treasury_tracker.config import ConfigError, load_config
    from treasury_tracker.export import print_summary

    try:
        config = load_config(root_path)
    except FileNotFoundError as exc:
        logger.exception("Configuration file not found")
        click.echo(
            f"Error: {exc}. Run 'treasury init' to create the project structure.",
            err=True,
        )
        sys.exit(1)
    except ConfigError as exc:
        logger.exception("Invalid configuration")
        click.echo(f"Error loading configuration: {exc}", err=True)
        sys.exit(1)

    if verbose:
        click.echo(f"City: {config.city_name}")
        click.echo(f"Years: {', '.join(str(y) for y in config.fiscal_years)}")

    try:
        results = drivers(config, root_path, jobs)
    except OSError as exc:
        logger.exception("Pipeline aborted")
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    for result in results:
        print_summary(result)


@click.group()
@click.version_option(version=__version__, prog_name="treasury-tracker")
def cli() -> None:
    """Build budget trees, transaction indexes, and linked budget files."""


@cli.command()
@_processing_options
def budget(root: str, jobs: int, verbose: bool, debug: bool) -> None:
    """Aggregate the operating budget into budget-<year>.json files."""
    from treasury_tracker.pipeline import process_budget

    _run(root, jobs, verbose, debug, lambda c, r, j: [process_budget(c, r, j)])


@cli.command()
@_processing_options
def transactions(root: str, jobs: int, verbose: bool, debug: bool) -> None:
    """Build transactions-<year>.json and the link-key index files."""
    from treasury_tracker.pipeline import process_transactions

    _run(root, jobs, verbose, debug, lambda c, r, j: [process_transactions(c, r, j)])


@cli.command()
@_processing_options
def link(root: str, jobs: int, verbose: bool, debug: bool) -> None:
    """Merge transaction previews into budget-<year>-linked.json files."""
    from treasury_tracker.pipeline import link_budgets

    _run(root, jobs, verbose, debug, lambda c, r, j: [link_budgets(c, r, j)])


@cli.command()
@_processing_options
def run(root: str, jobs: int, verbose: bool, debug: bool) -> None:
    """Run budget, transactions, and linking in order."""
    from treasury_tracker.pipeline import run_all

    _run(root, jobs, verbose, debug, run_all)


@cli.command()
@click.option(
    "--dir", "target_dir", default=".", type=click.Path(), help="Directory to initialize."
)
def init(target_dir: str) -> None:
    """Initialize a new project directory with the standard structure."""
    from treasury_tracker.config import initialize

    target = Path(target_dir).resolve()

    try:
        initialize(target)
    except OSError as exc:
        click.echo(f"Error initializing project: {exc}", err=True)
        sys.exit(1)

    click.echo(f"Initialized treasury tracker project in {target}")
