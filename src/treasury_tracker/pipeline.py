"""Pipeline drivers for Treasury Tracker.

Three batch drivers, each iterating the configured fiscal years:

1. :func:`process_budget` -- operating-budget CSV -> ``budget-<year>.json``.
2. :func:`process_transactions` -- transactions CSV ->
   ``transactions-<year>.json`` and ``transactions-<year>-index.json``.
3. :func:`link_budgets` -- budget file + index file ->
   ``budget-<year>-linked.json``.

Years are independent: every structure is built fresh per year and files
are year-parameterized, so with ``jobs > 1`` years run on a thread pool.  A
year with no input is skipped with a warning and the batch continues.  A
missing top-level input CSV is a configuration-level error and propagates.

Each year's output is all-or-nothing: files are written only after every
structure for that year has been built, and a year with several files
stages them as temp files and moves them into place together.  A per-year
artifact that cannot be parsed is skipped like a missing one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from treasury_tracker.analytics import (
    build_transaction_hierarchy,
    monthly_spending,
    summarize_transactions,
    vendor_totals,
)
from treasury_tracker.colors import ColorAssigner
from treasury_tracker.csv_reader import read_csv_file
from treasury_tracker.export import (
    budget_document,
    build_metadata,
    index_from_dict,
    index_to_dict,
    read_json,
    transactions_document,
    write_json,
    write_json_files,
)
from treasury_tracker.hierarchy import (
    build_hierarchy,
    calculate_percentages,
    filter_by_year,
    total_amount,
)
from treasury_tracker.indexer import LINK_FIELDS, build_transaction_index
from treasury_tracker.linker import link_budget_document
from treasury_tracker.models import AppConfig, CsvTable, DatasetConfig, RunResult, YearResult

logger = logging.getLogger(__name__)

# Errors from decoding a truncated or wrongly shaped JSON artifact.
_MALFORMED_ARTIFACT = (ValueError, KeyError, TypeError, AttributeError, ArithmeticError)


# ---------------------------------------------------------------------------
# Output naming
# ---------------------------------------------------------------------------


def output_path(root: Path, config: AppConfig, dataset: DatasetConfig, year: int) -> Path:
    """Resolve the per-year output file of *dataset*."""
    return Path(root) / config.output_dir / dataset.output_file.replace("{year}", str(year))


def with_suffix_tag(path: Path, tag: str) -> Path:
    """``budget-2025.json`` + ``linked`` -> ``budget-2025-linked.json``."""
    return path.with_name(f"{path.stem}-{tag}{path.suffix}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def process_budget(config: AppConfig, root: Path, jobs: int = 1) -> RunResult:
    """Build ``budget-<year>.json`` for every configured fiscal year.

    Raises:
        FileNotFoundError: If the operating-budget CSV does not exist.
    """
    dataset = config.operating
    logger.info("Hierarchy: %s", " -> ".join(dataset.hierarchy))
    table = _read_input(root, dataset)

    def run_year(year: int) -> YearResult:
        rows = filter_by_year(table.rows, dataset.year_column, year)
        logger.info("FY%s: %d budget rows", year, len(rows))
        if not rows:
            return _skip(year, f"No budget data found for FY{year}")

        categories = build_hierarchy(
            rows,
            dataset.hierarchy,
            dataset.amount_column,
            ColorAssigner(dataset.color_palette),
            description_fields=dataset.description_fields,
            link_keys=dataset.link_keys,
        )
        total = total_amount(categories)
        calculate_percentages(categories)

        metadata = build_metadata(config, dataset, year, total)
        path = write_json(
            output_path(root, config, dataset, year), budget_document(metadata, categories)
        )
        logger.info("FY%s: total budget %s across %d top-level categories",
                    year, total, len(categories))
        return YearResult(year=year, success=True, output_paths=[path])

    return RunResult(
        dataset="budget",
        results=_map_years(run_year, config.fiscal_years, jobs),
        dropped_rows=table.dropped_rows,
    )


def process_transactions(config: AppConfig, root: Path, jobs: int = 1) -> RunResult:
    """Build the transactions document and link-key index for every year.

    Raises:
        FileNotFoundError: If the transactions CSV does not exist.
    """
    dataset = config.transactions
    fields = dataset.link_fields or list(LINK_FIELDS)
    table = _read_input(root, dataset)

    def run_year(year: int) -> YearResult:
        rows = filter_by_year(table.rows, dataset.year_column, year)
        logger.info("FY%s: %d transaction rows", year, len(rows))
        if not rows:
            return _skip(year, f"No transaction data found for FY{year}")

        amount_column = dataset.amount_column
        categories = build_transaction_hierarchy(
            rows, ColorAssigner(dataset.color_palette), dataset.hierarchy, amount_column
        )
        monthly = monthly_spending(rows, amount_column)
        vendors = vendor_totals(rows, amount_column=amount_column)
        index = build_transaction_index(rows, fields, amount_column)
        calculate_percentages(categories)

        totals = summarize_transactions(categories)
        metadata = build_metadata(config, dataset, year, totals["totalSpending"])
        metadata.update(totals)
        metadata["datasetType"] = "transactions"

        path = output_path(root, config, dataset, year)
        written = write_json_files([
            (path, transactions_document(metadata, categories, monthly, vendors)),
            (with_suffix_tag(path, "index"), index_to_dict(index)),
        ])
        logger.info("FY%s: %d link keys, %d vendors", year, len(index), len(vendors))
        return YearResult(year=year, success=True, output_paths=written)

    return RunResult(
        dataset="transactions",
        results=_map_years(run_year, config.fiscal_years, jobs),
        dropped_rows=table.dropped_rows,
    )


def link_budgets(config: AppConfig, root: Path, jobs: int = 1) -> RunResult:
    """Merge transaction previews into each year's budget file."""

    def run_year(year: int) -> YearResult:
        budget_path = output_path(root, config, config.operating, year)
        index_path = with_suffix_tag(
            output_path(root, config, config.transactions, year), "index"
        )
        if not budget_path.is_file():
            return _skip(year, f"Budget file not found: {budget_path}")
        if not index_path.is_file():
            return _skip(year, f"Transaction index not found: {index_path}")

        try:
            index = index_from_dict(read_json(index_path))
        except _MALFORMED_ARTIFACT as exc:
            return _skip(year, f"Unreadable transaction index {index_path}: {exc}")
        try:
            document, stats = link_budget_document(read_json(budget_path), index)
        except _MALFORMED_ARTIFACT as exc:
            return _skip(year, f"Unreadable budget file {budget_path}: {exc}")

        path = write_json(with_suffix_tag(budget_path, "linked"), document)

        logger.info("FY%s: linked %d categories to %d transactions",
                    year, stats.linked_categories, stats.linked_transactions)
        return YearResult(year=year, success=True, output_paths=[path])

    return RunResult(
        dataset="linking",
        results=_map_years(run_year, config.fiscal_years, jobs),
    )


def run_all(config: AppConfig, root: Path, jobs: int = 1) -> list[RunResult]:
    """Run the budget, transactions, and linking drivers in order."""
    return [
        process_budget(config, root, jobs),
        process_transactions(config, root, jobs),
        link_budgets(config, root, jobs),
    ]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_input(root: Path, dataset: DatasetConfig) -> CsvTable:
    path = Path(root) / dataset.input_file
    logger.info("Reading %s", path)
    if not path.is_file():
        raise FileNotFoundError(f"Input CSV not found: {path}")
    table = read_csv_file(path)
    logger.info("Found %d rows (%d dropped)", len(table.rows), table.dropped_rows)
    return table


def _skip(year: int, message: str) -> YearResult:
    logger.warning("%s, skipping", message)
    return YearResult(year=year, success=False, warnings=[message])


def _map_years(
    fn: Callable[[int], YearResult],
    years: Sequence[int],
    jobs: int,
) -> list[YearResult]:
    """Apply *fn* to each year, preserving config order in the result."""
    if jobs <= 1 or len(years) <= 1:
        return [fn(year) for year in years]
    with ThreadPoolExecutor(max_workers=jobs) as pool:
        return list(pool.map(fn, years))

