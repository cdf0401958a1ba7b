"""Configuration loading and project initialization.

Reads TOML config files using stdlib ``tomllib`` and writes them using
``tomli_w``.  Depends only on ``models.py`` and ``colors.py``.
"""

from __future__ import annotations

import sys
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

from treasury_tracker.colors import DEFAULT_PALETTE
from treasury_tracker.models import AppConfig, DatasetConfig

CONFIG_FILE = "config.toml"


class ConfigError(Exception):
    """Raised when ``config.toml`` is unreadable or missing a required key."""


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

_OPERATING_DEFAULTS = {
    "output_file": "budget-{year}.json",
    "year_column": "fiscal_year",
    "hierarchy": ["priority", "service", "fund", "expense_category"],
    "amount_column": "approved_amount",
    "description_fields": ["description"],
    "link_keys": True,
}

_TRANSACTIONS_DEFAULTS = {
    "output_file": "transactions-{year}.json",
    "year_column": "Fiscal_Year",
    "hierarchy": ["Priority", "Service"],
    "amount_column": "Amount",
    "link_fields": ["Priority", "Service", "Fund", "Expense Category"],
}

_DEFAULT_CONFIG = {
    "general": {
        "city_name": "Bloomington",
        "population": 79168,
        "fiscal_years": [2024, 2025],
        "output_dir": "output",
    },
    "datasets": {
        "operating": {
            "input_file": "data/operating-budget.csv",
            **_OPERATING_DEFAULTS,
            "color_palette": list(DEFAULT_PALETTE),
        },
        "transactions": {
            "input_file": "data/transactions.csv",
            **_TRANSACTIONS_DEFAULTS,
            "color_palette": list(DEFAULT_PALETTE),
        },
    },
}

# Directories that ``initialize`` creates.
_INIT_DIRS = ["data", "output"]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(root: Path) -> AppConfig:
    """Load ``config.toml`` from *root* and return an :class:`AppConfig`.

    Args:
        root: Project root directory containing ``config.toml``.

    Returns:
        A fully-populated :class:`AppConfig` instance.

    Raises:
        FileNotFoundError: If ``config.toml`` does not exist.
        ConfigError: If the file is not valid TOML or lacks a required key.
    """
    path = Path(root) / CONFIG_FILE
    try:
        data = _read_toml(path)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: invalid TOML: {exc}") from exc

    general = data.get("general", {})
    datasets = data.get("datasets", {})

    years = general.get("fiscal_years")
    if not years:
        raise ConfigError(f"{path}: [general] fiscal_years is required")
    try:
        fiscal_years = [int(y) for y in years]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{path}: fiscal_years must be integers: {years!r}") from exc

    operating = _dataset(path, datasets, "operating", _OPERATING_DEFAULTS)
    transactions = _dataset(path, datasets, "transactions", _TRANSACTIONS_DEFAULTS)
    if len(transactions.hierarchy) != 2:
        raise ConfigError(
            f"{path}: [datasets.transactions] hierarchy must name a department "
            f"and a service column, got {transactions.hierarchy!r}"
        )

    return AppConfig(
        city_name=general.get("city_name", ""),
        population=general.get("population", 0),
        fiscal_years=fiscal_years,
        output_dir=general.get("output_dir", "output"),
        operating=operating,
        transactions=transactions,
    )


def initialize(target_dir: Path) -> None:
    """Create the standard directory structure and a default ``config.toml``.

    Idempotent: existing directories are left alone and an existing
    ``config.toml`` is **not** overwritten.

    Args:
        target_dir: The directory in which to create the project structure.
    """
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    for d in _INIT_DIRS:
        (target_dir / d).mkdir(parents=True, exist_ok=True)

    config_path = target_dir / CONFIG_FILE
    if not config_path.exists():
        header = "# Treasury Tracker configuration\n\n"
        config_path.write_text(header + tomli_w.dumps(_DEFAULT_CONFIG), encoding="utf-8")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_toml(path: Path) -> dict:
    """Read and parse a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _dataset(path: Path, datasets: dict, name: str, defaults: dict) -> DatasetConfig:
    section = datasets.get(name)
    if not isinstance(section, dict) or not section.get("input_file"):
        raise ConfigError(f"{path}: [datasets.{name}] input_file is required")

    merged = {**defaults, **section}
    if "{year}" not in merged["output_file"]:
        raise ConfigError(f"{path}: [datasets.{name}] output_file must contain '{{year}}'")

    return DatasetConfig(
        input_file=merged["input_file"],
        output_file=merged["output_file"],
        year_column=merged["year_column"],
        hierarchy=list(merged["hierarchy"]),
        amount_column=merged["amount_column"],
        description_fields=list(merged.get("description_fields", [])),
        link_keys=bool(merged.get("link_keys", False)),
        link_fields=list(merged.get("link_fields", [])),
        color_palette=list(merged.get("color_palette") or DEFAULT_PALETTE),
    )
