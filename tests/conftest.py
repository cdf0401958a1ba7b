"""Shared pytest fixtures for Treasury Tracker tests.

Provides reusable fixtures for:
- tmp_project_dir: A temporary directory with config.toml and both input
  CSVs under data/, for driver and CLI tests.
- Convenience fixtures for fixture file paths.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from treasury_tracker.config import load_config
from treasury_tracker.models import AppConfig

# ---------------------------------------------------------------------------
# Path constants
# ---------------------------------------------------------------------------

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FIXTURES_CONFIG_DIR = FIXTURES_DIR / "config"


# ---------------------------------------------------------------------------
# Fixture file path helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def budget_sample_csv() -> Path:
    """Path to the operating-budget sample CSV fixture file."""
    return FIXTURES_DIR / "operating_budget_sample.csv"


@pytest.fixture
def transactions_sample_csv() -> Path:
    """Path to the transactions sample CSV fixture file."""
    return FIXTURES_DIR / "transactions_sample.csv"


# ---------------------------------------------------------------------------
# tmp_project_dir -- temp directory with full project structure
# ---------------------------------------------------------------------------


@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Create a temporary Treasury Tracker project.

    The directory contains:
    - config.toml (fiscal years 2024, 2025, 2026; 2026 has no data)
    - data/operating-budget.csv
    - data/transactions.csv

    Returns the Path to the temporary project root.
    """
    project = tmp_path / "treasury-project"
    project.mkdir()

    shutil.copy2(FIXTURES_CONFIG_DIR / "config.toml", project / "config.toml")

    data = project / "data"
    data.mkdir()
    shutil.copy2(FIXTURES_DIR / "operating_budget_sample.csv", data / "operating-budget.csv")
    shutil.copy2(FIXTURES_DIR / "transactions_sample.csv", data / "transactions.csv")

    return project


@pytest.fixture
def project_config(tmp_project_dir: Path) -> AppConfig:
    """The AppConfig loaded from tmp_project_dir."""
    return load_config(tmp_project_dir)
