"""Tests for treasury_tracker.pipeline — the per-year drivers end to end."""

from __future__ import annotations

import shutil
from dataclasses import replace
from decimal import Decimal
from pathlib import Path

import pytest

from treasury_tracker.config import load_config
from treasury_tracker.export import read_json
from treasury_tracker.models import AppConfig
from treasury_tracker.pipeline import (
    link_budgets,
    output_path,
    process_budget,
    process_transactions,
    run_all,
    with_suffix_tag,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _output(project: Path, name: str) -> Path:
    return project / "output" / name


def _without_timestamps(document: dict) -> dict:
    """Copy of a budget/transactions document minus metadata.generatedAt."""
    document = dict(document)
    document["metadata"] = {k: v for k, v in document["metadata"].items() if k != "generatedAt"}
    return document


def _find(categories: list[dict], *path: str) -> dict:
    node = None
    for name in path:
        node = next(c for c in categories if c["name"] == name)
        categories = node.get("subcategories", [])
    return node


def _walk(categories: list[dict]):
    for c in categories:
        yield c
        yield from _walk(c.get("subcategories", []))


# ---------------------------------------------------------------------------
# Output naming
# ---------------------------------------------------------------------------


class TestOutputNaming:
    def test_output_path(self, project_config: AppConfig, tmp_path: Path):
        path = output_path(tmp_path, project_config, project_config.operating, 2025)
        assert path == tmp_path / "output" / "budget-2025.json"

    def test_with_suffix_tag(self):
        assert with_suffix_tag(Path("out/budget-2025.json"), "linked") == Path("out/budget-2025-linked.json")


# ---------------------------------------------------------------------------
# process_budget
# ---------------------------------------------------------------------------


class TestProcessBudget:
    def test_writes_one_file_per_year_with_data(self, project_config, tmp_project_dir):
        result = process_budget(project_config, tmp_project_dir)

        assert result.dataset == "budget"
        assert result.succeeded == [2024, 2025]
        assert result.failed == [2026]
        assert _output(tmp_project_dir, "budget-2025.json").exists()
        assert _output(tmp_project_dir, "budget-2024.json").exists()
        assert not _output(tmp_project_dir, "budget-2026.json").exists()

    def test_missing_year_reported_as_warning(self, project_config, tmp_project_dir):
        result = process_budget(project_config, tmp_project_dir)
        skipped = result.results[2]
        assert skipped.year == 2026
        assert skipped.success is False
        assert "FY2026" in skipped.warnings[0]

    def test_dropped_rows_reported(self, project_config, tmp_project_dir):
        assert process_budget(project_config, tmp_project_dir).dropped_rows == 1

    def test_budget_document(self, project_config, tmp_project_dir):
        process_budget(project_config, tmp_project_dir)
        doc = read_json(_output(tmp_project_dir, "budget-2025.json"))

        meta = doc["metadata"]
        assert meta["cityName"] == "Bloomington"
        assert meta["fiscalYear"] == 2025
        assert meta["totalBudget"] == 2800
        assert meta["hierarchy"] == ["priority", "service", "fund", "expense_category"]

        categories = doc["categories"]
        assert [(c["name"], c["amount"]) for c in categories] == [
            ("Public Safety", 2000),
            ("Public Works", 800),
        ]
        assert categories[0]["color"] == "#111111"
        police = _find(categories, "Public Safety", "Police")
        assert police["amount"] == 1200
        assert police["linkKey"] == "public safety|police"

        equipment = _find(categories, "Public Safety", "Police", "General", "Equipment")
        assert equipment["lineItems"] == [
            {"description": "Radios, vehicles", "approvedAmount": 200, "actualAmount": 180}
        ]

        uncategorized = _find(categories, "Public Works", "Sanitation", "Uncategorized")
        assert "linkKey" not in uncategorized

    def test_sum_invariant_in_written_tree(self, project_config, tmp_project_dir):
        process_budget(project_config, tmp_project_dir)
        doc = read_json(_output(tmp_project_dir, "budget-2025.json"))
        for node in _walk(doc["categories"]):
            children = node.get("subcategories")
            if children:
                assert node["amount"] == sum(c["amount"] for c in children)

    def test_non_numeric_amount_counts_as_zero(self, project_config, tmp_project_dir):
        process_budget(project_config, tmp_project_dir)
        doc = read_json(_output(tmp_project_dir, "budget-2024.json"))
        assert doc["metadata"]["totalBudget"] == 900
        assert _find(doc["categories"], "Public Works")["amount"] == 0

    def test_missing_input_csv_raises(self, project_config, tmp_project_dir):
        (tmp_project_dir / "data" / "operating-budget.csv").unlink()
        with pytest.raises(FileNotFoundError):
            process_budget(project_config, tmp_project_dir)


# ---------------------------------------------------------------------------
# process_transactions
# ---------------------------------------------------------------------------


class TestProcessTransactions:
    def test_writes_document_and_index(self, project_config, tmp_project_dir):
        result = process_transactions(project_config, tmp_project_dir)

        assert result.dataset == "transactions"
        assert result.succeeded == [2024, 2025]
        assert [p.name for p in result.results[1].output_paths] == [
            "transactions-2025.json",
            "transactions-2025-index.json",
        ]

    def test_transactions_document(self, project_config, tmp_project_dir):
        process_transactions(project_config, tmp_project_dir)
        doc = read_json(_output(tmp_project_dir, "transactions-2025.json"))

        meta = doc["metadata"]
        assert meta["datasetType"] == "transactions"
        assert meta["totalSpending"] == Decimal("1725")
        assert meta["totalTransactions"] == 6

        safety = _find(doc["categories"], "Public Safety")
        assert safety["metadata"]["transactionCount"] == 4
        assert safety["metadata"]["vendorCount"] == 3
        assert safety["color"] == "#aaaaaa"

        monthly = doc["analytics"]["monthlySpending"]
        assert [m["month"] for m in monthly] == ["2025-01", "2025-02", "2025-03", "2025-04", "Unknown"]
        assert monthly[1]["amount"] == Decimal("449.5")

        vendors = doc["analytics"]["topVendors"]
        assert vendors[0] == {"name": "City Payroll", "totalSpent": 1000, "transactionCount": 2}

    def test_index_file(self, project_config, tmp_project_dir):
        process_transactions(project_config, tmp_project_dir)
        index = read_json(_output(tmp_project_dir, "transactions-2025-index.json"))

        assert len(index) == 9
        police = index["public safety|police"]
        assert police["transactionCount"] == 4
        assert police["totalAmount"] == 1200
        assert police["vendorCount"] == 3
        # Most recent first.
        assert [t["date"] for t in police["transactions"]] == [
            "2025-03-15",
            "2025-02-28",
            "2025-02-10",
            "2025-01-31",
        ]
        assert [v["name"] for v in index["public works"]["topVendors"]] == ["Rieth-Riley"]

    def test_missing_input_csv_raises(self, project_config, tmp_project_dir):
        (tmp_project_dir / "data" / "transactions.csv").unlink()
        with pytest.raises(FileNotFoundError):
            process_transactions(project_config, tmp_project_dir)

    def test_no_staging_files_left(self, project_config, tmp_project_dir):
        process_transactions(project_config, tmp_project_dir)
        assert list((tmp_project_dir / "output").glob("*.tmp")) == []

    def test_configured_amount_column(self, project_config, tmp_project_dir):
        csv_path = tmp_project_dir / "data" / "transactions.csv"
        header, rest = csv_path.read_text(encoding="utf-8").split("\n", 1)
        csv_path.write_text(header.replace(",Amount,", ",Total,") + "\n" + rest, encoding="utf-8")
        config = replace(project_config, transactions=replace(project_config.transactions, amount_column="Total"))

        process_transactions(config, tmp_project_dir)

        doc = read_json(_output(tmp_project_dir, "transactions-2025.json"))
        assert doc["metadata"]["totalSpending"] == Decimal("1725")
        assert doc["analytics"]["topVendors"][0]["totalSpent"] == 1000
        index = read_json(_output(tmp_project_dir, "transactions-2025-index.json"))
        assert index["public safety"]["totalAmount"] == 1200


# ---------------------------------------------------------------------------
# link_budgets
# ---------------------------------------------------------------------------


class TestLinkBudgets:
    def test_linked_file(self, project_config, tmp_project_dir):
        process_budget(project_config, tmp_project_dir)
        process_transactions(project_config, tmp_project_dir)
        result = link_budgets(project_config, tmp_project_dir)

        assert result.dataset == "linking"
        assert result.succeeded == [2024, 2025]

        doc = read_json(_output(tmp_project_dir, "budget-2025-linked.json"))
        linked = [c for c in _walk(doc["categories"]) if "linkedTransactions" in c]
        assert len(linked) == 9
        assert sum(c["linkedTransactions"]["transactionCount"] for c in linked) == 22

        police = _find(doc["categories"], "Public Safety", "Police")
        assert police["linkedTransactions"]["transactionCount"] == 4
        assert police["linkedTransactions"]["hasMore"] is False
        assert "linkedTransactions" not in _find(doc["categories"], "Public Safety", "Fire")

    def test_linking_leaves_budget_fields_alone(self, project_config, tmp_project_dir):
        process_budget(project_config, tmp_project_dir)
        process_transactions(project_config, tmp_project_dir)
        link_budgets(project_config, tmp_project_dir)

        budget = read_json(_output(tmp_project_dir, "budget-2025.json"))
        linked = read_json(_output(tmp_project_dir, "budget-2025-linked.json"))
        assert linked["metadata"] == budget["metadata"]
        for before, after in zip(_walk(budget["categories"]), _walk(linked["categories"])):
            after = {k: v for k, v in after.items() if k not in ("linkedTransactions", "subcategories")}
            before = {k: v for k, v in before.items() if k != "subcategories"}
            assert after == before

    def test_year_without_index_is_skipped(self, project_config, tmp_project_dir):
        """A budget year with no transactions gets no linked file."""
        csv_path = tmp_project_dir / "data" / "transactions.csv"
        lines = csv_path.read_text(encoding="utf-8").splitlines()
        csv_path.write_text("\n".join(line for line in lines if not line.startswith("2024")) + "\n", encoding="utf-8")

        process_budget(project_config, tmp_project_dir)
        process_transactions(project_config, tmp_project_dir)
        result = link_budgets(project_config, tmp_project_dir)

        assert result.succeeded == [2025]
        assert "Transaction index not found" in result.results[0].warnings[0]
        assert not _output(tmp_project_dir, "budget-2024-linked.json").exists()
        assert _output(tmp_project_dir, "budget-2025-linked.json").exists()

    def test_year_without_budget_is_skipped(self, project_config, tmp_project_dir):
        result = link_budgets(project_config, tmp_project_dir)
        assert result.succeeded == []
        assert all("Budget file not found" in r.warnings[0] for r in result.results)

    def test_truncated_budget_file_skips_only_that_year(self, project_config, tmp_project_dir):
        process_budget(project_config, tmp_project_dir)
        process_transactions(project_config, tmp_project_dir)
        _output(tmp_project_dir, "budget-2024.json").write_text("{ truncated", encoding="utf-8")

        result = link_budgets(project_config, tmp_project_dir)

        assert result.succeeded == [2025]
        assert "Unreadable budget file" in result.results[0].warnings[0]
        assert not _output(tmp_project_dir, "budget-2024-linked.json").exists()
        assert _output(tmp_project_dir, "budget-2025-linked.json").exists()

    def test_budget_without_categories_is_skipped(self, project_config, tmp_project_dir):
        process_budget(project_config, tmp_project_dir)
        process_transactions(project_config, tmp_project_dir)
        _output(tmp_project_dir, "budget-2025.json").write_text('{"metadata": {}}', encoding="utf-8")

        result = link_budgets(project_config, tmp_project_dir)

        assert result.succeeded == [2024]
        assert "Unreadable budget file" in result.results[1].warnings[0]

    def test_corrupt_index_skips_only_that_year(self, project_config, tmp_project_dir):
        process_budget(project_config, tmp_project_dir)
        process_transactions(project_config, tmp_project_dir)
        _output(tmp_project_dir, "transactions-2025-index.json").write_text(
            '{"public safety": {"transactionCount": "many"}}', encoding="utf-8"
        )

        result = link_budgets(project_config, tmp_project_dir)

        assert result.succeeded == [2024]
        assert "Unreadable transaction index" in result.results[1].warnings[0]
        assert not _output(tmp_project_dir, "budget-2025-linked.json").exists()

    def test_large_service_preview_is_truncated(self, project_config, tmp_project_dir):
        """25 payments under one service: full index entry, 20-row preview."""
        header = (
            "Fiscal_Year,Priority,Service,Fund,Expense Category,Description,Vendor,"
            "Amount,Payment Date,Payment_Method,InvoiceNumber"
        )
        rows = [
            f"2025,Public Safety,Police,General,Salaries,Pay {i},Vendor {i},10,2025-01-{i:02d},ACH,INV-{i}"
            for i in range(1, 26)
        ]
        (tmp_project_dir / "data" / "transactions.csv").write_text(
            "\n".join([header, *rows]) + "\n", encoding="utf-8"
        )

        process_budget(project_config, tmp_project_dir)
        process_transactions(project_config, tmp_project_dir)
        link_budgets(project_config, tmp_project_dir)

        index = read_json(_output(tmp_project_dir, "transactions-2025-index.json"))
        entry = index["public safety|police"]
        assert entry["transactionCount"] == 25
        assert len(entry["transactions"]) == 25
        assert entry["totalAmount"] == 250

        doc = read_json(_output(tmp_project_dir, "budget-2025-linked.json"))
        summary = _find(doc["categories"], "Public Safety", "Police")["linkedTransactions"]
        assert summary["transactionCount"] == 25
        assert len(summary["transactions"]) == 20
        assert summary["hasMore"] is True
        assert summary["transactions"][0]["date"] == "2025-01-25"


# ---------------------------------------------------------------------------
# run_all
# ---------------------------------------------------------------------------


class TestRunAll:
    def test_three_results_in_order(self, project_config, tmp_project_dir):
        results = run_all(project_config, tmp_project_dir)
        assert [r.dataset for r in results] == ["budget", "transactions", "linking"]
        assert all(r.failed == [2026] for r in results)

    def test_rerun_is_idempotent(self, project_config, tmp_project_dir):
        names = [
            "budget-2025.json",
            "transactions-2025.json",
            "transactions-2025-index.json",
            "budget-2025-linked.json",
        ]
        run_all(project_config, tmp_project_dir)
        first = {n: read_json(_output(tmp_project_dir, n)) for n in names}
        run_all(project_config, tmp_project_dir)
        second = {n: read_json(_output(tmp_project_dir, n)) for n in names}

        assert first["transactions-2025-index.json"] == second["transactions-2025-index.json"]
        for name in ("budget-2025.json", "transactions-2025.json", "budget-2025-linked.json"):
            assert _without_timestamps(first[name]) == _without_timestamps(second[name])

    def test_parallel_years_match_sequential(self, tmp_project_dir, tmp_path):
        other = tmp_path / "parallel"
        shutil.copytree(tmp_project_dir, other)

        run_all(load_config(tmp_project_dir), tmp_project_dir, jobs=1)
        results = run_all(load_config(other), other, jobs=2)

        assert [r.year for r in results[0].results] == [2024, 2025, 2026]
        for name in ("budget-2024.json", "budget-2025-linked.json", "transactions-2025.json"):
            assert _without_timestamps(read_json(_output(tmp_project_dir, name))) == _without_timestamps(
                read_json(_output(other, name))
            )

    def test_custom_output_dir(self, project_config, tmp_project_dir):
        config = replace(project_config, output_dir="site/data")
        run_all(config, tmp_project_dir)
        assert (tmp_project_dir / "site" / "data" / "budget-2025-linked.json").exists()
