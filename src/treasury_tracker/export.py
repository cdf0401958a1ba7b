"""JSON artifact writer/reader and run summary printer.

This module owns the on-disk format shared with the visualization layer:

- ``budget-<year>.json`` -- ``{metadata, categories}``.
- ``transactions-<year>.json`` -- the same shape plus ``analytics``.
- ``transactions-<year>-index.json`` -- link key -> index entry.
- ``budget-<year>-linked.json`` -- the budget document with
  ``linkedTransactions`` merged into matching nodes.

Keys are camelCase and optional node fields are omitted when unset.  Output
is deterministic for identical input apart from ``metadata.generatedAt``.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from treasury_tracker.models import (
    AppConfig,
    BudgetCategory,
    DatasetConfig,
    LinkedTransactionSummary,
    LineItem,
    RunResult,
    TransactionIndexEntry,
    TransactionRecord,
    VendorTotal,
)

# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def category_to_dict(category: BudgetCategory) -> dict:
    data: dict = {
        "name": category.name,
        "amount": category.amount,
        "percentage": category.percentage,
        "color": category.color,
        "items": category.items,
    }
    if category.metadata is not None:
        data["metadata"] = category.metadata
    if category.description:
        data["description"] = category.description
    if category.link_key:
        data["linkKey"] = category.link_key
    if category.line_items is not None:
        data["lineItems"] = [_line_item_to_dict(li) for li in category.line_items]
    if category.subcategories is not None:
        data["subcategories"] = [category_to_dict(c) for c in category.subcategories]
    if category.linked_transactions is not None:
        data["linkedTransactions"] = _summary_to_dict(category.linked_transactions)
    return data


def category_from_dict(data: Mapping) -> BudgetCategory:
    """Rebuild a :class:`BudgetCategory` tree from its JSON form."""
    subcategories = data.get("subcategories")
    line_items = data.get("lineItems")
    linked = data.get("linkedTransactions")
    return BudgetCategory(
        name=data["name"],
        amount=_decimal(data.get("amount", 0)),
        percentage=float(data.get("percentage", 0)),
        color=data.get("color", ""),
        items=int(data.get("items", 0)),
        subcategories=(
            [category_from_dict(c) for c in subcategories] if subcategories is not None else None
        ),
        line_items=(
            [
                LineItem(
                    description=li.get("description", ""),
                    approved_amount=_decimal(li.get("approvedAmount", 0)),
                    actual_amount=_decimal(li.get("actualAmount", 0)),
                    metadata=li.get("metadata"),
                )
                for li in line_items
            ]
            if line_items is not None
            else None
        ),
        description=data.get("description"),
        link_key=data.get("linkKey"),
        linked_transactions=_summary_from_dict(linked) if linked is not None else None,
        metadata=data.get("metadata"),
    )


def index_to_dict(index: Mapping[str, TransactionIndexEntry]) -> dict:
    return {
        key: {
            "totalAmount": entry.total_amount,
            "transactionCount": entry.transaction_count,
            "vendorCount": entry.vendor_count,
            "topVendors": [_vendor_to_dict(v) for v in entry.top_vendors],
            "transactions": [_transaction_to_dict(t) for t in entry.transactions],
        }
        for key, entry in index.items()
    }


def index_from_dict(data: Mapping) -> dict[str, TransactionIndexEntry]:
    """Rebuild an index from the contents of a ``-index.json`` file."""
    return {
        key: TransactionIndexEntry(
            total_amount=_decimal(entry["totalAmount"]),
            transaction_count=int(entry["transactionCount"]),
            vendor_count=int(entry["vendorCount"]),
            top_vendors=tuple(_vendor_from_dict(v) for v in entry.get("topVendors", [])),
            transactions=tuple(_transaction_from_dict(t) for t in entry.get("transactions", [])),
        )
        for key, entry in data.items()
    }


def build_metadata(
    config: AppConfig,
    dataset: DatasetConfig,
    year: int,
    total: Decimal,
) -> dict:
    return {
        "cityName": config.city_name,
        "fiscalYear": year,
        "population": config.population,
        "totalBudget": total,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "hierarchy": list(dataset.hierarchy),
        "dataSource": dataset.input_file,
    }


def budget_document(metadata: dict, categories: Sequence[BudgetCategory]) -> dict:
    return {
        "metadata": metadata,
        "categories": [category_to_dict(c) for c in categories],
    }


def transactions_document(
    metadata: dict,
    categories: Sequence[BudgetCategory],
    monthly: Sequence[dict],
    vendors: Sequence[dict],
) -> dict:
    document = budget_document(metadata, categories)
    document["analytics"] = {
        "monthlySpending": list(monthly),
        "topVendors": list(vendors[:20]),
    }
    return document


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def write_json(path: str | Path, data: object) -> Path:
    """Write *data* as indented UTF-8 JSON, creating parent directories.

    Decimals are written as JSON numbers: integral values as integers, the
    rest as floats.

    Returns:
        The :class:`~pathlib.Path` written.
    """
    return write_json_files([(path, data)])[0]


def write_json_files(files: Sequence[tuple[str | Path, object]]) -> list[Path]:
    """Write several JSON artifacts so that either all of them land or none do.

    Every document is serialized before anything touches the disk, then
    written to a ``.tmp`` sibling and moved into place with ``os.replace``.
    If serializing or writing any file fails, the temp files are removed and
    the existing outputs are left untouched.

    Returns:
        The paths written, in argument order.
    """
    staged: list[tuple[Path, Path, str]] = []
    for path, data in files:
        path = Path(path)
        text = json.dumps(data, indent=2, ensure_ascii=False, default=_json_default)
        staged.append((path, path.with_suffix(path.suffix + ".tmp"), text + "\n"))

    try:
        for path, tmp, text in staged:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(text, encoding="utf-8")
    except OSError:
        for _, tmp, _ in staged:
            tmp.unlink(missing_ok=True)
        raise

    for path, tmp, _ in staged:
        os.replace(tmp, path)
    return [path for path, _, _ in staged]


def read_json(path: str | Path) -> object:
    """Load a JSON artifact, reading non-integer numbers as :class:`Decimal`.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    with open(path, encoding="utf-8") as f:
        return json.load(f, parse_float=Decimal)


# ---------------------------------------------------------------------------
# Summary printer
# ---------------------------------------------------------------------------


def print_summary(run_result: RunResult) -> None:
    """Print a per-year success/skip summary for one driver run to stdout."""
    print()
    print(f"== {run_result.dataset.title()} Summary ==")

    for result in run_result.results:
        status = "✅" if result.success else "⚠️ "
        print(f"  {status} FY{result.year}")
        for path in result.output_paths:
            print(f"       wrote {path.name}")
        for w in result.warnings:
            print(f"       {w}")

    print(f"Succeeded: {len(run_result.succeeded)} / {len(run_result.results)} years")

    if run_result.dropped_rows:
        print(f"Dropped rows: {run_result.dropped_rows} (column count mismatch)")

    if run_result.warnings:
        print()
        print(f"Warnings: {len(run_result.warnings)}")
        for w in run_result.warnings:
            print(f"  - {w}")

    print()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _json_default(value: object) -> object:
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _line_item_to_dict(item: LineItem) -> dict:
    data: dict = {
        "description": item.description,
        "approvedAmount": item.approved_amount,
        "actualAmount": item.actual_amount,
    }
    if item.metadata is not None:
        data["metadata"] = item.metadata
    return data


def _vendor_to_dict(vendor: VendorTotal) -> dict:
    return {"name": vendor.name, "amount": vendor.amount, "count": vendor.count}


def _vendor_from_dict(data: Mapping) -> VendorTotal:
    return VendorTotal(
        name=data["name"], amount=_decimal(data["amount"]), count=int(data["count"])
    )


def _transaction_to_dict(txn: TransactionRecord) -> dict:
    return {
        "description": txn.description,
        "amount": txn.amount,
        "vendor": txn.vendor,
        "date": txn.date,
        "paymentMethod": txn.payment_method,
        "invoiceNumber": txn.invoice_number,
        "fund": txn.fund,
        "expenseCategory": txn.expense_category,
    }


def _transaction_from_dict(data: Mapping) -> TransactionRecord:
    return TransactionRecord(
        description=data.get("description", ""),
        amount=_decimal(data.get("amount", 0)),
        vendor=data.get("vendor", ""),
        date=data.get("date", ""),
        payment_method=data.get("paymentMethod", ""),
        invoice_number=data.get("invoiceNumber", ""),
        fund=data.get("fund", ""),
        expense_category=data.get("expenseCategory", ""),
    )


def _summary_to_dict(summary: LinkedTransactionSummary) -> dict:
    return {
        "totalAmount": summary.total_amount,
        "transactionCount": summary.transaction_count,
        "vendorCount": summary.vendor_count,
        "topVendors": [_vendor_to_dict(v) for v in summary.top_vendors],
        "transactions": [_transaction_to_dict(t) for t in summary.transactions],
        "hasMore": summary.has_more,
    }


def _summary_from_dict(data: Mapping) -> LinkedTransactionSummary:
    return LinkedTransactionSummary(
        total_amount=_decimal(data["totalAmount"]),
        transaction_count=int(data["transactionCount"]),
        vendor_count=int(data["vendorCount"]),
        top_vendors=tuple(_vendor_from_dict(v) for v in data.get("topVendors", [])),
        transactions=tuple(_transaction_from_dict(t) for t in data.get("transactions", [])),
        has_more=bool(data["hasMore"]),
    )
