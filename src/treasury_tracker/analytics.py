"""Summary views over one fiscal year of transaction rows.

These feed the ``transactions-<year>.json`` document: a department/service
tree shaped like the budget tree, a monthly spending series, and a vendor
ranking.  The amount column and the two grouping columns come from the
transactions dataset config; the defaults match the city payments export.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from treasury_tracker.colors import ColorAssigner
from treasury_tracker.hierarchy import total_amount
from treasury_tracker.indexer import AMOUNT_COLUMN
from treasury_tracker.models import (
    BudgetCategory,
    LineItem,
    Row,
    parse_amount,
    parse_payment_date,
)

UNKNOWN_MONTH = "Unknown"
MAX_VENDORS = 100
MAX_SERVICE_LINE_ITEMS = 100

# Department column, then service column.
TRANSACTION_LEVELS = ("Priority", "Service")


def month_key(date_str: str | None) -> str:
    """Return ``YYYY-MM`` for a payment date, or "Unknown"."""
    parsed = parse_payment_date(date_str)
    if parsed is None:
        return UNKNOWN_MONTH
    return f"{parsed.year}-{parsed.month:02d}"


def monthly_spending(rows: Sequence[Row], amount_column: str = AMOUNT_COLUMN) -> list[dict]:
    """Total amount and count per payment month, sorted by month key."""
    months: dict[str, dict] = {}
    for row in rows:
        key = month_key(row.get("Payment Date"))
        bucket = months.setdefault(
            key, {"month": key, "amount": Decimal(0), "transactionCount": 0}
        )
        bucket["amount"] += parse_amount(row.get(amount_column))
        bucket["transactionCount"] += 1
    return [months[k] for k in sorted(months)]


def vendor_totals(
    rows: Sequence[Row],
    limit: int = MAX_VENDORS,
    amount_column: str = AMOUNT_COLUMN,
) -> list[dict]:
    """Vendors ranked by total spent, descending, capped at *limit*."""
    vendors: dict[str, dict] = {}
    for row in rows:
        name = row.get("Vendor") or "Unknown Vendor"
        entry = vendors.setdefault(
            name, {"name": name, "totalSpent": Decimal(0), "transactionCount": 0}
        )
        entry["totalSpent"] += parse_amount(row.get(amount_column))
        entry["transactionCount"] += 1
    ranked = sorted(vendors.values(), key=lambda v: v["totalSpent"], reverse=True)
    return ranked[:limit]


def build_transaction_hierarchy(
    rows: Sequence[Row],
    colors: ColorAssigner,
    levels: Sequence[str] = TRANSACTION_LEVELS,
    amount_column: str = AMOUNT_COLUMN,
) -> list[BudgetCategory]:
    """Group transactions into department -> service nodes.

    Department nodes carry transaction/vendor statistics in ``metadata``.
    Service nodes carry up to 100 of their most recent payments as line
    items.  Both levels are sorted by descending amount.

    Args:
        rows: One fiscal year of transaction rows.
        colors: Palette cycler, consumed in node-creation order.
        levels: The department column and the service column.
        amount_column: Column summed into node amounts.

    Raises:
        ValueError: If *levels* does not name exactly two columns.
    """
    if len(levels) != 2:
        raise ValueError(f"transaction hierarchy needs two levels, got {list(levels)!r}")
    dept_column, service_column = levels

    departments: dict[str, list[Row]] = {}
    for row in rows:
        departments.setdefault(row.get(dept_column) or "Unknown", []).append(row)

    categories: list[BudgetCategory] = []
    for name, dept_rows in departments.items():
        amount = _sum_amounts(dept_rows, amount_column)
        count = len(dept_rows)
        category = BudgetCategory(
            name=name,
            amount=amount,
            color=colors.next(),
            items=count,
            metadata={
                "transactionCount": count,
                "vendorCount": len({r["Vendor"] for r in dept_rows if r.get("Vendor")}),
                "avgTransaction": amount / count if count else Decimal(0),
            },
        )

        services: dict[str, list[Row]] = {}
        for row in dept_rows:
            services.setdefault(row.get(service_column) or "General", []).append(row)

        category.subcategories = sorted(
            (
                _service_node(svc, svc_rows, colors, amount_column)
                for svc, svc_rows in services.items()
            ),
            key=lambda c: c.amount,
            reverse=True,
        )
        categories.append(category)

    categories.sort(key=lambda c: c.amount, reverse=True)
    return categories


def summarize_transactions(categories: Sequence[BudgetCategory]) -> dict:
    """Totals for the transactions document metadata block."""
    amount = total_amount(categories)
    count = sum(c.items for c in categories)
    return {
        "totalSpending": amount,
        "totalTransactions": count,
        "avgTransaction": amount / count if count else Decimal(0),
    }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _sum_amounts(rows: Sequence[Row], amount_column: str) -> Decimal:
    return sum((parse_amount(r.get(amount_column)) for r in rows), Decimal(0))


def _recent_first(rows: Sequence[Row]) -> list[Row]:
    dated = [(parse_payment_date(r.get("Payment Date")), r) for r in rows]
    known = sorted((p for p in dated if p[0] is not None), key=lambda p: p[0], reverse=True)
    return [r for _, r in known] + [r for d, r in dated if d is None]


def _service_node(
    name: str,
    rows: list[Row],
    colors: ColorAssigner,
    amount_column: str,
) -> BudgetCategory:
    recent = _recent_first(rows)[:MAX_SERVICE_LINE_ITEMS]
    return BudgetCategory(
        name=name,
        amount=_sum_amounts(rows, amount_column),
        color=colors.next(),
        items=len(rows),
        line_items=[
            LineItem(
                description=(
                    f"{tx.get('Description') or 'No description'} - "
                    f"{tx.get('Vendor') or 'Unknown vendor'}"
                ),
                approved_amount=parse_amount(tx.get(amount_column)),
                actual_amount=parse_amount(tx.get(amount_column)),
                metadata={
                    "vendor": tx.get("Vendor", ""),
                    "date": tx.get("Payment Date", ""),
                    "paymentMethod": tx.get("Payment_Method", ""),
                    "invoiceNumber": tx.get("InvoiceNumber", ""),
                    "fund": tx.get("Fund", ""),
                    "expenseCategory": tx.get("Expense Category", ""),
                },
            )
            for tx in recent
        ],
    )
