"""Core data models for Treasury Tracker.

This module defines the dataclasses passed between pipeline stages. It has
zero internal imports -- everything depends on it, but it depends on nothing
within the package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

Row = dict[str, str]

# Payment-date layouts seen in city exports, tried in order.
DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M:%S",
)


def parse_amount(value: str | None) -> Decimal:
    """Parse a currency cell, returning ``Decimal(0)`` for anything unusable.

    Leading/trailing whitespace, a ``$`` sign, and US thousands separators
    are removed before parsing.  Empty, non-numeric, and non-finite values
    (``NaN``, ``Infinity``) all coerce to zero.
    """
    if not value:
        return Decimal(0)
    cleaned = value.strip().replace("$", "").replace(",", "")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return Decimal(0)
    if not amount.is_finite():
        return Decimal(0)
    return amount


def parse_payment_date(value: str | None) -> datetime | None:
    """Parse a payment date in any of :data:`DATE_FORMATS`.

    Fractional seconds, a trailing ``Z``, and a ``+00``-style UTC offset are
    ignored.  Returns None when nothing matches.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1]
    if len(text) > 19 and text[19] in "+-.":
        text = text[:19]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


@dataclass
class LineItem:
    """A raw budget row retained at the deepest hierarchy level."""

    description: str
    approved_amount: Decimal
    actual_amount: Decimal
    metadata: dict[str, str] | None = None


@dataclass(frozen=True)
class TransactionRecord:
    """A single payment, derived verbatim from one transaction row.

    Attributes:
        description: Payment description, or "No description".
        amount: Payment amount; unparseable amounts are zero.
        vendor: Payee name, or "Unknown" when the row has none.
        date: The raw payment date string (may be empty).
        payment_method: Check, ACH, card, etc.
        invoice_number: Vendor invoice reference.
        fund: Fund the payment was drawn from.
        expense_category: Expense classification of the payment.
    """

    description: str
    amount: Decimal
    vendor: str
    date: str
    payment_method: str = ""
    invoice_number: str = ""
    fund: str = ""
    expense_category: str = ""


@dataclass(frozen=True)
class VendorTotal:
    """Aggregate spending for one vendor inside an index entry."""

    name: str
    amount: Decimal
    count: int


@dataclass(frozen=True)
class TransactionIndexEntry:
    """Finalized aggregate for one link key.

    Attributes:
        total_amount: Sum of all transaction amounts under the key.
        transaction_count: Number of transactions under the key.
        vendor_count: Number of distinct non-empty vendor names.
        top_vendors: Up to five vendors by total amount, descending.
        transactions: Every transaction, most recent first.
    """

    total_amount: Decimal
    transaction_count: int
    vendor_count: int
    top_vendors: tuple[VendorTotal, ...]
    transactions: tuple[TransactionRecord, ...]


@dataclass(frozen=True)
class LinkedTransactionSummary:
    """Index entry embedded into a budget node, with a truncated preview."""

    total_amount: Decimal
    transaction_count: int
    vendor_count: int
    top_vendors: tuple[VendorTotal, ...]
    transactions: tuple[TransactionRecord, ...]
    has_more: bool


@dataclass
class BudgetCategory:
    """A node of the budget tree.

    For any node with subcategories, ``amount`` equals the sum of the child
    amounts and the children's percentages sum to 100. Nodes are built once
    per fiscal year; only ``linked_transactions`` is attached later.

    Attributes:
        name: Classification value, or "Uncategorized".
        amount: Sum of the amount column over every row under this node.
        percentage: Share of the parent's amount (or of the grand total for
            top-level nodes).
        color: Display color from the palette, in creation order.
        items: Number of raw rows aggregated under this node.
        subcategories: Children ordered by descending amount, or None at
            the deepest level.
        line_items: Raw rows, only at the deepest configured level.
        description: Up to three distinct row descriptions.
        link_key: Lowercase pipe-joined path used to join transactions.
        linked_transactions: Transaction preview attached by the linker.
        metadata: Dataset-specific extras (transaction trees only).
    """

    name: str
    amount: Decimal
    percentage: float = 0.0
    color: str = ""
    items: int = 0
    subcategories: list[BudgetCategory] | None = None
    line_items: list[LineItem] | None = None
    description: str | None = None
    link_key: str | None = None
    linked_transactions: LinkedTransactionSummary | None = None
    metadata: dict | None = None


@dataclass
class CsvTable:
    """Return type of the CSV reader.

    Attributes:
        headers: Column names from the header line.
        rows: One mapping per well-formed data line, in file order.
        dropped_rows: Data lines discarded because their field count did
            not match the header.
    """

    headers: list[str] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)
    dropped_rows: int = 0


@dataclass
class YearResult:
    """Outcome of one fiscal year inside a driver run."""

    year: int
    success: bool
    output_paths: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class RunResult:
    """Outcome of one driver over every configured fiscal year.

    Attributes:
        dataset: Human-readable label, e.g. "budget" or "linking".
        results: One entry per configured year, in config order.
        dropped_rows: Malformed rows discarded while reading the input.
        warnings: Run-level warnings not tied to a single year.
    """

    dataset: str
    results: list[YearResult] = field(default_factory=list)
    dropped_rows: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> list[int]:
        return [r.year for r in self.results if r.success]

    @property
    def failed(self) -> list[int]:
        return [r.year for r in self.results if not r.success]


@dataclass
class DatasetConfig:
    """Configuration for one input dataset (operating budget or transactions).

    Attributes:
        input_file: CSV path relative to the project root.
        output_file: Output name pattern containing ``{year}``.
        year_column: Column holding the fiscal year.
        hierarchy: Ordered classification columns used to nest rows.
        amount_column: Column summed into node amounts.
        description_fields: Columns joined into node descriptions.
        link_keys: Whether budget nodes get link keys.
        link_fields: Ordered classification columns used for link keys
            (transactions only).
        color_palette: Display colors cycled in node-creation order.
    """

    input_file: str
    output_file: str
    year_column: str
    hierarchy: list[str] = field(default_factory=list)
    amount_column: str = "amount"
    description_fields: list[str] = field(default_factory=list)
    link_keys: bool = False
    link_fields: list[str] = field(default_factory=list)
    color_palette: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    """Top-level application configuration loaded from config.toml."""

    city_name: str
    fiscal_years: list[int]
    operating: DatasetConfig
    transactions: DatasetConfig
    population: int = 0
    output_dir: str = "output"
