"""Composite-key transaction index.

Every transaction row contributes to a chain of link keys of increasing
specificity -- ``priority``, ``priority|service``,
``priority|service|fund``, ``priority|service|fund|expense category`` --
stopping at the first empty field.  The index maps each key to the
aggregate of every transaction that can form it, so a budget node at any
depth can be joined to the payments beneath it.

Index construction is an explicit fold:

1. :func:`accumulate` -- one pass over rows into partial buckets.
2. :func:`merge_buckets` -- combine partial bucket maps built from disjoint
   row partitions (associative, so partitions can be built in parallel).
3. :func:`finalize_index` -- sort transactions and rank vendors.

:func:`build_transaction_index` composes the three for the common case.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from treasury_tracker.models import (
    Row,
    TransactionIndexEntry,
    TransactionRecord,
    VendorTotal,
    parse_amount,
    parse_payment_date,
)

LINK_FIELDS = ("Priority", "Service", "Fund", "Expense Category")

AMOUNT_COLUMN = "Amount"
UNKNOWN_VENDOR = "Unknown"
TOP_VENDOR_COUNT = 5


@dataclass
class IndexBucket:
    """Running aggregate for one link key while rows are folded in.

    Vendor totals are kept per bucket as rows arrive so that finalization
    never rescans the transaction list.
    """

    transactions: list[TransactionRecord] = field(default_factory=list)
    total_amount: Decimal = Decimal(0)
    vendors: set[str] = field(default_factory=set)
    # Keyed by vendor name in first-seen order; "Unknown" is never counted.
    vendor_amounts: defaultdict[str, Decimal] = field(default_factory=lambda: defaultdict(Decimal))
    vendor_counts: Counter[str] = field(default_factory=Counter)

    def add(self, txn: TransactionRecord, raw_vendor: str) -> None:
        self.transactions.append(txn)
        self.total_amount += txn.amount
        if raw_vendor:
            self.vendors.add(raw_vendor)
        if txn.vendor and txn.vendor != UNKNOWN_VENDOR:
            self.vendor_amounts[txn.vendor] += txn.amount
            self.vendor_counts[txn.vendor] += 1

    def merged(self, other: IndexBucket) -> IndexBucket:
        result = IndexBucket(
            transactions=self.transactions + other.transactions,
            total_amount=self.total_amount + other.total_amount,
            vendors=self.vendors | other.vendors,
            vendor_amounts=defaultdict(Decimal, self.vendor_amounts),
            vendor_counts=Counter(self.vendor_counts),
        )
        for name, amount in other.vendor_amounts.items():
            result.vendor_amounts[name] += amount
        result.vendor_counts.update(other.vendor_counts)
        return result


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def generate_link_keys(row: Row, fields: Sequence[str] = LINK_FIELDS) -> list[str]:
    """Build the prefix chain of link keys for *row*.

    Values are trimmed and lowercased.  The chain stops at the first empty
    field, so a row without a fund yields only the one- and two-field keys.

    Returns:
        Between zero and ``len(fields)`` keys; each key is a strict
        pipe-delimited prefix of the next.
    """
    keys: list[str] = []
    parts: list[str] = []
    for name in fields:
        value = (row.get(name) or "").strip().lower()
        if not value:
            break
        parts.append(value)
        keys.append("|".join(parts))
    return keys


def transaction_from_row(row: Row, amount_column: str = AMOUNT_COLUMN) -> TransactionRecord:
    """Derive the immutable transaction record for one row."""
    return TransactionRecord(
        description=row.get("Description") or "No description",
        amount=parse_amount(row.get(amount_column)),
        vendor=row.get("Vendor") or UNKNOWN_VENDOR,
        date=row.get("Payment Date") or "",
        payment_method=row.get("Payment_Method") or "",
        invoice_number=row.get("InvoiceNumber") or "",
        fund=row.get("Fund") or "",
        expense_category=row.get("Expense Category") or "",
    )


def accumulate(
    rows: Iterable[Row],
    fields: Sequence[str] = LINK_FIELDS,
    amount_column: str = AMOUNT_COLUMN,
) -> dict[str, IndexBucket]:
    """Fold *rows* into a fresh map of link key to :class:`IndexBucket`."""
    buckets: dict[str, IndexBucket] = {}
    for row in rows:
        keys = generate_link_keys(row, fields)
        if not keys:
            continue
        txn = transaction_from_row(row, amount_column)
        raw_vendor = row.get("Vendor") or ""
        for key in keys:
            buckets.setdefault(key, IndexBucket()).add(txn, raw_vendor)
    return buckets


def merge_buckets(*partials: Mapping[str, IndexBucket]) -> dict[str, IndexBucket]:
    """Merge partial bucket maps; transaction order follows argument order."""
    merged: dict[str, IndexBucket] = {}
    for partial in partials:
        for key, bucket in partial.items():
            if key in merged:
                merged[key] = merged[key].merged(bucket)
            else:
                merged[key] = bucket.merged(IndexBucket())
    return merged


def finalize_index(buckets: Mapping[str, IndexBucket]) -> dict[str, TransactionIndexEntry]:
    """Turn accumulated buckets into read-only index entries."""
    return {key: _finalize_bucket(bucket) for key, bucket in buckets.items()}


def build_transaction_index(
    rows: Iterable[Row],
    fields: Sequence[str] = LINK_FIELDS,
    amount_column: str = AMOUNT_COLUMN,
) -> dict[str, TransactionIndexEntry]:
    """Build the full link-key index for one fiscal year of transaction rows."""
    return finalize_index(accumulate(rows, fields, amount_column))


def sort_by_date_desc(transactions: Iterable[TransactionRecord]) -> list[TransactionRecord]:
    """Most recent first; unparseable dates keep their order at the end."""
    dated: list[tuple] = []
    undated: list[TransactionRecord] = []
    for txn in transactions:
        parsed = parse_payment_date(txn.date)
        if parsed is None:
            undated.append(txn)
        else:
            dated.append((parsed, txn))
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [txn for _, txn in dated] + undated


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _finalize_bucket(bucket: IndexBucket) -> TransactionIndexEntry:
    ranked = sorted(
        (VendorTotal(name=name, amount=amount, count=bucket.vendor_counts[name])
         for name, amount in bucket.vendor_amounts.items()),
        key=lambda v: v.amount,
        reverse=True,
    )
    return TransactionIndexEntry(
        total_amount=bucket.total_amount,
        transaction_count=len(bucket.transactions),
        vendor_count=len(bucket.vendors),
        top_vendors=tuple(ranked[:TOP_VENDOR_COUNT]),
        transactions=tuple(sort_by_date_desc(bucket.transactions)),
    )
