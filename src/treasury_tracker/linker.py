"""Budget-to-transaction linking.

Walks a finalized budget tree and, for every node whose ``link_key`` is
present in the transaction index, attaches a
:class:`~treasury_tracker.models.LinkedTransactionSummary`.  Only the first
:data:`PREVIEW_TRANSACTION_COUNT` transactions are embedded to bound the
size of the linked budget file; ``has_more`` tells the viewer to fetch the
index file for the rest.

A node without a key, or with a key missing from the index, is simply left
unlinked -- no transactions were recorded at that granularity.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from treasury_tracker.export import category_from_dict, category_to_dict
from treasury_tracker.models import (
    BudgetCategory,
    LinkedTransactionSummary,
    TransactionIndexEntry,
)

PREVIEW_TRANSACTION_COUNT = 20


@dataclass
class LinkStats:
    linked_categories: int = 0
    linked_transactions: int = 0


def summarize(
    entry: TransactionIndexEntry,
    preview: int = PREVIEW_TRANSACTION_COUNT,
) -> LinkedTransactionSummary:
    """Copy the aggregates of *entry* with a transaction preview of *preview* items."""
    return LinkedTransactionSummary(
        total_amount=entry.total_amount,
        transaction_count=entry.transaction_count,
        vendor_count=entry.vendor_count,
        top_vendors=entry.top_vendors,
        transactions=entry.transactions[:preview],
        has_more=len(entry.transactions) > preview,
    )


def link_categories(
    categories: Iterable[BudgetCategory],
    index: Mapping[str, TransactionIndexEntry],
    preview: int = PREVIEW_TRANSACTION_COUNT,
) -> LinkStats:
    """Attach linked transaction summaries throughout a budget tree.

    The tree is updated in place: ``linked_transactions`` is the only field
    written.  Subcategories are always visited, whether or not their parent
    linked.

    Returns:
        Counts of linked nodes and of the transactions they reference.
    """
    stats = LinkStats()
    for category in categories:
        _link(category, index, preview, stats)
    return stats


def link_budget_document(
    document: Mapping,
    index: Mapping[str, TransactionIndexEntry],
    preview: int = PREVIEW_TRANSACTION_COUNT,
) -> tuple[dict, LinkStats]:
    """Link a budget document as loaded from ``budget-<year>.json``.

    The input document is not modified.  Its ``metadata`` and any other
    top-level keys are carried over unchanged into the returned document.

    Returns:
        The linked document and the link counts.

    Raises:
        KeyError: If the document has no ``categories`` list or a node has no
            ``name``.
    """
    categories = [category_from_dict(c) for c in document["categories"]]
    stats = link_categories(categories, index, preview)
    linked = dict(document)
    linked["categories"] = [category_to_dict(c) for c in categories]
    return linked, stats


def _link(
    category: BudgetCategory,
    index: Mapping[str, TransactionIndexEntry],
    preview: int,
    stats: LinkStats,
) -> None:
    entry = index.get(category.link_key) if category.link_key else None
    if entry is not None:
        category.linked_transactions = summarize(entry, preview)
        stats.linked_categories += 1
        stats.linked_transactions += entry.transaction_count

    for child in category.subcategories or ():
        _link(child, index, preview, stats)
