"""Hierarchical aggregation of flat budget rows.

Rows for a single fiscal year are grouped by an ordered list of
classification columns (the hierarchy levels) into a tree of
:class:`~treasury_tracker.models.BudgetCategory` nodes.  Grouping is a
recursive fold over a sum-typed key: a row either has a value for a level
(:class:`Classified`) or it does not (:data:`UNCLASSIFIED`, shown as
"Uncategorized").

Percentages are filled in by a separate pass, :func:`calculate_percentages`,
once every amount in the tree is final.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from treasury_tracker.colors import ColorAssigner
from treasury_tracker.models import BudgetCategory, LineItem, Row, parse_amount

UNCATEGORIZED_LABEL = "Uncategorized"

# Budget link keys cover at most four levels, matching the transaction index.
LINK_KEY_DEPTH = 4


@dataclass(frozen=True)
class Classified:
    value: str

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True)
class Unclassified:
    @property
    def label(self) -> str:
        return UNCATEGORIZED_LABEL


UNCLASSIFIED = Unclassified()

GroupKey = Union[Classified, Unclassified]


def group_key(row: Row, column: str) -> GroupKey:
    """Return the grouping key of *row* for one hierarchy level."""
    value = row.get(column) or ""
    if value:
        return Classified(value)
    return UNCLASSIFIED


def filter_by_year(rows: Iterable[Row], year_column: str, year: int | str) -> list[Row]:
    """Keep rows whose *year_column* value equals *year* (compared as text)."""
    wanted = str(year).strip()
    return [row for row in rows if (row.get(year_column) or "").strip() == wanted]


def total_amount(categories: Iterable[BudgetCategory]) -> Decimal:
    return sum((c.amount for c in categories), Decimal(0))


def build_hierarchy(
    rows: Sequence[Row],
    levels: Sequence[str],
    amount_column: str,
    colors: ColorAssigner,
    *,
    description_fields: Sequence[str] = (),
    link_keys: bool = False,
) -> list[BudgetCategory]:
    """Group *rows* into a tree of budget categories.

    Args:
        rows: Rows already filtered to one fiscal year.
        levels: Ordered classification columns, outermost first.
        amount_column: Column summed into each node's ``amount``.
        colors: Color source; consumed in node-creation order.
        description_fields: Columns joined with " - " to describe a row.
        link_keys: When True, every node within the first
            :data:`LINK_KEY_DEPTH` levels whose path has no
            "Uncategorized" bucket receives a lowercase pipe-joined
            ``link_key``.

    Returns:
        Top-level categories sorted by descending amount.  Percentages are
        left at zero; run :func:`calculate_percentages` afterwards.
    """
    if not levels:
        raise ValueError("at least one hierarchy level is required")
    builder = _TreeBuilder(levels, amount_column, colors, description_fields, link_keys)
    return builder.build(rows)


def calculate_percentages(
    categories: Sequence[BudgetCategory],
    total: Decimal | None = None,
) -> None:
    """Set each node's share of *total*, recursing with the node's own amount.

    *total* defaults to the sum of *categories*.  A zero or negative total
    yields zero percentages.
    """
    if total is None:
        total = total_amount(categories)

    for category in categories:
        category.percentage = float(category.amount / total * 100) if total > 0 else 0.0
        if category.subcategories:
            calculate_percentages(category.subcategories, category.amount)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


class _TreeBuilder:
    def __init__(
        self,
        levels: Sequence[str],
        amount_column: str,
        colors: ColorAssigner,
        description_fields: Sequence[str],
        link_keys: bool,
    ) -> None:
        self.levels = list(levels)
        self.amount_column = amount_column
        self.colors = colors
        self.description_fields = list(description_fields)
        self.link_keys = link_keys

    def build(self, rows: Sequence[Row]) -> list[BudgetCategory]:
        return self._fold(list(rows), depth=0, path=())

    def _fold(
        self,
        rows: list[Row],
        depth: int,
        path: tuple[GroupKey, ...],
    ) -> list[BudgetCategory]:
        # Dicts keep first-seen order, which breaks ties in the amount sort.
        groups: dict[GroupKey, list[Row]] = {}
        column = self.levels[depth]
        for row in rows:
            groups.setdefault(group_key(row, column), []).append(row)

        is_lowest = depth == len(self.levels) - 1
        result = [
            self._node(key, items, depth, path + (key,), is_lowest)
            for key, items in groups.items()
        ]
        result.sort(key=lambda c: c.amount, reverse=True)
        return result

    def _node(
        self,
        key: GroupKey,
        items: list[Row],
        depth: int,
        path: tuple[GroupKey, ...],
        is_lowest: bool,
    ) -> BudgetCategory:
        category = BudgetCategory(
            name=key.label,
            amount=sum((parse_amount(r.get(self.amount_column)) for r in items), Decimal(0)),
            color=self.colors.next(),
            items=len(items),
            description=self._describe(items),
            link_key=self._link_key(path),
        )

        if is_lowest:
            category.line_items = [
                LineItem(
                    description=item.get("description") or "No description",
                    approved_amount=parse_amount(item.get("approved_amount")),
                    actual_amount=parse_amount(item.get("actual_amount")),
                )
                for item in items
            ]
        else:
            category.subcategories = self._fold(items, depth + 1, path)

        return category

    def _describe(self, items: list[Row]) -> str | None:
        if not self.description_fields:
            return None
        descriptions: list[str] = []
        for item in items:
            text = " - ".join(item[f] for f in self.description_fields if item.get(f))
            if text and text not in descriptions:
                descriptions.append(text)
                if len(descriptions) == 3:
                    break
        return "; ".join(descriptions) or None

    def _link_key(self, path: tuple[GroupKey, ...]) -> str | None:
        if not self.link_keys or len(path) > LINK_KEY_DEPTH:
            return None
        if any(isinstance(k, Unclassified) for k in path):
            return None
        return "|".join(k.label.strip().lower() for k in path)
