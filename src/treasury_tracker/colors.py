"""Deterministic display-color cycling for tree nodes."""

from __future__ import annotations

from collections.abc import Sequence

DEFAULT_PALETTE = [
    "#1f77b4",
    "#ff7f0e",
    "#2ca02c",
    "#d62728",
    "#9467bd",
    "#8c564b",
    "#e377c2",
    "#7f7f7f",
    "#bcbd22",
    "#17becf",
]


class ColorAssigner:
    """Hand out palette colors in call order, wrapping at the end.

    Colors carry no meaning: two nodes sharing a color are unrelated.  Create
    one assigner per fiscal-year run so every year starts at the first color.
    """

    def __init__(self, palette: Sequence[str] | None = None) -> None:
        self._palette = list(palette if palette is not None else DEFAULT_PALETTE)
        if not self._palette:
            raise ValueError("color palette must contain at least one color")
        self._index = 0

    def next(self) -> str:
        color = self._palette[self._index % len(self._palette)]
        self._index += 1
        return color

    def reset(self) -> None:
        self._index = 0
