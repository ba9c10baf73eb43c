"""
Board dealing for the memory-match game.

Cells are built in pair order (cell i belongs to pair i // 2) and then shuffled,
so each value appears exactly twice and the spatial layout is independent of
pairing order.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from pairs.logic.settings import NUMBERS_THEME, GameSettings
from pairs.logic.state import Cell

if TYPE_CHECKING:
    from collections.abc import MutableSequence


def shuffle_in_place(items: MutableSequence[Cell], rng: random.Random) -> None:
    """Unbiased Fisher-Yates shuffle."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]


def cell_value(pair_index: int, theme: str, icon_count: int) -> int | str:
    """Return the face value for a pair under the given theme."""
    if theme == NUMBERS_THEME:
        return pair_index
    return f"icon-{pair_index % icon_count}"


def generate_board(
    grid_size: int,
    theme: str,
    *,
    settings: GameSettings | None = None,
    rng: random.Random | None = None,
) -> list[Cell]:
    """Deal grid_size * grid_size cells in pairs and shuffle their positions."""
    settings = settings or GameSettings()
    rng = rng or random.Random()  # noqa: S311
    cells = [
        Cell(id=index, value=cell_value(index // 2, theme, settings.icon_count)) for index in range(grid_size * grid_size)
    ]
    shuffle_in_place(cells, rng)
    return cells
