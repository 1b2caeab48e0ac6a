from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from .grid import Grid


@dataclass(frozen=True)
class ClearResult:
    rows: Tuple[int, ...] = ()
    cols: Tuple[int, ...] = ()
    cells_cleared: int = 0

    @property
    def rows_cleared(self) -> int:
        return len(self.rows)

    @property
    def cols_cleared(self) -> int:
        return len(self.cols)

    @property
    def total_lines(self) -> int:
        return self.rows_cleared + self.cols_cleared

    @property
    def is_multi_clear(self) -> bool:
        return self.total_lines > 1


NO_CLEAR = ClearResult()


def scan_full_lines(grid: Grid) -> Tuple[List[int], List[int]]:
    return grid.full_rows(), grid.full_cols()


def clear_lines(grid: Grid) -> Tuple[Grid, ClearResult]:
    """Clear every full row and column found in a single scan.

    Rows and columns are collected before anything is cleared, so a move
    completing a row and a column clears both; intersection cells are only
    counted once.
    """
    rows, cols = scan_full_lines(grid)
    if not rows and not cols:
        return grid, NO_CLEAR
    mask = np.zeros((grid.size, grid.size), dtype=np.bool_)
    mask[rows, :] = True
    mask[:, cols] = True
    cells_cleared = int(np.count_nonzero(mask & grid.cells))
    return grid.with_mask_cleared(mask), ClearResult(tuple(rows), tuple(cols), cells_cleared)
