from __future__ import annotations

from typing import Iterable, List, Tuple

import numpy as np


Coordinate = Tuple[int, int]  # (row, col)


class Grid:
    """Immutable N x N occupancy matrix.

    Cells are ``True`` when occupied. The backing array is read-only; every
    mutation returns a new ``Grid`` so snapshots never alias each other.
    """

    __slots__ = ("_cells",)

    def __init__(self, cells: np.ndarray) -> None:
        arr = np.array(cells, dtype=np.bool_, copy=True)
        if arr.ndim != 2 or arr.shape[0] != arr.shape[1] or arr.shape[0] == 0:
            raise ValueError(f"Grid must be a non-empty square matrix, got shape {arr.shape}")
        arr.setflags(write=False)
        self._cells = arr

    @classmethod
    def empty(cls, size: int = 8) -> "Grid":
        return cls(np.zeros((int(size), int(size)), dtype=np.bool_))

    @classmethod
    def from_lists(cls, rows: Iterable[Iterable[object]]) -> "Grid":
        return cls(np.array([[bool(cell) for cell in row] for row in rows], dtype=np.bool_))

    @property
    def size(self) -> int:
        return int(self._cells.shape[0])

    @property
    def cells(self) -> np.ndarray:
        return self._cells

    def is_inside(self, row: int, col: int) -> bool:
        return 0 <= row < self.size and 0 <= col < self.size

    def is_occupied(self, row: int, col: int) -> bool:
        return bool(self._cells[row, col])

    def occupied_count(self) -> int:
        return int(np.count_nonzero(self._cells))

    def is_empty(self) -> bool:
        return not self._cells.any()

    def row_full(self, row: int) -> bool:
        return bool(self._cells[row, :].all())

    def col_full(self, col: int) -> bool:
        return bool(self._cells[:, col].all())

    def full_rows(self) -> List[int]:
        return [int(r) for r in np.flatnonzero(self._cells.all(axis=1))]

    def full_cols(self) -> List[int]:
        return [int(c) for c in np.flatnonzero(self._cells.all(axis=0))]

    def fill_percentage(self) -> float:
        """Occupied share of the grid in percent (0-100)."""
        return 100.0 * self.occupied_count() / float(self.size * self.size)

    def _with_value(self, cells: Iterable[Coordinate], value: bool) -> "Grid":
        arr = self._cells.copy()
        for row, col in cells:
            if not self.is_inside(row, col):
                raise IndexError(f"Cell ({row}, {col}) outside {self.size}x{self.size} grid")
            arr[row, col] = value
        return Grid(arr)

    def with_cells_set(self, cells: Iterable[Coordinate]) -> "Grid":
        return self._with_value(cells, True)

    def with_cells_cleared(self, cells: Iterable[Coordinate]) -> "Grid":
        return self._with_value(cells, False)

    def with_mask_cleared(self, mask: np.ndarray) -> "Grid":
        arr = self._cells.copy()
        arr[np.asarray(mask, dtype=np.bool_)] = False
        return Grid(arr)

    def to_lists(self) -> List[List[bool]]:
        return [[bool(cell) for cell in row] for row in self._cells]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return np.array_equal(self._cells, other._cells)

    def __hash__(self) -> int:
        return hash((self.size, self._cells.tobytes()))

    def __repr__(self) -> str:
        return f"Grid(size={self.size}, occupied={self.occupied_count()})"

    def render(self) -> str:
        return "\n".join("".join("█" if cell else "·" for cell in row) for row in self._cells)
