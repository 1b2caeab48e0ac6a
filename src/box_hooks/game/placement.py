from __future__ import annotations

from typing import Iterator, Optional

from .grid import Coordinate, Grid
from .pieces import BlockShape


def can_place(grid: Grid, shape: BlockShape, origin_row: int, origin_col: int) -> bool:
    """Check if ``shape`` fits at (origin_row, origin_col).

    Any occupied shape cell that lands outside the grid or on an occupied
    cell rejects the whole placement.
    """
    size = grid.size
    for dr, dc in shape.offsets():
        r, c = origin_row + dr, origin_col + dc
        if not (0 <= r < size and 0 <= c < size):
            return False
        if grid.is_occupied(r, c):
            return False
    return True


def legal_origins(grid: Grid, shape: BlockShape) -> Iterator[Coordinate]:
    """Yield every legal origin in row-major order."""
    for row in range(grid.size):
        for col in range(grid.size):
            if can_place(grid, shape, row, col):
                yield row, col


def first_legal_origin(grid: Grid, shape: BlockShape) -> Optional[Coordinate]:
    return next(legal_origins(grid, shape), None)


def has_any_legal_placement(grid: Grid, shape: BlockShape) -> bool:
    return first_legal_origin(grid, shape) is not None


def count_legal_placements(grid: Grid, shape: BlockShape) -> int:
    return sum(1 for _ in legal_origins(grid, shape))
