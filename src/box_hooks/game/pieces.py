from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np


Offset = Tuple[int, int]  # (dr, dc)


class BlockShape:
    """Immutable bitmask piece with a stable id and generation weight."""

    __slots__ = ("shape_id", "mask", "weight")

    def __init__(self, shape_id: str, mask: Union[np.ndarray, Sequence[Sequence[int]]], weight: float = 1.0) -> None:
        arr = np.array(mask, dtype=np.int8, copy=True)
        if arr.ndim != 2 or arr.size == 0:
            raise ValueError(f"Shape {shape_id!r} must be a non-empty 2D mask")
        if not np.isin(arr, (0, 1)).all():
            raise ValueError(f"Shape {shape_id!r} mask may only contain 0/1")
        if not arr.any():
            raise ValueError(f"Shape {shape_id!r} has no occupied cells")
        if weight <= 0:
            raise ValueError(f"Shape {shape_id!r} weight must be positive")
        arr.setflags(write=False)
        self.shape_id = str(shape_id)
        self.mask = arr
        self.weight = float(weight)

    @property
    def height(self) -> int:
        return int(self.mask.shape[0])

    @property
    def width(self) -> int:
        return int(self.mask.shape[1])

    @property
    def cell_count(self) -> int:
        return int(np.count_nonzero(self.mask))

    def offsets(self) -> List[Offset]:
        return [(int(dr), int(dc)) for dr, dc in zip(*np.nonzero(self.mask))]

    def cells_at(self, origin_row: int, origin_col: int) -> List[Tuple[int, int]]:
        return [(origin_row + dr, origin_col + dc) for dr, dc in self.offsets()]

    # Pure transforms; the generator never applies these on its own
    def rotate90(self) -> "BlockShape":
        return BlockShape(f"{self.shape_id}:r90", np.rot90(self.mask, k=-1), self.weight)

    def flip_horizontal(self) -> "BlockShape":
        return BlockShape(f"{self.shape_id}:fh", np.fliplr(self.mask), self.weight)

    def flip_vertical(self) -> "BlockShape":
        return BlockShape(f"{self.shape_id}:fv", np.flipud(self.mask), self.weight)

    def same_cells(self, other: "BlockShape") -> bool:
        return np.array_equal(self.mask, other.mask)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlockShape):
            return NotImplemented
        return self.shape_id == other.shape_id and self.weight == other.weight and self.same_cells(other)

    def __hash__(self) -> int:
        return hash((self.shape_id, self.mask.shape, self.mask.tobytes()))

    def __repr__(self) -> str:
        return f"BlockShape({self.shape_id!r}, {self.height}x{self.width}, cells={self.cell_count})"


# (mask, weight); weights sum to 1.0
BASE_SHAPES: Dict[str, Tuple[List[List[int]], float]] = {
    "single": ([[1]], 0.06),
    "line2_h": ([[1, 1]], 0.08),
    "line2_v": ([[1], [1]], 0.08),
    "line3_h": ([[1, 1, 1]], 0.07),
    "line3_v": ([[1], [1], [1]], 0.07),
    "line4_h": ([[1, 1, 1, 1]], 0.05),
    "line4_v": ([[1], [1], [1], [1]], 0.05),
    "square": ([[1, 1], [1, 1]], 0.08),
    "t": ([[1, 1, 1], [0, 1, 0]], 0.07),
    "l": ([[1, 0], [1, 0], [1, 1]], 0.07),
    "j": ([[0, 1], [0, 1], [1, 1]], 0.07),
    "s": ([[0, 1, 1], [1, 1, 0]], 0.06),
    "z": ([[1, 1, 0], [0, 1, 1]], 0.06),
    "plus": ([[0, 1, 0], [1, 1, 1], [0, 1, 0]], 0.04),
    "corner": ([[1, 1], [1, 0]], 0.06),
    "big_corner": ([[1, 1, 1], [1, 0, 0], [1, 0, 0]], 0.03),
}


class ShapeCatalog:
    """Static, ordered set of shapes with normalized sampling probabilities."""

    def __init__(self, shapes: Iterable[BlockShape]) -> None:
        self._shapes: Tuple[BlockShape, ...] = tuple(shapes)
        if not self._shapes:
            raise ValueError("Shape catalog cannot be empty")
        self._index: Dict[str, int] = {}
        for i, shape in enumerate(self._shapes):
            if shape.shape_id in self._index:
                raise ValueError(f"Duplicate shape id {shape.shape_id!r}")
            self._index[shape.shape_id] = i
        weights = np.array([s.weight for s in self._shapes], dtype=np.float64)
        probs = weights / weights.sum()
        probs.setflags(write=False)
        self._probabilities = probs

    @classmethod
    def from_mapping(cls, table: Mapping[str, Tuple[Sequence[Sequence[int]], float]]) -> "ShapeCatalog":
        return cls(BlockShape(shape_id, mask, weight) for shape_id, (mask, weight) in table.items())

    @property
    def shapes(self) -> Tuple[BlockShape, ...]:
        return self._shapes

    @property
    def probabilities(self) -> np.ndarray:
        return self._probabilities

    def get(self, shape_id: str) -> BlockShape:
        try:
            return self._shapes[self._index[shape_id]]
        except KeyError:
            raise KeyError(f"Unknown shape id {shape_id!r}") from None

    def index_of(self, shape_id: str) -> int:
        return self._index[shape_id]

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self._index

    def __len__(self) -> int:
        return len(self._shapes)

    def __iter__(self) -> Iterator[BlockShape]:
        return iter(self._shapes)


DEFAULT_CATALOG = ShapeCatalog.from_mapping(BASE_SHAPES)


@dataclass(frozen=True)
class ActiveBlock:
    """A shape instance offered to the player; not on the grid until placed."""

    id: str
    shape_id: str
    color_index: int = 0
    is_locked: bool = False


class BlockGenerator:
    """Independent weighted draws from a catalog (repeats allowed)."""

    def __init__(
        self,
        catalog: Optional[ShapeCatalog] = None,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        color_count: int = 6,
    ) -> None:
        self.catalog = catalog or DEFAULT_CATALOG
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.color_count = int(color_count)

    def reseed(self, seed: Optional[int]) -> None:
        self.rng = np.random.default_rng(seed)

    def next(self, count: int) -> List[BlockShape]:
        if count <= 0:
            return []
        idxs = self.rng.choice(len(self.catalog), size=int(count), p=self.catalog.probabilities)
        return [self.catalog.shapes[int(i)] for i in idxs]

    def spawn(self, count: int, first_serial: int) -> Tuple[ActiveBlock, ...]:
        """Draw ``count`` shapes and wrap them as queue blocks ``b<serial>``."""
        blocks: List[ActiveBlock] = []
        for offset, shape in enumerate(self.next(count)):
            color = int(self.rng.integers(0, self.color_count)) if self.color_count > 0 else 0
            blocks.append(ActiveBlock(id=f"b{first_serial + offset}", shape_id=shape.shape_id, color_index=color))
        return tuple(blocks)
