"""
Pixel grid: the rectangular matrix of optional thread references behind every layer.
"""

import hashlib
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .errors import ValidationError

logger = logging.getLogger(__name__)

# Cell value of an empty (unstitched) cell
EMPTY = -1


class PixelGrid:
    """
    H x W matrix of thread ids, EMPTY for unstitched cells.

    Cells are stored in a numpy int32 array indexed ``cells[y, x]``. All
    coordinates in the public API are (x, y); out-of-bounds reads return
    None and out-of-bounds writes are ignored.
    """

    def __init__(self, cells: np.ndarray):
        cells = np.asarray(cells)
        if cells.ndim != 2 or cells.shape[0] <= 0 or cells.shape[1] <= 0:
            raise ValidationError(f"Grid must be a non-empty 2D matrix, got shape {cells.shape}")
        self.cells = cells.astype(np.int32, copy=True)

    @classmethod
    def empty(cls, width: int, height: int) -> "PixelGrid":
        """Create a grid with every cell empty."""
        if width <= 0 or height <= 0:
            raise ValidationError(f"Grid dimensions must be positive, got {width}x{height}")
        return cls(np.full((height, width), EMPTY, dtype=np.int32))

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[Optional[int]]]) -> "PixelGrid":
        """Create a grid from nested rows of ids / None; rows must share one length."""
        if not rows or not rows[0]:
            raise ValidationError("Grid must have at least one row and one column")
        width = len(rows[0])
        if any(len(row) != width for row in rows):
            raise ValidationError("All grid rows must have the same length")
        return cls(np.array(
            [[EMPTY if cell is None else int(cell) for cell in row] for row in rows],
            dtype=np.int32,
        ))

    @classmethod
    def from_flat(cls, flat: Sequence[Optional[int]], width: int, height: int) -> "PixelGrid":
        """Inverse of :meth:`to_flat` (row-major)."""
        if width <= 0 or height <= 0:
            raise ValidationError(f"Grid dimensions must be positive, got {width}x{height}")
        if len(flat) != width * height:
            raise ValidationError(f"Expected {width * height} cells, got {len(flat)}")
        values = np.array([EMPTY if cell is None else int(cell) for cell in flat], dtype=np.int32)
        return cls(values.reshape(height, width))

    @classmethod
    def from_codes(cls, rows: Sequence[Sequence[Optional[str]]], palette) -> "PixelGrid":
        """
        Create a grid from rows of thread codes (the stored format).

        Unknown codes become empty cells and are reported once per code.
        """
        unknown = set()
        id_rows = []
        for row in rows:
            id_row = []
            for code in row:
                if code is None:
                    id_row.append(None)
                    continue
                color = palette.get_color_by_code(str(code))
                if color is None:
                    unknown.add(str(code))
                    id_row.append(None)
                else:
                    id_row.append(color.id)
            id_rows.append(id_row)
        for code in sorted(unknown):
            logger.warning("Unknown thread code %r in stored grid, cell left empty", code)
        return cls.from_rows(id_rows)

    @property
    def width(self) -> int:
        return int(self.cells.shape[1])

    @property
    def height(self) -> int:
        return int(self.cells.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width)"""
        return self.height, self.width

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int) -> Optional[int]:
        """Thread id at (x, y), None when empty or outside the grid."""
        if not self.in_bounds(x, y):
            return None
        value = int(self.cells[y, x])
        return None if value == EMPTY else value

    def set(self, x: int, y: int, color_id: Optional[int]) -> bool:
        """Set one cell; returns False when (x, y) is outside the grid."""
        if not self.in_bounds(x, y):
            return False
        self.cells[y, x] = EMPTY if color_id is None else color_id
        return True

    def copy(self) -> "PixelGrid":
        return PixelGrid(self.cells)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PixelGrid):
            return NotImplemented
        return np.array_equal(self.cells, other.cells)

    def __repr__(self) -> str:
        return f"PixelGrid({self.width}x{self.height}, {self.stitch_count()} stitched)"

    def to_rows(self) -> List[List[Optional[int]]]:
        return [[None if v == EMPTY else int(v) for v in row] for row in self.cells]

    def to_flat(self) -> List[Optional[int]]:
        """Row-major flat list of ids / None; lossless with :meth:`from_flat`."""
        return [None if v == EMPTY else int(v) for v in self.cells.ravel()]

    def to_codes(self, palette) -> List[List[Optional[str]]]:
        """Rows of thread codes for storage."""
        rows = []
        for row in self.cells:
            out = []
            for value in row:
                color = palette.get(int(value)) if value != EMPTY else None
                out.append(color.code if color is not None else None)
            rows.append(out)
        return rows

    def is_empty(self) -> bool:
        return bool(np.all(self.cells == EMPTY))

    def used_color_ids(self) -> List[int]:
        """Distinct thread ids present, in ascending id order."""
        values = np.unique(self.cells)
        return [int(v) for v in values if v != EMPTY]

    def count_by_color(self) -> Dict[int, int]:
        """Number of stitched cells per thread id."""
        values, counts = np.unique(self.cells[self.cells != EMPTY], return_counts=True)
        return {int(v): int(c) for v, c in zip(values, counts)}

    def stitch_count(self) -> int:
        return int(np.count_nonzero(self.cells != EMPTY))

    def replace_color(self, old: Optional[int], new: Optional[int]) -> int:
        """Replace every occurrence of ``old`` with ``new`` in place; returns cells changed."""
        old_value = EMPTY if old is None else old
        new_value = EMPTY if new is None else new
        if old_value == new_value:
            return 0
        mask = self.cells == old_value
        self.cells[mask] = new_value
        return int(np.count_nonzero(mask))

    def sub_grid(self, min_x: int, min_y: int, max_x: int, max_y: int) -> "PixelGrid":
        """Copy of the inclusive rectangle (already inside the grid)."""
        return PixelGrid(self.cells[min_y:max_y + 1, min_x:max_x + 1])

    def overlay(self, other: "PixelGrid", x: int, y: int) -> int:
        """
        Stamp ``other`` with its top-left at (x, y).

        Empty cells of ``other`` leave the destination untouched and cells
        falling outside this grid are dropped. Returns cells written.
        """
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + other.width), min(self.height, y + other.height)
        if x0 >= x1 or y0 >= y1:
            return 0
        src = other.cells[y0 - y:y1 - y, x0 - x:x1 - x]
        dst = self.cells[y0:y1, x0:x1]
        mask = src != EMPTY
        dst[mask] = src[mask]
        return int(np.count_nonzero(mask))

    def mirrored_horizontal(self) -> "PixelGrid":
        return PixelGrid(np.fliplr(self.cells))

    def mirrored_vertical(self) -> "PixelGrid":
        return PixelGrid(np.flipud(self.cells))

    def rotated_90(self, clockwise: bool = True) -> "PixelGrid":
        """Rotated copy; width and height swap."""
        return PixelGrid(np.rot90(self.cells, -1 if clockwise else 1))

    def scaled(self, new_width: int, new_height: int) -> "PixelGrid":
        """Nearest-neighbour rescale (canvas resize)."""
        if new_width <= 0 or new_height <= 0:
            raise ValidationError(f"Grid dimensions must be positive, got {new_width}x{new_height}")
        src_y = (np.arange(new_height) * self.height) // new_height
        src_x = (np.arange(new_width) * self.width) // new_width
        return PixelGrid(self.cells[np.ix_(src_y, src_x)])

    def grid_hash(self) -> str:
        """Short SHA-256 fingerprint of dimensions and content."""
        hash_input = f"{self.width}x{self.height}|".encode() + self.cells.tobytes()
        return hashlib.sha256(hash_input).hexdigest()[:16]


def grid_from_ids(ids: Iterable[Iterable[Optional[int]]]) -> PixelGrid:
    """Shorthand used by callers building small grids by hand."""
    return PixelGrid.from_rows([list(row) for row in ids])
