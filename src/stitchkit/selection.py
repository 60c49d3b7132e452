"""
Selection masks and clipboard operations.

A selection is an (H, W) boolean numpy mask with at least one True cell.
"No selection" is always ``None``, never an all-False mask.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .grid import EMPTY, PixelGrid

Mask = np.ndarray


@dataclass(frozen=True)
class Bounds:
    """Inclusive bounding box of a selection."""
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1


def normalize(mask: Optional[Mask]) -> Optional[Mask]:
    """The mask as a bool array, or None when nothing is selected."""
    if mask is None:
        return None
    mask = np.asarray(mask, dtype=bool)
    return mask if mask.any() else None


def get_bounds(mask: Optional[Mask]) -> Optional[Bounds]:
    """Tight bounds of the selected cells; None iff no cell is selected."""
    if mask is None:
        return None
    ys, xs = np.nonzero(mask)
    if len(xs) == 0:
        return None
    return Bounds(int(xs.min()), int(ys.min()), int(xs.max()), int(ys.max()))


def rectangle_mask(width: int, height: int, x1: int, y1: int, x2: int, y2: int) -> Optional[Mask]:
    """Inclusive rectangle between two corners, clipped to the grid."""
    min_x, max_x = sorted((x1, x2))
    min_y, max_y = sorted((y1, y2))
    min_x, min_y = max(min_x, 0), max(min_y, 0)
    max_x, max_y = min(max_x, width - 1), min(max_y, height - 1)
    if min_x > max_x or min_y > max_y:
        return None
    mask = np.zeros((height, width), dtype=bool)
    mask[min_y:max_y + 1, min_x:max_x + 1] = True
    return mask


class RectangleSelector:
    """Tracks an anchor and a live point while a rectangle is dragged."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.anchor: Optional[Tuple[int, int]] = None
        self.mask: Optional[Mask] = None

    def start(self, x: int, y: int) -> Optional[Mask]:
        self.anchor = (x, y)
        return self.update(x, y)

    def update(self, x: int, y: int) -> Optional[Mask]:
        if self.anchor is None:
            return None
        ax, ay = self.anchor
        self.mask = rectangle_mask(self.width, self.height, ax, ay, x, y)
        return self.mask

    def finish(self) -> Optional[Mask]:
        mask, self.anchor, self.mask = self.mask, None, None
        return mask


def select_all(width: int, height: int) -> Mask:
    return np.ones((height, width), dtype=bool)


def select_by_color(grid: PixelGrid, x: int, y: int) -> Optional[Mask]:
    """Magic wand: 4-connected cells sharing the seed's value (empty included)."""
    if not grid.in_bounds(x, y):
        return None

    cells = grid.cells
    target = cells[y, x]
    mask = np.zeros(cells.shape, dtype=bool)
    stack = [(x, y)]

    while stack:
        cx, cy = stack.pop()
        if cx < 0 or cx >= grid.width or cy < 0 or cy >= grid.height:
            continue
        if mask[cy, cx] or cells[cy, cx] != target:
            continue
        mask[cy, cx] = True
        stack.extend(((cx + 1, cy), (cx - 1, cy), (cx, cy + 1), (cx, cy - 1)))

    return mask


def shift_mask(mask: Mask, dx: int, dy: int) -> Optional[Mask]:
    """Translate a mask, dropping cells that leave the grid."""
    height, width = mask.shape
    shifted = np.zeros_like(mask)
    ys, xs = np.nonzero(mask)
    nx, ny = xs + dx, ys + dy
    keep = (nx >= 0) & (nx < width) & (ny >= 0) & (ny < height)
    shifted[ny[keep], nx[keep]] = True
    return normalize(shifted)


def move_selection(grid: PixelGrid, mask: Mask, dx: int, dy: int) -> Optional[Mask]:
    """
    Move the selected cells by (dx, dy) in place.

    Source cells are cleared, then every selected cell (empty ones included)
    is written at its new position; cells landing outside the grid are
    dropped. Returns the translated mask (None when nothing stays on the
    grid). A zero offset leaves grid and mask untouched.
    """
    if dx == 0 and dy == 0:
        return mask

    height, width = grid.shape
    ys, xs = np.nonzero(mask)
    values = grid.cells[ys, xs].copy()
    grid.cells[ys, xs] = EMPTY

    nx, ny = xs + dx, ys + dy
    keep = (nx >= 0) & (nx < width) & (ny >= 0) & (ny < height)
    grid.cells[ny[keep], nx[keep]] = values[keep]

    return shift_mask(mask, dx, dy)


class Clipboard:
    """Bounding-box snapshot of a copied selection; unselected cells are empty."""

    def __init__(self, data: PixelGrid):
        self.data = data

    @property
    def width(self) -> int:
        return self.data.width

    @property
    def height(self) -> int:
        return self.data.height

    def flip_horizontal(self):
        """Reverse every row in place."""
        self.data.cells[:] = np.fliplr(self.data.cells).copy()

    def flip_vertical(self):
        """Reverse row order in place."""
        self.data.cells[:] = np.flipud(self.data.cells).copy()


def copy_selection(grid: PixelGrid, mask: Optional[Mask]) -> Optional[Clipboard]:
    bounds = get_bounds(mask)
    if bounds is None:
        return None
    box = np.s_[bounds.min_y:bounds.max_y + 1, bounds.min_x:bounds.max_x + 1]
    data = np.where(mask[box], grid.cells[box], EMPTY)
    return Clipboard(PixelGrid(data))


def delete_selection(grid: PixelGrid, mask: Optional[Mask]) -> int:
    """Clear the selected cells in place; returns how many were stitched."""
    if mask is None:
        return 0
    cleared = int(np.count_nonzero(mask & (grid.cells != EMPTY)))
    grid.cells[mask] = EMPTY
    return cleared


def cut_selection(grid: PixelGrid, mask: Optional[Mask]) -> Optional[Clipboard]:
    """Copy, then clear the selected source cells."""
    clipboard = copy_selection(grid, mask)
    if clipboard is not None:
        delete_selection(grid, mask)
    return clipboard


def paste_clipboard(grid: PixelGrid, clipboard: Clipboard, x: int, y: int) -> int:
    """Overlay non-empty clipboard cells with the top-left at (x, y)."""
    return grid.overlay(clipboard.data, x, y)
