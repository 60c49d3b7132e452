"""
Drawing primitives on a single PixelGrid.

Everything here mutates the grid in place and clips to its bounds; points
outside the grid are ignored. ``color`` is a thread id or None to erase.
"""

from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .grid import EMPTY, PixelGrid
from .selection import Mask, get_bounds, normalize

Point = Tuple[int, int]


def _value(color: Optional[int]) -> int:
    return EMPTY if color is None else int(color)


def flood_fill(grid: PixelGrid, x: int, y: int, color: Optional[int]) -> int:
    """
    4-connected fill from (x, y) using an explicit stack.

    Returns the number of cells changed; filling with the seed's own color
    changes nothing.
    """
    if not grid.in_bounds(x, y):
        return 0

    cells = grid.cells
    target = cells[y, x]
    new_value = _value(color)
    if target == new_value:
        return 0

    changed = 0
    stack = [(x, y)]
    while stack:
        cx, cy = stack.pop()
        if cx < 0 or cx >= grid.width or cy < 0 or cy >= grid.height:
            continue
        if cells[cy, cx] != target:
            continue
        cells[cy, cx] = new_value
        changed += 1
        stack.extend(((cx + 1, cy), (cx - 1, cy), (cx, cy + 1), (cx, cy - 1)))
    return changed


def bresenham_line(x0: int, y0: int, x1: int, y1: int) -> List[Point]:
    """Cells on the line between two points, both endpoints included."""
    points = []
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy

    while True:
        points.append((x0, y0))
        if x0 == x1 and y0 == y1:
            break
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x0 += sx
        if e2 <= dx:
            err += dx
            y0 += sy
    return points


def draw_line(grid: PixelGrid, x0: int, y0: int, x1: int, y1: int, color: Optional[int]) -> int:
    count = 0
    for px, py in bresenham_line(x0, y0, x1, y1):
        if grid.set(px, py, color):
            count += 1
    return count


def stamp_brush(grid: PixelGrid, x: int, y: int, color: Optional[int], size: int = 1):
    """Paint a square of radius ``size // 2`` centred on (x, y)."""
    radius = max(size, 1) // 2
    x0, x1 = max(x - radius, 0), min(x + radius, grid.width - 1)
    y0, y1 = max(y - radius, 0), min(y + radius, grid.height - 1)
    if x0 > x1 or y0 > y1:
        return
    grid.cells[y0:y1 + 1, x0:x1 + 1] = _value(color)


def brush_stroke(grid: PixelGrid, points: Sequence[Point], color: Optional[int], size: int = 1):
    """
    Stamp the brush along the Bresenham path through ``points``.

    Consecutive points may be far apart (fast pointer motion); the stroke is
    still continuous.
    """
    if not points:
        return
    if len(points) == 1:
        stamp_brush(grid, points[0][0], points[0][1], color, size)
        return
    for (ax, ay), (bx, by) in zip(points, points[1:]):
        for px, py in bresenham_line(ax, ay, bx, by):
            stamp_brush(grid, px, py, color, size)


def draw_rectangle(grid: PixelGrid, x1: int, y1: int, x2: int, y2: int,
                   color: Optional[int], filled: bool = False):
    """Filled or outlined rectangle between two arbitrary corners."""
    min_x, max_x = sorted((x1, x2))
    min_y, max_y = sorted((y1, y2))
    cx0, cx1 = max(min_x, 0), min(max_x, grid.width - 1)
    cy0, cy1 = max(min_y, 0), min(max_y, grid.height - 1)
    if cx0 > cx1 or cy0 > cy1:
        return

    value = _value(color)
    if filled:
        grid.cells[cy0:cy1 + 1, cx0:cx1 + 1] = value
        return

    # Outline edges of the unclipped rectangle that are on the grid
    if 0 <= min_y < grid.height:
        grid.cells[min_y, cx0:cx1 + 1] = value
    if 0 <= max_y < grid.height:
        grid.cells[max_y, cx0:cx1 + 1] = value
    if 0 <= min_x < grid.width:
        grid.cells[cy0:cy1 + 1, min_x] = value
    if 0 <= max_x < grid.width:
        grid.cells[cy0:cy1 + 1, max_x] = value


def replace_color(grid: PixelGrid, old: Optional[int], new: Optional[int]) -> int:
    return grid.replace_color(old, new)


def apply_color_mapping(grid: PixelGrid, mapping: dict) -> int:
    """Swap several colors at once ({old_id: new_id}); swaps do not chain."""
    source = grid.cells.copy()
    changed = 0
    for old, new in mapping.items():
        mask = source == _value(old)
        grid.cells[mask] = _value(new)
        changed += int(np.count_nonzero(mask))
    return changed


def apply_overlay(grid: PixelGrid, pixels: Sequence[Sequence[Optional[int]]], x: int, y: int) -> int:
    """Stamp a pattern of optional cells (text, stamps) at (x, y); None cells are transparent."""
    if not pixels or not any(len(row) for row in pixels):
        return 0
    width = max(len(row) for row in pixels)
    padded = [list(row) + [None] * (width - len(row)) for row in pixels]
    return grid.overlay(PixelGrid.from_rows(padded), x, y)


def mirror_grid(grid: PixelGrid, horizontal: bool = True) -> PixelGrid:
    return grid.mirrored_horizontal() if horizontal else grid.mirrored_vertical()


def rotate_grid(grid: PixelGrid, clockwise: bool = True) -> PixelGrid:
    return grid.rotated_90(clockwise)


def transform_selection(grid: PixelGrid, mask: Mask,
                        transform: Callable[[np.ndarray], np.ndarray]) -> Optional[Mask]:
    """
    Apply an array transform to the selection's bounding box in place.

    The selected cells are lifted out, transformed together with their mask
    and put back centred on the original box centre, so a rotated box
    swaps width and height around the same centre. Cells that fall off the
    grid are dropped. Returns the new mask.
    """
    bounds = get_bounds(mask)
    if bounds is None:
        return None

    box = np.s_[bounds.min_y:bounds.max_y + 1, bounds.min_x:bounds.max_x + 1]
    sub_mask = mask[box]
    sub_cells = np.where(sub_mask, grid.cells[box], EMPTY)

    new_cells = transform(sub_cells)
    new_mask = transform(sub_mask)
    new_h, new_w = new_mask.shape

    origin_x = bounds.min_x + (bounds.width - new_w) // 2
    origin_y = bounds.min_y + (bounds.height - new_h) // 2

    grid.cells[mask] = EMPTY

    result = np.zeros_like(mask)
    ys, xs = np.nonzero(new_mask)
    gx, gy = xs + origin_x, ys + origin_y
    keep = (gx >= 0) & (gx < grid.width) & (gy >= 0) & (gy < grid.height)
    grid.cells[gy[keep], gx[keep]] = new_cells[ys[keep], xs[keep]]
    result[gy[keep], gx[keep]] = True
    return normalize(result)


def mirror_selection(grid: PixelGrid, mask: Mask, horizontal: bool = True) -> Optional[Mask]:
    return transform_selection(grid, mask, np.fliplr if horizontal else np.flipud)


def rotate_selection(grid: PixelGrid, mask: Mask, clockwise: bool = True) -> Optional[Mask]:
    k = -1 if clockwise else 1
    return transform_selection(grid, mask, lambda a: np.rot90(a, k))


def repeat_selection(grid: PixelGrid, mask: Mask, repeat_x: int, repeat_y: int,
                     gap_x: int = 0, gap_y: int = 0) -> int:
    """
    Tile the selection's bounding box to the right and below itself.

    Copies are laid out on a ``repeat_x`` by ``repeat_y`` lattice starting at
    the box, ``gap_x``/``gap_y`` cells apart. Every cell of the box is copied,
    empty ones included, and cells falling off the grid are dropped. Returns
    the number of copies placed besides the original.
    """
    bounds = get_bounds(mask)
    if bounds is None or repeat_x < 1 or repeat_y < 1:
        return 0
    tile = grid.cells[bounds.min_y:bounds.max_y + 1, bounds.min_x:bounds.max_x + 1].copy()

    placed = 0
    for ry in range(repeat_y):
        for rx in range(repeat_x):
            if rx == 0 and ry == 0:
                continue
            x = bounds.min_x + rx * (bounds.width + gap_x)
            y = bounds.min_y + ry * (bounds.height + gap_y)
            x1, y1 = min(grid.width, x + bounds.width), min(grid.height, y + bounds.height)
            if x >= x1 or y >= y1:
                continue
            grid.cells[y:y1, x:x1] = tile[:y1 - y, :x1 - x]
            placed += 1
    return placed
