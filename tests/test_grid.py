import numpy as np
import pytest
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from stitchkit.errors import ValidationError
from stitchkit.grid import EMPTY, PixelGrid, grid_from_ids
from stitchkit.palette import get_thread_palette


def test_empty_grid_and_dimensions():
    grid = PixelGrid.empty(4, 3)
    assert grid.shape == (3, 4)
    assert grid.width == 4 and grid.height == 3
    assert grid.is_empty()
    assert grid.stitch_count() == 0

    with pytest.raises(ValidationError):
        PixelGrid.empty(0, 3)
    with pytest.raises(ValidationError):
        PixelGrid.from_rows([[1, 2], [3]])


def test_get_and_set_ignore_out_of_bounds():
    grid = PixelGrid.empty(2, 2)
    assert grid.set(1, 0, 7)
    assert not grid.set(2, 0, 7)
    assert not grid.set(-1, 0, 7)
    assert grid.get(1, 0) == 7
    assert grid.get(0, 0) is None
    assert grid.get(5, 5) is None
    grid.set(1, 0, None)
    assert grid.is_empty()


def test_flat_round_trip_keeps_empties():
    grid = grid_from_ids([[1, None, 3], [None, 5, 5]])
    flat = grid.to_flat()
    assert flat == [1, None, 3, None, 5, 5]
    assert PixelGrid.from_flat(flat, 3, 2) == grid
    with pytest.raises(ValidationError):
        PixelGrid.from_flat(flat, 2, 2)


def test_codes_round_trip_and_unknown_codes():
    palette = get_thread_palette()
    rows = [["310", None], ["B5200", "NOPE"]]
    grid = PixelGrid.from_codes(rows, palette)
    assert grid.get(0, 0) == palette.get_color_by_code("310").id
    assert grid.get(1, 1) is None
    assert grid.to_codes(palette) == [["310", None], ["B5200", None]]


def test_counts_and_used_ids():
    grid = grid_from_ids([[4, 4, None], [2, 4, 2]])
    assert grid.used_color_ids() == [2, 4]
    assert grid.count_by_color() == {4: 3, 2: 2}
    assert grid.stitch_count() == 5


def test_replace_color():
    grid = grid_from_ids([[1, 2], [1, None]])
    assert grid.replace_color(1, 9) == 2
    assert grid.to_rows() == [[9, 2], [9, None]]
    assert grid.replace_color(9, 9) == 0
    assert grid.replace_color(None, 3) == 1
    assert grid.get(1, 1) == 3


def test_overlay_is_transparent_and_clipped():
    base = grid_from_ids([[1, 1, 1], [1, 1, 1]])
    patch = grid_from_ids([[5, None], [5, 5]])
    written = base.overlay(patch, 2, 0)
    assert written == 2
    assert base.to_rows() == [[1, 1, 5], [1, 1, 5]]
    assert base.overlay(patch, 10, 10) == 0


def test_transforms_return_new_grids():
    grid = grid_from_ids([[1, 2, 3], [4, 5, 6]])
    assert grid.mirrored_horizontal().to_rows() == [[3, 2, 1], [6, 5, 4]]
    assert grid.mirrored_vertical().to_rows() == [[4, 5, 6], [1, 2, 3]]
    assert grid.rotated_90().to_rows() == [[4, 1], [5, 2], [6, 3]]
    assert grid.rotated_90(clockwise=False).to_rows() == [[3, 6], [2, 5], [1, 4]]
    assert grid.to_rows() == [[1, 2, 3], [4, 5, 6]]


def test_scaled_and_sub_grid():
    grid = grid_from_ids([[1, 2], [3, 4]])
    assert grid.scaled(4, 4).to_rows() == [
        [1, 1, 2, 2],
        [1, 1, 2, 2],
        [3, 3, 4, 4],
        [3, 3, 4, 4],
    ]
    assert grid.sub_grid(1, 0, 1, 1).to_rows() == [[2], [4]]


def test_copy_is_independent_and_hash_tracks_content():
    grid = grid_from_ids([[1, None]])
    clone = grid.copy()
    clone.set(1, 0, 2)
    assert grid.get(1, 0) is None
    assert grid.grid_hash() != clone.grid_hash()
    assert grid.grid_hash() == grid.copy().grid_hash()
    assert np.all(PixelGrid.empty(2, 2).cells == EMPTY)
