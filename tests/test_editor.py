import numpy as np
import pytest
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from stitchkit.config import EditorConfig
from stitchkit.editor import EditorSession, Tool
from stitchkit.errors import ValidationError
from stitchkit.grid import grid_from_ids
from stitchkit.palette import get_thread_palette
from stitchkit.selection import Bounds

RED, BLUE, GREEN = 10, 20, 30


def _session(width=5, height=5, **config):
    return EditorSession(width, height, config=EditorConfig(**config))


def test_new_session_defaults():
    session = _session()
    assert (session.width, session.height) == (5, 5)
    assert len(session.layers) == 1
    assert session.tool == Tool.PENCIL
    assert not session.can_undo()
    assert session.composite().is_empty()


def test_pencil_stroke_is_one_undo_step():
    session = _session()
    session.set_color(RED)
    session.stroke([(0, 0), (4, 0)])
    assert session.composite().to_rows()[0] == [RED] * 5

    assert session.undo()
    assert session.composite().is_empty()
    assert session.redo()
    assert session.composite().to_rows()[0] == [RED] * 5


def test_eraser_and_brush_sizes():
    session = _session(max_brush_size=5)
    session.set_color(RED)
    session.set_tool(Tool.BRUSH)
    session.set_brush_size(50)
    assert session.brush_size == 5
    session.set_brush_size(3)
    session.stroke([(2, 2)])
    assert session.total_stitches() == 9

    session.set_tool(Tool.ERASER)
    session.set_brush_size(1)
    session.stroke([(2, 2)])
    assert session.total_stitches() == 8


def test_undo_redo_n_edits():
    session = _session()
    states = [session.composite()]
    for color in (RED, BLUE, GREEN):
        session.fill(0, 0, color)
        states.append(session.composite())

    for expected in reversed(states[:-1]):
        assert session.undo()
        assert session.composite() == expected
    assert not session.undo()

    for expected in states[1:]:
        assert session.redo()
        assert session.composite() == expected
    assert not session.redo()


def test_locked_layer_rejects_every_edit():
    session = _session()
    session.set_color(RED)
    session.toggle_lock(0)
    before = session.composite()

    assert not session.stroke([(1, 1)])
    assert session.fill(0, 0) == 0
    assert not session.draw_line(0, 0, 4, 4)
    assert not session.draw_rectangle(0, 0, 4, 4)
    assert session.apply_overlay([[RED]], 0, 0) == 0
    session.select_all()
    assert not session.delete_selection()
    assert not session.mirror()

    assert session.composite() == before
    assert not session.can_undo()


def test_fill_with_same_color_records_nothing():
    session = _session()
    session.fill(0, 0, RED)
    assert len(session.history) == 1
    assert session.fill(2, 2, RED) == 0
    assert len(session.history) == 1


def test_zero_offset_move_commit_records_nothing():
    session = _session()
    session.fill(0, 0, RED)
    session.set_tool(Tool.SELECT)
    session.start_selection(0, 0)
    session.update_selection(1, 1)
    session.finish_selection()
    entries = len(session.history)

    grid_before = session.composite()
    mask_before = session.selection.copy()

    session.set_tool(Tool.MOVE)
    session.start_move(1, 1)
    session.update_move(1, 1)
    assert not session.commit_move()
    assert len(session.history) == entries
    assert session.composite() == grid_before
    assert np.array_equal(session.selection, mask_before)


def test_move_selection_with_drag():
    session = EditorSession.from_grid(grid_from_ids([
        [RED, RED, None],
        [None, None, None],
    ]))
    session.set_tool(Tool.SELECT)
    session.start_selection(0, 0)
    session.update_selection(1, 0)
    session.finish_selection()

    session.set_tool(Tool.MOVE)
    session.start_move(0, 0)
    session.update_move(1, 1)
    assert session.commit_move()
    assert session.composite().to_rows() == [[None, None, None], [None, RED, RED]]
    assert session.selection_bounds() == Bounds(1, 1, 2, 1)

    assert session.undo()
    assert session.composite().to_rows()[0] == [RED, RED, None]


def test_switching_to_drawing_tool_clears_selection():
    session = _session()
    session.set_tool(Tool.SELECT)
    session.select_all()
    session.set_tool(Tool.MAGIC_WAND)
    assert session.selection is not None
    session.set_tool(Tool.PENCIL)
    assert session.selection is None


def test_copy_paste_and_cut():
    session = EditorSession.from_grid(grid_from_ids([[RED, BLUE, None, None]]))
    session.set_tool(Tool.MAGIC_WAND)
    session.select_by_color(0, 0)
    assert session.copy_selection()
    assert session.paste(3, 0)
    assert session.composite().to_rows() == [[RED, BLUE, None, RED]]

    session.select_by_color(1, 0)
    assert session.cut_selection()
    assert session.composite().to_rows() == [[RED, None, None, RED]]
    session.flip_clipboard()
    assert session.paste(2, 0)
    assert session.composite().to_rows() == [[RED, None, BLUE, RED]]


def test_mirror_without_selection_only_touches_active_layer():
    session = EditorSession.from_grid(grid_from_ids([[RED, None]]))
    session.add_layer()
    session.apply_overlay([[BLUE]], 0, 0)
    session.mirror()
    assert session.layers.layers[0].grid.to_rows() == [[RED, None]]
    assert session.layers.layers[1].grid.to_rows() == [[None, BLUE]]


def test_canvas_rotate_rotates_every_layer():
    session = EditorSession.from_grid(grid_from_ids([[RED, None, None]]))
    session.add_layer()
    session.apply_overlay([[None, None, BLUE]], 0, 0)

    assert session.rotate()
    assert (session.width, session.height) == (1, 3)
    assert session.layers.layers[0].grid.to_rows() == [[RED], [None], [None]]
    assert session.layers.layers[1].grid.to_rows() == [[None], [None], [BLUE]]

    assert session.undo()
    assert (session.width, session.height) == (3, 1)


def test_rotate_selection_keeps_canvas_size():
    session = _session()
    session.draw_line(1, 2, 3, 2, RED)
    session.set_tool(Tool.SELECT)
    session.start_selection(1, 2)
    session.update_selection(3, 2)
    session.finish_selection()
    assert session.rotate()
    assert (session.width, session.height) == (5, 5)
    assert session.selection_bounds() == Bounds(2, 1, 2, 3)
    assert [session.composite().get(2, y) for y in (1, 2, 3)] == [RED, RED, RED]


def test_undo_clears_selection():
    session = _session()
    session.fill(0, 0, RED)
    session.set_tool(Tool.SELECT)
    session.select_all()
    session.undo()
    assert session.selection is None


def test_layer_commands_and_history():
    session = _session(max_layers=2)
    assert session.add_layer("Top") is not None
    assert session.add_layer() is None
    assert session.duplicate_layer() is None
    assert len(session.history) == 1

    session.set_color(RED)
    session.stroke([(0, 0)])
    session.set_active_layer(0)
    session.set_color(BLUE)
    session.stroke([(0, 0), (1, 0)])
    assert session.composite().to_rows()[0][:2] == [RED, BLUE]

    session.set_active_layer(1)
    assert session.merge_down()
    assert len(session.layers) == 1
    assert session.layers.layers[0].grid.to_rows()[0][:2] == [RED, BLUE]

    assert session.undo()
    assert len(session.layers) == 2
    entries = len(session.history)
    assert not session.delete_layer(5)
    assert len(session.history) == entries
    assert session.delete_layer(0)
    assert len(session.layers) == 1


def test_visibility_does_not_record_history():
    session = _session()
    session.add_layer()
    entries = len(session.history)
    session.toggle_visibility(0)
    session.rename_layer(0, "Background")
    session.set_opacity(0, 0.5)
    assert len(session.history) == entries
    assert session.layers.layers[0].name == "Background"


def test_eyedropper_reads_composite():
    session = EditorSession.from_grid(grid_from_ids([[RED, None]]))
    session.add_layer()
    picked = session.pick_color(0, 0)
    assert picked.id == RED
    assert session.current_color == RED
    assert session.pick_color(1, 0) is None


def test_subscribers_are_notified_until_unsubscribed():
    session = _session()
    calls = []
    unsubscribe = session.subscribe(lambda s: calls.append(s.total_stitches()))
    session.fill(0, 0, RED)
    assert calls[-1] == 25
    unsubscribe()
    count = len(calls)
    session.fill(0, 0, BLUE)
    assert len(calls) == count
    unsubscribe()


def test_snapshot_is_independent():
    session = _session()
    snapshot = session.snapshot()
    session.fill(0, 0, RED)
    assert snapshot.composite().is_empty()
    snapshot.active_layer.grid.set(0, 0, BLUE)
    assert session.composite().get(0, 0) == RED


def test_color_mapping_and_metrics():
    palette = get_thread_palette()
    session = EditorSession.from_grid(grid_from_ids([[RED, RED, BLUE]]), palette=palette)
    assert [c.id for c in session.used_colors()] == [RED, BLUE]
    assert session.stitch_counts() == {palette.get(RED).code: 2, palette.get(BLUE).code: 1}

    assert session.apply_color_mapping({RED: BLUE, BLUE: RED}) == 3
    assert session.composite().to_rows() == [[BLUE, BLUE, RED]]
    usage = session.yarn_usage()
    assert [u.code for u in usage] == [palette.get(BLUE).code, palette.get(RED).code]


def test_set_color_by_code():
    session = _session()
    assert session.set_color_by_code("310")
    assert session.palette.get(session.current_color).code == "310"
    assert not session.set_color_by_code("NOPE")
    session.set_color(10 ** 6)
    assert session.palette.get(session.current_color).code == "310"


def test_session_round_trips_through_dict():
    session = _session()
    session.fill(0, 0, RED)
    session.add_layer("Details")
    session.draw_line(0, 0, 4, 0, BLUE)
    data = session.to_dict()

    restored = EditorSession.from_dict(data)
    assert restored.composite() == session.composite()
    assert [layer.name for layer in restored.layers.layers] == ["Layer 1", "Details"]
    assert restored.layers.active_index == 1


def test_invalid_tool_name():
    session = _session()
    session.set_tool("fill")
    assert session.tool == Tool.FILL
    with pytest.raises(ValueError):
        session.set_tool("lasso")


def test_canvas_rotate_refused_while_any_layer_is_locked():
    session = EditorSession.from_grid(grid_from_ids([[RED, None, None]]))
    session.toggle_lock(0)
    session.add_layer()
    entries = len(session.history)

    assert not session.rotate()
    assert (session.width, session.height) == (3, 1)
    assert session.layers.layers[0].grid.to_rows() == [[RED, None, None]]
    assert len(session.history) == entries


def test_single_step_history_in_session():
    session = _session(max_history=1)
    session.fill(0, 0, RED)
    session.fill(0, 0, BLUE)

    assert session.undo()
    assert session.composite().get(0, 0) == RED
    assert not session.undo()
    assert session.redo()
    assert session.composite().get(0, 0) == BLUE


def test_resize_canvas_scales_and_undoes():
    session = EditorSession.from_grid(grid_from_ids([[RED, BLUE]]))
    session.add_layer()
    session.select_all()

    assert session.resize_canvas(4, 2)
    assert (session.width, session.height) == (4, 2)
    assert session.composite().to_rows() == [[RED, RED, BLUE, BLUE]] * 2
    assert session.layers.layers[1].grid.shape == (2, 4)
    assert session.selection is None

    assert session.undo()
    assert (session.width, session.height) == (2, 1)
    assert session.composite().to_rows() == [[RED, BLUE]]


def test_resize_canvas_crop_and_refusals():
    session = EditorSession.from_grid(grid_from_ids([[RED, BLUE, GREEN]]))
    assert not session.resize_canvas(3, 1)
    assert not session.can_undo()

    assert session.resize_canvas(2, 2, scale_content=False)
    assert session.composite().to_rows() == [[RED, BLUE], [None, None]]

    session.toggle_lock(0)
    assert not session.resize_canvas(5, 5)
    assert (session.width, session.height) == (2, 2)
    with pytest.raises(ValidationError):
        session.resize_canvas(0, 2)


def test_repeat_selection_tiles_with_gaps():
    session = EditorSession.from_grid(grid_from_ids([[RED, BLUE, None, None, None, None, None]]))
    session.set_tool(Tool.SELECT)
    session.start_selection(0, 0)
    session.update_selection(1, 0)
    session.finish_selection()

    assert session.repeat_selection(3, 1, gap_x=1) == 2
    assert session.composite().to_rows() == [[RED, BLUE, None, RED, BLUE, None, RED]]
    assert session.undo()
    assert session.composite().to_rows() == [[RED, BLUE, None, None, None, None, None]]


def test_repeat_selection_needs_selection_and_valid_counts():
    session = _session()
    assert session.repeat_selection(2, 2) == 0
    session.select_all()
    with pytest.raises(ValidationError):
        session.repeat_selection(0, 2)
    assert session.repeat_selection(1, 1) == 0
    assert not session.can_undo()
