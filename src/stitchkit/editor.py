"""
Editing session: the single owner of the layer stack, selection, clipboard,
history and tool state.

Every edit goes through an :class:`EditorSession` method. Discrete commands
record a history snapshot immediately before they mutate; freehand strokes
record one snapshot when the stroke begins. Mutations of a locked active
layer are silent no-ops. Readers get independent copies through
:meth:`EditorSession.snapshot` or subscribe to change notifications.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from . import drawing
from . import selection as sel
from .config import EditorConfig, UsageConfig
from .errors import ValidationError
from .grid import PixelGrid
from .history import History
from .layers import Layer, LayerStack
from .palette import ThreadColor, ThreadPalette, get_thread_palette
from .usage import ThreadUsage, usage_for_grid

logger = logging.getLogger(__name__)


class Tool(Enum):
    PENCIL = "pencil"
    BRUSH = "brush"
    ERASER = "eraser"
    FILL = "fill"
    RECTANGLE = "rectangle"
    SELECT = "select"
    MAGIC_WAND = "magic_wand"
    EYEDROPPER = "eyedropper"
    MOVE = "move"


# Tools that keep the current selection alive
SELECTION_TOOLS = {Tool.SELECT, Tool.MAGIC_WAND, Tool.MOVE}

# Default for command color arguments: paint with the current color
CURRENT_COLOR = object()

Listener = Callable[["EditorSession"], None]


class EditorSession:
    """Layered, undoable pattern editor."""

    def __init__(self, width: Optional[int] = None, height: Optional[int] = None,
                 palette: Optional[ThreadPalette] = None,
                 config: Optional[EditorConfig] = None,
                 layers: Optional[LayerStack] = None):
        self.config = config or EditorConfig()
        self.palette = palette or get_thread_palette()

        if layers is not None:
            self.layers = layers
        else:
            self.layers = LayerStack(
                width or self.config.default_width,
                height or self.config.default_height,
                max_layers=self.config.max_layers,
            )

        self.history = History(self.config.max_history)
        self.selection: Optional[sel.Mask] = None
        self.clipboard: Optional[sel.Clipboard] = None
        self.tool = Tool.PENCIL
        self.current_color: Optional[int] = None
        self.brush_size = self.config.min_brush_size
        self.is_dirty = False

        self._selector: Optional[sel.RectangleSelector] = None
        self._move_start: Optional[Tuple[int, int]] = None
        self._move_offset: Tuple[int, int] = (0, 0)
        self._stroke_last: Optional[Tuple[int, int]] = None
        self._listeners: List[Listener] = []

    @classmethod
    def from_grid(cls, grid: PixelGrid, palette: Optional[ThreadPalette] = None,
                  config: Optional[EditorConfig] = None) -> "EditorSession":
        """Open a converted or stored grid as a single-layer session."""
        config = config or EditorConfig()
        stack = LayerStack.from_grid(grid, max_layers=config.max_layers)
        return cls(palette=palette, config=config, layers=stack)

    # ------------------------------------------------------------------
    # Observers and readers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self, dirty: bool = True):
        if dirty:
            self.is_dirty = True
        for listener in list(self._listeners):
            listener(self)

    def snapshot(self) -> LayerStack:
        """Independent copy of the layer stack for renderers and exporters."""
        return self.layers.copy()

    def composite(self) -> PixelGrid:
        return self.layers.composite()

    @property
    def width(self) -> int:
        return self.layers.width

    @property
    def height(self) -> int:
        return self.layers.height

    def _editable_grid(self) -> Optional[PixelGrid]:
        layer = self.layers.active_layer
        if layer.locked:
            logger.debug("Active layer %r is locked, edit ignored", layer.name)
            return None
        return layer.grid

    def save_history(self):
        self.history.save(self.layers)

    # ------------------------------------------------------------------
    # Tool state
    # ------------------------------------------------------------------

    def set_tool(self, tool: Tool):
        tool = Tool(tool)
        self.tool = tool
        if tool not in SELECTION_TOOLS:
            self.selection = None
            self._selector = None
            self.cancel_move()
        self._changed(dirty=False)

    def set_color(self, color: Optional[int]):
        """Select the drawing color by thread id (None erases)."""
        if color is not None and self.palette.get(color) is None:
            logger.warning("Unknown thread id %r ignored", color)
            return
        self.current_color = color
        self._changed(dirty=False)

    def set_color_by_code(self, code: str) -> bool:
        thread = self.palette.get_color_by_code(code)
        if thread is None:
            logger.warning("Unknown thread code %r ignored", code)
            return False
        self.set_color(thread.id)
        return True

    def set_brush_size(self, size: int):
        self.brush_size = min(max(int(size), self.config.min_brush_size), self.config.max_brush_size)
        self._changed(dirty=False)

    def _resolve(self, color) -> Optional[int]:
        return self.current_color if color is CURRENT_COLOR else color

    def _tool_paint(self) -> Tuple[Optional[int], int]:
        """(color, size) the current freehand tool paints with."""
        if self.tool == Tool.ERASER:
            return None, self.brush_size
        if self.tool == Tool.BRUSH:
            return self.current_color, self.brush_size
        return self.current_color, 1

    # ------------------------------------------------------------------
    # Freehand strokes: one history entry per stroke
    # ------------------------------------------------------------------

    def begin_stroke(self, x: int, y: int) -> bool:
        grid = self._editable_grid()
        if grid is None:
            return False
        self.save_history()
        color, size = self._tool_paint()
        drawing.stamp_brush(grid, x, y, color, size)
        self._stroke_last = (x, y)
        self._changed()
        return True

    def continue_stroke(self, x: int, y: int) -> bool:
        """Extend the stroke to (x, y), filling any gap since the last point."""
        if self._stroke_last is None:
            return False
        grid = self._editable_grid()
        if grid is None:
            return False
        color, size = self._tool_paint()
        drawing.brush_stroke(grid, [self._stroke_last, (x, y)], color, size)
        self._stroke_last = (x, y)
        self._changed()
        return True

    def end_stroke(self):
        self._stroke_last = None

    def stroke(self, points: Sequence[Tuple[int, int]]) -> bool:
        """A complete freehand stroke through ``points``."""
        if not points:
            return False
        if not self.begin_stroke(*points[0]):
            return False
        for x, y in points[1:]:
            self.continue_stroke(x, y)
        self.end_stroke()
        return True

    # ------------------------------------------------------------------
    # Discrete drawing commands
    # ------------------------------------------------------------------

    def fill(self, x: int, y: int, color=CURRENT_COLOR) -> int:
        grid = self._editable_grid()
        if grid is None or not grid.in_bounds(x, y):
            return 0
        color = self._resolve(color)
        if grid.get(x, y) == color:
            return 0
        self.save_history()
        changed = drawing.flood_fill(grid, x, y, color)
        self._changed()
        return changed

    def draw_line(self, x0: int, y0: int, x1: int, y1: int, color=CURRENT_COLOR) -> bool:
        grid = self._editable_grid()
        if grid is None:
            return False
        self.save_history()
        drawing.draw_line(grid, x0, y0, x1, y1, self._resolve(color))
        self._changed()
        return True

    def draw_rectangle(self, x0: int, y0: int, x1: int, y1: int,
                       color=CURRENT_COLOR, filled: bool = False) -> bool:
        grid = self._editable_grid()
        if grid is None:
            return False
        self.save_history()
        drawing.draw_rectangle(grid, x0, y0, x1, y1,
                               self._resolve(color), filled)
        self._changed()
        return True

    def replace_color(self, old: Optional[int], new: Optional[int]) -> int:
        grid = self._editable_grid()
        if grid is None or old == new:
            return 0
        self.save_history()
        changed = drawing.replace_color(grid, old, new)
        self._changed()
        return changed

    def apply_color_mapping(self, mapping: Dict[int, Optional[int]]) -> int:
        """Swap several colors in one undoable step (color variants)."""
        grid = self._editable_grid()
        if grid is None or not mapping:
            return 0
        self.save_history()
        changed = drawing.apply_color_mapping(grid, mapping)
        self._changed()
        return changed

    def apply_overlay(self, pixels: Sequence[Sequence[Optional[int]]], x: int, y: int) -> int:
        grid = self._editable_grid()
        if grid is None or not pixels:
            return 0
        self.save_history()
        written = drawing.apply_overlay(grid, pixels, x, y)
        self._changed()
        return written

    def pick_color(self, x: int, y: int) -> Optional[ThreadColor]:
        """Eyedropper: adopt the composite color at (x, y)."""
        color_id = self.composite().get(x, y)
        if color_id is None:
            return None
        self.set_color(color_id)
        return self.palette.get(color_id)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def start_selection(self, x: int, y: int):
        self._selector = sel.RectangleSelector(self.width, self.height)
        self.selection = self._selector.start(x, y)
        self._changed(dirty=False)

    def update_selection(self, x: int, y: int):
        if self._selector is None:
            return
        self.selection = self._selector.update(x, y)
        self._changed(dirty=False)

    def finish_selection(self):
        if self._selector is not None:
            self.selection = self._selector.finish()
            self._selector = None

    def clear_selection(self):
        self.selection = None
        self._selector = None
        self.cancel_move()
        self._changed(dirty=False)

    def select_all(self):
        self.selection = sel.select_all(self.width, self.height)
        self._changed(dirty=False)

    def select_by_color(self, x: int, y: int):
        """Magic wand on the active layer."""
        mask = sel.select_by_color(self.layers.active_layer.grid, x, y)
        if mask is not None:
            self.selection = mask
            self._changed(dirty=False)

    def selection_bounds(self) -> Optional[sel.Bounds]:
        return sel.get_bounds(self.selection)

    def copy_selection(self) -> bool:
        clipboard = sel.copy_selection(self.layers.active_layer.grid, self.selection)
        if clipboard is None:
            return False
        self.clipboard = clipboard
        self._changed(dirty=False)
        return True

    def cut_selection(self) -> bool:
        grid = self._editable_grid()
        if grid is None or self.selection is None:
            return False
        self.save_history()
        self.clipboard = sel.cut_selection(grid, self.selection)
        self._changed()
        return True

    def paste(self, x: int, y: int) -> bool:
        grid = self._editable_grid()
        if grid is None or self.clipboard is None:
            return False
        self.save_history()
        sel.paste_clipboard(grid, self.clipboard, x, y)
        self._changed()
        return True

    def delete_selection(self) -> bool:
        grid = self._editable_grid()
        if grid is None or self.selection is None:
            return False
        self.save_history()
        sel.delete_selection(grid, self.selection)
        self.selection = None
        self._changed()
        return True

    def flip_clipboard(self, horizontal: bool = True) -> bool:
        if self.clipboard is None:
            return False
        if horizontal:
            self.clipboard.flip_horizontal()
        else:
            self.clipboard.flip_vertical()
        self._changed(dirty=False)
        return True

    def start_move(self, x: int, y: int):
        if self.selection is None:
            return
        self._move_start = (x, y)
        self._move_offset = (0, 0)

    def update_move(self, x: int, y: int):
        if self._move_start is None:
            return
        self._move_offset = (x - self._move_start[0], y - self._move_start[1])

    def cancel_move(self):
        self._move_start = None
        self._move_offset = (0, 0)

    def commit_move(self) -> bool:
        """Apply the pending move; a zero offset changes nothing and records nothing."""
        dx, dy = self._move_offset
        self.cancel_move()
        if self.selection is None or (dx == 0 and dy == 0):
            return False
        grid = self._editable_grid()
        if grid is None:
            return False
        self.save_history()
        self.selection = sel.move_selection(grid, self.selection, dx, dy)
        self._changed()
        return True

    def move_selection(self, dx: int, dy: int) -> bool:
        """Move the selection by an explicit offset (keyboard nudge)."""
        if self.selection is None:
            return False
        self._move_start = (0, 0)
        self._move_offset = (dx, dy)
        return self.commit_move()

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def mirror(self, horizontal: bool = True) -> bool:
        """Mirror the selection's box, or the whole active layer without a selection."""
        grid = self._editable_grid()
        if grid is None:
            return False
        self.save_history()
        if self.selection is not None:
            self.selection = drawing.mirror_selection(grid, self.selection, horizontal)
        else:
            self.layers.active_layer.grid = drawing.mirror_grid(grid, horizontal)
        self._changed()
        return True

    def rotate(self, clockwise: bool = True) -> bool:
        """
        Rotate the selection's box by 90 degrees, or the whole canvas.

        Without a selection every layer rotates so all layers keep sharing
        one size; width and height swap. A canvas rotation is refused while
        any layer is locked.
        """
        grid = self._editable_grid()
        if grid is None:
            return False
        if self.selection is not None:
            self.save_history()
            self.selection = drawing.rotate_selection(grid, self.selection, clockwise)
        else:
            if self._any_locked():
                return False
            self.save_history()
            self.layers.replace_grids(
                [drawing.rotate_grid(layer.grid, clockwise) for layer in self.layers.layers]
            )
        self._changed()
        return True

    def repeat_selection(self, repeat_x: int, repeat_y: int,
                         gap_x: int = 0, gap_y: int = 0) -> int:
        """Tile the selected box across the active layer; returns copies placed."""
        grid = self._editable_grid()
        if grid is None or self.selection is None:
            return 0
        if repeat_x < 1 or repeat_y < 1 or gap_x < 0 or gap_y < 0:
            raise ValidationError(
                f"Invalid repeat {repeat_x}x{repeat_y} with gap {gap_x}x{gap_y}"
            )
        if repeat_x == 1 and repeat_y == 1:
            return 0
        self.save_history()
        placed = drawing.repeat_selection(grid, self.selection, repeat_x, repeat_y, gap_x, gap_y)
        self._changed()
        return placed

    def resize_canvas(self, width: int, height: int, scale_content: bool = True) -> bool:
        """
        Resize every layer, scaling the artwork or cropping/extending it.

        Refused while any layer is locked; an unchanged size records nothing.
        """
        if width <= 0 or height <= 0:
            raise ValidationError(f"Canvas dimensions must be positive, got {width}x{height}")
        if (width, height) == (self.width, self.height) or self._any_locked():
            return False
        self.save_history()
        self.layers.resize(width, height, scale_content)
        self.selection = None
        self._selector = None
        self.cancel_move()
        logger.info("Canvas resized to %dx%d", width, height)
        self._changed()
        return True

    def _any_locked(self) -> bool:
        locked = [layer.name for layer in self.layers.layers if layer.locked]
        if locked:
            logger.debug("Locked layers %s, canvas transform ignored", locked)
        return bool(locked)

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def add_layer(self, name: Optional[str] = None) -> Optional[Layer]:
        if not self.layers.can_add():
            return None
        self.save_history()
        layer = self.layers.add_layer(name)
        self._changed()
        return layer

    def delete_layer(self, index: Optional[int] = None) -> bool:
        index = self.layers.active_index if index is None else index
        if len(self.layers) <= 1 or not (0 <= index < len(self.layers)):
            return False
        self.save_history()
        deleted = self.layers.delete_layer(index)
        self._changed()
        return deleted

    def duplicate_layer(self, index: Optional[int] = None) -> Optional[Layer]:
        if not self.layers.can_add():
            return None
        self.save_history()
        layer = self.layers.duplicate_layer(index)
        self._changed()
        return layer

    def merge_down(self, index: Optional[int] = None) -> bool:
        index = self.layers.active_index if index is None else index
        if index <= 0 or index >= len(self.layers) or self.layers.layers[index - 1].locked:
            return False
        self.save_history()
        merged = self.layers.merge_down(index)
        self._changed()
        return merged

    def flatten(self) -> Layer:
        self.save_history()
        layer = self.layers.flatten()
        self._changed()
        return layer

    def reorder_layer(self, from_index: int, to_index: int) -> bool:
        if from_index == to_index or not (0 <= from_index < len(self.layers)) \
                or not (0 <= to_index < len(self.layers)):
            return False
        self.save_history()
        moved = self.layers.reorder_layer(from_index, to_index)
        self._changed()
        return moved

    def move_layer_up(self, index: int) -> bool:
        return self.reorder_layer(index, index + 1)

    def move_layer_down(self, index: int) -> bool:
        return self.reorder_layer(index, index - 1)

    def set_active_layer(self, index: int) -> bool:
        changed = self.layers.set_active(index)
        if changed:
            self._changed(dirty=False)
        return changed

    def rename_layer(self, index: int, name: str) -> bool:
        changed = self.layers.rename_layer(index, name)
        if changed:
            self._changed()
        return changed

    def toggle_visibility(self, index: int) -> bool:
        changed = self.layers.toggle_visibility(index)
        if changed:
            self._changed()
        return changed

    def set_opacity(self, index: int, opacity: float) -> bool:
        changed = self.layers.set_opacity(index, opacity)
        if changed:
            self._changed()
        return changed

    def toggle_lock(self, index: int) -> bool:
        changed = self.layers.toggle_lock(index)
        if changed:
            self._changed()
        return changed

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _after_restore(self):
        # A restored stack may have a different size; drop transient state
        self.selection = None
        self._selector = None
        self._stroke_last = None
        self.cancel_move()
        self._changed()

    def undo(self) -> bool:
        if not self.history.undo(self.layers):
            return False
        self._after_restore()
        return True

    def redo(self) -> bool:
        if not self.history.redo(self.layers):
            return False
        self._after_restore()
        return True

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def used_colors(self) -> List[ThreadColor]:
        """Threads present in the composite, most stitched first."""
        counts = self.composite().count_by_color()
        ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [self.palette.get(color_id) for color_id, _ in ordered if self.palette.get(color_id)]

    def stitch_counts(self) -> Dict[str, int]:
        """Thread code -> stitches in the composite."""
        counts = {}
        for color_id, count in self.composite().count_by_color().items():
            thread = self.palette.get(color_id)
            if thread is not None:
                counts[thread.code] = count
        return counts

    def total_stitches(self) -> int:
        return self.composite().stitch_count()

    def yarn_usage(self, usage_config: Optional[UsageConfig] = None) -> List[ThreadUsage]:
        usage_config = usage_config or UsageConfig()
        return usage_for_grid(
            self.composite(),
            self.palette,
            mesh_count=usage_config.mesh_count,
            stitch_type=usage_config.stitch_type,
            buffer_percent=usage_config.buffer_percent,
        )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return self.layers.to_dict(self.palette)

    @classmethod
    def from_dict(cls, data: dict, palette: Optional[ThreadPalette] = None,
                  config: Optional[EditorConfig] = None) -> "EditorSession":
        palette = palette or get_thread_palette()
        config = config or EditorConfig()
        stack = LayerStack.from_dict(data, palette, max_layers=config.max_layers)
        return cls(palette=palette, config=config, layers=stack)
