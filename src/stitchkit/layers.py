"""
Layer stack and data compositing.

The composite walks layers bottom to top and lets every non-empty cell of a
visible layer overwrite what is below it. Opacity is stored for on-screen
rendering only and never changes the composite grid.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .errors import ValidationError
from .grid import EMPTY, PixelGrid

logger = logging.getLogger(__name__)

MAX_LAYERS = 10


def _new_layer_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Layer:
    """One editable grid plus its display metadata."""
    grid: PixelGrid
    name: str = "Layer 1"
    visible: bool = True
    opacity: float = 1.0
    locked: bool = False
    id: str = field(default_factory=_new_layer_id)

    def copy(self) -> "Layer":
        """Deep copy, keeping the id."""
        return Layer(
            grid=self.grid.copy(),
            name=self.name,
            visible=self.visible,
            opacity=self.opacity,
            locked=self.locked,
            id=self.id,
        )

    def to_dict(self, palette) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "visible": self.visible,
            "opacity": self.opacity,
            "locked": self.locked,
            "grid": self.grid.to_codes(palette),
        }

    @classmethod
    def from_dict(cls, data: dict, palette) -> "Layer":
        grid = PixelGrid.from_codes(data["grid"], palette)
        return cls(
            grid=grid,
            name=str(data.get("name", "Layer")),
            visible=bool(data.get("visible", True)),
            opacity=min(max(float(data.get("opacity", 1.0)), 0.0), 1.0),
            locked=bool(data.get("locked", False)),
            id=str(data.get("id") or _new_layer_id()),
        )


class LayerStack:
    """
    Ordered layers (index 0 = bottom) sharing one grid size.

    Always holds between 1 and ``max_layers`` layers; ``active_index`` is the
    mutation target and follows the same logical layer when layers are
    reordered, added or removed.
    """

    def __init__(self, width: int, height: int, max_layers: int = MAX_LAYERS,
                 layers: Optional[List[Layer]] = None, active_index: int = 0):
        if width <= 0 or height <= 0:
            raise ValidationError(f"Canvas dimensions must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.max_layers = max_layers

        if layers:
            for layer in layers:
                self._check_dimensions(layer.grid)
            self.layers = list(layers)[:max_layers]
        else:
            self.layers = [Layer(grid=PixelGrid.empty(width, height), name="Layer 1")]
        self.active_index = min(max(active_index, 0), len(self.layers) - 1)

    @classmethod
    def from_grid(cls, grid: PixelGrid, name: str = "Layer 1", max_layers: int = MAX_LAYERS) -> "LayerStack":
        """Single-layer stack holding a copy of ``grid``."""
        return cls(grid.width, grid.height, max_layers, [Layer(grid=grid.copy(), name=name)])

    def _check_dimensions(self, grid: PixelGrid):
        if grid.width != self.width or grid.height != self.height:
            raise ValidationError(
                f"Layer grid is {grid.width}x{grid.height}, canvas is {self.width}x{self.height}"
            )

    def __len__(self) -> int:
        return len(self.layers)

    @property
    def active_layer(self) -> Layer:
        return self.layers[self.active_index]

    def _valid(self, index: int) -> bool:
        return 0 <= index < len(self.layers)

    def _next_name(self) -> str:
        names = {layer.name for layer in self.layers}
        n = len(self.layers) + 1
        while f"Layer {n}" in names:
            n += 1
        return f"Layer {n}"

    def can_add(self) -> bool:
        return len(self.layers) < self.max_layers

    def add_layer(self, name: Optional[str] = None, grid: Optional[PixelGrid] = None) -> Optional[Layer]:
        """Add a layer on top and make it active; None when the stack is full."""
        if not self.can_add():
            logger.debug("Layer cap of %d reached, add ignored", self.max_layers)
            return None
        if grid is None:
            grid = PixelGrid.empty(self.width, self.height)
        else:
            self._check_dimensions(grid)
            grid = grid.copy()
        layer = Layer(grid=grid, name=name or self._next_name())
        self.layers.append(layer)
        self.active_index = len(self.layers) - 1
        return layer

    def delete_layer(self, index: Optional[int] = None) -> bool:
        """Remove a layer; the last remaining layer cannot be deleted."""
        index = self.active_index if index is None else index
        if len(self.layers) <= 1 or not self._valid(index):
            return False
        active = self.active_layer
        del self.layers[index]
        if active in self.layers:
            self.active_index = self.layers.index(active)
        else:
            self.active_index = min(index, len(self.layers) - 1)
        return True

    def duplicate_layer(self, index: Optional[int] = None) -> Optional[Layer]:
        """Copy a layer directly above itself and make the copy active."""
        index = self.active_index if index is None else index
        if not self._valid(index) or not self.can_add():
            return None
        source = self.layers[index]
        duplicate = source.copy()
        duplicate.id = _new_layer_id()
        duplicate.name = f"{source.name} copy"
        duplicate.locked = False
        self.layers.insert(index + 1, duplicate)
        self.active_index = index + 1
        return duplicate

    def set_active(self, index: int) -> bool:
        if not self._valid(index):
            return False
        self.active_index = index
        return True

    def rename_layer(self, index: int, name: str) -> bool:
        if not self._valid(index) or not name.strip():
            return False
        self.layers[index].name = name.strip()
        return True

    def toggle_visibility(self, index: int) -> bool:
        if not self._valid(index):
            return False
        self.layers[index].visible = not self.layers[index].visible
        return True

    def set_opacity(self, index: int, opacity: float) -> bool:
        if not self._valid(index):
            return False
        self.layers[index].opacity = min(max(float(opacity), 0.0), 1.0)
        return True

    def toggle_lock(self, index: int) -> bool:
        if not self._valid(index):
            return False
        self.layers[index].locked = not self.layers[index].locked
        return True

    def reorder_layer(self, from_index: int, to_index: int) -> bool:
        """Move a layer to a new position; the active layer stays active."""
        if not self._valid(from_index) or not self._valid(to_index) or from_index == to_index:
            return False
        active = self.active_layer
        layer = self.layers.pop(from_index)
        self.layers.insert(to_index, layer)
        self.active_index = self.layers.index(active)
        return True

    def move_layer_up(self, index: int) -> bool:
        return self.reorder_layer(index, index + 1)

    def move_layer_down(self, index: int) -> bool:
        return self.reorder_layer(index, index - 1)

    def merge_down(self, index: Optional[int] = None) -> bool:
        """
        Merge a layer into the one below it.

        Non-empty cells of the upper layer overwrite the lower layer; the
        upper layer is removed. Refused for the bottom layer and when the
        lower layer is locked.
        """
        index = self.active_index if index is None else index
        if not self._valid(index) or index == 0:
            return False
        upper, lower = self.layers[index], self.layers[index - 1]
        if lower.locked:
            return False

        active = self.active_layer
        lower.grid.overlay(upper.grid, 0, 0)
        del self.layers[index]
        self.active_index = self.layers.index(lower if active is upper else active)
        return True

    def composite(self) -> PixelGrid:
        """Topmost visible non-empty cell wins; opacity is ignored."""
        result = np.full((self.height, self.width), EMPTY, dtype=np.int32)
        for layer in self.layers:
            if not layer.visible:
                continue
            cells = layer.grid.cells
            mask = cells != EMPTY
            result[mask] = cells[mask]
        return PixelGrid(result)

    def flatten(self) -> Layer:
        """Replace every layer with a single layer holding the composite."""
        base = self.layers[0]
        flattened = Layer(grid=self.composite(), name=base.name, id=base.id)
        self.layers = [flattened]
        self.active_index = 0
        return flattened

    def copy(self) -> "LayerStack":
        """Fully independent deep copy."""
        return LayerStack(
            self.width,
            self.height,
            self.max_layers,
            [layer.copy() for layer in self.layers],
            self.active_index,
        )

    def restore(self, other: "LayerStack"):
        """Replace this stack's content with a deep copy of ``other``."""
        snapshot = other.copy()
        self.width = snapshot.width
        self.height = snapshot.height
        self.layers = snapshot.layers
        self.active_index = snapshot.active_index

    def replace_grids(self, grids: List[PixelGrid]):
        """Swap every layer's grid (used by whole-canvas transforms)."""
        if len(grids) != len(self.layers):
            raise ValidationError("Expected one grid per layer")
        width, height = grids[0].width, grids[0].height
        if any(g.width != width or g.height != height for g in grids):
            raise ValidationError("All layer grids must share one size")
        for layer, grid in zip(self.layers, grids):
            layer.grid = grid
        self.width, self.height = width, height

    def resize(self, width: int, height: int, scale_content: bool = True):
        """
        Change the canvas size of every layer.

        With ``scale_content`` the artwork is rescaled nearest-neighbour to
        the new size; otherwise it is cropped or extended with empty cells,
        anchored at the top-left corner.
        """
        if width <= 0 or height <= 0:
            raise ValidationError(f"Canvas dimensions must be positive, got {width}x{height}")
        grids = []
        for layer in self.layers:
            if scale_content:
                grids.append(layer.grid.scaled(width, height))
                continue
            grid = PixelGrid.empty(width, height)
            keep_h, keep_w = min(height, self.height), min(width, self.width)
            grid.cells[:keep_h, :keep_w] = layer.grid.cells[:keep_h, :keep_w]
            grids.append(grid)
        self.replace_grids(grids)

    def to_dict(self, palette) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "active_index": self.active_index,
            "layers": [layer.to_dict(palette) for layer in self.layers],
        }

    @classmethod
    def from_dict(cls, data: dict, palette, max_layers: int = MAX_LAYERS) -> "LayerStack":
        """
        Rebuild a stack from stored data.

        Malformed or wrongly sized layers are skipped with a warning; a stack
        with no valid layer falls back to one empty layer.
        """
        width, height = int(data["width"]), int(data["height"])
        layers = []
        for i, entry in enumerate(data.get("layers", [])):
            try:
                layer = Layer.from_dict(entry, palette)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed layer %d: %s", i, e)
                continue
            if layer.grid.width != width or layer.grid.height != height:
                logger.warning("Skipping layer %d: size %dx%d does not match canvas %dx%d",
                               i, layer.grid.width, layer.grid.height, width, height)
                continue
            layers.append(layer)

        active_index = int(data.get("active_index", 0))
        return cls(width, height, max_layers, layers, min(active_index, max(len(layers) - 1, 0)))
