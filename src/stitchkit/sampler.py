"""
Per-cell color extraction from a source image region.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .errors import ConversionCancelled
from .image_io import ALPHA_OPAQUE, RGBABuffer

SAMPLING_METHODS = ("center", "weighted")


@dataclass(frozen=True)
class CellRect:
    """Source-pixel bounds of one output cell; x1/y1 are exclusive."""
    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x0 + self.x1) / 2.0, (self.y0 + self.y1) / 2.0


def sample_center(buffer: RGBABuffer, rect: CellRect) -> Optional[np.ndarray]:
    """Pixel nearest the rect centroid, or None when it is transparent."""
    cx, cy = rect.center
    px = min(max(int(math.floor(cx)), 0), buffer.width - 1)
    py = min(max(int(math.floor(cy)), 0), buffer.height - 1)
    pixel = buffer.data[py, px]
    if pixel[3] < ALPHA_OPAQUE:
        return None
    return pixel[:3].astype(np.float64)


def sample_weighted(buffer: RGBABuffer, rect: CellRect) -> Optional[np.ndarray]:
    """
    Gaussian-weighted mean color of the opaque pixels a cell covers.

    Sigma is a third of the shorter cell side, centred on the cell centroid.
    Returns None when no covered pixel is opaque.
    """
    x_start = min(max(int(math.floor(rect.x0)), 0), buffer.width - 1)
    y_start = min(max(int(math.floor(rect.y0)), 0), buffer.height - 1)
    x_end = min(max(int(math.ceil(rect.x1)), x_start + 1), buffer.width)
    y_end = min(max(int(math.ceil(rect.y1)), y_start + 1), buffer.height)

    region = buffer.data[y_start:y_end, x_start:x_end]
    opaque = region[..., 3] >= ALPHA_OPAQUE
    if not opaque.any():
        return None

    cx, cy = rect.center
    sigma = max(min(rect.width, rect.height) / 3.0, 1e-6)

    # Pixel centres sit at +0.5
    ys = np.arange(y_start, y_end, dtype=np.float64) + 0.5
    xs = np.arange(x_start, x_end, dtype=np.float64) + 0.5
    dist_sq = (xs[np.newaxis, :] - cx) ** 2 + (ys[:, np.newaxis] - cy) ** 2
    weights = np.exp(-dist_sq / (2.0 * sigma * sigma)) * opaque

    total = weights.sum()
    if total <= 0:
        # Every opaque pixel underflowed; fall back to a plain mean
        return region[opaque][:, :3].astype(np.float64).mean(axis=0)

    rgb = region[..., :3].astype(np.float64)
    return (rgb * weights[..., np.newaxis]).sum(axis=(0, 1)) / total


def sample_cell(buffer: RGBABuffer, rect: CellRect, method: str = "weighted") -> Optional[np.ndarray]:
    if method == "center":
        return sample_center(buffer, rect)
    if method == "weighted":
        return sample_weighted(buffer, rect)
    raise ValueError(f"Unknown sampling method: {method}")


def sample_cells(buffer: RGBABuffer, layout, method: str = "weighted",
                 cancel_event=None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sample every cell of the scaled region described by ``layout``.

    Returns:
        Tuple of (colors (H, W, 3) float64, mask (H, W) bool), indexed by
        scaled-region cell; cells with no opaque source pixel are False.
    """
    rows, cols = layout.scaled_height, layout.scaled_width
    colors = np.zeros((rows, cols, 3), dtype=np.float64)
    mask = np.zeros((rows, cols), dtype=bool)

    cell_w = buffer.width / cols
    cell_h = buffer.height / rows

    for y in range(rows):
        if cancel_event is not None and cancel_event.is_set():
            raise ConversionCancelled("Conversion cancelled during sampling")
        for x in range(cols):
            rect = CellRect(x * cell_w, y * cell_h, (x + 1) * cell_w, (y + 1) * cell_h)
            color = sample_cell(buffer, rect, method)
            if color is not None:
                colors[y, x] = color
                mask[y, x] = True

    return colors, mask
