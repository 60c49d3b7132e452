"""
RGBA buffer type consumed by the conversion pipeline, and Pillow decoding at the edge.
"""

import logging
import os
from dataclasses import dataclass

import numpy as np
from PIL import Image, ImageOps

from .errors import ProcessingError
from .grid import EMPTY

logger = logging.getLogger(__name__)

# Alpha below this is treated as transparent
ALPHA_OPAQUE = 128


@dataclass
class RGBABuffer:
    """Decoded RGBA8 pixels, shape (height, width, 4)."""
    data: np.ndarray

    def __post_init__(self):
        data = np.asarray(self.data)
        if data.ndim != 3 or data.shape[2] != 4:
            raise ProcessingError(f"Expected an RGBA buffer of shape (H, W, 4), got {data.shape}")
        if data.shape[0] == 0 or data.shape[1] == 0:
            raise ProcessingError("Image buffer has zero size")
        self.data = data.astype(np.uint8, copy=False)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def rgb(self) -> np.ndarray:
        return self.data[..., :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.data[..., 3]

    def opaque_mask(self) -> np.ndarray:
        return self.data[..., 3] >= ALPHA_OPAQUE

    def copy(self) -> "RGBABuffer":
        return RGBABuffer(self.data.copy())

    @classmethod
    def from_rgb(cls, rgb: np.ndarray) -> "RGBABuffer":
        """Wrap an (H, W, 3) array as a fully opaque buffer."""
        rgb = np.asarray(rgb)
        if rgb.ndim != 3 or rgb.shape[2] != 3:
            raise ProcessingError(f"Expected an RGB array of shape (H, W, 3), got {rgb.shape}")
        alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
        return cls(np.concatenate([rgb.astype(np.uint8), alpha], axis=2))

    @classmethod
    def filled(cls, width: int, height: int, rgba) -> "RGBABuffer":
        """Buffer of a single RGBA color."""
        data = np.empty((height, width, 4), dtype=np.uint8)
        data[...] = np.asarray(rgba, dtype=np.uint8)
        return cls(data)


def load_rgba(image_path: str) -> RGBABuffer:
    """
    Decode an image file into an RGBA buffer.

    EXIF orientation is applied so the buffer matches what the user sees.
    """
    if not os.path.exists(image_path):
        raise FileNotFoundError(f"Image not found: {image_path}")

    logger.info("Loading image: %s", image_path)
    with Image.open(image_path) as pil_image:
        pil_image = ImageOps.exif_transpose(pil_image)
        if pil_image.mode != "RGBA":
            pil_image = pil_image.convert("RGBA")
        data = np.array(pil_image, dtype=np.uint8)

    buffer = RGBABuffer(data)
    logger.debug("Decoded %dx%d RGBA buffer", buffer.width, buffer.height)
    return buffer


def save_preview(grid, palette, output_path: str, cell_size: int = 8):
    """Render a grid as a PNG, one flat square per cell (empty cells white)."""
    height, width = grid.shape
    lut = np.vstack([palette.rgb_array, [[255, 255, 255]]]).astype(np.uint8)
    indices = np.where(grid.cells == EMPTY, len(palette), grid.cells)
    image = lut[indices]
    image = np.repeat(np.repeat(image, cell_size, axis=0), cell_size, axis=1)
    Image.fromarray(image).save(output_path)
    logger.info("Preview saved: %s (%dx%d cells)", output_path, width, height)
