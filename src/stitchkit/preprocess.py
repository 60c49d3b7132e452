"""
Optional source-image filters applied before sampling: contrast stretch, then sharpen.
"""

import logging

import numpy as np
from scipy import ndimage

from .color_math import luminance
from .image_io import ALPHA_OPAQUE, RGBABuffer

logger = logging.getLogger(__name__)

MID_GRAY = 128.0

# 4-neighbour discrete Laplacian
LAPLACIAN_KERNEL = np.array([
    [0, -1, 0],
    [-1, 4, -1],
    [0, -1, 0],
], dtype=np.float64)


def enhance_contrast(buffer: RGBABuffer, strength: float) -> RGBABuffer:
    """
    Stretch every RGB channel around mid-gray by ``1 + strength / 50``.

    Args:
        buffer: Source pixels (not modified)
        strength: 0-100; 0 returns an unchanged copy

    Returns:
        New buffer with the same alpha channel
    """
    result = buffer.copy()
    if strength <= 0:
        return result

    opaque = buffer.opaque_mask()
    if not opaque.any():
        return result

    lum = luminance(buffer.rgb[opaque].astype(np.float64))
    if float(lum.max()) - float(lum.min()) <= 0:
        # Flat image, nothing to stretch
        return result

    factor = 1.0 + strength / 50.0
    rgb = buffer.rgb.astype(np.float64)
    stretched = MID_GRAY + (rgb - MID_GRAY) * factor
    stretched = np.clip(np.rint(stretched), 0, 255).astype(np.uint8)

    result.data[..., :3] = np.where(opaque[..., np.newaxis], stretched, buffer.rgb)
    logger.debug("Contrast stretched by factor %.2f", factor)
    return result


def sharpen(buffer: RGBABuffer, strength: float) -> RGBABuffer:
    """
    Unsharp mask with a 4-neighbour Laplacian, ``amount = strength / 100``.

    Transparent pixels and the 1-pixel border keep their original values.
    """
    result = buffer.copy()
    if strength <= 0 or buffer.width < 3 or buffer.height < 3:
        return result

    amount = strength / 100.0
    rgb = buffer.rgb.astype(np.float64)

    interior = np.zeros((buffer.height, buffer.width), dtype=bool)
    interior[1:-1, 1:-1] = True
    target = interior & (buffer.alpha >= ALPHA_OPAQUE)
    if not target.any():
        return result

    for channel in range(3):
        laplacian = ndimage.convolve(rgb[..., channel], LAPLACIAN_KERNEL, mode="nearest")
        sharpened = np.clip(np.rint(rgb[..., channel] + amount * laplacian), 0, 255)
        result.data[..., channel][target] = sharpened[target].astype(np.uint8)

    logger.debug("Sharpened with amount %.2f", amount)
    return result


def preprocess(buffer: RGBABuffer, contrast: float = 0.0, sharpen_strength: float = 0.0) -> RGBABuffer:
    """Contrast first, then sharpen. The input buffer is never mutated."""
    result = enhance_contrast(buffer, contrast)
    return sharpen(result, sharpen_strength)
