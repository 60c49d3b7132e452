"""
Low-level color science utilities shared by the conversion pipeline and the palette.

Provides:
    - sRGB ↔ Lab conversion helpers (D65 white point, sRGB primaries)
    - CIE76 color difference (plain Euclidean distance in Lab)

CIE76 is used on purpose: thread matching runs once per grid cell against a
few hundred catalog entries, and the simple metric keeps results stable and
fast. Do not swap in CIE94/CIEDE2000 here.

All functions accept NumPy arrays shaped (..., 3) so callers can convert whole
grids at once, and they also work with plain tuples for single colors.
"""

from __future__ import annotations

import numpy as np

SRGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ],
    dtype=np.float64,
)

XYZ_TO_SRGB = np.linalg.inv(SRGB_TO_XYZ)

D65_WHITE = np.array([0.95047, 1.0, 1.08883], dtype=np.float64)

LAB_EPSILON = 0.008856
LAB_KAPPA_SLOPE = 7.787
LAB_OFFSET = 16 / 116


def _to_ndarray(color) -> np.ndarray:
    arr = np.asarray(color, dtype=np.float64)
    if arr.shape[-1] != 3:
        raise ValueError("Input color must have three channels")
    return arr


def srgb_to_linear(rgb) -> np.ndarray:
    """Convert sRGB in the 0-255 range to linear RGB (0-1)."""
    rgb = _to_ndarray(rgb) / 255.0
    return np.where(rgb > 0.04045, ((rgb + 0.055) / 1.055) ** 2.4, rgb / 12.92)


def linear_to_srgb(linear_rgb) -> np.ndarray:
    """Convert linear RGB (0-1) back to sRGB in the 0-255 range (unclipped floats)."""
    linear_rgb = np.clip(_to_ndarray(linear_rgb), 0.0, 1.0)
    srgb = np.where(
        linear_rgb > 0.0031308,
        1.055 * np.power(linear_rgb, 1 / 2.4) - 0.055,
        12.92 * linear_rgb,
    )
    return srgb * 255.0


def rgb_to_xyz(rgb) -> np.ndarray:
    """Convert sRGB to CIE XYZ (D65)."""
    linear = srgb_to_linear(rgb)
    return linear @ SRGB_TO_XYZ.T


def xyz_to_lab(xyz) -> np.ndarray:
    """Convert XYZ to Lab (D65) using the piecewise cube-root curve."""
    xyz = _to_ndarray(xyz) / D65_WHITE

    f = np.where(
        xyz > LAB_EPSILON,
        np.cbrt(xyz),
        LAB_KAPPA_SLOPE * xyz + LAB_OFFSET,
    )
    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]

    L = 116 * fy - 16
    a = 500 * (fx - fy)
    b = 200 * (fy - fz)
    return np.stack([L, a, b], axis=-1)


def lab_to_xyz(lab) -> np.ndarray:
    """Convert Lab (D65) back to XYZ."""
    lab = _to_ndarray(lab)
    L, a, b = lab[..., 0], lab[..., 1], lab[..., 2]

    fy = (L + 16) / 116
    fx = fy + a / 500
    fz = fy - b / 200
    f = np.stack([fx, fy, fz], axis=-1)

    cubed = f**3
    xyz = np.where(cubed > LAB_EPSILON, cubed, (f - LAB_OFFSET) / LAB_KAPPA_SLOPE)
    return xyz * D65_WHITE


def rgb_to_lab(rgb) -> np.ndarray:
    """Convenience helper for sRGB (0-255) → Lab."""
    return xyz_to_lab(rgb_to_xyz(rgb))


def lab_to_rgb(lab) -> np.ndarray:
    """Lab → sRGB as floats clipped to 0-255."""
    linear = lab_to_xyz(lab) @ XYZ_TO_SRGB.T
    return np.clip(linear_to_srgb(linear), 0.0, 255.0)


def lab_to_rgb8(lab) -> np.ndarray:
    """Lab → sRGB rounded to uint8."""
    return np.rint(lab_to_rgb(lab)).astype(np.uint8)


def delta_e76(lab1, lab2) -> np.ndarray:
    """
    CIE76 color difference with numpy broadcasting.

    lab1 and lab2 may be matching shapes (..., 3), or one of them a single
    color of shape (3,). Returns an array of the broadcast leading dimensions
    (a 0-d array for two single colors).
    """
    lab1 = _to_ndarray(lab1)
    lab2 = _to_ndarray(lab2)
    return np.sqrt(np.sum((lab1 - lab2) ** 2, axis=-1))


def luminance(rgb) -> np.ndarray:
    """Rec. 601 luma of sRGB values (same range as the input)."""
    rgb = _to_ndarray(rgb)
    return rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114


def hex_to_rgb(hex_color: str) -> tuple:
    """Parse '#RRGGBB' into an (r, g, b) tuple of ints."""
    value = hex_color.strip().lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Invalid hex color: {hex_color!r}")
    return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))
