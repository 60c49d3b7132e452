"""
Serpentine Floyd-Steinberg error diffusion onto a fixed set of thread colors.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from .color_math import delta_e76, rgb_to_lab
from .errors import ConversionCancelled
from .grid import EMPTY
from .palette import TIE_EPSILON, PreferredCodeTieBreak, ThreadColor, TieBreakPolicy

logger = logging.getLogger(__name__)

# (dx, dy, weight) for a left-to-right scan; mirrored on right-to-left rows
FLOYD_STEINBERG_TAPS = (
    (1, 0, 7.0 / 16.0),
    (-1, 1, 3.0 / 16.0),
    (0, 1, 5.0 / 16.0),
    (1, 1, 1.0 / 16.0),
)


class FloydSteinbergDitherer:
    """Maps sampled cell colors to palette ids, diffusing the residual error."""

    def __init__(self, strength: float = 1.0, tie_break: Optional[TieBreakPolicy] = None):
        if not (0.0 <= strength <= 1.0):
            raise ValueError("Dither strength must be between 0 and 1")
        self.strength = strength
        self.tie_break = tie_break or PreferredCodeTieBreak()

    def _closest(self, distances: np.ndarray, used_colors: Sequence[ThreadColor]) -> int:
        """Index of the nearest used color, ties settled like the palette matcher."""
        tied = np.nonzero(distances - distances.min() <= TIE_EPSILON)[0]
        if len(tied) == 1:
            return int(tied[0])
        winner = self.tie_break.choose([used_colors[i] for i in tied])
        return next(int(i) for i in tied if used_colors[i] is winner)

    def dither(self, colors: np.ndarray, mask: np.ndarray, used_colors: Sequence[ThreadColor],
               cancel_event=None) -> np.ndarray:
        """
        Dither sampled colors onto ``used_colors``.

        Args:
            colors: Sampled RGB colors, shape (H, W, 3)
            mask: True where the source cell is non-empty, shape (H, W)
            used_colors: Thread colors allowed in the output
            cancel_event: Optional threading.Event checked once per row

        Returns:
            (H, W) int32 array of thread ids, EMPTY where ``mask`` is False
        """
        height, width = mask.shape
        ids = np.full((height, width), EMPTY, dtype=np.int32)
        if not used_colors or not mask.any():
            return ids

        palette_lab = np.array([c.lab for c in used_colors], dtype=np.float64)
        palette_rgb = np.array([c.rgb for c in used_colors], dtype=np.float64)
        palette_ids = np.array([c.id for c in used_colors], dtype=np.int32)

        # Error buffer seeded from the sampled colors
        work = np.asarray(colors, dtype=np.float64).copy()

        for y in range(height):
            if cancel_event is not None and cancel_event.is_set():
                raise ConversionCancelled("Conversion cancelled during dithering")

            left_to_right = y % 2 == 0
            xs = range(width) if left_to_right else range(width - 1, -1, -1)
            direction = 1 if left_to_right else -1

            for x in xs:
                if not mask[y, x]:
                    continue

                adjusted = np.clip(work[y, x], 0.0, 255.0)
                distances = delta_e76(palette_lab, rgb_to_lab(adjusted))
                best = self._closest(distances, used_colors)
                ids[y, x] = palette_ids[best]

                error = (adjusted - palette_rgb[best]) * self.strength
                for dx, dy, weight in FLOYD_STEINBERG_TAPS:
                    nx, ny = x + dx * direction, y + dy
                    if 0 <= nx < width and ny < height and mask[ny, nx]:
                        work[ny, nx] += error * weight

        logger.debug("Dithered %d cells at strength %.2f", int(mask.sum()), self.strength)
        return ids


def map_nearest(colors: np.ndarray, mask: np.ndarray, used_colors: Sequence[ThreadColor],
                matcher, cancel_event=None) -> np.ndarray:
    """Plain nearest-color mapping of every non-empty cell (no dithering)."""
    height, width = mask.shape
    ids = np.full((height, width), EMPTY, dtype=np.int32)
    if not used_colors or not mask.any():
        return ids
    if cancel_event is not None and cancel_event.is_set():
        raise ConversionCancelled("Conversion cancelled during mapping")

    palette_ids = np.array([c.id for c in used_colors], dtype=np.int32)
    indices = matcher.nearest_indices(colors[mask], list(used_colors))
    ids[mask] = palette_ids[indices]
    return ids


def make_ditherer(mode: str, strength: float,
                  tie_break: Optional[TieBreakPolicy] = None) -> Optional[FloydSteinbergDitherer]:
    """Ditherer for a mode name, or None for no dithering."""
    if mode == "none" or strength <= 0:
        return None
    if mode == "floyd_steinberg":
        return FloydSteinbergDitherer(strength, tie_break)
    raise ValueError(f"Unknown dithering mode: {mode}")
