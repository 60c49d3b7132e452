"""
Weighted k-means color quantization with thread palette snapping.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .color_math import delta_e76, lab_to_rgb, rgb_to_lab
from .palette import PaletteMatcher, ThreadColor

logger = logging.getLogger(__name__)


@dataclass
class WeightedColor:
    """A source color with its observed frequency."""
    rgb: np.ndarray
    lab: np.ndarray
    weight: float

    @classmethod
    def from_rgb(cls, rgb, weight: float = 1.0) -> "WeightedColor":
        rgb = np.asarray(rgb, dtype=np.float64)
        return cls(rgb=rgb, lab=rgb_to_lab(rgb), weight=float(weight))


def build_histogram(colors: np.ndarray, bucket: int = 8) -> List[WeightedColor]:
    """
    Bucket sampled colors into coarse RGB cubes.

    Args:
        colors: RGB samples of shape (N, 3)
        bucket: Edge length of a bucket in RGB units

    Returns:
        One WeightedColor per occupied bucket: the mean of its members,
        weighted by member count, ordered by bucket key.
    """
    colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
    if len(colors) == 0:
        return []

    keys = np.floor(colors / bucket).astype(np.int64)
    _, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)

    sums = np.zeros((len(counts), 3), dtype=np.float64)
    np.add.at(sums, inverse, colors)
    means = sums / counts[:, np.newaxis]
    labs = rgb_to_lab(means)

    return [
        WeightedColor(rgb=means[i], lab=labs[i], weight=float(counts[i]))
        for i in range(len(counts))
    ]


class ColorQuantizer:
    """
    Reduces a weighted color population to k representative colors.

    ``color_space="lab"`` clusters by CIE76 distance and averages in Lab;
    ``color_space="rgb"`` is the legacy mode: squared RGB distance, rounded
    RGB centroids, stopping once centroids no longer change. Seeding is
    ``"kmeans++"`` or uniform ``"random"``.
    """

    def __init__(self, color_space: str = "lab", init: str = "kmeans++",
                 max_iter: int = 30, tolerance: float = 1.0, seed: Optional[int] = 42):
        if color_space not in ("rgb", "lab"):
            raise ValueError(f"Unknown color space: {color_space}")
        if init not in ("random", "kmeans++"):
            raise ValueError(f"Unknown initialisation: {init}")
        self.color_space = color_space
        self.init = init
        self.max_iter = max_iter
        self.tolerance = tolerance
        self.rng = np.random.RandomState(42 if seed is None else seed)

    @staticmethod
    def _dedupe(population: Sequence[WeightedColor]):
        """Merge identical RGB values, summing their weights (first-seen order)."""
        rgb = np.array([c.rgb for c in population], dtype=np.float64).reshape(-1, 3)
        weights = np.array([c.weight for c in population], dtype=np.float64)

        _, first_idx, inverse = np.unique(rgb, axis=0, return_index=True, return_inverse=True)
        inverse = inverse.reshape(-1)
        summed = np.zeros(len(first_idx), dtype=np.float64)
        np.add.at(summed, inverse, weights)

        order = np.argsort(first_idx)
        return rgb[first_idx[order]], summed[order]

    def _distances(self, points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """(N, K) distance matrix in the working space."""
        if self.color_space == "lab":
            return delta_e76(points[:, np.newaxis, :], centroids[np.newaxis, :, :])
        diff = points[:, np.newaxis, :] - centroids[np.newaxis, :, :]
        return np.sum(diff ** 2, axis=-1)

    def _seed(self, points: np.ndarray, weights: np.ndarray, k: int) -> np.ndarray:
        n = len(points)
        if self.init == "random":
            return points[self.rng.choice(n, size=k, replace=False)].copy()

        # k-means++: first seed weight-proportional, then weight x d^2
        chosen = [int(self.rng.choice(n, p=weights / weights.sum()))]
        for _ in range(1, k):
            d = self._distances(points, points[chosen]).min(axis=1)
            if self.color_space == "lab":
                d = d ** 2
            probs = weights * d
            total = probs.sum()
            if total <= 0:
                remaining = [i for i in range(n) if i not in chosen]
                chosen.append(int(self.rng.choice(remaining)))
                continue
            chosen.append(int(self.rng.choice(n, p=probs / total)))
        return points[chosen].copy()

    def quantize(self, population: Sequence[WeightedColor], k: int) -> np.ndarray:
        """
        Cluster the population to at most k colors.

        Returns:
            RGB centroids of shape (k', 3) as floats in 0-255
        """
        if k < 1:
            raise ValueError("k must be at least 1")
        if not population:
            return np.zeros((0, 3), dtype=np.float64)

        rgb, weights = self._dedupe(population)
        if k >= len(rgb):
            logger.debug("%d distinct colors <= k=%d, skipping clustering", len(rgb), k)
            return rgb

        points = rgb_to_lab(rgb) if self.color_space == "lab" else rgb
        centroids = self._seed(points, weights, k)

        for iteration in range(self.max_iter):
            labels = np.argmin(self._distances(points, centroids), axis=1)

            new_centroids = centroids.copy()
            for i in range(k):
                members = labels == i
                if not members.any():
                    # Empty cluster keeps its centroid
                    continue
                w = weights[members]
                new_centroids[i] = (points[members] * w[:, np.newaxis]).sum(axis=0) / w.sum()

            if self.color_space == "rgb":
                new_centroids = np.rint(new_centroids)
                converged = np.array_equal(new_centroids, centroids)
            else:
                converged = bool(np.all(delta_e76(new_centroids, centroids) < self.tolerance))

            centroids = new_centroids
            if converged:
                logger.debug("k-means converged after %d iterations", iteration + 1)
                break

        if self.color_space == "lab":
            return lab_to_rgb(centroids)
        return centroids


def snap_to_palette(centroids: np.ndarray, matcher: PaletteMatcher,
                    candidates: Optional[Sequence[ThreadColor]] = None) -> List[ThreadColor]:
    """Nearest thread per centroid; duplicates collapsed, first-seen order kept."""
    centroids = np.asarray(centroids, dtype=np.float64).reshape(-1, 3)
    if len(centroids) == 0:
        return []

    pool = list(candidates) if candidates is not None else matcher.palette.colors
    indices = matcher.nearest_indices(centroids, pool)

    used: List[ThreadColor] = []
    for idx in indices:
        color = pool[int(idx)]
        if color not in used:
            used.append(color)
    return used
