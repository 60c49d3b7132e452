import numpy as np
import pytest
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from stitchkit.color_math import delta_e76, lab_to_rgb, rgb_to_lab
from stitchkit.palette import PaletteMatcher, get_thread_palette
from stitchkit.quantize import ColorQuantizer, WeightedColor, build_histogram, snap_to_palette


def _population(*entries):
    return [WeightedColor.from_rgb(rgb, weight) for rgb, weight in entries]


def _as_set(colors):
    return {tuple(int(round(v)) for v in c) for c in colors}


def test_histogram_buckets_and_weights():
    colors = np.array([(1, 1, 1), (3, 3, 3), (100, 100, 100)], dtype=np.float64)
    histogram = build_histogram(colors, bucket=8)
    assert len(histogram) == 2
    by_weight = sorted(histogram, key=lambda c: c.weight)
    assert by_weight[0].weight == 1 and np.allclose(by_weight[0].rgb, (100, 100, 100))
    assert by_weight[1].weight == 2 and np.allclose(by_weight[1].rgb, (2, 2, 2))
    assert np.allclose(by_weight[1].lab, rgb_to_lab((2, 2, 2)))
    assert build_histogram(np.zeros((0, 3))) == []


def test_k_at_least_distinct_returns_deduplicated_input():
    population = _population(
        ((255, 0, 0), 1),
        ((0, 255, 0), 2),
        ((255, 0, 0), 4),
        ((0, 0, 255), 1),
    )
    for k in (3, 5):
        result = ColorQuantizer().quantize(population, k)
        assert _as_set(result) == {(255, 0, 0), (0, 255, 0), (0, 0, 255)}


def test_k_one_returns_weighted_lab_centroid():
    population = _population(((255, 0, 0), 3), ((0, 0, 255), 1))
    result = ColorQuantizer(seed=3).quantize(population, 1)

    expected_lab = (3 * rgb_to_lab((255, 0, 0)) + rgb_to_lab((0, 0, 255))) / 4
    assert result.shape == (1, 3)
    assert np.allclose(result[0], lab_to_rgb(expected_lab), atol=1e-6)


def test_two_clusters_converge_to_red_and_blue_for_any_seed():
    population = _population(
        ((255, 0, 0), 10),
        ((250, 6, 4), 10),
        ((0, 0, 255), 10),
        ((4, 6, 250), 10),
    )
    red, blue = rgb_to_lab((255, 0, 0)), rgb_to_lab((0, 0, 255))
    for seed in range(1, 8):
        centroids = rgb_to_lab(ColorQuantizer(seed=seed).quantize(population, 2))
        to_red = delta_e76(centroids, red)
        to_blue = delta_e76(centroids, blue)
        assert sorted([int(np.argmin(to_red)), int(np.argmin(to_blue))]) == [0, 1]
        assert to_red.min() < 10 and to_blue.min() < 10


def test_red_blue_example_independent_of_first_seed():
    population = _population(((255, 0, 0), 10), ((0, 0, 255), 10))
    for seed in (1, 2, 3):
        assert _as_set(ColorQuantizer(seed=seed).quantize(population, 2)) == {(255, 0, 0), (0, 0, 255)}


def test_legacy_rgb_mode_rounds_centroids():
    population = _population(
        ((0, 0, 0), 1),
        ((10, 10, 10), 1),
        ((250, 250, 250), 1),
        ((240, 240, 240), 1),
    )
    for seed in (1, 2, 5):
        quantizer = ColorQuantizer(color_space="rgb", init="random", max_iter=20, seed=seed)
        assert _as_set(quantizer.quantize(population, 2)) == {(5, 5, 5), (245, 245, 245)}


def test_invalid_arguments():
    with pytest.raises(ValueError):
        ColorQuantizer(color_space="hsv")
    with pytest.raises(ValueError):
        ColorQuantizer(init="grid")
    with pytest.raises(ValueError):
        ColorQuantizer().quantize(_population(((0, 0, 0), 1)), 0)
    assert ColorQuantizer().quantize([], 4).shape == (0, 3)


def test_snap_to_palette_collapses_duplicates_in_order():
    matcher = PaletteMatcher(get_thread_palette())
    centroids = np.array([(0, 0, 0), (255, 255, 255), (1, 1, 1)], dtype=np.float64)
    snapped = snap_to_palette(centroids, matcher)
    assert [c.code for c in snapped] == ["310", "B5200"]


def test_snap_to_palette_uses_candidates():
    palette = get_thread_palette()
    matcher = PaletteMatcher(palette)
    subset = palette.subset(["321", "797"])
    snapped = snap_to_palette(np.array([(250, 0, 0), (0, 0, 250), (240, 10, 10)]), matcher, subset)
    assert [c.code for c in snapped] == ["321", "797"]


def test_seed_zero_is_honoured():
    assert ColorQuantizer(seed=0).rng.randint(1 << 30) == np.random.RandomState(0).randint(1 << 30)
    assert ColorQuantizer(seed=None).rng.randint(1 << 30) == np.random.RandomState(42).randint(1 << 30)
