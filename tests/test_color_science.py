import numpy as np
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from stitchkit.color_math import delta_e76, hex_to_rgb, lab_to_rgb, rgb_to_lab
from stitchkit.palette import PaletteMatcher, get_thread_palette


def test_reference_whites_and_blacks():
    white = rgb_to_lab((255, 255, 255))
    black = rgb_to_lab((0, 0, 0))
    assert np.allclose(white, (100.0, 0.0, 0.0), atol=0.05)
    assert np.allclose(black, (0.0, 0.0, 0.0), atol=1e-6)


def test_lab_round_trip_for_reference_colors():
    samples = np.array([
        (0, 0, 0),
        (255, 255, 255),
        (255, 0, 0),
        (0, 255, 0),
        (0, 0, 255),
        (128, 128, 128),
        (197, 47, 60),
        (32, 64, 168),
        (224, 192, 152),
    ], dtype=np.float64)
    restored = lab_to_rgb(rgb_to_lab(samples))
    assert np.allclose(restored, samples, atol=0.5)


def test_delta_e_is_zero_on_identity_and_symmetric():
    palette = get_thread_palette()
    labs = palette.lab_array
    assert np.allclose(delta_e76(labs, labs), 0.0)

    shifted = np.roll(labs, 1, axis=0)
    assert np.allclose(delta_e76(labs, shifted), delta_e76(shifted, labs))


def test_delta_e_matches_euclidean_distance():
    lab1 = np.array([50.0, 10.0, -10.0])
    lab2 = np.array([53.0, 14.0, -10.0])
    assert float(delta_e76(lab1, lab2)) == 5.0


def test_reference_dmc_hues_have_expected_lab_signatures():
    palette = get_thread_palette()
    checks = {
        "310": lambda lab: lab[0] < 5,
        "B5200": lambda lab: lab[0] > 95,
        "321": lambda lab: lab[1] > 40,
        "444": lambda lab: lab[2] > 60,
        "700": lambda lab: lab[1] < -20 and lab[2] > 15,
        "797": lambda lab: lab[2] < -20,
        "738": lambda lab: lab[0] > 75 and abs(lab[1]) < 10,
    }
    for code, predicate in checks.items():
        color = palette.get_color_by_code(code)
        assert color is not None, f"Missing DMC code {code}"
        assert predicate(color.lab), f"DMC {code} Lab {color.lab} failed hue check"


def test_catalog_colors_snap_to_themselves():
    palette = get_thread_palette()
    matcher = PaletteMatcher(palette)
    rgb_counts = {}
    for color in palette:
        rgb_counts[color.rgb] = rgb_counts.get(color.rgb, 0) + 1

    for color in palette:
        if rgb_counts[color.rgb] > 1:
            continue
        assert matcher.nearest(color.rgb).code == color.code


def test_hex_parsing():
    assert hex_to_rgb("#C52F3C") == (197, 47, 60)
    assert hex_to_rgb("ffffff") == (255, 255, 255)
