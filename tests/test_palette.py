import numpy as np
import pytest
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from stitchkit.palette import (
    PaletteMatcher,
    PreferredCodeTieBreak,
    ThreadPalette,
    TieBreakPolicy,
    get_thread_palette,
    nearest_thread,
)


def test_default_catalog_loads_with_unique_codes():
    palette = get_thread_palette()
    assert len(palette) > 250
    codes = [c.code for c in palette]
    assert len(codes) == len(set(codes))
    assert [c.id for c in palette] == list(range(len(palette)))
    assert palette.lab_array.shape == (len(palette), 3)


def test_lookup_by_code_is_case_insensitive():
    palette = get_thread_palette()
    assert palette.get_color_by_code("b5200").code == "B5200"
    assert palette.get_color_by_code(" 310 ").name == "Black"
    assert palette.get_color_by_code("NOPE") is None
    assert palette.get(-1) is None
    assert palette.get(len(palette)) is None


def test_malformed_rows_are_skipped(tmp_path):
    csv_path = tmp_path / "catalog.csv"
    csv_path.write_text(
        "code,name,hex\n"
        "310,Black,#000000\n"
        ",Missing code,#FFFFFF\n"
        "999,Bad hex,#XYZ\n"
        "310,Duplicate,#010101\n"
        "B5200,Snow White,#FFFFFF\n",
        encoding="utf-8",
    )
    palette = ThreadPalette.from_csv(str(csv_path))
    assert [c.code for c in palette] == ["310", "B5200"]


def test_missing_catalog_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ThreadPalette.from_csv(str(tmp_path / "absent.csv"))


def test_tie_prefers_canonical_white():
    palette = ThreadPalette([
        ("X1", "Other White", (255, 255, 255)),
        ("B5200", "Snow White", (255, 255, 255)),
        ("310", "Black", (0, 0, 0)),
    ])
    matcher = PaletteMatcher(palette)
    assert matcher.nearest((250, 250, 250)).code == "B5200"
    assert palette.colors[matcher.nearest_indices(np.array([[250, 250, 250]]))[0]].code == "B5200"


def test_tie_without_preferred_code_takes_first_candidate():
    palette = get_thread_palette()
    matcher = PaletteMatcher(palette)
    # 318 and 535 share one RGB value; 318 comes first in the catalog
    assert matcher.nearest((152, 152, 152)).code == "318"


def test_tie_break_policy_is_swappable():
    palette = ThreadPalette([
        ("X1", "Other White", (255, 255, 255)),
        ("B5200", "Snow White", (255, 255, 255)),
    ])
    assert PaletteMatcher(palette, TieBreakPolicy()).nearest((255, 255, 255)).code == "X1"
    assert PaletteMatcher(palette, PreferredCodeTieBreak(["X1"])).nearest((255, 255, 255)).code == "X1"


def test_nearest_respects_candidate_subset():
    palette = get_thread_palette()
    subset = palette.subset(["310", "B5200"])
    matcher = PaletteMatcher(palette)
    assert matcher.nearest((30, 30, 30), subset).code == "310"
    assert matcher.nearest((220, 220, 220), subset).code == "B5200"

    with pytest.raises(ValueError):
        matcher.nearest((0, 0, 0), [])


def test_vectorised_search_agrees_with_scalar_search():
    palette = get_thread_palette()
    matcher = PaletteMatcher(palette)
    rng = np.random.RandomState(7)
    samples = rng.randint(0, 256, size=(40, 3))
    indices = matcher.nearest_indices(samples)
    for rgb, idx in zip(samples, indices):
        assert palette.colors[idx].code == matcher.nearest(rgb).code


def test_subset_skips_unknown_codes_and_keeps_order():
    palette = get_thread_palette()
    subset = palette.subset(["B5200", "NOPE", "310", "B5200"])
    assert [c.code for c in subset] == ["B5200", "310"]


def test_search_and_export():
    palette = get_thread_palette()
    assert any(c.code == "310" for c in palette.search("black"))
    exported = palette.export_to_dict()
    assert exported["310"]["hex"] == "#000000"
    assert nearest_thread((1, 1, 1)).code == "310"
