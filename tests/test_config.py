import pytest
import yaml
from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from stitchkit.config import Config, ConversionOptions, PRESETS, preset_options
from stitchkit.errors import ValidationError


def test_missing_file_gives_defaults(tmp_path):
    config = Config.from_yaml(str(tmp_path / "absent.yaml"))
    assert config.conversion.grid_width == 112
    assert config.conversion.color_space == "lab"
    assert config.palette.preferred_on_tie == ["B5200"]
    assert config.editor.max_layers == 10
    assert config.usage.mesh_count == 14


def test_yaml_sections_and_overrides(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "conversion": {"grid_width": 80, "max_colors": 8},
        "usage": {"mesh_count": 18},
    }), encoding="utf-8")

    config = Config.from_yaml(str(path), max_colors=12, stitch_type="basketweave", seed=None)
    assert config.conversion.grid_width == 80
    assert config.conversion.max_colors == 12
    assert config.conversion.seed == 42
    assert config.usage.mesh_count == 18
    assert config.usage.stitch_type == "basketweave"


def test_preset_key_in_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"conversion": {"preset": "legacy", "grid_width": 50}}),
                    encoding="utf-8")
    config = Config.from_yaml(str(path))
    assert config.conversion.color_space == "rgb"
    assert config.conversion.sampling == "center"
    assert config.conversion.grid_width == 50


def test_unknown_keys_and_bad_values_raise(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"conversion": {"colour_count": 3}}), encoding="utf-8")
    with pytest.raises(ValidationError):
        Config.from_yaml(str(path))

    path.write_text(yaml.safe_dump({"conversion": {"dither_strength": 2.0}}), encoding="utf-8")
    with pytest.raises(ValidationError):
        Config.from_yaml(str(path))

    path.write_text(yaml.safe_dump({"usage": {"mesh_count": 10}}), encoding="utf-8")
    with pytest.raises(ValidationError):
        Config.from_yaml(str(path))


def test_save_and_reload(tmp_path):
    config = Config()
    config.conversion.max_colors = 6
    config.conversion.palette_subset = ["310", "B5200"]
    path = tmp_path / "nested" / "config.yaml"
    config.save_yaml(str(path))

    reloaded = Config.from_yaml(str(path))
    assert reloaded.to_dict() == config.to_dict()


def test_option_validation():
    ConversionOptions().validate()
    for bad in (
        {"grid_width": 0},
        {"max_colors": 0},
        {"color_space": "hsv"},
        {"kmeans_init": "grid"},
        {"sampling": "median"},
        {"dithering": "bayer"},
        {"contrast": 150},
        {"white_threshold": 300},
    ):
        with pytest.raises(ValidationError):
            ConversionOptions(**bad).validate()


def test_presets():
    assert set(PRESETS) == {"legacy", "photo", "graphic", "detailed"}
    for name in PRESETS:
        preset_options(name).validate()

    photo = preset_options("Photo", max_colors=20, contrast=None)
    assert photo.dithering == "floyd_steinberg"
    assert photo.max_colors == 20
    assert photo.contrast == 20.0

    with pytest.raises(ValidationError):
        preset_options("watercolor")
