"""
Configuration management for the thread pattern converter and editor.
"""

import os
from dataclasses import dataclass, field, fields, replace
from typing import Dict, List, Literal, Optional

import yaml

from .errors import ValidationError


@dataclass
class PaletteConfig:
    """Thread catalog configuration."""
    catalog_file: Optional[str] = None  # None = packaged DMC Pearl Cotton catalog
    preferred_on_tie: List[str] = field(default_factory=lambda: ["B5200"])


@dataclass
class ConversionOptions:
    """
    All options of a photo → pattern conversion.

    Defaults are the quality settings: Lab clustering seeded with k-means++,
    Gaussian-weighted sampling and no dithering. The old behaviour (RGB
    clustering, random seeds, center sampling) is the ``legacy`` preset.
    """
    grid_width: int = 112
    grid_height: int = 112
    max_colors: int = 16
    color_space: Literal["rgb", "lab"] = "lab"
    kmeans_init: Literal["random", "kmeans++"] = "kmeans++"
    sampling: Literal["center", "weighted"] = "weighted"
    dithering: Literal["none", "floyd_steinberg"] = "none"
    dither_strength: float = 0.5        # 0-1
    contrast: float = 0.0               # 0-100
    sharpen: float = 0.0                # 0-100
    palette_subset: Optional[List[str]] = None  # thread codes, None = full catalog
    treat_white_as_empty: bool = True
    white_threshold: int = 250
    histogram_bucket: int = 8
    max_iterations: int = 30
    seed: Optional[int] = 42

    def validate(self):
        """Validate option values."""
        if self.grid_width <= 0 or self.grid_height <= 0:
            raise ValidationError("Grid dimensions must be positive")

        if self.max_colors < 1:
            raise ValidationError("Max colors must be at least 1")

        if self.color_space not in ("rgb", "lab"):
            raise ValidationError(f"Unknown color space: {self.color_space}")

        if self.kmeans_init not in ("random", "kmeans++"):
            raise ValidationError(f"Unknown k-means initialisation: {self.kmeans_init}")

        if self.sampling not in ("center", "weighted"):
            raise ValidationError(f"Unknown sampling method: {self.sampling}")

        if self.dithering not in ("none", "floyd_steinberg"):
            raise ValidationError(f"Unknown dithering mode: {self.dithering}")

        if not (0 <= self.dither_strength <= 1):
            raise ValidationError("Dither strength must be between 0 and 1")

        if not (0 <= self.contrast <= 100) or not (0 <= self.sharpen <= 100):
            raise ValidationError("Contrast and sharpen strengths must be between 0 and 100")

        if not (0 <= self.white_threshold <= 255):
            raise ValidationError("White threshold must be between 0 and 255")

        if self.histogram_bucket < 1:
            raise ValidationError("Histogram bucket size must be at least 1")

        if self.max_iterations < 1:
            raise ValidationError("Max iterations must be at least 1")

    def with_overrides(self, **overrides) -> "ConversionOptions":
        """Copy with the given non-None fields replaced."""
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in overrides.items() if k in known and v is not None}
        return replace(self, **changes)


# Named presets. "legacy" keeps the numeric defaults of the first converter.
PRESETS: Dict[str, dict] = {
    "legacy": {
        "color_space": "rgb",
        "kmeans_init": "random",
        "sampling": "center",
        "dithering": "none",
        "dither_strength": 0.0,
        "contrast": 0.0,
        "sharpen": 0.0,
        "max_iterations": 20,
    },
    "photo": {
        "dithering": "floyd_steinberg",
        "dither_strength": 0.6,
        "contrast": 20.0,
        "sharpen": 30.0,
    },
    "graphic": {
        "dithering": "none",
        "dither_strength": 0.0,
        "contrast": 40.0,
        "sharpen": 0.0,
    },
    "detailed": {
        "dithering": "floyd_steinberg",
        "dither_strength": 0.4,
        "contrast": 30.0,
        "sharpen": 50.0,
    },
}


def preset_options(name: str, **overrides) -> ConversionOptions:
    """Build ConversionOptions from a named preset plus overrides."""
    key = name.lower()
    if key not in PRESETS:
        raise ValidationError(f"Unknown preset '{name}'. Available: {', '.join(PRESETS)}")
    options = ConversionOptions(**PRESETS[key])
    return options.with_overrides(**overrides)


@dataclass
class EditorConfig:
    """Editor limits and defaults."""
    max_layers: int = 10
    max_history: int = 100
    min_brush_size: int = 1
    max_brush_size: int = 10
    default_width: int = 112
    default_height: int = 112


@dataclass
class UsageConfig:
    """Yarn usage estimate settings."""
    mesh_count: Literal[14, 18] = 14
    stitch_type: Literal["continental", "basketweave"] = "continental"
    buffer_percent: float = 20.0


@dataclass
class Config:
    """Main configuration class."""
    config_file: Optional[str] = None

    palette: PaletteConfig = field(default_factory=PaletteConfig)
    conversion: ConversionOptions = field(default_factory=ConversionOptions)
    editor: EditorConfig = field(default_factory=EditorConfig)
    usage: UsageConfig = field(default_factory=UsageConfig)

    @classmethod
    def from_yaml(cls, config_path: str, **overrides) -> "Config":
        """Load configuration from YAML file with optional overrides."""
        if not os.path.exists(config_path):
            # Return default config if file doesn't exist
            config = cls()
            config.config_file = config_path
        else:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            conversion_data = dict(data.get("conversion", {}))
            preset = conversion_data.pop("preset", None)

            try:
                if preset:
                    conversion = preset_options(preset, **conversion_data)
                else:
                    conversion = ConversionOptions(**conversion_data)
                config = cls(
                    config_file=config_path,
                    palette=PaletteConfig(**data.get("palette", {})),
                    conversion=conversion,
                    editor=EditorConfig(**data.get("editor", {})),
                    usage=UsageConfig(**data.get("usage", {})),
                )
            except TypeError as e:
                raise ValidationError(f"Invalid configuration in {config_path}: {e}") from e

        # Apply CLI overrides
        for key, value in overrides.items():
            if value is None:
                continue
            for section in (config.conversion, config.palette, config.editor, config.usage):
                if hasattr(section, key):
                    setattr(section, key, value)
                    break

        config.validate()
        return config

    def validate(self):
        """Validate configuration parameters."""
        self.conversion.validate()

        if not (1 <= self.editor.max_layers <= 10):
            raise ValidationError("Max layers must be between 1 and 10")

        if self.editor.max_history < 1:
            raise ValidationError("History size must be at least 1")

        if not (1 <= self.editor.min_brush_size <= self.editor.max_brush_size):
            raise ValidationError("Brush size bounds are inconsistent")

        if self.editor.default_width <= 0 or self.editor.default_height <= 0:
            raise ValidationError("Canvas dimensions must be positive")

        if self.usage.mesh_count not in (14, 18):
            raise ValidationError("Mesh count must be 14 or 18")

        if self.usage.stitch_type not in ("continental", "basketweave"):
            raise ValidationError(f"Unknown stitch type: {self.usage.stitch_type}")

        if self.usage.buffer_percent < 0:
            raise ValidationError("Buffer percent must be non-negative")

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        c = self.conversion
        return {
            'palette': {
                'catalog_file': self.palette.catalog_file,
                'preferred_on_tie': list(self.palette.preferred_on_tie),
            },
            'conversion': {
                'grid_width': c.grid_width,
                'grid_height': c.grid_height,
                'max_colors': c.max_colors,
                'color_space': c.color_space,
                'kmeans_init': c.kmeans_init,
                'sampling': c.sampling,
                'dithering': c.dithering,
                'dither_strength': c.dither_strength,
                'contrast': c.contrast,
                'sharpen': c.sharpen,
                'palette_subset': list(c.palette_subset) if c.palette_subset else None,
                'treat_white_as_empty': c.treat_white_as_empty,
                'white_threshold': c.white_threshold,
                'histogram_bucket': c.histogram_bucket,
                'max_iterations': c.max_iterations,
                'seed': c.seed,
            },
            'editor': {
                'max_layers': self.editor.max_layers,
                'max_history': self.editor.max_history,
                'min_brush_size': self.editor.min_brush_size,
                'max_brush_size': self.editor.max_brush_size,
                'default_width': self.editor.default_width,
                'default_height': self.editor.default_height,
            },
            'usage': {
                'mesh_count': self.usage.mesh_count,
                'stitch_type': self.usage.stitch_type,
                'buffer_percent': self.usage.buffer_percent,
            },
        }

    def save_yaml(self, path: Optional[str] = None):
        """Save configuration to YAML file."""
        if path is None:
            path = self.config_file or "config.yaml"

        # Ensure directory exists
        dir_path = os.path.dirname(path)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, indent=2)
