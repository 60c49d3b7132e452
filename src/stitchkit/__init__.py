"""
Needlepoint Pattern Kit

Converts photos into DMC Pearl Cotton thread patterns and provides a layered,
undoable pixel-grid editor for refining them.
"""

__version__ = "1.0.0"
__author__ = "stitchkit"

from .config import Config, ConversionOptions, preset_options
from .palette import PaletteMatcher, ThreadColor, ThreadPalette, get_thread_palette
from .image_io import RGBABuffer, load_rgba
from .quantize import ColorQuantizer
from .dither import FloydSteinbergDitherer
from .pipeline import ConversionPipeline, ConversionResult, reduce_colors
from .grid import EMPTY, PixelGrid
from .layers import Layer, LayerStack
from .history import History
from .editor import EditorSession, Tool

__all__ = [
    "Config",
    "ConversionOptions",
    "preset_options",
    "PaletteMatcher",
    "ThreadColor",
    "ThreadPalette",
    "get_thread_palette",
    "RGBABuffer",
    "load_rgba",
    "ColorQuantizer",
    "FloydSteinbergDitherer",
    "ConversionPipeline",
    "ConversionResult",
    "reduce_colors",
    "EMPTY",
    "PixelGrid",
    "Layer",
    "LayerStack",
    "History",
    "EditorSession",
    "Tool",
]
