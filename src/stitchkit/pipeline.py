"""
Photo → thread pattern conversion pipeline.

Preprocess → layout → sample → histogram → quantize → snap to catalog →
map (or dither) every cell. The pipeline is CPU-bound; :meth:`ConversionPipeline.submit`
runs it on a caller-supplied executor and a ``threading.Event`` cancels it
between rows.
"""

import logging
import time
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import ConversionOptions, PaletteConfig
from .dither import make_ditherer, map_nearest
from .errors import ProcessingError, ValidationError
from .grid import PixelGrid
from .image_io import RGBABuffer
from .palette import PaletteMatcher, PreferredCodeTieBreak, ThreadColor, ThreadPalette, get_thread_palette
from .preprocess import preprocess
from .quantize import ColorQuantizer, WeightedColor, build_histogram, snap_to_palette
from .sampler import sample_cells

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridLayout:
    """Placement of the scaled source image inside the target grid."""
    grid_width: int
    grid_height: int
    scaled_width: int
    scaled_height: int
    offset_x: int
    offset_y: int


def compute_layout(source_width: int, source_height: int,
                   grid_width: int, grid_height: int) -> GridLayout:
    """
    Fit the source aspect ratio inside the grid, centred.

    Wide sources are letterboxed (empty rows above and below), tall sources
    pillarboxed (empty columns left and right).
    """
    if source_width <= 0 or source_height <= 0:
        raise ProcessingError(f"Source image has zero size ({source_width}x{source_height})")
    if grid_width <= 0 or grid_height <= 0:
        raise ProcessingError(f"Target grid has zero size ({grid_width}x{grid_height})")

    scale = min(grid_width / source_width, grid_height / source_height)
    scaled_width = min(grid_width, max(1, int(round(source_width * scale))))
    scaled_height = min(grid_height, max(1, int(round(source_height * scale))))

    return GridLayout(
        grid_width=grid_width,
        grid_height=grid_height,
        scaled_width=scaled_width,
        scaled_height=scaled_height,
        offset_x=(grid_width - scaled_width) // 2,
        offset_y=(grid_height - scaled_height) // 2,
    )


@dataclass
class ConversionResult:
    """Pipeline output: the grid and the thread colors that occur in it."""
    grid: PixelGrid
    used_colors: List[ThreadColor]
    layout: GridLayout
    metadata: Dict = field(default_factory=dict)

    def color_counts(self) -> List[Tuple[ThreadColor, int]]:
        """(thread, stitch count) for every used color, most stitched first."""
        counts = self.grid.count_by_color()
        pairs = [(color, counts.get(color.id, 0)) for color in self.used_colors]
        return sorted(pairs, key=lambda pair: pair[1], reverse=True)


class ConversionPipeline:
    """Converts RGBA buffers into thread-color grids."""

    def __init__(self, options: Optional[ConversionOptions] = None,
                 palette: Optional[ThreadPalette] = None,
                 palette_config: Optional[PaletteConfig] = None):
        self.options = options or ConversionOptions()
        palette_config = palette_config or PaletteConfig()
        self.palette = palette or get_thread_palette(palette_config.catalog_file)
        self.matcher = PaletteMatcher(self.palette, PreferredCodeTieBreak(palette_config.preferred_on_tie))

    def _candidates(self) -> Optional[List[ThreadColor]]:
        if self.options.palette_subset is None:
            return None
        candidates = self.palette.subset(self.options.palette_subset)
        if not candidates:
            raise ProcessingError("Palette subset does not contain any known thread codes")
        return candidates

    def run(self, buffer, cancel_event=None) -> ConversionResult:
        """
        Convert a decoded image into a thread pattern.

        Args:
            buffer: RGBABuffer or (H, W, 4) uint8 array
            cancel_event: Optional threading.Event; when set the run stops
                between rows with ConversionCancelled

        Returns:
            ConversionResult with grid, used colors and layout
        """
        options = self.options
        if not isinstance(buffer, RGBABuffer):
            buffer = RGBABuffer(np.asarray(buffer))

        layout = compute_layout(buffer.width, buffer.height, options.grid_width, options.grid_height)
        options.validate()
        candidates = self._candidates()

        start_time = time.time()
        logger.info("Converting %dx%d image to %dx%d grid (%d colors max)",
                    buffer.width, buffer.height, layout.grid_width, layout.grid_height,
                    options.max_colors)

        # Step 1: optional contrast / sharpen
        if options.contrast > 0 or options.sharpen > 0:
            buffer = preprocess(buffer, options.contrast, options.sharpen)

        # Step 2: sample every cell of the scaled region
        colors, mask = sample_cells(buffer, layout, options.sampling, cancel_event)

        if options.treat_white_as_empty:
            near_white = np.all(colors >= options.white_threshold, axis=-1)
            mask &= ~near_white

        grid = PixelGrid.empty(layout.grid_width, layout.grid_height)
        if not mask.any():
            logger.info("No opaque cells sampled, returning an empty grid")
            return ConversionResult(grid=grid, used_colors=[], layout=layout)

        # Step 3: coarse histogram of the sampled colors
        population = build_histogram(colors[mask], options.histogram_bucket)
        logger.debug("Histogram has %d buckets", len(population))

        # Step 4: cluster and snap to the catalog
        quantizer = ColorQuantizer(
            color_space=options.color_space,
            init=options.kmeans_init,
            max_iter=options.max_iterations,
            seed=options.seed,
        )
        centroids = quantizer.quantize(population, options.max_colors)
        palette_colors = snap_to_palette(centroids, self.matcher, candidates)

        # Step 5: map every cell to the used colors, optionally dithered
        ditherer = make_ditherer(options.dithering, options.dither_strength, self.matcher.tie_break)
        if ditherer is not None:
            ids = ditherer.dither(colors, mask, palette_colors, cancel_event)
        else:
            ids = map_nearest(colors, mask, palette_colors, self.matcher, cancel_event)

        grid.cells[layout.offset_y:layout.offset_y + layout.scaled_height,
                   layout.offset_x:layout.offset_x + layout.scaled_width] = ids

        present = set(grid.used_color_ids())
        used_colors = [color for color in palette_colors if color.id in present]

        elapsed = time.time() - start_time
        logger.info("Conversion finished in %.2fs: %d colors, %d stitches",
                    elapsed, len(used_colors), grid.stitch_count())

        return ConversionResult(
            grid=grid,
            used_colors=used_colors,
            layout=layout,
            metadata={
                "source_size": (buffer.width, buffer.height),
                "histogram_buckets": len(population),
                "processing_time": elapsed,
            },
        )

    def submit(self, executor: Executor, buffer, cancel_event=None) -> Future:
        """Run the conversion on ``executor``; the future resolves to a ConversionResult."""
        return executor.submit(self.run, buffer, cancel_event)


def convert_image(buffer, options: Optional[ConversionOptions] = None,
                  palette: Optional[ThreadPalette] = None) -> ConversionResult:
    """Convenience wrapper around :class:`ConversionPipeline`."""
    return ConversionPipeline(options, palette).run(buffer)


def reduce_colors(grid: PixelGrid, used_colors: Sequence[ThreadColor], target_count: int,
                  matcher: Optional[PaletteMatcher] = None,
                  seed: Optional[int] = 42) -> Tuple[PixelGrid, List[ThreadColor]]:
    """
    Re-cluster an existing grid's colors down to ``target_count`` threads.

    Each used color is weighted by its stitch count, clustered in Lab,
    snapped back to the catalog and every cell remapped to its nearest new
    color. Grids already within the target are returned unchanged (copied).
    """
    if target_count < 1:
        raise ValidationError("Target color count must be at least 1")
    used_colors = list(used_colors)
    if len(used_colors) <= target_count:
        return grid.copy(), used_colors

    matcher = matcher or PaletteMatcher(get_thread_palette())
    counts = grid.count_by_color()
    population = [
        WeightedColor.from_rgb(color.rgb, max(counts.get(color.id, 0), 1))
        for color in used_colors
    ]

    centroids = ColorQuantizer(seed=seed).quantize(population, target_count)
    new_colors = snap_to_palette(centroids, matcher)

    # Old id -> new id lookup
    old_rgb = np.array([c.rgb for c in used_colors], dtype=np.float64)
    nearest = matcher.nearest_indices(old_rgb, new_colors)
    remap = {old.id: new_colors[int(idx)].id for old, idx in zip(used_colors, nearest)}

    result = grid.copy()
    for old_id, new_id in remap.items():
        result.cells[grid.cells == old_id] = new_id

    present = set(result.used_color_ids())
    reduced = [color for color in new_colors if color.id in present]
    logger.info("Reduced %d colors to %d", len(used_colors), len(reduced))
    return result, reduced
