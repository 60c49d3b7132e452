"""
Command-line interface for stitchkit.
"""

import json
import logging
import os
import sys

import click

from .config import PRESETS, Config, preset_options
from .errors import StitchkitError
from .grid import PixelGrid
from .image_io import load_rgba, save_preview
from .layers import LayerStack
from .palette import get_thread_palette
from .pipeline import ConversionPipeline, reduce_colors
from .usage import calculate_yarn_usage, total_skeins, total_stitches, total_yards

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_grid_document(path: str, palette) -> PixelGrid:
    """Read a grid JSON written by ``convert`` or a stored layer stack."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if "layers" in data:
        return LayerStack.from_dict(data, palette).composite()
    return PixelGrid.from_codes(data["grid"], palette)


def _grid_document(grid: PixelGrid, used_colors, palette) -> dict:
    return {
        "width": grid.width,
        "height": grid.height,
        "colors": [
            {"code": c.code, "name": c.name, "hex": c.hex}
            for c in used_colors
        ],
        "grid": grid.to_codes(palette),
    }


@click.group()
@click.version_option(version="1.0.0")
@click.option('--verbose', '-v', is_flag=True, help='Show debug output')
def cli(verbose):
    """
    stitchkit - photo to needlepoint pattern converter

    Convert photos into DMC Pearl Cotton thread patterns.
    """
    _setup_logging(verbose)


@cli.command()
@click.argument('input_image', type=click.Path(exists=True))
@click.argument('output_json', type=click.Path())
@click.option('--config', '-c', default='config.yaml', help='Configuration file path')
@click.option('--preset', '-p', type=click.Choice(sorted(PRESETS)), help='Conversion preset')
@click.option('--width', '-w', type=int, help='Grid width in stitches')
@click.option('--height', '-h', type=int, help='Grid height in stitches')
@click.option('--colors', '-n', 'max_colors', type=int, help='Maximum number of thread colors')
@click.option('--dither/--no-dither', default=None, help='Floyd-Steinberg dithering')
@click.option('--dither-strength', type=float, help='Dithering strength (0-1)')
@click.option('--contrast', type=float, help='Contrast boost (0-100)')
@click.option('--sharpen', type=float, help='Sharpen strength (0-100)')
@click.option('--subset', help='Comma-separated thread codes to restrict the palette')
@click.option('--keep-white', is_flag=True, help='Stitch near-white cells instead of leaving them empty')
@click.option('--preview', type=click.Path(), help='Also write a PNG preview')
def convert(input_image, output_json, config, preset, width, height, max_colors, dither,
            dither_strength, contrast, sharpen, subset, keep_white, preview):
    """
    Convert an image into a thread pattern.

    INPUT_IMAGE: Path to input image (JPG/PNG supported)
    OUTPUT_JSON: Path for the pattern (grid of thread codes)
    """
    try:
        overrides = {
            'grid_width': width,
            'grid_height': height,
            'max_colors': max_colors,
            'dithering': None if dither is None else ('floyd_steinberg' if dither else 'none'),
            'dither_strength': dither_strength,
            'contrast': contrast,
            'sharpen': sharpen,
            'palette_subset': [c.strip() for c in subset.split(',') if c.strip()] if subset else None,
            'treat_white_as_empty': False if keep_white else None,
        }

        cfg = Config.from_yaml(config)
        options = cfg.conversion
        if preset:
            options = preset_options(preset)
        options = options.with_overrides(**overrides)
        options.validate()

        palette = get_thread_palette(cfg.palette.catalog_file)
        buffer = load_rgba(input_image)

        click.echo(f"[kit] Converting to a {options.grid_width}x{options.grid_height} grid "
                   f"with up to {options.max_colors} colors...")
        pipeline = ConversionPipeline(options, palette, cfg.palette)
        result = pipeline.run(buffer)

        output_dir = os.path.dirname(output_json)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)
        with open(output_json, 'w', encoding='utf-8') as f:
            json.dump(_grid_document(result.grid, result.used_colors, palette), f)

        if preview:
            save_preview(result.grid, palette, preview)

        click.echo(f"[OK] Pattern saved: {output_json}")
        for color, count in result.color_counts():
            click.echo(f"  {color.code:>6}  {color.name:<28} {count:>6} stitches")

    except (StitchkitError, OSError, ValueError) as e:
        click.echo(f"[X] Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--search', '-s', help='Filter by name or code')
@click.option('--config', '-c', default='config.yaml', help='Configuration file path')
def palette(search, config):
    """List the thread catalog."""
    try:
        cfg = Config.from_yaml(config)
        catalog = get_thread_palette(cfg.palette.catalog_file)
        colors = catalog.search(search) if search else list(catalog)
        for color in colors:
            click.echo(f"{color.code:>6}  {color.hex}  {color.name}")
        click.echo(f"{len(colors)} of {len(catalog)} colors")
    except (StitchkitError, OSError, ValueError) as e:
        click.echo(f"[X] Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('grid_json', type=click.Path(exists=True))
@click.option('--config', '-c', default='config.yaml', help='Configuration file path')
@click.option('--mesh', type=click.Choice(['14', '18']), help='Canvas mesh count')
@click.option('--stitch-type', type=click.Choice(['continental', 'basketweave']), help='Stitch type')
@click.option('--buffer', 'buffer_percent', type=float, help='Extra thread in percent')
def usage(grid_json, config, mesh, stitch_type, buffer_percent):
    """Estimate thread usage for a saved pattern."""
    try:
        cfg = Config.from_yaml(
            config,
            mesh_count=int(mesh) if mesh else None,
            stitch_type=stitch_type,
            buffer_percent=buffer_percent,
        )
        catalog = get_thread_palette(cfg.palette.catalog_file)
        grid = _load_grid_document(grid_json, catalog)

        counts = {}
        for color_id, count in grid.count_by_color().items():
            counts[catalog.get(color_id).code] = count

        usages = calculate_yarn_usage(
            counts,
            mesh_count=cfg.usage.mesh_count,
            stitch_type=cfg.usage.stitch_type,
            buffer_percent=cfg.usage.buffer_percent,
        )
        for u in usages:
            wound = "" if u.uses_full_skein else " (wound)"
            click.echo(f"  {u.code:>6}  {u.stitch_count:>6} stitches  "
                       f"{u.yards_with_buffer:>7.2f} yd  {u.skeins_needed} skein(s){wound}")
        click.echo(f"Total: {total_stitches(usages)} stitches, "
                   f"{total_yards(usages):.2f} yd, {total_skeins(usages)} skeins")
    except (StitchkitError, OSError, ValueError, KeyError) as e:
        click.echo(f"[X] Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('grid_json', type=click.Path(exists=True))
@click.argument('output_json', type=click.Path())
@click.option('--colors', '-n', 'target', type=int, required=True, help='Target number of colors')
def reduce(grid_json, output_json, target):
    """Reduce the number of colors in a saved pattern."""
    try:
        catalog = get_thread_palette()
        grid = _load_grid_document(grid_json, catalog)
        used = [catalog.get(i) for i in grid.used_color_ids()]
        new_grid, new_colors = reduce_colors(grid, used, target)
        with open(output_json, 'w', encoding='utf-8') as f:
            json.dump(_grid_document(new_grid, new_colors, catalog), f)
        click.echo(f"[OK] {len(used)} -> {len(new_colors)} colors: {output_json}")
    except (StitchkitError, OSError, ValueError, KeyError) as e:
        click.echo(f"[X] Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--output', '-o', default='config.yaml', help='Output configuration file path')
def init_config(output):
    """Create a default configuration file."""
    if os.path.exists(output) and not click.confirm(f"Configuration file '{output}' already exists. Overwrite?"):
        click.echo("Configuration creation cancelled.")
        return
    Config().save_yaml(output)
    click.echo(f"[OK] Configuration written: {output}")


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
