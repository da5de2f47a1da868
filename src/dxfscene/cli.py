"""
Command Line Interface for dxfscene

Usage:
    dxfscene info drawing.dxf
    dxfscene pick drawing.dxf 12.5 40 --radius 0.5
    dxfscene cull drawing.dxf 0 0 100 100
"""

import logging
import sys
from collections import Counter

import click
from tqdm import tqdm

from . import __version__
from .drawing import DrawingLoadError, DrawingLoader, TDDrawing
from .geometry import DEFAULT_ACCURACY
from .graphics_bag import FatShape, FatText
from .spatial_index import EntityIndex, TextCullIndex
from .style import MILLIMETER
from .text import EstimatedTextMeasurer


def load_drawing(input_file: str, accuracy: float, quiet: bool) -> TDDrawing:
    """Load a drawing, showing progress unless quiet; exits on failure."""
    loader = DrawingLoader(accuracy)
    bar = None
    if not quiet:
        bar = tqdm(total=100, desc="Loading", unit="%", leave=False)

        def progress_callback(stage: str, progress: float):
            bar.set_description(stage)
            bar.update(int(progress * 100) - bar.n)

        loader.set_progress_callback(progress_callback)

    try:
        return loader.load_file(input_file)
    except DrawingLoadError as e:
        click.echo(click.style(f"✗ {e}", fg="red"), err=True)
        sys.exit(1)
    finally:
        if bar is not None:
            bar.close()


input_argument = click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
accuracy_option = click.option(
    "-a", "--accuracy",
    type=float,
    default=DEFAULT_ACCURACY,
    show_default=True,
    help="Maximum deviation of curve approximations in model units"
)
quiet_option = click.option("-q", "--quiet", is_flag=True, help="Do not show progress")


@click.group()
@click.version_option(version=__version__, prog_name="dxfscene")
@click.option("-v", "--verbose", count=True, help="Log more details (repeat for debug output)")
def main(verbose: int):
    """
    Load DXF drawings into a vector scene and query it.

    Coordinates are model units with the y axis pointing down.
    """
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@input_argument
@accuracy_option
@quiet_option
def info(input_file, accuracy, quiet):
    """Show what a drawing was loaded into."""
    drawing = load_drawing(input_file, accuracy, quiet)
    graphics = drawing.graphics

    kinds = Counter(type(graphics.get(h)).__name__ for h in drawing.render_layer)
    weights = sorted({r.weight for r in drawing.restroke_paints})

    click.echo(click.style(f"{input_file}", bold=True))
    click.echo(f"  Items: {len(drawing.render_layer)}")
    click.echo(f"    Shapes: {kinds.get(FatShape.__name__, 0)}")
    click.echo(f"    Texts: {kinds.get(FatText.__name__, 0)}")
    click.echo(f"  Entities: {len(set(drawing.item_entity_map.values()))}")
    click.echo(f"  Paints: {len(graphics.paints)}")
    click.echo("  Line weights (mm): " + ", ".join(f"{w / MILLIMETER:.2f}" for w in weights))

    click.echo("  Layers:")
    for handle, name in sorted(drawing.layer_names.items(), key=lambda kv: kv[1].lower()):
        mark = click.style("on", fg="green") if handle in drawing.enabled_layers else click.style("off", fg="red")
        click.echo(f"    - {name} ({mark})")

    if drawing.skipped:
        click.echo("  Skipped entities:")
        for dxftype, count in sorted(drawing.skipped.items()):
            click.echo(f"    - {dxftype}: {count}")

    bounds = EntityIndex(drawing).bounds()
    if bounds is not None:
        x0, y0, x1, y1 = bounds
        click.echo(f"  Bounds: ({x0:.3f}, {y0:.3f}) - ({x1:.3f}, {y1:.3f})")
    sys.exit(0)


@main.command()
@input_argument
@click.argument("x", type=float)
@click.argument("y", type=float)
@click.option("-r", "--radius", type=float, default=1.0, show_default=True,
              help="Pick radius in model units")
@accuracy_option
@quiet_option
def pick(input_file, x, y, radius, accuracy, quiet):
    """Find the entity closest to a model point."""
    drawing = load_drawing(input_file, accuracy, quiet)
    handle = EntityIndex(drawing).pick(x, y, radius)
    if handle is None:
        click.echo("Nothing within radius")
        sys.exit(0)

    entity = drawing.info.get_entity(handle)
    layer = drawing.layer_names.get(drawing.entity_layer_map.get(handle), "?")
    click.echo(click.style(f"#{handle:X} {entity.dxftype()}", fg="green") + f" on layer {layer}")
    sys.exit(0)


@main.command()
@input_argument
@click.argument("left", type=float)
@click.argument("top", type=float)
@click.argument("right", type=float)
@click.argument("bottom", type=float)
@accuracy_option
@quiet_option
def cull(input_file, left, top, right, bottom, accuracy, quiet):
    """Count items overlapping a model rectangle."""
    drawing = load_drawing(input_file, accuracy, quiet)
    shapes = EntityIndex(drawing).query_items(left, top, right, bottom)
    texts = TextCullIndex(EstimatedTextMeasurer(), drawing).query_items(left, top, right, bottom)
    click.echo(f"Shapes: {len(shapes)}")
    click.echo(f"Texts: {len(texts)}")
    sys.exit(0)


if __name__ == "__main__":
    main()
