"""
View

Functions run by an interactive viewer on a loaded drawing: fitting the
drawing into a viewport, adapting transforms and stroke widths after a
pan or zoom, culling, picking and building a highlight layer.

The view transform maps model space to device pixels and is installed as
the root transform of the drawing's graphics bag.
"""

import colorsys
import math
from dataclasses import replace
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np

from .drawing import EntityHandle, TDDrawing
from .graphics_bag import (
    DEFAULT_PAINT,
    ROOT_TRANSFORM,
    Color,
    FatPaint,
    FatShape,
    GraphicsBag,
)
from .render_layer import RenderLayer
from .segments import BBox
from .spatial_index import EntityIndex, TextCullIndex
from .style import RestrokePaint, pixel_pitch
from .transform import invert, scale, transform_point, transform_rect, translate

# Pick radius in device pixels at scale factor 1
PICK_RADIUS = 1.414

HIGHLIGHT_COLOR = Color(218, 165, 32)

# Highlight stroke width in device pixels
HIGHLIGHT_STROKE = 3.0


def fit_view(bounds: BBox, width: float, height: float) -> Tuple[np.ndarray, float]:
    """
    View transform showing ``bounds`` centered in a viewport.

    Args:
        bounds: Model space box (min_x, min_y, max_x, max_y)
        width: Viewport width in device pixels
        height: Viewport height in device pixels

    Returns:
        (view transform, view scale)
    """
    x0, y0, x1, y1 = bounds
    # Degenerate extents still get a finite scale
    span_x = max(x1 - x0, 1e-9)
    span_y = max(y1 - y0, 1e-9)
    view_scale = min(width / span_x, height / span_y)
    view = (
        translate(width / 2.0, height / 2.0)
        @ scale(view_scale)
        @ translate(-(x0 + x1) / 2.0, -(y0 + y1) / 2.0)
    )
    return view, view_scale


def update_view(graphics: GraphicsBag, restroke_paints: Iterable[RestrokePaint],
                view_transform: np.ndarray, view_scale: float,
                scale_factor: float = 1.0, min_stroke: float = 1.0,
                max_stroke: float = math.inf):
    """
    Install a new view: root transform, default stroke and restroked paints.

    Args:
        graphics: Bag of the loaded drawing
        restroke_paints: Paints bound to physical line weights
        view_transform: Model to device transform
        view_scale: Device pixels per model unit
        scale_factor: Display scale factor (device pixels per CSS pixel)
        min_stroke: Minimum stroke width in device pixels
        max_stroke: Maximum stroke width in device pixels
    """
    graphics.update_transforms([(ROOT_TRANSFORM, view_transform)])
    default = graphics.get_paint(DEFAULT_PAINT)
    graphics.update_paint(DEFAULT_PAINT, replace(default, stroke_width=1.0 / view_scale))
    pitch = pixel_pitch(scale_factor)
    for restroke in restroke_paints:
        restroke.adapt(graphics, pitch, view_scale, min_stroke, max_stroke)


def viewport_rect(view_transform: np.ndarray, width: float, height: float) -> BBox:
    """Model space box visible through a viewport."""
    return transform_rect(invert(view_transform), 0.0, 0.0, width, height)


def cull_render_layer(drawing: TDDrawing, entity_index: EntityIndex,
                      text_index: Optional[TextCullIndex], rect: BBox) -> RenderLayer:
    """Render layer of the items overlapping ``rect``, in drawing order."""
    visible = entity_index.query_items(*rect)
    if text_index is not None:
        visible |= text_index.query_items(*rect)
    return drawing.render_layer.filter(visible.__contains__)


def pick_at(entity_index: EntityIndex, view_transform: np.ndarray, view_scale: float,
            device_point: Sequence[float], scale_factor: float = 1.0) -> Optional[EntityHandle]:
    """Entity under a device space cursor."""
    x, y = transform_point(invert(view_transform), device_point[0], device_point[1])
    return entity_index.pick(x, y, scale_factor * PICK_RADIUS / view_scale)


def highlight_layer(drawing: TDDrawing, entity: EntityHandle, view_transform: np.ndarray,
                    view_scale: float, color: Color = HIGHLIGHT_COLOR) -> Tuple[GraphicsBag, RenderLayer]:
    """
    Separate bag and layer drawing one entity's shapes in a highlight color.

    The shapes share the drawing's paths; only paint and root transform
    are new.
    """
    bag = GraphicsBag()
    bag.update_transform(ROOT_TRANSFORM, view_transform)
    paint = bag.register_paint(FatPaint(stroke_width=HIGHLIGHT_STROKE / view_scale, stroke_paint=color))
    layer = RenderLayer()
    for handle in drawing.entity_items(entity):
        item = drawing.graphics.get(handle)
        if isinstance(item, FatShape):
            layer.push_with_bag(bag, FatShape(item.path, paint))
    return bag, layer


def invert_lightness(color: Color) -> Color:
    h, l, s = colorsys.rgb_to_hls(color.r / 255.0, color.g / 255.0, color.b / 255.0)
    r, g, b = colorsys.hls_to_rgb(h, 1.0 - l, s)
    return Color(round(r * 255), round(g * 255), round(b * 255), color.a)


def light_adapt_paints(graphics: GraphicsBag, render_layer: RenderLayer):
    """Invert the lightness of every paint used by a layer, for light backgrounds."""
    handles = {graphics.get(item).paint for item in render_layer}
    for handle in sorted(handles):
        paint = graphics.get_paint(handle)
        graphics.update_paint(handle, replace(
            paint,
            stroke_paint=invert_lightness(paint.stroke_paint) if paint.stroke_paint else None,
            fill_paint=invert_lightness(paint.fill_paint) if paint.fill_paint else None,
        ))
