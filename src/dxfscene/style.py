"""
Style Resolver

Resolves entity color and lineweight against layer defaults and interns
the resulting (color, weight) pairs into the paint palette of a graphics
bag. Stroke widths depend on the view, so every interned paint is paired
with its physical weight in a RestrokePaint for later adaptation.
"""

import math
from dataclasses import dataclass, replace
from typing import Dict, List, NamedTuple, Optional, Tuple

from ezdxf.colors import aci2rgb, int2rgb
from ezdxf.lldxf.const import BYLAYER, LINEWEIGHT_BYLAYER

from .graphics_bag import WHITE, Color, FatPaint, GraphicsBag, PaintHandle

# Color enum value meaning "use the entity's true color"
BYENTITY = 257

# Default lineweight in hundredths of a millimeter
LWDEFAULT = 25

# Lengths in nanometers
MICROMETER = 1_000
MILLIMETER = 1_000_000
INCH = 25_400_000

# Reference pixel density of a display at scale factor 1
CSS_PIXELS_PER_INCH = 96

# Color used when nothing else resolves
FALLBACK_COLOR = WHITE

# Transparency flag marking an explicit alpha value in the low byte
TRANSPARENCY_EXPLICIT = 0x02000000


class EntityStyle(NamedTuple):
    """Raw color and lineweight enums of an entity"""
    color: int = BYLAYER
    lineweight: int = LINEWEIGHT_BYLAYER
    true_color: Optional[int] = None

    @classmethod
    def from_entity(cls, entity) -> "EntityStyle":
        true_color = entity.dxf.get("true_color", None)
        color = entity.dxf.get("color", BYLAYER)
        if true_color is not None:
            color = BYENTITY
        return cls(color, entity.dxf.get("lineweight", LINEWEIGHT_BYLAYER), true_color)


@dataclass(frozen=True)
class LayerInfo:
    """Visibility and default style of a layer"""
    name: str
    is_on: bool = True
    color: int = 7
    true_color: Optional[int] = None
    lineweight: int = LINEWEIGHT_BYLAYER

    @classmethod
    def from_layer(cls, layer) -> "LayerInfo":
        return cls(
            name=layer.dxf.name,
            is_on=layer.is_on(),
            color=abs(layer.dxf.get("color", 7)),
            true_color=layer.dxf.get("true_color", None),
            lineweight=layer.dxf.get("lineweight", LINEWEIGHT_BYLAYER),
        )


def _aci_color(index: int) -> Optional[Color]:
    if 1 <= index <= 255:
        return Color(*aci2rgb(index))
    return None


def resolve_color(style: EntityStyle, layer: LayerInfo) -> Color:
    """
    Opaque color of an entity.

    Order: indexed color on the entity, the layer's color when by-layer,
    the true color when by-entity, and FALLBACK_COLOR otherwise. By-block
    is not resolvable at this level and falls back too.
    """
    color = None
    if style.color == BYLAYER:
        if layer.true_color is not None:
            color = Color(*int2rgb(layer.true_color))
        else:
            color = _aci_color(layer.color)
    elif style.color == BYENTITY:
        if style.true_color is not None:
            color = Color(*int2rgb(style.true_color))
    else:
        color = _aci_color(style.color)
    return color if color is not None else FALLBACK_COLOR


def resolve_alpha(transparency: Optional[int]) -> int:
    """Alpha from a raw DXF transparency value; by-layer and by-block are opaque."""
    if transparency is None or not transparency & TRANSPARENCY_EXPLICIT:
        return 255
    return transparency & 0xFF


def resolve_lineweight(lineweight: int, layer: LayerInfo) -> int:
    """
    Physical lineweight in nanometers.

    Explicit weights are hundredths of a millimeter. By-layer takes the
    layer's weight (LWDEFAULT when the layer has none). By-block, default
    and out of range values use LWDEFAULT.
    """
    if 0 <= lineweight <= 211:
        value = lineweight
    elif lineweight == LINEWEIGHT_BYLAYER and 0 <= layer.lineweight <= 211:
        value = layer.lineweight
    else:
        value = LWDEFAULT
    return value * 10 * MICROMETER


def pixel_pitch(scale_factor: float) -> int:
    """Size of a device pixel in nanometers for a display scale factor."""
    return INCH // max(1, math.trunc(CSS_PIXELS_PER_INCH * scale_factor))


@dataclass(frozen=True)
class RestrokePaint:
    """Physical line weight (nanometers) bound to a paint handle"""
    weight: int
    handle: PaintHandle

    def adapt(self, graphics: GraphicsBag, pitch: int, view_scale: float,
              min_stroke: float = 1.0, max_stroke: float = math.inf):
        """
        Set the paint's stroke width for the current view.

        Args:
            graphics: Bag owning the paint
            pitch: Device pixel size in nanometers
            view_scale: Device pixels per model unit
            min_stroke: Minimum width in device pixels
            max_stroke: Maximum width in device pixels
        """
        device = min(max(self.weight / pitch, min_stroke), max_stroke)
        paint = graphics.get_paint(self.handle)
        graphics.update_paint(self.handle, replace(paint, stroke_width=device / view_scale))


class StyleResolver:
    """
    Interns resolved styles into a graphics bag's palette.

    Usage:
        resolver = StyleResolver(graphics)
        paint = resolver.resolve_entity(entity, layers[entity.dxf.layer])
        ...
        restroke = resolver.restroke_paints
    """

    def __init__(self, graphics: GraphicsBag):
        self.graphics = graphics
        self._palette: Dict[Tuple[Color, int], PaintHandle] = {}
        self.restroke_paints: List[RestrokePaint] = []

    def __len__(self) -> int:
        return len(self._palette)

    def intern(self, color: Color, weight: int) -> PaintHandle:
        key = (color, weight)
        handle = self._palette.get(key)
        if handle is None:
            handle = self.graphics.register_paint(FatPaint(stroke_paint=color))
            self._palette[key] = handle
            self.restroke_paints.append(RestrokePaint(weight, handle))
        return handle

    def resolve(self, style: EntityStyle, layer: LayerInfo, alpha: int = 255) -> PaintHandle:
        color = resolve_color(style, layer).with_alpha(alpha)
        return self.intern(color, resolve_lineweight(style.lineweight, layer))

    def resolve_entity(self, entity, layer: LayerInfo) -> PaintHandle:
        alpha = resolve_alpha(entity.dxf.get("transparency", None))
        return self.resolve(EntityStyle.from_entity(entity), layer, alpha)
