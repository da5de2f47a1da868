"""
dxfscene

Loads DXF drawings into a renderable, queryable vector scene.

Key Features:
- LINE, ARC, CIRCLE, bulge polylines and B-splines up to degree 3 as Bezier paths
- Block references with nesting and row/column arrays
- Layer, block and entity style resolution into a shared paint palette
- Transform hierarchy with incremental world transform updates
- Bounding box trees for culling and exact-distance picking
"""

__version__ = "0.3.0"
__author__ = ""

# Drawing assembly
from .drawing import (
    DrawingLoader,
    DrawingLoadError,
    DrawingInfo,
    TDDrawing,
    EntityHandle,
    LayerHandle,
    load_file,
)

# Scene graph
from .graphics_bag import (
    GraphicsBag,
    GraphicsItem,
    FatShape,
    FatText,
    FatPaint,
    Color,
    ItemHandle,
    PaintHandle,
    TransformHandle,
    InvalidHandleError,
    ROOT_TRANSFORM,
    DEFAULT_PAINT,
)
from .render_layer import RenderLayer

# Geometry
from .geometry import (
    path_from_entity,
    spline_path,
    add_bulge_segment,
    point_from_dxf_point,
    DEFAULT_ACCURACY,
)

# Styles and blocks
from .style import (
    StyleResolver,
    RestrokePaint,
    LayerInfo,
    EntityStyle,
)
from .blocks import (
    BlockChunk,
    resolve_blocks,
    cell_transforms,
)

# Text
from .text import (
    Alignment,
    AttachmentPoint,
    TextStyle,
    TextLayout,
    TextMeasurer,
    EstimatedTextMeasurer,
)

# Spatial indices and view
from .spatial_index import EntityIndex, TextCullIndex
from .view import (
    fit_view,
    update_view,
    viewport_rect,
    cull_render_layer,
    pick_at,
    highlight_layer,
    light_adapt_paints,
)

__all__ = [
    # Version
    "__version__",
    # Drawing assembly
    "DrawingLoader",
    "DrawingLoadError",
    "DrawingInfo",
    "TDDrawing",
    "EntityHandle",
    "LayerHandle",
    "load_file",
    # Scene graph
    "GraphicsBag",
    "GraphicsItem",
    "FatShape",
    "FatText",
    "FatPaint",
    "Color",
    "ItemHandle",
    "PaintHandle",
    "TransformHandle",
    "InvalidHandleError",
    "ROOT_TRANSFORM",
    "DEFAULT_PAINT",
    "RenderLayer",
    # Geometry
    "path_from_entity",
    "spline_path",
    "add_bulge_segment",
    "point_from_dxf_point",
    "DEFAULT_ACCURACY",
    # Styles and blocks
    "StyleResolver",
    "RestrokePaint",
    "LayerInfo",
    "EntityStyle",
    "BlockChunk",
    "resolve_blocks",
    "cell_transforms",
    # Text
    "Alignment",
    "AttachmentPoint",
    "TextStyle",
    "TextLayout",
    "TextMeasurer",
    "EstimatedTextMeasurer",
    # Spatial indices and view
    "EntityIndex",
    "TextCullIndex",
    "fit_view",
    "update_view",
    "viewport_rect",
    "cull_render_layer",
    "pick_at",
    "highlight_layer",
    "light_adapt_paints",
]
