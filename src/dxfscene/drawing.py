"""
Drawing Assembly

Loads a DXF file into a graphics bag and render layer: layers and text
styles first, then block definitions, then the model space entities in
drawing order. The loaded document is kept for on-demand entity lookup.
"""

import logging
import math
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, List, NewType, Optional, Set, Tuple, Union

import ezdxf
from ezdxf.document import Drawing
from ezdxf.entities import DXFEntity
from ezdxf.entities.mtext import ColumnType
from ezdxf.lldxf.const import DXFError

from .blocks import BlockLibrary, block_key, cell_transforms, inherit_style, resolve_blocks
from .geometry import DEFAULT_ACCURACY, has_plus_z_extrusion, path_from_entity, point_from_dxf_point
from .graphics_bag import WHITE, FatPaint, FatShape, FatText, GraphicsBag, ItemHandle
from .render_layer import RenderLayer
from .style import EntityStyle, LayerInfo, RestrokePaint, StyleResolver, resolve_alpha
from .text import Alignment, AttachmentPoint, TextStyle
from .transform import DirectIsometry

logger = logging.getLogger(__name__)

EntityHandle = NewType("EntityHandle", int)
LayerHandle = NewType("LayerHandle", int)

# Progress is reported every this many model space entities
PROGRESS_INTERVAL = 500

# Text height used when neither entity nor style provides one
DEFAULT_TEXT_HEIGHT = 2.5


class DrawingLoadError(Exception):
    """The drawing file could not be read or parsed"""


def dxf_handle(entity: DXFEntity) -> int:
    return int(entity.dxf.handle, 16)


@dataclass
class DrawingInfo:
    """The parsed source document, for detail lookup of entities"""
    document: Drawing

    def get_entity(self, handle: EntityHandle) -> Optional[DXFEntity]:
        """Original DXF entity for a handle, None if unknown."""
        return self.document.entitydb.get(format(handle, "X"))


@dataclass
class TDDrawing:
    """A loaded drawing"""
    graphics: GraphicsBag
    render_layer: RenderLayer
    item_entity_map: Dict[ItemHandle, EntityHandle]
    entity_layer_map: Dict[EntityHandle, LayerHandle]
    enabled_layers: Set[LayerHandle]
    layer_names: Dict[LayerHandle, str]
    info: DrawingInfo
    restroke_paints: List[RestrokePaint]
    skipped: Counter = field(default_factory=Counter)

    def entity_items(self, entity: EntityHandle) -> List[ItemHandle]:
        """Items derived from one entity, in draw order."""
        return [item for item, eh in self.item_entity_map.items() if eh == entity]


class _SceneBuilder:
    """Mutable state of one load"""

    def __init__(self, layers: Dict[str, Tuple[LayerHandle, LayerInfo]],
                 text_styles: Dict[str, TextStyle], library: BlockLibrary,
                 accuracy: float):
        self.layers = layers
        self.text_styles = text_styles
        self.library = library
        self.accuracy = accuracy

        self.graphics = GraphicsBag()
        self.graphics.register_paint(FatPaint(stroke_paint=WHITE))
        self.render_layer = RenderLayer()
        self.resolver = StyleResolver(self.graphics)
        self.item_entity_map: Dict[ItemHandle, EntityHandle] = {}
        self.entity_layer_map: Dict[EntityHandle, LayerHandle] = {}
        self.skipped: Counter = Counter()

    def _layer(self, entity) -> Tuple[Optional[LayerHandle], LayerInfo]:
        # Unknown layers fall back to layer "0"
        name = entity.dxf.get("layer", "0").lower()
        return self.layers.get(name) or self.layers.get("0") or (None, LayerInfo("0"))

    def _push(self, item, entity: EntityHandle):
        handle = self.render_layer.push_with_bag(self.graphics, item)
        self.item_entity_map[handle] = entity

    def _skip(self, entity):
        self.skipped[entity.dxftype()] += 1

    def add_entity(self, entity):
        layer_handle, layer = self._layer(entity)
        if not layer.is_on or entity.dxf.get("invisible", 0):
            return
        eh = EntityHandle(dxf_handle(entity))
        if layer_handle is not None:
            self.entity_layer_map[eh] = layer_handle

        dxftype = entity.dxftype()
        if dxftype == "INSERT":
            self._add_insert(entity, eh, layer)
        elif dxftype == "TEXT":
            self._add_text(entity, eh, layer)
        elif dxftype == "MTEXT":
            self._add_mtext(entity, eh, layer)
        else:
            self._add_shape(entity, eh, layer)

    def _add_shape(self, entity, eh: EntityHandle, layer: LayerInfo):
        path = path_from_entity(entity, self.accuracy)
        if path is None:
            self._skip(entity)
            return
        paint = self.resolver.resolve_entity(entity, layer)
        self._push(FatShape(path, paint), eh)

    def _add_insert(self, entity, eh: EntityHandle, layer: LayerInfo):
        chunks = self.library.get(block_key(entity.dxf.name))
        if chunks is None or not has_plus_z_extrusion(entity):
            logger.debug("skipping INSERT #%s of block %s", entity.dxf.handle, entity.dxf.name)
            self._skip(entity)
            return
        insert_style = EntityStyle.from_entity(entity)
        alpha = resolve_alpha(entity.dxf.get("transparency", None))
        paints = [
            self.resolver.resolve(inherit_style(chunk.style, insert_style), layer, alpha)
            for chunk in chunks
        ]
        for m in cell_transforms(entity):
            for chunk, paint in zip(chunks, paints):
                self._push(FatShape(chunk.path.transform(m), paint), eh)

    def _text_style(self, entity, height: float) -> TextStyle:
        style = self.text_styles.get(entity.dxf.get("style", "Standard").lower(), TextStyle())
        if style.font_size > 0:
            height = style.font_size
        return style.with_font_size(height)

    def _add_text(self, entity, eh: EntityHandle, layer: LayerInfo):
        style = self._text_style(entity, entity.dxf.get("height", DEFAULT_TEXT_HEIGHT))
        style = replace(
            style,
            width_factor=entity.dxf.get("width", style.width_factor),
            oblique_angle=entity.dxf.get("oblique", style.oblique_angle),
        )
        insertion = DirectIsometry(
            -math.radians(entity.dxf.get("rotation", 0.0)),
            tuple(point_from_dxf_point(entity.dxf.insert)),
        )
        paint = self.resolver.resolve_entity(entity, layer)
        # TEXT is anchored at the start of its baseline
        self._push(FatText(
            text=entity.plain_text(),
            style=style,
            insertion=insertion,
            alignment=Alignment.LEFT,
            attachment_point=AttachmentPoint.BOTTOM_LEFT,
            paint=paint,
        ), eh)

    def _add_mtext(self, entity, eh: EntityHandle, layer: LayerInfo):
        try:
            attachment = AttachmentPoint(entity.dxf.get("attachment_point", 1))
        except ValueError:
            attachment = AttachmentPoint.TOP_LEFT
        alignment = attachment.alignment
        width = entity.dxf.get("width", 0.0)
        columns = entity.columns
        if width <= 0 and columns is not None and columns.column_type == ColumnType.STATIC:
            width = columns.width
        max_inline_size = width if width > 0 and alignment != Alignment.MIDDLE else None

        style = self._text_style(entity, entity.dxf.get("char_height", DEFAULT_TEXT_HEIGHT))
        style = replace(style, line_height=entity.dxf.get("line_spacing_factor", 1.0))
        insertion = DirectIsometry(
            -math.radians(entity.get_rotation()),
            tuple(point_from_dxf_point(entity.dxf.insert)),
        )
        paint = self.resolver.resolve_entity(entity, layer)
        self._push(FatText(
            text=entity.plain_text(),
            style=style,
            insertion=insertion,
            alignment=alignment,
            attachment_point=attachment,
            max_inline_size=max_inline_size,
            paint=paint,
        ), eh)


class DrawingLoader:
    """
    Loads DXF drawings into a scene.

    Usage:
        loader = DrawingLoader()
        drawing = loader.load_file("plan.dxf")

        # Or with options
        loader = DrawingLoader(accuracy=0.01)
        loader.set_progress_callback(lambda stage, fraction: print(stage, fraction))
        drawing = loader.load_file("plan.dxf")
    """

    def __init__(self, accuracy: float = DEFAULT_ACCURACY):
        """
        Initialize loader.

        Args:
            accuracy: Maximum deviation of curve approximations in model units
        """
        self.accuracy = accuracy
        self._progress_callback: Optional[Callable[[str, float], None]] = None

    def set_progress_callback(self, callback: Callable[[str, float], None]):
        """
        Set a callback for progress updates.

        Args:
            callback: Function(stage: str, progress: float) where progress is 0-1
        """
        self._progress_callback = callback

    def _report_progress(self, stage: str, progress: float):
        """Report progress if callback is set"""
        if self._progress_callback:
            self._progress_callback(stage, progress)

    def load_file(self, path: Union[str, Path]) -> TDDrawing:
        """
        Read and assemble a DXF file.

        Args:
            path: Path of the DXF file

        Returns:
            The loaded drawing

        Raises:
            DrawingLoadError: The file is missing, unreadable or not valid DXF
        """
        self._report_progress("Reading", 0.0)
        start = time.perf_counter()
        try:
            doc = ezdxf.readfile(str(path))
        except (OSError, DXFError, UnicodeDecodeError) as e:
            raise DrawingLoadError(f"Cannot load {path}: {e}") from e
        logger.info("read %s in %.3fs", path, time.perf_counter() - start)
        return self.load_document(doc)

    def load_document(self, doc: Drawing) -> TDDrawing:
        """Assemble an already parsed DXF document."""
        layers: Dict[str, Tuple[LayerHandle, LayerInfo]] = {}
        layer_names: Dict[LayerHandle, str] = {}
        enabled_layers: Set[LayerHandle] = set()
        for layer in doc.layers:
            handle = LayerHandle(dxf_handle(layer))
            info = LayerInfo.from_layer(layer)
            layers[info.name.lower()] = (handle, info)
            layer_names[handle] = info.name
            if info.is_on:
                enabled_layers.add(handle)

        text_styles = {
            style.dxf.name.lower(): TextStyle(
                font_size=style.dxf.get("height", 0.0),
                width_factor=style.dxf.get("width", 1.0) or 1.0,
                oblique_angle=style.dxf.get("oblique", 0.0),
                font_family=style.dxf.get("font", "") or "sans-serif",
            )
            for style in doc.styles
        }

        self._report_progress("Resolving blocks", 0.1)
        start = time.perf_counter()
        library = resolve_blocks(
            doc.blocks, {name: info for name, (_, info) in layers.items()}, self.accuracy
        )
        logger.info("resolved %d blocks in %.3fs", len(library), time.perf_counter() - start)

        self._report_progress("Building scene", 0.2)
        start = time.perf_counter()
        builder = _SceneBuilder(layers, text_styles, library, self.accuracy)
        entities = list(doc.modelspace())
        for i, entity in enumerate(entities):
            builder.add_entity(entity)
            if i % PROGRESS_INTERVAL == 0:
                self._report_progress("Building scene", 0.2 + 0.8 * i / len(entities))
        logger.info(
            "built %d items from %d entities in %.3fs",
            len(builder.graphics), len(entities), time.perf_counter() - start,
        )
        if builder.skipped:
            logger.info("skipped entities: %s", dict(builder.skipped))

        self._report_progress("Done", 1.0)
        return TDDrawing(
            graphics=builder.graphics,
            render_layer=builder.render_layer,
            item_entity_map=builder.item_entity_map,
            entity_layer_map=builder.entity_layer_map,
            enabled_layers=enabled_layers,
            layer_names=layer_names,
            info=DrawingInfo(doc),
            restroke_paints=builder.resolver.restroke_paints,
            skipped=builder.skipped,
        )


def load_file(path: Union[str, Path], accuracy: float = DEFAULT_ACCURACY) -> TDDrawing:
    """
    Load a DXF file with default settings.

    Args:
        path: Path of the DXF file
        accuracy: Curve approximation tolerance

    Returns:
        The loaded drawing
    """
    return DrawingLoader(accuracy).load_file(path)
