"""
Block Expander

Flattens block definitions into styled chunks of geometry and expands
INSERT entities, including row/column arrays, into per cell transforms.

Blocks that insert other blocks are resolved by repeated passes: each pass
resolves every block whose dependencies are all resolved. A pass without
progress ends the loop, leaving cyclic or dangling blocks unresolved.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set

from ezdxf.layouts import BlockLayout
from ezdxf.lldxf.const import BYBLOCK, BYLAYER, LINEWEIGHT_BYBLOCK, LINEWEIGHT_BYLAYER
from ezdxf.math import Matrix44
from ezdxf.path import Path

from .geometry import (
    DEFAULT_ACCURACY,
    has_plus_z_extrusion,
    join_paths,
    path_from_entity,
    point_from_dxf_point,
)
from .style import BYENTITY, LWDEFAULT, EntityStyle, LayerInfo

logger = logging.getLogger(__name__)

DEFAULT_LAYER = "0"


@dataclass
class BlockChunk:
    """Consecutive geometry of a block sharing one style, relative to the base point"""
    style: EntityStyle
    path: Path


BlockLibrary = Dict[str, List[BlockChunk]]


def layer_for(layers: Mapping[str, LayerInfo], name: str) -> LayerInfo:
    """
    Layer by name, unknown names map to layer "0".

    Keys of ``layers`` are lower case, DXF layer names ignore case.
    """
    layer = layers.get(name.lower())
    if layer is None:
        layer = layers.get(DEFAULT_LAYER) or LayerInfo(DEFAULT_LAYER)
    return layer


def block_level_style(style: EntityStyle, layer: LayerInfo) -> EntityStyle:
    """
    Resolve by-layer values of an entity inside a block against its layer.

    By-block values are kept so the inserting entity can supply them.
    """
    color, true_color = style.color, style.true_color
    if color == BYLAYER:
        if layer.true_color is not None:
            color, true_color = BYENTITY, layer.true_color
        else:
            color = layer.color

    lineweight = style.lineweight
    if lineweight == LINEWEIGHT_BYLAYER:
        lineweight = layer.lineweight if 0 <= layer.lineweight <= 211 else LWDEFAULT
    elif lineweight != LINEWEIGHT_BYBLOCK and not 0 <= lineweight <= 211:
        lineweight = LWDEFAULT

    return EntityStyle(color, lineweight, true_color)


def inherit_style(style: EntityStyle, insert_style: EntityStyle) -> EntityStyle:
    """Replace by-block values of a chunk style with the insert's values."""
    color, true_color = style.color, style.true_color
    if color == BYBLOCK:
        color, true_color = insert_style.color, insert_style.true_color
    lineweight = style.lineweight
    if lineweight == LINEWEIGHT_BYBLOCK:
        lineweight = insert_style.lineweight
    return EntityStyle(color, lineweight, true_color)


def cell_transforms(insert) -> List[Matrix44]:
    """
    Transforms of every array cell of an INSERT, row by row.

    Each cell applies scale, the cell offset, rotation and the move to the
    insertion point, in that order.
    """
    dxf = insert.dxf
    sx = dxf.get("xscale", 1.0)
    sy = dxf.get("yscale", 1.0)
    angle = -math.radians(dxf.get("rotation", 0.0))
    location = point_from_dxf_point(dxf.insert)
    rows = max(1, dxf.get("row_count", 1))
    columns = max(1, dxf.get("column_count", 1))
    row_spacing = dxf.get("row_spacing", 0.0)
    column_spacing = dxf.get("column_spacing", 0.0)

    transforms = []
    for row in range(rows):
        for column in range(columns):
            transforms.append(Matrix44.chain(
                Matrix44.scale(sx, sy, 1.0),
                # Rows advance along +y in DXF, which is -y in the model frame
                Matrix44.translate(column * column_spacing, -row * row_spacing, 0.0),
                Matrix44.z_rotate(angle),
                Matrix44.translate(location.x, location.y, 0.0),
            ))
    return transforms


def block_key(name: str) -> str:
    """Library key of a block name; DXF block names ignore case."""
    return name.lower()


def block_dependencies(block: BlockLayout) -> Set[str]:
    return {block_key(insert.dxf.name) for insert in block.query("INSERT")}


def _is_visible(entity, layer: LayerInfo) -> bool:
    return layer.is_on and not entity.dxf.get("invisible", 0)


def resolve_block(block: BlockLayout, library: Mapping[str, List[BlockChunk]],
                  layers: Mapping[str, LayerInfo],
                  accuracy: float = DEFAULT_ACCURACY) -> List[BlockChunk]:
    """
    Flatten one block whose inserted blocks are all in ``library``.

    Consecutive entities of the same style share a chunk. A style change
    or a nested INSERT starts a new one, so chunks keep the drawing order.

    Returns:
        Chunks in drawing order
    """
    base = point_from_dxf_point(block.block.dxf.base_point)
    to_base = Matrix44.translate(-base.x, -base.y, 0.0)

    chunks: List[BlockChunk] = []
    current_style: Optional[EntityStyle] = None
    current: List[Path] = []

    def flush():
        if current:
            chunks.append(BlockChunk(current_style, join_paths(current).transform(to_base)))
            current.clear()

    for entity in block:
        layer = layer_for(layers, entity.dxf.get("layer", DEFAULT_LAYER))
        if not _is_visible(entity, layer):
            continue
        if entity.dxftype() == "INSERT":
            if not has_plus_z_extrusion(entity):
                logger.debug("skipping INSERT #%s in %s: extrusion is not +Z",
                             entity.dxf.handle, block.name)
                continue
            flush()
            insert_style = block_level_style(EntityStyle.from_entity(entity), layer)
            transforms = cell_transforms(entity)
            for chunk in library.get(block_key(entity.dxf.name), ()):
                cells = join_paths([chunk.path.transform(m) for m in transforms])
                chunks.append(BlockChunk(
                    inherit_style(chunk.style, insert_style), cells.transform(to_base)
                ))
            continue

        path = path_from_entity(entity, accuracy)
        if path is None:
            continue
        style = block_level_style(EntityStyle.from_entity(entity), layer)
        if style != current_style:
            flush()
            current_style = style
        current.append(path)

    flush()
    return chunks


def resolve_blocks(blocks: Iterable[BlockLayout], layers: Mapping[str, LayerInfo],
                   accuracy: float = DEFAULT_ACCURACY) -> BlockLibrary:
    """
    Flatten every block definition that can be resolved.

    Args:
        blocks: Block layouts, typically ``doc.blocks``
        layers: Layer info by name
        accuracy: Curve approximation tolerance

    Returns:
        Chunks keyed by lower case block name; unresolved blocks are missing
    """
    pending = {
        block_key(block.name): (block, block_dependencies(block))
        for block in blocks
        if not block.is_any_layout
    }
    library: BlockLibrary = {}

    while pending:
        ready = [
            name for name, (_, deps) in pending.items()
            if all(dep in library for dep in deps)
        ]
        if not ready:
            break
        for name in ready:
            block, _ = pending.pop(name)
            library[name] = resolve_block(block, library, layers, accuracy)

    if pending:
        logger.warning("unresolved blocks (cyclic or missing references): %s",
                       ", ".join(sorted(block.name for block, _ in pending.values())))
    return library
