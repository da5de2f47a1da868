"""
Spatial Index

Static bounding box trees (shapely STRtree) over a loaded drawing, built
once and queried on every frame:

- EntityIndex holds every segment of every shape item, for culling and
  for picking by exact distance to the curve.
- TextCullIndex holds the measured boxes of text items, for culling.

Both work in model space: the root transform (the view) is factored out.
"""

import math
from typing import List, Optional, Sequence, Set, Tuple

import numpy as np
import shapely

from .drawing import EntityHandle, TDDrawing
from .graphics_bag import ROOT_TRANSFORM, FatShape, FatText, GraphicsBag, ItemHandle
from .render_layer import RenderLayer
from .segments import BBox, PathSeg, path_segments, segment_bbox, segment_distance_sq, transform_segment
from .text import TextMeasurer, layout_size, placement_transform
from .transform import invert, transform_rect


def model_transform(graphics: GraphicsBag, item) -> Optional[np.ndarray]:
    """Transform from item coordinates to model space, None for identity."""
    if item.transform == ROOT_TRANSFORM:
        return None
    root = graphics.get_transform(ROOT_TRANSFORM)
    return invert(root) @ graphics.get_transform(item.transform)


class _BoxTree:
    """STRtree over an array of boxes, answering in box positions"""

    def __init__(self, boxes: Sequence[BBox]):
        self.boxes = np.asarray(boxes, dtype=float).reshape(-1, 4)
        if len(self.boxes):
            self._tree = shapely.STRtree(shapely.box(
                self.boxes[:, 0], self.boxes[:, 1], self.boxes[:, 2], self.boxes[:, 3]
            ))
        else:
            self._tree = None

    def __len__(self) -> int:
        return len(self.boxes)

    def query(self, left: float, top: float, right: float, bottom: float) -> np.ndarray:
        """Positions of boxes overlapping the rectangle, touching included."""
        if self._tree is None:
            return np.empty(0, dtype=int)
        rect = shapely.box(min(left, right), min(top, bottom), max(left, right), max(top, bottom))
        return self._tree.query(rect)

    def bounds(self) -> Optional[BBox]:
        if not len(self.boxes):
            return None
        mins = self.boxes[:, :2].min(axis=0)
        maxs = self.boxes[:, 2:].max(axis=0)
        return float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1])


class EntityIndex:
    """
    Segment index of all shape items of a drawing.

    Usage:
        index = EntityIndex(drawing)
        visible = index.query_items(left, top, right, bottom)
        entity = index.pick(x, y, radius)
    """

    def __init__(self, drawing: TDDrawing):
        graphics = drawing.graphics
        self.segments: List[PathSeg] = []
        self.entities: List[EntityHandle] = []
        self.items: List[ItemHandle] = []

        for item_handle, entity in drawing.item_entity_map.items():
            item = graphics.get(item_handle)
            if not isinstance(item, FatShape):
                continue
            matrix = model_transform(graphics, item)
            for seg in path_segments(item.path):
                if matrix is not None:
                    seg = transform_segment(seg, matrix)
                self.segments.append(seg)
                self.entities.append(entity)
                self.items.append(item_handle)

        self._tree = _BoxTree([segment_bbox(seg) for seg in self.segments])

    def __len__(self) -> int:
        return len(self.segments)

    def bounds(self) -> Optional[BBox]:
        """Bounding box of all indexed geometry."""
        return self._tree.bounds()

    def query_items(self, left: float, top: float, right: float, bottom: float) -> Set[ItemHandle]:
        """Items with at least one segment box overlapping the rectangle."""
        return {self.items[i] for i in self._tree.query(left, top, right, bottom)}

    def query_entities(self, left: float, top: float, right: float, bottom: float) -> Set[EntityHandle]:
        return {self.entities[i] for i in self._tree.query(left, top, right, bottom)}

    def pick(self, x: float, y: float, radius: float) -> Optional[EntityHandle]:
        """
        Entity closest to a point within a radius.

        Candidates come from the square around the point; each is measured
        by its exact distance to the curve. On equal distances the entity
        drawn last wins.

        Args:
            x: Point x in model space
            y: Point y in model space
            radius: Search radius in model units

        Returns:
            Entity handle, or None if nothing is within the radius
        """
        limit = radius * radius
        best, best_distance = None, math.inf
        candidates = self._tree.query(x - radius, y - radius, x + radius, y + radius)
        for i in sorted(candidates, reverse=True):
            distance = segment_distance_sq(self.segments[i], (x, y))
            if distance <= limit and distance < best_distance:
                best, best_distance = self.entities[i], distance
        return best


def measure_text_items(measurer: TextMeasurer, graphics: GraphicsBag,
                       render_layer: RenderLayer) -> List[Tuple[ItemHandle, np.ndarray, Tuple[float, float]]]:
    """
    Lay out every text item of a render layer.

    Returns:
        (item, placement transform into model space, (width, height)) per text item
    """
    measured = []
    for handle in render_layer:
        item = graphics.get(handle)
        if not isinstance(item, FatText):
            continue
        layout = measurer.layout(item.text, item.style, item.max_inline_size, item.alignment)
        width, height = layout_size(layout, item.max_inline_size)
        matrix = model_transform(graphics, item)
        placement = placement_transform(
            np.eye(3) if matrix is None else matrix,
            item.insertion, item.attachment_point, width, height,
        )
        measured.append((handle, placement, (width, height)))
    return measured


class TextCullIndex:
    """Index of the placed boxes of all text items of a drawing"""

    def __init__(self, measurer: TextMeasurer, drawing: TDDrawing):
        measured = measure_text_items(measurer, drawing.graphics, drawing.render_layer)
        self.items: List[ItemHandle] = [handle for handle, _, _ in measured]
        self._tree = _BoxTree([
            transform_rect(placement, 0.0, 0.0, width, height)
            for _, placement, (width, height) in measured
        ])

    def __len__(self) -> int:
        return len(self.items)

    def bounds(self) -> Optional[BBox]:
        return self._tree.bounds()

    def query_items(self, left: float, top: float, right: float, bottom: float) -> Set[ItemHandle]:
        return {self.items[i] for i in self._tree.query(left, top, right, bottom)}
