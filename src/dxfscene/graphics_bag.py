"""
Graphics Bag

Arena owning graphics items, a paint palette and a transform table.
Everything is addressed by integer handles that are never reused.

The transform table stores a parent handle and a local affine transform
per node, plus a cached world transform. A node's slot is always greater
than its parent's, so one forward pass over increasing slots re-derives
all descendants after an update.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, NamedTuple, NewType, Optional, Tuple, Union

import numpy as np
from ezdxf.path import Path

from .segments import BBox, path_bbox
from .text import Alignment, AttachmentPoint, TextStyle
from .transform import DirectIsometry, identity

ItemHandle = NewType("ItemHandle", int)
PaintHandle = NewType("PaintHandle", int)
TransformHandle = NewType("TransformHandle", int)

# Root of the transform tree, identity until updated
ROOT_TRANSFORM = TransformHandle(0)

# First paint registered by a drawing, used by items without a resolved style
DEFAULT_PAINT = PaintHandle(0)


class InvalidHandleError(LookupError):
    """A paint or transform handle that was not issued by this bag"""


class Color(NamedTuple):
    """8 bit RGBA color"""
    r: int
    g: int
    b: int
    a: int = 255

    def with_alpha(self, a: int) -> "Color":
        return self._replace(a=a)


BLACK = Color(0, 0, 0)
WHITE = Color(255, 255, 255)


@dataclass
class FatPaint:
    """Stroke and fill of an item; a width of 0 draws hairlines"""
    stroke_width: float = 0.0
    stroke_paint: Optional[Color] = None
    fill_paint: Optional[Color] = None


@dataclass
class FatShape:
    """A path with paint and transform"""
    path: Path
    paint: PaintHandle = DEFAULT_PAINT
    transform: TransformHandle = ROOT_TRANSFORM

    def bbox(self) -> Optional[BBox]:
        return path_bbox(self.path)


@dataclass
class FatText:
    """A run of text placed at an insertion isometry"""
    text: str
    style: TextStyle
    insertion: DirectIsometry = field(default_factory=DirectIsometry)
    alignment: Alignment = Alignment.START
    attachment_point: AttachmentPoint = AttachmentPoint.TOP_LEFT
    max_inline_size: Optional[float] = None
    paint: PaintHandle = DEFAULT_PAINT
    transform: TransformHandle = ROOT_TRANSFORM


GraphicsItem = Union[FatShape, FatText]


class GraphicsBag:
    """
    Arena of items, paints and transforms.

    Usage:
        bag = GraphicsBag()
        paint = bag.register_paint(FatPaint(stroke_paint=BLACK))
        node = bag.register_transform(ROOT_TRANSFORM, translate(10, 0))
        item = bag.push(FatShape(path, paint, node))
    """

    def __init__(self):
        self.items: List[GraphicsItem] = []
        self.paints: List[FatPaint] = []
        self._parents: List[TransformHandle] = [ROOT_TRANSFORM]
        self._local: List[np.ndarray] = [identity()]
        self._world: List[np.ndarray] = [identity()]

    def __len__(self) -> int:
        return len(self.items)

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    def push(self, item: GraphicsItem) -> ItemHandle:
        self.items.append(item)
        return ItemHandle(len(self.items) - 1)

    def get(self, handle: ItemHandle) -> Optional[GraphicsItem]:
        """Item for a handle, None if it was never issued."""
        if 0 <= handle < len(self.items):
            return self.items[handle]
        return None

    # -------------------------------------------------------------------------
    # Paints
    # -------------------------------------------------------------------------

    def register_paint(self, paint: FatPaint) -> PaintHandle:
        self.paints.append(paint)
        return PaintHandle(len(self.paints) - 1)

    def get_paint(self, handle: PaintHandle) -> FatPaint:
        self._check(handle, self.paints, "paint")
        return self.paints[handle]

    def update_paint(self, handle: PaintHandle, paint: FatPaint):
        self._check(handle, self.paints, "paint")
        self.paints[handle] = paint

    # -------------------------------------------------------------------------
    # Transforms
    # -------------------------------------------------------------------------

    @property
    def transform_count(self) -> int:
        return len(self._local)

    def register_transform(self, parent: TransformHandle,
                           local: np.ndarray) -> TransformHandle:
        """
        Append a transform node below ``parent``.

        The world transform of the new node is computed immediately.

        Returns:
            Handle of the new node, always greater than ``parent``
        """
        self._check(parent, self._local, "transform")
        local = np.asarray(local, dtype=float)
        self._parents.append(parent)
        self._local.append(local)
        self._world.append(self._world[parent] @ local)
        return TransformHandle(len(self._local) - 1)

    def update_transform(self, handle: TransformHandle, local: np.ndarray):
        """Replace a node's local transform and re-derive world transforms from it."""
        self._check(handle, self._local, "transform")
        self._local[handle] = np.asarray(local, dtype=float)
        self._finalize_from(handle)

    def update_transforms(self, updates: Iterable[Tuple[TransformHandle, np.ndarray]]):
        """
        Replace several local transforms, then finalize once.

        Finalization starts at the smallest updated slot, so the result is
        the same as applying the updates one by one.
        """
        start = None
        for handle, local in updates:
            self._check(handle, self._local, "transform")
            self._local[handle] = np.asarray(local, dtype=float)
            start = handle if start is None else min(start, handle)
        if start is not None:
            self._finalize_from(start)

    def get_transform(self, handle: TransformHandle) -> np.ndarray:
        """World transform of a node."""
        self._check(handle, self._local, "transform")
        return self._world[handle]

    def get_local_transform(self, handle: TransformHandle) -> np.ndarray:
        self._check(handle, self._local, "transform")
        return self._local[handle]

    def get_parent(self, handle: TransformHandle) -> Optional[TransformHandle]:
        """Parent of a node, None for the root."""
        self._check(handle, self._local, "transform")
        if handle == ROOT_TRANSFORM:
            return None
        return self._parents[handle]

    def _finalize_from(self, start: int):
        if start == ROOT_TRANSFORM:
            self._world[ROOT_TRANSFORM] = self._local[ROOT_TRANSFORM]
            start = 1
        for i in range(start, len(self._local)):
            self._world[i] = self._world[self._parents[i]] @ self._local[i]

    @staticmethod
    def _check(handle: int, arena: list, kind: str):
        if not 0 <= handle < len(arena):
            raise InvalidHandleError(f"{kind} handle {handle} was not issued by this bag")
