"""
Render Layer

Ordered list of item handles. Items are drawn in list order, later items
on top. A layer only refers to items, the bag owns them.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterator, List

from .graphics_bag import GraphicsBag, GraphicsItem, ItemHandle


@dataclass
class RenderLayer:
    indices: List[ItemHandle] = field(default_factory=list)

    def __iter__(self) -> Iterator[ItemHandle]:
        return iter(self.indices)

    def __len__(self) -> int:
        return len(self.indices)

    def push(self, handle: ItemHandle):
        self.indices.append(handle)

    def push_with_bag(self, bag: GraphicsBag, item: GraphicsItem) -> ItemHandle:
        """Add an item to ``bag`` and append it to this layer."""
        handle = bag.push(item)
        self.indices.append(handle)
        return handle

    def filter(self, predicate: Callable[[ItemHandle], bool]) -> "RenderLayer":
        """New layer with the handles accepted by ``predicate``, order kept."""
        return RenderLayer([h for h in self.indices if predicate(h)])
