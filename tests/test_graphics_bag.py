import math

import numpy as np
import pytest
from ezdxf.path import Path

from dxfscene.graphics_bag import (
    BLACK,
    ROOT_TRANSFORM,
    FatPaint,
    FatShape,
    GraphicsBag,
    InvalidHandleError,
)
from dxfscene.render_layer import RenderLayer
from dxfscene.transform import identity, rotate, scale, translate


def assert_finalized(bag):
    for handle in range(1, bag.transform_count):
        parent = bag.get_parent(handle)
        expected = bag.get_transform(parent) @ bag.get_local_transform(handle)
        np.testing.assert_allclose(bag.get_transform(handle), expected)


def build_tree(bag):
    """Root with two branches; the first branch is a six level chain."""
    chain = [ROOT_TRANSFORM]
    for i in range(6):
        chain.append(bag.register_transform(chain[-1], translate(i + 1, 0) @ rotate(0.1 * i)))
    sibling = bag.register_transform(ROOT_TRANSFORM, scale(2.0))
    nephew = bag.register_transform(sibling, translate(0, 3))
    return chain, sibling, nephew


def test_new_bag_has_only_root():
    bag = GraphicsBag()
    assert bag.transform_count == 1
    np.testing.assert_array_equal(bag.get_transform(ROOT_TRANSFORM), identity())
    assert bag.get_parent(ROOT_TRANSFORM) is None
    assert len(bag) == 0


def test_register_computes_world_immediately():
    bag = GraphicsBag()
    parent = bag.register_transform(ROOT_TRANSFORM, translate(1, 2))
    child = bag.register_transform(parent, scale(2))
    assert child > parent > ROOT_TRANSFORM
    np.testing.assert_allclose(bag.get_transform(child), translate(1, 2) @ scale(2))


def test_deep_chain_follows_updates():
    bag = GraphicsBag()
    chain, _, _ = build_tree(bag)
    bag.update_transform(chain[1], rotate(math.pi / 3))
    assert_finalized(bag)
    bag.update_transform(ROOT_TRANSFORM, scale(0.5))
    assert_finalized(bag)
    np.testing.assert_allclose(bag.get_transform(ROOT_TRANSFORM), scale(0.5))


def test_batch_update_matches_sequential_updates():
    updates = [
        (5, rotate(0.7)),
        (2, translate(-3, 4)),
        (7, scale(3, 0.5)),
        (ROOT_TRANSFORM, translate(100, 50) @ scale(4)),
    ]
    sequential, batched = GraphicsBag(), GraphicsBag()
    build_tree(sequential)
    build_tree(batched)

    for handle, local in updates:
        sequential.update_transform(handle, local)
    batched.update_transforms(updates)

    assert_finalized(batched)
    for handle in range(batched.transform_count):
        np.testing.assert_allclose(batched.get_transform(handle), sequential.get_transform(handle))


def test_batch_update_without_root():
    bag = GraphicsBag()
    chain, sibling, nephew = build_tree(bag)
    bag.update_transforms([(nephew, rotate(1.0)), (chain[3], scale(2))])
    assert_finalized(bag)


def test_unissued_handles():
    bag = GraphicsBag()
    with pytest.raises(InvalidHandleError):
        bag.get_paint(0)
    with pytest.raises(InvalidHandleError):
        bag.register_transform(3, identity())
    with pytest.raises(InvalidHandleError):
        bag.update_transforms([(9, identity())])
    assert bag.get(0) is None


def test_item_handles_are_sequential():
    bag = GraphicsBag()
    layer = RenderLayer()
    handles = [layer.push_with_bag(bag, FatShape(Path())) for _ in range(4)]
    assert handles == [0, 1, 2, 3]
    assert list(layer) == handles
    assert bag.get(2) is bag.items[2]


def test_shared_paint_update_reaches_every_item():
    bag = GraphicsBag()
    shared = bag.register_paint(FatPaint(stroke_paint=BLACK))
    other = bag.register_paint(FatPaint(stroke_paint=BLACK))
    items = [bag.push(FatShape(Path(), shared)), bag.push(FatShape(Path(), shared)),
             bag.push(FatShape(Path(), other))]

    bag.update_paint(shared, FatPaint(stroke_width=2.5, stroke_paint=BLACK))

    widths = [bag.get_paint(bag.get(h).paint).stroke_width for h in items]
    assert widths == [2.5, 2.5, 0.0]


def test_render_layer_filter_keeps_order():
    layer = RenderLayer([4, 1, 3, 0])
    assert layer.filter(lambda h: h != 1).indices == [4, 3, 0]
