import math

import pytest

from dxfscene.graphics_bag import FatShape
from dxfscene.spatial_index import EntityIndex, TextCullIndex, measure_text_items
from dxfscene.text import EstimatedTextMeasurer


def handle_of(entity):
    return int(entity.dxf.handle, 16)


def test_cull_returns_every_contained_box(msp, assemble):
    msp.add_line((0, 0), (10, 5))
    msp.add_circle((20, 20), 3)
    msp.add_arc((-5, 2), 2, 45, 270)
    msp.add_lwpolyline([(0, 0, 0.4), (3, -3, 0), (6, 0, -0.7), (9, 4, 0)], format="xyb")
    drawing = assemble(msp.doc)
    index = EntityIndex(drawing)

    for handle in drawing.render_layer:
        x0, y0, x1, y1 = drawing.graphics.get(handle).bbox()
        assert handle in index.query_items(x0 - 0.01, y0 - 0.01, x1 + 0.01, y1 + 0.01)


def test_cull_misses_far_away_rectangle(msp, assemble):
    msp.add_line((0, 0), (10, 0))
    index = EntityIndex(assemble(msp.doc))
    assert index.query_items(100, 100, 200, 200) == set()


def test_pick_zero_width_line_at_midpoint_with_zero_radius(msp, assemble):
    line = msp.add_line((0, 0), (10, 0))
    index = EntityIndex(assemble(msp.doc))
    assert index.pick(5.0, 0.0, 0.0) == handle_of(line)


def test_pick_prefers_last_drawn_on_tie(msp, assemble):
    msp.add_line((0, 0), (10, 0))
    top = msp.add_line((0, 0), (10, 0))
    index = EntityIndex(assemble(msp.doc))
    assert index.pick(5.0, 0.5, 1.0) == handle_of(top)


def test_pick_nearest_within_radius(msp, assemble):
    msp.add_line((0, 0), (10, 0))
    upper = msp.add_line((0, 1), (10, 1))
    index = EntityIndex(assemble(msp.doc))
    # DXF y = 1 is y = -1 in the model frame
    assert index.pick(5.0, -0.8, 0.5) == handle_of(upper)
    assert index.pick(5.0, -0.5, 0.2) is None


def test_pick_uses_exact_curve_distance(msp, assemble):
    circle = msp.add_circle((0, 0), 2)
    index = EntityIndex(assemble(msp.doc))
    c = 2 * math.sqrt(0.5)
    assert index.pick(c, -c, 0.01) == handle_of(circle)
    # Inside the bounding box but far from the outline
    assert index.pick(0.0, 0.0, 0.5) is None


def test_pick_on_block_instance_returns_insert(doc, msp, assemble):
    block = doc.blocks.new(name="DOT")
    block.add_circle((0, 0), 1)
    insert = msp.add_blockref("DOT", (0, 0), dxfattribs={"column_count": 3, "column_spacing": 5})
    index = EntityIndex(assemble(doc))
    assert index.pick(11.0, 0.0, 0.01) == handle_of(insert)


def test_empty_drawing(msp, assemble):
    index = EntityIndex(assemble(msp.doc))
    assert len(index) == 0
    assert index.bounds() is None
    assert index.pick(0, 0, 10) is None
    assert index.query_items(-1, -1, 1, 1) == set()


def test_bounds_cover_all_geometry(msp, assemble):
    msp.add_line((0, 0), (10, 0))
    msp.add_line((0, 5), (3, 8))
    bounds = EntityIndex(assemble(msp.doc)).bounds()
    assert bounds == pytest.approx((0.0, -8.0, 10.0, 0.0))


def test_text_cull_index(msp, assemble):
    msp.add_text("ABCD", dxfattribs={"insert": (10, 20), "height": 2})
    drawing = assemble(msp.doc)
    measurer = EstimatedTextMeasurer()

    [(handle, _, size)] = measure_text_items(measurer, drawing.graphics, drawing.render_layer)
    assert size == pytest.approx((4.0, 2.0))

    index = TextCullIndex(measurer, drawing)
    # TEXT sits on its insertion point, extending up (-y in the model frame)
    assert index.bounds() == pytest.approx((10.0, -22.0, 14.0, -20.0))
    assert index.query_items(9, -23, 15, -19) == {handle}
    assert index.query_items(20, 20, 30, 30) == set()


def test_text_items_are_not_in_the_entity_index(msp, assemble):
    msp.add_text("label", dxfattribs={"insert": (0, 0)})
    drawing = assemble(msp.doc)
    assert len(EntityIndex(drawing)) == 0
    assert not any(isinstance(drawing.graphics.get(h), FatShape) for h in drawing.render_layer)
