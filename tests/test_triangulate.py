# tests/test_triangulate.py

import pytest

from strucsync import triangulate
from strucsync.errors import TriangulationError
from strucsync.triangulate import (
    ear_clip,
    fan,
    safe_ear_clip,
    safe_triangulate_with_fallback,
    strip_closing_point,
    triangulate_polygon,
    triangulate_with_holes,
)

OUTER = [(0.0, 0.0), (4.0, 0.0), (4.0, 4.0), (0.0, 4.0)]
HOLE = [(1.0, 1.0), (3.0, 1.0), (3.0, 3.0), (1.0, 3.0)]


def _area(coords, tri):
    (x0, y0), (x1, y1), (x2, y2) = (coords[i] for i in tri)
    return abs((x1 - x0) * (y2 - y0) - (x2 - x0) * (y1 - y0)) / 2.0


def _centroid(coords, tri):
    xs, ys = zip(*(coords[i] for i in tri))
    return sum(xs) / 3.0, sum(ys) / 3.0


def test_rectangle_gives_two_triangles():
    triangles = triangulate_polygon(OUTER)
    assert len(triangles) == 2
    assert sum(_area(OUTER, t) for t in triangles) == pytest.approx(16.0)


def test_closing_point_is_dropped_before_indexing():
    closed = OUTER + [OUTER[0]]
    assert strip_closing_point(closed) == OUTER
    triangles = triangulate_polygon(closed)
    assert max(i for tri in triangles for i in tri) == 3


def test_hole_is_excluded():
    triangles = triangulate_polygon(OUTER, [HOLE])
    coords = OUTER + HOLE
    assert sum(_area(coords, t) for t in triangles) == pytest.approx(12.0)
    for tri in triangles:
        cx, cy = _centroid(coords, tri)
        assert not (1.0 < cx < 3.0 and 1.0 < cy < 3.0)


def test_triangular_hole_in_triangle():
    outer = [(0.0, 0.0, 0.0), (10.0, 0.0, 0.0), (5.0, 10.0, 0.0)]
    hole = [(4.0, 2.0, 0.0), (6.0, 2.0, 0.0), (5.0, 4.0, 0.0)]
    coords = [(x, y) for x, y, _ in outer + hole]

    triangles = triangulate_polygon(outer, [hole])

    assert len(triangles) == 6
    assert {i for tri in triangles for i in tri} == set(range(6))
    assert sum(_area(coords, t) for t in triangles) == pytest.approx(48.0)
    a, b, c = coords[3:]
    for tri in triangles:
        p = _centroid(coords, tri)
        signs = [(q[0] - p[0]) * (r[1] - p[1]) - (q[1] - p[1]) * (r[0] - p[0]) for q, r in ((a, b), (b, c), (c, a))]
        assert not (all(s > 0 for s in signs) or all(s < 0 for s in signs))


def test_offset_shifts_indices():
    triangles = triangulate_polygon(OUTER, offset=10)
    assert {i for tri in triangles for i in tri} == {10, 11, 12, 13}


def test_three_dimensional_wall_is_projected():
    wall = [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0), (4.0, 0.0, 3.0), (0.0, 0.0, 3.0)]
    assert len(triangulate_polygon(wall)) == 2


def test_clockwise_ring_is_accepted():
    assert len(ear_clip(list(reversed(OUTER)))) == 2


def test_concave_ring():
    l_shape = [(0, 0), (4, 0), (4, 1), (1, 1), (1, 4), (0, 4)]
    triangles = ear_clip(l_shape)
    assert len(triangles) == 4
    assert sum(_area(l_shape, t) for t in triangles) == pytest.approx(7.0)


def test_degenerate_ring_raises():
    with pytest.raises(TriangulationError):
        ear_clip([(0, 0), (1, 0), (2, 0)])
    with pytest.raises(TriangulationError):
        triangulate_polygon([(0, 0), (1, 0)])


def test_self_intersecting_polygon_is_reported_empty():
    bowtie = [(0, 0), (4, 4), (4, 0), (0, 4)]
    assert triangulate_with_holes(bowtie) == []
    assert safe_ear_clip([(0, 0), (1, 1)]) == []


def test_fallback_fans_outer_ring_when_ear_clipping_fails(monkeypatch):
    def refuse(*args, **kwargs):
        raise TriangulationError("no ear")

    monkeypatch.setattr(triangulate, "ear_clip", refuse)
    triangles = safe_triangulate_with_fallback(OUTER, [HOLE])
    assert len(triangles) >= 1
    assert triangles == fan(4)
    assert all(i < len(OUTER) for tri in triangles for i in tri)
