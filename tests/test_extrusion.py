# tests/test_extrusion.py

import numpy as np
import pytest

from strucsync.errors import ConversionFailed
from strucsync.extrusion import (
    connect_top_and_bottom,
    extrude_frame,
    extrude_surface,
    opening_cross_lines,
    opening_indicator_mesh,
    safe_extrude_frame,
    surface_display_mesh,
    surface_normal,
    surface_solid,
    translate_mesh,
    vertical_alignment,
    wrap_loops,
)

SLAB = [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0), (4.0, 4.0, 0.0), (0.0, 4.0, 0.0)]
WALL = [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0), (4.0, 0.0, 3.0), (0.0, 0.0, 3.0)]
HOLE = [(1.0, 1.0, 0.0), (3.0, 1.0, 0.0), (3.0, 3.0, 0.0), (1.0, 3.0, 0.0)]


def _vertices(mesh):
    return np.asarray(mesh.vertices).reshape(-1, 3)


def test_vertical_extrusion_offsets_bottom_along_negative_normal():
    thickness = 0.25
    mesh = extrude_surface([WALL], thickness)
    normal = surface_normal(WALL)
    verts = _vertices(mesh)
    top, bottom = verts[:4], verts[4:]
    assert np.allclose(bottom, top - normal * thickness)
    assert mesh.debug_tag == "extruded"


def test_horizontal_extrusion_with_hole_keeps_counts():
    mesh = extrude_surface([SLAB, HOLE], 0.2)
    verts = _vertices(mesh)
    assert len(verts) == 16
    assert np.allclose(verts[8:, 2], -0.2)
    faces = list(mesh.iter_faces())
    quads = [f for f in faces if len(f) == 4]
    assert len(quads) == 8


def test_degenerate_outer_loop_gives_none():
    assert extrude_surface([[(0, 0, 0), (1, 0, 0)]], 0.1) is None
    assert extrude_surface([[(0, 0, 0), (1, 0, 0), (2, 0, 0)]], 0.1) is None


def test_wrap_loops_ignores_holes():
    top = [SLAB, HOLE]
    bottom = [[(x, y, z - 0.1) for x, y, z in loop] for loop in top]
    mesh = wrap_loops(top, bottom)
    assert mesh.debug_tag == "wrapped_fallback"
    triangles = [f for f in mesh.iter_faces() if len(f) == 3]
    assert len(triangles) == 8


def test_translate_and_connect_build_a_closed_solid():
    flat = surface_display_mesh([SLAB])
    lowered = translate_mesh(flat, 0.3)
    assert np.allclose(_vertices(lowered)[:, 2], -0.3)
    solid = connect_top_and_bottom(flat, lowered)
    assert solid.vertex_count == 8
    assert sum(1 for f in solid.iter_faces() if len(f) == 4) == 4
    assert connect_top_and_bottom(flat, None) is None


def test_surface_solid_prefers_extrusion():
    assert surface_solid([SLAB], 0.2).debug_tag == "extruded"


def test_opening_markers():
    mesh = opening_indicator_mesh(HOLE)
    assert mesh.debug_tag == "Opening"
    assert mesh.face_count() == 2
    lines = opening_cross_lines(HOLE)
    assert len(lines) == 2
    assert lines[0].start.as_tuple() == HOLE[0]
    assert lines[0].end.as_tuple() == HOLE[2]
    assert opening_cross_lines(HOLE[:3]) == []


def test_frame_box_has_eight_corners_and_six_faces():
    mesh = extrude_frame((0, 0, 0), (5, 0, 0), 0.3, 0.5)
    assert mesh.vertex_count == 8
    assert mesh.face_count() == 6
    verts = _vertices(mesh)
    assert verts[:, 2].max() == pytest.approx(0.25)
    assert verts[:, 2].min() == pytest.approx(-0.25)


def test_beam_cardinal_point_shifts_box():
    mesh = extrude_frame((0, 0, 0), (5, 0, 0), 0.3, 0.5, element_type="Beam", cardinal_point=8)
    assert _vertices(mesh)[:, 2].max() == pytest.approx(0.0)
    column = extrude_frame((0, 0, 0), (0, 0, 3), 0.3, 0.5, element_type="Column", cardinal_point=8)
    assert np.allclose(_vertices(column)[:4, 2], 0.0)
    assert vertical_alignment(2) == "bottom"
    assert vertical_alignment(None) == "middle"


def test_missing_section_uses_default_size():
    verts = _vertices(extrude_frame((0, 0, 0), (1, 0, 0)))
    assert verts[:, 1].max() - verts[:, 1].min() == pytest.approx(1.0)


def test_zero_length_frame_raises():
    with pytest.raises(ConversionFailed):
        extrude_frame((1, 1, 1), (1, 1, 1), 0.3, 0.5)
    assert safe_extrude_frame((1, 1, 1), (1, 1, 1), 0.3, 0.5) is None
