"""Advisory solid meshes for linear and surface members.

Meshes built here are never analytical truth. The ``safe_*`` entry points
degrade to ``None`` or a fallback mesh so geometry trouble cannot fail the
owning member's conversion.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .errors import ConversionFailed, FATAL_ERRORS
from .model import Line, Mesh, Point
from .triangulate import (
    Triangle,
    fan,
    safe_ear_clip,
    safe_triangulate_with_fallback,
    strip_closing_point,
    triangulate_with_holes,
)

LOG = logging.getLogger(__name__)

__all__ = [
    "VERTICAL_NORMAL_THRESHOLD",
    "surface_normal",
    "is_vertical_surface",
    "extrude_surface",
    "wrap_loops",
    "translate_mesh",
    "connect_top_and_bottom",
    "surface_display_mesh",
    "surface_solid",
    "opening_indicator_mesh",
    "opening_cross_lines",
    "vertical_alignment",
    "extrude_frame",
    "extrude_frame_line",
    "safe_extrude_frame",
    "safe_extrude_surface",
]

VERTICAL_NORMAL_THRESHOLD = 0.3
NORMAL_MAGNITUDE_EPS = 1.0e-6
ZERO_LENGTH_TOLERANCE = 1.0e-9
AXIS_ALIGNMENT_TOLERANCE = 0.001
DEFAULT_SECTION_SIZE = 1.0

TAG_EXTRUDED = "extruded"
TAG_WRAPPED = "wrapped_fallback"
TAG_TRANSLATED = "translated_2d_copy"
TAG_CONNECTED = "side_connected"
TAG_FRAME = "extrusion_dynamic"
TAG_OPENING = "Opening"
TAG_SURFACE = "surface"

Loop = Sequence[Sequence[float]]


def _mesh(vertices: np.ndarray, faces: List[int], *, units: str, tag: str) -> Mesh:
    flat = [float(v) for v in np.asarray(vertices, dtype=float).reshape(-1)]
    return Mesh(vertices=flat, faces=faces, units=units, tags={"debug_tag": tag})


def _append_triangles(faces: List[int], triangles: Iterable[Triangle], *, reverse: bool = False) -> None:
    for a, b, c in triangles:
        faces.append(0)
        faces.extend((a, c, b) if reverse else (a, b, c))


def _append_side_quads(faces: List[int], counts: Sequence[int], bottom_offset: int) -> None:
    start = 0
    for count in counts:
        for i in range(count):
            j = (i + 1) % count
            faces.extend((4, start + i, start + j, bottom_offset + start + j, bottom_offset + start + i))
        start += count


def _clean_loops(loops: Sequence[Loop]) -> List[np.ndarray]:
    rings = []
    for index, loop in enumerate(loops):
        ring = strip_closing_point([tuple(float(c) for c in p[:3]) for p in loop])
        if len(ring) < 3:
            if index == 0:
                return []
            LOG.debug("Dropping %d-point hole loop from extrusion", len(ring))
            continue
        rings.append(np.asarray(ring, dtype=float))
    return rings


def surface_normal(outer: Loop) -> Optional[np.ndarray]:
    """Unit normal from the first two edge vectors of ``outer``; ``None`` if degenerate."""
    if len(outer) < 3:
        return None
    p0, p1, p2 = (np.asarray(outer[i][:3], dtype=float) for i in range(3))
    normal = np.cross(p1 - p0, p2 - p0)
    magnitude = float(np.linalg.norm(normal))
    if magnitude < NORMAL_MAGNITUDE_EPS:
        return None
    return normal / magnitude


def is_vertical_surface(normal: np.ndarray) -> bool:
    return abs(float(normal[2])) < VERTICAL_NORMAL_THRESHOLD


def extrude_surface(
    loops: Sequence[Loop],
    thickness: float,
    *,
    units: str = "m",
    tag: str = TAG_EXTRUDED,
) -> Optional[Mesh]:
    """Solid for an outer loop plus holes, offset by ``-normal * thickness``.

    Vertical surfaces are fanned; horizontal ones go through hole-aware
    triangulation. An empty top or bottom triangulation degrades to
    :func:`wrap_loops`.
    """
    rings = _clean_loops(loops)
    if not rings:
        return None
    normal = surface_normal(rings[0])
    if normal is None:
        LOG.debug("Surface normal is degenerate; no extrusion produced")
        return None
    vertical = is_vertical_surface(normal)

    top = rings
    bottom = [ring - normal * float(thickness) for ring in rings]
    counts = [len(ring) for ring in top]
    offset = sum(counts)

    if vertical:
        top_tris = fan(counts[0], 0)
    else:
        top_tris = triangulate_with_holes(_tuples(top[0]), [_tuples(r) for r in top[1:]], 0)
    if not top_tris:
        return wrap_loops(top, bottom, units=units)

    if vertical:
        bottom_tris = fan(counts[0], offset)
    else:
        bottom_tris = triangulate_with_holes(_tuples(bottom[0]), [_tuples(r) for r in bottom[1:]], offset)
    if not bottom_tris:
        return wrap_loops(top, bottom, units=units)

    faces: List[int] = []
    _append_triangles(faces, top_tris)
    _append_triangles(faces, bottom_tris, reverse=True)
    _append_side_quads(faces, counts, offset)
    vertices = np.vstack(top + bottom)
    return _mesh(vertices, faces, units=units, tag=tag)


def _tuples(ring: np.ndarray) -> List[Tuple[float, float, float]]:
    return [tuple(float(c) for c in row) for row in ring]


def wrap_loops(
    top_loops: Sequence[Loop],
    bottom_loops: Sequence[Loop],
    *,
    units: str = "m",
) -> Mesh:
    """Closed solid that triangulates every loop on its own, ignoring holes."""
    top = [np.asarray(loop, dtype=float) for loop in top_loops]
    bottom = [np.asarray(loop, dtype=float) for loop in bottom_loops]
    counts = [len(loop) for loop in top]
    bottom_offset = sum(counts)

    faces: List[int] = []
    start = 0
    for loop in top:
        _append_triangles(faces, safe_ear_clip(_tuples(loop), start) or fan(len(loop), start))
        start += len(loop)
    start = bottom_offset
    for loop in bottom:
        _append_triangles(faces, safe_ear_clip(_tuples(loop), start) or fan(len(loop), start), reverse=True)
        start += len(loop)
    _append_side_quads(faces, counts, bottom_offset)
    return _mesh(np.vstack(top + bottom), faces, units=units, tag=TAG_WRAPPED)


def translate_mesh(mesh: Optional[Mesh], thickness: float) -> Optional[Mesh]:
    """Copy of ``mesh`` moved down by ``thickness``; malformed faces are dropped."""
    if mesh is None or len(mesh.vertices) % 3 != 0:
        return None
    vertices = np.asarray(mesh.vertices, dtype=float).reshape(-1, 3)
    vertices[:, 2] -= float(thickness)
    faces: List[int] = []
    for face in mesh.iter_faces():
        faces.append(0 if len(face) == 3 else len(face))
        faces.extend(face)
    return _mesh(vertices, faces, units=mesh.units, tag=TAG_TRANSLATED)


def _boundary_edges(faces: Iterable[Tuple[int, ...]]) -> List[Tuple[int, int]]:
    uses = {}
    directed = []
    for face in faces:
        for i, a in enumerate(face):
            b = face[(i + 1) % len(face)]
            key = (min(a, b), max(a, b))
            uses[key] = uses.get(key, 0) + 1
            directed.append((a, b))
    return [(a, b) for a, b in directed if uses[(min(a, b), max(a, b))] == 1]


def connect_top_and_bottom(top: Optional[Mesh], bottom: Optional[Mesh]) -> Optional[Mesh]:
    """Join two copies of one flat mesh with quads along its boundary edges."""
    if top is None or bottom is None:
        return None
    if len(top.vertices) != len(bottom.vertices):
        LOG.debug("Cannot connect meshes with different vertex counts")
        return None
    count = top.vertex_count
    top_faces = list(top.iter_faces())
    faces: List[int] = []
    for face in top_faces:
        faces.append(0 if len(face) == 3 else len(face))
        faces.extend(face)
    for face in bottom.iter_faces():
        faces.append(0 if len(face) == 3 else len(face))
        faces.extend(index + count for index in reversed(face))
    for a, b in _boundary_edges(top_faces):
        faces.extend((4, a, b, b + count, a + count))
    vertices = np.vstack(
        [np.asarray(top.vertices, dtype=float).reshape(-1, 3), np.asarray(bottom.vertices, dtype=float).reshape(-1, 3)]
    )
    return _mesh(vertices, faces, units=top.units, tag=TAG_CONNECTED)


def surface_display_mesh(loops: Sequence[Loop], *, units: str = "m", tag: str = TAG_SURFACE) -> Optional[Mesh]:
    """Flat mesh of the surface outline, holes respected where possible."""
    rings = _clean_loops(loops)
    if not rings:
        return None
    triangles = safe_triangulate_with_fallback(_tuples(rings[0]), [_tuples(r) for r in rings[1:]], 0)
    faces: List[int] = []
    _append_triangles(faces, triangles)
    return _mesh(np.vstack(rings), faces, units=units, tag=tag)


def surface_solid(loops: Sequence[Loop], thickness: float, *, units: str = "m") -> Optional[Mesh]:
    """Extruded solid, or a translated-and-connected copy of the flat mesh."""
    mesh = safe_extrude_surface(loops, thickness, units=units)
    if mesh is not None and "fallback" not in (mesh.debug_tag or ""):
        return mesh
    LOG.debug("Extrusion unavailable or degraded; thickening the flat surface mesh instead")
    flat = surface_display_mesh(loops, units=units)
    solid = connect_top_and_bottom(flat, translate_mesh(flat, thickness))
    return solid or flat


def opening_indicator_mesh(loop: Loop, *, units: str = "m") -> Optional[Mesh]:
    rings = _clean_loops([loop])
    if not rings:
        return None
    faces: List[int] = []
    _append_triangles(faces, fan(len(rings[0])))
    return _mesh(rings[0], faces, units=units, tag=TAG_OPENING)


def opening_cross_lines(loop: Loop, *, units: str = "m") -> List[Line]:
    """Diagonals marking a (usually rectangular) opening."""
    ring = strip_closing_point([tuple(float(c) for c in p[:3]) for p in loop])
    if len(ring) < 4:
        return []
    p = [Point(*xyz, units=units) for xyz in ring[:4]]
    return [Line(start=p[0], end=p[2], units=units), Line(start=p[1], end=p[3], units=units)]


def vertical_alignment(cardinal_point: Optional[int]) -> str:
    if cardinal_point in (1, 2, 3):
        return "bottom"
    if cardinal_point in (7, 8, 9):
        return "top"
    return "middle"


def extrude_frame(
    start: Sequence[float],
    end: Sequence[float],
    width: Optional[float] = None,
    depth: Optional[float] = None,
    *,
    element_type: str = "Beam",
    cardinal_point: Optional[int] = None,
    units: str = "m",
) -> Mesh:
    """Rectangular box along a member centerline.

    Beams are shifted vertically so the cardinal point sits on the line;
    other member types stay centred. Raises :class:`ConversionFailed` for a
    zero-length centerline.
    """
    p0 = np.asarray(start[:3], dtype=float)
    p1 = np.asarray(end[:3], dtype=float)
    direction = p1 - p0
    length = float(np.linalg.norm(direction))
    if length < ZERO_LENGTH_TOLERANCE:
        raise ConversionFailed("Cannot extrude a zero-length centerline")
    direction /= length

    width = float(width) if width and width > 0 else DEFAULT_SECTION_SIZE
    depth = float(depth) if depth and depth > 0 else DEFAULT_SECTION_SIZE

    up = np.array([0.0, 0.0, 1.0])
    if abs(direction[0]) < AXIS_ALIGNMENT_TOLERANCE and abs(direction[1]) < AXIS_ALIGNMENT_TOLERANCE:
        right = np.array([1.0, 0.0, 0.0])
    else:
        right = np.cross(direction, up)
        norm = float(np.linalg.norm(right))
        right = np.array([1.0, 0.0, 0.0]) if norm < 1.0e-4 else right / norm
    up_corrected = np.cross(right, direction)
    up_corrected /= np.linalg.norm(up_corrected)

    shift = np.zeros(3)
    if (element_type or "").lower() == "beam":
        alignment = vertical_alignment(cardinal_point)
        if alignment == "bottom":
            shift[2] = depth / 2.0
        elif alignment == "top":
            shift[2] = -depth / 2.0

    hw, hd = width / 2.0, depth / 2.0
    section = [(-hw, hd), (hw, hd), (hw, -hd), (-hw, -hd)]
    near = np.array([p0 + a * right + b * up_corrected + shift for a, b in section])
    far = near + direction * length
    faces = [
        4, 0, 1, 2, 3,
        4, 4, 5, 6, 7,
        4, 0, 1, 5, 4,
        4, 1, 2, 6, 5,
        4, 2, 3, 7, 6,
        4, 3, 0, 4, 7,
    ]
    return _mesh(np.vstack([near, far]), faces, units=units, tag=TAG_FRAME)


def extrude_frame_line(line: Line, width=None, depth=None, **kwargs) -> Mesh:
    if line.start is None or line.end is None:
        raise ConversionFailed("Centerline is missing an endpoint")
    kwargs.setdefault("units", line.units)
    return extrude_frame(line.start.as_tuple(), line.end.as_tuple(), width, depth, **kwargs)


def safe_extrude_frame(start, end, width=None, depth=None, **kwargs) -> Optional[Mesh]:
    try:
        return extrude_frame(start, end, width, depth, **kwargs)
    except FATAL_ERRORS:
        raise
    except Exception as exc:
        LOG.warning("Frame extrusion skipped: %s", exc)
        return None


def safe_extrude_surface(loops: Sequence[Loop], thickness: float, **kwargs) -> Optional[Mesh]:
    try:
        return extrude_surface(loops, thickness, **kwargs)
    except FATAL_ERRORS:
        raise
    except Exception as exc:
        LOG.warning("Surface extrusion skipped: %s", exc)
        return None
