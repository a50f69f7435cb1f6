"""Polygon-with-holes triangulation for advisory meshes.

Rings are sequences of 2D or 3D coordinates. Returned triangles index into
the caller's vertex buffer: the outer ring starts at ``offset`` and the holes
follow in order, each ring counted after dropping a closing duplicate.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from shapely.errors import GEOSException
from shapely.geometry import LinearRing, LineString, Polygon
from shapely.validation import explain_validity

from .errors import TriangulationError

LOG = logging.getLogger(__name__)

Coord = Sequence[float]
Coord2 = Tuple[float, float]
Triangle = Tuple[int, int, int]

__all__ = [
    "Triangle",
    "strip_closing_point",
    "newell_normal",
    "plane_coordinates",
    "ear_clip",
    "safe_ear_clip",
    "fan",
    "triangulate_polygon",
    "triangulate_with_holes",
    "safe_triangulate_with_fallback",
]

_CLOSING_TOLERANCE = 1.0e-6


def strip_closing_point(ring: Sequence[Coord], tolerance: float = _CLOSING_TOLERANCE) -> List[Coord]:
    points = list(ring)
    if len(points) >= 2 and math.dist(points[0], points[-1]) <= tolerance:
        points.pop()
    return points


def newell_normal(ring: Sequence[Coord]) -> np.ndarray:
    """Unnormalised polygon normal; robust for non-convex rings."""
    pts = np.asarray([_as_3d(p) for p in ring], dtype=float)
    if len(pts) < 3:
        return np.zeros(3)
    nxt = np.roll(pts, -1, axis=0)
    return np.array(
        [
            np.sum((pts[:, 1] - nxt[:, 1]) * (pts[:, 2] + nxt[:, 2])),
            np.sum((pts[:, 2] - nxt[:, 2]) * (pts[:, 0] + nxt[:, 0])),
            np.sum((pts[:, 0] - nxt[:, 0]) * (pts[:, 1] + nxt[:, 1])),
        ]
    )


def _as_3d(point: Coord) -> Tuple[float, float, float]:
    if len(point) >= 3:
        return (float(point[0]), float(point[1]), float(point[2]))
    return (float(point[0]), float(point[1]), 0.0)


def plane_coordinates(rings: Sequence[Sequence[Coord]]) -> List[List[Coord2]]:
    """Project rings onto the coordinate plane most aligned with the outer ring."""
    if not rings:
        return []
    if all(len(p) == 2 for ring in rings for p in ring):
        return [[(float(p[0]), float(p[1])) for p in ring] for ring in rings]
    normal = newell_normal(rings[0])
    drop = int(np.argmax(np.abs(normal)))
    keep = {0: (1, 2), 1: (2, 0), 2: (0, 1)}[drop]
    projected = []
    for ring in rings:
        coords = [_as_3d(p) for p in ring]
        projected.append([(c[keep[0]], c[keep[1]]) for c in coords])
    return projected


def _cross(a: Coord2, b: Coord2, c: Coord2) -> float:
    return (b[0] - a[0]) * (c[1] - b[1]) - (b[1] - a[1]) * (c[0] - b[0])


def _signed_area(points: Sequence[Coord2]) -> float:
    total = 0.0
    for i, (x0, y0) in enumerate(points):
        x1, y1 = points[(i + 1) % len(points)]
        total += x0 * y1 - x1 * y0
    return total / 2.0


def _strictly_inside(p: Coord2, a: Coord2, b: Coord2, c: Coord2) -> bool:
    area = 0.5 * (-b[1] * c[0] + a[1] * (-b[0] + c[0]) + a[0] * (b[1] - c[1]) + b[0] * c[1])
    if area == 0.0:
        return False
    s = 1.0 / (2.0 * area) * (a[1] * c[0] - a[0] * c[1] + (c[1] - a[1]) * p[0] + (a[0] - c[0]) * p[1])
    t = 1.0 / (2.0 * area) * (a[0] * b[1] - a[1] * b[0] + (a[1] - b[1]) * p[0] + (b[0] - a[0]) * p[1])
    return s > 0 and t > 0 and (1 - s - t) > 0


def _find_ear(points: Sequence[Coord2], order: Sequence[int]) -> Optional[int]:
    count = len(order)
    for i in range(count):
        prev_pos, next_pos = (i - 1) % count, (i + 1) % count
        a, b, c = points[order[prev_pos]], points[order[i]], points[order[next_pos]]
        if _cross(a, b, c) <= 0.0:
            continue
        blocked = False
        for j in range(count):
            if j in (prev_pos, i, next_pos):
                continue
            if _strictly_inside(points[order[j]], a, b, c):
                blocked = True
                break
        if not blocked:
            return i
    return None


def ear_clip(points: Sequence[Coord2], offset: int = 0, ring: Optional[Sequence[int]] = None) -> List[Triangle]:
    """Ear-clip a simple ring of 2D points.

    ``ring`` lists positions into ``points`` (all of them by default) and may
    repeat positions where holes were bridged in. Raises
    :class:`TriangulationError` when no ear can be found.
    """
    order = list(range(len(points))) if ring is None else list(ring)
    if len(order) < 3:
        raise TriangulationError(f"Ring needs at least three vertices, got {len(order)}")
    if _signed_area([points[i] for i in order]) < 0:
        order.reverse()

    triangles: List[Triangle] = []
    while len(order) > 3:
        pos = _find_ear(points, order)
        if pos is None:
            raise TriangulationError(
                "Failed to find an ear; the ring may be complex or self-intersecting"
            )
        count = len(order)
        prev_idx, idx, next_idx = order[(pos - 1) % count], order[pos], order[(pos + 1) % count]
        triangles.append((prev_idx + offset, idx + offset, next_idx + offset))
        order.pop(pos)

    a, b, c = order
    if _cross(points[a], points[b], points[c]) > 0.0:
        triangles.append((a + offset, b + offset, c + offset))
    elif not triangles:
        raise TriangulationError("Ring is degenerate (zero area)")
    return triangles


def safe_ear_clip(ring: Sequence[Coord], offset: int = 0) -> List[Triangle]:
    """Ear-clip one ring on its own; an empty list means it could not be clipped."""
    ring = strip_closing_point(ring)
    if len(ring) < 3:
        return []
    try:
        planar = plane_coordinates([ring])[0]
        return ear_clip(planar, offset)
    except TriangulationError as exc:
        LOG.warning("Ear clipping failed for %d-point ring: %s", len(ring), exc)
        return []


def fan(count: int, offset: int = 0) -> List[Triangle]:
    """Fan anchored at the first vertex; lossy but always terminates."""
    return [(offset, offset + i, offset + i + 1) for i in range(1, count - 1)]


def _ring_order(coords: Sequence[Coord2], positions: List[int], *, ccw: bool) -> List[int]:
    ring = LinearRing([coords[i] for i in positions])
    if ring.is_ccw != ccw:
        return list(reversed(positions))
    return positions


def _bridge_holes(
    coords: Sequence[Coord2],
    polygon: Polygon,
    outer: List[int],
    holes: List[List[int]],
) -> List[int]:
    merged = list(outer)
    bridges: List[LineString] = []
    for hole in sorted(holes, key=lambda h: -max(coords[i][0] for i in h)):
        start = max(range(len(hole)), key=lambda k: coords[hole[k]][0])
        cycle = hole[start:] + hole[:start]
        anchor = cycle[0]
        candidates = sorted(range(len(merged)), key=lambda pos: math.dist(coords[merged[pos]], coords[anchor]))
        for pos in candidates:
            target = merged[pos]
            if math.dist(coords[target], coords[anchor]) == 0.0:
                continue
            segment = LineString([coords[anchor], coords[target]])
            if not polygon.covers(segment):
                continue
            if any(segment.crosses(existing) for existing in bridges):
                continue
            break
        else:
            raise TriangulationError("No visible vertex to bridge a hole into the outer ring")
        merged = merged[: pos + 1] + cycle + [anchor, target] + merged[pos + 1 :]
        bridges.append(segment)
    return merged


def triangulate_polygon(outer: Sequence[Coord], holes: Sequence[Sequence[Coord]] = (), offset: int = 0) -> List[Triangle]:
    """Triangulate an outer ring with holes; raises :class:`TriangulationError`."""
    rings = [strip_closing_point(outer)] + [strip_closing_point(h) for h in holes]
    if len(rings[0]) < 3:
        raise TriangulationError(f"Outer ring needs at least three vertices, got {len(rings[0])}")
    planar = plane_coordinates(rings)

    coords: List[Coord2] = []
    positions: List[List[int]] = []
    for ring in planar:
        start = len(coords)
        coords.extend(ring)
        positions.append(list(range(start, start + len(ring))))

    usable_holes = [p for p in positions[1:] if len(p) >= 3]
    try:
        polygon = Polygon(planar[0], [[coords[i] for i in p] for p in usable_holes])
        if not polygon.is_valid:
            raise TriangulationError(f"Invalid polygon: {explain_validity(polygon)}")
        outer_order = _ring_order(coords, positions[0], ccw=True)
        hole_orders = [_ring_order(coords, p, ccw=False) for p in usable_holes]
        merged = _bridge_holes(coords, polygon, outer_order, hole_orders) if hole_orders else outer_order
    except (ValueError, GEOSException) as exc:
        raise TriangulationError(f"Polygon topology could not be built: {exc}") from exc
    return ear_clip(coords, offset, merged)


def triangulate_with_holes(outer: Sequence[Coord], holes: Sequence[Sequence[Coord]] = (), offset: int = 0) -> List[Triangle]:
    """Hole-aware triangulation; an empty list signals failure to the caller."""
    try:
        return triangulate_polygon(outer, holes, offset)
    except TriangulationError as exc:
        LOG.warning("Hole-aware triangulation failed: %s", exc)
        return []


def safe_triangulate_with_fallback(
    outer: Sequence[Coord], holes: Sequence[Sequence[Coord]] = (), offset: int = 0
) -> List[Triangle]:
    """Hole-aware triangulation, else a fan over the outer ring ignoring holes."""
    try:
        return triangulate_polygon(outer, holes, offset)
    except TriangulationError as exc:
        LOG.warning("Triangulation failed (%s); fanning the outer ring only.", exc)
        return fan(len(strip_closing_point(outer)), offset)
