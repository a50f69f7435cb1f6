"""USD preview of advisory meshes.

The stage is Z-up with a ``/World`` default prim; each display mesh becomes a
``UsdGeom.Mesh`` named after the element that owns it.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .model import Base, Mesh, scale_factor
from .pxr_utils import load_usd
from .traversal import DEFAULT_FALLBACK_ALIASES, iter_graph_objects

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]
NamedMesh = Tuple[str, Mesh]

__all__ = ["collect_meshes", "create_usd_stage", "write_usd_mesh", "write_preview_stage"]

_INVALID_PRIM_CHARS = re.compile(r"[^A-Za-z0-9_]")


def _prim_name(raw: str, used: Dict[str, int]) -> str:
    name = _INVALID_PRIM_CHARS.sub("_", raw) or "Mesh"
    if name[0].isdigit():
        name = f"_{name}"
    count = used.get(name, 0)
    used[name] = count + 1
    return name if count == 0 else f"{name}_{count}"


def collect_meshes(root: Base, aliases: Sequence[str] = DEFAULT_FALLBACK_ALIASES) -> List[NamedMesh]:
    """Display meshes under ``root``, labelled by their owner's name or type."""
    found: List[NamedMesh] = []
    seen: set[str] = set()
    stack = [root]
    while stack:
        obj = stack.pop()
        if obj.id in seen:
            continue
        seen.add(obj.id)
        if isinstance(obj, Mesh):
            continue
        label = obj["name"] or obj.simple_type
        for alias in aliases:
            for child in iter_graph_objects(obj[alias]):
                if isinstance(child, Mesh) and child.id not in seen:
                    seen.add(child.id)
                    found.append((f"{obj.simple_type}_{label}", child))
        children = [child for _, value in obj.members() for child in iter_graph_objects(value)]
        stack.extend(reversed(children))
    return found


def create_usd_stage(usd_path: PathLike, meters_per_unit: float = 1.0):
    """Create a new USD stage with Z-up and a `/World` default prim."""
    usd = load_usd()
    identifier = Path(usd_path).resolve().as_posix()
    existing_layer = usd.Sdf.Layer.Find(identifier)
    if existing_layer is not None:
        stage = usd.Usd.Stage.Open(existing_layer)
        stage.GetRootLayer().Clear()
    else:
        stage = usd.Usd.Stage.CreateNew(identifier)

    usd.UsdGeom.SetStageUpAxis(stage, usd.UsdGeom.Tokens.z)
    stage.SetMetadata("metersPerUnit", float(meters_per_unit))
    world = usd.UsdGeom.Xform.Define(stage, "/World")
    stage.SetDefaultPrim(world.GetPrim())
    return stage


def write_usd_mesh(stage, parent_path: str, mesh_name: str, mesh: Mesh):
    """Author a Mesh prim beneath ``parent_path`` from a display mesh."""
    usd = load_usd()
    prim = usd.UsdGeom.Mesh.Define(stage, usd.Sdf.Path(parent_path).AppendChild(mesh_name))
    points = mesh.points()
    points_attr = usd.Vt.Vec3fArray(len(points))
    for i, (x, y, z) in enumerate(points):
        points_attr[i] = usd.Gf.Vec3f(float(x), float(y), float(z))
    prim.CreatePointsAttr(points_attr)

    counts: List[int] = []
    indices: List[int] = []
    for face in mesh.iter_faces():
        counts.append(len(face))
        indices.extend(int(i) for i in face)
    prim.CreateFaceVertexIndicesAttr(usd.Vt.IntArray(indices))
    prim.CreateFaceVertexCountsAttr(usd.Vt.IntArray(counts))
    if mesh.debug_tag:
        prim.GetPrim().SetCustomDataByKey("strucsync:debugTag", mesh.debug_tag)
    return prim


def write_preview_stage(
    meshes: Sequence[NamedMesh],
    output_path: PathLike,
    *,
    meters_per_unit: Optional[float] = None,
) -> Path:
    target = Path(output_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if meters_per_unit is None:
        meters_per_unit = scale_factor(meshes[0][1].units, "m") if meshes else 1.0
    stage = create_usd_stage(target, meters_per_unit)
    used: Dict[str, int] = {}
    for label, mesh in meshes:
        write_usd_mesh(stage, "/World", _prim_name(label, used), mesh)
    stage.GetRootLayer().Save()
    LOG.info("Authored %d preview mesh(es) to %s", len(meshes), target)
    return target
