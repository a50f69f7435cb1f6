"""Portable structural object graph.

Objects carry an identity (explicit or content-derived), an optional stable
``application_id`` and a dotted type discriminator. Members can be declared
fields or dynamic entries (``obj["@displayValue"] = [...]``); traversal sees
both through :meth:`Base.members`.
"""

from __future__ import annotations

import hashlib
import json
import math
import re
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple

__all__ = [
    "Base",
    "Point",
    "Vector",
    "Line",
    "Mesh",
    "Restraint",
    "Node",
    "Material",
    "SectionProfile",
    "RectangularProfile",
    "Property1D",
    "Property2D",
    "Element1D",
    "Element2D",
    "LoadCase",
    "LoadBeam",
    "LoadFace",
    "LoadNode",
    "LoadSet",
    "GridLine",
    "Diaphragm",
    "Story",
    "Stories",
    "Result",
    "Model",
    "BuiltElement",
    "Beam",
    "Column",
    "Brace",
    "UNIT_FACTORS",
    "scale_factor",
    "graph_from_dict",
    "resolve_type",
    "normalize_ring",
]

# Length unit factors to metres
UNIT_FACTORS = {
    "m": 1.0,
    "meter": 1.0,
    "meters": 1.0,
    "mm": 0.001,
    "millimeter": 0.001,
    "millimeters": 0.001,
    "cm": 0.01,
    "centimeter": 0.01,
    "centimeters": 0.01,
    "in": 0.0254,
    "inch": 0.0254,
    "inches": 0.0254,
    "ft": 0.3048,
    "foot": 0.3048,
    "feet": 0.3048,
}

_REGISTRY: Dict[str, type] = {}
_RESERVED = frozenset({"object_id", "extra", "application_id", "_hash"})
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

RING_DUPLICATE_TOLERANCE = 1.0e-6


def scale_factor(from_units: Optional[str], to_units: Optional[str]) -> float:
    source = UNIT_FACTORS.get((from_units or "m").strip().lower())
    target = UNIT_FACTORS.get((to_units or "m").strip().lower())
    if source is None:
        raise ValueError(f"Unsupported length unit: {from_units}")
    if target is None:
        raise ValueError(f"Unsupported length unit: {to_units}")
    return source / target


def _canonical(value: Any) -> Any:
    if isinstance(value, Base):
        return {"@ref": value.id}
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _canonical(item) for key, item in value.items()}
    if isinstance(value, float) and not math.isfinite(value):
        return repr(value)
    return value


def _encode(value: Any) -> Any:
    if isinstance(value, Base):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _encode(item) for key, item in value.items()}
    return value


@dataclass(eq=False, kw_only=True)
class Base:
    speckle_type: ClassVar[str] = "Base"

    application_id: Optional[str] = None
    object_id: Optional[str] = field(default=None, repr=False)
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)
    _hash: Optional[str] = field(default=None, init=False, repr=False)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if "speckle_type" in cls.__dict__:
            _REGISTRY[cls.speckle_type] = cls

    @property
    def id(self) -> str:
        """Explicit identity, else a content hash computed on first access."""
        if self.object_id:
            return self.object_id
        if self._hash is None:
            payload = {
                "speckle_type": self.speckle_type,
                "application_id": self.application_id,
                "members": {name: _canonical(value) for name, value in self.members()},
            }
            encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
            self._hash = hashlib.sha256(encoded).hexdigest()[:32]
        return self._hash

    @property
    def simple_type(self) -> str:
        return self.speckle_type.split(":")[-1].split(".")[-1]

    def _field_names(self) -> List[str]:
        return [f.name for f in fields(self) if f.name not in _RESERVED]

    def members(self) -> Iterator[Tuple[str, Any]]:
        for name in self._field_names():
            yield name, getattr(self, name)
        yield from self.extra.items()

    def __getitem__(self, key: str) -> Any:
        if key in self._field_names():
            return getattr(self, key)
        return self.extra.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        if key in self._field_names():
            setattr(self, key, value)
        else:
            self.extra[key] = value
        self._hash = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"speckle_type": self.speckle_type, "id": self.id}
        if self.application_id:
            payload["application_id"] = self.application_id
        for name, value in self.members():
            if value is None:
                continue
            payload[name] = _encode(value)
        return payload


@dataclass(eq=False)
class Point(Base):
    speckle_type: ClassVar[str] = "Objects.Geometry.Point"

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    units: str = "m"

    def as_tuple(self) -> Tuple[float, float, float]:
        return (float(self.x), float(self.y), float(self.z))

    def scaled(self, factor: float) -> Tuple[float, float, float]:
        return (float(self.x) * factor, float(self.y) * factor, float(self.z) * factor)


@dataclass(eq=False)
class Vector(Base):
    speckle_type: ClassVar[str] = "Objects.Geometry.Vector"

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    units: str = "m"


@dataclass(eq=False)
class Line(Base):
    speckle_type: ClassVar[str] = "Objects.Geometry.Line"

    start: Optional[Point] = None
    end: Optional[Point] = None
    units: str = "m"

    def length(self) -> float:
        if self.start is None or self.end is None:
            return 0.0
        return math.dist(self.start.as_tuple(), self.end.as_tuple())


@dataclass(eq=False)
class Mesh(Base):
    """Vertex buffer plus variable-arity faces (``n, i0..in-1``; ``0`` means triangle)."""

    speckle_type: ClassVar[str] = "Objects.Geometry.Mesh"

    vertices: List[float] = field(default_factory=list)
    faces: List[int] = field(default_factory=list)
    units: str = "m"
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def vertex_count(self) -> int:
        return len(self.vertices) // 3

    @property
    def debug_tag(self) -> Optional[str]:
        return self.tags.get("debug_tag")

    def points(self) -> List[Tuple[float, float, float]]:
        v = self.vertices
        return [(v[i], v[i + 1], v[i + 2]) for i in range(0, len(v) - 2, 3)]

    def iter_faces(self) -> Iterator[Tuple[int, ...]]:
        i = 0
        faces = self.faces
        while i < len(faces):
            count = faces[i]
            arity = 3 if count == 0 else count
            if arity < 3 or i + arity >= len(faces):
                break
            yield tuple(faces[i + 1 : i + 1 + arity])
            i += arity + 1

    def face_count(self) -> int:
        return sum(1 for _ in self.iter_faces())


@dataclass(eq=False)
class Restraint(Base):
    """Six-character DOF code; ``F`` fixed, ``R`` released."""

    speckle_type: ClassVar[str] = "Objects.Structural.Geometry.Restraint"

    code: str = "FFFFFF"

    def released(self) -> List[bool]:
        code = (self.code or "").upper().ljust(6, "F")[:6]
        return [ch == "R" for ch in code]

    @classmethod
    def from_released(cls, flags: Sequence[bool]) -> "Restraint":
        return cls(code="".join("R" if flag else "F" for flag in flags))


@dataclass(eq=False)
class Node(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Geometry.Node"

    base_point: Optional[Point] = None
    name: str = ""
    restraint: Optional[Restraint] = None
    units: str = "m"


@dataclass(eq=False)
class Material(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Materials.StructuralMaterial"

    name: str = ""
    material_type: str = "Concrete"
    grade: str = ""


@dataclass(eq=False)
class SectionProfile(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Properties.Profiles.SectionProfile"

    name: str = ""
    shape_type: str = "Generic"
    units: str = "m"


@dataclass(eq=False)
class RectangularProfile(SectionProfile):
    speckle_type: ClassVar[str] = "Objects.Structural.Properties.Profiles.Rectangular"

    shape_type: str = "Rectangular"
    depth: float = 0.0
    width: float = 0.0


@dataclass(eq=False)
class Property1D(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Properties.Property1D"

    name: str = ""
    material: Optional[Material] = None
    profile: Optional[SectionProfile] = None


@dataclass(eq=False)
class Property2D(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Properties.Property2D"

    name: str = ""
    material: Optional[Material] = None
    thickness: float = 0.0
    property_type: str = "Shell"
    units: str = "m"


@dataclass(eq=False)
class Element1D(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Geometry.Element1D"

    name: str = ""
    base_line: Optional[Line] = None
    end1_node: Optional[Node] = None
    end2_node: Optional[Node] = None
    property: Optional[Property1D] = None
    type: str = "Beam"
    end1_releases: Optional[Restraint] = None
    end2_releases: Optional[Restraint] = None
    orientation_angle: float = 0.0
    stiffness_modifiers: Optional[List[float]] = None
    pier_assignment: Optional[str] = None
    spandrel_assignment: Optional[str] = None
    design_procedure: Optional[str] = None
    cardinal_point: Optional[int] = None
    units: str = "m"

    def end_points(self) -> Tuple[Point, Point]:
        """Endpoints from the end nodes, else from the centerline."""
        if self.end1_node is not None and self.end2_node is not None:
            if self.end1_node.base_point is not None and self.end2_node.base_point is not None:
                return self.end1_node.base_point, self.end2_node.base_point
        if self.base_line is not None and self.base_line.start is not None and self.base_line.end is not None:
            return self.base_line.start, self.base_line.end
        raise ValueError(f"Element1D '{self.name or self.id}' has neither end nodes nor a centerline")


@dataclass(eq=False)
class Element2D(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Geometry.Element2D"

    name: str = ""
    topology: List[Node] = field(default_factory=list)
    openings: List[List[Node]] = field(default_factory=list)
    property: Optional[Property2D] = None
    type: str = "Floor"
    stiffness_modifiers: Optional[List[float]] = None
    orientation_angle: float = 0.0
    pier_assignment: Optional[str] = None
    spandrel_assignment: Optional[str] = None
    diaphragm_assignment: Optional[str] = None
    load_set: Optional[str] = None
    is_opening: bool = False
    units: str = "m"

    def outer_ring(self) -> List[Point]:
        return normalize_ring([node.base_point for node in self.topology if node.base_point is not None])

    def hole_rings(self) -> List[List[Point]]:
        rings = []
        for opening in self.openings or []:
            ring = normalize_ring([node.base_point for node in opening if node.base_point is not None])
            if len(ring) >= 3:
                rings.append(ring)
        return rings


@dataclass(eq=False)
class LoadCase(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Loading.LoadCase"

    name: str = ""
    load_type: str = "Dead"
    self_weight_multiplier: float = 0.0


@dataclass(eq=False)
class LoadBeam(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Loading.LoadBeam"

    name: str = ""
    load_case: Optional[LoadCase] = None
    elements: List[Element1D] = field(default_factory=list)
    load_type: str = "Uniform"
    direction: str = "Gravity"
    values: List[float] = field(default_factory=list)
    positions: List[float] = field(default_factory=list)


@dataclass(eq=False)
class LoadFace(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Loading.LoadFace"

    name: str = ""
    load_case: Optional[LoadCase] = None
    elements: List[Element2D] = field(default_factory=list)
    direction: str = "Gravity"
    values: List[float] = field(default_factory=list)


@dataclass(eq=False)
class LoadNode(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Loading.LoadNode"

    name: str = ""
    load_case: Optional[LoadCase] = None
    nodes: List[Node] = field(default_factory=list)
    values: List[float] = field(default_factory=list)


@dataclass(eq=False)
class LoadSet(Base):
    """Named set of uniform surface loads, one value per load pattern."""

    speckle_type: ClassVar[str] = "Objects.Structural.Loading.LoadSet"

    name: str = ""
    entries: Dict[str, float] = field(default_factory=dict)


@dataclass(eq=False)
class GridLine(Base):
    speckle_type: ClassVar[str] = "Objects.BuiltElements.GridLine"

    label: str = ""
    base_line: Optional[Line] = None


@dataclass(eq=False)
class Diaphragm(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.CSI.Properties.CSIDiaphragm"

    name: str = ""
    semi_rigid: bool = False


@dataclass(eq=False)
class Story(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.CSI.Analysis.CSIStoryData"

    name: str = ""
    elevation: float = 0.0
    units: str = "m"


@dataclass(eq=False)
class Stories(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.CSI.Analysis.CSIStories"

    base_elevation: float = 0.0
    levels: List[Story] = field(default_factory=list)
    units: str = "m"


@dataclass(eq=False)
class Result(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Results.Result"

    result_case: str = ""
    values: Dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class Model(Base):
    speckle_type: ClassVar[str] = "Objects.Structural.Analysis.Model"

    name: str = ""
    loads: List[Base] = field(default_factory=list)
    elements: List[Base] = field(default_factory=list)
    nodes: List[Node] = field(default_factory=list)
    properties: List[Base] = field(default_factory=list)
    materials: List[Material] = field(default_factory=list)
    units: str = "m"


@dataclass(eq=False)
class BuiltElement(Base):
    speckle_type: ClassVar[str] = "Objects.BuiltElements.BuiltElement"

    base_line: Optional[Line] = None
    units: str = "m"


@dataclass(eq=False)
class Beam(BuiltElement):
    speckle_type: ClassVar[str] = "Objects.BuiltElements.Beam"


@dataclass(eq=False)
class Column(BuiltElement):
    speckle_type: ClassVar[str] = "Objects.BuiltElements.Column"


@dataclass(eq=False)
class Brace(BuiltElement):
    speckle_type: ClassVar[str] = "Objects.BuiltElements.Brace"


def normalize_ring(points: Sequence[Point], tolerance: float = RING_DUPLICATE_TOLERANCE) -> List[Point]:
    """Drop a trailing point that repeats the first one."""
    ring = list(points)
    if len(ring) >= 2 and math.dist(ring[0].as_tuple(), ring[-1].as_tuple()) <= tolerance:
        ring.pop()
    return ring


def resolve_type(type_name: str) -> type:
    """Most-derived registered class for a (possibly ``:``-chained) discriminator."""
    for candidate in reversed(type_name.split(":")):
        cls = _REGISTRY.get(candidate)
        if cls is not None:
            return cls
    return Base


def _attribute_name(key: str) -> str:
    if key.startswith("@"):
        return key
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def graph_from_dict(data: Any, _cache: Optional[Dict[str, Base]] = None) -> Any:
    """Rebuild a graph from plain dicts; objects sharing an ``id`` become one instance."""
    cache: Dict[str, Base] = {} if _cache is None else _cache
    if isinstance(data, list):
        return [graph_from_dict(item, cache) for item in data]
    if not isinstance(data, dict):
        return data
    type_name = data.get("speckle_type")
    if not type_name:
        return {key: graph_from_dict(value, cache) for key, value in data.items()}
    object_id = data.get("id")
    if object_id and object_id in cache:
        return cache[object_id]

    cls = resolve_type(str(type_name))
    known = {f.name for f in fields(cls) if f.init}
    kwargs: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}
    for key, value in data.items():
        if key in ("speckle_type", "id"):
            continue
        attr = _attribute_name(key)
        decoded = graph_from_dict(value, cache)
        if attr in known and attr not in ("object_id", "extra"):
            kwargs[attr] = decoded
        else:
            extra[key] = decoded
    obj = cls(object_id=object_id, extra=extra, **kwargs)
    if type_name != cls.speckle_type:
        obj.speckle_type = str(type_name)
    if object_id:
        cache[object_id] = obj
    return obj
