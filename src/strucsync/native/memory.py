"""Reference element database held in memory and persisted as JSON.

Mirrors the behaviour of a typical structural analysis host closely enough
to drive a full sync: coincident points merge, names are auto-numbered per
category, areas are rewired through the connectivity table, and hosts older
than 20.0.0 only accept the ``Unique Name`` spelling when that table is
written back.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import NativeApiError
from ..records import NativeRef
from .database import AREA, FRAME, FRAME_SECTION, MATERIAL, POINT, SHELL_PROPERTY, XYZ
from .tables import (
    AREA_CONNECTIVITY_TABLE,
    AREA_LOAD_SET_TABLE,
    LOAD_SET_TABLE,
    ApplyResult,
    TableData,
    parse_version,
)

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]

__all__ = ["InMemoryElementDatabase", "InMemorySapDatabase"]

_MIN_CONNECTIVITY_POINTS = 4
_STATIC_TABLE_FIELDS = {
    LOAD_SET_TABLE: ["Name", "LoadPattern", "LoadValue"],
    AREA_LOAD_SET_TABLE: ["UniqueName", "LoadSet"],
}
# A new host model ships with one usable material, frame section and shell property.
_DEFAULT_DEFINITIONS = {
    MATERIAL: ("Default", {"type": "Concrete", "grade": ""}),
    FRAME_SECTION: ("Default", {"material": "Default", "shape": "Rectangular", "depth": 0.5, "width": 0.3}),
    SHELL_PROPERTY: ("Default", {"material": "Default", "thickness": 0.2, "type": "Slab"}),
}


class InMemoryElementDatabase:
    program_name = "ETABS"

    def __init__(
        self,
        *,
        program_version: str = "21.0.0",
        units: str = "m",
        merge_tolerance: float = 1.0e-6,
    ) -> None:
        self.program_version = program_version
        self.units = units
        self.merge_tolerance = merge_tolerance
        self.points: Dict[str, List[float]] = {}
        self.frames: Dict[str, List[str]] = {}
        self.areas: Dict[str, List[str]] = {}
        self.guids: Dict[str, Dict[str, str]] = {POINT: {}, FRAME: {}, AREA: {}}
        self.properties: Dict[str, Dict[str, Dict[str, Any]]] = {POINT: {}, FRAME: {}, AREA: {}}
        self.definitions: Dict[str, Dict[str, Dict[str, Any]]] = {
            kind: {name: dict(data)} for kind, (name, data) in _DEFAULT_DEFINITIONS.items()
        }
        self.load_assignments: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        self.tables: Dict[str, TableData] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.view_refreshes = 0
        self._pending: Dict[str, TableData] = {}
        self._counters: Dict[str, int] = {POINT: 0, FRAME: 0, AREA: 0}
        self._table_version = 0

    # ------------- helpers -------------
    def _store(self, category: str) -> Dict[str, Any]:
        if category == POINT:
            return self.points
        if category == FRAME:
            return self.frames
        if category == AREA:
            return self.areas
        raise NativeApiError(f"{category}Obj", f"unknown object category '{category}'")

    def _require(self, category: str, name: str) -> None:
        if name not in self._store(category):
            raise NativeApiError(f"{category}Obj", f"{category} '{name}' does not exist")

    def _next_name(self, category: str) -> str:
        store = self._store(category)
        while True:
            self._counters[category] += 1
            candidate = str(self._counters[category])
            if candidate not in store:
                return candidate

    def _register(self, category: str, name: str) -> None:
        self.guids[category][name] = str(uuid.uuid4())
        self.properties[category][name] = {}

    def _forget(self, category: str, name: str) -> None:
        self.guids[category].pop(name, None)
        self.properties[category].pop(name, None)
        self.load_assignments.get(category, {}).pop(name, None)

    # ------------- points -------------
    def add_point(self, x: float, y: float, z: float, name: str = "") -> str:
        existing = self.find_point((x, y, z), self.merge_tolerance)
        if existing is not None:
            return existing
        if not name or name in self.points:
            name = self._next_name(POINT)
        self.points[name] = [float(x), float(y), float(z)]
        self._register(POINT, name)
        self.calls.append(("add_point", name))
        return name

    def point_coordinates(self, name: str) -> XYZ:
        self._require(POINT, name)
        x, y, z = self.points[name]
        return (x, y, z)

    def move_point(self, name: str, xyz: XYZ) -> None:
        self._require(POINT, name)
        self.points[name] = [float(c) for c in xyz]
        self.calls.append(("move_point", name))

    def find_point(self, xyz: XYZ, tolerance: float) -> Optional[str]:
        for name, coords in self.points.items():
            if math.dist(coords, xyz) <= tolerance:
                return name
        return None

    def point_connectivity(self, name: str) -> List[NativeRef]:
        self._require(POINT, name)
        refs = [NativeRef(FRAME, frame) for frame, pts in self.frames.items() if name in pts]
        refs.extend(NativeRef(AREA, area) for area, pts in self.areas.items() if name in pts)
        return refs

    def delete_special_point(self, name: str) -> None:
        self._require(POINT, name)
        if self.point_connectivity(name):
            raise NativeApiError("PointObj.DeleteSpecialPoint", f"point '{name}' is still connected")
        del self.points[name]
        self._forget(POINT, name)
        self.calls.append(("delete", POINT, name))

    # ------------- frames -------------
    def add_frame_by_coord(self, start: XYZ, end: XYZ, *, section: Optional[str] = None, name: str = "") -> str:
        if name and name in self.frames:
            raise NativeApiError("FrameObj.AddByCoord", f"frame name '{name}' already exists")
        point_i = self.add_point(*start)
        point_j = self.add_point(*end)
        if point_i == point_j:
            raise NativeApiError("FrameObj.AddByCoord", "frame end points coincide")
        name = name or self._next_name(FRAME)
        self.frames[name] = [point_i, point_j]
        self._register(FRAME, name)
        self.properties[FRAME][name]["section"] = section or "Default"
        self.calls.append(("add_frame", name))
        return name

    def frame_points(self, name: str) -> Tuple[str, str]:
        self._require(FRAME, name)
        point_i, point_j = self.frames[name]
        return point_i, point_j

    def change_frame_connectivity(self, name: str, point_i: str, point_j: str) -> None:
        self._require(FRAME, name)
        self._require(POINT, point_i)
        self._require(POINT, point_j)
        if point_i == point_j:
            raise NativeApiError("EditFrame.ChangeConnectivity", "frame end points coincide")
        self.frames[name] = [point_i, point_j]
        self.calls.append(("change_frame_connectivity", name))

    # ------------- areas -------------
    def add_area_by_coord(self, points: Sequence[XYZ], *, prop: Optional[str] = None, name: str = "") -> str:
        if len(points) < 3:
            raise NativeApiError("AreaObj.AddByCoord", f"an area needs at least 3 points, got {len(points)}")
        if name and name in self.areas:
            raise NativeApiError("AreaObj.AddByCoord", f"area name '{name}' already exists")
        point_names = [self.add_point(*xyz) for xyz in points]
        if len(set(point_names)) != len(point_names):
            raise NativeApiError("AreaObj.AddByCoord", "area ring repeats a point")
        name = name or self._next_name(AREA)
        self.areas[name] = point_names
        self._register(AREA, name)
        self.properties[AREA][name]["property"] = prop or "Default"
        self.calls.append(("add_area", name))
        return name

    def area_points(self, name: str) -> List[str]:
        self._require(AREA, name)
        return list(self.areas[name])

    # ------------- common -------------
    def names(self, category: str) -> List[str]:
        return list(self._store(category))

    def exists(self, category: str, name: str) -> bool:
        return name in self._store(category)

    def get_guid(self, category: str, name: str) -> str:
        self._require(category, name)
        return self.guids[category][name]

    def set_guid(self, category: str, name: str, guid: str) -> None:
        self._require(category, name)
        self.guids[category][name] = str(guid)

    def get_property(self, category: str, name: str, key: str, default: Any = None) -> Any:
        self._require(category, name)
        return self.properties[category][name].get(key, default)

    def set_property(self, category: str, name: str, key: str, value: Any) -> None:
        self._require(category, name)
        self.properties[category][name][key] = value

    def delete(self, category: str, name: str) -> None:
        if category == POINT:
            self.delete_special_point(name)
            return
        self._require(category, name)
        del self._store(category)[name]
        self._forget(category, name)
        self.calls.append(("delete", category, name))

    def rename(self, category: str, name: str, new_name: str) -> None:
        self._require(category, name)
        store = self._store(category)
        if new_name == name:
            return
        if new_name in store:
            raise NativeApiError(f"{category}Obj.ChangeName", f"name '{new_name}' already exists")
        store[new_name] = store.pop(name)
        self.guids[category][new_name] = self.guids[category].pop(name)
        self.properties[category][new_name] = self.properties[category].pop(name)

    # ------------- definitions and loads -------------
    def define(self, kind: str, name: str, data: Mapping[str, Any]) -> None:
        if not name:
            raise NativeApiError(f"{kind}.Define", "definition name is empty")
        self.definitions.setdefault(kind, {})[name] = dict(data)
        self.calls.append(("define", kind, name))

    def definition(self, kind: str, name: str) -> Optional[Dict[str, Any]]:
        found = self.definitions.get(kind, {}).get(name)
        return dict(found) if found is not None else None

    def definition_names(self, kind: str) -> List[str]:
        return list(self.definitions.get(kind, {}))

    def assign_load(self, category: str, name: str, load: Mapping[str, Any]) -> None:
        self._require(category, name)
        self.load_assignments.setdefault(category, {}).setdefault(name, []).append(dict(load))

    def loads(self, category: str, name: str) -> List[Dict[str, Any]]:
        return [dict(item) for item in self.load_assignments.get(category, {}).get(name, [])]

    # ------------- tables -------------
    def _uses_spaced_unique_name(self) -> bool:
        return parse_version(self.program_version) < (20, 0, 0)

    def _area_connectivity_table(self) -> TableData:
        width = max([_MIN_CONNECTIVITY_POINTS] + [len(pts) for pts in self.areas.values()])
        fields = ["UniqueName"] + [f"Point{i}" for i in range(1, width + 1)] + ["GUID"]
        rows = []
        for name, pts in self.areas.items():
            rows.append([name] + list(pts) + [""] * (width - len(pts)) + [self.guids[AREA][name]])
        return TableData(fields=fields, rows=rows, version=self._table_version)

    def table_for_editing(self, key: str) -> TableData:
        if key == AREA_CONNECTIVITY_TABLE:
            return self._area_connectivity_table()
        if key in self.tables:
            return self.tables[key].copy()
        if key in _STATIC_TABLE_FIELDS:
            return TableData(fields=list(_STATIC_TABLE_FIELDS[key]), rows=[], version=self._table_version)
        raise NativeApiError("DatabaseTables.GetTableForEditingArray", f"unknown table '{key}'")

    def set_table_for_editing(self, key: str, table: TableData) -> None:
        if key != AREA_CONNECTIVITY_TABLE and key not in _STATIC_TABLE_FIELDS and key not in self.tables:
            raise NativeApiError("DatabaseTables.SetTableForEditingArray", f"unknown table '{key}'")
        self._pending[key] = table.copy()

    def _apply_area_connectivity(self, table: TableData, result: ApplyResult) -> None:
        expected = "Unique Name" if self._uses_spaced_unique_name() else "UniqueName"
        if not table.fields or table.fields[0] != expected:
            result.errors += 1
            result.import_log += f"Field '{table.fields[0] if table.fields else ''}' not recognised; expected '{expected}'.\n"
            return
        for row in table.rows:
            name, point_names = row[0], [p for p in row[1:-1] if p]
            if name not in self.areas:
                result.errors += 1
                result.import_log += f"Area '{name}' not found.\n"
                continue
            missing = [p for p in point_names if p not in self.points]
            if len(point_names) < 3 or missing:
                result.errors += 1
                result.import_log += f"Area '{name}' has an invalid ring {point_names}.\n"
                continue
            if point_names != self.areas[name]:
                self.areas[name] = point_names
                result.info += 1

    def _apply_area_load_sets(self, table: TableData) -> None:
        name_col, set_col = 0, table.column("LoadSet")
        for row in table.rows:
            if row[name_col] in self.areas:
                self.properties[AREA][row[name_col]]["load_set"] = row[set_col]

    def apply_edited_tables(self) -> ApplyResult:
        result = ApplyResult()
        pending, self._pending = self._pending, {}
        for key, table in pending.items():
            if key == AREA_CONNECTIVITY_TABLE:
                self._apply_area_connectivity(table, result)
            else:
                if key == AREA_LOAD_SET_TABLE:
                    self._apply_area_load_sets(table)
                self.tables[key] = table
                result.info += 1
            self.calls.append(("apply_table", key))
        self._table_version += 1
        return result

    def refresh_view(self) -> None:
        self.view_refreshes += 1

    # ------------- persistence -------------
    def to_mapping(self) -> Dict[str, Any]:
        return {
            "program": {"name": self.program_name, "version": self.program_version, "units": self.units},
            "points": self.points,
            "frames": self.frames,
            "areas": self.areas,
            "guids": self.guids,
            "properties": self.properties,
            "definitions": self.definitions,
            "loads": self.load_assignments,
            "tables": {key: table.as_dict() for key, table in self.tables.items()},
            "counters": self._counters,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "InMemoryElementDatabase":
        program = data.get("program") or {}
        db = cls(program_version=str(program.get("version") or "21.0.0"), units=str(program.get("units") or "m"))
        db.points = {str(k): [float(c) for c in v] for k, v in (data.get("points") or {}).items()}
        db.frames = {str(k): list(v) for k, v in (data.get("frames") or {}).items()}
        db.areas = {str(k): list(v) for k, v in (data.get("areas") or {}).items()}
        for category in (POINT, FRAME, AREA):
            db.guids[category] = dict((data.get("guids") or {}).get(category) or {})
            db.properties[category] = {
                k: dict(v) for k, v in ((data.get("properties") or {}).get(category) or {}).items()
            }
            store = db._store(category)
            for name in store:
                db.guids[category].setdefault(name, str(uuid.uuid4()))
                db.properties[category].setdefault(name, {})
        if "definitions" in data:
            db.definitions = {k: dict(v) for k, v in (data.get("definitions") or {}).items()}
        db.load_assignments = {k: dict(v) for k, v in (data.get("loads") or {}).items()}
        db.tables = {k: TableData.from_mapping(v) for k, v in (data.get("tables") or {}).items()}
        db._counters.update({k: int(v) for k, v in (data.get("counters") or {}).items()})
        return db

    def save(self, path: PathLike) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(self.to_mapping(), indent=2), encoding="utf-8")
        LOG.debug("Saved element database to %s", target)
        return target

    @classmethod
    def load(cls, path: PathLike) -> "InMemoryElementDatabase":
        source = Path(path)
        if not source.exists():
            LOG.info("Element database %s not found; starting with an empty model.", source)
            return cls()
        loaded = json.loads(source.read_text(encoding="utf-8"))
        if not isinstance(loaded, dict):
            raise ValueError("Element database JSON must define a mapping at the top level")
        return cls.from_mapping(loaded)


class InMemorySapDatabase(InMemoryElementDatabase):
    """Variant whose areas can be rewired directly."""

    program_name = "SAP2000"

    def change_area_connectivity(self, name: str, points: Sequence[str]) -> None:
        self._require(AREA, name)
        for point in points:
            self._require(POINT, point)
        if len(points) < 3:
            raise NativeApiError("EditArea.ChangeConnectivity", "an area needs at least 3 points")
        self.areas[name] = list(points)
        self.calls.append(("change_area_connectivity", name))
