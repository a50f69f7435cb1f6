"""Capability surface of a native structural element database."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ..records import NativeRef
from .tables import ApplyResult, TableData

__all__ = [
    "POINT",
    "FRAME",
    "AREA",
    "FRAME_SECTION",
    "SHELL_PROPERTY",
    "MATERIAL",
    "LOAD_PATTERN",
    "GRID_LINE",
    "DIAPHRAGM",
    "STORY",
    "XYZ",
    "ElementDatabase",
    "AreaConnectivityEditor",
    "ViewRefresher",
]

POINT = "Point"
FRAME = "Frame"
AREA = "Area"

FRAME_SECTION = "FrameSection"
SHELL_PROPERTY = "ShellProperty"
MATERIAL = "Material"
LOAD_PATTERN = "LoadPattern"
GRID_LINE = "GridLine"
DIAPHRAGM = "Diaphragm"
STORY = "Story"

XYZ = Tuple[float, float, float]


class ElementDatabase(Protocol):
    """Host model store addressed by transient names and stable GUIDs.

    Mutating calls raise :class:`~strucsync.errors.NativeApiError` when the
    host rejects input and :class:`~strucsync.errors.NativeHostError` when
    the host itself is gone.
    """

    program_name: str
    program_version: str
    units: str

    def add_point(self, x: float, y: float, z: float, name: str = "") -> str: ...

    def point_coordinates(self, name: str) -> XYZ: ...

    def move_point(self, name: str, xyz: XYZ) -> None: ...

    def find_point(self, xyz: XYZ, tolerance: float) -> Optional[str]: ...

    def point_connectivity(self, name: str) -> List[NativeRef]: ...

    def delete_special_point(self, name: str) -> None: ...

    def add_frame_by_coord(self, start: XYZ, end: XYZ, *, section: Optional[str] = None, name: str = "") -> str: ...

    def frame_points(self, name: str) -> Tuple[str, str]: ...

    def change_frame_connectivity(self, name: str, point_i: str, point_j: str) -> None: ...

    def add_area_by_coord(self, points: Sequence[XYZ], *, prop: Optional[str] = None, name: str = "") -> str: ...

    def area_points(self, name: str) -> List[str]: ...

    def names(self, category: str) -> List[str]: ...

    def exists(self, category: str, name: str) -> bool: ...

    def get_guid(self, category: str, name: str) -> str: ...

    def set_guid(self, category: str, name: str, guid: str) -> None: ...

    def get_property(self, category: str, name: str, key: str, default: Any = None) -> Any: ...

    def set_property(self, category: str, name: str, key: str, value: Any) -> None: ...

    def delete(self, category: str, name: str) -> None: ...

    def rename(self, category: str, name: str, new_name: str) -> None: ...

    def define(self, kind: str, name: str, data: Mapping[str, Any]) -> None: ...

    def definition(self, kind: str, name: str) -> Optional[Dict[str, Any]]: ...

    def definition_names(self, kind: str) -> List[str]: ...

    def assign_load(self, category: str, name: str, load: Mapping[str, Any]) -> None: ...

    def loads(self, category: str, name: str) -> List[Dict[str, Any]]: ...

    def table_for_editing(self, key: str) -> TableData: ...

    def set_table_for_editing(self, key: str, table: TableData) -> None: ...

    def apply_edited_tables(self) -> ApplyResult: ...


@runtime_checkable
class AreaConnectivityEditor(Protocol):
    """Hosts that can rewire an area's ring in place (no table round trip)."""

    def change_area_connectivity(self, name: str, points: Sequence[str]) -> None: ...


@runtime_checkable
class ViewRefresher(Protocol):
    def refresh_view(self) -> None: ...
