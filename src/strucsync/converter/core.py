from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors import ConversionNotSupported, NativeApiError
from ..model import (
    Base,
    BuiltElement,
    Diaphragm,
    Element1D,
    Element2D,
    GridLine,
    Line,
    LoadBeam,
    LoadCase,
    LoadFace,
    LoadNode,
    LoadSet,
    Material,
    Node,
    Point,
    Property1D,
    Property2D,
    Result,
    Stories,
    scale_factor,
)
from ..native import (
    AREA,
    FRAME,
    GRID_LINE,
    LOAD_PATTERN,
    POINT,
    TABLE_FIELD_OVERRIDES,
    AreaConnectivityEditor,
    ElementDatabase,
    FieldOverride,
    TableData,
    ViewRefresher,
    resolve_field_names,
)
from ..records import ConversionRecord, ConversionStatus, NativeRef, ProgressReport, Snapshot
from . import areas, definitions, frames, loads, points, properties

LOG = logging.getLogger(__name__)

__all__ = ["RECEIVE_MODES", "ConverterSettings", "StructuralConverter"]

RECEIVE_MODES = ("update", "create", "ignore")

Handler = Callable[["StructuralConverter", Any], Any]

# Receive direction: type discriminator -> handler
TO_NATIVE: Dict[str, Handler] = {
    Element1D.speckle_type: frames.element1d_to_native,
    Element2D.speckle_type: areas.element2d_to_native,
    Line.speckle_type: frames.line_to_native,
    BuiltElement.speckle_type: frames.built_element_to_native,
    Node.speckle_type: points.node_to_native,
    Property1D.speckle_type: properties.property1d_to_native,
    Property2D.speckle_type: properties.property2d_to_native,
    Material.speckle_type: properties.material_to_native,
    LoadCase.speckle_type: loads.load_case_to_native,
    LoadBeam.speckle_type: loads.load_beam_to_native,
    LoadFace.speckle_type: loads.load_face_to_native,
    LoadNode.speckle_type: loads.load_node_to_native,
    LoadSet.speckle_type: loads.load_set_to_native,
    GridLine.speckle_type: definitions.gridline_to_native,
    Diaphragm.speckle_type: definitions.diaphragm_to_native,
    Stories.speckle_type: definitions.stories_to_native,
    Result.speckle_type: definitions.result_to_native,
}

# Send direction: native category -> handler
TO_PORTABLE: Dict[str, Handler] = {
    POINT: points.point_to_portable,
    FRAME: frames.frame_to_portable,
    AREA: areas.area_to_portable,
    LOAD_PATTERN: loads.load_pattern_to_portable,
    GRID_LINE: definitions.gridline_to_portable,
    definitions.STORIES: definitions.stories_to_portable,
    definitions.MODEL: definitions.model_to_portable,
}

# Built-element categories select a subset of a native category.
SUBTYPE_CATEGORIES: Dict[str, Tuple[str, Callable[["StructuralConverter", str], str]]] = {
    "Beam": (FRAME, frames.frame_kind),
    "Column": (FRAME, frames.frame_kind),
    "Brace": (FRAME, frames.frame_kind),
    "Floor": (AREA, areas.area_kind),
    "Wall": (AREA, areas.area_kind),
}
for _subtype, (_category, _) in SUBTYPE_CATEGORIES.items():
    TO_PORTABLE[_subtype] = TO_PORTABLE[_category]


@dataclass(slots=True)
class ConverterSettings:
    receive_mode: str = "update"
    send_extruded: bool = True
    default_surface_thickness: float = 0.1
    point_tolerance: float = 1.0e-3
    field_overrides: Tuple[FieldOverride, ...] = TABLE_FIELD_OVERRIDES

    def __post_init__(self) -> None:
        mode = (self.receive_mode or "update").strip().lower()
        if mode not in RECEIVE_MODES:
            raise ValueError(f"Unknown receive mode '{self.receive_mode}'; expected one of {RECEIVE_MODES}")
        self.receive_mode = mode


class StructuralConverter:
    """Converts portable structural objects to native elements and back.

    One instance serves one sync run. The native GUID index and optional
    database capabilities are resolved once here.
    """

    def __init__(
        self,
        database: ElementDatabase,
        *,
        settings: Optional[ConverterSettings] = None,
        previous: Optional[Snapshot] = None,
        report: Optional[ProgressReport] = None,
    ) -> None:
        self.db = database
        self.settings = settings or ConverterSettings()
        self.previous = previous or Snapshot()
        self.report = report or ProgressReport(LOG)
        self.model_units = getattr(database, "units", "m") or "m"
        self.area_editor: Optional[AreaConnectivityEditor] = (
            database if isinstance(database, AreaConnectivityEditor) else None
        )
        self.view_refresher: Optional[ViewRefresher] = database if isinstance(database, ViewRefresher) else None
        self.existing_guids: Dict[str, NativeRef] = self._scan_guids()
        self.pending_tables: Dict[str, TableData] = {}
        self.updated_any = False
        self._area_load_sets: Optional[Dict[str, str]] = None
        self._load_set_values: Optional[Dict[str, Dict[str, float]]] = None

    def _scan_guids(self) -> Dict[str, NativeRef]:
        index: Dict[str, NativeRef] = {}
        for category in (POINT, FRAME, AREA):
            for name in self.db.names(category):
                index[self.db.get_guid(category, name)] = NativeRef(category, name)
        LOG.debug("Indexed %d existing native GUID(s)", len(index))
        return index

    # ------------- dispatch -------------
    @staticmethod
    def _handler_for(obj: Base) -> Optional[Handler]:
        for candidate in reversed(obj.speckle_type.split(":")):
            handler = TO_NATIVE.get(candidate)
            if handler is not None:
                return handler
        for cls in type(obj).__mro__:
            handler = TO_NATIVE.get(getattr(cls, "speckle_type", ""))
            if handler is not None:
                return handler
        return None

    def can_convert_to_native(self, obj: Base) -> bool:
        return self._handler_for(obj) is not None

    def convert_to_native(self, obj: Base) -> ConversionRecord:
        handler = self._handler_for(obj)
        if handler is None:
            raise ConversionNotSupported(obj.speckle_type)
        return handler(self, obj)

    def can_convert_to_portable(self, category: str) -> bool:
        return category in TO_PORTABLE

    def convert_to_portable(self, ref: NativeRef) -> Optional[Base]:
        handler = TO_PORTABLE.get(ref.category)
        if handler is None:
            raise ConversionNotSupported(ref.category)
        return handler(self, ref.name)

    # ------------- shared helpers -------------
    def new_record(self, obj: Base) -> ConversionRecord:
        return ConversionRecord(source_id=obj.id, type_name=obj.simple_type, application_id=obj.application_id)

    def to_native_xyz(self, point: Point) -> Tuple[float, float, float]:
        return point.scaled(scale_factor(point.units, self.model_units))

    def to_native_length(self, value: float, units: Optional[str]) -> float:
        return float(value) * scale_factor(units, self.model_units)

    def same_point(self, a: Sequence[float], b: Sequence[float]) -> bool:
        return math.dist(a, b) <= self.settings.point_tolerance

    def find_existing(self, category: str, application_id: Optional[str]) -> Optional[str]:
        """Native name already holding ``application_id``, by GUID or previous snapshot."""
        if not application_id:
            return None
        ref = self.existing_guids.get(application_id)
        if ref is not None and ref.category == category and self.db.exists(category, ref.name):
            return ref.name
        previous = self.previous.find(application_id)
        if previous is not None:
            for ref in previous.converted:
                if ref.category == category and self.db.exists(category, ref.name):
                    return ref.name
        return None

    def receive_action(self, category: str, obj: Base) -> Tuple[str, Optional[str]]:
        """``(action, existing name)``; action is ``create``, ``update`` or ``skip``."""
        existing = self.find_existing(category, obj.application_id)
        if existing is None:
            return "create", None
        mode = self.settings.receive_mode
        if mode == "ignore":
            return "skip", existing
        if mode == "create":
            return "create", existing
        return "update", existing

    def skipped(self, record: ConversionRecord, category: str, name: str) -> ConversionRecord:
        record.update(
            status=ConversionStatus.SKIPPED,
            converted=[NativeRef(category, name)],
            log_item=f"{category} '{name}' already exists; left unchanged",
        )
        return record

    def unique_name(self, category: str, desired: Optional[str]) -> str:
        if not desired:
            return ""
        if not self.db.exists(category, desired):
            return desired
        renamed = f"{desired}_{uuid.uuid4().hex[:4]}"
        LOG.info("%s name '%s' is taken; using '%s'", category, desired, renamed)
        return renamed

    def assign_guid(self, category: str, name: str, application_id: Optional[str], *, fresh: bool = False) -> str:
        if application_id and not fresh:
            self.db.set_guid(category, name, application_id)
        guid = self.db.get_guid(category, name)
        self.existing_guids[guid] = NativeRef(category, name)
        return guid

    def forget_guid(self, guid: str) -> None:
        self.existing_guids.pop(guid, None)

    # ------------- deferred table edits -------------
    def defer_table_rows(self, key: str, rows: Iterable[Sequence[str]], *, key_columns: Sequence[int] = (0,)) -> None:
        table = self.pending_tables.get(key)
        if table is None:
            table = self.db.table_for_editing(key)
            self.pending_tables[key] = table
        for row in rows:
            row = [str(cell) for cell in row]
            match = tuple(row[i] for i in key_columns)
            for index, existing in enumerate(table.rows):
                if tuple(existing[i] for i in key_columns) == match:
                    table.rows[index] = row
                    break
            else:
                table.rows.append(row)

    def finalize_conversion(self) -> None:
        """Flush deferred table edits once, then refresh the host view."""
        for key, table in self.pending_tables.items():
            fields = resolve_field_names(key, table.fields, self.db.program_version, self.settings.field_overrides)
            self.db.set_table_for_editing(key, TableData(fields=fields, rows=table.rows, version=table.version))
            result = self.db.apply_edited_tables()
            if result.ok:
                self.report.log(f"Applied {len(table.rows)} deferred row(s) to '{key}'")
            else:
                self.report.log(
                    f"Deferred edits to '{key}' were rejected: {result.import_log.strip()}",
                    level=logging.ERROR,
                )
        self.pending_tables.clear()
        if self.view_refresher is not None:
            self.view_refresher.refresh_view()
            self.report.log("Refreshed native view", level=logging.DEBUG)

    # ------------- send-side lookups -------------
    def area_load_sets(self) -> Dict[str, str]:
        if self._area_load_sets is None:
            self._area_load_sets = loads.read_area_load_sets(self)
        return self._area_load_sets

    def load_set_values(self) -> Dict[str, Dict[str, float]]:
        if self._load_set_values is None:
            self._load_set_values = loads.read_load_set_values(self)
        return self._load_set_values

    def native_refs(self, categories: Iterable[str]) -> List[NativeRef]:
        refs: List[NativeRef] = []
        for category in categories:
            subtype = SUBTYPE_CATEGORIES.get(category)
            native = subtype[0] if subtype else category
            try:
                names = self.db.names(native) if native in (POINT, FRAME, AREA) else self.db.definition_names(native)
                if subtype:
                    names = [name for name in names if subtype[1](self, name) == category]
            except NativeApiError as exc:
                LOG.warning("Cannot list %s objects: %s", category, exc)
                continue
            refs.extend(NativeRef(native, name) for name in names if NativeRef(native, name) not in refs)
        return refs
