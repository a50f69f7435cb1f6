from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from ..errors import ConversionFailed, NativeApiError
from ..model import Base, LoadBeam, LoadCase, LoadFace, LoadNode, LoadSet, Node
from ..native import AREA, AREA_LOAD_SET_TABLE, FRAME, LOAD_PATTERN, LOAD_SET_TABLE, POINT
from ..records import ConversionRecord, ConversionStatus, NativeRef

if TYPE_CHECKING:
    from .core import StructuralConverter

LOG = logging.getLogger(__name__)

DEFAULT_PATTERN = "Dead"


def ensure_load_pattern(conv: "StructuralConverter", load_case: Optional[LoadCase]) -> str:
    if load_case is None or not load_case.name:
        name, data = DEFAULT_PATTERN, {"type": "Dead", "self_weight": 1.0}
    else:
        name = load_case.name
        data = {"type": load_case.load_type, "self_weight": float(load_case.self_weight_multiplier)}
    if conv.db.definition(LOAD_PATTERN, name) is None:
        conv.db.define(LOAD_PATTERN, name, data)
    return name


def load_case_to_native(conv: "StructuralConverter", load_case: LoadCase) -> ConversionRecord:
    name = ensure_load_pattern(conv, load_case)
    record = conv.new_record(load_case)
    record.update(status=ConversionStatus.CREATED, created_ids=[name], converted=[NativeRef(LOAD_PATTERN, name)])
    return record


def _target_name(conv: "StructuralConverter", category: str, target: Base) -> Optional[str]:
    name = conv.find_existing(category, target.application_id)
    if name is not None:
        return name
    candidate = getattr(target, "name", "")
    if candidate and conv.db.exists(category, candidate):
        return candidate
    if isinstance(target, Node) and target.base_point is not None:
        return conv.db.find_point(conv.to_native_xyz(target.base_point), conv.settings.point_tolerance)
    return None


def _assign(
    conv: "StructuralConverter",
    obj: Base,
    category: str,
    targets: Sequence[Base],
    payload: Dict[str, Any],
) -> ConversionRecord:
    record = conv.new_record(obj)
    pattern = payload["pattern"]
    missing = 0
    for target in targets:
        name = _target_name(conv, category, target)
        if name is None:
            missing += 1
            continue
        conv.db.assign_load(category, name, payload)
        record.created_ids.append(f"{pattern}:{category}:{name}")
    if missing:
        record.log.append(f"{missing} {category.lower()} target(s) not found in the model")
    if not record.created_ids:
        raise ConversionFailed(f"Load '{getattr(obj, 'name', '') or obj.id}' matched no native {category.lower()}")
    record.set_status(ConversionStatus.CREATED)
    return record


def load_beam_to_native(conv: "StructuralConverter", load: LoadBeam) -> ConversionRecord:
    payload = {
        "pattern": ensure_load_pattern(conv, load.load_case),
        "type": load.load_type,
        "direction": load.direction,
        "values": [float(v) for v in load.values],
        "positions": [float(p) for p in load.positions],
    }
    return _assign(conv, load, FRAME, load.elements, payload)


def load_face_to_native(conv: "StructuralConverter", load: LoadFace) -> ConversionRecord:
    payload = {
        "pattern": ensure_load_pattern(conv, load.load_case),
        "direction": load.direction,
        "values": [float(v) for v in load.values],
    }
    return _assign(conv, load, AREA, load.elements, payload)


def load_node_to_native(conv: "StructuralConverter", load: LoadNode) -> ConversionRecord:
    payload = {"pattern": ensure_load_pattern(conv, load.load_case), "values": [float(v) for v in load.values]}
    return _assign(conv, load, POINT, load.nodes, payload)


def load_set_to_native(conv: "StructuralConverter", load_set: LoadSet) -> ConversionRecord:
    """Load sets are written through a bulk table, flushed at finalize."""
    if not load_set.name:
        raise ConversionFailed("Load set has no name")
    rows = []
    for pattern, value in load_set.entries.items():
        pattern = ensure_load_pattern(conv, LoadCase(name=pattern))
        rows.append([load_set.name, pattern, f"{float(value):g}"])
    conv.defer_table_rows(LOAD_SET_TABLE, rows, key_columns=(0, 1))
    record = conv.new_record(load_set)
    record.update(
        status=ConversionStatus.CREATED,
        created_ids=[load_set.name],
        log_item=f"Queued {len(rows)} row(s) for load set {load_set.name}",
    )
    return record


def queue_area_load_set(conv: "StructuralConverter", area: str, load_set: str) -> None:
    conv.defer_table_rows(AREA_LOAD_SET_TABLE, [[area, load_set]])


def load_pattern_to_portable(conv: "StructuralConverter", name: str) -> LoadCase:
    data = conv.db.definition(LOAD_PATTERN, name) or {}
    return LoadCase(
        name=name,
        load_type=str(data.get("type") or "Dead"),
        self_weight_multiplier=float(data.get("self_weight") or 0.0),
    )


def _read_rows(conv: "StructuralConverter", key: str) -> List[Dict[str, str]]:
    try:
        table = conv.db.table_for_editing(key)
    except NativeApiError as exc:
        LOG.warning("Table '%s' unavailable: %s", key, exc)
        return []
    return [dict(zip(table.fields, row)) for row in table.rows]


def read_area_load_sets(conv: "StructuralConverter") -> Dict[str, str]:
    return {row["UniqueName"]: row["LoadSet"] for row in _read_rows(conv, AREA_LOAD_SET_TABLE) if row.get("LoadSet")}


def read_load_set_values(conv: "StructuralConverter") -> Dict[str, Dict[str, float]]:
    values: Dict[str, Dict[str, float]] = {}
    for row in _read_rows(conv, LOAD_SET_TABLE):
        try:
            values.setdefault(row["Name"], {})[row["LoadPattern"]] = float(row["LoadValue"])
        except (KeyError, ValueError):
            LOG.debug("Skipping malformed load set row %s", row)
    return values
