"""Area (surface member) conversion, including in-place ring rewiring."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

from ..errors import ConversionFailed, NativeApiError, StructuralIntegrityConflict
from ..extrusion import (
    is_vertical_surface,
    opening_cross_lines,
    opening_indicator_mesh,
    surface_normal,
    surface_solid,
)
from ..model import Element2D
from ..native import AREA, AREA_CONNECTIVITY_TABLE, SHELL_PROPERTY, TableData, resolve_field_names
from ..records import ConversionRecord, ConversionStatus, NativeRef
from .loads import queue_area_load_set
from .points import point_to_portable, purge_orphan_points, update_point
from .properties import ensure_shell_property, shell_to_portable

if TYPE_CHECKING:
    from .core import StructuralConverter

LOG = logging.getLogger(__name__)

OPENING_PROPERTY = "Opening"

XYZ = Tuple[float, float, float]


def edit_area_connectivity(conv: "StructuralConverter", name: str, points: Sequence[str]) -> None:
    """Rewrite one row of the connectivity table and apply it.

    Raises :class:`StructuralIntegrityConflict` when the table has fewer
    point columns than the new ring needs.
    """
    db = conv.db
    table = db.table_for_editing(AREA_CONNECTIVITY_TABLE)
    capacity = len(table.fields) - 2
    if len(points) > capacity:
        raise StructuralIntegrityConflict(f"Area {name}", len(points), capacity)
    rows = [list(row) for row in table.rows]
    for index, row in enumerate(rows):
        if row[0] == name:
            rows[index] = [name] + list(points) + [""] * (capacity - len(points)) + [row[-1]]
            break
    else:
        raise NativeApiError("DatabaseTables.GetTableForEditingArray", f"area '{name}' missing from connectivity table")

    fields = resolve_field_names(
        AREA_CONNECTIVITY_TABLE, table.fields, db.program_version, conv.settings.field_overrides
    )
    db.set_table_for_editing(AREA_CONNECTIVITY_TABLE, TableData(fields=fields, rows=rows, version=table.version))
    result = db.apply_edited_tables()
    if not result.ok:
        raise NativeApiError(
            "DatabaseTables.ApplyEditedTables",
            f"connectivity edit for area '{name}' rejected",
            code=result.errors + result.fatal_errors,
            log=result.import_log,
        )


def recreate_area(conv: "StructuralConverter", name: str, coords: Sequence[XYZ]) -> str:
    """Delete ``name`` and add it again from ``coords`` under the same GUID."""
    db = conv.db
    guid = db.get_guid(AREA, name)
    prop = db.get_property(AREA, name, "property")
    db.delete(AREA, name)
    new_name = db.add_area_by_coord(list(coords), prop=prop, name=name)
    db.set_guid(AREA, new_name, guid)
    conv.existing_guids[guid] = NativeRef(AREA, new_name)
    conv.report.log(f"Recreated area {name} as {new_name} to change its point count")
    return new_name


def update_area(conv: "StructuralConverter", name: str, coords: Sequence[XYZ]) -> Tuple[str, bool]:
    """Rewire ``name`` to ``coords``; returns the (possibly new) name and whether it changed."""
    db = conv.db
    owner = NativeRef(AREA, name)
    current = db.area_points(name)
    wanted: List[str] = []
    for index, xyz in enumerate(coords):
        existing = current[index] if index < len(current) else None
        if existing in wanted:
            existing = None
        point = update_point(conv, existing, xyz, owner)
        if point in wanted:
            raise ConversionFailed(f"Area '{name}' ring repeats point {point}")
        wanted.append(point)
    if wanted == current:
        return name, False

    try:
        if conv.area_editor is not None:
            conv.area_editor.change_area_connectivity(name, wanted)
        else:
            edit_area_connectivity(conv, name, wanted)
    except StructuralIntegrityConflict as exc:
        LOG.info("%s; recreating", exc)
        name = recreate_area(conv, name, coords)
    purge_orphan_points(conv, current + wanted)
    return name, True


def set_area_properties(conv: "StructuralConverter", name: str, element: Element2D, prop: str) -> None:
    db = conv.db
    db.set_property(AREA, name, "property", prop)
    db.set_property(AREA, name, "is_opening", bool(element.is_opening))
    db.set_property(AREA, name, "local_axis_deg", math.degrees(element.orientation_angle or 0.0))
    if element.stiffness_modifiers:
        db.set_property(AREA, name, "modifiers", [float(m) for m in element.stiffness_modifiers])
    for key, value in (
        ("pier", element.pier_assignment),
        ("spandrel", element.spandrel_assignment),
        ("diaphragm", element.diaphragm_assignment),
    ):
        if value:
            db.set_property(AREA, name, key, value)


def _opening_children(conv: "StructuralConverter", parent: str) -> List[str]:
    return [n for n in conv.db.names(AREA) if conv.db.get_property(AREA, n, "parent") == parent]


def replace_openings(
    conv: "StructuralConverter",
    parent: str,
    holes: Sequence[Sequence[XYZ]],
    application_id: Optional[str],
) -> List[Tuple[str, str]]:
    """Swap the opening areas cut into ``parent`` for ones built from ``holes``."""
    db = conv.db
    stale = _opening_children(conv, parent)
    old_points = [p for n in stale for p in db.area_points(n)]
    for name in stale:
        conv.forget_guid(db.get_guid(AREA, name))
        db.delete(AREA, name)
    purge_orphan_points(conv, old_points)

    created = []
    for index, hole in enumerate(holes):
        name = db.add_area_by_coord(list(hole), prop=OPENING_PROPERTY)
        db.set_property(AREA, name, "is_opening", True)
        db.set_property(AREA, name, "parent", parent)
        hole_id = f"{application_id}:opening:{index}" if application_id else None
        created.append((name, conv.assign_guid(AREA, name, hole_id)))
    return created


def element2d_to_native(conv: "StructuralConverter", element: Element2D) -> ConversionRecord:
    record = conv.new_record(element)
    ring = element.outer_ring()
    if len(ring) < 3:
        raise ConversionFailed(f"Surface '{element.name or element.id}' has {len(ring)} distinct points; need 3")
    coords = [conv.to_native_xyz(p) for p in ring]
    prop = OPENING_PROPERTY if element.is_opening else ensure_shell_property(conv, element.property)

    action, existing = conv.receive_action(AREA, element)
    if action == "skip":
        return conv.skipped(record, AREA, existing)

    if action == "update":
        name, changed = update_area(conv, existing, coords)
        guid = conv.db.get_guid(AREA, name)
        status = ConversionStatus.UPDATED
        record.log.append(f"Updated area {name}" + (" (rewired)" if changed else ""))
        conv.updated_any = True
    else:
        name = conv.db.add_area_by_coord(coords, prop=prop, name=conv.unique_name(AREA, element.name))
        guid = conv.assign_guid(AREA, name, element.application_id, fresh=existing is not None)
        status = ConversionStatus.CREATED

    set_area_properties(conv, name, element, prop)
    record.update(status=status, created_ids=[guid], converted=[NativeRef(AREA, name)])

    if not element.is_opening:
        holes = [[conv.to_native_xyz(p) for p in hole] for hole in element.hole_rings()]
        if holes or action == "update":
            openings = replace_openings(conv, name, holes, guid)
            record.update(
                created_ids=[g for _, g in openings],
                converted=[NativeRef(AREA, n) for n, _ in openings],
            )
        if element.load_set:
            queue_area_load_set(conv, name, element.load_set)
    return record


def area_kind(conv: "StructuralConverter", name: str) -> str:
    coords = [conv.db.point_coordinates(p) for p in conv.db.area_points(name)]
    normal = surface_normal(coords)
    return "Wall" if normal is not None and is_vertical_surface(normal) else "Floor"


def area_to_portable(conv: "StructuralConverter", name: str) -> Element2D:
    db = conv.db
    units = conv.model_units
    nodes = [point_to_portable(conv, p) for p in db.area_points(name)]
    coords = [db.point_coordinates(p) for p in db.area_points(name)]
    is_opening = bool(db.get_property(AREA, name, "is_opening"))
    prop_name = db.get_property(AREA, name, "property")
    prop = shell_to_portable(conv, prop_name) if prop_name and db.definition(SHELL_PROPERTY, prop_name) else None

    normal = surface_normal(coords)
    element = Element2D(
        name=name,
        topology=nodes,
        property=prop,
        type="Wall" if normal is not None and is_vertical_surface(normal) else "Floor",
        stiffness_modifiers=db.get_property(AREA, name, "modifiers"),
        orientation_angle=math.radians(float(db.get_property(AREA, name, "local_axis_deg", 0.0))),
        pier_assignment=db.get_property(AREA, name, "pier"),
        spandrel_assignment=db.get_property(AREA, name, "spandrel"),
        diaphragm_assignment=db.get_property(AREA, name, "diaphragm"),
        is_opening=is_opening,
        units=units,
        application_id=db.get_guid(AREA, name),
    )
    if is_opening:
        mesh = opening_indicator_mesh(coords, units=units)
        element["@displayValue"] = [mesh] if mesh is not None else []
        element["@crossLines"] = opening_cross_lines(coords, units=units)
        return element

    load_set = conv.area_load_sets().get(name)
    if load_set:
        element.load_set = load_set
        element["loadSetValues"] = dict(conv.load_set_values().get(load_set, {}))

    hole_names = _opening_children(conv, name)
    element.openings = [[point_to_portable(conv, p) for p in db.area_points(h)] for h in hole_names]
    if conv.settings.send_extruded:
        loops = [coords] + [[db.point_coordinates(p) for p in db.area_points(h)] for h in hole_names]
        thickness = prop.thickness if prop is not None and prop.thickness > 0 else conv.settings.default_surface_thickness
        mesh = surface_solid(loops, thickness, units=units)
        if mesh is not None:
            element["@displayValue"] = [mesh]
    return element
