"""Frame (linear member) conversion in both directions."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from ..errors import ConversionFailed
from ..extrusion import AXIS_ALIGNMENT_TOLERANCE, safe_extrude_frame
from ..model import Base, BuiltElement, Element1D, Line, Point, Restraint
from ..native import FRAME, FRAME_SECTION
from ..records import ConversionRecord, ConversionStatus, NativeRef
from .points import point_to_portable, purge_orphan_points, update_point
from .properties import ensure_frame_section, section_to_portable

if TYPE_CHECKING:
    from .core import StructuralConverter

LOG = logging.getLogger(__name__)

DESIGN_PROCEDURES = {
    "ProgramDetermined": 0,
    "SteelFrameDesign": 1,
    "ConcreteFrameDesign": 2,
    "CompositeBeamDesign": 3,
    "SteelJoistDesign": 4,
    "NoDesign": 7,
    "CompositeColumnDesign": 13,
}
DEFAULT_INSERTION_POINT = 8
_DESIGN_ORIENTATIONS = {"beam": "Beam", "column": "Column", "brace": "Brace"}

XYZ = Tuple[float, float, float]


def create_frame(
    conv: "StructuralConverter",
    start: XYZ,
    end: XYZ,
    *,
    section: Optional[str],
    name: str = "",
    application_id: Optional[str] = None,
    fresh_guid: bool = False,
) -> Tuple[str, str]:
    if conv.same_point(start, end):
        raise ConversionFailed("Frame end points coincide")
    name = conv.db.add_frame_by_coord(start, end, section=section, name=conv.unique_name(FRAME, name))
    guid = conv.assign_guid(FRAME, name, application_id, fresh=fresh_guid)
    return name, guid


def update_frame(conv: "StructuralConverter", name: str, start: XYZ, end: XYZ) -> bool:
    """Reconnect ``name`` to ``start``/``end``; returns whether connectivity changed."""
    if conv.same_point(start, end):
        raise ConversionFailed("Frame end points coincide")
    owner = NativeRef(FRAME, name)
    point_i, point_j = conv.db.frame_points(name)
    new_i = update_point(conv, point_i, start, owner)
    new_j = update_point(conv, point_j if point_j != new_i else None, end, owner)
    if new_i == new_j:
        raise ConversionFailed(f"Frame '{name}' would connect point {new_i} to itself")
    if (new_i, new_j) == (point_i, point_j):
        return False
    conv.db.change_frame_connectivity(name, new_i, new_j)
    purge_orphan_points(conv, [point_i, point_j])
    return True


def _rename(conv: "StructuralConverter", name: str, desired: str, application_id: Optional[str]) -> str:
    if not desired or desired == name or conv.db.exists(FRAME, desired):
        return name
    conv.db.rename(FRAME, name, desired)
    conv.assign_guid(FRAME, desired, application_id)
    return desired


def set_frame_properties(conv: "StructuralConverter", name: str, element: Element1D, section: str) -> None:
    db = conv.db
    db.set_property(FRAME, name, "section", section)
    db.set_property(FRAME, name, "local_axis_deg", math.degrees(element.orientation_angle or 0.0))
    if element.end1_releases is not None or element.end2_releases is not None:
        end1 = (element.end1_releases or Restraint()).released()
        end2 = (element.end2_releases or Restraint()).released()
        db.set_property(FRAME, name, "releases", [end1, end2])
    if element.stiffness_modifiers:
        db.set_property(FRAME, name, "modifiers", [float(m) for m in element.stiffness_modifiers])
    if element.pier_assignment:
        db.set_property(FRAME, name, "pier", element.pier_assignment)
    if element.spandrel_assignment:
        db.set_property(FRAME, name, "spandrel", element.spandrel_assignment)
    if element.design_procedure:
        code = DESIGN_PROCEDURES.get(element.design_procedure)
        if code is None:
            LOG.warning("Unknown design procedure '%s' on frame %s", element.design_procedure, name)
        else:
            db.set_property(FRAME, name, "design_procedure", code)
    if element.cardinal_point:
        db.set_property(FRAME, name, "insertion_point", int(element.cardinal_point))
    orientation = _DESIGN_ORIENTATIONS.get((element.type or "").lower(), "Other")
    db.set_property(FRAME, name, "design_orientation", orientation)


def _receive_frame(
    conv: "StructuralConverter",
    obj: Base,
    start_point: Point,
    end_point: Point,
    *,
    name: str,
    section: Optional[str],
    element: Optional[Element1D] = None,
) -> ConversionRecord:
    record = conv.new_record(obj)
    start, end = conv.to_native_xyz(start_point), conv.to_native_xyz(end_point)
    action, existing = conv.receive_action(FRAME, obj)
    if action == "skip":
        return conv.skipped(record, FRAME, existing)

    if action == "update":
        changed = update_frame(conv, existing, start, end)
        frame = _rename(conv, existing, name, obj.application_id)
        guid = conv.db.get_guid(FRAME, frame)
        status = ConversionStatus.UPDATED
        record.log.append(f"Updated frame {frame}" + (" (reconnected)" if changed else ""))
        conv.updated_any = True
    else:
        frame, guid = create_frame(
            conv,
            start,
            end,
            section=section,
            name=name,
            application_id=obj.application_id,
            fresh_guid=existing is not None,
        )
        status = ConversionStatus.CREATED

    if element is not None:
        set_frame_properties(conv, frame, element, section or conv.db.get_property(FRAME, frame, "section"))
    elif section:
        conv.db.set_property(FRAME, frame, "section", section)
    record.update(status=status, created_ids=[guid], converted=[NativeRef(FRAME, frame)])
    return record


def element1d_to_native(conv: "StructuralConverter", element: Element1D) -> ConversionRecord:
    try:
        start, end = element.end_points()
    except ValueError as exc:
        raise ConversionFailed(str(exc)) from exc
    section = ensure_frame_section(conv, element.property)
    record = _receive_frame(conv, element, start, end, name=element.name, section=section, element=element)
    if (element.type or "").lower() == "link":
        for ref in record.converted:
            conv.db.set_property(FRAME, ref.name, "link", True)
    return record


def line_to_native(conv: "StructuralConverter", line: Line) -> ConversionRecord:
    if line.start is None or line.end is None:
        raise ConversionFailed("Line is missing an endpoint")
    return _receive_frame(conv, line, line.start, line.end, name="", section=None)


def built_element_to_native(conv: "StructuralConverter", element: BuiltElement) -> ConversionRecord:
    line = element.base_line
    if line is None or line.start is None or line.end is None:
        raise ConversionFailed(f"{element.simple_type} has no base line")
    return _receive_frame(conv, element, line.start, line.end, name="", section=None)


def frame_type(start: Sequence[float], end: Sequence[float]) -> str:
    dx, dy, dz = (abs(b - a) for a, b in zip(start, end))
    if dz < AXIS_ALIGNMENT_TOLERANCE:
        return "Beam"
    if dx < AXIS_ALIGNMENT_TOLERANCE and dy < AXIS_ALIGNMENT_TOLERANCE:
        return "Column"
    return "Brace"


def frame_kind(conv: "StructuralConverter", name: str) -> str:
    db = conv.db
    if db.get_property(FRAME, name, "link"):
        return "Link"
    point_i, point_j = db.frame_points(name)
    return frame_type(db.point_coordinates(point_i), db.point_coordinates(point_j))


def frame_to_portable(conv: "StructuralConverter", name: str) -> Element1D:
    db = conv.db
    units = conv.model_units
    point_i, point_j = db.frame_points(name)
    node_i, node_j = point_to_portable(conv, point_i), point_to_portable(conv, point_j)
    start, end = db.point_coordinates(point_i), db.point_coordinates(point_j)
    member_type = frame_kind(conv, name)

    section_name = db.get_property(FRAME, name, "section")
    prop = section_to_portable(conv, section_name) if section_name and db.definition(FRAME_SECTION, section_name) else None
    releases = db.get_property(FRAME, name, "releases")
    codes = {code: label for label, code in DESIGN_PROCEDURES.items()}
    cardinal_point = int(db.get_property(FRAME, name, "insertion_point", DEFAULT_INSERTION_POINT))

    element = Element1D(
        name=name,
        base_line=Line(start=node_i.base_point, end=node_j.base_point, units=units),
        end1_node=node_i,
        end2_node=node_j,
        property=prop,
        type=member_type,
        end1_releases=Restraint.from_released(releases[0]) if releases else None,
        end2_releases=Restraint.from_released(releases[1]) if releases else None,
        orientation_angle=math.radians(float(db.get_property(FRAME, name, "local_axis_deg", 0.0))),
        stiffness_modifiers=db.get_property(FRAME, name, "modifiers"),
        pier_assignment=db.get_property(FRAME, name, "pier"),
        spandrel_assignment=db.get_property(FRAME, name, "spandrel"),
        design_procedure=codes.get(db.get_property(FRAME, name, "design_procedure")),
        cardinal_point=cardinal_point,
        units=units,
        application_id=db.get_guid(FRAME, name),
    )
    if conv.settings.send_extruded:
        width = depth = None
        if prop is not None and prop.profile is not None:
            width = getattr(prop.profile, "width", None)
            depth = getattr(prop.profile, "depth", None)
        mesh = safe_extrude_frame(
            start, end, width, depth, element_type=member_type, cardinal_point=cardinal_point, units=units
        )
        if mesh is not None:
            element["@displayValue"] = [mesh]
    return element
