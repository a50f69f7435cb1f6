from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from ..errors import ConversionFailed, NativeApiError
from ..model import Material, Property1D, Property2D, RectangularProfile, SectionProfile
from ..native import FRAME_SECTION, MATERIAL, SHELL_PROPERTY
from ..records import ConversionRecord, ConversionStatus, NativeRef

if TYPE_CHECKING:
    from .core import StructuralConverter

LOG = logging.getLogger(__name__)


def ensure_material(conv: "StructuralConverter", material: Optional[Material]) -> str:
    if material is None or not material.name:
        names = conv.db.definition_names(MATERIAL)
        if not names:
            raise ConversionFailed("Model defines no material to fall back on")
        return names[0]
    if conv.db.definition(MATERIAL, material.name) is None:
        conv.db.define(MATERIAL, material.name, {"type": material.material_type, "grade": material.grade})
    return material.name


def _ensure_definition(conv: "StructuralConverter", kind: str, name: str, data: Dict[str, Any]) -> str:
    """Existing definition, else a new one, else the first one the model has."""
    if name and conv.db.definition(kind, name) is not None:
        return name
    if name:
        try:
            conv.db.define(kind, name, data)
            return name
        except NativeApiError as exc:
            LOG.warning("Could not define %s '%s': %s", kind, name, exc)
    existing = conv.db.definition_names(kind)
    if existing:
        conv.report.log(f"{kind} '{name}' unavailable; using '{existing[0]}'", level=logging.WARNING)
        return existing[0]
    raise ConversionFailed(f"No {kind} available for '{name}'")


def section_dimensions(profile: Optional[SectionProfile]) -> Tuple[Optional[float], Optional[float]]:
    """``(width, depth)`` for rectangular profiles, otherwise unknown."""
    if isinstance(profile, RectangularProfile):
        return profile.width or None, profile.depth or None
    return None, None


def ensure_frame_section(conv: "StructuralConverter", prop: Optional[Property1D]) -> str:
    if prop is None:
        return _ensure_definition(conv, FRAME_SECTION, "", {})
    data: Dict[str, Any] = {"material": ensure_material(conv, prop.material)}
    if prop.profile is not None:
        data["shape"] = prop.profile.shape_type
        width, depth = section_dimensions(prop.profile)
        if width and depth:
            data["width"] = conv.to_native_length(width, prop.profile.units)
            data["depth"] = conv.to_native_length(depth, prop.profile.units)
    return _ensure_definition(conv, FRAME_SECTION, prop.name, data)


def ensure_shell_property(conv: "StructuralConverter", prop: Optional[Property2D]) -> str:
    if prop is None:
        return _ensure_definition(conv, SHELL_PROPERTY, "", {})
    data = {
        "material": ensure_material(conv, prop.material),
        "thickness": conv.to_native_length(prop.thickness, prop.units),
        "type": prop.property_type,
    }
    return _ensure_definition(conv, SHELL_PROPERTY, prop.name, data)


def _definition_record(conv: "StructuralConverter", obj, kind: str, name: str) -> ConversionRecord:
    record = conv.new_record(obj)
    record.update(status=ConversionStatus.CREATED, created_ids=[name], converted=[NativeRef(kind, name)])
    return record


def property1d_to_native(conv: "StructuralConverter", prop: Property1D) -> ConversionRecord:
    return _definition_record(conv, prop, FRAME_SECTION, ensure_frame_section(conv, prop))


def property2d_to_native(conv: "StructuralConverter", prop: Property2D) -> ConversionRecord:
    return _definition_record(conv, prop, SHELL_PROPERTY, ensure_shell_property(conv, prop))


def material_to_native(conv: "StructuralConverter", material: Material) -> ConversionRecord:
    return _definition_record(conv, material, MATERIAL, ensure_material(conv, material))


def material_to_portable(conv: "StructuralConverter", name: str) -> Material:
    data = conv.db.definition(MATERIAL, name) or {}
    return Material(name=name, material_type=str(data.get("type") or "Concrete"), grade=str(data.get("grade") or ""))


def section_to_portable(conv: "StructuralConverter", name: str) -> Property1D:
    data = conv.db.definition(FRAME_SECTION, name) or {}
    profile: SectionProfile
    if "width" in data and "depth" in data:
        profile = RectangularProfile(
            name=name, depth=float(data["depth"]), width=float(data["width"]), units=conv.model_units
        )
    else:
        profile = SectionProfile(name=name, shape_type=str(data.get("shape") or "Generic"), units=conv.model_units)
    material = material_to_portable(conv, data["material"]) if data.get("material") else None
    return Property1D(name=name, material=material, profile=profile)


def shell_to_portable(conv: "StructuralConverter", name: str) -> Property2D:
    data = conv.db.definition(SHELL_PROPERTY, name) or {}
    material = material_to_portable(conv, data["material"]) if data.get("material") else None
    return Property2D(
        name=name,
        material=material,
        thickness=float(data.get("thickness") or 0.0),
        property_type=str(data.get("type") or "Shell"),
        units=conv.model_units,
    )
