"""Named model definitions: grid lines, diaphragms, stories, and the model header."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from ..errors import ConversionFailed
from ..model import Diaphragm, GridLine, Line, Model, Point, Result, Stories, Story
from ..native import DIAPHRAGM, FRAME_SECTION, GRID_LINE, LOAD_PATTERN, MATERIAL, SHELL_PROPERTY, STORY
from ..records import ConversionRecord, ConversionStatus, NativeRef
from .loads import load_pattern_to_portable
from .properties import material_to_portable, section_to_portable, shell_to_portable

if TYPE_CHECKING:
    from .core import StructuralConverter

LOG = logging.getLogger(__name__)

# Send-only pseudo categories addressing the whole collection
STORIES = "Stories"
MODEL = "Model"
ALL = "All"

BASE_STORY = "Base"


def _defined(conv: "StructuralConverter", obj, kind: str, name: str, data: Dict[str, Any]) -> ConversionRecord:
    conv.db.define(kind, name, data)
    record = conv.new_record(obj)
    record.update(status=ConversionStatus.CREATED, created_ids=[name], converted=[NativeRef(kind, name)])
    return record


def gridline_to_native(conv: "StructuralConverter", grid: GridLine) -> ConversionRecord:
    line = grid.base_line
    if line is None or line.start is None or line.end is None:
        raise ConversionFailed(f"Grid line '{grid.label}' has no base line")
    if not grid.label:
        raise ConversionFailed("Grid line has no label")
    data = {"start": list(conv.to_native_xyz(line.start)), "end": list(conv.to_native_xyz(line.end))}
    return _defined(conv, grid, GRID_LINE, grid.label, data)


def diaphragm_to_native(conv: "StructuralConverter", diaphragm: Diaphragm) -> ConversionRecord:
    if not diaphragm.name:
        raise ConversionFailed("Diaphragm has no name")
    return _defined(conv, diaphragm, DIAPHRAGM, diaphragm.name, {"semi_rigid": bool(diaphragm.semi_rigid)})


def stories_to_native(conv: "StructuralConverter", stories: Stories) -> ConversionRecord:
    record = conv.new_record(stories)
    base = conv.to_native_length(stories.base_elevation, stories.units)
    conv.db.define(STORY, BASE_STORY, {"elevation": base, "base": True})
    for level in sorted(stories.levels, key=lambda s: s.elevation):
        if not level.name:
            record.log.append("Skipped unnamed story")
            continue
        conv.db.define(STORY, level.name, {"elevation": conv.to_native_length(level.elevation, level.units)})
        record.update(created_ids=[level.name], converted=[NativeRef(STORY, level.name)])
    record.update(status=ConversionStatus.CREATED, log_item=f"Defined {len(record.created_ids)} story level(s)")
    return record


def result_to_native(conv: "StructuralConverter", result: Result) -> ConversionRecord:
    record = conv.new_record(result)
    record.update(status=ConversionStatus.SKIPPED, log_item="Analysis results are not written to the model")
    return record


def gridline_to_portable(conv: "StructuralConverter", name: str) -> GridLine:
    data = conv.db.definition(GRID_LINE, name) or {}
    units = conv.model_units
    start = Point(*data.get("start", (0.0, 0.0, 0.0)), units=units)
    end = Point(*data.get("end", (0.0, 0.0, 0.0)), units=units)
    return GridLine(label=name, base_line=Line(start=start, end=end, units=units))


def stories_to_portable(conv: "StructuralConverter", name: str = ALL) -> Stories:
    units = conv.model_units
    stories = Stories(units=units)
    levels = []
    for story in conv.db.definition_names(STORY):
        data = conv.db.definition(STORY, story) or {}
        if data.get("base"):
            stories.base_elevation = float(data.get("elevation") or 0.0)
            continue
        levels.append(Story(name=story, elevation=float(data.get("elevation") or 0.0), units=units))
    stories.levels = sorted(levels, key=lambda s: s.elevation)
    return stories


def model_to_portable(conv: "StructuralConverter", name: str = ALL) -> Model:
    db = conv.db
    model = Model(name=f"{db.program_name} {db.program_version}", units=conv.model_units)
    model.materials = [material_to_portable(conv, n) for n in db.definition_names(MATERIAL)]
    model.properties = [section_to_portable(conv, n) for n in db.definition_names(FRAME_SECTION)]
    model.properties.extend(shell_to_portable(conv, n) for n in db.definition_names(SHELL_PROPERTY))
    model.loads = [load_pattern_to_portable(conv, n) for n in db.definition_names(LOAD_PATTERN)]
    return model
