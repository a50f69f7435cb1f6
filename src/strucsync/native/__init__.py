from .database import (
    AREA,
    DIAPHRAGM,
    FRAME,
    FRAME_SECTION,
    GRID_LINE,
    LOAD_PATTERN,
    MATERIAL,
    POINT,
    SHELL_PROPERTY,
    STORY,
    XYZ,
    AreaConnectivityEditor,
    ElementDatabase,
    ViewRefresher,
)
from .memory import InMemoryElementDatabase, InMemorySapDatabase
from .tables import (
    AREA_CONNECTIVITY_TABLE,
    AREA_LOAD_SET_TABLE,
    LOAD_SET_TABLE,
    TABLE_FIELD_OVERRIDES,
    ApplyResult,
    FieldOverride,
    TableData,
    parse_version,
    resolve_field_names,
)

__all__ = [
    "AREA",
    "DIAPHRAGM",
    "FRAME",
    "FRAME_SECTION",
    "GRID_LINE",
    "LOAD_PATTERN",
    "MATERIAL",
    "POINT",
    "SHELL_PROPERTY",
    "STORY",
    "XYZ",
    "AreaConnectivityEditor",
    "ElementDatabase",
    "ViewRefresher",
    "InMemoryElementDatabase",
    "InMemorySapDatabase",
    "AREA_CONNECTIVITY_TABLE",
    "AREA_LOAD_SET_TABLE",
    "LOAD_SET_TABLE",
    "TABLE_FIELD_OVERRIDES",
    "ApplyResult",
    "FieldOverride",
    "TableData",
    "parse_version",
    "resolve_field_names",
]
