"""Bulk table payloads and version-gated field-name overrides."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

__all__ = [
    "AREA_CONNECTIVITY_TABLE",
    "LOAD_SET_TABLE",
    "AREA_LOAD_SET_TABLE",
    "TableData",
    "ApplyResult",
    "FieldOverride",
    "TABLE_FIELD_OVERRIDES",
    "parse_version",
    "resolve_field_names",
]

AREA_CONNECTIVITY_TABLE = "Floor Object Connectivity"
LOAD_SET_TABLE = "Shell Uniform Load Sets"
AREA_LOAD_SET_TABLE = "Area Load Assignments - Uniform Load Sets"

_VERSION_PART = re.compile(r"\d+")


@dataclass(slots=True)
class TableData:
    fields: List[str]
    rows: List[List[str]] = field(default_factory=list)
    version: int = 0

    def column(self, name: str) -> int:
        try:
            return self.fields.index(name)
        except ValueError as exc:
            raise KeyError(f"Table has no field '{name}' (fields: {self.fields})") from exc

    def copy(self) -> "TableData":
        return TableData(fields=list(self.fields), rows=[list(row) for row in self.rows], version=self.version)

    def as_dict(self) -> Dict[str, Any]:
        return {"fields": list(self.fields), "rows": [list(row) for row in self.rows], "version": self.version}

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "TableData":
        return cls(
            fields=[str(f) for f in data.get("fields") or []],
            rows=[[str(cell) for cell in row] for row in data.get("rows") or []],
            version=int(data.get("version") or 0),
        )


@dataclass(slots=True)
class ApplyResult:
    fatal_errors: int = 0
    errors: int = 0
    warnings: int = 0
    info: int = 0
    import_log: str = ""

    @property
    def ok(self) -> bool:
        return self.fatal_errors == 0 and self.errors == 0


def parse_version(text: Optional[str]) -> Tuple[int, ...]:
    parts = [int(p) for p in _VERSION_PART.findall(text or "")]
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)


@dataclass(frozen=True)
class FieldOverride:
    """Rename ``field`` to ``replacement`` for ``table`` within ``[min_version, max_version)``."""

    table: str
    field: str
    replacement: str
    min_version: Optional[str] = None
    max_version: Optional[str] = None

    def applies(self, table: str, version: Optional[str]) -> bool:
        if self.table not in ("*", table):
            return False
        current = parse_version(version)
        if self.min_version is not None and current < parse_version(self.min_version):
            return False
        if self.max_version is not None and current >= parse_version(self.max_version):
            return False
        return True

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "FieldOverride":
        try:
            return cls(
                table=str(data.get("table") or "*"),
                field=str(data["field"]),
                replacement=str(data["replacement"]),
                min_version=data.get("min_version"),
                max_version=data.get("max_version"),
            )
        except KeyError as exc:
            raise ValueError(f"Field override missing required key: {exc}") from exc


TABLE_FIELD_OVERRIDES: Tuple[FieldOverride, ...] = (
    FieldOverride(
        table=AREA_CONNECTIVITY_TABLE,
        field="UniqueName",
        replacement="Unique Name",
        max_version="20.0.0",
    ),
)


def resolve_field_names(
    table: str,
    fields: Sequence[str],
    version: Optional[str],
    overrides: Iterable[FieldOverride] = TABLE_FIELD_OVERRIDES,
) -> List[str]:
    """Field names to write back for ``table`` on a host of ``version``."""
    active = [o for o in overrides if o.applies(table, version)]
    resolved = []
    for name in fields:
        for override in active:
            if override.field == name:
                name = override.replacement
                break
        resolved.append(name)
    return resolved
