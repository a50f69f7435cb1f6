from __future__ import annotations

import fnmatch
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from ..converter import RECEIVE_MODES, ConverterSettings
from ..native import TABLE_FIELD_OVERRIDES, FieldOverride
from ..traversal import DEFAULT_FALLBACK_ALIASES

log = logging.getLogger(__name__)

_SETTING_KEYS = ("receive_mode", "send_extruded", "default_surface_thickness", "point_tolerance")


def _normalize_receive_mode(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if normalized not in RECEIVE_MODES:
        raise ValueError(f"Unknown receive_mode '{value}'; expected one of {', '.join(RECEIVE_MODES)}")
    return normalized


def _optional_float(value: Any, key: str) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Manifest value '{key}' must be a number, got {value!r}") from exc


@dataclass
class ManifestDefaults:
    receive_mode: Optional[str] = None
    send_extruded: Optional[bool] = None
    default_surface_thickness: Optional[float] = None
    point_tolerance: Optional[float] = None
    model_units: Optional[str] = None
    fallback_aliases: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "ManifestDefaults":
        data = data or {}
        aliases = data.get("fallback_aliases")
        return cls(
            receive_mode=_normalize_receive_mode(data.get("receive_mode")),
            send_extruded=None if data.get("send_extruded") is None else bool(data["send_extruded"]),
            default_surface_thickness=_optional_float(data.get("default_surface_thickness"), "default_surface_thickness"),
            point_tolerance=_optional_float(data.get("point_tolerance"), "point_tolerance"),
            model_units=data.get("model_units"),
            fallback_aliases=tuple(str(a) for a in aliases) if aliases else None,
        )


@dataclass
class FileRule:
    """Per-model overrides selected by file name or glob pattern."""

    name: Optional[str] = None
    pattern: Optional[str] = None
    receive_mode: Optional[str] = None
    send_extruded: Optional[bool] = None
    default_surface_thickness: Optional[float] = None
    point_tolerance: Optional[float] = None

    def matches(self, path: Path) -> bool:
        target_name = path.name.lower()
        target_stem = path.stem.lower()
        if self.name:
            compare = self.name.lower()
            if compare == target_name or compare == target_stem:
                return True
        if self.pattern:
            pat = self.pattern.lower()
            if fnmatch.fnmatch(target_name, pat) or fnmatch.fnmatch(target_stem, pat):
                return True
        return False


@dataclass
class ResolvedSyncPlan:
    source_path: Optional[Path]
    settings: ConverterSettings
    overrides: Dict[str, Any] = field(default_factory=dict)
    fallback_aliases: Tuple[str, ...] = DEFAULT_FALLBACK_ALIASES
    model_units: Optional[str] = None
    applied_rules: List[FileRule] = field(default_factory=list)


class SyncManifest:
    """Run configuration: defaults, per-file rules and table field overrides."""

    def __init__(
        self,
        *,
        defaults: Optional[ManifestDefaults] = None,
        file_rules: Optional[List[FileRule]] = None,
        field_overrides: Optional[List[FieldOverride]] = None,
    ) -> None:
        self.defaults = defaults or ManifestDefaults()
        self.file_rules = file_rules or []
        self.field_overrides = field_overrides or []

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "SyncManifest":
        defaults = ManifestDefaults.from_mapping(data.get("defaults"))

        file_rules: List[FileRule] = []
        for entry in data.get("files", []) or []:
            if not entry.get("name") and not entry.get("pattern"):
                log.warning("Manifest file rule has neither name nor pattern; skipping: %s", entry)
                continue
            file_rules.append(
                FileRule(
                    name=entry.get("name"),
                    pattern=entry.get("pattern"),
                    receive_mode=_normalize_receive_mode(entry.get("receive_mode")),
                    send_extruded=None if entry.get("send_extruded") is None else bool(entry["send_extruded"]),
                    default_surface_thickness=_optional_float(
                        entry.get("default_surface_thickness"), "default_surface_thickness"
                    ),
                    point_tolerance=_optional_float(entry.get("point_tolerance"), "point_tolerance"),
                )
            )

        overrides = [FieldOverride.from_mapping(entry) for entry in data.get("field_overrides", []) or []]
        return cls(defaults=defaults, file_rules=file_rules, field_overrides=overrides)

    @classmethod
    def from_file(cls, path: Path) -> "SyncManifest":
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        data = cls._load_data_from_text(text, suffix=path.suffix)
        return cls.from_mapping(data)

    @classmethod
    def from_text(cls, text: str, *, suffix: str) -> "SyncManifest":
        data = cls._load_data_from_text(text, suffix=suffix)
        return cls.from_mapping(data)

    def table_field_overrides(self) -> Tuple[FieldOverride, ...]:
        """Manifest overrides take precedence over the built-in table."""
        return tuple(self.field_overrides) + TABLE_FIELD_OVERRIDES

    def resolve_for_path(self, source_path: Optional[Path] = None) -> ResolvedSyncPlan:
        values: Dict[str, Any] = {key: getattr(self.defaults, key) for key in _SETTING_KEYS}
        applied: List[FileRule] = []
        if source_path is not None:
            for rule in self._iter_matching_rules(Path(source_path)):
                applied.append(rule)
                for key in _SETTING_KEYS:
                    value = getattr(rule, key)
                    if value is not None:
                        values[key] = value
        overrides = {key: value for key, value in values.items() if value is not None}
        settings = ConverterSettings(
            **overrides,
            field_overrides=self.table_field_overrides(),
        )
        return ResolvedSyncPlan(
            source_path=Path(source_path) if source_path is not None else None,
            settings=settings,
            overrides=overrides,
            fallback_aliases=self.defaults.fallback_aliases or DEFAULT_FALLBACK_ALIASES,
            model_units=self.defaults.model_units,
            applied_rules=applied,
        )

    def _iter_matching_rules(self, source_path: Path) -> Iterable[FileRule]:
        for rule in self.file_rules:
            if rule.matches(source_path):
                yield rule

    @staticmethod
    def _load_data_from_text(text: str, *, suffix: str) -> Dict[str, Any]:
        ext = (suffix or "").lower()
        if ext in {".yaml", ".yml"}:
            loaded = yaml.safe_load(text)
            if not isinstance(loaded, dict):
                raise ValueError("YAML manifest must define a mapping at the top level")
            return loaded
        if ext == ".json":
            loaded = json.loads(text)
            if not isinstance(loaded, dict):
                raise ValueError("JSON manifest must define a mapping at the top level")
            return loaded
        raise ValueError(f"Unsupported manifest type: {suffix}")


__all__ = [
    "ManifestDefaults",
    "FileRule",
    "ResolvedSyncPlan",
    "SyncManifest",
]
