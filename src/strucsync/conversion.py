from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .cli import parse_args as _cli_parse_args
from .config.manifest import SyncManifest
from .converter import ALL, MODEL, STORIES, ConverterSettings, StructuralConverter
from .dispatch import ConversionDispatcher
from .errors import FATAL_ERRORS, ConversionCancelledError, StrucSyncError, classify_failure, ensure_not_cancelled
from .model import Base, Model, graph_from_dict
from .native import (
    AREA,
    FRAME,
    GRID_LINE,
    LOAD_PATTERN,
    TABLE_FIELD_OVERRIDES,
    ElementDatabase,
    FieldOverride,
    InMemoryElementDatabase,
    InMemorySapDatabase,
)
from .reconcile import ReconciliationEngine
from .records import ConversionRecord, ConversionStatus, NativeRef, ProgressReport, Snapshot, summarize
from .traversal import DEFAULT_FALLBACK_ALIASES, GraphFlattener, ObjectStore

PathLike = Union[str, Path]

LOG = logging.getLogger(__name__)

__all__ = [
    "ConversionCancelledError",
    "ConversionOptions",
    "SyncResult",
    "OPTIONS",
    "HOSTS",
    "DEFAULT_SEND_CATEGORIES",
    "load_graph",
    "open_database",
    "default_snapshot_path",
    "sync_graph",
    "send_model",
    "receive",
    "send",
    "preview",
    "parse_args",
    "main",
]

HOSTS = {"etabs": InMemoryElementDatabase, "sap2000": InMemorySapDatabase}
DEFAULT_HOST = "etabs"
DEFAULT_SEND_CATEGORIES = (FRAME, AREA, LOAD_PATTERN, GRID_LINE)
SNAPSHOT_SUFFIX = ".snapshot.json"


@dataclass(slots=True)
class ConversionOptions:
    receive_mode: str = "update"
    send_extruded: bool = True
    default_surface_thickness: float = 0.1
    point_tolerance: float = 1.0e-3
    fallback_aliases: Tuple[str, ...] = DEFAULT_FALLBACK_ALIASES
    field_overrides: Tuple[FieldOverride, ...] = TABLE_FIELD_OVERRIDES
    # Option names the caller set explicitly; a manifest never overrides them.
    pinned: Tuple[str, ...] = ()

    def pin(self, **values: Any) -> "ConversionOptions":
        return replace(self, pinned=tuple(dict.fromkeys(self.pinned + tuple(values))), **values)

    def _caller_set(self, key: str) -> bool:
        return key in self.pinned or getattr(self, key) != getattr(OPTIONS, key)

    def converter_settings(self) -> ConverterSettings:
        return ConverterSettings(
            receive_mode=self.receive_mode,
            send_extruded=self.send_extruded,
            default_surface_thickness=self.default_surface_thickness,
            point_tolerance=self.point_tolerance,
            field_overrides=tuple(self.field_overrides),
        )


OPTIONS = ConversionOptions()


@dataclass(slots=True)
class SyncResult:
    """Outcome of one receive or send run."""

    direction: str
    records: List[ConversionRecord]
    removed: List[ConversionRecord] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    source_path: Optional[PathLike] = None
    database_path: Optional[PathLike] = None
    snapshot_path: Optional[PathLike] = None
    output_path: Optional[PathLike] = None
    commit: Optional[Base] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction,
            "source": str(self.source_path) if self.source_path else None,
            "database": str(self.database_path) if self.database_path else None,
            "snapshot": str(self.snapshot_path) if self.snapshot_path else None,
            "output": str(self.output_path) if self.output_path else None,
            "counts": dict(self.counts),
            "removed": len(self.removed),
            "records": [record.as_dict() for record in self.records],
        }


# ------------- loading -------------
def load_graph(path: PathLike) -> Base:
    source = Path(path)
    if not source.exists():
        raise ValueError(f"Object graph not found: {source}")
    try:
        loaded = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{source} is not valid JSON: {exc}") from exc
    if not isinstance(loaded, dict):
        raise ValueError(f"{source} must hold a JSON object at the top level")
    root = graph_from_dict(loaded)
    if not isinstance(root, Base):
        raise ValueError(f"{source} does not describe an object graph (missing 'speckle_type')")
    return root


def open_database(
    path: PathLike,
    *,
    host: str = DEFAULT_HOST,
    program_version: Optional[str] = None,
    units: Optional[str] = None,
) -> InMemoryElementDatabase:
    try:
        db_cls = HOSTS[host.lower()]
    except KeyError as exc:
        raise ValueError(f"Unknown host '{host}'; expected one of {', '.join(HOSTS)}") from exc
    database = db_cls.load(path)
    if program_version:
        database.program_version = program_version
    if units and not Path(path).exists():
        database.units = units
    return database


def default_snapshot_path(database_path: PathLike) -> Path:
    path = Path(database_path)
    return path.with_name(path.stem + SNAPSHOT_SUFFIX)


def _options_from_manifest(
    options: ConversionOptions,
    manifest: Optional[SyncManifest],
    source_path: Optional[PathLike],
) -> Tuple[ConversionOptions, Optional[str]]:
    if manifest is None:
        return options, None
    plan = manifest.resolve_for_path(Path(source_path) if source_path else None)
    if plan.applied_rules:
        LOG.info("Applied %d manifest rule(s) for %s", len(plan.applied_rules), source_path)
    # Options the caller set or changed win over the manifest.
    values = {key: value for key, value in plan.overrides.items() if not options._caller_set(key)}
    if not options._caller_set("fallback_aliases"):
        values["fallback_aliases"] = plan.fallback_aliases
    if not options._caller_set("field_overrides"):
        values["field_overrides"] = plan.settings.field_overrides
    resolved = replace(options, **values)
    return resolved, plan.model_units


def _resolve_manifest(manifest: Optional[SyncManifest], manifest_path: Optional[PathLike]) -> Optional[SyncManifest]:
    if manifest is not None:
        return manifest
    if manifest_path is None:
        return None
    return SyncManifest.from_file(Path(manifest_path).resolve())


# ------------- receive -------------
def sync_graph(
    root: Base,
    database: ElementDatabase,
    *,
    previous: Optional[Snapshot] = None,
    options: Optional[ConversionOptions] = None,
    store: Optional[ObjectStore] = None,
    report: Optional[ProgressReport] = None,
    cancel_event: Any | None = None,
) -> SyncResult:
    """Receive ``root`` into ``database``: flatten, convert, then remove what vanished."""
    options = options or replace(OPTIONS)
    report = report or ProgressReport(LOG)
    store = store if store is not None else ObjectStore()
    store.clear()

    converter = StructuralConverter(
        database, settings=options.converter_settings(), previous=previous, report=report
    )
    flattener = GraphFlattener(
        converter.can_convert_to_native, options.fallback_aliases, report=report, cancel_event=cancel_event
    )
    records = flattener.flatten(root, store)
    report.log(f"Flattened source graph into {len(records)} record(s)")

    ConversionDispatcher(converter, store, report=report, cancel_event=cancel_event).run(records)
    ensure_not_cancelled(cancel_event)
    removed = ReconciliationEngine(database, report=report).reconcile(previous, records)
    return SyncResult(direction="receive", records=records, removed=removed, counts=summarize(records))


def receive(
    source_path: PathLike,
    database_path: PathLike,
    *,
    snapshot_path: Optional[PathLike] = None,
    manifest: Optional[SyncManifest] = None,
    manifest_path: Optional[PathLike] = None,
    options: Optional[ConversionOptions] = None,
    host: str = DEFAULT_HOST,
    program_version: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
    cancel_event: Any | None = None,
) -> SyncResult:
    """Receive a JSON object graph into a JSON-backed element database."""
    manifest_obj = _resolve_manifest(manifest, manifest_path)
    effective, model_units = _options_from_manifest(options or replace(OPTIONS), manifest_obj, source_path)
    snapshot_file = Path(snapshot_path) if snapshot_path else default_snapshot_path(database_path)

    root = load_graph(source_path)
    database = open_database(database_path, host=host, program_version=program_version, units=model_units)
    previous = Snapshot.load(snapshot_file)
    report = ProgressReport(logger or LOG)
    try:
        result = sync_graph(
            root, database, previous=previous, options=effective, report=report, cancel_event=cancel_event
        )
    finally:
        # Partial edits stay in the model when a run stops early.
        database.save(database_path)
    Snapshot.capture(result.records).save(snapshot_file)
    result.source_path = source_path
    result.database_path = database_path
    result.snapshot_path = snapshot_file
    return result


# ------------- send -------------
def send_model(
    database: ElementDatabase,
    *,
    options: Optional[ConversionOptions] = None,
    categories: Sequence[str] = DEFAULT_SEND_CATEGORIES,
    report: Optional[ProgressReport] = None,
    cancel_event: Any | None = None,
) -> SyncResult:
    """Convert native elements back into a portable commit object."""
    options = options or replace(OPTIONS)
    report = report or ProgressReport(LOG)
    converter = StructuralConverter(database, settings=options.converter_settings(), report=report)

    records: List[ConversionRecord] = []
    converted: Dict[str, List[Base]] = {}
    for ref in converter.native_refs(categories):
        ensure_not_cancelled(cancel_event)
        record = ConversionRecord(source_id=ref.token, type_name=ref.category, converted=[ref])
        try:
            obj = converter.convert_to_portable(ref)
        except FATAL_ERRORS:
            raise
        except Exception as exc:
            label, level = classify_failure(exc)
            record.update(status=ConversionStatus.FAILED, log_item=f"{ref}: {label}: {exc}")
            report.log(record.log[-1], level=level)
        else:
            if obj is None:
                record.update(status=ConversionStatus.SKIPPED)
            else:
                record.application_id = obj.application_id
                record.update(status=ConversionStatus.CREATED, created_ids=[obj.id])
                converted.setdefault(ref.category, []).append(obj)
        records.append(record)
        report.update_record(record)

    model = converter.convert_to_portable(NativeRef(MODEL, ALL))
    if not isinstance(model, Model):
        raise StrucSyncError("Model header conversion did not produce a Model")
    model.elements = converted.get(FRAME, []) + converted.get(AREA, [])
    model.loads = list(model.loads) + converted.get(LOAD_PATTERN, [])
    model["@stories"] = converter.convert_to_portable(NativeRef(STORIES, ALL))
    model["@grids"] = converted.get(GRID_LINE, [])

    commit = Base()
    commit["@Model"] = model
    commit["elements"] = list(model.elements)
    commit["AnalysisResults"] = []
    report.log(f"Sent {len(model.elements)} element(s) from {getattr(database, 'program_name', 'host')}")
    return SyncResult(direction="send", records=records, counts=summarize(records), commit=commit)


def send(
    database_path: PathLike,
    output_path: Optional[PathLike] = None,
    *,
    manifest: Optional[SyncManifest] = None,
    manifest_path: Optional[PathLike] = None,
    options: Optional[ConversionOptions] = None,
    categories: Sequence[str] = DEFAULT_SEND_CATEGORIES,
    host: str = DEFAULT_HOST,
    preview_path: Optional[PathLike] = None,
    logger: Optional[logging.Logger] = None,
    cancel_event: Any | None = None,
) -> SyncResult:
    manifest_obj = _resolve_manifest(manifest, manifest_path)
    effective, _ = _options_from_manifest(options or replace(OPTIONS), manifest_obj, database_path)
    if not Path(database_path).exists():
        raise ValueError(f"Element database not found: {database_path}")
    database = open_database(database_path, host=host)
    result = send_model(
        database,
        options=effective,
        categories=categories,
        report=ProgressReport(logger or LOG),
        cancel_event=cancel_event,
    )
    result.database_path = database_path
    if output_path is not None and result.commit is not None:
        target = Path(output_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(result.commit.to_dict(), indent=2), encoding="utf-8")
        result.output_path = target
    if preview_path is not None and result.commit is not None:
        preview(result.commit, preview_path)
    return result


def preview(root: Union[Base, PathLike], output_path: PathLike) -> Path:
    """Author the display meshes found under ``root`` into a USD stage."""
    from .preview import collect_meshes, write_preview_stage

    graph = root if isinstance(root, Base) else load_graph(root)
    meshes = collect_meshes(graph)
    if not meshes:
        raise ValueError("No display meshes found to preview")
    return write_preview_stage(meshes, output_path)


# ------------- CLI -------------
def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Delegate to the CLI parser with project defaults."""

    return _cli_parse_args(
        argv,
        hosts=tuple(HOSTS),
        default_host=DEFAULT_HOST,
        default_categories=DEFAULT_SEND_CATEGORIES,
    )


def main(argv: Sequence[str] | None = None) -> List[SyncResult]:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    options = OPTIONS
    if getattr(args, "receive_mode", None):
        options = options.pin(receive_mode=args.receive_mode)
    if getattr(args, "no_extrude", False):
        options = options.pin(send_extruded=False)
    if getattr(args, "surface_thickness", None) is not None:
        options = options.pin(default_surface_thickness=args.surface_thickness)

    try:
        if args.command == "receive":
            results = [
                receive(
                    args.input_path,
                    args.database_path,
                    snapshot_path=args.snapshot_path,
                    manifest_path=args.manifest_path,
                    options=options,
                    host=args.host,
                    program_version=args.program_version,
                )
            ]
        elif args.command == "send":
            results = [
                send(
                    args.database_path,
                    args.output_path,
                    manifest_path=args.manifest_path,
                    options=options,
                    categories=args.categories,
                    host=args.host,
                    preview_path=args.preview_path,
                )
            ]
        else:
            stage_path = preview(args.input_path, args.output_path)
            print(f"Preview stage written to {stage_path}")
            return []
    except ConversionCancelledError as exc:
        print(f"Cancelled: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    except (ValueError, StrucSyncError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    _print_summary(results)
    return results


# ------------- summary -------------
def _print_summary(results: Sequence[SyncResult]) -> None:
    if not results:
        print("Nothing was synchronized.")
        return
    print("\nSummary:")
    for result in results:
        counts = result.counts
        target = result.output_path or result.database_path or "n/a"
        print(
            f"- {result.direction}: target={target}, created={counts.get('Created', 0)}, "
            f"updated={counts.get('Updated', 0)}, skipped={counts.get('Skipped', 0)}, "
            f"failed={counts.get('Failed', 0)}, removed={len(result.removed)}"
        )
        failed = [r for r in result.records if r.status == ConversionStatus.FAILED]
        for record in failed[:10]:
            detail = record.log[-1] if record.log else "no details"
            print(f"    failed {record.type_name} {record.application_id or record.source_id}: {detail}")
        if len(failed) > 10:
            print(f"    ... and {len(failed) - 10} more failure(s)")
