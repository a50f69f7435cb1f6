# tests/test_manifest.py

import json
from dataclasses import replace
from pathlib import Path

import pytest

from strucsync.config.manifest import SyncManifest
from strucsync.conversion import OPTIONS, _options_from_manifest
from strucsync.native import AREA_CONNECTIVITY_TABLE, TABLE_FIELD_OVERRIDES, resolve_field_names

YAML_MANIFEST = """
defaults:
  receive_mode: update
  default_surface_thickness: 0.25
  model_units: mm
  fallback_aliases: ["displayValue"]
files:
  - pattern: "tower_*"
    receive_mode: ignore
  - name: podium
    send_extruded: false
  - point_tolerance: 0.5
field_overrides:
  - table: "Floor Object Connectivity"
    field: GUID
    replacement: Global ID
    max_version: "22.0.0"
"""


def test_yaml_manifest_defaults_and_rules():
    manifest = SyncManifest.from_text(YAML_MANIFEST, suffix=".yaml")

    assert manifest.defaults.default_surface_thickness == pytest.approx(0.25)
    assert len(manifest.file_rules) == 2

    plan = manifest.resolve_for_path(Path("models/tower_A.json"))
    assert plan.settings.receive_mode == "ignore"
    assert plan.settings.default_surface_thickness == pytest.approx(0.25)
    assert plan.model_units == "mm"
    assert plan.fallback_aliases == ("displayValue",)
    assert len(plan.applied_rules) == 1

    podium = manifest.resolve_for_path(Path("podium.json"))
    assert podium.settings.send_extruded is False
    assert podium.settings.receive_mode == "update"


def test_json_manifest_from_file(tmp_path):
    path = tmp_path / "sync.json"
    path.write_text(json.dumps({"defaults": {"receive_mode": "Create", "send_extruded": False}}), encoding="utf-8")

    plan = SyncManifest.from_file(path).resolve_for_path(None)

    assert plan.settings.receive_mode == "create"
    assert plan.settings.send_extruded is False
    assert plan.overrides == {"receive_mode": "create", "send_extruded": False}


def test_manifest_field_overrides_come_first():
    manifest = SyncManifest.from_text(YAML_MANIFEST, suffix=".yml")
    overrides = manifest.table_field_overrides()
    assert overrides[-len(TABLE_FIELD_OVERRIDES):] == TABLE_FIELD_OVERRIDES

    fields = ["UniqueName", "Point1", "GUID"]
    assert resolve_field_names(AREA_CONNECTIVITY_TABLE, fields, "19.0.0", overrides) == [
        "Unique Name",
        "Point1",
        "Global ID",
    ]
    assert resolve_field_names(AREA_CONNECTIVITY_TABLE, fields, "21.0.0", overrides) == [
        "UniqueName",
        "Point1",
        "Global ID",
    ]
    assert resolve_field_names(AREA_CONNECTIVITY_TABLE, fields, "22.1", overrides) == fields


def test_invalid_manifests_raise():
    with pytest.raises(ValueError):
        SyncManifest.from_text("defaults: {receive_mode: merge}", suffix=".yaml")
    with pytest.raises(ValueError):
        SyncManifest.from_text("[1, 2]", suffix=".json")
    with pytest.raises(ValueError):
        SyncManifest.from_text("receive_mode = 'update'", suffix=".toml")
    with pytest.raises(ValueError):
        SyncManifest.from_text("defaults: {point_tolerance: wide}", suffix=".yaml")
    with pytest.raises(ValueError):
        SyncManifest.from_text("field_overrides: [{table: x, field: y}]", suffix=".yaml")


def test_caller_options_win_over_manifest():
    manifest = SyncManifest.from_text(YAML_MANIFEST, suffix=".yaml")

    untouched, units = _options_from_manifest(OPTIONS, manifest, "tower_B.json")
    assert untouched.receive_mode == "ignore"
    assert untouched.default_surface_thickness == pytest.approx(0.25)
    assert units == "mm"

    chosen, _ = _options_from_manifest(replace(OPTIONS, receive_mode="create"), manifest, "tower_B.json")
    assert chosen.receive_mode == "create"
    assert chosen.field_overrides == manifest.table_field_overrides()


def test_explicit_default_value_still_beats_manifest():
    manifest = SyncManifest.from_text(YAML_MANIFEST, suffix=".yaml")

    pinned = OPTIONS.pin(receive_mode="update")
    resolved, _ = _options_from_manifest(pinned, manifest, "tower_B.json")

    assert resolved.receive_mode == "update"
    assert resolved.default_surface_thickness == pytest.approx(0.25)


def test_cli_mode_flag_is_pinned(tmp_path, monkeypatch):
    from strucsync import conversion

    seen = {}

    def fake_receive(source, database, *, options, **kwargs):
        seen["options"] = options
        return []

    monkeypatch.setattr(conversion, "receive", fake_receive)
    monkeypatch.setattr(conversion, "_print_summary", lambda results: None)
    conversion.main(["receive", "--input", "m.json", "--database", "db.json", "--mode", "update"])

    assert seen["options"].pinned == ("receive_mode",)


def test_no_manifest_leaves_options_alone():
    options, units = _options_from_manifest(OPTIONS, None, "anything.json")
    assert options is OPTIONS
    assert units is None
