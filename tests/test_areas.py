# tests/test_areas.py

import pytest

from strucsync.conversion import ConversionOptions, sync_graph
from strucsync.converter import ConverterSettings, StructuralConverter
from strucsync.converter.areas import edit_area_connectivity
from strucsync.errors import NativeApiError, StructuralIntegrityConflict
from strucsync.native import AREA, AREA_CONNECTIVITY_TABLE, LOAD_SET_TABLE, SHELL_PROPERTY
from strucsync.model import LoadSet
from strucsync.records import ConversionStatus, Snapshot

from conftest import SQUARE, shell, slab, small_model

NEIGHBOUR = [(4.0, 0.0, 0.0), (8.0, 0.0, 0.0), (8.0, 4.0, 0.0), (4.0, 4.0, 0.0)]
PENTAGON = [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0), (4.0, 4.0, 0.0), (2.0, 6.0, 0.0), (0.0, 4.0, 0.0)]
HOLE = [(1.0, 1.0, 0.0), (2.0, 1.0, 0.0), (2.0, 2.0, 0.0), (1.0, 2.0, 0.0)]


def _receive(db, elements, previous=None, **options):
    return sync_graph(small_model(elements), db, previous=previous, options=ConversionOptions(**options))


def _status(result, app_id):
    return next(r for r in result.records if r.application_id == app_id).status


def test_new_area_gets_property_and_guid(etabs_db):
    result = _receive(etabs_db, [slab("slab-1", SQUARE, name="F1", prop=shell())])
    assert _status(result, "slab-1") == ConversionStatus.CREATED
    assert etabs_db.get_guid(AREA, "F1") == "slab-1"
    assert etabs_db.get_property(AREA, "F1", "property") == "Slab200"
    assert etabs_db.definition(SHELL_PROPERTY, "Slab200")["thickness"] == pytest.approx(0.2)


def test_moving_an_unshared_corner_moves_the_point(etabs_db):
    _receive(etabs_db, [slab("slab-1", SQUARE, name="F1")])
    before = etabs_db.area_points("F1")
    moved = list(SQUARE)
    moved[2] = (5.0, 5.0, 0.0)

    result = _receive(etabs_db, [slab("slab-1", moved, name="F1")])

    assert _status(result, "slab-1") == ConversionStatus.UPDATED
    assert etabs_db.area_points("F1") == before
    assert etabs_db.point_coordinates(before[2]) == (5.0, 5.0, 0.0)


def test_growing_ring_past_table_width_recreates_with_same_guid(etabs_db):
    _receive(etabs_db, [slab("slab-1", SQUARE, name="F1")])

    result = _receive(etabs_db, [slab("slab-1", PENTAGON, name="F1")])

    assert _status(result, "slab-1") == ConversionStatus.UPDATED
    assert etabs_db.names(AREA) == ["F1"]
    assert etabs_db.get_guid(AREA, "F1") == "slab-1"
    assert len(etabs_db.area_points("F1")) == 5
    assert ("delete", AREA, "F1") in etabs_db.calls


def test_connectivity_editor_rewires_without_recreate(sap_db):
    _receive(sap_db, [slab("slab-1", SQUARE, name="F1")])
    result = _receive(sap_db, [slab("slab-1", PENTAGON, name="F1")])
    assert _status(result, "slab-1") == ConversionStatus.UPDATED
    assert len(sap_db.area_points("F1")) == 5
    assert ("change_area_connectivity", "F1") in sap_db.calls
    assert ("delete", AREA, "F1") not in sap_db.calls


def _shared_edge_update(db, settings=None):
    conv = StructuralConverter(db, settings=settings or ConverterSettings())
    conv.convert_to_native(slab("a", SQUARE, name="A"))
    conv.convert_to_native(slab("b", NEIGHBOUR, name="B"))
    shared = db.area_points("A")[1]
    moved = list(SQUARE)
    moved[1] = (5.0, 0.0, 0.0)
    return conv, shared, conv.convert_to_native(slab("a", moved, name="A"))


def test_table_edit_uses_legacy_field_name_on_old_hosts(legacy_db):
    _, shared, record = _shared_edge_update(legacy_db)

    assert record.status == ConversionStatus.UPDATED
    new_point = legacy_db.area_points("A")[1]
    assert new_point != shared
    assert legacy_db.point_coordinates(new_point) == (5.0, 0.0, 0.0)
    assert legacy_db.point_coordinates(shared) == (4.0, 0.0, 0.0)
    assert ("apply_table", AREA_CONNECTIVITY_TABLE) in legacy_db.calls


def test_old_hosts_reject_the_edit_without_the_override(legacy_db):
    with pytest.raises(NativeApiError) as excinfo:
        _shared_edge_update(legacy_db, ConverterSettings(field_overrides=()))
    assert "Unique Name" in excinfo.value.log


def test_current_hosts_keep_the_plain_field_name(etabs_db):
    _, _, record = _shared_edge_update(etabs_db)
    assert record.status == ConversionStatus.UPDATED
    assert etabs_db.point_coordinates(etabs_db.area_points("A")[1]) == (5.0, 0.0, 0.0)


def test_table_without_room_raises_conflict(etabs_db):
    conv = StructuralConverter(etabs_db)
    conv.convert_to_native(slab("a", SQUARE, name="A"))
    extra = [etabs_db.add_point(9.0, 9.0, 0.0)]
    with pytest.raises(StructuralIntegrityConflict) as excinfo:
        edit_area_connectivity(conv, "A", etabs_db.area_points("A") + extra)
    assert excinfo.value.capacity == 4
    assert excinfo.value.required == 5


def test_openings_are_created_and_replaced(etabs_db):
    result = _receive(etabs_db, [slab("slab-1", SQUARE, name="F1", holes=[HOLE])])
    (record,) = result.records
    assert len(record.converted) == 2
    opening = record.converted[1].name
    assert etabs_db.get_property(AREA, opening, "is_opening") is True
    assert etabs_db.get_property(AREA, opening, "parent") == "F1"
    assert etabs_db.get_guid(AREA, opening) == "slab-1:opening:0"

    _receive(etabs_db, [slab("slab-1", SQUARE, name="F1")])
    assert etabs_db.names(AREA) == ["F1"]


def test_degenerate_surface_fails(etabs_db):
    ring = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, 0.0)]
    result = _receive(etabs_db, [slab("flat", ring)])
    assert _status(result, "flat") == ConversionStatus.FAILED


def test_load_sets_are_flushed_once_at_finalize(etabs_db):
    load_set = LoadSet(name="Office", entries={"SDL": 1.5, "Live": 2.5})
    root = small_model([slab("slab-1", SQUARE, name="F1", load_set="Office")])
    root.loads = [load_set]

    result = sync_graph(root, etabs_db)

    assert all(r.status == ConversionStatus.CREATED for r in result.records)
    applied = [c for c in etabs_db.calls if c[0] == "apply_table"]
    assert len(applied) == 2
    assert etabs_db.get_property(AREA, "F1", "load_set") == "Office"
    rows = etabs_db.table_for_editing(LOAD_SET_TABLE).rows
    assert sorted(rows) == [["Office", "Live", "2.5"], ["Office", "SDL", "1.5"]]
    assert etabs_db.view_refreshes == 1


def test_removed_slab_takes_its_openings(etabs_db):
    first = _receive(etabs_db, [slab("slab-1", SQUARE, name="F1", holes=[HOLE]), slab("slab-2", NEIGHBOUR, name="F2")])
    second = _receive(etabs_db, [slab("slab-2", NEIGHBOUR, name="F2")], previous=Snapshot.capture(first.records))
    assert [r.application_id for r in second.removed] == ["slab-1"]
    assert etabs_db.names(AREA) == ["F2"]
