# tests/test_reconcile.py

from strucsync.errors import NativeApiError
from strucsync.reconcile import ReconciliationEngine
from strucsync.records import ConversionRecord, ConversionStatus, NativeRef, Snapshot


class FakeDatabase:
    def __init__(self, refuse=()):
        self.deleted = []
        self.refuse = set(refuse)

    def delete(self, category, name):
        if name in self.refuse:
            raise NativeApiError("FrameObj.Delete", f"{name} is locked")
        self.deleted.append((category, name))


def _record(app_id, *refs, status=ConversionStatus.CREATED):
    return ConversionRecord(
        source_id=f"src-{app_id}",
        type_name="Element1D",
        application_id=app_id,
        status=status,
        converted=[NativeRef(*ref) for ref in refs],
    )


def test_vanished_element_is_deleted_once_and_marked_removed():
    db = FakeDatabase()
    previous = Snapshot(records=[_record("beam-1", ("Frame", "1"))])

    removed = ReconciliationEngine(db).reconcile(previous, [])

    assert db.deleted == [("Frame", "1")]
    assert len(removed) == 1
    assert removed[0].status == ConversionStatus.REMOVED
    assert previous.records[0].status == ConversionStatus.CREATED


def test_element_still_present_is_kept():
    db = FakeDatabase()
    previous = Snapshot(records=[_record("beam-1", ("Frame", "1"))])
    current = [_record("beam-1", ("Frame", "7"))]

    assert ReconciliationEngine(db).reconcile(previous, current) == []
    assert db.deleted == []


def test_no_previous_snapshot_deletes_nothing():
    db = FakeDatabase()
    assert ReconciliationEngine(db).reconcile(None, [_record("a", ("Frame", "1"))]) == []
    assert db.deleted == []


def test_aliases_and_unknown_categories():
    db = FakeDatabase()
    previous = Snapshot(
        records=[
            _record("slab-1", ("Area", "3"), ("Opening", "4")),
            _record("link-1", ("Link", "9")),
            _record("mat-1", ("Material", "C30")),
        ]
    )

    removed = ReconciliationEngine(db).reconcile(previous, [])

    assert db.deleted == [("Area", "3"), ("Area", "4"), ("Frame", "9")]
    assert {r.application_id for r in removed} == {"slab-1", "link-1"}


def test_records_without_native_refs_or_ids_are_ignored():
    db = FakeDatabase()
    previous = Snapshot(
        records=[
            _record("load-1"),
            _record(None, ("Frame", "2")),
        ]
    )
    assert ReconciliationEngine(db).reconcile(previous, []) == []
    assert db.deleted == []


def test_rejected_delete_is_logged_not_raised():
    db = FakeDatabase(refuse={"1"})
    previous = Snapshot(records=[_record("beam-1", ("Frame", "1")), _record("beam-2", ("Frame", "2"))])

    removed = ReconciliationEngine(db).reconcile(previous, [])

    assert [r.application_id for r in removed] == ["beam-2"]
    assert db.deleted == [("Frame", "2")]
