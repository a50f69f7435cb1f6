# tests/test_dispatch.py

import threading

import pytest

from strucsync.dispatch import ConversionDispatcher
from strucsync.errors import (
    ConversionCancelledError,
    ConversionFailed,
    ConversionNotSupported,
    NativeHostError,
)
from strucsync.model import Base, Line, Point
from strucsync.records import ConversionRecord, ConversionStatus, NativeRef
from strucsync.traversal import GraphFlattener, ObjectStore


class RecordingConverter:
    """Converts Lines; fails on tagged ones; counts finalize calls."""

    def __init__(self, fail_ids=(), fatal_ids=()):
        self.fail_ids = set(fail_ids)
        self.fatal_ids = set(fatal_ids)
        self.converted = []
        self.finalized = 0

    def can_convert_to_native(self, obj):
        return isinstance(obj, Line)

    def convert_to_native(self, obj):
        if obj.application_id in self.fatal_ids:
            raise NativeHostError("host went away")
        if obj.application_id in self.fail_ids:
            raise ConversionFailed("bad geometry")
        if not isinstance(obj, Line):
            raise ConversionNotSupported(obj.speckle_type)
        self.converted.append(obj.application_id)
        record = ConversionRecord(source_id=obj.id, type_name="Line", application_id=obj.application_id)
        record.update(
            status=ConversionStatus.CREATED,
            created_ids=[f"guid-{obj.application_id}"],
            converted=[NativeRef("Frame", obj.application_id)],
        )
        return record

    def finalize_conversion(self):
        self.finalized += 1


class BareConverter:
    def can_convert_to_native(self, obj):
        return True

    def convert_to_native(self, obj):
        return None


def _line(app_id, x=0.0):
    return Line(start=Point(x, 0, 0), end=Point(x + 1, 0, 0), application_id=app_id)


def _run(converter, root, **kwargs):
    store = ObjectStore()
    records = GraphFlattener(converter.can_convert_to_native).flatten(root, store)
    return ConversionDispatcher(converter, store, **kwargs).run(records)


def test_failure_is_isolated_to_its_record():
    root = Base()
    root["items"] = [_line("a", 0), _line("b", 5), _line("c", 10)]
    converter = RecordingConverter(fail_ids={"b"})

    records = {r.application_id: r for r in _run(converter, root)}

    assert records["a"].status == ConversionStatus.CREATED
    assert records["c"].status == ConversionStatus.CREATED
    assert records["b"].status == ConversionStatus.FAILED
    assert "bad geometry" in records["b"].log[-1]
    assert records["a"].created_ids == ["guid-a"]


def test_finalize_is_called_once_per_run():
    root = Base()
    root["items"] = [_line("a", 0), _line("b", 5)]
    converter = RecordingConverter(fail_ids={"a"})
    _run(converter, root)
    assert converter.finalized == 1


def test_converter_without_finalize_is_fine():
    root = Base()
    root["items"] = [_line("a")]
    records = _run(BareConverter(), root)
    assert all(r.status == ConversionStatus.CREATED for r in records)


def test_fatal_error_stops_the_batch():
    root = Base()
    root["items"] = [_line("a", 0), _line("boom", 5)]
    converter = RecordingConverter(fatal_ids={"boom"})
    with pytest.raises(NativeHostError):
        _run(converter, root)
    assert converter.finalized == 0


def test_cancellation_aborts_before_converting():
    root = Base()
    root["items"] = [_line("a", 0)]
    converter = RecordingConverter()
    store = ObjectStore()
    records = GraphFlattener(converter.can_convert_to_native).flatten(root, store)
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ConversionCancelledError):
        ConversionDispatcher(converter, store, cancel_event=cancel).run(records)
    assert converter.converted == []


def test_fallback_children_roll_up_into_parent():
    wrapper = Base(application_id="wall-1")
    wrapper["displayValue"] = [_line("a", 0), _line("b", 5)]
    root = Base()
    root["items"] = [wrapper]
    converter = RecordingConverter(fail_ids={"b"})

    (record,) = _run(converter, root)

    assert record.convertible is False
    assert record.status == ConversionStatus.CREATED
    assert record.created_ids == ["guid-a"]
    assert [c.status for c in record.fallback] == [ConversionStatus.CREATED, ConversionStatus.FAILED]


def test_fallback_with_only_failures_is_failed():
    wrapper = Base(application_id="wall-2")
    wrapper["displayValue"] = [_line("x", 0)]
    root = Base()
    root["items"] = [wrapper]
    (record,) = _run(RecordingConverter(fail_ids={"x"}), root)
    assert record.status == ConversionStatus.FAILED


def test_fallback_without_children_is_skipped():
    wrapper = Base(application_id="wall-3")
    wrapper["displayValue"] = []
    root = Base()
    root["items"] = [wrapper]
    (record,) = _run(RecordingConverter(), root)
    assert record.status == ConversionStatus.SKIPPED
