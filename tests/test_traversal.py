# tests/test_traversal.py

import threading

import pytest

from strucsync.errors import ConversionCancelledError
from strucsync.model import Base, Element1D, Line, Mesh, Model, Point
from strucsync.traversal import GraphFlattener, ObjectStore

from conftest import beam, beam_load, concrete, rect_section, small_model


def _convertible(obj):
    return isinstance(obj, (Element1D, Line))


def test_shared_objects_produce_one_record():
    b1 = beam("b1", (0, 0, 0), (4, 0, 0))
    b2 = beam("b2", (4, 0, 0), (8, 0, 0))
    root = small_model([b1, b2, b1])
    root["@extra"] = {"again": [b2]}

    store = ObjectStore()
    records = GraphFlattener(_convertible).flatten(root, store)

    ids = [r.source_id for r in records]
    assert len(ids) == len(set(ids))
    assert set(ids) == {b1.id, b2.id}
    assert b1.id in store and b2.id in store


def test_output_is_reverse_of_discovery():
    b1 = beam("b1", (0, 0, 0), (4, 0, 0))
    b2 = beam("b2", (4, 0, 0), (8, 0, 0))
    records = GraphFlattener(_convertible).flatten(small_model([b1, b2]), ObjectStore())
    assert [r.application_id for r in records] == ["b2", "b1"]


def test_load_targets_come_before_the_load():
    target = beam("b1", (0, 0, 0), (4, 0, 0), name="B1")
    load = beam_load(target)
    root = small_model([target], loads=[load])
    records = GraphFlattener(lambda o: o.simple_type in ("Element1D", "LoadBeam")).flatten(root, ObjectStore())
    assert [r.type_name for r in records] == ["Element1D", "LoadBeam"]


def test_convertible_objects_are_not_descended_except_elements():
    inner = beam("inner", (0, 0, 0), (1, 0, 0), prop=rect_section())
    outer = beam("outer", (0, 0, 5), (1, 0, 5))
    outer["elements"] = [inner]
    records = GraphFlattener(lambda o: isinstance(o, Element1D)).flatten(Model(elements=[outer]), ObjectStore())
    assert {r.application_id for r in records} == {"outer", "inner"}
    assert all(r.type_name == "Element1D" for r in records)


def test_display_fallback_collects_convertible_children():
    line = Line(start=Point(0, 0, 0), end=Point(1, 0, 0), application_id="l1")
    mesh = Mesh(vertices=[0, 0, 0, 1, 0, 0, 0, 1, 0], faces=[0, 0, 1, 2])
    wrapper = Base(application_id="w1")
    wrapper["@displayValue"] = [line, mesh]
    root = Model(elements=[wrapper])

    store = ObjectStore()
    records = GraphFlattener(_convertible).flatten(root, store)

    assert len(records) == 1
    record = records[0]
    assert record.convertible is False
    assert [child.source_id for child in record.fallback] == [line.id]
    assert wrapper.id in store and line.id in store


def test_flatten_is_idempotent_per_store():
    b1 = beam("b1", (0, 0, 0), (4, 0, 0))
    root = small_model([b1])
    root.materials = [concrete()]
    store = ObjectStore()
    flattener = GraphFlattener(_convertible)
    first = flattener.flatten(root, store)
    second = flattener.flatten(root, store)
    assert [r.source_id for r in first] == [r.source_id for r in second]
    assert len(store) == 1


def test_store_first_write_wins():
    store = ObjectStore()
    a = beam("same", (0, 0, 0), (1, 0, 0))
    assert store.store(a) is True
    assert store.store(a) is False
    assert store.pop(a.id) is a
    assert store.get(a.id) is None


def test_cancelled_flatten_raises():
    cancel = threading.Event()
    cancel.set()
    flattener = GraphFlattener(_convertible, cancel_event=cancel)
    with pytest.raises(ConversionCancelledError):
        flattener.flatten(small_model([beam("b1", (0, 0, 0), (1, 0, 0))]), ObjectStore())
