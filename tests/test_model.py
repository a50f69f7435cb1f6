# tests/test_model.py

import pytest

from strucsync.model import (
    Base,
    Column,
    Element1D,
    Element2D,
    Mesh,
    Node,
    Point,
    Restraint,
    graph_from_dict,
    normalize_ring,
    resolve_type,
    scale_factor,
)

from conftest import beam


def test_content_identity_is_stable_and_tracks_edits():
    a = beam("b1", (0, 0, 0), (4, 0, 0))
    b = beam("b1", (0, 0, 0), (4, 0, 0))
    assert a.id == b.id

    a["comment"] = "edited"
    assert a.id != b.id
    assert a["comment"] == "edited"
    assert Base(object_id="explicit").id == "explicit"


def test_graph_from_dict_shares_repeated_objects():
    node = {"speckle_type": Node.speckle_type, "id": "n1", "basePoint": {"speckle_type": Point.speckle_type, "x": 1.0}}
    data = {
        "speckle_type": Element2D.speckle_type,
        "id": "slab",
        "topology": [node, {"speckle_type": Node.speckle_type, "id": "n1"}],
        "@displayValue": [{"speckle_type": Mesh.speckle_type, "vertices": [0, 0, 0], "faces": []}],
    }
    slab = graph_from_dict(data)

    assert isinstance(slab, Element2D)
    assert slab.topology[0] is slab.topology[1]
    assert slab.topology[0].base_point.x == 1.0
    assert isinstance(slab["@displayValue"][0], Mesh)


def test_chained_discriminator_resolves_most_derived_known_type():
    assert resolve_type(f"{Element1D.speckle_type}:Vendor.CustomBeam") is Element1D
    assert resolve_type("Objects.BuiltElements.Column") is Column
    assert resolve_type("Nothing.Registered") is Base

    obj = graph_from_dict({"speckle_type": f"{Element1D.speckle_type}:Vendor.CustomBeam", "name": "X"})
    assert isinstance(obj, Element1D)
    assert obj.speckle_type.endswith("Vendor.CustomBeam")
    assert obj.simple_type == "CustomBeam"


def test_end_points_prefer_nodes_then_centerline():
    element = beam("b1", (0, 0, 0), (4, 0, 0))
    start, end = element.end_points()
    assert end.as_tuple() == (4.0, 0.0, 0.0)

    element.end1_node = Node(base_point=Point(1, 1, 1))
    element.end2_node = Node(base_point=Point(2, 2, 2))
    assert element.end_points()[1].as_tuple() == (2.0, 2.0, 2.0)

    with pytest.raises(ValueError):
        Element1D(name="orphan").end_points()


def test_ring_helpers_and_units():
    ring = [Point(0, 0, 0), Point(1, 0, 0), Point(1, 1, 0), Point(0, 0, 0)]
    assert len(normalize_ring(ring)) == 3
    assert scale_factor("mm", "m") == pytest.approx(0.001)
    assert scale_factor("ft", "in") == pytest.approx(12.0)
    with pytest.raises(ValueError):
        scale_factor("furlong", "m")


def test_restraint_codes():
    assert Restraint(code="FFFRRR").released() == [False, False, False, True, True, True]
    assert Restraint.from_released([True] * 6).code == "RRRRRR"


def test_mesh_faces_mix_arity():
    mesh = Mesh(vertices=[0.0] * 15, faces=[0, 0, 1, 2, 4, 0, 1, 3, 4])
    assert list(mesh.iter_faces()) == [(0, 1, 2), (0, 1, 3, 4)]
    assert mesh.vertex_count == 5
