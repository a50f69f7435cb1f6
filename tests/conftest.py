# tests/conftest.py

from typing import List, Optional, Sequence

import pytest

from strucsync.model import (
    Element1D,
    Element2D,
    Line,
    LoadBeam,
    LoadCase,
    Material,
    Model,
    Node,
    Point,
    Property1D,
    Property2D,
    RectangularProfile,
)
from strucsync.native import InMemoryElementDatabase, InMemorySapDatabase


@pytest.fixture
def etabs_db():
    return InMemoryElementDatabase(program_version="21.0.0")


@pytest.fixture
def legacy_db():
    return InMemoryElementDatabase(program_version="19.1.0")


@pytest.fixture
def sap_db():
    return InMemorySapDatabase(program_version="24.0.0")


def node(x: float, y: float, z: float, name: str = "") -> Node:
    return Node(base_point=Point(x, y, z), name=name)


def beam(
    application_id: Optional[str],
    start: Sequence[float],
    end: Sequence[float],
    *,
    name: str = "",
    prop: Optional[Property1D] = None,
    member_type: str = "Beam",
) -> Element1D:
    return Element1D(
        application_id=application_id,
        name=name,
        base_line=Line(start=Point(*start), end=Point(*end)),
        property=prop,
        type=member_type,
    )


def slab(
    application_id: Optional[str],
    ring: Sequence[Sequence[float]],
    *,
    name: str = "",
    holes: Sequence[Sequence[Sequence[float]]] = (),
    prop: Optional[Property2D] = None,
    load_set: Optional[str] = None,
) -> Element2D:
    return Element2D(
        application_id=application_id,
        name=name,
        topology=[node(*xyz) for xyz in ring],
        openings=[[node(*xyz) for xyz in hole] for hole in holes],
        property=prop,
        load_set=load_set,
    )


SQUARE = [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0), (4.0, 4.0, 0.0), (0.0, 4.0, 0.0)]


def concrete() -> Material:
    return Material(name="C30", material_type="Concrete", grade="C30/37")


def rect_section(name: str = "R300x500") -> Property1D:
    return Property1D(name=name, material=concrete(), profile=RectangularProfile(name=name, width=0.3, depth=0.5))


def shell(name: str = "Slab200", thickness: float = 0.2) -> Property2D:
    return Property2D(name=name, material=concrete(), thickness=thickness)


def small_model(elements: List, *, loads: Optional[List] = None) -> Model:
    return Model(name="test", elements=list(elements), loads=list(loads or []))


def beam_load(target: Element1D, pattern: str = "Live", value: float = -5.0) -> LoadBeam:
    return LoadBeam(
        name=f"{pattern} on {target.name or target.application_id}",
        load_case=LoadCase(name=pattern, load_type="Live"),
        elements=[target],
        values=[value],
    )


@pytest.fixture
def make_node():
    return node


@pytest.fixture
def make_beam():
    return beam


@pytest.fixture
def make_slab():
    return slab
