# tests/test_preview.py

import pytest

from strucsync.conversion import preview
from strucsync.extrusion import extrude_frame, opening_indicator_mesh
from strucsync.model import Base, Model
from strucsync.preview import collect_meshes

pxr = pytest.importorskip("pxr")


def _commit():
    frame = Base(application_id="f1")
    frame["name"] = "B1"
    frame["@displayValue"] = [extrude_frame((0, 0, 0), (5, 0, 0), 0.3, 0.5)]
    hole = Base(application_id="o1")
    hole["@displayValue"] = [opening_indicator_mesh([(1, 1, 0), (2, 1, 0), (2, 2, 0), (1, 2, 0)])]
    commit = Base()
    commit["@Model"] = Model(elements=[frame, hole])
    return commit


def test_collect_meshes_labels_by_owner():
    labels = [label for label, _ in collect_meshes(_commit())]
    assert labels == ["Base_B1", "Base_Base"]


def test_preview_stage_is_z_up_with_world_default_prim(tmp_path):
    from pxr import Usd, UsdGeom

    target = preview(_commit(), tmp_path / "preview.usda")

    stage = Usd.Stage.Open(str(target))
    assert UsdGeom.GetStageUpAxis(stage) == UsdGeom.Tokens.z
    assert stage.GetDefaultPrim().GetPath().pathString == "/World"
    meshes = [p for p in stage.Traverse() if p.IsA(UsdGeom.Mesh)]
    assert len(meshes) == 2
    counts = UsdGeom.Mesh(meshes[0]).GetFaceVertexCountsAttr().Get()
    assert list(counts) == [4] * 6
    assert meshes[1].GetCustomDataByKey("strucsync:debugTag") == "Opening"


def test_preview_without_meshes_is_an_error(tmp_path):
    with pytest.raises(ValueError):
        preview(Base(), tmp_path / "empty.usda")


def test_usd_bindings_load_once():
    from strucsync.pxr_utils import load_usd

    usd = load_usd()
    assert usd is load_usd()
    assert usd.UsdGeom.Tokens.z == "Z"
