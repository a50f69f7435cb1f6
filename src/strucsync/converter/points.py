"""Point handling shared by frame and area updates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from ..model import Node, Point, Restraint
from ..native import POINT
from ..records import ConversionRecord, ConversionStatus, NativeRef

if TYPE_CHECKING:
    from .core import StructuralConverter

LOG = logging.getLogger(__name__)


def update_point(conv: "StructuralConverter", current: Optional[str], target: Sequence[float], owner: NativeRef) -> str:
    """Name of a point at ``target`` that ``owner`` should connect to.

    A point only ``owner`` uses is moved; a point shared with other members
    is left alone and a new (or coincident existing) point is returned.
    """
    db = conv.db
    if current is not None and conv.same_point(db.point_coordinates(current), target):
        return current
    coincident = db.find_point(tuple(target), conv.settings.point_tolerance)
    if coincident is not None:
        return coincident
    if current is not None:
        users = db.point_connectivity(current)
        if users == [owner]:
            db.move_point(current, tuple(target))
            LOG.debug("Moved point %s for %s", current, owner)
            return current
    return db.add_point(*target)


def purge_orphan_points(conv: "StructuralConverter", names: Iterable[str]) -> int:
    """Delete points no member connects to any more."""
    removed = 0
    for name in dict.fromkeys(names):
        if not conv.db.exists(POINT, name):
            continue
        if conv.db.point_connectivity(name):
            continue
        conv.db.delete_special_point(name)
        removed += 1
    if removed:
        LOG.debug("Purged %d orphaned point(s)", removed)
    return removed


def node_to_native(conv: "StructuralConverter", node: Node) -> ConversionRecord:
    record = conv.new_record(node)
    if node.base_point is None:
        record.update(status=ConversionStatus.FAILED, log_item="Node has no base point")
        return record
    xyz = conv.to_native_xyz(node.base_point)
    action, existing = conv.receive_action(POINT, node)
    if action == "skip":
        return conv.skipped(record, POINT, existing)

    if action == "update":
        name = existing
        if not conv.same_point(conv.db.point_coordinates(name), xyz):
            conv.db.move_point(name, xyz)
            record.log.append(f"Moved point {name}")
            conv.updated_any = True
        guid = conv.db.get_guid(POINT, name)
        status = ConversionStatus.UPDATED
    else:
        name = conv.db.add_point(*xyz, name=conv.unique_name(POINT, node.name))
        guid = conv.assign_guid(POINT, name, node.application_id, fresh=existing is not None)
        status = ConversionStatus.CREATED

    if node.restraint is not None:
        conv.db.set_property(POINT, name, "restraint", node.restraint.released())
    record.update(status=status, created_ids=[guid], converted=[NativeRef(POINT, name)])
    return record


def point_to_portable(conv: "StructuralConverter", name: str) -> Node:
    x, y, z = conv.db.point_coordinates(name)
    released = conv.db.get_property(POINT, name, "restraint")
    restraint = Restraint.from_released(released) if released else Restraint(code="RRRRRR")
    return Node(
        name=name,
        base_point=Point(x, y, z, units=conv.model_units),
        restraint=restraint,
        units=conv.model_units,
        application_id=conv.db.get_guid(POINT, name),
    )
