"""Graph flattening: source object graph -> ordered conversion records."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from .errors import ensure_not_cancelled
from .model import Base
from .records import ConversionRecord, ProgressReport

LOG = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_FALLBACK_ALIASES",
    "ELEMENT_MEMBERS",
    "ObjectStore",
    "GraphFlattener",
    "iter_graph_objects",
]

DEFAULT_FALLBACK_ALIASES = ("displayValue", "@displayValue", "displayMesh", "@displayMesh")
ELEMENT_MEMBERS = ("elements", "@elements")


class ObjectStore:
    """Identity -> object arena owned by one sync run; the first write wins."""

    def __init__(self) -> None:
        self._objects: Dict[str, Base] = {}

    def clear(self) -> None:
        self._objects.clear()

    def store(self, obj: Base) -> bool:
        if obj.id in self._objects:
            return False
        self._objects[obj.id] = obj
        return True

    def get(self, identity: str) -> Optional[Base]:
        return self._objects.get(identity)

    def pop(self, identity: str) -> Optional[Base]:
        return self._objects.pop(identity, None)

    def __contains__(self, identity: object) -> bool:
        return identity in self._objects

    def __len__(self) -> int:
        return len(self._objects)


def iter_graph_objects(value: Any) -> Iterator[Base]:
    """Graph objects held by a member value, walking lists and dicts."""
    if isinstance(value, Base):
        yield value
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_graph_objects(item)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_graph_objects(item)


class GraphFlattener:
    """Depth-first flattening into deduplicated :class:`ConversionRecord` lists.

    Convertible objects are only descended through their ``elements``
    members; objects carrying a display fallback are not descended at all;
    everything else is descended through every member. The output is the
    reverse of first-discovery order.
    """

    def __init__(
        self,
        can_convert: Callable[[Base], bool],
        fallback_aliases: Sequence[str] = DEFAULT_FALLBACK_ALIASES,
        *,
        report: Optional[ProgressReport] = None,
        cancel_event: Any | None = None,
    ) -> None:
        self.can_convert = can_convert
        self.fallback_aliases = tuple(fallback_aliases)
        self.report = report
        self.cancel_event = cancel_event

    def _log(self, message: str) -> None:
        if self.report is not None:
            self.report.log(message, level=logging.DEBUG)
        else:
            LOG.debug("%s", message)

    def fallback_member(self, obj: Base) -> Any:
        for alias in self.fallback_aliases:
            value = obj[alias]
            if value is not None:
                return value
        return None

    def _children(self, obj: Base) -> List[Base]:
        if self.can_convert(obj):
            values = [obj[name] for name in ELEMENT_MEMBERS]
        elif self.fallback_member(obj) is not None:
            return []
        else:
            values = [value for _, value in obj.members()]
        children: List[Base] = []
        for value in values:
            children.extend(iter_graph_objects(value))
        return children

    def traverse(self, root: Base) -> Iterator[Base]:
        visited: set[str] = set()
        stack = [root]
        while stack:
            current = stack.pop()
            if current.id in visited:
                continue
            visited.add(current.id)
            ensure_not_cancelled(self.cancel_event)
            yield current
            stack.extend(reversed(self._children(current)))

    def create_record(self, obj: Base, store: ObjectStore, seen: set[str]) -> Optional[ConversionRecord]:
        identity = obj.id
        if identity in seen:
            return None

        if self.can_convert(obj):
            seen.add(identity)
            store.store(obj)
            self._log(f"Will convert: {obj.speckle_type} | ID: {identity}")
            return ConversionRecord(
                source_id=identity,
                type_name=obj.simple_type,
                application_id=obj.application_id,
                convertible=True,
            )

        fallback = self.fallback_member(obj)
        if fallback is not None:
            seen.add(identity)
            record = ConversionRecord(
                source_id=identity,
                type_name=obj.simple_type,
                application_id=obj.application_id,
                convertible=False,
            )
            for child in iter_graph_objects(fallback):
                child_record = self.create_record(child, store, seen)
                if child_record is not None:
                    record.fallback.append(child_record)
            store.store(obj)
            self._log(
                f"Will convert through display fallback: {obj.speckle_type} | ID: {identity} "
                f"({len(record.fallback)} child object(s))"
            )
            return record

        self._log(f"Skipped object: {obj.speckle_type} | ID: {identity}")
        return None

    def flatten(self, root: Base, store: ObjectStore) -> List[ConversionRecord]:
        """Flatten ``root`` into records, filling ``store`` with the objects to convert."""
        seen: set[str] = set()
        records: List[ConversionRecord] = []
        for current in self.traverse(root):
            record = self.create_record(current, store, seen)
            if record is not None:
                records.append(record)
        # Reverse discovery order, kept for output-ordering parity.
        records.reverse()
        self._log(f"Total objects queued for conversion: {len(records)}")
        return records
