"""Removal of native elements whose source disappeared since the last sync."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from .errors import NativeApiError
from .native import AREA, FRAME, POINT, ElementDatabase
from .records import ConversionRecord, ConversionStatus, NativeRef, ProgressReport, Snapshot

LOG = logging.getLogger(__name__)

__all__ = ["ReconciliationEngine", "DELETABLE_CATEGORIES"]

# Category aliases that live in another native store
DELETABLE_CATEGORIES: Dict[str, str] = {
    FRAME: FRAME,
    AREA: AREA,
    POINT: POINT,
    "Opening": AREA,
    "Link": FRAME,
}


class ReconciliationEngine:
    """Diffs two runs by ``application_id`` and deletes what vanished.

    The previous snapshot is left untouched; deleted records come back as
    Removed copies.
    """

    def __init__(self, database: ElementDatabase, report: Optional[ProgressReport] = None) -> None:
        self.database = database
        self.report = report or ProgressReport(LOG)
        self._deleters: Dict[str, Callable[[str], None]] = {
            alias: self._deleter(category) for alias, category in DELETABLE_CATEGORIES.items()
        }

    def _deleter(self, category: str) -> Callable[[str], None]:
        def delete(name: str) -> None:
            self.database.delete(category, name)

        return delete

    def delete_ref(self, ref: NativeRef) -> bool:
        deleter = self._deleters.get(ref.category)
        if deleter is None:
            self.report.log(f"No delete available for {ref.category} '{ref.name}'; left in place", level=logging.DEBUG)
            return False
        try:
            deleter(ref.name)
        except NativeApiError as exc:
            self.report.log(f"Could not delete {ref}: {exc}", level=logging.WARNING)
            return False
        return True

    def reconcile(
        self,
        previous: Optional[Snapshot],
        current: Iterable[ConversionRecord],
    ) -> List[ConversionRecord]:
        if previous is None:
            return []
        current_ids = {record.application_id for record in current if record.application_id}
        removed: List[ConversionRecord] = []
        for old in previous.records:
            if not old.converted or not old.application_id:
                continue
            if old.application_id in current_ids:
                continue
            copy = old.clone()
            for ref in old.converted:
                if self.delete_ref(ref):
                    copy.update(status=ConversionStatus.REMOVED, log_item=f"Deleted {ref}")
            if copy.status == ConversionStatus.REMOVED:
                removed.append(copy)
                self.report.update_record(copy)
        if removed:
            self.report.log(f"Removed {len(removed)} element(s) no longer present in the source")
        return removed
