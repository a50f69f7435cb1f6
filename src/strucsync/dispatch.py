"""Per-record dispatch of flattened objects into a conversion backend."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from .errors import FATAL_ERRORS, classify_failure, ensure_not_cancelled
from .model import Base
from .records import ConversionRecord, ConversionStatus, ProgressReport
from .traversal import ObjectStore

LOG = logging.getLogger(__name__)

__all__ = ["Converter", "Finalizable", "ConversionDispatcher"]


class Converter(Protocol):
    def can_convert_to_native(self, obj: Base) -> bool: ...

    def convert_to_native(self, obj: Base) -> Optional[ConversionRecord]: ...


@runtime_checkable
class Finalizable(Protocol):
    def finalize_conversion(self) -> None: ...


class ConversionDispatcher:
    """Feeds flattened records to ``converter`` with a per-object failure boundary.

    A failing object marks its own record Failed and the batch moves on.
    Host loss, memory exhaustion and cancellation stop the batch.
    """

    def __init__(
        self,
        converter: Converter,
        store: ObjectStore,
        report: Optional[ProgressReport] = None,
        cancel_event: Any | None = None,
    ) -> None:
        self.converter = converter
        self.store = store
        self.report = report or ProgressReport(LOG)
        self.cancel_event = cancel_event
        self._finalizer: Optional[Finalizable] = converter if isinstance(converter, Finalizable) else None

    def _convert(self, record: ConversionRecord, obj: Base) -> bool:
        try:
            result = self.converter.convert_to_native(obj)
        except FATAL_ERRORS:
            raise
        except Exception as exc:
            label, level = classify_failure(exc)
            message = f"{record.type_name} {record.source_id}: {label}: {exc}"
            record.update(status=ConversionStatus.FAILED, log_item=message)
            self.report.log(message, level=level)
            return False
        if result is None:
            record.set_status(ConversionStatus.CREATED)
        else:
            record.merge(result)
        return record.status != ConversionStatus.FAILED

    def _convert_fallback(self, record: ConversionRecord) -> None:
        attempted = succeeded = 0
        for child in record.fallback:
            obj = self.store.pop(child.source_id)
            if obj is None:
                continue
            attempted += 1
            if self._convert(child, obj):
                succeeded += 1
            record.update(created_ids=child.created_ids, converted=child.converted, log=child.log)
        if attempted == 0:
            record.update(status=ConversionStatus.SKIPPED, log_item="No display fallback objects to convert")
        elif succeeded:
            record.update(
                status=ConversionStatus.CREATED,
                log_item=f"Converted {succeeded}/{attempted} display fallback object(s)",
            )
        else:
            record.update(status=ConversionStatus.FAILED, log_item="Every display fallback object failed")

    def run(self, records: Sequence[ConversionRecord]) -> List[ConversionRecord]:
        total = len(records)
        for index, record in enumerate(records, start=1):
            ensure_not_cancelled(self.cancel_event)
            if record.convertible:
                obj = self.store.get(record.source_id)
                if obj is None:
                    continue
                self._convert(record, obj)
            else:
                self._convert_fallback(record)
            self.report.update_record(record)
            if LOG.isEnabledFor(logging.DEBUG):
                LOG.debug("[%d/%d] %s %s -> %s", index, total, record.type_name, record.source_id, record.status.value)
        if self._finalizer is not None:
            self._finalizer.finalize_conversion()
        return list(records)
