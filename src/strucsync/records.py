from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]

__all__ = [
    "ConversionStatus",
    "NativeRef",
    "ConversionRecord",
    "Snapshot",
    "ProgressReport",
    "summarize",
]


class ConversionStatus(str, Enum):
    UNKNOWN = "Unknown"
    CREATED = "Created"
    UPDATED = "Updated"
    SKIPPED = "Skipped"
    FAILED = "Failed"
    REMOVED = "Removed"


_RANKS = {
    ConversionStatus.UNKNOWN: 0,
    ConversionStatus.CREATED: 1,
    ConversionStatus.UPDATED: 1,
    ConversionStatus.SKIPPED: 1,
    ConversionStatus.FAILED: 1,
    ConversionStatus.REMOVED: 2,
}

SUMMARY_STATUSES = (
    ConversionStatus.CREATED,
    ConversionStatus.UPDATED,
    ConversionStatus.FAILED,
    ConversionStatus.SKIPPED,
)


@dataclass(frozen=True)
class NativeRef:
    """A native artifact addressed by category and transient name (``Frame::B12``)."""

    category: str
    name: str

    DELIMITER = "::"

    @property
    def token(self) -> str:
        return f"{self.category}{self.DELIMITER}{self.name}"

    @classmethod
    def parse(cls, token: str) -> "NativeRef":
        category, sep, name = str(token).partition(cls.DELIMITER)
        if not sep or not category or not name:
            raise ValueError(f"Malformed native reference token: {token!r}")
        return cls(category=category, name=name)

    def __str__(self) -> str:
        return self.token


@dataclass(slots=True)
class ConversionRecord:
    """Correlates one source object with the native artifacts produced for it."""

    source_id: str
    type_name: str
    application_id: Optional[str] = None
    convertible: bool = True
    status: ConversionStatus = ConversionStatus.UNKNOWN
    created_ids: List[str] = field(default_factory=list)
    converted: List[NativeRef] = field(default_factory=list)
    log: List[str] = field(default_factory=list)
    fallback: List["ConversionRecord"] = field(default_factory=list)

    def set_status(self, status: ConversionStatus) -> None:
        status = ConversionStatus(status)
        if status == self.status:
            return
        if _RANKS[status] < _RANKS[self.status] or self.status == ConversionStatus.REMOVED:
            raise ValueError(
                f"Record {self.source_id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def update(
        self,
        *,
        status: Optional[ConversionStatus] = None,
        created_ids: Iterable[str] = (),
        converted: Iterable[NativeRef] = (),
        log: Iterable[str] = (),
        log_item: Optional[str] = None,
    ) -> None:
        if status is not None:
            self.set_status(status)
        for native_id in created_ids:
            if native_id and native_id not in self.created_ids:
                self.created_ids.append(native_id)
        for ref in converted:
            if ref not in self.converted:
                self.converted.append(ref)
        self.log.extend(item for item in log if item)
        if log_item:
            self.log.append(log_item)

    def merge(self, other: "ConversionRecord") -> None:
        """Fold a handler's result into this record; Unknown defaults to Created."""
        status = other.status
        if status == ConversionStatus.UNKNOWN:
            status = ConversionStatus.CREATED
        self.update(
            status=status,
            created_ids=other.created_ids,
            converted=other.converted,
            log=other.log,
        )

    def clone(self) -> "ConversionRecord":
        return ConversionRecord(
            source_id=self.source_id,
            type_name=self.type_name,
            application_id=self.application_id,
            convertible=self.convertible,
            status=self.status,
            created_ids=list(self.created_ids),
            converted=list(self.converted),
            log=list(self.log),
            fallback=[child.clone() for child in self.fallback],
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "type": self.type_name,
            "application_id": self.application_id,
            "convertible": self.convertible,
            "status": self.status.value,
            "created_ids": list(self.created_ids),
            "converted": [ref.token for ref in self.converted],
            "log": list(self.log),
            "fallback": [child.as_dict() for child in self.fallback],
        }

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "ConversionRecord":
        try:
            source_id = str(data["source_id"])
        except KeyError as exc:
            raise ValueError(f"Record mapping missing required key: {exc}") from exc
        return cls(
            source_id=source_id,
            type_name=str(data.get("type") or ""),
            application_id=data.get("application_id"),
            convertible=bool(data.get("convertible", True)),
            status=ConversionStatus(data.get("status", ConversionStatus.UNKNOWN.value)),
            created_ids=[str(item) for item in data.get("created_ids") or []],
            converted=[NativeRef.parse(token) for token in data.get("converted") or []],
            log=[str(item) for item in data.get("log") or []],
            fallback=[cls.from_mapping(child) for child in data.get("fallback") or []],
        )


def summarize(records: Iterable[ConversionRecord]) -> Dict[str, int]:
    counts = {status.value: 0 for status in SUMMARY_STATUSES}
    for record in records:
        if record.status.value in counts:
            counts[record.status.value] += 1
    return counts


@dataclass(slots=True)
class Snapshot:
    """Ordered records of one sync run; the next run's reconciliation baseline."""

    records: List[ConversionRecord] = field(default_factory=list)
    created_at: Optional[str] = None

    @classmethod
    def capture(cls, records: Sequence[ConversionRecord]) -> "Snapshot":
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        return cls(records=[record.clone() for record in records], created_at=stamp)

    def application_ids(self) -> set[str]:
        return {r.application_id for r in self.records if r.application_id}

    def find(self, application_id: Optional[str]) -> Optional[ConversionRecord]:
        if not application_id:
            return None
        for record in self.records:
            if record.application_id == application_id:
                return record
        return None

    def counts(self) -> Dict[str, int]:
        return summarize(self.records)

    def to_json(self, *, indent: Optional[int] = 2) -> str:
        payload = {
            "created_at": self.created_at,
            "records": [record.as_dict() for record in self.records],
        }
        return json.dumps(payload, indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "Snapshot":
        loaded = json.loads(text)
        if not isinstance(loaded, dict):
            raise ValueError("Snapshot JSON must define a mapping at the top level")
        records = [ConversionRecord.from_mapping(item) for item in loaded.get("records") or []]
        return cls(records=records, created_at=loaded.get("created_at"))

    def save(self, path: PathLike) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_json(), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Optional[PathLike]) -> "Snapshot":
        """Load a stored snapshot; a missing file means no previous run."""
        if path is None:
            return cls()
        source = Path(path)
        if not source.exists():
            LOG.info("No previous snapshot at %s; starting fresh.", source)
            return cls()
        return cls.from_json(source.read_text(encoding="utf-8"))


class ProgressReport:
    """Caller-supplied sink for per-record log trails and run summaries."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or LOG
        self.entries: List[str] = []
        self.records: Dict[str, ConversionRecord] = {}

    def log(self, message: str, *, level: int = logging.INFO) -> None:
        self.entries.append(message)
        self.logger.log(level, "%s", message)

    def update_record(self, record: ConversionRecord) -> None:
        self.records[record.source_id] = record

    def counts(self) -> Dict[str, int]:
        return summarize(self.records.values())
