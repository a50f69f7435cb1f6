from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

__all__ = [
    "StrucSyncError",
    "ConversionNotSupported",
    "ConversionFailed",
    "NativeApiError",
    "StructuralIntegrityConflict",
    "ConversionCancelledError",
    "ConversionCancelled",
    "NativeHostError",
    "TriangulationError",
    "FATAL_ERRORS",
    "is_fatal",
    "is_cancelled",
    "ensure_not_cancelled",
    "classify_failure",
]


class StrucSyncError(Exception):
    """Base class for every error raised by the sync engine."""


class ConversionNotSupported(StrucSyncError):
    """No conversion handler exists for the object's type."""

    def __init__(self, type_name: str, message: Optional[str] = None):
        self.type_name = type_name
        super().__init__(message or f"No conversion available for type '{type_name}'")


class ConversionFailed(StrucSyncError):
    """A handler ran but could not produce the native element."""


class NativeApiError(ConversionFailed):
    """The native element database rejected a call."""

    def __init__(self, call: str, message: str = "", *, code: int = 1, log: str = ""):
        self.call = call
        self.code = int(code)
        self.log = log
        detail = f"{call} failed (code {self.code})"
        if message:
            detail = f"{detail}: {message}"
        super().__init__(detail)


class StructuralIntegrityConflict(StrucSyncError):
    """A tabular edit cannot hold the requested topology change."""

    def __init__(self, element: str, required: int, capacity: int):
        self.element = element
        self.required = int(required)
        self.capacity = int(capacity)
        super().__init__(
            f"{element} needs {self.required} connectivity slots but the table holds {self.capacity}"
        )


class ConversionCancelledError(StrucSyncError):
    """Raised when a sync run is cancelled by the caller."""


ConversionCancelled = ConversionCancelledError


class NativeHostError(StrucSyncError):
    """The host application is unreachable or crashed; never recoverable per object."""


class TriangulationError(StrucSyncError):
    """Ear clipping could not finish on the supplied ring."""


FATAL_ERRORS: Tuple[type, ...] = (NativeHostError, ConversionCancelledError, MemoryError)


def is_fatal(exc: BaseException) -> bool:
    if isinstance(exc, FATAL_ERRORS):
        return True
    return not isinstance(exc, Exception)


def is_cancelled(cancel_event: Any | None) -> bool:
    if cancel_event is None:
        return False
    is_set = getattr(cancel_event, "is_set", None)
    if callable(is_set):
        return bool(is_set())
    return bool(cancel_event)


def ensure_not_cancelled(cancel_event: Any | None, *, message: str | None = None) -> None:
    if is_cancelled(cancel_event):
        raise ConversionCancelledError(message or "Sync cancelled.")


def classify_failure(exc: BaseException) -> Tuple[str, int]:
    """Return ``(label, log level)`` describing a per-object conversion failure."""
    if isinstance(exc, ConversionNotSupported):
        return "not supported", logging.WARNING
    if isinstance(exc, NativeApiError):
        return "rejected by native database", logging.ERROR
    if isinstance(exc, ConversionFailed):
        return "conversion failed", logging.ERROR
    return "unexpected error", logging.ERROR
