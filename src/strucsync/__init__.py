from . import api
from .api import (
    DEFAULT_CONVERSION_OPTIONS,
    SYNC_DEFAULTS,
    ReceiveSettings,
    SendSettings,
    SyncDefaults,
    preview,
    receive,
    send,
)
from .config.manifest import SyncManifest
from .conversion import ConversionOptions, SyncResult, send_model, sync_graph
from .converter import ConverterSettings, StructuralConverter
from .dispatch import ConversionDispatcher
from .errors import (
    ConversionCancelled,
    ConversionCancelledError,
    ConversionFailed,
    ConversionNotSupported,
    NativeApiError,
    NativeHostError,
    StrucSyncError,
    StructuralIntegrityConflict,
    TriangulationError,
)
from .reconcile import ReconciliationEngine
from .records import ConversionRecord, ConversionStatus, NativeRef, ProgressReport, Snapshot
from .traversal import GraphFlattener, ObjectStore

__all__ = [
    "api",
    "receive",
    "send",
    "preview",
    "sync_graph",
    "send_model",
    "SyncDefaults",
    "ReceiveSettings",
    "SendSettings",
    "SYNC_DEFAULTS",
    "DEFAULT_CONVERSION_OPTIONS",
    "ConversionOptions",
    "SyncResult",
    "SyncManifest",
    "ConverterSettings",
    "StructuralConverter",
    "ConversionDispatcher",
    "ReconciliationEngine",
    "GraphFlattener",
    "ObjectStore",
    "ConversionRecord",
    "ConversionStatus",
    "NativeRef",
    "ProgressReport",
    "Snapshot",
    "StrucSyncError",
    "ConversionNotSupported",
    "ConversionFailed",
    "NativeApiError",
    "NativeHostError",
    "StructuralIntegrityConflict",
    "ConversionCancelled",
    "ConversionCancelledError",
    "TriangulationError",
]
