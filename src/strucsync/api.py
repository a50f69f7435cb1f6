from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from .config.manifest import SyncManifest
from .conversion import (
    DEFAULT_SEND_CATEGORIES,
    OPTIONS as DEFAULT_CONVERSION_OPTIONS,
    ConversionOptions,
    SyncResult,
    preview as _preview,
    receive as _receive,
    send as _send,
)

PathLike = Union[str, Path]

__all__ = [
    "SyncDefaults",
    "ReceiveSettings",
    "SendSettings",
    "SYNC_DEFAULTS",
    "DEFAULT_CONVERSION_OPTIONS",
    "receive",
    "send",
    "preview",
]


@dataclass(frozen=True)
class SyncDefaults:
    host: str = "etabs"
    receive_mode: str = "update"
    send_extruded: bool = True
    default_surface_thickness: float = 0.1

    def options(self) -> ConversionOptions:
        return replace(
            DEFAULT_CONVERSION_OPTIONS,
            receive_mode=self.receive_mode,
            send_extruded=self.send_extruded,
            default_surface_thickness=self.default_surface_thickness,
        )


SYNC_DEFAULTS = SyncDefaults()


@dataclass(slots=True)
class ReceiveSettings:
    """Inputs that drive a receive run via :func:`receive`."""

    source_path: PathLike
    database_path: PathLike
    snapshot_path: Optional[PathLike] = None
    manifest: Optional[SyncManifest] = None
    manifest_path: Optional[PathLike] = None
    host: str = SYNC_DEFAULTS.host
    program_version: Optional[str] = None
    logger: Optional[logging.Logger] = None


@dataclass(slots=True)
class SendSettings:
    """Inputs that drive a send run via :func:`send`."""

    database_path: PathLike
    output_path: Optional[PathLike] = None
    preview_path: Optional[PathLike] = None
    categories: Sequence[str] = field(default_factory=lambda: list(DEFAULT_SEND_CATEGORIES))
    manifest: Optional[SyncManifest] = None
    manifest_path: Optional[PathLike] = None
    host: str = SYNC_DEFAULTS.host
    logger: Optional[logging.Logger] = None


def receive(
    settings: ReceiveSettings,
    *,
    options: Optional[ConversionOptions] = None,
    cancel_event: Any | None = None,
) -> SyncResult:
    """Receive the object graph described by ``settings`` into its element database."""

    effective_options = SYNC_DEFAULTS.options() if options is None else options
    return _receive(
        settings.source_path,
        settings.database_path,
        snapshot_path=settings.snapshot_path,
        manifest=settings.manifest,
        manifest_path=settings.manifest_path,
        options=effective_options,
        host=settings.host,
        program_version=settings.program_version,
        logger=settings.logger,
        cancel_event=cancel_event,
    )


def send(
    settings: SendSettings,
    *,
    options: Optional[ConversionOptions] = None,
    cancel_event: Any | None = None,
) -> SyncResult:
    """Export the element database described by ``settings`` as a commit object."""

    effective_options = SYNC_DEFAULTS.options() if options is None else options
    return _send(
        settings.database_path,
        settings.output_path,
        manifest=settings.manifest,
        manifest_path=settings.manifest_path,
        options=effective_options,
        categories=tuple(settings.categories),
        host=settings.host,
        preview_path=settings.preview_path,
        logger=settings.logger,
        cancel_event=cancel_event,
    )


def preview(source_path: PathLike, output_path: PathLike) -> Path:
    """Expose the CLI preview helper as a reusable API call."""

    return _preview(source_path, output_path)
