"""Deferred access to the USD bindings used by the preview writer."""

from __future__ import annotations

import importlib
from functools import lru_cache
from typing import Any, NamedTuple

USD_PACKAGES = ("Gf", "Sdf", "Usd", "UsdGeom", "Vt")


class UsdModules(NamedTuple):
    Gf: Any
    Sdf: Any
    Usd: Any
    UsdGeom: Any
    Vt: Any


@lru_cache(maxsize=1)
def load_usd() -> UsdModules:
    """Import the ``pxr`` packages the preview needs, once per process."""
    try:
        return UsdModules(*(importlib.import_module(f"pxr.{name}") for name in USD_PACKAGES))
    except ImportError as exc:
        raise RuntimeError("USD preview requires the 'usd-core' package (pxr bindings)") from exc


__all__ = ["USD_PACKAGES", "UsdModules", "load_usd"]
