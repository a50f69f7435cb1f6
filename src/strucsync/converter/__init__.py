from .core import RECEIVE_MODES, TO_NATIVE, TO_PORTABLE, ConverterSettings, StructuralConverter
from .definitions import ALL, MODEL, STORIES

__all__ = [
    "RECEIVE_MODES",
    "TO_NATIVE",
    "TO_PORTABLE",
    "ConverterSettings",
    "StructuralConverter",
    "ALL",
    "MODEL",
    "STORIES",
]
