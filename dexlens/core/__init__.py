"""
DexLens Core Module
====================

The :class:`DexFile` facade, its resolved views, the record models, the
error hierarchy and the inspection engine.
"""

from dexlens.core.dex import DexFile
from dexlens.core.engine import DexEngine
from dexlens.core.errors import (
    DexError,
    DuplicateSectionError,
    FileTooLargeError,
    InvalidEndianTagError,
    InvalidHeaderError,
    InvalidIndexError,
    InvalidMagicError,
    InvalidStringEncodingError,
    MalformedClassDataError,
    MalformedItemError,
    MalformedLeb128Error,
    MissingSectionError,
    OutOfBoundsError,
    OverlappingSectionError,
    UnterminatedDebugProgramError,
)
from dexlens.core.models import InspectionReport
from dexlens.core.source import ByteSource
from dexlens.core.views import DexClass, DexField, DexMethod, Prototype

__all__ = [
    "ByteSource",
    "DexClass",
    "DexEngine",
    "DexError",
    "DexField",
    "DexFile",
    "DexMethod",
    "DuplicateSectionError",
    "FileTooLargeError",
    "InspectionReport",
    "InvalidEndianTagError",
    "InvalidHeaderError",
    "InvalidIndexError",
    "InvalidMagicError",
    "InvalidStringEncodingError",
    "MalformedClassDataError",
    "MalformedItemError",
    "MalformedLeb128Error",
    "MissingSectionError",
    "OutOfBoundsError",
    "OverlappingSectionError",
    "Prototype",
    "UnterminatedDebugProgramError",
]
