"""
DexLens -- Dex Bytecode Container Decoder
==========================================

DexLens reads Dalvik Executable (Dex) files, the bytecode container format
of the Android runtime, and exposes their contents as typed, navigable
Python objects.

Capabilities:
    - Header validation (magic, version, endian tag, table bounds)
    - Bounds-checked string, type, prototype, field and method pools
    - Modified UTF-8 string decoding and binary search by content
    - Class definitions and diff-encoded class data with hostile-input checks
    - Code items with try blocks and catch handlers
    - Debug-info line-number programs
    - Map list decoding and cross-validation against the header
    - Encoded values, annotations and static field initialisers
    - Structural Dalvik instruction decoding
    - Rich and JSON inspection reports through the ``dexlens`` command

References:
    - Google. (2024). DEX Format. Android Open Source Project.
      https://source.android.com/docs/core/runtime/dex-format
    - Google. (2024). Dalvik bytecode format.
      https://source.android.com/docs/core/runtime/dalvik-bytecode
"""

__version__ = "1.0.0"

from dexlens.core.dex import DexFile
from dexlens.core.engine import DexEngine
from dexlens.core.errors import DexError

__all__ = [
    "DexEngine",
    "DexError",
    "DexFile",
    "__version__",
]
