"""
DexLens Parsers
================

Decoders for the individual structures of a Dex file.  Each parser reads
from a bounds-checked :class:`~dexlens.core.source.ByteSource` and returns
immutable records from :mod:`dexlens.core.models`.
"""

from dexlens.parsers.class_data import ClassDataParser
from dexlens.parsers.code import parse_code_item
from dexlens.parsers.debug_info import DebugInfo
from dexlens.parsers.header import parse_header
from dexlens.parsers.instructions import decode_instructions
from dexlens.parsers.map_list import MapList, parse_map_list, validate_map_list

__all__ = [
    "ClassDataParser",
    "DebugInfo",
    "MapList",
    "decode_instructions",
    "parse_code_item",
    "parse_header",
    "parse_map_list",
    "validate_map_list",
]
