"""
Dex Header Parser
==================

Decodes and validates the fixed 112-byte ``header_item`` at offset 0.

Validation is strict because every other structure is located through the
header: a bad magic, endian tag or header size, or a table that does not
fit the buffer, rejects the whole file.

References:
    - Google. (2024). DEX Format: header_item.
      https://source.android.com/docs/core/runtime/dex-format#header-item
"""

from __future__ import annotations

import re

from dexlens.core.errors import (
    InvalidEndianTagError,
    InvalidHeaderError,
    InvalidMagicError,
    OutOfBoundsError,
)
from dexlens.core.models import HeaderItem
from dexlens.core.source import ByteSource

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HEADER_SIZE: int = 0x70
ENDIAN_CONSTANT: int = 0x12345678
REVERSE_ENDIAN_CONSTANT: int = 0x78563412

_MAGIC_RE = re.compile(rb"dex\n0\d\d\x00")
_U32_LIMIT: int = 1 << 32

# (size field, offset field, item stride in bytes)
_TABLES: tuple[tuple[str, str, int], ...] = (
    ("link_size", "link_off", 1),
    ("string_ids_size", "string_ids_off", 4),
    ("type_ids_size", "type_ids_off", 4),
    ("proto_ids_size", "proto_ids_off", 12),
    ("field_ids_size", "field_ids_off", 8),
    ("method_ids_size", "method_ids_off", 8),
    ("class_defs_size", "class_defs_off", 32),
    ("data_size", "data_off", 1),
)

_FIELDS: tuple[str, ...] = (
    "file_size", "header_size", "endian_tag",
    "link_size", "link_off",
    "map_off",
    "string_ids_size", "string_ids_off",
    "type_ids_size", "type_ids_off",
    "proto_ids_size", "proto_ids_off",
    "field_ids_size", "field_ids_off",
    "method_ids_size", "method_ids_off",
    "class_defs_size", "class_defs_off",
    "data_size", "data_off",
)


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

def parse_header(source: ByteSource) -> HeaderItem:
    """Decode and validate the header of *source*.

    Raises:
        OutOfBoundsError: The buffer is shorter than the header or than the
            declared ``file_size``, or a table lies past the end.
        InvalidMagicError: The magic is not ``dex\\n0NN\\0``.
        InvalidEndianTagError: The endian tag is not ``0x12345678``.
        InvalidHeaderError: ``header_size`` is not ``0x70`` or a table
            extent overflows 32 bits.
    """
    if source.size < HEADER_SIZE:
        raise OutOfBoundsError(0, HEADER_SIZE, source.size)

    magic = bytes(source.read(0, 8))
    if _MAGIC_RE.fullmatch(magic) is None:
        raise InvalidMagicError(f"unsupported dex magic {magic!r}", offset=0)

    values = dict(zip(_FIELDS, source.u32_array(32, len(_FIELDS))))

    if values["endian_tag"] != ENDIAN_CONSTANT:
        hint = " (big-endian files are not supported)" \
            if values["endian_tag"] == REVERSE_ENDIAN_CONSTANT else ""
        raise InvalidEndianTagError(
            f"bad endian tag 0x{values['endian_tag']:08x}{hint}", offset=40
        )
    if values["header_size"] != HEADER_SIZE:
        raise InvalidHeaderError(
            f"header_size is 0x{values['header_size']:x}, expected 0x70", offset=36
        )
    if values["file_size"] > source.size:
        raise OutOfBoundsError(0, values["file_size"], source.size)

    for size_name, off_name, stride in _TABLES:
        _check_region(source, size_name, values[size_name], values[off_name], stride)
    if values["map_off"]:
        # Entries are bounds-checked when the map list is decoded.
        source.check(values["map_off"], 4)

    return HeaderItem(
        magic=magic,
        version=magic[4:7].decode("ascii"),
        checksum=source.u32(8),
        signature=bytes(source.read(12, 20)),
        **values,
    )


def _check_region(
    source: ByteSource, name: str, count: int, offset: int, stride: int
) -> None:
    if count == 0:
        return
    end = offset + count * stride
    if end > _U32_LIMIT:
        raise InvalidHeaderError(
            f"{name}={count} at 0x{offset:x} overflows 32 bits", offset=offset
        )
    if end > source.size:
        raise OutOfBoundsError(offset, count * stride, source.size)
