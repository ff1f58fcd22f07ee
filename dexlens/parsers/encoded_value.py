"""
Dex Encoded Values
===================

Decoders for ``encoded_value``, ``encoded_array`` and
``encoded_annotation``, the self-describing constants used for static field
initialisers, annotation elements and call-site arguments.

Each value starts with one byte: the low five bits are the ``value_type``
and the high three bits are ``value_arg``, usually the payload width minus
one.  Integers are little-endian and sign- or zero-extended to their natural
width; floats and doubles are zero-extended *to the right*, i.e. the stored
bytes are the most significant ones.

References:
    - Google. (2024). DEX Format: encoded_value encoding.
      https://source.android.com/docs/core/runtime/dex-format#encoding
"""

from __future__ import annotations

import struct

from dexlens.core.errors import MalformedItemError
from dexlens.core.models import (
    AnnotationElement,
    EncodedAnnotation,
    EncodedValue,
    ValueType,
)
from dexlens.core.source import ByteSource
from dexlens.parsers.primitives import decode_uleb128

# Maximum payload width in bytes per value type.
_MAX_WIDTH: dict[ValueType, int] = {
    ValueType.BYTE: 1,
    ValueType.SHORT: 2,
    ValueType.CHAR: 2,
    ValueType.INT: 4,
    ValueType.LONG: 8,
    ValueType.FLOAT: 4,
    ValueType.DOUBLE: 8,
    ValueType.METHOD_TYPE: 4,
    ValueType.METHOD_HANDLE: 4,
    ValueType.STRING: 4,
    ValueType.TYPE: 4,
    ValueType.FIELD: 4,
    ValueType.METHOD: 4,
    ValueType.ENUM: 4,
}

_SIGNED: frozenset[ValueType] = frozenset(
    {ValueType.BYTE, ValueType.SHORT, ValueType.INT, ValueType.LONG}
)

# Nested arrays and annotations deeper than this are rejected.
MAX_NESTING: int = 64


def decode_encoded_value(
    source: ByteSource, offset: int, *, depth: int = 0
) -> tuple[EncodedValue, int]:
    """Decode one ``encoded_value``.

    Returns:
        ``(value, size)``.

    Raises:
        MalformedItemError: Unknown type tag, invalid ``value_arg`` or
            nesting deeper than :data:`MAX_NESTING`.
    """
    header = source.u8(offset)
    value_arg = header >> 5
    try:
        value_type = ValueType(header & 0x1F)
    except ValueError:
        raise MalformedItemError(
            f"unknown encoded value type 0x{header & 0x1F:02x}", offset=offset
        ) from None
    pos = offset + 1

    width = _MAX_WIDTH.get(value_type)
    if width is not None:
        size = value_arg + 1
        if size > width:
            raise MalformedItemError(
                f"{value_type.name} value of {size} bytes exceeds {width}",
                offset=offset,
            )
        raw = bytes(source.read(pos, size))
        if value_type is ValueType.FLOAT:
            value = struct.unpack("<f", raw.rjust(4, b"\x00"))[0]
        elif value_type is ValueType.DOUBLE:
            value = struct.unpack("<d", raw.rjust(8, b"\x00"))[0]
        else:
            value = int.from_bytes(raw, "little", signed=value_type in _SIGNED)
        return EncodedValue(value_type=value_type, value=value), 1 + size

    if value_type is ValueType.BOOLEAN:
        if value_arg > 1:
            raise MalformedItemError(f"bad boolean arg {value_arg}", offset=offset)
        return EncodedValue(value_type=value_type, value=bool(value_arg)), 1

    if value_arg:
        raise MalformedItemError(
            f"{value_type.name} value must have value_arg 0, got {value_arg}",
            offset=offset,
        )
    if value_type is ValueType.NULL:
        return EncodedValue(value_type=value_type, value=None), 1

    if depth >= MAX_NESTING:
        raise MalformedItemError("encoded values nested too deeply", offset=offset)
    if value_type is ValueType.ARRAY:
        values, size = decode_encoded_array(source, pos, depth=depth + 1)
        return EncodedValue(value_type=value_type, value=values), 1 + size
    annotation, size = decode_encoded_annotation(source, pos, depth=depth + 1)
    return EncodedValue(value_type=value_type, value=annotation), 1 + size


def decode_encoded_array(
    source: ByteSource, offset: int, *, depth: int = 0
) -> tuple[list[EncodedValue], int]:
    """Decode an ``encoded_array`` (ULEB128 size, then that many values)."""
    count, size = decode_uleb128(source, offset)
    pos = offset + size
    # Every encoded value occupies at least one byte.
    if count > source.size - pos:
        raise MalformedItemError(
            f"encoded array of {count} value(s) exceeds remaining data",
            offset=offset,
        )
    values: list[EncodedValue] = []
    for _ in range(count):
        value, size = decode_encoded_value(source, pos, depth=depth)
        values.append(value)
        pos += size
    return values, pos - offset


def decode_encoded_annotation(
    source: ByteSource, offset: int, *, depth: int = 0
) -> tuple[EncodedAnnotation, int]:
    """Decode an ``encoded_annotation`` (type, then ``name = value`` pairs)."""
    type_idx, size = decode_uleb128(source, offset)
    pos = offset + size
    count, size = decode_uleb128(source, pos)
    pos += size
    if count * 2 > source.size - pos:
        raise MalformedItemError(
            f"annotation with {count} element(s) exceeds remaining data",
            offset=offset,
        )
    elements: list[AnnotationElement] = []
    for _ in range(count):
        name_idx, size = decode_uleb128(source, pos)
        pos += size
        value, size = decode_encoded_value(source, pos, depth=depth)
        pos += size
        elements.append(AnnotationElement(name_idx=name_idx, value=value))
    return EncodedAnnotation(type_idx=type_idx, elements=elements), pos - offset
