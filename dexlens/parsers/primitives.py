"""
Dex Primitive Decoders
========================

Variable-length integer and string decoders used throughout the Dex format.

Every decoder takes ``(source, offset)`` and returns ``(value, size)`` where
*size* is the number of bytes consumed.  There is no implicit cursor, so the
functions are reentrant and can be called from any number of readers.

Encodings:
    - ULEB128 / SLEB128: little-endian base-128, at most 5 bytes for the
      32-bit quantities the format stores.
    - ULEB128p1: ULEB128 minus one; ``0`` on disk means "no index".
    - MUTF-8: modified UTF-8.  Code points above U+FFFF are stored as two
      3-byte surrogate encodings, and U+0000 is normally stored as the
      2-byte ``C0 80`` sequence.

The ``encode_*`` helpers are the inverse operations.  DexLens never writes
Dex files; they exist for round-trip checks and for building test images.

References:
    - Google. (2024). DEX Format: LEB128, MUTF-8 encoding.
      https://source.android.com/docs/core/runtime/dex-format#leb128
    - DWARF Debugging Information Format, Version 4, section 7.6.
"""

from __future__ import annotations

import struct
from typing import Optional

from dexlens.core.errors import (
    InvalidStringEncodingError,
    MalformedLeb128Error,
    OutOfBoundsError,
)
from dexlens.core.source import ByteSource

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

NO_INDEX: int = 0xFFFFFFFF

_MAX_LEB128_BYTES: int = 5
_INT32_MIN: int = -(1 << 31)
_INT32_MAX: int = (1 << 31) - 1


# ---------------------------------------------------------------------------
# LEB128
# ---------------------------------------------------------------------------

def decode_uleb128(source: ByteSource, offset: int) -> tuple[int, int]:
    """Decode an unsigned LEB128 value.

    Returns:
        ``(value, size)``.

    Raises:
        MalformedLeb128Error: The 5th byte has the continuation bit set or
            carries bits beyond a 32-bit result.
        OutOfBoundsError: The value runs past the end of the buffer.
    """
    result = 0
    for i in range(_MAX_LEB128_BYTES):
        byte = source.u8(offset + i)
        if i == _MAX_LEB128_BYTES - 1:
            if byte & 0x80:
                raise MalformedLeb128Error(
                    "uleb128 continues past 5 bytes", offset=offset
                )
            if byte & 0xF0:
                raise MalformedLeb128Error(
                    "uleb128 overflows 32 bits", offset=offset
                )
        result |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            return result, i + 1
    # Unreachable: the 5th byte either returns or raises above.
    raise MalformedLeb128Error("uleb128 continues past 5 bytes", offset=offset)


def decode_uleb128p1(source: ByteSource, offset: int) -> tuple[Optional[int], int]:
    """Decode a ULEB128p1 value; an encoded ``0`` yields ``None``."""
    value, size = decode_uleb128(source, offset)
    return (value - 1 if value else None), size


def decode_sleb128(source: ByteSource, offset: int) -> tuple[int, int]:
    """Decode a signed LEB128 value.

    The sign is taken from bit 6 of the final byte.  The result must fit a
    signed 32-bit integer.
    """
    result = 0
    for i in range(_MAX_LEB128_BYTES):
        byte = source.u8(offset + i)
        result |= (byte & 0x7F) << (7 * i)
        if not byte & 0x80:
            size = i + 1
            if byte & 0x40:
                result -= 1 << (7 * size)
            if not _INT32_MIN <= result <= _INT32_MAX:
                raise MalformedLeb128Error(
                    "sleb128 overflows 32 bits", offset=offset
                )
            return result, size
    raise MalformedLeb128Error("sleb128 continues past 5 bytes", offset=offset)


def encode_uleb128(value: int) -> bytes:
    """Encode *value* (``0 <= value < 2**32``) as minimal-length ULEB128."""
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"uleb128 value out of range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_uleb128p1(value: Optional[int]) -> bytes:
    """Encode an optional index as ULEB128p1 (``None`` becomes ``0``)."""
    return encode_uleb128(0 if value is None else value + 1)


def encode_sleb128(value: int) -> bytes:
    """Encode a signed 32-bit *value* as minimal-length SLEB128."""
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ValueError(f"sleb128 value out of range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        done = (value == 0 and not byte & 0x40) or (value == -1 and byte & 0x40)
        if done:
            out.append(byte)
            return bytes(out)
        out.append(byte | 0x80)


# ---------------------------------------------------------------------------
# MUTF-8
# ---------------------------------------------------------------------------

def decode_mutf8(
    source: ByteSource, offset: int, utf16_size: int
) -> tuple[str, int]:
    """Decode *utf16_size* UTF-16 code units of MUTF-8 starting at *offset*.

    Bytes are consumed greedily until the declared number of code units has
    been produced.  Unpaired surrogates are preserved in the returned text.

    Returns:
        ``(text, size)`` where *size* is the number of bytes consumed.

    Raises:
        InvalidStringEncodingError: The data ends early or contains an
            invalid lead or continuation byte.
    """
    data = source.view()
    end = source.size
    units: list[int] = []
    pos = offset

    def _continuation(at: int) -> int:
        if at >= end:
            raise InvalidStringEncodingError(
                "string data truncated", offset=offset
            )
        byte = data[at]
        if byte & 0xC0 != 0x80:
            raise InvalidStringEncodingError(
                f"invalid continuation byte 0x{byte:02x}", offset=at
            )
        return byte & 0x3F

    if offset < 0:
        raise OutOfBoundsError(offset, 0, end)

    while len(units) < utf16_size:
        if pos >= end:
            raise InvalidStringEncodingError("string data truncated", offset=offset)
        lead = data[pos]
        if lead < 0x80:
            units.append(lead)
            pos += 1
        elif lead & 0xE0 == 0xC0:
            units.append(((lead & 0x1F) << 6) | _continuation(pos + 1))
            pos += 2
        elif lead & 0xF0 == 0xE0:
            units.append(
                ((lead & 0x0F) << 12)
                | (_continuation(pos + 1) << 6)
                | _continuation(pos + 2)
            )
            pos += 3
        else:
            raise InvalidStringEncodingError(
                f"invalid lead byte 0x{lead:02x}", offset=pos
            )

    raw = struct.pack(f"<{len(units)}H", *units)
    return raw.decode("utf-16-le", errors="surrogatepass"), pos - offset


def utf16_length(text: str) -> int:
    """Number of UTF-16 code units needed to represent *text*."""
    return len(text.encode("utf-16-le", errors="surrogatepass")) // 2


def to_utf16_units(text: str) -> tuple[int, ...]:
    """UTF-16 code units of *text*; the sort key of the Dex string pool."""
    raw = text.encode("utf-16-le", errors="surrogatepass")
    return struct.unpack(f"<{len(raw) // 2}H", raw)


def encode_mutf8(text: str) -> bytes:
    """Encode *text* as MUTF-8 without the trailing NUL."""
    out = bytearray()
    for unit in to_utf16_units(text):
        if 0 < unit < 0x80:
            out.append(unit)
        elif unit < 0x800:
            out.append(0xC0 | (unit >> 6))
            out.append(0x80 | (unit & 0x3F))
        else:
            out.append(0xE0 | (unit >> 12))
            out.append(0x80 | ((unit >> 6) & 0x3F))
            out.append(0x80 | (unit & 0x3F))
    return bytes(out)
