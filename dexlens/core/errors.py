"""
DexLens Error Taxonomy
=======================

Every decoder in DexLens either returns a fully decoded value or raises one
of the exceptions below.  All of them derive from :class:`DexError`, so a
caller that only wants to skip a broken entry can catch the base class.

Failures are local to the entry being resolved: a malformed class body
raises while decoding *that* class and leaves sibling classes decodable.
Only header validation is fatal, because nothing else in the file can be
trusted once the header is wrong.

References:
    - Google. (2024). DEX Format. Android Open Source Project.
      https://source.android.com/docs/core/runtime/dex-format
"""

from __future__ import annotations

from typing import Optional


class DexError(Exception):
    """Base class for every DexLens decoding failure.

    Attributes:
        offset: Absolute file offset at which the failure was detected,
                or ``None`` when no single offset applies.
    """

    def __init__(self, message: str, *, offset: Optional[int] = None) -> None:
        self.offset = offset
        if offset is not None:
            message = f"{message} (at offset 0x{offset:x})"
        super().__init__(message)


class OutOfBoundsError(DexError):
    """A read would extend past the end of the buffer."""

    def __init__(self, offset: int, length: int, buffer_size: int) -> None:
        self.length = length
        self.buffer_size = buffer_size
        super().__init__(
            f"read of {length} byte(s) exceeds buffer of {buffer_size} byte(s)",
            offset=offset,
        )


class InvalidMagicError(DexError):
    """The file does not start with a supported ``dex\\n0NN\\0`` magic."""


class InvalidEndianTagError(DexError):
    """The header endian tag is not the little-endian constant."""


class InvalidHeaderError(DexError):
    """A header field (size, region) fails validation."""


class MalformedLeb128Error(DexError):
    """A LEB128 value has an invalid continuation or overflows 32 bits."""


class InvalidStringEncodingError(DexError):
    """A MUTF-8 string is truncated or contains an invalid byte sequence."""


class InvalidIndexError(DexError):
    """An index is outside the bounds of the pool it refers to."""

    def __init__(self, pool: str, index: int, count: int) -> None:
        self.pool = pool
        self.index = index
        self.count = count
        super().__init__(f"invalid {pool} index {index} (pool size {count})")


class MalformedClassDataError(DexError):
    """A ``class_data_item`` could not be decoded.

    Attributes:
        group:    Group being decoded (``"static_fields"``, ``"instance_fields"``,
                  ``"direct_methods"``, ``"virtual_methods"``) or ``None`` for
                  failures in the four leading counts.
        position: Zero-based entry position inside *group*, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        group: Optional[str] = None,
        position: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> None:
        self.group = group
        self.position = position
        where = ""
        if group is not None:
            where = f" [{group}" + (f"#{position}" if position is not None else "") + "]"
        super().__init__(f"malformed class data{where}: {message}", offset=offset)


class MalformedItemError(DexError):
    """A data item (code item, type list, encoded value, annotation) is invalid."""


class OverlappingSectionError(DexError):
    """Two map-list sections claim overlapping byte ranges."""


class DuplicateSectionError(DexError):
    """The map list declares the same item type more than once."""


class MissingSectionError(DexError):
    """A header-referenced section is not described by the map list."""


class UnterminatedDebugProgramError(DexError):
    """A debug-info program ran off the buffer without ``DBG_END_SEQUENCE``."""


class FileTooLargeError(DexError):
    """The input exceeds the configured maximum file size."""
