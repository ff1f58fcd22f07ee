"""
Byte Source
============

Bounds-checked, read-only access over an immutable Dex image.

A :class:`ByteSource` wraps ``bytes``, ``bytearray``, ``memoryview`` or an
:mod:`mmap` object.  Every read names an offset and a length and raises
:class:`~dexlens.core.errors.OutOfBoundsError` instead of returning short
data, so no decoder can silently read past the end of the file.

Reads return :class:`memoryview` slices; nothing is copied until a decoder
turns the bytes into a Python value.
"""

from __future__ import annotations

import mmap
import struct
from pathlib import Path
from typing import Union

from dexlens.core.errors import OutOfBoundsError

BufferLike = Union[bytes, bytearray, memoryview, mmap.mmap]

_BYTE_ORDERS = {"little": "<", "big": ">"}


def _structs(prefix: str) -> dict[str, struct.Struct]:
    return {code: struct.Struct(prefix + code) for code in "BbHhIiQq"}


_STRUCTS = {order: _structs(prefix) for order, prefix in _BYTE_ORDERS.items()}


class ByteSource:
    """Immutable byte buffer of known length.

    Usage::

        src = ByteSource(raw_bytes)
        magic = bytes(src.read(0, 8))
        string_ids_size = src.u32(56)

    Fixed-width reads are little-endian unless *byteorder* is ``"big"``.
    """

    __slots__ = ("_view", "_size", "_backing", "_prefix", "_structs")

    def __init__(self, data: BufferLike, *, byteorder: str = "little") -> None:
        if byteorder not in _BYTE_ORDERS:
            raise ValueError(f"unknown byte order {byteorder!r}")
        self._backing = data
        self._prefix = _BYTE_ORDERS[byteorder]
        self._structs = _STRUCTS[byteorder]
        view = memoryview(data)
        if view.ndim != 1 or view.itemsize != 1:
            view = view.cast("B")
        self._view: memoryview = view.toreadonly()
        self._size: int = len(self._view)

    @classmethod
    def from_path(cls, path: str | Path, *, use_mmap: bool = True) -> ByteSource:
        """Open *path* read-only, memory-mapped when *use_mmap* is set.

        Empty files cannot be mapped and are always read into memory.
        """
        file_path = Path(path)
        if not use_mmap or file_path.stat().st_size == 0:
            return cls(file_path.read_bytes())
        with open(file_path, "rb") as fh:
            mapped = mmap.mmap(fh.fileno(), 0, access=mmap.ACCESS_READ)
        return cls(mapped)

    # ------------------------------------------------------------------ #
    #  Raw access
    # ------------------------------------------------------------------ #

    def __len__(self) -> int:
        return self._size

    @property
    def size(self) -> int:
        """Buffer length in bytes."""
        return self._size

    def check(self, offset: int, length: int) -> None:
        """Raise :class:`OutOfBoundsError` unless ``[offset, offset+length)`` fits."""
        if offset < 0 or length < 0 or offset + length > self._size:
            raise OutOfBoundsError(offset, length, self._size)

    def contains(self, offset: int, length: int = 0) -> bool:
        """Return ``True`` when ``[offset, offset+length)`` lies in the buffer."""
        return 0 <= offset and 0 <= length and offset + length <= self._size

    def read(self, offset: int, length: int) -> memoryview:
        """Return a zero-copy view of *length* bytes at *offset*."""
        self.check(offset, length)
        return self._view[offset:offset + length]

    def view(self) -> memoryview:
        """Read-only view over the whole buffer."""
        return self._view

    # ------------------------------------------------------------------ #
    #  Fixed-width integers
    # ------------------------------------------------------------------ #

    def _unpack(self, code: str, offset: int) -> int:
        fmt = self._structs[code]
        self.check(offset, fmt.size)
        return fmt.unpack_from(self._view, offset)[0]

    def u8(self, offset: int) -> int:
        return self._unpack("B", offset)

    def i8(self, offset: int) -> int:
        return self._unpack("b", offset)

    def u16(self, offset: int) -> int:
        return self._unpack("H", offset)

    def i16(self, offset: int) -> int:
        return self._unpack("h", offset)

    def u32(self, offset: int) -> int:
        return self._unpack("I", offset)

    def i32(self, offset: int) -> int:
        return self._unpack("i", offset)

    def u64(self, offset: int) -> int:
        return self._unpack("Q", offset)

    def i64(self, offset: int) -> int:
        return self._unpack("q", offset)

    def u16_array(self, offset: int, count: int) -> tuple[int, ...]:
        """Decode *count* consecutive ``u16`` values starting at *offset*."""
        self.check(offset, count * 2)
        return struct.unpack_from(f"{self._prefix}{count}H", self._view, offset)

    def u32_array(self, offset: int, count: int) -> tuple[int, ...]:
        """Decode *count* consecutive ``u32`` values starting at *offset*."""
        self.check(offset, count * 4)
        return struct.unpack_from(f"{self._prefix}{count}I", self._view, offset)

    def close(self) -> None:
        """Release the view and close the mapping, if this source owns one."""
        self._view.release()
        if isinstance(self._backing, mmap.mmap):
            self._backing.close()
