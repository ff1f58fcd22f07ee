"""
Dex ID Pools
=============

Index resolvers for the fixed-stride id tables referenced by the header:

    ============  ======  =============================================
    Pool          Stride  Entry
    ============  ======  =============================================
    string_ids        4   ``string_data_off`` (u32)
    type_ids          4   ``descriptor_idx`` (u32, string index)
    proto_ids        12   ``shorty_idx``, ``return_type_idx``,
                          ``parameters_off`` (u32 each)
    field_ids         8   ``class_idx`` (u16), ``type_idx`` (u16),
                          ``name_idx`` (u32)
    method_ids        8   ``class_idx`` (u16), ``proto_idx`` (u16),
                          ``name_idx`` (u32)
    method_handles    8   ``type`` (u16), unused (u16),
                          ``field_or_method_id`` (u16), unused (u16)
    ============  ======  =============================================

A pool is just ``(count, base_offset)`` over a :class:`ByteSource`.  Entries
are decoded on every call and nothing is cached, so two lookups of the same
index always produce equal values.

References:
    - Google. (2024). DEX Format: string_id_item, type_id_item, proto_id_item,
      field_id_item, method_id_item, method_handle_item, type_list.
      https://source.android.com/docs/core/runtime/dex-format
"""

from __future__ import annotations

from typing import Iterator, Optional

from dexlens.core.errors import InvalidIndexError, MalformedItemError
from dexlens.core.models import (
    DexType,
    FieldIdItem,
    MethodHandleItem,
    MethodHandleType,
    MethodIdItem,
    ProtoIdItem,
    StringData,
)
from dexlens.core.source import ByteSource
from dexlens.parsers.primitives import decode_mutf8, decode_uleb128, to_utf16_units


# ---------------------------------------------------------------------------
# Type lists
# ---------------------------------------------------------------------------

def decode_type_list(source: ByteSource, offset: int) -> list[int]:
    """Decode a ``type_list`` (u32 size, then ``size`` u16 type indices)."""
    if offset % 4:
        raise MalformedItemError("type_list is not 4-byte aligned", offset=offset)
    size = source.u32(offset)
    return list(source.u16_array(offset + 4, size))


# ---------------------------------------------------------------------------
# Base pool
# ---------------------------------------------------------------------------

class IdPool:
    """Fixed-stride table of ``count`` entries starting at ``offset``."""

    __slots__ = ("_source", "count", "offset")

    name: str = "id"
    stride: int = 4

    def __init__(self, source: ByteSource, count: int, offset: int) -> None:
        self._source = source
        self.count = count
        self.offset = offset

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        return f"{type(self).__name__}(count={self.count}, offset=0x{self.offset:x})"

    def entry_offset(self, index: int) -> int:
        """Absolute offset of entry *index*.

        Raises:
            InvalidIndexError: *index* is outside ``[0, count)``.
        """
        if not 0 <= index < self.count:
            raise InvalidIndexError(self.name, index, self.count)
        return self.offset + index * self.stride


# ---------------------------------------------------------------------------
# Pools
# ---------------------------------------------------------------------------

class StringPool(IdPool):
    """``string_ids`` resolver.  The pool is sorted by UTF-16 code units."""

    __slots__ = ()
    name = "string"
    stride = 4

    def data_offset(self, index: int) -> int:
        """``string_data_off`` of entry *index*."""
        return self._source.u32(self.entry_offset(index))

    def string_data(self, index: int) -> StringData:
        """Decode the ``string_data_item`` behind entry *index*."""
        offset = self.data_offset(index)
        utf16_size, prefix = decode_uleb128(self._source, offset)
        value, size = decode_mutf8(self._source, offset + prefix, utf16_size)
        return StringData(
            offset=offset, utf16_size=utf16_size, value=value, size=prefix + size
        )

    def get(self, index: int) -> str:
        return self.string_data(index).value

    def __getitem__(self, index: int) -> str:
        return self.get(index)

    def __iter__(self) -> Iterator[str]:
        for index in range(self.count):
            yield self.get(index)

    def find(self, text: str) -> Optional[int]:
        """Binary-search the pool for *text* and return its index, if present."""
        key = to_utf16_units(text)
        lo, hi = 0, self.count
        while lo < hi:
            mid = (lo + hi) // 2
            candidate = to_utf16_units(self.get(mid))
            if candidate == key:
                return mid
            if candidate < key:
                lo = mid + 1
            else:
                hi = mid
        return None


class TypePool(IdPool):
    """``type_ids`` resolver.  The pool is sorted by ``descriptor_idx``."""

    __slots__ = ("_strings",)
    name = "type"
    stride = 4

    def __init__(
        self, source: ByteSource, count: int, offset: int, strings: StringPool
    ) -> None:
        super().__init__(source, count, offset)
        self._strings = strings

    def descriptor_idx(self, index: int) -> int:
        return self._source.u32(self.entry_offset(index))

    def descriptor(self, index: int) -> str:
        return self._strings.get(self.descriptor_idx(index))

    def get(self, index: int) -> DexType:
        descriptor_idx = self.descriptor_idx(index)
        return DexType(
            index=index,
            descriptor_idx=descriptor_idx,
            descriptor=self._strings.get(descriptor_idx),
        )

    def __iter__(self) -> Iterator[DexType]:
        for index in range(self.count):
            yield self.get(index)

    def find_by_string(self, string_idx: int) -> Optional[int]:
        """Return the type index whose descriptor is string *string_idx*."""
        lo, hi = 0, self.count
        while lo < hi:
            mid = (lo + hi) // 2
            candidate = self.descriptor_idx(mid)
            if candidate == string_idx:
                return mid
            if candidate < string_idx:
                lo = mid + 1
            else:
                hi = mid
        return None

    def find(self, descriptor: str) -> Optional[int]:
        """Return the type index for *descriptor* (e.g. ``Ljava/lang/Object;``)."""
        string_idx = self._strings.find(descriptor)
        if string_idx is None:
            return None
        return self.find_by_string(string_idx)


class ProtoPool(IdPool):
    """``proto_ids`` resolver."""

    __slots__ = ()
    name = "proto"
    stride = 12

    def get(self, index: int) -> ProtoIdItem:
        shorty_idx, return_type_idx, parameters_off = self._source.u32_array(
            self.entry_offset(index), 3
        )
        return ProtoIdItem(
            shorty_idx=shorty_idx,
            return_type_idx=return_type_idx,
            parameters_off=parameters_off or None,
        )

    def parameters(self, index: int) -> list[int]:
        """Parameter type indices of prototype *index*."""
        item = self.get(index)
        if item.parameters_off is None:
            return []
        return decode_type_list(self._source, item.parameters_off)


class FieldPool(IdPool):
    """``field_ids`` resolver."""

    __slots__ = ()
    name = "field"
    stride = 8

    def get(self, index: int) -> FieldIdItem:
        offset = self.entry_offset(index)
        class_idx, type_idx = self._source.u16_array(offset, 2)
        return FieldIdItem(
            class_idx=class_idx,
            type_idx=type_idx,
            name_idx=self._source.u32(offset + 4),
        )


class MethodPool(IdPool):
    """``method_ids`` resolver."""

    __slots__ = ()
    name = "method"
    stride = 8

    def get(self, index: int) -> MethodIdItem:
        offset = self.entry_offset(index)
        class_idx, proto_idx = self._source.u16_array(offset, 2)
        return MethodIdItem(
            class_idx=class_idx,
            proto_idx=proto_idx,
            name_idx=self._source.u32(offset + 4),
        )


class MethodHandlePool(IdPool):
    """``method_handles`` resolver; located through the map list, not the header."""

    __slots__ = ()
    name = "method handle"
    stride = 8

    def get(self, index: int) -> MethodHandleItem:
        offset = self.entry_offset(index)
        handle_type, _, target_idx, _ = self._source.u16_array(offset, 4)
        try:
            MethodHandleType(handle_type)
        except ValueError:
            raise MalformedItemError(
                f"unknown method handle type 0x{handle_type:02x}", offset=offset
            ) from None
        return MethodHandleItem(handle_type=handle_type, target_idx=target_idx)
