"""
Dex Class Body Parser
======================

Decodes a ``class_data_item``: four ULEB128 counts followed by the
static-field, instance-field, direct-method and virtual-method groups.

Member indices are difference-encoded.  Inside each group the absolute index
starts at 0 and every entry's ULEB128 delta is added before use, so indices
are strictly increasing; a delta of zero is only legal on the first entry.

    encoded_field:   uleb128 field_idx_diff, uleb128 access_flags
    encoded_method:  uleb128 method_idx_diff, uleb128 access_flags,
                     uleb128 code_off (0 = abstract or native)

Any failure is reported as :class:`MalformedClassDataError` naming the group
and entry position.  It aborts only the class being decoded.

References:
    - Google. (2024). DEX Format: class_data_item.
      https://source.android.com/docs/core/runtime/dex-format#class-data-item
"""

from __future__ import annotations

from typing import Optional

from dexlens.core.errors import (
    DexError,
    MalformedClassDataError,
)
from dexlens.core.models import ClassDataItem, EncodedField, EncodedMethod
from dexlens.core.source import ByteSource
from dexlens.parsers.primitives import decode_uleb128

GROUPS: tuple[str, ...] = (
    "static_fields",
    "instance_fields",
    "direct_methods",
    "virtual_methods",
)

# Smallest possible encodings: a field is two 1-byte ULEB128s, a method three.
_MIN_FIELD_BYTES: int = 2
_MIN_METHOD_BYTES: int = 3


class ClassDataParser:
    """Decoder for ``class_data_item`` blocks of one Dex image.

    Args:
        source: The image.
        field_count: Size of the ``field_ids`` pool.
        method_count: Size of the ``method_ids`` pool.
        max_group_members: Optional cap on any single group count
            (``0`` disables the cap).
    """

    __slots__ = ("_source", "_field_count", "_method_count", "_max_group_members")

    def __init__(
        self,
        source: ByteSource,
        field_count: int,
        method_count: int,
        max_group_members: int = 0,
    ) -> None:
        self._source = source
        self._field_count = field_count
        self._method_count = method_count
        self._max_group_members = max_group_members

    # ------------------------------------------------------------------ #
    #  Public interface
    # ------------------------------------------------------------------ #

    def parse(self, offset: int, region_size: Optional[int] = None) -> ClassDataItem:
        """Decode the ``class_data_item`` at *offset*.

        Args:
            offset: Absolute offset of the item.
            region_size: Declared byte length of the item, when known.  If
                given, decoding must consume exactly this many bytes.

        Raises:
            MalformedClassDataError: On any malformed count, index delta,
                code offset or length mismatch.
        """
        pos = offset
        counts: list[int] = []
        for group in GROUPS:
            value, pos = self._uleb(pos, f"{group} count", None, None)
            counts.append(value)
        self._check_counts(counts, pos)

        groups: dict[str, list] = {}
        for group, count in zip(GROUPS, counts):
            if group.endswith("fields"):
                groups[group], pos = self._fields(group, count, pos)
            else:
                groups[group], pos = self._methods(group, count, pos)

        size = pos - offset
        if region_size is not None and size != region_size:
            raise MalformedClassDataError(
                f"decoded {size} byte(s), declared region is {region_size}",
                offset=offset,
            )
        return ClassDataItem(offset=offset, size=size, **groups)

    # ------------------------------------------------------------------ #
    #  Internals
    # ------------------------------------------------------------------ #

    def _uleb(
        self, pos: int, what: str, group: Optional[str], position: Optional[int]
    ) -> tuple[int, int]:
        try:
            value, size = decode_uleb128(self._source, pos)
        except DexError as exc:
            raise MalformedClassDataError(
                f"bad {what}: {exc}", group=group, position=position, offset=pos
            ) from exc
        return value, pos + size

    def _check_counts(self, counts: list[int], pos: int) -> None:
        fields = counts[0] + counts[1]
        methods = counts[2] + counts[3]
        for group, count in zip(GROUPS, counts):
            if self._max_group_members and count > self._max_group_members:
                raise MalformedClassDataError(
                    f"count {count} exceeds limit {self._max_group_members}",
                    group=group,
                )
        if fields > self._field_count:
            raise MalformedClassDataError(
                f"{fields} field(s) declared, field pool holds {self._field_count}"
            )
        if methods > self._method_count:
            raise MalformedClassDataError(
                f"{methods} method(s) declared, method pool holds {self._method_count}"
            )
        needed = fields * _MIN_FIELD_BYTES + methods * _MIN_METHOD_BYTES
        if needed > self._source.size - pos:
            raise MalformedClassDataError(
                f"counts need at least {needed} byte(s), "
                f"{self._source.size - pos} remain",
                offset=pos,
            )

    def _next_index(
        self, group: str, position: int, previous: int, delta: int, limit: int, at: int
    ) -> int:
        if position and delta == 0:
            raise MalformedClassDataError(
                "zero index delta after first entry",
                group=group, position=position, offset=at,
            )
        index = previous + delta
        if index >= limit:
            raise MalformedClassDataError(
                f"index {index} outside pool of {limit}",
                group=group, position=position, offset=at,
            )
        return index

    def _fields(
        self, group: str, count: int, pos: int
    ) -> tuple[list[EncodedField], int]:
        entries: list[EncodedField] = []
        index = 0
        for position in range(count):
            start = pos
            delta, pos = self._uleb(pos, "field index delta", group, position)
            index = self._next_index(
                group, position, index, delta, self._field_count, start
            )
            flags, pos = self._uleb(pos, "access flags", group, position)
            entries.append(EncodedField(field_idx=index, access_flags=flags))
        return entries, pos

    def _methods(
        self, group: str, count: int, pos: int
    ) -> tuple[list[EncodedMethod], int]:
        entries: list[EncodedMethod] = []
        index = 0
        for position in range(count):
            start = pos
            delta, pos = self._uleb(pos, "method index delta", group, position)
            index = self._next_index(
                group, position, index, delta, self._method_count, start
            )
            flags, pos = self._uleb(pos, "access flags", group, position)
            code_off, pos = self._uleb(pos, "code offset", group, position)
            if code_off and not self._source.contains(code_off, 16):
                raise MalformedClassDataError(
                    f"code offset 0x{code_off:x} outside buffer",
                    group=group, position=position, offset=start,
                )
            entries.append(
                EncodedMethod(
                    method_idx=index, access_flags=flags, code_off=code_off or None
                )
            )
        return entries, pos
