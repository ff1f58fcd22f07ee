"""
Dex Map List
=============

Decoder and consistency checks for the ``map_list`` at ``header.map_off``::

    u32 size
    map_item list[size]     u16 type, u16 unused, u32 size, u32 offset

The map list is the authoritative table of contents of a Dex file.
:func:`validate_map_list` cross-checks it against the header:

    - no two sections may overlap;
    - an item type may appear at most once;
    - the header, the map list itself and every non-empty id table named by
      the header must be described by an entry with the same offset and
      count.

Deviations that do not prevent decoding are returned as warning
:class:`~shared.models.Diagnostic` records: empty entries, unknown item
types and data items declared outside the header's data section.

References:
    - Google. (2024). DEX Format: map_list, map_item, type codes.
      https://source.android.com/docs/core/runtime/dex-format#map-list
"""

from __future__ import annotations

from typing import Iterator, Optional

from dexlens.core.errors import (
    DuplicateSectionError,
    MissingSectionError,
    OutOfBoundsError,
    OverlappingSectionError,
)
from dexlens.core.models import HeaderItem, ItemType, MapItem
from dexlens.core.source import ByteSource
from shared.models import Diagnostic

MAP_ITEM_SIZE: int = 12

# Byte size of one item for the fixed-stride sections.
FIXED_STRIDES: dict[ItemType, int] = {
    ItemType.HEADER_ITEM: 0x70,
    ItemType.STRING_ID_ITEM: 4,
    ItemType.TYPE_ID_ITEM: 4,
    ItemType.PROTO_ID_ITEM: 12,
    ItemType.FIELD_ID_ITEM: 8,
    ItemType.METHOD_ID_ITEM: 8,
    ItemType.CLASS_DEF_ITEM: 32,
    ItemType.CALL_SITE_ID_ITEM: 4,
    ItemType.METHOD_HANDLE_ITEM: 8,
}

# Header tables that must have a matching map entry: (type, size field, offset field).
_HEADER_TABLES: tuple[tuple[ItemType, str, str], ...] = (
    (ItemType.STRING_ID_ITEM, "string_ids_size", "string_ids_off"),
    (ItemType.TYPE_ID_ITEM, "type_ids_size", "type_ids_off"),
    (ItemType.PROTO_ID_ITEM, "proto_ids_size", "proto_ids_off"),
    (ItemType.FIELD_ID_ITEM, "field_ids_size", "field_ids_off"),
    (ItemType.METHOD_ID_ITEM, "method_ids_size", "method_ids_off"),
    (ItemType.CLASS_DEF_ITEM, "class_defs_size", "class_defs_off"),
)

# Item types stored inside the data section.
_DATA_TYPES: frozenset[ItemType] = frozenset(
    t for t in ItemType if t >= ItemType.MAP_LIST
)


class MapList:
    """Decoded ``map_list``; entries are kept in file order.

    *count* is the entry count stored in the file and fixes the on-disk
    size of the list; it defaults to the number of *items*.
    """

    __slots__ = ("offset", "items", "count")

    def __init__(
        self, offset: int, items: list[MapItem], count: Optional[int] = None
    ) -> None:
        self.offset = offset
        self.items = items
        self.count = len(items) if count is None else count

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[MapItem]:
        return iter(self.items)

    @property
    def byte_size(self) -> int:
        return 4 + MAP_ITEM_SIZE * self.count

    def get(self, item_type: ItemType) -> Optional[MapItem]:
        """First entry of *item_type*, or ``None``."""
        for item in self.items:
            if item.type_code == item_type:
                return item
        return None

    def extent(self, item: MapItem) -> Optional[int]:
        """Byte length of *item*'s section when its items have a fixed size."""
        if item.type_code == ItemType.MAP_LIST:
            return self.byte_size
        stride = FIXED_STRIDES.get(item.item_type)  # type: ignore[arg-type]
        return None if stride is None else stride * item.size


def parse_map_list(source: ByteSource, offset: int) -> MapList:
    """Decode the ``map_list`` at *offset*."""
    count = source.u32(offset)
    source.check(offset + 4, count * MAP_ITEM_SIZE)
    items: list[MapItem] = []
    for i in range(count):
        entry = offset + 4 + i * MAP_ITEM_SIZE
        type_code, _unused = source.u16_array(entry, 2)
        size, item_off = source.u32_array(entry + 4, 2)
        items.append(MapItem(type_code=type_code, size=size, offset=item_off))
    return MapList(offset, items, count)


def validate_map_list(
    map_list: MapList, header: HeaderItem, buffer_size: int
) -> list[Diagnostic]:
    """Cross-check *map_list* against *header*.

    Returns:
        Non-fatal warnings, in the order they were found.

    Raises:
        DuplicateSectionError: An item type is declared twice.
        OverlappingSectionError: Two sections share bytes.
        MissingSectionError: A header table, the header or the map list
            has no matching entry.
        OutOfBoundsError: A fixed-size section extends past the buffer.
    """
    warnings: list[Diagnostic] = []
    seen: dict[int, MapItem] = {}

    for item in map_list:
        if item.type_code in seen:
            raise DuplicateSectionError(
                f"map list declares {item.type_name} twice", offset=item.offset
            )
        seen[item.type_code] = item

        if item.item_type is None:
            warnings.append(Diagnostic.warning(
                "map.unknown_type",
                f"unknown map item type 0x{item.type_code:04x}",
                offset=item.offset,
                context={"type_code": item.type_code},
            ))
        if item.size == 0:
            warnings.append(Diagnostic.warning(
                "map.zero_count",
                f"{item.type_name} entry declares no items",
                offset=item.offset,
                context={"section": item.type_name},
            ))
        elif (
            item.item_type in _DATA_TYPES
            and header.data_size
            and not header.in_data_section(item.offset)
        ):
            warnings.append(Diagnostic.warning(
                "map.outside_data",
                f"{item.type_name} at 0x{item.offset:x} lies outside the data section",
                offset=item.offset,
                context={"section": item.type_name},
            ))

    _check_overlaps(map_list, buffer_size)
    _check_required(map_list, header)
    return warnings


def _check_overlaps(map_list: MapList, buffer_size: int) -> None:
    sections = sorted(
        (item for item in map_list if item.size), key=lambda item: item.offset
    )
    for current, following in zip(sections, sections[1:]):
        if current.offset == following.offset:
            raise OverlappingSectionError(
                f"{current.type_name} and {following.type_name} "
                f"both start at 0x{current.offset:x}",
                offset=current.offset,
            )
        extent = map_list.extent(current)
        if extent is not None and current.offset + extent > following.offset:
            raise OverlappingSectionError(
                f"{current.type_name} [0x{current.offset:x}, "
                f"0x{current.offset + extent:x}) overlaps {following.type_name} "
                f"at 0x{following.offset:x}",
                offset=following.offset,
            )
    if sections:
        last = sections[-1]
        extent = map_list.extent(last)
        if extent is not None and last.offset + extent > buffer_size:
            raise OutOfBoundsError(last.offset, extent, buffer_size)


def _check_required(map_list: MapList, header: HeaderItem) -> None:
    header_entry = map_list.get(ItemType.HEADER_ITEM)
    if header_entry is None or header_entry.offset != 0:
        raise MissingSectionError("map list does not describe the header at offset 0")

    map_entry = map_list.get(ItemType.MAP_LIST)
    if map_entry is None or map_entry.offset != map_list.offset:
        raise MissingSectionError(
            "map list does not describe itself", offset=map_list.offset
        )

    for item_type, size_name, off_name in _HEADER_TABLES:
        size = getattr(header, size_name)
        if not size:
            continue
        offset = getattr(header, off_name)
        entry = map_list.get(item_type)
        if entry is None:
            raise MissingSectionError(
                f"header declares {size} {item_type.name} item(s) "
                "but the map list has no entry",
                offset=offset,
            )
        if entry.offset != offset or entry.size != size:
            raise MissingSectionError(
                f"{item_type.name}: header says {size} at 0x{offset:x}, "
                f"map list says {entry.size} at 0x{entry.offset:x}",
                offset=offset,
            )
