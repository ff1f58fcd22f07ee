"""
Dex Class Definitions
======================

The ``class_defs`` table: 32-byte ``class_def_item`` entries.

    u32 class_idx          type index of this class
    u32 access_flags
    u32 superclass_idx     type index, or NO_INDEX for java.lang.Object
    u32 interfaces_off     type_list offset, 0 if none
    u32 source_file_idx    string index, or NO_INDEX if unknown
    u32 annotations_off    annotations_directory_item, 0 if none
    u32 class_data_off     class_data_item, 0 if none
    u32 static_values_off  encoded_array_item, 0 if none

The sentinel values are normalised to ``None`` here, so consumers never
attempt to resolve ``NO_INDEX`` against a pool.
"""

from __future__ import annotations

from typing import Iterator, Optional

from dexlens.core.models import ClassDefItem
from dexlens.parsers.pools import IdPool
from dexlens.parsers.primitives import NO_INDEX


class ClassDefTable(IdPool):
    """Resolver for the ``class_defs`` table."""

    __slots__ = ()
    name = "class_def"
    stride = 32

    def get(self, index: int) -> ClassDefItem:
        (
            class_idx, access_flags, superclass_idx, interfaces_off,
            source_file_idx, annotations_off, class_data_off, static_values_off,
        ) = self._source.u32_array(self.entry_offset(index), 8)
        return ClassDefItem(
            index=index,
            class_idx=class_idx,
            access_flags=access_flags,
            superclass_idx=_optional_index(superclass_idx),
            interfaces_off=interfaces_off or None,
            source_file_idx=_optional_index(source_file_idx),
            annotations_off=annotations_off or None,
            class_data_off=class_data_off or None,
            static_values_off=static_values_off or None,
        )

    def __iter__(self) -> Iterator[ClassDefItem]:
        for index in range(self.count):
            yield self.get(index)

    def index_of_type(self, type_idx: int) -> Optional[int]:
        """Index of the class definition whose ``class_idx`` is *type_idx*."""
        for index in range(self.count):
            if self._source.u32(self.offset + index * self.stride) == type_idx:
                return index
        return None


def _optional_index(value: int) -> Optional[int]:
    return None if value == NO_INDEX else value
