"""
Dex File
=========

:class:`DexFile` is the entry point of the decoder.  Construction parses and
validates the header and sets up the id pools; nothing else is decoded
until a caller asks for it.

    dex = DexFile.from_path("classes.dex")
    cls = dex.find_class_by_name("Lcom/example/Main;")
    for method in cls.methods:
        code = method.code()

Failures are local: a malformed class body raises
:class:`~dexlens.core.errors.MalformedClassDataError` while *that* class is
being decoded and leaves every other class usable.  Only header validation
fails at construction.

The :class:`DexFile` does not copy the buffer.  Views and pools borrow it,
so the file must stay open while they are in use; :meth:`close` (or the
context-manager protocol) releases a memory mapping.

References:
    - Google. (2024). DEX Format. Android Open Source Project.
      https://source.android.com/docs/core/runtime/dex-format
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator, Optional, Union

from dexlens.core.errors import FileTooLargeError, MissingSectionError
from dexlens.core.models import (
    AnnotationsDirectory,
    ClassDataItem,
    CodeItem,
    DexType,
    EncodedField,
    EncodedMethod,
    EncodedValue,
    HeaderItem,
    ItemType,
    MethodHandleItem,
)
from dexlens.core.source import BufferLike, ByteSource
from dexlens.core.views import DexClass, DexField, DexMethod, Prototype
from dexlens.parsers.annotations import parse_annotations_directory
from dexlens.parsers.class_data import ClassDataParser
from dexlens.parsers.class_defs import ClassDefTable
from dexlens.parsers.code import parse_code_item
from dexlens.parsers.debug_info import DebugInfo
from dexlens.parsers.encoded_value import decode_encoded_array
from dexlens.parsers.header import parse_header
from dexlens.parsers.map_list import MapList, parse_map_list, validate_map_list
from dexlens.parsers.pools import (
    FieldPool,
    MethodHandlePool,
    MethodPool,
    ProtoPool,
    StringPool,
    TypePool,
    decode_type_list,
)
from shared.config import DecoderConfig
from shared.logger import LensLogger, null_logger
from shared.models import Diagnostic


class DexFile:
    """A decoded view over one Dex image.

    Args:
        data: The image, as a :class:`ByteSource` or any buffer accepted by
              it (``bytes``, ``bytearray``, ``memoryview``, ``mmap``).
        config: Decoder limits; defaults to :class:`DecoderConfig`.
        logger: Destination for decoder log records.

    Raises:
        DexError: The header is invalid (see :func:`parse_header`).
    """

    def __init__(
        self,
        data: Union[ByteSource, BufferLike],
        *,
        config: Optional[DecoderConfig] = None,
        logger: Optional[LensLogger] = None,
    ) -> None:
        self._source = data if isinstance(data, ByteSource) else ByteSource(data)
        self._config = config or DecoderConfig()
        self._log = logger or null_logger("dex")

        self._header = parse_header(self._source)
        h = self._header
        self.strings = StringPool(self._source, h.string_ids_size, h.string_ids_off)
        self.types = TypePool(
            self._source, h.type_ids_size, h.type_ids_off, self.strings
        )
        self.protos = ProtoPool(self._source, h.proto_ids_size, h.proto_ids_off)
        self.fields = FieldPool(self._source, h.field_ids_size, h.field_ids_off)
        self.methods = MethodPool(self._source, h.method_ids_size, h.method_ids_off)
        self.class_defs = ClassDefTable(
            self._source, h.class_defs_size, h.class_defs_off
        )
        self._class_data_parser = ClassDataParser(
            self._source,
            field_count=h.field_ids_size,
            method_count=h.method_ids_size,
            max_group_members=self._config.max_group_members,
        )
        self._map_list: Optional[MapList] = None

        self._log.debug(
            "Opened dex %s: %d strings, %d types, %d classes",
            h.version, h.string_ids_size, h.type_ids_size, h.class_defs_size,
        )

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        *,
        config: Optional[DecoderConfig] = None,
        logger: Optional[LensLogger] = None,
    ) -> DexFile:
        """Open the Dex file at *path*.

        Raises:
            FileTooLargeError: The file exceeds ``config.max_file_size``.
        """
        config = config or DecoderConfig()
        size = Path(path).stat().st_size
        if config.max_file_size and size > config.max_file_size:
            raise FileTooLargeError(
                f"{path}: {size} bytes exceeds the {config.max_file_size}-byte limit"
            )
        source = ByteSource.from_path(path, use_mmap=config.use_mmap)
        try:
            return cls(source, config=config, logger=logger)
        except Exception:
            source.close()
            raise

    # ------------------------------------------------------------------ #
    #  Lifetime
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """Release the underlying buffer; views must not be used afterwards."""
        self._source.close()

    def __enter__(self) -> DexFile:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    #  Structure
    # ------------------------------------------------------------------ #

    @property
    def source(self) -> ByteSource:
        return self._source

    @property
    def header(self) -> HeaderItem:
        return self._header

    @property
    def version(self) -> str:
        return self._header.version

    @property
    def map_list(self) -> MapList:
        """The decoded map list.

        Raises:
            MissingSectionError: The header has no map offset.
        """
        if self._map_list is None:
            if not self._header.map_off:
                raise MissingSectionError("header has no map_list offset")
            self._map_list = parse_map_list(self._source, self._header.map_off)
        return self._map_list

    def validate_map(self) -> list[Diagnostic]:
        """Cross-check the map list against the header.

        Returns:
            Non-fatal warnings; each is also logged.

        Raises:
            OverlappingSectionError, DuplicateSectionError, MissingSectionError:
                The map list is inconsistent.
        """
        warnings = validate_map_list(self.map_list, self._header, self._source.size)
        for warning in warnings:
            self._log.warning(
                "map list: %s",
                warning.message,
                code=warning.code,
                offset=warning.offset,
            )
        return warnings

    @property
    def method_handles(self) -> MethodHandlePool:
        """Method handle pool, located through the map list."""
        if not self._header.map_off:
            return MethodHandlePool(self._source, 0, 0)
        entry = self.map_list.get(ItemType.METHOD_HANDLE_ITEM)
        if entry is None:
            return MethodHandlePool(self._source, 0, 0)
        self._source.check(entry.offset, entry.size * MethodHandlePool.stride)
        return MethodHandlePool(self._source, entry.size, entry.offset)

    # ------------------------------------------------------------------ #
    #  Pool lookups
    # ------------------------------------------------------------------ #

    def get_string(self, index: int) -> str:
        return self.strings.get(index)

    def get_type(self, index: int) -> DexType:
        return self.types.get(index)

    def get_proto(self, index: int) -> Prototype:
        return Prototype(self, index, self.protos.get(index))

    def get_field(
        self, index: int, encoded: Optional[EncodedField] = None
    ) -> DexField:
        return DexField(self, index, self.fields.get(index), encoded)

    def get_method(
        self, index: int, encoded: Optional[EncodedMethod] = None
    ) -> DexMethod:
        return DexMethod(self, index, self.methods.get(index), encoded)

    def get_method_handle(self, index: int) -> MethodHandleItem:
        return self.method_handles.get(index)

    # ------------------------------------------------------------------ #
    #  Classes
    # ------------------------------------------------------------------ #

    def class_at(self, index: int) -> DexClass:
        """Class definition number *index* in the ``class_defs`` table."""
        return DexClass(self, self.class_defs.get(index))

    def classes(self) -> Iterator[DexClass]:
        """Lazily iterate over every class definition in file order."""
        for definition in self.class_defs:
            yield DexClass(self, definition)

    def get_class(self, type_idx: int) -> Optional[DexClass]:
        """The class defined in this file for type *type_idx*, if any."""
        index = self.class_defs.index_of_type(type_idx)
        return None if index is None else self.class_at(index)

    def find_class_by_name(self, descriptor: str) -> Optional[DexClass]:
        """Find a class by type descriptor, e.g. ``Lcom/example/Main;``."""
        type_idx = self.types.find(descriptor)
        if type_idx is None:
            return None
        return self.get_class(type_idx)

    # ------------------------------------------------------------------ #
    #  Data items
    # ------------------------------------------------------------------ #

    def class_data(
        self, offset: int, region_size: Optional[int] = None
    ) -> ClassDataItem:
        """Decode the ``class_data_item`` at *offset*."""
        self._log.debug("Decoding class data at 0x%x", offset)
        return self._class_data_parser.parse(offset, region_size)

    def code_item(self, offset: int) -> CodeItem:
        self._log.debug("Decoding code item at 0x%x", offset)
        return parse_code_item(self._source, offset)

    def debug_info(self, offset: int) -> DebugInfo:
        return DebugInfo.parse(self._source, offset)

    def interfaces(self, offset: int) -> list[DexType]:
        """Resolve the ``type_list`` at *offset* into types."""
        return [self.get_type(idx) for idx in decode_type_list(self._source, offset)]

    def annotations_directory(self, offset: int) -> AnnotationsDirectory:
        return parse_annotations_directory(self._source, offset)

    def static_values(self, offset: int) -> list[EncodedValue]:
        """Decode the ``encoded_array_item`` at *offset*."""
        values, _ = decode_encoded_array(self._source, offset)
        return values

    def __repr__(self) -> str:
        return (
            f"DexFile(version={self.version!r}, size={self._source.size}, "
            f"classes={len(self.class_defs)})"
        )
