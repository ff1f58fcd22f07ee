"""
DexLens Resolved Views
=======================

Navigable views over the raw records of a :class:`~dexlens.core.dex.DexFile`.

A view holds the file and the indices of the entry it represents and
resolves everything else (names, types, prototypes, class bodies) when an
attribute is read.  Cross references are always followed through the id
pools, never through live object links, so cyclic references between
classes need no special handling.

Class data is decoded at most once per :class:`DexClass` instance; all other
attributes are decoded on every access.
"""

from __future__ import annotations

from functools import cached_property
from typing import TYPE_CHECKING, Iterator, Optional

from dexlens.core.models import (
    AnnotationItem,
    AnnotationsDirectory,
    ClassAccessFlags,
    ClassDataItem,
    ClassDefItem,
    CodeItem,
    DexType,
    EncodedField,
    EncodedMethod,
    EncodedValue,
    FieldAccessFlags,
    FieldIdItem,
    Instruction,
    MethodAccessFlags,
    MethodIdItem,
    ProtoIdItem,
)
from dexlens.parsers.instructions import decode_instructions

if TYPE_CHECKING:
    from dexlens.core.dex import DexFile
    from dexlens.parsers.debug_info import DebugInfo


class Prototype:
    """A resolved ``proto_id_item``."""

    __slots__ = ("_dex", "index", "item")

    def __init__(self, dex: DexFile, index: int, item: ProtoIdItem) -> None:
        self._dex = dex
        self.index = index
        self.item = item

    @property
    def shorty(self) -> str:
        return self._dex.get_string(self.item.shorty_idx)

    @property
    def return_type(self) -> DexType:
        return self._dex.get_type(self.item.return_type_idx)

    @property
    def parameters(self) -> list[DexType]:
        return [
            self._dex.get_type(idx)
            for idx in self._dex.protos.parameters(self.index)
        ]

    @property
    def descriptor(self) -> str:
        """Method descriptor, e.g. ``(ILjava/lang/String;)V``."""
        params = "".join(t.descriptor for t in self.parameters)
        return f"({params}){self.return_type.descriptor}"

    def __str__(self) -> str:
        return self.descriptor

    def __repr__(self) -> str:
        return f"Prototype({self.index}, {self.descriptor!r})"


class DexField:
    """A resolved field, optionally carrying its class-data entry."""

    __slots__ = ("_dex", "index", "item", "encoded")

    def __init__(
        self,
        dex: DexFile,
        index: int,
        item: FieldIdItem,
        encoded: Optional[EncodedField] = None,
    ) -> None:
        self._dex = dex
        self.index = index
        self.item = item
        self.encoded = encoded

    @property
    def name(self) -> str:
        return self._dex.get_string(self.item.name_idx)

    @property
    def class_type(self) -> DexType:
        return self._dex.get_type(self.item.class_idx)

    @property
    def type(self) -> DexType:
        return self._dex.get_type(self.item.type_idx)

    @property
    def access_flags(self) -> FieldAccessFlags:
        """Access flags; empty for fields referenced but not defined here."""
        return self.encoded.flags if self.encoded else FieldAccessFlags(0)

    def __str__(self) -> str:
        return f"{self.class_type}->{self.name}:{self.type}"

    def __repr__(self) -> str:
        return f"DexField({self.index}, {str(self)!r})"


class DexMethod:
    """A resolved method, optionally carrying its class-data entry."""

    __slots__ = ("_dex", "index", "item", "encoded")

    def __init__(
        self,
        dex: DexFile,
        index: int,
        item: MethodIdItem,
        encoded: Optional[EncodedMethod] = None,
    ) -> None:
        self._dex = dex
        self.index = index
        self.item = item
        self.encoded = encoded

    @property
    def name(self) -> str:
        return self._dex.get_string(self.item.name_idx)

    @property
    def class_type(self) -> DexType:
        return self._dex.get_type(self.item.class_idx)

    @property
    def prototype(self) -> Prototype:
        return self._dex.get_proto(self.item.proto_idx)

    @property
    def access_flags(self) -> MethodAccessFlags:
        return self.encoded.flags if self.encoded else MethodAccessFlags(0)

    @property
    def code_off(self) -> Optional[int]:
        return self.encoded.code_off if self.encoded else None

    def code(self) -> Optional[CodeItem]:
        """Decode the method's code item; ``None`` for abstract and native methods."""
        if self.code_off is None:
            return None
        return self._dex.code_item(self.code_off)

    def debug_info(self) -> Optional[DebugInfo]:
        code = self.code()
        if code is None or code.debug_info_off is None:
            return None
        return self._dex.debug_info(code.debug_info_off)

    def instructions(self) -> Iterator[Instruction]:
        """Decode the method body into instruction records."""
        code = self.code()
        if code is None:
            return iter(())
        return decode_instructions(code.insns)

    def __str__(self) -> str:
        return f"{self.class_type}->{self.name}{self.prototype}"

    def __repr__(self) -> str:
        return f"DexMethod({self.index}, {str(self)!r})"


class DexClass:
    """A resolved class definition."""

    def __init__(self, dex: DexFile, definition: ClassDefItem) -> None:
        self._dex = dex
        self.definition = definition

    # ------------------------------------------------------------------ #
    #  Identity
    # ------------------------------------------------------------------ #

    @property
    def type(self) -> DexType:
        return self._dex.get_type(self.definition.class_idx)

    @property
    def descriptor(self) -> str:
        return self.type.descriptor

    @property
    def access_flags(self) -> ClassAccessFlags:
        return self.definition.flags

    @property
    def superclass(self) -> Optional[DexType]:
        """Superclass type, or ``None`` for ``java.lang.Object``."""
        idx = self.definition.superclass_idx
        return None if idx is None else self._dex.get_type(idx)

    @property
    def interfaces(self) -> list[DexType]:
        off = self.definition.interfaces_off
        return [] if off is None else self._dex.interfaces(off)

    @property
    def source_file(self) -> Optional[str]:
        idx = self.definition.source_file_idx
        return None if idx is None else self._dex.get_string(idx)

    # ------------------------------------------------------------------ #
    #  Class body
    # ------------------------------------------------------------------ #

    @cached_property
    def class_data(self) -> Optional[ClassDataItem]:
        """Decoded ``class_data_item``; ``None`` for classes without one.

        Raises:
            MalformedClassDataError: The class body is malformed.
        """
        off = self.definition.class_data_off
        return None if off is None else self._dex.class_data(off)

    def _fields(self, entries: list[EncodedField]) -> list[DexField]:
        return [self._dex.get_field(e.field_idx, e) for e in entries]

    def _methods(self, entries: list[EncodedMethod]) -> list[DexMethod]:
        return [self._dex.get_method(e.method_idx, e) for e in entries]

    @property
    def static_fields(self) -> list[DexField]:
        data = self.class_data
        return self._fields(data.static_fields) if data else []

    @property
    def instance_fields(self) -> list[DexField]:
        data = self.class_data
        return self._fields(data.instance_fields) if data else []

    @property
    def direct_methods(self) -> list[DexMethod]:
        data = self.class_data
        return self._methods(data.direct_methods) if data else []

    @property
    def virtual_methods(self) -> list[DexMethod]:
        data = self.class_data
        return self._methods(data.virtual_methods) if data else []

    @property
    def fields(self) -> list[DexField]:
        return self.static_fields + self.instance_fields

    @property
    def methods(self) -> list[DexMethod]:
        return self.direct_methods + self.virtual_methods

    def find_method(self, name: str) -> Optional[DexMethod]:
        """First method declared in this class named *name*."""
        for method in self.methods:
            if method.name == name:
                return method
        return None

    # ------------------------------------------------------------------ #
    #  Annotations and static values
    # ------------------------------------------------------------------ #

    def annotations(self) -> Optional[AnnotationsDirectory]:
        off = self.definition.annotations_off
        return None if off is None else self._dex.annotations_directory(off)

    def class_annotations(self) -> list[AnnotationItem]:
        directory = self.annotations()
        return directory.class_annotations if directory else []

    def static_values(self) -> list[EncodedValue]:
        """Initial values of the leading static fields, in declaration order.

        Fields beyond the end of the list are initialised to zero / ``null``.
        """
        off = self.definition.static_values_off
        return [] if off is None else self._dex.static_values(off)

    def __str__(self) -> str:
        return self.descriptor

    def __repr__(self) -> str:
        return f"DexClass({self.definition.index}, {self.descriptor!r})"
