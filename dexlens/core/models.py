"""
DexLens Data Models
====================

Pydantic models for the records decoded from a Dex image.  Each model mirrors
one on-disk structure: cross references are kept as numeric indices into the
id pools (or absolute offsets into the data section) and are resolved only
when a caller asks for them.  Optional references that the format encodes as
``0`` or ``NO_INDEX`` are exposed as ``None``.

All records are frozen; decoding the same offset twice yields equal values.

References:
    - Google. (2024). DEX Format. Android Open Source Project.
      https://source.android.com/docs/core/runtime/dex-format
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.models import Diagnostic, Severity, severity_counts


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ItemType(enum.IntEnum):
    """Map-list item type codes."""
    HEADER_ITEM = 0x0000
    STRING_ID_ITEM = 0x0001
    TYPE_ID_ITEM = 0x0002
    PROTO_ID_ITEM = 0x0003
    FIELD_ID_ITEM = 0x0004
    METHOD_ID_ITEM = 0x0005
    CLASS_DEF_ITEM = 0x0006
    CALL_SITE_ID_ITEM = 0x0007
    METHOD_HANDLE_ITEM = 0x0008
    MAP_LIST = 0x1000
    TYPE_LIST = 0x1001
    ANNOTATION_SET_REF_LIST = 0x1002
    ANNOTATION_SET_ITEM = 0x1003
    CLASS_DATA_ITEM = 0x2000
    CODE_ITEM = 0x2001
    STRING_DATA_ITEM = 0x2002
    DEBUG_INFO_ITEM = 0x2003
    ANNOTATION_ITEM = 0x2004
    ENCODED_ARRAY_ITEM = 0x2005
    ANNOTATIONS_DIRECTORY_ITEM = 0x2006
    HIDDENAPI_CLASS_DATA_ITEM = 0xF000


class ClassAccessFlags(enum.IntFlag):
    """Access flags valid on a ``class_def_item``."""
    PUBLIC = 0x0001
    PRIVATE = 0x0002
    PROTECTED = 0x0004
    STATIC = 0x0008
    FINAL = 0x0010
    INTERFACE = 0x0200
    ABSTRACT = 0x0400
    SYNTHETIC = 0x1000
    ANNOTATION = 0x2000
    ENUM = 0x4000


class FieldAccessFlags(enum.IntFlag):
    """Access flags valid on an ``encoded_field``."""
    PUBLIC = 0x0001
    PRIVATE = 0x0002
    PROTECTED = 0x0004
    STATIC = 0x0008
    FINAL = 0x0010
    VOLATILE = 0x0040
    TRANSIENT = 0x0080
    SYNTHETIC = 0x1000
    ENUM = 0x4000


class MethodAccessFlags(enum.IntFlag):
    """Access flags valid on an ``encoded_method``."""
    PUBLIC = 0x0001
    PRIVATE = 0x0002
    PROTECTED = 0x0004
    STATIC = 0x0008
    FINAL = 0x0010
    SYNCHRONIZED = 0x0020
    BRIDGE = 0x0040
    VARARGS = 0x0080
    NATIVE = 0x0100
    ABSTRACT = 0x0400
    STRICT = 0x0800
    SYNTHETIC = 0x1000
    CONSTRUCTOR = 0x10000
    DECLARED_SYNCHRONIZED = 0x20000


class MethodHandleType(enum.IntEnum):
    """``method_handle_item.method_handle_type`` codes."""
    STATIC_PUT = 0x00
    STATIC_GET = 0x01
    INSTANCE_PUT = 0x02
    INSTANCE_GET = 0x03
    INVOKE_STATIC = 0x04
    INVOKE_INSTANCE = 0x05
    INVOKE_CONSTRUCTOR = 0x06
    INVOKE_DIRECT = 0x07
    INVOKE_INTERFACE = 0x08

    @property
    def is_field_accessor(self) -> bool:
        """``True`` when the handle's id refers to the field pool."""
        return self <= MethodHandleType.INSTANCE_GET


def flag_names(flags: enum.IntFlag) -> list[str]:
    """Lower-case names of the members set in *flags*, in declaration order."""
    return [
        member.name.lower()
        for member in type(flags)
        if member.name and flags & member
    ]


class _Record(BaseModel):
    """Base for all decoded records: immutable and compared by value."""

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Header and map list
# ---------------------------------------------------------------------------

class HeaderItem(_Record):
    """The fixed 112-byte ``header_item``.

    Attributes:
        magic: Raw 8-byte magic (``dex\\n0NN\\0``).
        version: Three-digit format version taken from the magic.
        checksum: Adler-32 checksum as stored (not recomputed).
        signature: SHA-1 signature as stored (not verified).
    """
    magic: bytes
    version: str
    checksum: int
    signature: bytes
    file_size: int
    header_size: int
    endian_tag: int
    link_size: int
    link_off: int
    map_off: int
    string_ids_size: int
    string_ids_off: int
    type_ids_size: int
    type_ids_off: int
    proto_ids_size: int
    proto_ids_off: int
    field_ids_size: int
    field_ids_off: int
    method_ids_size: int
    method_ids_off: int
    class_defs_size: int
    class_defs_off: int
    data_size: int
    data_off: int

    def in_data_section(self, offset: int) -> bool:
        """Return ``True`` when *offset* falls inside the declared data section."""
        return self.data_off <= offset < self.data_off + self.data_size


class MapItem(_Record):
    """One ``map_item``: a section of *size* items of one type at *offset*."""
    type_code: int
    size: int
    offset: int

    @property
    def item_type(self) -> Optional[ItemType]:
        """Known :class:`ItemType`, or ``None`` for an unrecognised code."""
        try:
            return ItemType(self.type_code)
        except ValueError:
            return None

    @property
    def type_name(self) -> str:
        item_type = self.item_type
        return item_type.name if item_type is not None else f"UNKNOWN_0x{self.type_code:04x}"


# ---------------------------------------------------------------------------
# Id pool records
# ---------------------------------------------------------------------------

class StringData(_Record):
    """A decoded ``string_data_item``.

    Attributes:
        offset: Absolute offset of the item (its ULEB128 length prefix).
        utf16_size: Declared length in UTF-16 code units.
        value: Decoded text.
        size: Bytes consumed, including the length prefix.
    """
    offset: int
    utf16_size: int
    value: str
    size: int

    @property
    def code_unit_length(self) -> int:
        """Length of :attr:`value` in UTF-16 code units."""
        from dexlens.parsers.primitives import utf16_length
        return utf16_length(self.value)


class DexType(_Record):
    """A resolved ``type_id_item``: index plus descriptor text."""
    index: int
    descriptor_idx: int
    descriptor: str

    def __str__(self) -> str:
        return self.descriptor


class ProtoIdItem(_Record):
    """``proto_id_item``: shorty, return type, optional parameter type list."""
    shorty_idx: int
    return_type_idx: int
    parameters_off: Optional[int] = None


class FieldIdItem(_Record):
    """``field_id_item``: defining class, field type, name."""
    class_idx: int
    type_idx: int
    name_idx: int


class MethodIdItem(_Record):
    """``method_id_item``: defining class, prototype, name."""
    class_idx: int
    proto_idx: int
    name_idx: int


class MethodHandleItem(_Record):
    """``method_handle_item``; *target_idx* indexes fields or methods."""
    handle_type: int
    target_idx: int

    @property
    def kind(self) -> MethodHandleType:
        return MethodHandleType(self.handle_type)


# ---------------------------------------------------------------------------
# Class definitions and class data
# ---------------------------------------------------------------------------

class ClassDefItem(_Record):
    """A ``class_def_item`` with absent references normalised to ``None``."""
    index: int
    class_idx: int
    access_flags: int
    superclass_idx: Optional[int] = None
    interfaces_off: Optional[int] = None
    source_file_idx: Optional[int] = None
    annotations_off: Optional[int] = None
    class_data_off: Optional[int] = None
    static_values_off: Optional[int] = None

    @property
    def flags(self) -> ClassAccessFlags:
        return ClassAccessFlags(self.access_flags)


class EncodedField(_Record):
    """An ``encoded_field`` with its delta already resolved to an absolute index."""
    field_idx: int
    access_flags: int

    @property
    def flags(self) -> FieldAccessFlags:
        return FieldAccessFlags(self.access_flags)


class EncodedMethod(_Record):
    """An ``encoded_method``; *code_off* is ``None`` for abstract/native methods."""
    method_idx: int
    access_flags: int
    code_off: Optional[int] = None

    @property
    def flags(self) -> MethodAccessFlags:
        return MethodAccessFlags(self.access_flags)


class ClassDataItem(_Record):
    """A decoded ``class_data_item``.

    Attributes:
        offset: Absolute offset of the item.
        size: Number of bytes the item occupies.
    """
    offset: int
    size: int
    static_fields: list[EncodedField] = Field(default_factory=list)
    instance_fields: list[EncodedField] = Field(default_factory=list)
    direct_methods: list[EncodedMethod] = Field(default_factory=list)
    virtual_methods: list[EncodedMethod] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Code items
# ---------------------------------------------------------------------------

class TryItem(_Record):
    """``try_item``: a covered address range and its handler offset.

    *handler_off* is relative to the start of the encoded catch handler list.
    """
    start_addr: int
    insn_count: int
    handler_off: int


class TypeAddrPair(_Record):
    """A typed catch clause: exception type index and handler address."""
    type_idx: int
    addr: int


class EncodedCatchHandler(_Record):
    """An ``encoded_catch_handler``.

    Attributes:
        offset: Offset relative to the start of the handler list.
        handlers: Typed catch clauses in declaration order.
        catch_all_addr: Address of the catch-all handler, if present.
    """
    offset: int
    handlers: list[TypeAddrPair] = Field(default_factory=list)
    catch_all_addr: Optional[int] = None


class CodeItem(_Record):
    """A decoded ``code_item``.

    The instruction stream is exposed as raw 16-bit code units; see
    :mod:`dexlens.parsers.instructions` for structured decoding.
    """
    offset: int
    registers_size: int
    ins_size: int
    outs_size: int
    tries_size: int
    debug_info_off: Optional[int] = None
    insns_size: int
    insns: tuple[int, ...] = ()
    tries: list[TryItem] = Field(default_factory=list)
    handlers: list[EncodedCatchHandler] = Field(default_factory=list)
    size: int = 0

    def handler_for(self, try_item: TryItem) -> EncodedCatchHandler:
        """Return the catch handler referenced by *try_item*."""
        for handler in self.handlers:
            if handler.offset == try_item.handler_off:
                return handler
        raise KeyError(try_item.handler_off)


# ---------------------------------------------------------------------------
# Debug info
# ---------------------------------------------------------------------------

class DebugOpcode(enum.IntEnum):
    """Debug-info state machine opcodes; ``0x0a``-``0xff`` are special."""
    END_SEQUENCE = 0x00
    ADVANCE_PC = 0x01
    ADVANCE_LINE = 0x02
    START_LOCAL = 0x03
    START_LOCAL_EXTENDED = 0x04
    END_LOCAL = 0x05
    RESTART_LOCAL = 0x06
    SET_PROLOGUE_END = 0x07
    SET_EPILOGUE_BEGIN = 0x08
    SET_FILE = 0x09
    SPECIAL = 0x0A


class DebugInstruction(_Record):
    """One decoded debug-program instruction.

    Only the operands relevant to *opcode* are set.  For special opcodes
    *raw_opcode* holds the actual byte and *line_diff* / *addr_diff* the
    decoded advances.
    """
    offset: int
    opcode: DebugOpcode
    raw_opcode: int
    addr_diff: Optional[int] = None
    line_diff: Optional[int] = None
    register_num: Optional[int] = None
    name_idx: Optional[int] = None
    type_idx: Optional[int] = None
    sig_idx: Optional[int] = None


class DebugEvent(_Record):
    """State-machine output: the ``(address, line)`` registers after *instruction*."""
    address: int
    line: int
    instruction: DebugInstruction


class DebugInfoItem(_Record):
    """``debug_info_item`` header; the program starts at *program_off*."""
    offset: int
    line_start: int
    parameter_names: list[Optional[int]] = Field(default_factory=list)
    program_off: int


# ---------------------------------------------------------------------------
# Encoded values and annotations
# ---------------------------------------------------------------------------

class ValueType(enum.IntEnum):
    """``encoded_value`` type tags."""
    BYTE = 0x00
    SHORT = 0x02
    CHAR = 0x03
    INT = 0x04
    LONG = 0x06
    FLOAT = 0x10
    DOUBLE = 0x11
    METHOD_TYPE = 0x15
    METHOD_HANDLE = 0x16
    STRING = 0x17
    TYPE = 0x18
    FIELD = 0x19
    METHOD = 0x1A
    ENUM = 0x1B
    ARRAY = 0x1C
    ANNOTATION = 0x1D
    NULL = 0x1E
    BOOLEAN = 0x1F


class EncodedValue(_Record):
    """A decoded ``encoded_value``.

    *value* holds a Python ``int``/``float``/``bool``/``None`` for scalar
    types, a pool index for reference types (string, type, field, method,
    enum, method type, method handle), a list of :class:`EncodedValue` for
    arrays and an :class:`EncodedAnnotation` for nested annotations.
    """
    value_type: ValueType
    value: Any = None


class AnnotationElement(_Record):
    """``name = value`` pair of an encoded annotation."""
    name_idx: int
    value: EncodedValue


class EncodedAnnotation(_Record):
    """``encoded_annotation``: annotation type plus its elements."""
    type_idx: int
    elements: list[AnnotationElement] = Field(default_factory=list)


class Visibility(enum.IntEnum):
    """``annotation_item`` visibility."""
    BUILD = 0x00
    RUNTIME = 0x01
    SYSTEM = 0x02


class AnnotationItem(_Record):
    """An ``annotation_item``."""
    offset: int
    visibility: Visibility
    annotation: EncodedAnnotation


class MemberAnnotations(_Record):
    """Field or method annotations: member index and its annotation set."""
    member_idx: int
    annotations: list[AnnotationItem] = Field(default_factory=list)


class ParameterAnnotations(_Record):
    """Per-parameter annotation sets of one method; an absent set is empty."""
    method_idx: int
    parameters: list[list[AnnotationItem]] = Field(default_factory=list)


class AnnotationsDirectory(_Record):
    """A decoded ``annotations_directory_item``."""
    offset: int
    class_annotations: list[AnnotationItem] = Field(default_factory=list)
    field_annotations: list[MemberAnnotations] = Field(default_factory=list)
    method_annotations: list[MemberAnnotations] = Field(default_factory=list)
    parameter_annotations: list[ParameterAnnotations] = Field(default_factory=list)

    def for_field(self, field_idx: int) -> list[AnnotationItem]:
        for entry in self.field_annotations:
            if entry.member_idx == field_idx:
                return entry.annotations
        return []

    def for_method(self, method_idx: int) -> list[AnnotationItem]:
        for entry in self.method_annotations:
            if entry.member_idx == method_idx:
                return entry.annotations
        return []

    def for_parameters(self, method_idx: int) -> list[list[AnnotationItem]]:
        for entry in self.parameter_annotations:
            if entry.method_idx == method_idx:
                return entry.parameters
        return []


# ---------------------------------------------------------------------------
# Instructions
# ---------------------------------------------------------------------------

class Instruction(_Record):
    """A structurally decoded Dalvik instruction.

    Attributes:
        address: Position in 16-bit code units from the start of the method.
        opcode: Opcode byte (``0x00`` for payload pseudo-instructions).
        mnemonic: Dalvik mnemonic, e.g. ``invoke-virtual``.
        format: Instruction format id, e.g. ``35c``.
        length: Size in code units.
        operands: Format fields by their letter (``A``, ``B``, ``C`` ...),
                  plus ``payload`` for switch / fill-array-data payloads.
    """
    address: int
    opcode: int
    mnemonic: str
    format: str
    length: int
    operands: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Inspection report
# ---------------------------------------------------------------------------

class HeaderSummary(BaseModel):
    """JSON-friendly digest of :class:`HeaderItem`."""
    version: str
    checksum: str
    signature: str
    file_size: int
    string_ids: int
    type_ids: int
    proto_ids: int
    field_ids: int
    method_ids: int
    class_defs: int
    data_size: int
    data_off: int

    @classmethod
    def from_header(cls, header: HeaderItem) -> HeaderSummary:
        return cls(
            version=header.version,
            checksum=f"0x{header.checksum:08x}",
            signature=header.signature.hex(),
            file_size=header.file_size,
            string_ids=header.string_ids_size,
            type_ids=header.type_ids_size,
            proto_ids=header.proto_ids_size,
            field_ids=header.field_ids_size,
            method_ids=header.method_ids_size,
            class_defs=header.class_defs_size,
            data_size=header.data_size,
            data_off=header.data_off,
        )


class SectionSummary(BaseModel):
    """One map-list entry."""
    type_name: str
    type_code: int
    size: int
    offset: int


class FieldSummary(BaseModel):
    name: str
    type: str
    access_flags: list[str] = Field(default_factory=list)


class MethodSummary(BaseModel):
    """A method with its code-item metrics and optional disassembly."""
    name: str
    descriptor: str
    access_flags: list[str] = Field(default_factory=list)
    code_off: Optional[int] = None
    registers_size: Optional[int] = None
    insns_size: Optional[int] = None
    tries_size: Optional[int] = None
    instructions: list[Instruction] = Field(default_factory=list)


class ClassSummary(BaseModel):
    """A fully decoded class definition."""
    index: int
    descriptor: str
    access_flags: list[str] = Field(default_factory=list)
    superclass: Optional[str] = None
    interfaces: list[str] = Field(default_factory=list)
    source_file: Optional[str] = None
    static_fields: list[FieldSummary] = Field(default_factory=list)
    instance_fields: list[FieldSummary] = Field(default_factory=list)
    direct_methods: list[MethodSummary] = Field(default_factory=list)
    virtual_methods: list[MethodSummary] = Field(default_factory=list)

    @property
    def method_count(self) -> int:
        return len(self.direct_methods) + len(self.virtual_methods)

    @property
    def field_count(self) -> int:
        return len(self.static_fields) + len(self.instance_fields)


class InspectionReport(BaseModel):
    """Result of inspecting one Dex file.

    Attributes:
        target:      Path (or label) of the inspected file.
        header:      Header digest.
        sections:    Map-list entries, in file order.
        classes:     Classes that decoded successfully.
        strings:     String pool contents, when requested.
        diagnostics: Every non-fatal problem encountered.
    """
    target: str = Field(..., min_length=1)
    start_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    end_time: Optional[datetime] = None
    header: Optional[HeaderSummary] = None
    sections: list[SectionSummary] = Field(default_factory=list)
    classes: list[ClassSummary] = Field(default_factory=list)
    strings: list[str] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    summary: str = ""

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.severity == Severity.WARNING)

    def finalize(self) -> InspectionReport:
        """Stamp *end_time* and build the summary line; returns ``self``."""
        self.end_time = datetime.now(timezone.utc)
        counts = severity_counts(self.diagnostics)
        parts = [f"{name.lower()}s: {n}" for name, n in counts.items() if n]
        self.summary = (
            f"{len(self.classes)} class(es) decoded "
            f"({', '.join(parts) if parts else 'no diagnostics'})"
        )
        return self
