"""
Dex Debug Info
===============

Decoder and interpreter for ``debug_info_item``.

The item starts with ``line_start`` (ULEB128), ``parameters_size``
(ULEB128) and one ULEB128p1 parameter-name string index per parameter.  A
byte-coded program follows which drives a small state machine over two
registers, ``address`` (in code units) and ``line``:

    0x00  END_SEQUENCE
    0x01  ADVANCE_PC            uleb128 addr_diff
    0x02  ADVANCE_LINE          sleb128 line_diff
    0x03  START_LOCAL           uleb128 reg, uleb128p1 name, uleb128p1 type
    0x04  START_LOCAL_EXTENDED  ... plus uleb128p1 sig
    0x05  END_LOCAL             uleb128 reg
    0x06  RESTART_LOCAL         uleb128 reg
    0x07  SET_PROLOGUE_END
    0x08  SET_EPILOGUE_BEGIN
    0x09  SET_FILE              uleb128p1 name
    0x0a..0xff  special: line += -4 + (op - 0x0a) % 15,
                         address += (op - 0x0a) // 15,
                         then emit a position entry

Both :meth:`DebugInfo.instructions` and :meth:`DebugInfo.events` are lazy
generators.  A program can only be replayed from its start, since state
accumulates along the way.

References:
    - Google. (2024). DEX Format: debug_info_item.
      https://source.android.com/docs/core/runtime/dex-format#debug-info-item
"""

from __future__ import annotations

from typing import Iterator, Optional

from dexlens.core.errors import (
    MalformedItemError,
    OutOfBoundsError,
    UnterminatedDebugProgramError,
)
from dexlens.core.models import (
    DebugEvent,
    DebugInfoItem,
    DebugInstruction,
    DebugOpcode,
)
from dexlens.core.source import ByteSource
from dexlens.parsers.primitives import (
    decode_sleb128,
    decode_uleb128,
    decode_uleb128p1,
)

DBG_FIRST_SPECIAL: int = 0x0A
DBG_LINE_BASE: int = -4
DBG_LINE_RANGE: int = 15


def parse_debug_info(source: ByteSource, offset: int) -> DebugInfoItem:
    """Decode the header of the ``debug_info_item`` at *offset*."""
    line_start, size = decode_uleb128(source, offset)
    pos = offset + size
    parameters_size, size = decode_uleb128(source, pos)
    pos += size
    if parameters_size > source.size - pos:
        raise MalformedItemError(
            f"debug info declares {parameters_size} parameter(s) past end of data",
            offset=offset,
        )
    names: list[Optional[int]] = []
    for _ in range(parameters_size):
        name_idx, size = decode_uleb128p1(source, pos)
        pos += size
        names.append(name_idx)
    return DebugInfoItem(
        offset=offset,
        line_start=line_start,
        parameter_names=names,
        program_off=pos,
    )


class DebugInfo:
    """A ``debug_info_item`` bound to its source, ready to interpret."""

    __slots__ = ("_source", "item")

    def __init__(self, source: ByteSource, item: DebugInfoItem) -> None:
        self._source = source
        self.item = item

    @classmethod
    def parse(cls, source: ByteSource, offset: int) -> DebugInfo:
        return cls(source, parse_debug_info(source, offset))

    @property
    def line_start(self) -> int:
        return self.item.line_start

    @property
    def parameter_names(self) -> list[Optional[int]]:
        return self.item.parameter_names

    # ------------------------------------------------------------------ #
    #  Program decoding
    # ------------------------------------------------------------------ #

    def instructions(self) -> Iterator[DebugInstruction]:
        """Yield the program's instructions, ending with ``END_SEQUENCE``.

        Raises:
            UnterminatedDebugProgramError: The program runs off the buffer
                before ``END_SEQUENCE``.
        """
        pos = self.item.program_off
        while True:
            try:
                instruction, pos = self._decode_one(pos)
            except OutOfBoundsError as exc:
                raise UnterminatedDebugProgramError(
                    "debug program has no END_SEQUENCE", offset=self.item.offset
                ) from exc
            yield instruction
            if instruction.opcode == DebugOpcode.END_SEQUENCE:
                return

    def events(self) -> Iterator[DebugEvent]:
        """Run the state machine, yielding ``(address, line, instruction)``."""
        address = 0
        line = self.item.line_start
        for instruction in self.instructions():
            if instruction.addr_diff is not None:
                address += instruction.addr_diff
            if instruction.line_diff is not None:
                line += instruction.line_diff
            yield DebugEvent(address=address, line=line, instruction=instruction)

    def positions(self) -> Iterator[tuple[int, int]]:
        """Yield the ``(address, line)`` position entries emitted by special opcodes."""
        for event in self.events():
            if event.instruction.opcode == DebugOpcode.SPECIAL:
                yield event.address, event.line

    def _decode_one(self, pos: int) -> tuple[DebugInstruction, int]:
        source = self._source
        start = pos
        raw = source.u8(pos)
        pos += 1

        if raw >= DBG_FIRST_SPECIAL:
            adjusted = raw - DBG_FIRST_SPECIAL
            return DebugInstruction(
                offset=start,
                opcode=DebugOpcode.SPECIAL,
                raw_opcode=raw,
                line_diff=DBG_LINE_BASE + adjusted % DBG_LINE_RANGE,
                addr_diff=adjusted // DBG_LINE_RANGE,
            ), pos

        opcode = DebugOpcode(raw)
        fields: dict[str, Optional[int]] = {}

        if opcode is DebugOpcode.ADVANCE_PC:
            fields["addr_diff"], size = decode_uleb128(source, pos)
            pos += size
        elif opcode is DebugOpcode.ADVANCE_LINE:
            fields["line_diff"], size = decode_sleb128(source, pos)
            pos += size
        elif opcode in (DebugOpcode.START_LOCAL, DebugOpcode.START_LOCAL_EXTENDED):
            fields["register_num"], size = decode_uleb128(source, pos)
            pos += size
            fields["name_idx"], size = decode_uleb128p1(source, pos)
            pos += size
            fields["type_idx"], size = decode_uleb128p1(source, pos)
            pos += size
            if opcode is DebugOpcode.START_LOCAL_EXTENDED:
                fields["sig_idx"], size = decode_uleb128p1(source, pos)
                pos += size
        elif opcode in (DebugOpcode.END_LOCAL, DebugOpcode.RESTART_LOCAL):
            fields["register_num"], size = decode_uleb128(source, pos)
            pos += size
        elif opcode is DebugOpcode.SET_FILE:
            fields["name_idx"], size = decode_uleb128p1(source, pos)
            pos += size

        return DebugInstruction(
            offset=start, opcode=opcode, raw_opcode=raw, **fields
        ), pos
