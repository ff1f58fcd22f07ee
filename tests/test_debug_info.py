"""Tests for debug_info_item decoding and the line-number state machine."""

from __future__ import annotations

import pytest

from conftest import MAIN
from dexlens.core.errors import MalformedItemError, UnterminatedDebugProgramError
from dexlens.core.models import DebugOpcode
from dexlens.core.source import ByteSource
from dexlens.parsers.debug_info import DebugInfo, parse_debug_info

# line_start=5, one unnamed parameter, then a program using every opcode
PROGRAM = bytes([
    0x05, 0x01, 0x00,
    0x01, 0x03,                     # ADVANCE_PC 3
    0x02, 0x7E,                     # ADVANCE_LINE -2
    0x03, 0x01, 0x01, 0x03,         # START_LOCAL v1 name@0 type@2
    0x04, 0x02, 0x00, 0x00, 0x06,   # START_LOCAL_EXTENDED v2 - - sig@5
    0x05, 0x01,                     # END_LOCAL v1
    0x06, 0x01,                     # RESTART_LOCAL v1
    0x07,                           # SET_PROLOGUE_END
    0x08,                           # SET_EPILOGUE_BEGIN
    0x09, 0x00,                     # SET_FILE -
    0x1D,                           # special: line +0, address +1
    0x00,                           # END_SEQUENCE
])


class TestParseDebugInfo:
    def test_header(self):
        item = parse_debug_info(ByteSource(PROGRAM), 0)
        assert item.line_start == 5
        assert item.parameter_names == [None]
        assert item.program_off == 3

    def test_parameter_count_past_end(self):
        with pytest.raises(MalformedItemError):
            parse_debug_info(ByteSource(bytes([0x01, 0x10, 0x00])), 0)


class TestDebugProgram:
    def test_every_opcode(self):
        info = DebugInfo.parse(ByteSource(PROGRAM), 0)
        ops = [i.opcode for i in info.instructions()]
        assert ops == [
            DebugOpcode.ADVANCE_PC,
            DebugOpcode.ADVANCE_LINE,
            DebugOpcode.START_LOCAL,
            DebugOpcode.START_LOCAL_EXTENDED,
            DebugOpcode.END_LOCAL,
            DebugOpcode.RESTART_LOCAL,
            DebugOpcode.SET_PROLOGUE_END,
            DebugOpcode.SET_EPILOGUE_BEGIN,
            DebugOpcode.SET_FILE,
            DebugOpcode.SPECIAL,
            DebugOpcode.END_SEQUENCE,
        ]

    def test_operands(self):
        instructions = list(DebugInfo.parse(ByteSource(PROGRAM), 0).instructions())
        start_local = instructions[2]
        assert start_local.register_num == 1
        assert start_local.name_idx == 0
        assert start_local.type_idx == 2
        assert start_local.sig_idx is None

        extended = instructions[3]
        assert extended.register_num == 2
        assert extended.name_idx is None
        assert extended.type_idx is None
        assert extended.sig_idx == 5

        assert instructions[4].register_num == 1
        assert instructions[8].name_idx is None
        assert instructions[9].raw_opcode == 0x1D

    def test_state_machine(self):
        events = list(DebugInfo.parse(ByteSource(PROGRAM), 0).events())
        assert (events[0].address, events[0].line) == (3, 5)
        assert (events[1].address, events[1].line) == (3, 3)
        assert (events[-2].address, events[-2].line) == (4, 3)

    def test_positions_come_from_special_opcodes_only(self):
        info = DebugInfo.parse(ByteSource(PROGRAM), 0)
        assert list(info.positions()) == [(4, 3)]

    @pytest.mark.parametrize("opcode, line_diff, addr_diff", [
        (0x0A, -4, 0),
        (0x0E, 0, 0),
        (0x18, 10, 0),
        (0x19, -4, 1),
        (0xFF, 1, 16),
    ])
    def test_special_opcode_arithmetic(self, opcode, line_diff, addr_diff):
        info = DebugInfo.parse(ByteSource(bytes([1, 0, opcode, 0])), 0)
        special = next(info.instructions())
        assert special.opcode is DebugOpcode.SPECIAL
        assert (special.line_diff, special.addr_diff) == (line_diff, addr_diff)

    def test_unterminated_program(self):
        info = DebugInfo.parse(ByteSource(bytes([1, 0, 0x07, 0x0E])), 0)
        with pytest.raises(UnterminatedDebugProgramError):
            list(info.instructions())

    def test_replay_is_deterministic(self):
        info = DebugInfo.parse(ByteSource(PROGRAM), 0)
        assert list(info.events()) == list(info.events())


class TestMethodDebugInfo:
    def test_sample_method(self, dex, sample_image):
        method = dex.find_class_by_name(MAIN).find_method("main")
        info = method.debug_info()
        assert info.item.offset == sample_image.debug_off[(MAIN, "main")]
        assert info.line_start == 10
        assert [dex.get_string(i) for i in info.parameter_names] == ["args"]
        assert list(info.positions()) == [(0, 11), (2, 12)]

    def test_method_without_debug_info(self, dex):
        method = dex.find_class_by_name(MAIN).find_method("<init>")
        assert method.debug_info() is None
