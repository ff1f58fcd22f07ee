"""Tests for the Dalvik instruction decoder."""

from __future__ import annotations

import pytest

from conftest import MAIN
from dexlens.core.errors import MalformedItemError
from dexlens.parsers.instructions import (
    FORMATS,
    OPCODES,
    decode_instruction,
    decode_instructions,
)


class TestOpcodeTable:
    def test_every_opcode_has_a_known_format(self):
        assert len(OPCODES) == 256
        assert all(fmt in FORMATS for _, fmt in OPCODES)

    def test_unused_opcodes(self):
        assert OPCODES[0x3E] == ("unused-3e", "10x")
        assert OPCODES[0x73] == ("unused-73", "10x")

    def test_representative_entries(self):
        assert OPCODES[0x6E] == ("invoke-virtual", "35c")
        assert OPCODES[0x78] == ("invoke-interface/range", "3rc")
        assert OPCODES[0x90] == ("add-int", "23x")
        assert OPCODES[0xAF] == ("rem-double", "23x")
        assert OPCODES[0xCF] == ("rem-double/2addr", "12x")
        assert OPCODES[0xE2] == ("ushr-int/lit8", "22b")


class TestDecodeInstruction:
    def test_nop(self):
        insn = decode_instruction([0x0000], 0)
        assert (insn.mnemonic, insn.format, insn.length) == ("nop", "10x", 1)
        assert insn.operands == {}

    @pytest.mark.parametrize("unit, b", [(0x1012, 1), (0xF012, -1), (0x7012, 7)])
    def test_const4_sign(self, unit, b):
        insn = decode_instruction([unit], 0)
        assert insn.mnemonic == "const/4"
        assert insn.operands == {"A": 0, "B": b}

    def test_move(self):
        assert decode_instruction([0x2101], 0).operands == {"A": 1, "B": 2}

    def test_goto_backwards(self):
        insn = decode_instruction([0xFE28], 0)
        assert insn.format == "10t"
        assert insn.operands == {"A": -2}

    def test_if_eqz(self):
        insn = decode_instruction([0x0338, 0xFFFE], 0)
        assert insn.mnemonic == "if-eqz"
        assert insn.operands == {"A": 3, "B": -2}

    def test_const_string(self):
        insn = decode_instruction([0x011A, 0x0007], 0)
        assert insn.format == "21c"
        assert insn.operands == {"A": 1, "B": 7}

    def test_const_string_jumbo_is_unsigned(self):
        insn = decode_instruction([0x001B, 0xFFFF, 0xFFFF], 0)
        assert insn.operands["B"] == 0xFFFFFFFF

    def test_const_is_signed(self):
        insn = decode_instruction([0x0014, 0xFFFF, 0xFFFF], 0)
        assert insn.operands["B"] == -1

    def test_const_wide(self):
        insn = decode_instruction([0x0118, 0x5678, 0x1234, 0x0000, 0x0000], 0)
        assert insn.length == 5
        assert insn.operands == {"A": 1, "B": 0x12345678}
        negative = decode_instruction([0x0018, 0xFFFF, 0xFFFF, 0xFFFF, 0xFFFF], 0)
        assert negative.operands["B"] == -1

    def test_lit8(self):
        insn = decode_instruction([0x00D8, 0xFF01], 0)
        assert insn.mnemonic == "add-int/lit8"
        assert insn.operands == {"A": 0, "B": 1, "C": -1}

    def test_iget(self):
        insn = decode_instruction([0x1052, 0x0003], 0)
        assert insn.mnemonic == "iget"
        assert insn.operands == {"A": 0, "B": 1, "C": 3}

    def test_invoke_with_five_registers(self):
        insn = decode_instruction([0x546E, 0x0009, 0x3210], 0)
        assert insn.mnemonic == "invoke-virtual"
        assert insn.operands["A"] == 5
        assert insn.operands["B"] == 9
        assert insn.operands["registers"] == [0, 1, 2, 3, 4]

    def test_invoke_with_one_register(self):
        insn = decode_instruction([0x1070, 0x0005, 0x0000], 0)
        assert insn.mnemonic == "invoke-direct"
        assert insn.operands["registers"] == [0]

    def test_invoke_range(self):
        insn = decode_instruction([0x0377, 0x0009, 0x0004], 0)
        assert insn.mnemonic == "invoke-static/range"
        assert insn.operands["registers"] == [4, 5, 6]

    def test_invoke_polymorphic(self):
        insn = decode_instruction([0x10FA, 0x0002, 0x0000, 0x0006], 0)
        assert insn.format == "45cc"
        assert insn.length == 4
        assert insn.operands["H"] == 6
        assert insn.operands["registers"] == [0]

    def test_unused_opcode_decodes_as_one_unit(self):
        insn = decode_instruction([0x003E], 0)
        assert (insn.mnemonic, insn.length) == ("unused-3e", 1)

    def test_truncated_instruction(self):
        with pytest.raises(MalformedItemError):
            decode_instruction([0x0014, 0x0001], 0)


class TestPayloads:
    def test_packed_switch(self):
        insn = decode_instruction(
            [0x0100, 2, 10, 0, 5, 0, 0xFFFE, 0xFFFF], 0
        )
        assert insn.mnemonic == "packed-switch-payload"
        assert insn.format == "payload"
        assert insn.length == 8
        assert insn.operands["payload"] == {
            "size": 2, "first_key": 10, "targets": [5, -2],
        }

    def test_sparse_switch(self):
        insn = decode_instruction([0x0200, 2, 1, 0, 100, 0, 10, 0, 20, 0], 0)
        assert insn.length == 10
        assert insn.operands["payload"] == {
            "size": 2, "keys": [1, 100], "targets": [10, 20],
        }

    def test_fill_array_data(self):
        insn = decode_instruction([0x0300, 1, 3, 0, 0x0201, 0x0003], 0)
        assert insn.length == 6
        assert insn.operands["payload"] == {
            "element_width": 1, "size": 3, "data": "010203",
        }

    def test_truncated_payload(self):
        with pytest.raises(MalformedItemError):
            decode_instruction([0x0100, 5, 0, 0], 0)

    def test_payload_without_size(self):
        with pytest.raises(MalformedItemError):
            decode_instruction([0x0300], 0)


class TestDecodeInstructions:
    def test_stream(self):
        insns = [0x1012, 0x011A, 0x0000, 0x000E]
        decoded = list(decode_instructions(insns))
        assert [i.mnemonic for i in decoded] == ["const/4", "const-string", "return-void"]
        assert [i.address for i in decoded] == [0, 1, 3]

    def test_payload_inside_stream(self):
        insns = [0x002B, 0x0003, 0x0000, 0x000E, 0x0100, 1, 0, 0, 4, 0]
        decoded = list(decode_instructions(insns))
        assert [i.mnemonic for i in decoded] == [
            "packed-switch", "return-void", "packed-switch-payload",
        ]
        assert decoded[0].operands["B"] == 3

    def test_method_view(self, dex):
        method = dex.find_class_by_name(MAIN).find_method("<init>")
        decoded = list(method.instructions())
        assert [i.mnemonic for i in decoded] == ["invoke-direct", "return-void"]

    def test_abstract_method_has_no_instructions(self, dex):
        area = dex.find_class_by_name("Lcom/example/Shape;").find_method("area")
        assert list(area.instructions()) == []
