"""Tests for code_item and catch handler decoding."""

from __future__ import annotations

import struct

import pytest

from conftest import MAIN
from dexbuilder import patch_bytes
from dexlens.core.dex import DexFile
from dexlens.core.errors import MalformedItemError, OutOfBoundsError
from dexlens.core.source import ByteSource
from dexlens.parsers.code import (
    CODE_ITEM_HEADER_SIZE,
    parse_catch_handler_list,
    parse_code_item,
)


class TestSampleCodeItems:
    def test_constructor(self, dex, sample_image):
        code = dex.code_item(sample_image.code_off[(MAIN, "<init>")])
        assert code.registers_size == 1
        assert code.ins_size == 1
        assert code.outs_size == 1
        assert code.tries_size == 0
        assert code.debug_info_off is None
        assert code.insns == (0x1070, 0x0000, 0x0000, 0x000E)
        assert code.tries == []
        assert code.handlers == []
        assert code.size == CODE_ITEM_HEADER_SIZE + 8

    def test_typed_handler(self, dex, sample_image):
        code = dex.code_item(sample_image.code_off[(MAIN, "main")])
        assert code.debug_info_off == sample_image.debug_off[(MAIN, "main")]
        (try_item,) = code.tries
        assert (try_item.start_addr, try_item.insn_count) == (0, 3)
        # The handler follows the one-byte list size.
        assert try_item.handler_off == 1

        handler = code.handler_for(try_item)
        (clause,) = handler.handlers
        assert clause.type_idx == sample_image.types["Ljava/lang/Exception;"]
        assert clause.addr == 3
        assert handler.catch_all_addr is None

    def test_odd_insns_are_padded(self, dex, sample_image):
        code = dex.code_item(sample_image.code_off[(MAIN, "run")])
        assert code.insns_size == 3
        (try_item,) = code.tries
        assert try_item.insn_count == 1
        handler = code.handler_for(try_item)
        assert handler.handlers == []
        assert handler.catch_all_addr == 2
        # header, 3 code units, padding, one try_item, 3-byte handler list
        assert code.size == CODE_ITEM_HEADER_SIZE + 6 + 2 + 8 + 3

    def test_handler_off_must_start_a_handler(self, sample_image):
        offset = sample_image.code_off[(MAIN, "main")]
        handler_off_at = offset + CODE_ITEM_HEADER_SIZE + 8 + 6
        data = patch_bytes(sample_image.data, handler_off_at, struct.pack("<H", 5))
        dex = DexFile(data)
        with pytest.raises(MalformedItemError, match="handler_off"):
            dex.code_item(offset)

    def test_method_view_code(self, dex):
        method = dex.find_class_by_name(MAIN).find_method("main")
        assert method.code().insns_size == 4
        assert MAIN in str(method)


class TestParseCodeItem:
    def test_no_tries_at_end_of_buffer(self):
        raw = struct.pack("<4HII", 1, 0, 0, 0, 0, 1) + struct.pack("<H", 0x000E)
        assert len(raw) == 18
        code = parse_code_item(ByteSource(raw), 0)
        assert code.size == 18
        assert code.handlers == []
        assert code.insns == (0x000E,)

    def test_truncated_instructions(self):
        raw = struct.pack("<4HII", 1, 0, 0, 0, 0, 100) + bytes(4)
        with pytest.raises(OutOfBoundsError):
            parse_code_item(ByteSource(raw), 0)

    def test_truncated_try_items(self):
        raw = struct.pack("<4HII", 1, 0, 0, 4, 0, 2) + bytes(8)
        with pytest.raises(OutOfBoundsError):
            parse_code_item(ByteSource(raw), 0)


class TestCatchHandlers:
    def test_negative_size_has_catch_all(self):
        raw = bytes([0x01, 0x7E, 1, 2, 3, 4, 5])
        handlers, end = parse_catch_handler_list(ByteSource(raw), 0)
        assert end == len(raw)
        (handler,) = handlers
        assert handler.offset == 1
        assert [(p.type_idx, p.addr) for p in handler.handlers] == [(1, 2), (3, 4)]
        assert handler.catch_all_addr == 5

    def test_zero_size_is_catch_all_only(self):
        handlers, end = parse_catch_handler_list(ByteSource(bytes([1, 0, 7])), 0)
        assert end == 3
        assert handlers[0].handlers == []
        assert handlers[0].catch_all_addr == 7

    def test_offsets_are_relative_to_list(self):
        raw = bytes([0xAA, 0xAA, 0x02, 0x01, 0x09, 0x04, 0x00, 0x06])
        handlers, end = parse_catch_handler_list(ByteSource(raw), 2)
        assert [h.offset for h in handlers] == [1, 4]
        assert handlers[0].catch_all_addr is None
        assert handlers[1].catch_all_addr == 6
        assert end == len(raw)

    def test_count_exceeding_remaining_data(self):
        with pytest.raises(MalformedItemError):
            parse_catch_handler_list(ByteSource(bytes([0x10, 0, 0])), 0)

    def test_clause_count_exceeding_remaining_data(self):
        with pytest.raises(MalformedItemError):
            parse_catch_handler_list(ByteSource(bytes([0x01, 0x20, 0, 0])), 0)
