"""Tests for class_data_item decoding."""

from __future__ import annotations

import pytest

from conftest import MAIN, SHAPE
from dexbuilder import patch_bytes
from dexlens.core.dex import DexFile
from dexlens.core.errors import MalformedClassDataError, MalformedLeb128Error
from dexlens.core.models import FieldAccessFlags, MethodAccessFlags
from dexlens.core.source import ByteSource
from dexlens.parsers.class_data import ClassDataParser


def parser(raw: bytes, *, fields: int = 5, methods: int = 5, cap: int = 0):
    return ClassDataParser(
        ByteSource(raw), field_count=fields, method_count=methods,
        max_group_members=cap,
    )


class TestSampleClassData:
    def test_main_body(self, dex, sample_image):
        data = dex.class_data(sample_image.class_data_off[MAIN])
        assert data.offset == sample_image.class_data_off[MAIN]
        assert data.size == sample_image.class_data_size[MAIN]

        (count,) = data.static_fields
        assert count.field_idx == sample_image.fields[(MAIN, "COUNT")]
        assert count.flags == (
            FieldAccessFlags.PUBLIC | FieldAccessFlags.STATIC | FieldAccessFlags.FINAL
        )
        (name,) = data.instance_fields
        assert name.field_idx == sample_image.fields[(MAIN, "name")]

        init, main = data.direct_methods
        assert init.method_idx == sample_image.methods[(MAIN, "<init>")]
        assert MethodAccessFlags.CONSTRUCTOR in init.flags
        assert init.code_off == sample_image.code_off[(MAIN, "<init>")]
        assert main.code_off == sample_image.code_off[(MAIN, "main")]
        assert main.method_idx > init.method_idx

    def test_abstract_method_has_no_code(self, dex, sample_image):
        data = dex.class_data(sample_image.class_data_off[SHAPE])
        (area,) = data.virtual_methods
        assert area.code_off is None
        assert MethodAccessFlags.ABSTRACT in area.flags

    def test_exact_region(self, dex, sample_image):
        offset = sample_image.class_data_off[MAIN]
        size = sample_image.class_data_size[MAIN]
        assert dex.class_data(offset, size).size == size

    @pytest.mark.parametrize("delta", [-1, 1])
    def test_region_mismatch(self, dex, sample_image, delta):
        offset = sample_image.class_data_off[MAIN]
        size = sample_image.class_data_size[MAIN]
        with pytest.raises(MalformedClassDataError, match="declared region"):
            dex.class_data(offset, size + delta)

    def test_malformed_class_leaves_siblings_decodable(self, sample_image):
        data = patch_bytes(
            sample_image.data, sample_image.class_data_off[MAIN], b"\x7f"
        )
        dex = DexFile(data)
        with pytest.raises(MalformedClassDataError):
            dex.find_class_by_name(MAIN).class_data
        shape = dex.find_class_by_name(SHAPE)
        assert [m.name for m in shape.virtual_methods] == ["area"]


class TestClassDataParser:
    def test_empty_body(self):
        item = parser(bytes(4)).parse(0)
        assert item.size == 4
        assert item.static_fields == []
        assert item.virtual_methods == []

    def test_delta_encoding(self):
        raw = bytes([2, 0, 0, 0, 1, 0x01, 2, 0x08])
        item = parser(raw).parse(0)
        assert [f.field_idx for f in item.static_fields] == [1, 3]
        assert item.static_fields[1].access_flags == 0x08

    def test_first_entry_may_have_zero_delta(self):
        item = parser(bytes([1, 0, 0, 0, 0, 0x01])).parse(0)
        assert item.static_fields[0].field_idx == 0

    def test_zero_delta_after_first_entry(self):
        raw = bytes([0, 2, 0, 0, 0, 0x01, 0, 0x01])
        with pytest.raises(MalformedClassDataError) as exc_info:
            parser(raw).parse(0)
        assert exc_info.value.group == "instance_fields"
        assert exc_info.value.position == 1

    def test_index_outside_pool(self):
        raw = bytes([1, 0, 0, 0, 5, 0x01])
        with pytest.raises(MalformedClassDataError, match="outside pool") as exc_info:
            parser(raw, fields=5).parse(0)
        assert exc_info.value.group == "static_fields"
        assert exc_info.value.position == 0

    def test_counts_exceed_pool(self):
        raw = bytes([6, 0, 0, 0]) + bytes(12)
        with pytest.raises(MalformedClassDataError, match="field pool"):
            parser(raw, fields=5).parse(0)

    def test_counts_exceed_remaining_bytes(self):
        raw = bytes([0, 0, 3, 0, 0, 0])
        with pytest.raises(MalformedClassDataError, match="remain"):
            parser(raw).parse(0)

    def test_group_cap(self):
        raw = bytes([2, 0, 0, 0, 0, 1, 1, 1])
        with pytest.raises(MalformedClassDataError, match="limit") as exc_info:
            parser(raw, cap=1).parse(0)
        assert exc_info.value.group == "static_fields"

    def test_code_offset_outside_buffer(self):
        raw = bytes([0, 0, 1, 0, 1, 0x01, 0x7F, 0, 0, 0])
        with pytest.raises(MalformedClassDataError, match="code offset") as exc_info:
            parser(raw).parse(0)
        assert exc_info.value.group == "direct_methods"

    def test_bad_leb128_is_the_cause(self):
        raw = bytes([0x80, 0x80, 0x80, 0x80, 0x80, 0, 0, 0, 0])
        with pytest.raises(MalformedClassDataError) as exc_info:
            parser(raw).parse(0)
        assert exc_info.value.group is None
        assert isinstance(exc_info.value.__cause__, MalformedLeb128Error)

    def test_method_indices_restart_per_group(self):
        raw = bytes([0, 0, 1, 1, 2, 0x01, 0, 2, 0x01, 0])
        item = parser(raw).parse(0)
        assert item.direct_methods[0].method_idx == 2
        assert item.virtual_methods[0].method_idx == 2
