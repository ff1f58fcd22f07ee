"""Tests for header decoding and validation."""

from __future__ import annotations

import pytest

from dexbuilder import patch_bytes, patch_u32
from dexlens.core.errors import (
    InvalidEndianTagError,
    InvalidHeaderError,
    InvalidMagicError,
    OutOfBoundsError,
)
from dexlens.core.source import ByteSource
from dexlens.parsers.header import HEADER_SIZE, REVERSE_ENDIAN_CONSTANT, parse_header


class TestParseHeader:
    def test_sample_header(self, sample_image):
        header = parse_header(ByteSource(sample_image.data))
        assert header.version == "035"
        assert header.magic == b"dex\n035\x00"
        assert header.header_size == HEADER_SIZE
        assert header.file_size == len(sample_image.data)
        assert header.map_off == sample_image.map_off
        assert header.string_ids_size == len(sample_image.strings)
        assert header.type_ids_size == len(sample_image.types)
        assert header.class_defs_size == 3
        assert header.string_ids_off == 0x70
        assert len(header.signature) == 20

    def test_data_section_bounds(self, sample_image):
        header = parse_header(ByteSource(sample_image.data))
        assert header.in_data_section(header.data_off)
        assert not header.in_data_section(header.data_off - 1)
        assert header.data_off + header.data_size == len(sample_image.data)

    @pytest.mark.parametrize("version", ["035", "037", "038", "039"])
    def test_supported_versions(self, sample_builder, version):
        sample_builder.version = version
        header = parse_header(ByteSource(sample_builder.build().data))
        assert header.version == version

    def test_short_buffer(self):
        with pytest.raises(OutOfBoundsError):
            parse_header(ByteSource(b"dex\n035\x00" + bytes(50)))

    @pytest.mark.parametrize("magic", [
        b"dey\n035\x00",
        b"dex\n035\x01",
        b"dex\n0a5\x00",
        b"\x00" * 8,
    ])
    def test_bad_magic(self, sample_image, magic):
        data = patch_bytes(sample_image.data, 0, magic)
        with pytest.raises(InvalidMagicError):
            parse_header(ByteSource(data))

    def test_bad_endian_tag(self, sample_image):
        data = patch_u32(sample_image.data, 40, 0xDEADBEEF)
        with pytest.raises(InvalidEndianTagError) as exc_info:
            parse_header(ByteSource(data))
        assert exc_info.value.offset == 40

    def test_big_endian_is_named(self, sample_image):
        data = patch_u32(sample_image.data, 40, REVERSE_ENDIAN_CONSTANT)
        with pytest.raises(InvalidEndianTagError, match="big-endian"):
            parse_header(ByteSource(data))

    def test_bad_header_size(self, sample_image):
        data = patch_u32(sample_image.data, 36, 0x78)
        with pytest.raises(InvalidHeaderError):
            parse_header(ByteSource(data))

    def test_truncated_file(self, sample_image):
        with pytest.raises(OutOfBoundsError):
            parse_header(ByteSource(sample_image.data[:-8]))

    def test_table_past_end_of_buffer(self, sample_image):
        data = patch_u32(sample_image.data, 60, len(sample_image.data) - 4)
        with pytest.raises(OutOfBoundsError):
            parse_header(ByteSource(data))

    def test_table_extent_overflowing_32_bits(self, sample_image):
        data = patch_u32(sample_image.data, 56, 0x10)
        data = patch_u32(data, 60, 0xFFFFFFF0)
        with pytest.raises(InvalidHeaderError):
            parse_header(ByteSource(data))

    def test_empty_table_offset_is_ignored(self, sample_image):
        data = patch_u32(sample_image.data, 44, 0)
        data = patch_u32(data, 48, 0xFFFFFFF0)
        assert parse_header(ByteSource(data)).link_off == 0xFFFFFFF0

    def test_map_offset_past_end(self, sample_image):
        data = patch_u32(sample_image.data, 52, len(sample_image.data))
        with pytest.raises(OutOfBoundsError):
            parse_header(ByteSource(data))

    def test_checksum_is_reported_not_verified(self, sample_image):
        data = patch_u32(sample_image.data, 8, 0)
        assert parse_header(ByteSource(data)).checksum == 0
