"""Tests for annotation directory, set and item decoding."""

from __future__ import annotations

import struct

import pytest

from dexlens.core.errors import MalformedItemError, OutOfBoundsError
from dexlens.core.models import Visibility
from dexlens.core.source import ByteSource
from dexlens.parsers.annotations import (
    parse_annotation_item,
    parse_annotations_directory,
)

# 0x00 directory: class set @0x20, one field (7 -> @0x28), one parameter list (9 -> @0x30)
# 0x20 annotation_set: [@0x40]
# 0x28 annotation_set: empty
# 0x30 annotation_set_ref_list: [absent, @0x20]
# 0x40 annotation_item: RUNTIME, type 3, { name@4 = true }


def directory_image() -> bytes:
    buf = bytearray(0x48)
    struct.pack_into("<4I", buf, 0x00, 0x20, 1, 0, 1)
    struct.pack_into("<2I", buf, 0x10, 7, 0x28)
    struct.pack_into("<2I", buf, 0x18, 9, 0x30)
    struct.pack_into("<2I", buf, 0x20, 1, 0x40)
    struct.pack_into("<I", buf, 0x28, 0)
    struct.pack_into("<3I", buf, 0x30, 2, 0, 0x20)
    buf[0x40:0x45] = bytes([0x01, 0x03, 0x01, 0x04, 0x3F])
    return bytes(buf)


class TestAnnotationsDirectory:
    @pytest.fixture
    def directory(self):
        return parse_annotations_directory(ByteSource(directory_image()), 0)

    def test_class_annotations(self, directory):
        (item,) = directory.class_annotations
        assert item.offset == 0x40
        assert item.visibility is Visibility.RUNTIME
        assert item.annotation.type_idx == 3
        assert item.annotation.elements[0].name_idx == 4
        assert item.annotation.elements[0].value.value is True

    def test_field_annotations(self, directory):
        assert [e.member_idx for e in directory.field_annotations] == [7]
        assert directory.for_field(7) == []
        assert directory.for_field(8) == []

    def test_parameter_annotations(self, directory):
        params = directory.for_parameters(9)
        assert len(params) == 2
        assert params[0] == []
        assert params[1] == directory.class_annotations
        assert directory.for_parameters(10) == []

    def test_no_method_annotations(self, directory):
        assert directory.method_annotations == []
        assert directory.for_method(9) == []

    def test_member_tables_past_end(self):
        raw = struct.pack("<4I", 0, 100, 0, 0)
        with pytest.raises(OutOfBoundsError):
            parse_annotations_directory(ByteSource(raw), 0)


class TestAnnotationItem:
    def test_build_visibility(self):
        item = parse_annotation_item(ByteSource(bytes([0x00, 0x02, 0x00])), 0)
        assert item.visibility is Visibility.BUILD
        assert item.annotation.elements == []

    def test_unknown_visibility(self):
        with pytest.raises(MalformedItemError, match="visibility"):
            parse_annotation_item(ByteSource(bytes([0x05, 0x02, 0x00])), 0)
