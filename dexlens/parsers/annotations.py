"""
Dex Annotations
================

Decoders for the annotation structures reachable from
``class_def_item.annotations_off``::

    annotations_directory_item
        u32 class_annotations_off          annotation_set_item, 0 if none
        u32 fields_size
        u32 annotated_methods_size
        u32 annotated_parameters_size
        field_annotation      [fields_size]               (u32 idx, u32 off)
        method_annotation     [annotated_methods_size]    (u32 idx, u32 off)
        parameter_annotation  [annotated_parameters_size] (u32 idx, u32 off)

    annotation_set_ref_list   u32 size, u32 annotation_set_off[size]
    annotation_set_item       u32 size, u32 annotation_off[size]
    annotation_item           u8 visibility, encoded_annotation

References:
    - Google. (2024). DEX Format: annotations_directory_item.
      https://source.android.com/docs/core/runtime/dex-format#annotations-directory
"""

from __future__ import annotations

from dexlens.core.errors import MalformedItemError
from dexlens.core.models import (
    AnnotationItem,
    AnnotationsDirectory,
    MemberAnnotations,
    ParameterAnnotations,
    Visibility,
)
from dexlens.core.source import ByteSource
from dexlens.parsers.encoded_value import decode_encoded_annotation


def parse_annotation_item(source: ByteSource, offset: int) -> AnnotationItem:
    raw_visibility = source.u8(offset)
    try:
        visibility = Visibility(raw_visibility)
    except ValueError:
        raise MalformedItemError(
            f"unknown annotation visibility 0x{raw_visibility:02x}", offset=offset
        ) from None
    annotation, _ = decode_encoded_annotation(source, offset + 1)
    return AnnotationItem(offset=offset, visibility=visibility, annotation=annotation)


def parse_annotation_set(source: ByteSource, offset: int) -> list[AnnotationItem]:
    """Decode an ``annotation_set_item`` into its annotations."""
    size = source.u32(offset)
    return [
        parse_annotation_item(source, entry)
        for entry in source.u32_array(offset + 4, size)
    ]


def parse_annotation_set_ref_list(
    source: ByteSource, offset: int
) -> list[list[AnnotationItem]]:
    """Decode an ``annotation_set_ref_list``; absent sets become empty lists."""
    size = source.u32(offset)
    return [
        parse_annotation_set(source, entry) if entry else []
        for entry in source.u32_array(offset + 4, size)
    ]


def parse_annotations_directory(
    source: ByteSource, offset: int
) -> AnnotationsDirectory:
    """Decode the ``annotations_directory_item`` at *offset*."""
    class_off, fields_size, methods_size, params_size = source.u32_array(offset, 4)
    pos = offset + 16
    source.check(pos, (fields_size + methods_size + params_size) * 8)

    def _pairs(count: int) -> list[tuple[int, int]]:
        nonlocal pos
        flat = source.u32_array(pos, count * 2)
        pos += count * 8
        return list(zip(flat[0::2], flat[1::2]))

    fields = [
        MemberAnnotations(member_idx=idx, annotations=parse_annotation_set(source, off))
        for idx, off in _pairs(fields_size)
    ]
    methods = [
        MemberAnnotations(member_idx=idx, annotations=parse_annotation_set(source, off))
        for idx, off in _pairs(methods_size)
    ]
    parameters = [
        ParameterAnnotations(
            method_idx=idx, parameters=parse_annotation_set_ref_list(source, off)
        )
        for idx, off in _pairs(params_size)
    ]
    return AnnotationsDirectory(
        offset=offset,
        class_annotations=parse_annotation_set(source, class_off) if class_off else [],
        field_annotations=fields,
        method_annotations=methods,
        parameter_annotations=parameters,
    )
