"""Tests for the inspection engine and its report."""

from __future__ import annotations

import json
import struct

import pytest

from conftest import EMPTY, MAIN, SHAPE
from dexbuilder import patch_bytes, patch_u32
from dexlens.core.dex import DexFile
from dexlens.core.engine import DexEngine
from dexlens.core.errors import FileTooLargeError, InvalidMagicError
from dexlens.core.models import InspectionReport
from shared.config import LensConfig
from shared.models import Severity


@pytest.fixture
def engine() -> DexEngine:
    return DexEngine()


def class_named(report: InspectionReport, descriptor: str):
    return next(c for c in report.classes if c.descriptor == descriptor)


class TestInspect:
    def test_clean_file(self, engine, dex_path, sample_image):
        report = engine.inspect(dex_path)
        assert report.target == str(dex_path)
        assert report.header.version == "035"
        assert report.header.file_size == len(sample_image.data)
        assert report.header.class_defs == 3
        assert [c.descriptor for c in report.classes] == [MAIN, SHAPE, EMPTY]
        assert [s.type_name for s in report.sections] == list(sample_image.sections)
        assert report.diagnostics == []
        assert report.summary == "3 class(es) decoded (no diagnostics)"
        assert report.duration_seconds is not None
        assert report.strings == []

    def test_class_summary(self, engine, dex_path, sample_image):
        main = class_named(engine.inspect(dex_path), MAIN)
        assert main.access_flags == ["public"]
        assert main.superclass == "Ljava/lang/Object;"
        assert main.interfaces == ["Ljava/lang/Runnable;"]
        assert main.source_file == "Main.java"
        assert [(f.name, f.type) for f in main.static_fields] == [("COUNT", "I")]
        assert main.static_fields[0].access_flags == ["public", "static", "final"]
        assert main.field_count == 2
        assert main.method_count == 3

        init, entry = main.direct_methods
        assert init.access_flags == ["public", "constructor"]
        assert entry.descriptor == "([Ljava/lang/String;)V"
        assert entry.code_off == sample_image.code_off[(MAIN, "main")]
        assert (entry.registers_size, entry.insns_size, entry.tries_size) == (2, 4, 1)
        assert entry.instructions == []

    def test_abstract_method_summary(self, engine, dex_path):
        shape = class_named(engine.inspect(dex_path), SHAPE)
        (area,) = shape.virtual_methods
        assert area.descriptor == "()D"
        assert area.code_off is None
        assert area.registers_size is None
        assert "abstract" in area.access_flags

    def test_single_class(self, engine, dex_path):
        report = engine.inspect(dex_path, class_descriptor=SHAPE)
        assert [c.descriptor for c in report.classes] == [SHAPE]
        assert report.classes[0].index == 1

    def test_disassemble(self, engine, dex_path):
        report = engine.inspect(dex_path, class_descriptor=MAIN, disassemble=True)
        entry = report.classes[0].direct_methods[1]
        assert [i.mnemonic for i in entry.instructions] == [
            "const/4", "const-string", "return-void",
        ]

    def test_disassemble_default_from_config(self, dex_path):
        config = LensConfig()
        config.decoder.decode_instructions = True
        report = DexEngine(config=config).inspect(dex_path, class_descriptor=MAIN)
        assert report.classes[0].virtual_methods[0].instructions

    def test_strings(self, engine, dex_path, dex):
        report = engine.inspect(dex_path, include_strings=True)
        assert report.strings == list(dex.strings)
        assert "Main.java" in report.strings

    def test_json_report(self, engine, dex_path):
        report = engine.inspect(dex_path, include_strings=True, disassemble=True)
        payload = json.loads(report.model_dump_json())
        assert payload["header"]["version"] == "035"
        assert payload["classes"][0]["descriptor"] == MAIN
        first = payload["classes"][0]["direct_methods"][0]["instructions"][0]
        assert first["mnemonic"] == "invoke-direct"
        assert first["operands"]["registers"] == [0]


class TestDiagnostics:
    def test_unknown_class(self, engine, dex_path):
        report = engine.inspect(dex_path, class_descriptor="Lcom/example/Nope;")
        assert report.classes == []
        (diagnostic,) = report.diagnostics
        assert diagnostic.code == "class.not_found"
        assert diagnostic.severity is Severity.ERROR
        assert report.error_count == 1
        assert report.summary == "0 class(es) decoded (errors: 1)"

    def test_malformed_class_is_skipped(self, engine, sample_image):
        data = patch_bytes(
            sample_image.data, sample_image.class_data_off[MAIN], b"\x7f"
        )
        report = engine.inspect_dex(DexFile(data))
        assert [c.descriptor for c in report.classes] == [SHAPE, EMPTY]
        (diagnostic,) = report.diagnostics
        assert diagnostic.code == "class.decode_failed"
        assert diagnostic.context["descriptor"] == MAIN
        assert diagnostic.context["class_index"] == 0
        assert diagnostic.context["error"] == "MalformedClassDataError"
        assert diagnostic.message.startswith(MAIN)

    def test_missing_map_list(self, engine, sample_image):
        report = engine.inspect_dex(DexFile(patch_u32(sample_image.data, 52, 0)))
        assert [d.code for d in report.diagnostics] == ["map.missing"]
        assert report.sections == []
        assert len(report.classes) == 3

    def _duplicate_map_entry(self, sample_image) -> bytes:
        # Turn the TYPE_ID_ITEM entry into a second STRING_ID_ITEM entry.
        type_at = sample_image.map_off + 4 + 2 * 12
        return patch_bytes(sample_image.data, type_at, struct.pack("<H", 0x0001))

    def test_invalid_map_list(self, engine, sample_image):
        report = engine.inspect_dex(DexFile(self._duplicate_map_entry(sample_image)))
        (diagnostic,) = report.diagnostics
        assert diagnostic.code == "map.invalid"
        assert diagnostic.context == {"error": "DuplicateSectionError"}
        assert report.sections
        assert len(report.classes) == 3

    def test_map_validation_can_be_disabled(self, sample_image):
        config = LensConfig()
        config.decoder.validate_map = False
        engine = DexEngine(config=config)
        report = engine.inspect_dex(DexFile(self._duplicate_map_entry(sample_image)))
        assert report.diagnostics == []


class TestFatalErrors:
    def test_file_too_large(self, dex_path):
        config = LensConfig()
        config.decoder.max_file_size = 16
        with pytest.raises(FileTooLargeError):
            DexEngine(config=config).inspect(dex_path)

    def test_missing_file(self, engine, tmp_path):
        with pytest.raises(FileNotFoundError):
            engine.inspect(tmp_path / "absent.dex")

    def test_bad_magic(self, engine, tmp_path, sample_image):
        path = tmp_path / "bad.dex"
        path.write_bytes(patch_bytes(sample_image.data, 0, b"zip\n"))
        with pytest.raises(InvalidMagicError):
            engine.inspect(path)

    def test_without_mmap(self, dex_path):
        config = LensConfig()
        config.decoder.use_mmap = False
        report = DexEngine(config=config).inspect(dex_path)
        assert len(report.classes) == 3
