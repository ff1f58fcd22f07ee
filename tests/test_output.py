"""Tests for the Rich report renderer."""

from __future__ import annotations

import pytest

from conftest import MAIN
from dexlens.core.engine import DexEngine
from dexlens.output.console import LensConsoleOutput, _operands
from shared.console import LensConsole


@pytest.fixture
def render(dex):
    def _render(**kwargs) -> str:
        report = DexEngine().inspect_dex(dex, target="classes.dex", **kwargs)
        console = LensConsole(record=True)
        console.rich.width = 160
        LensConsoleOutput(console=console).display(report)
        return console.export_text()
    return _render


class TestLensConsoleOutput:
    def test_overview(self, render):
        text = render()
        assert "DexLens -- classes.dex" in text
        assert "Version:" in text
        assert "STRING_ID_ITEM" in text
        assert MAIN in text
        assert "implements Ljava/lang/Runnable;" in text
        assert "source Main.java" in text
        assert "static fields (1)" in text
        assert "OK:" in text

    def test_disassembly(self, render):
        text = render(class_descriptor=MAIN, disassemble=True)
        assert f"{MAIN}->main([Ljava/lang/String;)V" in text
        assert "const-string" in text

    def test_strings_with_limit(self, dex):
        strings = list(dex.strings)
        console = LensConsole(record=True)
        console.rich.width = 160
        LensConsoleOutput(console=console).display_strings(strings, limit=2)
        text = console.export_text()
        assert "String Pool" in text
        assert f"{len(strings) - 2} more not shown" in text

    def test_diagnostics(self, render):
        text = render(class_descriptor="Lcom/example/Nope;")
        assert "class.not_found" in text
        assert "ERROR:" in text


class TestOperandFormatting:
    def test_registers_and_payload(self):
        assert _operands({"A": 1, "registers": [0, 1]}) == "A=1 registers={0, 1}"
        assert _operands({"payload": {"size": 1, "keys": [5]}}) == (
            "payload=size=1 keys={5}"
        )
