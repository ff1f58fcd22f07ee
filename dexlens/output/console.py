"""
DexLens Console Output
=======================

Rich-powered terminal display for an
:class:`~dexlens.core.models.InspectionReport`: a header panel, the map-list
section table, one tree per class with its fields and methods (and, when
requested, a disassembly listing), the string pool and the diagnostics.

Uses the :class:`~shared.console.LensConsole` abstraction so the palette
matches the rest of the command-line front end.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Any

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from shared.console import LensConsole

from dexlens.core.models import (
    ClassSummary,
    HeaderSummary,
    InspectionReport,
    Instruction,
    MethodSummary,
    SectionSummary,
)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def _flags(names: list[str]) -> str:
    return " ".join(names)


def _operands(operands: dict[str, Any]) -> str:
    """Render an operand dict as ``key=value`` pairs."""
    parts: list[str] = []
    for key, value in operands.items():
        if isinstance(value, dict):
            value = _operands(value)
        elif isinstance(value, (list, tuple)):
            value = "{" + ", ".join(str(v) for v in value) + "}"
        parts.append(f"{key}={value}")
    return " ".join(parts)


# ---------------------------------------------------------------------------
# LensConsoleOutput
# ---------------------------------------------------------------------------

class LensConsoleOutput:
    """Rich terminal display for Dex inspection reports.

    Usage::

        output = LensConsoleOutput()
        output.display(report)
    """

    def __init__(self, console: LensConsole | None = None) -> None:
        """Initialise the output renderer.

        Args:
            console: Optional LensConsole instance.  A new one is
                     created if not provided.
        """
        self._console: LensConsole = console or LensConsole()

    def display(self, report: InspectionReport) -> None:
        """Display the complete inspection report."""
        self._console.section(f"DexLens -- {report.target}")

        if report.header is not None:
            self.display_header(report.header)

        if report.sections:
            self.display_sections(report.sections)

        if report.classes:
            self._console.section("Classes")
            for cls in report.classes:
                self.display_class(cls)

        if report.strings:
            self.display_strings(report.strings)

        if report.diagnostics:
            self._console.section("Diagnostics")
            self._console.diagnostics_table(report.diagnostics)

        self._console.blank()
        if report.duration_seconds is not None:
            self._console.info(f"Duration: {report.duration_seconds:.3f}s")
        if report.error_count:
            self._console.error(report.summary)
        elif report.warning_count:
            self._console.warning(report.summary)
        else:
            self._console.success(report.summary)

    def display_header(self, header: HeaderSummary) -> None:
        """Display the header panel."""
        lines: list[str] = [
            f"[bold]Version:[/bold]     {header.version}",
            f"[bold]File size:[/bold]   {header.file_size:,} bytes",
            f"[bold]Checksum:[/bold]    {header.checksum}",
            f"[bold]Signature:[/bold]   {header.signature}",
            f"[bold]Data:[/bold]        0x{header.data_off:x} "
            f"({header.data_size:,} bytes)",
            "",
            f"[bold]Strings:[/bold] {header.string_ids}   "
            f"[bold]Types:[/bold] {header.type_ids}   "
            f"[bold]Protos:[/bold] {header.proto_ids}",
            f"[bold]Fields:[/bold] {header.field_ids}   "
            f"[bold]Methods:[/bold] {header.method_ids}   "
            f"[bold]Classes:[/bold] {header.class_defs}",
        ]
        panel = Panel(
            "\n".join(lines),
            title="[bold bright_cyan]Dex Header[/bold bright_cyan]",
            border_style="bright_cyan",
            padding=(1, 2),
        )
        self._console.rich.print(panel)
        self._console.blank()

    def display_sections(self, sections: list[SectionSummary]) -> None:
        """Display the map list as a table in file order."""
        self._console.table(
            "Map List",
            ["Type", "Code", "Count", "Offset"],
            [
                (s.type_name, f"0x{s.type_code:04x}", s.size, f"0x{s.offset:08x}")
                for s in sections
            ],
            styles=["lens.descriptor", "dim", "", "lens.offset"],
        )
        self._console.blank()

    def display_class(self, cls: ClassSummary) -> None:
        """Display one class as a tree of fields and methods."""
        label = (
            f"[lens.descriptor]{escape(cls.descriptor)}[/lens.descriptor]"
            f" [dim]{escape(_flags(cls.access_flags))}[/dim]"
        )
        tree = Tree(label, guide_style="dim")

        if cls.superclass:
            tree.add(f"[dim]extends[/dim] {escape(cls.superclass)}")
        for iface in cls.interfaces:
            tree.add(f"[dim]implements[/dim] {escape(iface)}")
        if cls.source_file:
            tree.add(f"[dim]source[/dim] {escape(cls.source_file)}")

        for title, fields in (
            ("static fields", cls.static_fields),
            ("instance fields", cls.instance_fields),
        ):
            if not fields:
                continue
            branch = tree.add(f"[bold]{title}[/bold] ({len(fields)})")
            for f in fields:
                branch.add(
                    f"{escape(f.name)}:{escape(f.type)} "
                    f"[dim]{escape(_flags(f.access_flags))}[/dim]"
                )

        for title, methods in (
            ("direct methods", cls.direct_methods),
            ("virtual methods", cls.virtual_methods),
        ):
            if not methods:
                continue
            branch = tree.add(f"[bold]{title}[/bold] ({len(methods)})")
            for m in methods:
                branch.add(self._method_label(m))

        self._console.print(tree)
        for m in cls.direct_methods + cls.virtual_methods:
            if m.instructions:
                self.display_disassembly(cls.descriptor, m)

    @staticmethod
    def _method_label(method: MethodSummary) -> str:
        text = (
            f"{escape(method.name)}{escape(method.descriptor)} "
            f"[dim]{escape(_flags(method.access_flags))}[/dim]"
        )
        if method.code_off is not None:
            text += (
                f" [lens.offset]@0x{method.code_off:x}[/lens.offset]"
                f" [dim]regs={method.registers_size}"
                f" insns={method.insns_size} tries={method.tries_size}[/dim]"
            )
        return text

    def display_disassembly(self, owner: str, method: MethodSummary) -> None:
        """Display the decoded instructions of one method."""
        title = f"{owner}->{method.name}{method.descriptor}"
        tbl = Table(
            title=escape(title),
            min_width=len(title) + 4,
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            padding=(0, 1),
        )
        tbl.add_column("Addr", style="lens.offset", justify="right")
        tbl.add_column("Mnemonic", style="lens.highlight")
        tbl.add_column("Fmt", style="dim")
        tbl.add_column("Operands")
        for insn in method.instructions:
            tbl.add_row(*self._instruction_row(insn))
        self._console.print(tbl)

    @staticmethod
    def _instruction_row(insn: Instruction) -> tuple[str, str, str, str]:
        return (
            f"{insn.address:04x}",
            escape(insn.mnemonic),
            insn.format,
            escape(_operands(insn.operands)),
        )

    def display_strings(self, strings: list[str], limit: int = 0) -> None:
        """Display the string pool.

        Args:
            strings: Decoded strings in pool order.
            limit: Show at most this many entries; ``0`` shows all.
        """
        shown = strings[:limit] if limit else strings
        self._console.section("Strings")
        self._console.table(
            f"String Pool ({len(strings)})",
            ["#", "Value"],
            [(idx, repr(value)) for idx, value in enumerate(shown)],
            styles=["dim", ""],
        )
        if len(shown) < len(strings):
            self._console.info(f"{len(strings) - len(shown)} more not shown")
