"""
DexLens Console Interface
==========================

Rich-powered console abstraction used by the command-line front end.

The class wraps :class:`rich.console.Console` and adds helpers for section
headers, severity-coloured messages, tables, diagnostics and status
spinners, all with one consistent palette.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

# ---------------------------------------------------------------------------
# Theme
# ---------------------------------------------------------------------------
_LENS_THEME = Theme(
    {
        "lens.section": "bold bright_magenta",
        "lens.success": "bold green",
        "lens.warning": "bold yellow",
        "lens.error": "bold red",
        "lens.info": "bold bright_blue",
        "lens.dim": "dim white",
        "lens.highlight": "bold bright_white",
        "lens.descriptor": "bright_cyan",
        "lens.offset": "dim cyan",
    }
)


class LensConsole:
    """Unified console interface for DexLens output.

    Usage::

        con = LensConsole()
        con.section("Header")
        con.success("12 classes decoded")
    """

    def __init__(self, *, quiet: bool = False, record: bool = False) -> None:
        """Initialise the console.

        Args:
            quiet:  Suppress all output (library / test mode).
            record: Enable Rich recording so output can be exported as text.
        """
        self._console = Console(
            theme=_LENS_THEME,
            quiet=quiet,
            record=record,
            highlight=False,
        )

    @property
    def rich(self) -> Console:
        """Direct access to the underlying Rich Console instance."""
        return self._console

    # ------------------------------------------------------------------ #
    #  Section header
    # ------------------------------------------------------------------ #

    def section(self, title: str) -> None:
        """Print a section rule titled *title*."""
        self._console.rule(
            f"  {escape(title)}  ",
            style="lens.section",
            characters="─",
        )

    # ------------------------------------------------------------------ #
    #  Message helpers
    # ------------------------------------------------------------------ #

    def success(self, message: str) -> None:
        self._console.print(
            f"[lens.success][✔] OK:[/lens.success] {escape(message)}"
        )

    def warning(self, message: str) -> None:
        self._console.print(
            f"[lens.warning][⚠] WARNING:[/lens.warning] {escape(message)}"
        )

    def error(self, message: str) -> None:
        self._console.print(
            f"[lens.error][✘] ERROR:[/lens.error] {escape(message)}"
        )

    def info(self, message: str) -> None:
        self._console.print(
            f"[lens.info][ℹ] INFO:[/lens.info] {escape(message)}"
        )

    # ------------------------------------------------------------------ #
    #  Tables
    # ------------------------------------------------------------------ #

    def table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        *,
        styles: Sequence[str] | None = None,
    ) -> None:
        """Render a styled Rich table.

        Args:
            title:    Table title.
            columns:  Column header labels.
            rows:     Row tuples; each cell is stringified and escaped.
            styles:   Optional per-column Rich style strings.
        """
        tbl = Table(
            title=title,
            min_width=len(title) + 4,
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            padding=(0, 1),
        )
        for idx, col_name in enumerate(columns):
            style = styles[idx] if styles and idx < len(styles) else ""
            tbl.add_column(col_name, style=style)

        for row in rows:
            tbl.add_row(*(escape(str(cell)) for cell in row))

        self._console.print(tbl)

    def diagnostics_table(self, diagnostics: Sequence[Any]) -> None:
        """Render diagnostics with severity colouring.

        Expects objects with ``severity``, ``code``, ``message`` and
        ``offset`` attributes (see :class:`shared.models.Diagnostic`).
        """
        tbl = Table(
            title="Diagnostics",
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            padding=(0, 1),
        )
        tbl.add_column("#", style="dim", width=4, justify="right")
        tbl.add_column("Severity", width=9)
        tbl.add_column("Code")
        tbl.add_column("Offset", style="lens.offset", justify="right")
        tbl.add_column("Message", ratio=2)

        for idx, diagnostic in enumerate(diagnostics, start=1):
            severity = diagnostic.severity
            offset = diagnostic.offset
            tbl.add_row(
                str(idx),
                f"[{severity.style}]{severity.value}[/{severity.style}]",
                escape(diagnostic.code),
                f"0x{offset:x}" if offset is not None else "-",
                escape(diagnostic.message),
            )

        self._console.print(tbl)

    # ------------------------------------------------------------------ #
    #  Status spinner
    # ------------------------------------------------------------------ #

    @contextmanager
    def status(self, message: str = "Working...") -> Generator[Any, None, None]:
        """Context manager showing a spinner next to *message*."""
        with self._console.status(
            f"[lens.info]{escape(message)}[/lens.info]",
            spinner="dots",
            spinner_style="bright_cyan",
        ) as status_obj:
            yield status_obj

    # ------------------------------------------------------------------ #
    #  Utility
    # ------------------------------------------------------------------ #

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Proxy to :meth:`rich.console.Console.print`."""
        self._console.print(*args, **kwargs)

    def blank(self, count: int = 1) -> None:
        for _ in range(count):
            self._console.print()

    def export_text(self) -> str:
        """Export recorded output as plain text (requires ``record=True``)."""
        return self._console.export_text()
