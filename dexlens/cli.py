"""
DexLens CLI -- Dex Container Inspector
=======================================

Click-based command-line interface for the DexLens decoder.  Decodes one
Dex file and prints its header, map list, classes and diagnostics, either
as Rich tables or as a JSON document.

Usage::

    # Header, map list and every class
    dexlens classes.dex

    # A single class with its disassembly
    dexlens classes.dex --class Lcom/example/Main; --disassemble

    # Everything, including the string pool, as JSON
    dexlens classes.dex --strings --json

Exit status is ``0`` for a clean file, ``1`` when the file could not be
opened or its header is invalid, and ``2`` when the report carries
error diagnostics.

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from shared.config import LensConfig
from shared.console import LensConsole
from shared.logger import LensLogger

from dexlens import __version__
from dexlens.core.engine import DexEngine
from dexlens.core.errors import DexError
from dexlens.output.console import LensConsoleOutput


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------

@click.command("dexlens")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--class", "-c",
    "class_descriptor",
    default=None,
    metavar="DESCRIPTOR",
    help="Decode only this class, e.g. 'Lcom/example/Main;'.",
)
@click.option(
    "--strings", "-s",
    "include_strings",
    is_flag=True,
    default=False,
    help="Include the string pool in the output.",
)
@click.option(
    "--disassemble", "-d",
    is_flag=True,
    default=False,
    help="Decode the instructions of every method body.",
)
@click.option(
    "--no-validate",
    is_flag=True,
    default=False,
    help="Skip cross-checking the map list against the header.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to a TOML configuration file.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable verbose/debug output.",
)
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Output the report as JSON to stdout.",
)
@click.version_option(__version__, prog_name="dexlens")
def dexlens_cli(
    path: str,
    class_descriptor: str | None,
    include_strings: bool,
    disassemble: bool,
    no_validate: bool,
    config_path: str | None,
    verbose: bool,
    json_output: bool,
) -> None:
    """DexLens -- Dex bytecode container inspector.

    PATH is the Dex file to decode.

    Examples:

    \b
        dexlens classes.dex
        dexlens classes.dex --class 'Lcom/example/Main;' --disassemble
        dexlens classes.dex --strings --json
    """
    console = LensConsole(quiet=json_output)

    try:
        config = LensConfig.load(config_path)
    except (OSError, ValueError) as exc:
        console.error(f"Cannot load configuration: {exc}")
        sys.exit(1)

    if no_validate:
        config.decoder.validate_map = False

    logger = LensLogger.from_config(
        "cli",
        config.global_settings,
        console_output=verbose,
        log_level="DEBUG" if verbose else None,
    )
    engine = DexEngine(config=config, logger=logger)

    try:
        with console.status(f"Decoding {Path(path).name}..."):
            report = engine.inspect(
                path,
                class_descriptor=class_descriptor,
                include_strings=include_strings,
                disassemble=disassemble or None,
            )
    except KeyboardInterrupt:
        console.warning("Decoding interrupted by user.")
        sys.exit(130)
    except (DexError, OSError) as exc:
        if json_output:
            click.echo(str(exc), err=True)
        else:
            console.error(f"Cannot decode {path}: {exc}")
        if verbose:
            logger.exception("Decoding failed")
        sys.exit(1)

    if json_output:
        click.echo(report.model_dump_json(indent=2))
    else:
        LensConsoleOutput(console=console).display(report)

    if report.error_count:
        sys.exit(2)


# ---------------------------------------------------------------------------
# Module entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Entry point for the ``dexlens`` console script."""
    dexlens_cli()


if __name__ == "__main__":
    main()
