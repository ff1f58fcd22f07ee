"""
DexLens Output Module
======================

Console display for DexLens inspection reports.
"""

from dexlens.output.console import LensConsoleOutput

__all__ = [
    "LensConsoleOutput",
]
