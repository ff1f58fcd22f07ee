"""
DexLens Shared Module
=====================

Configuration, logging, console output and diagnostic models used by the
decoder and its command-line front end.
"""

from shared.config import LensConfig, get_config

__all__ = ["LensConfig", "get_config"]
