"""
DexLens Configuration Management
=================================

Dataclass-based configuration with TOML persistence.

A configuration file has two tables; every key is optional and missing keys
fall back to the dataclass defaults::

    [global]
    log_level = "INFO"
    log_file = ""
    log_json = false
    output_dir = "output"

    [decoder]
    max_file_size = 268435456
    max_group_members = 0
    validate_map = true
    decode_instructions = false
    use_mmap = true

References:
    - Wiggins, A. (2011). The Twelve-Factor App. https://12factor.net/
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


# ---------------------------------------------------------------------------
# Default configuration file path relative to the project root
# ---------------------------------------------------------------------------
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"


# ========================== Section Configs ================================


@dataclass(frozen=False, slots=True)
class DecoderConfig:
    """Limits and switches for loading and decoding Dex files.

    Attributes:
        max_file_size: Files larger than this many bytes are refused.
        max_group_members: Upper bound on any one class-data group count
            (static fields, instance fields, direct or virtual methods).
            ``0`` disables the cap; pool-size and buffer checks always apply.
        validate_map: Cross-check the map list against the header.
        decode_instructions: Decode instruction records for every method.
        use_mmap: Memory-map input files instead of reading them.
    """

    max_file_size: int = 268_435_456  # 256 MiB
    max_group_members: int = 0
    validate_map: bool = True
    decode_instructions: bool = False
    use_mmap: bool = True


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Logging and output settings."""

    log_level: str = "INFO"
    log_file: str = ""
    log_json: bool = False
    output_dir: str = "output"


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class LensConfig:
    """Complete DexLens configuration.

    Usage:
        >>> config = LensConfig.load()                  # from default path
        >>> config = LensConfig.load("custom.toml")     # from custom path
        >>> config.decoder.validate_map
        True
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> LensConfig:
        """Load configuration from a TOML file.

        If *path* is ``None`` the loader looks for ``config.toml`` in the
        project root and returns pure defaults when it is absent.

        Raises:
            FileNotFoundError: *path* was given explicitly and does not exist.
        """
        config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            if path is not None:
                raise FileNotFoundError(
                    f"Configuration file not found: {config_path}"
                )
            return cls()

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=cls._build_section(GlobalConfig, raw.get("global", {})),
            decoder=cls._build_section(DecoderConfig, raw.get("decoder", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise the configuration tree to a plain dictionary."""
        return asdict(self)

    @staticmethod
    def _build_section(cls: type, data: dict[str, Any]) -> Any:
        """Instantiate dataclass *cls* from the keys it declares.

        Unknown keys are ignored so newer config files load in older code.
        """
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


# ========================= Module-level convenience ========================

def get_config(path: str | Path | None = None) -> LensConfig:
    """Cached wrapper around :meth:`LensConfig.load`.

    Passing an explicit *path* always reloads.
    """
    if not hasattr(get_config, "_cached") or path is not None:
        get_config._cached = LensConfig.load(path)  # type: ignore[attr-defined]
    return get_config._cached  # type: ignore[attr-defined]
