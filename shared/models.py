"""
DexLens Shared Models
======================

Pydantic v2 models shared between the decoder, the inspection engine and
the output layer.  A :class:`Diagnostic` records one non-fatal observation
(a map-list warning, a class that failed to decode) so that a report can
carry every problem found in a file instead of stopping at the first one.

References:
    - SARIF v2.1.0 Specification (OASIS, 2020), result objects.
    - Pydantic v2 documentation. https://docs.pydantic.dev/latest/
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ========================== Enumerations ===================================


class Severity(str, Enum):
    """Diagnostic severity level.

    Attributes:
        ERROR:   An entry could not be decoded.
        WARNING: The file is decodable but deviates from the format.
        INFO:    Informational observation.
    """

    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"

    @property
    def style(self) -> str:
        """Rich style used when rendering this severity."""
        return {
            "ERROR": "bold red",
            "WARNING": "yellow",
            "INFO": "cyan",
        }[self.value]


# ========================== Core Models ====================================


class Diagnostic(BaseModel):
    """A single non-fatal problem found while decoding.

    Attributes:
        severity: Severity of the observation.
        code:     Short machine-readable identifier, e.g. ``map.zero_count``
                  or ``class.decode_failed``.
        message:  Human-readable explanation.
        offset:   File offset the observation refers to, if any.
        context:  Extra structured detail (section name, class descriptor).
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    severity: Severity = Field(
        ...,
        description="Severity level",
    )
    code: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Machine-readable diagnostic code",
    )
    message: str = Field(
        ...,
        min_length=1,
        description="Human-readable description",
    )
    offset: Optional[int] = Field(
        default=None,
        ge=0,
        description="Related file offset",
    )
    context: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional structured detail",
    )

    @field_validator("context", mode="before")
    @classmethod
    def _coerce_context(cls, v: Any) -> dict[str, Any]:
        """Accept ``None`` as an empty context."""
        return {} if v is None else v

    @classmethod
    def error(cls, code: str, message: str, **kwargs: Any) -> Diagnostic:
        return cls(severity=Severity.ERROR, code=code, message=message, **kwargs)

    @classmethod
    def warning(cls, code: str, message: str, **kwargs: Any) -> Diagnostic:
        return cls(severity=Severity.WARNING, code=code, message=message, **kwargs)

    def __str__(self) -> str:
        where = f" @0x{self.offset:x}" if self.offset is not None else ""
        return f"[{self.severity.value}] {self.code}{where}: {self.message}"


def severity_counts(diagnostics: Iterable[Diagnostic]) -> dict[str, int]:
    """Count diagnostics per severity.

    Returns:
        Dict mapping every severity name to its occurrence count, e.g.
        ``{"ERROR": 0, "WARNING": 2, "INFO": 0}``.
    """
    counts: dict[str, int] = {s.value: 0 for s in Severity}
    for diagnostic in diagnostics:
        counts[diagnostic.severity.value] += 1
    return counts
