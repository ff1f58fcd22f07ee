"""
DexLens Inspection Engine
==========================

Runs the full decoding pipeline over one Dex file and collects the results
into an :class:`~dexlens.core.models.InspectionReport`.

Pipeline:
    1. Check the file size against ``decoder.max_file_size`` and open it
       (memory-mapped unless ``decoder.use_mmap`` is off).
    2. Parse and validate the header (fatal on failure).
    3. Decode the map list and, if ``decoder.validate_map`` is set,
       cross-check it against the header.
    4. Decode every class definition (or a single requested class) with its
       fields, methods and code-item metrics, optionally disassembling each
       method body.
    5. Optionally dump the string pool.

Steps 3 to 5 never abort the run.  A class, string or map list that fails
to decode becomes a :class:`~shared.models.Diagnostic` in the report and
the engine moves on to the next entry.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from dexlens.core.dex import DexFile
from dexlens.core.errors import DexError
from dexlens.core.models import (
    ClassSummary,
    FieldSummary,
    HeaderSummary,
    InspectionReport,
    MethodSummary,
    SectionSummary,
    flag_names,
)
from dexlens.core.views import DexClass, DexField, DexMethod
from shared.config import LensConfig
from shared.logger import LensLogger, null_logger
from shared.models import Diagnostic


class DexEngine:
    """Orchestrates decoding of a Dex file into an inspection report.

    Usage::

        engine = DexEngine()
        report = engine.inspect("classes.dex", include_strings=True)
        print(report.summary)
    """

    def __init__(
        self,
        config: LensConfig | None = None,
        logger: LensLogger | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            config: DexLens configuration.  Defaults are used if not provided.
            logger: Logger instance.  A silent one is created if not provided.
        """
        self._config: LensConfig = config or LensConfig()
        self._logger: LensLogger = logger or null_logger("engine")

    # ------------------------------------------------------------------ #
    #  Entry points
    # ------------------------------------------------------------------ #

    def inspect(
        self,
        file_path: str | Path,
        *,
        class_descriptor: Optional[str] = None,
        include_strings: bool = False,
        disassemble: Optional[bool] = None,
    ) -> InspectionReport:
        """Inspect the Dex file at *file_path*.

        Args:
            file_path: Path of the file to decode.
            class_descriptor: Decode only this class (e.g. ``Lcom/a/B;``).
            include_strings: Copy the string pool into the report.
            disassemble: Decode instruction records for every method.
                Defaults to ``decoder.decode_instructions``.

        Raises:
            FileNotFoundError: *file_path* does not exist.
            DexError: The file is too large or its header is invalid.
        """
        self._logger.info("Inspecting %s", file_path)
        with DexFile.from_path(
            file_path, config=self._config.decoder, logger=self._logger
        ) as dex:
            return self.inspect_dex(
                dex,
                target=str(file_path),
                class_descriptor=class_descriptor,
                include_strings=include_strings,
                disassemble=disassemble,
            )

    def inspect_dex(
        self,
        dex: DexFile,
        *,
        target: str = "<memory>",
        class_descriptor: Optional[str] = None,
        include_strings: bool = False,
        disassemble: Optional[bool] = None,
    ) -> InspectionReport:
        """Build a report for an already opened :class:`DexFile`."""
        if disassemble is None:
            disassemble = self._config.decoder.decode_instructions

        report = InspectionReport(
            target=target, header=HeaderSummary.from_header(dex.header)
        )

        with self._logger.timed(f"inspect {target}"):
            self._inspect_sections(dex, report)

            with self._logger.operation("decode_classes"):
                if class_descriptor is not None:
                    cls = self._find_class(dex, class_descriptor, report)
                    if cls is not None:
                        self._inspect_class(cls, report, disassemble)
                else:
                    for index in range(len(dex.class_defs)):
                        self._inspect_class_at(dex, index, report, disassemble)

            if include_strings:
                self._inspect_strings(dex, report)

        report.finalize()
        self._logger.info(report.summary)
        return report

    # ------------------------------------------------------------------ #
    #  Pipeline stages
    # ------------------------------------------------------------------ #

    def _inspect_sections(self, dex: DexFile, report: InspectionReport) -> None:
        if not dex.header.map_off:
            report.diagnostics.append(
                Diagnostic.error("map.missing", "header has no map_list offset")
            )
            return
        try:
            report.sections = [
                SectionSummary(
                    type_name=item.type_name,
                    type_code=item.type_code,
                    size=item.size,
                    offset=item.offset,
                )
                for item in dex.map_list
            ]
            if self._config.decoder.validate_map:
                report.diagnostics.extend(dex.validate_map())
        except DexError as exc:
            self._logger.warning("Map list rejected: %s", exc)
            report.diagnostics.append(
                Diagnostic.error(
                    "map.invalid",
                    str(exc),
                    offset=exc.offset,
                    context={"error": type(exc).__name__},
                )
            )

    def _find_class(
        self, dex: DexFile, descriptor: str, report: InspectionReport
    ) -> Optional[DexClass]:
        try:
            cls = dex.find_class_by_name(descriptor)
        except DexError as exc:
            report.diagnostics.append(
                Diagnostic.error("class.lookup_failed", str(exc), offset=exc.offset)
            )
            return None
        if cls is None:
            report.diagnostics.append(
                Diagnostic.error(
                    "class.not_found",
                    f"no class {descriptor} in this file",
                    context={"descriptor": descriptor},
                )
            )
        return cls

    def _inspect_class_at(
        self, dex: DexFile, index: int, report: InspectionReport, disassemble: bool
    ) -> None:
        try:
            cls = dex.class_at(index)
        except DexError as exc:
            self._class_failed(report, index, None, exc)
            return
        self._inspect_class(cls, report, disassemble)

    def _inspect_class(
        self, cls: DexClass, report: InspectionReport, disassemble: bool
    ) -> None:
        index = cls.definition.index
        descriptor: Optional[str] = None
        try:
            descriptor = cls.descriptor
            self._logger.debug("Decoding class %d %s", index, descriptor)
            superclass = cls.superclass
            summary = ClassSummary(
                index=index,
                descriptor=descriptor,
                access_flags=flag_names(cls.access_flags),
                superclass=superclass.descriptor if superclass else None,
                interfaces=[t.descriptor for t in cls.interfaces],
                source_file=cls.source_file,
                static_fields=[_field_summary(f) for f in cls.static_fields],
                instance_fields=[_field_summary(f) for f in cls.instance_fields],
                direct_methods=[
                    _method_summary(m, disassemble) for m in cls.direct_methods
                ],
                virtual_methods=[
                    _method_summary(m, disassemble) for m in cls.virtual_methods
                ],
            )
        except DexError as exc:
            self._class_failed(report, index, descriptor, exc)
            return
        report.classes.append(summary)

    def _class_failed(
        self,
        report: InspectionReport,
        index: int,
        descriptor: Optional[str],
        exc: DexError,
    ) -> None:
        label = descriptor or f"#{index}"
        self._logger.warning(
            "Class %s failed: %s", label, exc, class_index=index
        )
        report.diagnostics.append(
            Diagnostic.error(
                "class.decode_failed",
                f"{label}: {exc}",
                offset=exc.offset,
                context={
                    "class_index": index,
                    "descriptor": descriptor,
                    "error": type(exc).__name__,
                },
            )
        )

    def _inspect_strings(self, dex: DexFile, report: InspectionReport) -> None:
        with self._logger.operation("decode_strings"):
            for index in range(len(dex.strings)):
                try:
                    report.strings.append(dex.get_string(index))
                except DexError as exc:
                    report.diagnostics.append(
                        Diagnostic.error(
                            "string.decode_failed",
                            f"string {index}: {exc}",
                            offset=exc.offset,
                            context={"string_index": index},
                        )
                    )


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def _field_summary(field: DexField) -> FieldSummary:
    return FieldSummary(
        name=field.name,
        type=field.type.descriptor,
        access_flags=flag_names(field.access_flags),
    )


def _method_summary(method: DexMethod, disassemble: bool) -> MethodSummary:
    code = method.code()
    summary = MethodSummary(
        name=method.name,
        descriptor=method.prototype.descriptor,
        access_flags=flag_names(method.access_flags),
        code_off=method.code_off,
    )
    if code is not None:
        summary.registers_size = code.registers_size
        summary.insns_size = code.insns_size
        summary.tries_size = code.tries_size
        if disassemble:
            summary.instructions = list(method.instructions())
    return summary
