"""Shared fixtures: a small three-class Dex image and its decoded file."""

from __future__ import annotations

from pathlib import Path

import pytest

from dexbuilder import (
    ClassDef,
    Code,
    Debug,
    DexBuilder,
    FieldDef,
    Handler,
    Image,
    MethodDef,
    Try,
)
from dexlens.core.dex import DexFile
from dexlens.core.models import (
    ClassAccessFlags as C,
    FieldAccessFlags as F,
    MethodAccessFlags as M,
)

MAIN = "Lcom/example/Main;"
SHAPE = "Lcom/example/Shape;"
EMPTY = "Lcom/example/Empty;"

# main(): line 10 -> prologue, special(+1 line), special(+1 line, +2 addr), end
MAIN_DEBUG_PROGRAM = bytes([0x07, 0x0F, 0x2D, 0x00])


def build_sample() -> DexBuilder:
    builder = DexBuilder()
    builder.add_class(ClassDef(
        descriptor=MAIN,
        access_flags=int(C.PUBLIC),
        interfaces=["Ljava/lang/Runnable;"],
        source_file="Main.java",
        static_fields=[
            FieldDef("COUNT", "I", int(F.PUBLIC | F.STATIC | F.FINAL)),
        ],
        instance_fields=[
            FieldDef("name", "Ljava/lang/String;", int(F.PRIVATE)),
        ],
        direct_methods=[
            MethodDef(
                "<init>",
                access_flags=int(M.PUBLIC | M.CONSTRUCTOR),
                # invoke-direct {v0}, meth@0 ; return-void
                code=Code(
                    insns=[0x1070, 0x0000, 0x0000, 0x000E],
                    registers_size=1, ins_size=1, outs_size=1,
                ),
            ),
            MethodDef(
                "main",
                parameters=["[Ljava/lang/String;"],
                access_flags=int(M.PUBLIC | M.STATIC),
                # const/4 v0, #1 ; const-string v1, string@0 ; return-void
                code=Code(
                    insns=[0x1012, 0x011A, 0x0000, 0x000E],
                    registers_size=2, ins_size=1,
                    tries=[Try(start_addr=0, insn_count=3, handler=0)],
                    handlers=[Handler(catches=[("Ljava/lang/Exception;", 3)])],
                    debug=Debug(
                        line_start=10,
                        parameter_names=["args"],
                        program=MAIN_DEBUG_PROGRAM,
                    ),
                ),
            ),
        ],
        virtual_methods=[
            MethodDef(
                "run",
                access_flags=int(M.PUBLIC),
                # odd insns_size with a try block: padded before try_items
                code=Code(
                    insns=[0x1012, 0x000E, 0x000E],
                    registers_size=1, ins_size=1,
                    tries=[Try(start_addr=0, insn_count=1, handler=0)],
                    handlers=[Handler(catch_all=2)],
                ),
            ),
        ],
        # encoded_array: one INT value 42
        static_values=bytes([0x01, 0x04, 0x2A]),
    ))
    builder.add_class(ClassDef(
        descriptor=SHAPE,
        access_flags=int(C.PUBLIC | C.INTERFACE | C.ABSTRACT),
        virtual_methods=[
            MethodDef("area", return_type="D", access_flags=int(M.PUBLIC | M.ABSTRACT)),
        ],
    ))
    builder.add_class(ClassDef(descriptor=EMPTY, superclass=None))
    return builder


@pytest.fixture
def sample_builder() -> DexBuilder:
    return build_sample()


@pytest.fixture
def sample_image(sample_builder: DexBuilder) -> Image:
    return sample_builder.build()


@pytest.fixture
def dex(sample_image: Image):
    dex_file = DexFile(sample_image.data)
    yield dex_file
    dex_file.close()


@pytest.fixture
def dex_path(tmp_path: Path, sample_image: Image) -> Path:
    path = tmp_path / "classes.dex"
    path.write_bytes(sample_image.data)
    return path
