"""
Dalvik Instruction Decoder
===========================

Structural decoder for the 16-bit code-unit stream of a ``code_item``.

Every opcode maps to a mnemonic and an instruction *format*.  The format id
names the instruction length in code units, the register count and the
kind of extra operand, e.g. ``35c`` is 3 units, up to 5 registers, constant
pool index.  Operand fields are named by the letters used in the format
description (``A``, ``B``, ``C`` ...); invoke-style formats also expose the
decoded ``registers`` list.

The three payload pseudo-instructions (``packed-switch-payload``,
``sparse-switch-payload``, ``fill-array-data-payload``) are recognised by
their identifying ``nop`` code unit and decoded in full.

Only structure is decoded; no semantics are attached.

References:
    - Google. (2024). Dalvik bytecode format.
      https://source.android.com/docs/core/runtime/dalvik-bytecode
    - Google. (2024). Dalvik executable instruction formats.
      https://source.android.com/docs/core/runtime/instruction-formats
"""

from __future__ import annotations

import struct
from typing import Any, Callable, Iterator, Sequence

from dexlens.core.errors import MalformedItemError
from dexlens.core.models import Instruction

PACKED_SWITCH_PAYLOAD: int = 0x0100
SPARSE_SWITCH_PAYLOAD: int = 0x0200
FILL_ARRAY_DATA_PAYLOAD: int = 0x0300


# ---------------------------------------------------------------------------
# Sign helpers
# ---------------------------------------------------------------------------

def _s4(value: int) -> int:
    return value - 0x10 if value & 0x8 else value


def _s8(value: int) -> int:
    return value - 0x100 if value & 0x80 else value


def _s16(value: int) -> int:
    return value - 0x10000 if value & 0x8000 else value


def _u32(lo: int, hi: int) -> int:
    return lo | (hi << 16)


def _s32(lo: int, hi: int) -> int:
    value = _u32(lo, hi)
    return value - (1 << 32) if value & 0x80000000 else value


# ---------------------------------------------------------------------------
# Formats: name -> (length in code units, field decoder)
# ---------------------------------------------------------------------------

Units = Sequence[int]


def _f10x(u: Units) -> dict[str, Any]:
    return {}


def _f12x(u: Units) -> dict[str, Any]:
    return {"A": (u[0] >> 8) & 0xF, "B": u[0] >> 12}


def _f11n(u: Units) -> dict[str, Any]:
    return {"A": (u[0] >> 8) & 0xF, "B": _s4(u[0] >> 12)}


def _f11x(u: Units) -> dict[str, Any]:
    return {"A": u[0] >> 8}


def _f10t(u: Units) -> dict[str, Any]:
    return {"A": _s8(u[0] >> 8)}


def _f20t(u: Units) -> dict[str, Any]:
    return {"A": _s16(u[1])}


def _f22x(u: Units) -> dict[str, Any]:
    return {"A": u[0] >> 8, "B": u[1]}


def _f21s(u: Units) -> dict[str, Any]:
    return {"A": u[0] >> 8, "B": _s16(u[1])}


def _f21c(u: Units) -> dict[str, Any]:
    return {"A": u[0] >> 8, "B": u[1]}


def _f23x(u: Units) -> dict[str, Any]:
    return {"A": u[0] >> 8, "B": u[1] & 0xFF, "C": u[1] >> 8}


def _f22b(u: Units) -> dict[str, Any]:
    return {"A": u[0] >> 8, "B": u[1] & 0xFF, "C": _s8(u[1] >> 8)}


def _f22s(u: Units) -> dict[str, Any]:
    return {"A": (u[0] >> 8) & 0xF, "B": u[0] >> 12, "C": _s16(u[1])}


def _f22c(u: Units) -> dict[str, Any]:
    return {"A": (u[0] >> 8) & 0xF, "B": u[0] >> 12, "C": u[1]}


def _f32x(u: Units) -> dict[str, Any]:
    return {"A": u[1], "B": u[2]}


def _f30t(u: Units) -> dict[str, Any]:
    return {"A": _s32(u[1], u[2])}


def _f31i(u: Units) -> dict[str, Any]:
    return {"A": u[0] >> 8, "B": _s32(u[1], u[2])}


def _f31c(u: Units) -> dict[str, Any]:
    return {"A": u[0] >> 8, "B": _u32(u[1], u[2])}


def _f35c(u: Units) -> dict[str, Any]:
    count = u[0] >> 12
    fields = {
        "A": count,
        "B": u[1],
        "C": u[2] & 0xF,
        "D": (u[2] >> 4) & 0xF,
        "E": (u[2] >> 8) & 0xF,
        "F": u[2] >> 12,
        "G": (u[0] >> 8) & 0xF,
    }
    fields["registers"] = [fields[k] for k in "CDEFG"[:count]]
    return fields


def _f3rc(u: Units) -> dict[str, Any]:
    count = u[0] >> 8
    return {
        "A": count,
        "B": u[1],
        "C": u[2],
        "registers": list(range(u[2], u[2] + count)),
    }


def _f45cc(u: Units) -> dict[str, Any]:
    fields = _f35c(u)
    fields["H"] = u[3]
    return fields


def _f4rcc(u: Units) -> dict[str, Any]:
    fields = _f3rc(u)
    fields["H"] = u[3]
    return fields


def _f51l(u: Units) -> dict[str, Any]:
    raw = u[1] | (u[2] << 16) | (u[3] << 32) | (u[4] << 48)
    return {"A": u[0] >> 8, "B": raw - (1 << 64) if raw >> 63 else raw}


FORMATS: dict[str, tuple[int, Callable[[Units], dict[str, Any]]]] = {
    "10x": (1, _f10x),
    "12x": (1, _f12x),
    "11n": (1, _f11n),
    "11x": (1, _f11x),
    "10t": (1, _f10t),
    "20t": (2, _f20t),
    "22x": (2, _f22x),
    "21t": (2, _f21s),
    "21s": (2, _f21s),
    "21h": (2, _f21s),
    "21c": (2, _f21c),
    "23x": (2, _f23x),
    "22b": (2, _f22b),
    "22t": (2, _f22s),
    "22s": (2, _f22s),
    "22c": (2, _f22c),
    "32x": (3, _f32x),
    "30t": (3, _f30t),
    "31t": (3, _f31i),
    "31i": (3, _f31i),
    "31c": (3, _f31c),
    "35c": (3, _f35c),
    "3rc": (3, _f3rc),
    "45cc": (4, _f45cc),
    "4rcc": (4, _f4rcc),
    "51l": (5, _f51l),
}


# ---------------------------------------------------------------------------
# Opcode table
# ---------------------------------------------------------------------------

def _build_opcode_table() -> list[tuple[str, str]]:
    table = [(f"unused-{op:02x}", "10x") for op in range(256)]

    def put(first: int, fmt: str, *names: str) -> None:
        for i, name in enumerate(names):
            table[first + i] = (name, fmt)

    put(0x00, "10x", "nop")
    put(0x01, "12x", "move")
    put(0x02, "22x", "move/from16")
    put(0x03, "32x", "move/16")
    put(0x04, "12x", "move-wide")
    put(0x05, "22x", "move-wide/from16")
    put(0x06, "32x", "move-wide/16")
    put(0x07, "12x", "move-object")
    put(0x08, "22x", "move-object/from16")
    put(0x09, "32x", "move-object/16")
    put(0x0A, "11x", "move-result", "move-result-wide", "move-result-object",
        "move-exception")
    put(0x0E, "10x", "return-void")
    put(0x0F, "11x", "return", "return-wide", "return-object")
    put(0x12, "11n", "const/4")
    put(0x13, "21s", "const/16")
    put(0x14, "31i", "const")
    put(0x15, "21h", "const/high16")
    put(0x16, "21s", "const-wide/16")
    put(0x17, "31i", "const-wide/32")
    put(0x18, "51l", "const-wide")
    put(0x19, "21h", "const-wide/high16")
    put(0x1A, "21c", "const-string")
    put(0x1B, "31c", "const-string/jumbo")
    put(0x1C, "21c", "const-class")
    put(0x1D, "11x", "monitor-enter", "monitor-exit")
    put(0x1F, "21c", "check-cast")
    put(0x20, "22c", "instance-of")
    put(0x21, "12x", "array-length")
    put(0x22, "21c", "new-instance")
    put(0x23, "22c", "new-array")
    put(0x24, "35c", "filled-new-array")
    put(0x25, "3rc", "filled-new-array/range")
    put(0x26, "31t", "fill-array-data")
    put(0x27, "11x", "throw")
    put(0x28, "10t", "goto")
    put(0x29, "20t", "goto/16")
    put(0x2A, "30t", "goto/32")
    put(0x2B, "31t", "packed-switch", "sparse-switch")
    put(0x2D, "23x", "cmpl-float", "cmpg-float", "cmpl-double", "cmpg-double",
        "cmp-long")
    put(0x32, "22t", "if-eq", "if-ne", "if-lt", "if-ge", "if-gt", "if-le")
    put(0x38, "21t", "if-eqz", "if-nez", "if-ltz", "if-gez", "if-gtz", "if-lez")

    kinds = ("", "-wide", "-object", "-boolean", "-byte", "-char", "-short")
    put(0x44, "23x", *(f"aget{k}" for k in kinds), *(f"aput{k}" for k in kinds))
    put(0x52, "22c", *(f"iget{k}" for k in kinds), *(f"iput{k}" for k in kinds))
    put(0x60, "21c", *(f"sget{k}" for k in kinds), *(f"sput{k}" for k in kinds))

    invokes = ("virtual", "super", "direct", "static", "interface")
    put(0x6E, "35c", *(f"invoke-{k}" for k in invokes))
    put(0x74, "3rc", *(f"invoke-{k}/range" for k in invokes))

    put(0x7B, "12x",
        "neg-int", "not-int", "neg-long", "not-long", "neg-float", "neg-double",
        "int-to-long", "int-to-float", "int-to-double",
        "long-to-int", "long-to-float", "long-to-double",
        "float-to-int", "float-to-long", "float-to-double",
        "double-to-int", "double-to-long", "double-to-float",
        "int-to-byte", "int-to-char", "int-to-short")

    int_ops = ("add", "sub", "mul", "div", "rem", "and", "or", "xor",
               "shl", "shr", "ushr")
    float_ops = ("add", "sub", "mul", "div", "rem")
    binops = (
        [f"{op}-int" for op in int_ops]
        + [f"{op}-long" for op in int_ops]
        + [f"{op}-float" for op in float_ops]
        + [f"{op}-double" for op in float_ops]
    )
    put(0x90, "23x", *binops)
    put(0xB0, "12x", *(f"{name}/2addr" for name in binops))

    put(0xD0, "22s", "add-int/lit16", "rsub-int", "mul-int/lit16",
        "div-int/lit16", "rem-int/lit16", "and-int/lit16", "or-int/lit16",
        "xor-int/lit16")
    put(0xD8, "22b", "add-int/lit8", "rsub-int/lit8", "mul-int/lit8",
        "div-int/lit8", "rem-int/lit8", "and-int/lit8", "or-int/lit8",
        "xor-int/lit8", "shl-int/lit8", "shr-int/lit8", "ushr-int/lit8")

    put(0xFA, "45cc", "invoke-polymorphic")
    put(0xFB, "4rcc", "invoke-polymorphic/range")
    put(0xFC, "35c", "invoke-custom")
    put(0xFD, "3rc", "invoke-custom/range")
    put(0xFE, "21c", "const-method-handle")
    put(0xFF, "21c", "const-method-type")
    return table


OPCODES: list[tuple[str, str]] = _build_opcode_table()


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------

def _payload(insns: Sequence[int], address: int) -> tuple[str, int, dict[str, Any]]:
    ident = insns[address]
    if address + 1 >= len(insns):
        raise MalformedItemError(f"truncated payload at address {address}")
    size = insns[address + 1]

    if ident == PACKED_SWITCH_PAYLOAD:
        length = 4 + size * 2
        _require(insns, address, length)
        body = insns[address + 2:address + length]
        first_key = _s32(body[0], body[1])
        targets = [_s32(body[i], body[i + 1]) for i in range(2, len(body), 2)]
        return "packed-switch-payload", length, {
            "size": size, "first_key": first_key, "targets": targets,
        }

    if ident == SPARSE_SWITCH_PAYLOAD:
        length = 2 + size * 4
        _require(insns, address, length)
        body = insns[address + 2:address + length]
        words = [_s32(body[i], body[i + 1]) for i in range(0, len(body), 2)]
        return "sparse-switch-payload", length, {
            "size": size, "keys": words[:size], "targets": words[size:],
        }

    _require(insns, address, 4)
    element_width = size
    count = _u32(insns[address + 2], insns[address + 3])
    data_bytes = element_width * count
    length = 4 + (data_bytes + 1) // 2
    _require(insns, address, length)
    raw = struct.pack(f"<{length - 4}H", *insns[address + 4:address + length])
    return "fill-array-data-payload", length, {
        "element_width": element_width,
        "size": count,
        "data": raw[:data_bytes].hex(),
    }


def _require(insns: Sequence[int], address: int, length: int) -> None:
    if address + length > len(insns):
        raise MalformedItemError(
            f"instruction at address {address} needs {length} code unit(s), "
            f"{len(insns) - address} remain"
        )


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

def decode_instruction(insns: Sequence[int], address: int) -> Instruction:
    """Decode the instruction starting at code unit *address*.

    Raises:
        MalformedItemError: The instruction extends past the end of *insns*.
    """
    unit = insns[address]
    opcode = unit & 0xFF
    if opcode == 0x00 and unit in (
        PACKED_SWITCH_PAYLOAD, SPARSE_SWITCH_PAYLOAD, FILL_ARRAY_DATA_PAYLOAD
    ):
        mnemonic, length, fields = _payload(insns, address)
        return Instruction(
            address=address,
            opcode=opcode,
            mnemonic=mnemonic,
            format="payload",
            length=length,
            operands={"payload": fields},
        )

    mnemonic, fmt = OPCODES[opcode]
    length, decoder = FORMATS[fmt]
    _require(insns, address, length)
    return Instruction(
        address=address,
        opcode=opcode,
        mnemonic=mnemonic,
        format=fmt,
        length=length,
        operands=decoder(insns[address:address + length]),
    )


def decode_instructions(insns: Sequence[int]) -> Iterator[Instruction]:
    """Lazily decode every instruction of a method body in address order."""
    address = 0
    while address < len(insns):
        instruction = decode_instruction(insns, address)
        yield instruction
        address += instruction.length
