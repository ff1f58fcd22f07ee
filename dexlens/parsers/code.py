"""
Dex Code Item Parser
=====================

Decodes a method's ``code_item``::

    u16 registers_size
    u16 ins_size
    u16 outs_size
    u16 tries_size
    u32 debug_info_off        0 if none
    u32 insns_size            in 16-bit code units
    u16 insns[insns_size]
    u16 padding               only if tries_size != 0 and insns_size is odd
    try_item tries[tries_size]
    encoded_catch_handler_list handlers   only if tries_size != 0

Each ``encoded_catch_handler`` starts with an SLEB128 ``size``.  A
non-positive size means the handler ends with a catch-all address and
``-size`` typed clauses precede it.

References:
    - Google. (2024). DEX Format: code_item, try_item,
      encoded_catch_handler_list.
      https://source.android.com/docs/core/runtime/dex-format#code-item
"""

from __future__ import annotations

from dexlens.core.errors import MalformedItemError
from dexlens.core.models import (
    CodeItem,
    EncodedCatchHandler,
    TryItem,
    TypeAddrPair,
)
from dexlens.core.source import ByteSource
from dexlens.parsers.primitives import decode_sleb128, decode_uleb128

CODE_ITEM_HEADER_SIZE: int = 16
TRY_ITEM_SIZE: int = 8


def parse_code_item(source: ByteSource, offset: int) -> CodeItem:
    """Decode the ``code_item`` at *offset*.

    Raises:
        OutOfBoundsError: The item runs past the end of the buffer.
        MalformedItemError: A ``try_item`` references no decoded handler, or
            a handler count cannot fit in the remaining bytes.
    """
    (
        registers_size, ins_size, outs_size, tries_size,
    ) = source.u16_array(offset, 4)
    debug_info_off = source.u32(offset + 8)
    insns_size = source.u32(offset + 12)

    insns_off = offset + CODE_ITEM_HEADER_SIZE
    insns = source.u16_array(insns_off, insns_size)
    pos = insns_off + insns_size * 2

    tries: list[TryItem] = []
    handlers: list[EncodedCatchHandler] = []
    if tries_size:
        if insns_size % 2:
            pos += 2
        source.check(pos, tries_size * TRY_ITEM_SIZE)
        for i in range(tries_size):
            entry = pos + i * TRY_ITEM_SIZE
            start_addr = source.u32(entry)
            insn_count, handler_off = source.u16_array(entry + 4, 2)
            tries.append(
                TryItem(
                    start_addr=start_addr,
                    insn_count=insn_count,
                    handler_off=handler_off,
                )
            )
        pos += tries_size * TRY_ITEM_SIZE
        handlers, pos = parse_catch_handler_list(source, pos)

        known = {handler.offset for handler in handlers}
        for try_item in tries:
            if try_item.handler_off not in known:
                raise MalformedItemError(
                    f"try_item handler_off 0x{try_item.handler_off:x} "
                    "does not start a catch handler",
                    offset=offset,
                )

    return CodeItem(
        offset=offset,
        registers_size=registers_size,
        ins_size=ins_size,
        outs_size=outs_size,
        tries_size=tries_size,
        debug_info_off=debug_info_off or None,
        insns_size=insns_size,
        insns=insns,
        tries=tries,
        handlers=handlers,
        size=pos - offset,
    )


def parse_catch_handler_list(
    source: ByteSource, offset: int
) -> tuple[list[EncodedCatchHandler], int]:
    """Decode an ``encoded_catch_handler_list`` starting at *offset*.

    Handler offsets are recorded relative to *offset*, which is how
    ``try_item.handler_off`` refers to them.

    Returns:
        ``(handlers, end_offset)``.
    """
    count, size = decode_uleb128(source, offset)
    pos = offset + size
    # Every handler takes at least two bytes.
    if count * 2 > source.size - pos:
        raise MalformedItemError(
            f"catch handler count {count} exceeds remaining data", offset=offset
        )
    handlers: list[EncodedCatchHandler] = []
    for _ in range(count):
        handler, pos = parse_catch_handler(source, pos, base=offset)
        handlers.append(handler)
    return handlers, pos


def parse_catch_handler(
    source: ByteSource, offset: int, *, base: int
) -> tuple[EncodedCatchHandler, int]:
    """Decode one ``encoded_catch_handler``; returns ``(handler, end_offset)``."""
    handler_size, size = decode_sleb128(source, offset)
    pos = offset + size
    typed = abs(handler_size)
    if typed * 2 > source.size - pos:
        raise MalformedItemError(
            f"catch handler declares {typed} clause(s) past end of data",
            offset=offset,
        )

    pairs: list[TypeAddrPair] = []
    for _ in range(typed):
        type_idx, size = decode_uleb128(source, pos)
        pos += size
        addr, size = decode_uleb128(source, pos)
        pos += size
        pairs.append(TypeAddrPair(type_idx=type_idx, addr=addr))

    catch_all_addr = None
    if handler_size <= 0:
        catch_all_addr, size = decode_uleb128(source, pos)
        pos += size

    return (
        EncodedCatchHandler(
            offset=offset - base, handlers=pairs, catch_all_addr=catch_all_addr
        ),
        pos,
    )
