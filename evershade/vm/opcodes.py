"""Opcode and command identifiers of the script bytecode.

Every instruction is a little-endian 16-bit word: the upper six bits select
the opcode and the lower ten bits carry the operand.  A handful of opcodes
read a second word that supplies the low half of a 24-bit operand.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Tuple

OPCODE_SHIFT = 10
OPERAND_MASK = 0xFFFF03FF
OPERAND_LIMIT = 1 << OPCODE_SHIFT


class OpCode(IntEnum):
    READ = 0x00
    READ_U24 = 0x01
    STRING_OFFSET = 0x02
    STRING_OFFSETU24 = 0x03
    SET = 0x04
    JUMP1 = 0x05
    JUMP2 = 0x06
    CMD = 0x07
    CMD_U24 = 0x08
    NOOP = 0x0A
    RUN = 0x0B
    END = 0x0C
    PTR = 0x0E
    MOV_8 = 0x10
    MOV_4 = 0x11
    SET_FUNC_HASH = 0x14
    SHIFT_PTR = 0x15
    SHIFT_PTR_U24 = 0x16
    MOV_EX = 0x1D


class CommandId(IntEnum):
    LIST_ITEM = 21
    BOOL = 57
    LIST_ADD = 434
    MATRIX4X4 = 560
    VEC4 = 821
    VEC3 = 824


EXTENDED_OPCODES = frozenset(
    {
        OpCode.READ_U24,
        OpCode.STRING_OFFSETU24,
        OpCode.JUMP1,
        OpCode.JUMP2,
        OpCode.CMD_U24,
        OpCode.SHIFT_PTR_U24,
        OpCode.MOV_EX,
    }
)

# Opcodes whose extension word widens the operand to 24 bits.
U24_OPCODES = frozenset(
    {
        OpCode.READ_U24,
        OpCode.STRING_OFFSETU24,
        OpCode.CMD_U24,
        OpCode.SHIFT_PTR_U24,
    }
)


def decode_word(word: int) -> Tuple[int, int]:
    """Split an instruction word into ``(opcode, reg_value)``."""

    return word >> OPCODE_SHIFT, word & OPERAND_MASK


def encode_word(opcode: int, value: int) -> int:
    if value >= OPERAND_LIMIT or value < 0:
        raise ValueError(f"operand {value} does not fit in {OPCODE_SHIFT} bits")
    return ((opcode << OPCODE_SHIFT) | value) & 0xFFFF


def combine_u24(reg_value: int, extension: int) -> int:
    return reg_value * 0x10000 + extension


def split_u24(value: int) -> Tuple[int, int]:
    """Inverse of :func:`combine_u24`: ``(reg_value, extension)``."""

    reg_value, extension = divmod(value, 0x10000)
    if reg_value >= OPERAND_LIMIT:
        raise ValueError(f"operand {value} does not fit in 26 bits")
    return reg_value, extension


def opcode_name(opcode: int) -> str:
    try:
        return OpCode(opcode).name
    except ValueError:
        return f"OP_0x{opcode:02X}"


__all__ = [
    "CommandId",
    "EXTENDED_OPCODES",
    "OPERAND_LIMIT",
    "OpCode",
    "U24_OPCODES",
    "combine_u24",
    "decode_word",
    "encode_word",
    "opcode_name",
    "split_u24",
]
