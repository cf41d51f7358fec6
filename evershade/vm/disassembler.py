"""Instruction reader for script bytecode.

The reader only splits words into opcodes and operands; it has no notion of
the stack or of typed values.  :mod:`evershade.vm.decompiler` drives it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..exceptions import TruncatedInstructionStream
from .opcodes import EXTENDED_OPCODES, U24_OPCODES, OpCode, combine_u24, decode_word, opcode_name
from .values import TypedValue

LOGGER = logging.getLogger(__name__)


@dataclass
class Operation:
    """One decoded instruction, extension word included."""

    index: int
    raw: int
    opcode: int
    reg_value: int
    reg_value_ex: int = 0
    extended: bool = False
    decoded_value: Optional[TypedValue] = None

    @property
    def name(self) -> str:
        return opcode_name(self.opcode)

    @property
    def operand(self) -> int:
        if self.opcode in U24_OPCODES:
            return combine_u24(self.reg_value, self.reg_value_ex)
        return self.reg_value

    @property
    def word_count(self) -> int:
        return 2 if self.extended else 1

    def words(self) -> List[int]:
        if self.extended:
            return [self.raw, self.reg_value_ex]
        return [self.raw]

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "index": self.index,
            "raw": self.raw,
            "opcode": self.opcode,
            "name": self.name,
            "reg_value": self.reg_value,
        }
        if self.extended:
            payload["reg_value_ex"] = self.reg_value_ex
        if self.decoded_value is not None:
            payload["decoded_value"] = self.decoded_value.as_dict()
        return payload


class InstructionReader:
    """Random access decoder over the code section of a script module."""

    def __init__(self, code: bytes) -> None:
        self.code = bytes(code)

    @property
    def word_count(self) -> int:
        return len(self.code) // 2

    def word(self, position: int) -> int:
        if position < 0 or position >= self.word_count:
            raise TruncatedInstructionStream(
                f"code section ends at word {self.word_count}, needed word {position}",
                position=position,
            )
        return int.from_bytes(self.code[position * 2:position * 2 + 2], "little")

    def read(self, position: int) -> Operation:
        raw = self.word(position)
        opcode, reg_value = decode_word(raw)
        operation = Operation(index=position, raw=raw, opcode=opcode, reg_value=reg_value)
        if opcode in EXTENDED_OPCODES:
            operation.extended = True
            operation.reg_value_ex = self.word(position + 1)
        return operation


def disassemble(code: bytes, start: int = 0, *, stop_at_end: bool = True) -> List[Operation]:
    """Linear listing from word ``start``; a trailing partial instruction is dropped."""

    reader = InstructionReader(code)
    position = start
    operations: List[Operation] = []
    while position < reader.word_count:
        try:
            operation = reader.read(position)
        except TruncatedInstructionStream:
            LOGGER.debug("dangling extended instruction at word %d", position)
            break
        operations.append(operation)
        position += operation.word_count
        if stop_at_end and operation.opcode == OpCode.END:
            break
    return operations


def format_operation(operation: Operation) -> str:
    text = f"{operation.index:04X}: {operation.name} {operation.operand}"
    if operation.extended and operation.opcode not in U24_OPCODES:
        text += f" ex={operation.reg_value_ex}"
    if operation.decoded_value is not None:
        text += f"  ; {operation.decoded_value.render()}"
    return text


__all__ = ["InstructionReader", "Operation", "disassemble", "format_operation"]
