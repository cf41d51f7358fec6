"""Stack machine that turns script bytecode into typed variables.

Control flow is not modelled: the decoder walks instructions linearly from a
function's start index until ``END`` or the end of the code section.  Values
are pushed by ``READ``/``SET``/``STRING_OFFSET`` and consumed by ``CMD`` and
``MOV_8``, which record a :class:`~evershade.script.model.Variable` at the
current struct pointer.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Container, Dict, List, Optional, Sequence, Tuple

from ..exceptions import TruncatedInstructionStream, UnsupportedMoveWidth
from ..logging_config import TRACE_LOGGER_NAME
from ..script.model import Function, Statement, StatementKind, Variable
from ..utils_pkg.byteops import f32_from_bits, read_cstring
from .disassembler import InstructionReader, Operation, format_operation
from .opcodes import CommandId, OpCode
from .state import StackItem, VMState
from .values import SourceKind, TypedValue, ValueKind, ValueSource

LOGGER = logging.getLogger(__name__)
TRACE = logging.getLogger(TRACE_LOGGER_NAME)

HASH_MAGNITUDE_LIMIT = 100000.0
MOVE_WIDTHS = (1, 2, 4)

_TYPED_COMMANDS = {
    CommandId.VEC3: (3, TypedValue.vec3),
    CommandId.VEC4: (4, TypedValue.vec4),
    CommandId.MATRIX4X4: (16, TypedValue.matrix4x4),
}


class KnownHashes:
    """Membership view over several hash collections."""

    def __init__(self, *tables: Container[int]) -> None:
        self.tables = tables

    def __contains__(self, value: object) -> bool:
        return any(value in table for table in self.tables)


def classify_pool_word(word: int, known_hashes: Container[int] = ()) -> TypedValue:
    """Decide whether a data pool slot holds a hash/integer or a float.

    Known hashes, NaN/infinite patterns and magnitudes strictly above
    100000.0 stay integers; everything else is read as float32.
    """

    word &= 0xFFFFFFFF
    if word in known_hashes:
        return TypedValue.uint(word)
    value = f32_from_bits(word)
    if math.isnan(value) or math.isinf(value) or abs(value) > HASH_MAGNITUDE_LIMIT:
        return TypedValue.uint(word)
    return TypedValue(ValueKind.FLOAT, value)


@dataclass(frozen=True)
class ScriptImage:
    """Immutable pools shared by every function of a module."""

    data_pool: Tuple[int, ...]
    code: bytes
    strings: bytes = b""
    known_hashes: Container[int] = ()

    def string_at(self, offset: int) -> str:
        return read_cstring(self.strings, offset)


Handler = Callable[["FunctionDecompiler", Operation], None]


class FunctionDecompiler:
    """Decode one function of a :class:`ScriptImage`."""

    def __init__(self, image: ScriptImage, function: Function) -> None:
        self.image = image
        self.function = function
        self.reader = InstructionReader(image.code)
        self.state = VMState()

    # ------------------------------------------------------------------
    def step(self) -> Operation:
        state = self.state
        operation = self.reader.read(state.ip)
        self.function.operations.append(operation)
        TRACE.debug("%s sp=%d depth=%d", format_operation(operation), state.struct_pointer, len(state.stack))
        handler = OPCODE_HANDLERS.get(operation.opcode, _handle_opaque)
        handler(self, operation)
        state.ip += operation.word_count
        return operation

    # ------------------------------------------------------------------
    def run(self) -> Function:
        function = self.function
        function.reset()
        self.state = VMState(ip=function.code_start_index)
        try:
            while not self.state.halted:
                self.step()
        except TruncatedInstructionStream as exc:
            exc.function_hash = function.name_hash
            function.truncated = True
            function.error = exc
            LOGGER.warning("function %s is truncated: %s", function.name or f"0x{function.name_hash:08X}", exc)
        except UnsupportedMoveWidth as exc:
            exc.function_hash = function.name_hash
            function.error = exc
            LOGGER.warning("function %s stopped: %s", function.name or f"0x{function.name_hash:08X}", exc)
        return function

    # -- helpers ---------------------------------------------------------
    def store(
        self,
        value: TypedValue,
        sources: Sequence[Optional[ValueSource]],
        position: int,
        command: Optional[int] = None,
    ) -> None:
        variable = Variable(
            struct_offset=self.state.struct_pointer,
            value=value,
            command=command,
            sources=tuple(sources),
            position=position,
        )
        self.function.record(variable)


def decompile_function(function: Function, image: ScriptImage) -> Function:
    """Regenerate ``function.operations``/``variables`` from ``image``."""

    return FunctionDecompiler(image, function).run()


# ----------------------------------------------------------------------
# Handlers


def _push_pool_slot(vm: FunctionDecompiler, operation: Operation, index: int) -> None:
    pool = vm.image.data_pool
    if index >= len(pool):
        LOGGER.debug("pool index %d out of range (%d slot(s)) at word %d", index, len(pool), operation.index)
        return
    value = classify_pool_word(pool[index], vm.image.known_hashes)
    operation.decoded_value = value
    vm.state.push(value, ValueSource(SourceKind.POOL, index))


def _handle_read(vm: FunctionDecompiler, operation: Operation) -> None:
    _push_pool_slot(vm, operation, operation.operand)


def _handle_string(vm: FunctionDecompiler, operation: Operation) -> None:
    offset = operation.operand
    value = TypedValue.string(vm.image.string_at(offset))
    operation.decoded_value = value
    vm.state.push(value, ValueSource(SourceKind.STRING, offset))


def _handle_set(vm: FunctionDecompiler, operation: Operation) -> None:
    vm.state.push(TypedValue.uint(operation.operand), ValueSource(SourceKind.LITERAL, operation.index))


def _handle_cmd(vm: FunctionDecompiler, operation: Operation) -> None:
    command = operation.operand
    items = vm.state.drain()
    sources = [item.source for item in items]
    value = _command_value(command, items)
    if value is None:
        vm.store(TypedValue.list_(item.value for item in items), sources, operation.index, command=command)
    else:
        vm.store(value, sources, operation.index)


def _command_value(command: int, items: List[StackItem]) -> Optional[TypedValue]:
    if not all(item.value.is_numeric for item in items):
        return None
    if command == CommandId.BOOL:
        if len(items) != 1:
            return None
        return TypedValue.boolean(items[0].value.value == 1)
    typed = _TYPED_COMMANDS.get(command)
    if typed is None:
        return None
    count, build = typed
    if len(items) != count:
        return None
    return build(*(item.value for item in items))


def _handle_mov_8(vm: FunctionDecompiler, operation: Operation) -> None:
    width = operation.operand
    if not vm.state.stack:
        return
    if width not in MOVE_WIDTHS:
        raise UnsupportedMoveWidth(width, function_hash=vm.function.name_hash, position=operation.index)
    top = vm.state.stack[-1]
    vm.state.drain()
    vm.store(_narrow(top.value, width), (top.source,), operation.index)


def _narrow(value: TypedValue, width: int) -> TypedValue:
    if width == 4 or not value.is_numeric:
        return value
    if width == 2:
        return TypedValue.short(value.value)
    return TypedValue.byte(value.value)


def _handle_ptr(vm: FunctionDecompiler, operation: Operation) -> None:
    vm.state.struct_pointer = operation.operand * 4 + 4


def _handle_shift_ptr(vm: FunctionDecompiler, operation: Operation) -> None:
    vm.state.struct_pointer += operation.operand


def _handle_end(vm: FunctionDecompiler, operation: Operation) -> None:
    vm.state.halted = True


def _handle_noop(vm: FunctionDecompiler, operation: Operation) -> None:
    return None


def _handle_opaque(vm: FunctionDecompiler, operation: Operation) -> None:
    operand = operation.reg_value_ex if operation.extended else operation.reg_value
    vm.function.statements.append(
        Statement(
            kind=StatementKind.OPAQUE,
            position=operation.index,
            opcode=operation.opcode,
            operand=operand,
        )
    )


OPCODE_HANDLERS: Dict[int, Handler] = {
    OpCode.READ: _handle_read,
    OpCode.READ_U24: _handle_read,
    OpCode.STRING_OFFSET: _handle_string,
    OpCode.STRING_OFFSETU24: _handle_string,
    OpCode.SET: _handle_set,
    OpCode.JUMP1: _handle_noop,
    OpCode.JUMP2: _handle_noop,
    OpCode.CMD: _handle_cmd,
    OpCode.CMD_U24: _handle_cmd,
    OpCode.NOOP: _handle_noop,
    OpCode.END: _handle_end,
    OpCode.PTR: _handle_ptr,
    OpCode.MOV_8: _handle_mov_8,
    OpCode.SHIFT_PTR: _handle_shift_ptr,
    OpCode.SHIFT_PTR_U24: _handle_shift_ptr,
}


__all__ = [
    "FunctionDecompiler",
    "HASH_MAGNITUDE_LIMIT",
    "KnownHashes",
    "OPCODE_HANDLERS",
    "ScriptImage",
    "classify_pool_word",
    "decompile_function",
]
