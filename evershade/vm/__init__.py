"""Stack machine decompiler for script bytecode."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - used only for type checkers
    from .decompiler import FunctionDecompiler, ScriptImage, classify_pool_word, decompile_function
    from .disassembler import InstructionReader, Operation
    from .opcodes import CommandId, OpCode
    from .state import VMState
    from .values import TypedValue, ValueKind, ValueSource

__all__ = [
    "CommandId",
    "FunctionDecompiler",
    "InstructionReader",
    "OpCode",
    "Operation",
    "ScriptImage",
    "TypedValue",
    "VMState",
    "ValueKind",
    "ValueSource",
    "classify_pool_word",
    "decompile_function",
]


def __getattr__(name: str) -> Any:
    if name in ("FunctionDecompiler", "ScriptImage", "classify_pool_word", "decompile_function"):
        from . import decompiler

        return getattr(decompiler, name)
    if name in ("InstructionReader", "Operation"):
        from . import disassembler

        return getattr(disassembler, name)
    if name in ("CommandId", "OpCode"):
        from . import opcodes

        return getattr(opcodes, name)
    if name == "VMState":
        from .state import VMState as _VMState
        return _VMState
    if name in ("TypedValue", "ValueKind", "ValueSource"):
        from . import values

        return getattr(values, name)
    raise AttributeError(name)
