"""Data model of a decompiled script module."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from ..exceptions import DecompileError
from ..vm.disassembler import Operation
from ..vm.values import TypedValue, ValueSource

SCRIPT_DATA_HEADER_SIZE = 0x10


@dataclass
class Variable:
    """Value stored at ``struct_offset`` of a function's variable region."""

    struct_offset: int
    value: TypedValue
    command: Optional[int] = None
    sources: Tuple[Optional[ValueSource], ...] = ()
    position: int = 0

    @property
    def name(self) -> str:
        return f"var_{self.struct_offset:X}"

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "struct_offset": self.struct_offset,
            "value": self.value.as_dict(),
            "sources": [source.as_dict() if source else None for source in self.sources],
        }
        if self.command is not None:
            payload["command"] = self.command
        return payload


class StatementKind(str, Enum):
    ASSIGN = "assign"
    OPAQUE = "opaque"


@dataclass
class Statement:
    """One decompiled statement, kept in code order."""

    kind: StatementKind
    position: int
    struct_offset: int = 0
    value: Optional[TypedValue] = None
    command: Optional[int] = None
    opcode: Optional[int] = None
    operand: int = 0

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"kind": self.kind.value, "position": self.position}
        if self.kind is StatementKind.ASSIGN:
            payload["struct_offset"] = self.struct_offset
            payload["value"] = self.value.as_dict() if self.value is not None else None
            if self.command is not None:
                payload["command"] = self.command
        else:
            payload["opcode"] = self.opcode
            payload["operand"] = self.operand
        return payload


@dataclass
class Function:
    name_hash: int
    code_start_index: int
    flags: int = 0
    name: str = ""
    operations: List[Operation] = field(default_factory=list)
    variables: Dict[int, Variable] = field(default_factory=dict)
    statements: List[Statement] = field(default_factory=list)
    truncated: bool = False
    error: Optional[DecompileError] = None

    def reset(self) -> None:
        self.operations = []
        self.variables = {}
        self.statements = []
        self.truncated = False
        self.error = None

    def record(self, variable: Variable) -> None:
        """Keep the first variable per offset; always log the statement."""

        self.variables.setdefault(variable.struct_offset, variable)
        self.statements.append(
            Statement(
                kind=StatementKind.ASSIGN,
                position=variable.position,
                struct_offset=variable.struct_offset,
                value=variable.value,
                command=variable.command,
            )
        )

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "name_hash": self.name_hash,
            "code_start_index": self.code_start_index,
            "flags": self.flags,
            "truncated": self.truncated,
            "error": str(self.error) if self.error else None,
            "variables": [variable.as_dict() for _, variable in sorted(self.variables.items())],
            "operations": [operation.as_dict() for operation in self.operations],
        }


@dataclass
class Script:
    name_hash: int
    string_buffer_size: int = 0
    functions: List[Function] = field(default_factory=list)
    name: str = ""


@dataclass
class StringHash:
    hash: int
    unknown: int
    offset: int


@dataclass
class ScriptModule:
    """Everything decoded from one Script chunk subtree.

    ``data_pool``, ``code`` and ``string_section`` hold the raw sections of
    the ScriptData chunk so an untouched module re-encodes byte for byte.
    """

    hash_type: int
    scripts: List[Script] = field(default_factory=list)
    strings: List[str] = field(default_factory=list)
    data_pool: List[int] = field(default_factory=list)
    code: bytes = b""
    string_section: bytes = b""
    string_table_size: int = 0
    unknown: int = 0
    string_hashes: List[StringHash] = field(default_factory=list)
    hash_table: List[int] = field(default_factory=list)

    def functions(self) -> Iterator[Function]:
        for script in self.scripts:
            yield from script.functions

    def find_function(self, name_hash: int) -> Optional[Function]:
        for function in self.functions():
            if function.name_hash == name_hash:
                return function
        return None

    @property
    def errors(self) -> List[DecompileError]:
        return [function.error for function in self.functions() if function.error is not None]

    @property
    def string_base(self) -> int:
        """Offset of the string section inside the ScriptData payload."""

        return SCRIPT_DATA_HEADER_SIZE + len(self.data_pool) * 4 + len(self.code)

    def as_dict(self) -> Dict[str, object]:
        return {
            "hash_type": self.hash_type,
            "strings": list(self.strings),
            "hash_table": list(self.hash_table),
            "string_hashes": [vars(entry).copy() for entry in self.string_hashes],
            "scripts": [
                {
                    "name": script.name,
                    "name_hash": script.name_hash,
                    "string_buffer_size": script.string_buffer_size,
                    "functions": [function.as_dict() for function in script.functions],
                }
                for script in self.scripts
            ],
        }


__all__ = [
    "Function",
    "SCRIPT_DATA_HEADER_SIZE",
    "Script",
    "ScriptModule",
    "Statement",
    "StatementKind",
    "StringHash",
    "Variable",
]
