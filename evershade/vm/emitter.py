"""C-like pseudo-code listing for decompiled script modules."""

from __future__ import annotations

import json
from typing import List, Optional

from ..hashing import HASH_NAMES, HashNameTable
from ..script.model import Function, ScriptModule, Statement, StatementKind
from .opcodes import opcode_name
from .values import ValueKind

INDENT = "    "


def _assignment(statement: Statement, hashes: HashNameTable) -> str:
    value = statement.value
    name = f"var_{statement.struct_offset:X}"
    if value is None:
        return f"{name} = ?;"
    if statement.command is not None:
        args = ", ".join(item.render() for item in value.components())
        return f"list {name} = CMD_{statement.command}({args});"
    if value.kind is ValueKind.UINT:
        known = hashes.get(value.value)
        if known:
            return f"hash {name} = {known};"
    return f"{value.kind.value} {name} = {value.render()};"


def render_statement(statement: Statement, hashes: Optional[HashNameTable] = None) -> str:
    table = HASH_NAMES if hashes is None else hashes
    if statement.kind is StatementKind.ASSIGN:
        return _assignment(statement, table)
    return f"{opcode_name(statement.opcode or 0)}({statement.operand});"


def emit_function(function: Function, hashes: Optional[HashNameTable] = None) -> str:
    lines: List[str] = [
        f"function {function.name or f'Func_{function.name_hash:08X}'}()"
        f"  // flags 0x{function.flags:X}, start {function.code_start_index}",
        "{",
    ]
    for statement in function.statements:
        lines.append(INDENT + render_statement(statement, hashes))
    if function.truncated:
        lines.append(INDENT + "// truncated: code section ended before END")
    elif function.error is not None:
        lines.append(INDENT + f"// error: {function.error}")
    lines.append("}")
    return "\n".join(lines)


def emit_module(module: ScriptModule, hashes: Optional[HashNameTable] = None) -> str:
    table = HASH_NAMES if hashes is None else hashes
    lines: List[str] = [f"// script type {table.name_for(module.hash_type)}"]
    if module.hash_table:
        lines.append("// hash table: [" + ", ".join(table.name_for(value) for value in module.hash_table) + "]")
    if module.strings:
        lines.append("// strings: [" + ", ".join(json.dumps(text) for text in module.strings) + "]")
    if module.string_hashes:
        lines.append("// string hashes:")
        for entry in module.string_hashes:
            lines.append(f"//   {entry.offset} {table.name_for(entry.hash)}")

    for script in module.scripts:
        lines.append("")
        lines.append(
            f"script {script.name or table.name_for(script.name_hash)}"
            f"  // string buffer size {script.string_buffer_size}"
        )
        for function in script.functions:
            lines.append("")
            lines.append(emit_function(function, table))
    return "\n".join(lines) + "\n"


__all__ = ["emit_function", "emit_module", "render_statement"]
