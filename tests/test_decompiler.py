"""Decoder tests driving :class:`FunctionDecompiler` with hand-assembled code."""

from __future__ import annotations

import logging
import math
from typing import Sequence

import pytest

from archive_builders import code, f32
from evershade.exceptions import TruncatedInstructionStream, UnsupportedMoveWidth
from evershade.hashing import HashNameTable
from evershade.logging_config import TRACE_LOGGER_NAME
from evershade.script.model import Function, StatementKind
from evershade.vm.decompiler import (
    FunctionDecompiler,
    KnownHashes,
    ScriptImage,
    classify_pool_word,
    decompile_function,
)
from evershade.vm.disassembler import disassemble
from evershade.vm.opcodes import CommandId, OpCode
from evershade.vm.values import SourceKind, TypedValue, ValueKind, ValueSource


def _run(code_bytes: bytes, pool: Sequence[int] = (), strings: bytes = b"", *, start: int = 0, known=()):
    image = ScriptImage(tuple(pool), code_bytes, strings, known)
    function = Function(name_hash=0xBEEF, code_start_index=start, name="Func_0000BEEF")
    vm = FunctionDecompiler(image, function)
    vm.run()
    return function, vm


def test_read_and_move_store_a_float() -> None:
    function, _ = _run(
        code((OpCode.PTR, 0), (OpCode.READ, 0), (OpCode.MOV_8, 4), (OpCode.END, 0)),
        [f32(1.5)],
    )
    assert len(function.operations) == 4
    variable = function.variables[4]
    assert variable.value == TypedValue(ValueKind.FLOAT, 1.5)
    assert variable.sources == (ValueSource(SourceKind.POOL, 0),)
    assert function.error is None and not function.truncated


def test_vec3_command_drains_the_stack() -> None:
    function, vm = _run(
        code(
            (OpCode.PTR, 2),
            (OpCode.SET, 1),
            (OpCode.SET, 2),
            (OpCode.SET, 3),
            (OpCode.CMD, CommandId.VEC3),
            (OpCode.END, 0),
        )
    )
    variable = function.variables[12]
    assert variable.value.kind is ValueKind.VEC3
    assert variable.value.python() == (1, 2, 3)
    assert variable.command is None
    assert [source.index for source in variable.sources] == [1, 2, 3]
    assert all(source.kind is SourceKind.LITERAL for source in variable.sources)
    assert vm.state.stack == []


def test_vec4_and_matrix_commands() -> None:
    matrix_code = [(OpCode.SET, i) for i in range(16)]
    function, _ = _run(
        code(
            (OpCode.PTR, 0),
            (OpCode.READ, 0),
            (OpCode.READ, 0),
            (OpCode.READ, 0),
            (OpCode.READ, 0),
            (OpCode.CMD, CommandId.VEC4),
            (OpCode.SHIFT_PTR, 16),
            *matrix_code,
            (OpCode.CMD, CommandId.MATRIX4X4),
            (OpCode.END, 0),
        ),
        [f32(0.25)],
    )
    assert function.variables[4].value.python() == (0.25, 0.25, 0.25, 0.25)
    matrix = function.variables[20].value
    assert matrix.kind is ValueKind.MATRIX4X4
    assert matrix.python() == tuple(range(16))


def test_bool_command_needs_exactly_one_numeric_argument() -> None:
    function, _ = _run(
        code(
            (OpCode.PTR, 0),
            (OpCode.SET, 1),
            (OpCode.CMD, CommandId.BOOL),
            (OpCode.SHIFT_PTR, 4),
            (OpCode.SET, 2),
            (OpCode.CMD, CommandId.BOOL),
            (OpCode.SHIFT_PTR, 4),
            (OpCode.SET, 1),
            (OpCode.SET, 1),
            (OpCode.CMD, CommandId.BOOL),
            (OpCode.END, 0),
        )
    )
    assert function.variables[4].value == TypedValue.boolean(True)
    assert function.variables[8].value == TypedValue.boolean(False)
    two_args = function.variables[12]
    assert two_args.value.kind is ValueKind.LIST
    assert two_args.command == CommandId.BOOL


def test_unknown_command_becomes_an_opaque_list() -> None:
    function, _ = _run(
        code(
            (OpCode.PTR, 1),
            (OpCode.SET, 1),
            (OpCode.SET, 2),
            (OpCode.CMD, CommandId.LIST_ADD),
            (OpCode.END, 0),
        )
    )
    variable = function.variables[8]
    assert variable.command == 434
    assert variable.value.kind is ValueKind.LIST
    assert variable.value.python() == (1, 2)


def test_typed_command_with_wrong_arity_or_a_string_stays_opaque() -> None:
    function, _ = _run(
        code(
            (OpCode.PTR, 0),
            (OpCode.SET, 1),
            (OpCode.SET, 2),
            (OpCode.CMD, CommandId.VEC3),
            (OpCode.SHIFT_PTR, 4),
            (OpCode.SET, 1),
            (OpCode.SET, 2),
            (OpCode.STRING_OFFSET, 0),
            (OpCode.CMD, CommandId.VEC3),
            (OpCode.END, 0),
        ),
        strings=b"abc\x00",
    )
    assert function.variables[4].command == CommandId.VEC3
    assert function.variables[4].value.kind is ValueKind.LIST
    mixed = function.variables[8]
    assert mixed.command == CommandId.VEC3
    assert mixed.value.python() == (1, 2, "abc")


def test_classify_pool_word_boundary() -> None:
    assert classify_pool_word(f32(100000.0)).kind is ValueKind.FLOAT
    assert classify_pool_word(f32(-100000.0)).kind is ValueKind.FLOAT
    assert classify_pool_word(f32(100001.0)) == TypedValue.uint(f32(100001.0))
    assert classify_pool_word(0x7FC00000).kind is ValueKind.UINT
    assert classify_pool_word(f32(math.inf)).kind is ValueKind.UINT
    assert classify_pool_word(0).value == 0.0


def test_known_hash_is_kept_as_an_integer() -> None:
    names = HashNameTable()
    names.add(f32(1.5), "some_hash")
    assert classify_pool_word(f32(1.5), KnownHashes(names)).kind is ValueKind.UINT
    assert classify_pool_word(f32(1.5), KnownHashes(names, frozenset())).value == f32(1.5)
    assert classify_pool_word(f32(2.0), KnownHashes(frozenset({f32(2.0)}))).kind is ValueKind.UINT
    assert classify_pool_word(f32(1.5), KnownHashes(HashNameTable())).kind is ValueKind.FLOAT


def test_move_narrows_to_short_and_byte() -> None:
    function, _ = _run(
        code(
            (OpCode.PTR, 0),
            (OpCode.READ, 0),
            (OpCode.MOV_8, 2),
            (OpCode.SHIFT_PTR, 2),
            (OpCode.SET, 300),
            (OpCode.MOV_8, 1),
            (OpCode.SHIFT_PTR, 1),
            (OpCode.STRING_OFFSET, 0),
            (OpCode.MOV_8, 1),
            (OpCode.END, 0),
        ),
        [0x1FFFF],
        b"hi\x00",
        known=frozenset({0x1FFFF}),
    )
    assert function.variables[4].value == TypedValue(ValueKind.SHORT, -1)
    assert function.variables[6].value == TypedValue(ValueKind.BYTE, 44)
    assert function.variables[7].value == TypedValue.string("hi")


def test_move_uses_the_top_of_stack_and_clears_it() -> None:
    function, vm = _run(
        code(
            (OpCode.PTR, 0),
            (OpCode.SET, 7),
            (OpCode.SET, 9),
            (OpCode.MOV_8, 4),
            (OpCode.END, 0),
        )
    )
    assert function.variables[4].value == TypedValue.uint(9)
    assert vm.state.stack == []


def test_move_on_an_empty_stack_records_nothing() -> None:
    function, _ = _run(code((OpCode.PTR, 0), (OpCode.MOV_8, 4), (OpCode.END, 0)))
    assert function.variables == {}
    assert function.error is None


def test_unsupported_move_width_stops_the_function() -> None:
    function, _ = _run(code((OpCode.PTR, 0), (OpCode.SET, 2), (OpCode.MOV_8, 3), (OpCode.SET, 1), (OpCode.END, 0)))
    assert isinstance(function.error, UnsupportedMoveWidth)
    assert function.error.width == 3
    assert function.error.function_hash == 0xBEEF
    assert function.error.position == 2
    assert not function.truncated
    assert len(function.operations) == 3
    assert function.variables == {}


def test_move_on_an_empty_stack_ignores_the_width() -> None:
    function, _ = _run(code((OpCode.PTR, 0), (OpCode.MOV_8, 8), (OpCode.SET, 7), (OpCode.MOV_8, 4), (OpCode.END, 0)))
    assert function.error is None
    assert function.variables[4].value == TypedValue.uint(7)


def test_missing_end_marks_the_function_truncated() -> None:
    function, _ = _run(code((OpCode.PTR, 0), (OpCode.SET, 5), (OpCode.MOV_8, 4)))
    assert function.truncated
    assert isinstance(function.error, TruncatedInstructionStream)
    assert function.variables[4].value == TypedValue.uint(5)


def test_dangling_extension_word_is_truncation() -> None:
    function, _ = _run(code((OpCode.PTR, 0)) + (OpCode.READ_U24 << 10).to_bytes(2, "little"))
    assert function.truncated
    assert len(function.operations) == 1


def test_read_out_of_range_pushes_nothing() -> None:
    function, _ = _run(
        code((OpCode.PTR, 0), (OpCode.READ, 5), (OpCode.MOV_8, 4), (OpCode.END, 0)),
        [f32(1.0)],
    )
    assert function.variables == {}
    assert function.operations[1].decoded_value is None


def test_u24_read_and_string_offsets() -> None:
    function, _ = _run(
        code(
            (OpCode.PTR, 0),
            (OpCode.READ_U24, 1),
            (OpCode.MOV_8, 4),
            (OpCode.SHIFT_PTR_U24, 4),
            (OpCode.STRING_OFFSETU24, 6),
            (OpCode.MOV_8, 4),
            (OpCode.SHIFT_PTR, 4),
            (OpCode.STRING_OFFSET, 100),
            (OpCode.MOV_8, 4),
            (OpCode.END, 0),
        ),
        [f32(1.0), f32(-2.5)],
        b"hello\x00world\x00",
    )
    assert function.variables[4].value == TypedValue.float_(-2.5)
    assert function.variables[8].value == TypedValue.string("world")
    assert function.variables[8].sources == (ValueSource(SourceKind.STRING, 6),)
    assert function.variables[12].value == TypedValue.string("")


def test_jumps_consume_their_extension_word() -> None:
    function, _ = _run(
        code(
            (OpCode.JUMP1, 3),
            (OpCode.PTR, 0),
            (OpCode.SET, 7),
            (OpCode.JUMP2, 1),
            (OpCode.MOV_8, 4),
            (OpCode.NOOP, 0),
            (OpCode.END, 0),
        )
    )
    assert [op.opcode for op in function.operations] == [
        OpCode.JUMP1,
        OpCode.PTR,
        OpCode.SET,
        OpCode.JUMP2,
        OpCode.MOV_8,
        OpCode.NOOP,
        OpCode.END,
    ]
    assert function.variables[4].value == TypedValue.uint(7)
    assert all(statement.kind is StatementKind.ASSIGN for statement in function.statements)


def test_unhandled_opcodes_become_opaque_statements() -> None:
    function, _ = _run(
        code(
            (OpCode.RUN, 43),
            (OpCode.MOV_EX, 2),
            0x1F << 10 | 5,
            (OpCode.END, 0),
        )
    )
    opaque = [(s.kind, s.opcode, s.operand) for s in function.statements]
    assert opaque == [
        (StatementKind.OPAQUE, OpCode.RUN, 43),
        (StatementKind.OPAQUE, OpCode.MOV_EX, 0),
        (StatementKind.OPAQUE, 0x1F, 5),
    ]


def test_first_assignment_wins_but_every_statement_is_kept() -> None:
    function, _ = _run(
        code(
            (OpCode.PTR, 0),
            (OpCode.SET, 1),
            (OpCode.MOV_8, 4),
            (OpCode.SET, 2),
            (OpCode.MOV_8, 4),
            (OpCode.END, 0),
        )
    )
    assert function.variables[4].value == TypedValue.uint(1)
    assert [statement.value.value for statement in function.statements] == [1, 2]


def test_functions_start_with_a_fresh_state() -> None:
    code_bytes = code((OpCode.SET, 9), (OpCode.END, 0), (OpCode.PTR, 0), (OpCode.MOV_8, 4), (OpCode.END, 0))
    image = ScriptImage((), code_bytes)
    first = decompile_function(Function(name_hash=1, code_start_index=0), image)
    second = decompile_function(Function(name_hash=2, code_start_index=2), image)
    assert first.variables == {}
    assert second.variables == {}
    assert len(second.operations) == 3


def test_decoding_is_deterministic() -> None:
    code_bytes = code((OpCode.PTR, 3), (OpCode.READ, 0), (OpCode.READ, 1), (OpCode.CMD, 600), (OpCode.END, 0))
    image = ScriptImage((f32(3.0), 0xDEADBEEF), code_bytes)
    function = Function(name_hash=3, code_start_index=0)
    first = decompile_function(function, image).as_dict()
    second = decompile_function(function, image).as_dict()
    assert first == second
    assert first["variables"][0]["command"] == 600


def test_trace_logger_receives_one_line_per_instruction(caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger=TRACE_LOGGER_NAME):
        _run(code((OpCode.PTR, 0), (OpCode.END, 0)))
    lines = [record.getMessage() for record in caplog.records if record.name == TRACE_LOGGER_NAME]
    assert len(lines) == 2
    assert lines[0].startswith("0000: PTR 0")


def test_disassemble_lists_operations_until_end() -> None:
    operations = disassemble(code((OpCode.SET, 1), (OpCode.CMD_U24, 70000), (OpCode.END, 0), (OpCode.SET, 2)))
    assert [op.name for op in operations] == ["SET", "CMD_U24", "END"]
    assert operations[1].operand == 70000
    assert operations[1].word_count == 2


@pytest.mark.parametrize("start", [0, 1])
def test_start_index_is_a_word_index(start: int) -> None:
    code_bytes = code((OpCode.NOOP, 0), (OpCode.PTR, 0), (OpCode.SET, 4), (OpCode.MOV_8, 4), (OpCode.END, 0))
    function, _ = _run(code_bytes, start=start)
    assert function.variables[4].value == TypedValue.uint(4)
    assert function.operations[0].index == start
