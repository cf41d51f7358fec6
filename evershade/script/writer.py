"""Write decompiled script modules back to chunk payloads.

Two strategies are offered.  :func:`patch_variable` edits the data pool slot
or ``SET`` literal that produced a variable and leaves the code layout alone.
:func:`reemit_script_data` reassembles every function from its operation list
against a deduplicated data pool.
"""

from __future__ import annotations

import logging
import math
import struct
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ..chunks.types import ChunkType
from ..exceptions import UnsupportedMoveWidth, VariablePatchError
from ..hashing import HashNameTable
from ..utils_pkg.byteops import bits_from_f32
from ..vm.opcodes import OPERAND_LIMIT, OpCode, encode_word, split_u24
from ..vm.values import COMPONENT_COUNTS, SourceKind, TypedValue, ValueKind, coerce
from .loader import FUNCTION_ENTRY, SCRIPT_DATA_HEADER, SCRIPT_ENTRY, STRING_HASH_ENTRY, decompile_module
from .model import Function, ScriptModule, Variable

LOGGER = logging.getLogger(__name__)

PatchValue = Union[TypedValue, int, float, bool, Sequence[Union[int, float, TypedValue]]]

_READ_OPCODES = (OpCode.READ, OpCode.READ_U24)


# ----------------------------------------------------------------------
# Patch in place


@dataclass(frozen=True)
class _SlotWrite:
    slot: int
    bits: int


@dataclass(frozen=True)
class _LiteralWrite:
    position: int
    value: int


def conform_value(current: TypedValue, value: PatchValue) -> TypedValue:
    """Coerce ``value`` to the shape and component kinds of ``current``."""

    if isinstance(value, TypedValue):
        if value.kind is not current.kind:
            raise VariablePatchError(f"cannot store {value.kind.value} into a {current.kind.value} variable")
        if len(value.components()) != len(current.components()):
            raise VariablePatchError(
                f"expected {len(current.components())} component(s), got {len(value.components())}"
            )
        return value

    kind = current.kind
    if kind in COMPONENT_COUNTS or kind is ValueKind.LIST:
        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            raise VariablePatchError(f"{kind.value} variables need a sequence of components")
        old = current.components()
        if len(value) != len(old):
            raise VariablePatchError(f"expected {len(old)} component(s), got {len(value)}")
        parts = tuple(conform_value(component, item) for component, item in zip(old, value))
        return TypedValue(kind, parts)
    if kind is ValueKind.STRING or isinstance(value, (str, bytes)):
        raise VariablePatchError("strings cannot be patched in place")
    if isinstance(value, Sequence):
        raise VariablePatchError(f"{kind.value} variables take a single value")
    if kind is ValueKind.FLOAT:
        return TypedValue.float_(float(value))
    if kind is ValueKind.UINT:
        return TypedValue.uint(_whole(value))
    if kind is ValueKind.SHORT:
        return TypedValue.short(_whole(value))
    if kind is ValueKind.BYTE:
        return TypedValue.byte(_whole(value))
    if kind is ValueKind.BOOL:
        return TypedValue.boolean(bool(value))
    return coerce(value)


def _whole(value: object) -> int:
    if isinstance(value, float):
        if not value.is_integer():
            raise VariablePatchError(f"{value!r} is not an integer")
        return int(value)
    return int(value)  # type: ignore[arg-type]


def _component_bits(component: TypedValue, slot_kind: Optional[ValueKind] = None) -> int:
    if component.kind is ValueKind.FLOAT or slot_kind is ValueKind.FLOAT:
        return bits_from_f32(float(component.value))
    if component.kind is ValueKind.BOOL:
        return 1 if component.value else 0
    return int(component.value) & 0xFFFFFFFF


def _slot_references(module: ScriptModule) -> Dict[int, int]:
    counts: Dict[int, int] = {}
    for function in module.functions():
        for operation in function.operations:
            if operation.opcode in _READ_OPCODES and operation.decoded_value is not None:
                counts[operation.operand] = counts.get(operation.operand, 0) + 1
    return counts


def _slot_kinds(module: ScriptModule) -> Dict[int, ValueKind]:
    """Kind each pool slot decoded to when it was first read."""

    kinds: Dict[int, ValueKind] = {}
    for function in module.functions():
        for operation in function.operations:
            if operation.opcode in _READ_OPCODES and operation.decoded_value is not None:
                kinds.setdefault(operation.operand, operation.decoded_value.kind)
    return kinds


def plan_variable_patch(
    module: ScriptModule,
    variable: Variable,
    value: PatchValue,
    *,
    allow_shared: bool = False,
) -> List[Union[_SlotWrite, _LiteralWrite]]:
    new_value = conform_value(variable.value, value)
    if new_value.kind is ValueKind.BOOL:
        components: Tuple[TypedValue, ...] = (TypedValue.uint(1 if new_value.value else 0),)
    else:
        components = new_value.components()
    if len(components) != len(variable.sources):
        raise VariablePatchError(
            f"{variable.name} has {len(variable.sources)} recorded source(s) for {len(components)} component(s)"
        )

    references = _slot_references(module)
    slot_kinds = _slot_kinds(module)
    own_uses: Dict[int, int] = {}
    for source in variable.sources:
        if source is not None and source.kind is SourceKind.POOL:
            own_uses[source.index] = own_uses.get(source.index, 0) + 1

    writes: List[Union[_SlotWrite, _LiteralWrite]] = []
    planned_slots: Dict[int, int] = {}
    for source, component in zip(variable.sources, components):
        if source is None:
            raise VariablePatchError(f"{variable.name} has a component with no known source")
        if source.kind is SourceKind.STRING:
            raise VariablePatchError("strings cannot be patched in place")
        if source.kind is SourceKind.POOL:
            # narrowed reads keep the encoding of the slot they came from
            bits = _component_bits(component, slot_kinds.get(source.index))
            if planned_slots.get(source.index, bits) != bits:
                raise VariablePatchError(
                    f"pool slot {source.index} feeds several components of {variable.name} with different values"
                )
            if references.get(source.index, 0) > own_uses[source.index] and not allow_shared:
                raise VariablePatchError(
                    f"pool slot {source.index} is shared with other reads; pass allow_shared=True to patch it"
                )
            planned_slots[source.index] = bits
            writes.append(_SlotWrite(source.index, bits))
            continue
        literal = component.value
        if component.kind is ValueKind.FLOAT:
            if not (math.isfinite(literal) and float(literal).is_integer()):
                raise VariablePatchError(f"{literal!r} cannot be encoded as a SET literal")
            literal = int(literal)
        literal = int(literal)
        if not 0 <= literal < OPERAND_LIMIT:
            raise VariablePatchError(f"{literal} does not fit a 10-bit SET literal")
        writes.append(_LiteralWrite(source.index, literal))
    return writes


def patch_variable(
    module: ScriptModule,
    function: Function,
    struct_offset: int,
    value: PatchValue,
    *,
    allow_shared: bool = False,
    hashes: Optional[HashNameTable] = None,
) -> Variable:
    """Rewrite the pool slots/literals behind one variable and re-decompile.

    Nothing is modified when the patch is rejected.
    """

    variable = function.variables.get(struct_offset)
    if variable is None:
        raise VariablePatchError(f"{function.name or hex(function.name_hash)} has no variable at 0x{struct_offset:X}")

    writes = plan_variable_patch(module, variable, value, allow_shared=allow_shared)
    pool = list(module.data_pool)
    code = bytearray(module.code)
    for write in writes:
        if isinstance(write, _SlotWrite):
            pool[write.slot] = write.bits
        else:
            word = encode_word(OpCode.SET, write.value)
            code[write.position * 2:write.position * 2 + 2] = word.to_bytes(2, "little")

    module.data_pool = pool
    module.code = bytes(code)
    LOGGER.info("patched %s with %d write(s)", variable.name, len(writes))
    decompile_module(module, hashes=hashes)
    return function.variables[struct_offset]


# ----------------------------------------------------------------------
# Encoding


def encode_script_data(module: ScriptModule) -> bytes:
    """ScriptData payload for ``module``; unmodified modules round trip exactly."""

    out = bytearray(
        SCRIPT_DATA_HEADER.pack(
            module.hash_type,
            len(module.code),
            len(module.data_pool) * 4,
            module.string_table_size & 0xFFFF,
            module.unknown,
        )
    )
    for word in module.data_pool:
        out += (word & 0xFFFFFFFF).to_bytes(4, "little")
    out += module.code
    out += module.string_section
    return bytes(out)


def reemit_script_data(module: ScriptModule) -> bytes:
    """Reassemble all functions against a deduplicated data pool.

    Function start indices are updated in place.  Pool reads switch to
    ``READ_U24`` once a slot index no longer fits in ten bits.  A function
    that stopped before ``END`` gets one appended.

    Raises :class:`VariablePatchError` before touching the module when a
    function stopped at an unsupported ``MOV_8`` width, since the rest of
    its code was never decoded.
    """

    for function in module.functions():
        if isinstance(function.error, UnsupportedMoveWidth):
            raise VariablePatchError(
                f"{function.name or hex(function.name_hash)} stopped at {function.error}; cannot re-emit its code"
            )

    new_pool: List[int] = []
    slots: Dict[int, int] = {}
    words: List[int] = []

    for function in module.functions():
        function.code_start_index = len(words)
        for operation in function.operations:
            if operation.opcode in _READ_OPCODES and operation.decoded_value is not None:
                bits = module.data_pool[operation.operand] & 0xFFFFFFFF
                slot = slots.get(bits)
                if slot is None:
                    slot = slots[bits] = len(new_pool)
                    new_pool.append(bits)
                words.extend(_read_words(slot))
            else:
                words.extend(operation.words())
        if not function.operations or function.operations[-1].opcode != OpCode.END:
            words.append(encode_word(OpCode.END, 0))

    module.data_pool = new_pool
    module.code = b"".join(word.to_bytes(2, "little") for word in words)
    LOGGER.debug("re-emitted %d code word(s), %d pool slot(s)", len(words), len(new_pool))
    return encode_script_data(module)


def _read_words(slot: int) -> List[int]:
    if slot < OPERAND_LIMIT:
        return [encode_word(OpCode.READ, slot)]
    reg_value, extension = split_u24(slot)
    return [encode_word(OpCode.READ_U24, reg_value), extension]


def encode_module_chunks(module: ScriptModule, *, reemit: bool = False) -> Dict[int, List[bytes]]:
    """Payloads per chunk type, in child order (one function table per script)."""

    data = reemit_script_data(module) if reemit else encode_script_data(module)
    payloads: Dict[int, List[bytes]] = {
        ChunkType.ScriptData: [data],
        ChunkType.ScriptHeader: [
            b"".join(SCRIPT_ENTRY.pack(script.name_hash, script.string_buffer_size) for script in module.scripts)
        ],
        ChunkType.ScriptFunctionTable: [
            b"".join(
                FUNCTION_ENTRY.pack(function.name_hash, function.code_start_index, function.flags)
                for function in script.functions
            )
            for script in module.scripts
        ],
    }
    if module.string_hashes:
        payloads[ChunkType.ScriptStringHashes] = [
            b"".join(STRING_HASH_ENTRY.pack(entry.hash, entry.unknown, entry.offset) for entry in module.string_hashes)
        ]
    if module.hash_table:
        payloads[ChunkType.ScriptHashBundle] = [_pack_u32s(module.hash_table)]
    return payloads


def _pack_u32s(values: Iterable[int]) -> bytes:
    items = [value & 0xFFFFFFFF for value in values]
    return struct.pack(f"<{len(items)}I", *items)


__all__ = [
    "conform_value",
    "encode_module_chunks",
    "encode_script_data",
    "patch_variable",
    "plan_variable_patch",
    "reemit_script_data",
]
