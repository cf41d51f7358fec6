"""Build a :class:`ScriptModule` from a Script chunk subtree.

A Script container (``0x5000``) holds:

* ``ScriptHeader`` - ``n`` x (u32 name hash, u32 string buffer size)
* one ``ScriptFunctionTable`` per script - ``m`` x (u32 hash, u32 start, u32 flags)
* ``ScriptData`` - hash type, section sizes, data pool, code, strings
* optionally ``ScriptStringHashes`` (u32 hash, u32 unknown, u32 offset) and a
  ``ScriptHashBundle`` (u32 array)
"""

from __future__ import annotations

import logging
import struct
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from ..chunks.tree import ChunkNode, iter_forest
from ..chunks.types import ChunkType
from ..exceptions import EvershadeError, MissingRequiredChunk
from ..hashing import HASH_NAMES, HashNameTable
from ..vm.decompiler import KnownHashes, ScriptImage, decompile_function
from .model import SCRIPT_DATA_HEADER_SIZE, Function, Script, ScriptModule, StringHash

LOGGER = logging.getLogger(__name__)

SCRIPT_DATA_HEADER = struct.Struct("<IIIHH")
SCRIPT_ENTRY = struct.Struct("<II")
FUNCTION_ENTRY = struct.Struct("<III")
STRING_HASH_ENTRY = struct.Struct("<III")


def _payload(node: Optional[ChunkNode], type_id: int) -> bytes:
    if node is None:
        raise MissingRequiredChunk(type_id)
    if node.payload is None:
        raise MissingRequiredChunk(type_id, f"chunk 0x{type_id:04X} has no payload bytes")
    return node.payload


def _entries(payload: bytes, layout: struct.Struct) -> List[Tuple[int, ...]]:
    count = len(payload) // layout.size
    return [layout.unpack_from(payload, i * layout.size) for i in range(count)]


def split_strings(section: bytes) -> List[str]:
    """Every zero-terminated string of ``section``; a trailing fragment counts."""

    if not section:
        return []
    parts = bytes(section).split(b"\x00")
    if parts and parts[-1] == b"":
        parts.pop()
    return [part.decode("utf-8", "surrogateescape") for part in parts]


def parse_script_data(payload: bytes, module: ScriptModule) -> None:
    """Fill the raw sections of ``module`` from a ScriptData payload."""

    if len(payload) < SCRIPT_DATA_HEADER_SIZE:
        raise MissingRequiredChunk(ChunkType.ScriptData, "ScriptData payload is shorter than its header")
    hash_type, code_size, data_size, string_table_size, unknown = SCRIPT_DATA_HEADER.unpack_from(payload, 0)
    pool_end = SCRIPT_DATA_HEADER_SIZE + data_size
    code_end = pool_end + code_size
    if code_end > len(payload):
        LOGGER.warning(
            "ScriptData declares %d pool and %d code byte(s) but holds %d in total",
            data_size,
            code_size,
            len(payload),
        )
    pool_bytes = payload[SCRIPT_DATA_HEADER_SIZE:pool_end]
    module.hash_type = hash_type
    module.unknown = unknown
    module.string_table_size = string_table_size
    module.data_pool = [
        int.from_bytes(pool_bytes[i:i + 4], "little") for i in range(0, len(pool_bytes) - len(pool_bytes) % 4, 4)
    ]
    module.code = bytes(payload[pool_end:code_end])
    module.string_section = bytes(payload[code_end:])
    module.strings = split_strings(module.string_section)


def load_module(subtree: ChunkNode, *, hashes: Optional[HashNameTable] = None) -> ScriptModule:
    """Read the header, tables and data of ``subtree`` without decompiling."""

    table = HASH_NAMES if hashes is None else hashes
    header = _payload(subtree.find_child(ChunkType.ScriptHeader), ChunkType.ScriptHeader)
    data = _payload(subtree.find_child(ChunkType.ScriptData), ChunkType.ScriptData)
    function_tables = subtree.find_children(ChunkType.ScriptFunctionTable)

    module = ScriptModule(hash_type=0)
    parse_script_data(data, module)

    for name_hash, buffer_size in _entries(header, SCRIPT_ENTRY):
        module.scripts.append(
            Script(name_hash=name_hash, string_buffer_size=buffer_size, name=table.name_for(name_hash))
        )
    if len(function_tables) < len(module.scripts):
        raise MissingRequiredChunk(
            ChunkType.ScriptFunctionTable,
            f"{len(module.scripts)} script(s) declared but only {len(function_tables)} function table(s) found",
        )
    if len(function_tables) > len(module.scripts):
        LOGGER.warning("ignoring %d surplus function table(s)", len(function_tables) - len(module.scripts))

    for script, table_node in zip(module.scripts, function_tables):
        for name_hash, start, flags in _entries(table_node.payload or b"", FUNCTION_ENTRY):
            script.functions.append(
                Function(
                    name_hash=name_hash,
                    code_start_index=start,
                    flags=flags,
                    name=table.name_for(name_hash, prefix="Func_"),
                )
            )

    string_hashes = subtree.find_child(ChunkType.ScriptStringHashes)
    if string_hashes is not None and string_hashes.payload:
        module.string_hashes = [StringHash(*entry) for entry in _entries(string_hashes.payload, STRING_HASH_ENTRY)]

    bundle = subtree.find_child(ChunkType.ScriptHashBundle)
    if bundle is not None and bundle.payload:
        count = len(bundle.payload) // 4
        module.hash_table = list(struct.unpack_from(f"<{count}I", bundle.payload, 0))
    return module


def image_for(module: ScriptModule, hashes: Optional[HashNameTable] = None) -> ScriptImage:
    table = HASH_NAMES if hashes is None else hashes
    return ScriptImage(
        data_pool=tuple(module.data_pool),
        code=module.code,
        strings=module.string_section,
        known_hashes=KnownHashes(table, frozenset(module.hash_table)),
    )


def decompile_module(module: ScriptModule, *, hashes: Optional[HashNameTable] = None) -> ScriptModule:
    """(Re)decompile every function of ``module`` in place."""

    image = image_for(module, hashes)
    for function in module.functions():
        decompile_function(function, image)
    failed = len(module.errors)
    LOGGER.debug(
        "decompiled %d function(s) of %d script(s), %d with errors",
        sum(len(script.functions) for script in module.scripts),
        len(module.scripts),
        failed,
    )
    return module


def decompile_script(subtree: ChunkNode, *, hashes: Optional[HashNameTable] = None) -> ScriptModule:
    """Load and decompile the Script container ``subtree``."""

    return decompile_module(load_module(subtree, hashes=hashes), hashes=hashes)


def iter_script_modules(
    forest: Iterable[ChunkNode],
    *,
    hashes: Optional[HashNameTable] = None,
) -> Iterator[Tuple[ChunkNode, Union[ScriptModule, EvershadeError]]]:
    """Yield ``(node, module)`` per Script container, or ``(node, error)``."""

    for node in iter_forest(forest):
        if node.type_id != ChunkType.Script or not node.has_children:
            continue
        try:
            yield node, decompile_script(node, hashes=hashes)
        except MissingRequiredChunk as exc:
            LOGGER.warning("skipping script module at 0x%X: %s", node.offset, exc)
            yield node, exc


__all__ = [
    "decompile_module",
    "decompile_script",
    "image_for",
    "iter_script_modules",
    "load_module",
    "parse_script_data",
    "split_strings",
]
