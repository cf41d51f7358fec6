"""Chunk tree model.

The chunk table is a run of 12 byte headers::

    u16 type_id   u16 flags   u32 offset   u32 size

Flag bit 15 marks a container.  A container's descendant headers follow it
immediately and its ``size`` is the byte length of that header run.  A leaf's
payload lives in data block ``block_index`` at ``offset`` and is ``size``
bytes long.  Alignment and block index are derived from ``flags`` on every
access so they cannot drift from the raw field after an edit.

Ownership is strictly top-down: nodes have no parent pointer and
"which root owns this node" is answered by :func:`find_root`.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..exceptions import MalformedChunk, NodeNotFound
from ..hashing import HASH_NAMES, HashNameTable
from .types import ChunkType, chunk_type_name

LOGGER = logging.getLogger(__name__)

HEADER = struct.Struct("<HHII")
HEADER_SIZE = HEADER.size

CHILDREN_FLAG = 0x8000
BLOCK_INDEX_SHIFT = 12
BLOCK_INDEX_MASK = 0x3
ALIGNMENT_MASK = 0x0F00
ALIGNMENT_16_VALUE = 512
ALIGNMENT_8_BIT = 8


@dataclass
class ChunkNode:
    """A typed node of the chunk forest."""

    type_id: int
    flags: int = 0
    offset: int = 0
    size: int = 0
    children: Optional[List["ChunkNode"]] = None
    payload: Optional[bytes] = None

    @property
    def has_children(self) -> bool:
        return (self.flags >> 15) & 1 != 0

    @property
    def block_index(self) -> int:
        return (self.flags >> BLOCK_INDEX_SHIFT) & BLOCK_INDEX_MASK

    @property
    def raw_alignment(self) -> int:
        return self.flags & ALIGNMENT_MASK

    @property
    def alignment(self) -> int:
        if self.raw_alignment == ALIGNMENT_16_VALUE:
            return 16
        if (self.flags >> ALIGNMENT_8_BIT) & 1:
            return 8
        return 4

    @property
    def type_name(self) -> str:
        return chunk_type_name(self.type_id)

    def find_child(self, type_id: int) -> Optional["ChunkNode"]:
        return find_child(self, type_id)

    def find_children(self, type_id: int) -> List["ChunkNode"]:
        return find_children(self, type_id)

    def header_bytes(self) -> bytes:
        return HEADER.pack(self.type_id, self.flags, self.offset, self.size)

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "type": self.type_name,
            "type_id": self.type_id,
            "flags": self.flags,
            "offset": self.offset,
            "size": self.size,
            "alignment": self.alignment,
            "block_index": self.block_index,
        }
        if self.children is not None:
            payload["children"] = [child.as_dict() for child in self.children]
        return payload


def make_flags(*, has_children: bool = False, block_index: int = 0, alignment: int = 4, extra: int = 0) -> int:
    """Compose a flags word from its derived properties."""

    if block_index & ~BLOCK_INDEX_MASK:
        raise ValueError(f"block index out of range: {block_index}")
    flags = extra & ~(CHILDREN_FLAG | (BLOCK_INDEX_MASK << BLOCK_INDEX_SHIFT) | ALIGNMENT_MASK)
    if has_children:
        flags |= CHILDREN_FLAG
    flags |= block_index << BLOCK_INDEX_SHIFT
    if alignment == 16:
        flags |= ALIGNMENT_16_VALUE
    elif alignment == 8:
        flags |= 1 << ALIGNMENT_8_BIT
    elif alignment != 4:
        raise ValueError(f"unsupported alignment: {alignment}")
    return flags


def leaf(type_id: int, payload: bytes, offset: int, *, block_index: int = 0, alignment: int = 4) -> ChunkNode:
    return ChunkNode(
        type_id=type_id,
        flags=make_flags(block_index=block_index, alignment=alignment),
        offset=offset,
        size=len(payload),
        payload=bytes(payload),
    )


def container(
    type_id: int,
    children: Sequence[ChunkNode],
    *,
    offset: Optional[int] = None,
    block_index: int = 0,
    alignment: int = 4,
) -> ChunkNode:
    """Build a container whose ``size`` covers its descendant headers.

    ``offset`` defaults to the smallest offset found among the children.
    """

    kids = list(children)
    if offset is None:
        offset = min((child.offset for child in kids), default=0)
    return ChunkNode(
        type_id=type_id,
        flags=make_flags(has_children=True, block_index=block_index, alignment=alignment),
        offset=offset,
        size=sum(header_span(child) for child in kids),
        children=kids,
    )


def header_span(node: ChunkNode) -> int:
    """Bytes ``node`` occupies in the chunk table, descendants included."""

    if node.has_children:
        return HEADER_SIZE + node.size
    return HEADER_SIZE


def parse(
    table: bytes,
    base_offset: int = 0,
    blocks: Optional[Sequence[Optional[bytes]]] = None,
    *,
    limit: Optional[int] = None,
) -> Tuple[ChunkNode, int]:
    """Parse the header at ``base_offset`` and everything it contains.

    Returns the node and the table offset right after its header run.
    ``blocks`` maps a node's ``block_index`` to the bytes of that data block.
    """

    end_limit = len(table) if limit is None else limit
    if base_offset + HEADER_SIZE > end_limit:
        raise MalformedChunk(f"chunk header at 0x{base_offset:X} overruns its table")
    type_id, flags, offset, size = HEADER.unpack_from(table, base_offset)
    node = ChunkNode(type_id=type_id, flags=flags, offset=offset, size=size)
    pos = base_offset + HEADER_SIZE

    if node.has_children:
        end = pos + size
        if end > end_limit:
            raise MalformedChunk(
                f"{node.type_name} at 0x{base_offset:X} declares {size} byte(s) of children, "
                f"only {end_limit - pos} available"
            )
        children: List[ChunkNode] = []
        while end - pos >= HEADER_SIZE:
            child, pos = parse(table, pos, blocks, limit=end)
            children.append(child)
        node.children = children
        return node, end

    node.payload = _slice_payload(node, blocks)
    return node, pos


def parse_forest(table: bytes, blocks: Optional[Sequence[Optional[bytes]]] = None) -> List[ChunkNode]:
    """Parse root headers from the start of ``table`` until it is exhausted."""

    forest: List[ChunkNode] = []
    pos = 0
    while len(table) - pos >= HEADER_SIZE:
        node, pos = parse(table, pos, blocks)
        forest.append(node)
    if pos != len(table):
        LOGGER.debug("ignoring %d trailing byte(s) in chunk table", len(table) - pos)
    LOGGER.debug("parsed %d root chunk(s)", len(forest))
    return forest


def _slice_payload(node: ChunkNode, blocks: Optional[Sequence[Optional[bytes]]]) -> Optional[bytes]:
    if blocks is None or node.block_index >= len(blocks):
        return None
    block = blocks[node.block_index]
    if block is None:
        return None
    payload = bytes(block[node.offset:node.offset + node.size])
    if len(payload) != node.size:
        LOGGER.warning(
            "%s payload at 0x%X is short: %d of %d byte(s) in block %d",
            node.type_name,
            node.offset,
            len(payload),
            node.size,
            node.block_index,
        )
    return payload


def serialize(forest: Iterable[ChunkNode]) -> bytes:
    """Write the header run for ``forest``; the inverse of :func:`parse_forest`."""

    out = bytearray()
    for node in forest:
        _serialize_node(node, out)
    return bytes(out)


def _serialize_node(node: ChunkNode, out: bytearray) -> None:
    out += node.header_bytes()
    if not node.has_children:
        return
    start = len(out)
    for child in node.children or ():
        _serialize_node(child, out)
    written = len(out) - start
    if written > node.size:
        raise MalformedChunk(
            f"{node.type_name} declares {node.size} byte(s) of children but holds {written}"
        )
    out += b"\x00" * (node.size - written)


def layout_blocks(
    forest: Iterable[ChunkNode],
    blocks: Optional[Sequence[bytes]] = None,
) -> List[bytearray]:
    """Write every leaf payload into its data block at its offset.

    ``blocks`` seeds the buffers (copied, never modified); missing buffers are
    created and grown as needed.
    """

    out: List[bytearray] = [bytearray(block) for block in (blocks or ())]
    for node in iter_forest(forest):
        if node.has_children or node.payload is None:
            continue
        while len(out) <= node.block_index:
            out.append(bytearray())
        buffer = out[node.block_index]
        end = node.offset + len(node.payload)
        if len(buffer) < end:
            buffer.extend(b"\x00" * (end - len(buffer)))
        buffer[node.offset:end] = node.payload
    return out


def walk(node: ChunkNode) -> Iterator[ChunkNode]:
    """Depth-first pre-order traversal of ``node`` and its descendants."""

    yield node
    for child in node.children or ():
        yield from walk(child)


def iter_forest(forest: Iterable[ChunkNode]) -> Iterator[ChunkNode]:
    for root in forest:
        yield from walk(root)


def find_root(forest: Sequence[ChunkNode], target: ChunkNode) -> Tuple[int, int]:
    """Return ``(root_index, pre_order_position)`` of ``target`` by identity."""

    for root_index, root in enumerate(forest):
        for position, node in enumerate(walk(root)):
            if node is target:
                return root_index, position
    raise NodeNotFound(f"{target.type_name} at offset 0x{target.offset:X} is not part of the chunk forest")


def find_child(node: ChunkNode, type_id: int) -> Optional[ChunkNode]:
    for child in node.children or ():
        if child.type_id == type_id:
            return child
    return None


def find_children(node: ChunkNode, type_id: int) -> List[ChunkNode]:
    return [child for child in node.children or () if child.type_id == type_id]


def file_entry_info(node: ChunkNode) -> Optional[Tuple[int, int]]:
    """``(file_type, file_hash)`` of a FileTable leaf, ``None`` otherwise."""

    if node.type_id != ChunkType.FileTable or node.has_children:
        return None
    if node.payload is None or len(node.payload) < 8:
        return None
    file_type, file_hash = struct.unpack_from("<II", node.payload, 0)
    return file_type, file_hash


def format_tree(forest: Iterable[ChunkNode], hashes: Optional[HashNameTable] = None) -> str:
    """Indented one-line-per-node listing of ``forest``."""

    table = HASH_NAMES if hashes is None else hashes
    lines: List[str] = []

    def emit(node: ChunkNode, depth: int) -> None:
        text = (
            f"{'  ' * depth}{node.type_name} [0x{node.type_id:04X}] "
            f"offset=0x{node.offset:X} size=0x{node.size:X}"
        )
        if not node.has_children:
            text += f" block={node.block_index} align={node.alignment}"
        info = file_entry_info(node)
        if info is not None:
            text += f" file_type=0x{info[0]:X} {table.name_for(info[1])}"
        lines.append(text)
        for child in node.children or ():
            emit(child, depth + 1)

    for root in forest:
        emit(root, 0)
    return "\n".join(lines)


__all__ = [
    "ChunkNode",
    "HEADER_SIZE",
    "container",
    "file_entry_info",
    "find_child",
    "find_children",
    "find_root",
    "format_tree",
    "header_span",
    "iter_forest",
    "layout_blocks",
    "leaf",
    "make_flags",
    "parse",
    "parse_forest",
    "serialize",
    "walk",
]
