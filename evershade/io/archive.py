"""High level access to a ``.dict``/``.data`` archive pair."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..chunks.repack import PayloadEdit, set_payload
from ..chunks.tree import ChunkNode, iter_forest, parse_forest, serialize
from ..exceptions import CorruptBlock, EvershadeError, MissingRequiredChunk
from ..script.model import ScriptModule
from ..script.writer import encode_module_chunks
from . import codec, dictionary
from .dictionary import DictionaryIndex

LOGGER = logging.getLogger(__name__)


@dataclass
class _Snapshot:
    """Mutable archive state saved around a multi-chunk write."""

    nodes: List[Tuple[ChunkNode, int, int, Optional[bytes]]]
    sizes: List[int]
    blocks: List[bytes]
    dirty: Set[int]
    corrupt_blocks: Dict[int, CorruptBlock]
    table_dirty: bool


class Archive:
    """Decoded blocks of an archive plus its lazily parsed chunk forest.

    ``blocks`` is indexed by dictionary position and always holds the
    decompressed bytes, except for entries listed in ``corrupt_blocks`` which
    keep their stored bytes.
    """

    def __init__(
        self,
        index: DictionaryIndex,
        blocks: Sequence[bytes],
        *,
        stored: Optional[Sequence[bytes]] = None,
        corrupt_blocks: Optional[Dict[int, CorruptBlock]] = None,
        compression_level: int = -1,
    ) -> None:
        self.index = index
        self.blocks: List[bytes] = list(blocks)
        self.corrupt_blocks: Dict[int, CorruptBlock] = dict(corrupt_blocks or {})
        self.compression_level = compression_level
        self._stored: List[bytes] = list(stored) if stored is not None else list(self.blocks)
        self._dirty: Set[int] = set()
        self._forest: Optional[List[ChunkNode]] = None
        self._table_dirty = False

    # ------------------------------------------------------------------
    @classmethod
    def open(
        cls,
        dict_bytes: bytes,
        data_bytes: bytes,
        *,
        strict: bool = False,
        compression_level: int = -1,
    ) -> "Archive":
        """Decode every block listed by the index.

        A block that fails to inflate raises :class:`CorruptBlock` when
        ``strict`` is set; otherwise its stored bytes are kept and the error
        is recorded in :attr:`corrupt_blocks`.
        """

        index = dictionary.load(dict_bytes)
        index.validate(len(data_bytes))

        blocks: List[bytes] = []
        stored_blocks: List[bytes] = []
        corrupt: Dict[int, CorruptBlock] = {}
        for i, descriptor in enumerate(index.blocks):
            end = descriptor.offset + descriptor.stored_size(index.is_compressed)
            stored = bytes(data_bytes[descriptor.offset:end])
            stored_blocks.append(stored)
            if not descriptor.stored_compressed(index.is_compressed):
                blocks.append(stored)
                continue
            try:
                blocks.append(codec.decompress(stored, descriptor.decompressed_size, block_index=i))
            except CorruptBlock as exc:
                if strict:
                    raise
                LOGGER.warning("keeping stored bytes of %s", exc)
                corrupt[i] = exc
                blocks.append(stored)

        LOGGER.info(
            "opened archive: %d block(s), compressed=%s, %d corrupt",
            len(blocks),
            index.is_compressed,
            len(corrupt),
        )
        return cls(
            index,
            blocks,
            stored=stored_blocks,
            corrupt_blocks=corrupt,
            compression_level=compression_level,
        )

    # ------------------------------------------------------------------
    def data_blocks(self) -> List[Optional[bytes]]:
        """DATA blocks in dictionary order; a node's ``block_index`` indexes this."""

        return [self.blocks[i] for i in self.index.data_block_ids()]

    @property
    def chunk_table(self) -> bytes:
        table_id = self.index.table_block_id()
        if table_id is None:
            return b""
        return self.blocks[table_id]

    def chunks(self) -> List[ChunkNode]:
        """Root chunks of the archive, parsed once and then shared."""

        if self._forest is None:
            self._forest = parse_forest(self.chunk_table, self.data_blocks())
        return self._forest

    def set_chunk_payload(self, node: ChunkNode, payload: bytes) -> PayloadEdit:
        data = self.data_blocks()
        edit = set_payload(self.chunks(), node, payload, index=self.index, blocks=data)
        if edit.descriptor_id is not None and edit.block_size is not None:
            self.blocks[edit.descriptor_id] = data[node.block_index]
            self._dirty.add(edit.descriptor_id)
            self.corrupt_blocks.pop(edit.descriptor_id, None)
        self._table_dirty = True
        return edit

    def write_script_module(
        self,
        subtree: ChunkNode,
        module: ScriptModule,
        *,
        reemit: bool = False,
    ) -> List[PayloadEdit]:
        """Re-encode ``module`` into the children of the Script container ``subtree``.

        Either every changed chunk is written or, when one of them is
        rejected, none is and the error propagates.
        """

        payloads = encode_module_chunks(module, reemit=reemit)
        targets: List[Tuple[ChunkNode, bytes]] = []
        for type_id, items in payloads.items():
            nodes = subtree.find_children(type_id)
            if len(nodes) != len(items):
                raise MissingRequiredChunk(
                    type_id,
                    f"module needs {len(items)} chunk(s) of type 0x{type_id:04X}, subtree has {len(nodes)}",
                )
            targets.extend(zip(nodes, items))

        edits: List[PayloadEdit] = []
        snapshot = self._snapshot()
        try:
            for node, payload in targets:
                if node.payload == payload:
                    continue
                edits.append(self.set_chunk_payload(node, payload))
        except (ValueError, EvershadeError):
            self._restore(snapshot)
            raise
        return edits

    def _snapshot(self) -> "_Snapshot":
        return _Snapshot(
            nodes=[(node, node.offset, node.size, node.payload) for node in iter_forest(self.chunks())],
            sizes=[descriptor.decompressed_size for descriptor in self.index.blocks],
            blocks=list(self.blocks),
            dirty=set(self._dirty),
            corrupt_blocks=dict(self.corrupt_blocks),
            table_dirty=self._table_dirty,
        )

    def _restore(self, snapshot: "_Snapshot") -> None:
        for node, offset, size, payload in snapshot.nodes:
            node.offset, node.size, node.payload = offset, size, payload
        for descriptor, size in zip(self.index.blocks, snapshot.sizes):
            descriptor.decompressed_size = size
        self.blocks = snapshot.blocks
        self._dirty = snapshot.dirty
        self.corrupt_blocks = snapshot.corrupt_blocks
        self._table_dirty = snapshot.table_dirty
        LOGGER.warning("script module write rejected; archive left unchanged")

    # ------------------------------------------------------------------
    def _table_bytes(self) -> bytes:
        original = self.chunk_table
        if not self._table_dirty or self._forest is None:
            return original
        table = serialize(self._forest)
        if len(table) < len(original):
            table += original[len(table):]
        return table

    def save(self, compressed: Optional[bool] = None, *, level: Optional[int] = None) -> Tuple[bytes, bytes]:
        """Return ``(dict_bytes, data_bytes)``.

        ``compressed`` switches the storage mode (``None`` keeps the current
        one).  Blocks are laid out back to back in dictionary order.
        Untouched blocks already stored in the requested form are copied
        verbatim.
        """

        target = self.index.is_compressed if compressed is None else compressed
        level = self.compression_level if level is None else level
        index = copy.deepcopy(self.index)
        index.is_compressed = target

        table_id = self.index.table_block_id()
        table = self._table_bytes()

        out = bytearray()
        largest = 0
        for i, descriptor in enumerate(self.index.blocks):
            new_descriptor = index.blocks[i]
            raw = table if i == table_id else self.blocks[i]
            changed = i in self._dirty or (i == table_id and raw != self.blocks[i])
            if i in self.corrupt_blocks:
                stored = self._stored[i]
                LOGGER.warning("block %d is corrupt; writing its stored bytes unchanged", i)
            elif descriptor.stored_compressed(target):
                if not changed and descriptor.stored_compressed(self.index.is_compressed):
                    stored = self._stored[i]
                else:
                    stored = codec.compress(raw, level)
                new_descriptor.compressed_size = len(stored)
                new_descriptor.decompressed_size = len(raw)
            else:
                stored = raw
                new_descriptor.decompressed_size = len(raw)
            new_descriptor.offset = len(out)
            out += stored
            largest = max(largest, len(stored))

        index.largest_block_size = max(self.index.largest_block_size, largest)
        LOGGER.info("saved archive: %d block(s), %d byte(s), compressed=%s", len(index.blocks), len(out), target)
        return dictionary.save(index), bytes(out)


def open_archive(dict_bytes: bytes, data_bytes: bytes, *, strict: bool = False) -> Archive:
    return Archive.open(dict_bytes, data_bytes, strict=strict)


def decompress_archive(dict_bytes: bytes, data_bytes: bytes) -> Tuple[bytes, bytes]:
    """Rewrite an archive with every DATA block stored inflated."""

    archive = Archive.open(dict_bytes, data_bytes, strict=True)
    if not archive.index.is_compressed:
        LOGGER.info("archive is already stored uncompressed")
    return archive.save(compressed=False)


def compress_archive(dict_bytes: bytes, data_bytes: bytes, *, level: int = -1) -> Tuple[bytes, bytes]:
    """Rewrite an archive with every DATA block deflated."""

    archive = Archive.open(dict_bytes, data_bytes, strict=True)
    if archive.index.is_compressed:
        LOGGER.info("archive is already stored compressed")
    return archive.save(compressed=True, level=level)


__all__ = [
    "Archive",
    "compress_archive",
    "decompress_archive",
    "open_archive",
]
