"""Reader and writer for ``.dict`` block indices.

Layout (little endian)::

    0x00  u32  magic 0xA9F32458
    0x04  u16  version
    0x06  u8   is_compressed
    0x07  u8   padding
    0x08  u32  block count
    0x0C  u32  largest stored block size
    0x10  u8   table reference count (T)
    0x11  u8   reserved entry count (R)
    0x12  u16  padding
    0x14  R * 8 bytes reserved section
          count * 16 bytes block descriptors
          T * 12 bytes table reference section
          trailer (section names)

Reserved, table-reference and trailer bytes are kept opaque so that
``load(save(index)) == index``.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List

from ..exceptions import BadMagic, CorruptIndex

LOGGER = logging.getLogger(__name__)

DICT_MAGIC = 0xA9F32458

HEADER = struct.Struct("<IHBBIIBBH")
BLOCK = struct.Struct("<IIIB3x")
RESERVED_ENTRY_SIZE = 8
TABLE_REF_SIZE = 12

DEFAULT_VERSION = 0x0401
DEFAULT_TRAILER = b".data\x00.debug\x00"


class BlockUsage(IntEnum):
    """Usage tag of a dictionary block."""

    DATA = 0
    TABLE = 1
    DEBUG = 2


@dataclass
class BlockDescriptor:
    """One contiguous region of the ``.data`` file."""

    offset: int
    decompressed_size: int
    compressed_size: int
    usage_tag: int = BlockUsage.DATA

    @property
    def is_data(self) -> bool:
        return self.usage_tag == BlockUsage.DATA

    def stored_compressed(self, index_compressed: bool) -> bool:
        """Return ``True`` when the block bytes are deflated on disk."""

        return index_compressed and self.is_data

    def stored_size(self, index_compressed: bool) -> int:
        if self.stored_compressed(index_compressed):
            return self.compressed_size
        return self.decompressed_size

    def as_dict(self) -> Dict[str, int]:
        return {
            "offset": self.offset,
            "decompressed_size": self.decompressed_size,
            "compressed_size": self.compressed_size,
            "usage_tag": int(self.usage_tag),
        }


@dataclass
class DictionaryIndex:
    """Block index of an archive plus the opaque sections around it."""

    is_compressed: bool = False
    blocks: List[BlockDescriptor] = field(default_factory=list)
    version: int = DEFAULT_VERSION
    largest_block_size: int = 0
    reserved: bytes = b""
    table_refs: bytes = b""
    trailer: bytes = DEFAULT_TRAILER

    def data_block_ids(self) -> List[int]:
        """Dictionary positions of DATA blocks, in order."""

        return [i for i, block in enumerate(self.blocks) if block.is_data]

    def table_block_id(self) -> int | None:
        for i, block in enumerate(self.blocks):
            if block.usage_tag == BlockUsage.TABLE:
                return i
        return None

    def validate(self, data_length: int) -> None:
        """Check every block fits inside a data file of ``data_length`` bytes."""

        for i, block in enumerate(self.blocks):
            end = block.offset + block.stored_size(self.is_compressed)
            if end > data_length:
                raise CorruptIndex(
                    f"block {i} ends at 0x{end:X}, past the data file end 0x{data_length:X}"
                )


def load(data: bytes) -> DictionaryIndex:
    """Parse a ``.dict`` buffer into a :class:`DictionaryIndex`."""

    if len(data) < 4:
        raise BadMagic(None, DICT_MAGIC)
    magic = int.from_bytes(data[:4], "little")
    if magic != DICT_MAGIC:
        raise BadMagic(magic, DICT_MAGIC)
    if len(data) < HEADER.size:
        raise CorruptIndex(f"index header needs {HEADER.size} bytes, got {len(data)}")

    (
        _magic,
        version,
        is_compressed,
        _pad,
        block_count,
        largest,
        table_ref_count,
        reserved_count,
        _pad2,
    ) = HEADER.unpack_from(data, 0)

    pos = HEADER.size
    reserved = _take(data, pos, reserved_count * RESERVED_ENTRY_SIZE, "reserved section")
    pos += len(reserved)

    blocks: List[BlockDescriptor] = []
    _take(data, pos, block_count * BLOCK.size, "block descriptors")
    for _ in range(block_count):
        offset, decompressed, compressed, usage = BLOCK.unpack_from(data, pos)
        blocks.append(BlockDescriptor(offset, decompressed, compressed, usage))
        pos += BLOCK.size

    table_refs = _take(data, pos, table_ref_count * TABLE_REF_SIZE, "table references")
    pos += len(table_refs)

    index = DictionaryIndex(
        is_compressed=bool(is_compressed),
        blocks=blocks,
        version=version,
        largest_block_size=largest,
        reserved=reserved,
        table_refs=table_refs,
        trailer=bytes(data[pos:]),
    )
    LOGGER.debug(
        "loaded index: %d block(s), compressed=%s, %d table ref(s)",
        len(blocks),
        index.is_compressed,
        table_ref_count,
    )
    return index


def save(index: DictionaryIndex) -> bytes:
    """Serialise ``index`` using the same field order as :func:`load`."""

    if len(index.reserved) % RESERVED_ENTRY_SIZE:
        raise ValueError("reserved section must be a multiple of 8 bytes")
    if len(index.table_refs) % TABLE_REF_SIZE:
        raise ValueError("table reference section must be a multiple of 12 bytes")

    out = bytearray(
        HEADER.pack(
            DICT_MAGIC,
            index.version,
            1 if index.is_compressed else 0,
            0,
            len(index.blocks),
            index.largest_block_size,
            len(index.table_refs) // TABLE_REF_SIZE,
            len(index.reserved) // RESERVED_ENTRY_SIZE,
            0,
        )
    )
    out += index.reserved
    for block in index.blocks:
        out += BLOCK.pack(block.offset, block.decompressed_size, block.compressed_size, block.usage_tag)
    out += index.table_refs
    out += index.trailer
    return bytes(out)


def _take(data: bytes, pos: int, size: int, what: str) -> bytes:
    if pos + size > len(data):
        raise CorruptIndex(f"{what} needs {size} byte(s) at 0x{pos:X}, index has {len(data)}")
    return bytes(data[pos:pos + size])


__all__ = [
    "BlockDescriptor",
    "BlockUsage",
    "DICT_MAGIC",
    "DictionaryIndex",
    "load",
    "save",
]
