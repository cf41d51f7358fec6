"""Raw DEFLATE block codec.

Blocks inside ``.data`` files are plain RFC 1951 streams.  Some tools wrap
them with a two byte zlib header (``78 9C`` or ``78 DA``); that header is
detected by byte pattern and skipped before inflating.
"""

from __future__ import annotations

import logging
import zlib

from ..exceptions import CorruptBlock

LOGGER = logging.getLogger(__name__)

ZLIB_HEADERS = (b"\x78\x9c", b"\x78\xda")

_RAW_WBITS = -15


def has_zlib_header(raw: bytes) -> bool:
    return bytes(raw[:2]) in ZLIB_HEADERS


def decompress(raw: bytes, expected_size: int, *, block_index: int | None = None) -> bytes:
    """Inflate ``raw`` and check the result is exactly ``expected_size`` bytes."""

    stream = raw[2:] if has_zlib_header(raw) else raw
    inflater = zlib.decompressobj(_RAW_WBITS)
    try:
        out = inflater.decompress(bytes(stream))
        out += inflater.flush()
    except zlib.error as exc:
        raise CorruptBlock(f"invalid deflate stream: {exc}", block_index=block_index) from exc
    if not inflater.eof:
        raise CorruptBlock(
            "deflate stream is truncated",
            block_index=block_index,
            expected=expected_size,
            actual=len(out),
        )
    if len(out) != expected_size:
        raise CorruptBlock(
            f"inflated {len(out)} byte(s), expected {expected_size}",
            block_index=block_index,
            expected=expected_size,
            actual=len(out),
        )
    LOGGER.debug("inflated block %s: %d -> %d bytes", block_index, len(raw), len(out))
    return out


def compress(raw: bytes, level: int = -1) -> bytes:
    """Deflate ``raw`` without any zlib or gzip framing."""

    deflater = zlib.compressobj(level, zlib.DEFLATED, _RAW_WBITS)
    return deflater.compress(bytes(raw)) + deflater.flush()


__all__ = ["ZLIB_HEADERS", "compress", "decompress", "has_zlib_header"]
