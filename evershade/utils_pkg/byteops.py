"""Helpers for interpreting packed little-endian archive fields."""

from __future__ import annotations

import math
import struct

_F32 = struct.Struct("<f")
_U32 = struct.Struct("<I")


def sign_extend(value: int, bits: int) -> int:
    """Sign extend ``value`` with ``bits`` significant bits."""

    if bits <= 0:
        return value
    value &= (1 << bits) - 1
    mask = 1 << (bits - 1)
    return (value ^ mask) - mask


def f32_from_bits(bits: int) -> float:
    """Reinterpret a 32-bit pattern as an IEEE-754 single precision float."""

    return _F32.unpack(_U32.pack(bits & 0xFFFFFFFF))[0]


def bits_from_f32(value: float) -> int:
    """Return the 32-bit pattern of ``value`` rounded to single precision."""

    return _U32.unpack(_F32.pack(value))[0]


def to_f32(value: float) -> float:
    """Round ``value`` to the nearest representable single precision float."""

    return _F32.unpack(_F32.pack(value))[0]


def format_f32(value: float) -> str:
    """Shortest decimal text that still maps back to the same float32."""

    if math.isnan(value) or math.isinf(value):
        return repr(value)
    target = bits_from_f32(value)
    for digits in range(1, 10):
        text = f"{value:.{digits}g}"
        if bits_from_f32(float(text)) == target:
            break
    if "e" not in text and "." not in text and "inf" not in text:
        text += ".0"
    return text


def align_up(value: int, alignment: int) -> int:
    """Round ``value`` up to a multiple of ``alignment`` (a power of two).

    Negative values round toward zero, so ``align_up(-3, 4) == 0``.
    """

    if alignment <= 1:
        return value
    return (value + alignment - 1) & ~(alignment - 1)


def read_cstring(data: bytes, offset: int, *, encoding: str = "utf-8") -> str:
    """Read a zero-terminated string; a missing terminator ends at ``len(data)``."""

    if offset >= len(data):
        return ""
    end = data.find(b"\x00", offset)
    if end < 0:
        end = len(data)
    return data[offset:end].decode(encoding, "surrogateescape")


__all__ = [
    "align_up",
    "bits_from_f32",
    "f32_from_bits",
    "format_f32",
    "read_cstring",
    "sign_extend",
    "to_f32",
]
