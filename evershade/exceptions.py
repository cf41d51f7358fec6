"""Custom exception hierarchy for the archive and script tooling."""

from __future__ import annotations

from typing import Optional


class EvershadeError(Exception):
    """Base class for all archive, chunk and script related errors."""


class BadMagic(EvershadeError):
    """Raised when a ``.dict`` index does not start with the expected signature."""

    def __init__(self, found: Optional[int], expected: int) -> None:
        self.found = found
        self.expected = expected
        if found is None:
            detail = "index is too short to hold a signature"
        else:
            detail = f"found 0x{found:08X}"
        super().__init__(f"bad dictionary magic (expected 0x{expected:08X}, {detail})")


class CorruptIndex(EvershadeError):
    """Raised when a section declared by the index header runs past its end."""


class CorruptBlock(EvershadeError):
    """Raised when a data block cannot be inflated to its declared size."""

    def __init__(
        self,
        message: str,
        *,
        block_index: Optional[int] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
    ) -> None:
        self.block_index = block_index
        self.expected = expected
        self.actual = actual
        if block_index is not None:
            message = f"block {block_index}: {message}"
        super().__init__(message)


class MalformedChunk(EvershadeError):
    """Raised when a chunk header run overflows the bytes of its parent."""


class NodeNotFound(EvershadeError):
    """Raised when a mutation target is not reachable from any root chunk."""


class DecompileError(EvershadeError):
    """Base class for errors confined to a single script function."""

    def __init__(self, message: str, *, function_hash: Optional[int] = None, position: Optional[int] = None) -> None:
        self.function_hash = function_hash
        self.position = position
        super().__init__(message)


class TruncatedInstructionStream(DecompileError):
    """The code section ended before an ``END`` instruction was decoded."""


class UnsupportedMoveWidth(DecompileError):
    """``MOV_8`` used a width other than 1, 2 or 4 bytes."""

    def __init__(self, width: int, **kwargs: object) -> None:
        self.width = width
        super().__init__(f"unsupported MOV_8 width {width}", **kwargs)  # type: ignore[arg-type]


class MissingRequiredChunk(EvershadeError):
    """A script module lacks its header, data or function-table chunk."""

    def __init__(self, type_id: int, message: Optional[str] = None) -> None:
        self.type_id = type_id
        super().__init__(message or f"script module is missing required chunk 0x{type_id:04X}")


class VariablePatchError(EvershadeError):
    """A decompiled variable cannot be written back in place."""


__all__ = [
    "EvershadeError",
    "BadMagic",
    "CorruptIndex",
    "CorruptBlock",
    "MalformedChunk",
    "NodeNotFound",
    "DecompileError",
    "TruncatedInstructionStream",
    "UnsupportedMoveWidth",
    "MissingRequiredChunk",
    "VariablePatchError",
]
