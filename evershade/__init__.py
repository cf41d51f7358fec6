"""Toolkit for ``.dict``/``.data`` game archives and their script bytecode."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - used only for type checkers
    from .io.archive import Archive, open_archive
    from .chunks.tree import ChunkNode
    from .script.loader import decompile_script
    from .hashing import HASH_NAMES, HashNameTable

__all__ = [
    "Archive",
    "ChunkNode",
    "HASH_NAMES",
    "HashNameTable",
    "decompile_script",
    "open_archive",
]

__version__ = "0.3.0"


def __getattr__(name: str) -> Any:
    if name == "Archive":
        from .io.archive import Archive as _Archive
        return _Archive
    if name == "open_archive":
        from .io.archive import open_archive as _open_archive
        return _open_archive
    if name == "ChunkNode":
        from .chunks.tree import ChunkNode as _ChunkNode
        return _ChunkNode
    if name == "decompile_script":
        from .script.loader import decompile_script as _decompile_script
        return _decompile_script
    if name in ("HASH_NAMES", "HashNameTable"):
        from . import hashing

        return getattr(hashing, name)
    raise AttributeError(name)
