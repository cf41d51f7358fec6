"""Chunk forest model, type registry and repack engine."""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "ChunkNode": ".tree",
    "parse_forest": ".tree",
    "serialize": ".tree",
    "walk": ".tree",
    "find_root": ".tree",
    "format_tree": ".tree",
    "ChunkType": ".types",
    "chunk_type_name": ".types",
    "PayloadEdit": ".repack",
    "set_payload": ".repack",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegator
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name], __name__)
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
