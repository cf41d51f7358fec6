"""Archive container I/O: block codec, dictionary index and archive facade."""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "Archive": ".archive",
    "open_archive": ".archive",
    "compress_archive": ".archive",
    "decompress_archive": ".archive",
    "BlockDescriptor": ".dictionary",
    "BlockUsage": ".dictionary",
    "DictionaryIndex": ".dictionary",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegator
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name], __name__)
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
