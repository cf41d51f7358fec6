"""Script chunk family: module model, loader and writer."""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "Function": ".model",
    "Script": ".model",
    "ScriptModule": ".model",
    "Variable": ".model",
    "decompile_script": ".loader",
    "iter_script_modules": ".loader",
    "encode_script_data": ".writer",
    "reemit_script_data": ".writer",
    "patch_variable": ".writer",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegator
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name], __name__)
        value = getattr(module, name)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
