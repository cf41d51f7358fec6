"""YAML configuration for the command line tools.

Example::

    hash_names:
      - hashes/lm2.txt
    compression_level: 6
    log_level: INFO
    debug_log: out/trace.log
    output_dir: out

Relative paths resolve against the directory of the config file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, MutableMapping, Optional

import yaml

LOGGER = logging.getLogger(__name__)

_KNOWN_KEYS = ("hash_names", "compression_level", "log_level", "debug_log", "output_dir")


@dataclass
class EvershadeConfig:
    hash_names: List[Path] = field(default_factory=list)
    compression_level: int = -1
    log_level: str = "INFO"
    debug_log: Optional[Path] = None
    output_dir: Optional[Path] = None

    def as_dict(self) -> dict:
        return {
            "hash_names": [str(path) for path in self.hash_names],
            "compression_level": self.compression_level,
            "log_level": self.log_level,
            "debug_log": str(self.debug_log) if self.debug_log else None,
            "output_dir": str(self.output_dir) if self.output_dir else None,
        }


def _resolve(base: Path, value: Any, *, key: str) -> Path:
    if not isinstance(value, (str, Path)):
        raise ValueError(f"{key} must be a path, got {value!r}")
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return path


def config_from_mapping(data: MutableMapping[str, Any], base: Path) -> EvershadeConfig:
    unknown = sorted(set(data) - set(_KNOWN_KEYS))
    if unknown:
        raise ValueError(f"unknown config key(s): {', '.join(unknown)}")

    config = EvershadeConfig()
    names = data.get("hash_names") or []
    if isinstance(names, (str, Path)):
        names = [names]
    if not isinstance(names, list):
        raise ValueError("hash_names must be a path or a list of paths")
    config.hash_names = [_resolve(base, item, key="hash_names") for item in names]

    level = data.get("compression_level", -1)
    if isinstance(level, bool) or not isinstance(level, int) or not -1 <= level <= 9:
        raise ValueError(f"compression_level must be an integer between -1 and 9, got {level!r}")
    config.compression_level = level

    log_level = data.get("log_level", "INFO")
    if not isinstance(log_level, str) or not isinstance(logging.getLevelName(log_level.upper()), int):
        raise ValueError(f"unknown log_level: {log_level!r}")
    config.log_level = log_level.upper()

    if data.get("debug_log") is not None:
        config.debug_log = _resolve(base, data["debug_log"], key="debug_log")
    if data.get("output_dir") is not None:
        config.output_dir = _resolve(base, data["output_dir"], key="output_dir")
    return config


def load_config(path: Optional[Path]) -> EvershadeConfig:
    """Read ``path``; a missing path (or ``None``) yields the defaults."""

    if path is None:
        return EvershadeConfig()
    path = Path(path)
    if not path.exists():
        LOGGER.debug("config %s not found, using defaults", path)
        return EvershadeConfig()
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return EvershadeConfig()
    if not isinstance(data, MutableMapping):
        raise ValueError(f"Expected mapping at root of config: {path}")
    return config_from_mapping(data, path.parent)


__all__ = ["EvershadeConfig", "config_from_mapping", "load_config"]
