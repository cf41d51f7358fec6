"""Logging helpers for the command line and per-run decompiler traces."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

__all__ = [
    "TRACE_LOGGER_NAME",
    "TraceFileHandler",
    "configure_logging",
    "trace_to_file",
]

TRACE_LOGGER_NAME = "evershade.vm.trace"

_DEFAULT_FORMAT = "%(levelname)s %(name)s: %(message)s"


def configure_logging(verbose: bool = False, *, level: str | int | None = None) -> None:
    """Install a basic stderr handler for command line runs.

    ``verbose`` wins over ``level``; ``level`` accepts either a logging
    constant or its name (``"INFO"``, ``"debug"``...).
    """

    if verbose:
        resolved = logging.DEBUG
    elif isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level: {level!r}")
    elif level is None:
        resolved = logging.INFO
    else:
        resolved = level
    logging.basicConfig(level=resolved, format=_DEFAULT_FORMAT)


class TraceFileHandler(logging.FileHandler):
    """One instruction per line, truncating the file on open."""

    def __init__(self, path: Path) -> None:
        super().__init__(path, mode="w", encoding="utf-8")
        self.setFormatter(logging.Formatter("%(message)s"))


@contextmanager
def trace_to_file(path: Path) -> Iterator[logging.Logger]:
    """Send the decompiler trace to ``path`` for the duration of the block.

    The trace stays out of the stderr log while the file is attached.  A
    trace file left attached by an earlier run is replaced.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(TRACE_LOGGER_NAME)
    for stale in [h for h in logger.handlers if isinstance(h, TraceFileHandler)]:
        logger.removeHandler(stale)
        stale.close()

    handler = TraceFileHandler(path)
    level, propagate = logger.level, logger.propagate
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    try:
        yield logger
    finally:
        logger.removeHandler(handler)
        handler.close()
        logger.setLevel(level)
        logger.propagate = propagate
