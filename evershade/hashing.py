"""Hash to name lookup shared by the tree listing and the decompiler.

Name files hold one ``hash: name`` pair per line.  The hash may be written as
``0x``-prefixed hex, as exactly eight bare hex digits, or in decimal.  Blank
lines and lines without a ``:`` separator are skipped; later entries replace
earlier ones.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional

LOGGER = logging.getLogger(__name__)

_BARE_HEX = re.compile(r"^[0-9A-Fa-f]{8}$")


def parse_hash(text: str) -> Optional[int]:
    """Parse the hash half of a name-file line, ``None`` when it is not a u32."""

    text = text.strip()
    try:
        if text[:2].lower() == "0x":
            value = int(text[2:], 16)
        elif _BARE_HEX.match(text):
            value = int(text, 16)
        else:
            if not text.isdigit():
                return None
            value = int(text, 10)
    except ValueError:
        return None
    if value > 0xFFFFFFFF:
        return None
    return value


class HashNameTable:
    """Read-mostly ``u32 -> name`` mapping."""

    def __init__(self, names: Optional[Dict[int, str]] = None) -> None:
        self._names: Dict[int, str] = dict(names or {})

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, value: object) -> bool:
        return value in self._names

    def __iter__(self) -> Iterator[int]:
        return iter(self._names)

    def add(self, value: int, name: str) -> None:
        self._names[value & 0xFFFFFFFF] = name

    def get(self, value: int) -> Optional[str]:
        return self._names.get(value)

    def name_for(self, value: int, *, prefix: str = "") -> str:
        """Known name, or ``<prefix>%08X`` (``0x%08X`` without a prefix)."""

        name = self._names.get(value)
        if name:
            return name
        if prefix:
            return f"{prefix}{value:08X}"
        return f"0x{value:08X}"

    def load_lines(self, lines: Iterable[str]) -> int:
        """Merge ``hash: name`` lines; returns the number of entries accepted."""

        accepted = 0
        for line in lines:
            if not line.strip() or ":" not in line:
                continue
            hash_part, _, name_part = line.partition(":")
            value = parse_hash(hash_part)
            if value is None:
                LOGGER.debug("skipping unparsable hash line %r", line.rstrip())
                continue
            self._names[value] = name_part.strip()
            accepted += 1
        return accepted

    def load_file(self, path: Path) -> int:
        with Path(path).open("r", encoding="utf-8", errors="replace") as handle:
            count = self.load_lines(handle)
        LOGGER.info("loaded %d hash name(s) from %s", count, path)
        return count

    def clear(self) -> None:
        self._names.clear()


HASH_NAMES = HashNameTable()


def load_hash_names(*paths: Path) -> int:
    """Populate the process-wide table; intended to run once at startup."""

    total = 0
    for path in paths:
        total += HASH_NAMES.load_file(path)
    return total


def get_hash_name(value: int, *, prefix: str = "") -> str:
    return HASH_NAMES.name_for(value, prefix=prefix)


__all__ = [
    "HASH_NAMES",
    "HashNameTable",
    "get_hash_name",
    "load_hash_names",
    "parse_hash",
]
