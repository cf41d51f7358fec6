"""Test configuration ensuring the project source tree is importable."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
TESTS = ROOT / "tests"

root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)
if str(TESTS) not in sys.path:
    sys.path.insert(1, str(TESTS))

from evershade.hashing import HASH_NAMES, HashNameTable  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_hash_names():
    """The process-wide name table must not leak between tests."""

    HASH_NAMES.clear()
    yield
    HASH_NAMES.clear()


@pytest.fixture
def names() -> HashNameTable:
    return HashNameTable()
