from pathlib import Path

import pytest

from evershade import hashing
from evershade.hashing import HASH_NAMES, HashNameTable, parse_hash


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("0x1A2B3C4D", 0x1A2B3C4D),
        ("0XFF", 0xFF),
        ("DEADBEEF", 0xDEADBEEF),
        ("00000010", 0x10),
        ("1234", 1234),
        (" 42 ", 42),
        ("4294967296", None),
        ("0x100000000", None),
        ("bad", None),
        ("0xZZ", None),
        ("", None),
    ],
)
def test_parse_hash(text: str, expected) -> None:
    assert parse_hash(text) == expected


def test_load_lines_skips_noise_and_later_entries_win() -> None:
    table = HashNameTable()
    accepted = table.load_lines(
        [
            "0x10: first\n",
            "\n",
            "no separator here\n",
            "nothex: ignored\n",
            "16: second\n",
            "DEADBEEF: door\n",
        ]
    )
    assert accepted == 3
    assert len(table) == 2
    assert table.get(16) == "second"
    assert 0xDEADBEEF in table
    assert table.name_for(0xDEADBEEF) == "door"
    assert table.name_for(0xAB) == "0x000000AB"
    assert table.name_for(0xAB, prefix="Func_") == "Func_000000AB"


def test_process_wide_table(tmp_path: Path) -> None:
    names = tmp_path / "names.txt"
    names.write_text("0x01: one\n0x02: two\n", encoding="utf-8")
    assert hashing.load_hash_names(names) == 2
    assert hashing.get_hash_name(2) == "two"
    assert sorted(HASH_NAMES) == [1, 2]
