import struct

import pytest

from archive_builders import end_of, place, simple_module_forest
from evershade.chunks import tree
from evershade.chunks.tree import ChunkNode, container, leaf, make_flags
from evershade.chunks.types import ChunkType, chunk_type_name, is_script_family
from evershade.exceptions import MalformedChunk, NodeNotFound


def test_flag_derived_properties() -> None:
    node = ChunkNode(type_id=1, flags=make_flags(has_children=True, block_index=2, alignment=16))
    assert node.has_children
    assert node.block_index == 2
    assert node.raw_alignment == 512
    assert node.alignment == 16

    assert ChunkNode(type_id=1, flags=0x0100).alignment == 8
    # bit 8 set but the field is not exactly 512
    assert ChunkNode(type_id=1, flags=0x0300).alignment == 8
    assert ChunkNode(type_id=1, flags=0x0400).alignment == 4
    assert ChunkNode(type_id=1, flags=0x3000).block_index == 3


def test_make_flags_rejects_unknown_alignment() -> None:
    with pytest.raises(ValueError):
        make_flags(alignment=2)
    with pytest.raises(ValueError):
        make_flags(block_index=4)


def test_parse_and_serialize_round_trip() -> None:
    forest = simple_module_forest()
    table = tree.serialize(forest)
    blocks = [bytes(block) for block in tree.layout_blocks(forest)]

    parsed = tree.parse_forest(table, blocks)
    assert tree.serialize(parsed) == table
    assert [node.type_id for node in parsed] == [ChunkType.Script, ChunkType.FileTable]
    script = parsed[0]
    assert [child.type_id for child in script.children] == [
        ChunkType.ScriptHeader,
        ChunkType.ScriptFunctionTable,
        ChunkType.ScriptData,
    ]
    for original, reparsed in zip(tree.iter_forest(forest), tree.iter_forest(parsed)):
        assert reparsed.payload == original.payload


def test_container_size_counts_nested_headers() -> None:
    inner = container(0x10, place([(0x11, b"abcd"), (0x12, b"efgh")]))
    outer = container(0x20, [inner, leaf(0x13, b"ijkl", 8)])
    assert inner.size == 24
    assert outer.size == 12 + 24 + 12
    assert tree.header_span(outer) == 12 + outer.size


def test_container_padding_is_kept() -> None:
    node = container(0x10, [leaf(0x11, b"abcd", 0)])
    node.size += 8
    table = tree.serialize([node])
    assert len(table) == 12 + 20
    parsed = tree.parse_forest(table)
    assert len(parsed) == 1
    assert len(parsed[0].children) == 1


def test_serialize_rejects_children_larger_than_the_declared_size() -> None:
    node = container(0x10, [leaf(0x11, b"abcd", 0)])
    node.children.append(leaf(0x12, b"efgh", 4))
    with pytest.raises(MalformedChunk):
        tree.serialize([node])


def test_parse_rejects_overflowing_children() -> None:
    table = struct.pack("<HHII", 0x5000, 0x8000, 0, 48) + struct.pack("<HHII", 0x5012, 0, 0, 4)
    with pytest.raises(MalformedChunk):
        tree.parse_forest(table)


def test_find_root_and_lookup_helpers() -> None:
    forest = simple_module_forest()
    data = forest[0].find_child(ChunkType.ScriptData)
    assert data is not None
    assert tree.find_root(forest, data) == (0, 3)
    assert tree.find_root(forest, forest[1]) == (1, 0)
    assert len(forest[0].find_children(ChunkType.ScriptFunctionTable)) == 1

    stranger = leaf(ChunkType.ScriptData, b"", 0)
    with pytest.raises(NodeNotFound):
        tree.find_root(forest, stranger)


def test_format_tree_lists_every_node(names) -> None:
    names.add(0xCAFEF00D, "level_01")
    forest = simple_module_forest()
    listing = tree.format_tree(forest, names).splitlines()
    assert len(listing) == 5
    assert listing[0].startswith("Script [0x5000]")
    assert listing[1].startswith("  ScriptHeader [0x5013]")
    assert "block=0 align=4" in listing[3]
    assert listing[4].endswith("file_type=0x5000 level_01")
    assert tree.file_entry_info(forest[1]) == (0x5000, 0xCAFEF00D)
    assert tree.file_entry_info(forest[0]) is None


def test_layout_blocks_places_payloads_at_their_offsets() -> None:
    forest = [leaf(1, b"AAAA", 0), leaf(1, b"BB", 8), leaf(1, b"CC", 2, block_index=1)]
    blocks = tree.layout_blocks(forest)
    assert bytes(blocks[0]) == b"AAAA\x00\x00\x00\x00BB"
    assert bytes(blocks[1]) == b"\x00\x00CC"
    assert end_of(forest) == 12


def test_chunk_type_names() -> None:
    assert chunk_type_name(0x5012) == "ScriptData"
    assert chunk_type_name(0x4242) == "Unknown (0x4242)"
    assert is_script_family(0x5015)
    assert not is_script_family(0x6500)
