from __future__ import annotations

import pytest

from archive_builders import archive_bytes, f32, simple_module_forest
from evershade.chunks.repack import set_payload
from evershade.chunks.tree import iter_forest
from evershade.chunks.types import ChunkType
from evershade.exceptions import BadMagic, CorruptBlock, CorruptIndex
from evershade.io import archive as archive_module
from evershade.io import dictionary
from evershade.io.archive import Archive, compress_archive, decompress_archive, open_archive
from evershade.io.dictionary import BlockDescriptor, BlockUsage, DictionaryIndex
from evershade.script.loader import decompile_script
from evershade.script.writer import patch_variable


@pytest.mark.parametrize("compressed", [False, True])
def test_open_exposes_the_chunk_forest(compressed: bool) -> None:
    forest = simple_module_forest()
    dict_bytes, data_bytes = archive_bytes(forest, compressed=compressed, debug=b"dbg!")

    archive = open_archive(dict_bytes, data_bytes)

    assert archive.index.is_compressed is compressed
    assert archive.corrupt_blocks == {}
    roots = archive.chunks()
    assert archive.chunks() is roots
    assert [node.type_id for node in roots] == [ChunkType.Script, ChunkType.FileTable]
    assert roots[1].payload == forest[1].payload
    data = roots[0].find_child(ChunkType.ScriptData)
    assert data.payload == forest[0].find_child(ChunkType.ScriptData).payload


@pytest.mark.parametrize("compressed", [False, True])
def test_untouched_archive_saves_byte_for_byte(compressed: bool) -> None:
    dict_bytes, data_bytes = archive_bytes(simple_module_forest(), compressed=compressed, debug=b"dbg!")
    archive = Archive.open(dict_bytes, data_bytes)
    archive.chunks()
    assert archive.save() == (dict_bytes, data_bytes)


def test_decompress_then_compress_keeps_the_content() -> None:
    forest = simple_module_forest()
    dict_bytes, data_bytes = archive_bytes(forest, compressed=True)

    plain_dict, plain_data = decompress_archive(dict_bytes, data_bytes)
    plain = Archive.open(plain_dict, plain_data)
    assert not plain.index.is_compressed
    for descriptor in plain.index.blocks:
        assert plain_data[descriptor.offset:descriptor.offset + descriptor.decompressed_size]

    packed_dict, packed_data = compress_archive(plain_dict, plain_data, level=9)
    packed = Archive.open(packed_dict, packed_data)
    assert packed.index.is_compressed
    assert packed.blocks == plain.blocks
    assert [node.payload for node in packed.chunks()] == [node.payload for node in forest]


def test_converting_to_the_current_mode_is_idempotent() -> None:
    dict_bytes, data_bytes = archive_bytes(simple_module_forest(), compressed=False)
    assert decompress_archive(dict_bytes, data_bytes) == (dict_bytes, data_bytes)


def test_bad_magic_and_corrupt_index() -> None:
    dict_bytes, data_bytes = archive_bytes(simple_module_forest())
    with pytest.raises(BadMagic):
        open_archive(b"\x00" * len(dict_bytes), data_bytes)
    with pytest.raises(CorruptIndex):
        open_archive(dict_bytes, data_bytes[:-1])


def _corrupt_pair():
    table = b""
    garbage = b"\xff\xff\xff\xff"
    index = DictionaryIndex(
        is_compressed=True,
        blocks=[
            BlockDescriptor(0, 64, len(garbage), BlockUsage.DATA),
            BlockDescriptor(len(garbage), len(table), 0, BlockUsage.TABLE),
        ],
        largest_block_size=len(garbage),
    )
    return dictionary.save(index), garbage + table


def test_corrupt_block_is_kept_in_lenient_mode() -> None:
    dict_bytes, data_bytes = _corrupt_pair()
    archive = Archive.open(dict_bytes, data_bytes)
    assert set(archive.corrupt_blocks) == {0}
    assert archive.blocks[0] == b"\xff\xff\xff\xff"
    assert archive.save() == (dict_bytes, data_bytes)

    with pytest.raises(CorruptBlock):
        Archive.open(dict_bytes, data_bytes, strict=True)
    with pytest.raises(CorruptBlock):
        decompress_archive(dict_bytes, data_bytes)


@pytest.mark.parametrize("compressed", [False, True])
def test_patched_script_survives_save_and_reopen(compressed: bool, names) -> None:
    dict_bytes, data_bytes = archive_bytes(simple_module_forest(), compressed=compressed)
    archive = Archive.open(dict_bytes, data_bytes)
    subtree = archive.chunks()[0]
    module = decompile_script(subtree, hashes=names)
    function = module.scripts[0].functions[0]

    patch_variable(module, function, 4, 2.5, hashes=names)
    edits = archive.write_script_module(subtree, module)
    assert [edit.target.type_id for edit in edits] == [ChunkType.ScriptData]

    reopened = Archive.open(*archive.save())
    again = decompile_script(reopened.chunks()[0], hashes=names)
    assert again.scripts[0].functions[0].variables[4].value.value == 2.5
    assert reopened.chunks()[1].payload == archive.chunks()[1].payload


def test_growing_script_data_shifts_the_following_chunk(names) -> None:
    forest = simple_module_forest()
    dict_bytes, data_bytes = archive_bytes(forest, compressed=True)
    archive = Archive.open(dict_bytes, data_bytes)
    subtree, trailer = archive.chunks()
    old_offset = trailer.offset
    module = decompile_script(subtree, hashes=names)
    module.data_pool.append(f32(9.0))
    module.data_pool.append(f32(9.5))

    archive.write_script_module(subtree, module)
    assert trailer.offset == old_offset + 8

    reopened = Archive.open(*archive.save())
    moved = reopened.chunks()[1]
    assert moved.offset == old_offset + 8
    assert moved.payload == forest[1].payload
    reloaded = decompile_script(reopened.chunks()[0], hashes=names)
    assert reloaded.data_pool[-2:] == [f32(9.0), f32(9.5)]
    assert reloaded.scripts[0].functions[0].variables[4].value.value == 1.5


def test_rejected_module_write_rolls_back_every_chunk(monkeypatch, names) -> None:
    dict_bytes, data_bytes = archive_bytes(simple_module_forest(), compressed=True)
    archive = Archive.open(dict_bytes, data_bytes)
    subtree = archive.chunks()[0]
    before = [(node.as_dict(), node.payload) for node in iter_forest(archive.chunks())]
    sizes = [descriptor.decompressed_size for descriptor in archive.index.blocks]
    module = decompile_script(subtree, hashes=names)
    module.data_pool.append(f32(9.0))
    module.scripts[0].functions[0].flags ^= 1

    calls = []

    def second_edit_fails(forest, node, payload, **kwargs):
        calls.append(node.type_id)
        if len(calls) == 2:
            raise ValueError("function table rejected")
        return set_payload(forest, node, payload, **kwargs)

    monkeypatch.setattr(archive_module, "set_payload", second_edit_fails)

    with pytest.raises(ValueError):
        archive.write_script_module(subtree, module)

    assert calls == [ChunkType.ScriptData, ChunkType.ScriptFunctionTable]
    assert [(node.as_dict(), node.payload) for node in iter_forest(archive.chunks())] == before
    assert [descriptor.decompressed_size for descriptor in archive.index.blocks] == sizes
    assert archive.save() == (dict_bytes, data_bytes)
