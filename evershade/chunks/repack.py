"""Resize a leaf payload and cascade the offset change.

Every node living in the same data block after the edited payload moves by
the size delta rounded up to its own alignment (negative deltas round toward
zero).  The block buffer is spliced to match and the owning dictionary
descriptor records the new decompressed size.  The whole plan is computed
before any field is touched, so a rejected edit leaves the tree, the block
list and the index exactly as they were.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, MutableSequence, Optional, Sequence, Tuple

from ..exceptions import NodeNotFound
from ..io.dictionary import DictionaryIndex
from ..utils_pkg.byteops import align_up
from .tree import ChunkNode, find_root, iter_forest

LOGGER = logging.getLogger(__name__)

U32_MAX = 0xFFFFFFFF


@dataclass
class PayloadEdit:
    """Summary of an applied :func:`set_payload` call."""

    target: ChunkNode
    root_index: int
    position: int
    old_size: int
    new_size: int
    shifted: List[Tuple[ChunkNode, int, int]] = field(default_factory=list)
    descriptor_id: Optional[int] = None
    block_size: Optional[int] = None

    @property
    def size_delta(self) -> int:
        return self.new_size - self.old_size

    def as_dict(self) -> Dict[str, object]:
        return {
            "type": self.target.type_name,
            "root_index": self.root_index,
            "position": self.position,
            "old_size": self.old_size,
            "new_size": self.new_size,
            "shifted": [(node.type_name, before, after) for node, before, after in self.shifted],
            "descriptor_id": self.descriptor_id,
            "block_size": self.block_size,
        }


@dataclass
class RepackPlan:
    edit: PayloadEdit
    payload: bytes
    block: Optional[bytes] = None
    block_size: Optional[int] = None


def shift_for(delta: int, node: ChunkNode) -> int:
    return align_up(delta, node.alignment)


def plan_set_payload(
    forest: Sequence[ChunkNode],
    target: ChunkNode,
    new_bytes: bytes,
    *,
    index: Optional[DictionaryIndex] = None,
    blocks: Optional[Sequence[Optional[bytes]]] = None,
) -> RepackPlan:
    """Compute everything :func:`set_payload` would change, without changing it."""

    root_index, position = find_root(forest, target)
    if target.has_children:
        raise ValueError(f"{target.type_name} is a container and carries no payload")
    payload = bytes(new_bytes)
    if len(payload) > U32_MAX:
        raise ValueError("payload does not fit a 32-bit size field")

    edit = PayloadEdit(
        target=target,
        root_index=root_index,
        position=position,
        old_size=target.size,
        new_size=len(payload),
    )
    delta = edit.size_delta
    followers: List[ChunkNode] = []
    if delta:
        for node in iter_forest(forest):
            if node is target or node.block_index != target.block_index or node.offset <= target.offset:
                continue
            new_offset = node.offset + shift_for(delta, node)
            if new_offset < 0 or new_offset > U32_MAX:
                raise ValueError(f"{node.type_name} would move to an invalid offset {new_offset}")
            edit.shifted.append((node, node.offset, new_offset))
            followers.append(node)

    plan = RepackPlan(edit=edit, payload=payload)
    if blocks is not None:
        plan.block = _plan_block(target, payload, edit, blocks)
        if plan.block is not None:
            edit.block_size = len(plan.block)
    if index is not None:
        data_ids = index.data_block_ids()
        if target.block_index >= len(data_ids):
            raise NodeNotFound(f"index has no data block #{target.block_index}")
        edit.descriptor_id = data_ids[target.block_index]
        if edit.block_size is None:
            plan.block_size = index.blocks[edit.descriptor_id].decompressed_size + delta
        else:
            plan.block_size = edit.block_size
        if plan.block_size < 0:
            raise ValueError(f"data block #{target.block_index} would shrink below zero bytes")
    return plan


def _plan_block(
    target: ChunkNode,
    payload: bytes,
    edit: PayloadEdit,
    blocks: Sequence[Optional[bytes]],
) -> Optional[bytes]:
    if target.block_index >= len(blocks) or blocks[target.block_index] is None:
        LOGGER.warning("no buffer for data block %d; only the tree is updated", target.block_index)
        return None
    old = blocks[target.block_index]
    return rebuild_block(old, target.offset, target.size, payload, edit.shifted)


def rebuild_block(
    block: bytes,
    offset: int,
    old_size: int,
    payload: bytes,
    shifted: Sequence[Tuple[ChunkNode, int, int]] = (),
) -> bytes:
    """Splice ``payload`` over ``block[offset:offset + old_size]``.

    Bytes after the old payload move by the size delta.  Followers whose
    aligned shift differs from the delta are rewritten at their new offset.
    """

    delta = len(payload) - old_size
    buffer = bytearray(block[:offset])
    if len(buffer) < offset:
        buffer.extend(b"\x00" * (offset - len(buffer)))
    buffer += payload
    buffer += block[offset + old_size:]

    moved = sorted(
        (
            (new_offset, node)
            for node, old_offset, new_offset in shifted
            if not node.has_children and node.payload is not None and new_offset - old_offset != delta
        ),
        key=lambda item: item[0],
    )
    for new_offset, node in moved:
        end = new_offset + len(node.payload)
        if len(buffer) < end:
            buffer.extend(b"\x00" * (end - len(buffer)))
        buffer[new_offset:end] = node.payload
    return bytes(buffer)


def apply_plan(
    plan: RepackPlan,
    *,
    index: Optional[DictionaryIndex] = None,
    blocks: Optional[MutableSequence[Optional[bytes]]] = None,
) -> PayloadEdit:
    edit = plan.edit
    target = edit.target
    for node, _before, after in edit.shifted:
        node.offset = after
    target.size = len(plan.payload)
    target.payload = plan.payload
    if plan.block is not None and blocks is not None:
        blocks[target.block_index] = plan.block
    if index is not None and edit.descriptor_id is not None and plan.block_size is not None:
        index.blocks[edit.descriptor_id].decompressed_size = plan.block_size
    return edit


def set_payload(
    forest: Sequence[ChunkNode],
    target: ChunkNode,
    new_bytes: bytes,
    *,
    index: Optional[DictionaryIndex] = None,
    blocks: Optional[MutableSequence[Optional[bytes]]] = None,
) -> PayloadEdit:
    """Replace ``target``'s payload and move everything behind it.

    Raises :class:`NodeNotFound` when no root of ``forest`` reaches
    ``target`` and :class:`ValueError` for containers.
    """

    plan = plan_set_payload(forest, target, new_bytes, index=index, blocks=blocks)
    edit = apply_plan(plan, index=index, blocks=blocks)
    LOGGER.debug(
        "%s resized %d -> %d, %d node(s) shifted",
        target.type_name,
        edit.old_size,
        edit.new_size,
        len(edit.shifted),
    )
    return edit


__all__ = [
    "PayloadEdit",
    "RepackPlan",
    "apply_plan",
    "plan_set_payload",
    "rebuild_block",
    "set_payload",
    "shift_for",
]
