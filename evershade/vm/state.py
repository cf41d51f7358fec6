from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .values import TypedValue, ValueSource


@dataclass(frozen=True)
class StackItem:
    value: TypedValue
    source: Optional[ValueSource] = None


@dataclass
class VMState:
    """Per-function decoder state.

    ``ip`` is a word index into the code section.  ``struct_pointer`` is the
    byte offset under which the next variable will be recorded.  Nothing in
    here is shared between functions.
    """

    ip: int = 0
    stack: List[StackItem] = field(default_factory=list)
    struct_pointer: int = 0
    halted: bool = False

    def push(self, value: TypedValue, source: Optional[ValueSource] = None) -> None:
        self.stack.append(StackItem(value, source))

    def drain(self) -> List[StackItem]:
        """Return the stack contents and leave it empty."""

        items = self.stack
        self.stack = []
        return items


__all__ = ["StackItem", "VMState"]
