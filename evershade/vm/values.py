"""Closed set of typed values produced by the script decompiler."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Tuple, Union

from ..utils_pkg.byteops import format_f32, sign_extend, to_f32


class ValueKind(str, Enum):
    FLOAT = "float"
    UINT = "uint"
    SHORT = "short"
    BYTE = "byte"
    BOOL = "bool"
    VEC3 = "vec3"
    VEC4 = "vec4"
    MATRIX4X4 = "matrix4x4"
    STRING = "string"
    LIST = "list"


NUMERIC_KINDS = frozenset({ValueKind.FLOAT, ValueKind.UINT, ValueKind.SHORT, ValueKind.BYTE})
COMPONENT_COUNTS = {ValueKind.VEC3: 3, ValueKind.VEC4: 4, ValueKind.MATRIX4X4: 16}

Number = Union[int, float]


@dataclass(frozen=True)
class TypedValue:
    """A tagged value.

    Scalars store a Python ``int``/``float``/``bool``/``str``.  Vectors,
    matrices and opaque lists store a tuple of component :class:`TypedValue`
    objects so each component keeps its own kind.
    """

    kind: ValueKind
    value: Any

    # -- constructors -------------------------------------------------
    @classmethod
    def float_(cls, value: float) -> "TypedValue":
        return cls(ValueKind.FLOAT, to_f32(value))

    @classmethod
    def uint(cls, value: int) -> "TypedValue":
        return cls(ValueKind.UINT, int(value) & 0xFFFFFFFF)

    @classmethod
    def short(cls, value: Number) -> "TypedValue":
        return cls(ValueKind.SHORT, sign_extend(int(value), 16))

    @classmethod
    def byte(cls, value: Number) -> "TypedValue":
        return cls(ValueKind.BYTE, int(value) & 0xFF)

    @classmethod
    def boolean(cls, value: bool) -> "TypedValue":
        return cls(ValueKind.BOOL, bool(value))

    @classmethod
    def string(cls, value: str) -> "TypedValue":
        return cls(ValueKind.STRING, value)

    @classmethod
    def vec3(cls, *components: Union[Number, "TypedValue"]) -> "TypedValue":
        return cls._composite(ValueKind.VEC3, components)

    @classmethod
    def vec4(cls, *components: Union[Number, "TypedValue"]) -> "TypedValue":
        return cls._composite(ValueKind.VEC4, components)

    @classmethod
    def matrix4x4(cls, *components: Union[Number, "TypedValue"]) -> "TypedValue":
        return cls._composite(ValueKind.MATRIX4X4, components)

    @classmethod
    def list_(cls, items: Iterable[Union[Number, str, "TypedValue"]]) -> "TypedValue":
        return cls(ValueKind.LIST, tuple(coerce(item) for item in items))

    @classmethod
    def _composite(cls, kind: ValueKind, components: Tuple[Union[Number, "TypedValue"], ...]) -> "TypedValue":
        expected = COMPONENT_COUNTS[kind]
        if len(components) != expected:
            raise ValueError(f"{kind.value} needs {expected} components, got {len(components)}")
        return cls(kind, tuple(coerce(item) for item in components))

    # -- queries ------------------------------------------------------
    @property
    def is_numeric(self) -> bool:
        return self.kind in NUMERIC_KINDS

    @property
    def is_composite(self) -> bool:
        return self.kind in COMPONENT_COUNTS or self.kind is ValueKind.LIST

    def components(self) -> Tuple["TypedValue", ...]:
        if self.is_composite:
            return self.value
        return (self,)

    def python(self) -> Any:
        """Plain Python rendition (tuples for composites)."""

        if self.is_composite:
            return tuple(item.python() for item in self.value)
        return self.value

    def render(self) -> str:
        kind = self.kind
        if kind is ValueKind.FLOAT:
            return format_f32(self.value)
        if kind is ValueKind.UINT:
            if self.value >= 0x10000:
                return f"0x{self.value:08X}"
            return str(self.value)
        if kind is ValueKind.BOOL:
            return "true" if self.value else "false"
        if kind is ValueKind.STRING:
            return json.dumps(self.value)
        if kind is ValueKind.LIST:
            return "[" + ", ".join(item.render() for item in self.value) + "]"
        if kind in COMPONENT_COUNTS:
            return f"{kind.value}(" + ", ".join(item.render() for item in self.value) + ")"
        return str(self.value)

    def as_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "value": self.python()}

    def __str__(self) -> str:
        return self.render()


def coerce(item: Union[Number, str, TypedValue]) -> TypedValue:
    """Wrap a plain Python value; ints become ``uint`` and floats ``float``."""

    if isinstance(item, TypedValue):
        return item
    if isinstance(item, bool):
        return TypedValue.boolean(item)
    if isinstance(item, int):
        return TypedValue.uint(item)
    if isinstance(item, float):
        return TypedValue.float_(item)
    if isinstance(item, str):
        return TypedValue.string(item)
    raise TypeError(f"cannot convert {item!r} to a typed value")


class SourceKind(str, Enum):
    POOL = "pool"
    LITERAL = "literal"
    STRING = "string"


@dataclass(frozen=True)
class ValueSource:
    """Where a pushed value came from.

    ``index`` is the data pool slot for ``POOL`` sources, the word index of
    the instruction inside the code section for ``LITERAL`` sources and the
    string section offset for ``STRING`` sources.
    """

    kind: SourceKind
    index: int

    def as_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "index": self.index}


__all__ = [
    "COMPONENT_COUNTS",
    "NUMERIC_KINDS",
    "SourceKind",
    "TypedValue",
    "ValueKind",
    "ValueSource",
    "coerce",
]
