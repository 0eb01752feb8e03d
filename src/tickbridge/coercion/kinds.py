"""Field descriptors and the value types they produce."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class FieldKind(StrEnum):
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    STRING = "string"
    ENUM = "enum"
    VECTOR2 = "vector2"
    VECTOR3 = "vector3"
    COLOR = "color"
    REFERENCE = "reference"
    ARRAY = "array"


@dataclass(frozen=True)
class Vector2:
    x: float
    y: float

    def to_wire(self) -> list[float]:
        return [self.x, self.y]


@dataclass(frozen=True)
class Vector3:
    x: float
    y: float
    z: float

    def to_wire(self) -> list[float]:
        return [self.x, self.y, self.z]


@dataclass(frozen=True)
class Color:
    r: float
    g: float
    b: float
    a: float = 1.0

    def to_wire(self) -> list[float]:
        return [self.r, self.g, self.b, self.a]

    def to_hex(self) -> str:
        channels = (self.r, self.g, self.b, self.a)
        encoded = "".join(f"{round(max(0.0, min(1.0, c)) * 255):02X}" for c in channels)
        return f"#{encoded}"


@dataclass(frozen=True)
class FieldDescriptor:
    """Semantic kind of one settable member. Immutable once built."""

    kind: FieldKind
    enum_names: tuple[str, ...] = ()
    element: FieldDescriptor | None = None

    def __post_init__(self) -> None:
        if self.kind is FieldKind.ARRAY and self.element is None:
            raise ValueError("array descriptor requires an element descriptor")
        if self.kind is not FieldKind.ARRAY and self.element is not None:
            raise ValueError(f"{self.kind} descriptor cannot carry an element descriptor")
        if self.kind is FieldKind.ENUM and not self.enum_names:
            raise ValueError("enum descriptor requires at least one name")

    @classmethod
    def of(cls, kind: FieldKind | str) -> FieldDescriptor:
        return cls(kind=FieldKind(kind))

    @classmethod
    def enumeration(cls, *names: str) -> FieldDescriptor:
        return cls(kind=FieldKind.ENUM, enum_names=tuple(names))

    @classmethod
    def array_of(cls, element: FieldDescriptor) -> FieldDescriptor:
        return cls(kind=FieldKind.ARRAY, element=element)

    @property
    def label(self) -> str:
        if self.kind is FieldKind.ARRAY and self.element is not None:
            return f"array<{self.element.label}>"
        return self.kind.value

    def default_value(self) -> Any:
        match self.kind:
            case FieldKind.INTEGER:
                return 0
            case FieldKind.FLOAT:
                return 0.0
            case FieldKind.BOOLEAN:
                return False
            case FieldKind.STRING:
                return ""
            case FieldKind.ENUM:
                return 0
            case FieldKind.VECTOR2:
                return Vector2(0.0, 0.0)
            case FieldKind.VECTOR3:
                return Vector3(0.0, 0.0, 0.0)
            case FieldKind.COLOR:
                return Color(0.0, 0.0, 0.0, 0.0)
            case FieldKind.REFERENCE:
                return None
            case FieldKind.ARRAY:
                return []


@dataclass
class Member:
    """One settable slot on a host object."""

    name: str
    descriptor: FieldDescriptor
    value: Any = None
    display_name: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if self.value is None and self.descriptor.kind is not FieldKind.REFERENCE:
            self.value = self.descriptor.default_value()
        if not self.display_name:
            self.display_name = self.name.lstrip("_")
