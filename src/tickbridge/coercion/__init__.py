"""Typed value coercion."""

from tickbridge.coercion.engine import CoercionEngine, CoercionError, Coerced, ReferenceResolver, parse_hex_color
from tickbridge.coercion.kinds import Color, FieldDescriptor, FieldKind, Member, Vector2, Vector3

__all__ = [
    "CoercionEngine",
    "CoercionError",
    "Coerced",
    "Color",
    "FieldDescriptor",
    "FieldKind",
    "Member",
    "ReferenceResolver",
    "Vector2",
    "Vector3",
    "parse_hex_color",
]
