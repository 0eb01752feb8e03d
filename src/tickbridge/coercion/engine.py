"""Typed value coercion.

Maps an untyped JSON value onto one declared :class:`FieldDescriptor`.
Every public entry point returns a result value; coercion failures are
reported as :class:`CoercionError` objects and never raised to callers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Protocol, cast

from tickbridge.coercion.kinds import Color, FieldDescriptor, FieldKind, Member, Vector2, Vector3

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


class ReferenceResolver(Protocol):
    def find_object(self, path: str) -> Any | None: ...

    def find_component(self, obj: Any, type_name: str) -> Any | None: ...

    def load_asset(self, path: str) -> Any | None: ...


@dataclass(frozen=True)
class CoercionError:
    field: str
    reason: str

    def __str__(self) -> str:
        return f"`{self.field}`: {self.reason}"


@dataclass(frozen=True)
class Coerced:
    value: Any = None
    error: CoercionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _Failure(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def _is_number(raw: Any) -> bool:
    return isinstance(raw, int | float) and not isinstance(raw, bool)


def _number(raw: Any, what: str) -> float:
    if not _is_number(raw):
        raise _Failure(f"{what} must be a number, got {_wire_type(raw)}")
    return float(raw)


def _wire_type(raw: Any) -> str:
    if raw is None:
        return "null"
    if isinstance(raw, bool):
        return "boolean"
    if isinstance(raw, int):
        return "integer"
    if isinstance(raw, float):
        return "float"
    if isinstance(raw, str):
        return "string"
    if isinstance(raw, list):
        return "array"
    if isinstance(raw, dict):
        return "object"
    return type(raw).__name__


def parse_hex_color(text: str) -> Color | None:
    if not _HEX_COLOR.match(text):
        return None
    digits = text[1:]
    if len(digits) in (3, 4):
        digits = "".join(ch * 2 for ch in digits)
    channels = [int(digits[i : i + 2], 16) / 255 for i in range(0, len(digits), 2)]
    if len(channels) == 3:
        channels.append(1.0)
    return Color(*channels)


class CoercionEngine:
    """Converts wire values into member values."""

    def __init__(
        self,
        resolver: ReferenceResolver | None = None,
        *,
        reference_marker: str = "@",
        asset_prefix: str = "Assets/",
    ) -> None:
        self._resolver = resolver
        self._reference_marker = reference_marker
        self._asset_prefix = asset_prefix

    def coerce(self, descriptor: FieldDescriptor, raw: Any, *, field: str = "value") -> Coerced:
        """Coerce ``raw`` against ``descriptor`` without a target member."""
        if descriptor.kind is FieldKind.ARRAY:
            member = Member(field, descriptor, [])
            error = self.assign(member, raw)
            return Coerced(member.value) if error is None else Coerced(error=error)
        try:
            return Coerced(self._coerce_scalar(descriptor, raw))
        except _Failure as failure:
            return Coerced(error=CoercionError(field, failure.reason))

    def assign(self, member: Member, raw: Any) -> CoercionError | None:
        """Write ``raw`` into ``member``. Returns the error, or ``None`` on success."""
        descriptor = member.descriptor
        if descriptor.kind is not FieldKind.ARRAY:
            result = self.coerce(descriptor, raw, field=member.display_name)
            if result.error is not None:
                return result.error
            member.value = result.value
            return None

        if raw is None:
            return CoercionError(member.display_name, f"null value not supported for {descriptor.label} field")
        if not isinstance(raw, list):
            return CoercionError(member.display_name, f"{descriptor.label} requires an array, got {_wire_type(raw)}")
        return self._assign_array(member, raw)

    def _assign_array(self, member: Member, raw: list[Any]) -> CoercionError | None:
        element = cast(FieldDescriptor, member.descriptor.element)
        current = list(member.value) if isinstance(member.value, list) else []
        # Resize first; the tail past a failing element keeps its resized content.
        if len(current) > len(raw):
            del current[len(raw) :]
        while len(current) < len(raw):
            current.append(element.default_value())
        member.value = current

        for index, item in enumerate(raw):
            slot = Member(f"{member.display_name}[{index}]", element, current[index])
            error = self.assign(slot, item)
            if error is not None:
                return CoercionError(member.display_name, f"element [{index}]: {error.reason}")
            current[index] = slot.value
        return None

    def _coerce_scalar(self, descriptor: FieldDescriptor, raw: Any) -> Any:
        kind = descriptor.kind
        if raw is None:
            if kind is FieldKind.REFERENCE:
                return None
            raise _Failure(f"null value not supported for {descriptor.label} field")

        match kind:
            case FieldKind.INTEGER:
                return self._integer(raw)
            case FieldKind.FLOAT:
                if not _is_number(raw):
                    raise _Failure(f"float requires a number, got {_wire_type(raw)}")
                return float(raw)
            case FieldKind.BOOLEAN:
                if not isinstance(raw, bool):
                    raise _Failure(f"boolean requires true or false, got {_wire_type(raw)}")
                return raw
            case FieldKind.STRING:
                if not isinstance(raw, str):
                    raise _Failure(f"string requires a string, got {_wire_type(raw)}")
                return raw
            case FieldKind.ENUM:
                return self._enum(descriptor, raw)
            case FieldKind.VECTOR2:
                x, y = self._components(raw, 2, "Vector2", "[x, y]")
                return Vector2(x, y)
            case FieldKind.VECTOR3:
                x, y, z = self._components(raw, 3, "Vector3", "[x, y, z]")
                return Vector3(x, y, z)
            case FieldKind.COLOR:
                return self._color(raw)
            case FieldKind.REFERENCE:
                return self._reference(raw)
        raise _Failure(f"field kind `{kind}` not supported")

    @staticmethod
    def _integer(raw: Any) -> int:
        if isinstance(raw, bool) or not _is_number(raw):
            raise _Failure(f"integer requires a whole number, got {_wire_type(raw)}")
        if isinstance(raw, float):
            if not raw.is_integer():
                raise _Failure(f"integer requires a whole number, {raw} would truncate")
            return int(raw)
        return raw

    @staticmethod
    def _enum(descriptor: FieldDescriptor, raw: Any) -> int:
        names = descriptor.enum_names
        valid = ", ".join(names)
        if isinstance(raw, int) and not isinstance(raw, bool):
            if 0 <= raw < len(names):
                return raw
            raise _Failure(f"enum index {raw} out of range 0..{len(names) - 1}. Valid: {valid}")
        if not isinstance(raw, str):
            raise _Failure(f"enum requires a name or an index, got {_wire_type(raw)}")
        if raw in names:
            return names.index(raw)
        folded = [index for index, name in enumerate(names) if name.casefold() == raw.casefold()]
        if len(folded) == 1:
            return folded[0]
        raise _Failure(f"Invalid enum value `{raw}`. Valid: {valid}")

    @staticmethod
    def _components(raw: Any, count: int, label: str, shape: str) -> tuple[float, ...]:
        if not isinstance(raw, list):
            raise _Failure(f"{label} requires array format: {shape}")
        if len(raw) < count:
            raise _Failure(f"{count} elements required: {shape}")
        return tuple(_number(item, f"{label} component [{index}]") for index, item in enumerate(raw[:count]))

    @staticmethod
    def _color(raw: Any) -> Color:
        if isinstance(raw, list):
            if len(raw) not in (3, 4):
                raise _Failure("Color array must have 3-4 elements: [r, g, b] or [r, g, b, a]")
            channels = [_number(item, f"Color channel [{index}]") for index, item in enumerate(raw)]
            return Color(*channels)
        if isinstance(raw, str):
            color = parse_hex_color(raw.strip())
            if color is None:
                raise _Failure(f"Invalid color string `{raw}`. Use #RRGGBB or [r,g,b,a] array")
            return color
        raise _Failure("Color requires #RRGGBB string or [r,g,b,a] array")

    def _reference(self, raw: Any) -> Any:
        if not isinstance(raw, str):
            raise _Failure(f"reference requires a string, got {_wire_type(raw)}")
        text = raw.strip()
        if not text or text.lower() == "null":
            return None
        if text.startswith(self._reference_marker):
            return self._in_graph_reference(text[len(self._reference_marker) :])
        if text.startswith(self._asset_prefix):
            return self._asset(text)
        raise _Failure(
            f"reference requires {self._reference_marker}Path/To/Object[:Component] or {self._asset_prefix}path.ext"
        )

    def _in_graph_reference(self, address: str) -> Any:
        resolver = self._require_resolver()
        path, _, member_type = address.partition(":")
        if not path:
            raise _Failure("reference address is empty")
        target = resolver.find_object(path)
        if target is None:
            if member_type:
                raise _Failure(f"Object not found at `{path}`")
            asset = resolver.load_asset(path)
            if asset is None:
                raise _Failure(f"Object not found at `{path}`")
            return asset
        if not member_type:
            return target
        component = resolver.find_component(target, member_type)
        if component is None:
            raise _Failure(f"`{path}` does not have `{member_type}` component")
        return component

    def _asset(self, path: str) -> Any:
        asset = self._require_resolver().load_asset(path)
        if asset is None:
            raise _Failure(f"Asset not found at `{path}`")
        return asset

    def _require_resolver(self) -> ReferenceResolver:
        if self._resolver is None:
            raise _Failure("references cannot be resolved without a scene")
        return self._resolver
