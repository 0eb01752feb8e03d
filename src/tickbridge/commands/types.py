"""Command envelope and result types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tickbridge.errors import MalformedRequestError


class PropertyKV(BaseModel):
    key: str = Field(..., min_length=1, description="Member name")
    value: Any = Field(default=None, description="Raw wire value")


class CommandEnvelope(BaseModel):
    """One request. Only ``type`` is required; other fields are command specific."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Command name")
    path: str | None = Field(default=None, description="Target locator")
    component: str | None = Field(default=None, description="Component type name")
    property: str | None = Field(default=None, description="Single member name")
    value: Any = Field(default=None, description="Single raw value")
    properties: list[PropertyKV] | None = Field(default=None, description="Members to set in one request")
    delay: float | None = Field(default=None, description="Seconds to wait, for timed commands")
    query: str | None = Field(default=None, description="Free-text query")

    @field_validator("type")
    @classmethod
    def _strip_type(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("type must be a non-empty string")
        return stripped

    @classmethod
    def parse(cls, raw: Any) -> CommandEnvelope:
        if not isinstance(raw, dict):
            raise MalformedRequestError(f"request must be a JSON object, got {type(raw).__name__}")
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'request'}: {error['msg']}" for error in exc.errors()
            )
            raise MalformedRequestError(problems) from exc

    def has_value(self) -> bool:
        return "value" in self.model_fields_set

    def describe(self) -> str:
        info = self.type
        if self.path:
            info += f' path="{self.path}"'
        if self.component:
            info += f' component="{self.component}"'
        if self.query:
            info += f' query="{self.query}"'
        return info


@dataclass(frozen=True)
class CommandResult:
    """Final textual payload of one command."""

    ok: bool
    text: str

    @classmethod
    def success(cls, text: str) -> CommandResult:
        return cls(ok=True, text=text)

    @classmethod
    def failure(cls, message: str) -> CommandResult:
        text = message if message.startswith("Error:") else f"Error: {message}"
        return cls(ok=False, text=text)

    @property
    def first_line(self) -> str:
        return self.text.split("\n", 1)[0]


class _Pending:
    """A pending async task owns the response."""

    _instance: _Pending | None = None

    def __new__(cls) -> _Pending:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PENDING"

    def __bool__(self) -> bool:
        return False


PENDING: Final = _Pending()

DispatchOutcome: TypeAlias = CommandResult | _Pending


@dataclass(frozen=True)
class BatchEntry:
    type: str
    ok: bool
    message: str

    @property
    def first_line(self) -> str:
        return self.message.split("\n", 1)[0]
