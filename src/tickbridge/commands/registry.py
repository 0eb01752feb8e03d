"""Explicit command registration table."""

from __future__ import annotations

import builtins
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from tickbridge.commands.context import CommandContext
    from tickbridge.commands.types import CommandEnvelope

CommandHandler: TypeAlias = Callable[["CommandEnvelope", "CommandContext"], Any]


@dataclass(frozen=True)
class CommandDescriptor:
    """Command metadata and handler."""

    name: str
    category: str
    handler: CommandHandler
    fields: str = ""
    description: str = ""
    asynchronous: bool = False


class CommandRegistry:
    """Maps command names to handlers. Lookup ignores case."""

    def __init__(self) -> None:
        self._commands: dict[str, CommandDescriptor] = {}

    def register(
        self,
        name: str,
        category: str = "General",
        handler: CommandHandler | None = None,
        *,
        fields: str = "",
        description: str = "",
        asynchronous: bool = False,
    ) -> Any:
        def _register(fn: CommandHandler) -> CommandHandler:
            key = name.strip().casefold()
            if not key:
                raise ValueError("command name must not be empty")
            if key in self._commands:
                raise ValueError(f"Duplicate command name: {name}")
            self._commands[key] = CommandDescriptor(
                name=name.strip(),
                category=category,
                handler=fn,
                fields=fields,
                description=description or (fn.__doc__ or "").strip().split("\n", 1)[0],
                asynchronous=asynchronous,
            )
            return fn

        if handler is None:
            return _register
        return _register(handler)

    def has(self, name: str) -> bool:
        return name.strip().casefold() in self._commands

    def get(self, name: str) -> CommandDescriptor | None:
        return self._commands.get(name.strip().casefold())

    def descriptors(self) -> builtins.list[CommandDescriptor]:
        return list(self._commands.values())

    def names(self) -> builtins.list[str]:
        return [descriptor.name for descriptor in self._commands.values()]

    def help_text(self, title: str = "Bridge Commands") -> str:
        lines = [f"# {title}", ""]
        categories: builtins.list[str] = []
        for descriptor in self._commands.values():
            if descriptor.category not in categories:
                categories.append(descriptor.category)

        for category in categories:
            lines.append(f"## {category} Commands")
            lines.append("")
            lines.append("| Type | Fields | Description |")
            lines.append("|------|--------|-------------|")
            for descriptor in self._commands.values():
                if descriptor.category != category:
                    continue
                fields = descriptor.fields or "-"
                lines.append(f"| `{descriptor.name}` | {fields} | {descriptor.description} |")
            lines.append("")
        return "\n".join(lines).rstrip() + "\n"
