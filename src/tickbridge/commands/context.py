"""Collaborators handed to every command handler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tickbridge.clock import Clock
from tickbridge.coercion import CoercionEngine
from tickbridge.config import BridgeSettings
from tickbridge.host import Host

if TYPE_CHECKING:
    from tickbridge.commands.registry import CommandRegistry
    from tickbridge.tasks import AsyncTask, CaptureTask, RebuildTracker


@dataclass
class CommandContext:
    settings: BridgeSettings
    host: Host
    engine: CoercionEngine
    registry: CommandRegistry
    clock: Clock
    tasks: dict[str, AsyncTask] = field(default_factory=dict)

    @property
    def capture(self) -> CaptureTask:
        return self.tasks["screenshot"]  # type: ignore[return-value]

    @property
    def rebuild(self) -> RebuildTracker:
        return self.tasks["refresh"]  # type: ignore[return-value]
