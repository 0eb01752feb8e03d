"""Protocols for the host application the bridge drives.

The bridge only talks to the host through these seams: a scene graph for
lookups, a play mode that can be entered and left, and a rebuild pipeline.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from tickbridge.coercion import Member


@dataclass(frozen=True)
class CompilerMessage:
    file: str
    line: int
    message: str


@dataclass(frozen=True)
class LogMessage:
    level: str
    message: str

    @property
    def is_error(self) -> bool:
        return self.level in {"error", "exception"}


LogListener = Callable[[LogMessage], None]
BuildListener = Callable[[list[CompilerMessage]], None]


class SceneGraph(Protocol):
    def find_object(self, path: str) -> Any | None: ...

    def find_component(self, obj: Any, type_name: str) -> Any | None: ...

    def find_member(self, component: Any, name: str) -> Member | None: ...

    def load_asset(self, path: str) -> Any | None: ...

    def object_path(self, obj: Any) -> str: ...

    def mark_dirty(self, obj: Any) -> None: ...


class PlayModeHost(Protocol):
    @property
    def is_playing(self) -> bool: ...

    @property
    def is_paused(self) -> bool: ...

    def enter_play_mode(self) -> None: ...

    def exit_play_mode(self) -> None: ...

    def capture_screenshot(self, path: str) -> None: ...

    def artifact_exists(self, path: str) -> bool: ...

    def add_log_listener(self, listener: LogListener) -> None: ...

    def remove_log_listener(self, listener: LogListener) -> None: ...


class BuildHost(Protocol):
    @property
    def is_compiling(self) -> bool: ...

    def request_rebuild(self) -> bool:
        """Start a rebuild. Returns ``False`` when there is nothing to rebuild."""
        ...

    def add_build_listener(self, listener: BuildListener) -> None: ...

    def remove_build_listener(self, listener: BuildListener) -> None: ...


class Host(SceneGraph, PlayModeHost, BuildHost, Protocol):
    """Everything the built-in commands need from the host."""
