"""In-memory host used by ``tickbridge serve`` and by the tests.

It models just enough of an editor-like application: a scene graph of
objects carrying components with typed members, a play mode with a runtime
log stream, screenshot capture to disk, and a rebuild pipeline that either
reports compiler errors or asks for a restart.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from tickbridge.coercion import FieldDescriptor, FieldKind, Member, Vector3
from tickbridge.host import BuildListener, CompilerMessage, LogListener, LogMessage

_PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@dataclass(eq=False)
class SceneComponent:
    type_name: str
    owner: SceneObject
    members: dict[str, Member] = field(default_factory=dict)
    dirty: bool = False

    def add_member(self, name: str, descriptor: FieldDescriptor, value: Any = None) -> Member:
        member = Member(name, descriptor, value)
        self.members[name] = member
        return member

    def value(self, name: str) -> Any:
        return self.members[name].value


@dataclass(eq=False)
class SceneObject:
    name: str
    parent: SceneObject | None = None
    children: list[SceneObject] = field(default_factory=list)
    components: list[SceneComponent] = field(default_factory=list)

    @property
    def path(self) -> str:
        if self.parent is None:
            return self.name
        return f"{self.parent.path}/{self.name}"

    def add_child(self, name: str) -> SceneObject:
        child = SceneObject(name, parent=self)
        self.children.append(child)
        return child

    def add_component(self, type_name: str) -> SceneComponent:
        component = SceneComponent(type_name, owner=self)
        self.components.append(component)
        return component

    def child(self, name: str) -> SceneObject | None:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def component(self, type_name: str) -> SceneComponent | None:
        for component in self.components:
            if component.type_name == type_name:
                return component
        for component in self.components:
            if component.type_name.casefold() == type_name.casefold():
                return component
        return None


@dataclass(eq=False)
class Asset:
    path: str
    kind: str = "asset"
    root: SceneObject | None = None


class SimulatedHost:
    """Scene graph, play mode and rebuild pipeline in one object.

    ``step()`` advances one host frame. Play mode turns on ``play_mode_ticks``
    frames after it is requested; a rebuild completes ``compile_ticks`` frames
    after it starts. A successful rebuild (and, with ``reload_on_play``,
    entering play mode) sets ``reload_requested``; whoever owns the bridge
    runtime is expected to rebuild it and call :meth:`reload`.
    """

    def __init__(self, *, play_mode_ticks: int = 1, compile_ticks: int = 2, reload_on_play: bool = False) -> None:
        self.roots: list[SceneObject] = []
        self.assets: dict[str, Asset] = {}
        self.play_mode_ticks = play_mode_ticks
        self.compile_ticks = compile_ticks
        self.reload_on_play = reload_on_play

        self._playing = False
        self._paused = False
        self._play_countdown: int | None = None
        self._compiling = False
        self._compile_countdown = 0

        self.needs_rebuild = False
        self.next_build_errors: list[CompilerMessage] = []
        self.reload_requested = False
        self.reload_count = 0
        self.captures: list[str] = []
        self.capture_writes_file = True
        self._log_listeners: list[LogListener] = []
        self._build_listeners: list[BuildListener] = []

    # -- scene graph ----------------------------------------------------------

    def add_root(self, name: str) -> SceneObject:
        root = SceneObject(name)
        self.roots.append(root)
        return root

    def add_asset(self, path: str, kind: str = "asset", root: SceneObject | None = None) -> Asset:
        asset = Asset(path, kind, root)
        self.assets[path] = asset
        return asset

    def find_object(self, path: str) -> SceneObject | None:
        parts = [part for part in path.strip("/").split("/") if part]
        if not parts:
            return None
        current = next((root for root in self.roots if root.name == parts[0]), None)
        for part in parts[1:]:
            if current is None:
                return None
            current = current.child(part)
        return current

    def find_component(self, obj: Any, type_name: str) -> SceneComponent | None:
        if isinstance(obj, Asset):
            obj = obj.root
        if not isinstance(obj, SceneObject):
            return None
        return obj.component(type_name)

    def find_member(self, component: Any, name: str) -> Member | None:
        if not isinstance(component, SceneComponent):
            return None
        return component.members.get(name)

    def load_asset(self, path: str) -> Asset | None:
        return self.assets.get(path)

    def object_path(self, obj: Any) -> str:
        if isinstance(obj, SceneObject):
            return obj.path
        if isinstance(obj, SceneComponent):
            return f"{obj.owner.path}:{obj.type_name}"
        if isinstance(obj, Asset):
            return obj.path
        return repr(obj)

    def mark_dirty(self, obj: Any) -> None:
        if isinstance(obj, SceneComponent):
            obj.dirty = True

    # -- play mode ------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def is_paused(self) -> bool:
        return self._paused

    def set_paused(self, paused: bool) -> None:
        self._paused = paused

    def enter_play_mode(self) -> None:
        if self._playing or self._play_countdown is not None:
            return
        self._play_countdown = self.play_mode_ticks
        if self.reload_on_play:
            self.reload_requested = True
        if self._play_countdown <= 0:
            self._start_playing()

    def exit_play_mode(self) -> None:
        self._play_countdown = None
        self._playing = False
        self._paused = False
        logger.debug("sim.play_mode.exit")

    def _start_playing(self) -> None:
        self._play_countdown = None
        self._playing = True
        logger.debug("sim.play_mode.enter")

    def capture_screenshot(self, path: str) -> None:
        self.captures.append(path)
        if self.capture_writes_file:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(_PIXEL_PNG)

    def artifact_exists(self, path: str) -> bool:
        return Path(path).exists()

    def add_log_listener(self, listener: LogListener) -> None:
        if listener not in self._log_listeners:
            self._log_listeners.append(listener)

    def remove_log_listener(self, listener: LogListener) -> None:
        if listener in self._log_listeners:
            self._log_listeners.remove(listener)

    def log(self, level: str, message: str) -> None:
        entry = LogMessage(level=level, message=message)
        for listener in list(self._log_listeners):
            listener(entry)

    # -- rebuild --------------------------------------------------------------

    @property
    def is_compiling(self) -> bool:
        return self._compiling

    def request_rebuild(self) -> bool:
        if self._compiling:
            return True
        if not self.needs_rebuild:
            return False
        self._compiling = True
        self._compile_countdown = self.compile_ticks
        if self._compile_countdown <= 0:
            self._finish_compile()
        return True

    def _finish_compile(self) -> None:
        self._compiling = False
        errors = list(self.next_build_errors)
        self.next_build_errors = []
        if not errors:
            self.needs_rebuild = False
        logger.debug("sim.compile.finished errors={}", len(errors))
        for listener in list(self._build_listeners):
            listener(errors)
        if not errors:
            self.reload_requested = True

    def add_build_listener(self, listener: BuildListener) -> None:
        if listener not in self._build_listeners:
            self._build_listeners.append(listener)

    def remove_build_listener(self, listener: BuildListener) -> None:
        if listener in self._build_listeners:
            self._build_listeners.remove(listener)

    # -- frames and restarts --------------------------------------------------

    def step(self) -> None:
        if self._play_countdown is not None:
            self._play_countdown -= 1
            if self._play_countdown <= 0:
                self._start_playing()
        if self._compiling:
            self._compile_countdown -= 1
            if self._compile_countdown <= 0:
                self._finish_compile()

    def reload(self) -> None:
        """Drop everything a restart discards: in-process listeners."""
        self.reload_requested = False
        self.reload_count += 1
        self._log_listeners.clear()
        self._build_listeners.clear()


def build_demo_scene(host: SimulatedHost) -> SimulatedHost:
    """Populate ``host`` with a small scene to poke at."""
    world = host.add_root("Game World")
    ship = world.add_child("Ship")
    transform = ship.add_component("Transform")
    transform.add_member("position", FieldDescriptor.of(FieldKind.VECTOR3))
    transform.add_member("scale", FieldDescriptor.of(FieldKind.VECTOR3), Vector3(1.0, 1.0, 1.0))

    body = ship.add_component("Rigidbody")
    body.add_member("mass", FieldDescriptor.of(FieldKind.FLOAT), 1.0)
    body.add_member("useGravity", FieldDescriptor.of(FieldKind.BOOLEAN), True)
    body.add_member("interpolation", FieldDescriptor.enumeration("None", "Interpolate", "Extrapolate"))

    renderer = ship.add_component("SpriteRenderer")
    renderer.add_member("color", FieldDescriptor.of(FieldKind.COLOR))
    renderer.add_member("sprite", FieldDescriptor.of(FieldKind.REFERENCE))
    renderer.add_member("sortingOrder", FieldDescriptor.of(FieldKind.INTEGER))

    controller = ship.add_component("ShipController")
    controller.add_member("_speed", FieldDescriptor.of(FieldKind.FLOAT), 5.0)
    controller.add_member("displayName", FieldDescriptor.of(FieldKind.STRING), "Ship")
    controller.add_member("target", FieldDescriptor.of(FieldKind.REFERENCE))
    controller.add_member("waypoints", FieldDescriptor.array_of(FieldDescriptor.of(FieldKind.VECTOR3)))

    camera = world.add_child("Main Camera")
    camera.add_component("Camera").add_member("orthographicSize", FieldDescriptor.of(FieldKind.FLOAT), 5.0)

    host.add_asset("Assets/Sprites/ship.png", kind="sprite")
    prefab_root = SceneObject("Asteroid")
    prefab_root.add_component("Rigidbody").add_member("mass", FieldDescriptor.of(FieldKind.FLOAT), 10.0)
    host.add_asset("Assets/Prefabs/Asteroid.prefab", kind="prefab", root=prefab_root)
    return host
