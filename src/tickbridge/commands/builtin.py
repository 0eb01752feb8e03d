"""Built-in command definitions."""

from __future__ import annotations

import json
from typing import Any

from tickbridge.coercion import Member
from tickbridge.commands.context import CommandContext
from tickbridge.commands.registry import CommandRegistry
from tickbridge.commands.types import CommandEnvelope, CommandResult, DispatchOutcome
from tickbridge.errors import CommandError
from tickbridge.host import SceneGraph

SET_EXAMPLE = (
    '{"type": "set", "path": "Game World/Ship", "component": "Transform", "property": "scale", "value": [1, 2, 3]}'
)


def format_value(value: Any, scene: SceneGraph | None = None) -> str:
    if value is None:
        return "null"
    if hasattr(value, "to_wire"):
        return json.dumps(value.to_wire())
    if isinstance(value, list):
        return "[" + ", ".join(format_value(item, scene) for item in value) + "]"
    if isinstance(value, bool | int | float | str):
        return json.dumps(value, ensure_ascii=False)
    if scene is not None:
        return f"`{scene.object_path(value)}`"
    return repr(value)


def _find_member(scene: SceneGraph, component: Any, name: str) -> Member | None:
    return scene.find_member(component, name) or scene.find_member(component, f"_{name}")


def handle_help(envelope: CommandEnvelope, context: CommandContext) -> str:
    """List available commands."""
    return context.registry.help_text()


def handle_status(envelope: CommandEnvelope, context: CommandContext) -> str:
    """Show outstanding async tasks."""
    lines = ["# Bridge Status", ""]
    lines += [f"- {task.describe()}" for task in context.tasks.values()]
    return "\n".join(lines) + "\n"


def handle_errors(envelope: CommandEnvelope, context: CommandContext) -> str:
    """Show the result of the most recent rebuild."""
    return context.rebuild.status_text()


def handle_refresh(envelope: CommandEnvelope, context: CommandContext) -> DispatchOutcome:
    """Rebuild and report compiler errors or success."""
    return context.rebuild.begin(envelope)


def handle_screenshot(envelope: CommandEnvelope, context: CommandContext) -> DispatchOutcome:
    """Enter play mode, wait, capture the game view, exit play mode."""
    return context.capture.begin(envelope)


def handle_set(envelope: CommandEnvelope, context: CommandContext) -> CommandResult:
    """Set one or more members on a component."""
    if not envelope.path or not envelope.component:
        raise CommandError(f"path, component, and properties required.\nExample: {SET_EXAMPLE}")

    scene = context.host
    path = envelope.path
    if path.startswith(context.settings.asset_prefix):
        target = scene.load_asset(path)
        if target is None:
            raise CommandError(f"Asset not found at `{path}`")
    else:
        target = scene.find_object(path)
        if target is None:
            raise CommandError(f"GameObject not found: `{path}`")

    component = scene.find_component(target, envelope.component)
    if component is None:
        raise CommandError(f"`{path}` does not have `{envelope.component}` component")

    lines = [f"Set `{scene.object_path(target)}` {envelope.component}:"]
    if envelope.properties:
        failures = 0
        for kv in envelope.properties:
            member = _find_member(scene, component, kv.key)
            if member is None:
                lines.append(f"  - {kv.key}: Error - property not found")
                failures += 1
                continue
            error = context.engine.assign(member, kv.value)
            if error is not None:
                lines.append(f"  - {kv.key}: Error - {error.reason}")
                failures += 1
                continue
            lines.append(f"  - {kv.key} = {format_value(member.value, scene)}")
        if failures < len(envelope.properties):
            scene.mark_dirty(component)
        if failures:
            lines.append(f"\n{failures}/{len(envelope.properties)} properties failed.")
        return CommandResult(ok=failures == 0, text="\n".join(lines) + "\n")

    if envelope.property and envelope.has_value():
        member = _find_member(scene, component, envelope.property)
        if member is None:
            raise CommandError(f"Property `{envelope.property}` not found on `{envelope.component}`")
        error = context.engine.assign(member, envelope.value)
        if error is not None:
            return CommandResult.failure(str(error))
        scene.mark_dirty(component)
        lines.append(f"  - {envelope.property} = {format_value(member.value, scene)}")
        return CommandResult.success("\n".join(lines) + "\n")

    raise CommandError("Either 'properties' array or 'property'/'value' pair required.")


def register_builtin_commands(registry: CommandRegistry) -> None:
    """Register the built-in command set."""

    registry.register("help", "Info", handle_help, description="List available commands")
    registry.register("status", "Info", handle_status, description="Show outstanding async tasks")
    registry.register("errors", "Info", handle_errors, description="Compilation status and errors")
    registry.register(
        "set",
        "Write",
        handle_set,
        fields="`path`, `component`, `property`+`value` or `properties`",
        description="Set component members (typed coercion)",
    )
    registry.register(
        "refresh",
        "Build",
        handle_refresh,
        description="Rebuild; responds after compile errors or the restart that follows success",
        asynchronous=True,
    )
    registry.register(
        "screenshot",
        "Play Mode",
        handle_screenshot,
        fields="`delay` (seconds, default 1)",
        description="Enter play mode, wait, capture, exit",
        asynchronous=True,
    )
