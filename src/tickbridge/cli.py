"""tickbridge command line."""

from __future__ import annotations

import json
import time
from pathlib import Path

import typer
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from tickbridge.commands import CommandRegistry, register_builtin_commands
from tickbridge.config import BridgeSettings, get_settings
from tickbridge.errors import ConfigurationError
from tickbridge.logging_utils import configure_logging
from tickbridge.runtime import BridgeRuntime
from tickbridge.sim import SimulatedHost, build_demo_scene
from tickbridge.state import JSONStateStore

app = typer.Typer(name="tickbridge", help="File-based command bridge for restartable hosts.", add_completion=False)


def _settings(bridge_dir: Path | None) -> BridgeSettings:
    return get_settings(bridge_dir)


class ServeLoop:
    """Ticks a runtime and rebuilds it whenever the host asks for a restart."""

    def __init__(self, settings: BridgeSettings, host: SimulatedHost) -> None:
        self.settings = settings
        self.host = host
        self.store = JSONStateStore(settings.state_path)
        self.runtime = self._boot()

    def _boot(self) -> BridgeRuntime:
        runtime = BridgeRuntime(self.settings, self.host, self.store)
        runtime.startup()
        return runtime

    def step(self) -> None:
        self.host.step()
        self.runtime.tick()
        if self.host.reload_requested:
            logger.info("bridge.restart reason=host")
            self.runtime.shutdown()
            self.host.reload()
            self.store.reload()
            self.runtime = self._boot()


@app.command()
def serve(
    bridge_dir: Path | None = typer.Option(None, "--bridge-dir", "-d", help="Bridge folder"),  # noqa: B008
    demo: bool = typer.Option(True, "--demo/--empty", help="Start with the demo scene"),
    reload_on_play: bool = typer.Option(False, "--reload-on-play", help="Restart when play mode starts"),
) -> None:
    """Run a simulated host with the bridge attached."""
    settings = _settings(bridge_dir)
    configure_logging(profile="console", level=settings.log_level)

    host = SimulatedHost(reload_on_play=reload_on_play)
    if demo:
        build_demo_scene(host)
    try:
        loop = ServeLoop(settings, host)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc

    scheduler = BlockingScheduler()
    scheduler.add_job(
        loop.step,
        IntervalTrigger(seconds=settings.tick_interval),
        id="tickbridge.tick",
        max_instances=1,
        coalesce=True,
    )
    typer.echo(f"Polling {settings.request_path} (Ctrl+C to stop)")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        loop.runtime.shutdown()


def _mtime(path: Path) -> int:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return 0


@app.command()
def send(
    request: str = typer.Argument(..., help="JSON object or array of objects"),
    bridge_dir: Path | None = typer.Option(None, "--bridge-dir", "-d", help="Bridge folder"),  # noqa: B008
    timeout: float = typer.Option(30.0, "--timeout", "-t", min=0.0, help="Seconds to wait for a response"),
    interval: float = typer.Option(0.2, "--interval", min=0.01, help="Seconds between response checks"),
) -> None:
    """Write a request and wait for the response."""
    try:
        payload = json.loads(request)
    except json.JSONDecodeError as exc:
        typer.echo(f"Invalid JSON: {exc}", err=True)
        raise typer.Exit(2) from exc
    if not isinstance(payload, dict | list):
        typer.echo("Request must be a JSON object or array", err=True)
        raise typer.Exit(2)

    settings = _settings(bridge_dir)
    response_path = settings.response_path
    baseline = _mtime(response_path)

    settings.request_path.parent.mkdir(parents=True, exist_ok=True)
    settings.request_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")

    deadline = time.monotonic() + timeout
    while True:
        if _mtime(response_path) > baseline:
            typer.echo(response_path.read_text(encoding="utf-8"))
            return
        if time.monotonic() >= deadline:
            typer.echo(f"Timed out after {timeout:.1f}s waiting for {response_path}", err=True)
            raise typer.Exit(1)
        time.sleep(interval)


@app.command("commands")
def list_commands() -> None:
    """Show the registered commands."""
    registry = CommandRegistry()
    register_builtin_commands(registry)
    typer.echo(registry.help_text())


if __name__ == "__main__":
    app()
