"""Bridge runtime: one instance per host process."""

from __future__ import annotations

from loguru import logger

from tickbridge.channels import RequestPoller, ResponseSink
from tickbridge.clock import Clock, SystemClock
from tickbridge.coercion import CoercionEngine
from tickbridge.commands import CommandContext, CommandRegistry, Dispatcher, register_builtin_commands
from tickbridge.config import BridgeSettings
from tickbridge.errors import ConfigurationError
from tickbridge.host import Host
from tickbridge.scheduler import TickScheduler
from tickbridge.state import DurableStore, JSONStateStore
from tickbridge.tasks import AsyncTask, CaptureTask, RebuildTracker


class BridgeRuntime:
    """Wires the bridge for one host process.

    Everything held here is process memory and is discarded by a restart;
    only ``store`` outlives it. ``startup()`` is what a freshly (re)started
    process runs.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        host: Host,
        store: DurableStore | None = None,
        *,
        clock: Clock | None = None,
        registry: CommandRegistry | None = None,
    ) -> None:
        self.settings = settings
        self.host = host
        self.clock = clock or SystemClock()
        self.store = store if store is not None else JSONStateStore(settings.state_path)
        self.scheduler = TickScheduler()
        self.sink = ResponseSink(settings.response_path, clock=self.clock)
        self.engine = CoercionEngine(
            host,
            reference_marker=settings.reference_marker,
            asset_prefix=settings.asset_prefix,
        )
        if registry is None:
            registry = CommandRegistry()
            register_builtin_commands(registry)
        self.registry = registry

        self.capture = CaptureTask(host, self.store, self.scheduler, self.sink, clock=self.clock, settings=settings)
        self.rebuild = RebuildTracker(host, self.store, self.scheduler, self.sink, clock=self.clock, settings=settings)
        self.tasks: dict[str, AsyncTask] = {task.kind: task for task in (self.capture, self.rebuild)}

        self.context = CommandContext(
            settings=settings,
            host=host,
            engine=self.engine,
            registry=self.registry,
            clock=self.clock,
            tasks=self.tasks,
        )
        self.dispatcher = Dispatcher(self.registry, self.context)
        self.poller = RequestPoller(
            settings.request_path,
            self.dispatcher,
            self.sink,
            self.scheduler,
            poll_interval=settings.poll_interval,
            clock=self.clock,
        )
        self._started = False

    def startup(self) -> None:
        if self._started:
            return
        try:
            self.settings.bridge_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(f"bridge folder `{self.settings.bridge_dir}` is not usable: {exc}") from exc
        self._started = True
        self.poller.start()
        for task in self.tasks.values():
            task.on_startup()
        logger.info("bridge.startup request={} response={}", self.settings.request_path, self.settings.response_path)

    def shutdown(self) -> None:
        self.poller.stop()
        self.rebuild.stop_listening()
        for task in self.tasks.values():
            task.detach()
            task.unsubscribe()
        self.scheduler.clear()
        self._started = False
        logger.info("bridge.shutdown")

    def tick(self) -> None:
        self.scheduler.tick()
