"""Tracks an externally driven rebuild across the restart it usually causes."""

from __future__ import annotations

from pathlib import PurePath

from loguru import logger

from tickbridge.channels.response import ResponseSink
from tickbridge.clock import Clock
from tickbridge.commands.types import CommandEnvelope, CommandResult, DispatchOutcome
from tickbridge.config import BridgeSettings
from tickbridge.host import BuildHost, CompilerMessage
from tickbridge.scheduler import TickScheduler
from tickbridge.state import DurableStore
from tickbridge.tasks.machine import AsyncTask, TaskPhase, TaskRecord

NO_CHANGES = "# Refresh\n\n**Status:** No changes detected\n\nNo scripts needed recompilation."


def format_compiler_messages(messages: list[CompilerMessage]) -> list[str]:
    lines: list[str] = []
    for message in messages:
        lines.append(f"### {PurePath(message.file).name}:{message.line}")
        lines.append("```")
        lines.append(message.message)
        lines.append("```")
        lines.append(f"**Path:** `{message.file}`")
        lines.append("")
    return lines


class RebuildTracker(AsyncTask):
    """A rebuild either reports errors in-process or ends in a restart.

    Errors produce the failure response straight away. A clean restart while
    the record is pending means the rebuild succeeded, and the resumed
    process reports it using the persisted start time.
    """

    kind = "refresh"

    def __init__(
        self,
        host: BuildHost,
        store: DurableStore,
        scheduler: TickScheduler,
        sink: ResponseSink,
        *,
        clock: Clock,
        settings: BridgeSettings,
    ) -> None:
        super().__init__(
            store,
            scheduler,
            sink,
            clock=clock,
            safety_margin=settings.rebuild_timeout,
            stale_after=settings.rebuild_stale_after,
        )
        self._host = host
        self.last_errors: list[CompilerMessage] = []
        self.last_started: float | None = None
        self._listening = False

    def begin(self, envelope: CommandEnvelope) -> DispatchOutcome:
        return self.start(envelope, {})

    def listen(self) -> None:
        """Follow build results for the lifetime of this process."""
        if self._listening:
            return
        self._listening = True
        self._host.add_build_listener(self._on_build_finished)

    def stop_listening(self) -> None:
        if not self._listening:
            return
        self._listening = False
        self._host.remove_build_listener(self._on_build_finished)

    def on_startup(self) -> None:
        self.listen()
        super().on_startup()

    def resume(self, record: TaskRecord) -> None:
        if not self._host.is_compiling:
            logger.info("task.rebuild.restart_detected elapsed={:.1f}s", record.elapsed(self._clock.now()))
            self.finish(TaskPhase.SUCCEEDED, record)
            return
        super().resume(record)

    def trigger(self, record: TaskRecord) -> CommandResult | None:
        self.listen()
        self.last_started = record.start_time
        started = self._host.request_rebuild()
        if not started and not self._host.is_compiling:
            logger.info("task.rebuild.no_changes")
            return CommandResult.success(NO_CHANGES)
        if self.is_pending:
            # Still waiting; errors reported synchronously have already finished the task.
            self.phase = TaskPhase.ACTIVE
        return None

    def _on_build_finished(self, messages: list[CompilerMessage]) -> None:
        self.last_errors = list(messages)
        record = self.load()
        if record is None:
            return
        if self.last_errors:
            self.finish(TaskPhase.FAILED, record)
        # A clean build is followed by a restart; the next process reports it.

    def timeout_for(self, record: TaskRecord) -> float:
        return self.safety_margin

    def environment_active(self, record: TaskRecord) -> bool:
        return self._host.is_compiling

    def advance(self, record: TaskRecord, elapsed: float) -> None:
        self.phase = TaskPhase.ACTIVE if self._host.is_compiling else TaskPhase.PENDING

    def revert(self, record: TaskRecord) -> None:
        """A rebuild leaves nothing to undo."""

    def render(self, outcome: TaskPhase, record: TaskRecord, detail: str | None) -> str:
        duration = record.elapsed(self._clock.now())
        lines = ["# Compilation Result", "", f"**Duration:** {duration:.1f}s", ""]
        if outcome is TaskPhase.SUCCEEDED:
            lines += ["**Status:** Success", "", "All scripts compiled successfully."]
        elif outcome is TaskPhase.TIMED_OUT:
            lines += ["**Status:** Timed out", "", f"**Error:** {detail}"]
        else:
            lines += [f"**Status:** {len(self.last_errors)} error(s)", ""]
            if detail:
                lines += [f"**Error:** {detail}", ""]
            lines += format_compiler_messages(self.last_errors)
        return "\n".join(lines).rstrip() + "\n"

    def status_text(self) -> str:
        lines = ["# Compilation Status", ""]
        if self._host.is_compiling:
            since = self.last_started if self.last_started is not None else self._clock.now()
            lines += ["**Status:** Compiling...", f"**Elapsed:** {self._clock.now() - since:.1f}s"]
        elif self.last_errors:
            lines += [f"**Status:** {len(self.last_errors)} error(s)", ""]
            lines += format_compiler_messages(self.last_errors)
        else:
            lines += ["**Status:** No compilation errors"]
        return "\n".join(lines).rstrip() + "\n"
