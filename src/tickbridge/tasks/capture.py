"""Screenshot capture: enter play mode, wait, capture, exit play mode."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from loguru import logger

from tickbridge.channels.response import ResponseSink
from tickbridge.clock import Clock
from tickbridge.commands.types import CommandEnvelope, CommandResult, DispatchOutcome
from tickbridge.config import BridgeSettings
from tickbridge.host import LogMessage, PlayModeHost
from tickbridge.scheduler import TickScheduler
from tickbridge.state import DurableStore
from tickbridge.tasks.machine import AsyncTask, TaskPhase, TaskRecord


class CaptureTask(AsyncTask):
    """Captures the game view after play mode has run for ``delay`` seconds.

    The capture happens at most once per record: ``captured`` is persisted
    before the capture call. Runtime errors logged while the task is pending
    are kept in the record and reported with the result.
    """

    kind = "screenshot"

    def __init__(
        self,
        host: PlayModeHost,
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
            safety_margin=settings.capture_safety_margin,
            stale_after=settings.capture_stale_after,
        )
        self._host = host
        self._settings = settings
        self._finalize_ticks = settings.capture_finalize_ticks
        self._finalize_remaining: int | None = None
        self._listening = False

    def begin(self, envelope: CommandEnvelope) -> DispatchOutcome:
        delay = envelope.delay if envelope.delay is not None and envelope.delay > 0 else self._settings.capture_delay
        stamp = datetime.fromtimestamp(self._clock.now()).strftime("%Y-%m-%d_%H-%M-%S")
        capture_dir = self._settings.capture_path
        capture_dir.mkdir(parents=True, exist_ok=True)
        path = capture_dir / f"screenshot_{stamp}.png"
        return self.start(envelope, {"wait": float(delay), "path": str(path)})

    def attach(self, record: TaskRecord) -> None:
        if self._listening:
            return
        self._listening = True
        self._host.add_log_listener(self._on_log)

    def detach(self) -> None:
        self._finalize_remaining = None
        if not self._listening:
            return
        self._listening = False
        self._host.remove_log_listener(self._on_log)

    def _on_log(self, message: LogMessage) -> None:
        if message.is_error and self.is_pending:
            self.append_diagnostic(f"[{message.level}] {message.message}")

    def trigger(self, record: TaskRecord) -> CommandResult | None:
        logger.info(
            "task.capture.enter_play_mode delay={}s output={}", record.params["wait"], record.params["path"]
        )
        self._host.enter_play_mode()
        return None

    def environment_active(self, record: TaskRecord) -> bool:
        return self._host.is_playing

    def advance(self, record: TaskRecord, elapsed: float) -> None:
        path = str(record.params.get("path") or "")
        if not path:
            self.finish(TaskPhase.FAILED, record, "capture path missing from task state")
            return

        if record.captured:
            self._finalize(record, path)
            return

        if not self._host.is_playing or self._host.is_paused:
            return
        self.phase = TaskPhase.ACTIVE

        if elapsed < float(record.params.get("wait", self._settings.capture_delay)):
            return

        logger.info("task.capture.capturing path={}", path)
        self.mark_captured()
        self.phase = TaskPhase.FINALIZING
        self._finalize_remaining = self._finalize_ticks
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._host.capture_screenshot(path)

    def _finalize(self, record: TaskRecord, path: str) -> None:
        self.phase = TaskPhase.FINALIZING
        if self._finalize_remaining is None:
            # Restarted after the capture; give the artifact the full window again.
            self._finalize_remaining = self._finalize_ticks
        self._finalize_remaining -= 1
        if self._finalize_remaining > 0:
            return

        if self._host.artifact_exists(path):
            self.finish(TaskPhase.SUCCEEDED, record)
        else:
            self.finish(TaskPhase.FAILED, record, f"screenshot was not written to `{path}`")

    def revert(self, record: TaskRecord) -> None:
        # Also cancels a play mode request that has not taken effect yet.
        logger.info("task.capture.exit_play_mode playing={}", self._host.is_playing)
        self._host.exit_play_mode()

    def render(self, outcome: TaskPhase, record: TaskRecord, detail: str | None) -> str:
        lines = ["# Screenshot", ""]
        if outcome is TaskPhase.SUCCEEDED:
            lines += [
                "**Status:** Success",
                "",
                f"**Path:** `{record.params.get('path', '')}`",
                "",
                "Screenshot captured from Game View.",
            ]
        else:
            status = "Timed out" if outcome is TaskPhase.TIMED_OUT else "Failed"
            lines += [f"**Status:** {status}", "", f"**Error:** {detail or 'unknown error'}"]

        if record.diagnostics:
            lines += ["", f"## Runtime Errors ({len(record.diagnostics)})", ""]
            lines += [f"- {item}" for item in record.diagnostics]
        return "\n".join(lines) + "\n"
