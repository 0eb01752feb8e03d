"""Restart-safe state machine for operations that span many ticks.

The persisted :class:`TaskRecord` is the only source of truth. In-memory
fields on a task object (phase, subscription flags, countdowns) are
conveniences that a restart is allowed to lose.

Discipline:

* persist the record before triggering anything that may restart the host,
* resume from the record on every start-up,
* on a terminal state write the response, revert the environment, then
  clear the record.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from loguru import logger

from tickbridge.channels.response import ResponseSink
from tickbridge.clock import Clock
from tickbridge.commands.types import PENDING, CommandEnvelope, CommandResult, DispatchOutcome
from tickbridge.errors import TaskConflictError
from tickbridge.scheduler import TickScheduler
from tickbridge.state import DurableStore

RECORD_VERSION = 1


class TaskPhase(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    ACTIVE = "active"
    FINALIZING = "finalizing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in {TaskPhase.SUCCEEDED, TaskPhase.FAILED, TaskPhase.TIMED_OUT}


@dataclass
class TaskRecord:
    """Persisted state of one outstanding task."""

    start_time: float
    params: dict[str, Any] = field(default_factory=dict)
    request: str = ""
    captured: bool = False
    diagnostics: list[str] = field(default_factory=list)
    pending: bool = True
    version: int = RECORD_VERSION

    def elapsed(self, now: float) -> float:
        return now - self.start_time


class TaskKeys:
    """Durable store keys for one task kind."""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self.pending = f"{prefix}.pending"
        self.start_time = f"{prefix}.startTime"
        self.params = f"{prefix}.params"
        self.request = f"{prefix}.request"
        self.captured = f"{prefix}.captured"
        self.diagnostics = f"{prefix}.diagnostics"
        self.version = f"{prefix}.version"

    def payload_keys(self) -> list[str]:
        return [self.version, self.start_time, self.params, self.request, self.captured, self.diagnostics]


class AsyncTask(ABC):
    """Template for one kind of multi-tick, restart-safe operation.

    At most one task of a kind is outstanding; a second ``start`` while one
    is pending is rejected with :class:`TaskConflictError`.
    """

    kind: ClassVar[str]
    key_namespace: ClassVar[str] = "tickbridge"

    def __init__(
        self,
        store: DurableStore,
        scheduler: TickScheduler,
        sink: ResponseSink,
        *,
        clock: Clock,
        safety_margin: float,
        stale_after: float,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._sink = sink
        self._clock = clock
        self.safety_margin = safety_margin
        self.stale_after = stale_after
        self.keys = TaskKeys(f"{self.key_namespace}.{self.kind}")
        self.phase = TaskPhase.IDLE
        self._subscribed = False

    # -- persisted record ---------------------------------------------------

    def load(self) -> TaskRecord | None:
        if not self._store.get(self.keys.pending, False):
            return None

        version = self._store.get(self.keys.version)
        start_time = self._store.get(self.keys.start_time)
        params = self._store.get(self.keys.params, {})
        request = self._store.get(self.keys.request, self.kind)
        captured = self._store.get(self.keys.captured, False)
        diagnostics = self._store.get(self.keys.diagnostics, [])
        if (
            version != RECORD_VERSION
            or not isinstance(start_time, int | float)
            or isinstance(start_time, bool)
            or not isinstance(params, dict)
            or not isinstance(diagnostics, list)
        ):
            logger.warning("task.record.inconsistent kind={} version={} start_time={}", self.kind, version, start_time)
            self.clear()
            return None

        return TaskRecord(
            start_time=float(start_time),
            params=params,
            request=str(request),
            captured=bool(captured),
            diagnostics=[str(item) for item in diagnostics],
        )

    def persist(self, record: TaskRecord) -> None:
        # Pending goes last: a restart part-way leaves no pending record.
        self._store.set(self.keys.version, record.version)
        self._store.set(self.keys.start_time, record.start_time)
        self._store.set(self.keys.params, record.params)
        self._store.set(self.keys.request, record.request)
        self._store.set(self.keys.captured, record.captured)
        self._store.set(self.keys.diagnostics, record.diagnostics)
        self._store.set(self.keys.pending, True)

    def clear(self) -> None:
        # Pending goes first: a restart part-way leaves only orphaned payload keys.
        self._store.delete(self.keys.pending)
        for key in self.keys.payload_keys():
            self._store.delete(key)

    def mark_captured(self) -> None:
        self._store.set(self.keys.captured, True)

    def append_diagnostic(self, line: str) -> None:
        diagnostics = list(self._store.get(self.keys.diagnostics, []))
        diagnostics.append(line)
        self._store.set(self.keys.diagnostics, diagnostics)

    @property
    def is_pending(self) -> bool:
        return bool(self._store.get(self.keys.pending, False))

    # -- subscription -------------------------------------------------------

    @property
    def subscribed(self) -> bool:
        return self._subscribed

    def subscribe(self) -> None:
        if self._subscribed:
            return
        self._subscribed = True
        self._scheduler.subscribe(self.on_tick)

    def unsubscribe(self) -> None:
        self._subscribed = False
        self._scheduler.unsubscribe(self.on_tick)

    # -- lifecycle ----------------------------------------------------------

    def start(self, envelope: CommandEnvelope, params: dict[str, Any]) -> DispatchOutcome:
        existing = self.load()
        if existing is not None:
            age = existing.elapsed(self._clock.now())
            raise TaskConflictError(
                f"`{self.kind}` already in progress (started {age:.1f}s ago). "
                "Wait for its response before sending another."
            )

        record = TaskRecord(start_time=self._clock.now(), params=params, request=envelope.describe())
        self.persist(record)
        self.phase = TaskPhase.PENDING
        self.attach(record)
        self.subscribe()
        logger.info("task.start kind={} params={}", self.kind, params)

        try:
            immediate = self.trigger(record)
        except Exception as exc:
            logger.exception("task.trigger.error kind={}", self.kind)
            self._revert_safely(record)
            self._release(TaskPhase.FAILED)
            return CommandResult.failure(f"Failed to start {self.kind}: {exc}")

        if immediate is not None:
            self._release(TaskPhase.SUCCEEDED if immediate.ok else TaskPhase.FAILED)
            return immediate
        return PENDING

    def on_startup(self) -> None:
        """Runs once per process start, including after a restart."""
        record = self.load()
        if record is None:
            return

        age = record.elapsed(self._clock.now())
        if age > self.stale_after and not self.environment_active(record):
            logger.warning("task.stale kind={} age={:.1f}s", self.kind, age)
            self._release(TaskPhase.IDLE)
            return

        logger.info("task.resume kind={} age={:.1f}s captured={}", self.kind, age, record.captured)
        self.resume(record)

    def resume(self, record: TaskRecord) -> None:
        self.phase = TaskPhase.FINALIZING if record.captured else TaskPhase.PENDING
        self.attach(record)
        self.subscribe()

    def on_tick(self) -> None:
        record = self.load()
        if record is None:
            self.detach()
            self.unsubscribe()
            if not self.phase.is_terminal:
                self.phase = TaskPhase.IDLE
            return

        elapsed = record.elapsed(self._clock.now())
        limit = self.timeout_for(record)
        if elapsed >= limit:
            logger.error("task.timeout kind={} elapsed={:.1f}s limit={:.1f}s", self.kind, elapsed, limit)
            self.finish(TaskPhase.TIMED_OUT, record, f"Safety timeout: exceeded {limit:.0f}s limit")
            return

        try:
            self.advance(record, elapsed)
        except Exception as exc:
            logger.exception("task.advance.error kind={}", self.kind)
            self.finish(TaskPhase.FAILED, record, str(exc))

    def finish(self, outcome: TaskPhase, record: TaskRecord, detail: str | None = None) -> None:
        """Write the response, revert the environment, clear the record. In that order."""
        if not outcome.is_terminal:
            raise ValueError(f"{outcome} is not a terminal phase")

        record = self.load() or record
        try:
            self._sink.write_result(record.request, self.render(outcome, record, detail))
        except Exception:
            logger.exception("task.response.error kind={}", self.kind)
        self._revert_safely(record)
        self._release(outcome)
        logger.info("task.finish kind={} outcome={}", self.kind, outcome)

    def _revert_safely(self, record: TaskRecord) -> None:
        try:
            self.revert(record)
        except Exception:
            logger.exception("task.revert.error kind={}", self.kind)

    def _release(self, phase: TaskPhase) -> None:
        self.clear()
        self.detach()
        self.unsubscribe()
        self.phase = phase

    def describe(self) -> str:
        record = self.load()
        if record is None:
            return f"{self.kind}: idle"
        age = record.elapsed(self._clock.now())
        return f"{self.kind}: {self.phase.value} for {age:.1f}s (request: {record.request})"

    # -- hooks --------------------------------------------------------------

    def timeout_for(self, record: TaskRecord) -> float:
        return float(record.params.get("wait", 0.0)) + self.safety_margin

    def attach(self, record: TaskRecord) -> None:
        """Hook up in-process listeners for a pending record."""

    def detach(self) -> None:
        """Undo :meth:`attach`."""

    @abstractmethod
    def trigger(self, record: TaskRecord) -> CommandResult | None:
        """Perform the side effect that starts the task.

        Return a result to complete synchronously, or ``None`` to stay pending.
        """

    @abstractmethod
    def environment_active(self, record: TaskRecord) -> bool:
        """Whether the environment is still in the state the task put it in."""

    @abstractmethod
    def advance(self, record: TaskRecord, elapsed: float) -> None:
        """Make progress on one tick. Never blocks."""

    @abstractmethod
    def revert(self, record: TaskRecord) -> None:
        """Restore the environment to where it was before :meth:`trigger`."""

    @abstractmethod
    def render(self, outcome: TaskPhase, record: TaskRecord, detail: str | None) -> str:
        """Render the terminal response body."""
