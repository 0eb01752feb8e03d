from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from support import restart, run_ticks, send

from tickbridge.clock import ManualClock
from tickbridge.config import BridgeSettings
from tickbridge.runtime import BridgeRuntime
from tickbridge.sim import SimulatedHost
from tickbridge.state import MemoryStateStore
from tickbridge.tasks import TaskPhase

PENDING_KEY = "tickbridge.screenshot.pending"
START_KEY = "tickbridge.screenshot.startTime"
PARAMS_KEY = "tickbridge.screenshot.params"


def _task_keys(store: MemoryStateStore) -> list[str]:
    return store.keys("tickbridge.screenshot.")


class RecordingStore(MemoryStateStore):
    def __init__(self) -> None:
        super().__init__()
        self.ops: list[tuple[str, str]] = []

    def set(self, key: str, value: Any) -> None:
        self.ops.append(("set", key))
        super().set(key, value)

    def delete(self, key: str) -> None:
        self.ops.append(("delete", key))
        super().delete(key)


def test_capture_happy_path(runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock) -> None:
    assert send(runtime, clock, {"type": "screenshot", "delay": 1}) == ""
    assert runtime.capture.phase is TaskPhase.PENDING

    run_ticks(runtime, host, clock, 10)

    response = runtime.sink.read()
    assert response.startswith("<!-- Request: screenshot -->")
    assert "**Status:** Success" in response
    assert len(host.captures) == 1
    assert f"**Path:** `{host.captures[0]}`" in response
    assert Path(host.captures[0]).exists()
    assert Path(host.captures[0]).name.startswith("screenshot_")
    assert not host.is_playing
    assert runtime.capture.phase is TaskPhase.SUCCEEDED
    assert _task_keys(runtime.store) == []
    assert not runtime.scheduler.is_subscribed(runtime.capture.on_tick)


def test_capture_waits_for_the_delay(runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock) -> None:
    send(runtime, clock, {"type": "screenshot", "delay": 3})

    run_ticks(runtime, host, clock, 11)
    assert host.captures == []
    assert runtime.capture.phase is TaskPhase.ACTIVE

    run_ticks(runtime, host, clock, 1)
    assert len(host.captures) == 1
    assert runtime.capture.phase is TaskPhase.FINALIZING


@pytest.mark.parametrize(("delay", "expected"), [(None, 1.0), (0, 1.0), (-2, 1.0), (2.5, 2.5)])
def test_delay_defaults(
    runtime: BridgeRuntime, clock: ManualClock, store: MemoryStateStore, delay: float | None, expected: float
) -> None:
    payload: dict[str, Any] = {"type": "screenshot"}
    if delay is not None:
        payload["delay"] = delay
    send(runtime, clock, payload)

    params = store.get(PARAMS_KEY)
    assert params["wait"] == expected
    assert params["path"].startswith(str(runtime.settings.capture_path))


def test_record_is_persisted_before_play_mode_starts(
    runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock, store: MemoryStateStore, monkeypatch
) -> None:
    seen: list[bool] = []
    original = host.enter_play_mode

    def _enter() -> None:
        seen.append(bool(store.get(PENDING_KEY)))
        original()

    monkeypatch.setattr(host, "enter_play_mode", _enter)
    send(runtime, clock, {"type": "screenshot"})

    assert seen == [True]


def test_safety_timeout_when_play_mode_never_starts(
    runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock
) -> None:
    host.play_mode_ticks = 10_000
    send(runtime, clock, {"type": "screenshot", "delay": 1})

    run_ticks(runtime, host, clock, 30, step=1.0)
    assert runtime.sink.read() == ""

    run_ticks(runtime, host, clock, 1, step=1.0)
    response = runtime.sink.read()
    assert "**Status:** Timed out" in response
    assert "Safety timeout: exceeded 31s limit" in response
    assert runtime.capture.phase is TaskPhase.TIMED_OUT
    assert _task_keys(runtime.store) == []

    run_ticks(runtime, host, clock, 20, step=1.0)
    assert not host.is_playing


def test_timeout_margin_comes_from_settings(
    settings: BridgeSettings, host: SimulatedHost, store: MemoryStateStore, clock: ManualClock
) -> None:
    settings = settings.model_copy(update={"capture_safety_margin": 5.0})
    runtime = BridgeRuntime(settings, host, store, clock=clock)
    runtime.startup()
    host.play_mode_ticks = 10_000
    send(runtime, clock, {"type": "screenshot", "delay": 2})

    run_ticks(runtime, host, clock, 6, step=1.0)
    assert runtime.sink.read() == ""
    run_ticks(runtime, host, clock, 1, step=1.0)
    assert "exceeded 7s limit" in runtime.sink.read()


def test_paused_play_mode_does_not_capture(runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock) -> None:
    send(runtime, clock, {"type": "screenshot", "delay": 1})
    run_ticks(runtime, host, clock, 1)
    host.set_paused(True)

    run_ticks(runtime, host, clock, 12)
    assert host.captures == []

    host.set_paused(False)
    run_ticks(runtime, host, clock, 4)
    assert len(host.captures) == 1
    assert "**Status:** Success" in runtime.sink.read()


def test_resume_after_restart_keeps_the_original_start_time(
    runtime: BridgeRuntime,
    host: SimulatedHost,
    clock: ManualClock,
    store: MemoryStateStore,
    make_runtime: Callable[[], BridgeRuntime],
) -> None:
    send(runtime, clock, {"type": "screenshot", "delay": 2})
    run_ticks(runtime, host, clock, 2)
    started = store.get(START_KEY)

    runtime = restart(runtime, host, make_runtime)

    assert store.get(START_KEY) == started
    assert runtime.capture.phase is TaskPhase.PENDING
    assert runtime.scheduler.callbacks.count(runtime.capture.on_tick) == 1

    runtime.capture.on_startup()
    runtime.capture.resume(runtime.capture.load())
    assert runtime.scheduler.callbacks.count(runtime.capture.on_tick) == 1

    run_ticks(runtime, host, clock, 10)
    assert len(host.captures) == 1
    assert "**Status:** Success" in runtime.sink.read()


def test_restart_after_capture_never_captures_again(
    runtime: BridgeRuntime,
    host: SimulatedHost,
    clock: ManualClock,
    store: MemoryStateStore,
    make_runtime: Callable[[], BridgeRuntime],
) -> None:
    send(runtime, clock, {"type": "screenshot", "delay": 1})
    run_ticks(runtime, host, clock, 4)
    assert len(host.captures) == 1
    assert store.get("tickbridge.screenshot.captured") is True

    runtime = restart(runtime, host, make_runtime)
    assert runtime.capture.phase is TaskPhase.FINALIZING

    run_ticks(runtime, host, clock, 10)
    assert len(host.captures) == 1
    assert "**Status:** Success" in runtime.sink.read()


def test_missing_artifact_fails(runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock) -> None:
    host.capture_writes_file = False
    send(runtime, clock, {"type": "screenshot"})

    run_ticks(runtime, host, clock, 10)

    response = runtime.sink.read()
    assert "**Status:** Failed" in response
    assert "screenshot was not written to" in response
    assert not host.is_playing


def test_capture_exception_fails_and_exits_play_mode(
    runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock, monkeypatch
) -> None:
    def _broken(path: str) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(host, "capture_screenshot", _broken)
    send(runtime, clock, {"type": "screenshot"})

    run_ticks(runtime, host, clock, 6)

    response = runtime.sink.read()
    assert "**Status:** Failed" in response
    assert "**Error:** disk full" in response
    assert not host.is_playing
    assert _task_keys(runtime.store) == []


def test_trigger_failure_is_reported_synchronously(
    runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock, monkeypatch
) -> None:
    def _refuse() -> None:
        raise RuntimeError("play mode unavailable")

    monkeypatch.setattr(host, "enter_play_mode", _refuse)

    response = send(runtime, clock, {"type": "screenshot"})

    assert "Error: Failed to start screenshot: play mode unavailable" in response
    assert runtime.capture.phase is TaskPhase.FAILED
    assert _task_keys(runtime.store) == []


def test_second_capture_is_rejected_while_pending(
    runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock
) -> None:
    send(runtime, clock, {"type": "screenshot", "delay": 5})

    response = send(runtime, clock, {"type": "screenshot"})
    assert "Error: `screenshot` already in progress" in response

    run_ticks(runtime, host, clock, 30)
    assert len(host.captures) == 1
    assert "**Status:** Success" in runtime.sink.read()


def test_runtime_errors_are_reported_with_the_result(
    runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock
) -> None:
    send(runtime, clock, {"type": "screenshot", "delay": 1})
    run_ticks(runtime, host, clock, 1)
    host.log("error", "NullReferenceException in Update")
    host.log("info", "spawned 3 asteroids")
    host.log("exception", "IndexOutOfRange")

    run_ticks(runtime, host, clock, 10)
    host.log("error", "after the fact")

    response = runtime.sink.read()
    assert "## Runtime Errors (2)" in response
    assert "- [error] NullReferenceException in Update" in response
    assert "- [exception] IndexOutOfRange" in response
    assert "spawned" not in response
    assert "after the fact" not in response


def test_diagnostics_survive_a_restart(
    runtime: BridgeRuntime,
    host: SimulatedHost,
    clock: ManualClock,
    make_runtime: Callable[[], BridgeRuntime],
) -> None:
    send(runtime, clock, {"type": "screenshot", "delay": 2})
    run_ticks(runtime, host, clock, 1)
    host.log("error", "before restart")

    runtime = restart(runtime, host, make_runtime)
    host.log("error", "after restart")
    run_ticks(runtime, host, clock, 12)

    response = runtime.sink.read()
    assert "## Runtime Errors (2)" in response
    assert "before restart" in response
    assert "after restart" in response


def test_stale_record_is_cleared_without_a_response(
    runtime: BridgeRuntime,
    host: SimulatedHost,
    clock: ManualClock,
    store: MemoryStateStore,
    make_runtime: Callable[[], BridgeRuntime],
) -> None:
    send(runtime, clock, {"type": "screenshot"})
    runtime.shutdown()
    host.exit_play_mode()
    host.reload()
    clock.advance(200)

    runtime = make_runtime()

    assert _task_keys(store) == []
    assert runtime.sink.read() == ""
    assert not runtime.scheduler.is_subscribed(runtime.capture.on_tick)
    assert "screenshot: idle" in send(runtime, clock, {"type": "status"})


def test_stale_record_with_play_mode_still_active_resumes(
    runtime: BridgeRuntime,
    host: SimulatedHost,
    clock: ManualClock,
    make_runtime: Callable[[], BridgeRuntime],
) -> None:
    send(runtime, clock, {"type": "screenshot"})
    run_ticks(runtime, host, clock, 1)
    assert host.is_playing
    runtime.shutdown()
    host.reload()
    clock.advance(200)

    runtime = make_runtime()
    assert runtime.scheduler.is_subscribed(runtime.capture.on_tick)

    runtime.tick()
    assert "**Status:** Timed out" in runtime.sink.read()
    assert not host.is_playing


def test_inconsistent_record_is_cleared(
    store: MemoryStateStore, make_runtime: Callable[[], BridgeRuntime]
) -> None:
    store.set(PENDING_KEY, True)
    store.set(START_KEY, "yesterday")
    store.set(PARAMS_KEY, {"wait": 1.0})

    runtime = make_runtime()

    assert _task_keys(store) == []
    assert runtime.capture.phase is TaskPhase.IDLE
    assert runtime.sink.read() == ""


def test_orphaned_payload_without_pending_flag_is_ignored(
    store: MemoryStateStore, make_runtime: Callable[[], BridgeRuntime]
) -> None:
    store.set(START_KEY, 1.0)
    store.set(PARAMS_KEY, {"wait": 1.0})

    runtime = make_runtime()

    assert runtime.capture.load() is None
    assert not runtime.scheduler.is_subscribed(runtime.capture.on_tick)


def test_write_ordering(settings: BridgeSettings, host: SimulatedHost, clock: ManualClock, monkeypatch) -> None:
    store = RecordingStore()
    runtime = BridgeRuntime(settings, host, store, clock=clock)
    runtime.startup()

    events: list[str] = []
    write_result = runtime.sink.write_result
    exit_play_mode = host.exit_play_mode

    def _write(request: Any, result: Any) -> None:
        events.append(f"response pending={store.has(PENDING_KEY)}")
        write_result(request, result)

    def _exit() -> None:
        events.append(f"revert pending={store.has(PENDING_KEY)}")
        exit_play_mode()

    monkeypatch.setattr(runtime.sink, "write_result", _write)
    monkeypatch.setattr(host, "exit_play_mode", _exit)

    send(runtime, clock, {"type": "screenshot"})
    persisted = [key for op, key in store.ops if op == "set"]
    assert persisted[-1] == PENDING_KEY
    assert persisted.count(PENDING_KEY) == 1

    store.ops.clear()
    run_ticks(runtime, host, clock, 10)

    assert events == ["response pending=True", "revert pending=True"]
    deletes = [key for op, key in store.ops if op == "delete"]
    assert deletes[0] == PENDING_KEY
    assert not store.has(PENDING_KEY)


def test_status_shows_the_pending_capture(runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock) -> None:
    send(runtime, clock, {"type": "screenshot", "delay": 5})
    run_ticks(runtime, host, clock, 2)

    response = send(runtime, clock, {"type": "status"})

    assert "screenshot: active for 1.5s (request: screenshot)" in response
    assert "refresh: idle" in response


def test_resumed_task_advances_once_per_tick(
    runtime: BridgeRuntime,
    host: SimulatedHost,
    clock: ManualClock,
    make_runtime: Callable[[], BridgeRuntime],
    monkeypatch,
) -> None:
    send(runtime, clock, {"type": "screenshot", "delay": 5})
    run_ticks(runtime, host, clock, 1)
    runtime = restart(runtime, host, make_runtime)
    runtime.capture.on_startup()

    calls: list[float] = []
    advance = runtime.capture.advance

    def _counting(record, elapsed: float) -> None:
        calls.append(elapsed)
        advance(record, elapsed)

    monkeypatch.setattr(runtime.capture, "advance", _counting)
    run_ticks(runtime, host, clock, 3)

    assert len(calls) == 3
