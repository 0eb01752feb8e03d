from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from tickbridge.clock import ManualClock
from tickbridge.runtime import BridgeRuntime
from tickbridge.sim import SimulatedHost


def restart(old: BridgeRuntime, host: SimulatedHost, make_runtime: Callable[[], BridgeRuntime]) -> BridgeRuntime:
    """Discard process memory, keep the store, start again."""
    old.shutdown()
    host.reload()
    return make_runtime()


def send(runtime: BridgeRuntime, clock: ManualClock, payload: Any) -> str:
    """Write a request, let one poll interval pass, and return the response file."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    runtime.settings.request_path.write_text(text, encoding="utf-8")
    clock.advance(runtime.settings.poll_interval)
    runtime.tick()
    return runtime.sink.read()


def run_ticks(runtime: BridgeRuntime, host: SimulatedHost, clock: ManualClock, count: int, step: float = 0.25) -> None:
    for _ in range(count):
        clock.advance(step)
        host.step()
        runtime.tick()
