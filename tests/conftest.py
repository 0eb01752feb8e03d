from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from tickbridge.clock import ManualClock
from tickbridge.config import BridgeSettings
from tickbridge.runtime import BridgeRuntime
from tickbridge.sim import SimulatedHost, build_demo_scene
from tickbridge.state import MemoryStateStore


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in ("TICKBRIDGE_BRIDGE_DIR", "TICKBRIDGE_POLL_INTERVAL", "TICKBRIDGE_CAPTURE_SAFETY_MARGIN"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def settings(tmp_path: Path) -> BridgeSettings:
    return BridgeSettings(bridge_dir=tmp_path / "bridge")


@pytest.fixture
def host() -> SimulatedHost:
    return build_demo_scene(SimulatedHost())


@pytest.fixture
def store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def make_runtime(
    settings: BridgeSettings, host: SimulatedHost, store: MemoryStateStore, clock: ManualClock
) -> Callable[[], BridgeRuntime]:
    def _make() -> BridgeRuntime:
        runtime = BridgeRuntime(settings, host, store, clock=clock)
        runtime.startup()
        return runtime

    return _make


@pytest.fixture
def runtime(make_runtime: Callable[[], BridgeRuntime]) -> BridgeRuntime:
    return make_runtime()
