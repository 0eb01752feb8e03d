"""tickbridge - drive a restartable host through files."""

from .config import BridgeSettings
from .runtime import BridgeRuntime
from .state import JSONStateStore, MemoryStateStore

__version__ = "0.1.0"

__all__ = ["BridgeRuntime", "BridgeSettings", "JSONStateStore", "MemoryStateStore"]
