"""Single-threaded cooperative tick scheduler."""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

TickCallback = Callable[[], None]


class TickScheduler:
    """Runs subscribed callbacks once per tick, in subscription order.

    Nothing here blocks: a callback that needs to wait returns and checks
    again on a later tick. All subscriptions live in memory and vanish with
    the process, which is why every task re-subscribes on start-up.
    """

    def __init__(self) -> None:
        self._callbacks: list[TickCallback] = []
        self.tick_count = 0

    def subscribe(self, callback: TickCallback) -> bool:
        if callback in self._callbacks:
            return False
        self._callbacks.append(callback)
        return True

    def unsubscribe(self, callback: TickCallback) -> bool:
        if callback not in self._callbacks:
            return False
        self._callbacks.remove(callback)
        return True

    def is_subscribed(self, callback: TickCallback) -> bool:
        return callback in self._callbacks

    @property
    def callbacks(self) -> list[TickCallback]:
        return list(self._callbacks)

    def clear(self) -> None:
        self._callbacks.clear()

    def tick(self) -> None:
        self.tick_count += 1
        # Callbacks may (un)subscribe while running.
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception:
                logger.exception("scheduler.tick.error callback={}", getattr(callback, "__qualname__", callback))
