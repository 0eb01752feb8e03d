"""Request channel poller."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from loguru import logger

from tickbridge.channels.response import ResponseSink
from tickbridge.clock import Clock, SystemClock
from tickbridge.commands.dispatcher import Dispatcher
from tickbridge.commands.types import CommandEnvelope, CommandResult
from tickbridge.errors import MalformedRequestError
from tickbridge.scheduler import TickScheduler

EMPTY_REQUEST = "{}"


def decode_request(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedRequestError(f"request is not valid UTF-8: {exc}") from exc


def parse_request(text: str) -> CommandEnvelope | list[Any] | None:
    """Parse request channel content.

    Returns ``None`` for "no request", one envelope for an object, and the raw
    list of entries for a batch. Batch entries are validated by the dispatcher
    so that one bad entry only fails itself.
    """
    stripped = text.strip()
    if not stripped or stripped == EMPTY_REQUEST:
        return None
    try:
        payload = json.loads(stripped)
    except RecursionError as exc:
        raise MalformedRequestError("request is nested too deeply") from exc
    except json.JSONDecodeError as exc:
        raise MalformedRequestError(f"request is not valid JSON: {exc}") from exc

    if isinstance(payload, dict):
        if not payload:
            return None
        return CommandEnvelope.parse(payload)
    if isinstance(payload, list):
        if not payload:
            raise MalformedRequestError("batch request is empty")
        for index, item in enumerate(payload):
            if not isinstance(item, dict):
                raise MalformedRequestError(f"batch entry {index + 1} is not a JSON object")
        return payload
    raise MalformedRequestError(f"request must be a JSON object or array, got {type(payload).__name__}")


class RequestPoller:
    """Watches the request file's modification time on a fixed cadence."""

    def __init__(
        self,
        path: Path,
        dispatcher: Dispatcher,
        sink: ResponseSink,
        scheduler: TickScheduler,
        *,
        poll_interval: float = 1.0,
        clock: Clock | None = None,
    ) -> None:
        self.path = path
        self._dispatcher = dispatcher
        self._sink = sink
        self._scheduler = scheduler
        self._poll_interval = poll_interval
        self._clock = clock or SystemClock()
        self._last_check: float | None = None
        self._last_signature: tuple[int, int] | None = None

    def start(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._reset()
        self._scheduler.subscribe(self.poll)
        logger.info("bridge.poller.start path={}", self.path)

    def stop(self) -> None:
        self._scheduler.unsubscribe(self.poll)

    def poll(self) -> None:
        now = self._clock.now()
        if self._last_check is not None and now - self._last_check < self._poll_interval:
            return
        self._last_check = now

        signature = self._signature()
        if signature is None or signature == self._last_signature:
            return
        self._last_signature = signature
        self.process()

    def process(self) -> None:
        try:
            raw = self.path.read_bytes()
        except OSError as exc:
            logger.error("bridge.request.read_error path={} error={}", self.path, exc)
            # Forget the signature so the next poll reads the file again.
            self._last_signature = None
            return

        try:
            request = parse_request(decode_request(raw))
        except MalformedRequestError as exc:
            self._reset()
            self._sink.write_error(f"Error processing request: {exc}")
            return
        if request is None:
            return

        # Consume before dispatching: a handler may trigger a restart, and the
        # next process must not replay this request.
        self._reset()

        if isinstance(request, list):
            logger.info("bridge.request.batch size={}", len(request))
            self._sink.write_batch(self._dispatcher.dispatch_batch(request))
            return

        logger.info("bridge.request.start {}", request.describe())
        outcome = self._dispatcher.dispatch(request)
        if isinstance(outcome, CommandResult):
            self._sink.write_result(request, outcome)
            return
        logger.info("bridge.request.pending type={}", request.type)

    def _reset(self) -> None:
        self.path.write_text(EMPTY_REQUEST, encoding="utf-8")
        self._last_signature = self._signature()

    def _signature(self) -> tuple[int, int] | None:
        # Size disambiguates writes that land within one mtime tick.
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return stat.st_mtime_ns, stat.st_size
