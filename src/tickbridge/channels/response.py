"""Response channel writer."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from tickbridge.clock import Clock, SystemClock, format_timestamp
from tickbridge.commands.types import BatchEntry, CommandEnvelope, CommandResult


class ResponseSink:
    """Writes the outcome of the most recent command to a single file."""

    def __init__(self, path: Path, *, clock: Clock | None = None) -> None:
        self.path = path
        self._clock = clock or SystemClock()

    def header(self, request: str) -> str:
        return f"<!-- Request: {request} -->\n<!-- Time: {format_timestamp(self._clock)} -->\n\n"

    def write_result(self, request: CommandEnvelope | str, result: CommandResult | str) -> None:
        descriptor = request.describe() if isinstance(request, CommandEnvelope) else request
        text = result.text if isinstance(result, CommandResult) else result
        self._write(self.header(descriptor) + text)
        logger.info("bridge.response.written request={} bytes={}", descriptor, len(text))

    def write_batch(self, entries: Sequence[BatchEntry]) -> None:
        succeeded = sum(1 for entry in entries if entry.ok)
        lines = [f"# Batch: {succeeded}/{len(entries)} succeeded", ""]
        for index, entry in enumerate(entries, start=1):
            icon = "+" if entry.ok else "x"
            lines.append(f"{index}. [{icon}] {entry.type}: {entry.first_line}")
        lines.append("")
        lines.append(f"<!-- Time: {format_timestamp(self._clock)} -->")
        self._write(self.header(f"batch ({len(entries)})") + "\n".join(lines) + "\n")
        logger.info("bridge.response.batch succeeded={} total={}", succeeded, len(entries))

    def write_error(self, message: str) -> None:
        body = f"# Error\n\n{message}\n\nUse `help` command for available options.\n"
        self._write(self.header("error") + body)
        logger.warning("bridge.response.error message={}", message)

    def read(self) -> str:
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")

    def _write(self, content: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
