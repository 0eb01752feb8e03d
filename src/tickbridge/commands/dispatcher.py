"""Command dispatch for single and batched requests."""

from __future__ import annotations

import json
import time
from collections.abc import Sequence
from typing import Any

from loguru import logger

from tickbridge.commands.context import CommandContext
from tickbridge.commands.registry import CommandRegistry
from tickbridge.commands.types import PENDING, BatchEntry, CommandEnvelope, CommandResult, DispatchOutcome
from tickbridge.errors import CommandError, MalformedRequestError


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    if len(text) <= width:
        return text
    available = width - len(placeholder)
    if available <= 0:
        return placeholder
    return text[:available] + placeholder


def unknown_command(name: str) -> CommandResult:
    return CommandResult.failure(f"Unknown request type: {name}\n\nUse `help` to see available commands.")


class Dispatcher:
    """Looks commands up by name and runs them.

    No retries and no de-duplication happen here; a handler that must be
    idempotent guards itself.
    """

    def __init__(self, registry: CommandRegistry, context: CommandContext) -> None:
        self._registry = registry
        self._context = context

    def dispatch(self, envelope: CommandEnvelope) -> DispatchOutcome:
        descriptor = self._registry.get(envelope.type)
        if descriptor is None:
            logger.warning("bridge.dispatch.unknown type={}", envelope.type)
            return unknown_command(envelope.type)

        self._log_call(envelope)
        start = time.monotonic()
        try:
            outcome = descriptor.handler(envelope, self._context)
        except CommandError as exc:
            logger.info("bridge.dispatch.rejected type={} reason={}", descriptor.name, exc)
            return CommandResult.failure(str(exc))
        except Exception as exc:
            logger.exception("bridge.dispatch.error type={}", descriptor.name)
            return CommandResult.failure(f"Unexpected error in {descriptor.name}: {exc}")
        finally:
            duration = time.monotonic() - start
            logger.info("bridge.dispatch.end type={} duration={:.3f}ms", descriptor.name, duration * 1000)

        return self._normalize(outcome)

    def dispatch_batch(self, entries: Sequence[CommandEnvelope | dict[str, Any] | Any]) -> list[BatchEntry]:
        """Run entries one after another. One entry failing never stops the rest."""
        results: list[BatchEntry] = []
        for raw in entries:
            try:
                envelope = raw if isinstance(raw, CommandEnvelope) else CommandEnvelope.parse(raw)
            except MalformedRequestError as exc:
                results.append(BatchEntry(type=_raw_type(raw), ok=False, message=f"Error: {exc}"))
                continue

            descriptor = self._registry.get(envelope.type)
            if descriptor is not None and descriptor.asynchronous:
                results.append(
                    BatchEntry(
                        type=envelope.type,
                        ok=False,
                        message=f"Error: `{descriptor.name}` runs asynchronously and cannot be part of a batch",
                    )
                )
                continue

            try:
                outcome = self.dispatch(envelope)
            except Exception as exc:
                logger.exception("bridge.batch.error type={}", envelope.type)
                outcome = CommandResult.failure(str(exc))

            if isinstance(outcome, CommandResult):
                results.append(BatchEntry(type=envelope.type, ok=outcome.ok, message=outcome.text))
            else:
                results.append(BatchEntry(type=envelope.type, ok=True, message="pending"))
        return results

    @staticmethod
    def _normalize(outcome: Any) -> DispatchOutcome:
        if outcome is PENDING:
            return PENDING
        if isinstance(outcome, CommandResult):
            return outcome
        if outcome is None:
            return CommandResult.success("")
        return CommandResult.success(str(outcome))

    @staticmethod
    def _log_call(envelope: CommandEnvelope) -> None:
        params: list[str] = []
        for key, value in envelope.model_dump(exclude_none=True, exclude={"type"}, exclude_defaults=True).items():
            try:
                rendered = json.dumps(value, ensure_ascii=False)
            except TypeError:
                rendered = repr(value)
            params.append(f"{key}={_shorten_text(rendered)}")
        logger.info("bridge.dispatch.start type={} {{ {} }}", envelope.type, ", ".join(params))


def _raw_type(raw: Any) -> str:
    if isinstance(raw, dict):
        value = raw.get("type")
        if isinstance(value, str) and value.strip():
            return value.strip()
    return "?"
