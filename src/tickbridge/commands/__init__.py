"""Command registry, dispatch and built-in commands."""

from tickbridge.commands.builtin import register_builtin_commands
from tickbridge.commands.context import CommandContext
from tickbridge.commands.dispatcher import Dispatcher
from tickbridge.commands.registry import CommandDescriptor, CommandRegistry
from tickbridge.commands.types import PENDING, BatchEntry, CommandEnvelope, CommandResult, PropertyKV

__all__ = [
    "PENDING",
    "BatchEntry",
    "CommandContext",
    "CommandDescriptor",
    "CommandEnvelope",
    "CommandRegistry",
    "CommandResult",
    "Dispatcher",
    "PropertyKV",
    "register_builtin_commands",
]
