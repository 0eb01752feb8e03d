"""Application-level exception types for tickbridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for tickbridge."""


class ConfigurationError(BridgeError):
    """Raised when settings or the bridge folder are unusable."""


class MalformedRequestError(BridgeError):
    """Raised when the request channel does not hold an object or an array of objects."""


class CommandError(BridgeError):
    """Handler-local validation failure, reported back as a failed result."""


class TaskConflictError(CommandError):
    """Raised when an async task of the same kind is already pending."""
