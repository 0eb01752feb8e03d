"""File-based request and response channels."""

from tickbridge.channels.request import RequestPoller, parse_request
from tickbridge.channels.response import ResponseSink

__all__ = ["RequestPoller", "ResponseSink", "parse_request"]
