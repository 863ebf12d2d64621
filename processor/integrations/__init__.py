"""External service integrations."""

from .claude import ClaudeClient, ClaudeError
from .ringg import CallSnapshot, RinggClient, RinggError, RinggNotFoundError

__all__ = [
    "ClaudeClient",
    "ClaudeError",
    "CallSnapshot",
    "RinggClient",
    "RinggError",
    "RinggNotFoundError",
]
