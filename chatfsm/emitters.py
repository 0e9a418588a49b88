"""
Reference Emitter implementations.

Platform adapters normally supply their own emitter (WhatsApp send,
Slack post, ...). These two cover request/response adapters and
local debugging.
"""

import logging
from typing import Any, List

from .interfaces import Emitter

logger = logging.getLogger(__name__)


class BufferedEmitter(Emitter):
    """Collects emitted payloads in ``messages`` for the caller to deliver."""

    def __init__(self):
        self.messages: List[Any] = []

    async def emit(self, payload: Any) -> None:
        self.messages.append(payload)

    def drain(self) -> List[Any]:
        """Return and clear collected payloads."""
        messages, self.messages = self.messages, []
        return messages


class LoggingEmitter(Emitter):
    """Writes every payload to a logger instead of a user-facing channel."""

    def __init__(self, target: logging.Logger = logger, level: int = logging.INFO):
        self.target = target
        self.level = level

    async def emit(self, payload: Any) -> None:
        self.target.log(self.level, f"emit: {payload!r}")
