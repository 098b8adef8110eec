"""Per-token log capture.

Log lines bound to a token (``token_logger(token)``) are routed by a loguru
sink into a bounded buffer for that token, so each caller can read back what
its own schedules did. Tokens are never used as keys directly; buffers are
keyed by a short SHA-256 fingerprint.
"""

from __future__ import annotations

import hashlib
import threading
from collections import deque
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger, Message

OWNER_KEY = "log_owner"
_LINE_FORMAT = "{time:YYYY-MM-DDTHH:mm:ssZZ}: {message}"


def token_fingerprint(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


def token_logger(token: str) -> "Logger":
    """A logger whose lines are captured into ``token``'s buffer."""
    return logger.bind(**{OWNER_KEY: token_fingerprint(token)})


def _owned(record: dict[str, Any]) -> bool:
    return OWNER_KEY in record["extra"]


class TokenLogStore:
    """Bounded in-memory log buffers, one per token fingerprint."""

    def __init__(self, max_lines: int = 1000):
        self.max_lines = max_lines
        self._buffers: dict[str, deque[str]] = {}
        self._lock = threading.Lock()
        self._sink_id: int | None = None

    def install(self, level: str = "DEBUG") -> None:
        """Attach the capturing sink to loguru. Idempotent."""
        if self._sink_id is not None:
            return
        self._sink_id = logger.add(self._sink, level=level, format=_LINE_FORMAT, filter=_owned)

    def uninstall(self) -> None:
        if self._sink_id is None:
            return
        logger.remove(self._sink_id)
        self._sink_id = None

    def _sink(self, message: "Message") -> None:
        owner = message.record["extra"][OWNER_KEY]
        with self._lock:
            buffer = self._buffers.get(owner)
            if buffer is None:
                buffer = deque(maxlen=self.max_lines)
                self._buffers[owner] = buffer
            buffer.append(str(message))

    def reset(self, token: str) -> None:
        """Start a fresh, empty buffer for ``token``."""
        with self._lock:
            self._buffers[token_fingerprint(token)] = deque(maxlen=self.max_lines)

    def lines(self, token: str) -> list[str]:
        with self._lock:
            return list(self._buffers.get(token_fingerprint(token), ()))

    def read(self, token: str) -> str:
        return "".join(self.lines(token))
