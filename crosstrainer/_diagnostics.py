"""Bounded diagnostic log kept per connection."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 200


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class DiagnosticLog:
    """Ring of the most recent timestamped diagnostic entries.

    Every entry is also forwarded to ``sink`` so the host application's
    logging configuration still sees it. The ring is what a UI shows after a
    failed connection attempt.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        *,
        sink: logging.Logger | None = None,
        clock: Callable[[], str] = _utc_timestamp,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._entries: deque[str] = deque(maxlen=capacity)
        self._sink = sink or LOGGER
        self._clock = clock

    @property
    def capacity(self) -> int:
        """Maximum number of retained entries."""
        return self._entries.maxlen or 0

    def record(self, message: str, *args: object, level: int = logging.INFO) -> None:
        """Append a %-formatted entry and forward it to the logging sink."""
        text = message % args if args else message
        self._entries.append(f"[{self._clock()}] {text}")
        self._sink.log(level, message, *args)

    def snapshot(self) -> list[str]:
        """Return the retained entries, oldest first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
