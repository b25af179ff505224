"""
QuickMock Log Stream

Broadcast channel for structured request log entries. Subscribing
returns an unsubscribe callable; ``listen()`` adapts the stream to an
async iterator for server-sent events.
"""

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Callable, Deque, List, Optional

from .models import LogEntry

LogListener = Callable[[LogEntry], None]

logger = logging.getLogger("quickmock.logstream")


class LogStream:
    """Observer list with a short replay buffer of recent entries."""

    def __init__(self, history_limit: int = 100):
        self._listeners: List[LogListener] = []
        self._recent: Deque[LogEntry] = deque(maxlen=history_limit)

    def subscribe(self, listener: LogListener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Callable that removes the listener; safe to call twice
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, entry: LogEntry):
        """Deliver an entry to every listener; a failing listener is skipped."""
        self._recent.append(entry)
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception:
                logger.exception("Log listener raised; entry not delivered to it")

    def recent(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Most recent entries, oldest first."""
        entries = list(self._recent)
        return entries[-limit:] if limit else entries

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def listen(self) -> AsyncIterator[LogEntry]:
        """
        Yield entries as they are emitted, until the consumer stops iterating.

        Must be consumed on the event loop that emits entries.
        """
        queue: asyncio.Queue = asyncio.Queue()
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()
