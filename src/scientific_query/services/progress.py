"""Progress sinks for batch analysis.

The orchestrator only ever calls ``emit``; sinks never block it. Slow
consumers lose events rather than stalling the pipeline.
"""

import asyncio
import logging
from collections import deque
from typing import Protocol

from scientific_query.models.model_pipeline import ProgressEvent

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    def emit(self, event: ProgressEvent) -> None: ...


class NullProgressSink:
    def emit(self, event: ProgressEvent) -> None:
        return None


class BufferedProgressSink:
    """Keeps the most recent ``maxlen`` events in memory."""

    def __init__(self, maxlen: int = 100):
        self.events: deque[ProgressEvent] = deque(maxlen=maxlen)

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def last(self) -> ProgressEvent | None:
        return self.events[-1] if self.events else None


class QueueProgressSink:
    """Pushes events onto a bounded asyncio queue, dropping them when it is full."""

    def __init__(self, maxsize: int = 100):
        self.queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def emit(self, event: ProgressEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("Progress queue full; dropped event %s", event)


class ProgressBroadcaster:
    """Fans events out to every subscribed queue (one per websocket client)."""

    def __init__(self, maxsize: int = 100):
        self._maxsize = maxsize
        self._subscribers: set[QueueProgressSink] = set()
        self.last: ProgressEvent | None = None

    def subscribe(self) -> QueueProgressSink:
        sink = QueueProgressSink(self._maxsize)
        self._subscribers.add(sink)
        logger.info("Progress subscriber added (%d total)", len(self._subscribers))
        return sink

    def unsubscribe(self, sink: QueueProgressSink) -> None:
        self._subscribers.discard(sink)
        logger.info("Progress subscriber removed (%d total)", len(self._subscribers))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def emit(self, event: ProgressEvent) -> None:
        self.last = event
        for sink in list(self._subscribers):
            sink.emit(event)
