"""Per-request pipeline trace."""

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from scientific_query.models.model_pipeline import TraceEntry

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    STRATEGY = "S0_STRATEGY"
    SEARCH = "S1_SEARCH"
    TITLE_FILTER = "S2_TITLE_FILTER"
    ABSTRACTS = "S3_ABSTRACTS"
    ENRICH = "S4_ENRICH"
    SCORE = "S5_SCORE"
    ANALYZE = "S6_ANALYZE"
    SYNTHESIZE = "S7_SYNTHESIZE"
    DONE = "S8_DONE"


class PipelineTrace:
    """Append-only stage history returned to the client.

    Timestamps never decrease even if the wall clock steps back. Every entry
    is also written to the log.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._clock = clock
        self._now = now
        self._entries: list[TraceEntry] = []

    def mark(self) -> float:
        """Monotonic start point for a later ``duration_ms``."""
        return self._clock()

    def _append(self, stage: Stage, level: str, message: str, since: float | None) -> TraceEntry:
        timestamp = self._now()
        if self._entries and timestamp < self._entries[-1].timestamp:
            timestamp = self._entries[-1].timestamp
        duration_ms = None if since is None else int((self._clock() - since) * 1000)
        entry = TraceEntry(
            timestamp=timestamp,
            stage=stage.value,
            level=level,
            message=message,
            duration_ms=duration_ms,
        )
        self._entries.append(entry)
        log = logger.error if level == "error" else logger.info
        log("[%s] %s%s", stage.value, message, f" ({duration_ms}ms)" if duration_ms is not None else "")
        return entry

    def info(self, stage: Stage, message: str, since: float | None = None) -> TraceEntry:
        return self._append(stage, "info", message, since)

    def error(self, stage: Stage, message: str, since: float | None = None) -> TraceEntry:
        return self._append(stage, "error", message, since)

    @property
    def entries(self) -> list[TraceEntry]:
        return list(self._entries)
