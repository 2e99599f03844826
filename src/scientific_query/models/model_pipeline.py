"""Pipeline trace, stats, and response models."""

from datetime import datetime
from typing import Literal

from scientific_query.models.base import CamelModel
from scientific_query.models.model_article import ArticleResult
from scientific_query.models.model_strategy import StrategyMetrics


class TraceEntry(CamelModel):
    timestamp: datetime
    stage: str  # e.g. "S1_SEARCH"
    level: Literal["info", "error"] = "info"
    message: str
    duration_ms: int | None = None


class PipelineStats(CamelModel):
    initial: int = 0
    after_filter: int = 0
    with_abstracts: int = 0
    analyzed: int = 0
    failed: int = 0
    invalid: int = 0
    processing_ms: int = 0


class ProgressEvent(CamelModel):
    """Progress of a batch of article analyses."""

    processing: bool
    total: int
    current: int


class ProcessQueryResponse(CamelModel):
    success: bool
    question: str
    canonical_strategy: str = ""
    raw_strategy: str = ""
    metrics: StrategyMetrics | None = None
    process_alert: str | None = None
    articles: list[ArticleResult] = []
    stats: PipelineStats = PipelineStats()
    trace: list[TraceEntry] = []
    message: str | None = None
