"""Data models for the scientific query pipeline."""

from scientific_query.models.model_article import Article, ArticleResult, Author
from scientific_query.models.model_icite import Bibliometrics
from scientific_query.models.model_pipeline import (
    PipelineStats,
    ProcessQueryResponse,
    ProgressEvent,
    TraceEntry,
)
from scientific_query.models.model_strategy import Strategy, StrategyMetrics

__all__ = [
    "Article",
    "ArticleResult",
    "Author",
    "Bibliometrics",
    "PipelineStats",
    "ProcessQueryResponse",
    "ProgressEvent",
    "Strategy",
    "StrategyMetrics",
    "TraceEntry",
]
