"""Search strategy models."""

from scientific_query.models.base import CamelModel


class StrategyMetrics(CamelModel):
    """Estimated retrieval quality of a search strategy."""

    sensitivity: int | None = None  # percent
    specificity: int | None = None  # percent
    precision: int | None = None  # percent
    nnr: float | None = None  # number needed to read
    saturation: int | None = None  # percent


class Strategy(CamelModel):
    raw: str
    canonical: str
    metrics: StrategyMetrics | None = None
    extracted: bool = True  # False when canonical fell back to the question
