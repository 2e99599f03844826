"""Deterministic relevance scoring for retrieved articles."""

import re
from dataclasses import dataclass, field
from datetime import date

from scientific_query.constants import (
    MESH_QUALITY_INDICATORS,
    MIN_KEYWORD_LENGTH,
    PRESTIGIOUS_JOURNALS,
    STUDY_TYPE_RULES,
)
from scientific_query.models.model_article import Article, ArticleResult
from scientific_query.models.model_icite import Bibliometrics

MAX_SCORE = 100
MESH_POINTS_EACH, MESH_CAP = 2, 5
TITLE_POINTS_EACH, TITLE_CAP = 3, 12
ABSTRACT_POINTS_EACH, ABSTRACT_CAP = 1, 8
JOURNAL_POINTS = 5

_WORD_RE = re.compile(r"\w+", re.UNICODE)


@dataclass(frozen=True)
class ScoreResult:
    score: int
    rationale: list[str] = field(default_factory=list)


def question_keywords(question: str) -> list[str]:
    """Distinct lowercase words of the question longer than three characters."""
    words = (w.lower() for w in _WORD_RE.findall(question or ""))
    return list(dict.fromkeys(w for w in words if len(w) >= MIN_KEYWORD_LENGTH))


def _tier(value: float, tiers: list[tuple[float, bool, int]], floor: int) -> int:
    """Points for the first ``(threshold, strict, points)`` tier that ``value`` reaches."""
    for threshold, strict, points in tiers:
        if value > threshold if strict else value >= threshold:
            return points
    return floor


class RelevanceScorer:
    """Service for scoring article relevance to a clinical question.

    The score is a pure function of the article, the question, and the
    reference year, so repeated calls return identical results.
    """

    def __init__(self, current_year: int | None = None):
        self.current_year = current_year or date.today().year

    def score(
        self, article: Article, question: str, icite: Bibliometrics | None = None
    ) -> ScoreResult:
        """Calculate a 0-100 priority score with a rationale line per contribution."""
        icite = icite or article.icite
        title = article.title.lower()
        parts: list[tuple[str, int]] = []

        # Study design, first match in the title wins
        for phrases, points, label in STUDY_TYPE_RULES:
            if any(phrase in title for phrase in phrases):
                parts.append((f"study type {label}", points))
                break

        mesh_text = " ".join(article.mesh_terms).lower()
        mesh_hits = sum(1 for term in MESH_QUALITY_INDICATORS if term in mesh_text)
        if mesh_hits:
            parts.append(("MeSH quality", min(MESH_CAP, mesh_hits * MESH_POINTS_EACH)))

        if icite is not None:
            parts.extend(self._icite_parts(icite))

        if article.year is not None:
            age = self.current_year - article.year
            recency = 10 if age <= 2 else 7 if age <= 5 else 3 if age <= 10 else 0
            if recency:
                parts.append((f"recency {age}y", recency))

        keywords = question_keywords(question)
        abstract = article.abstract.lower()
        title_hits = sum(1 for k in keywords if k in title)
        abstract_hits = sum(1 for k in keywords if k in abstract)
        if title_hits:
            parts.append(("title keywords", min(TITLE_CAP, title_hits * TITLE_POINTS_EACH)))
        if abstract_hits:
            parts.append(
                ("abstract keywords", min(ABSTRACT_CAP, abstract_hits * ABSTRACT_POINTS_EACH))
            )

        journal = (article.journal or "").lower()
        if journal and any(name in journal for name in PRESTIGIOUS_JOURNALS):
            parts.append(("journal", JOURNAL_POINTS))

        total = min(MAX_SCORE, sum(points for _, points in parts))
        return ScoreResult(total, [f"{label} +{points}" for label, points in parts])

    @staticmethod
    def _icite_parts(icite: Bibliometrics) -> list[tuple[str, int]]:
        parts = []
        if icite.rcr is not None:
            points = _tier(icite.rcr, [(2.0, True, 15), (1.5, False, 12), (1.0, False, 8), (0.5, False, 4)], 1)
            parts.append((f"RCR {icite.rcr:g}", points))
        if icite.nih_percentile is not None:
            points = _tier(icite.nih_percentile, [(90, True, 10), (75, False, 7), (50, False, 4)], 1)
            parts.append((f"NIH percentile {icite.nih_percentile:g}", points))
        if icite.citations_per_year is not None:
            points = _tier(icite.citations_per_year, [(10, False, 5), (5, False, 3), (1, False, 1)], 0)
            if points:
                parts.append((f"citations/year {icite.citations_per_year:g}", points))
        if icite.apt_score is not None:
            points = _tier(icite.apt_score, [(0.8, True, 15), (0.6, False, 10), (0.4, False, 5)], 1)
            parts.append((f"APT {icite.apt_score:g}", points))
        return parts

    def score_all(self, articles: list[Article], question: str) -> list[ArticleResult]:
        """Score every article and return them in rank order."""
        results = []
        for article in articles:
            result = self.score(article, question)
            results.append(ArticleResult.from_article(article, result.score, result.rationale))
        return sorted(results, key=rank_key)


def rank_key(article: ArticleResult) -> tuple[int, int, str]:
    """Score descending, then year descending, then PMID ascending."""
    return (-article.priority_score, -(article.year or 0), article.pmid or "")
