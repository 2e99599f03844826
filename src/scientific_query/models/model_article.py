"""Article data models."""

import re

from pydantic import Field, computed_field, model_validator

from scientific_query.constants import (
    MIN_ABSTRACT_LENGTH,
    PUBMED_ARTICLE_URL,
    TITLE_PLACEHOLDER,
)
from scientific_query.models.base import CamelModel
from scientific_query.models.model_icite import Bibliometrics

_YEAR_RE = re.compile(r"\b(1[89]\d{2}|20\d{2})\b")


class Author(CamelModel):
    name: str
    role: str = "author"  # PubMed "authtype"


class Article(CamelModel):
    """A canonical PubMed article.

    Built by ``article_normalizer.normalize_article``; the validator here only
    enforces the invariants every article carries regardless of its source.
    """

    pmid: str | None = None
    doi: str | None = None
    title: str = TITLE_PLACEHOLDER
    authors: list[Author] = []
    publication_date: str | None = None
    year: int | None = None
    journal: str | None = None
    abstract: str = ""
    mesh_terms: list[str] = []
    icite: Bibliometrics | None = Field(default=None, alias="iCite")

    @model_validator(mode="after")
    def enforce_invariants(self) -> "Article":
        if not self.title or not self.title.strip():
            self.title = TITLE_PLACEHOLDER
        if self.year is None and self.publication_date:
            match = _YEAR_RE.search(self.publication_date)
            if match:
                self.year = int(match.group(1))
        # MeSH terms behave as a set but keep first-seen order
        self.mesh_terms = list(dict.fromkeys(t for t in self.mesh_terms if t))
        return self

    @computed_field
    @property
    def pubmed_url(self) -> str | None:
        if not self.pmid:
            return None
        return PUBMED_ARTICLE_URL.format(pmid=self.pmid)

    @property
    def has_placeholder_title(self) -> bool:
        return self.title == TITLE_PLACEHOLDER

    @property
    def analyzable(self) -> bool:
        """True when the article carries enough content for a critical analysis."""
        return (
            not self.has_placeholder_title
            and len(self.abstract.strip()) >= MIN_ABSTRACT_LENGTH
            and bool(self.pmid or self.doi)
        )


class ArticleAnalysis(CamelModel):
    """HTML analysis fragment for one article plus its outcome flags."""

    html: str
    analyzed: bool = False
    error: bool = False
    retried: bool = False
    invalid: bool = False


class ArticleResult(Article):
    """An article as returned to the client: scored and, when selected, analyzed."""

    priority_score: int = 0
    score_log: list[str] = []
    secondary_analysis: str | None = None
    analyzed: bool = False
    error: bool = False
    retried: bool = False
    invalid: bool = False

    @classmethod
    def from_article(
        cls, article: Article, score: int = 0, score_log: list[str] | None = None
    ) -> "ArticleResult":
        return cls(
            **article.model_dump(exclude={"pubmed_url"}),
            priority_score=score,
            score_log=score_log or [],
        )

    def with_analysis(self, analysis: ArticleAnalysis) -> "ArticleResult":
        return self.model_copy(
            update={
                "secondary_analysis": analysis.html,
                "analyzed": analysis.analyzed,
                "error": analysis.error,
                "retried": analysis.retried,
                "invalid": analysis.invalid,
            }
        )
