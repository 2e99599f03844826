"""Per-article critical analysis and the fixed fallback cards."""

import html
import logging

from scientific_query.config import get_settings
from scientific_query.constants import (
    ANALYSIS_MAX_TOKENS,
    ANALYSIS_TEMPERATURE,
    ERROR_CARD_TEMPLATE,
    INVALID_ARTICLE_MESSAGE,
)
from scientific_query.models.model_article import Article
from scientific_query.services.llm import LLMClient, LLMOptions
from scientific_query.services.prompts import (
    ANALYZE_ARTICLE_PROMPT,
    ANALYZE_ARTICLE_SIMPLE_PROMPT,
)

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "No disponible"


def error_card(message: str) -> str:
    """The fixed HTML card shown in place of a failed analysis."""
    return ERROR_CARD_TEMPLATE.format(message=html.escape(message))


def invalid_card() -> str:
    return error_card(INVALID_ARTICLE_MESSAGE)


def failure_card(exc: BaseException) -> str:
    return error_card(f"No se pudo generar el análisis: {exc}")


def build_analysis_prompt(article: Article, question: str, simple: bool = False) -> str:
    template = ANALYZE_ARTICLE_SIMPLE_PROMPT if simple else ANALYZE_ARTICLE_PROMPT
    return template.format(
        question=question,
        title=article.title,
        authors=", ".join(a.name for a in article.authors) or NOT_AVAILABLE,
        publication_date=article.publication_date or NOT_AVAILABLE,
        journal=article.journal or NOT_AVAILABLE,
        doi=article.doi or NOT_AVAILABLE,
        pmid=article.pmid or NOT_AVAILABLE,
        mesh_terms=", ".join(article.mesh_terms) or NOT_AVAILABLE,
        abstract=article.abstract or NOT_AVAILABLE,
    )


class ArticleAnalyzer:
    """Requests the HTML analysis card for one article."""

    def __init__(self, llm: LLMClient, timeout_ms: int | None = None):
        self.llm = llm
        self.timeout_ms = timeout_ms or get_settings().http_timeout_long_ms

    def _options(self) -> LLMOptions:
        return LLMOptions(
            temperature=ANALYSIS_TEMPERATURE,
            max_tokens=ANALYSIS_MAX_TOKENS,
            timeout_ms=self.timeout_ms,
        )

    async def analyze(self, article: Article, question: str, simple: bool = False) -> str:
        """Return the LLM's HTML analysis unchanged.

        Raises:
            LLMError: When the completion fails after its retries.
        """
        logger.info(
            "Analyzing PMID %s (%s prompt): %.80s",
            article.pmid,
            "simple" if simple else "detailed",
            article.title,
        )
        prompt = build_analysis_prompt(article, question, simple=simple)
        return await self.llm.complete(prompt, self._options())
