"""Meta-analytic synthesis across analyzed articles."""

import logging
from typing import Any

from scientific_query.config import get_settings
from scientific_query.constants import (
    SYNTHESIS_ABSTRACT_CHARS,
    SYNTHESIS_ANALYSIS_CHARS,
    SYNTHESIS_MAX_TOKENS,
    SYNTHESIS_TEMPERATURE,
)
from scientific_query.models.model_article import ArticleResult
from scientific_query.services.article_normalizer import normalize_article
from scientific_query.services.llm import LLMClient, LLMOptions
from scientific_query.services.prompts import SYNTHESIS_ARTICLE_BLOCK, SYNTHESIS_PROMPT

logger = logging.getLogger(__name__)


def _clip(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _article_block(number: int, data: dict[str, Any]) -> str:
    article = normalize_article(data)
    analysis = data.get("secondaryAnalysis") or data.get("secondary_analysis") or data.get("analysis") or ""
    return SYNTHESIS_ARTICLE_BLOCK.format(
        number=number,
        title=article.title,
        authors=", ".join(a.name for a in article.authors) or "No disponible",
        publication_date=article.publication_date or "Fecha desconocida",
        pmid=article.pmid or f"N/A-{number}",
        abstract=_clip(article.abstract, SYNTHESIS_ABSTRACT_CHARS) or "No disponible",
        analysis=_clip(str(analysis), SYNTHESIS_ANALYSIS_CHARS),
    )


def build_synthesis_prompt(question: str, articles: list[dict[str, Any] | ArticleResult]) -> str:
    blocks = [
        _article_block(i, a.to_json_dict() if isinstance(a, ArticleResult) else a)
        for i, a in enumerate(articles, start=1)
    ]
    return SYNTHESIS_PROMPT.format(question=question, articles="\n\n".join(blocks))


class SynthesisGenerator:
    """Long-form synthesis with the long-tier model."""

    def __init__(self, llm: LLMClient, model: str | None = None, timeout_ms: int | None = None):
        settings = get_settings()
        self.llm = llm
        self.model = model or settings.llm_long_model
        self.timeout_ms = timeout_ms or settings.http_timeout_long_ms

    async def generate(self, question: str, articles: list[dict[str, Any] | ArticleResult]) -> str:
        """Return the synthesis HTML exactly as the LLM produced it."""
        logger.info("Generating synthesis over %d articles", len(articles))
        options = LLMOptions(
            model=self.model,
            temperature=SYNTHESIS_TEMPERATURE,
            max_tokens=SYNTHESIS_MAX_TOKENS,
            timeout_ms=self.timeout_ms,
        )
        return await self.llm.complete(build_synthesis_prompt(question, articles), options)
