"""Title-based relevance filter for large PubMed result sets."""

import logging
import re
from dataclasses import dataclass

from scientific_query.models.model_article import Article
from scientific_query.services.llm import LLMClient, LLMOptions
from scientific_query.services.prompts import FILTER_BY_TITLES_PROMPT

logger = logging.getLogger(__name__)

_PMID_LINE_RE = re.compile(r"^\d+$")


@dataclass
class TitleFilterOutcome:
    articles: list[Article]
    selected: int  # PMID lines in the LLM response
    used_fallback: bool


def build_prompt(articles: list[Article], question: str, limit: int) -> str:
    listing = "\n".join(f"PMID: {a.pmid} - {a.title}" for a in articles)
    return FILTER_BY_TITLES_PROMPT.format(question=question, limit=limit, articles=listing)


def parse_selected_pmids(response: str) -> list[str]:
    """PMIDs from lines that consist only of decimal digits."""
    lines = (line.strip() for line in response.splitlines())
    return list(dict.fromkeys(line for line in lines if _PMID_LINE_RE.match(line)))


async def filter_by_titles(
    llm: LLMClient,
    articles: list[Article],
    question: str,
    limit: int = 20,
    options: LLMOptions | None = None,
) -> TitleFilterOutcome:
    """Keep the articles whose titles the LLM judges most relevant.

    Args:
        llm: Completion client.
        articles: Candidates in PubMed order.
        question: The clinical question.
        limit: Maximum number of articles to keep.
        options: LLM call options.

    Returns:
        Matched articles in their original order, capped at ``limit``; the
        first ``limit`` articles when the response names no known PMID.

    Raises:
        LLMError: If the completion fails; callers decide how to degrade.
    """
    if not articles:
        return TitleFilterOutcome([], 0, False)

    response = await llm.complete(build_prompt(articles, question, limit), options)
    selected = parse_selected_pmids(response)
    wanted = set(selected)
    kept = [a for a in articles if a.pmid in wanted][:limit]

    if not kept:
        logger.warning(
            "Title filter matched no PMIDs (%d numeric lines); keeping first %d",
            len(selected),
            limit,
        )
        return TitleFilterOutcome(articles[:limit], len(selected), True)

    logger.info(
        "Title filter kept %d of %d articles (%d PMIDs selected)",
        len(kept),
        len(articles),
        len(selected),
    )
    return TitleFilterOutcome(kept, len(selected), False)
