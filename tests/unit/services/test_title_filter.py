"""Unit tests for the title filter."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from scientific_query.models.model_article import Article
from scientific_query.services.llm import LLMTimeout
from scientific_query.services.title_filter import (
    build_prompt,
    filter_by_titles,
    parse_selected_pmids,
)

QUESTION = "Is methotrexate effective for proliferative vitreoretinopathy?"


@pytest.fixture
def articles() -> list[Article]:
    return [Article(pmid=str(i), title=f"Study of retinal surgery number {i}") for i in range(1, 26)]


def _llm(response=None, error=None) -> MagicMock:
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=response, side_effect=error)
    return llm


def test_parse_selected_pmids():
    response = "Seleccionados:\n12345678\n\n 87654321 \nPMID: 111\n12345678"
    assert parse_selected_pmids(response) == ["12345678", "87654321"]


def test_build_prompt_lists_titles(articles):
    prompt = build_prompt(articles[:2], QUESTION, 20)
    assert "PMID: 1 - Study of retinal surgery number 1" in prompt
    assert "PMID: 2 - Study of retinal surgery number 2" in prompt
    assert "hasta 20 artículos" in prompt
    assert QUESTION in prompt


async def test_keeps_matches_in_original_order(articles):
    outcome = await filter_by_titles(_llm("7\n3\n99"), articles, QUESTION, limit=20)

    assert [a.pmid for a in outcome.articles] == ["3", "7"]
    assert outcome.selected == 3
    assert not outcome.used_fallback


async def test_result_capped_at_limit(articles):
    response = "\n".join(a.pmid for a in articles)
    outcome = await filter_by_titles(_llm(response), articles, QUESTION, limit=20)

    assert len(outcome.articles) == 20


async def test_no_match_falls_back_to_first_limit(articles):
    outcome = await filter_by_titles(_llm("No puedo decidir."), articles, QUESTION, limit=20)

    assert [a.pmid for a in outcome.articles] == [str(i) for i in range(1, 21)]
    assert outcome.used_fallback


async def test_llm_error_propagates(articles):
    with pytest.raises(LLMTimeout):
        await filter_by_titles(_llm(error=LLMTimeout("slow")), articles, QUESTION)


async def test_empty_input_makes_no_call():
    llm = _llm("1")
    outcome = await filter_by_titles(llm, [], QUESTION)
    assert outcome.articles == []
    llm.complete.assert_not_called()
