"""Unit tests for RelevanceScorer."""

import pytest

from scientific_query.models.model_article import Article
from scientific_query.models.model_icite import Bibliometrics
from scientific_query.services.relevance_scorer import (
    RelevanceScorer,
    question_keywords,
    rank_key,
)

QUESTION = "Is methotrexate effective for proliferative vitreoretinopathy?"


@pytest.fixture
def scorer() -> RelevanceScorer:
    return RelevanceScorer(current_year=2024)


def test_question_keywords():
    assert question_keywords(QUESTION) == [
        "methotrexate",
        "effective",
        "proliferative",
        "vitreoretinopathy",
    ]


def test_score_components(scorer, sample_article):
    result = scorer.score(sample_article, QUESTION)

    # meta-analysis 15, RCR 15, percentile 10, citations/year 3, APT 10,
    # recency 10, title keywords 9, abstract keywords 3
    assert result.score == 75
    assert "study type meta-analysis +15" in result.rationale
    assert "recency 2y +10" in result.rationale


def test_score_is_deterministic(scorer, sample_article):
    assert scorer.score(sample_article, QUESTION) == scorer.score(sample_article, QUESTION)


def test_first_study_type_rule_wins(scorer):
    article = Article(pmid="1", title="A systematic review and meta-analysis of cohort data")
    result = scorer.score(article, "")
    assert result.rationale == ["study type meta-analysis +15"]


def test_mesh_quality_capped(scorer):
    article = Article(
        pmid="1",
        title="Plain title for testing",
        mesh_terms=["Double-Blind Method", "Placebo-Controlled", "Multicenter Study"],
    )
    assert scorer.score(article, "").score == 5


def test_keyword_points_capped(scorer):
    question = "alpha bravo charlie delta echo foxtrot"
    article = Article(
        pmid="1",
        title="alpha bravo charlie delta echo foxtrot",
        abstract="alpha bravo charlie delta echo foxtrot",
    )
    # title 6 * 3 capped at 12, abstract 6 * 1
    assert scorer.score(article, question).score == 18


def test_prestigious_journal(scorer):
    article = Article(pmid="1", title="Plain title for testing", journal="The Lancet")
    assert scorer.score(article, "").score == 5


@pytest.mark.parametrize(
    "icite, expected",
    [
        (Bibliometrics(rcr=2.0), 12),
        (Bibliometrics(rcr=1.0), 8),
        (Bibliometrics(rcr=0.1), 1),
        (Bibliometrics(nih_percentile=90), 7),
        (Bibliometrics(nih_percentile=10), 1),
        (Bibliometrics(citations_per_year=0.5), 0),
        (Bibliometrics(citations_per_year=10), 5),
        (Bibliometrics(apt_score=0.8), 10),
        (Bibliometrics(apt_score=0.81), 15),
        (Bibliometrics(apt_score=0.4), 5),
    ],
)
def test_icite_tiers(scorer, icite, expected):
    article = Article(pmid="1", title="Plain title for testing", icite=icite)
    assert scorer.score(article, "").score == expected


@pytest.mark.parametrize("year, points", [(2024, 10), (2022, 10), (2019, 7), (2014, 3), (2013, 0)])
def test_recency(scorer, year, points):
    article = Article(pmid="1", title="Plain title for testing", year=year)
    assert scorer.score(article, "").score == points


def test_score_all_orders_by_score_year_pmid(scorer):
    articles = [
        Article(pmid="3", title="Plain title for testing", year=2010),
        Article(pmid="2", title="Plain title for testing", year=2010),
        Article(pmid="1", title="A randomized trial", year=2010),
        Article(pmid="4", title="Plain title for testing", year=2012),
    ]
    ranked = scorer.score_all(articles, "")

    assert [a.pmid for a in ranked] == ["1", "4", "2", "3"]
    assert ranked[0].priority_score == 10
    assert sorted(ranked, key=rank_key) == ranked
