"""Pytest configuration and fixtures."""

import pytest

from scientific_query.config import Settings
from scientific_query.models.model_article import Article, Author
from scientific_query.models.model_icite import Bibliometrics

LONG_ABSTRACT = (
    "Background: proliferative vitreoretinopathy remains the main cause of "
    "failure after retinal detachment surgery. Methods: randomized trial of "
    "intravitreal methotrexate. Results: fewer redetachments at six months."
)


class FakeSleep:
    """Records requested sleeps instead of waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total_ms(self) -> float:
        return sum(self.calls) * 1000


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with no pacing so pipeline tests run instantly."""
    return Settings(
        batch_inter_delay_ms=0,
        batch_jitter_ms=0,
        batch_cooldown_ms=0,
        batch_rate_limit_backoff_ms=0,
        pubmed_max_results=30,
    )


def make_article(pmid: str, title: str | None = None, **overrides) -> Article:
    """Build an analyzable article; override any field."""
    fields = {
        "pmid": pmid,
        "title": title or f"Randomized trial of methotrexate in retinal detachment {pmid}",
        "authors": [Author(name="Smith J"), Author(name="Doe A")],
        "publication_date": "2022 Mar",
        "journal": "Retina",
        "abstract": LONG_ABSTRACT,
    }
    fields.update(overrides)
    return Article(**fields)


@pytest.fixture
def sample_article() -> Article:
    """Sample article data for testing."""
    return make_article(
        "34567890",
        title="Methotrexate for proliferative vitreoretinopathy: a meta-analysis",
        doi="10.1000/pvr.2022.1",
        mesh_terms=["Methotrexate", "Vitreoretinopathy, Proliferative"],
        icite=Bibliometrics(rcr=2.4, nih_percentile=92, apt_score=0.75, citations_per_year=6),
    )


@pytest.fixture
def sample_summary() -> dict:
    """One record of an esummary ``result`` map."""
    return {
        "uid": "34567890",
        "title": "Methotrexate for proliferative <i>vitreoretinopathy</i>.",
        "authors": [
            {"name": "Smith J", "authtype": "Author"},
            {"name": "Doe A", "authtype": "Author"},
        ],
        "pubdate": "2022 Mar 15",
        "fulljournalname": "Retina (Philadelphia, Pa.)",
        "source": "Retina",
        "articleids": [
            {"idtype": "pubmed", "value": "34567890"},
            {"idtype": "doi", "value": "10.1000/pvr.2022.1"},
        ],
    }


@pytest.fixture
def article_factory():
    """Factory for analyzable articles: ``article_factory(pmid, title=None, **fields)``."""
    return make_article
