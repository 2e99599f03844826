"""Unit tests for PubMedClient (no network calls)."""

from unittest.mock import AsyncMock, patch

import pytest

from scientific_query.data_sources.base_client import DataSourceError, PubMedSearchError
from scientific_query.data_sources.pubmed import PubMedClient
from scientific_query.models.model_article import Article

EFETCH_XML = """<?xml version="1.0"?>
<PubmedArticleSet>
  <PubmedArticle>
    <MedlineCitation>
      <Article>
        <Abstract>
          <AbstractText Label="BACKGROUND">Methotrexate <i>reduces</i>
            proliferative   vitreoretinopathy.</AbstractText>
          <AbstractText Label="METHODS">Second section is ignored.</AbstractText>
        </Abstract>
      </Article>
      <MeshHeadingList>
        <MeshHeading><DescriptorName>Methotrexate</DescriptorName></MeshHeading>
        <MeshHeading><DescriptorName>Retinal Detachment</DescriptorName></MeshHeading>
        <MeshHeading><DescriptorName>Methotrexate</DescriptorName></MeshHeading>
      </MeshHeadingList>
    </MedlineCitation>
  </PubmedArticle>
</PubmedArticleSet>"""


@pytest.fixture
def client() -> PubMedClient:
    return PubMedClient(api_key="")


def test_default_config(client):
    assert client.base_url == "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
    assert client.max_results == 30


def test_params_include_api_key_only_when_set():
    assert "api_key" not in PubMedClient(api_key="")._params(term="x")
    params = PubMedClient(api_key="secret")._params(term="x")
    assert params == {"db": "pubmed", "term": "x", "api_key": "secret"}


# ── search ────────────────────────────────────────────────────────────────────


async def test_search_returns_pmids_in_order(client):
    mock_response = {"esearchresult": {"count": "2", "idlist": ["12345678", "87654321"]}}

    with patch.object(client, "_rest_get", new=AsyncMock(return_value=mock_response)) as mock_get:
        result = await client.search("metformin diabetes", max_results=10)

    assert result == ["12345678", "87654321"]
    params = mock_get.call_args.args[1]
    assert params["sort"] == "relevance"
    assert params["retmax"] == 10
    assert params["term"] == "metformin diabetes"


async def test_search_failure_raises_pubmed_search_error(client):
    with patch.object(
        client,
        "_rest_get",
        new=AsyncMock(side_effect=DataSourceError("pubmed", "HTTP 500", status_code=500)),
    ):
        with pytest.raises(PubMedSearchError) as exc_info:
            await client.search("anything")

    assert exc_info.value.status_code == 500


async def test_search_malformed_response_raises(client):
    with patch.object(client, "_rest_get", new=AsyncMock(return_value={"error": "bad"})):
        with pytest.raises(PubMedSearchError, match="esearchresult"):
            await client.search("anything")


# ── summaries ─────────────────────────────────────────────────────────────────


async def test_summaries_skips_missing_and_error_records(client, sample_summary):
    mock_response = {
        "result": {
            "uids": ["34567890", "2", "3"],
            "34567890": sample_summary,
            "2": {"uid": "2", "error": "cannot get document summary"},
        }
    }
    with patch.object(client, "_rest_get", new=AsyncMock(return_value=mock_response)):
        result = await client.summaries(["34567890", "2", "3"])

    assert list(result) == ["34567890"]


async def test_summaries_empty_input_makes_no_call(client):
    with patch.object(client, "_rest_get", new=AsyncMock()) as mock_get:
        assert await client.summaries([]) == {}
    mock_get.assert_not_called()


# ── efetch ────────────────────────────────────────────────────────────────────


def test_parse_abstract_xml_takes_first_section_and_unique_mesh(client):
    abstract, mesh = client._parse_abstract_xml(EFETCH_XML)

    assert abstract == "Methotrexate reduces proliferative vitreoretinopathy."
    assert mesh == ["Methotrexate", "Retinal Detachment"]


def test_parse_abstract_xml_without_abstract(client):
    abstract, mesh = client._parse_abstract_xml("<PubmedArticleSet/>")
    assert abstract == ""
    assert mesh == []


async def test_fetch_abstract_returns_none_on_bad_xml(client):
    with patch.object(client, "_rest_get_xml", new=AsyncMock(return_value="<not xml")):
        assert await client.fetch_abstract("1") is None


async def test_fetch_abstracts_batches_and_keeps_failures(client):
    articles = [Article(pmid=str(i), title=f"Article number {i}") for i in range(12)]

    async def fake_fetch(pmid):
        if pmid == "3":
            return None
        return (f"Abstract {pmid}", ["Humans"])

    with patch.object(client, "fetch_abstract", new=AsyncMock(side_effect=fake_fetch)):
        with patch(
            "scientific_query.data_sources.pubmed.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            result = await client.fetch_abstracts(articles)

    assert [a.pmid for a in result] == [str(i) for i in range(12)]
    assert result[0].abstract == "Abstract 0"
    assert result[0].mesh_terms == ["Humans"]
    assert result[3].abstract == ""
    # Two batches of at most ten, one pause between them
    mock_sleep.assert_called_once_with(1.0)


# ── Convenience ───────────────────────────────────────────────────────────────


async def test_get_by_pmid_not_found(client):
    with patch.object(client, "summaries", new=AsyncMock(return_value={})):
        assert await client.get_by_pmid("99999999") is None


async def test_get_by_pmid_with_abstract(client, sample_summary):
    with patch.object(
        client, "summaries", new=AsyncMock(return_value={"34567890": sample_summary})
    ), patch.object(
        client, "fetch_abstract", new=AsyncMock(return_value=("An abstract.", ["Methotrexate"]))
    ):
        article = await client.get_by_pmid("34567890")

    assert article.pmid == "34567890"
    assert article.doi == "10.1000/pvr.2022.1"
    assert article.title == "Methotrexate for proliferative vitreoretinopathy."
    assert article.abstract == "An abstract."
    assert article.year == 2022


async def test_search_articles_wraps_summary_failure(client):
    with patch.object(client, "search", new=AsyncMock(return_value=["1"])), patch.object(
        client, "summaries", new=AsyncMock(side_effect=DataSourceError("pubmed", "HTTP 502"))
    ):
        with pytest.raises(PubMedSearchError, match="Summary lookup failed"):
            await client.search_articles("term")
