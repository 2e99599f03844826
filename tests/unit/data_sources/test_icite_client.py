"""Unit tests for ICiteClient (no network calls)."""

from unittest.mock import AsyncMock, patch

import pytest

from scientific_query.data_sources.base_client import DataSourceError, ICiteUnavailable
from scientific_query.data_sources.icite import ICiteClient


@pytest.fixture
def client() -> ICiteClient:
    return ICiteClient()


async def test_metrics_maps_records(client):
    mock_response = {
        "data": [
            {
                "pmid": 34567890,
                "relative_citation_ratio": 2.4,
                "nih_percentile": 92.1,
                "apt": 0.75,
                "citation_count": 40,
                "citations_per_year": 6.5,
                "cited_by_clin": [111, 222],
            },
            {"pmid": None},
        ]
    }
    with patch.object(client, "_rest_get", new=AsyncMock(return_value=mock_response)) as mock_get:
        result = await client.metrics(["34567890", "11111111"])

    assert list(result) == ["34567890"]
    metrics = result["34567890"]
    assert metrics.rcr == 2.4
    assert metrics.apt_score == 0.75
    assert metrics.clinical_citations == 2
    assert mock_get.call_args.args[1] == {"pmids": "34567890,11111111"}


async def test_metrics_chunks_large_requests(client):
    pmids = [str(i) for i in range(1, 1502)]
    with patch.object(client, "_rest_get", new=AsyncMock(return_value={"data": []})) as mock_get:
        await client.metrics(pmids)

    assert mock_get.call_count == 2


async def test_metrics_empty_input_raises(client):
    with pytest.raises(ValueError):
        await client.metrics([])


async def test_metrics_failure_raises_icite_unavailable(client):
    with patch.object(
        client,
        "_rest_get",
        new=AsyncMock(side_effect=DataSourceError("icite", "HTTP 503", status_code=503)),
    ):
        with pytest.raises(ICiteUnavailable) as exc_info:
            await client.metrics(["1"])

    assert exc_info.value.status_code == 503
