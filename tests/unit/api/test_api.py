"""Unit tests for the FastAPI routes with a mocked service."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from scientific_query.api import main as api_main
from scientific_query.models.model_pipeline import ProgressEvent
from scientific_query.pipeline.service import ArticleNotFound, InvalidRequest


@pytest.fixture
def service() -> MagicMock:
    service = MagicMock()
    service.process_query = AsyncMock(return_value={"success": True, "articles": []})
    service.analyze_article = AsyncMock(return_value={"success": True, "article": {}})
    service.generate_synthesis = AsyncMock(return_value={"success": True, "synthesis": "<div/>"})
    service.search_articles = AsyncMock(return_value={"success": True, "count": 0, "results": []})
    service.get_article = AsyncMock(return_value={"success": True, "result": {"pmid": "1"}})
    service.analyze_batch = AsyncMock(return_value={"success": True, "articles": [], "stats": {}})
    service.generate_strategy = AsyncMock(
        return_value={"success": True, "raw": "r", "canonical": "c", "metrics": None}
    )
    service.icite_for_pmid = AsyncMock(return_value={"success": True, "pmid": "1", "result": {}})
    service.icite_metrics = AsyncMock(return_value={"success": True, "count": 0, "results": {}})
    return service


@pytest.fixture
def client(service) -> TestClient:
    # No context manager: the lifespan would replace the mocked service
    api_main.app.state.service = service
    return TestClient(api_main.app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_process_query(client, service):
    response = client.post("/api/scientific-query", json={"question": "Is it effective?"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    service.process_query.assert_awaited_once_with({"question": "Is it effective?"})


def test_unsuccessful_result_is_500(client, service):
    service.process_query.return_value = {"success": False, "message": "PubMed down"}

    response = client.post("/api/scientific-query", json={"question": "Is it effective?"})

    assert response.status_code == 500
    assert response.json()["message"] == "PubMed down"


def test_invalid_request_is_400(client, service):
    service.process_query.side_effect = InvalidRequest("question: too short")

    response = client.post("/api/scientific-query", json={"question": "abc"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "question: too short"}


def test_analyze_not_found_is_404(client, service):
    service.analyze_article.side_effect = ArticleNotFound("Artículo con PMID 9 no encontrado")

    response = client.post("/api/scientific-query/analyze", json={"question": "q", "pmid": "9"})

    assert response.status_code == 404


def test_synthesis_and_search(client):
    assert client.post(
        "/api/scientific-query/synthesis", json={"question": "q", "articles": [{}]}
    ).json()["synthesis"] == "<div/>"
    assert client.post("/api/scientific-query/search", json={"query": "pvr"}).status_code == 200


def test_get_article(client, service):
    assert client.get("/api/scientific-query/article/1").json()["result"] == {"pmid": "1"}


def test_analyze_batch(client, service):
    payload = {"question": "q", "articles": [{"pmid": "1"}]}

    response = client.post("/api/scientific-query/analyze-batch", json=payload)

    assert response.status_code == 200
    service.analyze_batch.assert_awaited_once_with(payload)


def test_generate_strategy(client, service):
    response = client.post("/api/scientific-query/strategy", json={"question": "Is it effective?"})

    assert response.status_code == 200
    assert response.json()["canonical"] == "c"


def test_icite_routes(client, service):
    assert client.get("/api/icite/1").json()["pmid"] == "1"
    service.icite_for_pmid.assert_awaited_once_with("1")

    assert client.post("/api/icite/batch", json={"pmids": ["1", "2"]}).status_code == 200
    service.icite_metrics.assert_awaited_once_with({"pmids": ["1", "2"]})


def test_icite_batch_empty_list_is_400(client, service):
    service.icite_metrics.side_effect = InvalidRequest("At least one PMID is required for iCite lookup")

    response = client.post("/api/icite/batch", json={"pmids": []})

    assert response.status_code == 400
    assert response.json()["success"] is False

    service.get_article.return_value = None
    assert client.get("/api/scientific-query/article/1").status_code == 404


def test_progress_socket_sends_last_event(client):
    api_main.progress.emit(ProgressEvent(processing=True, total=5, current=2))

    with client.websocket_connect("/ws/progress") as websocket:
        assert websocket.receive_json() == {"processing": True, "total": 5, "current": 2}
