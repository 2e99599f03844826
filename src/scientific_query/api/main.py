"""FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from scientific_query import __version__
from scientific_query.config import get_settings
from scientific_query.pipeline.service import (
    ArticleNotFound,
    InvalidRequest,
    ScientificQueryService,
)
from scientific_query.services.progress import ProgressBroadcaster

logger = logging.getLogger(__name__)

progress = ProgressBroadcaster()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.state.service = ScientificQueryService(sink=progress, settings=settings)
    yield
    await app.state.service.close()


app = FastAPI(
    title="Scientific Query API",
    description="Ranked, analyzed PubMed bibliographies for clinical questions",
    version=__version__,
    debug=get_settings().debug,
    lifespan=lifespan,
)


def get_service(request: Request) -> ScientificQueryService:
    return request.app.state.service


def _respond(result: dict[str, Any]) -> JSONResponse:
    return JSONResponse(result, status_code=200 if result.get("success") else 500)


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest) -> JSONResponse:
    logger.info("Rejected request to %s: %s", request.url.path, exc)
    return JSONResponse({"success": False, "message": str(exc)}, status_code=400)


@app.exception_handler(ArticleNotFound)
async def not_found_handler(request: Request, exc: ArticleNotFound) -> JSONResponse:
    return JSONResponse({"success": False, "message": str(exc)}, status_code=404)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.post("/api/scientific-query")
async def process_query(request: Request, payload: Any = Body(None)) -> JSONResponse:
    return _respond(await get_service(request).process_query(payload))


@app.post("/api/scientific-query/analyze")
async def analyze_article(request: Request, payload: Any = Body(None)) -> JSONResponse:
    return _respond(await get_service(request).analyze_article(payload))


@app.post("/api/scientific-query/analyze-batch")
async def analyze_batch(request: Request, payload: Any = Body(None)) -> JSONResponse:
    return _respond(await get_service(request).analyze_batch(payload))


@app.post("/api/scientific-query/strategy")
async def generate_strategy(request: Request, payload: Any = Body(None)) -> JSONResponse:
    return _respond(await get_service(request).generate_strategy(payload))


@app.post("/api/scientific-query/synthesis")
async def generate_synthesis(request: Request, payload: Any = Body(None)) -> JSONResponse:
    return _respond(await get_service(request).generate_synthesis(payload))


@app.post("/api/scientific-query/search")
async def search_articles(request: Request, payload: Any = Body(None)) -> JSONResponse:
    return _respond(await get_service(request).search_articles(payload))


@app.get("/api/scientific-query/article/{pmid}")
async def get_article(request: Request, pmid: str) -> JSONResponse:
    result = await get_service(request).get_article(pmid)
    if result is None:
        raise ArticleNotFound(f"Artículo con PMID {pmid} no encontrado")
    return _respond(result)


@app.websocket("/ws/progress")
async def progress_socket(websocket: WebSocket) -> None:
    """Stream batch-analysis progress events to the client."""
    await websocket.accept()
    sink = progress.subscribe()
    try:
        if progress.last is not None:
            await websocket.send_json(progress.last.to_json_dict())
        while True:
            event = await sink.queue.get()
            await websocket.send_json(event.to_json_dict())
    except WebSocketDisconnect:
        logger.info("Progress client disconnected")
    finally:
        progress.unsubscribe(sink)


@app.get("/api/icite/{pmid}")
async def icite_for_pmid(request: Request, pmid: str) -> JSONResponse:
    return _respond(await get_service(request).icite_for_pmid(pmid))


@app.post("/api/icite/batch")
async def icite_batch(request: Request, payload: Any = Body(None)) -> JSONResponse:
    return _respond(await get_service(request).icite_metrics(payload))
