"""
Service facade over the pipeline.

Exposes the request-level entry points used by the API and the CLI:
process_query, generate_strategy, analyze_article, analyze_batch,
generate_synthesis, search_articles, get_article and the iCite lookups.
Each takes a JSON-like payload and returns a JSON-ready dict with
camelCase keys.
"""

import asyncio
import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from scientific_query.config import Settings, get_settings
from scientific_query.data_sources.base_client import DataSourceError
from scientific_query.data_sources.icite import ICiteClient
from scientific_query.data_sources.pubmed import PubMedClient
from scientific_query.models.model_requests import (
    AnalyzeArticleRequest,
    AnalyzeBatchRequest,
    ICiteBatchRequest,
    ProcessQueryRequest,
    SearchRequest,
    StrategyRequest,
    SynthesisRequest,
)
from scientific_query.pipeline.orchestrator import PipelineCancelled, PipelineOrchestrator
from scientific_query.services.article_normalizer import normalize_article
from scientific_query.services.llm import LLMClient, LLMError
from scientific_query.services.progress import ProgressSink
from scientific_query.services.synthesis import SynthesisGenerator

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT", bound=BaseModel)


class InvalidRequest(ValueError):
    """The request body failed validation."""


class ArticleNotFound(LookupError):
    """PubMed or iCite has no record for the requested PMID."""


def parse_request(model: type[RequestT], payload: Any) -> RequestT:
    """Validate ``payload`` into ``model``, raising InvalidRequest with one readable message."""
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"]) or "body"
            problems.append(f"{location}: {err['msg']}")
        raise InvalidRequest("; ".join(problems)) from e


class ScientificQueryService:
    """Owns the upstream clients and builds a pipeline per call."""

    def __init__(
        self,
        pubmed: PubMedClient | None = None,
        icite: ICiteClient | None = None,
        llm: LLMClient | None = None,
        sink: ProgressSink | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.pubmed = pubmed or PubMedClient()
        self.icite = icite or ICiteClient()
        self.llm = llm or LLMClient()
        self.orchestrator = PipelineOrchestrator(
            self.pubmed, self.icite, self.llm, sink=sink, settings=self.settings
        )
        self.synthesis = SynthesisGenerator(self.llm)

    async def close(self) -> None:
        await self.pubmed.close()
        await self.icite.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # -- processQuery -------------------------------------------------------------

    async def process_query(
        self, payload: dict[str, Any], cancel: asyncio.Event | None = None
    ) -> dict[str, Any]:
        """Run the full pipeline for a clinical question.

        Raises:
            InvalidRequest: If the question is missing or shorter than 5 characters.
        """
        request = parse_request(ProcessQueryRequest, payload)
        logger.info("processQuery: %.100s", request.question)
        try:
            response = await self.orchestrator.run(
                request.question, request.strategy, request.use_ai, cancel=cancel
            )
        except PipelineCancelled as e:
            logger.warning("processQuery cancelled at %s", e.stage.value)
            return {
                "success": False,
                "question": request.question,
                "message": str(e),
                "trace": [entry.to_json_dict() for entry in e.trace],
            }
        return response.to_json_dict()

    # -- generateStrategy ---------------------------------------------------------

    async def generate_strategy(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Search strategy for a question without running the search.

        Raises:
            InvalidRequest: If the question is missing or shorter than 5 characters.
        """
        request = parse_request(StrategyRequest, payload)
        try:
            strategy = await self.orchestrator.generate_strategy(request.question)
        except LLMError as e:
            logger.error("Strategy generation failed: %s", e)
            return {"success": False, "message": f"Error al generar la estrategia: {e}"}
        return {"success": True, "question": request.question, **strategy.to_json_dict()}

    # -- analyzeArticle -----------------------------------------------------------

    async def analyze_article(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Analyze one article given inline or by PMID.

        Raises:
            InvalidRequest: If the question or both pmid and article are missing.
            ArticleNotFound: If PubMed has no record for the PMID.
        """
        request = parse_request(AnalyzeArticleRequest, payload)

        if request.article:
            article = normalize_article(request.article)
        else:
            try:
                article = await self.pubmed.get_by_pmid(request.pmid)
            except DataSourceError as e:
                logger.error("Lookup for PMID %s failed: %s", request.pmid, e)
                return {"success": False, "message": f"Error al obtener el artículo: {e}"}
            if article is None:
                raise ArticleNotFound(f"Artículo con PMID {request.pmid} no encontrado")

        result = await self.orchestrator.analyze_one(article, request.question)
        return {"success": True, "article": result.to_json_dict()}

    async def analyze_batch(
        self, payload: dict[str, Any], cancel: asyncio.Event | None = None
    ) -> dict[str, Any]:
        """Analyze a caller-chosen list of articles, emitting progress per article.

        Raises:
            InvalidRequest: If the question or the articles are missing.
        """
        request = parse_request(AnalyzeBatchRequest, payload)
        articles = [normalize_article(raw) for raw in request.articles]
        logger.info("analyzeBatch: %d articles", len(articles))
        try:
            results = await self.orchestrator.analyze_batch(articles, request.question, cancel)
        except PipelineCancelled as e:
            logger.warning("analyzeBatch cancelled")
            return {
                "success": False,
                "question": request.question,
                "message": str(e),
                "trace": [entry.to_json_dict() for entry in e.trace],
            }
        return {
            "success": True,
            "question": request.question,
            "articles": [r.to_json_dict() for r in results],
            "stats": {
                "total": len(results),
                "analyzed": sum(1 for r in results if r.analyzed),
                "failed": sum(1 for r in results if r.error),
                "invalid": sum(1 for r in results if r.invalid),
            },
        }

    # -- generateSynthesis --------------------------------------------------------

    async def generate_synthesis(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Synthesize the evidence across analyzed articles.

        Raises:
            InvalidRequest: If the question or the articles are missing.
        """
        request = parse_request(SynthesisRequest, payload)
        try:
            synthesis = await self.synthesis.generate(request.question, request.articles)
        except LLMError as e:
            logger.error("Synthesis failed: %s", e)
            return {"success": False, "message": f"Error al generar la síntesis: {e}"}
        return {"success": True, "synthesis": synthesis}

    # -- Lookups ------------------------------------------------------------------

    async def search_articles(self, payload: dict[str, Any]) -> dict[str, Any]:
        """PubMed search without any LLM stage.

        Raises:
            InvalidRequest: If neither query nor searchStrategy is given.
        """
        request = parse_request(SearchRequest, payload)
        try:
            articles = await self.pubmed.search_articles(request.term, request.max_results)
        except DataSourceError as e:
            logger.error("searchArticles failed: %s", e)
            return {"success": False, "message": f"Error en la búsqueda de PubMed: {e}"}
        return {
            "success": True,
            "query": request.term,
            "count": len(articles),
            "results": [a.to_json_dict() for a in articles],
        }

    async def get_article(self, pmid: str) -> dict[str, Any] | None:
        """Article details by PMID; None when PubMed has no record."""
        if not pmid or not pmid.strip().isdigit():
            raise InvalidRequest("pmid must be a decimal identifier")
        try:
            article = await self.pubmed.get_by_pmid(pmid.strip())
        except DataSourceError as e:
            logger.error("Lookup for PMID %s failed: %s", pmid, e)
            return {"success": False, "message": f"Error al obtener el artículo: {e}"}
        if article is None:
            return None
        return {"success": True, "result": article.to_json_dict()}

    # -- iCite --------------------------------------------------------------------

    async def icite_metrics(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Bibliometrics for a list of PMIDs.

        Raises:
            InvalidRequest: If the PMID list is empty or holds non-decimal values.
        """
        request = parse_request(ICiteBatchRequest, payload)
        try:
            metrics = await self.icite.metrics(request.pmids)
        except ValueError as e:
            raise InvalidRequest(str(e)) from e
        except DataSourceError as e:
            logger.error("iCite lookup failed: %s", e)
            return {"success": False, "message": f"Error al obtener métricas de iCite: {e}"}
        return {
            "success": True,
            "count": len(metrics),
            "results": {pmid: m.to_json_dict() for pmid, m in metrics.items()},
        }

    async def icite_for_pmid(self, pmid: str) -> dict[str, Any]:
        """Bibliometrics for one PMID.

        Raises:
            InvalidRequest: If ``pmid`` is not a decimal identifier.
            ArticleNotFound: If iCite has no record for it.
        """
        result = await self.icite_metrics({"pmids": [pmid]})
        if not result["success"]:
            return result
        metrics = result["results"].get(pmid.strip())
        if metrics is None:
            raise ArticleNotFound(f"Sin métricas de iCite para el PMID {pmid}")
        return {"success": True, "pmid": pmid.strip(), "result": metrics}
