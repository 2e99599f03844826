"""
Staged pipeline for one clinical question.

S0 strategy -> S1 search -> S2 title filter -> S3 abstracts -> S4 iCite
-> S5 score -> S6 analyze -> S8 response. Synthesis (S7) is a separate
entry point on the service. Every stage appends to the request's trace;
only the search stage is fatal.
"""

import asyncio
import logging

from scientific_query.config import Settings, get_settings
from scientific_query.constants import NOT_SELECTED_NOTE
from scientific_query.data_sources.base_client import DataSourceError, PubMedSearchError
from scientific_query.data_sources.icite import ICiteClient
from scientific_query.data_sources.pubmed import PubMedClient
from scientific_query.models.model_article import Article, ArticleAnalysis, ArticleResult
from scientific_query.models.model_pipeline import PipelineStats, ProcessQueryResponse
from scientific_query.models.model_strategy import Strategy
from scientific_query.services import metric_extractor, strategy_extractor
from scientific_query.services.article_analyzer import (
    ArticleAnalyzer,
    failure_card,
    invalid_card,
)
from scientific_query.services.article_normalizer import normalize_summary
from scientific_query.services.batch_executor import BatchConfig, BatchExecutor
from scientific_query.services.llm import LLMClient, LLMError, LLMOptions, is_rate_limit_error
from scientific_query.services.progress import NullProgressSink, ProgressSink
from scientific_query.services.prompts import SEARCH_STRATEGY_PROMPT
from scientific_query.services.relevance_scorer import RelevanceScorer
from scientific_query.services.title_filter import filter_by_titles
from scientific_query.pipeline.trace import PipelineTrace, Stage

logger = logging.getLogger(__name__)


class PipelineCancelled(Exception):
    """The caller's cancel signal was set; no further stages run."""

    def __init__(self, stage: Stage, trace: list | None = None):
        self.stage = stage
        self.trace = trace or []
        super().__init__(f"Query cancelled before {stage.value}")


class PipelineOrchestrator:
    """Runs the distillation stages for a single request.

    Collaborators are injected so tests can replace any of them; an instance
    holds no per-request state and can serve concurrent requests.
    """

    def __init__(
        self,
        pubmed: PubMedClient,
        icite: ICiteClient,
        llm: LLMClient,
        *,
        scorer: RelevanceScorer | None = None,
        executor: BatchExecutor | None = None,
        analyzer: ArticleAnalyzer | None = None,
        batch_config: BatchConfig | None = None,
        sink: ProgressSink | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.pubmed = pubmed
        self.icite = icite
        self.llm = llm
        self.scorer = scorer or RelevanceScorer()
        self.executor = executor or BatchExecutor(llm.policy)
        self.analyzer = analyzer or ArticleAnalyzer(llm, self.settings.http_timeout_long_ms)
        self.batch_config = batch_config or BatchConfig.for_analysis(self.settings)
        self.sink = sink or NullProgressSink()

    def _short_options(self) -> LLMOptions:
        return LLMOptions(timeout_ms=self.settings.http_timeout_short_ms)

    # -- Entry point ------------------------------------------------------------

    async def run(
        self,
        question: str,
        strategy: str | None = None,
        use_ai: bool = True,
        cancel: asyncio.Event | None = None,
    ) -> ProcessQueryResponse:
        """Run every stage for ``question`` and assemble the response.

        Raises:
            PipelineCancelled: If ``cancel`` is set between stages.
        """
        trace = PipelineTrace()
        started = trace.mark()
        alerts: list[str] = []
        stats = PipelineStats()

        def respond(**fields) -> ProcessQueryResponse:
            stats.processing_ms = int((trace.mark() - started) * 1000)
            trace.info(Stage.DONE, "Response assembled", since=started)
            return ProcessQueryResponse(
                question=question,
                process_alert=" ".join(alerts) or None,
                stats=stats,
                trace=trace.entries,
                **fields,
            )

        # S0
        built = await self._strategy(question, strategy, use_ai, trace, alerts)
        base = {
            "canonical_strategy": built.canonical,
            "raw_strategy": built.raw,
            "metrics": built.metrics,
        }

        # S1
        self._check_cancel(cancel, Stage.SEARCH, trace)
        t0 = trace.mark()
        try:
            articles, found = await self._search(built.canonical)
        except PubMedSearchError as e:
            trace.error(Stage.SEARCH, f"PubMed search failed: {e}", since=t0)
            return respond(success=False, message=f"Error en la búsqueda de PubMed: {e}", **base)
        stats.initial = found
        if not articles:
            message = "0 results" if found == 0 else f"{found} results, none with metadata"
            trace.info(Stage.SEARCH, message, since=t0)
            return respond(success=True, articles=[], **base)
        trace.info(Stage.SEARCH, f"{found} results, {len(articles)} with metadata", since=t0)

        # S2
        self._check_cancel(cancel, Stage.TITLE_FILTER, trace)
        articles = await self._title_filter(articles, question, use_ai, trace)
        stats.after_filter = len(articles)

        # S3
        self._check_cancel(cancel, Stage.ABSTRACTS, trace)
        t0 = trace.mark()
        articles = await self.pubmed.fetch_abstracts(articles)
        stats.with_abstracts = sum(1 for a in articles if a.abstract)
        trace.info(
            Stage.ABSTRACTS,
            f"Abstracts for {stats.with_abstracts} of {len(articles)} articles",
            since=t0,
        )

        # S4
        self._check_cancel(cancel, Stage.ENRICH, trace)
        articles = await self._enrich(articles, trace, alerts)

        # S5
        t0 = trace.mark()
        ranked = self.scorer.score_all(articles, question)
        trace.info(
            Stage.SCORE,
            f"Scored {len(ranked)} articles; top score {ranked[0].priority_score}",
            since=t0,
        )

        # S6
        self._check_cancel(cancel, Stage.ANALYZE, trace)
        ranked = await self._analyze(ranked, question, use_ai, trace, cancel)
        stats.analyzed = sum(1 for a in ranked if a.analyzed)
        stats.failed = sum(1 for a in ranked if a.error)
        stats.invalid = sum(1 for a in ranked if a.invalid)

        return respond(success=True, articles=ranked, **base)

    @staticmethod
    def _check_cancel(cancel: asyncio.Event | None, stage: Stage, trace: PipelineTrace) -> None:
        if cancel is not None and cancel.is_set():
            trace.error(stage, "Cancelled by caller")
            raise PipelineCancelled(stage, trace.entries)

    # -- S0 ---------------------------------------------------------------------

    async def _strategy(
        self,
        question: str,
        supplied: str | None,
        use_ai: bool,
        trace: PipelineTrace,
        alerts: list[str],
    ) -> Strategy:
        t0 = trace.mark()

        if supplied:
            canonical = strategy_extractor.extract(supplied) or supplied
            trace.info(Stage.STRATEGY, "Using caller-supplied strategy", since=t0)
            return Strategy(raw=supplied, canonical=canonical, metrics=None)

        if not use_ai:
            trace.info(Stage.STRATEGY, "AI disabled; searching with the question", since=t0)
            return Strategy(raw=question, canonical=question, metrics=None)

        try:
            built = await self.generate_strategy(question)
        except LLMError as e:
            alerts.append(
                "No se pudo generar una estrategia de búsqueda con IA; se usó la pregunta original."
            )
            trace.error(Stage.STRATEGY, f"Strategy generation failed: {e}", since=t0)
            return Strategy(raw=question, canonical=question, metrics=None)

        if not built.extracted:
            alerts.append(
                "No se pudo extraer una estrategia válida de la respuesta de IA; se usó la pregunta original."
            )
            trace.error(Stage.STRATEGY, "No search expression found in LLM output", since=t0)
            return built

        trace.info(Stage.STRATEGY, f"Strategy extracted ({len(built.canonical)} chars)", since=t0)
        return built

    async def generate_strategy(self, question: str) -> Strategy:
        """Ask the LLM for a search strategy and pull out its expression and metrics.

        ``canonical`` falls back to the question, with ``extracted=False``, when
        the response holds no usable expression.

        Raises:
            LLMError: If the completion fails.
        """
        raw = await self.llm.complete(
            SEARCH_STRATEGY_PROMPT.format(question=question), self._short_options()
        )
        metrics = metric_extractor.extract(raw)
        canonical = strategy_extractor.extract(raw)
        if canonical is None:
            return Strategy(raw=raw, canonical=question, metrics=metrics, extracted=False)
        return Strategy(raw=raw, canonical=canonical, metrics=metrics)

    # -- S1 ---------------------------------------------------------------------

    async def _search(self, term: str) -> tuple[list[Article], int]:
        pmids = await self.pubmed.search(term, self.settings.pubmed_max_results)
        if not pmids:
            return [], 0
        try:
            summaries = await self.pubmed.summaries(pmids)
        except DataSourceError as e:
            raise PubMedSearchError(f"Summary lookup failed: {e}", status_code=e.status_code) from e
        articles = [normalize_summary(pmid, summaries[pmid]) for pmid in pmids if pmid in summaries]
        return articles, len(pmids)

    # -- S2 ---------------------------------------------------------------------

    async def _title_filter(
        self, articles: list[Article], question: str, use_ai: bool, trace: PipelineTrace
    ) -> list[Article]:
        t0 = trace.mark()
        threshold = self.settings.title_filter_threshold
        limit = self.settings.title_filter_limit

        if len(articles) <= threshold:
            trace.info(Stage.TITLE_FILTER, f"Skipped: {len(articles)} articles", since=t0)
            return articles

        if not use_ai:
            trace.info(Stage.TITLE_FILTER, f"AI disabled; kept first {limit}", since=t0)
            return articles[:limit]

        try:
            outcome = await filter_by_titles(
                self.llm, articles, question, limit, self._short_options()
            )
        except LLMError as e:
            logger.warning("Title filter failed; keeping all %d articles: %s", len(articles), e)
            trace.error(Stage.TITLE_FILTER, f"Title filter failed, kept all: {e}", since=t0)
            return articles

        if outcome.used_fallback:
            trace.info(
                Stage.TITLE_FILTER,
                f"No PMIDs matched ({outcome.selected} numeric lines); "
                f"kept first {len(outcome.articles)}",
                since=t0,
            )
        else:
            trace.info(
                Stage.TITLE_FILTER,
                f"Kept {len(outcome.articles)} of {len(articles)} articles "
                f"({outcome.selected} PMIDs selected)",
                since=t0,
            )
        return outcome.articles

    # -- S4 ---------------------------------------------------------------------

    async def _enrich(
        self, articles: list[Article], trace: PipelineTrace, alerts: list[str]
    ) -> list[Article]:
        t0 = trace.mark()
        pmids = [a.pmid for a in articles if a.pmid]
        if not pmids:
            trace.info(Stage.ENRICH, "No PMIDs to enrich", since=t0)
            return articles

        try:
            metrics = await self.icite.metrics(pmids)
        except DataSourceError as e:
            logger.warning("iCite unavailable: %s", e)
            alerts.append(
                "No se pudieron obtener métricas de iCite; la priorización tiene menor precisión."
            )
            trace.error(Stage.ENRICH, f"iCite unavailable: {e}", since=t0)
            return articles

        trace.info(Stage.ENRICH, f"iCite metrics for {len(metrics)} of {len(pmids)}", since=t0)
        return [
            a.model_copy(update={"icite": metrics[a.pmid]}) if a.pmid in metrics else a
            for a in articles
        ]

    # -- S6 ---------------------------------------------------------------------

    async def _analyze(
        self,
        ranked: list[ArticleResult],
        question: str,
        use_ai: bool,
        trace: PipelineTrace,
        cancel: asyncio.Event | None,
    ) -> list[ArticleResult]:
        t0 = trace.mark()
        top_n = self.settings.analysis_top_n
        selected = [i for i, a in enumerate(ranked) if a.analyzable][:top_n] if use_ai else []
        chosen = set(selected)

        output = list(ranked)
        for i, article in enumerate(ranked):
            if not article.analyzable:
                output[i] = article.with_analysis(
                    ArticleAnalysis(html=invalid_card(), invalid=True)
                )
            elif i not in chosen:
                output[i] = article.with_analysis(ArticleAnalysis(html=NOT_SELECTED_NOTE))

        if not selected:
            trace.info(Stage.ANALYZE, "No articles selected for analysis", since=t0)
            return output

        analyses = await self._run_analyses(ranked, selected, question, trace, cancel)
        for position, analysis in analyses.items():
            output[position] = ranked[position].with_analysis(analysis)

        analyzed = sum(1 for i in selected if output[i].analyzed)
        failed = len(selected) - analyzed
        invalid = sum(1 for a in output if a.invalid)
        logger.info(
            "Batch summary: %d analyzed, %d failed, %d invalid, %d not selected",
            analyzed,
            failed,
            invalid,
            len(output) - len(selected) - invalid,
        )
        message = f"Analyzed {analyzed} of {len(selected)} selected articles"
        if failed:
            trace.error(Stage.ANALYZE, f"{message}; {failed} failed", since=t0)
        else:
            trace.info(Stage.ANALYZE, message, since=t0)
        return output

    async def _run_analyses(
        self,
        articles: list[ArticleResult],
        selected: list[int],
        question: str,
        trace: PipelineTrace,
        cancel: asyncio.Event | None,
    ) -> dict[int, ArticleAnalysis]:
        """Analyze ``articles[i]`` for every ``i`` in ``selected`` through the executor."""

        async def worker(article: ArticleResult, _index: int) -> str:
            return await self.analyzer.analyze(article, question)

        batch = await self.executor.run(
            [articles[i] for i in selected],
            worker,
            self.batch_config,
            sink=self.sink,
            cancel=cancel,
        )

        analyses: dict[int, ArticleAnalysis] = {}
        for position, result in zip(selected, batch):
            article = articles[position]
            if result.skipped:
                trace.error(Stage.ANALYZE, "Cancelled by caller during analysis")
                raise PipelineCancelled(Stage.ANALYZE, trace.entries)
            if result.ok:
                analysis = ArticleAnalysis(html=result.value, analyzed=True, retried=result.retried)
            elif is_rate_limit_error(result.error):
                analysis = await self._simple_fallback(article, question, result.error)
            else:
                analysis = ArticleAnalysis(
                    html=failure_card(result.error), error=True, retried=result.retried
                )
            analyses[position] = analysis
        return analyses

    async def analyze_batch(
        self,
        articles: list[Article],
        question: str,
        cancel: asyncio.Event | None = None,
    ) -> list[ArticleResult]:
        """Analyze every analyzable article in input order, with progress events.

        Unlike the S6 stage there is no top-N cut: the caller already chose the
        articles. Invalid articles get the invalid card and are not sent to the LLM.

        Raises:
            PipelineCancelled: If ``cancel`` is set before every article was dispatched.
        """
        trace = PipelineTrace()
        t0 = trace.mark()
        output = [ArticleResult.from_article(a) for a in articles]
        selected = [i for i, a in enumerate(articles) if a.analyzable]
        for i, result in enumerate(output):
            if not result.analyzable:
                output[i] = result.with_analysis(ArticleAnalysis(html=invalid_card(), invalid=True))

        if selected:
            analyses = await self._run_analyses(output, selected, question, trace, cancel)
            for position, analysis in analyses.items():
                output[position] = output[position].with_analysis(analysis)

        analyzed = sum(1 for a in output if a.analyzed)
        trace.info(
            Stage.ANALYZE,
            f"Batch analyzed {analyzed} of {len(articles)} articles "
            f"({len(articles) - len(selected)} invalid)",
            since=t0,
        )
        return output

    async def _simple_fallback(
        self, article: Article, question: str, error: Exception
    ) -> ArticleAnalysis:
        """One more attempt with the short prompt after a persistent rate limit."""
        logger.warning("PMID %s still rate limited; trying the simple prompt", article.pmid)
        try:
            html = await self.analyzer.analyze(article, question, simple=True)
        except LLMError as e:
            return ArticleAnalysis(html=failure_card(e), error=True, retried=True)
        return ArticleAnalysis(html=html, analyzed=True, retried=True)

    async def analyze_one(self, article: Article, question: str) -> ArticleResult:
        """Analyze a single article outside the batch flow."""
        result = ArticleResult.from_article(article)
        if not article.analyzable:
            return result.with_analysis(ArticleAnalysis(html=invalid_card(), invalid=True))
        try:
            html = await self.analyzer.analyze(article, question)
        except LLMError as e:
            if is_rate_limit_error(e):
                return result.with_analysis(await self._simple_fallback(article, question, e))
            return result.with_analysis(ArticleAnalysis(html=failure_card(e), error=True))
        return result.with_analysis(ArticleAnalysis(html=html, analyzed=True))
