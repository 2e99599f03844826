"""
PubMed E-utilities client.

Operations:
  1. search          — PMIDs matching a Boolean expression (esearch)
  2. summaries       — Batched metadata for PMIDs (esummary)
  3. fetch_abstract  — Abstract text and MeSH terms for one PMID (efetch)
  4. fetch_abstracts — Enrich a list of articles, 10 concurrent fetches per batch
  5. get_by_pmid     — Single-article lookup
  6. search_articles — search + summaries + normalization
"""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import Any

from scientific_query.config import get_settings
from scientific_query.constants import (
    ABSTRACT_BATCH_PAUSE_SECONDS,
    ABSTRACT_BATCH_SIZE,
    PUBMED_FETCH_PATH,
    PUBMED_SEARCH_PATH,
    PUBMED_SUMMARY_PATH,
)
from scientific_query.data_sources.base_client import (
    BaseClient,
    DataSourceError,
    PubMedSearchError,
    RequestContext,
)
from scientific_query.models.model_article import Article
from scientific_query.services.article_normalizer import normalize_summary

logger = logging.getLogger(__name__)


class PubMedClient(BaseClient):
    """Client for the NCBI E-utilities endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        max_results: int | None = None,
        **kwargs: Any,
    ) -> None:
        settings = get_settings()
        kwargs.setdefault("timeout", settings.http_timeout_short_ms / 1000)
        kwargs.setdefault("requests_per_second", settings.pubmed_requests_per_second)
        super().__init__(**kwargs)
        self.base_url = (base_url or settings.pubmed_base_url).rstrip("/")
        self.api_key = settings.pubmed_api_key if api_key is None else api_key
        self.max_results = max_results or settings.pubmed_max_results

    @property
    def _source_name(self) -> str:
        return "pubmed"

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def _params(self, **params: Any) -> dict[str, Any]:
        params = {"db": "pubmed", **params}
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    # -- esearch ----------------------------------------------------------------

    async def search(self, query: str, max_results: int | None = None) -> list[str]:
        """Search PubMed and return PMIDs ordered by relevance.

        Raises:
            PubMedSearchError: If the search call fails for any reason.
        """
        params = self._params(
            term=query,
            retmax=max_results or self.max_results,
            retmode="json",
            sort="relevance",
        )
        ctx = RequestContext(source=self._source_name, method="search")
        try:
            data = await self._rest_get(self._url(PUBMED_SEARCH_PATH), params, context=ctx)
        except DataSourceError as e:
            raise PubMedSearchError(f"Search failed: {e}", status_code=e.status_code) from e

        result = data.get("esearchresult")
        if not isinstance(result, dict):
            raise PubMedSearchError("Malformed esearch response: missing esearchresult")

        pmids = [str(pmid) for pmid in result.get("idlist", [])]
        logger.info(
            "PubMed search returned %d of %s hits", len(pmids), result.get("count", "?")
        )
        return pmids

    # -- esummary ---------------------------------------------------------------

    async def summaries(self, pmids: list[str]) -> dict[str, dict[str, Any]]:
        """Fetch summary metadata for PMIDs in a single call.

        PMIDs without a summary record are absent from the returned map.
        """
        if not pmids:
            return {}

        params = self._params(id=",".join(pmids), retmode="json")
        ctx = RequestContext(source=self._source_name, method="summaries")
        data = await self._rest_get(self._url(PUBMED_SUMMARY_PATH), params, context=ctx)

        result = data.get("result") or {}
        found = {
            pmid: result[pmid]
            for pmid in pmids
            if isinstance(result.get(pmid), dict) and "error" not in result[pmid]
        }
        if len(found) < len(pmids):
            logger.warning("No summary for %d of %d PMIDs", len(pmids) - len(found), len(pmids))
        return found

    # -- efetch -----------------------------------------------------------------

    async def fetch_abstract(self, pmid: str) -> tuple[str, list[str]] | None:
        """Fetch the abstract and MeSH descriptors for one PMID.

        Returns None when the fetch or the XML parse fails; the failure is
        logged and never raised.
        """
        params = self._params(id=pmid, retmode="xml")
        ctx = RequestContext(source=self._source_name, method="fetch_abstract")
        try:
            xml_text = await self._rest_get_xml(
                self._url(PUBMED_FETCH_PATH), params, context=ctx
            )
            return self._parse_abstract_xml(xml_text)
        except Exception as e:
            logger.warning("Abstract fetch failed for PMID %s: %s", pmid, e)
            return None

    async def fetch_abstracts(self, articles: list[Article]) -> list[Article]:
        """Return copies of ``articles`` enriched with abstract and MeSH terms.

        Articles are fetched in batches of 10 with a pause between batches.
        Articles whose fetch fails keep an empty abstract; none are dropped.
        """
        enriched: list[Article] = []
        batches = [
            articles[i : i + ABSTRACT_BATCH_SIZE]
            for i in range(0, len(articles), ABSTRACT_BATCH_SIZE)
        ]

        for n, batch in enumerate(batches):
            if n > 0:
                await asyncio.sleep(ABSTRACT_BATCH_PAUSE_SECONDS)
            try:
                fetched = await asyncio.gather(
                    *(self._fetch_for(article) for article in batch)
                )
            except Exception as e:
                logger.error("Abstract batch %d failed: %s", n + 1, e)
                fetched = [None] * len(batch)

            for article, result in zip(batch, fetched):
                if result is None:
                    enriched.append(article.model_copy(update={"abstract": article.abstract or ""}))
                    continue
                abstract, mesh = result
                enriched.append(
                    article.model_copy(
                        update={
                            "abstract": abstract,
                            "mesh_terms": list(dict.fromkeys(article.mesh_terms + mesh)),
                        }
                    )
                )

        with_abstracts = sum(1 for a in enriched if a.abstract)
        logger.info("Abstracts retrieved for %d of %d articles", with_abstracts, len(enriched))
        return enriched

    async def _fetch_for(self, article: Article) -> tuple[str, list[str]] | None:
        if not article.pmid:
            return None
        return await self.fetch_abstract(article.pmid)

    def _parse_abstract_xml(self, xml_text: str) -> tuple[str, list[str]]:
        """Extract the first AbstractText and every DescriptorName."""
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise DataSourceError(self._source_name, f"Failed to parse XML: {e}")

        abstract_elem = root.find(".//AbstractText")
        abstract = ""
        if abstract_elem is not None:
            abstract = " ".join("".join(abstract_elem.itertext()).split())

        mesh_terms = [
            elem.text.strip()
            for elem in root.findall(".//DescriptorName")
            if elem.text and elem.text.strip()
        ]
        return abstract, list(dict.fromkeys(mesh_terms))

    # -- Convenience ------------------------------------------------------------

    async def get_by_pmid(self, pmid: str) -> Article | None:
        """Look up one article with its abstract; None when PubMed has no summary."""
        found = await self.summaries([pmid])
        if pmid not in found:
            return None
        article = normalize_summary(pmid, found[pmid])
        result = await self.fetch_abstract(pmid)
        if result is not None:
            abstract, mesh = result
            article = article.model_copy(update={"abstract": abstract, "mesh_terms": mesh})
        return article

    async def search_articles(self, query: str, max_results: int | None = None) -> list[Article]:
        """Search and return normalized articles in PubMed relevance order."""
        pmids = await self.search(query, max_results)
        if not pmids:
            return []
        try:
            found = await self.summaries(pmids)
        except DataSourceError as e:
            raise PubMedSearchError(
                f"Summary lookup failed: {e}", status_code=e.status_code
            ) from e
        return [normalize_summary(pmid, found[pmid]) for pmid in pmids if pmid in found]
