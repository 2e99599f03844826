"""NIH iCite bibliometrics client."""

from __future__ import annotations

import logging
from typing import Any

from scientific_query.config import get_settings
from scientific_query.constants import ICITE_MAX_PMIDS_PER_CALL, ICITE_PUBS_PATH
from scientific_query.data_sources.base_client import (
    BaseClient,
    DataSourceError,
    ICiteUnavailable,
    RequestContext,
)
from scientific_query.models.model_icite import Bibliometrics

logger = logging.getLogger(__name__)


class ICiteClient(BaseClient):
    """Client for the iCite ``/pubs`` endpoint."""

    def __init__(self, base_url: str | None = None, **kwargs: Any) -> None:
        settings = get_settings()
        kwargs.setdefault("timeout", settings.http_timeout_short_ms / 1000)
        kwargs.setdefault("requests_per_second", 5.0)
        super().__init__(**kwargs)
        self.base_url = (base_url or settings.icite_base_url).rstrip("/")

    @property
    def _source_name(self) -> str:
        return "icite"

    async def metrics(self, pmids: list[str]) -> dict[str, Bibliometrics]:
        """Fetch bibliometrics for PMIDs.

        Args:
            pmids: PubMed identifiers; must not be empty.

        Returns:
            Map of PMID to Bibliometrics. PMIDs iCite does not know are absent.

        Raises:
            ValueError: If ``pmids`` is empty.
            ICiteUnavailable: If iCite cannot be reached or answers with an error.
        """
        if not pmids:
            raise ValueError("At least one PMID is required for iCite lookup")

        url = f"{self.base_url}/{ICITE_PUBS_PATH}"
        ctx = RequestContext(source=self._source_name, method="metrics")
        found: dict[str, Bibliometrics] = {}

        for i in range(0, len(pmids), ICITE_MAX_PMIDS_PER_CALL):
            chunk = pmids[i : i + ICITE_MAX_PMIDS_PER_CALL]
            try:
                data = await self._rest_get(url, {"pmids": ",".join(chunk)}, context=ctx)
            except DataSourceError as e:
                raise ICiteUnavailable(str(e), status_code=e.status_code) from e

            for record in data.get("data") or []:
                if not isinstance(record, dict) or record.get("pmid") is None:
                    continue
                found[str(record["pmid"])] = Bibliometrics.from_icite(record)

        logger.info("iCite metrics found for %d of %d PMIDs", len(found), len(pmids))
        return found
