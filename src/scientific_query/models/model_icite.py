"""iCite bibliometrics model."""

from pydantic import field_validator

from scientific_query.models.base import CamelModel


class Bibliometrics(CamelModel):
    """Citation metrics for one PMID. Every field is optional."""

    rcr: float | None = None  # relative citation ratio
    nih_percentile: float | None = None
    apt_score: float | None = None  # approximate potential to translate
    citation_count: int | None = None
    citations_per_year: float | None = None
    clinical_citations: int | None = None

    @field_validator("clinical_citations", mode="before")
    @classmethod
    def count_list(cls, v):
        # iCite returns the citing clinical PMIDs, not a count
        if isinstance(v, list):
            return len(v)
        return v

    @classmethod
    def from_icite(cls, record: dict) -> "Bibliometrics":
        """Build from one entry of the iCite ``data`` array."""
        return cls(
            rcr=record.get("relative_citation_ratio"),
            nih_percentile=record.get("nih_percentile"),
            apt_score=record.get("apt"),
            citation_count=record.get("citation_count"),
            citations_per_year=record.get("citations_per_year"),
            clinical_citations=record.get("cited_by_clin"),
        )
