"""Request bodies for the service entry points."""

from pydantic import Field, field_validator, model_validator

from scientific_query.models.base import CamelModel


def _numeric_pmid(v):
    # JSON clients often send PMIDs as numbers
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


class ProcessQueryRequest(CamelModel):
    question: str = Field(min_length=5)
    strategy: str | None = None
    use_ai: bool = Field(default=True, alias="useAI")

    @field_validator("question", mode="before")
    @classmethod
    def strip_question(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("strategy")
    @classmethod
    def blank_strategy_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class StrategyRequest(CamelModel):
    question: str = Field(min_length=5)

    @field_validator("question", mode="before")
    @classmethod
    def strip_question(cls, v):
        return v.strip() if isinstance(v, str) else v


class AnalyzeArticleRequest(CamelModel):
    question: str = Field(min_length=1)
    pmid: str | None = None
    article: dict | None = None

    @field_validator("pmid", mode="before")
    @classmethod
    def pmid_as_str(cls, v):
        return _numeric_pmid(v)

    @model_validator(mode="after")
    def require_pmid_or_article(self) -> "AnalyzeArticleRequest":
        if not self.pmid and not self.article:
            raise ValueError("either pmid or article is required")
        return self


class AnalyzeBatchRequest(CamelModel):
    question: str = Field(min_length=1)
    articles: list[dict] = Field(min_length=1)


class SynthesisRequest(CamelModel):
    question: str = Field(min_length=1)
    articles: list[dict] = Field(min_length=1)


class SearchRequest(CamelModel):
    query: str | None = None
    search_strategy: str | None = None
    max_results: int = Field(default=10, ge=1, le=200)

    @model_validator(mode="after")
    def require_query(self) -> "SearchRequest":
        if not (self.query or self.search_strategy):
            raise ValueError("either query or searchStrategy is required")
        return self

    @property
    def term(self) -> str:
        return self.search_strategy or self.query or ""


class ICiteBatchRequest(CamelModel):
    """PMIDs as a list or a comma-separated string. An empty list is rejected downstream."""

    pmids: list[str]

    @field_validator("pmids", mode="before")
    @classmethod
    def split_pmids(cls, v):
        v = _numeric_pmid(v)
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, list):
            return v
        pmids = []
        for p in v:
            p = _numeric_pmid(p)
            if isinstance(p, str):
                p = p.strip()
                if not p:
                    continue
            pmids.append(p)
        return pmids

    @field_validator("pmids")
    @classmethod
    def decimal_pmids(cls, v: list[str]) -> list[str]:
        bad = [p for p in v if not p.isdigit()]
        if bad:
            raise ValueError(f"not a PMID: {', '.join(bad[:5])}")
        return v
