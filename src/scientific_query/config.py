"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # PubMed E-utilities
    pubmed_base_url: str = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
    pubmed_api_key: str = ""
    pubmed_max_results: int = 30
    pubmed_requests_per_second: float = 3.0  # 10/s is allowed with an API key

    # iCite
    icite_base_url: str = "https://icite.od.nih.gov/api"

    # LLM Settings
    llm_base_url: str = "https://api.anthropic.com"
    llm_api_key: str = ""
    llm_model: str = "claude-3-5-haiku-20241022"
    llm_long_model: str = "claude-opus-4-1-20250805"
    llm_max_retries: int = 3

    # Timeouts
    http_timeout_short_ms: int = 45_000
    http_timeout_long_ms: int = 180_000

    # Analysis batch pacing
    batch_inter_delay_ms: int = 20_000
    batch_jitter_ms: int = 10_000
    batch_cooldown_every_n: int = 3
    batch_cooldown_ms: int = 60_000
    batch_rate_limit_backoff_ms: int = 60_000

    # Pipeline
    analysis_top_n: int = 5
    title_filter_threshold: int = 10
    title_filter_limit: int = 20

    # App Settings
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        frozen = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
