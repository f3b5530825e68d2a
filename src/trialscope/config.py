"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings

from trialscope.constants import (
    CLINICAL_TRIALS_API_URL,
    CLINICAL_TRIALS_MAX_PAGE_SIZE,
    DEFAULT_PAGE_SIZE,
    FILTER_CACHE_MAX_PAGES,
    FILTER_CACHE_MAX_RESULTS,
    FILTER_CACHE_TTL,
    PAGINATION_STATE_TTL,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Upstream registry
    api_base_url: str = CLINICAL_TRIALS_API_URL
    request_timeout: float = 30.0
    max_retries: int = 3
    requests_per_second: float = 5.0
    user_agent: str = "TrialScope/0.1"

    # Paging
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = CLINICAL_TRIALS_MAX_PAGE_SIZE

    # In-memory query state
    filter_cache_ttl_seconds: int = FILTER_CACHE_TTL
    filter_cache_max_results: int = FILTER_CACHE_MAX_RESULTS
    filter_cache_max_pages: int = FILTER_CACHE_MAX_PAGES
    pagination_state_ttl_seconds: int = PAGINATION_STATE_TTL

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    class Config:
        env_prefix = "TRIALSCOPE_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        frozen = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
