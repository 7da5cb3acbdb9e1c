"""
Application configuration settings.

All configuration is loaded from environment variables with sensible defaults.
"""
import json
from typing import Any
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "TCG Price Aggregator"
    api_debug: bool = True
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]

    # Logging - LOG_LEVEL (DEBUG, INFO, ...) and LOG_FORMAT (json, console)
    # override the api_debug defaults
    log_level: str = ""
    log_format: str = ""

    # Upstream catalog (TCGdex, no key required)
    tcgdex_base_url: str = "https://api.tcgdex.net"

    # Community pricing (JustTCG) - set via JUSTTCG_API_KEY env var
    justtcg_base_url: str = "https://api.justtcg.com"
    justtcg_api_key: str = ""
    justtcg_game: str = "pokemon"

    # Aggregated market price API - set via POKEMONPRICETRACKER_API_KEY env var
    pricetracker_base_url: str = "https://www.pokemonpricetracker.com"
    pokemonpricetracker_api_key: str = ""
    pricetracker_result_limit: int = 5

    # Secondary market sold listings (eBay via RapidAPI) - set via RAPIDAPI_KEY env var
    ebay_base_url: str = "https://ebay-average-selling-price.p.rapidapi.com"
    ebay_rapidapi_host: str = "ebay-average-selling-price.p.rapidapi.com"
    rapidapi_key: str = ""
    ebay_max_search_results: int = 240

    # Listing relevance heuristics (tunable, not load-bearing)
    listing_set_overlap_threshold: float = 0.6
    listing_min_price: float = 0.0
    listing_max_price: float = 100000.0
    listing_evidence_count: int = 5

    # HTTP behaviour
    external_api_timeout: int = 15
    user_agent: str = "TCGPriceAggregator/1.0"

    # Request queues (one per fetch category)
    catalog_queue_concurrency: int = 50
    pricing_queue_concurrency: int = 100

    # Deliberate spacing between sequential per-card pricing calls
    pricing_call_delay_seconds: float = 1.0
    fallback_call_delay_seconds: float = 0.5
    card_stagger_seconds: float = 0.05

    # Rate limiting
    rate_limit_cooldown_seconds: int = 60 * 60  # 1 hour
    # Per-source request budgets (0 disables a budget)
    justtcg_requests_per_hour: int = 100
    pricetracker_requests_per_minute: int = 20
    ebay_requests_per_minute: int = 10

    # Result cache
    search_cache_ttl_seconds: int = 4 * 60 * 60  # 4 hours
    search_cache_max_size: int = 500
    search_result_limit: int = 100

    # Set browsing
    recent_sets_limit: int = 50
    sets_cache_ttl_seconds: int = 60 * 60  # 1 hour

    # Currency conversion (USD -> target currency)
    target_currency: str = "INR"
    currency_symbol: str = "₹"
    currency_grouping: str = "indian"  # indian (2-2-3) or western (3-3-3)
    exchange_rate_ttl_seconds: int = 60 * 60  # 1 hour
    fallback_exchange_rate: float = 88.72

    # Supported catalog languages
    supported_languages: list[str] = ["en", "ja", "ko", "zh", "fr", "de", "es", "it", "pt"]

    @field_validator("cors_origins", "supported_languages", mode="before")
    @classmethod
    def parse_list(cls, v: Any) -> list[str]:
        """Parse list settings from JSON string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(",") if item.strip()]
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
