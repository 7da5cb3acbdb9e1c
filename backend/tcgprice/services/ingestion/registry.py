"""
Registry of pricing source fetchers.

Provides a centralized way to build fetchers by slug. Instances are never
cached here: HTTP clients are bound to the event loop they were created in,
so whoever builds a fetcher owns it and closes it.
"""
import structlog
from typing import Type

import httpx

from tcgprice.core.config import Settings
from tcgprice.core.rate_limit import RateLimitTracker
from tcgprice.services.ingestion.base import AdapterConfig, SourceFetcher
from tcgprice.services.ingestion.adapters.ebay import EbayAdapter
from tcgprice.services.ingestion.adapters.justtcg import JustTCGAdapter
from tcgprice.services.ingestion.adapters.mock import MockPricingSource
from tcgprice.services.ingestion.adapters.pricetracker import PriceTrackerAdapter
from tcgprice.services.ingestion.adapters.tcgdex import TCGdexAdapter

logger = structlog.get_logger()

_ADAPTER_REGISTRY: dict[str, Type[SourceFetcher]] = {
    "tcgdex": TCGdexAdapter,
    "justtcg": JustTCGAdapter,
    "pricetracker": PriceTrackerAdapter,
    "ebay": EbayAdapter,
    "mock": MockPricingSource,
}


def register_adapter(slug: str, adapter_class: Type[SourceFetcher]) -> None:
    """
    Register a new fetcher type.

    Args:
        slug: Unique identifier for the fetcher.
        adapter_class: The fetcher class to register.
    """
    _ADAPTER_REGISTRY[slug] = adapter_class
    logger.info("Registered pricing source", slug=slug, adapter=adapter_class.__name__)


def get_adapter(
    slug: str,
    config: AdapterConfig | None = None,
    rate_limits: RateLimitTracker | None = None,
    client: httpx.AsyncClient | None = None,
    app_settings: Settings | None = None,
) -> SourceFetcher:
    """
    Build a fetcher instance by slug.

    Args:
        slug: Fetcher identifier.
        config: Optional custom configuration; defaults come from settings.
        rate_limits: Shared cooldown tracker.
        client: Optional shared HTTP client.
        app_settings: Settings to build the default configuration from when
            ``config`` is not given.

    Returns:
        Fetcher instance.

    Raises:
        ValueError: If slug is not registered.
    """
    slug = slug.lower()

    if slug not in _ADAPTER_REGISTRY:
        raise ValueError(f"Unknown adapter: {slug}. Available: {list(_ADAPTER_REGISTRY.keys())}")

    adapter_class = _ADAPTER_REGISTRY[slug]
    if config is None and app_settings is not None:
        config = adapter_class.config_from_settings(app_settings)
    return adapter_class(config=config, rate_limits=rate_limits, client=client)


def get_available_adapters() -> list[str]:
    """Get list of available fetcher slugs."""
    return list(_ADAPTER_REGISTRY.keys())
