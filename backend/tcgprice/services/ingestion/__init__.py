"""
Ingestion service for card pricing data.

Provides the fetcher interface, the shared data model and the registry of
source implementations.
"""
from tcgprice.services.ingestion.base import (
    UNAVAILABLE,
    AdapterConfig,
    CardDescriptor,
    PricingBundle,
    PricingQuote,
    SourceFetcher,
)
from tcgprice.services.ingestion.fallback import FallbackResult, FallbackStage, run_fallback_chain
from tcgprice.services.ingestion.registry import (
    get_adapter,
    get_available_adapters,
    register_adapter,
)

__all__ = [
    "UNAVAILABLE",
    "AdapterConfig",
    "CardDescriptor",
    "PricingBundle",
    "PricingQuote",
    "SourceFetcher",
    "FallbackResult",
    "FallbackStage",
    "run_fallback_chain",
    "get_adapter",
    "get_available_adapters",
    "register_adapter",
]
