"""
Mock pricing source for testing and development.

Generates plausible prices without hitting external APIs. Prices are
seeded from the card identity, so the same card always gets the same
price.
"""
import hashlib
import random

import httpx

from tcgprice.core.config import Settings, settings
from tcgprice.core.rate_limit import RateLimitTracker
from tcgprice.services.ingestion.base import (
    AdapterConfig,
    CardDescriptor,
    PricingQuote,
    SourceFetcher,
)
from tcgprice.services.matching import clean_name, normalize_card_number


class MockPricingSource(SourceFetcher):
    """
    Mock source that returns fake but stable prices.

    Useful for exercising the full aggregation flow offline.
    """

    def __init__(
        self,
        config: AdapterConfig | None = None,
        rate_limits: RateLimitTracker | None = None,
        client: httpx.AsyncClient | None = None,
        name: str = "Mock",
    ):
        if config is None:
            config = self.config_from_settings(settings)
        super().__init__(config, rate_limits=rate_limits, client=client)
        self._name = name
        self._slug = name.lower().replace(" ", "_")

    @classmethod
    def config_from_settings(cls, app_settings: Settings) -> AdapterConfig:
        return AdapterConfig(base_url="https://mock-pricing.example.com", user_agent=app_settings.user_agent)

    @property
    def source_id(self) -> str:
        return self._slug

    @property
    def source_name(self) -> str:
        return self._name

    def _rng(self, descriptor: CardDescriptor) -> random.Random:
        key = "|".join([
            self._slug,
            clean_name(descriptor.name).lower(),
            normalize_card_number(descriptor.number),
            (descriptor.set_name or "").lower(),
        ])
        seed = int(hashlib.sha256(key.encode()).hexdigest()[:16], 16)
        return random.Random(seed)

    async def _fetch_price(self, descriptor: CardDescriptor) -> PricingQuote:
        if not clean_name(descriptor.name):
            return self.unavailable("Missing card name")

        rng = self._rng(descriptor)
        price = rng.uniform(0.25, 250.0)
        return self.quote(
            price,
            price_type="Mock Market",
            matched_name=clean_name(descriptor.name),
            matched_number=descriptor.number,
            details={
                "low": round(price * rng.uniform(0.7, 0.95), 2),
                "high": round(price * rng.uniform(1.05, 1.4), 2),
            },
        )

    async def health_check(self) -> bool:
        return True
