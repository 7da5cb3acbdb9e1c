"""
Pokemon Price Tracker adapter.

Aggregated market prices behind a bearer-token API.

API documentation: https://www.pokemonpricetracker.com/api-docs
"""
from typing import Any, Optional

import httpx
import structlog

from tcgprice.core.config import Settings, settings
from tcgprice.core.rate_limit import RateLimitTracker
from tcgprice.services.ingestion.base import (
    AdapterConfig,
    CardDescriptor,
    PricingQuote,
    SourceFetcher,
    coerce_price,
)
from tcgprice.services.ingestion.fallback import FallbackStage, run_fallback_chain
from tcgprice.services.matching import (
    clean_name,
    filter_by_name,
    is_known_set,
    rank_candidates,
    search_name,
)

logger = structlog.get_logger()


class PriceTrackerAdapter(SourceFetcher):
    """
    Adapter for the Pokemon Price Tracker API.

    The search endpoint is fuzzy and works best with short queries, so the
    card name is cut down to its first two words (or the last word for
    "Team ..." cards). Results are searched inside the set first, then
    without a set restriction.
    """

    requires_api_key = True

    def __init__(
        self,
        config: AdapterConfig | None = None,
        rate_limits: RateLimitTracker | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        if config is None:
            config = self.config_from_settings(settings)
        super().__init__(config, rate_limits=rate_limits, client=client)
        self.result_limit = config.extra.get("limit", 5)

    @classmethod
    def config_from_settings(cls, app_settings: Settings) -> AdapterConfig:
        return AdapterConfig(
            base_url=app_settings.pricetracker_base_url,
            api_key=app_settings.pokemonpricetracker_api_key or None,
            timeout_seconds=app_settings.external_api_timeout,
            user_agent=app_settings.user_agent,
            extra={"limit": app_settings.pricetracker_result_limit},
        )

    @property
    def source_id(self) -> str:
        return "pricetracker"

    @property
    def source_name(self) -> str:
        return "Pokemon Price Tracker"

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def search(self, query: str, set_name: Optional[str] = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": self.result_limit, "search": query}
        if is_known_set(set_name):
            params["set"] = set_name
        data = await self._request("GET", "/api/v2/cards", params=params)
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            return data["data"]
        return []

    async def _search_in_set(self, query: str, set_name: Optional[str]) -> list[dict[str, Any]]:
        if not is_known_set(set_name):
            return []
        return await self.search(query, set_name)

    async def _search_anywhere(self, query: str, cleaned: str) -> list[dict[str, Any]]:
        results = await self.search(query)
        return filter_by_name(results, cleaned, name_of=lambda c: c.get("name"))

    async def _fetch_price(self, descriptor: CardDescriptor) -> PricingQuote:
        cleaned = clean_name(descriptor.name)
        if not cleaned:
            return self.unavailable("Missing card name")
        query = search_name(cleaned)

        result = await run_fallback_chain(
            [
                FallbackStage(
                    "set search",
                    "No matching cards found in set",
                    lambda: self._search_in_set(query, descriptor.set_name),
                ),
                FallbackStage(
                    "global search",
                    "No matching cards found",
                    lambda: self._search_anywhere(query, cleaned),
                ),
            ],
            source_id=self.source_id,
        )
        if not result.succeeded:
            return self.unavailable(result.note or "No matching cards found")

        card = rank_candidates(
            result.value,
            cleaned,
            descriptor.number,
            name_of=lambda c: c.get("name"),
            number_of=lambda c: c.get("cardNumber"),
        )[0]
        matched = {"matched_name": card.get("name"), "matched_number": card.get("cardNumber")}

        prices = card.get("prices") or {}
        price = coerce_price(prices.get("market"))
        if price is None:
            return self.unavailable("Price unavailable", **matched)

        card_set = card.get("set")
        set_name = card_set.get("name") if isinstance(card_set, dict) else card_set

        logger.debug("Price tracker price found", card=card.get("name"), price=price, stage=result.stage)
        return self.quote(
            price,
            price_type="Market",
            details={
                "set_name": set_name or descriptor.set_name,
                "prices": prices,
            },
            **matched,
        )
