"""
eBay sold-listings adapter.

Uses the "eBay Average Selling Price" RapidAPI endpoint, which returns
completed listings for a keyword query. Listings are filtered down to the
exact raw card before averaging; graded slabs, lots and sealed product are
discarded.
"""
import re
from statistics import mean
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
)
from tcgprice.services.ingestion.fallback import FallbackStage, run_fallback_chain
from tcgprice.services.matching import (
    ListingCriteria,
    clean_name,
    extract_listing_number,
    filter_relevant_listings,
    is_known_set,
    listing_price,
    normalize_card_number,
)

logger = structlog.get_logger()

_NEW_WINDOW_RE = re.compile(r"Opens in a new window or tab", re.IGNORECASE)


def listing_evidence(item: dict[str, Any]) -> dict[str, Any]:
    """The fields of a sold listing shown as evidence for the average."""
    condition = item.get("condition")
    if isinstance(condition, dict):
        condition = condition.get("conditionDisplayName")
    return {
        "title": _NEW_WINDOW_RE.sub("", item.get("title") or "Unknown").strip(),
        "sale_price": listing_price(item),
        "condition": condition or "Unknown",
        "date_sold": item.get("date_sold") or "Unknown",
        "link": item.get("link") or "#",
    }


class EbayAdapter(SourceFetcher):
    """
    Adapter for eBay completed listings via RapidAPI.

    Lookup chain:
    1. Keywords with name, number and set
    2. Keywords with name and number only (sellers often omit the set)

    Both stages apply the same relevance filter.
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
        self.max_search_results = config.extra.get("max_search_results", 240)
        self.evidence_count = config.extra.get("evidence_count", 5)

    @classmethod
    def config_from_settings(cls, app_settings: Settings) -> AdapterConfig:
        return AdapterConfig(
            base_url=app_settings.ebay_base_url,
            api_key=app_settings.rapidapi_key or None,
            timeout_seconds=app_settings.external_api_timeout,
            user_agent=app_settings.user_agent,
            extra={
                "host": app_settings.ebay_rapidapi_host,
                "max_search_results": app_settings.ebay_max_search_results,
                "evidence_count": app_settings.listing_evidence_count,
                "set_overlap_threshold": app_settings.listing_set_overlap_threshold,
                "min_price": app_settings.listing_min_price,
                "max_price": app_settings.listing_max_price,
            },
        )

    @property
    def source_id(self) -> str:
        return "ebay"

    @property
    def source_name(self) -> str:
        return "eBay"

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        headers["Content-Type"] = "application/json"
        if self.config.api_key:
            headers["X-RapidAPI-Key"] = self.config.api_key
            headers["X-RapidAPI-Host"] = self.config.extra.get("host", "")
        return headers

    def criteria_for(self, descriptor: CardDescriptor) -> ListingCriteria:
        extra = self.config.extra
        return ListingCriteria(
            card_name=clean_name(descriptor.name),
            card_number=descriptor.number,
            set_name=descriptor.set_name,
            set_overlap_threshold=extra.get("set_overlap_threshold", 0.6),
            min_price=extra.get("min_price", 0.0),
            max_price=extra.get("max_price", 100000.0),
        )

    async def find_completed_items(self, keywords: str) -> list[dict[str, Any]]:
        data = await self._request(
            "POST",
            "/findCompletedItems",
            json={"keywords": keywords, "max_search_results": self.max_search_results},
        )
        if not isinstance(data, dict):
            return []
        return data.get("products") or data.get("items") or []

    async def _search(
        self,
        keywords: str,
        criteria: ListingCriteria,
        seen: dict[str, int],
    ) -> list[dict[str, Any]]:
        items = await self.find_completed_items(keywords)
        seen["total"] = len(items)
        relevant = filter_relevant_listings(items, criteria)
        logger.debug(
            "eBay listings filtered",
            keywords=keywords,
            total=len(items),
            matched=len(relevant),
        )
        return relevant

    @staticmethod
    def _keywords(name: str, number: Optional[str], set_name: Optional[str]) -> str:
        parts = [name]
        if number:
            parts.append(number)
        if is_known_set(set_name):
            parts.append(set_name)
        return " ".join(parts)

    async def _fetch_price(self, descriptor: CardDescriptor) -> PricingQuote:
        cleaned = clean_name(descriptor.name)
        if not cleaned:
            return self.unavailable("Missing card name")

        criteria = self.criteria_for(descriptor)
        seen = {"total": 0}
        full_query = self._keywords(cleaned, descriptor.number, descriptor.set_name)
        short_query = self._keywords(cleaned, descriptor.number, None)

        no_match = f"No exact matches found for {cleaned}"
        if descriptor.number:
            no_match += f" #{normalize_card_number(descriptor.number)}"
        if is_known_set(descriptor.set_name):
            no_match += f" ({descriptor.set_name})"

        stages = [FallbackStage("full query", no_match, lambda: self._search(full_query, criteria, seen))]
        if short_query != full_query:
            stages.append(
                FallbackStage("query without set", no_match, lambda: self._search(short_query, criteria, seen))
            )

        result = await run_fallback_chain(stages, source_id=self.source_id)
        if not result.succeeded:
            return self.unavailable(
                result.note or no_match,
                details={"listings": [], "filtered_from": seen["total"]},
            )

        relevant = result.value
        # Listings that state the card number explicitly are the strongest evidence.
        ordered = sorted(relevant, key=lambda item: extract_listing_number(item.get("title") or "") is None)
        average = mean(listing_price(item) for item in relevant)

        return self.quote(
            average,
            price_type="Sold Listings Average",
            matched_name=cleaned,
            matched_number=descriptor.number,
            details={
                "listings": [listing_evidence(item) for item in ordered[: self.evidence_count]],
                "filtered_from": seen["total"],
                "matched_cards": len(relevant),
            },
        )
