"""
Pricing aggregator.

Orchestrates one pricing request across all sources:

    descriptor -> pricing queue -> source fetchers (each with its own
    fallback chain) -> PricingBundle -> currency conversion -> caller

Catalog searches go through the catalog queue and the result cache. All
shared state (queues, cooldowns, cache, exchange rate) lives on objects
owned by the aggregator instance.
"""
import asyncio
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

from tcgprice.core.cache import ResultCache
from tcgprice.core.config import Settings, settings as default_settings
from tcgprice.core.exceptions import PricingSourceError
from tcgprice.core.rate_limit import RateLimitTracker
from tcgprice.core.request_queue import RequestQueues
from tcgprice.services.ingestion.adapters.tcgdex import TCGdexAdapter, set_logo
from tcgprice.services.ingestion.base import (
    UNAVAILABLE,
    CardDescriptor,
    PricingBundle,
    PricingQuote,
    SourceFetcher,
)
from tcgprice.services.ingestion.registry import get_adapter
from tcgprice.services.matching import extract_set_from_title, is_known_set
from tcgprice.services.pricing.currency import CurrencyConverter

logger = structlog.get_logger()

NOT_LOADED_NOTE = "Pricing not loaded"
NOT_NEEDED_NOTE = "Not needed: catalog price available"


@dataclass(frozen=True)
class CatalogFilters:
    """Optional narrowing for a catalog search."""
    set_id: Optional[str] = None
    rarity: Optional[str] = None
    card_type: Optional[str] = None

    def matches(self, card: dict[str, Any]) -> bool:
        """
        Local rarity (contains) and type (exact) checks.

        Brief catalog records carry neither field; they are left to the
        upstream filter.
        """
        if self.rarity and card.get("rarity"):
            if self.rarity.lower() not in str(card["rarity"]).lower():
                return False
        if self.card_type and card.get("types"):
            wanted = self.card_type.lower()
            if not any(str(t).lower() == wanted for t in card["types"]):
                return False
        return True


class PricingAggregator:
    """
    Fans a card out to every configured pricing source and reconciles the
    answers into one ``PricingBundle``.

    Source roles:
    - catalog: primary price and card identity (TCGdex)
    - community: used only when the catalog has no price (JustTCG)
    - market: independent aggregated price (Pokemon Price Tracker)
    - listings: sold-listing average (eBay)

    Any role may be left out; it then has no entry in the bundle.
    """

    def __init__(
        self,
        catalog: Optional[TCGdexAdapter] = None,
        community: Optional[SourceFetcher] = None,
        market: Optional[SourceFetcher] = None,
        listings: Optional[SourceFetcher] = None,
        converter: Optional[CurrencyConverter] = None,
        cache: Optional[ResultCache] = None,
        queues: Optional[RequestQueues] = None,
        rate_limits: Optional[RateLimitTracker] = None,
        config: Optional[Settings] = None,
    ):
        config = config or default_settings
        self.config = config
        self.catalog = catalog
        self.community = community
        self.market = market
        self.listings = listings
        self.converter = converter if converter is not None else CurrencyConverter.from_settings(config)
        if cache is None:
            cache = ResultCache(
                max_size=config.search_cache_max_size,
                default_ttl=config.search_cache_ttl_seconds,
            )
        self.cache = cache
        self.queues = queues if queues is not None else RequestQueues.from_settings(config)
        if rate_limits is None:
            rate_limits = RateLimitTracker.from_settings(config)
        self.rate_limits = rate_limits

        self.pricing_call_delay = config.pricing_call_delay_seconds
        self.fallback_call_delay = config.fallback_call_delay_seconds
        self.card_stagger = config.card_stagger_seconds
        self.result_limit = config.search_result_limit
        self.recent_sets_limit = config.recent_sets_limit
        self.sets_ttl = config.sets_cache_ttl_seconds
        self.supported_languages = list(config.supported_languages)

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "PricingAggregator":
        """Wire the default sources, all sharing one cooldown tracker."""
        config = config or default_settings
        rate_limits = RateLimitTracker.from_settings(config)
        return cls(
            catalog=get_adapter("tcgdex", rate_limits=rate_limits, client=client, app_settings=config),
            community=get_adapter("justtcg", rate_limits=rate_limits, client=client, app_settings=config),
            market=get_adapter("pricetracker", rate_limits=rate_limits, client=client, app_settings=config),
            listings=get_adapter("ebay", rate_limits=rate_limits, client=client, app_settings=config),
            converter=CurrencyConverter.from_settings(config, client=client),
            rate_limits=rate_limits,
            config=config,
        )

    @property
    def fetchers(self) -> list[SourceFetcher]:
        """Configured sources in bundle order."""
        return [f for f in (self.catalog, self.community, self.market, self.listings) if f is not None]

    @property
    def source_ids(self) -> list[str]:
        return [f.source_id for f in self.fetchers]

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def _fetch(self, fetcher: SourceFetcher, descriptor: CardDescriptor) -> PricingQuote:
        try:
            return await self.queues.pricing.submit(lambda: fetcher.fetch_price(descriptor))
        except Exception as e:
            logger.error(
                "Pricing source raised unexpectedly",
                source=fetcher.source_id,
                card=descriptor.name,
                error=str(e),
                exc_info=True,
            )
            return fetcher.unavailable("Unexpected error")

    @staticmethod
    def _with_set(descriptor: CardDescriptor) -> CardDescriptor:
        if is_known_set(descriptor.set_name):
            return descriptor
        return replace(descriptor, set_name=extract_set_from_title(descriptor.name))

    async def resolve_pricing(self, descriptor: CardDescriptor) -> PricingBundle:
        """
        Price a card across every configured source.

        Never raises. Every configured source gets an entry; sources that
        failed or were skipped carry an unavailable quote with a note.
        """
        return await self._resolve(self._with_set(descriptor))

    async def _resolve(
        self,
        descriptor: CardDescriptor,
        catalog_quote: Optional[PricingQuote] = None,
    ) -> PricingBundle:
        log = logger.bind(card=descriptor.name, number=descriptor.number, set=descriptor.set_name)
        bundle = PricingBundle()
        pending_delay = 0.0

        if self.catalog is not None:
            if catalog_quote is None:
                catalog_quote = await self._fetch(self.catalog, descriptor)
            bundle[self.catalog.source_id] = catalog_quote
            pending_delay = self.pricing_call_delay

        if self.community is not None:
            if catalog_quote is not None and catalog_quote.is_available:
                bundle[self.community.source_id] = self.community.unavailable(NOT_NEEDED_NOTE)
            else:
                await self._pause(self.fallback_call_delay)
                bundle[self.community.source_id] = await self._fetch(self.community, descriptor)
                pending_delay = self.pricing_call_delay

        for fetcher in (self.market, self.listings):
            if fetcher is None:
                continue
            await self._pause(pending_delay)
            bundle[fetcher.source_id] = await self._fetch(fetcher, descriptor)
            pending_delay = self.pricing_call_delay

        best = bundle.best()
        log.info(
            "Pricing resolved",
            available=sorted(bundle.available()),
            best_source=best.source_id if best else None,
        )
        return bundle

    async def resolve_priced_card(self, descriptor: CardDescriptor) -> dict[str, Any]:
        """Resolve pricing and return it converted for display."""
        descriptor = self._with_set(descriptor)
        bundle = await self._resolve(descriptor)
        await self.converter.refresh_rate()

        return {
            "title": descriptor.name,
            "card_number": descriptor.number or UNAVAILABLE,
            "set": descriptor.set_name,
            "language": descriptor.language,
            "pricing": self.converter.convert_tree(bundle.to_dict()),
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

    def placeholder_pricing(self, note: str = NOT_LOADED_NOTE) -> dict[str, Any]:
        return {f.source_id: f.unavailable(note).to_dict() for f in self.fetchers}

    def check_language(self, language: str) -> str:
        language = (language or "en").lower()
        if language not in self.supported_languages:
            raise ValueError(
                f"Invalid language: {language}. Supported: {', '.join(self.supported_languages)}"
            )
        return language

    async def _catalog_call(self, job: Callable[[], Awaitable[Any]]) -> Any:
        return await self.queues.catalog.submit(job)

    async def search_catalog(
        self,
        query: Optional[str] = None,
        filters: Optional[CatalogFilters] = None,
        include_pricing: bool = False,
        refresh: bool = False,
        language: str = "en",
    ) -> list[dict[str, Any]]:
        """
        Search the catalog, optionally pricing every result.

        Results are cached per (query, set, rarity, type, language,
        include_pricing). ``refresh`` drops the cached entry first.

        Raises:
            ValueError: Unsupported language.
            PricingSourceError: The catalog itself could not be searched.
        """
        if self.catalog is None:
            return []

        language = self.check_language(language)
        filters = filters or CatalogFilters()
        key = ResultCache.make_key(
            query=query,
            set=filters.set_id,
            rarity=filters.rarity,
            type=filters.card_type,
            language=language,
            include_pricing=include_pricing,
        )

        if refresh:
            self.cache.invalidate(key)
            logger.info("Catalog search cache refreshed", key=key)
        else:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Catalog search cache hit", key=key, count=len(cached))
                return await self._present(cached, include_pricing)

        catalog = self.catalog
        if filters.set_id:
            cards = await self._catalog_call(lambda: catalog.list_set_cards(filters.set_id, language))
            if query:
                needle = query.lower()
                cards = [c for c in cards if needle in (c.get("name") or "").lower()]
        else:
            cards = await self._catalog_call(
                lambda: catalog.search_cards(
                    query,
                    language,
                    rarity=filters.rarity,
                    types=filters.card_type,
                )
            )

        cards = [c for c in cards if filters.matches(c)][: self.result_limit]

        if include_pricing:
            results = await asyncio.gather(
                *(self._price_catalog_card(card, index, language) for index, card in enumerate(cards))
            )
        else:
            placeholder = self.placeholder_pricing()
            results = [{**card, "pricing": placeholder} for card in cards]

        self.cache.set(key, results)
        logger.info(
            "Catalog search completed",
            query=query,
            set=filters.set_id,
            language=language,
            count=len(results),
            include_pricing=include_pricing,
        )
        return await self._present(results, include_pricing)

    async def _present(self, cards: list[dict[str, Any]], include_pricing: bool) -> list[dict[str, Any]]:
        if not include_pricing:
            return [dict(card) for card in cards]
        await self.converter.refresh_rate()
        return [{**card, "pricing": self.converter.convert_tree(card.get("pricing") or {})} for card in cards]

    @staticmethod
    def descriptor_for(card: dict[str, Any], language: str) -> CardDescriptor:
        """Descriptor for a catalog card record."""
        card_set = card.get("set") or {}
        return CardDescriptor(
            name=card.get("name") or "",
            number=card.get("localId"),
            set_name=card_set.get("name") or "Unknown Set",
            language=language,
            card_id=card.get("id"),
            rarity=card.get("rarity"),
        )

    async def _price_catalog_card(self, card: dict[str, Any], index: int, language: str) -> dict[str, Any]:
        await self._pause(index * self.card_stagger)

        full = card
        if not (card.get("set") or {}).get("name") and card.get("id"):
            try:
                fetched = await self._catalog_call(lambda: self.catalog.get_card(card["id"], language))
            except PricingSourceError as e:
                logger.warning("Failed to load full catalog card", card_id=card.get("id"), error=str(e))
                fetched = None
            if fetched:
                full = fetched

        catalog_quote = self.catalog.quote_from_card(full) if "pricing" in full else None
        bundle = await self._resolve(self.descriptor_for(full, language), catalog_quote)
        return {**full, "pricing": bundle.to_dict()}

    async def card_details(self, card_id: str, language: str = "en") -> Optional[dict[str, Any]]:
        """
        Full catalog card with every source's pricing, converted.

        Returns None when the catalog has no such card.

        Raises:
            ValueError: Unsupported language.
            PricingSourceError: The catalog itself could not be reached.
        """
        if self.catalog is None:
            return None

        language = self.check_language(language)
        catalog = self.catalog
        card = await self._catalog_call(lambda: catalog.get_card(card_id, language))
        if not card:
            return None

        bundle = await self._resolve(self.descriptor_for(card, language), catalog.quote_from_card(card))
        await self.converter.refresh_rate()

        details = {key: value for key, value in card.items() if key != "pricing"}
        details["pricing"] = self.converter.convert_tree(bundle.to_dict())
        details["last_updated"] = datetime.now(timezone.utc).isoformat()
        return details

    async def browse_sets(self, language: str = "en", refresh: bool = False) -> list[dict[str, Any]]:
        """
        Most recent catalog sets, newest first.

        Takes the last ``recent_sets_limit`` sets of the catalog listing and
        loads each one's full record for its release date. A set whose
        record cannot be loaded is returned as listed. Logos always carry an
        image extension.

        Raises:
            ValueError: Unsupported language.
            PricingSourceError: The set listing could not be loaded.
        """
        if self.catalog is None:
            return []

        language = self.check_language(language)
        key = ResultCache.make_key("sets", language=language)
        if refresh:
            self.cache.invalidate(key)
        else:
            cached = self.cache.get(key)
            if cached is not None:
                return [dict(card_set) for card_set in cached]

        catalog = self.catalog
        listed = await self._catalog_call(lambda: catalog.list_sets(language))
        recent = list(reversed(listed[-self.recent_sets_limit:])) if self.recent_sets_limit > 0 else []

        async def load(card_set: dict[str, Any]) -> dict[str, Any]:
            try:
                full = await self._catalog_call(lambda: catalog.get_set(card_set["id"], language))
            except PricingSourceError as e:
                logger.warning("Failed to load set details", set_id=card_set.get("id"), error=str(e))
                full = None
            merged = {**card_set, **{k: v for k, v in (full or {}).items() if k != "cards"}}
            merged.setdefault("releaseDate", None)
            merged["logo"] = set_logo(card_set)
            return merged

        sets = list(await asyncio.gather(*(load(card_set) for card_set in recent)))
        self.cache.set(key, sets, ttl=self.sets_ttl)
        logger.info("Catalog sets loaded", language=language, listed=len(listed), returned=len(sets))
        return [dict(card_set) for card_set in sets]

    async def set_details(self, set_id: str, language: str = "en") -> Optional[dict[str, Any]]:
        """
        Full set record with its brief card list, or None when unknown.

        Raises:
            ValueError: Unsupported language.
            PricingSourceError: The catalog itself could not be reached.
        """
        if self.catalog is None:
            return None

        language = self.check_language(language)
        key = ResultCache.make_key("set", set_id=set_id, language=language)
        cached = self.cache.get(key)
        if cached is not None:
            return dict(cached)

        catalog = self.catalog
        card_set = await self._catalog_call(lambda: catalog.get_set(set_id, language))
        if not card_set:
            return None

        card_set = {**card_set, "logo": set_logo(card_set)}
        self.cache.set(key, card_set, ttl=self.sets_ttl)
        return dict(card_set)

    async def exchange_rate(self) -> dict[str, Any]:
        await self.converter.refresh_rate()
        return self.converter.rate_info()

    async def close(self) -> None:
        for fetcher in self.fetchers:
            await fetcher.close()
        await self.converter.close()
