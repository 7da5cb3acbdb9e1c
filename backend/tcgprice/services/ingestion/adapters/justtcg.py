"""
JustTCG adapter.

Community-aggregated TCGplayer prices per condition variant. Used as the
fallback when the catalog has no market price for a card.

API documentation: https://justtcg.com/docs
"""
import re
import time
from typing import Any, Optional

import httpx
import structlog

from tcgprice.core.config import Settings, settings
from tcgprice.core.exceptions import RateLimitedError, TransientNetworkError
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
    SetMatch,
    clean_name,
    filter_by_name,
    is_known_set,
    rank_candidates,
    set_name_matches,
)

logger = structlog.get_logger()

_NEAR_MINT_RE = re.compile(r"near[-\s]?mint", re.IGNORECASE)
_SUBSET_SUFFIX_RE = re.compile(r"\s*-?\s*\b(?:pokemon|tcg|gallery|base|expansion|subset)\s*$", re.IGNORECASE)


def base_set_name(name: str) -> str:
    """Set name with one trailing product suffix ("Gallery", "Subset", ...) removed."""
    return " ".join(_SUBSET_SUFFIX_RE.sub("", name or "").split()).lower()


def select_variant(variants: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Near-mint variant when one exists, else the first variant with a price."""
    for variant in variants:
        label = f"{variant.get('id') or ''} {variant.get('condition') or ''}"
        if _NEAR_MINT_RE.search(label) and coerce_price(variant.get("price")) is not None:
            return variant
    for variant in variants:
        if coerce_price(variant.get("price")) is not None:
            return variant
    return None


def _unwrap(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    if isinstance(data, list):
        return data
    return []


class JustTCGAdapter(SourceFetcher):
    """
    Adapter for the JustTCG pricing API.

    Lookup chain:
    1. Search inside the resolved set
    2. Search inside related subsets (e.g. "Crown Zenith: Galarian Gallery")
    3. Search without a set restriction, keeping name matches only
    """

    requires_api_key = True
    SETS_CACHE_SECONDS = 60 * 60

    def __init__(
        self,
        config: AdapterConfig | None = None,
        rate_limits: RateLimitTracker | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        if config is None:
            config = self.config_from_settings(settings)
        super().__init__(config, rate_limits=rate_limits, client=client)
        self.game = config.extra.get("game", "pokemon")
        self._sets: list[dict[str, Any]] = []
        self._sets_fetched_at: float | None = None

    @classmethod
    def config_from_settings(cls, app_settings: Settings) -> AdapterConfig:
        return AdapterConfig(
            base_url=app_settings.justtcg_base_url,
            api_key=app_settings.justtcg_api_key or None,
            timeout_seconds=app_settings.external_api_timeout,
            user_agent=app_settings.user_agent,
            extra={"game": app_settings.justtcg_game},
        )

    @property
    def source_id(self) -> str:
        return "justtcg"

    @property
    def source_name(self) -> str:
        return "TCGplayer (JustTCG)"

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        if self.config.api_key:
            headers["X-API-Key"] = self.config.api_key
        return headers

    def _is_rate_limit_signal(self, response: httpx.Response) -> bool:
        # 402 is returned once the plan's request quota is exhausted.
        return response.status_code in (402, 429)

    async def list_sets(self) -> list[dict[str, Any]]:
        if self._sets_fetched_at and time.monotonic() - self._sets_fetched_at < self.SETS_CACHE_SECONDS:
            return self._sets

        data = await self._request("GET", "/v1/sets", params={"game": self.game})
        self._sets = _unwrap(data)
        self._sets_fetched_at = time.monotonic()
        logger.debug("JustTCG sets cached", count=len(self._sets))
        return self._sets

    async def resolve_set_id(self, set_name: Optional[str]) -> Optional[str]:
        """JustTCG set id for a set name: exact match first, then partial."""
        if not is_known_set(set_name):
            return None

        partial = None
        for card_set in await self.list_sets():
            match = set_name_matches(card_set.get("name"), set_name)
            if match == SetMatch.EXACT:
                return card_set.get("id")
            if match == SetMatch.PARTIAL and partial is None:
                partial = card_set.get("id")

        if partial is None:
            logger.debug("No JustTCG set matched", set=set_name)
        return partial

    async def related_subsets(self, set_id: str) -> list[str]:
        """
        Ids of sets that look like subsets of ``set_id``.

        A set is related when its name starts with the original set's name
        or contains the original's base name as whole words.
        """
        sets = await self.list_sets()
        original = next((s for s in sets if s.get("id") == set_id), None)
        if original is None or not original.get("name"):
            return []

        name = original["name"].lower()
        base = base_set_name(original["name"])
        base_re = re.compile(rf"\b{re.escape(base)}\b") if base else None
        related = []
        for card_set in sets:
            other = (card_set.get("name") or "").lower()
            if card_set.get("id") == set_id or not other:
                continue
            if other.startswith(name) or (base_re and other != base and base_re.search(other)):
                related.append(card_set["id"])
        return related

    async def search(self, query: str, set_id: Optional[str] = None) -> list[dict[str, Any]]:
        params = {"q": query, "game": self.game}
        if set_id:
            params["set"] = set_id
        return _unwrap(await self._request("GET", "/v1/cards", params=params))

    async def get_variant(self, variant_id: str) -> Optional[dict[str, Any]]:
        """Fresh card record for a single variant id."""
        cards = _unwrap(await self._request("GET", "/v1/cards", params={"variantId": variant_id}))
        return cards[0] if cards else None

    async def _search_set(self, query: str, set_id: Optional[str]) -> list[dict[str, Any]]:
        if not set_id:
            return []
        return await self.search(query, set_id)

    async def _search_subsets(self, query: str, set_id: Optional[str]) -> list[dict[str, Any]]:
        if not set_id:
            return []
        for subset_id in await self.related_subsets(set_id):
            try:
                results = await self.search(query, subset_id)
            except TransientNetworkError as e:
                logger.debug("JustTCG subset search failed", subset=subset_id, error=str(e))
                continue
            if results:
                logger.debug("JustTCG subset matched", subset=subset_id, count=len(results))
                return results
        return []

    async def _search_anywhere(self, query: str) -> list[dict[str, Any]]:
        results = await self.search(query)
        return filter_by_name(results, query, name_of=lambda c: c.get("name"))

    async def _resolve_set(self, set_name: Optional[str]) -> Optional[str]:
        try:
            return await self.resolve_set_id(set_name)
        except TransientNetworkError as e:
            logger.debug("JustTCG set lookup failed", set=set_name, error=str(e))
            return None

    async def _refresh_variant(self, variant: dict[str, Any]) -> dict[str, Any]:
        """Re-read a variant by id for its latest price; keep the search copy on failure."""
        variant_id = variant.get("id")
        if not variant_id:
            return variant
        try:
            card = await self.get_variant(variant_id)
        except (RateLimitedError, TransientNetworkError) as e:
            logger.debug("JustTCG variant refresh failed", variant=variant_id, error=str(e))
            return variant
        for fresh in (card or {}).get("variants") or []:
            if fresh.get("id") == variant_id and coerce_price(fresh.get("price")) is not None:
                return fresh
        return variant

    async def _fetch_price(self, descriptor: CardDescriptor) -> PricingQuote:
        cleaned = clean_name(descriptor.name)
        if not cleaned:
            return self.unavailable("Missing card name")

        set_id = await self._resolve_set(descriptor.set_name)
        if set_id:
            set_note = "Card not found in set"
        elif is_known_set(descriptor.set_name):
            set_note = f'Set "{descriptor.set_name}" not found on JustTCG'
        else:
            set_note = "No set given"

        result = await run_fallback_chain(
            [
                FallbackStage("set search", set_note, lambda: self._search_set(cleaned, set_id)),
                FallbackStage("subset search", "Card not found in related subsets", lambda: self._search_subsets(cleaned, set_id)),
                FallbackStage(
                    "global search",
                    f"Card #{descriptor.number} not found" if descriptor.number else "Card not found",
                    lambda: self._search_anywhere(cleaned),
                ),
            ],
            source_id=self.source_id,
        )
        if not result.succeeded:
            return self.unavailable(result.note or "Card not found")

        card = rank_candidates(
            result.value,
            cleaned,
            descriptor.number,
            name_of=lambda c: c.get("name"),
            number_of=lambda c: c.get("number"),
        )[0]
        matched = {"matched_name": card.get("name"), "matched_number": card.get("number")}

        variants = card.get("variants") or []
        if not variants:
            return self.unavailable("No variants found", **matched)

        variant = select_variant(variants)
        if variant is None:
            return self.unavailable("Price unavailable", **matched)

        variant = await self._refresh_variant(variant)
        price = coerce_price(variant.get("price"))
        if price is None:
            return self.unavailable("Price unavailable", **matched)

        logger.debug(
            "JustTCG price found",
            card=card.get("name"),
            variant=variant.get("id"),
            price=price,
            stage=result.stage,
        )
        return self.quote(
            price,
            price_type=variant.get("condition") or "Near Mint",
            details={
                "set_name": card.get("set_name") or card.get("set") or descriptor.set_name,
                "variants": [
                    {
                        "id": v.get("id"),
                        "condition": v.get("condition"),
                        "printing": v.get("printing"),
                        "price": v.get("price"),
                    }
                    for v in variants
                ],
            },
            **matched,
        )
