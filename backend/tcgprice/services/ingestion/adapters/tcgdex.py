"""
TCGdex catalog adapter.

TCGdex is the open card catalog. It needs no API key and embeds TCGplayer
and Cardmarket price summaries in each full card record, which makes it the
primary pricing source.

API documentation: https://tcgdex.dev
"""
import re
import time
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
    SetMatch,
    clean_name,
    filter_by_name,
    is_known_set,
    normalize_card_number,
    rank_candidates,
    set_name_matches,
)

logger = structlog.get_logger()

# Variant keys in preference order, with the label reported as price_type.
PRICE_VARIANTS = [
    ("holofoil", "Holofoil Market"),
    ("reverse-holofoil", "Reverse Holofoil Market"),
    ("reverseHolofoil", "Reverse Holofoil Market"),
    ("normal", "Normal Market"),
]

_POCKET_ID_RE = re.compile(r"^A\d+", re.IGNORECASE)
_IMAGE_EXT_RE = re.compile(r"\.(?:png|jpe?g|webp|svg)$", re.IGNORECASE)


def is_pocket_set(card_set: dict[str, Any]) -> bool:
    """True for sets from the digital Pocket game, which carry no market prices."""
    set_id = str(card_set.get("id") or "")
    for asset in (card_set.get("logo"), card_set.get("symbol")):
        if asset and "/tcgp/" in str(asset):
            return True
    return "tcgp" in set_id.lower() or bool(_POCKET_ID_RE.match(set_id)) or set_id == "A"


def set_logo(card_set: dict[str, Any]) -> Optional[str]:
    """
    Displayable logo URL for a set.

    Catalog asset URLs come without an extension; ``.png`` is appended.
    Sets without a logo fall back to their symbol.
    """
    for asset in (card_set.get("logo"), card_set.get("symbol")):
        if asset:
            asset = str(asset)
            return asset if _IMAGE_EXT_RE.search(asset) else f"{asset}.png"
    return None


def select_market_price(tcgplayer: Optional[dict[str, Any]]) -> Optional[tuple[float, str]]:
    """
    Pick the representative market price from a TCGplayer pricing tree.

    Holofoil, then reverse holofoil, then normal, then the first variant
    carrying a market price.
    """
    if not isinstance(tcgplayer, dict):
        return None

    for key, label in PRICE_VARIANTS:
        variant = tcgplayer.get(key)
        if isinstance(variant, dict):
            price = coerce_price(variant.get("marketPrice"))
            if price is not None:
                return price, label

    for variant in tcgplayer.values():
        if isinstance(variant, dict):
            price = coerce_price(variant.get("marketPrice"))
            if price is not None:
                return price, "Fallback Market"

    return None


class TCGdexAdapter(SourceFetcher):
    """
    Adapter for the TCGdex card catalog.

    Lookup chain for a descriptor:
    1. Direct fetch by catalog card id, when the caller has one
    2. Resolve the set name to a catalog set id, fetch ``{set}-{number}``
    3. Global name search, filtered by name and ranked by number
    """

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
        self._sets_cache: dict[str, tuple[float, list[dict[str, Any]]]] = {}

    @classmethod
    def config_from_settings(cls, app_settings: Settings) -> AdapterConfig:
        return AdapterConfig(
            base_url=app_settings.tcgdex_base_url,
            timeout_seconds=app_settings.external_api_timeout,
            user_agent=app_settings.user_agent,
        )

    @property
    def source_id(self) -> str:
        return "tcgdex"

    @property
    def source_name(self) -> str:
        return "TCGplayer (TCGdex)"

    async def list_sets(self, language: str = "en") -> list[dict[str, Any]]:
        """All catalog sets for a language, Pocket sets excluded. Cached for an hour."""
        cached = self._sets_cache.get(language)
        if cached and time.monotonic() - cached[0] < self.SETS_CACHE_SECONDS:
            return cached[1]

        data = await self._request("GET", f"/v2/{language}/sets")
        sets = [s for s in (data or []) if isinstance(s, dict) and not is_pocket_set(s)]
        self._sets_cache[language] = (time.monotonic(), sets)
        logger.debug("TCGdex sets cached", language=language, count=len(sets))
        return sets

    async def resolve_set_id(self, set_name: Optional[str], language: str = "en") -> Optional[str]:
        """Catalog set id for a set name: exact match first, then partial."""
        if not is_known_set(set_name):
            return None

        sets = await self.list_sets(language)
        partial = None
        for card_set in sets:
            match = set_name_matches(card_set.get("name"), set_name)
            if match == SetMatch.EXACT:
                return card_set.get("id")
            if match == SetMatch.PARTIAL and partial is None:
                partial = card_set.get("id")
        return partial

    async def get_card(self, card_id: str, language: str = "en") -> Optional[dict[str, Any]]:
        """Full card record, including embedded pricing."""
        return await self._request("GET", f"/v2/{language}/cards/{card_id}")

    async def search_cards(
        self,
        query: Optional[str] = None,
        language: str = "en",
        **filters: Any,
    ) -> list[dict[str, Any]]:
        """
        Brief card records matching a name query.

        Extra keyword filters (``rarity``, ``types``) are forwarded to the
        catalog as query parameters.
        """
        params = {k: v for k, v in filters.items() if v}
        if query:
            params["name"] = query
        data = await self._request("GET", f"/v2/{language}/cards", params=params)
        return data if isinstance(data, list) else []

    async def get_set(self, set_id: str, language: str = "en") -> Optional[dict[str, Any]]:
        """Full set record (release date, card count, brief cards), or None."""
        data = await self._request("GET", f"/v2/{language}/sets/{set_id}")
        return data if isinstance(data, dict) else None

    async def list_set_cards(self, set_id: str, language: str = "en") -> list[dict[str, Any]]:
        """Brief card records of a single set."""
        card_set = await self.get_set(set_id, language)
        return (card_set or {}).get("cards") or []

    def quote_from_card(self, card: dict[str, Any]) -> PricingQuote:
        """Build a quote from a full card record's embedded pricing."""
        pricing = card.get("pricing") or {}
        tcgplayer = pricing.get("tcgplayer")
        details = {
            "tcgplayer": tcgplayer or {},
            "cardmarket": pricing.get("cardmarket") or {},
        }
        matched = {
            "matched_name": card.get("name"),
            "matched_number": card.get("localId"),
        }

        selected = select_market_price(tcgplayer)
        if selected is None:
            return self.unavailable("Price unavailable", details=details, **matched)

        price, price_type = selected
        return self.quote(price, price_type=price_type, details=details, **matched)

    async def _fetch_by_id(self, descriptor: CardDescriptor) -> Optional[dict[str, Any]]:
        if not descriptor.card_id:
            return None
        return await self.get_card(descriptor.card_id, descriptor.language)

    async def _fetch_by_set_and_number(self, descriptor: CardDescriptor) -> Optional[dict[str, Any]]:
        if not descriptor.number:
            return None
        set_id = await self.resolve_set_id(descriptor.set_name, descriptor.language)
        if not set_id:
            return None

        # Local ids are sometimes zero-padded ("074"), sometimes not.
        raw = descriptor.number.split("/")[0].strip()
        for local_id in dict.fromkeys([raw, normalize_card_number(raw), raw.zfill(3)]):
            card = await self.get_card(f"{set_id}-{local_id}", descriptor.language)
            if card:
                return card
        return None

    async def _fetch_by_name(self, descriptor: CardDescriptor) -> Optional[dict[str, Any]]:
        cleaned = clean_name(descriptor.name)
        if not cleaned:
            return None

        results = await self.search_cards(cleaned, descriptor.language)
        candidates = filter_by_name(results, cleaned, name_of=lambda c: c.get("name"))
        if not candidates:
            return None

        ranked = rank_candidates(
            candidates,
            cleaned,
            descriptor.number,
            name_of=lambda c: c.get("name"),
            number_of=lambda c: c.get("localId"),
        )
        best = ranked[0]
        # Search results are brief records without pricing.
        return await self.get_card(best["id"], descriptor.language) or best

    async def find_card(self, descriptor: CardDescriptor) -> Optional[dict[str, Any]]:
        """Walk the lookup chain and return the full card record, if any."""
        result = await run_fallback_chain(
            [
                FallbackStage("catalog id", "Card not found in catalog", lambda: self._fetch_by_id(descriptor)),
                FallbackStage(
                    "set and number",
                    "Card not found in set",
                    lambda: self._fetch_by_set_and_number(descriptor),
                ),
                FallbackStage("name search", "Card not found in catalog", lambda: self._fetch_by_name(descriptor)),
            ],
            source_id=self.source_id,
        )
        return result.value

    async def _fetch_price(self, descriptor: CardDescriptor) -> PricingQuote:
        card = await self.find_card(descriptor)
        if card is None:
            return self.unavailable("Card not found in catalog")

        logger.debug(
            "TCGdex card resolved",
            card=descriptor.name,
            card_id=card.get("id"),
            set=(card.get("set") or {}).get("name"),
        )
        return self.quote_from_card(card)

    async def health_check(self) -> bool:
        try:
            sets = await self.list_sets()
            return len(sets) > 0
        except Exception:
            return False
