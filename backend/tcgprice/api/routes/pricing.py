"""
Pricing API endpoints.

Thin wrappers over ``PricingAggregator``: single-card pricing, catalog
search, card details and the current exchange rate.
"""
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from tcgprice.core.exceptions import PricingSourceError
from tcgprice.schemas.pricing import (
    CardSearchRequest,
    CatalogSearchRequest,
    CatalogSearchResponse,
    ExchangeRateResponse,
    PricedCardResponse,
)
from tcgprice.services.ingestion.base import CardDescriptor
from tcgprice.services.pricing.aggregator import CatalogFilters, PricingAggregator

router = APIRouter()
logger = structlog.get_logger(__name__)


def get_aggregator(request: Request) -> PricingAggregator:
    """The aggregator created in the application lifespan."""
    return request.app.state.aggregator


def require_language(aggregator: PricingAggregator, language: str) -> str:
    try:
        return aggregator.check_language(language)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/search", response_model=PricedCardResponse)
async def search_card_prices(
    body: CardSearchRequest,
    aggregator: PricingAggregator = Depends(get_aggregator),
):
    """
    Price one card across every source.

    Individual source failures show up as "N/A" entries with a note; this
    endpoint only fails on invalid input.
    """
    language = require_language(aggregator, body.language)
    title = body.title.strip()
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")

    descriptor = CardDescriptor(
        name=title,
        number=body.card_number,
        set_name=body.set,
        language=language,
        card_id=body.card_id,
    )
    logger.info("Card pricing requested", title=title, number=body.card_number, set=body.set)
    return await aggregator.resolve_priced_card(descriptor)


@router.post("/search-cards", response_model=CatalogSearchResponse)
async def search_catalog_cards(
    body: CatalogSearchRequest,
    aggregator: PricingAggregator = Depends(get_aggregator),
):
    """Search the catalog, optionally with per-card pricing."""
    language = require_language(aggregator, body.language)
    filters = CatalogFilters(set_id=body.set, rarity=body.rarity, card_type=body.type)

    try:
        cards = await aggregator.search_catalog(
            query=body.query,
            filters=filters,
            include_pricing=body.include_pricing,
            refresh=body.refresh,
            language=language,
        )
    except PricingSourceError as e:
        logger.warning("Catalog search failed", query=body.query, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Catalog unavailable: {e}")

    return CatalogSearchResponse(cards=cards, total=len(cards), query=body.query)


@router.get("/card-details/{card_id}")
async def get_card_details(
    card_id: str,
    lang: str = Query("en", description="Catalog language code"),
    aggregator: PricingAggregator = Depends(get_aggregator),
):
    """Full catalog card with converted pricing from every source."""
    language = require_language(aggregator, lang)

    try:
        card = await aggregator.card_details(card_id, language)
    except PricingSourceError as e:
        logger.warning("Card details lookup failed", card_id=card_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Catalog unavailable: {e}")

    if card is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Card not found")
    return card


@router.get("/exchange-rate", response_model=ExchangeRateResponse)
async def get_exchange_rate(aggregator: PricingAggregator = Depends(get_aggregator)):
    """Current USD to target-currency rate."""
    return await aggregator.exchange_rate()
