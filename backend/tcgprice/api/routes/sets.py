"""
Set browsing endpoints.
"""
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from tcgprice.api.routes.pricing import get_aggregator, require_language
from tcgprice.core.exceptions import PricingSourceError
from tcgprice.services.pricing.aggregator import PricingAggregator

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/sets/{language}")
async def list_sets(
    language: str,
    refresh: bool = Query(False, description="Bypass the cached listing"),
    aggregator: PricingAggregator = Depends(get_aggregator),
):
    """Most recent catalog sets for a language, newest first."""
    language = require_language(aggregator, language)

    try:
        return await aggregator.browse_sets(language, refresh=refresh)
    except PricingSourceError as e:
        logger.warning("Set listing failed", language=language, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Catalog unavailable: {e}")


@router.get("/sets/{language}/{set_id}")
async def get_set(
    language: str,
    set_id: str,
    aggregator: PricingAggregator = Depends(get_aggregator),
):
    """One set with its card list."""
    language = require_language(aggregator, language)

    try:
        card_set = await aggregator.set_details(set_id, language)
    except PricingSourceError as e:
        logger.warning("Set lookup failed", set_id=set_id, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Catalog unavailable: {e}")

    if card_set is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Set not found")
    return card_set
