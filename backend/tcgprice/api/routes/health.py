"""
Health check endpoints.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from tcgprice.api.routes.pricing import get_aggregator
from tcgprice.core.rate_limit import SourceState
from tcgprice.services.pricing.aggregator import PricingAggregator

router = APIRouter()


@router.get("/health")
async def health_check(aggregator: PricingAggregator = Depends(get_aggregator)):
    """
    Health check endpoint.

    Reports which pricing sources are configured, which are cooling down
    after a rate limit and how many budgeted requests each has left.
    Never calls upstream.
    """
    sources = {}
    for fetcher in aggregator.fetchers:
        if not fetcher.is_configured:
            sources[fetcher.source_id] = "not_configured"
        elif fetcher.rate_limits.state(fetcher.source_id) == SourceState.COOLDOWN:
            sources[fetcher.source_id] = "rate_limited"
        else:
            sources[fetcher.source_id] = "ok"

    budgets = {}
    for fetcher in aggregator.fetchers:
        remaining = fetcher.rate_limits.budget_remaining(fetcher.source_id)
        if remaining is not None:
            budgets[fetcher.source_id] = remaining

    degraded = any(state != "ok" for state in sources.values())
    return {
        "status": "degraded" if degraded else "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "api": "ok",
            **sources,
        },
        "cache_entries": len(aggregator.cache),
        "request_budgets": budgets,
    }


@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "TCG Price Aggregator API",
        "version": "1.0.0",
        "docs": "/docs",
    }
