"""Pricing API schemas."""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CardSearchRequest(BaseModel):
    """Single-card pricing request."""
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=200, description="Card title as typed or listed")
    card_number: Optional[str] = Field(None, alias="cardNumber", description="Collector number, e.g. 074 or 074/189")
    set: Optional[str] = Field(None, description="Set name; guessed from the title when omitted")
    card_id: Optional[str] = Field(None, alias="cardId", description="Catalog card id, e.g. swsh12pt5-160")
    language: str = Field("en", description="Catalog language code")


class CatalogSearchRequest(BaseModel):
    """Catalog search request."""
    model_config = ConfigDict(populate_by_name=True)

    query: Optional[str] = Field(None, max_length=200, description="Name to search for")
    set: Optional[str] = Field(None, description="Catalog set id to list")
    rarity: Optional[str] = Field(None, description="Rarity filter (substring match)")
    type: Optional[str] = Field(None, description="Type filter (exact match)")
    language: str = Field("en", description="Catalog language code")
    include_pricing: bool = Field(False, alias="includePricing")
    refresh: bool = False


class PricedCardResponse(BaseModel):
    """Converted pricing for one card across every source."""
    title: str
    card_number: str
    set: Optional[str] = None
    language: str = "en"
    pricing: dict[str, dict[str, Any]]
    last_updated: str


class CatalogSearchResponse(BaseModel):
    """Catalog search results."""
    cards: list[dict[str, Any]]
    total: int
    query: Optional[str] = None


class ExchangeRateResponse(BaseModel):
    """Current conversion rate."""
    base: str
    target: str
    rate: float
    symbol: str
    provider: Optional[str] = None
    last_updated: Optional[str] = None
    is_fallback: bool


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
