"""
Base classes for pricing source fetchers.

Defines the data model shared by every source (card descriptors, pricing
quotes, pricing bundles) and the interface that all fetchers must implement.
"""
import copy
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx
import structlog

from tcgprice.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    PricingSourceError,
    RateLimitedError,
    TransientNetworkError,
)
from tcgprice.core.config import Settings
from tcgprice.core.rate_limit import RateLimitTracker

logger = structlog.get_logger()

# Sentinel rendered wherever a price could not be obtained.
UNAVAILABLE = "N/A"

PriceValue = Union[float, str]


def coerce_price(value: Any) -> float | None:
    """
    Turn an upstream price field into a positive float.

    Accepts numbers and numeric strings. Returns None for missing, zero,
    negative or non-finite values.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


@dataclass
class AdapterConfig:
    """Configuration for a pricing source fetcher."""
    base_url: str
    api_key: str | None = None
    timeout_seconds: float = 15.0
    user_agent: str = "TCGPriceAggregator/1.0"
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CardDescriptor:
    """What a caller knows about the card it wants priced."""
    name: str
    number: str | None = None
    set_name: str | None = None
    language: str = "en"
    card_id: str | None = None
    rarity: str | None = None


@dataclass(frozen=True)
class PricingQuote:
    """
    One source's answer for one card.

    ``average_price`` is either a positive number or the ``"N/A"`` sentinel.
    When it is the sentinel, ``note`` says why.
    """
    source_id: str
    average_price: PriceValue = UNAVAILABLE
    note: str | None = None
    matched_name: str | None = None
    matched_number: str | None = None
    source_name: str | None = None
    price_type: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_available(self) -> bool:
        return self.average_price != UNAVAILABLE

    @classmethod
    def unavailable(cls, source_id: str, note: str, **kwargs: Any) -> "PricingQuote":
        return cls(source_id=source_id, average_price=UNAVAILABLE, note=note, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "source": self.source_name or self.source_id,
            "average_price": self.average_price,
        }
        if self.note:
            data["note"] = self.note
        if self.price_type:
            data["price_type"] = self.price_type
        if self.matched_name:
            data["matched_name"] = self.matched_name
        if self.matched_number:
            data["matched_number"] = self.matched_number
        data.update(copy.deepcopy(self.details))
        return data


class PricingBundle(dict):
    """
    Mapping of source id to ``PricingQuote`` for a single card.

    Always holds an entry for every configured source, available or not.
    """

    def available(self) -> dict[str, PricingQuote]:
        return {source: quote for source, quote in self.items() if quote.is_available}

    def best(self, order: Optional[list[str]] = None) -> PricingQuote | None:
        """First available quote, following ``order`` when given."""
        for source in order or list(self):
            quote = self.get(source)
            if quote is not None and quote.is_available:
                return quote
        return None

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {source: quote.to_dict() for source, quote in self.items()}


class SourceFetcher(ABC):
    """
    Abstract base class for pricing sources.

    Subclasses implement ``_fetch_price``; callers use ``fetch_price``, which
    never raises and always answers with a ``PricingQuote``.
    """

    requires_api_key: bool = False

    def __init__(
        self,
        config: AdapterConfig,
        rate_limits: RateLimitTracker | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the fetcher.

        Args:
            config: Base URL, credentials and timeouts.
            rate_limits: Shared cooldown tracker.
            client: Optional pre-built HTTP client. When given, the fetcher
                does not own it and ``close`` leaves it open.
        """
        self.config = config
        self.rate_limits = rate_limits if rate_limits is not None else RateLimitTracker()
        self._client = client
        self._owns_client = client is None

    @classmethod
    @abstractmethod
    def config_from_settings(cls, app_settings: Settings) -> AdapterConfig:
        """Default configuration for this source, read from application settings."""
        pass

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Stable identifier used as the bundle key."""
        pass

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Human readable source name."""
        pass

    @property
    def is_configured(self) -> bool:
        return not self.requires_api_key or bool(self.config.api_key)

    def _default_headers(self) -> dict[str, str]:
        return {"User-Agent": self.config.user_agent, "Accept": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                headers=self._default_headers(),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return self.config.base_url.rstrip("/") + "/" + endpoint.lstrip("/")

    def _is_rate_limit_signal(self, response: httpx.Response) -> bool:
        return response.status_code == 429

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any | None:
        """
        Make one upstream call.

        Returns:
            Decoded JSON body, or None for a 404.

        Raises:
            RateLimitedError: Source is cooling down or just answered with a
                limit signal.
            ConfigurationError: Credentials were rejected.
            TransientNetworkError: Timeout, connection failure, bad status or
                undecodable body.
        """
        if self.rate_limits.is_limited(self.source_id):
            raise RateLimitedError("Rate limited", source_id=self.source_id)

        client = await self._get_client()
        headers = {**self._default_headers(), **kwargs.pop("headers", {})}

        try:
            response = await client.request(method, self._url(endpoint), headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientNetworkError("Request timed out", source_id=self.source_id) from e
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Network error: {e}", source_id=self.source_id) from e

        if self._is_rate_limit_signal(response):
            retry_after = response.headers.get("Retry-After")
            self.rate_limits.mark_limited(self.source_id, retry_after=retry_after)
            raise RateLimitedError("Rate limited", source_id=self.source_id, retry_after=retry_after)

        if response.status_code == 404:
            return None

        if response.status_code in (401, 403):
            raise ConfigurationError(
                f"Access forbidden - API key may be expired or invalid: {response.status_code}",
                source_id=self.source_id,
            )

        if response.status_code >= 400:
            raise TransientNetworkError(
                f"API error: {response.status_code}",
                source_id=self.source_id,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransientNetworkError("Invalid JSON response", source_id=self.source_id) from e

    def quote(self, price: float, **kwargs: Any) -> PricingQuote:
        return PricingQuote(
            source_id=self.source_id,
            average_price=round(price, 2),
            source_name=self.source_name,
            **kwargs,
        )

    def unavailable(self, note: str, **kwargs: Any) -> PricingQuote:
        return PricingQuote.unavailable(
            self.source_id,
            note,
            source_name=self.source_name,
            **kwargs,
        )

    async def fetch_price(self, descriptor: CardDescriptor) -> PricingQuote:
        """
        Price a card from this source.

        Never raises. Every failure mode is folded into an unavailable quote
        whose note explains what happened.
        """
        if not self.is_configured:
            return self.unavailable("API key not configured")

        if self.rate_limits.is_limited(self.source_id):
            return self.unavailable("Rate limited")

        if not self.rate_limits.try_acquire(self.source_id):
            return self.unavailable("Request budget exhausted")

        log = logger.bind(source=self.source_id, card=descriptor.name, number=descriptor.number)

        try:
            return await self._fetch_price(descriptor)
        except RateLimitedError:
            return self.unavailable("Rate limited")
        except ConfigurationError as e:
            log.warning("Source rejected credentials", error=str(e))
            return self.unavailable(str(e))
        except NotFoundError as e:
            return self.unavailable(str(e))
        except PricingSourceError as e:
            log.warning("Source request failed", error=str(e))
            return self.unavailable(str(e))
        except Exception as e:
            log.error("Unexpected error fetching price", error=str(e), exc_info=True)
            return self.unavailable("Unexpected error")

    @abstractmethod
    async def _fetch_price(self, descriptor: CardDescriptor) -> PricingQuote:
        """
        Source-specific lookup.

        May raise ``PricingSourceError`` subclasses; ``fetch_price`` turns
        them into unavailable quotes.
        """
        pass

    async def health_check(self) -> bool:
        """
        Check if the source is reachable.

        Returns:
            True if healthy, False otherwise.
        """
        return self.is_configured and not self.rate_limits.is_limited(self.source_id)

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
