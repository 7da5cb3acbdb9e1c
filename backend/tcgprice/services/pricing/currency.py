"""
Currency conversion for displayed prices.

Upstream sources quote in USD. Prices are converted to the configured
target currency (INR by default) and formatted for display just before
they leave the service. The exchange rate comes from a chain of free
providers, is cached for an hour, and falls back to a fixed rate when
every provider fails.
"""
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx
import structlog

from tcgprice.core.config import Settings, settings as default_settings
from tcgprice.services.ingestion.base import UNAVAILABLE

logger = structlog.get_logger()

# Keys whose values are USD amounts anywhere in a pricing tree.
PRICE_FIELDS = frozenset({
    "average_price",
    "price",
    "sale_price",
    # TCGplayer variant fields
    "lowPrice",
    "midPrice",
    "highPrice",
    "marketPrice",
    "directLowPrice",
    # Cardmarket summary fields
    "avg",
    "low",
    "trend",
    "avg1",
    "avg7",
    "avg30",
    "avg-holo",
    "low-holo",
    "trend-holo",
    "avg1-holo",
    "avg7-holo",
    "avg30-holo",
    # Price tracker fields
    "market",
    "mid",
    "high",
})


@dataclass
class RateProvider:
    """One exchange-rate endpoint and how to read the rate out of its body."""
    name: str
    url: str
    extract: Callable[[dict[str, Any]], Any]
    params: dict[str, str] = field(default_factory=dict)


def default_providers(base: str = "USD", quote: str = "INR") -> list[RateProvider]:
    """Free, keyless exchange-rate providers in the order they are tried."""
    base_upper, quote_upper = base.upper(), quote.upper()
    base_lower, quote_lower = base.lower(), quote.lower()
    return [
        RateProvider(
            name="ExchangeRate-API",
            url=f"https://open.er-api.com/v6/latest/{base_upper}",
            extract=lambda data: data["rates"][quote_upper],
        ),
        RateProvider(
            name="exchangerate.host",
            url="https://api.exchangerate.host/latest",
            params={"base": base_upper, "symbols": quote_upper},
            extract=lambda data: data["rates"][quote_upper],
        ),
        RateProvider(
            name="Frankfurter",
            url="https://api.frankfurter.app/latest",
            params={"from": base_upper, "to": quote_upper},
            extract=lambda data: data["rates"][quote_upper],
        ),
        RateProvider(
            name="Fawaz Currency API",
            url=(
                "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest"
                f"/v1/currencies/{base_lower}.json"
            ),
            extract=lambda data: data[base_lower][quote_lower],
        ),
    ]


@dataclass
class ExchangeRateState:
    """Current rate and when it was last fetched successfully."""
    rate: float
    last_updated: Optional[float] = None
    provider: Optional[str] = None

    def is_stale(self, now: float, ttl: float) -> bool:
        return self.last_updated is None or now - self.last_updated >= ttl


def group_digits(digits: str, grouping: str = "indian") -> str:
    """
    Insert thousands separators into a string of digits.

    ``indian`` groups the last three digits, then pairs (12,34,567).
    Anything else groups in threes (1,234,567).
    """
    if grouping != "indian":
        return f"{int(digits):,}"
    if len(digits) <= 3:
        return digits

    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


class CurrencyConverter:
    """
    Converts USD amounts to the target currency and formats them.

    Usage:
        converter = CurrencyConverter.from_settings(settings)
        await converter.refresh_rate()
        converter.format(converter.convert(12.5))   # "₹1,109"
        converter.convert_tree(bundle.to_dict())
    """

    def __init__(
        self,
        fallback_rate: float = 88.72,
        ttl_seconds: float = 60 * 60,
        symbol: str = "₹",
        grouping: str = "indian",
        base_currency: str = "USD",
        target_currency: str = "INR",
        providers: Optional[list[RateProvider]] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 15.0,
        clock: Callable[[], float] = time.time,
    ):
        self.fallback_rate = fallback_rate
        self.ttl_seconds = ttl_seconds
        self.symbol = symbol
        self.grouping = grouping
        self.base_currency = base_currency
        self.target_currency = target_currency
        self.providers = providers if providers is not None else default_providers(base_currency, target_currency)
        self.timeout_seconds = timeout_seconds
        self.state = ExchangeRateState(rate=fallback_rate)
        self._client = client
        self._owns_client = client is None
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "CurrencyConverter":
        config = config or default_settings
        return cls(
            fallback_rate=config.fallback_exchange_rate,
            ttl_seconds=config.exchange_rate_ttl_seconds,
            symbol=config.currency_symbol,
            grouping=config.currency_grouping,
            target_currency=config.target_currency,
            client=client,
            timeout_seconds=config.external_api_timeout,
        )

    @property
    def rate(self) -> float:
        return self.state.rate

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
            self._owns_client = True
        return self._client

    async def _fetch_from(self, provider: RateProvider) -> Optional[float]:
        client = await self._get_client()
        response = await client.get(provider.url, params=provider.params or None)
        if response.status_code != 200:
            logger.warning(
                "Exchange rate provider returned error",
                provider=provider.name,
                status=response.status_code,
            )
            return None

        try:
            value = float(provider.extract(response.json()))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Exchange rate provider returned unexpected body", provider=provider.name, error=str(e))
            return None

        if not math.isfinite(value) or value <= 0:
            return None
        return value

    async def refresh_rate(self, force: bool = False) -> float:
        """
        Return the current rate, refetching it when stale.

        Providers are tried in order; the first valid rate wins. When all of
        them fail the previous rate (initially the fallback) is kept.
        """
        now = self._clock()
        if not force and not self.state.is_stale(now, self.ttl_seconds):
            return self.state.rate

        for provider in self.providers:
            try:
                rate = await self._fetch_from(provider)
            except httpx.HTTPError as e:
                logger.warning("Exchange rate provider failed", provider=provider.name, error=str(e))
                continue
            if rate is None:
                continue

            self.state = ExchangeRateState(rate=rate, last_updated=self._clock(), provider=provider.name)
            logger.info(
                "Exchange rate updated",
                provider=provider.name,
                base=self.base_currency,
                target=self.target_currency,
                rate=rate,
            )
            return rate

        logger.error(
            "All exchange rate providers failed, using last known rate",
            rate=self.state.rate,
            fallback=self.state.last_updated is None,
        )
        return self.state.rate

    def convert(self, amount: Any) -> Any:
        """USD amount to target currency. The ``"N/A"`` sentinel passes through."""
        if amount is None or amount == UNAVAILABLE or isinstance(amount, bool):
            return UNAVAILABLE
        if isinstance(amount, (int, float)):
            return amount * self.state.rate
        return amount

    def format(self, amount: Any) -> str:
        """
        Display string for a converted amount.

        Rounded to at most two decimals, trailing zeros dropped, grouped
        per ``grouping``. Strings (the sentinel, already formatted values)
        are returned unchanged.
        """
        if amount is None or isinstance(amount, bool):
            return UNAVAILABLE
        if isinstance(amount, str):
            return amount
        if not math.isfinite(amount):
            return UNAVAILABLE

        sign = "-" if amount < 0 else ""
        whole, _, fraction = f"{abs(amount):.2f}".partition(".")
        fraction = fraction.rstrip("0")
        text = group_digits(whole, self.grouping)
        if fraction:
            text = f"{text}.{fraction}"
        return f"{sign}{self.symbol}{text}"

    def convert_and_format(self, amount: Any) -> str:
        return self.format(self.convert(amount))

    def convert_tree(self, tree: Any) -> Any:
        """
        Copy of a nested pricing structure with every price field converted
        and formatted. Other keys are copied as-is; the input is not mutated.
        """
        if isinstance(tree, dict):
            return {key: self._convert_field(key, value) for key, value in tree.items()}
        if isinstance(tree, (list, tuple)):
            return [self.convert_tree(item) for item in tree]
        return tree

    def _convert_field(self, key: str, value: Any) -> Any:
        if isinstance(value, (dict, list, tuple)):
            return self.convert_tree(value)
        if key in PRICE_FIELDS and isinstance(value, (int, float)) and not isinstance(value, bool):
            return self.convert_and_format(value)
        return value

    def rate_info(self) -> dict[str, Any]:
        last_updated = None
        if self.state.last_updated is not None:
            last_updated = datetime.fromtimestamp(self.state.last_updated, tz=timezone.utc).isoformat()
        return {
            "base": self.base_currency,
            "target": self.target_currency,
            "rate": self.state.rate,
            "symbol": self.symbol,
            "provider": self.state.provider,
            "last_updated": last_updated,
            "is_fallback": self.state.last_updated is None,
        }

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
