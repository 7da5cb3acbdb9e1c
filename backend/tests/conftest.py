"""
Pytest configuration and fixtures.

Provides fixtures for:
- Test settings with API keys set and pacing delays disabled
- A routed stub of every upstream HTTP API, served through httpx.MockTransport
- Catalog, pricing and sold-listing payloads for a known card
- A fully wired aggregator and an HTTP client for the FastAPI app
"""
from typing import Any, AsyncGenerator, Callable, Union

import httpx
import pytest
import pytest_asyncio
import structlog

from tcgprice.core.config import Settings
from tcgprice.services.pricing.aggregator import PricingAggregator

TCGDEX = "https://api.tcgdex.net"
JUSTTCG = "https://api.justtcg.com"
PRICETRACKER = "https://www.pokemonpricetracker.com"
EBAY = "https://ebay-average-selling-price.p.rapidapi.com"

Responder = Union[dict, list, httpx.Response, Callable[[httpx.Request], httpx.Response]]


@pytest.fixture(autouse=True)
def uncached_logging():
    """Plain structlog defaults around every test, so no logger keeps a captured stream."""
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


class UpstreamStub:
    """
    Routes requests by method and URL (query string ignored).

    Responders can be a JSON body, a ready ``httpx.Response`` or a callable
    taking the request. Unrouted requests get a 404. Every request is
    recorded in ``calls``.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Responder] = {}
        self.calls: list[httpx.Request] = []

    def add(self, method: str, url: str, responder: Responder) -> None:
        self.routes[(method.upper(), url)] = responder

    def get(self, url: str, responder: Responder) -> None:
        self.add("GET", url, responder)

    def post(self, url: str, responder: Responder) -> None:
        self.add("POST", url, responder)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        responder = self.routes.get((request.method, url))
        if responder is None:
            return httpx.Response(404, json={"error": "Not found"})
        if callable(responder):
            return responder(request)
        if isinstance(responder, httpx.Response):
            return responder
        return httpx.Response(200, json=responder)

    def count(self, prefix: str = "") -> int:
        """Number of recorded calls whose URL starts with ``prefix``."""
        return sum(1 for request in self.calls if str(request.url).startswith(prefix))

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def _charizard_tcgplayer() -> dict[str, Any]:
    return {
        "updated": "2025-01-10T00:00:00Z",
        "unit": "USD",
        "holofoil": {
            "lowPrice": 18.5,
            "midPrice": 24.0,
            "highPrice": 60.0,
            "marketPrice": 22.75,
            "directLowPrice": 21.0,
        },
    }


@pytest.fixture
def charizard_card() -> dict[str, Any]:
    """Full catalog record with embedded pricing."""
    return {
        "id": "swsh3-020",
        "localId": "020",
        "name": "Charizard VMAX",
        "rarity": "Rare Holo VMAX",
        "types": ["Fire"],
        "set": {"id": "swsh3", "name": "Darkness Ablaze", "cardCount": {"official": 189}},
        "pricing": {
            "tcgplayer": _charizard_tcgplayer(),
            "cardmarket": {"avg": 20.1, "low": 15.0, "trend": 21.3, "avg30": 19.8},
        },
    }


@pytest.fixture
def catalog_sets() -> list[dict[str, Any]]:
    return [
        {"id": "swsh3", "name": "Darkness Ablaze", "logo": "https://assets.tcgdex.net/en/swsh/swsh3/logo"},
        {"id": "swsh12pt5", "name": "Crown Zenith", "logo": "https://assets.tcgdex.net/en/swsh/swsh12pt5/logo"},
        {"id": "A1", "name": "Genetic Apex", "logo": "https://assets.tcgdex.net/en/tcgp/A1/logo"},
    ]


@pytest.fixture
def pricetracker_results() -> dict[str, Any]:
    return {
        "data": [
            {
                "name": "Charizard VMAX",
                "cardNumber": "074",
                "set": {"name": "Champion's Path"},
                "prices": {"market": 80.0},
            },
            {
                "name": "Charizard VMAX",
                "cardNumber": "020",
                "set": {"name": "Darkness Ablaze"},
                "prices": {"market": 25.5, "low": 19.0},
            },
        ]
    }


@pytest.fixture
def ebay_results() -> dict[str, Any]:
    return {
        "products": [
            {
                "title": "Charizard VMAX 020/189 Darkness Ablaze NM Opens in a new window or tab",
                "sale_price": 24.0,
                "condition": {"conditionDisplayName": "Near Mint"},
                "date_sold": "2025-01-05",
                "link": "https://www.ebay.com/itm/1",
            },
            {
                "title": "Pokemon Charizard VMAX Darkness Ablaze Holo",
                "sale_price": 26.0,
                "condition": "Used",
                "date_sold": "2025-01-04",
                "link": "https://www.ebay.com/itm/2",
            },
            {
                "title": "PSA 10 Charizard VMAX 020/189 Darkness Ablaze",
                "sale_price": 180.0,
            },
            {
                "title": "Charizard VMAX 074/073 Champion's Path",
                "sale_price": 90.0,
            },
            {
                "title": "Darkness Ablaze booster box sealed Charizard VMAX",
                "sale_price": 140.0,
            },
        ]
    }


@pytest.fixture
def test_settings() -> Settings:
    """Settings with every source configured, no pacing delays and no request budgets."""
    return Settings(
        _env_file=None,
        api_debug=False,
        justtcg_api_key="justtcg-test-key",
        pokemonpricetracker_api_key="tracker-test-key",
        rapidapi_key="rapidapi-test-key",
        pricing_call_delay_seconds=0,
        fallback_call_delay_seconds=0,
        card_stagger_seconds=0,
        justtcg_requests_per_hour=0,
        pricetracker_requests_per_minute=0,
        ebay_requests_per_minute=0,
    )


@pytest.fixture
def upstream(catalog_sets, charizard_card, pricetracker_results, ebay_results) -> UpstreamStub:
    """Upstream APIs serving one well-known card."""
    stub = UpstreamStub()
    stub.get(f"{TCGDEX}/v2/en/sets", catalog_sets)
    stub.get(f"{TCGDEX}/v2/en/cards/swsh3-020", charizard_card)
    stub.get(
        f"{TCGDEX}/v2/en/cards",
        [{"id": "swsh3-020", "localId": "020", "name": "Charizard VMAX"}],
    )
    stub.get(f"{PRICETRACKER}/api/v2/cards", pricetracker_results)
    stub.post(f"{EBAY}/findCompletedItems", ebay_results)
    stub.get("https://open.er-api.com/v6/latest/USD", {"result": "success", "rates": {"INR": 83.0}})
    return stub


@pytest_asyncio.fixture
async def aggregator(upstream, test_settings) -> AsyncGenerator[PricingAggregator, None]:
    """Aggregator wired to the stubbed upstream APIs."""
    client = upstream.client()
    agg = PricingAggregator.from_settings(test_settings, client=client)
    yield agg
    await agg.close()
    await client.aclose()


@pytest_asyncio.fixture
async def api_client(aggregator) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for the FastAPI app, backed by the stubbed aggregator."""
    from tcgprice.main import create_app

    app = create_app(aggregator=aggregator)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
