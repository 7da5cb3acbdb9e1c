"""
Pricing source implementations.

TCGdex is the catalog and primary price source. JustTCG backs it up when
the catalog has no market price. Pokemon Price Tracker and eBay sold
listings are independent second opinions.
"""
from tcgprice.services.ingestion.adapters.ebay import EbayAdapter
from tcgprice.services.ingestion.adapters.justtcg import JustTCGAdapter
from tcgprice.services.ingestion.adapters.mock import MockPricingSource
from tcgprice.services.ingestion.adapters.pricetracker import PriceTrackerAdapter
from tcgprice.services.ingestion.adapters.tcgdex import TCGdexAdapter

__all__ = [
    "EbayAdapter",
    "JustTCGAdapter",
    "MockPricingSource",
    "PriceTrackerAdapter",
    "TCGdexAdapter",
]
