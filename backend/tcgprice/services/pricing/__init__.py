"""
Pricing services: currency conversion and cross-source aggregation.
"""
from tcgprice.services.pricing.aggregator import CatalogFilters, PricingAggregator
from tcgprice.services.pricing.currency import CurrencyConverter

__all__ = ["CatalogFilters", "CurrencyConverter", "PricingAggregator"]
