"""
TCG Price Aggregator: card pricing from several upstream sources.
"""
__version__ = "1.0.0"
