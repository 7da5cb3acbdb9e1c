"""
Core module containing configuration and shared infrastructure.
"""
from tcgprice.core.config import settings
from tcgprice.core.cache import ResultCache
from tcgprice.core.rate_limit import RateLimitTracker
from tcgprice.core.request_queue import RequestQueue, RequestQueues

__all__ = [
    "settings",
    "ResultCache",
    "RateLimitTracker",
    "RequestQueue",
    "RequestQueues",
]
