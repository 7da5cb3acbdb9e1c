"""
Error taxonomy for upstream pricing sources.

Fetchers raise these internally while walking their fallback chains and
translate them into "unavailable" quotes at the boundary, so callers of the
aggregator never see them.
"""
from typing import Optional


class PricingSourceError(Exception):
    """Base exception for pricing/catalog source failures."""

    def __init__(self, message: str, source_id: Optional[str] = None):
        super().__init__(message)
        self.source_id = source_id


class ConfigurationError(PricingSourceError):
    """Missing or rejected credential for a source."""
    pass


class NotFoundError(PricingSourceError):
    """No matching catalog entry or candidate."""
    pass


class RateLimitedError(PricingSourceError):
    """Source answered with HTTP 429 or a provider-specific limit signal."""

    def __init__(
        self,
        message: str,
        source_id: Optional[str] = None,
        retry_after: Optional[str] = None,
    ):
        super().__init__(message, source_id)
        self.retry_after = retry_after


class TransientNetworkError(PricingSourceError):
    """Timeout, connection failure or unexpected non-2xx response."""

    def __init__(
        self,
        message: str,
        source_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, source_id)
        self.status_code = status_code
