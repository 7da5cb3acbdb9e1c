"""
Per-source rate-limit cooldown tracking.

When an upstream source answers with a 429 (or its own limit signal) it is
put into a fixed cooldown. Fetchers check the tracker before every call and
skip the source until the cooldown has elapsed. Expiry is checked lazily on
the next call attempt; there are no background timers.

Sources can also be given a fixed-window request budget (JustTCG 100 per
hour, the others per minute) so the service stays under upstream quotas
before it ever sees a 429.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import structlog

from tcgprice.core.config import Settings

logger = structlog.get_logger()


class SourceState(Enum):
    AVAILABLE = "available"
    COOLDOWN = "cooldown"


@dataclass
class RateLimitState:
    """Cooldown state for a single source."""
    cooldown_until: Optional[float] = None

    @property
    def state(self) -> SourceState:
        return SourceState.AVAILABLE if self.cooldown_until is None else SourceState.COOLDOWN


@dataclass
class RequestBudget:
    """Fixed-window allowance: at most ``max_requests`` per ``window_seconds``."""
    max_requests: int
    window_seconds: float
    used: int = 0
    window_ends: Optional[float] = None


@dataclass
class RateLimitTracker:
    """
    Tracks throttled sources and their request budgets.

    States per source:
    - AVAILABLE: calls go through
    - COOLDOWN: calls are skipped until ``cooldown_until``

    Usage:
        tracker = RateLimitTracker(cooldown_seconds=3600)

        if tracker.is_limited("justtcg"):
            return PricingQuote.unavailable("justtcg", "Rate limited")
        ...
        if response.status_code == 429:
            tracker.mark_limited("justtcg")

    A source can also carry a request budget (``set_budget``). Once the
    budget for the current window is spent, ``try_acquire`` refuses calls
    until the window rolls over. Running out of budget is not a cooldown.
    """
    cooldown_seconds: float = 3600.0
    clock: Callable[[], float] = field(default=time.time)
    _states: dict[str, RateLimitState] = field(default_factory=dict)
    _budgets: dict[str, RequestBudget] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimitTracker":
        """Tracker with the configured cooldown and per-source budgets."""
        tracker = cls(cooldown_seconds=settings.rate_limit_cooldown_seconds)
        tracker.set_budget("justtcg", settings.justtcg_requests_per_hour, 60 * 60)
        tracker.set_budget("pricetracker", settings.pricetracker_requests_per_minute, 60)
        tracker.set_budget("ebay", settings.ebay_requests_per_minute, 60)
        return tracker

    def _state(self, source: str) -> RateLimitState:
        if source not in self._states:
            self._states[source] = RateLimitState()
        return self._states[source]

    def state(self, source: str) -> SourceState:
        """Current state of a source, applying lazy expiry."""
        self.is_limited(source)
        return self._state(source).state

    def is_limited(self, source: str) -> bool:
        """Return True while the source is cooling down."""
        state = self._state(source)
        if state.cooldown_until is None:
            return False

        if self.clock() < state.cooldown_until:
            return True

        state.cooldown_until = None
        logger.info("Rate limit cooldown elapsed, resuming requests", source=source)
        return False

    def mark_limited(self, source: str, retry_after: Optional[str] = None) -> float:
        """
        Put a source into cooldown.

        Args:
            source: Source identifier.
            retry_after: Upstream Retry-After header, logged only.

        Returns:
            Timestamp at which the cooldown ends.
        """
        until = self.clock() + self.cooldown_seconds
        self._state(source).cooldown_until = until
        logger.warning(
            "Source rate limited, cooling down",
            source=source,
            cooldown_seconds=self.cooldown_seconds,
            retry_after=retry_after,
        )
        return until

    def remaining(self, source: str) -> float:
        """Seconds left in the cooldown (0 when available)."""
        if not self.is_limited(source):
            return 0.0
        return max(0.0, self._state(source).cooldown_until - self.clock())

    def reset(self, source: Optional[str] = None) -> None:
        """Clear cooldown and budget usage for one source, or for all of them."""
        budgets = self._budgets.values() if source is None else [self._budgets.get(source)]
        for budget in budgets:
            if budget is not None:
                budget.used = 0
                budget.window_ends = None
        if source is None:
            self._states.clear()
        else:
            self._states.pop(source, None)

    def set_budget(self, source: str, max_requests: int, window_seconds: float) -> None:
        """Allow ``max_requests`` calls per window; 0 or less removes the budget."""
        if max_requests <= 0:
            self._budgets.pop(source, None)
            return
        self._budgets[source] = RequestBudget(max_requests=max_requests, window_seconds=window_seconds)

    def try_acquire(self, source: str) -> bool:
        """
        Spend one request from the source's budget.

        Returns False when the current window is used up. Sources without a
        budget always get True.
        """
        budget = self._budgets.get(source)
        if budget is None:
            return True

        now = self.clock()
        if budget.window_ends is None or now >= budget.window_ends:
            budget.window_ends = now + budget.window_seconds
            budget.used = 0

        if budget.used >= budget.max_requests:
            logger.warning(
                "Request budget exhausted",
                source=source,
                max_requests=budget.max_requests,
                resets_in=round(budget.window_ends - now, 1),
            )
            return False

        budget.used += 1
        return True

    def budget_remaining(self, source: str) -> Optional[int]:
        """Requests left in the current window, or None without a budget."""
        budget = self._budgets.get(source)
        if budget is None:
            return None
        if budget.window_ends is None or self.clock() >= budget.window_ends:
            return budget.max_requests
        return budget.max_requests - budget.used
