"""
Ordered fallback chains for source lookups.

A chain is a list of stages, each a zero-argument coroutine factory. Stages
run in order; the first one that yields a non-empty result wins. A stage
that comes back empty, or fails with a not-found or transient error, falls
through to the next. Rate-limit and credential errors abort the whole chain
because every later stage would hit the same wall.

Usage:
    result = await run_fallback_chain([
        FallbackStage("set search", "Card not found in set", lambda: search(name, set_id)),
        FallbackStage("global search", "Card not found", lambda: search(name)),
    ], source_id="justtcg")
    if not result.succeeded:
        return unavailable(result.note)
"""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

import structlog

from tcgprice.core.exceptions import NotFoundError, TransientNetworkError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class FallbackStage(Generic[T]):
    """One step of a chain."""
    name: str
    failure_note: str
    attempt: Callable[[], Awaitable[Optional[T]]]


@dataclass
class FallbackResult(Generic[T]):
    value: Optional[T] = None
    stage: Optional[str] = None
    failures: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.stage is not None

    @property
    def note(self) -> Optional[str]:
        """Note of the last stage that failed, if any."""
        return self.failures[-1] if self.failures else None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, set, str)):
        return len(value) == 0
    return False


async def run_fallback_chain(
    stages: Sequence[FallbackStage[T]],
    source_id: str,
) -> FallbackResult[T]:
    """
    Walk ``stages`` until one produces a result.

    Raises:
        RateLimitedError, ConfigurationError: propagated unchanged.
    """
    result: FallbackResult[T] = FallbackResult()

    for stage in stages:
        try:
            value = await stage.attempt()
        except (NotFoundError, TransientNetworkError) as e:
            logger.debug(
                "Fallback stage failed",
                source=source_id,
                stage=stage.name,
                error=str(e),
            )
            result.failures.append(stage.failure_note)
            continue

        if _is_empty(value):
            logger.debug("Fallback stage empty", source=source_id, stage=stage.name)
            result.failures.append(stage.failure_note)
            continue

        logger.debug("Fallback stage matched", source=source_id, stage=stage.name)
        result.value = value
        result.stage = stage.name
        return result

    return result
