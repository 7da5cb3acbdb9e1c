"""Tests for ordered fallback chains."""
from unittest.mock import AsyncMock

import pytest

from tcgprice.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    RateLimitedError,
    TransientNetworkError,
)
from tcgprice.services.ingestion.fallback import FallbackStage, run_fallback_chain


def stage(name, returns=None, raises=None):
    attempt = AsyncMock(return_value=returns, side_effect=raises)
    return FallbackStage(name, f"{name} failed", attempt), attempt


class TestRunFallbackChain:
    """Tests for run_fallback_chain."""

    @pytest.mark.asyncio
    async def test_first_non_empty_stage_wins(self):
        first, first_call = stage("set search", returns=[{"id": 1}])
        second, second_call = stage("global search", returns=[{"id": 2}])

        result = await run_fallback_chain([first, second], source_id="test")

        assert result.succeeded
        assert result.stage == "set search"
        assert result.value == [{"id": 1}]
        assert result.failures == []
        first_call.assert_awaited_once()
        second_call.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("empty", [None, [], {}, ""])
    async def test_empty_result_falls_through(self, empty):
        first, _ = stage("set search", returns=empty)
        second, _ = stage("global search", returns=[{"id": 2}])

        result = await run_fallback_chain([first, second], source_id="test")

        assert result.stage == "global search"
        assert result.failures == ["set search failed"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [NotFoundError("nothing"), TransientNetworkError("API error: 500", status_code=500)],
    )
    async def test_recoverable_errors_fall_through(self, error):
        first, _ = stage("set search", raises=error)
        second, _ = stage("global search", returns={"price": 1})

        result = await run_fallback_chain([first, second], source_id="test")

        assert result.stage == "global search"
        assert result.value == {"price": 1}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [RateLimitedError("Rate limited"), ConfigurationError("Access forbidden")],
    )
    async def test_blocking_errors_abort_chain(self, error):
        first, _ = stage("set search", raises=error)
        second, second_call = stage("global search", returns=[1])

        with pytest.raises(type(error)):
            await run_fallback_chain([first, second], source_id="test")

        second_call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_stages_fail(self):
        stages = [stage("a")[0], stage("b", raises=NotFoundError("x"))[0], stage("c", returns=[])[0]]

        result = await run_fallback_chain(stages, source_id="test")

        assert not result.succeeded
        assert result.value is None
        assert result.failures == ["a failed", "b failed", "c failed"]
        assert result.note == "c failed"

    @pytest.mark.asyncio
    async def test_empty_chain(self):
        result = await run_fallback_chain([], source_id="test")
        assert not result.succeeded
        assert result.note is None
