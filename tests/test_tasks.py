"""Tests for fail-fast concurrent awaiting."""

from __future__ import annotations

import asyncio

import pytest
from reviewporter.tasks import gather_or_cancel


async def delayed(value: str, seconds: float, events: list[str]) -> str:
    try:
        await asyncio.sleep(seconds)
    except asyncio.CancelledError:
        events.append(f"{value} cancelled")
        raise
    events.append(f"{value} finished")
    return value


async def failing(message: str) -> str:
    raise LookupError(message)


@pytest.mark.unit
def test_results_keep_argument_order() -> None:
    events: list[str] = []

    results = asyncio.run(
        gather_or_cancel(delayed("slow", 0.02, events), delayed("fast", 0, events))
    )

    assert results == ["slow", "fast"]
    assert events == ["fast finished", "slow finished"]


@pytest.mark.unit
def test_no_awaitables_returns_empty_list() -> None:
    assert asyncio.run(gather_or_cancel()) == []


@pytest.mark.unit
def test_failure_cancels_unfinished_siblings() -> None:
    events: list[str] = []

    async def scenario() -> None:
        with pytest.raises(LookupError, match="roster missing") as error_info:
            await gather_or_cancel(delayed("search", 0.05, events), failing("roster missing"))
        assert type(error_info.value) is LookupError
        events.append("caller resumed")

    asyncio.run(scenario())

    assert events == ["search cancelled", "caller resumed"]


@pytest.mark.unit
def test_earliest_argument_failure_wins() -> None:
    async def scenario() -> None:
        await gather_or_cancel(failing("first"), failing("second"))

    with pytest.raises(LookupError, match="first"):
        asyncio.run(scenario())
