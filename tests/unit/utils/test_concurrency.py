"""Unit tests for bounded stream scheduling."""

from __future__ import annotations

import asyncio

import pytest

from bson_text_repair.utils.concurrency import StreamPool


async def _job(name: str, events: list[str], delay: float = 0.0) -> str:
    events.append(f"{name}:start")
    await asyncio.sleep(delay)
    events.append(f"{name}:end")
    return name


@pytest.mark.asyncio
async def test_limit_one_runs_jobs_in_submission_order() -> None:
    events: list[str] = []
    pool: StreamPool[str] = StreamPool(1)

    results = [
        name
        async for name in pool.run(
            [_job("a", events, 0.02), _job("b", events), _job("c", events, 0.01)]
        )
    ]

    assert results == ["a", "b", "c"]
    assert events == ["a:start", "a:end", "b:start", "b:end", "c:start", "c:end"]
    assert pool.peak == 1
    assert pool.in_flight == 0


@pytest.mark.asyncio
async def test_peak_never_exceeds_the_limit() -> None:
    events: list[str] = []
    pool: StreamPool[str] = StreamPool(2)

    results = {name async for name in pool.run(_job(str(i), events, 0.01) for i in range(5))}

    assert results == {"0", "1", "2", "3", "4"}
    assert pool.peak == 2
    assert pool.limit == 2


@pytest.mark.asyncio
async def test_failure_cancels_remaining_jobs_and_propagates() -> None:
    events: list[str] = []
    pool: StreamPool[str] = StreamPool(2)

    async def boom() -> str:
        await asyncio.sleep(0)
        raise RuntimeError("cursor lost")

    with pytest.raises(RuntimeError, match="cursor lost"):
        async for _ in pool.run([boom(), _job("slow", events, 5.0), _job("queued", events)]):
            pass

    assert events == ["slow:start"]
    assert pool.in_flight == 0


@pytest.mark.asyncio
async def test_empty_job_list_yields_nothing() -> None:
    pool: StreamPool[str] = StreamPool(3)

    assert [item async for item in pool.run([])] == []
    assert pool.peak == 0


@pytest.mark.parametrize("limit", [0, -1])
def test_non_positive_limit_is_rejected(limit: int) -> None:
    with pytest.raises(ValueError, match="limit must be > 0"):
        StreamPool(limit)
