"""
bson-text-repair: unit tests for the collection driver

Purpose
- Validate per-record failure handling, the replace-error policy, and stream scheduling.

What this test file should cover
- Structural corruption recorded as a failed record without stopping the stream.
- Dates beyond the datetime range neither stop the stream nor hide the identity.
- Replace failures under the continue and abort policies.
- Cursor failures ending the run.
- Sequential draining by default and the stream concurrency bound.
"""

from __future__ import annotations

import asyncio
import struct
from collections.abc import AsyncIterator

import bson
import pytest
from bson import ObjectId
from bson.datetime_ms import DatetimeMS

from bson_text_repair.domain.models import RecordIdentity, ReplaceErrorPolicy
from bson_text_repair.pipeline.driver import CollectionDriver
from bson_text_repair.pipeline.processor import RecordProcessor
from bson_text_repair.repair.rewriter import DocumentRewriter
from bson_text_repair.review.reviewer import AutoApprove, ChangeReviewer
from bson_text_repair.store.base import ReplaceError, StoreError


class _MemoryStream:
    def __init__(
        self,
        name: str,
        records: list[bytes],
        *,
        events: list[str] | None = None,
        failing_ids: frozenset[object] = frozenset(),
        cursor_error: Exception | None = None,
        delay: float = 0.0,
        gauge: _Gauge | None = None,
    ) -> None:
        self._name = name
        self._records = records
        self.events = events if events is not None else []
        self.failing_ids = failing_ids
        self.cursor_error = cursor_error
        self.delay = delay
        self.gauge = gauge
        self.replaced: list[RecordIdentity] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    async def records(self) -> AsyncIterator[bytes]:
        if self.gauge is not None:
            self.gauge.enter()
        try:
            for record in self._records:
                if self.delay:
                    await asyncio.sleep(self.delay)
                self.events.append(f"{self._name}:read")
                yield record
            if self.cursor_error is not None:
                raise self.cursor_error
        finally:
            self.closed = True
            if self.gauge is not None:
                self.gauge.leave()

    async def replace(self, identity: RecordIdentity, document: bytes) -> bool:
        if identity.value in self.failing_ids:
            raise ReplaceError(f"cannot replace {identity.display}", identity=identity)
        self.replaced.append(identity)
        return True


class _Gauge:
    def __init__(self) -> None:
        self.active = 0
        self.peak = 0

    def enter(self) -> None:
        self.active += 1
        self.peak = max(self.peak, self.active)

    def leave(self) -> None:
        self.active -= 1


def _corrupted(oid: object, **fields: object) -> bytes:
    id_element = bson.encode({"_id": oid, **fields})[4:-1]
    name = b"\x02name\x00" + struct.pack("<i", 3) + b"\xc1\xee\x00"
    body = id_element + name
    return struct.pack("<i", 4 + len(body) + 1) + body + b"\x00"


def _broken() -> bytes:
    record = bytearray(_corrupted(ObjectId()))
    struct.pack_into("<i", record, 0, len(record) + 50)
    return bytes(record)


def _driver(**kwargs: object) -> CollectionDriver:
    rewriter = DocumentRewriter(ChangeReviewer(AutoApprove()))
    return CollectionDriver(RecordProcessor(rewriter), **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_structural_corruption_fails_record_and_stream_continues() -> None:
    stream = _MemoryStream("app.users", [_broken(), _corrupted(1), bson.encode({"_id": 2})])

    summary = await _driver().run([stream])

    assert summary.records_seen == 3
    assert summary.records_failed == 1
    assert summary.records_replaced == 1
    assert stream.replaced == [RecordIdentity(1)]
    assert summary.has_failures is True


@pytest.mark.asyncio
async def test_replace_error_with_continue_policy_keeps_going() -> None:
    stream = _MemoryStream(
        "app.users",
        [_corrupted(1), _corrupted(2), _corrupted(3)],
        failing_ids=frozenset({2}),
    )

    summary = await _driver(on_replace_error=ReplaceErrorPolicy.CONTINUE).run([stream])

    assert summary.records_failed == 1
    assert summary.records_replaced == 2
    assert summary.aborted_streams == []
    assert stream.replaced == [RecordIdentity(1), RecordIdentity(3)]


@pytest.mark.asyncio
async def test_replace_error_with_abort_policy_stops_only_that_stream() -> None:
    failing = _MemoryStream(
        "app.users",
        [_corrupted(1), _corrupted(2), _corrupted(3)],
        failing_ids=frozenset({2}),
    )
    healthy = _MemoryStream("app.orders", [_corrupted(10)])

    summary = await _driver(on_replace_error="abort").run([failing, healthy])

    assert failing.replaced == [RecordIdentity(1)]
    assert failing.closed is True
    assert healthy.replaced == [RecordIdentity(10)]
    assert summary.aborted_streams == ["app.users"]
    assert summary.records_seen == 3
    assert summary.has_failures is True


@pytest.mark.asyncio
async def test_cursor_store_error_ends_the_run() -> None:
    stream = _MemoryStream(
        "app.users",
        [_corrupted(1)],
        cursor_error=StoreError("cursor killed"),
    )

    with pytest.raises(StoreError, match="cursor killed"):
        await _driver().run([stream])

    assert stream.replaced == [RecordIdentity(1)]


@pytest.mark.asyncio
async def test_streams_drain_one_after_another_by_default() -> None:
    events: list[str] = []
    first = _MemoryStream("app.a", [_corrupted(1), _corrupted(2)], events=events, delay=0.01)
    second = _MemoryStream("app.b", [_corrupted(3), _corrupted(4)], events=events)

    summary = await _driver().run([first, second])

    assert events == ["app.a:read", "app.a:read", "app.b:read", "app.b:read"]
    assert summary.streams == 2
    assert summary.records_replaced == 4


@pytest.mark.asyncio
async def test_concurrent_streams_respect_the_bound() -> None:
    gauge = _Gauge()
    streams = [
        _MemoryStream(f"app.s{index}", [_corrupted(index)], delay=0.02, gauge=gauge)
        for index in range(4)
    ]

    summary = await _driver(max_concurrent_streams=2).run(streams)

    assert gauge.peak == 2
    assert summary.records_replaced == 4


@pytest.mark.asyncio
async def test_no_streams_yield_empty_summary() -> None:
    summary = await _driver().run([])

    assert summary.streams == 0
    assert summary.records_seen == 0
    assert summary.has_failures is False


def test_non_positive_stream_bound_is_rejected() -> None:
    with pytest.raises(ValueError, match="max_concurrent_streams"):
        _driver(max_concurrent_streams=0)


@pytest.mark.asyncio
async def test_far_future_dates_do_not_stop_the_stream() -> None:
    beyond_year_9999 = DatetimeMS(2**62)
    stream = _MemoryStream(
        "app.events",
        [_corrupted(1, when=beyond_year_9999), _corrupted(2)],
    )

    summary = await _driver().run([stream])

    assert summary.records_failed == 0
    assert summary.records_replaced == 2
    assert stream.replaced == [RecordIdentity(1), RecordIdentity(2)]


@pytest.mark.asyncio
async def test_far_future_date_id_is_still_replaced() -> None:
    far_future = DatetimeMS(2**62)
    stream = _MemoryStream("app.events", [_corrupted(far_future)])

    summary = await _driver().run([stream])

    assert summary.records_replaced == 1
    assert stream.replaced == [RecordIdentity(far_future)]
