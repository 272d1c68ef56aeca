"""Collection driver: drain record streams through the record processor."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import TYPE_CHECKING

from bson.errors import InvalidBSON

from bson_text_repair.codec.layout import StructuralCorruptionError
from bson_text_repair.domain.identity import extract_identity
from bson_text_repair.domain.models import (
    OutcomeStatus,
    RecordOutcome,
    ReplaceErrorPolicy,
    RunSummary,
)
from bson_text_repair.observability.logging import correlation_scope
from bson_text_repair.store.base import ReplaceError
from bson_text_repair.utils.concurrency import StreamPool

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bson_text_repair.pipeline.processor import RecordProcessor
    from bson_text_repair.store.base import RecordStream
    from bson_text_repair.ui.render import CLIRenderer

logger = logging.getLogger(__name__)


class CollectionDriver:
    """Process record streams with bounded stream-level concurrency.

    Records inside one stream are always handled sequentially. With the
    default of one stream in flight, console diffs and confirmation prompts
    never interleave. Record-local failures, including values pymongo cannot
    decode, are logged and counted; ``StoreError`` from a cursor propagates
    and ends the run.
    """

    def __init__(
        self,
        processor: RecordProcessor,
        *,
        max_concurrent_streams: int = 1,
        on_replace_error: ReplaceErrorPolicy | str = ReplaceErrorPolicy.CONTINUE,
        renderer: CLIRenderer | None = None,
    ) -> None:
        if max_concurrent_streams <= 0:
            raise ValueError("max_concurrent_streams must be > 0")
        self._processor = processor
        self._max_concurrent_streams = max_concurrent_streams
        self._on_replace_error = ReplaceErrorPolicy(on_replace_error)
        self._renderer = renderer

    async def run(self, streams: Iterable[RecordStream]) -> RunSummary:
        selected = list(streams)
        summary = RunSummary(streams=len(selected))
        pool: StreamPool[str] = StreamPool(self._max_concurrent_streams)
        async for name in pool.run(self._drain(stream, summary) for stream in selected):
            logger.info("stream finished", extra={"stream": name})
        return summary

    async def _drain(self, stream: RecordStream, summary: RunSummary) -> str:
        with correlation_scope(collection=stream.name):
            logger.info("stream started")
            if self._renderer is not None:
                self._renderer.heading(stream.name)
            async with aclosing(stream.records()) as records:
                async for record in records:
                    try:
                        outcome = await self._processor.process(record, stream)
                    except (StructuralCorruptionError, InvalidBSON) as exc:
                        summary.record(self._failed(record, exc, changed=False))
                        continue
                    except ReplaceError as exc:
                        summary.record(self._failed(record, exc, changed=True))
                        if self._on_replace_error is ReplaceErrorPolicy.ABORT:
                            summary.aborted_streams.append(stream.name)
                            logger.error("stream aborted after failed replace")
                            if self._renderer is not None:
                                self._renderer.fail(f"{stream.name}: aborted after failed replace")
                            break
                        continue
                    summary.record(outcome)
        return stream.name

    def _failed(self, record: bytes, exc: Exception, *, changed: bool) -> RecordOutcome:
        identity = extract_identity(record)
        display = identity.display if identity is not None else "<no _id>"
        logger.error(
            "record failed: %s",
            exc,
            extra={"record": display, "error_type": type(exc).__name__},
        )
        if self._renderer is not None:
            self._renderer.error(f"{display}: {exc}")
        return RecordOutcome(
            identity=identity,
            status=OutcomeStatus.FAILED,
            changed=changed,
            error=str(exc),
        )


__all__ = ["CollectionDriver"]
