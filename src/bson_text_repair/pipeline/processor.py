"""Single-record processing: rewrite, diff, and conditional write-back."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bson.errors import InvalidBSON

from bson_text_repair.domain.identity import extract_identity
from bson_text_repair.domain.models import OutcomeStatus, RecordOutcome
from bson_text_repair.observability.logging import correlation_scope
from bson_text_repair.review.reviewer import render_document_diff

if TYPE_CHECKING:
    from bson_text_repair.domain.models import RecordIdentity
    from bson_text_repair.repair.rewriter import DocumentRewriter
    from bson_text_repair.store.base import RecordStream
    from bson_text_repair.ui.render import CLIRenderer

logger = logging.getLogger(__name__)


class RecordProcessor:
    """Drive one record through the rewriter and decide whether to persist it.

    Nothing is written unless the rewrite accepted at least one repair, the
    run is not a dry run, and the record's identity could be decoded. The
    document is fully rebuilt in memory before any write is attempted.
    """

    def __init__(
        self,
        rewriter: DocumentRewriter,
        *,
        dry_run: bool = False,
        renderer: CLIRenderer | None = None,
    ) -> None:
        self._rewriter = rewriter
        self._dry_run = dry_run
        self._renderer = renderer

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def process(self, record: bytes, stream: RecordStream) -> RecordOutcome:
        identity = extract_identity(record)
        record_id = identity.display.strip() if identity is not None else ""
        with correlation_scope(record_id=record_id or None):
            return await self._process(record, identity, stream)

    async def _process(
        self,
        record: bytes,
        identity: RecordIdentity | None,
        stream: RecordStream,
    ) -> RecordOutcome:
        self._print_identity(identity)

        result = await self._rewriter.rewrite(record, identity=identity)
        diff = self._diff(record, result.document)
        if diff and self._renderer is not None:
            self._renderer.diff(diff)

        if not result.changed:
            return RecordOutcome(
                identity=identity,
                status=OutcomeStatus.UNCHANGED,
                changed=False,
                diff=diff,
                decisions=result.decisions,
            )

        if identity is None:
            logger.warning(
                "record changed but has no decodable _id; write-back skipped",
                extra={"stream": stream.name, "fields": list(result.repaired_fields)},
            )
            if self._renderer is not None:
                self._renderer.warning("record has no usable _id; not replaced")
            status = OutcomeStatus.IDENTITY_MISSING
        elif self._dry_run:
            logger.info(
                "dry run; replace suppressed",
                extra={"fields": list(result.repaired_fields)},
            )
            status = OutcomeStatus.DRY_RUN
        else:
            status = await self._write_back(identity, result.document, stream)

        return RecordOutcome(
            identity=identity,
            status=status,
            changed=True,
            diff=diff,
            decisions=result.decisions,
        )

    async def _write_back(
        self,
        identity: RecordIdentity,
        document: bytes,
        stream: RecordStream,
    ) -> OutcomeStatus:
        matched = await stream.replace(identity, document)
        if not matched:
            logger.warning("replace matched no record", extra={"stream": stream.name})
            if self._renderer is not None:
                self._renderer.warning(f"{identity.display}: replace matched no record")
            return OutcomeStatus.NOT_MATCHED

        logger.info("record replaced", extra={"stream": stream.name})
        if self._renderer is not None:
            self._renderer.ok(f"replaced {identity.display} in {stream.name}")
        return OutcomeStatus.REPLACED

    def _diff(self, original: bytes, rewritten: bytes) -> tuple[str, ...]:
        try:
            return tuple(render_document_diff(original, rewritten))
        except InvalidBSON as exc:
            # Display only; the rewritten bytes are still written back.
            logger.warning("diff not rendered: %s", exc)
            if self._renderer is not None:
                self._renderer.warning(f"diff not rendered: {exc}")
            return ()

    def _print_identity(self, identity: RecordIdentity | None) -> None:
        if self._renderer is None:
            return
        self._renderer.identity(identity.display if identity is not None else "<no _id>")


__all__ = ["RecordProcessor"]
