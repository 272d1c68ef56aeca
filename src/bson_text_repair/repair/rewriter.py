"""Recursive BSON rewriter that repairs invalid string payloads.

Every (sub)document and array is rebuilt into a fresh builder in stored
order. Elements are copied as raw bytes unless they are strings whose payload
fails UTF-8 validation; those are replaced by the reviewer-approved value.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from bson_text_repair.codec.builder import DocumentBuilder
from bson_text_repair.codec.layout import iter_elements, locate, validate_document
from bson_text_repair.constants import DOCUMENT_KINDS, TYPE_STRING
from bson_text_repair.domain.models import RepairDecision, RewriteResult
from bson_text_repair.repair.heuristic import is_valid_text, lossy_text, repair_text

if TYPE_CHECKING:
    from bson_text_repair.codec.layout import ElementInfo
    from bson_text_repair.domain.models import RecordIdentity

logger = logging.getLogger(__name__)


class FieldReviewer(Protocol):
    """Accept/reject source for a repair candidate."""

    async def decide(
        self,
        identity: RecordIdentity | None,
        key: str,
        original_text: str,
        candidate_text: str,
    ) -> bool: ...


class DocumentRewriter:
    """Rebuild documents, repairing truncated UTF-16 strings along the way."""

    def __init__(self, reviewer: FieldReviewer, *, high_byte: int = 0) -> None:
        self._reviewer = reviewer
        self._high_byte = high_byte

    @property
    def high_byte(self) -> int:
        return self._high_byte

    async def rewrite(
        self,
        document: bytes,
        *,
        identity: RecordIdentity | None = None,
    ) -> RewriteResult:
        """Return the rebuilt document and whether any repair was accepted.

        Raises ``StructuralCorruptionError`` when the document framing is
        inconsistent; the input buffer is never modified.
        """

        validate_document(document)
        decisions: list[RepairDecision] = []
        rebuilt = await self._rewrite_container(
            document,
            0,
            prefix="",
            identity=identity,
            decisions=decisions,
        )
        changed = any(decision.accepted for decision in decisions)
        return RewriteResult(document=rebuilt, changed=changed, decisions=tuple(decisions))

    async def _rewrite_container(
        self,
        buffer: bytes,
        start: int,
        *,
        prefix: str,
        identity: RecordIdentity | None,
        decisions: list[RepairDecision],
    ) -> bytes:
        builder = DocumentBuilder()
        for element in iter_elements(buffer, start):
            path = _join_path(prefix, element.key)

            if element.type_code in DOCUMENT_KINDS:
                nested = await self._rewrite_container(
                    buffer,
                    element.value_offset,
                    prefix=path,
                    identity=identity,
                    decisions=decisions,
                )
                builder.append_document(element.type_code, element.key_bytes, nested)
                continue

            if element.type_code == TYPE_STRING:
                decision = await self._review_string(buffer, element, path, identity)
                if decision is None:
                    builder.append_raw(element.raw(buffer))
                else:
                    decisions.append(decision)
                    builder.append_string(element.key_bytes, decision.emitted)
                continue

            builder.append_raw(element.raw(buffer))
        return builder.seal()

    async def _review_string(
        self,
        buffer: bytes,
        element: ElementInfo,
        path: str,
        identity: RecordIdentity | None,
    ) -> RepairDecision | None:
        payload = locate(buffer, element).slice(buffer)
        if is_valid_text(payload):
            return None

        original = lossy_text(payload)
        candidate = repair_text(payload, high_byte=self._high_byte)
        accepted = await self._reviewer.decide(identity, path, original, candidate)
        logger.debug(
            "invalid string reviewed",
            extra={"field": path, "accepted": accepted, "payload_bytes": len(payload)},
        )
        return RepairDecision(path=path, original=original, candidate=candidate, accepted=accepted)


def _join_path(prefix: str, key: str) -> str:
    if not prefix:
        return key
    return f"{prefix}.{key}"


__all__ = ["DocumentRewriter", "FieldReviewer"]
