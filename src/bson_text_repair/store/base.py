"""Record stream boundary between the pipeline and a document store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from bson_text_repair.domain.models import RecordIdentity


class StoreError(RuntimeError):
    """The store cannot be reached or a record cursor failed; fatal for the run."""


class ReplaceError(RuntimeError):
    """Writing one rewritten record back failed; local to that record."""

    def __init__(self, message: str, *, identity: RecordIdentity | None = None) -> None:
        self.identity = identity
        super().__init__(message)


@runtime_checkable
class RecordStream(Protocol):
    """One named set of records, read as raw BSON and replaced by identity."""

    @property
    def name(self) -> str: ...

    def records(self) -> AsyncIterator[bytes]:
        """Yield raw BSON documents one at a time."""
        ...

    async def replace(self, identity: RecordIdentity, document: bytes) -> bool:
        """Replace the record whose ``_id`` matches; return whether one matched."""
        ...


__all__ = ["RecordStream", "ReplaceError", "StoreError"]
