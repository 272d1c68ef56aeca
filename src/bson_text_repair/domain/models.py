"""Dataclass domain models shared by the rewriter, reviewer, and pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from bson import ObjectId


class OutcomeStatus(StrEnum):
    UNCHANGED = "unchanged"
    REPLACED = "replaced"
    DRY_RUN = "dry_run"
    NOT_MATCHED = "not_matched"
    IDENTITY_MISSING = "identity_missing"
    FAILED = "failed"


class ReplaceErrorPolicy(StrEnum):
    """What a stream does after a record's replace fails."""

    CONTINUE = "continue"
    ABORT = "abort"


@dataclass(frozen=True, slots=True)
class RecordIdentity:
    """Decoded ``_id`` of a record, used for diagnostics and the replace filter."""

    value: object

    @property
    def display(self) -> str:
        if isinstance(self.value, ObjectId):
            return str(self.value)
        if isinstance(self.value, str):
            return self.value
        return repr(self.value)

    def __str__(self) -> str:
        return self.display


@dataclass(frozen=True, slots=True)
class RepairDecision:
    """Reviewer verdict on one invalid string field."""

    path: str
    original: str
    candidate: str
    accepted: bool

    @property
    def emitted(self) -> str:
        return self.candidate if self.accepted else self.original


@dataclass(frozen=True, slots=True)
class RewriteResult:
    document: bytes
    changed: bool
    decisions: tuple[RepairDecision, ...] = ()

    @property
    def repaired_fields(self) -> tuple[str, ...]:
        return tuple(item.path for item in self.decisions if item.accepted)

    @property
    def declined_fields(self) -> tuple[str, ...]:
        return tuple(item.path for item in self.decisions if not item.accepted)


@dataclass(frozen=True, slots=True)
class RecordOutcome:
    """Result of pushing one record through rewrite, review, and write-back."""

    identity: RecordIdentity | None
    status: OutcomeStatus
    changed: bool
    diff: tuple[str, ...] = ()
    decisions: tuple[RepairDecision, ...] = ()
    error: str | None = None

    @property
    def written(self) -> bool:
        return self.status is OutcomeStatus.REPLACED


@dataclass(slots=True)
class RunSummary:
    """Mutable counters accumulated by the collection driver."""

    streams: int = 0
    records_seen: int = 0
    records_changed: int = 0
    records_replaced: int = 0
    records_not_matched: int = 0
    records_failed: int = 0
    identity_missing: int = 0
    fields_repaired: int = 0
    fields_declined: int = 0
    aborted_streams: list[str] = field(default_factory=list)

    def record(self, outcome: RecordOutcome) -> None:
        self.records_seen += 1
        if outcome.changed:
            self.records_changed += 1
        if outcome.status is OutcomeStatus.REPLACED:
            self.records_replaced += 1
        elif outcome.status is OutcomeStatus.NOT_MATCHED:
            self.records_not_matched += 1
        elif outcome.status is OutcomeStatus.IDENTITY_MISSING:
            self.identity_missing += 1
        elif outcome.status is OutcomeStatus.FAILED:
            self.records_failed += 1
        for decision in outcome.decisions:
            if decision.accepted:
                self.fields_repaired += 1
            else:
                self.fields_declined += 1

    @property
    def has_failures(self) -> bool:
        return self.records_failed > 0 or bool(self.aborted_streams)

    def as_rows(self) -> list[tuple[str, str]]:
        return [
            ("streams", str(self.streams)),
            ("records seen", str(self.records_seen)),
            ("records changed", str(self.records_changed)),
            ("records replaced", str(self.records_replaced)),
            ("replace matched nothing", str(self.records_not_matched)),
            ("identity missing", str(self.identity_missing)),
            ("records failed", str(self.records_failed)),
            ("fields repaired", str(self.fields_repaired)),
            ("fields declined", str(self.fields_declined)),
        ]


__all__ = [
    "OutcomeStatus",
    "RecordIdentity",
    "RecordOutcome",
    "RepairDecision",
    "ReplaceErrorPolicy",
    "RewriteResult",
    "RunSummary",
]
