"""Domain types shared across the engine: identities, decisions, outcomes."""

from bson_text_repair.domain.identity import extract_identity
from bson_text_repair.domain.models import (
    OutcomeStatus,
    RecordIdentity,
    RecordOutcome,
    RepairDecision,
    ReplaceErrorPolicy,
    RewriteResult,
    RunSummary,
)

__all__ = [
    "OutcomeStatus",
    "RecordIdentity",
    "RecordOutcome",
    "RepairDecision",
    "ReplaceErrorPolicy",
    "RewriteResult",
    "RunSummary",
    "extract_identity",
]
