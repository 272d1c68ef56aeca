"""Change review: decision sources and diff rendering."""

from bson_text_repair.review.reviewer import (
    AutoApprove,
    ChangeReviewer,
    ConsolePrompt,
    DecisionSource,
    FieldChange,
    document_lines,
    render_document_diff,
    render_field_change,
)

__all__ = [
    "AutoApprove",
    "ChangeReviewer",
    "ConsolePrompt",
    "DecisionSource",
    "FieldChange",
    "document_lines",
    "render_document_diff",
    "render_field_change",
]
