"""Text repair heuristic and the recursive document rewriter."""

from bson_text_repair.repair.heuristic import (
    decode_code_units,
    is_valid_text,
    lossy_text,
    repair,
    repair_text,
    widen,
)
from bson_text_repair.repair.rewriter import DocumentRewriter, FieldReviewer

__all__ = [
    "DocumentRewriter",
    "FieldReviewer",
    "decode_code_units",
    "is_valid_text",
    "lossy_text",
    "repair",
    "repair_text",
    "widen",
]
