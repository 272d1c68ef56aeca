"""Raw BSON layout walking and document building."""

from bson_text_repair.codec.builder import BuilderSealedError, DocumentBuilder
from bson_text_repair.codec.layout import (
    BsonLayoutError,
    ElementInfo,
    RawSpan,
    StructuralCorruptionError,
    check_document,
    find_element,
    iter_elements,
    locate,
    read_int32,
    validate_document,
)

__all__ = [
    "BsonLayoutError",
    "BuilderSealedError",
    "DocumentBuilder",
    "ElementInfo",
    "RawSpan",
    "StructuralCorruptionError",
    "check_document",
    "find_element",
    "iter_elements",
    "locate",
    "read_int32",
    "validate_document",
]
