"""Unit tests for the append-only BSON document builder."""

from __future__ import annotations

import bson
import pytest

from bson_text_repair.codec.builder import BuilderSealedError, DocumentBuilder
from bson_text_repair.codec.layout import iter_elements
from bson_text_repair.constants import TYPE_ARRAY, TYPE_DOCUMENT, TYPE_STRING


def test_append_string_matches_bson_encoding() -> None:
    builder = DocumentBuilder()
    builder.append_string(b"name", "Áî")

    assert builder.seal() == bson.encode({"name": "Áî"})


def test_copying_raw_elements_reproduces_document_bytes() -> None:
    source = bson.encode({"a": 1, "b": [1, "two"], "c": {"d": None}, "e": 2.5})
    builder = DocumentBuilder()
    for element in iter_elements(source):
        builder.append_raw(element.raw(source))

    assert builder.seal() == source
    assert len(builder) == 4


def test_append_document_frames_nested_values() -> None:
    inner = DocumentBuilder()
    inner.append_string(b"city", "Oslo")
    items = DocumentBuilder()
    items.append_string(b"0", "x")

    outer = DocumentBuilder()
    outer.append_document(TYPE_DOCUMENT, b"profile", inner.seal())
    outer.append_document(TYPE_ARRAY, b"tags", items.seal())

    assert bson.decode(outer.seal()) == {"profile": {"city": "Oslo"}, "tags": ["x"]}


def test_append_document_rejects_non_document_kind() -> None:
    with pytest.raises(ValueError, match="not a document kind"):
        DocumentBuilder().append_document(TYPE_STRING, b"a", bson.encode({}))


def test_keys_with_nul_bytes_are_rejected() -> None:
    with pytest.raises(ValueError, match="NUL"):
        DocumentBuilder().append_string(b"a\x00b", "x")


def test_seal_is_idempotent_and_freezes_builder() -> None:
    builder = DocumentBuilder()
    builder.append_string(b"a", "x")

    first = builder.seal()
    assert builder.is_sealed
    assert builder.seal() is first
    with pytest.raises(BuilderSealedError):
        builder.append_string(b"b", "y")


def test_empty_builder_seals_to_minimal_document() -> None:
    assert DocumentBuilder().seal() == b"\x05\x00\x00\x00\x00"
