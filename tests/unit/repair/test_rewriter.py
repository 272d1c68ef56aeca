"""
bson-text-repair: unit tests for the recursive document rewriter

Purpose
- Validate that only invalid string payloads change and everything else is copied verbatim.

What this test file should cover
- Repair of top-level, nested document, array, and nested array strings.
- Locality of change and idempotence of a second pass.
- Declined repairs falling back to the lossy decoding.
- Non-string kinds passed through untouched, every BSON kind byte for byte.
- Structural corruption surfacing as an error.
"""

from __future__ import annotations

import asyncio
import struct

import bson
import pytest
from bson import Binary, Code, Decimal128, Int64, MaxKey, MinKey, ObjectId, Regex, Timestamp
from bson.datetime_ms import DatetimeMS

from bson_text_repair.codec.layout import StructuralCorruptionError, find_element
from bson_text_repair.domain.models import RecordIdentity
from bson_text_repair.repair.rewriter import DocumentRewriter

_TRUNCATED = b"\xc1\xee"  # "Áî" with each UTF-16 unit cut to its low byte
_REPAIRED = "Áî"
_LOSSY = "\ufffd\ufffd"


try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except ModuleNotFoundError:
    HYPOTHESIS_AVAILABLE = False
else:
    HYPOTHESIS_AVAILABLE = True


class _RecordingReviewer:
    def __init__(self, *, accept: bool = True) -> None:
        self.accept = accept
        self.calls: list[tuple[RecordIdentity | None, str, str, str]] = []

    async def decide(
        self,
        identity: RecordIdentity | None,
        key: str,
        original_text: str,
        candidate_text: str,
    ) -> bool:
        self.calls.append((identity, key, original_text, candidate_text))
        return self.accept


def _frame(*elements: bytes) -> bytes:
    body = b"".join(elements)
    return struct.pack("<i", 4 + len(body) + 1) + body + b"\x00"


def _string(key: str, payload: bytes, *, type_code: int = 0x02) -> bytes:
    return (
        bytes([type_code])
        + key.encode()
        + b"\x00"
        + struct.pack("<i", len(payload) + 1)
        + payload
        + b"\x00"
    )


def _embedded(key: str, document: bytes, *, type_code: int = 0x03) -> bytes:
    return bytes([type_code]) + key.encode() + b"\x00" + document


def _int32(key: str, value: int) -> bytes:
    return b"\x10" + key.encode() + b"\x00" + struct.pack("<i", value)


def _object_id(key: str, oid: ObjectId) -> bytes:
    return b"\x07" + key.encode() + b"\x00" + oid.binary


def _decode(document: bytes) -> dict[str, object]:
    return bson.decode(document)


def _every_kind() -> bytes:
    """Elements of every BSON kind, including ones bson.encode cannot produce."""

    encoded = bson.encode(
        {
            "double": 1.5,
            "string": "ok",
            "document": {"inner": [1, {"deep": "x"}]},
            "empty_document": {},
            "array": [[], {}, [[]]],
            "binary": Binary(b"\x00\x01", 0),
            "uuid": Binary(b"\x00" * 16, 4),
            "user_binary": Binary(_TRUNCATED, 0x80),
            "object_id": ObjectId("65f0a1b2c3d4e5f601234567"),
            "bool": True,
            "date": DatetimeMS(2**62),
            "null": None,
            "regex": Regex("^a.*b$", "im"),
            "code": Code("return 1"),
            "code_with_scope": Code("return x", {"x": 1, "s": "y"}),
            "int32": 7,
            "timestamp": Timestamp(1_700_000_000, 5),
            "int64": Int64(2**40),
            "decimal": Decimal128("1.25"),
            "min_key": MinKey(),
            "max_key": MaxKey(),
        }
    )[4:-1]
    undefined = b"\x06undefined\x00"
    db_pointer = (
        b"\x0cpointer\x00"
        + struct.pack("<i", 6)
        + b"app.u\x00"
        + ObjectId("65f0a1b2c3d4e5f601234568").binary
    )
    symbol = _string("symbol", b"sym", type_code=0x0E)
    return encoded + undefined + db_pointer + symbol


@pytest.mark.asyncio
async def test_clean_document_is_reproduced_byte_for_byte() -> None:
    reviewer = _RecordingReviewer()
    document = bson.encode({"_id": ObjectId(), "name": "Ok", "n": 3, "tags": ["a", {"b": "c"}]})

    result = await DocumentRewriter(reviewer).rewrite(document)

    assert result.document == document
    assert result.changed is False
    assert result.decisions == ()
    assert reviewer.calls == []


@pytest.mark.asyncio
async def test_truncated_top_level_string_is_repaired() -> None:
    reviewer = _RecordingReviewer()
    oid = ObjectId()
    identity = RecordIdentity(oid)
    document = _frame(_object_id("_id", oid), _string("name", _TRUNCATED), _int32("age", 41))

    result = await DocumentRewriter(reviewer).rewrite(document, identity=identity)

    assert result.changed is True
    assert _decode(result.document) == {"_id": oid, "name": _REPAIRED, "age": 41}
    assert reviewer.calls == [(identity, "name", _LOSSY, _REPAIRED)]
    assert result.repaired_fields == ("name",)


@pytest.mark.asyncio
async def test_nested_documents_arrays_and_nested_arrays_use_dotted_paths() -> None:
    reviewer = _RecordingReviewer()
    profile = _frame(_string("city", _TRUNCATED))
    tags = _frame(_string("0", b"ok"), _string("1", _TRUNCATED))
    row = _frame(_string("0", b"fine"), _string("1", _TRUNCATED))
    matrix = _frame(_embedded("0", row, type_code=0x04))
    document = _frame(
        _embedded("profile", profile),
        _embedded("tags", tags, type_code=0x04),
        _embedded("matrix", matrix, type_code=0x04),
    )

    result = await DocumentRewriter(reviewer).rewrite(document)

    assert [call[1] for call in reviewer.calls] == ["profile.city", "tags.1", "matrix.0.1"]
    assert _decode(result.document) == {
        "profile": {"city": _REPAIRED},
        "tags": ["ok", _REPAIRED],
        "matrix": [["fine", _REPAIRED]],
    }


@pytest.mark.asyncio
async def test_only_invalid_fields_change() -> None:
    oid = ObjectId()
    untouched = {
        "_id": oid,
        "title": "already fine",
        "score": 9.5,
        "flags": [True, False],
        "meta": {"k": "v"},
    }
    document = _frame(
        _object_id("_id", oid),
        _string("title", b"already fine"),
        _string("broken", _TRUNCATED),
        bson.encode({"score": 9.5})[4:-1],
        bson.encode({"flags": [True, False]})[4:-1],
        bson.encode({"meta": {"k": "v"}})[4:-1],
    )

    result = await DocumentRewriter(_RecordingReviewer()).rewrite(document)

    decoded = _decode(result.document)
    assert decoded.pop("broken") == _REPAIRED
    assert decoded == untouched
    assert list(_decode(result.document)) == ["_id", "title", "broken", "score", "flags", "meta"]
    for key in ("_id", "title", "score", "flags", "meta"):
        before = find_element(document, key)
        after = find_element(result.document, key)
        assert before is not None and after is not None
        assert before.raw(document) == after.raw(result.document)


@pytest.mark.asyncio
async def test_second_pass_over_repaired_document_changes_nothing() -> None:
    reviewer = _RecordingReviewer()
    rewriter = DocumentRewriter(reviewer)
    document = _frame(_string("a", _TRUNCATED), _embedded("b", _frame(_string("c", b"\xe9t\xe9"))))

    first = await rewriter.rewrite(document)
    second = await rewriter.rewrite(first.document)

    assert first.changed is True
    assert second.changed is False
    assert second.document == first.document
    assert len(reviewer.calls) == 2


@pytest.mark.asyncio
async def test_declined_repair_keeps_lossy_text_and_reports_no_change() -> None:
    reviewer = _RecordingReviewer(accept=False)
    document = _frame(_string("name", _TRUNCATED))

    result = await DocumentRewriter(reviewer).rewrite(document)

    assert result.changed is False
    assert _decode(result.document) == {"name": _LOSSY}
    assert result.declined_fields == ("name",)
    assert result.decisions[0].emitted == _LOSSY


@pytest.mark.asyncio
async def test_non_string_kinds_with_invalid_bytes_are_copied_verbatim() -> None:
    reviewer = _RecordingReviewer()
    code = _string("fn", _TRUNCATED, type_code=0x0D)
    symbol = _string("sym", _TRUNCATED, type_code=0x0E)
    binary = b"\x05blob\x00" + struct.pack("<i", 2) + b"\x00" + _TRUNCATED
    document = _frame(code, symbol, binary)

    result = await DocumentRewriter(reviewer).rewrite(document)

    assert result.document == document
    assert reviewer.calls == []


@pytest.mark.asyncio
async def test_configured_high_byte_repairs_cyrillic_payload() -> None:
    reviewer = _RecordingReviewer()
    # "Ґа": U+0490 U+0430 truncate to 0x90 0x30, which is not valid UTF-8.
    document = _frame(_string("word", b"\x90\x30"))

    result = await DocumentRewriter(reviewer, high_byte=0x04).rewrite(document)

    assert _decode(result.document) == {"word": "Ґа"}


@pytest.mark.asyncio
async def test_string_length_past_document_end_is_structural_corruption() -> None:
    document = bytearray(_frame(_string("name", _TRUNCATED)))
    struct.pack_into("<i", document, 4 + 1 + len("name") + 1, 99)
    reviewer = _RecordingReviewer()

    with pytest.raises(StructuralCorruptionError):
        await DocumentRewriter(reviewer).rewrite(bytes(document))

    assert reviewer.calls == []


@pytest.mark.asyncio
async def test_truncated_buffer_is_structural_corruption() -> None:
    document = _frame(_string("name", _TRUNCATED))

    with pytest.raises(StructuralCorruptionError):
        await DocumentRewriter(_RecordingReviewer()).rewrite(document[:-3])


@pytest.mark.asyncio
async def test_every_bson_kind_is_copied_byte_for_byte() -> None:
    reviewer = _RecordingReviewer()
    document = _frame(_every_kind(), _embedded("nested", _frame(_every_kind())))

    result = await DocumentRewriter(reviewer).rewrite(document)

    assert result.document == document
    assert reviewer.calls == []


@pytest.mark.asyncio
async def test_repair_after_every_bson_kind_lands_on_the_right_field() -> None:
    reviewer = _RecordingReviewer()
    document = _frame(
        _every_kind(),
        _embedded("nested", _frame(_every_kind(), _string("name", _TRUNCATED))),
        _string("name", _TRUNCATED),
    )

    result = await DocumentRewriter(reviewer).rewrite(document)

    fixed = _REPAIRED.encode()
    assert result.document == _frame(
        _every_kind(),
        _embedded("nested", _frame(_every_kind(), _string("name", fixed))),
        _string("name", fixed),
    )
    assert [call[1] for call in reviewer.calls] == ["nested.name", "name"]


if HYPOTHESIS_AVAILABLE:
    _keys = st.text(
        alphabet=st.characters(exclude_categories=("Cs",), exclude_characters="\x00"),
        max_size=8,
    )
    _scalars = (
        st.none()
        | st.booleans()
        | st.integers(min_value=-(2**63), max_value=2**63 - 1)
        | st.floats()
        | st.text(alphabet=st.characters(exclude_categories=("Cs",)), max_size=16)
        | st.binary(max_size=16)
    )
    _values = st.recursive(
        _scalars,
        lambda children: st.lists(children, max_size=4)
        | st.dictionaries(_keys, children, max_size=4),
        max_leaves=20,
    )

    @given(fields=st.dictionaries(_keys, _values, max_size=6))
    @settings(max_examples=100, deadline=None)
    def test_valid_documents_are_reproduced_byte_for_byte(fields: dict[str, object]) -> None:
        document = bson.encode(fields)

        result = asyncio.run(DocumentRewriter(_RecordingReviewer()).rewrite(document))

        assert result.document == document
        assert result.changed is False
