"""Raw BSON layout walking: element boundaries and value payload spans.

Everything here works from declared lengths only. Values are never decoded,
so a string whose payload is not valid UTF-8 can still be located and sliced
out of its parent buffer.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from bson_text_repair.constants import (
    BINARY_SUBTYPE_WIDTH,
    DOCUMENT_KINDS,
    FIXED_VALUE_WIDTHS,
    INT32_WIDTH,
    MIN_DOCUMENT_SIZE,
    OBJECT_ID_WIDTH,
    STRING_KINDS,
    TERMINATOR_WIDTH,
    TYPE_BINARY,
    TYPE_CODE_WITH_SCOPE,
    TYPE_DB_POINTER,
    TYPE_NAMES,
    TYPE_REGEX,
    TYPE_TAG_WIDTH,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

_INT32: Final[struct.Struct] = struct.Struct("<i")


class BsonLayoutError(ValueError):
    """Base error for BSON buffers that cannot be walked."""


class StructuralCorruptionError(BsonLayoutError):
    """A declared length points outside its buffer or a terminator is missing."""

    def __init__(self, message: str, *, offset: int) -> None:
        self.offset = offset
        super().__init__(f"{message} (at byte {offset})")


@dataclass(frozen=True, slots=True)
class RawSpan:
    """Byte range of a value payload inside a document buffer."""

    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length

    def slice(self, buffer: bytes) -> bytes:
        return bytes(buffer[self.start : self.end])


@dataclass(frozen=True, slots=True)
class ElementInfo:
    """One element as reported by the layout walker.

    ``encoded_length`` covers the type tag, the key with its terminator, and
    the whole value, so ``offset + encoded_length`` is the next sibling.
    """

    offset: int
    type_code: int
    key_bytes: bytes
    encoded_length: int

    @property
    def key(self) -> str:
        return self.key_bytes.decode("utf-8", errors="replace")

    @property
    def end(self) -> int:
        return self.offset + self.encoded_length

    @property
    def value_offset(self) -> int:
        return self.offset + TYPE_TAG_WIDTH + len(self.key_bytes) + TERMINATOR_WIDTH

    @property
    def type_name(self) -> str:
        return TYPE_NAMES.get(self.type_code, f"0x{self.type_code:02x}")

    def raw(self, buffer: bytes) -> bytes:
        """Return the complete encoded element, tag and key included."""

        return bytes(buffer[self.offset : self.end])


def read_int32(buffer: bytes, offset: int, *, limit: int | None = None) -> int:
    """Read a little-endian int32, treating a short read as corruption."""

    bound = len(buffer) if limit is None else limit
    if offset < 0 or offset + INT32_WIDTH > bound:
        raise StructuralCorruptionError(
            "int32 length prefix runs past end of buffer", offset=offset
        )
    value: int = _INT32.unpack_from(buffer, offset)[0]
    return value


def check_document(buffer: bytes, start: int = 0, *, limit: int | None = None) -> int:
    """Validate the framing of the document starting at ``start``; return its end offset."""

    bound = len(buffer) if limit is None else limit
    size = read_int32(buffer, start, limit=bound)
    if size < MIN_DOCUMENT_SIZE:
        raise StructuralCorruptionError(
            f"declared document length {size} is too small", offset=start
        )
    end = start + size
    if end > bound:
        raise StructuralCorruptionError(
            f"declared document length {size} exceeds available {bound - start} bytes",
            offset=start,
        )
    if buffer[end - 1] != 0:
        raise StructuralCorruptionError("document is missing its terminator byte", offset=end - 1)
    return end


def validate_document(buffer: bytes) -> None:
    """Require that ``buffer`` holds exactly one well-framed top-level document."""

    end = check_document(buffer)
    if end != len(buffer):
        raise StructuralCorruptionError(
            f"declared document length {end} does not match buffer length {len(buffer)}",
            offset=0,
        )


def iter_elements(buffer: bytes, start: int = 0) -> Iterator[ElementInfo]:
    """Yield the elements of the document at ``start`` in stored order.

    A running cursor advances by each element's self-reported encoded length;
    nested documents are framed but not descended into.
    """

    doc_end = check_document(buffer, start)
    terminator = doc_end - TERMINATOR_WIDTH
    cursor = start + INT32_WIDTH
    while cursor < terminator:
        type_code = buffer[cursor]
        key_start = cursor + TYPE_TAG_WIDTH
        key_end = buffer.find(b"\x00", key_start, terminator)
        if key_end < 0:
            raise StructuralCorruptionError("element key is not terminated", offset=key_start)
        value_offset = key_end + TERMINATOR_WIDTH
        value_length = _value_length(buffer, type_code, value_offset, terminator)
        element_end = value_offset + value_length
        if element_end > terminator:
            raise StructuralCorruptionError(
                f"{TYPE_NAMES.get(type_code, 'element')} value runs past its document",
                offset=cursor,
            )
        yield ElementInfo(
            offset=cursor,
            type_code=type_code,
            key_bytes=bytes(buffer[key_start:key_end]),
            encoded_length=element_end - cursor,
        )
        cursor = element_end


def find_element(buffer: bytes, key: str, start: int = 0) -> ElementInfo | None:
    """Return the first top-level element named ``key``, if any."""

    wanted = key.encode("utf-8")
    for element in iter_elements(buffer, start):
        if element.key_bytes == wanted:
            return element
    return None


def locate(buffer: bytes, element: ElementInfo) -> RawSpan:
    """Compute the byte range of ``element``'s value payload.

    For string kinds this is the text between the int32 length prefix and the
    trailing NUL; for binary it follows the length prefix and subtype byte;
    every other kind's payload is its whole value.
    """

    prefix, trailer = _payload_framing(element.type_code)
    start = element.value_offset + prefix
    end = element.end - trailer
    if start < 0 or end < start or end > len(buffer) or element.end > len(buffer):
        raise StructuralCorruptionError(
            f"{element.type_name} payload span {start}..{end} lies outside the buffer",
            offset=element.offset,
        )
    if element.type_code in STRING_KINDS:
        declared = read_int32(buffer, element.value_offset)
        if declared != end - start + TERMINATOR_WIDTH:
            raise StructuralCorruptionError(
                f"string length prefix {declared} disagrees with element length",
                offset=element.value_offset,
            )
    return RawSpan(start=start, length=end - start)


def _payload_framing(type_code: int) -> tuple[int, int]:
    if type_code in STRING_KINDS:
        return INT32_WIDTH, TERMINATOR_WIDTH
    if type_code == TYPE_BINARY:
        return INT32_WIDTH + BINARY_SUBTYPE_WIDTH, 0
    return 0, 0


def _value_length(buffer: bytes, type_code: int, value_offset: int, limit: int) -> int:
    fixed = FIXED_VALUE_WIDTHS.get(type_code)
    if fixed is not None:
        return fixed

    if type_code in STRING_KINDS:
        return _string_length(buffer, value_offset, limit)

    if type_code in DOCUMENT_KINDS or type_code == TYPE_CODE_WITH_SCOPE:
        size = read_int32(buffer, value_offset, limit=limit)
        if size < MIN_DOCUMENT_SIZE:
            raise StructuralCorruptionError(
                f"declared {TYPE_NAMES[type_code]} length {size} is too small",
                offset=value_offset,
            )
        return size

    if type_code == TYPE_BINARY:
        size = read_int32(buffer, value_offset, limit=limit)
        if size < 0:
            raise StructuralCorruptionError(
                f"declared binary length {size} is negative", offset=value_offset
            )
        return INT32_WIDTH + BINARY_SUBTYPE_WIDTH + size

    if type_code == TYPE_REGEX:
        pattern_end = buffer.find(b"\x00", value_offset, limit)
        if pattern_end < 0:
            raise StructuralCorruptionError("regex pattern is not terminated", offset=value_offset)
        options_end = buffer.find(b"\x00", pattern_end + 1, limit)
        if options_end < 0:
            raise StructuralCorruptionError("regex options are not terminated", offset=pattern_end)
        return options_end + TERMINATOR_WIDTH - value_offset

    if type_code == TYPE_DB_POINTER:
        return _string_length(buffer, value_offset, limit) + OBJECT_ID_WIDTH

    raise StructuralCorruptionError(
        f"unknown element type 0x{type_code:02x}", offset=value_offset - 1
    )


def _string_length(buffer: bytes, value_offset: int, limit: int) -> int:
    declared = read_int32(buffer, value_offset, limit=limit)
    if declared < TERMINATOR_WIDTH:
        raise StructuralCorruptionError(
            f"declared string length {declared} is too small", offset=value_offset
        )
    total = INT32_WIDTH + declared
    last = value_offset + total - 1
    if last >= limit:
        raise StructuralCorruptionError(
            f"declared string length {declared} runs past its document", offset=value_offset
        )
    if buffer[last] != 0:
        raise StructuralCorruptionError("string value is missing its terminator", offset=last)
    return total


__all__ = [
    "BsonLayoutError",
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
