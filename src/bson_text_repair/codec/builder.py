"""Append-only BSON document builder."""

from __future__ import annotations

import struct
from typing import Final

from bson_text_repair.constants import (
    DOCUMENT_KINDS,
    INT32_WIDTH,
    TERMINATOR_WIDTH,
    TEXT_ENCODING,
    TYPE_STRING,
)

_INT32: Final[struct.Struct] = struct.Struct("<i")


class BuilderSealedError(RuntimeError):
    """Raised when appending to a builder whose buffer was already produced."""


class DocumentBuilder:
    """Collect encoded elements in order, then ``seal`` into a framed document.

    Arrays are built with the same class: their index keys are copied from
    the source array rather than regenerated.
    """

    __slots__ = ("_body", "_count", "_sealed")

    def __init__(self) -> None:
        self._body = bytearray()
        self._count = 0
        self._sealed: bytes | None = None

    def __len__(self) -> int:
        return self._count

    @property
    def is_sealed(self) -> bool:
        return self._sealed is not None

    def append_raw(self, element: bytes) -> None:
        """Append an already-encoded element verbatim."""

        self._ensure_open()
        self._body += element
        self._count += 1

    def append_string(self, key: bytes, value: str) -> None:
        self._ensure_open()
        payload = value.encode(TEXT_ENCODING)
        self._append_header(TYPE_STRING, key)
        self._body += _INT32.pack(len(payload) + TERMINATOR_WIDTH)
        self._body += payload
        self._body += b"\x00"
        self._count += 1

    def append_document(self, type_code: int, key: bytes, document: bytes) -> None:
        """Append a sealed sub-document or array under ``key``."""

        if type_code not in DOCUMENT_KINDS:
            raise ValueError(f"type 0x{type_code:02x} is not a document kind")
        self._ensure_open()
        self._append_header(type_code, key)
        self._body += document
        self._count += 1

    def seal(self) -> bytes:
        """Frame the collected elements and freeze the builder."""

        if self._sealed is None:
            size = INT32_WIDTH + len(self._body) + TERMINATOR_WIDTH
            self._sealed = _INT32.pack(size) + bytes(self._body) + b"\x00"
        return self._sealed

    def _append_header(self, type_code: int, key: bytes) -> None:
        if b"\x00" in key:
            raise ValueError("element keys must not contain NUL bytes")
        self._body.append(type_code)
        self._body += key
        self._body += b"\x00"

    def _ensure_open(self) -> None:
        if self._sealed is not None:
            raise BuilderSealedError("document builder is sealed")


__all__ = ["BuilderSealedError", "DocumentBuilder"]
