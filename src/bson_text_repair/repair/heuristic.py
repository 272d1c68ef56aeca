"""Reverse the low-byte truncation of UTF-16 code units.

The corrupted writer stored each 16-bit code unit as its low byte only. The
repair puts every byte back into a 16-bit unit with a known high byte (zero
unless configured otherwise), decodes the unit sequence as UTF-16 with
replacement for ill-formed units, and re-encodes as UTF-8.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from bson_text_repair.constants import TEXT_ENCODING

if TYPE_CHECKING:
    from collections.abc import Iterable

_UTF16_CODEC: Final[str] = "utf-16-le"
_MAX_CODE_UNIT: Final[int] = 0xFFFF


def is_valid_text(raw: bytes) -> bool:
    """Return whether ``raw`` is well-formed UTF-8."""

    try:
        raw.decode(TEXT_ENCODING)
    except UnicodeDecodeError:
        return False
    return True


def lossy_text(raw: bytes) -> str:
    """Decode ``raw`` as UTF-8, substituting U+FFFD for invalid sequences."""

    return raw.decode(TEXT_ENCODING, errors="replace")


def widen(raw: bytes, *, high_byte: int = 0) -> list[int]:
    """Turn each byte back into one 16-bit code unit."""

    _validate_high_byte(high_byte)
    high = high_byte << 8
    return [high | value for value in raw]


def decode_code_units(units: Iterable[int]) -> str:
    """Decode a sequence of 16-bit code units, replacing unpaired surrogates."""

    encoded = bytearray()
    for unit in units:
        if not 0 <= unit <= _MAX_CODE_UNIT:
            raise ValueError(f"code unit {unit!r} is outside 0..0xFFFF")
        encoded += unit.to_bytes(2, "little")
    return bytes(encoded).decode(_UTF16_CODEC, errors="replace")


def repair_text(raw: bytes, *, high_byte: int = 0) -> str:
    """Reconstruct the text whose code units were truncated into ``raw``."""

    return decode_code_units(widen(raw, high_byte=high_byte))


def repair(raw: bytes, *, high_byte: int = 0) -> bytes:
    """Same as :func:`repair_text` but returns the UTF-8 encoding."""

    return repair_text(raw, high_byte=high_byte).encode(TEXT_ENCODING)


def _validate_high_byte(high_byte: int) -> None:
    if isinstance(high_byte, bool) or not isinstance(high_byte, int):
        raise ValueError(f"high_byte must be an integer, got {type(high_byte).__name__}")
    if not 0 <= high_byte <= 0xFF:
        raise ValueError(f"high_byte must be within 0..0xFF, got {high_byte}")


__all__ = [
    "decode_code_units",
    "is_valid_text",
    "lossy_text",
    "repair",
    "repair_text",
    "widen",
]
