"""Record identity extraction straight from the raw ``_id`` element."""

from __future__ import annotations

import logging
import struct

import bson
from bson.codec_options import CodecOptions, DatetimeConversion
from bson.errors import InvalidBSON

from bson_text_repair.codec.layout import BsonLayoutError, find_element
from bson_text_repair.constants import IDENTITY_KEY, INT32_WIDTH, TERMINATOR_WIDTH
from bson_text_repair.domain.models import RecordIdentity

logger = logging.getLogger(__name__)

_ID_CODEC_OPTIONS = CodecOptions(datetime_conversion=DatetimeConversion.DATETIME_AUTO)


def extract_identity(document: bytes) -> RecordIdentity | None:
    """Decode the record's ``_id``; ``None`` when it is absent or undecodable.

    Only the ``_id`` element is decoded, so invalid strings elsewhere in the
    record do not prevent identification.
    """

    try:
        element = find_element(document, IDENTITY_KEY)
    except BsonLayoutError as exc:
        logger.debug("identity lookup hit a layout error: %s", exc)
        return None
    if element is None:
        return None

    raw_element = element.raw(document)
    size = INT32_WIDTH + len(raw_element) + TERMINATOR_WIDTH
    single = struct.pack("<i", size) + raw_element + b"\x00"
    try:
        value = bson.decode(single, codec_options=_ID_CODEC_OPTIONS)[IDENTITY_KEY]
    except InvalidBSON as exc:
        logger.debug("identity element could not be decoded: %s", exc)
        return None
    return RecordIdentity(value=value)


__all__ = ["extract_identity"]
