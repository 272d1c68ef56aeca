"""Stable constants shared across the repair engine: BSON layout widths and defaults."""

from __future__ import annotations

from typing import Final

# BSON element type tags.
TYPE_DOUBLE: Final[int] = 0x01
TYPE_STRING: Final[int] = 0x02
TYPE_DOCUMENT: Final[int] = 0x03
TYPE_ARRAY: Final[int] = 0x04
TYPE_BINARY: Final[int] = 0x05
TYPE_UNDEFINED: Final[int] = 0x06
TYPE_OBJECT_ID: Final[int] = 0x07
TYPE_BOOLEAN: Final[int] = 0x08
TYPE_DATETIME: Final[int] = 0x09
TYPE_NULL: Final[int] = 0x0A
TYPE_REGEX: Final[int] = 0x0B
TYPE_DB_POINTER: Final[int] = 0x0C
TYPE_CODE: Final[int] = 0x0D
TYPE_SYMBOL: Final[int] = 0x0E
TYPE_CODE_WITH_SCOPE: Final[int] = 0x0F
TYPE_INT32: Final[int] = 0x10
TYPE_TIMESTAMP: Final[int] = 0x11
TYPE_INT64: Final[int] = 0x12
TYPE_DECIMAL128: Final[int] = 0x13
TYPE_MIN_KEY: Final[int] = 0xFF
TYPE_MAX_KEY: Final[int] = 0x7F

TYPE_NAMES: Final[dict[int, str]] = {
    TYPE_DOUBLE: "double",
    TYPE_STRING: "string",
    TYPE_DOCUMENT: "document",
    TYPE_ARRAY: "array",
    TYPE_BINARY: "binary",
    TYPE_UNDEFINED: "undefined",
    TYPE_OBJECT_ID: "objectId",
    TYPE_BOOLEAN: "bool",
    TYPE_DATETIME: "date",
    TYPE_NULL: "null",
    TYPE_REGEX: "regex",
    TYPE_DB_POINTER: "dbPointer",
    TYPE_CODE: "javascript",
    TYPE_SYMBOL: "symbol",
    TYPE_CODE_WITH_SCOPE: "javascriptWithScope",
    TYPE_INT32: "int",
    TYPE_TIMESTAMP: "timestamp",
    TYPE_INT64: "long",
    TYPE_DECIMAL128: "decimal",
    TYPE_MIN_KEY: "minKey",
    TYPE_MAX_KEY: "maxKey",
}

# Value payload widths for fixed-size kinds.
FIXED_VALUE_WIDTHS: Final[dict[int, int]] = {
    TYPE_DOUBLE: 8,
    TYPE_UNDEFINED: 0,
    TYPE_OBJECT_ID: 12,
    TYPE_BOOLEAN: 1,
    TYPE_DATETIME: 8,
    TYPE_NULL: 0,
    TYPE_INT32: 4,
    TYPE_TIMESTAMP: 8,
    TYPE_INT64: 8,
    TYPE_DECIMAL128: 16,
    TYPE_MIN_KEY: 0,
    TYPE_MAX_KEY: 0,
}

# Kinds whose value is ``int32 length`` + bytes + NUL, the length covering bytes + NUL.
STRING_KINDS: Final[frozenset[int]] = frozenset({TYPE_STRING, TYPE_CODE, TYPE_SYMBOL})

# Kinds whose value is a self-delimited BSON document (int32 total length first).
DOCUMENT_KINDS: Final[frozenset[int]] = frozenset({TYPE_DOCUMENT, TYPE_ARRAY})

INT32_WIDTH: Final[int] = 4
TYPE_TAG_WIDTH: Final[int] = 1
TERMINATOR_WIDTH: Final[int] = 1
BINARY_SUBTYPE_WIDTH: Final[int] = 1
OBJECT_ID_WIDTH: Final[int] = 12

# Smallest legal document: int32 length + terminator.
MIN_DOCUMENT_SIZE: Final[int] = INT32_WIDTH + TERMINATOR_WIDTH

IDENTITY_KEY: Final[str] = "_id"
TEXT_ENCODING: Final[str] = "utf-8"

# Schema version for persisted config.
CONFIG_SCHEMA_VERSION: Final[int] = 1

DEFAULT_CONFIG_FILE: Final[str] = "bson-text-repair.toml"
DEFAULT_MONGO_URI: Final[str] = "mongodb://localhost:27017"
DEFAULT_LOG_DIR: Final[str] = "logs/"
DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000

__all__ = [
    "BINARY_SUBTYPE_WIDTH",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_LOG_DIR",
    "DEFAULT_MONGO_URI",
    "DEFAULT_SERVER_SELECTION_TIMEOUT_MS",
    "DOCUMENT_KINDS",
    "FIXED_VALUE_WIDTHS",
    "IDENTITY_KEY",
    "INT32_WIDTH",
    "MIN_DOCUMENT_SIZE",
    "OBJECT_ID_WIDTH",
    "STRING_KINDS",
    "TERMINATOR_WIDTH",
    "TEXT_ENCODING",
    "TYPE_ARRAY",
    "TYPE_BINARY",
    "TYPE_BOOLEAN",
    "TYPE_CODE",
    "TYPE_CODE_WITH_SCOPE",
    "TYPE_DATETIME",
    "TYPE_DB_POINTER",
    "TYPE_DECIMAL128",
    "TYPE_DOCUMENT",
    "TYPE_DOUBLE",
    "TYPE_INT32",
    "TYPE_INT64",
    "TYPE_MAX_KEY",
    "TYPE_MIN_KEY",
    "TYPE_NAMES",
    "TYPE_NULL",
    "TYPE_OBJECT_ID",
    "TYPE_REGEX",
    "TYPE_STRING",
    "TYPE_SYMBOL",
    "TYPE_TAG_WIDTH",
    "TYPE_TIMESTAMP",
    "TYPE_UNDEFINED",
]
