"""Document store boundary: record streams and the MongoDB adapter.

``bson_text_repair.store.mongo`` holds the pymongo-backed implementation; the
engine itself only depends on the ``RecordStream`` protocol.
"""

from bson_text_repair.store.base import RecordStream, ReplaceError, StoreError

__all__ = ["RecordStream", "ReplaceError", "StoreError"]
