"""Record processing and collection driving."""

from bson_text_repair.pipeline.driver import CollectionDriver
from bson_text_repair.pipeline.processor import RecordProcessor

__all__ = ["CollectionDriver", "RecordProcessor"]
