"""Shared async utilities."""

from bson_text_repair.utils.concurrency import StreamPool

__all__ = ["StreamPool"]
