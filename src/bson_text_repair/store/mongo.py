"""MongoDB adapter for the record stream boundary (pymongo async API)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bson.raw_bson import RawBSONDocument
from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from bson_text_repair.constants import DEFAULT_SERVER_SELECTION_TIMEOUT_MS, IDENTITY_KEY
from bson_text_repair.observability.logging import redact_text
from bson_text_repair.store.base import ReplaceError, StoreError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence
    from types import TracebackType

    from pymongo.asynchronous.collection import AsyncCollection

    from bson_text_repair.domain.models import RecordIdentity

logger = logging.getLogger(__name__)

_SYSTEM_COLLECTION_PREFIX = "system."


class MongoCollectionStream:
    """Stream one collection as raw BSON; replacements are keyed by ``_id``.

    Documents are fetched as ``RawBSONDocument`` so the driver never tries to
    decode string payloads.
    """

    def __init__(self, collection: AsyncCollection[RawBSONDocument]) -> None:
        self._collection = collection

    @property
    def name(self) -> str:
        return self._collection.full_name

    async def records(self) -> AsyncIterator[bytes]:
        try:
            async for document in self._collection.find({}):
                yield document.raw
        except PyMongoError as exc:
            raise StoreError(f"cursor over {self.name} failed: {exc}") from exc

    async def replace(self, identity: RecordIdentity, document: bytes) -> bool:
        try:
            result = await self._collection.replace_one(
                {IDENTITY_KEY: identity.value},
                RawBSONDocument(document),
            )
        except ConnectionFailure as exc:
            raise StoreError(f"lost connection while replacing in {self.name}: {exc}") from exc
        except PyMongoError as exc:
            raise ReplaceError(
                f"replace of {identity.display} in {self.name} failed: {exc}",
                identity=identity,
            ) from exc
        return result.matched_count > 0


class MongoStore:
    """Connection holder that hands out one stream per collection."""

    def __init__(self, client: AsyncMongoClient[RawBSONDocument], *, uri: str) -> None:
        self._client = client
        self._uri = uri

    @classmethod
    async def connect(
        cls,
        uri: str,
        *,
        server_selection_timeout_ms: int = DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
        **client_options: Any,
    ) -> MongoStore:
        """Create a client and confirm the deployment answers ``ping``."""

        safe_uri = redact_text(uri)
        try:
            client: AsyncMongoClient[RawBSONDocument] = AsyncMongoClient(
                uri,
                document_class=RawBSONDocument,
                serverSelectionTimeoutMS=server_selection_timeout_ms,
                **client_options,
            )
        except PyMongoError as exc:
            raise StoreError(f"invalid connection target {safe_uri}: {exc}") from exc

        try:
            await client.admin.command("ping")
        except PyMongoError as exc:
            await client.close()
            raise StoreError(f"cannot reach {safe_uri}: {exc}") from exc

        logger.info("connected", extra={"target": safe_uri})
        return cls(client, uri=uri)

    @property
    def target(self) -> str:
        return redact_text(self._uri)

    async def collection_names(self, database: str) -> list[str]:
        """Return the user collections of ``database`` in sorted order."""

        try:
            names = await self._client[database].list_collection_names()
        except PyMongoError as exc:
            raise StoreError(f"cannot list collections of {database}: {exc}") from exc
        return sorted(name for name in names if not name.startswith(_SYSTEM_COLLECTION_PREFIX))

    async def streams(
        self,
        database: str,
        collections: Sequence[str] = (),
    ) -> list[MongoCollectionStream]:
        """One stream per named collection, or per collection in the database when none given."""

        names = list(collections) if collections else await self.collection_names(database)
        db = self._client[database]
        return [MongoCollectionStream(db[name]) for name in names]

    async def close(self) -> None:
        await self._client.close()

    async def __aenter__(self) -> MongoStore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["MongoCollectionStream", "MongoStore"]
