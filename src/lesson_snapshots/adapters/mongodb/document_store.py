"""MongoDB adapter – MongoDocumentStore."""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator
from contextvars import ContextVar
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import DuplicateKeyError, OperationFailure

from lesson_snapshots.application.denormalization.errors import WriteConflictError
from lesson_snapshots.application.denormalization.store import Collection, DocumentStore
from lesson_snapshots.config.settings import EngineSettings
from lesson_snapshots.kernel.types import VersionId
from lesson_snapshots.observability.logging import get_logger

logger = get_logger(__name__)

_LATEST_FIRST = [("created_at", -1), ("_id", -1)]
_OLDEST_FIRST = [("created_at", 1), ("_id", 1)]

_SNAPSHOT_COLLECTIONS = (Collection.SLIDE_SNAPSHOTS, Collection.REVISION_SNAPSHOTS)
_LOG_COLLECTIONS = (Collection.REVISION_LOG, Collection.SLIDE_LOG, Collection.TRACK_LOG)


class MongoDocumentStore(DocumentStore):
    """:class:`DocumentStore` backed by one MongoDB database.

    Each :class:`Collection` maps to the MongoDB collection of the same
    name. Call :meth:`create_indexes` once on startup before the first
    write.

    Optimistic locking strategy
    ~~~~~~~~~~~~~~~~~~~~~~~~~~~
    Snapshot collections carry a **unique compound index** on
    ``(domain_id, previous)``. A version can therefore have at most one
    successor: the second of two writers that folded from the same
    version hits ``E11000`` and gets a :class:`WriteConflictError`.

    Ordering
    ~~~~~~~~
    ``created_at`` ties are broken by ``_id``. Ids are UUID v7 strings,
    which sort in generation order.

    Transactions
    ~~~~~~~~~~~~
    With ``transactions=True`` every :meth:`transaction` block runs in a
    multi-document transaction on its own client session, which needs a
    replica set or sharded cluster. A concurrent transaction inserting
    the same ``(domain_id, previous)`` pair aborts with a transient
    write conflict, reported as :class:`WriteConflictError`. With
    ``transactions=False`` the block is a plain grouping and each write
    is applied on its own.
    """

    def __init__(self, database: Any, client: Any = None, *, transactions: bool = False) -> None:
        self._db = database
        self._client = client
        self._transactions = transactions
        self._session: ContextVar[Any] = ContextVar(f"mongo_session_{id(self)}", default=None)

    @classmethod
    def connect(cls, settings: EngineSettings) -> "MongoDocumentStore":
        """Open a motor client for *settings* and bind to its database."""
        client = AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)
        return cls(client[settings.database], client, transactions=settings.mongo_transactions)

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if not self._transactions or self._session.get() is not None:
            yield
            return
        client = self._client if self._client is not None else self._db.client
        async with await client.start_session() as session:
            token = self._session.set(session)
            try:
                async with session.start_transaction():
                    yield
            finally:
                self._session.reset(token)

    def close(self) -> None:
        """Close the client opened by :meth:`connect`, if any."""
        if self._client is not None:
            self._client.close()

    def _col(self, collection: Collection) -> Any:
        return self._db[collection.value]

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------

    async def create_indexes(self) -> None:
        """Create the ordering and optimistic-concurrency indexes.

        Idempotent; safe to call repeatedly.
        """
        for collection in _SNAPSHOT_COLLECTIONS:
            col = self._col(collection)
            await col.create_index(
                [("domain_id", 1), ("previous", 1)],
                unique=True,
                name="idx_domain_previous",
            )
            await col.create_index(
                [("domain_id", 1), ("created_at", -1), ("_id", -1)],
                name="idx_domain_latest",
            )
        for collection in _LOG_COLLECTIONS:
            await self._col(collection).create_index(
                [("domain_id", 1), ("created_at", 1)],
                name="idx_domain_recorded",
            )

    # ------------------------------------------------------------------
    # DocumentStore interface
    # ------------------------------------------------------------------

    async def insert(self, collection: Collection, doc: dict[str, Any]) -> str:
        body = {"_id": VersionId.generate().value, **doc}
        await self._col(collection).insert_one(body, session=self._session.get())
        return body["_id"]

    async def insert_version(self, collection: Collection, doc: dict[str, Any]) -> str:
        try:
            return await self.insert(collection, doc)
        except OperationFailure as exc:
            duplicate = isinstance(exc, DuplicateKeyError)
            if not duplicate and not exc.has_error_label("TransientTransactionError"):
                raise
            logger.debug(
                "mongo.duplicate_version",
                collection=collection.value,
                domain_id=doc.get("domain_id"),
                in_transaction=not duplicate,
                error=str(exc),
            )
            raise WriteConflictError(
                collection.value, doc["domain_id"], doc.get("previous")
            ) from None

    async def find_latest(self, collection: Collection, domain_id: str) -> dict[str, Any] | None:
        return await self._col(collection).find_one(
            {"domain_id": domain_id}, sort=_LATEST_FIRST, session=self._session.get()
        )

    async def get(self, collection: Collection, doc_id: str) -> dict[str, Any] | None:
        return await self._col(collection).find_one({"_id": doc_id}, session=self._session.get())

    async def find_all(self, collection: Collection, domain_id: str) -> list[dict[str, Any]]:
        cursor = self._col(collection).find(
            {"domain_id": domain_id}, sort=_OLDEST_FIRST, session=self._session.get()
        )
        return [doc async for doc in cursor]

    async def find_with_previous(self, collection: Collection) -> list[dict[str, Any]]:
        pipeline = [
            {"$sort": dict(_OLDEST_FIRST)},
            {
                "$lookup": {
                    "from": collection.value,
                    "localField": "previous",
                    "foreignField": "_id",
                    "as": "previous",
                }
            },
            {"$set": {"previous": {"$first": "$previous"}}},
        ]
        cursor = self._col(collection).aggregate(pipeline, session=self._session.get())
        rows = [doc async for doc in cursor]
        for row in rows:
            row.setdefault("previous", None)
        return rows


__all__ = ["MongoDocumentStore"]
