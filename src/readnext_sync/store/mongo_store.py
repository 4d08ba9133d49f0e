"""MongoDB store backend.

Each article is one document::

    {"namespace": str, "id": str, "updatedAt": int, "data": {<payload>}}

Indexes (created by ``ensure_indexes()`` at startup):

* ``(namespace, id)`` unique -- the natural key.
* ``(namespace, updatedAt)`` -- serves the pull query.

Documents whose payload no longer validates (legacy clients stored ids of
any type) are skipped by reads with a warning and left in place.

Bulk upserts are unordered: items are independent and a per-item write
error only fails that item.  Pull order is ``(updatedAt, _id)`` so records
sharing a revision keep a stable document order across pages.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from pydantic import ValidationError
from pymongo import ASCENDING, MongoClient, UpdateOne
from pymongo.collection import Collection
from pymongo.errors import BulkWriteError, PyMongoError

from readnext_sync.errors import StoreUnavailable
from readnext_sync.sync.models import ArticleRecord, UpsertOutcome

from .base import APPROXIMATE_TOTAL

logger = logging.getLogger(__name__)

_PROJECTION = {"_id": 0, "id": 1, "updatedAt": 1, "data": 1}


@contextmanager
def _guard(namespace: str | None, operation: str) -> Iterator[None]:
    """Translate driver errors into ``StoreUnavailable``."""
    try:
        yield
    except PyMongoError as exc:
        logger.error(
            "[%s] MongoDB %s failed: %s", namespace or "-", operation, exc
        )
        raise StoreUnavailable(namespace, operation, str(exc)) from exc


def _to_record(doc: dict[str, Any]) -> ArticleRecord:
    data = doc.get("data")
    payload = dict(data) if isinstance(data, dict) else {}
    payload["id"] = doc.get("id")
    payload["updatedAt"] = doc.get("updatedAt")
    return ArticleRecord.from_payload(payload)


def _readable(
    namespace: str, docs: Iterable[dict[str, Any]]
) -> list[ArticleRecord]:
    records: list[ArticleRecord] = []
    for doc in docs:
        try:
            records.append(_to_record(doc))
        except ValidationError as exc:
            logger.warning(
                "[%s] Skipping unreadable stored article %r: %s",
                namespace,
                doc.get("id"),
                exc.errors()[0]["msg"] if exc.errors() else exc,
            )
    return records


class MongoStore:
    """Store backed by a MongoDB collection.

    Args:
        collection: The pymongo collection holding article documents.
        client: Owning client, closed by ``close()``.  ``None`` when the
            caller manages the client lifetime.
        exact_counts: When ``True``, ``count_changed()`` runs a real count
            instead of returning ``APPROXIMATE_TOTAL``.
    """

    def __init__(
        self,
        collection: Collection,
        client: MongoClient | None = None,
        exact_counts: bool = False,
    ) -> None:
        self._collection = collection
        self._client = client
        self._exact_counts = exact_counts

    @classmethod
    def connect(
        cls,
        uri: str,
        database: str = "readnext",
        collection: str = "articles",
        timeout_ms: int = 5000,
        exact_counts: bool = False,
    ) -> MongoStore:
        """Connect to MongoDB, verify reachability and ensure indexes.

        Raises:
            StoreUnavailable: If the server cannot be reached.
        """
        client: MongoClient = MongoClient(
            uri, serverSelectionTimeoutMS=timeout_ms
        )
        store = cls(
            client[database][collection],
            client=client,
            exact_counts=exact_counts,
        )
        try:
            store.ping()
            store.ensure_indexes()
        except StoreUnavailable:
            client.close()
            raise
        logger.info(
            "Connected to MongoDB (database=%s, collection=%s)",
            database,
            collection,
        )
        return store

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def ping(self) -> None:
        with _guard(None, "ping"):
            self._collection.database.client.admin.command("ping")

    def ensure_indexes(self) -> None:
        with _guard(None, "ensure_indexes"):
            self._collection.create_index(
                [("namespace", ASCENDING), ("id", ASCENDING)],
                unique=True,
            )
            self._collection.create_index(
                [("namespace", ASCENDING), ("updatedAt", ASCENDING)]
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, namespace: str, record_id: str) -> ArticleRecord | None:
        with _guard(namespace, "get"):
            doc = self._collection.find_one(
                {"namespace": namespace, "id": record_id}, _PROJECTION
            )
        if not doc:
            return None
        found = _readable(namespace, [doc])
        return found[0] if found else None

    def get_many(
        self, namespace: str, record_ids: Iterable[str]
    ) -> dict[str, ArticleRecord]:
        ids = list(set(record_ids))
        if not ids:
            return {}
        with _guard(namespace, "get_many"):
            docs = list(
                self._collection.find(
                    {"namespace": namespace, "id": {"$in": ids}},
                    _PROJECTION,
                )
            )
        return {record.id: record for record in _readable(namespace, docs)}

    def query_changed(
        self, namespace: str, min_revision: int, skip: int, limit: int
    ) -> list[ArticleRecord]:
        """Return up to *limit* readable records, in pull order.

        Skipped unreadable documents are replaced by the documents that
        follow them, so a short result always means the end was reached.
        The next page may then repeat a few records, never miss one.
        """
        records: list[ArticleRecord] = []
        offset = skip
        wanted = limit
        while wanted > 0:
            with _guard(namespace, "query_changed"):
                cursor = (
                    self._collection.find(
                        {
                            "namespace": namespace,
                            "updatedAt": {"$gte": min_revision},
                        },
                        _PROJECTION,
                    )
                    .sort([("updatedAt", ASCENDING), ("_id", ASCENDING)])
                    .skip(offset)
                    .limit(wanted)
                )
                docs = list(cursor)
            records.extend(_readable(namespace, docs))
            if len(docs) < wanted:
                break
            offset += len(docs)
            wanted = limit - len(records)
        return records

    def count(self, namespace: str) -> int:
        with _guard(namespace, "count"):
            return self._collection.count_documents(
                {"namespace": namespace}
            )

    def count_changed(self, namespace: str, min_revision: int) -> int:
        if not self._exact_counts:
            return APPROXIMATE_TOTAL
        with _guard(namespace, "count_changed"):
            return self._collection.count_documents(
                {
                    "namespace": namespace,
                    "updatedAt": {"$gte": min_revision},
                }
            )

    def find_truncated(
        self, namespace: str, threshold: int, limit: int
    ) -> list[ArticleRecord]:
        query = {
            "namespace": namespace,
            "$expr": {
                "$lt": [
                    {
                        "$strLenCP": {
                            "$cond": [
                                {"$eq": [{"$type": "$data.content"}, "string"]},
                                "$data.content",
                                "",
                            ]
                        }
                    },
                    threshold,
                ]
            },
        }
        with _guard(namespace, "find_truncated"):
            docs = list(
                self._collection.find(query, _PROJECTION).limit(limit)
            )
        return _readable(namespace, docs)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def bulk_upsert(
        self, namespace: str, records: Sequence[ArticleRecord]
    ) -> list[UpsertOutcome]:
        if not records:
            return []

        ops = [
            UpdateOne(
                {"namespace": namespace, "id": record.id},
                {
                    "$set": {
                        "updatedAt": record.revision,
                        "data": record.to_payload(),
                    }
                },
                upsert=True,
            )
            for record in records
        ]

        failed: dict[int, str] = {}
        with _guard(namespace, "bulk_upsert"):
            try:
                result = self._collection.bulk_write(ops, ordered=False)
                upserted = set(result.upserted_ids or {})
            except BulkWriteError as exc:
                details = exc.details or {}
                upserted = {
                    u["index"] for u in details.get("upserted", [])
                }
                failed = {
                    e["index"]: e.get("errmsg", "write error")
                    for e in details.get("writeErrors", [])
                }
                if not failed:
                    # Only write-concern errors: nothing is known to be applied.
                    raise
                logger.warning(
                    "[%s] Bulk write: %d of %d item(s) failed",
                    namespace,
                    len(failed),
                    len(ops),
                )
                for index, message in failed.items():
                    logger.debug(
                        "[%s] Item %d (%s) failed: %s",
                        namespace,
                        index,
                        records[index].id,
                        message,
                    )

        outcomes: list[UpsertOutcome] = []
        for index in range(len(records)):
            if index in failed:
                outcomes.append(UpsertOutcome.FAILED)
            elif index in upserted:
                outcomes.append(UpsertOutcome.INSERTED)
            else:
                outcomes.append(UpsertOutcome.UPDATED)
        return outcomes

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
