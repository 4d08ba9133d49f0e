"""Tests for the MongoDB store backend.

The pymongo collection is a MagicMock; these tests check the queries the
store issues and how driver results and errors are translated.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from pymongo import ASCENDING, UpdateOne
from pymongo.errors import BulkWriteError, ServerSelectionTimeoutError

from readnext_sync.errors import StoreUnavailable
from readnext_sync.store.base import APPROXIMATE_TOTAL
from readnext_sync.store.mongo_store import MongoStore
from readnext_sync.sync.models import ArticleRecord, UpsertOutcome

NS = "u1"


@pytest.fixture
def collection():
    return MagicMock()


@pytest.fixture
def store(collection):
    return MongoStore(collection)


def _doc(record_id, revision, **data):
    return {
        "id": record_id,
        "updatedAt": revision,
        "data": {"id": record_id, "updatedAt": revision, **data},
    }


class TestMongoStoreReads:
    """Tests for read queries."""

    def test_get_found(self, store, collection):
        collection.find_one.return_value = _doc("a1", 7, content="text", title="T")

        record = store.get(NS, "a1")

        assert record.revision == 7
        assert record.content == "text"
        assert record.fields == {"title": "T"}
        query = collection.find_one.call_args[0][0]
        assert query == {"namespace": NS, "id": "a1"}

    def test_get_missing(self, store, collection):
        collection.find_one.return_value = None
        assert store.get(NS, "nope") is None

    def test_get_many_uses_in_query(self, store, collection):
        collection.find.return_value = [_doc("a", 1), _doc("b", 2)]

        found = store.get_many(NS, ["a", "b", "a"])

        assert set(found) == {"a", "b"}
        query = collection.find.call_args[0][0]
        assert query["namespace"] == NS
        assert sorted(query["id"]["$in"]) == ["a", "b"]

    def test_get_many_empty_skips_query(self, store, collection):
        assert store.get_many(NS, []) == {}
        collection.find.assert_not_called()

    def test_query_changed(self, store, collection):
        cursor = collection.find.return_value
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = iter([_doc("a", 5), _doc("b", 6)])

        result = store.query_changed(NS, 5, skip=50, limit=51)

        assert [r.id for r in result] == ["a", "b"]
        query = collection.find.call_args[0][0]
        assert query == {"namespace": NS, "updatedAt": {"$gte": 5}}
        cursor.sort.assert_called_once_with(
            [("updatedAt", ASCENDING), ("_id", ASCENDING)]
        )
        cursor.skip.assert_called_once_with(50)
        cursor.limit.assert_called_once_with(51)

    def test_count_changed_sentinel_by_default(self, store, collection):
        assert store.count_changed(NS, 0) == APPROXIMATE_TOTAL
        collection.count_documents.assert_not_called()

    def test_count_changed_exact(self, collection):
        collection.count_documents.return_value = 12
        store = MongoStore(collection, exact_counts=True)

        assert store.count_changed(NS, 3) == 12
        collection.count_documents.assert_called_once_with(
            {"namespace": NS, "updatedAt": {"$gte": 3}}
        )

    def test_find_truncated_uses_string_length(self, store, collection):
        collection.find.return_value.limit.return_value = [
            _doc("a", 1, content="x")
        ]

        result = store.find_truncated(NS, 200, 20)

        assert [r.id for r in result] == ["a"]
        query = collection.find.call_args[0][0]
        assert query["namespace"] == NS
        assert query["$expr"]["$lt"][1] == 200
        collection.find.return_value.limit.assert_called_once_with(20)

    def test_unreadable_document_skipped_in_pull(self, store, collection, caplog):
        """A legacy numeric id must not break the whole page."""
        cursor = collection.find.return_value
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        legacy = {"id": 7, "updatedAt": 1, "data": {"id": 7, "content": "legacy"}}
        cursor.limit.side_effect = [
            iter([legacy, _doc("a", 2)]),
            iter([_doc("b", 3)]),
        ]

        result = store.query_changed(NS, 0, skip=0, limit=2)

        assert [r.id for r in result] == ["a", "b"]
        assert [c.args for c in cursor.skip.call_args_list] == [(0,), (2,)]
        assert [c.args for c in cursor.limit.call_args_list] == [(2,), (1,)]
        assert "Skipping unreadable stored article 7" in caplog.text

    def test_unreadable_document_skipped_in_lookups(self, store, collection):
        legacy = {"id": 7, "updatedAt": 1, "data": {"id": 7}}
        collection.find_one.return_value = legacy
        collection.find.return_value = [legacy, _doc("a", 2)]

        assert store.get(NS, "7") is None
        assert list(store.get_many(NS, ["7", "a"])) == ["a"]

    def test_driver_error_becomes_store_unavailable(self, store, collection):
        collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(StoreUnavailable) as exc_info:
            store.get(NS, "a")

        assert exc_info.value.namespace == NS
        assert exc_info.value.operation == "get"


class TestMongoStoreBulkUpsert:
    """Tests for bulk_upsert() result translation."""

    def _records(self, *ids):
        return [ArticleRecord(id=i, revision=10, content="c") for i in ids]

    def test_builds_unordered_upserts(self, store, collection):
        collection.bulk_write.return_value.upserted_ids = {0: "oid"}

        outcomes = store.bulk_upsert(NS, self._records("a", "b"))

        assert outcomes == [UpsertOutcome.INSERTED, UpsertOutcome.UPDATED]
        ops = collection.bulk_write.call_args[0][0]
        assert collection.bulk_write.call_args[1] == {"ordered": False}
        assert ops[0] == UpdateOne(
            {"namespace": NS, "id": "a"},
            {
                "$set": {
                    "updatedAt": 10,
                    "data": {"id": "a", "content": "c", "updatedAt": 10},
                }
            },
            upsert=True,
        )

    def test_empty_batch(self, store, collection):
        assert store.bulk_upsert(NS, []) == []
        collection.bulk_write.assert_not_called()

    def test_partial_failure(self, store, collection):
        collection.bulk_write.side_effect = BulkWriteError(
            {
                "writeErrors": [{"index": 1, "code": 11000, "errmsg": "dup key"}],
                "upserted": [{"index": 2, "_id": "oid"}],
            }
        )

        outcomes = store.bulk_upsert(NS, self._records("a", "b", "c"))

        assert outcomes == [
            UpsertOutcome.UPDATED,
            UpsertOutcome.FAILED,
            UpsertOutcome.INSERTED,
        ]

    def test_write_concern_only_error_is_unavailable(self, store, collection):
        collection.bulk_write.side_effect = BulkWriteError(
            {"writeErrors": [], "writeConcernErrors": [{"errmsg": "timeout"}]}
        )

        with pytest.raises(StoreUnavailable) as exc_info:
            store.bulk_upsert(NS, self._records("a"))

        assert exc_info.value.operation == "bulk_upsert"


class TestMongoStoreLifecycle:
    """Tests for connect() and close()."""

    def test_connect_pings_and_creates_indexes(self):
        with patch("readnext_sync.store.mongo_store.MongoClient") as client_cls:
            client = client_cls.return_value
            collection = client.__getitem__.return_value.__getitem__.return_value

            store = MongoStore.connect(
                "mongodb://localhost", database="rn", timeout_ms=1000
            )

        client_cls.assert_called_once_with(
            "mongodb://localhost", serverSelectionTimeoutMS=1000
        )
        collection.database.client.admin.command.assert_called_once_with("ping")
        assert collection.create_index.call_count == 2
        unique_call = collection.create_index.call_args_list[0]
        assert unique_call[1] == {"unique": True}
        assert isinstance(store, MongoStore)

    def test_connect_unreachable_closes_client(self):
        with patch("readnext_sync.store.mongo_store.MongoClient") as client_cls:
            client = client_cls.return_value
            collection = client.__getitem__.return_value.__getitem__.return_value
            collection.database.client.admin.command.side_effect = (
                ServerSelectionTimeoutError("timed out")
            )

            with pytest.raises(StoreUnavailable) as exc_info:
                MongoStore.connect("mongodb://localhost")

        assert exc_info.value.operation == "ping"
        client.close.assert_called_once()

    def test_close_only_closes_owned_client(self, collection):
        client = MagicMock()
        MongoStore(collection, client=client).close()
        client.close.assert_called_once()

        MongoStore(collection).close()  # no client, nothing to close
