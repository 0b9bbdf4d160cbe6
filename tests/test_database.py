from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest
from pymongo.errors import PyMongoError

from alert_pipeline.core.database import MongoDocumentStore
from alert_pipeline.core.interfaces import QueryFilter, SortOption, SERVER_TIMESTAMP
from alert_pipeline.shared.exceptions import NotFoundError, PersistenceError

from conftest import T0


@pytest.fixture
def collection():
    collection = AsyncMock()
    collection.update_one.return_value = Mock(matched_count=1)
    return collection


@pytest.fixture
def mock_db(collection):
    """Mock motor database whose collections are all ``collection``"""
    db = AsyncMock()
    db.__getitem__ = Mock(return_value=collection)
    return db


@pytest.fixture
def mongo_store(mock_db):
    return MongoDocumentStore(mock_db)


class TestMongoDocumentStoreWrites:
    """Update documents sent to MongoDB"""

    @pytest.mark.asyncio
    async def test_update_maps_server_timestamp_to_current_date(self, mongo_store, mock_db, collection):
        await mongo_store.update(
            "scheduled_alerts", "sa-1", {"scheduled_date": T0, "updated_at": SERVER_TIMESTAMP}
        )

        mock_db.__getitem__.assert_called_with("scheduled_alerts")
        collection.update_one.assert_awaited_once_with(
            {"_id": "sa-1"},
            {"$set": {"scheduled_date": T0}, "$currentDate": {"updated_at": True}},
        )

    @pytest.mark.asyncio
    async def test_update_missing_document_raises_not_found(self, mongo_store, collection):
        collection.update_one.return_value = Mock(matched_count=0)

        with pytest.raises(NotFoundError) as exc_info:
            await mongo_store.update("scheduled_alerts", "gone", {"is_active": False})

        assert exc_info.value.resource == "scheduled_alerts"
        assert exc_info.value.resource_id == "gone"

    @pytest.mark.asyncio
    async def test_update_driver_error_raises_persistence_error(self, mongo_store, collection):
        collection.update_one.side_effect = PyMongoError("primary stepped down")

        with pytest.raises(PersistenceError) as exc_info:
            await mongo_store.update("scheduled_alerts", "sa-1", {"is_active": False})

        assert exc_info.value.collection == "scheduled_alerts"
        assert exc_info.value.operation == "update"

    @pytest.mark.asyncio
    async def test_atomic_increment_uses_inc(self, mongo_store, collection):
        await mongo_store.atomic_increment("organizations", "org-1", "alert_count")

        collection.update_one.assert_awaited_once_with(
            {"_id": "org-1"},
            {"$inc": {"alert_count": 1}, "$currentDate": {"updated_at": True}},
        )

    @pytest.mark.asyncio
    async def test_atomic_increment_missing_document_raises_not_found(self, mongo_store, collection):
        collection.update_one.return_value = Mock(matched_count=0)

        with pytest.raises(NotFoundError):
            await mongo_store.atomic_increment("organizations", "org-404", "alert_count")

    @pytest.mark.asyncio
    async def test_atomic_increment_driver_error(self, mongo_store, collection):
        collection.update_one.side_effect = PyMongoError("timeout")

        with pytest.raises(PersistenceError) as exc_info:
            await mongo_store.atomic_increment("organizations", "org-1", "alert_count", delta=-1)

        assert exc_info.value.operation == "atomic_increment"

    @pytest.mark.asyncio
    async def test_merge_set_upserts_with_current_date(self, mongo_store, collection):
        await mongo_store.set(
            "organization_alerts", "live-1", {"delivery_error": "boom", "updated_at": SERVER_TIMESTAMP}, merge=True
        )

        collection.update_one.assert_awaited_once_with(
            {"_id": "live-1"},
            {"$set": {"delivery_error": "boom"}, "$currentDate": {"updated_at": True}},
            upsert=True,
        )

    @pytest.mark.asyncio
    async def test_full_set_replaces_document(self, mongo_store, collection):
        await mongo_store.set("organization_alerts", "live-1", {"title": "Elm St", "created_at": SERVER_TIMESTAMP})

        args, kwargs = collection.replace_one.await_args
        assert args[0] == {"_id": "live-1"}
        assert args[1]["_id"] == "live-1"
        assert args[1]["title"] == "Elm St"
        assert isinstance(args[1]["created_at"], datetime)
        assert args[1]["created_at"].tzinfo is not None
        assert kwargs == {"upsert": True}

    @pytest.mark.asyncio
    async def test_set_driver_error(self, mongo_store, collection):
        collection.replace_one.side_effect = PyMongoError("duplicate key")

        with pytest.raises(PersistenceError) as exc_info:
            await mongo_store.set("organization_alerts", "live-1", {"title": "x"})

        assert exc_info.value.operation == "set"


class TestMongoDocumentStoreReads:
    """Queries and reads"""

    @pytest.mark.asyncio
    async def test_query_applies_filter_and_sort(self, mongo_store, collection):
        cursor = Mock()
        cursor.sort.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[{"_id": "sa-1"}])
        collection.find = Mock(return_value=cursor)
        query = QueryFilter().eq("is_active", True).lte("scheduled_date", T0).to_dict()
        order = SortOption().asc("scheduled_date").to_list()

        docs = await mongo_store.query("scheduled_alerts", query, order)

        assert docs == [{"_id": "sa-1"}]
        collection.find.assert_called_once_with({"is_active": True, "scheduled_date": {"$lte": T0}})
        cursor.sort.assert_called_once_with([("scheduled_date", 1)])
        cursor.limit.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_driver_error(self, mongo_store, collection):
        collection.find = Mock(side_effect=PyMongoError("server selection timeout"))

        with pytest.raises(PersistenceError) as exc_info:
            await mongo_store.query("scheduled_alerts", {})

        assert exc_info.value.operation == "query"

    @pytest.mark.asyncio
    async def test_get_reads_by_id(self, mongo_store, collection):
        collection.find_one.return_value = {"_id": "user-1", "email": "a@example.com"}

        doc = await mongo_store.get("users", "user-1")

        assert doc["email"] == "a@example.com"
        collection.find_one.assert_awaited_once_with({"_id": "user-1"})

    @pytest.mark.asyncio
    async def test_get_driver_error(self, mongo_store, collection):
        collection.find_one.side_effect = PyMongoError("network")

        with pytest.raises(PersistenceError):
            await mongo_store.get("users", "user-1")

    @pytest.mark.asyncio
    async def test_count_passes_filter(self, mongo_store, collection):
        collection.count_documents.return_value = 4

        assert await mongo_store.count("organization_alerts", {"organization_id": "org-1"}) == 4
        collection.count_documents.assert_awaited_once_with({"organization_id": "org-1"})

    @pytest.mark.asyncio
    async def test_ensure_indexes_failure(self, mongo_store, collection):
        collection.create_index.side_effect = PyMongoError("not authorized")

        with pytest.raises(PersistenceError) as exc_info:
            await mongo_store.ensure_indexes()

        assert exc_info.value.operation == "ensure_indexes"
