"""
MongoDB connection management and the MongoDB-backed document store.

Provides pooled async connections with request-level timeouts and the
``DocumentStore`` implementation every repository uses in production.
"""

import logging
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Any, Dict, List, Tuple

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from .config import settings
from .interfaces.document_store import DocumentStore, SERVER_TIMESTAMP
from ..shared.exceptions import NotFoundError, PersistenceError

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Async database manager with connection pooling"""

    def __init__(self, mongodb_url: Optional[str] = None, database_name: Optional[str] = None):
        self.mongodb_url = mongodb_url or settings.mongodb_url
        self.database_name = database_name or settings.database_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    def _get_client_options(self) -> Dict[str, Any]:
        """Get connection options for the async client"""
        timeout_ms = settings.mongodb_timeout_ms
        return {
            # Connection pooling
            "maxPoolSize": 50,
            "minPoolSize": 5,
            "maxIdleTimeMS": 900000,
            "waitQueueTimeoutMS": timeout_ms,

            # Request-level timeouts; every store call is bounded by these
            "connectTimeoutMS": timeout_ms,
            "socketTimeoutMS": timeout_ms * 3,
            "serverSelectionTimeoutMS": timeout_ms,

            # Reliability options
            "retryWrites": True,
            "retryReads": True,

            # Stored datetimes come back as aware UTC values
            "tz_aware": True,
            "tzinfo": timezone.utc,
        }

    async def connect(self) -> None:
        """Create the MongoDB connection and ping it"""
        try:
            self.client = AsyncIOMotorClient(self.mongodb_url, **self._get_client_options())
            self.database = self.client[self.database_name]

            await self.client.admin.command("ping")

            logger.info(f"MongoDB connection established (database={self.database_name})")

        except Exception as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise

    async def close(self) -> None:
        """Close the MongoDB connection"""
        if self.client:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("MongoDB connection closed")

    async def get_database(self) -> AsyncIOMotorDatabase:
        """Get the database instance, connecting on first use"""
        if self.database is None:
            await self.connect()
        return self.database


def _split_timestamps(fields: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, bool]]:
    plain = {k: v for k, v in fields.items() if v is not SERVER_TIMESTAMP}
    stamped = {k: True for k, v in fields.items() if v is SERVER_TIMESTAMP}
    return plain, stamped


class MongoDocumentStore(DocumentStore):
    """DocumentStore on a motor database"""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def ensure_indexes(self) -> None:
        """Create the indexes the due and expiry sweeps rely on"""
        try:
            await self.db["scheduled_alerts"].create_index(
                [("is_active", ASCENDING), ("scheduled_date", ASCENDING)]
            )
            await self.db["scheduled_alerts"].create_index(
                [("is_active", ASCENDING), ("expires_at", ASCENDING)]
            )
            await self.db["organization_followers"].create_index(
                [("organization_id", ASCENDING), ("is_active", ASCENDING)]
            )
            await self.db["organization_alerts"].create_index(
                [("organization_id", ASCENDING), ("posted_at", ASCENDING)]
            )
            await self.db["followed_organizations"].create_index(
                [("user_id", ASCENDING), ("organization_id", ASCENDING)], unique=True
            )
        except PyMongoError as e:
            raise PersistenceError(f"Index creation failed: {e}", operation="ensure_indexes") from e

    async def query(self, collection, filter=None, order_by=None, limit=None) -> List[Dict[str, Any]]:
        try:
            cursor = self.db[collection].find(filter or {})
            if order_by:
                cursor = cursor.sort(order_by)
            if limit:
                cursor = cursor.limit(limit)
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            raise PersistenceError(f"Query failed: {e}", collection=collection, operation="query") from e

    async def get(self, collection, document_id) -> Optional[Dict[str, Any]]:
        try:
            return await self.db[collection].find_one({"_id": document_id})
        except PyMongoError as e:
            raise PersistenceError(f"Read failed: {e}", collection=collection, operation="get") from e

    async def set(self, collection, document_id, fields, merge=False) -> None:
        plain, stamped = _split_timestamps(fields)
        try:
            if merge:
                update: Dict[str, Any] = {"$set": plain} if plain else {}
                if stamped:
                    update["$currentDate"] = stamped
                if update:
                    await self.db[collection].update_one({"_id": document_id}, update, upsert=True)
                return
            # replace_one cannot use $currentDate, so stamps use the client clock here
            now = datetime.now(timezone.utc)
            document = {**plain, **{k: now for k in stamped}, "_id": document_id}
            await self.db[collection].replace_one({"_id": document_id}, document, upsert=True)
        except PyMongoError as e:
            raise PersistenceError(f"Write failed: {e}", collection=collection, operation="set") from e

    async def update(self, collection, document_id, fields) -> None:
        plain, stamped = _split_timestamps(fields)
        update: Dict[str, Any] = {}
        if plain:
            update["$set"] = plain
        if stamped:
            update["$currentDate"] = stamped
        if not update:
            return
        try:
            result = await self.db[collection].update_one({"_id": document_id}, update)
        except PyMongoError as e:
            raise PersistenceError(f"Update failed: {e}", collection=collection, operation="update") from e
        if result.matched_count == 0:
            raise NotFoundError(collection, document_id)

    async def delete(self, collection, document_id) -> bool:
        try:
            result = await self.db[collection].delete_one({"_id": document_id})
        except PyMongoError as e:
            raise PersistenceError(f"Delete failed: {e}", collection=collection, operation="delete") from e
        return result.deleted_count > 0

    async def atomic_increment(self, collection, document_id, field, delta=1) -> None:
        try:
            result = await self.db[collection].update_one(
                {"_id": document_id},
                {"$inc": {field: delta}, "$currentDate": {"updated_at": True}},
            )
        except PyMongoError as e:
            raise PersistenceError(
                f"Increment failed: {e}", collection=collection, operation="atomic_increment"
            ) from e
        if result.matched_count == 0:
            raise NotFoundError(collection, document_id)

    async def count(self, collection, filter=None) -> int:
        try:
            return await self.db[collection].count_documents(filter or {})
        except PyMongoError as e:
            raise PersistenceError(f"Count failed: {e}", collection=collection, operation="count") from e


@asynccontextmanager
async def document_store_session(ensure_indexes: bool = False) -> AsyncIterator[MongoDocumentStore]:
    """Open a connection for one unit of work (one event loop) and close it afterwards"""
    manager = DatabaseManager()
    db = await manager.get_database()
    store = MongoDocumentStore(db)
    try:
        if ensure_indexes:
            await store.ensure_indexes()
        yield store
    finally:
        await manager.close()
