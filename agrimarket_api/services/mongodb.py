# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with conditional updates and connection pooling.
"""

import os
import logging
import threading
from datetime import datetime, timezone
from typing import List, Dict, Optional, Any, Union
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from bson import ObjectId
from bson.errors import InvalidId

logger = logging.getLogger(__name__)

Update = Union[Dict[str, Any], List[Dict[str, Any]]]


class MongoDBService:
    """MongoDB service with lazily created, pooled client."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/agrimarket_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'agrimarket_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None
        self._lock = threading.Lock()

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client, connecting once on first use."""
        if self._client is None:
            with self._lock:
                if self._client is None:
                    try:
                        client = MongoClient(
                            self.connection_string,
                            maxPoolSize=self.max_pool_size,
                            minPoolSize=self.min_pool_size,
                            maxIdleTimeMS=self.max_idle_time_ms,
                            serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                            retryWrites=True,
                            retryReads=True
                        )
                        # Test connection
                        client.admin.command('ping')
                        self._client = client
                        logger.info("MongoDB connection established successfully")
                    except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                        logger.error(f"Failed to connect to MongoDB: {e}")
                        raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def _validate_object_id(self, doc_id: str) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValueError(f"Invalid ObjectId format: {doc_id}")

    @staticmethod
    def _normalize(document: Optional[Dict]) -> Optional[Dict]:
        """Expose ``_id`` as a string ``id`` for JSON and model parsing."""
        if document is None:
            return None
        if "_id" in document:
            document["id"] = str(document.pop("_id"))
        return document

    def _add_timestamps(self, document: Dict, is_update: bool = False) -> Dict:
        """Add creation and update timestamps to document."""
        now = datetime.now(timezone.utc)

        if not is_update:
            document["createdAt"] = now

        document["updatedAt"] = now
        return document

    # CRUD Operations

    def create(self, collection: str, document: Dict) -> str:
        """Insert a new document and return its id."""
        try:
            document = dict(document)
            doc_id = document.pop("id", None)
            document = self._add_timestamps(document)
            document["_id"] = self._validate_object_id(doc_id) if doc_id else ObjectId()

            collection_obj = self.get_collection(collection)
            result = collection_obj.insert_one(document)

            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)

        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise ValueError("Document with this identifier already exists")
        except Exception as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def find_one(self, collection: str, doc_id: str) -> Optional[Dict]:
        """Find a single document by ID."""
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return None

        try:
            document = self.get_collection(collection).find_one({"_id": object_id})

            if document:
                logger.debug(f"Found document {doc_id} in {collection}")
            else:
                logger.debug(f"Document {doc_id} not found in {collection}")

            return self._normalize(document)

        except Exception as e:
            logger.error(f"Failed to find document {doc_id} in {collection}: {e}")
            raise

    def find_by_ids(self, collection: str, doc_ids: List[str]) -> List[Dict]:
        """Find documents whose ID is in the given list; invalid IDs are skipped."""
        object_ids = [ObjectId(doc_id) for doc_id in set(doc_ids) if doc_id and ObjectId.is_valid(doc_id)]
        if not object_ids:
            return []

        try:
            cursor = self.get_collection(collection).find({"_id": {"$in": object_ids}})
            return [self._normalize(document) for document in cursor]
        except Exception as e:
            logger.error(f"Failed to find documents by id in {collection}: {e}")
            raise

    def find_many(self, collection: str, query: Dict = None, sort_by: str = "createdAt",
                  sort_order: int = DESCENDING, skip: int = 0, limit: int = 20) -> List[Dict]:
        """Find documents with sorting and offset pagination."""
        try:
            cursor = (
                self.get_collection(collection)
                .find(query or {})
                .sort(sort_by, sort_order)
                .skip(skip)
                .limit(limit)
            )
            documents = [self._normalize(document) for document in cursor]

            logger.debug(f"Found {len(documents)} documents in {collection} (skip {skip}, limit {limit})")
            return documents

        except Exception as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def count(self, collection: str, query: Dict = None) -> int:
        """Count documents matching a query."""
        try:
            count = self.get_collection(collection).count_documents(query or {})
            logger.debug(f"Counted {count} documents in {collection}")
            return count

        except Exception as e:
            logger.error(f"Failed to count documents in {collection}: {e}")
            raise

    def find_one_and_update(self, collection: str, doc_id: str, update: Update,
                            conditions: Dict = None) -> Optional[Dict]:
        """
        Atomically update a document if it still matches the given conditions.

        Args:
            collection: Collection name
            doc_id: Document ID
            update: Update document (``{"$set": ...}``) or aggregation pipeline
            conditions: Extra match conditions checked in the same operation

        Returns:
            The updated document, or None when no document matched
        """
        try:
            object_id = self._validate_object_id(doc_id)
        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return None

        query = {"_id": object_id}
        if conditions:
            query.update(conditions)

        now = datetime.now(timezone.utc)
        if isinstance(update, list):
            update = update + [{"$set": {"updatedAt": now}}]
        else:
            update = dict(update)
            update["$set"] = {**update.get("$set", {}), "updatedAt": now}

        try:
            document = self.get_collection(collection).find_one_and_update(
                query,
                update,
                return_document=ReturnDocument.AFTER
            )

            if document:
                logger.info(f"Updated document {doc_id} in {collection}")
            else:
                logger.info(
                    f"No document updated for {doc_id} in {collection}",
                    extra={"conditions": list((conditions or {}).keys())}
                )

            return self._normalize(document)

        except Exception as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise

    def replace(self, collection: str, doc_id: str, document: Dict) -> bool:
        """Replace a full document and refresh its update timestamp."""
        object_id = self._validate_object_id(doc_id)

        document = dict(document)
        document.pop("id", None)
        document.pop("_id", None)
        document = self._add_timestamps(document, is_update=True)

        try:
            result = self.get_collection(collection).replace_one({"_id": object_id}, document)

            if result.matched_count > 0:
                logger.info(f"Replaced document {doc_id} in {collection}")
                return True

            logger.warning(f"No document replaced for {doc_id} in {collection}")
            return False

        except Exception as e:
            logger.error(f"Failed to replace document {doc_id} in {collection}: {e}")
            raise

    # Index Management

    def create_indexes(self) -> None:
        """Create performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            # Demands indexes
            demands = self.get_collection("demands")
            demands.create_index([("buyer", ASCENDING), ("createdAt", DESCENDING)])
            demands.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
            demands.create_index([("seller", ASCENDING), ("createdAt", DESCENDING)])
            demands.create_index("commodity")

            # Notifications indexes
            notifications = self.get_collection("notifications")
            notifications.create_index([("user", ASCENDING), ("createdAt", DESCENDING)])
            notifications.create_index("type")

            # Users lookup
            users = self.get_collection("users")
            users.create_index("email", unique=True, sparse=True)

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise

