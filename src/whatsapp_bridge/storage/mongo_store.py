"""
MongoDB credential store

One document per credential key:
    {_id: "<session_id>:<key>", session_id, key, value}
The value is kept as JSON text so key names inside the credential material
never clash with MongoDB field rules.
"""

import asyncio
import json
from typing import Any, Dict, Optional

from pymongo import DeleteOne, MongoClient, UpdateOne
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .base import CredentialStore, CredentialUpdate
from ..utils.error_handler import StorageError
from ..utils.logging_setup import get_logger

logger = get_logger('mongo_store')


class MongoCredentialStore(CredentialStore):
    """Credential record kept in a MongoDB collection"""

    def __init__(self, collection: Collection, session_id: str,
                 client: Optional[MongoClient] = None):
        super().__init__(session_id)
        self.collection = collection
        self._client = client

    @classmethod
    def from_uri(cls, uri: str, database: str, collection: str,
                 session_id: str) -> 'MongoCredentialStore':
        client = MongoClient(
            uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000
        )
        logger.info(f"Using MongoDB credential store {database}.{collection}")
        return cls(client[database][collection], session_id, client=client)

    def describe(self) -> str:
        return f"mongodb:{self.collection.full_name}/{self.session_id}"

    def _doc_id(self, key: str) -> str:
        return f"{self.session_id}:{key}"

    async def load_credentials(self) -> Optional[Dict[str, Any]]:
        try:
            docs = await asyncio.to_thread(
                lambda: list(self.collection.find({'session_id': self.session_id}))
            )
            credentials = {doc['key']: json.loads(doc['value']) for doc in docs}
        except (PyMongoError, ValueError, KeyError) as e:
            raise StorageError(f"Failed to load credentials: {e}") from e
        return credentials or None

    async def save_credentials(self, update: CredentialUpdate):
        operations = []
        try:
            for key, value in update.items():
                if value is None:
                    operations.append(DeleteOne({'_id': self._doc_id(key)}))
                else:
                    operations.append(UpdateOne(
                        {'_id': self._doc_id(key)},
                        {'$set': {
                            'session_id': self.session_id,
                            'key': key,
                            'value': json.dumps(value),
                        }},
                        upsert=True
                    ))
        except (TypeError, ValueError) as e:
            raise StorageError(f"Credential update is not serializable: {e}") from e

        if not operations:
            return

        try:
            await asyncio.to_thread(self.collection.bulk_write, operations, ordered=True)
        except PyMongoError as e:
            raise StorageError(f"Failed to save credentials: {e}") from e

    async def delete_credentials(self):
        try:
            result = await asyncio.to_thread(
                self.collection.delete_many, {'session_id': self.session_id}
            )
        except PyMongoError as e:
            raise StorageError(f"Failed to delete credentials: {e}") from e
        logger.debug(f"Deleted {result.deleted_count} credential documents")

    async def exists_credentials(self) -> bool:
        try:
            doc = await asyncio.to_thread(
                self.collection.find_one, {'session_id': self.session_id}, {'_id': 1}
            )
        except PyMongoError as e:
            raise StorageError(f"Failed to check credentials: {e}") from e
        return doc is not None

    async def close(self):
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
