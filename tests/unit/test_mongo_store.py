"""
Unit tests for MongoCredentialStore
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from pymongo import DeleteOne, UpdateOne
from pymongo.errors import ServerSelectionTimeoutError

from whatsapp_bridge.storage import create_credential_store
from whatsapp_bridge.storage.mongo_store import MongoCredentialStore
from whatsapp_bridge.utils.config import StorageConfig
from whatsapp_bridge.utils.error_handler import StorageError


@pytest.fixture
def collection():
    mock_collection = MagicMock()
    mock_collection.full_name = "whatsapp_bridge.auth_state"
    return mock_collection


@pytest.fixture
def mongo_store(collection):
    return MongoCredentialStore(collection, "default")


class TestMongoCredentialStore:
    """Test cases for the MongoDB credential store"""

    @pytest.mark.asyncio
    async def test_load_credentials(self, mongo_store, collection):
        collection.find.return_value = [
            {"_id": "default:creds", "key": "creds", "value": json.dumps({"registered": True})},
            {"_id": "default:pre-key-1", "key": "pre-key-1", "value": json.dumps({"k": 1})},
        ]

        credentials = await mongo_store.load_credentials()

        collection.find.assert_called_once_with({"session_id": "default"})
        assert credentials == {"creds": {"registered": True}, "pre-key-1": {"k": 1}}

    @pytest.mark.asyncio
    async def test_load_empty(self, mongo_store, collection):
        collection.find.return_value = []

        assert await mongo_store.load_credentials() is None

    @pytest.mark.asyncio
    async def test_save_credentials(self, mongo_store, collection):
        await mongo_store.save_credentials({"creds": {"registered": True}, "pre-key-1": None})

        args, kwargs = collection.bulk_write.call_args
        operations = args[0]
        assert kwargs == {"ordered": True}
        assert operations == [
            UpdateOne(
                {"_id": "default:creds"},
                {"$set": {
                    "session_id": "default",
                    "key": "creds",
                    "value": json.dumps({"registered": True}),
                }},
                upsert=True
            ),
            DeleteOne({"_id": "default:pre-key-1"}),
        ]

    @pytest.mark.asyncio
    async def test_save_empty_update(self, mongo_store, collection):
        await mongo_store.save_credentials({})

        collection.bulk_write.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_failure_raises_storage_error(self, mongo_store, collection):
        collection.bulk_write.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(StorageError, match="Failed to save credentials"):
            await mongo_store.save_credentials({"creds": {}})

    @pytest.mark.asyncio
    async def test_delete_credentials(self, mongo_store, collection):
        collection.delete_many.return_value.deleted_count = 0

        await mongo_store.delete_credentials()
        await mongo_store.delete_credentials()

        assert collection.delete_many.call_count == 2
        collection.delete_many.assert_called_with({"session_id": "default"})

    @pytest.mark.asyncio
    async def test_exists_credentials(self, mongo_store, collection):
        collection.find_one.return_value = {"_id": "default:creds"}
        assert await mongo_store.exists_credentials() is True

        collection.find_one.return_value = None
        assert await mongo_store.exists_credentials() is False

        collection.find_one.assert_called_with({"session_id": "default"}, {"_id": 1})

    @pytest.mark.asyncio
    async def test_exists_failure_raises_storage_error(self, mongo_store, collection):
        collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(StorageError):
            await mongo_store.exists_credentials()

    @pytest.mark.asyncio
    async def test_close_owned_client(self, collection):
        client = MagicMock()
        store = MongoCredentialStore(collection, "default", client=client)

        await store.close()

        client.close.assert_called_once()

    def test_describe(self, mongo_store):
        assert mongo_store.describe() == "mongodb:whatsapp_bridge.auth_state/default"


class TestMongoStoreSelection:
    """Test cases for building the MongoDB store from configuration"""

    def test_from_config(self):
        config = StorageConfig(
            backend="mongodb",
            mongo_uri="mongodb://db:27017",
            mongo_database="wa",
            mongo_collection="auth"
        )

        with patch('whatsapp_bridge.storage.mongo_store.MongoClient') as mock_client:
            store = create_credential_store(config, "default")

        mock_client.assert_called_once_with(
            "mongodb://db:27017",
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000
        )
        assert isinstance(store, MongoCredentialStore)
        assert store.collection is mock_client.return_value["wa"]["auth"]


if __name__ == "__main__":
    pytest.main([__file__])
