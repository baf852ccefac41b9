"""
Credential storage for WhatsApp Bridge

Alternative backends for the same credential record, selected by configuration.
"""

from .base import CredentialStore
from .file_store import FileCredentialStore
from ..utils.config import StorageConfig


def create_credential_store(storage: StorageConfig, session_id: str) -> CredentialStore:
    """Build the credential store named by the configuration"""
    if storage.backend == "file":
        return FileCredentialStore(storage.auth_dir, session_id)
    if storage.backend == "mongodb":
        from .mongo_store import MongoCredentialStore
        return MongoCredentialStore.from_uri(
            storage.mongo_uri,
            storage.mongo_database,
            storage.mongo_collection,
            session_id
        )
    raise ValueError(f"Unknown credential store backend: {storage.backend}")


__all__ = ["CredentialStore", "FileCredentialStore", "create_credential_store"]
