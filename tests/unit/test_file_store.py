"""
Unit tests for FileCredentialStore
"""

import json

import pytest

from whatsapp_bridge.storage import create_credential_store
from whatsapp_bridge.storage.file_store import FileCredentialStore, key_to_filename
from whatsapp_bridge.utils.config import StorageConfig
from whatsapp_bridge.utils.error_handler import StorageError


@pytest.fixture
def file_store(tmp_path):
    return FileCredentialStore(str(tmp_path / "auth"), "default")


class TestFileCredentialStore:
    """Test cases for the filesystem credential store"""

    def test_key_to_filename(self):
        assert key_to_filename("creds") == "creds.json"
        assert key_to_filename("session-1555:2@s.whatsapp.net") == "session-1555-2@s.whatsapp.net.json"
        assert key_to_filename("app-state/sync") == "app-state__sync.json"

    @pytest.mark.asyncio
    async def test_empty_store(self, file_store):
        assert await file_store.load_credentials() is None
        assert await file_store.exists_credentials() is False

    @pytest.mark.asyncio
    async def test_save_and_load(self, file_store):
        await file_store.save_credentials({
            "creds": {"registered": True, "me": {"id": "1555:2@s.whatsapp.net"}},
            "pre-key-1": {"private": "abc"},
        })

        assert await file_store.exists_credentials() is True
        assert await file_store.load_credentials() == {
            "creds": {"registered": True, "me": {"id": "1555:2@s.whatsapp.net"}},
            "pre-key-1": {"private": "abc"},
        }

    @pytest.mark.asyncio
    async def test_files_keep_original_key(self, file_store):
        await file_store.save_credentials({"session-1555:2": {"x": 1}})

        path = file_store.session_dir / "session-1555-2.json"
        assert json.loads(path.read_text(encoding="utf-8")) == {"key": "session-1555:2", "value": {"x": 1}}

    @pytest.mark.asyncio
    async def test_none_value_removes_key(self, file_store):
        await file_store.save_credentials({"creds": {"a": 1}, "pre-key-1": {"b": 2}})
        await file_store.save_credentials({"pre-key-1": None, "pre-key-2": None})

        assert await file_store.load_credentials() == {"creds": {"a": 1}}

    @pytest.mark.asyncio
    async def test_no_temporary_files_left(self, file_store):
        await file_store.save_credentials({"creds": {"a": 1}})

        assert [p.name for p in file_store.session_dir.iterdir()] == ["creds.json"]

    @pytest.mark.asyncio
    async def test_delete(self, file_store):
        await file_store.save_credentials({"creds": {"a": 1}})

        await file_store.delete_credentials()

        assert not file_store.session_dir.exists()
        assert await file_store.exists_credentials() is False

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, file_store):
        await file_store.delete_credentials()
        await file_store.delete_credentials()

        assert await file_store.load_credentials() is None

    @pytest.mark.asyncio
    async def test_delete_after_partial_delete(self, file_store):
        await file_store.save_credentials({"creds": {"a": 1}, "pre-key-1": {"b": 2}})
        (file_store.session_dir / "creds.json").unlink()

        await file_store.delete_credentials()

        assert await file_store.exists_credentials() is False

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, tmp_path):
        first = FileCredentialStore(str(tmp_path), "first")
        second = FileCredentialStore(str(tmp_path), "second")
        await first.save_credentials({"creds": {"a": 1}})

        assert await second.exists_credentials() is False
        await second.delete_credentials()
        assert await first.exists_credentials() is True

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_storage_error(self, file_store):
        file_store.session_dir.mkdir(parents=True)
        (file_store.session_dir / "creds.json").write_text("{ not json", encoding="utf-8")

        with pytest.raises(StorageError):
            await file_store.load_credentials()

    @pytest.mark.asyncio
    async def test_unserializable_value_raises_storage_error(self, file_store):
        with pytest.raises(StorageError):
            await file_store.save_credentials({"creds": object()})

    def test_empty_session_id(self, tmp_path):
        with pytest.raises(ValueError, match="Session ID cannot be empty"):
            FileCredentialStore(str(tmp_path), "")


class TestCreateCredentialStore:
    """Test cases for store selection"""

    def test_file_backend(self, tmp_path):
        store = create_credential_store(StorageConfig(backend="file", auth_dir=str(tmp_path)), "default")

        assert isinstance(store, FileCredentialStore)
        assert store.session_dir == tmp_path / "default"

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown credential store backend"):
            create_credential_store(StorageConfig(backend="redis"), "default")


if __name__ == "__main__":
    pytest.main([__file__])
