"""
Filesystem credential store

Multi-file auth state: one JSON file per credential key under
<auth_dir>/<session_id>/. Each write lands in a temporary file first and is
moved into place, so a crash never leaves a half-written key behind.
"""

import asyncio
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from .base import CredentialStore, CredentialUpdate
from ..utils.error_handler import StorageError
from ..utils.logging_setup import get_logger

logger = get_logger('file_store')


def key_to_filename(key: str) -> str:
    """Map a credential key to a safe file name"""
    return f"{key.replace('/', '__').replace(':', '-')}.json"


class FileCredentialStore(CredentialStore):
    """Credential record kept in a local directory"""

    def __init__(self, auth_dir: str, session_id: str):
        super().__init__(session_id)
        self.auth_dir = Path(auth_dir)
        self.session_dir = self.auth_dir / session_id

    def describe(self) -> str:
        return str(self.session_dir)

    async def load_credentials(self) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._load)

    async def save_credentials(self, update: CredentialUpdate):
        await asyncio.to_thread(self._save, dict(update))

    async def delete_credentials(self):
        await asyncio.to_thread(self._delete)

    async def exists_credentials(self) -> bool:
        return await asyncio.to_thread(self._exists)

    def _exists(self) -> bool:
        try:
            return any(self.session_dir.glob('*.json'))
        except OSError as e:
            raise StorageError(f"Failed to read {self.session_dir}: {e}") from e

    def _load(self) -> Optional[Dict[str, Any]]:
        if not self.session_dir.is_dir():
            return None

        credentials = {}
        try:
            for path in sorted(self.session_dir.glob('*.json')):
                with open(path, 'r', encoding='utf-8') as f:
                    record = json.load(f)
                credentials[record['key']] = record['value']
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Failed to load credentials from {self.session_dir}: {e}") from e

        return credentials or None

    def _save(self, update: Dict[str, Any]):
        try:
            self.session_dir.mkdir(parents=True, exist_ok=True)
            for key, value in update.items():
                path = self.session_dir / key_to_filename(key)
                if value is None:
                    path.unlink(missing_ok=True)
                else:
                    self._write_atomic(path, {'key': key, 'value': value})
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to save credentials to {self.session_dir}: {e}") from e

    def _write_atomic(self, path: Path, record: Dict[str, Any]):
        fd, tmp_name = tempfile.mkstemp(dir=self.session_dir, prefix='.tmp-', suffix='.part')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(record, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _delete(self):
        # A previous delete may have been interrupted; rmtree is retried once
        # because entries can vanish underneath it.
        for attempt in range(2):
            try:
                shutil.rmtree(self.session_dir)
            except FileNotFoundError:
                pass
            except OSError as e:
                if attempt == 1:
                    raise StorageError(f"Failed to delete {self.session_dir}: {e}") from e
                logger.warning(f"Retrying delete of {self.session_dir}: {e}")
                continue
            break

        if self.session_dir.exists():
            raise StorageError(f"Credential directory still present: {self.session_dir}")
