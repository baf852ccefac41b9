"""
Shared test fixtures

Fake transport and in-memory credential store used to drive the session
manager with synthetic events.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from whatsapp_bridge.storage.base import CredentialStore
from whatsapp_bridge.transport.base import SentMessage, SocketHandle, Transport
from whatsapp_bridge.utils.config import Config, DiscordConfig, WhatsAppConfig
from whatsapp_bridge.utils.error_handler import StorageError

ENV_VARS = (
    'DISCORD_BOT_TOKEN', 'DISCORD_GUILD_ID', 'DISCORD_CHANNEL_ID',
    'WHATSAPP_SESSION_ID', 'WHATSAPP_BRIDGE_COMMAND', 'WHATSAPP_RECONNECT_DELAY',
    'WHATSAPP_MAX_RECONNECT_ATTEMPTS', 'WHATSAPP_REQUEST_TIMEOUT',
    'CREDENTIAL_STORE', 'AUTH_DIR', 'MONGODB_URI', 'MONGODB_DATABASE', 'MONGODB_COLLECTION',
    'LOG_LEVEL', 'LOG_FILE', 'LOG_MAX_SIZE', 'LOG_BACKUP_COUNT',
)


class FakeHandle(SocketHandle):
    """Socket handle that records calls and lets tests emit events"""

    def __init__(self, on_event, credentials):
        self.on_event = on_event
        self.credentials = credentials
        self.closed = False
        self.close_count = 0
        self.pairing_code = "ABCD-1234"
        self.pairing_error: Optional[Exception] = None
        self.pairing_requests: List[str] = []
        self.send_error: Optional[Exception] = None
        self.sent: List[tuple] = []

    @property
    def is_open(self) -> bool:
        return not self.closed

    async def request_pairing_code(self, phone_number: str) -> str:
        self.pairing_requests.append(phone_number)
        if self.pairing_error:
            raise self.pairing_error
        return self.pairing_code

    async def send_text(self, jid: str, text: str) -> SentMessage:
        self.sent.append((jid, text))
        if self.send_error:
            raise self.send_error
        return SentMessage(message_id=f"MSG{len(self.sent)}")

    async def close(self):
        self.closed = True
        self.close_count += 1

    async def emit(self, event):
        await self.on_event(event)


class FakeTransport(Transport):
    """Transport that hands out FakeHandles"""

    def __init__(self):
        self.handles: List[FakeHandle] = []
        self.open_calls: List[Optional[Dict[str, Any]]] = []
        self.open_errors: List[Exception] = []
        self.open_gate: Optional[asyncio.Event] = None

    @property
    def latest(self) -> FakeHandle:
        return self.handles[-1]

    async def open(self, session_id, credentials, on_event) -> FakeHandle:
        self.open_calls.append(credentials)
        if self.open_errors:
            raise self.open_errors.pop(0)
        handle = FakeHandle(on_event, credentials)
        self.handles.append(handle)
        if self.open_gate is not None:
            await self.open_gate.wait()
        return handle


class MemoryCredentialStore(CredentialStore):
    """Credential store backed by a dict"""

    def __init__(self, session_id: str = "default", records: Optional[Dict[str, Any]] = None):
        super().__init__(session_id)
        self.records: Dict[str, Any] = dict(records or {})
        self.fail_save = False
        self.fail_delete = False
        self.fail_exists = False
        self.exists_delay = 0.0
        self.closed = False

    async def load_credentials(self):
        return dict(self.records) or None

    async def save_credentials(self, update):
        if self.fail_save:
            raise StorageError("disk full")
        for key, value in update.items():
            if value is None:
                self.records.pop(key, None)
            else:
                self.records[key] = value

    async def delete_credentials(self):
        if self.fail_delete:
            raise StorageError("permission denied")
        self.records.clear()

    async def exists_credentials(self) -> bool:
        if self.exists_delay:
            await asyncio.sleep(self.exists_delay)
        if self.fail_exists:
            raise StorageError("store unreachable")
        return bool(self.records)

    async def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep environment overrides from leaking into configuration tests"""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config():
    return Config(
        discord=DiscordConfig("test_token", 123456789, 987654321),
        whatsapp=WhatsAppConfig(reconnect_delay=0.01, print_qr_in_terminal=False)
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store():
    return MemoryCredentialStore()
