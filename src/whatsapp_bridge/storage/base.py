"""
Credential store interface for WhatsApp Bridge

Credentials are a mapping of key name ("creds", "pre-key-1",
"session-<jid>", ...) to opaque JSON values produced by the bridge process.
The session manager never looks inside them.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

CredentialUpdate = Dict[str, Optional[Any]]


class CredentialStore(ABC):
    """Persistent credential record keyed by session id"""

    def __init__(self, session_id: str):
        if not session_id:
            raise ValueError("Session ID cannot be empty")
        self.session_id = session_id

    @abstractmethod
    async def load_credentials(self) -> Optional[Dict[str, Any]]:
        """Return every stored key, or None when nothing is stored"""

    @abstractmethod
    async def save_credentials(self, update: CredentialUpdate):
        """Durably apply an update; a None value removes that key"""

    @abstractmethod
    async def delete_credentials(self):
        """Remove the whole credential record; succeeds when already absent"""

    @abstractmethod
    async def exists_credentials(self) -> bool:
        """Check the backing store for a credential record"""

    async def close(self):
        """Release any client resources held by the store"""

    def describe(self) -> str:
        return f"{type(self).__name__}({self.session_id})"
