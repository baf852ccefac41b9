"""
Transport interface for WhatsApp Bridge

A Transport opens connections; a SocketHandle is one open connection. The
session manager only talks to these two types, so tests can drive it with
synthetic events and no live WhatsApp connection.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

if TYPE_CHECKING:
    from ..core.events import TransportEvent

EventCallback = Callable[["TransportEvent"], Awaitable[None]]


@dataclass(frozen=True)
class SentMessage:
    """Transport acknowledgement of an outgoing message"""
    message_id: str


class SocketHandle(ABC):
    """One open connection to the WhatsApp network"""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the underlying connection is still usable"""

    @property
    def pid(self) -> Optional[int]:
        """Process id backing the connection, when there is one"""
        return None

    @abstractmethod
    async def request_pairing_code(self, phone_number: str) -> str:
        """Ask WhatsApp for a pairing code for the given digits-only number"""

    @abstractmethod
    async def send_text(self, jid: str, text: str) -> SentMessage:
        """Send a single text message"""

    @abstractmethod
    async def close(self):
        """Detach event listeners and close the connection"""


class Transport(ABC):
    """Factory for socket handles"""

    @abstractmethod
    async def open(self, session_id: str, credentials: Optional[Dict[str, Any]],
                   on_event: EventCallback) -> SocketHandle:
        """Open a connection, resuming from credentials when given"""
