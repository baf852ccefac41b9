"""
WhatsApp Bridge - Single-session WhatsApp connection manager

Keeps one WhatsApp account linked through a Baileys sidecar process,
persists its credentials, reconnects after drops and sends text messages,
all driven from a Discord control channel.
"""

__version__ = "1.0.0"

from .core.session_manager import SessionManager, SessionEvent
from .core.session import Session, SessionStatus, StatusSnapshot
from .core.dispatcher import MessageDispatcher, SendResult
from .transport.bridge_process import BridgeTransport
from .storage import create_credential_store

__all__ = [
    "SessionManager",
    "SessionEvent",
    "Session",
    "SessionStatus",
    "StatusSnapshot",
    "MessageDispatcher",
    "SendResult",
    "BridgeTransport",
    "create_credential_store",
]
