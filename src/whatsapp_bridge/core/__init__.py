"""
Core components for WhatsApp Bridge

Contains the session model, transport events, the session state machine
and the message dispatcher.
"""

from .session import Session, SessionStatus, StatusSnapshot
from .session_manager import SessionManager, SessionEvent
from .dispatcher import MessageDispatcher, SendResult

__all__ = [
    "Session",
    "SessionStatus",
    "StatusSnapshot",
    "SessionManager",
    "SessionEvent",
    "MessageDispatcher",
    "SendResult"
]
