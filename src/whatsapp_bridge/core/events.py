"""
Transport events for WhatsApp Bridge

Inbound events emitted by a transport handle and consumed by the session
manager's state transition function.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Union


class DisconnectReason(IntEnum):
    """Close codes reported by the WhatsApp Web (Baileys) connection"""
    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


@dataclass(frozen=True)
class ChallengeIssued:
    """A QR challenge to be scanned from the phone"""
    qr: str


@dataclass(frozen=True)
class CredentialsUpdated:
    """Credential material that must be persisted before it is acknowledged"""
    update: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConnectionOpened:
    """The connection is open and authenticated"""
    identity: Optional[str] = None

    @property
    def phone_number(self) -> Optional[str]:
        """Account number without device suffix or JID domain"""
        if not self.identity:
            return None
        return self.identity.split(':')[0].split('@')[0] or None


@dataclass(frozen=True)
class ConnectionClosed:
    """The connection closed; only a logout ends the session for good"""
    status_code: Optional[int] = None
    message: str = ""

    @property
    def is_logout(self) -> bool:
        return self.status_code == DisconnectReason.LOGGED_OUT

    @property
    def reason(self) -> str:
        try:
            return DisconnectReason(self.status_code).name.lower()
        except ValueError:
            return "unknown" if self.status_code is None else str(self.status_code)


TransportEvent = Union[ChallengeIssued, CredentialsUpdated, ConnectionOpened, ConnectionClosed]


def parse_event(payload: Dict[str, Any]) -> Optional[TransportEvent]:
    """Decode a bridge wire message into a transport event

    Returns None for messages that are not session events (responses, logs).
    """
    kind = payload.get("type")

    if kind == "qr":
        qr = payload.get("qr")
        if not qr:
            raise ValueError("qr event without challenge data")
        return ChallengeIssued(qr=qr)

    if kind == "creds.update":
        update = payload.get("update")
        if not isinstance(update, dict):
            raise ValueError("creds.update event without an update mapping")
        return CredentialsUpdated(update=update)

    if kind == "connection.open":
        user = payload.get("user") or {}
        return ConnectionOpened(identity=user.get("id"))

    if kind == "connection.close":
        status_code = payload.get("statusCode")
        return ConnectionClosed(
            status_code=int(status_code) if status_code is not None else None,
            message=payload.get("message") or ""
        )

    return None
