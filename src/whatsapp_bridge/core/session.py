"""
Session data model for WhatsApp Bridge

Defines the single in-memory WhatsApp session and the status snapshot
returned to the control surface.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class SessionStatus(str, Enum):
    """Lifecycle states of the WhatsApp session"""
    IDLE = "idle"
    STARTING = "starting"
    AWAITING_SCAN = "awaiting_scan"
    AWAITING_PAIRING = "awaiting_pairing"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    STOPPED = "stopped"
    AUTH_DELETED = "auth_deleted"
    ERROR = "error"


# States from which Start is accepted
STARTABLE_STATES = frozenset({
    SessionStatus.IDLE,
    SessionStatus.DISCONNECTED,
    SessionStatus.STOPPED,
    SessionStatus.AUTH_DELETED,
    SessionStatus.ERROR,
})

# States in which an authentication challenge may be outstanding
AUTHENTICATING_STATES = frozenset({
    SessionStatus.AWAITING_SCAN,
    SessionStatus.AWAITING_PAIRING,
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ClientInfo:
    """Connection details of the linked WhatsApp account"""
    is_connected: bool = False
    is_authenticated: bool = False
    phone_number: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "isConnected": self.is_connected,
            "isAuthenticated": self.is_authenticated,
            "phoneNumber": self.phone_number,
        }


@dataclass
class Session:
    """Represents the single WhatsApp session owned by the bridge"""

    session_id: str
    status: SessionStatus = SessionStatus.IDLE
    qr_code: Optional[str] = None
    pairing_code: Optional[str] = None
    client_info: ClientInfo = field(default_factory=ClientInfo)
    generation: int = 0
    reconnect_attempts: int = 0
    last_error: Optional[str] = None
    last_activity: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        """Post-initialization setup"""
        if not self.session_id:
            raise ValueError("Session ID cannot be empty")

    def update_activity(self):
        """Update the last activity timestamp"""
        self.last_activity = _utcnow()

    def set_status(self, status: SessionStatus):
        """Move to a new status, dropping challenges that no longer apply"""
        self.status = status
        if status not in AUTHENTICATING_STATES:
            self.qr_code = None
            self.pairing_code = None
        if status != SessionStatus.CONNECTED:
            self.client_info = ClientInfo()
        self.update_activity()

    def issue_qr(self, qr: str):
        """Record a fresh QR challenge"""
        self.set_status(SessionStatus.AWAITING_SCAN)
        self.qr_code = qr
        self.pairing_code = None

    def issue_pairing_code(self, code: str):
        """Record a pairing code; the QR path is abandoned for this attempt"""
        self.set_status(SessionStatus.AWAITING_PAIRING)
        self.pairing_code = code
        self.qr_code = None

    def mark_connected(self, phone_number: Optional[str]):
        """Record an authenticated, open connection"""
        self.set_status(SessionStatus.CONNECTED)
        self.client_info = ClientInfo(
            is_connected=True,
            is_authenticated=True,
            phone_number=phone_number
        )
        self.reconnect_attempts = 0
        self.last_error = None

    def is_active(self) -> bool:
        """Check if the session is somewhere between Start and Stop"""
        return self.status not in STARTABLE_STATES

    def can_start(self) -> bool:
        return self.status in STARTABLE_STATES


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time view of the session for status queries"""

    status: SessionStatus
    client_info: ClientInfo
    qr_code: Optional[str]
    pairing_code: Optional[str]
    can_start: bool
    can_stop: bool
    can_delete_auth: bool
    auth_exists: bool
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def starting_placeholder(cls) -> 'StatusSnapshot':
        """Status reported while the bridge itself is still booting"""
        return cls(
            status=SessionStatus.STARTING,
            client_info=ClientInfo(),
            qr_code=None,
            pairing_code=None,
            can_start=True,
            can_stop=False,
            can_delete_auth=False,
            auth_exists=False
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "clientInfo": self.client_info.to_dict(),
            "qrCode": self.qr_code,
            "pairingCode": self.pairing_code,
            "canStart": self.can_start,
            "canStop": self.can_stop,
            "canDeleteAuth": self.can_delete_auth,
            "authExists": self.auth_exists,
            "timestamp": self.timestamp.isoformat(),
        }
