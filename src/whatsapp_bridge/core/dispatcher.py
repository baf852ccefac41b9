"""
Message Dispatcher for WhatsApp Bridge

Sends text messages through the session once it is connected. Delivery is
attempted exactly once; retrying is left to the caller.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from .phone import to_jid
from .session_manager import SessionManager
from ..utils.error_handler import (
    BridgeError,
    InvalidInputError,
    NotConnectedError,
    SendFailedError,
)
from ..utils.logging_setup import get_logger

logger = get_logger('dispatcher')


@dataclass(frozen=True)
class SendResult:
    """Result of a delivered message"""
    message_id: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "messageId": self.message_id,
            "timestamp": self.timestamp.isoformat(),
        }


class MessageDispatcher:
    """Pushes outgoing messages through the connected session"""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager

    async def send_message(self, destination: str, body: str) -> SendResult:
        """Send a text message to a phone number"""
        handle = self.session_manager.active_handle
        if handle is None:
            raise NotConnectedError("WhatsApp socket not connected")

        jid = to_jid(destination, self.session_manager.config.whatsapp.jid_suffix)
        if not body or not body.strip():
            raise InvalidInputError("Message body is required")

        try:
            sent = await handle.send_text(jid, body)
        except BridgeError as e:
            logger.error(f"Error sending message to {destination}: {e.message}")
            raise SendFailedError(e.message or "Failed to send message") from e
        except Exception as e:
            logger.error(f"Error sending message to {destination}: {e}")
            raise SendFailedError(str(e) or "Failed to send message") from e

        logger.info(f"Message sent successfully to {destination}")
        return SendResult(message_id=sent.message_id, timestamp=datetime.now(timezone.utc))
