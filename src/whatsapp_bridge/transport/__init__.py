"""
Transport components for WhatsApp Bridge

Contains the transport interface and the Baileys sidecar process transport.
"""

from .base import SentMessage, SocketHandle, Transport
from .bridge_process import BridgeProcess, BridgeTransport

__all__ = ["SentMessage", "SocketHandle", "Transport", "BridgeProcess", "BridgeTransport"]
