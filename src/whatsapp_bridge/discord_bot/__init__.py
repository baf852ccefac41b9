"""
Discord Bot components for WhatsApp Bridge

Contains the Discord control surface for the WhatsApp session.
"""

from .bot import WhatsAppBridgeBot

__all__ = ["WhatsAppBridgeBot"]
