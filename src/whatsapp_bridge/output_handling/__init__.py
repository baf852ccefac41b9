"""
Output handling components for WhatsApp Bridge

Contains QR rendering and Discord formatting of bridge state.
"""

from .qr_renderer import render_ascii, render_png
from .status_formatter import StatusFormatter

__all__ = [
    "render_ascii",
    "render_png",
    "StatusFormatter"
]
