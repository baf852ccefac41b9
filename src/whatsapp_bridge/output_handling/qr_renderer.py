"""
QR code rendering for WhatsApp Bridge

Turns the QR challenge string into something a person can scan: block
characters for the terminal and a PNG for the Discord control channel.
"""

import io

import qrcode


def _build(data: str, border: int) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr


def render_ascii(data: str, border: int = 1) -> str:
    """Render the challenge as half-block text for terminal output"""
    buffer = io.StringIO()
    _build(data, border).print_ascii(out=buffer, invert=True)
    return buffer.getvalue()


def render_png(data: str, border: int = 4) -> bytes:
    """Render the challenge as a PNG image"""
    image = _build(data, border).make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
