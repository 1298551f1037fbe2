"""
QR Renderer - PNG QR Codes for Public Card Links
=================================================
"""

import io
import logging
import re
from typing import Tuple

import qrcode
from qrcode.image.styledpil import StyledPilImage
from qrcode.image.styles.colormasks import SolidFillColorMask
from qrcode.image.styles.moduledrawers import RoundedModuleDrawer

from ...domain.models import DEFAULT_THEME_COLOR

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r"^#([0-9A-Fa-f]{6})$")
WHITE = (255, 255, 255)


def hex_to_rgb(color: str) -> Tuple[int, int, int]:
    match = HEX_COLOR.match(color or "")
    if not match:
        logger.debug(f"Invalid theme color {color!r}, using default")
        match = HEX_COLOR.match(DEFAULT_THEME_COLOR)
    value = match.group(1)
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def render_qr_png(url: str, theme_color: str = DEFAULT_THEME_COLOR, box_size: int = 10) -> bytes:
    """Render `url` as a PNG QR code with dark modules in the card's theme color."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=box_size,
        border=4
    )
    qr.add_data(url)
    qr.make(fit=True)

    qr_img = qr.make_image(
        image_factory=StyledPilImage,
        module_drawer=RoundedModuleDrawer(),
        color_mask=SolidFillColorMask(front_color=hex_to_rgb(theme_color), back_color=WHITE)
    )

    buf = io.BytesIO()
    qr_img.save(buf, format="PNG")
    return buf.getvalue()
