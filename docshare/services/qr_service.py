import base64
import io

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from docshare.core.config import Settings, get_settings


def build_share_link(share_token: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return f"{settings.public_app_url.rstrip('/')}/#/share/{share_token}"


def render_qr_png(data: str) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=3)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def qr_data_uri(data: str) -> str:
    encoded = base64.b64encode(render_qr_png(data)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
