from __future__ import annotations

import base64
import io

import qrcode


DATA_URL_PREFIX = "data:image/png;base64,"


class QRRenderError(Exception):
    """Raised when an authentication code cannot be rendered."""


def build_qr_png(payload: str) -> bytes:
    if not payload:
        raise QRRenderError("empty_payload")
    try:
        qr = qrcode.QRCode(
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=14,
            border=4,
        )
        qr.add_data(payload)
        qr.make(fit=True)
        img = qr.make_image(fill_color="#000000", back_color="#FFFFFF").convert("RGB")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
    except QRRenderError:
        raise
    except Exception as exc:
        raise QRRenderError(str(exc)) from exc
    return buf.getvalue()


def render_qr_data_url(payload: str) -> str:
    png = build_qr_png(payload)
    return DATA_URL_PREFIX + base64.b64encode(png).decode("ascii")


__all__ = ["DATA_URL_PREFIX", "QRRenderError", "build_qr_png", "render_qr_data_url"]
