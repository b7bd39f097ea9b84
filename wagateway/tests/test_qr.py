from __future__ import annotations

import base64

import pytest

from wagateway.qr import DATA_URL_PREFIX, QRRenderError, build_qr_png, render_qr_data_url


PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_build_qr_png_returns_png() -> None:
    blob = build_qr_png("2@abc,def,ghi")
    assert blob.startswith(PNG_SIGNATURE)


def test_render_qr_data_url_embeds_png() -> None:
    url = render_qr_data_url("2@abc,def,ghi")
    assert url.startswith(DATA_URL_PREFIX)
    decoded = base64.b64decode(url[len(DATA_URL_PREFIX):])
    assert decoded.startswith(PNG_SIGNATURE)


def test_empty_payload_is_rejected() -> None:
    with pytest.raises(QRRenderError):
        render_qr_data_url("")
