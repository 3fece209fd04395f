"""QR encoding of payment URIs into PNG data URLs."""

import base64
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import qrcode
from fastapi import Request

from app.core.config import Settings


@dataclass(frozen=True)
class QrOptions:
    box_size: int = 10
    border: int = 2
    fill_color: str = "#000000"
    back_color: str = "#FFFFFF"


class QrEncoder:
    """encode(uri, options) -> "data:image/png;base64,..." """

    def __init__(self, default_options: QrOptions = QrOptions()) -> None:
        self.default_options = default_options

    def encode(self, uri: str, options: Optional[QrOptions] = None) -> str:
        opts = options or self.default_options
        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=opts.box_size,
            border=opts.border,
        )
        qr.add_data(uri)
        qr.make(fit=True)
        img = qr.make_image(fill_color=opts.fill_color, back_color=opts.back_color)

        buffer = BytesIO()
        img.save(buffer, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def build_qr_encoder(settings: Settings) -> QrEncoder:
    return QrEncoder(QrOptions(box_size=settings.qr_box_size, border=settings.qr_border))


def get_qr_encoder(request: Request) -> QrEncoder:
    return request.app.state.qr_encoder
