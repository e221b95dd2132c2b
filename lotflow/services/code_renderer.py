"""
Scan code rendering - turns a lot payload into a QR image and back.

The rendered image exists only in memory for the duration of one response.
Nothing in this module touches the database.

Usage:
    renderer = get_code_renderer()
    rendered = renderer.render(lot.scan_payload(issued_at))
    rendered.data_url   # "data:image/png;base64,..."
"""

import base64
import io
import json
from dataclasses import dataclass

import qrcode
from flask import current_app
from qrcode.constants import ERROR_CORRECT_M

from lotflow.core.exceptions import InvalidFieldError, MissingFieldsError
from lotflow.utils.helpers import missing_fields

EXTENSION_KEY = "lotflow.code_renderer"

SCAN_REQUIRED_FIELDS = ("type", "lotId", "partName", "factoryName", "lotNumber")


@dataclass(frozen=True)
class RenderedCode:
    """Handle to an in-memory rendering. Discard after the response is sent."""

    payload: str
    data_url: str


class QrCodeRenderer:
    def __init__(self, fill_color="#003366", back_color="#FFFFFF", box_size=8, border=2):
        self.fill_color = fill_color
        self.back_color = back_color
        self.box_size = box_size
        self.border = border

    @classmethod
    def from_config(cls, config) -> "QrCodeRenderer":
        return cls(
            fill_color=config.get("QR_FILL_COLOR", "#003366"),
            back_color=config.get("QR_BACK_COLOR", "#FFFFFF"),
            box_size=int(config.get("QR_BOX_SIZE", 8)),
            border=int(config.get("QR_BORDER", 2)),
        )

    def render(self, payload: dict) -> RenderedCode:
        text = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        qr = qrcode.QRCode(
            version=None,
            error_correction=ERROR_CORRECT_M,
            box_size=self.box_size,
            border=self.border,
        )
        qr.add_data(text)
        qr.make(fit=True)
        img = qr.make_image(fill_color=self.fill_color, back_color=self.back_color)

        buf = io.BytesIO()
        img.save(buf, format="PNG")
        encoded = base64.b64encode(buf.getvalue()).decode("ascii")
        return RenderedCode(payload=text, data_url=f"data:image/png;base64,{encoded}")


def parse_scan_payload(raw) -> dict:
    """Validate the decoded text of a scanned code.

    Raises InvalidFieldError for non-JSON or non-lot payloads and
    MissingFieldsError when identifying fields are absent.
    """
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw or "")
        except (TypeError, ValueError):
            raise InvalidFieldError("qrData", "<unparseable>") from None
    if not isinstance(data, dict):
        raise InvalidFieldError("qrData", type(data).__name__)
    missing = missing_fields(data, *SCAN_REQUIRED_FIELDS)
    if missing:
        raise MissingFieldsError(missing)
    if data["type"] != "lot":
        raise InvalidFieldError("type", data["type"], allowed=["lot"])
    return data


def get_code_renderer() -> QrCodeRenderer:
    return current_app.extensions[EXTENSION_KEY]
