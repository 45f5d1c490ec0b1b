"""QR payload wire format: ``{tag}-{studentId}-{issuedAtToken}``.

Parsing happens before any network call so garbage scans are rejected locally.
"""

from __future__ import annotations

import base64
import io
from datetime import datetime
from typing import Union

import qrcode

from ..common.datetime_utils import to_epoch_ms
from ..core.constants import QR_TAG
from ..core.exceptions import ValidationError
from .model import ParsedPayload

SEPARATOR = "-"


def build_payload(student_id: str, issued_at: Union[datetime, int], *, tag: str = QR_TAG) -> str:
    """``issued_at`` is a datetime or an epoch-millisecond token."""
    sid = str(student_id).strip()
    if not sid or SEPARATOR in sid:
        raise ValidationError("Student ID cannot be encoded in a QR code")
    token = issued_at if isinstance(issued_at, int) else to_epoch_ms(issued_at)
    return SEPARATOR.join((tag, sid, str(token)))


def parse_payload(payload: str, *, tag: str = QR_TAG) -> ParsedPayload:
    if not isinstance(payload, str):
        raise ValidationError("Invalid QR code format")
    parts = payload.strip().split(SEPARATOR)
    if len(parts) != 3 or parts[0] != tag:
        raise ValidationError("Invalid QR code format")
    _, student_id, token = parts
    if not student_id or not token.isdigit():
        raise ValidationError("Invalid QR code format")
    return ParsedPayload(tag=tag, student_id=student_id, issued_at_token=int(token))


def is_valid_payload(payload: str, *, tag: str = QR_TAG) -> bool:
    try:
        parse_payload(payload, tag=tag)
    except ValidationError:
        return False
    return True


def image_data_uri(payload: str, *, box_size: int = 10, border: int = 2) -> str:
    """Encode a payload as a PNG data URI that a screen can display as-is."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
