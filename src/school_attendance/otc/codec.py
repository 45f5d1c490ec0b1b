from __future__ import annotations

import re
from typing import Optional

from ..core.constants import OTC_LENGTH
from ..core.exceptions import ValidationError

_NON_DIGITS = re.compile(r"\D")


def clean_code(code: Optional[str]) -> str:
    """Strip every non-digit character (dashes, spaces) before comparison."""
    return _NON_DIGITS.sub("", code or "")


def validate_format(code: Optional[str], *, length: int = OTC_LENGTH) -> str:
    """Return the cleaned code or raise ValidationError."""
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("Invalid code format")
    if re.search(r"[^\d\s-]", code):
        raise ValidationError("Code must contain only numbers")
    clean = clean_code(code)
    if len(clean) != length:
        raise ValidationError(f"Code must be {length} digits")
    return clean


def format_code(code: Optional[str]) -> str:
    """Display form: a dash at the midpoint of an even-length code ("123456" -> "123-456")."""
    clean = clean_code(code)
    if not clean or len(clean) % 2:
        return clean
    mid = len(clean) // 2
    return f"{clean[:mid]}-{clean[mid:]}"


def mask_code(code: str) -> str:
    clean = clean_code(code)
    return clean[:2] + "*" * max(0, len(clean) - 2)
