"""Opaque pagination cursors. Internally just an offset."""

import base64
import binascii
import json
from typing import Optional

from crm.config import settings


def encode_offset_cursor(offset: int) -> str:
    raw = json.dumps({"o": int(offset)}, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_offset_cursor(cursor: Optional[str]) -> int:
    """Offset encoded in ``cursor``; anything unreadable restarts at 0."""
    if not cursor:
        return 0
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode()))
        offset = int(payload["o"])
    except (binascii.Error, ValueError, TypeError, KeyError):
        return 0
    return offset if offset >= 0 else 0


def parse_limit(raw: Optional[str]) -> int:
    default = settings.public_api_default_page_size
    maximum = settings.public_api_max_page_size
    try:
        limit = int(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        return default
    return max(1, min(limit, maximum))
