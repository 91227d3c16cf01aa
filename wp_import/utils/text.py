from __future__ import annotations

from datetime import datetime, timezone
from html import unescape
import logging
import os
import re
from typing import Optional
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

EPOCH_ZERO = "0000-00-00 00:00:00"

_CONTROL_CHARS = re.compile(r"[\x00-\x1F\x7F]")
# newlines, carriage returns and tabs survive in markup
_CONTROL_CHARS_KEEP_WS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "zip": "application/zip",
}
DEFAULT_MIME_TYPE = "application/octet-stream"


def sanitize_text(text: Optional[str]) -> str:
    """Decode HTML entities and strip every control character (single-line fields)."""
    if not text:
        return ""
    text = unescape(text)
    text = _CONTROL_CHARS.sub("", text)
    return text.strip()


def sanitize_html(html: Optional[str]) -> str:
    """Decode HTML entities and strip control characters, keeping newlines and tabs."""
    if not html:
        return ""
    html = unescape(html)
    html = _CONTROL_CHARS_KEEP_WS.sub("", html)
    return html.strip()


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an export timestamp as UTC.

    Empty strings and the ``0000-00-00 00:00:00`` sentinel mean "no date"
    and return ``None``; so does anything unparseable (with a warning).
    """
    if not value or value.strip() == EPOCH_ZERO:
        return None
    value = value.strip()
    for fmt in ("%Y-%m-%d %H:%M:%S", "%a, %d %b %Y %H:%M:%S %z"):
        try:
            parsed = datetime.strptime(value, fmt)
            break
        except ValueError:
            continue
    else:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            logger.warning("Could not parse date %r", value)
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def file_name_from_url(url: Optional[str]) -> str:
    if not url:
        return ""
    return os.path.basename(unquote(urlparse(url).path or ""))


def file_extension(file_name: Optional[str]) -> str:
    _, ext = os.path.splitext(file_name or "")
    return ext[1:].lower()


def guess_mime_type(file_name: Optional[str]) -> str:
    return MIME_TYPES.get(file_extension(file_name), DEFAULT_MIME_TYPE)


def format_file_size(size: int) -> str:
    """Human readable size, e.g. ``1.5 MB``; empty for zero."""
    if not size:
        return ""
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{int(value)} {units[unit]}"
    return f"{value:,.1f} {units[unit]}"
