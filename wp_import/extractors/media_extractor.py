"""Conversion of attachment items into :class:`~wp_import.models.entities.Media`."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import phpserialize

from wp_import.models.entities import Media
from wp_import.models.records import RawItem
from wp_import.utils.text import file_name_from_url, guess_mime_type, parse_date, sanitize_text

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    """Turn phpserialize's nested dicts (and bytes) into JSON-friendly values."""
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def decode_attachment_metadata(raw: Optional[str]) -> Dict[str, Any]:
    """
    Decode the PHP-serialized ``_wp_attachment_metadata`` blob.

    Returns an empty dict for anything that is not a serialized array.
    """
    if not raw:
        return {}
    try:
        data = phpserialize.loads(raw.encode("utf-8"), decode_strings=True)
    except (ValueError, TypeError) as e:
        logger.debug("Ignoring undecodable attachment metadata: %s", e)
        return {}
    if not isinstance(data, dict):
        return {}
    return _plain(data)


def extract_media(item: RawItem) -> Optional[Media]:
    """Build a :class:`Media` for an attachment; ``None`` for anything else or a missing URL."""
    if not item.is_attachment:
        return None
    if not item.attachment_url:
        logger.debug("Attachment %s has no attachment_url, skipped", item.post_id)
        return None

    media = Media(
        source_id=item.post_id,
        parent_id=item.post_parent or None,
        title=sanitize_text(item.title),
        description=sanitize_text(item.description or item.content),
        original_url=item.attachment_url,
        upload_date=parse_date(item.post_date_gmt),
        creator=item.creator,
    )

    meta = item.postmeta
    media.file_path = meta.get("_wp_attached_file", "")
    media.alt_text = sanitize_text(meta.get("_wp_attachment_image_alt", ""))

    metadata = decode_attachment_metadata(meta.get("_wp_attachment_metadata"))
    if metadata:
        media.width = _to_int(metadata.get("width"))
        media.height = _to_int(metadata.get("height"))
        media.file_size = _to_int(metadata.get("filesize"))
        media.mime_type = str(metadata.get("mime-type") or "")
        sizes = metadata.get("sizes")
        media.sizes = sizes if isinstance(sizes, dict) else {}

    media.file_name = file_name_from_url(media.original_url)
    if not media.mime_type and media.file_name:
        media.mime_type = guess_mime_type(media.file_name)

    logger.debug("Media extracted: post_id=%s file=%s mime=%s", media.source_id, media.file_name, media.mime_type)
    return media
