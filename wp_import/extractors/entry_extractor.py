"""
Conversion of raw export items into :class:`~wp_import.models.entities.Entry`.

Attachments are not entries; :func:`extract_entry` returns ``None`` for
them so that the same item stream can be fed to both extractors.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional

from wp_import.models.entities import Category, Comment, Entry, EntryStatus, SeoData, Tag
from wp_import.models.records import RawComment, RawItem, TermRef
from wp_import.utils.errors import report_error
from wp_import.utils.text import parse_date, sanitize_html, sanitize_text

logger = logging.getLogger(__name__)

STATUS_MAP: Dict[str, EntryStatus] = {
    "publish": EntryStatus.PUBLISHED,
    "future": EntryStatus.PUBLISHED,
    "inherit": EntryStatus.PUBLISHED,
    "draft": EntryStatus.DRAFT,
    "pending": EntryStatus.DRAFT,
    "auto-draft": EntryStatus.DRAFT,
    "private": EntryStatus.PRIVATE,
}

EXCLUDED_META_KEYS = frozenset(
    {
        "_edit_lock",
        "_edit_last",
        "_wp_old_slug",
        "_wp_old_date",
        "_thumbnail_id",
        "_wp_attachment_metadata",
        "_wp_attached_file",
    }
)

# internal keys that still carry editorial data
KEPT_PRIVATE_META_KEYS = frozenset({"_yoast_wpseo_title", "_yoast_wpseo_metadesc", "_wp_page_template"})


def map_status(status: Optional[str]) -> EntryStatus:
    """Translate a WordPress post status; unknown values become drafts."""
    return STATUS_MAP.get((status or "").strip(), EntryStatus.DRAFT)


def namespaced_field_key(key: str) -> str:
    """``_yoast_wpseo_title`` -> ``wp_yoast_wpseo_title``; ``my-field`` -> ``wp_my_field``."""
    return "wp_" + re.sub(r"[^A-Za-z0-9_]", "_", key.lstrip("_"))


def extract_custom_fields(postmeta: Dict[str, str]) -> Dict[str, str]:
    """Drop WordPress bookkeeping meta and namespace the survivors."""
    fields: Dict[str, str] = {}
    for key, value in postmeta.items():
        if key in EXCLUDED_META_KEYS:
            continue
        if key.startswith("_") and key not in KEPT_PRIVATE_META_KEYS:
            continue
        fields[namespaced_field_key(key)] = value
    return fields


def extract_seo(postmeta: Dict[str, str]) -> SeoData:
    """Yoast values win; All in One SEO fills what Yoast leaves empty."""
    return SeoData(
        title=sanitize_text(postmeta.get("_yoast_wpseo_title") or postmeta.get("_aioseop_title")),
        description=sanitize_text(postmeta.get("_yoast_wpseo_metadesc") or postmeta.get("_aioseop_description")),
        keywords=sanitize_text(postmeta.get("_yoast_wpseo_focuskw") or postmeta.get("_aioseop_keywords")),
        page_template=postmeta.get("_wp_page_template", ""),
    )


def transform_comment(raw: RawComment) -> Comment:
    return Comment(
        comment_id=raw.comment_id,
        author=sanitize_text(raw.comment_author),
        author_email=raw.comment_author_email.strip(),
        author_url=raw.comment_author_url.strip(),
        date=parse_date(raw.comment_date),
        date_gmt=parse_date(raw.comment_date_gmt),
        content=sanitize_html(raw.comment_content),
        approved=raw.comment_approved == "1",
        type=raw.comment_type or "comment",
        parent=raw.comment_parent,
    )


def category_from_ref(ref: TermRef) -> Category:
    return Category(
        source_id=ref.term_id,
        slug=ref.slug,
        name=sanitize_text(ref.name),
        description=sanitize_text(ref.description),
        parent_id=ref.parent_id,
        taxonomy=ref.taxonomy,
    )


def tag_from_ref(ref: TermRef) -> Tag:
    return Tag(source_id=ref.term_id, slug=ref.slug, name=sanitize_text(ref.name), description=sanitize_text(ref.description))


def _featured_media_id(postmeta: Dict[str, str]) -> Optional[int]:
    value = postmeta.get("_thumbnail_id", "").strip()
    if not value:
        return None
    try:
        return int(value) or None
    except ValueError:
        logger.warning("Ignoring non-numeric _thumbnail_id %r", value)
        return None


def extract_entry(item: RawItem) -> Optional[Entry]:
    """
    Build an :class:`Entry` from one raw item.

    Args:
        item: the raw record yielded by :class:`~wp_import.extractors.wxr_parser.WXRParser`.

    Returns:
        The entry, or ``None`` for attachments and for items that fail to
        transform (the failure is logged and reported).
    """
    if item.is_attachment:
        return None

    try:
        entry = Entry(
            source_id=item.post_id,
            title=sanitize_text(item.title),
            body=sanitize_html(item.content),
            excerpt=sanitize_html(item.excerpt),
            slug=item.post_name,
            status=map_status(item.status),
            content_type=item.post_type or "post",
            parent_id=item.post_parent or None,
            menu_order=item.menu_order,
            comment_open=item.comment_status == "open",
            ping_open=item.ping_status == "open",
            password=item.post_password,
            is_sticky=item.is_sticky == "1",
            post_date=parse_date(item.post_date),
            post_date_gmt=parse_date(item.post_date_gmt),
            author=item.creator,
            original_url=item.link,
            guid=item.guid,
            categories=[category_from_ref(ref) for ref in item.categories],
            tags=[tag_from_ref(ref) for ref in item.tags],
            custom_fields=extract_custom_fields(item.postmeta),
            featured_media_id=_featured_media_id(item.postmeta),
            comments=[transform_comment(c) for c in item.comments],
            seo=extract_seo(item.postmeta),
        )
    except Exception as e:
        logger.warning("Entry transform failed for post %s: %s", item.post_id, e)
        report_error("TRANSFORM_ENTRY", source_id=item.post_id, title=item.title, exc=e)
        return None

    logger.debug(
        "Entry extracted: post_id=%s type=%s categories=%d tags=%d",
        entry.source_id,
        entry.content_type,
        len(entry.categories),
        len(entry.tags),
    )
    return entry
