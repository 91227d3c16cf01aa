"""
Streaming reader for WordPress eXtended RSS (WXR) exports.

The export is read twice with :func:`xml.etree.ElementTree.iterparse`:

1. a taxonomy pass collects every ``<wp:category>``/``<wp:tag>``/``<wp:term>``
   definition (terms may be declared anywhere relative to the items that
   reference them by slug) together with the channel information;
2. an item pass yields one :class:`~wp_import.models.records.RawItem` per
   ``<item>``, in document order.

Only one item subtree is alive at a time: each ``<item>`` is cleared and
detached from the channel as soon as it has been converted.  Because the
taxonomy pass walks the whole document first, a missing, unreadable or
malformed export is reported before the first item is produced.
"""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from typing import Dict, Iterator, List, Optional, Tuple

from wp_import.models.records import ChannelInfo, RawComment, RawItem, TermDefinition, TermRef
from wp_import.utils.codes import generate_slug
from wp_import.utils.errors import (
    ExportFormatError,
    ExportNotFoundError,
    ExportReadError,
    report_error,
)

logger = logging.getLogger(__name__)

WP_EXPORT_PREFIX = "http://wordpress.org/export/"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
DC_NS = "http://purl.org/dc/elements/1.1/"

# Control bytes that are illegal in XML 1.0.  They are single bytes in UTF-8
# and never occur inside a multi-byte sequence, so they can be dropped
# without decoding.
_ILLEGAL_XML_BYTES = bytes(b for b in range(0x20) if b not in (0x09, 0x0A, 0x0D))


class _SanitizingReader:
    """File wrapper that strips illegal XML control bytes while streaming."""

    def __init__(self, fileobj) -> None:
        self._f = fileobj

    def read(self, size: int = -1) -> bytes:
        return self._f.read(size).translate(None, _ILLEGAL_XML_BYTES)


def _split_tag(tag: str) -> Tuple[str, str]:
    if tag.startswith("{"):
        uri, _, local = tag[1:].partition("}")
        return uri, local
    return "", tag


def _is_wp_ns(uri: str) -> bool:
    return uri.startswith(WP_EXPORT_PREFIX) and not uri.rstrip("/").endswith("excerpt")


def _is_excerpt_ns(uri: str) -> bool:
    return uri.startswith(WP_EXPORT_PREFIX) and uri.rstrip("/").endswith("excerpt")


def _text(elem: Optional[ET.Element]) -> str:
    if elem is None:
        return ""
    return "".join(elem.itertext()).strip()


def _to_int(value: str) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


class WXRParser:
    """
    Two-pass streaming parser.

    After :meth:`parse` returns, :attr:`categories_map`, :attr:`tags_map` and
    :attr:`channel` are populated.  References to terms that have no
    definition are given stable negative ids and are collected in
    :attr:`undefined_categories` / :attr:`undefined_tags` while items stream.
    """

    def __init__(self) -> None:
        self.categories_map: Dict[str, TermDefinition] = {}
        self.tags_map: Dict[str, TermDefinition] = {}
        self.channel = ChannelInfo()
        self.undefined_categories: Dict[str, TermRef] = {}
        self.undefined_tags: Dict[str, TermRef] = {}
        self.items_yielded = 0
        self.items_skipped = 0
        self._wp_ns = WP_EXPORT_PREFIX + "1.2/"
        self._excerpt_ns = WP_EXPORT_PREFIX + "1.2/excerpt/"
        self._synthetic_ids: Dict[Tuple[str, str], int] = {}
        self._unknown_parents_logged: set = set()

    # ------------------------------------------------------------------ API
    def parse(self, file_path: str) -> Iterator[RawItem]:
        """
        Validate the export, run the taxonomy pass and return a one-shot
        iterator over its items.

        :raises ExportNotFoundError: the file does not exist.
        :raises ExportReadError: the file cannot be opened.
        :raises ExportFormatError: the document is malformed or is not a
            WordPress export.
        """
        if not os.path.isfile(file_path):
            raise ExportNotFoundError(f"Export file not found: {file_path}")
        if not os.access(file_path, os.R_OK):
            raise ExportReadError(f"Export file is not readable: {file_path}")

        logger.info("Parsing WXR export %s (%d bytes)", os.path.basename(file_path), os.path.getsize(file_path))
        self._extract_taxonomy_definitions(file_path)
        return self._iter_items(file_path)

    def term_ref(self, definition: TermDefinition) -> TermRef:
        """Resolve a category/tag definition into the shape items reference."""
        parent_id = None
        if definition.taxonomy == "category" and definition.parent:
            parent_def = self.categories_map.get(definition.parent)
            if parent_def is not None:
                parent_id = self._term_id(parent_def.term_id, "category", parent_def.slug)
            elif definition.slug not in self._unknown_parents_logged:
                self._unknown_parents_logged.add(definition.slug)
                logger.warning(
                    "Category '%s' names unknown parent '%s'; it will be imported as a root",
                    definition.slug,
                    definition.parent,
                )
        return TermRef(
            term_id=self._term_id(definition.term_id, definition.taxonomy, definition.slug),
            slug=definition.slug,
            name=definition.name,
            taxonomy=definition.taxonomy,
            parent_id=parent_id,
            description=definition.description,
        )

    # -------------------------------------------------------- pass one
    def _open(self, file_path: str):
        try:
            return open(file_path, "rb")
        except OSError as e:
            raise ExportReadError(f"Failed to read export file {file_path}: {e}") from e

    def _extract_taxonomy_definitions(self, file_path: str) -> None:
        self.categories_map = {}
        self.tags_map = {}
        channel: Dict[str, str] = {}
        saw_wp_namespace = False
        depth = 0
        root_checked = False
        channel_elem: Optional[ET.Element] = None

        with self._open(file_path) as raw:
            try:
                for event, elem in ET.iterparse(_SanitizingReader(raw), events=("start", "end")):
                    uri, local = _split_tag(elem.tag)
                    if event == "start":
                        if not root_checked:
                            if local != "rss":
                                raise ExportFormatError(
                                    f"Not a WordPress export: root element is <{local}>, expected <rss>"
                                )
                            root_checked = True
                        if _is_wp_ns(uri) and not saw_wp_namespace:
                            saw_wp_namespace = True
                            self._wp_ns = uri
                        elif _is_excerpt_ns(uri):
                            self._excerpt_ns = uri
                        depth += 1
                        if depth == 2 and local == "channel":
                            channel_elem = elem
                        continue

                    depth -= 1
                    if _is_wp_ns(uri) and local in ("category", "tag", "term") and depth == 2:
                        self._store_definition(local, elem)
                        elem.clear()
                        if channel_elem is not None:
                            channel_elem.remove(elem)
                    elif depth == 2 and local == "item" and not uri:
                        elem.clear()
                        if channel_elem is not None:
                            channel_elem.remove(elem)
                    elif depth == 2 and (not uri or _is_wp_ns(uri)):
                        if local in ("title", "link", "description", "language", "generator",
                                     "base_site_url", "base_blog_url"):
                            channel.setdefault(local, _text(elem))
            except ET.ParseError as e:
                raise ExportFormatError(f"The export file is not well-formed XML: {e}") from e

        if not root_checked:
            raise ExportFormatError("The export file is empty")
        if not saw_wp_namespace:
            raise ExportFormatError("The export file does not declare the WordPress export namespace")

        self.channel = ChannelInfo(**channel)
        logger.debug(
            "Taxonomy definitions collected: %d categories, %d tags",
            len(self.categories_map),
            len(self.tags_map),
        )

    def _wp(self, local: str) -> str:
        return f"{{{self._wp_ns}}}{local}"

    def _wp_text(self, elem: ET.Element, *names: str) -> str:
        for name in names:
            value = _text(elem.find(self._wp(name)))
            if value:
                return value
        return ""

    def _store_definition(self, local: str, elem: ET.Element) -> None:
        if local == "category":
            taxonomy = "category"
            slug = self._wp_text(elem, "category_nicename")
            name = self._wp_text(elem, "cat_name")
            parent = self._wp_text(elem, "category_parent")
            term_id = self._wp_text(elem, "term_id", "cat_id")
            description = self._wp_text(elem, "category_description")
        elif local == "tag":
            taxonomy = "post_tag"
            slug = self._wp_text(elem, "tag_slug")
            name = self._wp_text(elem, "tag_name")
            parent = ""
            term_id = self._wp_text(elem, "term_id", "tag_id")
            description = self._wp_text(elem, "tag_description")
        else:
            taxonomy = self._wp_text(elem, "term_taxonomy")
            if taxonomy not in ("category", "post_tag"):
                return
            slug = self._wp_text(elem, "term_slug")
            name = self._wp_text(elem, "term_name")
            parent = self._wp_text(elem, "term_parent")
            term_id = self._wp_text(elem, "term_id")
            description = self._wp_text(elem, "term_description")

        if not slug:
            return
        definition = TermDefinition(
            term_id=_to_int(term_id) or None,
            slug=slug,
            name=name,
            parent=parent or None,
            description=description,
            taxonomy=taxonomy,
        )
        target = self.categories_map if taxonomy == "category" else self.tags_map
        target.setdefault(slug, definition)

    # -------------------------------------------------------- pass two
    def _iter_items(self, file_path: str) -> Iterator[RawItem]:
        self.items_yielded = 0
        self.items_skipped = 0
        with self._open(file_path) as raw:
            channel_elem: Optional[ET.Element] = None
            depth = 0
            for event, elem in ET.iterparse(_SanitizingReader(raw), events=("start", "end")):
                if event == "start":
                    depth += 1
                    if depth == 2 and elem.tag == "channel":
                        channel_elem = elem
                    continue
                depth -= 1
                if elem.tag != "item" or depth != 2:
                    continue
                item = self._extract_item(elem)
                elem.clear()
                if channel_elem is not None:
                    channel_elem.remove(elem)
                if item is not None:
                    self.items_yielded += 1
                    yield item
        logger.info("WXR parsing complete: %d items, %d skipped", self.items_yielded, self.items_skipped)

    def _extract_item(self, elem: ET.Element) -> Optional[RawItem]:
        post_id_text = self._wp_text(elem, "post_id")
        try:
            post_type = self._wp_text(elem, "post_type")
            item = RawItem(
                title=_text(elem.find("title")),
                link=_text(elem.find("link")),
                pub_date=_text(elem.find("pubDate")),
                creator=_text(elem.find(f"{{{DC_NS}}}creator")),
                guid=_text(elem.find("guid")),
                description=_text(elem.find("description")),
                content=_text(elem.find(f"{{{CONTENT_NS}}}encoded")),
                excerpt=_text(elem.find(f"{{{self._excerpt_ns}}}encoded")),
                post_id=int(post_id_text),
                post_date=self._wp_text(elem, "post_date"),
                post_date_gmt=self._wp_text(elem, "post_date_gmt"),
                comment_status=self._wp_text(elem, "comment_status"),
                ping_status=self._wp_text(elem, "ping_status"),
                post_name=self._wp_text(elem, "post_name"),
                status=self._wp_text(elem, "status"),
                post_parent=_to_int(self._wp_text(elem, "post_parent")),
                menu_order=_to_int(self._wp_text(elem, "menu_order")),
                post_type=post_type,
                post_password=self._wp_text(elem, "post_password"),
                is_sticky=self._wp_text(elem, "is_sticky"),
                attachment_url=self._wp_text(elem, "attachment_url") if post_type == "attachment" else "",
                categories=self._extract_terms(elem, "category"),
                tags=self._extract_terms(elem, "post_tag"),
                postmeta=self._extract_postmeta(elem),
                comments=self._extract_comments(elem),
            )
        except Exception as e:
            self.items_skipped += 1
            logger.warning("Skipping malformed item (post_id=%r): %s", post_id_text or "unknown", e)
            report_error(
                "EXTRACT_ITEM",
                source_id=post_id_text or None,
                title=_text(elem.find("title")) or None,
                kind="item",
                exc=e,
            )
            return None
        return item

    def _extract_terms(self, elem: ET.Element, taxonomy: str) -> List[TermRef]:
        definitions = self.categories_map if taxonomy == "category" else self.tags_map
        undefined = self.undefined_categories if taxonomy == "category" else self.undefined_tags
        seen = set()
        terms: List[TermRef] = []
        for node in elem.findall("category"):
            if node.get("domain") != taxonomy:
                continue
            name = _text(node)
            slug = node.get("nicename") or ""
            if not slug and name:
                slug = generate_slug(name)
            if not slug or slug in seen:
                continue
            seen.add(slug)

            definition = definitions.get(slug)
            if definition is not None:
                ref = self.term_ref(definition)
                if not ref.name:
                    ref.name = name
            else:
                ref = TermRef(
                    term_id=self._term_id(None, taxonomy, slug),
                    slug=slug,
                    name=name,
                    taxonomy=taxonomy,
                )
                undefined.setdefault(slug, ref)
            terms.append(ref)
        return terms

    def _term_id(self, term_id: Optional[int], taxonomy: str, slug: str) -> int:
        if term_id:
            return term_id
        key = (taxonomy, slug)
        if key not in self._synthetic_ids:
            self._synthetic_ids[key] = -(len(self._synthetic_ids) + 1)
        return self._synthetic_ids[key]

    def _extract_postmeta(self, elem: ET.Element) -> Dict[str, str]:
        meta: Dict[str, str] = {}
        for node in elem.findall(self._wp("postmeta")):
            key = self._wp_text(node, "meta_key")
            if key:
                meta[key] = _text(node.find(self._wp("meta_value")))
        return meta

    def _extract_comments(self, elem: ET.Element) -> List[RawComment]:
        comments: List[RawComment] = []
        for node in elem.findall(self._wp("comment")):
            comments.append(
                RawComment(
                    comment_id=_to_int(self._wp_text(node, "comment_id")),
                    comment_author=self._wp_text(node, "comment_author"),
                    comment_author_email=self._wp_text(node, "comment_author_email"),
                    comment_author_url=self._wp_text(node, "comment_author_url"),
                    comment_date=self._wp_text(node, "comment_date"),
                    comment_date_gmt=self._wp_text(node, "comment_date_gmt"),
                    comment_content=_text(node.find(self._wp("comment_content"))),
                    comment_approved=self._wp_text(node, "comment_approved"),
                    comment_type=self._wp_text(node, "comment_type"),
                    comment_parent=_to_int(self._wp_text(node, "comment_parent")),
                )
            )
        return comments
