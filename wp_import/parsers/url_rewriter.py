"""
Relinking of media and internal links inside imported entry bodies.

:meth:`UrlRewriter.rewrite_urls` runs three passes over a body:

1. ``<img src>`` and ``<a href>`` pointing at a media file are resolved
   through the media map (``?attachment_id=N``) or the
   ``/wp-content/uploads/`` convention and pointed at the destination's
   media URL;
2. ``<a href>`` under the WordPress base URL is matched against the usual
   permalink shapes and rewritten to the destination's URL shape;
3. any other occurrence of the WordPress base URL is substituted with the
   destination base URL.

The markup is only re-serialized when one of the first two passes changed
something.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from wp_import.models.results import RewriteResult

logger = logging.getLogger(__name__)

MEDIA_EXTENSIONS = frozenset(
    {"jpg", "jpeg", "png", "gif", "webp", "svg", "pdf", "doc", "docx", "xls", "xlsx", "zip", "mp3", "mp4", "avi", "mov"}
)

_ATTACHMENT_ID = re.compile(r"[?&]attachment_id=(\d+)")
_UPLOADS_PATH = re.compile(r"/wp-content/uploads/(.+)$")
_POST_PERMALINK = re.compile(r"/(\d{4})/(\d{2})/(\d{2})/([^/]+)/$")
_CATEGORY_PERMALINK = re.compile(r"/category/([^/]+)/$")
_PAGE_PERMALINK = re.compile(r"/([^/]+)/$")


def is_media_file(url: str) -> bool:
    _, ext = os.path.splitext(urlparse(url).path or "")
    return ext[1:].lower() in MEDIA_EXTENSIONS


def extract_attachment_id(url: str) -> Optional[int]:
    match = _ATTACHMENT_ID.search(url)
    return int(match.group(1)) if match else None


def convert_wordpress_url(url: str, wp_base_url: str, cms_base_url: str) -> str:
    """Map a WordPress permalink onto the destination URL shape."""
    path = url[len(wp_base_url):] if url.lower().startswith(wp_base_url.lower()) else url

    match = _POST_PERMALINK.search(path)
    if match:
        year, month, day, _slug = match.groups()
        return f"{cms_base_url}/entry-{year}{month}{day}.html"

    match = _CATEGORY_PERMALINK.search(path)
    if match:
        return f"{cms_base_url}/category/{match.group(1)}/"

    match = _PAGE_PERMALINK.search(path)
    if match:
        return f"{cms_base_url}/{match.group(1)}.html"

    return re.sub(re.escape(wp_base_url), lambda _: cms_base_url, url, count=1, flags=re.IGNORECASE)


class UrlRewriter:
    """
    Stateful rewriter for one import run.

    ``media_path_resolver`` maps a destination media id to its stored
    relative path.  Resolved media URLs are cached for the rewriter's
    lifetime.
    """

    def __init__(
        self,
        media_path_resolver: Callable[[int], Optional[str]],
        *,
        media_base_url: str = "/archives/",
        blog_id: int = 1,
    ) -> None:
        self.media_path_resolver = media_path_resolver
        self.media_base_url = media_base_url
        self.blog_id = blog_id
        self.base_url_map: Dict[str, str] = {}
        self._media_url_cache: Dict[str, str] = {}

    def set_base_url_mapping(self, mapping: Dict[str, str]) -> None:
        self.base_url_map = {k.rstrip("/"): v.rstrip("/") for k, v in mapping.items() if k}

    def clear_media_url_cache(self) -> None:
        self._media_url_cache = {}

    def rewrite_urls(
        self,
        content: str,
        media_map: Optional[Dict[int, int]] = None,
        *,
        wp_base_url: str = "",
        cms_base_url: str = "",
    ) -> RewriteResult:
        if wp_base_url:
            self.base_url_map[wp_base_url.rstrip("/")] = (cms_base_url or "").rstrip("/")
        if not content:
            return RewriteResult(content=content or "")

        media_map = media_map or {}
        replaced: Dict[str, str] = {}
        soup = BeautifulSoup(content, "html.parser")

        media_replaced = self._rewrite_media_urls(soup, media_map, replaced)
        link_replaced = self._rewrite_internal_links(soup, replaced)
        if media_replaced or link_replaced:
            content = str(soup)

        content, absolute_replaced = self._rewrite_absolute_urls(content, replaced)
        if media_replaced or link_replaced or absolute_replaced:
            logger.debug(
                "Rewrote %d media, %d links, %d absolute URLs", media_replaced, link_replaced, absolute_replaced
            )
        return RewriteResult(
            content=content,
            replaced_urls=replaced,
            media_replaced=media_replaced,
            link_replaced=link_replaced,
            absolute_replaced=absolute_replaced,
        )

    def _rewrite_media_urls(self, soup: BeautifulSoup, media_map: Dict[int, int], replaced: Dict[str, str]) -> int:
        count = 0
        for img in soup.find_all("img", src=True):
            src = img["src"]
            new_url = self.replace_media_url(src, media_map)
            if new_url != src:
                img["src"] = new_url
                replaced[src] = new_url
                count += 1

        for link in soup.find_all("a", href=True):
            href = link["href"]
            if not is_media_file(href):
                continue
            new_url = self.replace_media_url(href, media_map)
            if new_url != href:
                link["href"] = new_url
                replaced[href] = new_url
                count += 1
        return count

    def _rewrite_internal_links(self, soup: BeautifulSoup, replaced: Dict[str, str]) -> int:
        count = 0
        for wp_base, cms_base in self.base_url_map.items():
            for link in soup.find_all("a", href=True):
                href = link["href"]
                if not href.lower().startswith(wp_base.lower()):
                    continue
                new_url = convert_wordpress_url(href, wp_base, cms_base)
                if new_url != href:
                    link["href"] = new_url
                    replaced[href] = new_url
                    count += 1
        return count

    def _rewrite_absolute_urls(self, content: str, replaced: Dict[str, str]) -> Tuple[str, int]:
        total = 0
        for wp_base, cms_base in self.base_url_map.items():
            content, n = re.subn(re.escape(wp_base), lambda _: cms_base, content, flags=re.IGNORECASE)
            if n:
                replaced[wp_base] = cms_base
                total += n
        return content, total

    def replace_media_url(self, url: str, media_map: Dict[int, int]) -> str:
        cached = self._media_url_cache.get(url)
        if cached is not None:
            return cached

        attachment_id = extract_attachment_id(url)
        if attachment_id is not None and attachment_id in media_map:
            path = self.media_path_resolver(media_map[attachment_id])
            if path:
                new_url = self.media_base_url + path
                self._media_url_cache[url] = new_url
                return new_url

        match = _UPLOADS_PATH.search(urlparse(url).path or "")
        if match:
            new_url = f"{self.media_base_url}{self.blog_id}/media/{match.group(1)}"
            self._media_url_cache[url] = new_url
            return new_url

        return url
