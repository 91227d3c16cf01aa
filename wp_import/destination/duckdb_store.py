"""
DuckDB-backed destination store.

Implements the category, entry and media writers the import core calls.
Tables follow the destination platform's naming (``category_*``,
``entry_*``, ``media_*`` columns) and identities come from sequences.  Rows
are never declared with keys or indexes; uniqueness of codes is enforced by
the writers through :func:`~wp_import.utils.codes.generate_unique_code`.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import os
import threading
from typing import Any, Dict, Iterable, List, Optional

import duckdb
from bs4 import BeautifulSoup
from PIL import Image, UnidentifiedImageError

from wp_import.destination.local_storage import LocalStorage
from wp_import.models.entities import Entry, EntryStatus, Media
from wp_import.models.results import ItemResult
from wp_import.models.settings import ImportSettings
from wp_import.utils.codes import generate_unique_entry_code
from wp_import.utils.errors import report_error

logger = logging.getLogger(__name__)

DESTINATION_STATUS = {
    EntryStatus.PUBLISHED: "open",
    EntryStatus.DRAFT: "draft",
    EntryStatus.PRIVATE: "close",
}

SCHEMA = [
    "CREATE SEQUENCE IF NOT EXISTS category_id_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS entry_id_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS media_id_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS unit_id_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS comment_id_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS category (
        category_id INTEGER,
        category_parent INTEGER,
        category_sort INTEGER,
        category_left INTEGER,
        category_right INTEGER,
        category_blog_id INTEGER,
        category_status VARCHAR,
        category_name VARCHAR,
        category_code VARCHAR,
        category_scope VARCHAR,
        category_indexing VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entry (
        entry_id INTEGER,
        entry_code VARCHAR,
        entry_status VARCHAR,
        entry_title VARCHAR,
        entry_summary VARCHAR,
        entry_blog_id INTEGER,
        entry_category_id INTEGER,
        entry_parent_id INTEGER,
        entry_datetime TIMESTAMP,
        entry_posted_datetime TIMESTAMP,
        entry_updated_datetime TIMESTAMP,
        entry_sort INTEGER,
        entry_category_sort INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS entry_sub_category (
        entry_sub_category_eid INTEGER,
        entry_sub_category_id INTEGER,
        entry_sub_category_blog_id INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tag (
        tag_name VARCHAR,
        tag_sort INTEGER,
        tag_entry_id INTEGER,
        tag_blog_id INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS field (
        field_key VARCHAR,
        field_value VARCHAR,
        field_sort INTEGER,
        field_eid INTEGER,
        field_cid INTEGER,
        field_blog_id INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fulltext (
        fulltext_value VARCHAR,
        fulltext_eid INTEGER,
        fulltext_cid INTEGER,
        fulltext_blog_id INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS unit (
        unit_id INTEGER,
        unit_eid INTEGER,
        unit_blog_id INTEGER,
        unit_type VARCHAR,
        unit_sort INTEGER,
        unit_field_1 VARCHAR
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS media (
        media_id INTEGER,
        media_blog_id INTEGER,
        media_type VARCHAR,
        media_extension VARCHAR,
        media_path VARCHAR,
        media_original VARCHAR,
        media_file_name VARCHAR,
        media_file_size BIGINT,
        media_image_size VARCHAR,
        media_field_1 VARCHAR,
        media_field_3 VARCHAR,
        media_upload_date TIMESTAMP,
        media_wp_post_id INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS comment (
        comment_id INTEGER,
        comment_entry_id INTEGER,
        comment_blog_id INTEGER,
        comment_name VARCHAR,
        comment_mail VARCHAR,
        comment_url VARCHAR,
        comment_body VARCHAR,
        comment_status VARCHAR,
        comment_datetime TIMESTAMP,
        comment_wp_id INTEGER,
        comment_wp_parent INTEGER
    )
    """,
]


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)


def _plain_text(html: str) -> str:
    if not html:
        return ""
    return BeautifulSoup(html, "html.parser").get_text(" ", strip=True)


class DuckDBStore:
    """
    Category, entry and media writer over one DuckDB database.

    ``media_root`` is where imported files are copied; stored media paths
    are relative to it (``<blog>/media/<YYYY>/<MM>/<name>``).  Access is
    serialized with a re-entrant lock so one store may be shared between
    threads.
    """

    def __init__(self, db_path: str = ":memory:", media_root: str = "data/wp-import/archives",
                 storage: Optional[LocalStorage] = None) -> None:
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self.db_path = db_path
        self.media_root = media_root
        self.storage = storage or LocalStorage()
        self.con = duckdb.connect(database=db_path, read_only=False)
        self.lock = threading.RLock()
        for statement in SCHEMA:
            self.con.execute(statement)

    def close(self) -> None:
        self.con.close()

    # ----------------------------------------------------------- helpers
    def _one(self, sql: str, params: Iterable[Any] = ()) -> Any:
        row = self.con.execute(sql, list(params)).fetchone()
        return row[0] if row else None

    def _nextval(self, sequence: str) -> int:
        return int(self._one(f"SELECT nextval('{sequence}')"))

    def _save_fields(self, fields: Dict[str, Any], blog_id: int, *, eid: Optional[int] = None,
                     cid: Optional[int] = None) -> None:
        for sort, (key, value) in enumerate(fields.items(), start=1):
            if value is None or value == "":
                continue
            self.con.execute(
                "INSERT INTO field VALUES (?, ?, ?, ?, ?, ?)",
                [key, str(value), sort, eid, cid, blog_id],
            )

    # -------------------------------------------------------- categories
    def find_category_by_code(self, code: str, blog_id: int) -> Optional[int]:
        with self.lock:
            found = self._one(
                "SELECT category_id FROM category WHERE category_blog_id = ? AND category_code = ? LIMIT 1",
                [blog_id, code],
            )
        return int(found) if found is not None else None

    def category_code_exists(self, code: str, blog_id: int) -> bool:
        return self.find_category_by_code(code, blog_id) is not None

    def get_category_status(self, category_id: int) -> Optional[str]:
        if not category_id:
            return None
        with self.lock:
            return self._one("SELECT category_status FROM category WHERE category_id = ?", [category_id])

    def get_max_root_right(self, blog_id: int) -> int:
        with self.lock:
            value = self._one(
                "SELECT max(category_right) FROM category WHERE category_blog_id = ? AND category_parent = 0",
                [blog_id],
            )
        return int(value or 0)

    def get_category_right(self, category_id: int) -> Optional[int]:
        with self.lock:
            value = self._one("SELECT category_right FROM category WHERE category_id = ?", [category_id])
        return int(value) if value is not None else None

    def get_next_sort(self, blog_id: int, parent_id: int) -> int:
        with self.lock:
            value = self._one(
                "SELECT max(category_sort) FROM category WHERE category_blog_id = ? AND category_parent = ?",
                [blog_id, parent_id],
            )
        return int(value or 0) + 1

    def shift_bounds(self, blog_id: int, position: int, delta: int = 2) -> None:
        with self.lock:
            self.con.execute(
                "UPDATE category SET category_left = category_left + ? WHERE category_blog_id = ? AND category_left >= ?",
                [delta, blog_id, position],
            )
            self.con.execute(
                "UPDATE category SET category_right = category_right + ? WHERE category_blog_id = ? AND category_right >= ?",
                [delta, blog_id, position],
            )

    def insert_category(self, row: Dict[str, Any]) -> int:
        with self.lock:
            category_id = self._nextval("category_id_seq")
            self.con.execute(
                "INSERT INTO category VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'local', 'on')",
                [
                    category_id,
                    row.get("parent", 0),
                    row.get("sort", 1),
                    row["left"],
                    row["right"],
                    row["blog_id"],
                    row.get("status", "open"),
                    row["name"],
                    row["code"],
                ],
            )
            self.con.execute(
                "INSERT INTO fulltext VALUES (?, NULL, ?, ?)",
                [" ".join(filter(None, [row["name"], row["code"]])), category_id, row["blog_id"]],
            )
        return category_id

    def save_category_fields(self, category_id: int, blog_id: int, fields: Dict[str, str]) -> None:
        with self.lock:
            self._save_fields(fields, blog_id, cid=category_id)

    def category_rows(self, blog_id: int) -> List[Dict[str, Any]]:
        with self.lock:
            cursor = self.con.execute(
                "SELECT category_id, category_parent, category_left, category_right, category_status, category_code "
                "FROM category WHERE category_blog_id = ? ORDER BY category_left",
                [blog_id],
            )
            columns = ["id", "parent", "left", "right", "status", "code"]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    # ------------------------------------------------------------ entries
    def entry_code_exists(self, code: str, blog_id: int, category_id: Optional[int]) -> bool:
        sql = "SELECT count(*) FROM entry WHERE entry_blog_id = ? AND entry_code = ?"
        params: List[Any] = [blog_id, code]
        if category_id is not None:
            sql += " AND entry_category_id = ?"
            params.append(category_id)
        return int(self._one(sql, params) or 0) > 0

    def import_entry(
        self,
        entry: Entry,
        settings: ImportSettings,
        category_map: Dict[int, int],
        media_map: Dict[int, int],
    ) -> ItemResult:
        """
        Write one entry and everything attached to it in a single transaction.

        The content unit holding the body is created after the commit; a
        failure there is reported but leaves the entry in place.
        """
        blog_id = settings.target_blog_id
        mapped = []
        for category in entry.categories:
            destination_id = category_map.get(category.source_id)
            if destination_id is not None and destination_id not in mapped:
                mapped.append(destination_id)
        main_category_id = mapped[0] if mapped else None

        with self.lock:
            self.con.begin()
            try:
                eid = self._insert_entry(entry, blog_id, main_category_id)
                self._insert_entry_fields(eid, entry, blog_id, media_map)
                for sub_id in mapped[1:]:
                    self.con.execute("INSERT INTO entry_sub_category VALUES (?, ?, ?)", [eid, sub_id, blog_id])
                if settings.create_tags:
                    self._insert_tags(eid, entry, blog_id)
                self._insert_comments(eid, entry, blog_id)
                self.con.execute(
                    "INSERT INTO fulltext VALUES (?, ?, NULL, ?)",
                    [" ".join(filter(None, [entry.title, _plain_text(entry.body)])), eid, blog_id],
                )
                self.con.commit()
            except Exception as e:
                self.con.rollback()
                logger.error("Entry import failed for post %s: %s", entry.source_id, e)
                return ItemResult.failed(entry.source_id, str(e))

            self._create_content_unit_safely(eid, entry, blog_id)

        logger.debug("Entry created eid=%s post_id=%s title=%r", eid, entry.source_id, entry.title)
        return ItemResult.ok(entry.source_id, eid)

    def _insert_entry(self, entry: Entry, blog_id: int, category_id: Optional[int]) -> int:
        eid = self._nextval("entry_id_seq")
        code = generate_unique_entry_code(
            entry.slug, entry.title, entry.source_id, blog_id, category_id, self.entry_code_exists
        )
        posted = _naive_utc(entry.post_date_gmt or entry.post_date) or _utc_now()
        sort = int(self._one("SELECT max(entry_sort) FROM entry WHERE entry_blog_id = ?", [blog_id]) or 0) + 1
        category_sort = int(
            self._one(
                "SELECT max(entry_category_sort) FROM entry WHERE entry_blog_id = ? AND entry_category_id IS NOT DISTINCT FROM ?",
                [blog_id, category_id],
            )
            or 0
        ) + 1
        self.con.execute(
            "INSERT INTO entry VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                eid,
                code,
                DESTINATION_STATUS[entry.status],
                entry.title,
                _plain_text(entry.excerpt),
                blog_id,
                category_id,
                # WordPress post_parent is a source id; kept in the wp_post_parent field
                None,
                posted,
                posted,
                _utc_now(),
                sort,
                category_sort,
            ],
        )
        return eid

    def _insert_entry_fields(self, eid: int, entry: Entry, blog_id: int, media_map: Dict[int, int]) -> None:
        fields: Dict[str, Any] = {}
        if entry.seo.title:
            fields["entry_meta_title"] = entry.seo.title
        if entry.seo.description:
            fields["entry_meta_description"] = entry.seo.description
        if entry.seo.keywords:
            fields["entry_meta_keywords"] = entry.seo.keywords
        fields.update(entry.custom_fields)
        fields["wp_post_id"] = entry.source_id
        fields["wp_guid"] = entry.guid
        fields["wp_post_type"] = entry.content_type
        if entry.parent_id:
            fields["wp_post_parent"] = entry.parent_id
        if entry.featured_media_id:
            fields["wp_featured_media_id"] = media_map.get(entry.featured_media_id, entry.featured_media_id)
        self._save_fields(fields, blog_id, eid=eid)

    def _insert_tags(self, eid: int, entry: Entry, blog_id: int) -> None:
        sort = 0
        seen = set()
        for tag in entry.tags:
            if not tag.is_valid() or tag.display_name in seen:
                continue
            seen.add(tag.display_name)
            self.con.execute("INSERT INTO tag VALUES (?, ?, ?, ?)", [tag.display_name, sort, eid, blog_id])
            sort += 1

    def _insert_comments(self, eid: int, entry: Entry, blog_id: int) -> None:
        for comment in entry.comments:
            self.con.execute(
                "INSERT INTO comment VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    self._nextval("comment_id_seq"),
                    eid,
                    blog_id,
                    comment.author,
                    comment.author_email,
                    comment.author_url,
                    comment.content,
                    "open" if comment.approved else "awaiting",
                    _naive_utc(comment.date_gmt or comment.date),
                    comment.comment_id,
                    comment.parent,
                ],
            )

    def _create_content_unit_safely(self, eid: int, entry: Entry, blog_id: int) -> None:
        try:
            self.create_content_unit(eid, entry, blog_id)
        except Exception as e:
            logger.warning("Content unit for entry %s not created: %s", eid, e)
            report_error("CONTENT_UNIT", source_id=entry.source_id, title=entry.title, exc=e)

    def create_content_unit(self, eid: int, entry: Entry, blog_id: int) -> int:
        unit_id = self._nextval("unit_id_seq")
        self.con.execute(
            "INSERT INTO unit VALUES (?, ?, ?, 'block-editor', 1, ?)",
            [unit_id, eid, blog_id, entry.body],
        )
        return unit_id

    # -------------------------------------------------------------- media
    def import_media(self, media: Media, settings: ImportSettings, local_path: str) -> ItemResult:
        if not self.storage.exists(local_path):
            return ItemResult.failed(media.source_id, f"Local file does not exist: {local_path}")

        try:
            mime_type = self.storage.mime_type(local_path) or media.mime_type
            file_size = self.storage.file_size(local_path)
            if mime_type == "image/svg+xml" or media.extension == "svg":
                media_type = "svg"
                image_size = ""
            elif mime_type.startswith("image/"):
                media_type = "image"
                image_size = self._image_size(local_path, media)
            else:
                media_type = "file"
                image_size = ""

            relative = self._store_file(local_path, media, settings.target_blog_id)
        except OSError as e:
            logger.error("Media upload failed for %s: %s", media.source_id, e)
            return ItemResult.failed(media.source_id, f"Media upload failed: {e}")

        with self.lock:
            self.con.begin()
            try:
                media_id = self._nextval("media_id_seq")
                self.con.execute(
                    "INSERT INTO media VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        media_id,
                        settings.target_blog_id,
                        media_type,
                        media.extension,
                        relative,
                        media.original_url,
                        os.path.basename(relative),
                        file_size,
                        image_size,
                        media.description or media.title,
                        media.alt_text,
                        _naive_utc(media.upload_date),
                        media.source_id,
                    ],
                )
                self.con.commit()
            except Exception as e:
                self.con.rollback()
                logger.error("Media registration failed for %s: %s", media.source_id, e)
                return ItemResult.failed(media.source_id, f"Database registration failed: {e}")

        logger.debug("Media imported media_id=%s post_id=%s path=%s", media_id, media.source_id, relative)
        return ItemResult.ok(media.source_id, media_id, relative)

    def _image_size(self, path: str, media: Media) -> str:
        try:
            with Image.open(path) as img:
                width, height = img.size
        except (UnidentifiedImageError, OSError) as e:
            logger.debug("Pillow could not read %s: %s", path, e)
            width, height = media.width, media.height
        return f"{width} x {height}" if width and height else ""

    def _store_file(self, local_path: str, media: Media, blog_id: int) -> str:
        stamp = media.upload_date or datetime.now(timezone.utc)
        folder = os.path.join(str(blog_id), "media", stamp.strftime("%Y"), stamp.strftime("%m"))
        name = os.path.basename(local_path)
        base, ext = os.path.splitext(name)
        relative = os.path.join(folder, name)
        counter = 0
        while self.storage.exists(os.path.join(self.media_root, relative)):
            counter += 1
            relative = os.path.join(folder, f"{base}_{counter}{ext}")
        self.storage.copy(local_path, os.path.join(self.media_root, relative))
        return relative.replace(os.sep, "/")

    def get_media_path(self, media_id: int) -> Optional[str]:
        with self.lock:
            return self._one("SELECT media_path FROM media WHERE media_id = ? LIMIT 1", [media_id]) or None
