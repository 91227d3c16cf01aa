"""
Contracts the import core calls into.

The core only depends on these protocols; :mod:`.duckdb_store` and
:mod:`.local_storage` are the implementations shipped with the tool, and the
tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from wp_import.models.entities import Entry, Media
from wp_import.models.results import ItemResult
from wp_import.models.settings import ImportSettings


class CategoryStore(Protocol):
    """Nested-interval category rows of one destination container (blog)."""

    def find_category_by_code(self, code: str, blog_id: int) -> Optional[int]: ...

    def category_code_exists(self, code: str, blog_id: int) -> bool: ...

    def get_category_status(self, category_id: int) -> Optional[str]: ...

    def get_max_root_right(self, blog_id: int) -> int: ...

    def get_category_right(self, category_id: int) -> Optional[int]: ...

    def get_next_sort(self, blog_id: int, parent_id: int) -> int: ...

    def shift_bounds(self, blog_id: int, position: int, delta: int = 2) -> None: ...

    def insert_category(self, row: Dict[str, Any]) -> int: ...

    def save_category_fields(self, category_id: int, blog_id: int, fields: Dict[str, str]) -> None: ...


class EntryWriter(Protocol):
    def import_entry(
        self,
        entry: Entry,
        settings: ImportSettings,
        category_map: Dict[int, int],
        media_map: Dict[int, int],
    ) -> ItemResult: ...


class MediaWriter(Protocol):
    def import_media(self, media: Media, settings: ImportSettings, local_path: str) -> ItemResult: ...

    def get_media_path(self, media_id: int) -> Optional[str]: ...


class LocalStorage(Protocol):
    def exists(self, path: str) -> bool: ...

    def read(self, path: str) -> bytes: ...

    def write(self, path: str, data: bytes) -> int: ...

    def make_dirs(self, path: str) -> None: ...

    def mime_type(self, path: str) -> str: ...

    def file_size(self, path: str) -> int: ...


class ProgressSink(Protocol):
    def add_message(self, message: str, percentage: float = 0, persist: bool = False) -> None: ...

    def success(self, message: str = ...) -> None: ...

    def error(self, message: str) -> None: ...


class RunLock(Protocol):
    def try_lock(self) -> bool: ...

    def release(self) -> None: ...

    def is_locked(self) -> bool: ...

    def refresh(self) -> bool: ...
