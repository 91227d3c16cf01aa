"""Filesystem access for downloaded and stored media."""

from __future__ import annotations

import logging
import mimetypes
import os
import shutil

from filetype import guess

from wp_import.utils.text import DEFAULT_MIME_TYPE, guess_mime_type

logger = logging.getLogger(__name__)


class LocalStorage:
    """Thin wrapper over the local filesystem; paths are used as given."""

    def exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def read(self, path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def write(self, path: str, data: bytes) -> int:
        self.make_dirs(os.path.dirname(path))
        with open(path, "wb") as f:
            f.write(data)
        return len(data)

    def copy(self, src: str, dst: str) -> None:
        self.make_dirs(os.path.dirname(dst))
        shutil.copyfile(src, dst)

    def make_dirs(self, path: str) -> None:
        if path:
            os.makedirs(path, exist_ok=True)

    def mime_type(self, path: str) -> str:
        """Sniff the MIME type from the content, then fall back to the name."""
        try:
            kind = guess(path)
        except OSError as e:
            logger.debug("Could not sniff %s: %s", path, e)
            kind = None
        if kind is not None:
            return kind.mime
        mime, _ = mimetypes.guess_type(path)
        if mime:
            return mime
        return guess_mime_type(path) or DEFAULT_MIME_TYPE

    def file_size(self, path: str) -> int:
        try:
            return os.path.getsize(path)
        except OSError:
            return 0
