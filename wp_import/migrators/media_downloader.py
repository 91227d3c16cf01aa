"""
Download of attachment files from the WordPress site.

Every :class:`~wp_import.models.entities.Media` goes through the same gates,
in order: it must be downloadable, its MIME type must be allowed, and a file
already present at its local path short-circuits the transfer (re-runs are
idempotent).  Only then is the file fetched; every request, retries
included, first waits for the per-host rate limit.  Failures are returned as
:class:`~wp_import.models.results.FetchResult` values; nothing raised by the
network layer escapes :meth:`MediaDownloader.download_media`.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import threading
import time
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

import requests

from wp_import.destination.local_storage import LocalStorage
from wp_import.models.entities import Media
from wp_import.models.results import FetchResult
from wp_import.models.settings import MediaSettings
from wp_import.utils.text import format_file_size

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)
CHUNK_SIZE = 64 * 1024


class HostRateLimiter:
    """
    Per-host time-based rate limiter.

    Ensures that two requests to the same host start at least ``interval``
    seconds apart.  Requests to different hosts never wait for each other.
    The slot is reserved under a lock before sleeping, so one limiter can be
    shared by several download threads.
    """

    def __init__(
        self,
        interval: float = 0.5,
        time_fn: Callable[[], float] = time.monotonic,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.interval = max(0.0, interval)
        self.time_fn = time_fn
        self.sleep_fn = sleep_fn
        self._last: Dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, url: str) -> float:
        """Block until ``url``'s host may be contacted; returns the time slept."""
        host = (urlparse(url).hostname or "").lower()
        if not host:
            return 0.0
        with self._lock:
            now = self.time_fn()
            last = self._last.get(host)
            start = now if last is None else max(now, last + self.interval)
            self._last[host] = start
        delay = start - now
        if delay > 0:
            logger.debug("Rate limit applied for %s: sleeping %.3fs", host, delay)
            self.sleep_fn(delay)
        return delay


def with_retries(
    fn: Callable[[], requests.Response],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.7,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> requests.Response:
    """
    Execute a function returning a ``requests.Response``, retrying on
    transient HTTP errors.  Retries are attempted on status codes 429
    (too many requests), 5xx server errors and connection errors.  Backoff
    is exponential unless the server sends ``Retry-After``.

    :param fn: A zero-argument callable that performs the HTTP request.
    :param max_attempts: Maximum number of attempts before giving up.
    :param base_delay: Base delay in seconds for exponential backoff.
    :return: The successful ``requests.Response``.
    :raises requests.HTTPError: if all attempts fail.
    """
    attempt = 0
    while True:
        try:
            resp = fn()
            resp.raise_for_status()
            return resp
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if e.response is not None:
                e.response.close()
            if status not in RETRY_STATUSES or attempt >= max_attempts - 1:
                raise
            retry_after = e.response.headers.get("Retry-After")
            try:
                wait = float(retry_after) if retry_after else base_delay * (2 ** attempt)
            except ValueError:
                wait = base_delay * (2 ** attempt)
            logger.debug("HTTP %s, retrying in %.2fs (attempt %d/%d)", status, wait, attempt + 1, max_attempts)
            sleep_fn(wait)
            attempt += 1
        except requests.RequestException:
            if attempt >= max_attempts - 1:
                raise
            sleep_fn(base_delay * (2 ** attempt))
            attempt += 1


def sanitize_file_name(file_name: str, fallback: str = "") -> str:
    """
    Keep ``[A-Za-z0-9._-]`` in the base name, squeeze underscores and keep
    the extension; an empty result becomes ``unnamed_<fallback>``.
    """
    name, ext = os.path.splitext(file_name or "")
    name = re.sub(r"[^a-zA-Z0-9\-_\.]", "_", name)
    name = re.sub(r"_+", "_", name).strip("_")
    if not name:
        name = f"unnamed_{fallback}" if fallback else "unnamed"
    return name + ext


class MediaDownloader:
    def __init__(
        self,
        settings: Optional[MediaSettings] = None,
        *,
        session: Optional[requests.Session] = None,
        storage: Optional[LocalStorage] = None,
        rate_limiter: Optional[HostRateLimiter] = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or MediaSettings()
        self.session = session or requests.Session()
        self.storage = storage or LocalStorage()
        self.rate_limiter = rate_limiter or HostRateLimiter(self.settings.download_delay)
        self.sleep_fn = sleep_fn
        self.storage.make_dirs(self.settings.download_dir)

    def is_mime_type_allowed(self, mime_type: str) -> bool:
        return mime_type in self.settings.allowed_mime_types

    def generate_local_path(self, media: Media) -> str:
        parts = [self.settings.download_dir]
        if media.upload_date is not None:
            parts += [media.upload_date.strftime("%Y"), media.upload_date.strftime("%m")]
        # names without any ASCII character map to a stable name derived from the URL
        url_key = hashlib.sha1(media.original_url.encode("utf-8")).hexdigest()[:13]
        parts.append(sanitize_file_name(media.file_name, url_key))
        return os.path.join(*parts)

    def download_media(self, media: Media) -> FetchResult:
        if not media.is_downloadable:
            return FetchResult.failed("Media file is not downloadable (missing URL or file name)")
        if not self.is_mime_type_allowed(media.mime_type):
            return FetchResult.failed(f"File type not allowed: {media.mime_type}")

        try:
            local_path = self.generate_local_path(media)
            if self.storage.exists(local_path):
                logger.debug("Media %s already present at %s", media.source_id, local_path)
                return FetchResult(
                    success=True,
                    local_path=local_path,
                    file_name=os.path.basename(local_path),
                    file_size=self.storage.file_size(local_path),
                    skipped=True,
                )

            result = self._download_file(media.original_url, local_path)
        except Exception as e:
            logger.error("Media download error for %s (%s): %s", media.source_id, media.original_url, e)
            return FetchResult.failed(f"Error during download: {e}")

        if result.success:
            logger.info(
                "Media downloaded: post_id=%s %s -> %s (%s)",
                media.source_id,
                media.original_url,
                local_path,
                format_file_size(result.file_size),
            )
        return result

    def _download_file(self, url: str, local_path: str) -> FetchResult:
        headers = {"User-Agent": self.settings.user_agent}

        def attempt() -> requests.Response:
            self.rate_limiter.wait(url)
            return self.session.get(url, headers=headers, stream=True, timeout=self.settings.request_timeout)

        try:
            resp = with_retries(
                attempt,
                max_attempts=self.settings.max_attempts,
                sleep_fn=self.sleep_fn,
            )
        except requests.HTTPError as e:
            code = e.response.status_code if e.response is not None else "?"
            return FetchResult.failed(f"Download failed (HTTP {code})")
        except requests.RequestException as e:
            return FetchResult.failed(f"Download failed: {e}")

        try:
            if not 200 <= resp.status_code < 300:
                return FetchResult.failed(f"Download failed (HTTP {resp.status_code})")

            max_size = self.settings.max_file_size
            declared = resp.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > max_size:
                return FetchResult.failed(f"File exceeds the size limit: {format_file_size(int(declared))}")

            body = bytearray()
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                body.extend(chunk)
                if len(body) > max_size:
                    return FetchResult.failed(f"File exceeds the size limit: more than {format_file_size(max_size)}")
        except requests.RequestException as e:
            return FetchResult.failed(f"Download interrupted: {e}")
        finally:
            resp.close()

        if not body:
            return FetchResult.failed("Downloaded file is empty")

        tmp_path = local_path + ".part"
        self.storage.write(tmp_path, bytes(body))
        os.replace(tmp_path, local_path)
        return FetchResult(
            success=True,
            local_path=local_path,
            file_name=os.path.basename(local_path),
            file_size=len(body),
        )
