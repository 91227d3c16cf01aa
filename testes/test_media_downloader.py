import os
import sys
from datetime import datetime, timezone

import pytest
import requests

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp_import.migrators.media_downloader import (
    HostRateLimiter,
    MediaDownloader,
    sanitize_file_name,
    with_retries,
)
from wp_import.models.entities import Media
from wp_import.models.settings import MediaSettings

URL = "https://blog.example.com/wp-content/uploads/2024/05/pic.jpg"


class FakeResponse:
    def __init__(self, status_code=200, body=b"", headers=None):
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _media(**overrides):
    data = dict(
        source_id=20,
        original_url=URL,
        file_name="pic.jpg",
        mime_type="image/jpeg",
        upload_date=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return Media(**data)


def _downloader(tmp_path, session, **settings):
    media_settings = MediaSettings(download_dir=str(tmp_path / "downloads"), **settings)
    return MediaDownloader(
        media_settings,
        session=session,
        rate_limiter=HostRateLimiter(0),
        sleep_fn=lambda s: None,
    )


def test_download_writes_file_under_upload_month(tmp_path):
    session = FakeSession(FakeResponse(body=b"\xff\xd8jpegdata"))
    result = _downloader(tmp_path, session).download_media(_media())

    assert result.success
    assert not result.skipped
    assert result.local_path == os.path.join(str(tmp_path / "downloads"), "2024", "05", "pic.jpg")
    assert result.file_size == 10
    with open(result.local_path, "rb") as f:
        assert f.read() == b"\xff\xd8jpegdata"
    assert session.calls[0][1]["stream"] is True
    assert session.calls[0][1]["timeout"] == 30.0


def test_second_download_is_skipped(tmp_path):
    session = FakeSession(FakeResponse(body=b"data"))
    downloader = _downloader(tmp_path, session)

    downloader.download_media(_media())
    again = downloader.download_media(_media())

    assert again.success and again.skipped
    assert len(session.calls) == 1


def test_not_downloadable_and_disallowed_type_never_hit_the_network(tmp_path):
    session = FakeSession()
    downloader = _downloader(tmp_path, session)

    assert not downloader.download_media(_media(original_url="")).success
    refused = downloader.download_media(_media(file_name="setup.exe", mime_type="application/x-msdownload"))
    assert not refused.success
    assert "not allowed" in refused.error
    assert session.calls == []


def test_declared_size_over_limit(tmp_path):
    session = FakeSession(FakeResponse(body=b"x" * 10, headers={"Content-Length": "999999"}))
    result = _downloader(tmp_path, session, max_file_size=2048).download_media(_media())

    assert not result.success
    assert "size limit" in result.error


def test_streamed_size_over_limit_leaves_no_file(tmp_path):
    session = FakeSession(FakeResponse(body=b"x" * 5000))
    downloader = _downloader(tmp_path, session, max_file_size=2048)
    result = downloader.download_media(_media())

    assert not result.success
    assert not os.path.exists(downloader.generate_local_path(_media()))


def test_empty_body_is_a_failure(tmp_path):
    result = _downloader(tmp_path, FakeSession(FakeResponse(body=b""))).download_media(_media())
    assert not result.success
    assert result.error == "Downloaded file is empty"


def test_client_error_is_not_retried(tmp_path):
    session = FakeSession(FakeResponse(status_code=404))
    result = _downloader(tmp_path, session).download_media(_media())

    assert not result.success
    assert "HTTP 404" in result.error
    assert len(session.calls) == 1


def test_transient_errors_are_retried(tmp_path):
    session = FakeSession(
        FakeResponse(status_code=503, headers={"Retry-After": "0"}),
        requests.ConnectionError("reset"),
        FakeResponse(body=b"ok"),
    )
    result = _downloader(tmp_path, session, max_attempts=3).download_media(_media())

    assert result.success
    assert len(session.calls) == 3


def test_retries_are_bounded():
    slept = []
    responses = [FakeResponse(status_code=500) for _ in range(3)]

    with pytest.raises(requests.HTTPError):
        with_retries(lambda: responses.pop(0), max_attempts=3, base_delay=1, sleep_fn=slept.append)
    assert slept == [1, 2]


def test_rate_limit_is_per_host():
    clock = [0.0]
    slept = []
    limiter = HostRateLimiter(0.5, time_fn=lambda: clock[0], sleep_fn=slept.append)

    assert limiter.wait("https://a.example.com/1.jpg") == 0
    assert limiter.wait("https://a.example.com/2.jpg") == 0.5
    assert limiter.wait("https://b.example.com/1.jpg") == 0
    # the slot reserved by the previous call is respected
    assert limiter.wait("https://a.example.com/3.jpg") == 1.0
    assert slept == [0.5, 1.0]

    clock[0] = 10.0
    assert limiter.wait("https://a.example.com/4.jpg") == 0


def test_sanitize_file_name():
    assert sanitize_file_name("minha foto (1).jpg") == "minha_foto_1.jpg"
    assert sanitize_file_name("???.jpg") == "unnamed.jpg"
    assert sanitize_file_name("写真.jpg", "abc123") == "unnamed_abc123.jpg"


def test_local_path_without_upload_date(tmp_path):
    downloader = _downloader(tmp_path, FakeSession())
    path = downloader.generate_local_path(_media(upload_date=None, file_name="a b.png"))
    assert path == os.path.join(str(tmp_path / "downloads"), "a_b.png")


def test_non_ascii_name_is_downloaded_once(tmp_path):
    session = FakeSession(FakeResponse(body=b"data"))
    downloader = _downloader(tmp_path, session)
    media = _media(file_name="写真.jpg", original_url="https://blog.example.com/wp-content/uploads/2024/05/写真.jpg")

    first = downloader.download_media(media)
    again = downloader.download_media(media)

    assert first.success and not first.skipped
    assert again.success and again.skipped
    assert again.local_path == first.local_path
    assert os.path.basename(first.local_path).startswith("unnamed_")
    assert len(session.calls) == 1


def test_retries_go_through_the_rate_limit(tmp_path):
    slept = []
    limiter = HostRateLimiter(0.5, time_fn=lambda: 0.0, sleep_fn=slept.append)
    failed = FakeResponse(status_code=503, headers={"Retry-After": "0"})
    session = FakeSession(failed, FakeResponse(body=b"ok"))
    downloader = MediaDownloader(
        MediaSettings(download_dir=str(tmp_path / "downloads")),
        session=session,
        rate_limiter=limiter,
        sleep_fn=lambda s: None,
    )

    result = downloader.download_media(_media())

    assert result.success
    assert len(session.calls) == 2
    assert slept == [0.5]
    assert failed.closed
