from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_ALLOWED_MIME_TYPES: List[str] = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/zip",
]


class MediaSettings(BaseModel):
    """Download policy for :class:`wp_import.migrators.media_downloader.MediaDownloader`."""

    model_config = ConfigDict(extra="ignore")

    download_dir: str = "data/wp-import/media"
    max_file_size: int = Field(50 * 1024 * 1024, ge=1024)
    allowed_mime_types: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_MIME_TYPES))
    download_delay: float = Field(0.5, ge=0)
    request_timeout: float = Field(30.0, gt=0)
    max_attempts: int = Field(3, ge=1)
    user_agent: str = "wp-import/0.4 (+media fetcher)"


class ImportSettings(BaseModel):
    """
    Settings for one import run.

    ``memory_limit`` is the ceiling (in bytes) the batch sizer measures
    headroom against.  ``wp_base_url``/``cms_base_url`` drive the internal
    link rewrite; ``media_base_url`` is prefixed to stored media paths.
    """

    model_config = ConfigDict(extra="ignore")

    batch_size: int = Field(50, ge=1)
    include_media: bool = True
    create_categories: bool = True
    create_tags: bool = True
    strip_shortcodes: bool = True
    target_blog_id: int = Field(1, ge=1)

    min_batch_size: int = Field(5, ge=1)
    max_batch_size: int = Field(100, ge=1)
    media_batch_cap: int = Field(10, ge=1)
    memory_limit: int = Field(512 * 1024 * 1024, gt=0)

    batch_pause: float = Field(0.1, ge=0)
    media_item_pause: float = Field(0.1, ge=0)
    media_batch_pause: float = Field(0.2, ge=0)

    wp_base_url: str = ""
    cms_base_url: str = ""
    media_base_url: str = "/archives/"
    # older addresses of the same site (http://, www.), rewritten like wp_base_url
    legacy_base_urls: List[str] = Field(default_factory=list)

    media: MediaSettings = Field(default_factory=MediaSettings)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ImportSettings":
        if self.min_batch_size > self.max_batch_size:
            raise ValueError("min_batch_size must not exceed max_batch_size")
        return self

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ImportSettings":
        """Build settings from the ``import``, ``media`` and ``urls`` sections of the JSON config."""
        data: Dict[str, Any] = dict(config.get("import", {}))
        data.update(config.get("urls", {}))
        data["media"] = config.get("media", {})
        return cls.model_validate(data)
