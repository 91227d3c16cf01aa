from __future__ import annotations

from datetime import datetime
from enum import Enum
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wp_import.utils.text import file_extension, format_file_size

TAG_NAME_MAX_LENGTH = 255


class EntryStatus(str, Enum):
    PUBLISHED = "published"
    DRAFT = "draft"
    PRIVATE = "private"


class Category(BaseModel):
    """
    A hierarchical taxonomy node.

    ``parent_id`` is the *source* id of the parent term; an empty or zero
    parent coming from the export is normalized to ``None``.
    """

    model_config = ConfigDict(extra="ignore")

    source_id: int
    slug: str = ""
    name: str = ""
    description: str = ""
    parent_id: Optional[int] = None
    taxonomy: str = "category"

    @field_validator("parent_id", mode="before")
    @classmethod
    def _no_zero_parent(cls, v: Any):
        if v is None or v == "":
            return None
        # synthetic ids for undefined terms are negative, real parents are positive
        if isinstance(v, int) and v == 0:
            return None
        return v

    def generate_code(self) -> str:
        if self.slug:
            return self.slug
        code = re.sub(r"[^a-zA-Z0-9\-_]", "", self.name.replace(" ", "-"))
        return code or f"category_{self.source_id}"

    @property
    def display_name(self) -> str:
        return self.name or self.slug or f"Category {self.source_id}"


class Tag(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source_id: Optional[int] = None
    slug: str = ""
    name: str = ""
    description: str = ""

    @property
    def display_name(self) -> str:
        name = (self.name or self.slug or f"Tag {self.source_id}").strip()
        name = re.sub(r"[\x00-\x1F\x7F]", "", name)
        name = re.sub(r"\s+", " ", name)
        return name[:TAG_NAME_MAX_LENGTH]

    def is_valid(self) -> bool:
        return bool(self.display_name)


class Comment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    comment_id: int = 0
    author: str = ""
    author_email: str = ""
    author_url: str = ""
    date: Optional[datetime] = None
    date_gmt: Optional[datetime] = None
    content: str = ""
    approved: bool = False
    type: str = "comment"
    parent: int = 0


class SeoData(BaseModel):
    title: str = ""
    description: str = ""
    keywords: str = ""
    page_template: str = ""


class Entry(BaseModel):
    """
    A structural content item (post, page or custom type).

    Attachments are never entries; see :class:`Media`.  ``body`` is the only
    attribute mutated after creation, by the URL rewriter.
    """

    model_config = ConfigDict(extra="ignore")

    source_id: int
    title: str = ""
    body: str = ""
    excerpt: str = ""
    slug: str = ""
    status: EntryStatus = EntryStatus.DRAFT
    content_type: str = "post"
    parent_id: Optional[int] = None
    menu_order: int = 0
    comment_open: bool = True
    ping_open: bool = True
    password: str = ""
    is_sticky: bool = False
    post_date: Optional[datetime] = None
    post_date_gmt: Optional[datetime] = None
    author: str = ""
    original_url: str = ""
    guid: str = ""
    categories: List[Category] = Field(default_factory=list)
    tags: List[Tag] = Field(default_factory=list)
    custom_fields: Dict[str, str] = Field(default_factory=dict)
    featured_media_id: Optional[int] = None
    comments: List[Comment] = Field(default_factory=list)
    seo: SeoData = Field(default_factory=SeoData)

    @field_validator("content_type")
    @classmethod
    def _not_attachment(cls, v: str) -> str:
        if v == "attachment":
            raise ValueError("attachments are media, not entries")
        return v or "post"


class Media(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source_id: int = 0
    parent_id: Optional[int] = None
    title: str = ""
    description: str = ""
    alt_text: str = ""
    original_url: str = ""
    file_path: str = ""
    file_name: str = ""
    mime_type: str = ""
    file_size: int = 0
    width: int = 0
    height: int = 0
    sizes: Dict[str, Any] = Field(default_factory=dict)
    upload_date: Optional[datetime] = None
    creator: str = ""

    @property
    def is_downloadable(self) -> bool:
        return bool(self.original_url) and bool(self.file_name)

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @property
    def extension(self) -> str:
        return file_extension(self.file_name)

    @property
    def formatted_file_size(self) -> str:
        return format_file_size(self.file_size)
