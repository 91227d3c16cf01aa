"""
Raw records as they come out of the export, before transformation.

These are the typed replacements for the loose per-item dictionaries a
WXR reader naturally produces.  Unknown keys are ignored on purpose so
that nothing the transformers do not understand leaks further down.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TermDefinition(BaseModel):
    """A ``<wp:category>`` or ``<wp:tag>`` definition from the channel."""

    model_config = ConfigDict(extra="ignore")

    term_id: Optional[int] = None
    slug: str
    name: str = ""
    parent: Optional[str] = None
    description: str = ""
    taxonomy: str = "category"


class TermRef(BaseModel):
    """A ``<category domain=...>`` reference inside one item, resolved against the definitions."""

    model_config = ConfigDict(extra="ignore")

    term_id: Optional[int] = None
    slug: str
    name: str = ""
    taxonomy: str = "category"
    parent_id: Optional[int] = None
    description: str = ""


class RawComment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    comment_id: int = 0
    comment_author: str = ""
    comment_author_email: str = ""
    comment_author_url: str = ""
    comment_date: str = ""
    comment_date_gmt: str = ""
    comment_content: str = ""
    comment_approved: str = ""
    comment_type: str = ""
    comment_parent: int = 0


class ChannelInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    link: str = ""
    description: str = ""
    language: str = ""
    base_site_url: str = ""
    base_blog_url: str = ""
    generator: str = ""


class RawItem(BaseModel):
    """One ``<item>`` of the export: a post, a page, an attachment or a custom type."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    link: str = ""
    pub_date: str = ""
    creator: str = ""
    guid: str = ""
    description: str = ""
    content: str = ""
    excerpt: str = ""
    post_id: int = 0
    post_date: str = ""
    post_date_gmt: str = ""
    comment_status: str = ""
    ping_status: str = ""
    post_name: str = ""
    status: str = ""
    post_parent: int = 0
    menu_order: int = 0
    post_type: str = ""
    post_password: str = ""
    is_sticky: str = ""
    attachment_url: str = ""
    categories: List[TermRef] = Field(default_factory=list)
    tags: List[TermRef] = Field(default_factory=list)
    postmeta: Dict[str, str] = Field(default_factory=dict)
    comments: List[RawComment] = Field(default_factory=list)

    @property
    def is_attachment(self) -> bool:
        return self.post_type == "attachment"
