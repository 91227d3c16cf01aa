"""
Typed data model for the import.

Entities (:mod:`.entities`) are what the transformers produce and the
destination consumes; raw records (:mod:`.records`) are what the export
reader yields; results (:mod:`.results`) carry per-item outcomes.
"""

from .entities import Category, Comment, Entry, EntryStatus, Media, SeoData, Tag
from .records import ChannelInfo, RawComment, RawItem, TermDefinition, TermRef
from .results import BatchOutcome, FetchResult, ImportSummary, ItemResult, RewriteResult
from .settings import ImportSettings, MediaSettings

__all__ = [
    "Category",
    "Comment",
    "Entry",
    "EntryStatus",
    "Media",
    "SeoData",
    "Tag",
    "ChannelInfo",
    "RawComment",
    "RawItem",
    "TermDefinition",
    "TermRef",
    "BatchOutcome",
    "FetchResult",
    "ImportSummary",
    "ItemResult",
    "RewriteResult",
    "ImportSettings",
    "MediaSettings",
]
