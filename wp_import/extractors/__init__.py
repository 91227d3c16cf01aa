"""Readers for WordPress WXR exports and the transformers that type their items."""

from .entry_extractor import extract_entry
from .media_extractor import extract_media
from .taxonomy import extract_categories, extract_tags
from .wxr_parser import WXRParser

__all__ = ["WXRParser", "extract_entry", "extract_media", "extract_categories", "extract_tags"]
