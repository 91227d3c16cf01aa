"""
Result values for the per-item failure boundaries.

Components that may fail for a single item return one of these instead of
raising, so the "continue with the next item" policy shows up in their
signatures.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ItemResult(BaseModel):
    source_id: Any = None
    success: bool
    destination_id: Optional[int] = None
    path: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, source_id: Any, destination_id: Optional[int] = None, path: Optional[str] = None) -> "ItemResult":
        return cls(source_id=source_id, success=True, destination_id=destination_id, path=path)

    @classmethod
    def failed(cls, source_id: Any, error: str) -> "ItemResult":
        return cls(source_id=source_id, success=False, error=error)


class FetchResult(BaseModel):
    success: bool
    local_path: Optional[str] = None
    file_name: Optional[str] = None
    file_size: int = 0
    skipped: bool = False
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "FetchResult":
        return cls(success=False, error=error)


class RewriteResult(BaseModel):
    content: str
    replaced_urls: Dict[str, str] = Field(default_factory=dict)
    media_replaced: int = 0
    link_replaced: int = 0
    absolute_replaced: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.media_replaced or self.link_replaced or self.absolute_replaced)


class BatchOutcome(BaseModel):
    success_count: int = 0
    error_count: int = 0
    results: List[ItemResult] = Field(default_factory=list)


class ImportSummary(BaseModel):
    entry_success: int = 0
    entry_error: int = 0
    media_success: int = 0
    media_error: int = 0
    category_success: int = 0
    total_time: float = 0.0
    memory_peak: int = 0
