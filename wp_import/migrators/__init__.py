"""
Writers that move extracted records into the destination.

This subpackage holds the category tree builder (nested intervals), the
rate-limited media downloader and the batch processor that orchestrates a
whole run with adaptive batch sizes and per-item failure isolation.
"""

from .batch_processor import BatchProcessor
from .category_creator import CategoryCreator, sort_by_hierarchy
from .media_downloader import HostRateLimiter, MediaDownloader

__all__ = ["BatchProcessor", "CategoryCreator", "HostRateLimiter", "MediaDownloader", "sort_by_hierarchy"]
