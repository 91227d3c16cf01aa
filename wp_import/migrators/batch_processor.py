"""
Import orchestration: categories, then media, then entries.

:class:`BatchProcessor` drives one run over already extracted records.  Media
and entries are processed in batches whose size adapts to the memory
headroom of the process.  A failure of a single item is reported and
counted, and processing continues with the next item; only a failure of the
orchestration itself (or a cancellation) ends the run early.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Dict, List, Optional, Sequence

import psutil

from wp_import.destination.interfaces import EntryWriter, MediaWriter, ProgressSink
from wp_import.migrators.category_creator import CategoryCreator
from wp_import.migrators.media_downloader import MediaDownloader
from wp_import.models.entities import Category, Entry, Media
from wp_import.models.results import BatchOutcome, ImportSummary, ItemResult
from wp_import.models.settings import ImportSettings
from wp_import.parsers.shortcodes import remove_shortcodes
from wp_import.parsers.url_rewriter import UrlRewriter
from wp_import.utils.errors import ImportCancelledError, report_error, report_ok

logger = logging.getLogger(__name__)

LOW_HEADROOM = 0.3
HIGH_HEADROOM = 0.7


def current_memory_usage() -> int:
    """Resident set size of this process in bytes."""
    return psutil.Process().memory_info().rss


class BatchProcessor:
    def __init__(
        self,
        *,
        category_creator: CategoryCreator,
        media_downloader: MediaDownloader,
        media_writer: MediaWriter,
        entry_writer: EntryWriter,
        url_rewriter: UrlRewriter,
        progress: ProgressSink,
        memory_probe: Callable[[], int] = current_memory_usage,
        sleep_fn: Callable[[float], None] = time.sleep,
        cancel_check: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.category_creator = category_creator
        self.media_downloader = media_downloader
        self.media_writer = media_writer
        self.entry_writer = entry_writer
        self.url_rewriter = url_rewriter
        self.progress = progress
        self.memory_probe = memory_probe
        self.sleep_fn = sleep_fn
        self.cancel_check = cancel_check
        self._memory_start = 0
        self._memory_peak = 0
        self.imported_entries: List[Dict[str, Optional[str]]] = []

    def process_all(
        self,
        entries: Sequence[Entry],
        medias: Sequence[Media],
        categories: Sequence[Category],
        settings: ImportSettings,
    ) -> ImportSummary:
        """
        Run the three phases and return the aggregated counts.

        :raises ImportCancelledError: when ``cancel_check`` reports a
            cancellation between two batches.
        """
        started = time.monotonic()
        self._memory_start = self.memory_probe()
        self._memory_peak = self._memory_start
        self.imported_entries = []
        summary = ImportSummary()

        try:
            category_map: Dict[int, int] = {}
            if settings.create_categories and categories:
                category_map = self.process_category_creation(categories, settings)
                summary.category_success = len(category_map)
            self._check_cancelled()

            media_map: Dict[int, int] = {}
            if settings.include_media and medias:
                media_map = self._process_all_media(medias, settings, summary)

            if entries:
                self._process_all_entries(entries, settings, category_map, media_map, summary)
        except ImportCancelledError:
            logger.warning("Import cancelled after %d entries and %d media",
                           summary.entry_success, summary.media_success)
            raise
        except Exception:
            logger.exception("Batch processing aborted")
            raise

        summary.total_time = round(time.monotonic() - started, 2)
        summary.memory_peak = max(0, self._memory_peak - self._memory_start)
        logger.info(
            "Import finished: entries %d ok / %d failed, media %d ok / %d failed, categories %d, %.2fs",
            summary.entry_success, summary.entry_error, summary.media_success, summary.media_error,
            summary.category_success, summary.total_time,
        )
        return summary

    def process_category_creation(self, categories: Sequence[Category], settings: ImportSettings) -> Dict[int, int]:
        self.progress.add_message("Creating categories...", 5)
        mapping = self.category_creator.create_categories(categories, settings.target_blog_id)
        self.progress.add_message(f"Categories created: {len(mapping)}", 5, True)
        return mapping

    def optimize_batch_size(self, requested: int, total: int, settings: ImportSettings) -> int:
        """
        Scale ``requested`` by the memory headroom.

        Below 30% of the limit left the size is halved, above 70% it grows
        by half.  The result stays within the configured bounds and never
        exceeds ``total`` (but is at least 1).
        """
        usage = self.memory_probe()
        self._memory_peak = max(self._memory_peak, usage)
        limit = settings.memory_limit
        headroom = limit - usage

        size = requested
        if headroom < limit * LOW_HEADROOM:
            size = max(settings.min_batch_size, int(requested * 0.5))
        elif headroom > limit * HIGH_HEADROOM:
            size = min(settings.max_batch_size, int(requested * 1.5))

        size = max(settings.min_batch_size, min(settings.max_batch_size, size))
        return max(1, min(size, total))

    def _process_all_media(self, medias: Sequence[Media], settings: ImportSettings, summary: ImportSummary) -> Dict[int, int]:
        batch_size = min(self.optimize_batch_size(settings.batch_size, len(medias), settings), settings.media_batch_cap)
        batches = [medias[i:i + batch_size] for i in range(0, len(medias), batch_size)]
        step = 25 / len(batches)
        logger.info("Importing %d media in %d batches of %d", len(medias), len(batches), batch_size)

        self.progress.add_message(f"Importing media files ({len(medias)})...", 0)
        media_map: Dict[int, int] = {}
        for index, batch in enumerate(batches, start=1):
            self._check_cancelled()
            outcome = self.process_media_batch(batch, settings)
            summary.media_success += outcome.success_count
            summary.media_error += outcome.error_count
            media_map.update(self.build_media_mapping(outcome.results))
            self._sample_memory()
            self.progress.add_message(
                f"Media batch {index}/{len(batches)}: {outcome.success_count} imported, {outcome.error_count} failed",
                step,
                True,
            )
            if index < len(batches):
                self.sleep_fn(settings.media_batch_pause)
        return media_map

    def process_media_batch(self, medias: Sequence[Media], settings: ImportSettings) -> BatchOutcome:
        outcome = BatchOutcome()
        for position, media in enumerate(medias):
            result = self._import_one_media(media, settings)
            outcome.results.append(result)
            if result.success:
                outcome.success_count += 1
            else:
                outcome.error_count += 1
            if position < len(medias) - 1:
                self.sleep_fn(settings.media_item_pause)
        return outcome

    def _import_one_media(self, media: Media, settings: ImportSettings) -> ItemResult:
        try:
            fetched = self.media_downloader.download_media(media)
            if not fetched.success:
                report_error("MEDIA_DOWNLOAD", source_id=media.source_id, title=media.file_name,
                             kind="media", error=fetched.error)
                return ItemResult.failed(media.source_id, fetched.error or "download failed")

            result = self.media_writer.import_media(media, settings, fetched.local_path)
            if not result.success:
                report_error("MEDIA_IMPORT", source_id=media.source_id, title=media.file_name,
                             kind="media", error=result.error)
                return result
        except Exception as e:
            report_error("MEDIA_IMPORT", source_id=media.source_id, title=media.file_name, kind="media", exc=e)
            return ItemResult.failed(media.source_id, str(e))

        report_ok("MEDIA_IMPORTED", source_id=media.source_id, title=media.file_name, kind="media",
                  extra={"media_id": result.destination_id, "path": result.path})
        return result

    def _process_all_entries(
        self,
        entries: Sequence[Entry],
        settings: ImportSettings,
        category_map: Dict[int, int],
        media_map: Dict[int, int],
        summary: ImportSummary,
    ) -> None:
        batch_size = self.optimize_batch_size(settings.batch_size, len(entries), settings)
        num_batches = math.ceil(len(entries) / batch_size)
        step = 50 / num_batches
        logger.info("Importing %d entries in %d batches of %d", len(entries), num_batches, batch_size)

        self.progress.add_message(f"Importing entries ({len(entries)})...", 0)
        for index in range(num_batches):
            self._check_cancelled()
            batch = entries[index * batch_size:(index + 1) * batch_size]
            outcome = self.process_entry_batch(batch, settings, category_map, media_map)
            summary.entry_success += outcome.success_count
            summary.entry_error += outcome.error_count
            self._sample_memory()
            self.progress.add_message(
                f"Entry batch {index + 1}/{num_batches}: {outcome.success_count} imported, {outcome.error_count} failed",
                step,
                True,
            )
            if index < num_batches - 1:
                self.sleep_fn(settings.batch_pause)

    def process_entry_batch(
        self,
        entries: Sequence[Entry],
        settings: ImportSettings,
        category_map: Dict[int, int],
        media_map: Dict[int, int],
    ) -> BatchOutcome:
        outcome = BatchOutcome()
        for entry in entries:
            result = self._import_one_entry(entry, settings, category_map, media_map)
            outcome.results.append(result)
            if result.success:
                outcome.success_count += 1
            else:
                outcome.error_count += 1
        return outcome

    def _import_one_entry(
        self,
        entry: Entry,
        settings: ImportSettings,
        category_map: Dict[int, int],
        media_map: Dict[int, int],
    ) -> ItemResult:
        try:
            if settings.strip_shortcodes:
                entry.body = remove_shortcodes(entry.body)
            self.apply_url_rewriting(entry, media_map, settings)
            result = self.entry_writer.import_entry(entry, settings, category_map, media_map)
        except Exception as e:
            report_error("ENTRY_IMPORT", source_id=entry.source_id, title=entry.title, exc=e)
            return ItemResult.failed(entry.source_id, str(e))

        if not result.success:
            report_error("ENTRY_IMPORT", source_id=entry.source_id, title=entry.title, error=result.error)
            return result

        report_ok("ENTRY_IMPORTED", source_id=entry.source_id, title=entry.title,
                  extra={"entry_id": result.destination_id})
        self.imported_entries.append({"slug": entry.slug, "permalink": entry.original_url or None})
        return result

    def apply_url_rewriting(self, entry: Entry, media_map: Dict[int, int], settings: ImportSettings) -> None:
        """Rewrite ``entry.body`` in place; on failure the body is left as it was."""
        try:
            rewritten = self.url_rewriter.rewrite_urls(
                entry.body,
                media_map,
                wp_base_url=settings.wp_base_url,
                cms_base_url=settings.cms_base_url,
            )
        except Exception as e:
            report_error("URL_REWRITE", source_id=entry.source_id, title=entry.title, exc=e)
            return
        if rewritten.changed:
            logger.debug("Entry %s: %d URLs rewritten", entry.source_id, len(rewritten.replaced_urls))
            entry.body = rewritten.content

    @staticmethod
    def build_media_mapping(results: Sequence[ItemResult]) -> Dict[int, int]:
        return {
            r.source_id: r.destination_id
            for r in results
            if r.success and r.destination_id is not None
        }

    def _sample_memory(self) -> None:
        self._memory_peak = max(self._memory_peak, self.memory_probe())

    def _check_cancelled(self) -> None:
        if self.cancel_check is not None and self.cancel_check():
            raise ImportCancelledError("Import cancelled between batches")
