"""
High-level driver of a WordPress → CMS import.

This module defines a :class:`WordPressImportTool` class that ties together
the extractors, migrators, destination store and utilities into a complete
run.  It reads configuration, takes the run lock, runs the pre-flight
checks, streams the WXR export into typed records, hands them to the
:class:`~wp_import.migrators.batch_processor.BatchProcessor`, writes the
redirect CSV and keeps the progress feed up to date.

Configuration is supplied via a JSON file path or directly as a dictionary.
Sections: ``import``, ``media``, ``urls``, ``destination`` and ``reports``.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

from wp_import.destination.duckdb_store import DuckDBStore
from wp_import.destination.local_storage import LocalStorage
from wp_import.extractors import WXRParser, extract_categories, extract_entry, extract_media
from wp_import.migrators.batch_processor import BatchProcessor
from wp_import.migrators.category_creator import CategoryCreator
from wp_import.migrators.media_downloader import MediaDownloader
from wp_import.models.entities import Category, Entry, Media
from wp_import.models.results import ImportSummary
from wp_import.models.settings import ImportSettings
from wp_import.parsers.url_rewriter import UrlRewriter, convert_wordpress_url
from wp_import.utils.errors import ImportLockedError, WPImportError, set_report_dir
from wp_import.utils.lock import FileRunLock
from wp_import.utils.pre_flight_checks import check_lock_free, run_pre_flight_checks
from wp_import.utils.progress import JsonProgressSink
from wp_import.utils.redirects import generate_redirects_csv

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def configure_logging(report_dir: str, level: int = logging.INFO) -> None:
    """Console handler plus an appended ``migration.log`` under ``report_dir``."""
    os.makedirs(report_dir, exist_ok=True)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_wp_import", False):
            root.removeHandler(handler)
            handler.close()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler = logging.FileHandler(os.path.join(report_dir, "migration.log"), mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s " + LOG_FORMAT))
    for handler in (console, file_handler):
        handler._wp_import = True
        root.addHandler(handler)


class WordPressImportTool:
    """
    Encapsulates the state of one import: the configuration, the run lock,
    the progress feed and the extracted records.  Item-level outcomes are
    recorded through :mod:`wp_import.utils.errors`; the returned
    :class:`~wp_import.models.results.ImportSummary` carries the counts.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, *, config_file: Optional[str] = None) -> None:
        if config_file and os.path.exists(config_file):
            with open(config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
        elif config is None:
            config = {}

        config.setdefault("import", {})
        config.setdefault("media", {})
        config.setdefault("urls", {})

        config.setdefault("destination", {})
        config["destination"].setdefault("db_path", os.getenv("WP_IMPORT_DB_PATH", "data/wp-import/import.duckdb"))
        config["destination"].setdefault(
            "media_root", os.getenv("WP_IMPORT_MEDIA_ROOT", "data/wp-import/archives")
        )

        config.setdefault("reports", {})
        reports = config["reports"]
        reports.setdefault("dir", os.path.join("reports", "migration"))
        reports.setdefault("progress_file", os.path.join(reports["dir"], "progress.json"))
        reports.setdefault("lock_file", os.path.join(reports["dir"], "import.lock"))
        reports.setdefault("redirects_file", os.path.join(reports["dir"], "redirect_map.csv"))

        self.config = config
        self.lock = FileRunLock(reports["lock_file"])
        self.progress: Optional[JsonProgressSink] = None
        self.parser = WXRParser()
        self.entries: List[Entry] = []
        self.medias: List[Media] = []
        self.categories: List[Category] = []
        set_report_dir(reports["dir"])

    def extract(self, export_path: str) -> None:
        """
        Stream the export into typed entries, media and categories.

        :raises ExportNotFoundError, ExportReadError, ExportFormatError: the
            export cannot be used at all.
        """
        self.parser = WXRParser()
        self.entries = []
        self.medias = []
        for item in self.parser.parse(export_path):
            if item.is_attachment:
                media = extract_media(item)
                if media is not None:
                    self.medias.append(media)
                continue
            entry = extract_entry(item)
            if entry is not None:
                self.entries.append(entry)
        self.categories = extract_categories(self.parser)
        logger.info(
            "Export read: %d entries, %d media, %d categories (%d items skipped)",
            len(self.entries), len(self.medias), len(self.categories), self.parser.items_skipped,
        )

    def _resolve_urls(self, settings: ImportSettings) -> ImportSettings:
        if settings.wp_base_url:
            return settings
        base = self.parser.channel.base_blog_url or self.parser.channel.base_site_url
        if not base:
            return settings
        logger.info("Using the export's base URL %s for link rewriting", base)
        return settings.model_copy(update={"wp_base_url": base})

    def run(self, export_path: str, *, dry_run: bool = False) -> Optional[ImportSummary]:
        """
        Perform the whole import of ``export_path``.

        Returns the summary, or ``None`` on a dry run.  A lock held by another
        run is refused before the progress feed is touched; every later fatal
        error, failed pre-flight checks included, is reported to the feed and
        re-raised.  The lock is always released.
        """
        self.progress = None
        check_lock_free(self.lock)
        if not self.lock.try_lock():
            raise ImportLockedError("Another import is already running")

        store: Optional[DuckDBStore] = None
        try:
            # the feed is only reset once this run owns the lock
            self.progress = JsonProgressSink(self.config["reports"]["progress_file"])
            settings = run_pre_flight_checks(self.config, export_path)
            self.progress.add_message("Reading export...", 0)
            self.extract(export_path)
            self.progress.add_message(
                f"Export read: {len(self.entries)} entries, {len(self.medias)} media", 5, True
            )
            settings = self._resolve_urls(settings)

            if dry_run:
                logger.info("Dry-run: nothing written to the destination")
                self.progress.success("Dry run finished")
                return None

            destination = self.config["destination"]
            storage = LocalStorage()
            store = DuckDBStore(destination["db_path"], destination["media_root"], storage=storage)
            rewriter = UrlRewriter(
                store.get_media_path,
                media_base_url=settings.media_base_url,
                blog_id=settings.target_blog_id,
            )
            if settings.legacy_base_urls:
                rewriter.set_base_url_mapping({url: settings.cms_base_url for url in settings.legacy_base_urls})
            processor = BatchProcessor(
                category_creator=CategoryCreator(store),
                media_downloader=MediaDownloader(settings.media, storage=storage),
                media_writer=store,
                entry_writer=store,
                url_rewriter=rewriter,
                progress=self.progress,
                cancel_check=lambda: not self.lock.refresh(),
            )
            summary = processor.process_all(self.entries, self.medias, self.categories, settings)
            self._write_redirects(processor.imported_entries, settings)
            self.progress.success(
                f"Import finished: {summary.entry_success} entries, {summary.media_success} media, "
                f"{summary.category_success} categories"
            )
            return summary
        except WPImportError as e:
            logger.error("Import stopped: %s", e)
            if self.progress is not None:
                self.progress.error(str(e))
            raise
        except Exception as e:
            logger.exception("Unexpected error during import")
            if self.progress is not None:
                self.progress.error(f"Unexpected error: {e}")
            raise
        finally:
            if store is not None:
                store.close()
            if self.progress is not None:
                self.progress.terminate()
            self.lock.release()

    def _write_redirects(self, imported: List[Dict[str, Optional[str]]], settings: ImportSettings) -> None:
        rows = []
        for entry in imported:
            permalink = entry.get("permalink")
            new_url = None
            if permalink and settings.wp_base_url and settings.cms_base_url:
                new_url = convert_wordpress_url(permalink, settings.wp_base_url.rstrip("/"),
                                                settings.cms_base_url.rstrip("/"))
            rows.append({"slug": entry.get("slug"), "permalink": permalink, "new_url": new_url})
        try:
            path = generate_redirects_csv(
                rows,
                old_domain=settings.wp_base_url,
                new_base=settings.cms_base_url,
                out_path=self.config["reports"]["redirects_file"],
            )
            logger.info("Redirect CSV generated with %d entries: %s", len(rows), path)
        except OSError as e:
            logger.error("Failed to generate redirects: %s", e)
