"""
Structured logging helpers for import errors and successes.

The :mod:`wp_import.utils.errors` module centralizes the writing of log
entries for both failed and successful item operations during an import.
Each entry is appended to a JSON Lines file under ``reports/migration`` so
that the information can be reviewed or parsed after a run.

Two public functions are provided:

``report_error``
    Record an error that occurred for an item.  An optional exception can be
    supplied and will be serialized to the log.

``report_ok``
    Record a successful step for an item.  Additional key/value information
    can be attached to the entry via the ``extra`` parameter.

The ``ERRORS`` dictionary maps error or event codes to human readable
messages.  Codes not present in the dictionary fall back to the code itself.

The module also defines the exception hierarchy for failures that are
allowed to abort a run.  Item-level failures never raise; they are turned
into result values by the component that owns the failure boundary.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Mapping of event codes used throughout the import to descriptive messages.
# The keys include both error and success codes as the same lookup is used by
# :func:`report_error` and :func:`report_ok`.
ERRORS: Dict[str, str] = {
    "EXTRACT_ITEM": "Failed to extract item from export",
    "TRANSFORM_ENTRY": "Failed to transform entry record",
    "CATEGORY_CREATE": "Failed to create category",
    "MEDIA_DOWNLOAD": "Failed to download media file",
    "MEDIA_IMPORT": "Failed to import media into destination",
    "ENTRY_IMPORT": "Failed to import entry",
    "URL_REWRITE": "Failed to rewrite URLs in entry body",
    "CONTENT_UNIT": "Failed to create content block for entry",
    "CATEGORY_CREATED": "Category created",
    "CATEGORY_REUSED": "Existing category reused",
    "MEDIA_IMPORTED": "Media imported successfully",
    "ENTRY_IMPORTED": "Entry imported successfully",
}

_REPORT_DIR = os.path.join("reports", "migration")
_write_lock = threading.Lock()


class WPImportError(Exception):
    """Base class for failures that abort an import run."""


class ExportNotFoundError(WPImportError):
    """The export file does not exist."""


class ExportReadError(WPImportError):
    """The export file exists but cannot be read."""


class ExportFormatError(WPImportError):
    """The export is not well-formed or is not a WordPress export."""


class ImportLockedError(WPImportError):
    """Another import already holds the run lock."""


class ImportCancelledError(WPImportError):
    """The run was cancelled between batches."""


class PreFlightCheckError(WPImportError):
    """Raised when the environment is not ready for an import."""


def set_report_dir(path: str) -> None:
    """Redirect the JSON Lines reports to ``path``."""
    global _REPORT_DIR
    _REPORT_DIR = path


def report_dir() -> str:
    return _REPORT_DIR


def _write_jsonl(filename: str, data: Dict[str, Any]) -> None:
    """Append ``data`` as a JSON object followed by a newline to ``filename``."""
    with _write_lock:
        os.makedirs(_REPORT_DIR, exist_ok=True)
        with open(os.path.join(_REPORT_DIR, filename), "a", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, default=str)
            f.write("\n")


def _base_entry(code: str, source_id: Any, title: Optional[str], kind: str) -> Dict[str, Any]:
    return {
        "code": code,
        "message": ERRORS.get(code, code),
        "kind": kind,
        "source_id": source_id,
        "title": title,
    }


def report_error(
    code: str,
    *,
    source_id: Any = None,
    title: Optional[str] = None,
    kind: str = "entry",
    error: Optional[str] = None,
    exc: Optional[BaseException] = None,
) -> None:
    """Log an error event for one item.

    Parameters
    ----------
    code:
        A key identifying the type of error.  If ``code`` is present in
        :data:`ERRORS` its value will be used as the message.
    source_id:
        The identifier of the item in the export (post id or term id).
    title:
        Human readable title of the item, if known.
    kind:
        ``"entry"``, ``"media"`` or ``"category"``.
    error:
        Optional failure reason returned by the failing component.
    exc:
        Optional exception instance that triggered the error.  The string
        representation of the exception will be included in the log entry.
    """
    entry = _base_entry(code, source_id, title, kind)
    if error:
        entry["error"] = error
    if exc is not None:
        entry["error"] = str(exc)
        entry["exception"] = type(exc).__name__
    logger.error("%s - %s #%s (%s)", entry["message"], kind, source_id, entry.get("error", ""))
    _write_jsonl("errors.jsonl", entry)


def report_ok(
    code: str,
    *,
    source_id: Any = None,
    title: Optional[str] = None,
    kind: str = "entry",
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Log a successful event for one item.

    Parameters
    ----------
    code:
        A key identifying the type of event.
    source_id, title, kind:
        Identify the item, see :func:`report_error`.
    extra:
        Optional dictionary of additional fields to merge into the log entry.
    """
    entry = _base_entry(code, source_id, title, kind)
    if extra:
        entry.update(extra)
    logger.debug("%s - %s #%s", entry["message"], kind, source_id)
    _write_jsonl("success.jsonl", entry)
