"""
Redirect map written at the end of an import.

One ``OldURL,NewURL`` row per imported entry, meant to be loaded into the
web server as 301 redirects.  Rows whose old URL cannot be determined, or
that would redirect a URL to itself, are left out; an old URL is only
listed once.
"""

from __future__ import annotations

import csv
import logging
import os
from typing import Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

REDIRECT_HEADER = ["OldURL", "NewURL"]


def _redirect_row(entry: Dict[str, Optional[str]], old_domain: str, new_base: str) -> Optional[Tuple[str, str]]:
    slug = entry.get("slug") or ""
    old_base = (old_domain or "").rstrip("/")
    new_root = (new_base or "").rstrip("/")

    old_url = entry.get("permalink")
    if not old_url and old_base:
        old_url = f"{old_base}/{slug}/" if slug else old_base
    if not old_url:
        return None

    new_url = entry.get("new_url")
    if not new_url:
        new_url = f"{new_root}/{slug}.html" if slug else new_root
    if not new_url or new_url == old_url:
        return None
    return old_url, new_url


def generate_redirects_csv(
    entries: Iterable[Dict[str, Optional[str]]],
    *,
    old_domain: str,
    new_base: str,
    out_path: str = "reports/migration/redirect_map.csv",
) -> str:
    """
    Write the redirect map of ``entries`` to ``out_path`` and return the path.

    Each entry is a dict with ``slug`` and optionally ``permalink`` (the
    WordPress URL) and ``new_url`` (the converted destination URL).  Missing
    old URLs are built as ``{old_domain}/{slug}/``; missing new URLs as
    ``{new_base}/{slug}.html``.
    """
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    seen = set()
    skipped = 0
    with open(out_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(REDIRECT_HEADER)
        for entry in entries:
            row = _redirect_row(entry, old_domain, new_base)
            if row is None or row[0] in seen:
                skipped += 1
                continue
            seen.add(row[0])
            writer.writerow(row)
    if skipped:
        logger.debug("%d entries left out of the redirect map", skipped)
    return out_path
