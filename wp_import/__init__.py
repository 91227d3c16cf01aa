"""
Top-level package for the WordPress (WXR) import pipeline.

This package bundles all components required to read a WordPress
"full content" export, turn its items into typed entries, media and
taxonomy records, materialize the category hierarchy in the destination
store, download referenced media, relink migrated bodies and write the
entries.  Modules are split into subpackages:

* :mod:`wp_import.extractors` – streaming WXR parser and record transformers
* :mod:`wp_import.parsers` – body rewriting (media URLs, internal links, shortcodes)
* :mod:`wp_import.migrators` – category hierarchy, media downloads, batch orchestration
* :mod:`wp_import.destination` – collaborator contracts and the DuckDB store
* :mod:`wp_import.models` – pydantic entities, settings and result types
* :mod:`wp_import.utils` – error reports, progress, locking, slugs and redirects

Each layer has no direct knowledge of configuration or execution
strategy; orchestration is handled in :mod:`wp_import.import_tool`.
"""

__version__ = "0.4.0"
