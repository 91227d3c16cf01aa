"""
Materialization of the WordPress category tree into the destination.

Categories are created parents-first and laid out as nested intervals
(``left``/``right``) per container.  The builder returns the source id to
destination id map the entry writer needs.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Sequence, Tuple

from wp_import.destination.interfaces import CategoryStore
from wp_import.models.entities import Category
from wp_import.models.results import ItemResult
from wp_import.utils.codes import generate_unique_category_code
from wp_import.utils.errors import report_error, report_ok

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "open"


def sort_by_hierarchy(categories: Sequence[Category]) -> List[Category]:
    """
    Order ``categories`` so that every parent precedes its children.

    A node is placed once its parent is placed, or when it has no parent
    inside the input set.  Scanning stops after ``2 * len(categories)``
    passes; whatever is left belongs to a parent cycle and is appended, in
    input order, as copies with the parent cleared.
    """
    present = {c.source_id for c in categories}
    placed: set = set()
    ordered: List[Category] = []

    max_passes = len(categories) * 2
    passes = 0
    while len(ordered) < len(categories) and passes < max_passes:
        progressed = False
        for category in categories:
            if category.source_id in placed:
                continue
            parent = category.parent_id
            if parent is None or parent not in present or parent in placed:
                if parent is not None and parent not in present:
                    logger.info(
                        "Category '%s' has parent %s outside the import set; placing it as a root",
                        category.display_name,
                        parent,
                    )
                ordered.append(category)
                placed.add(category.source_id)
                progressed = True
        passes += 1
        if not progressed:
            break

    for category in categories:
        if category.source_id not in placed:
            logger.warning(
                "Category '%s' (term %s) is part of a parent cycle; importing it as a root",
                category.display_name,
                category.source_id,
            )
            ordered.append(category.model_copy(update={"parent_id": None}))
            placed.add(category.source_id)
    return ordered


class CategoryCreator:
    """
    Creates categories in one destination container at a time.

    Each insertion may shift the bounds of other rows, so creation is
    serialized per container with a lock.
    """

    def __init__(self, store: CategoryStore) -> None:
        self.store = store
        self._container_locks: Dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    def _container_lock(self, blog_id: int) -> threading.Lock:
        with self._guard:
            return self._container_locks.setdefault(blog_id, threading.Lock())

    def create_categories(self, categories: Sequence[Category], blog_id: int) -> Dict[int, int]:
        """Create ``categories`` and return ``{source id: destination id}`` for the ones that succeeded."""
        mapping: Dict[int, int] = {}
        ordered = sort_by_hierarchy(categories)
        with self._container_lock(blog_id):
            for category in ordered:
                result = self.create_category(category, mapping, blog_id)
                if result.success and result.destination_id is not None:
                    mapping[category.source_id] = result.destination_id
        logger.info("Categories materialized: %d of %d", len(mapping), len(categories))
        return mapping

    def create_category(self, category: Category, mapping: Dict[int, int], blog_id: int) -> ItemResult:
        parent_id = 0
        try:
            base_code = category.generate_code()
            existing = self.store.find_category_by_code(base_code, blog_id)
            if existing:
                report_ok("CATEGORY_REUSED", source_id=category.source_id, title=category.display_name,
                          kind="category", extra={"category_id": existing})
                return ItemResult.ok(category.source_id, existing)

            if category.parent_id is not None:
                parent_id = mapping.get(category.parent_id, 0)
                if not parent_id:
                    logger.warning(
                        "Parent %s of category '%s' was not created; placing it at the root",
                        category.parent_id,
                        category.display_name,
                    )

            status = self._inherited_status(parent_id)
            code = generate_unique_category_code(base_code, blog_id, self.store.category_code_exists)
            sort = self.store.get_next_sort(blog_id, parent_id)
            left, right = self._next_bounds(blog_id, parent_id)

            category_id = self.store.insert_category(
                {
                    "parent": parent_id,
                    "sort": sort,
                    "left": left,
                    "right": right,
                    "blog_id": blog_id,
                    "status": status,
                    "name": category.display_name,
                    "code": code,
                }
            )
            self.store.save_category_fields(category_id, blog_id, self._metadata(category))
        except Exception as e:
            report_error("CATEGORY_CREATE", source_id=category.source_id, title=category.display_name,
                         kind="category", exc=e)
            return ItemResult.failed(category.source_id, str(e))

        logger.info(
            "Category '%s' created: id=%s code=%s parent=%s bounds=(%s, %s) status=%s",
            category.display_name, category_id, code, parent_id, left, right, status,
        )
        report_ok("CATEGORY_CREATED", source_id=category.source_id, title=category.display_name,
                  kind="category", extra={"category_id": category_id, "code": code})
        return ItemResult.ok(category.source_id, category_id)

    def _inherited_status(self, parent_id: int) -> str:
        if not parent_id:
            return DEFAULT_STATUS
        parent_status: Optional[str] = self.store.get_category_status(parent_id)
        if parent_status and parent_status != DEFAULT_STATUS:
            return parent_status
        return DEFAULT_STATUS

    def _next_bounds(self, blog_id: int, parent_id: int) -> Tuple[int, int]:
        if not parent_id:
            max_right = self.store.get_max_root_right(blog_id)
            return max_right + 1, max_right + 2

        parent_right = self.store.get_category_right(parent_id)
        if not parent_right:
            raise LookupError(f"Parent category {parent_id} not found")
        self.store.shift_bounds(blog_id, parent_right, 2)
        return parent_right, parent_right + 1

    @staticmethod
    def _metadata(category: Category) -> Dict[str, str]:
        fields = {
            "wp_import_term_id": str(category.source_id),
            "wp_import_slug": category.slug,
            "wp_import_taxonomy": category.taxonomy,
        }
        if category.description:
            fields["wp_import_description"] = category.description
        return fields
