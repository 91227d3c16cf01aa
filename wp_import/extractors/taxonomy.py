"""Category and tag sets of a whole export, built from the parser's term tables."""

from __future__ import annotations

import logging
from typing import List

from wp_import.extractors.entry_extractor import category_from_ref, tag_from_ref
from wp_import.extractors.wxr_parser import WXRParser
from wp_import.models.entities import Category, Tag

logger = logging.getLogger(__name__)


def extract_categories(parser: WXRParser) -> List[Category]:
    """
    Every category of the export, defined ones first in document order,
    then the ones items referenced without a ``<wp:category>`` definition.

    Call after the item stream has been consumed so that undefined
    references are known.
    """
    categories: List[Category] = []
    seen = set()
    for definition in parser.categories_map.values():
        category = category_from_ref(parser.term_ref(definition))
        categories.append(category)
        seen.add(category.source_id)

    for ref in parser.undefined_categories.values():
        if ref.term_id in seen:
            continue
        logger.info("Category '%s' is referenced but never defined; importing it as a root", ref.slug)
        categories.append(category_from_ref(ref))
        seen.add(ref.term_id)
    return categories


def extract_tags(parser: WXRParser) -> List[Tag]:
    tags = [tag_from_ref(parser.term_ref(d)) for d in parser.tags_map.values()]
    tags.extend(tag_from_ref(ref) for ref in parser.undefined_tags.values())
    return [tag for tag in tags if tag.is_valid()]
