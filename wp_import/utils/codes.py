"""Slug and unique code generation for destination identifiers."""

from __future__ import annotations

from html import unescape
import re
import unicodedata
from typing import Any, Callable, Optional, Union

_VALID_CODE = re.compile(r"[a-zA-Z0-9\-_]+")


def generate_slug(text: str, fallback_prefix: str = "item", fallback_id: Optional[Union[int, str]] = None) -> str:
    """
    Turn arbitrary text into a URL-safe slug.

    Text that is already a valid code (ASCII letters, digits, ``-`` and
    ``_``) is returned untouched.  Otherwise HTML entities are decoded,
    full-width characters are folded to their ASCII forms, the result is
    lowercased, whitespace becomes ``-`` and every other character outside
    ``[a-z0-9_-]`` is dropped.  When nothing survives, ``fallback_prefix``
    (or ``fallback_prefix_<fallback_id>``) is returned.
    """
    if text and _VALID_CODE.fullmatch(text):
        return text

    value = unescape(text or "")
    value = unicodedata.normalize("NFKC", value)
    value = value.lower()
    value = re.sub(r"\s+", "-", value)
    value = re.sub(r"[^a-z0-9\-_]", "", value)
    value = re.sub(r"-+", "-", value)
    value = value.strip("-_")

    if not value:
        suffix = f"_{fallback_id}" if fallback_id is not None else ""
        return f"{fallback_prefix}{suffix}"
    return value


def generate_unique_code(base_code: str, exists_checker: Callable[..., bool], *checker_args: Any) -> str:
    """
    Append ``_1``, ``_2``, ... to ``base_code`` until ``exists_checker``
    reports the candidate as free.  Extra positional arguments are passed
    through to the checker after the candidate code.
    """
    counter = 0
    code = base_code
    while exists_checker(code, *checker_args):
        counter += 1
        code = f"{base_code}_{counter}"
    return code


def generate_unique_entry_code(
    post_name: Optional[str],
    title: str,
    post_id: int,
    blog_id: int,
    category_id: Optional[int],
    exists_checker: Callable[[str, int, Optional[int]], bool],
) -> str:
    # the exported post_name wins over a slug derived from the title
    base = post_name if post_name else generate_slug(title, "entry", post_id)
    return generate_unique_code(base, exists_checker, blog_id, category_id)


def generate_unique_category_code(slug: str, blog_id: int, exists_checker: Callable[[str, int], bool]) -> str:
    return generate_unique_code(generate_slug(slug, "category"), exists_checker, blog_id)
