from __future__ import annotations

import re

# order matters: the catch-all pattern must run last
_SHORTCODE_PATTERNS = [
    (re.compile(r"\[caption[^\]]*\](.*?)\[/caption\]", re.DOTALL), r"\1"),
    (re.compile(r"\[gallery[^\]]*\]", re.IGNORECASE), ""),
    (re.compile(r"\[embed[^\]]*\](.*?)\[/embed\]", re.DOTALL), r"\1"),
    (re.compile(r"\[[^\]]+\]"), ""),
]


def remove_shortcodes(content: str) -> str:
    """
    Flatten WordPress shortcodes.

    ``[caption]`` keeps its inner markup, ``[embed]`` keeps its URL, galleries
    and every other bracketed directive are dropped.
    """
    if not content:
        return ""
    for pattern, replacement in _SHORTCODE_PATTERNS:
        content = pattern.sub(replacement, content)
    return content
