"""Body rewriting: URL relinking and shortcode flattening."""

from .shortcodes import remove_shortcodes
from .url_rewriter import UrlRewriter, convert_wordpress_url

__all__ = ["UrlRewriter", "convert_wordpress_url", "remove_shortcodes"]
