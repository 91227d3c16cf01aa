import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp_import.parsers import UrlRewriter, convert_wordpress_url, remove_shortcodes
from wp_import.parsers.url_rewriter import extract_attachment_id, is_media_file

WP = "https://blog.example.com"
CMS = "https://cms.example.com"


def _rewriter(paths=None):
    paths = paths or {}
    return UrlRewriter(paths.get, media_base_url="/archives/", blog_id=1)


def test_image_resolved_through_media_map():
    rewriter = _rewriter({7: "1/media/2024/05/pic.jpg"})
    result = rewriter.rewrite_urls(f'<p><img src="{WP}/?attachment_id=42"></p>', {42: 7})

    assert result.media_replaced == 1
    assert 'src="/archives/1/media/2024/05/pic.jpg"' in result.content
    assert result.replaced_urls == {f"{WP}/?attachment_id=42": "/archives/1/media/2024/05/pic.jpg"}


def test_uploads_path_fallback():
    rewriter = _rewriter()
    result = rewriter.rewrite_urls(f'<img src="{WP}/wp-content/uploads/2024/05/pic.jpg">')
    assert 'src="/archives/1/media/2024/05/pic.jpg"' in result.content


def test_linked_media_file_is_rewritten():
    result = _rewriter().rewrite_urls(f'<a href="{WP}/wp-content/uploads/2023/01/manual.pdf">PDF</a>')
    assert result.media_replaced == 1
    assert 'href="/archives/1/media/2023/01/manual.pdf"' in result.content


def test_unknown_attachment_is_left_alone():
    content = '<img src="https://cdn.other.com/x.png">'
    result = _rewriter().rewrite_urls(content, {1: 2})
    assert result.content == content
    assert not result.changed


def test_unchanged_markup_is_not_reserialized():
    content = "<p>Hello<br>world &amp; friends</p>"
    result = _rewriter().rewrite_urls(content, wp_base_url=WP, cms_base_url=CMS)
    assert result.content == content


def test_internal_links_follow_destination_shapes():
    content = (
        f'<a href="{WP}/2024/05/01/hello-world/">post</a>'
        f'<a href="{WP}/category/news/">news</a>'
        f'<a href="{WP}/about/">about</a>'
    )
    result = _rewriter().rewrite_urls(content, wp_base_url=WP, cms_base_url=CMS)

    assert result.link_replaced == 3
    assert f'href="{CMS}/entry-20240501.html"' in result.content
    assert f'href="{CMS}/category/news/"' in result.content
    assert f'href="{CMS}/about.html"' in result.content


def test_remaining_absolute_urls_are_substituted():
    result = _rewriter().rewrite_urls(f"<p>Veja {WP}/feed em breve</p>", wp_base_url=WP, cms_base_url=CMS)
    assert result.absolute_replaced == 1
    assert result.content == f"<p>Veja {CMS}/feed em breve</p>"


def test_media_url_cache_can_be_cleared():
    paths = {7: "1/media/a.jpg"}
    rewriter = _rewriter(paths)
    url = f"{WP}/?attachment_id=42"
    assert rewriter.replace_media_url(url, {42: 7}) == "/archives/1/media/a.jpg"

    paths[7] = "1/media/b.jpg"
    assert rewriter.replace_media_url(url, {42: 7}) == "/archives/1/media/a.jpg"
    rewriter.clear_media_url_cache()
    assert rewriter.replace_media_url(url, {42: 7}) == "/archives/1/media/b.jpg"


def test_convert_wordpress_url():
    assert convert_wordpress_url(f"{WP}/2024/05/01/hello/", WP, CMS) == f"{CMS}/entry-20240501.html"
    assert convert_wordpress_url(f"{WP}/category/news/", WP, CMS) == f"{CMS}/category/news/"
    assert convert_wordpress_url(f"{WP}/contato/", WP, CMS) == f"{CMS}/contato.html"
    assert convert_wordpress_url(f"{WP}/?p=10", WP, CMS) == f"{CMS}/?p=10"


def test_media_helpers():
    assert is_media_file("https://x.test/file.PDF")
    assert not is_media_file("https://x.test/page/")
    assert extract_attachment_id("https://x.test/?p=1&attachment_id=42") == 42
    assert extract_attachment_id("https://x.test/?p=1") is None


def test_remove_shortcodes():
    assert remove_shortcodes('[caption id="a1" align="alignleft"]<img src="a.jpg"> Legenda[/caption]') == (
        '<img src="a.jpg"> Legenda'
    )
    assert remove_shortcodes('<p>x</p>[gallery ids="1,2,3"]') == "<p>x</p>"
    assert remove_shortcodes("[embed]https://youtu.be/abc[/embed]") == "https://youtu.be/abc"
    assert remove_shortcodes("a [contact-form-7 id=\"5\"] b") == "a  b"
    assert remove_shortcodes("") == ""


def test_legacy_base_urls_are_rewritten_too():
    rewriter = _rewriter()
    rewriter.set_base_url_mapping({"http://blog.example.com/": CMS + "/"})
    result = rewriter.rewrite_urls(
        f'<a href="http://blog.example.com/about/">A</a> <a href="{WP}/contact/">C</a>',
        wp_base_url=WP,
        cms_base_url=CMS,
    )

    assert f'href="{CMS}/about.html"' in result.content
    assert f'href="{CMS}/contact.html"' in result.content
