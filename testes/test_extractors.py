import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp_import.extractors import WXRParser, extract_entry, extract_media
from wp_import.extractors.entry_extractor import extract_custom_fields, extract_seo, map_status
from wp_import.extractors.media_extractor import decode_attachment_metadata
from wp_import.models.entities import EntryStatus
from wp_import.models.records import RawItem


def test_status_table():
    assert map_status("publish") is EntryStatus.PUBLISHED
    assert map_status("future") is EntryStatus.PUBLISHED
    assert map_status("pending") is EntryStatus.DRAFT
    assert map_status("private") is EntryStatus.PRIVATE
    assert map_status("trash") is EntryStatus.DRAFT
    assert map_status(None) is EntryStatus.DRAFT


def test_custom_fields_drop_internal_keys_and_namespace_the_rest():
    postmeta = {
        "_edit_lock": "1700000000:1",
        "_thumbnail_id": "20",
        "_some_plugin_state": "x",
        "_yoast_wpseo_title": "T",
        "my-field": "v",
        "price": "10",
    }
    assert extract_custom_fields(postmeta) == {
        "wp_yoast_wpseo_title": "T",
        "wp_my_field": "v",
        "wp_price": "10",
    }


def test_seo_falls_back_to_all_in_one_seo():
    seo = extract_seo({"_yoast_wpseo_title": "Yoast", "_aioseop_title": "AIO", "_aioseop_description": "Desc"})
    assert seo.title == "Yoast"
    assert seo.description == "Desc"


def test_entry_from_export(sample_export):
    post = next(iter(WXRParser().parse(sample_export)))
    entry = extract_entry(post)

    assert entry.source_id == 10
    assert entry.title == "Hello World"
    assert entry.status is EntryStatus.PUBLISHED
    assert entry.slug == "hello-world"
    assert "Olá" in entry.body
    assert entry.excerpt == "Resumo"
    assert entry.featured_media_id == 20
    assert entry.seo.title == "SEO title"
    assert entry.comment_open is True
    assert entry.ping_open is False
    assert entry.post_date_gmt.hour == 8
    assert [c.slug for c in entry.categories] == ["child", "ghost"]
    assert entry.categories[0].parent_id == 1
    assert [t.display_name for t in entry.tags] == ["Python"]
    assert entry.comments[0].approved is True
    assert entry.comments[0].type == "comment"


def test_attachment_is_not_an_entry():
    assert extract_entry(RawItem(post_id=20, post_type="attachment")) is None


def test_unknown_post_type_is_kept():
    entry = extract_entry(RawItem(post_id=7, post_type="product", title="Caneca", status="draft"))
    assert entry.content_type == "product"
    assert entry.status is EntryStatus.DRAFT


def test_media_from_export(sample_export):
    _, attachment = list(WXRParser().parse(sample_export))
    media = extract_media(attachment)

    assert media.source_id == 20
    assert media.parent_id == 10
    assert media.file_name == "pic.jpg"
    assert media.file_path == "2024/05/pic.jpg"
    assert media.mime_type == "image/jpeg"
    assert (media.width, media.height) == (800, 600)
    assert media.alt_text == "Uma foto"
    assert media.upload_date.year == 2024
    assert media.is_image
    assert media.extension == "jpg"


def test_media_requires_attachment_with_url():
    assert extract_media(RawItem(post_id=1, post_type="post")) is None
    assert extract_media(RawItem(post_id=2, post_type="attachment")) is None


def test_attachment_metadata_decoding():
    raw = 'a:2:{s:8:"filesize";i:2048;s:9:"mime-type";s:9:"image/png";}'
    assert decode_attachment_metadata(raw) == {"filesize": 2048, "mime-type": "image/png"}
    assert decode_attachment_metadata("not serialized") == {}
    assert decode_attachment_metadata("") == {}
