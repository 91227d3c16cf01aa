import json
import os
import sys

import pytest

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp_import.utils import errors


SAMPLE_EXPORT = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
  xmlns:excerpt="http://wordpress.org/export/1.2/excerpt/"
  xmlns:content="http://purl.org/rss/1.0/modules/content/"
  xmlns:dc="http://purl.org/dc/elements/1.1/"
  xmlns:wp="http://wordpress.org/export/1.2/">
<channel>
  <title>Blog de Exemplo</title>
  <link>https://blog.example.com</link>
  <description>Just another blog</description>
  <language>pt-BR</language>
  <wp:wxr_version>1.2</wp:wxr_version>
  <wp:base_site_url>https://blog.example.com</wp:base_site_url>
  <wp:base_blog_url>https://blog.example.com</wp:base_blog_url>
  <item>
    <title>Hello\x0b World</title>
    <link>https://blog.example.com/2024/05/01/hello-world/</link>
    <dc:creator><![CDATA[admin]]></dc:creator>
    <guid isPermaLink="false">https://blog.example.com/?p=10</guid>
    <description></description>
    <content:encoded><![CDATA[<p>Ol&aacute; <img src="https://blog.example.com/?attachment_id=20"></p><p><a href="https://blog.example.com/about/">about</a></p>]]></content:encoded>
    <excerpt:encoded><![CDATA[Resumo]]></excerpt:encoded>
    <wp:post_id>10</wp:post_id>
    <wp:post_date>2024-05-01 10:00:00</wp:post_date>
    <wp:post_date_gmt>2024-05-01 08:00:00</wp:post_date_gmt>
    <wp:comment_status>open</wp:comment_status>
    <wp:ping_status>closed</wp:ping_status>
    <wp:post_name>hello-world</wp:post_name>
    <wp:status>publish</wp:status>
    <wp:post_parent>0</wp:post_parent>
    <wp:menu_order>0</wp:menu_order>
    <wp:post_type>post</wp:post_type>
    <wp:post_password></wp:post_password>
    <wp:is_sticky>0</wp:is_sticky>
    <category domain="category" nicename="child"><![CDATA[Child]]></category>
    <category domain="category" nicename="child"><![CDATA[Child]]></category>
    <category domain="category" nicename="ghost"><![CDATA[Ghost]]></category>
    <category domain="post_tag" nicename="python"><![CDATA[Python]]></category>
    <wp:postmeta>
      <wp:meta_key><![CDATA[_thumbnail_id]]></wp:meta_key>
      <wp:meta_value><![CDATA[20]]></wp:meta_value>
    </wp:postmeta>
    <wp:postmeta>
      <wp:meta_key><![CDATA[_yoast_wpseo_title]]></wp:meta_key>
      <wp:meta_value><![CDATA[SEO title]]></wp:meta_value>
    </wp:postmeta>
    <wp:comment>
      <wp:comment_id>3</wp:comment_id>
      <wp:comment_author><![CDATA[Maria]]></wp:comment_author>
      <wp:comment_author_email><![CDATA[maria@example.com]]></wp:comment_author_email>
      <wp:comment_date><![CDATA[2024-05-02 09:00:00]]></wp:comment_date>
      <wp:comment_content><![CDATA[Muito bom!]]></wp:comment_content>
      <wp:comment_approved><![CDATA[1]]></wp:comment_approved>
      <wp:comment_type><![CDATA[]]></wp:comment_type>
      <wp:comment_parent>0</wp:comment_parent>
    </wp:comment>
  </item>
  <item>
    <title>pic</title>
    <link>https://blog.example.com/pic/</link>
    <dc:creator><![CDATA[admin]]></dc:creator>
    <guid isPermaLink="false">https://blog.example.com/wp-content/uploads/2024/05/pic.jpg</guid>
    <content:encoded><![CDATA[]]></content:encoded>
    <wp:post_id>20</wp:post_id>
    <wp:post_date_gmt>2024-05-01 07:00:00</wp:post_date_gmt>
    <wp:post_name>pic</wp:post_name>
    <wp:status>inherit</wp:status>
    <wp:post_parent>10</wp:post_parent>
    <wp:post_type>attachment</wp:post_type>
    <wp:attachment_url><![CDATA[https://blog.example.com/wp-content/uploads/2024/05/pic.jpg]]></wp:attachment_url>
    <wp:postmeta>
      <wp:meta_key><![CDATA[_wp_attached_file]]></wp:meta_key>
      <wp:meta_value><![CDATA[2024/05/pic.jpg]]></wp:meta_value>
    </wp:postmeta>
    <wp:postmeta>
      <wp:meta_key><![CDATA[_wp_attachment_metadata]]></wp:meta_key>
      <wp:meta_value><![CDATA[a:3:{s:5:"width";i:800;s:6:"height";i:600;s:4:"file";s:15:"2024/05/pic.jpg";}]]></wp:meta_value>
    </wp:postmeta>
    <wp:postmeta>
      <wp:meta_key><![CDATA[_wp_attachment_image_alt]]></wp:meta_key>
      <wp:meta_value><![CDATA[Uma foto]]></wp:meta_value>
    </wp:postmeta>
  </item>
  <item>
    <title>Broken</title>
    <wp:post_type>post</wp:post_type>
  </item>
  <wp:category>
    <wp:term_id>1</wp:term_id>
    <wp:category_nicename><![CDATA[parent]]></wp:category_nicename>
    <wp:category_parent><![CDATA[]]></wp:category_parent>
    <wp:cat_name><![CDATA[Parent]]></wp:cat_name>
  </wp:category>
  <wp:category>
    <wp:term_id>2</wp:term_id>
    <wp:category_nicename><![CDATA[child]]></wp:category_nicename>
    <wp:category_parent><![CDATA[parent]]></wp:category_parent>
    <wp:cat_name><![CDATA[Child]]></wp:cat_name>
  </wp:category>
  <wp:tag>
    <wp:term_id>5</wp:term_id>
    <wp:tag_slug><![CDATA[python]]></wp:tag_slug>
    <wp:tag_name><![CDATA[Python]]></wp:tag_name>
  </wp:tag>
</channel>
</rss>
"""


@pytest.fixture(autouse=True)
def report_dir(tmp_path):
    """Keep the JSON Lines reports of every test inside its tmp dir."""
    previous = errors.report_dir()
    path = tmp_path / "reports"
    errors.set_report_dir(str(path))
    yield path
    errors.set_report_dir(previous)


@pytest.fixture
def sample_export(tmp_path):
    path = tmp_path / "export.xml"
    path.write_bytes(SAMPLE_EXPORT.encode("utf-8"))
    return str(path)


@pytest.fixture
def read_report(report_dir):
    """Return the entries of ``errors.jsonl`` or ``success.jsonl`` written so far."""

    def _read(name="errors.jsonl"):
        path = report_dir / name
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    return _read
