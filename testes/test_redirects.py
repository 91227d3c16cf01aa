import csv
import os
import sys

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp_import.utils.redirects import generate_redirects_csv


def test_redirect_rows(tmp_path):
    out = str(tmp_path / "out" / "redirects.csv")
    entries = [
        {"slug": "hello", "permalink": "https://blog.example.com/2024/05/01/hello/",
         "new_url": "https://cms.example.com/entry-20240501.html"},
        {"slug": "about", "permalink": None, "new_url": None},
        {"slug": "", "permalink": None},
    ]
    path = generate_redirects_csv(entries, old_domain="https://blog.example.com/", new_base="https://cms.example.com",
                                  out_path=out)

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows == [
        ["OldURL", "NewURL"],
        ["https://blog.example.com/2024/05/01/hello/", "https://cms.example.com/entry-20240501.html"],
        ["https://blog.example.com/about/", "https://cms.example.com/about.html"],
        ["https://blog.example.com", "https://cms.example.com"],
    ]


def test_rows_without_any_old_url_are_skipped(tmp_path):
    out = str(tmp_path / "redirects.csv")
    generate_redirects_csv([{"slug": "x"}], old_domain="", new_base="https://cms.example.com", out_path=out)
    with open(out, newline="", encoding="utf-8") as f:
        assert list(csv.reader(f)) == [["OldURL", "NewURL"]]


def test_duplicate_and_self_redirects_are_dropped(tmp_path):
    out = str(tmp_path / "redirects.csv")
    entries = [
        {"slug": "a", "permalink": "https://blog.example.com/a/", "new_url": "https://cms.example.com/a.html"},
        {"slug": "a2", "permalink": "https://blog.example.com/a/", "new_url": "https://cms.example.com/a2.html"},
        {"slug": "same", "permalink": "https://cms.example.com/same.html"},
    ]
    generate_redirects_csv(entries, old_domain="https://blog.example.com", new_base="https://cms.example.com",
                           out_path=out)
    with open(out, newline="", encoding="utf-8") as f:
        assert list(csv.reader(f)) == [
            ["OldURL", "NewURL"],
            ["https://blog.example.com/a/", "https://cms.example.com/a.html"],
        ]
