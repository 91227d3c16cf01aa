import csv
import os
import sys

import duckdb
import pytest

# Ensure project root is on sys.path for imports when running tests directly
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from wp_import.import_tool import WordPressImportTool
from wp_import.utils.errors import ExportFormatError, PreFlightCheckError
from wp_import.utils.lock import FileRunLock
from wp_import.utils.pre_flight_checks import run_pre_flight_checks
from wp_import.utils.progress import read_progress


@pytest.fixture
def config(tmp_path):
    return {
        "import": {"include_media": False, "batch_pause": 0},
        "urls": {"cms_base_url": "https://cms.example.com"},
        "destination": {
            "db_path": str(tmp_path / "db" / "import.duckdb"),
            "media_root": str(tmp_path / "archives"),
        },
        "reports": {"dir": str(tmp_path / "reports")},
    }


def test_defaults_are_filled(monkeypatch):
    monkeypatch.setenv("WP_IMPORT_DB_PATH", "/data/site.duckdb")
    tool = WordPressImportTool({})
    assert tool.config["destination"]["db_path"] == "/data/site.duckdb"
    assert tool.config["reports"]["lock_file"].endswith("import.lock")


def test_config_file_is_loaded(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"import": {"batch_size": 10}}', encoding="utf-8")
    tool = WordPressImportTool(config_file=str(path))
    assert tool.config["import"]["batch_size"] == 10


def test_full_run(sample_export, config, tmp_path):
    tool = WordPressImportTool(config)
    summary = tool.run(sample_export)

    assert summary.entry_success == 1
    assert summary.entry_error == 0
    assert summary.category_success == 3
    assert summary.media_success == 0

    state = read_progress(config["reports"]["progress_file"])
    assert state["status"] == "success"
    assert state["percentage"] == 100.0
    assert not os.path.exists(config["reports"]["lock_file"])

    with open(config["reports"]["redirects_file"], newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[1] == [
        "https://blog.example.com/2024/05/01/hello-world/",
        "https://cms.example.com/entry-20240501.html",
    ]


def test_internal_links_use_the_export_base_url(sample_export, config):
    WordPressImportTool(config).run(sample_export)
    con = duckdb.connect(config["destination"]["db_path"])
    try:
        body = con.execute("SELECT unit_field_1 FROM unit").fetchone()[0]
    finally:
        con.close()
    assert 'href="https://cms.example.com/about.html"' in body


def test_dry_run_writes_nothing(sample_export, config):
    tool = WordPressImportTool(config)
    assert tool.run(sample_export, dry_run=True) is None

    assert len(tool.entries) == 1
    assert len(tool.medias) == 1
    assert len(tool.categories) == 3
    assert not os.path.exists(config["destination"]["db_path"])
    assert read_progress(config["reports"]["progress_file"])["status"] == "success"


def test_fatal_extraction_error_is_reported(tmp_path, config):
    bad = tmp_path / "bad.xml"
    bad.write_text("<feed/>", encoding="utf-8")
    tool = WordPressImportTool(config)

    with pytest.raises(ExportFormatError):
        tool.run(str(bad))
    assert read_progress(config["reports"]["progress_file"])["status"] == "error"
    assert not os.path.exists(config["reports"]["lock_file"])


def test_second_run_is_refused_while_locked(sample_export, config):
    tool = WordPressImportTool(config)
    other = FileRunLock(config["reports"]["lock_file"])
    assert other.try_lock()

    with pytest.raises(PreFlightCheckError):
        tool.run(sample_export)
    # the running import keeps its lock
    assert other.held
    assert read_progress(config["reports"]["progress_file"])["status"] == "notfound"
    other.release()


def test_pre_flight_rejects_missing_export(tmp_path, config):
    with pytest.raises(PreFlightCheckError):
        run_pre_flight_checks(config, str(tmp_path / "missing.xml"))


def test_missing_export_is_reported_to_the_progress_feed(tmp_path, config):
    tool = WordPressImportTool(config)
    with pytest.raises(PreFlightCheckError):
        tool.run(str(tmp_path / "missing.xml"))

    state = read_progress(config["reports"]["progress_file"])
    assert state["status"] == "error"
    assert not os.path.exists(config["reports"]["lock_file"])


def test_pre_flight_rejects_inconsistent_settings(sample_export, config):
    config["import"].update(min_batch_size=50, max_batch_size=10)
    with pytest.raises(PreFlightCheckError):
        run_pre_flight_checks(config, sample_export)


def test_pre_flight_returns_settings(sample_export, config):
    settings = run_pre_flight_checks(config, sample_export)
    assert settings.include_media is False
    assert settings.cms_base_url == "https://cms.example.com"


def test_command_line_dry_run(sample_export, config, tmp_path):
    import json
    import logging

    import main

    path = tmp_path / "config.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    try:
        assert main.main([sample_export, "--config", str(path), "--dry-run"]) == 0
    finally:
        root = logging.getLogger()
        for handler in list(root.handlers):
            if getattr(handler, "_wp_import", False):
                root.removeHandler(handler)
                handler.close()
    assert os.path.exists(os.path.join(config["reports"]["dir"], "migration.log"))
