from __future__ import annotations

import json
from pathlib import Path

import yaml
from typer.testing import CliRunner

from pagelift_apps.cli.main import app

runner = CliRunner()


def _write_site(root: Path, site_id: str = "old") -> Path:
    folder = root / site_id
    (folder / "SitePages").mkdir(parents=True)
    site = {"url": f"/sites/{site_id}", "available_controls": ["Text", "Image"]}
    (folder / "site.yaml").write_text(yaml.safe_dump(site), encoding="utf-8")
    page = {
        "content_type": "wiki",
        "title": "Home",
        "wiki_zones": [{"html": "<p>Welcome</p>"}],
    }
    (folder / "SitePages" / "Home.aspx.yaml").write_text(yaml.safe_dump(page), encoding="utf-8")
    return folder


def _transform(root: Path, *extra: str) -> list[str]:
    return ["transform", "--root", str(root), "--site", "old", *extra]


def test_cli_transform_writes_modern_page(tmp_path: Path) -> None:
    site = _write_site(tmp_path)

    result = runner.invoke(app, _transform(tmp_path, "--page", "Home.aspx"))

    assert result.exit_code == 0
    assert "OK: Home.aspx -> old/SitePages/Migrated_Home.aspx" in result.output
    assert "INFO: 1 succeeded, 0 failed" in result.output
    payload = json.loads(
        (site / "SitePages" / "Migrated_Home.aspx.json").read_text(encoding="utf-8")
    )
    assert payload["published"] is True
    assert payload["document"]["title"] == "Home"


def test_cli_reports_failed_pages_with_exit_3(tmp_path: Path) -> None:
    _write_site(tmp_path)

    result = runner.invoke(
        app, _transform(tmp_path, "--page", "Nope.aspx", "--page", "Home.aspx")
    )

    assert result.exit_code == 3
    assert "FAILED: Nope.aspx at load_source: SourcePageNotFoundError" in result.output
    assert "OK: Home.aspx" in result.output
    assert "INFO: 1 succeeded, 1 failed" in result.output


def test_cli_publishing_without_target_site_is_invalid(tmp_path: Path) -> None:
    _write_site(tmp_path)

    result = runner.invoke(app, _transform(tmp_path, "--page", "Home.aspx", "--publishing-page"))

    assert result.exit_code == 2
    assert "InvalidOptionsError" in result.output
    assert not (tmp_path / "old" / "SitePages" / "Migrated_Home.aspx.json").exists()


def test_cli_existing_target_needs_overwrite(tmp_path: Path) -> None:
    _write_site(tmp_path)
    first = runner.invoke(app, _transform(tmp_path, "--page", "Home.aspx"))
    second = runner.invoke(app, _transform(tmp_path, "--page", "Home.aspx"))
    third = runner.invoke(app, _transform(tmp_path, "--page", "Home.aspx", "--overwrite"))

    assert first.exit_code == 0
    assert second.exit_code == 3
    assert "AlreadyExistsError" in second.output
    assert third.exit_code == 0


def test_cli_file_log_destination_writes_report(tmp_path: Path) -> None:
    _write_site(tmp_path)
    logs = tmp_path / "logs"

    result = runner.invoke(
        app,
        _transform(
            tmp_path,
            "--page",
            "Home.aspx",
            "--log-type",
            "file",
            "--log-folder",
            str(logs),
        ),
    )

    assert result.exit_code == 0
    reports = list(logs.glob("Page-Transformation-Report-*.md"))
    assert len(reports) == 1
    assert "Home.aspx" in reports[0].read_text(encoding="utf-8")
    assert "INFO: wrote transformation report to" in result.output


def test_cli_skip_flush_defers_report_to_next_run(tmp_path: Path) -> None:
    site = _write_site(tmp_path)
    (site / "SitePages" / "News.aspx.yaml").write_text(
        yaml.safe_dump({"content_type": "wiki", "wiki_zones": [{"html": "<p>News</p>"}]}),
        encoding="utf-8",
    )
    logs = tmp_path / "logs"
    log_args = ["--log-type", "file", "--log-folder", str(logs)]
    spool = tmp_path / ".pagelift-pending-log.jsonl"

    deferred = runner.invoke(
        app, _transform(tmp_path, "--page", "Home.aspx", *log_args, "--log-skip-flush")
    )

    assert deferred.exit_code == 0
    assert not logs.exists() or not list(logs.iterdir())
    assert spool.exists()

    final = runner.invoke(app, _transform(tmp_path, "--page", "News.aspx", *log_args))

    assert final.exit_code == 0
    assert "INFO: restored" in final.output
    reports = list(logs.glob("Page-Transformation-Report-*.md"))
    assert len(reports) == 1
    content = reports[0].read_text(encoding="utf-8")
    assert "old/Home.aspx" in content
    assert "old/News.aspx" in content
    assert not spool.exists()


def test_cli_rejects_malformed_mapping_property(tmp_path: Path) -> None:
    _write_site(tmp_path)

    result = runner.invoke(
        app, _transform(tmp_path, "--page", "Home.aspx", "--mapping-property", "novalue")
    )

    assert result.exit_code == 2
    assert "KEY=VALUE" in result.output


def test_cli_rejects_unknown_log_type(tmp_path: Path) -> None:
    _write_site(tmp_path)

    result = runner.invoke(
        app, _transform(tmp_path, "--page", "Home.aspx", "--log-type", "syslog")
    )

    assert result.exit_code == 2
    assert "--log-type" in result.output


def test_cli_missing_mapping_file_is_invalid(tmp_path: Path) -> None:
    _write_site(tmp_path)

    result = runner.invoke(
        app,
        _transform(tmp_path, "--page", "Home.aspx", "--mapping", str(tmp_path / "none.yaml")),
    )

    assert result.exit_code == 2
    assert "does not exist" in result.output


def test_cli_export_mapping_refuses_to_overwrite(tmp_path: Path) -> None:
    out = tmp_path / "mapping.yaml"

    first = runner.invoke(app, ["export-mapping", "--out", str(out)])
    second = runner.invoke(app, ["export-mapping", "--out", str(out)])
    forced = runner.invoke(app, ["export-mapping", "--out", str(out), "--force"])

    assert first.exit_code == 0
    assert "INFO: wrote default mapping to" in first.output
    assert yaml.safe_load(out.read_text(encoding="utf-8"))["components"]
    assert second.exit_code == 1
    assert "already exists" in second.output
    assert forced.exit_code == 0
