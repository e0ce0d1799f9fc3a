from __future__ import annotations

from pathlib import Path

import pytest

from pagelift.repository.memory import MemoryRepository
from pagelift.telemetry.models import LogEntry
from pagelift.telemetry.observers import (
    BufferedObserver,
    MarkdownFileObserver,
    RepositoryObserver,
    create_observer,
)
from pagelift.telemetry.report import render_markdown_report


def _entries() -> list[LogEntry]:
    return [
        LogEntry(severity="info", message="started", page_id="old/A.aspx", step="validate"),
        LogEntry(severity="verbose", message="unit mapped", page_id="old/A.aspx", step="map"),
        LogEntry(severity="warning", message="dropped | part", page_id="old/A.aspx", step="map"),
        LogEntry(severity="error", message="boom", page_id="old/B.aspx", step="persist"),
    ]


def test_two_sinks_receive_every_entry_in_order(tmp_path: Path) -> None:
    repository = MemoryRepository()
    file_sink = MarkdownFileObserver(tmp_path / "logs")
    repository_sink = RepositoryObserver(repository, "new")

    for entry in _entries():
        file_sink.notify(entry)
        repository_sink.notify(entry)

    assert [entry.message for entry in file_sink.entries] == [e.message for e in _entries()]
    assert file_sink.entries == repository_sink.entries


def test_sinks_flush_independently(tmp_path: Path) -> None:
    repository = MemoryRepository()
    file_sink = MarkdownFileObserver(tmp_path / "logs")
    repository_sink = RepositoryObserver(repository, "new")
    for entry in _entries():
        file_sink.notify(entry)
        repository_sink.notify(entry)

    location = file_sink.flush()

    assert location is not None
    assert Path(location).exists()
    assert file_sink.entries == []
    assert len(repository_sink.entries) == 4
    assert repository.reports == {}

    address = repository_sink.flush()

    assert address is not None
    assert address.startswith("new/SiteAssets/Page-Transformation-Report-")
    assert len(repository.reports) == 1


def test_skip_flush_keeps_entries_until_forced(tmp_path: Path) -> None:
    sink = MarkdownFileObserver(tmp_path, skip_flush=True)
    for entry in _entries():
        sink.notify(entry)

    assert sink.flush() is None
    assert list(tmp_path.iterdir()) == []
    assert len(sink.entries) == 4

    location = sink.flush(force=True)

    assert location is not None
    assert sink.entries == []


def test_pending_entries_survive_into_a_later_observer(tmp_path: Path) -> None:
    spool = tmp_path / "pending.jsonl"
    first = MarkdownFileObserver(tmp_path / "logs", skip_flush=True)
    for entry in _entries()[:2]:
        first.notify(entry)

    assert first.save_pending(spool) == 2

    second = MarkdownFileObserver(tmp_path / "logs")
    second.notify(_entries()[3])

    assert second.load_pending(spool) == 2
    assert [entry.message for entry in second.entries] == ["started", "unit mapped", "boom"]
    restored = second.entries[1]
    assert (restored.severity, restored.page_id, restored.step) == ("verbose", "old/A.aspx", "map")


def test_load_pending_without_spool_restores_nothing(tmp_path: Path) -> None:
    sink = RepositoryObserver(MemoryRepository(), "new")

    assert sink.load_pending(tmp_path / "missing.jsonl") == 0
    assert sink.entries == []


def test_buffered_observer_requires_a_writer() -> None:
    with pytest.raises(TypeError):
        BufferedObserver()  # type: ignore[abstract]


def test_flush_without_entries_writes_nothing(tmp_path: Path) -> None:
    sink = MarkdownFileObserver(tmp_path)

    assert sink.flush() is None
    assert list(tmp_path.iterdir()) == []


def test_report_summarizes_pages_and_hides_verbose_by_default() -> None:
    report = render_markdown_report(_entries())

    assert report.startswith("# Page transformation report")
    assert "| old/A.aspx | OK | 1 | 0 |" in report
    assert "| old/B.aspx | FAILED | 0 | 1 |" in report
    assert "unit mapped" not in report
    assert "dropped \\| part" in report


def test_verbose_report_includes_verbose_entries() -> None:
    report = render_markdown_report(_entries(), include_verbose=True)

    assert "unit mapped" in report


def test_create_observer_selects_sink(tmp_path: Path) -> None:
    repository = MemoryRepository()

    assert create_observer("none") is None
    assert isinstance(create_observer("file", folder=tmp_path), MarkdownFileObserver)
    sink = create_observer("repository", repository=repository, site_id="new", verbose=True)
    assert isinstance(sink, RepositoryObserver)
    assert sink.include_verbose

    with pytest.raises(ValueError, match="requires a repository"):
        create_observer("repository")
