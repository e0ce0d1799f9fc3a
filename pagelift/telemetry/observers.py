"""Log sinks receiving transformation events.

Observers are owned by the caller: one observer can be registered with
several transformators (or reused across sequential runs) so that a batch of
pages ends in one combined report when it is finally flushed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol

from pagelift.telemetry.models import LogEntry
from pagelift.telemetry.report import render_markdown_report
from pagelift.utils.atomic_io import atomic_write_text

if TYPE_CHECKING:
    from pagelift.repository.base import Repository

LogDestinationKind = Literal["none", "file", "repository"]
_REPORT_PREFIX = "Page-Transformation-Report"


class Observer(Protocol):
    """Protocol for log sinks."""

    def notify(self, entry: LogEntry) -> None:
        """Receive one log entry."""

    def flush(self) -> str | None:
        """Write accumulated entries; returns where they landed, if anywhere."""


class BufferedObserver(ABC):
    """Accumulates entries until flushed.

    With ``skip_flush`` set, ``flush()`` keeps the entries and writes nothing;
    ``flush(force=True)`` writes regardless. ``save_pending`` and
    ``load_pending`` carry unflushed entries over to a later process.
    """

    def __init__(
        self,
        *,
        include_verbose: bool = False,
        include_debug: bool = False,
        skip_flush: bool = False,
    ) -> None:
        self.include_verbose = include_verbose
        self.include_debug = include_debug
        self.skip_flush = skip_flush
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def notify(self, entry: LogEntry) -> None:
        self._entries.append(entry)

    def flush(self, force: bool = False) -> str | None:
        if self.skip_flush and not force:
            return None
        if not self._entries:
            return None
        report = render_markdown_report(
            self._entries,
            include_verbose=self.include_verbose,
            include_debug=self.include_debug,
        )
        location = self._write(_report_name(), report)
        self._entries.clear()
        return location

    def save_pending(self, path: Path) -> int:
        """Persist the buffered entries as JSON lines; returns how many were saved."""

        lines = [entry.model_dump_json() for entry in self._entries]
        atomic_write_text(path, "".join(f"{line}\n" for line in lines))
        return len(lines)

    def load_pending(self, path: Path) -> int:
        """Put entries saved by ``save_pending`` ahead of the buffered ones."""

        if not path.exists():
            return 0
        restored = [
            LogEntry.model_validate_json(line)
            for line in path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
        self._entries[:0] = restored
        return len(restored)

    @abstractmethod
    def _write(self, name: str, content: str) -> str:
        """Store one rendered report and return where it landed."""


class MarkdownFileObserver(BufferedObserver):
    """Writes one Markdown report per flush into a local folder."""

    def __init__(
        self,
        folder: Path,
        *,
        include_verbose: bool = False,
        include_debug: bool = False,
        skip_flush: bool = False,
    ) -> None:
        super().__init__(
            include_verbose=include_verbose,
            include_debug=include_debug,
            skip_flush=skip_flush,
        )
        self.folder = folder

    def _write(self, name: str, content: str) -> str:
        path = self.folder / name
        atomic_write_text(path, content)
        return str(path)


class RepositoryObserver(BufferedObserver):
    """Writes one report document per flush into the repository."""

    def __init__(
        self,
        repository: Repository,
        site_id: str,
        *,
        include_verbose: bool = False,
        include_debug: bool = False,
        skip_flush: bool = False,
    ) -> None:
        super().__init__(
            include_verbose=include_verbose,
            include_debug=include_debug,
            skip_flush=skip_flush,
        )
        self._repository = repository
        self.site_id = site_id

    def _write(self, name: str, content: str) -> str:
        return self._repository.write_report(self.site_id, name, content)


def create_observer(
    kind: LogDestinationKind,
    *,
    folder: Path | None = None,
    repository: Repository | None = None,
    site_id: str | None = None,
    verbose: bool = False,
    skip_flush: bool = False,
) -> BufferedObserver | None:
    """Build the sink selected by the log destination option."""

    if kind == "none":
        return None
    if kind == "file":
        return MarkdownFileObserver(
            folder or Path("."),
            include_verbose=verbose,
            include_debug=verbose,
            skip_flush=skip_flush,
        )
    if kind == "repository":
        if repository is None or site_id is None:
            raise ValueError("Repository log destination requires a repository and a site")
        return RepositoryObserver(
            repository,
            site_id,
            include_verbose=verbose,
            include_debug=verbose,
            skip_flush=skip_flush,
        )
    raise ValueError(f"Unsupported log destination: {kind}")


def _report_name() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    return f"{_REPORT_PREFIX}-{stamp}.md"
