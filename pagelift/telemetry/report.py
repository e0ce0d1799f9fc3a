"""Human-readable Markdown rendering of transformation log entries."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from pagelift.telemetry.models import LogEntry

_VERBOSE_SEVERITIES = {"verbose"}
_DEBUG_SEVERITIES = {"debug"}


def filter_entries(
    entries: Iterable[LogEntry], *, include_verbose: bool, include_debug: bool
) -> list[LogEntry]:
    selected: list[LogEntry] = []
    for entry in entries:
        if entry.severity in _VERBOSE_SEVERITIES and not include_verbose:
            continue
        if entry.severity in _DEBUG_SEVERITIES and not include_debug:
            continue
        selected.append(entry)
    return selected


def render_markdown_report(
    entries: list[LogEntry],
    *,
    include_verbose: bool = False,
    include_debug: bool = False,
    title: str = "Page transformation report",
) -> str:
    """Render one report covering every page found in ``entries``.

    The report has a summary table (one row per page) followed by a section
    per page listing its entries in emission order.
    """

    selected = filter_entries(
        entries, include_verbose=include_verbose, include_debug=include_debug
    )
    pages: list[str] = []
    for entry in selected:
        page = entry.page_id or "(run)"
        if page not in pages:
            pages.append(page)

    lines: list[str] = [f"# {title}", ""]
    if not selected:
        lines.append("No log entries.")
        return "\n".join(lines) + "\n"

    lines.append("## Summary")
    lines.append("")
    lines.append("| Page | Result | Warnings | Errors |")
    lines.append("| --- | --- | --- | --- |")
    for page in pages:
        page_entries = [entry for entry in selected if (entry.page_id or "(run)") == page]
        counter: Counter[str] = Counter(entry.severity for entry in page_entries)
        result = "FAILED" if counter["error"] else "OK"
        lines.append(f"| {page} | {result} | {counter['warning']} | {counter['error']} |")

    for page in pages:
        lines.append("")
        lines.append(f"## {page}")
        lines.append("")
        lines.append("| Time (UTC) | Severity | Step | Message |")
        lines.append("| --- | --- | --- | --- |")
        for entry in selected:
            if (entry.page_id or "(run)") != page:
                continue
            timestamp = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S")
            lines.append(
                f"| {timestamp} | {entry.severity.upper()} | {entry.step or '-'} "
                f"| {_escape_cell(entry.message)} |"
            )

    return "\n".join(lines) + "\n"


def _escape_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")
