"""Build a modern page document from mapped controls."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from pagelift.mapper.models import ControlDescriptor, MappingResult
from pagelift.orchestrator.models import Column, ModernPageDocument, Section

_GRID_WIDTH = 12
_DEFAULT_ROW = 1
_DEFAULT_COLUMN = 1
_SECTION_LAYOUTS = {1: "OneColumn", 2: "TwoColumns", 3: "ThreeColumns"}


def assemble_document(
    *,
    site_id: str,
    name: str,
    title: str,
    results: Iterable[MappingResult],
    banner: list[ControlDescriptor] | None = None,
    source_page: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ModernPageDocument:
    """Lay out controls by their row/column hints, keeping source order.

    Rows become sections and columns become section columns, both in
    ascending order. Controls without hints land in the first row/column.
    """

    grid: dict[int, dict[int, list[ControlDescriptor]]] = defaultdict(lambda: defaultdict(list))
    for result in results:
        for descriptor in result.descriptors:
            row = descriptor.row if descriptor.row is not None else _DEFAULT_ROW
            column = descriptor.column if descriptor.column is not None else _DEFAULT_COLUMN
            grid[row][column].append(descriptor)

    sections: list[Section] = []
    if banner:
        sections.append(_section(0, [banner]))
    for row in sorted(grid):
        columns = [grid[row][column] for column in sorted(grid[row])]
        sections.append(_section(len(sections), columns))

    if not sections:
        sections.append(_section(0, [[]]))

    return ModernPageDocument(
        site_id=site_id,
        name=name,
        title=title,
        sections=sections,
        source_page=source_page,
        metadata=dict(metadata or {}),
    )


def stock_home_page(
    *, site_id: str, name: str, title: str, source_page: str | None = None
) -> ModernPageDocument:
    """Default modern home page used in place of a legacy home page."""

    return ModernPageDocument(
        site_id=site_id,
        name=name,
        title=title,
        layout="Home",
        sections=[],
        promote_as_home_page=True,
        source_page=source_page,
    )


def _section(index: int, columns: list[list[ControlDescriptor]]) -> Section:
    count = len(columns)
    width = _GRID_WIDTH // count if count else _GRID_WIDTH
    return Section(
        index=index,
        layout=_SECTION_LAYOUTS.get(count, f"{count}Columns"),
        columns=[
            Column(index=position, width=width, controls=list(controls))
            for position, controls in enumerate(columns)
        ],
    )
