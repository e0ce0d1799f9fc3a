"""Decompose legacy pages into ordered content units.

Rules:
- wiki pages: each wiki zone is scanned for embedded component markers
  ``<div ... data-webpart-id="ID" ...></div>``; the text between markers
  becomes text blocks, blank runs are skipped.
- web part pages: one unit per web part, zone order then slot order.
- publishing pages: one placeholder per mapped layout field, then the web
  parts placed in zones.

Analysis never modifies the page and returns the same units for the same
snapshot.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Iterator
from types import MappingProxyType

from pagelift.analysis.models import (
    WIKI_TEXT_IDENTIFIER,
    AnalysisResult,
    ContentUnit,
    LayoutPlaceholder,
    LegacyComponent,
    SourcePage,
    SourceWebPart,
    TextBlock,
    UnplacedComponent,
    UnresolvedReference,
    WikiZone,
)
from pagelift.mapping.models import LayoutRule, PlaceholderRule
from pagelift.utils.errors import UnsupportedSourceShapeError

_EMBED_MARKER_RE = re.compile(
    r"""<div\b[^>]*\bdata-webpart-id\s*=\s*(["'])([^"']+)\1[^>]*>\s*</div>""",
    re.IGNORECASE,
)
_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_ENTITY_RE = re.compile(r"&nbsp;|&#160;|\u200b", re.IGNORECASE)
_EMBEDDED_MEDIA_RE = re.compile(r"<(img|iframe|video|table|hr)\b", re.IGNORECASE)
_SUPPORTED_SHAPES = ("wiki", "webpart", "publishing")


def analyze_page(page: SourcePage, layout: LayoutRule | None = None) -> AnalysisResult:
    """Return the ordered content units of ``page``.

    Args:
        page: Source page snapshot.
        layout: Placeholder rules for the page's publishing layout. A default
            rule is derived from the page fields when omitted.

    Raises:
        UnsupportedSourceShapeError: the page is not a wiki, web part or
            publishing page, or a publishing page has no layout.
    """

    shape = page.content_type.strip().lower()
    if shape == "wiki":
        return _analyze_wiki(page)
    if shape == "webpart":
        result = AnalysisResult(shape="webpart")
        _add_zone_components(page, result)
        return result
    if shape == "publishing":
        return _analyze_publishing(page, layout)

    raise UnsupportedSourceShapeError(
        f"Unsupported page content type '{page.content_type}', "
        f"expected one of: {', '.join(_SUPPORTED_SHAPES)}",
        page_id=page.page_id,
        step="analyze",
    )


def default_layout_rule(page: SourcePage) -> LayoutRule:
    """Route every text field of the page through the wiki text rule."""

    placeholders = tuple(
        PlaceholderRule(field=name, component=WIKI_TEXT_IDENTIFIER, property="Text")
        for name, value in page.fields.items()
        if isinstance(value, str)
    )
    return LayoutRule(layout=page.page_layout or "default", placeholders=placeholders)


def _analyze_wiki(page: SourcePage) -> AnalysisResult:
    result = AnalysisResult(shape="wiki")
    zones = sorted(page.wiki_zones, key=lambda zone: (zone.row, zone.column))
    for zone in zones:
        for unit_or_ref in _scan_wiki_zone(page, zone, start_index=len(result.units)):
            if isinstance(unit_or_ref, UnresolvedReference):
                result.unresolved.append(unit_or_ref)
            else:
                result.units.append(unit_or_ref)

    # Web parts living in regular zones of a wiki page follow the wiki text.
    embedded = {
        match.group(2) for zone in zones for match in _EMBED_MARKER_RE.finditer(zone.html or "")
    }
    _add_zone_components(page, result, embedded=embedded)
    return result


def _scan_wiki_zone(
    page: SourcePage, zone: WikiZone, start_index: int
) -> Iterator[ContentUnit | UnresolvedReference]:
    index = start_index
    cursor = 0
    html = zone.html or ""

    for match in _EMBED_MARKER_RE.finditer(html):
        text = html[cursor : match.start()]
        cursor = match.end()
        if not _is_blank(text):
            yield TextBlock(index=index, html=text.strip(), row=zone.row, column=zone.column)
            index += 1

        web_part = page.web_part(match.group(2))
        if web_part is None:
            yield UnresolvedReference(
                component_id=match.group(2),
                row=zone.row,
                column=zone.column,
                position=match.start(),
            )
            continue
        yield _component_unit(web_part, index, row=zone.row, column=zone.column)
        index += 1

    tail = html[cursor:]
    if not _is_blank(tail):
        yield TextBlock(index=index, html=tail.strip(), row=zone.row, column=zone.column)


def _add_zone_components(
    page: SourcePage, result: AnalysisResult, embedded: Collection[str] = ()
) -> None:
    """Append zone web parts in zone-then-slot order; report the ones without a zone."""

    zone_order = {zone.id: position for position, zone in enumerate(page.zones)}
    zone_lookup = {zone.id: zone for zone in page.zones}
    placed: list[SourceWebPart] = []
    for web_part in page.web_parts:
        if web_part.zone_id is not None and web_part.zone_id in zone_order:
            placed.append(web_part)
        elif web_part.id not in embedded:
            result.unplaced.append(
                UnplacedComponent(component_id=web_part.id, zone_id=web_part.zone_id)
            )
    placed.sort(key=lambda item: (zone_order[item.zone_id or ""], item.zone_index))

    for web_part in placed:
        zone = zone_lookup[web_part.zone_id or ""]
        result.units.append(
            _component_unit(web_part, len(result.units), row=zone.row, column=zone.column)
        )


def _analyze_publishing(page: SourcePage, layout: LayoutRule | None) -> AnalysisResult:
    if not page.page_layout:
        raise UnsupportedSourceShapeError(
            "Publishing page has no page layout",
            page_id=page.page_id,
            step="analyze",
        )

    rule = layout or default_layout_rule(page)
    result = AnalysisResult(shape="publishing")
    for placeholder in rule.placeholders:
        value = page.fields.get(placeholder.field)
        if value is None or (isinstance(value, str) and _is_blank(value)):
            continue
        result.units.append(
            LayoutPlaceholder(
                index=len(result.units),
                field_name=placeholder.field,
                identifier=placeholder.component,
                properties=MappingProxyType(
                    {placeholder.property: value, "Title": page.title, "Field": placeholder.field}
                ),
                row=placeholder.row,
                column=placeholder.column,
            )
        )

    _add_zone_components(page, result)
    return result


def _component_unit(
    web_part: SourceWebPart, index: int, *, row: int | None, column: int | None
) -> LegacyComponent:
    properties = dict(web_part.properties)
    properties.setdefault("Title", web_part.title)
    return LegacyComponent(
        index=index,
        identifier=web_part.type,
        component_id=web_part.id,
        title=web_part.title,
        properties=MappingProxyType(properties),
        row=row,
        column=column,
    )


def _is_blank(html: str) -> bool:
    if _EMBEDDED_MEDIA_RE.search(html):
        return False
    text = _BLANK_ENTITY_RE.sub("", _TAG_RE.sub("", html))
    return not text.strip()
