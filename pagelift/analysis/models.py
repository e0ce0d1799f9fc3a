"""Source page models and the content units produced by analysis."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

WIKI_TEXT_IDENTIFIER = "WikiText"


class WikiZone(BaseModel):
    """One layout cell of a wiki page holding rich-text HTML."""

    model_config = ConfigDict(extra="forbid")

    row: int = 1
    column: int = 1
    html: str = ""


class WebPartZone(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    row: int = 1
    column: int = 1


class SourceWebPart(BaseModel):
    """Legacy component instance as returned by the repository."""

    model_config = ConfigDict(extra="forbid")

    id: str
    type: str
    title: str = ""
    zone_id: str | None = None
    zone_index: int = 0
    properties: dict[str, Any] = Field(default_factory=dict)


class SourcePage(BaseModel):
    """Snapshot of a legacy page."""

    model_config = ConfigDict(extra="forbid")

    site_id: str
    name: str
    library: str = "SitePages"
    content_type: str
    title: str = ""
    server_relative_url: str = ""
    wiki_zones: list[WikiZone] = Field(default_factory=list)
    zones: list[WebPartZone] = Field(default_factory=list)
    web_parts: list[SourceWebPart] = Field(default_factory=list)
    page_layout: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    permissions: list[str] = Field(default_factory=list)
    is_home_page: bool = False

    @property
    def page_id(self) -> str:
        return f"{self.site_id}/{self.library}/{self.name}"

    def web_part(self, web_part_id: str) -> SourceWebPart | None:
        for item in self.web_parts:
            if item.id == web_part_id:
                return item
        return None


def _frozen_properties(values: Mapping[str, Any] | None = None) -> Mapping[str, Any]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class TextBlock:
    """A run of rich text between legacy components."""

    index: int
    html: str
    row: int | None = None
    column: int | None = None
    identifier: str = WIKI_TEXT_IDENTIFIER
    kind: Literal["text"] = "text"

    @property
    def properties(self) -> Mapping[str, Any]:
        return MappingProxyType({"Text": self.html})


@dataclass(frozen=True)
class LegacyComponent:
    """A legacy web part with its property bag."""

    index: int
    identifier: str
    component_id: str
    title: str = ""
    properties: Mapping[str, Any] = field(default_factory=_frozen_properties)
    row: int | None = None
    column: int | None = None
    kind: Literal["component"] = "component"


@dataclass(frozen=True)
class LayoutPlaceholder:
    """A publishing layout field routed through a component rule."""

    index: int
    field_name: str
    identifier: str
    properties: Mapping[str, Any] = field(default_factory=_frozen_properties)
    row: int | None = None
    column: int | None = None
    kind: Literal["placeholder"] = "placeholder"


ContentUnit = TextBlock | LegacyComponent | LayoutPlaceholder


@dataclass(frozen=True)
class UnresolvedReference:
    """Embedded component marker that points at no known component."""

    component_id: str
    row: int
    column: int
    position: int


@dataclass(frozen=True)
class UnplacedComponent:
    """Web part that sits in no known zone and is referenced by no marker."""

    component_id: str
    zone_id: str | None


@dataclass
class AnalysisResult:
    """Ordered content units of one source page."""

    shape: Literal["wiki", "webpart", "publishing"]
    units: list[ContentUnit] = field(default_factory=list)
    unresolved: list[UnresolvedReference] = field(default_factory=list)
    unplaced: list[UnplacedComponent] = field(default_factory=list)
