"""Options, page references and the modern page document model."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from pagelift.mapper.models import ControlDescriptor
from pagelift.repository.base import MODERN_PAGES_LIBRARY, ItemRef

ROOT_FOLDER = "<root>"
PageLayout = Literal["Article", "Home"]


@dataclass(frozen=True)
class PageReference:
    """Identifies the page to transform within the source site."""

    name: str
    library: str | None = None
    folder: str | None = None

    @property
    def in_root_folder(self) -> bool:
        return (self.folder or "").strip().lower() == ROOT_FOLDER


class TransformationOptions(BaseModel):
    """Immutable options value for one run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    overwrite: bool = False
    take_source_name: bool = False
    replace_home_page: bool = False
    add_acceptance_banner: bool = False
    skip_permission_copy: bool = False
    skip_url_rewrite: bool = False
    clear_cache: bool = False
    copy_metadata: bool = False
    use_alternate_editor_control: bool = False
    links_to_plain_html: bool = False
    target_site: str | None = None
    log_destination_kind: Literal["none", "file", "repository"] = "none"
    log_folder: Path | None = None
    log_skip_flush: bool = False
    log_verbose: bool = False
    suppress_publish: bool = False
    disable_comments: bool = False
    publishing_mode: bool = False
    mapping_path: Path | None = None
    page_layout_mapping_path: Path | None = None
    publishing_target_name: str | None = None
    strict_metadata: bool = False
    strict_permissions: bool = False
    mapping_properties: dict[str, str] = Field(default_factory=dict)

    def effective_mapping_properties(self) -> dict[str, str]:
        """Rule-level toggles derived from the switches, overridden by explicit entries."""

        toggles = {
            "SummaryLinksToQuickLinks": str(not self.links_to_plain_html).lower(),
            "UseCommunityScriptEditor": str(self.use_alternate_editor_control).lower(),
        }
        toggles.update(self.mapping_properties)
        return toggles


class Column(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    index: int
    width: int
    controls: list[ControlDescriptor] = Field(default_factory=list)


class Section(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    index: int
    layout: str
    columns: list[Column] = Field(default_factory=list)


class ModernPageDocument(BaseModel):
    """Section -> column -> control document written to the destination."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    site_id: str
    name: str
    library: str = MODERN_PAGES_LIBRARY
    title: str = ""
    layout: PageLayout = "Article"
    sections: list[Section] = Field(default_factory=list)
    promote_as_home_page: bool = False
    source_page: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def item(self) -> ItemRef:
        return ItemRef(site_id=self.site_id, library=self.library, name=self.name)

    def controls(self) -> list[ControlDescriptor]:
        """All controls in reading order (section, column, position)."""

        return [
            control
            for section in self.sections
            for column in section.columns
            for control in column.controls
        ]


@dataclass
class PageOutcome:
    reference: PageReference
    address: str | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    outcomes: list[PageOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[PageOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def succeeded(self) -> list[PageOutcome]:
        return [outcome for outcome in self.outcomes if outcome.succeeded]
