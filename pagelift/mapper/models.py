"""Mapper inputs and outputs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pagelift.mapping.transforms import TransformContext
from pagelift.utils.errors import UnmappableContentWarning

TEXT_CONTROL = "Text"


class ControlDescriptor(BaseModel):
    """One modern control produced from a content unit."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    control: str
    properties: dict[str, Any] = Field(default_factory=dict)
    row: int | None = None
    column: int | None = None
    source_index: int
    source_identifier: str


@dataclass(frozen=True)
class MappingContext:
    """Run-level inputs of the mapper besides the rules themselves."""

    site_id: str
    mapping_properties: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    transform_context: TransformContext = field(default_factory=TransformContext)

    def toggle(self, name: str) -> str:
        """Return a mapping property as a normalized (lowercase) string."""

        lowered = name.lower()
        for key, value in self.mapping_properties.items():
            if key.lower() == lowered:
                return str(value).strip().lower()
        return ""


@dataclass
class MappingResult:
    """Mapping decision for one content unit."""

    source_index: int
    identifier: str
    descriptors: list[ControlDescriptor] = field(default_factory=list)
    warnings: list[UnmappableContentWarning] = field(default_factory=list)
    property_issues: list[str] = field(default_factory=list)
    rule: str | None = None
    variant: str | None = None
    used_default: bool = False

    @property
    def dropped(self) -> bool:
        return bool(self.warnings)
