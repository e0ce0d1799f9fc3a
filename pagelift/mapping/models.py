"""Mapping document schema and the in-memory mapping specification."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UnmappedPolicy = Literal["omit", "copy"]
_PATTERN_CHARS = frozenset("*?[")


class PropertyMappingDoc(BaseModel):
    """One property mapping as written in a mapping document."""

    model_config = ConfigDict(extra="forbid")

    target: str
    source: str | None = None
    transform: str | None = None
    default: Any | None = None


class ControlMappingDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    control: str
    properties: list[PropertyMappingDoc] = Field(default_factory=list)
    row: int | None = None
    column: int | None = None


class RuleVariantDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    when: dict[str, str | bool] = Field(default_factory=dict)
    requires: list[str] = Field(default_factory=list)
    controls: list[ControlMappingDoc] = Field(default_factory=list)
    fallback: str | None = None


class ComponentRuleDoc(BaseModel):
    """Component rule in either short form (control) or long form (variants)."""

    model_config = ConfigDict(extra="forbid")

    legacy: str
    unmapped: UnmappedPolicy = "omit"
    control: str | None = None
    properties: list[PropertyMappingDoc] = Field(default_factory=list)
    variants: list[RuleVariantDoc] = Field(default_factory=list)

    @field_validator("legacy")
    @classmethod
    def _legacy_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("legacy identifier must not be blank")
        return value.strip()

    @model_validator(mode="after")
    def _one_form_only(self) -> ComponentRuleDoc:
        if self.variants and (self.control is not None or self.properties):
            raise ValueError(f"rule '{self.legacy}' mixes 'control' with 'variants'")
        if self.control is None and self.properties:
            raise ValueError(f"rule '{self.legacy}' declares properties without a control")
        return self


class PlaceholderDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field: str
    component: str = "WikiText"
    property: str = "Text"
    row: int | None = None
    column: int | None = None


class LayoutRuleDoc(BaseModel):
    model_config = ConfigDict(extra="forbid")

    layout: str
    placeholders: list[PlaceholderDoc] = Field(default_factory=list)


class MappingDocument(BaseModel):
    """Root of a YAML mapping document."""

    model_config = ConfigDict(extra="forbid")

    version: str
    components: list[ComponentRuleDoc] = Field(default_factory=list)
    layouts: list[LayoutRuleDoc] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _version_as_text(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


@dataclass(frozen=True)
class PropertyMapping:
    """Maps one source property (or a literal default) to a target property."""

    target: str
    source: str | None = None
    transform: str | None = None
    default: Any | None = None


@dataclass(frozen=True)
class ControlMapping:
    control: str
    properties: tuple[PropertyMapping, ...] = ()
    row: int | None = None
    column: int | None = None


@dataclass(frozen=True)
class RuleVariant:
    """One selectable outcome of a rule; no controls means the unit is suppressed."""

    name: str
    when: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    requires: tuple[str, ...] = ()
    controls: tuple[ControlMapping, ...] = ()
    fallback: str | None = None


@dataclass(frozen=True)
class MappingRule:
    legacy: str
    variants: tuple[RuleVariant, ...]
    unmapped: UnmappedPolicy = "omit"

    @property
    def key(self) -> str:
        return self.legacy

    @property
    def is_pattern(self) -> bool:
        return any(char in _PATTERN_CHARS for char in self.legacy)

    @property
    def specificity(self) -> int:
        """Number of literal characters in the identifier pattern."""

        return sum(1 for char in self.legacy if char not in _PATTERN_CHARS)

    def variant(self, name: str) -> RuleVariant | None:
        for item in self.variants:
            if item.name == name:
                return item
        return None


@dataclass(frozen=True)
class PlaceholderRule:
    field: str
    component: str = "WikiText"
    property: str = "Text"
    row: int | None = None
    column: int | None = None


@dataclass(frozen=True)
class LayoutRule:
    """Placeholder-field rules for one publishing page layout."""

    layout: str
    placeholders: tuple[PlaceholderRule, ...] = ()

    @property
    def key(self) -> str:
        return self.layout.lower()


@dataclass(frozen=True)
class MappingSpecification:
    """Immutable rule set used for one transformation run."""

    version: str
    rules: tuple[MappingRule, ...] = ()
    layouts: tuple[LayoutRule, ...] = ()
    _rules_by_key: Mapping[str, MappingRule] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )
    _layouts_by_key: Mapping[str, LayoutRule] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_rules_by_key", MappingProxyType({rule.key: rule for rule in self.rules})
        )
        object.__setattr__(
            self,
            "_layouts_by_key",
            MappingProxyType({layout.key: layout for layout in self.layouts}),
        )

    def rule_for(self, key: str) -> MappingRule | None:
        """Return the rule declared with exactly this identifier (or pattern)."""

        return self._rules_by_key.get(key)

    def layout_for(self, name: str) -> LayoutRule | None:
        return self._layouts_by_key.get(name.lower())

    def pattern_rules(self) -> list[MappingRule]:
        return [rule for rule in self.rules if rule.is_pattern]
