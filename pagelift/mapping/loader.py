"""Mapping document loading, validation and merging."""

from __future__ import annotations

import shutil
from pathlib import Path
from types import MappingProxyType

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from pagelift.mapping.models import (
    ComponentRuleDoc,
    ControlMapping,
    ControlMappingDoc,
    LayoutRule,
    MappingDocument,
    MappingRule,
    MappingSpecification,
    PlaceholderRule,
    PropertyMapping,
    RuleVariant,
)
from pagelift.mapping.transforms import is_registered
from pagelift.utils.errors import MalformedMappingError

_DEFAULT_VARIANT_NAME = "default"


def default_mapping_path() -> Path:
    return Path(__file__).with_name("default_mapping.yaml")


def load_mapping(path: Path | None = None) -> MappingSpecification:
    """Load and validate a mapping document from YAML.

    The packaged default mapping is used when ``path`` is None.
    """

    mapping_path = path or default_mapping_path()
    try:
        text = mapping_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise MalformedMappingError(
            f"Mapping file not found: {mapping_path}", source=str(mapping_path)
        ) from exc
    except OSError as exc:
        raise MalformedMappingError(
            f"Mapping file not readable: {mapping_path}", source=str(mapping_path)
        ) from exc
    return load_mapping_text(text, source=str(mapping_path))


def load_mapping_text(text: str, source: str = "<memory>") -> MappingSpecification:
    """Load and validate a mapping document held in memory."""

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MalformedMappingError(f"Invalid YAML in mapping: {source}", source=source) from exc

    if not isinstance(raw, dict):
        raise MalformedMappingError(f"Mapping must contain a mapping: {source}", source=source)

    try:
        document = MappingDocument.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise MalformedMappingError(
            f"Invalid mapping schema: {source} ({location}: {first.get('msg')})",
            source=source,
        ) from exc

    _check_document(document, source)
    return _build_specification(document)


def merge_mappings(
    base: MappingSpecification, override: MappingSpecification
) -> MappingSpecification:
    """Merge two specifications; on key collisions the override's entry wins."""

    override_rules = {rule.key: rule for rule in override.rules}
    rules = [override_rules.get(rule.key, rule) for rule in base.rules]
    base_rule_keys = {rule.key for rule in base.rules}
    rules.extend(rule for rule in override.rules if rule.key not in base_rule_keys)

    override_layouts = {layout.key: layout for layout in override.layouts}
    layouts = [override_layouts.get(layout.key, layout) for layout in base.layouts]
    base_layout_keys = {layout.key for layout in base.layouts}
    layouts.extend(layout for layout in override.layouts if layout.key not in base_layout_keys)

    return MappingSpecification(
        version=override.version,
        rules=tuple(rules),
        layouts=tuple(layouts),
    )


def export_default_mapping(path: Path) -> Path:
    """Copy the packaged default mapping so it can be customized."""

    path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(default_mapping_path(), path)
    return path


def _check_document(document: MappingDocument, source: str) -> None:
    seen_rules: set[str] = set()
    for rule in document.components:
        if rule.legacy in seen_rules:
            raise MalformedMappingError(
                f"Duplicate rule identifier '{rule.legacy}' in mapping: {source}", source=source
            )
        seen_rules.add(rule.legacy)
        _check_rule(rule, source)

    seen_layouts: set[str] = set()
    for layout in document.layouts:
        key = layout.layout.lower()
        if key in seen_layouts:
            raise MalformedMappingError(
                f"Duplicate page layout '{layout.layout}' in mapping: {source}", source=source
            )
        seen_layouts.add(key)


def _check_rule(rule: ComponentRuleDoc, source: str) -> None:
    variant_names = [variant.name for variant in rule.variants]
    if len(set(variant_names)) != len(variant_names):
        raise MalformedMappingError(
            f"Duplicate variant names in rule '{rule.legacy}': {source}", source=source
        )

    for variant in rule.variants:
        if variant.fallback is not None and variant.fallback not in variant_names:
            raise MalformedMappingError(
                f"Rule '{rule.legacy}' variant '{variant.name}' falls back to "
                f"unknown variant '{variant.fallback}': {source}",
                source=source,
            )

    controls = [control for variant in rule.variants for control in variant.controls]
    if rule.control is not None:
        controls.append(ControlMappingDoc(control=rule.control, properties=rule.properties))
    for control in controls:
        for prop in control.properties:
            if prop.transform is not None and not is_registered(prop.transform):
                raise MalformedMappingError(
                    f"Unknown transform function '{prop.transform}' in rule "
                    f"'{rule.legacy}': {source}",
                    source=source,
                )


def _build_specification(document: MappingDocument) -> MappingSpecification:
    rules = tuple(_build_rule(rule) for rule in document.components)
    layouts = tuple(
        LayoutRule(
            layout=layout.layout,
            placeholders=tuple(
                PlaceholderRule(
                    field=item.field,
                    component=item.component,
                    property=item.property,
                    row=item.row,
                    column=item.column,
                )
                for item in layout.placeholders
            ),
        )
        for layout in document.layouts
    )
    return MappingSpecification(version=document.version, rules=rules, layouts=layouts)


def _build_rule(rule: ComponentRuleDoc) -> MappingRule:
    if rule.variants:
        variants = tuple(
            RuleVariant(
                name=variant.name,
                when=MappingProxyType(
                    {key: _toggle_text(value) for key, value in variant.when.items()}
                ),
                requires=tuple(variant.requires),
                controls=tuple(_build_control(control) for control in variant.controls),
                fallback=variant.fallback,
            )
            for variant in rule.variants
        )
    elif rule.control is not None:
        control = ControlMappingDoc(control=rule.control, properties=rule.properties)
        variants = (RuleVariant(name=_DEFAULT_VARIANT_NAME, controls=(_build_control(control),)),)
    else:
        variants = (RuleVariant(name=_DEFAULT_VARIANT_NAME),)

    return MappingRule(legacy=rule.legacy, variants=variants, unmapped=rule.unmapped)


def _build_control(control: ControlMappingDoc) -> ControlMapping:
    return ControlMapping(
        control=control.control,
        properties=tuple(
            PropertyMapping(
                target=prop.target,
                source=prop.source,
                transform=prop.transform,
                default=prop.default,
            )
            for prop in control.properties
        ),
        row=control.row,
        column=control.column,
    )


def _toggle_text(value: str | bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value.strip().lower()
