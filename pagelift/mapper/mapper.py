"""Rule resolution and content unit -> modern control mapping.

Resolution order for one unit:
1. rule declared with exactly the unit's identifier;
2. most specific glob-pattern rule (most literal characters, first declared
   on ties);
3. the built-in text control when the unit is a text block;
4. otherwise the unit is dropped with an ``UnmappableContentWarning``.

A property transform that fails drops only that property; the control is
still produced and the failure is reported in ``property_issues``.
"""

from __future__ import annotations

from collections.abc import Iterable
from fnmatch import fnmatchcase
from typing import Any

from pagelift.analysis.models import ContentUnit, TextBlock
from pagelift.cache.metadata_cache import FACT_AVAILABLE_CONTROLS, MetadataCache
from pagelift.mapper.models import TEXT_CONTROL, ControlDescriptor, MappingContext, MappingResult
from pagelift.mapping.models import ControlMapping, MappingRule, MappingSpecification, RuleVariant
from pagelift.mapping.transforms import get_transform
from pagelift.utils.errors import TransformFunctionError, UnmappableContentWarning


class Mapper:
    """Maps content units using one specification and the cached control catalog.

    The mapper only reads the cache (``peek``); the caller warms the control
    catalog of the destination site before mapping. An empty cache slot means
    every control is considered available.
    """

    def __init__(
        self,
        specification: MappingSpecification,
        cache: MetadataCache,
        context: MappingContext,
    ) -> None:
        self._specification = specification
        self._cache = cache
        self._context = context

    def map_units(self, units: Iterable[ContentUnit]) -> list[MappingResult]:
        """Map units one by one, keeping their order."""

        return [self.map(unit) for unit in units]

    def map(self, unit: ContentUnit) -> MappingResult:
        result = MappingResult(source_index=unit.index, identifier=unit.identifier)
        rule = self.resolve_rule(unit.identifier)

        if rule is None:
            if isinstance(unit, TextBlock):
                return self._map_default_text(unit, result)
            return _drop(result, f"No mapping rule for '{unit.identifier}'")

        result.rule = rule.key
        variant = self._select_variant(rule, unit)
        if variant is None:
            if isinstance(unit, TextBlock):
                return self._map_default_text(unit, result)
            return _drop(result, f"No variant of rule '{rule.key}' applies to '{unit.identifier}'")

        available = self._first_available(rule, variant, unit)
        if available is None:
            if isinstance(unit, TextBlock):
                return self._map_default_text(unit, result)
            missing = ", ".join(control.control for control in variant.controls)
            return _drop(
                result,
                f"Control(s) {missing} for '{unit.identifier}' not available in site "
                f"'{self._context.site_id}' and no fallback applies",
            )

        result.variant = available.name
        for control in available.controls:
            result.descriptors.append(self._build_descriptor(unit, rule, control, result))
        return result

    def resolve_rule(self, identifier: str) -> MappingRule | None:
        exact = self._specification.rule_for(identifier)
        if exact is not None and not exact.is_pattern:
            return exact

        candidates = [
            rule
            for rule in self._specification.pattern_rules()
            if fnmatchcase(identifier, rule.legacy)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda rule: rule.specificity)

    def _select_variant(self, rule: MappingRule, unit: ContentUnit) -> RuleVariant | None:
        for variant in rule.variants:
            if self._applies(variant, unit):
                return variant
        return None

    def _applies(self, variant: RuleVariant, unit: ContentUnit) -> bool:
        toggles_hold = all(
            self._context.toggle(name) == expected for name, expected in variant.when.items()
        )
        return toggles_hold and all(
            _has_value(unit.properties.get(name)) for name in variant.requires
        )

    def _first_available(
        self, rule: MappingRule, variant: RuleVariant, unit: ContentUnit
    ) -> RuleVariant | None:
        """Follow the fallback chain to the first variant whose controls exist.

        A fallback whose own ``when``/``requires`` conditions fail is passed over
        and its fallback is tried next.
        """

        catalog = self._cache.peek(self._context.site_id, FACT_AVAILABLE_CONTROLS)
        visited: set[str] = set()
        current: RuleVariant | None = variant

        while current is not None and current.name not in visited:
            if self._applies(current, unit) and all(
                _is_available(control.control, catalog) for control in current.controls
            ):
                return current
            visited.add(current.name)
            current = rule.variant(current.fallback) if current.fallback else None
        return None

    def _build_descriptor(
        self,
        unit: ContentUnit,
        rule: MappingRule,
        control: ControlMapping,
        result: MappingResult,
    ) -> ControlDescriptor:
        source = unit.properties
        properties: dict[str, Any] = {}
        consumed: set[str] = set()

        for mapping in control.properties:
            if mapping.source is not None:
                consumed.add(mapping.source)
            value = source.get(mapping.source) if mapping.source is not None else None
            if value is None:
                if mapping.default is not None:
                    properties[mapping.target] = mapping.default
                continue

            if mapping.transform is not None:
                try:
                    value = get_transform(mapping.transform)(
                        value, self._context.transform_context
                    )
                except TransformFunctionError as exc:
                    result.property_issues.append(
                        f"{unit.identifier}.{mapping.source} -> {control.control}."
                        f"{mapping.target}: {mapping.transform} failed ({exc}); property dropped"
                    )
                    continue
            properties[mapping.target] = value

        if rule.unmapped == "copy":
            for key, value in source.items():
                if key not in consumed and key not in properties:
                    properties[key] = value

        return ControlDescriptor(
            control=control.control,
            properties=properties,
            row=control.row if control.row is not None else unit.row,
            column=control.column if control.column is not None else unit.column,
            source_index=unit.index,
            source_identifier=unit.identifier,
        )

    def _map_default_text(self, unit: TextBlock, result: MappingResult) -> MappingResult:
        html: object = unit.html
        try:
            html = get_transform("rewrite_html_urls")(html, self._context.transform_context)
        except TransformFunctionError as exc:
            result.property_issues.append(f"{unit.identifier}: url rewrite failed ({exc})")

        result.used_default = True
        result.variant = None
        result.descriptors = [
            ControlDescriptor(
                control=TEXT_CONTROL,
                properties={"html": html},
                row=unit.row,
                column=unit.column,
                source_index=unit.index,
                source_identifier=unit.identifier,
            )
        ]
        return result


def _drop(result: MappingResult, message: str) -> MappingResult:
    result.descriptors = []
    result.warnings.append(
        UnmappableContentWarning(
            message, identifier=result.identifier, source_index=result.source_index
        )
    )
    return result


def _is_available(control: str, catalog: frozenset[str] | None) -> bool:
    if control == TEXT_CONTROL or catalog is None:
        return True
    return control in catalog


def _has_value(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True
