from __future__ import annotations

from typing import Any

from pagelift.analysis.models import LegacyComponent, TextBlock
from pagelift.cache.metadata_cache import FACT_AVAILABLE_CONTROLS, MetadataCache
from pagelift.mapper.mapper import Mapper
from pagelift.mapper.models import MappingContext
from pagelift.mapping.loader import load_mapping, load_mapping_text
from pagelift.mapping.models import MappingSpecification
from pagelift.mapping.transforms import TransformContext

SITE = "target"
ALL_CONTROLS = [
    "Text",
    "Image",
    "ScriptEditor",
    "CommunityScriptEditor",
    "QuickLinks",
    "List",
    "Embed",
    "ContentEmbed",
]


class _FactSource:
    def __init__(self, controls: list[str] | None) -> None:
        self.controls = controls

    def ensure_site_fact(self, site_id: str, kind: str) -> Any:
        assert kind == FACT_AVAILABLE_CONTROLS
        return self.controls


def _mapper(
    *,
    specification: MappingSpecification | None = None,
    controls: list[str] | None = ALL_CONTROLS,
    toggles: dict[str, str] | None = None,
) -> Mapper:
    cache = MetadataCache()
    cache.available_controls(_FactSource(controls), SITE)  # type: ignore[arg-type]
    context = MappingContext(
        site_id=SITE,
        mapping_properties=toggles or {},
        transform_context=TransformContext("/sites/old", "/sites/new"),
    )
    return Mapper(specification or load_mapping(), cache, context)


def _component(identifier: str, index: int = 0, **properties: Any) -> LegacyComponent:
    return LegacyComponent(
        index=index, identifier=identifier, component_id=f"wp{index}", properties=properties
    )


def test_script_editor_uses_community_control_when_toggle_on() -> None:
    mapper = _mapper(toggles={"UseCommunityScriptEditor": "True"})

    unit = _component("ScriptEditorWebPart", Content="<script>x()</script>", Title="S")

    result = mapper.map(unit)

    assert result.variant == "community"
    assert [descriptor.control for descriptor in result.descriptors] == ["CommunityScriptEditor"]
    assert result.descriptors[0].properties == {
        "script": "<script>x()</script>",
        "title": "S",
        "removePadding": True,
    }


def test_script_editor_uses_stock_control_when_toggle_off() -> None:
    mapper = _mapper(toggles={"UseCommunityScriptEditor": "false"})

    result = mapper.map(_component("ScriptEditorWebPart", Content="<b>hi</b>"))

    assert result.variant == "stock"
    assert [descriptor.control for descriptor in result.descriptors] == ["ScriptEditor"]
    assert result.descriptors[0].properties == {"html": "<b>hi</b>"}


def test_unavailable_control_follows_fallback_chain() -> None:
    controls = [control for control in ALL_CONTROLS if control != "CommunityScriptEditor"]
    mapper = _mapper(controls=controls, toggles={"UseCommunityScriptEditor": "true"})

    result = mapper.map(_component("ScriptEditorWebPart", Content="x"))

    assert result.variant == "stock"
    assert result.descriptors[0].control == "ScriptEditor"
    assert result.warnings == []


def test_fallback_variant_with_unmet_requirements_is_passed_over() -> None:
    specification = load_mapping_text(
        "version: '1'\n"
        "components:\n"
        "  - legacy: ListViewWebPart\n"
        "    variants:\n"
        "      - name: modern\n"
        "        fallback: embedded\n"
        "        controls: [{control: ModernList}]\n"
        "      - name: embedded\n"
        "        requires: [ListUrl]\n"
        "        fallback: plain\n"
        "        controls: [{control: Embed}]\n"
        "      - name: plain\n"
        "        controls: [{control: Text}]\n"
    )
    mapper = _mapper(specification=specification)

    without_url = mapper.map(_component("ListViewWebPart", Title="Tasks"))
    with_url = mapper.map(_component("ListViewWebPart", ListUrl="/sites/old/Lists/Tasks"))

    assert without_url.variant == "plain"
    assert with_url.variant == "embedded"


def test_unavailable_control_without_fallback_drops_unit_with_warning() -> None:
    mapper = _mapper(controls=["Text"])

    result = mapper.map(_component("ImageWebPart", 3, ImageLink="/sites/old/a.png"))

    assert result.descriptors == []
    assert result.dropped
    assert result.warnings[0].identifier == "ImageWebPart"
    assert result.warnings[0].source_index == 3
    assert "not available" in result.warnings[0].message


def test_unknown_component_is_dropped_with_warning() -> None:
    result = _mapper().map(_component("MysteryWebPart"))

    assert result.descriptors == []
    assert len(result.warnings) == 1
    assert "No mapping rule for 'MysteryWebPart'" in result.warnings[0].message


def test_text_without_rule_falls_back_to_text_control_without_warning() -> None:
    specification = load_mapping_text("version: '1'\n")
    mapper = _mapper(specification=specification)

    result = mapper.map(TextBlock(index=0, html='<a href="/sites/old/p.aspx">p</a>'))

    assert result.used_default
    assert result.warnings == []
    assert [descriptor.control for descriptor in result.descriptors] == ["Text"]
    assert result.descriptors[0].properties == {"html": '<a href="/sites/new/p.aspx">p</a>'}


def test_text_rule_with_unavailable_control_falls_back_to_text() -> None:
    specification = load_mapping_text(
        "version: '1'\ncomponents:\n  - legacy: WikiText\n    control: FancyText\n"
    )
    mapper = _mapper(specification=specification, controls=["Text"])

    result = mapper.map(TextBlock(index=0, html="<p>hi</p>"))

    assert result.used_default
    assert result.warnings == []
    assert result.descriptors[0].control == "Text"


def test_suppressing_rule_produces_nothing_and_no_warning() -> None:
    result = _mapper().map(_component("SiteFeedWebPart"))

    assert result.descriptors == []
    assert result.warnings == []
    assert result.rule == "SiteFeedWebPart"


def test_failed_transform_drops_only_that_property() -> None:
    result = _mapper().map(
        _component("ImageWebPart", ImageLink="http://[broken", AlternativeText="alt", Title="T")
    )

    assert result.warnings == []
    assert result.descriptors[0].properties == {"altText": "alt", "title": "T"}
    assert len(result.property_issues) == 1
    assert "imageSource" in result.property_issues[0]


def test_requires_selects_linked_content_editor() -> None:
    mapper = _mapper()

    linked = mapper.map(_component("ContentEditorWebPart", ContentLink="/sites/old/c.html"))
    inline = mapper.map(_component("ContentEditorWebPart", Content="<p>x</p>", ContentLink=" "))

    assert linked.variant == "linked"
    assert linked.descriptors[0].properties["url"] == "/sites/new/c.html"
    assert inline.variant == "inline"
    assert inline.descriptors[0].control == "Text"


def test_pattern_rule_matches_and_more_specific_pattern_wins() -> None:
    specification = load_mapping_text(
        """
version: "1"
components:
  - legacy: "*WebPart"
    control: Text
  - legacy: "*ListViewWebPart"
    control: List
  - legacy: XsltListViewWebPart
    control: Embed
"""
    )
    mapper = _mapper(specification=specification)

    assert mapper.map(_component("ListViewWebPart")).descriptors[0].control == "List"
    assert mapper.map(_component("XsltListViewWebPart")).descriptors[0].control == "Embed"
    assert mapper.map(_component("OtherWebPart")).descriptors[0].control == "Text"


def test_fan_out_keeps_declared_control_order_and_layout_hints() -> None:
    specification = load_mapping_text(
        """
version: "1"
components:
  - legacy: HeroWebPart
    control: Image
    properties:
      - {source: Image, target: imageSource}
  - legacy: SplitWebPart
    variants:
      - name: split
        controls:
          - {control: Image, column: 1}
          - {control: Text, column: 2, properties: [{source: Body, target: html}]}
"""
    )

    result = _mapper(specification=specification).map(_component("SplitWebPart", Body="b"))

    assert [descriptor.control for descriptor in result.descriptors] == ["Image", "Text"]
    assert [descriptor.column for descriptor in result.descriptors] == [1, 2]
    assert result.descriptors[1].properties == {"html": "b"}


def test_unmapped_copy_keeps_remaining_properties() -> None:
    specification = load_mapping_text(
        """
version: "1"
components:
  - legacy: Custom
    unmapped: copy
    control: Embed
    properties:
      - {source: Url, target: embedUrl}
"""
    )

    result = _mapper(specification=specification).map(_component("Custom", Url="u", Height=10))

    assert result.descriptors[0].properties == {"embedUrl": "u", "Height": 10}


def test_missing_catalog_treats_every_control_as_available() -> None:
    mapper = _mapper(controls=None, toggles={"UseCommunityScriptEditor": "true"})

    result = mapper.map(_component("ScriptEditorWebPart", Content="x"))

    assert result.descriptors[0].control == "CommunityScriptEditor"


def test_map_units_preserves_source_order() -> None:
    units = [
        TextBlock(index=0, html="<p>a</p>"),
        _component("ImageWebPart", 1, ImageLink="/x.png"),
        _component("SiteFeedWebPart", 2),
        TextBlock(index=3, html="<p>b</p>"),
    ]

    results = _mapper().map_units(units)

    assert [result.source_index for result in results] == [0, 1, 2, 3]
    assert [result.identifier for result in results] == [
        "WikiText",
        "ImageWebPart",
        "SiteFeedWebPart",
        "WikiText",
    ]
