from __future__ import annotations

import pytest

from pagelift.mapping.transforms import (
    TransformContext,
    get_transform,
    is_registered,
    list_transforms,
    markup_to_plaintext,
    rewrite_html_urls,
    rewrite_relative_url,
    summary_links_to_items,
    to_bool,
    to_int,
)
from pagelift.utils.errors import TransformFunctionError

CROSS_SITE = TransformContext(source_site_url="/sites/old", target_site_url="/sites/new")
SAME_SITE = TransformContext(source_site_url="/sites/old", target_site_url="/sites/old")


def test_relative_url_below_source_site_is_rewritten() -> None:
    assert rewrite_relative_url("/sites/old/docs/a.pdf?x=1#top", CROSS_SITE) == (
        "/sites/new/docs/a.pdf?x=1#top"
    )


@pytest.mark.parametrize(
    "url",
    ["https://contoso.com/sites/old/a.aspx", "/sites/other/a.aspx", "docs/a.aspx"],
)
def test_urls_outside_source_site_are_left_alone(url: str) -> None:
    assert rewrite_relative_url(url, CROSS_SITE) == url


def test_in_place_and_disabled_rewrites_keep_url() -> None:
    disabled = TransformContext("/sites/old", "/sites/new", rewrite_urls=False)

    assert rewrite_relative_url("/sites/old/a.aspx", SAME_SITE) == "/sites/old/a.aspx"
    assert rewrite_relative_url("/sites/old/a.aspx", disabled) == "/sites/old/a.aspx"


def test_root_source_site_rewrites_only_its_own_paths() -> None:
    from_root = TransformContext(source_site_url="/", target_site_url="/sites/modern")

    assert rewrite_relative_url("/SitePages/News.aspx", from_root) == (
        "/sites/modern/SitePages/News.aspx"
    )
    assert rewrite_relative_url("/sites/hr/Shared Documents/a.docx", from_root) == (
        "/sites/hr/Shared Documents/a.docx"
    )
    assert rewrite_relative_url("/teams/sales", from_root) == "/teams/sales"


def test_malformed_url_raises_transform_error() -> None:
    with pytest.raises(TransformFunctionError, match="Malformed URL"):
        rewrite_relative_url("http://[broken", CROSS_SITE)


def test_non_string_url_raises_transform_error() -> None:
    with pytest.raises(TransformFunctionError, match="must be a string"):
        rewrite_relative_url(42, CROSS_SITE)


def test_html_urls_are_rewritten_and_broken_ones_kept() -> None:
    html = '<a href="/sites/old/a.aspx">A</a><img src="http://[broken"/>'

    result = rewrite_html_urls(html, CROSS_SITE)

    assert result == '<a href="/sites/new/a.aspx">A</a><img src="http://[broken"/>'


def test_markup_to_plaintext_drops_tags_and_scripts() -> None:
    html = "<p>Hello&nbsp;<b>world</b></p><script>alert(1)</script><div>next   line</div>"

    assert markup_to_plaintext(html, CROSS_SITE) == "Hello world\nnext line"


def test_summary_links_become_items() -> None:
    html = (
        '<div><a href="/sites/old/a.aspx">First <b>link</b></a>'
        '<a href="https://x.org">X</a></div>'
    )

    assert summary_links_to_items(html, CROSS_SITE) == [
        {"title": "First link", "url": "/sites/new/a.aspx"},
        {"title": "X", "url": "https://x.org"},
    ]


def test_scalar_conversions() -> None:
    assert to_bool("Yes", CROSS_SITE) is True
    assert to_bool("off", CROSS_SITE) is False
    assert to_int(" 300 ", CROSS_SITE) == 300

    with pytest.raises(TransformFunctionError):
        to_bool("maybe", CROSS_SITE)
    with pytest.raises(TransformFunctionError):
        to_int("300px", CROSS_SITE)


def test_registry_lookup() -> None:
    assert is_registered("trim")
    assert get_transform("uppercase")("abc", CROSS_SITE) == "ABC"
    assert list_transforms() == sorted(list_transforms())

    with pytest.raises(ValueError, match="Unsupported transform function"):
        get_transform("missing")
