"""Named property transform functions referenced by mapping documents."""

from __future__ import annotations

import html
import re
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from pagelift.utils.errors import TransformFunctionError

_URL_ATTRIBUTE_RE = re.compile(r"""\b(href|src)\s*=\s*(["'])(.*?)\2""", re.IGNORECASE)
_ANCHOR_RE = re.compile(
    r"""<a\b[^>]*\bhref\s*=\s*(["'])(.*?)\1[^>]*>(.*?)</a>""", re.IGNORECASE | re.DOTALL
)
_DROP_BLOCK_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_LINE_BREAK_RE = re.compile(r"<br\s*/?>|</(p|div|li|h[1-6]|tr)\s*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_TRUE_TOKENS = {"true", "yes", "1", "on"}
_FALSE_TOKENS = {"false", "no", "0", "off", ""}
_MANAGED_PATHS = {"sites", "teams", "personal"}


@dataclass(frozen=True)
class TransformContext:
    """Site information available to transform functions."""

    source_site_url: str = ""
    target_site_url: str = ""
    rewrite_urls: bool = True

    @property
    def cross_site(self) -> bool:
        return self.source_site_url.rstrip("/") != self.target_site_url.rstrip("/")


TransformFunction = Callable[[object, TransformContext], object]


def rewrite_relative_url(value: object, context: TransformContext) -> object:
    """Point a server-relative URL below the source site at the target site."""

    if not isinstance(value, str):
        raise TransformFunctionError(f"URL value must be a string, got {type(value).__name__}")
    try:
        parts = urlsplit(value.strip())
    except ValueError as exc:
        raise TransformFunctionError(f"Malformed URL: {value!r}") from exc

    if not context.rewrite_urls or not context.cross_site:
        return value
    if parts.scheme or parts.netloc or not parts.path.startswith("/"):
        return value

    source = context.source_site_url.rstrip("/")
    target = context.target_site_url.rstrip("/")
    path = parts.path
    if not source:
        # A root site does not own the paths of its sub sites.
        if _belongs_to_sub_site(path):
            return value
    elif not (path == source or path.startswith(source + "/")):
        return value

    new_path = target + path[len(source) :]
    return urlunsplit(("", "", new_path or "/", parts.query, parts.fragment))


def _belongs_to_sub_site(path: str) -> bool:
    first = path.lstrip("/").split("/", 1)[0]
    return first.lower() in _MANAGED_PATHS


def rewrite_html_urls(value: object, context: TransformContext) -> object:
    """Rewrite href/src attributes in an HTML fragment.

    Attributes holding URLs that cannot be parsed are left untouched.
    """

    if not isinstance(value, str):
        raise TransformFunctionError(f"HTML value must be a string, got {type(value).__name__}")

    def _replace(match: re.Match[str]) -> str:
        attribute, quote, url = match.group(1), match.group(2), match.group(3)
        try:
            rewritten = rewrite_relative_url(url, context)
        except TransformFunctionError:
            return match.group(0)
        return f"{attribute}={quote}{rewritten}{quote}"

    return _URL_ATTRIBUTE_RE.sub(_replace, value)


def markup_to_plaintext(value: object, context: TransformContext) -> object:
    if not isinstance(value, str):
        raise TransformFunctionError(f"Markup value must be a string, got {type(value).__name__}")
    text = _DROP_BLOCK_RE.sub("", value)
    text = _LINE_BREAK_RE.sub("\n", text)
    text = html.unescape(_TAG_RE.sub("", text))
    lines = [" ".join(line.split()) for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def summary_links_to_items(value: object, context: TransformContext) -> object:
    """Turn a summary-links HTML fragment into quick-link items."""

    if not isinstance(value, str):
        raise TransformFunctionError(
            f"Summary links value must be a string, got {type(value).__name__}"
        )
    items: list[dict[str, object]] = []
    for match in _ANCHOR_RE.finditer(value):
        title = markup_to_plaintext(match.group(3), context)
        items.append({"title": title, "url": rewrite_relative_url(match.group(2), context)})
    return items


def to_bool(value: object, context: TransformContext) -> object:
    if isinstance(value, bool):
        return value
    token = str(value).strip().lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    raise TransformFunctionError(f"Cannot convert {value!r} to a boolean")


def to_int(value: object, context: TransformContext) -> object:
    if isinstance(value, bool):
        raise TransformFunctionError("Boolean values are not integers")
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise TransformFunctionError(f"Cannot convert {value!r} to an integer") from exc


def _string_op(operation: Callable[[str], str]) -> TransformFunction:
    def _apply(value: object, context: TransformContext) -> object:
        if not isinstance(value, str):
            raise TransformFunctionError(f"Expected a string, got {type(value).__name__}")
        return operation(value)

    return _apply


_TRANSFORMS: dict[str, TransformFunction] = {
    "lowercase": _string_op(str.lower),
    "markup_to_plaintext": markup_to_plaintext,
    "rewrite_html_urls": rewrite_html_urls,
    "rewrite_relative_url": rewrite_relative_url,
    "summary_links_to_items": summary_links_to_items,
    "to_bool": to_bool,
    "to_int": to_int,
    "trim": _string_op(str.strip),
    "uppercase": _string_op(str.upper),
}


def get_transform(name: str) -> TransformFunction:
    """Return a registered transform function by name."""

    try:
        return _TRANSFORMS[name]
    except KeyError as exc:
        raise ValueError(f"Unsupported transform function: {name}") from exc


def is_registered(name: str) -> bool:
    return name in _TRANSFORMS


def list_transforms() -> list[str]:
    """Return registered transform names in stable order."""

    return sorted(_TRANSFORMS)
