"""Repository backed by a local folder tree.

Layout::

    <root>/<site>/site.yaml                  url, available_controls, publishing_library
    <root>/<site>/<page>.yaml                legacy page stored in the site root folder
    <root>/<site>/<library>/<page>.yaml      legacy page in a library
    <root>/<site>/SitePages/<page>.json      modern page document with its item state
    <root>/<site>/SiteAssets/<report>        log reports

Every write goes to a temporary file first and is moved into place.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import ValidationError

from pagelift.analysis.models import SourcePage
from pagelift.cache.metadata_cache import (
    FACT_AVAILABLE_CONTROLS,
    FACT_PUBLISHING_LIBRARY,
    FACT_SITE_URL,
)
from pagelift.orchestrator.models import ModernPageDocument, PageReference
from pagelift.repository.base import MODERN_PAGES_LIBRARY, ItemRef
from pagelift.utils.atomic_io import atomic_write_json, atomic_write_text
from pagelift.utils.errors import (
    AlreadyExistsError,
    RemoteOperationFailure,
    UnsupportedSourceShapeError,
)

_SITE_FILE = "site.yaml"
_REPORTS_LIBRARY = "SiteAssets"
_T = TypeVar("_T")


class FolderRepository:
    """Reads legacy pages from YAML files and writes modern pages as JSON."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def get_page(
        self, site_id: str, reference: PageReference, library_hint: str | None
    ) -> SourcePage | None:
        library = reference.library or library_hint or MODERN_PAGES_LIBRARY
        folder = self._root / site_id / library
        if reference.folder:
            folder = folder / reference.folder
        return self._read_page(site_id, library, folder / f"{reference.name}.yaml")

    def get_file(self, site_id: str, path: str) -> SourcePage | None:
        name = path.rstrip("/").rsplit("/", 1)[-1]
        return self._read_page(site_id, "", self._root / site_id / f"{name}.yaml")

    def find_document(self, site_id: str, name: str) -> str | None:
        path = self._document_path(site_id, MODERN_PAGES_LIBRARY, name)
        if not path.exists():
            return None
        return ItemRef(site_id=site_id, library=MODERN_PAGES_LIBRARY, name=name).address

    def write_document(self, document: ModernPageDocument, *, overwrite: bool) -> str:
        path = self._document_path(document.site_id, document.library, document.name)
        if path.exists() and not overwrite:
            raise AlreadyExistsError(
                f"Document {document.item.address} already exists",
                address=document.item.address,
            )
        payload = {
            "document": document.model_dump(mode="json"),
            "published": False,
            "comments_enabled": True,
            "metadata": {},
            "permissions": [],
        }
        self._io("write_document", lambda: atomic_write_json(path, payload))
        return document.item.address

    def copy_metadata(self, source: ItemRef, target: ItemRef) -> None:
        page = self._require_source(source)
        self._update_document(target, lambda payload: payload["metadata"].update(page.metadata))

    def copy_permissions(self, source: ItemRef, target: ItemRef) -> None:
        page = self._require_source(source)
        self._update_document(
            target, lambda payload: payload.__setitem__("permissions", list(page.permissions))
        )

    def rename(self, item: ItemRef, new_name: str) -> ItemRef:
        renamed = ItemRef(site_id=item.site_id, library=item.library, name=new_name)
        document_path = self._document_path(item.site_id, item.library, item.name)
        if document_path.exists():
            target = self._document_path(item.site_id, item.library, new_name)
            self._ensure_free(target, renamed)

            def _move_document() -> None:
                payload = json.loads(document_path.read_text(encoding="utf-8"))
                payload["document"]["name"] = new_name
                atomic_write_json(target, payload)
                document_path.unlink()

            self._io("rename", _move_document)
            return renamed

        page_path = self._page_path(item)
        if not page_path.exists():
            page_path = self._root / item.site_id / f"{item.name}.yaml"
        if not page_path.exists():
            raise RemoteOperationFailure(f"Item {item.address} not found", operation="rename")
        target = page_path.with_name(f"{new_name}.yaml")
        self._ensure_free(target, renamed)
        self._io("rename", lambda: page_path.rename(target))
        return renamed

    def publish(self, item: ItemRef) -> None:
        self._update_document(item, lambda payload: payload.__setitem__("published", True))

    def set_comments_enabled(self, item: ItemRef, enabled: bool) -> None:
        self._update_document(
            item, lambda payload: payload.__setitem__("comments_enabled", enabled)
        )

    def ensure_site_fact(self, site_id: str, kind: str) -> Any:
        path = self._root / site_id / _SITE_FILE
        if not path.exists():
            raise RemoteOperationFailure(
                f"Site '{site_id}' not found under {self._root}", operation="ensure_site_fact"
            )
        try:
            raw = yaml.safe_load(self._io("ensure_site_fact", lambda: path.read_text("utf-8")))
        except yaml.YAMLError as exc:
            raise RemoteOperationFailure(
                f"Invalid site file {path}: {exc}", operation="ensure_site_fact"
            ) from exc
        facts = raw if isinstance(raw, dict) else {}

        if kind == FACT_SITE_URL:
            return facts.get("url", f"/sites/{site_id}")
        if kind == FACT_AVAILABLE_CONTROLS:
            return facts.get("available_controls")
        if kind == FACT_PUBLISHING_LIBRARY:
            return facts.get("publishing_library", "Pages")
        raise ValueError(f"Unsupported site fact: {kind}")

    def write_report(self, site_id: str, name: str, content: str) -> str:
        path = self._root / site_id / _REPORTS_LIBRARY / name
        self._io("write_report", lambda: atomic_write_text(path, content))
        return ItemRef(site_id=site_id, library=_REPORTS_LIBRARY, name=name).address

    def load_document(self, site_id: str, name: str) -> ModernPageDocument | None:
        path = self._document_path(site_id, MODERN_PAGES_LIBRARY, name)
        if not path.exists():
            return None
        payload = json.loads(path.read_text(encoding="utf-8"))
        return ModernPageDocument.model_validate(payload["document"])

    def _read_page(self, site_id: str, library: str, path: Path) -> SourcePage | None:
        if not path.exists():
            return None
        text = self._io("get_page", lambda: path.read_text(encoding="utf-8"))
        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise UnsupportedSourceShapeError(f"Invalid page file {path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise UnsupportedSourceShapeError(f"Page file {path} must contain a mapping")

        raw.setdefault("site_id", site_id)
        raw.setdefault("name", path.name[: -len(".yaml")])
        if library:
            raw.setdefault("library", library)
        try:
            return SourcePage.model_validate(raw)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise UnsupportedSourceShapeError(
                f"Invalid page file {path} at '{location}': {first.get('msg')}"
            ) from exc

    def _require_source(self, item: ItemRef) -> SourcePage:
        page = self._read_page(item.site_id, item.library, self._page_path(item))
        if page is None:
            root_path = self._root / item.site_id / f"{item.name}.yaml"
            page = self._read_page(item.site_id, "", root_path)
        if page is None:
            raise RemoteOperationFailure(f"Item {item.address} not found", operation="read_item")
        return page

    def _update_document(self, item: ItemRef, change: Callable[[dict[str, Any]], Any]) -> None:
        path = self._document_path(item.site_id, item.library, item.name)
        if not path.exists():
            raise RemoteOperationFailure(
                f"Document {item.address} not found", operation="update_item"
            )

        def _apply() -> None:
            payload = json.loads(path.read_text(encoding="utf-8"))
            change(payload)
            atomic_write_json(path, payload)

        self._io("update_item", _apply)

    def _ensure_free(self, path: Path, item: ItemRef) -> None:
        if path.exists():
            raise RemoteOperationFailure(f"{item.address} already exists", operation="rename")

    def _page_path(self, item: ItemRef) -> Path:
        return self._root / item.site_id / item.library / f"{item.name}.yaml"

    def _document_path(self, site_id: str, library: str, name: str) -> Path:
        return self._root / site_id / library / f"{name}.json"

    @staticmethod
    def _io(operation: str, action: Callable[[], _T]) -> _T:
        try:
            return action()
        except OSError as exc:
            raise RemoteOperationFailure(
                f"{operation} failed: {exc}", operation=operation
            ) from exc

