"""In-process repository used for embedding and tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pagelift.analysis.models import SourcePage
from pagelift.cache.metadata_cache import (
    FACT_AVAILABLE_CONTROLS,
    FACT_PUBLISHING_LIBRARY,
    FACT_SITE_URL,
)
from pagelift.orchestrator.models import ModernPageDocument, PageReference
from pagelift.repository.base import MODERN_PAGES_LIBRARY, ItemRef
from pagelift.utils.errors import AlreadyExistsError, RemoteOperationFailure

_Key = tuple[str, str, str]


@dataclass
class SiteState:
    url: str
    available_controls: list[str] | None = None
    publishing_library: str = "Pages"


@dataclass
class StoredDocument:
    document: ModernPageDocument
    published: bool = False
    comments_enabled: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)
    permissions: list[str] = field(default_factory=list)


class MemoryRepository:
    """Dict-backed repository.

    ``calls`` records every mutating operation in order; ``fail`` makes an
    operation raise on its next calls, which lets tests simulate remote faults.
    """

    def __init__(self) -> None:
        self.sites: dict[str, SiteState] = {}
        self.pages: dict[_Key, SourcePage] = {}
        self.files: dict[tuple[str, str], SourcePage] = {}
        self.documents: dict[_Key, StoredDocument] = {}
        self.reports: dict[tuple[str, str], str] = {}
        self.calls: list[str] = []
        self.fact_fetches: list[tuple[str, str]] = []
        self._failures: dict[str, Exception] = {}

    def add_site(
        self,
        site_id: str,
        *,
        url: str,
        available_controls: list[str] | None = None,
        publishing_library: str = "Pages",
    ) -> None:
        self.sites[site_id] = SiteState(
            url=url,
            available_controls=available_controls,
            publishing_library=publishing_library,
        )

    def add_page(self, page: SourcePage) -> None:
        self.pages[_key(page.site_id, page.library, page.name)] = page

    def add_file(self, path: str, page: SourcePage) -> None:
        self.files[(page.site_id, path.lower())] = page

    def fail(self, operation: str, error: Exception | None = None) -> None:
        self._failures[operation] = error or RemoteOperationFailure(
            f"{operation} failed", operation=operation
        )

    def document(self, site_id: str, name: str) -> ModernPageDocument | None:
        stored = self.documents.get(_key(site_id, MODERN_PAGES_LIBRARY, name))
        return stored.document if stored else None

    def stored(self, site_id: str, name: str) -> StoredDocument | None:
        return self.documents.get(_key(site_id, MODERN_PAGES_LIBRARY, name))

    def get_page(
        self, site_id: str, reference: PageReference, library_hint: str | None
    ) -> SourcePage | None:
        self._check("get_page")
        library = reference.library or library_hint or MODERN_PAGES_LIBRARY
        return self.pages.get(_key(site_id, library, reference.name))

    def get_file(self, site_id: str, path: str) -> SourcePage | None:
        self._check("get_file")
        return self.files.get((site_id, path.lower()))

    def find_document(self, site_id: str, name: str) -> str | None:
        self._check("find_document")
        key = _key(site_id, MODERN_PAGES_LIBRARY, name)
        if key not in self.documents:
            return None
        return self.documents[key].document.item.address

    def write_document(self, document: ModernPageDocument, *, overwrite: bool) -> str:
        self._record("write_document", document.name)
        key = _key(document.site_id, document.library, document.name)
        if key in self.documents and not overwrite:
            raise AlreadyExistsError(
                f"Document {document.item.address} already exists",
                address=document.item.address,
            )
        self.documents[key] = StoredDocument(document=document)
        return document.item.address

    def copy_metadata(self, source: ItemRef, target: ItemRef) -> None:
        self._record("copy_metadata", target.name)
        page = self._source(source)
        self._target(target).metadata.update(page.metadata)

    def copy_permissions(self, source: ItemRef, target: ItemRef) -> None:
        self._record("copy_permissions", target.name)
        page = self._source(source)
        self._target(target).permissions = list(page.permissions)

    def rename(self, item: ItemRef, new_name: str) -> ItemRef:
        self._record("rename", f"{item.name}->{new_name}")
        renamed = ItemRef(site_id=item.site_id, library=item.library, name=new_name)
        old_key = _key(item.site_id, item.library, item.name)
        new_key = _key(item.site_id, item.library, new_name)
        if old_key != new_key and (new_key in self.pages or new_key in self.documents):
            raise RemoteOperationFailure(
                f"Cannot rename {item.address}: {renamed.address} exists", operation="rename"
            )

        if old_key in self.documents:
            stored = self.documents.pop(old_key)
            stored.document = stored.document.model_copy(update={"name": new_name})
            self.documents[new_key] = stored
        elif old_key in self.pages:
            page = self.pages.pop(old_key)
            self.pages[new_key] = page.model_copy(update={"name": new_name})
        else:
            raise RemoteOperationFailure(f"Item {item.address} not found", operation="rename")
        return renamed

    def publish(self, item: ItemRef) -> None:
        self._record("publish", item.name)
        self._target(item).published = True

    def set_comments_enabled(self, item: ItemRef, enabled: bool) -> None:
        self._record("set_comments_enabled", item.name)
        self._target(item).comments_enabled = enabled

    def ensure_site_fact(self, site_id: str, kind: str) -> Any:
        self._check("ensure_site_fact")
        self.fact_fetches.append((site_id, kind))
        site = self.sites.get(site_id)
        if site is None:
            raise RemoteOperationFailure(
                f"Site '{site_id}' not found", operation="ensure_site_fact"
            )
        if kind == FACT_SITE_URL:
            return site.url
        if kind == FACT_AVAILABLE_CONTROLS:
            return site.available_controls
        if kind == FACT_PUBLISHING_LIBRARY:
            return site.publishing_library
        raise ValueError(f"Unsupported site fact: {kind}")

    def write_report(self, site_id: str, name: str, content: str) -> str:
        self._record("write_report", name)
        self.reports[(site_id, name)] = content
        return ItemRef(site_id=site_id, library="SiteAssets", name=name).address

    def _record(self, operation: str, detail: str) -> None:
        self._check(operation)
        self.calls.append(f"{operation}:{detail}")

    def _check(self, operation: str) -> None:
        error = self._failures.get(operation)
        if error is not None:
            raise error

    def _source(self, item: ItemRef) -> SourcePage:
        page = self.pages.get(_key(item.site_id, item.library, item.name))
        if page is None:
            for stored in self.files.values():
                if stored.site_id == item.site_id and stored.name.lower() == item.name.lower():
                    return stored
            raise RemoteOperationFailure(f"Item {item.address} not found", operation="read_item")
        return page

    def _target(self, item: ItemRef) -> StoredDocument:
        stored = self.documents.get(_key(item.site_id, item.library, item.name))
        if stored is None:
            raise RemoteOperationFailure(
                f"Document {item.address} not found", operation="update_item"
            )
        return stored


def _key(site_id: str, library: str, name: str) -> _Key:
    return (site_id, library.lower(), name.lower())
