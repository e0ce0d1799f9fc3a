"""Interface of the content repository the engine reads from and writes to.

Implementations own their retry policy. When retries are exhausted they raise
``RemoteOperationFailure``; the engine treats that as fatal for the current
page only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pagelift.analysis.models import SourcePage
    from pagelift.orchestrator.models import ModernPageDocument, PageReference

MODERN_PAGES_LIBRARY = "SitePages"


@dataclass(frozen=True)
class ItemRef:
    """Address of one item (page, document, report) in the repository."""

    site_id: str
    library: str
    name: str

    @property
    def address(self) -> str:
        return f"{self.site_id}/{self.library}/{self.name}"


class Repository(Protocol):
    """Protocol for repository collaborators."""

    def get_page(
        self, site_id: str, reference: PageReference, library_hint: str | None
    ) -> SourcePage | None:
        """Return the legacy page or None when it does not exist."""

    def get_file(self, site_id: str, path: str) -> SourcePage | None:
        """Return a legacy page stored outside of any library."""

    def find_document(self, site_id: str, name: str) -> str | None:
        """Return the address of an existing modern document, if any."""

    def write_document(self, document: ModernPageDocument, *, overwrite: bool) -> str:
        """Write a modern document and return its address."""

    def copy_metadata(self, source: ItemRef, target: ItemRef) -> None:
        """Copy item metadata from the legacy page onto the new document."""

    def copy_permissions(self, source: ItemRef, target: ItemRef) -> None:
        """Copy item level permissions from the legacy page onto the new document."""

    def rename(self, item: ItemRef, new_name: str) -> ItemRef:
        """Rename an item and return its new address."""

    def publish(self, item: ItemRef) -> None:
        """Mark a document as published."""

    def set_comments_enabled(self, item: ItemRef, enabled: bool) -> None:
        """Enable or disable comments on a document."""

    def ensure_site_fact(self, site_id: str, kind: str) -> Any:
        """Fetch a site level fact (control catalog, library names, site url)."""

    def write_report(self, site_id: str, name: str, content: str) -> str:
        """Store a log report document and return its address."""
